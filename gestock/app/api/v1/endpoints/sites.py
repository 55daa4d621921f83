from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from gestock.app.api.deps import get_db
from gestock.app.api.responses import invalidates, ok
from gestock.app.db.models.core_types import SiteType
from gestock.app.db.models.models_v1 import Site
from gestock.app.db.session import transaction
from gestock.app.schemas.site import SiteCounts, SiteCreate, SiteRead, SiteUpdate
from gestock.services import catalog

router = APIRouter(prefix="/sites")


def _read(site: Site, counts: dict[str, int]) -> SiteRead:
    out = SiteRead.model_validate(site)
    out.counts = SiteCounts(stocks=counts.get(site.id, 0))
    return out


@router.get("")
def list_sites(
    type: SiteType | None = Query(None),
    is_active: bool | None = Query(None, alias="isActive"),
    db: Session = Depends(get_db),
):
    sites = catalog.list_sites(db, type=type, is_active=is_active)
    counts = catalog.site_stock_counts(db, [s.id for s in sites])
    return ok([_read(s, counts) for s in sites])


@router.get("/{site_id}")
def get_site(site_id: str, db: Session = Depends(get_db)):
    site = catalog.get_site(db, site_id)
    return ok(_read(site, catalog.site_stock_counts(db, [site.id])))


@router.post("", status_code=201)
def create_site(payload: SiteCreate, response: Response, db: Session = Depends(get_db)):
    with transaction(db):
        site = catalog.create_site(db, payload)
    invalidates(response, "site.write")
    return ok(SiteRead.model_validate(site), "Site créé")


@router.put("/{site_id}")
def update_site(site_id: str, payload: SiteUpdate, response: Response, db: Session = Depends(get_db)):
    with transaction(db):
        site = catalog.update_site(db, site_id, payload)
    invalidates(response, "site.write")
    return ok(SiteRead.model_validate(site), "Site mis à jour")


@router.delete("/{site_id}")
def delete_site(site_id: str, response: Response, db: Session = Depends(get_db)):
    with transaction(db):
        catalog.delete_site(db, site_id)
    invalidates(response, "site.write")
    return ok(None, "Site supprimé")

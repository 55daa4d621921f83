from __future__ import annotations

from typing import Callable

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Response
from sqlalchemy.orm import Session

from gestock.app.api.deps import PageParams, get_db, get_geocoder, get_session_factory
from gestock.app.api.responses import invalidates, ok, paginated
from gestock.app.core.exceptions import NotFoundError
from gestock.app.core.logging import get_logger
from gestock.app.db.models.models_v1 import Supplier
from gestock.app.db.session import transaction
from gestock.app.schemas.supplier import SupplierCounts, SupplierCreate, SupplierRead, SupplierUpdate
from gestock.services import catalog
from gestock.services.geocoding import AddressGeocoder

logger = get_logger(__name__)

router = APIRouter(prefix="/suppliers")


def _geocode_later(supplier_id: str, geocoder: AddressGeocoder, session_factory: Callable[[], Session]) -> None:
    """Runs after the response: the save never waits on the geocoding service."""
    with session_factory() as db:
        try:
            with transaction(db):
                found = catalog.geocode_supplier(db, supplier_id, geocoder)
        except NotFoundError:
            # supprimé entre-temps
            logger.info("geocoding_skipped", supplier_id=supplier_id)
            return
    logger.info("supplier_geocoded", supplier_id=supplier_id, found=found)


def _read(supplier: Supplier, counts: dict[str, dict[str, int]]) -> SupplierRead:
    out = SupplierRead.model_validate(supplier)
    out.counts = SupplierCounts(**counts.get(supplier.id, {}))
    return out


@router.get("")
def list_suppliers(
    search: str | None = Query(None),
    paging: PageParams = Depends(),
    db: Session = Depends(get_db),
):
    rows, total = catalog.list_suppliers(db, search=search, page=paging.page, limit=paging.limit)
    counts = catalog.supplier_counts(db, [s.id for s in rows])
    return paginated([_read(s, counts) for s in rows], paging.page, paging.limit, total)


@router.get("/{supplier_id}")
def get_supplier(supplier_id: str, db: Session = Depends(get_db)):
    supplier = catalog.get_supplier(db, supplier_id)
    return ok(_read(supplier, catalog.supplier_counts(db, [supplier.id])))


@router.post("", status_code=201)
def create_supplier(
    payload: SupplierCreate,
    response: Response,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    geocoder: AddressGeocoder = Depends(get_geocoder),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
):
    with transaction(db):
        supplier = catalog.create_supplier(db, payload)
    if catalog.needs_geocoding(supplier):
        background_tasks.add_task(_geocode_later, supplier.id, geocoder, session_factory)
    invalidates(response, "supplier.write")
    return ok(SupplierRead.model_validate(supplier), "Fournisseur créé")


@router.put("/{supplier_id}")
def update_supplier(
    supplier_id: str,
    payload: SupplierUpdate,
    response: Response,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    geocoder: AddressGeocoder = Depends(get_geocoder),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
):
    with transaction(db):
        supplier = catalog.update_supplier(db, supplier_id, payload)
    if catalog.needs_geocoding(supplier):
        background_tasks.add_task(_geocode_later, supplier.id, geocoder, session_factory)
    invalidates(response, "supplier.write")
    return ok(SupplierRead.model_validate(supplier), "Fournisseur mis à jour")


@router.post("/{supplier_id}/geocode")
def geocode_supplier(
    supplier_id: str,
    response: Response,
    db: Session = Depends(get_db),
    geocoder: AddressGeocoder = Depends(get_geocoder),
):
    with transaction(db):
        found = catalog.geocode_supplier(db, supplier_id, geocoder)
    supplier = catalog.get_supplier(db, supplier_id)
    if found:
        invalidates(response, "supplier.write")
    return ok(
        {"found": found, "supplier": SupplierRead.model_validate(supplier).dump()},
        "Coordonnées mises à jour" if found else "Adresse introuvable",
    )


@router.delete("/{supplier_id}")
def delete_supplier(supplier_id: str, response: Response, db: Session = Depends(get_db)):
    with transaction(db):
        removed = catalog.delete_supplier(db, supplier_id)
    invalidates(response, "product_supplier.write")
    return ok({"removedLinks": removed}, f"Fournisseur supprimé ({removed} lien(s) produit supprimé(s))")

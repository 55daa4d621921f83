from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from gestock.app.api.deps import PageParams, get_db
from gestock.app.api.responses import invalidates, ok, paginated
from gestock.app.db.models.core_types import PackType
from gestock.app.db.session import transaction
from gestock.app.schemas.movement import MovementRead
from gestock.app.schemas.pack import PackCreate, PackExecute, PackRead, PackUpdate
from gestock.services import packs

router = APIRouter(prefix="/packs")


@router.get("")
def list_packs(
    type: PackType | None = Query(None),
    paging: PageParams = Depends(),
    db: Session = Depends(get_db),
):
    rows, total = packs.list_packs(db, type=type, page=paging.page, limit=paging.limit)
    return paginated([PackRead.model_validate(p) for p in rows], paging.page, paging.limit, total)


@router.get("/{pack_id}")
def get_pack(pack_id: str, db: Session = Depends(get_db)):
    return ok(PackRead.model_validate(packs.get_pack(db, pack_id)))


@router.post("", status_code=201)
def create_pack(payload: PackCreate, response: Response, db: Session = Depends(get_db)):
    with transaction(db):
        pack = packs.create_pack(db, payload)
    invalidates(response, "pack.write")
    return ok(PackRead.model_validate(pack), "Pack créé")


@router.put("/{pack_id}")
def update_pack(pack_id: str, payload: PackUpdate, response: Response, db: Session = Depends(get_db)):
    with transaction(db):
        pack = packs.update_pack(db, pack_id, payload)
    invalidates(response, "pack.write")
    return ok(PackRead.model_validate(pack), "Pack mis à jour")


@router.delete("/{pack_id}")
def delete_pack(pack_id: str, response: Response, db: Session = Depends(get_db)):
    with transaction(db):
        packs.delete_pack(db, pack_id)
    invalidates(response, "pack.write")
    return ok(None, "Pack supprimé")


@router.post("/{pack_id}/execute")
def execute_pack(pack_id: str, payload: PackExecute, response: Response, db: Session = Depends(get_db)):
    with transaction(db):
        movements = packs.execute_pack(db, pack_id, payload)
    invalidates(response, "pack.execute")
    return ok(
        [MovementRead.model_validate(m) for m in movements],
        f"{len(movements)} mouvement(s) créé(s)",
    )

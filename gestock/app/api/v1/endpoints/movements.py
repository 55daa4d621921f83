from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from gestock.app.api.deps import PageParams, get_db
from gestock.app.api.responses import invalidates, ok, paginated
from gestock.app.db.models.core_types import MovementType
from gestock.app.db.session import transaction
from gestock.app.schemas.movement import MovementCreate, MovementRead
from gestock.services import movements

router = APIRouter(prefix="/movements")


@router.get("")
def list_movements(
    type: MovementType | None = Query(None),
    site_id: str | None = Query(None, alias="siteId"),
    product_id: str | None = Query(None, alias="productId"),
    start_date: datetime | None = Query(None, alias="startDate"),
    end_date: datetime | None = Query(None, alias="endDate"),
    paging: PageParams = Depends(),
    db: Session = Depends(get_db),
):
    rows, total = movements.list_movements(
        db,
        type=type,
        site_id=site_id,
        product_id=product_id,
        start_date=start_date,
        end_date=end_date,
        page=paging.page,
        limit=paging.limit,
    )
    return paginated([MovementRead.model_validate(m) for m in rows], paging.page, paging.limit, total)


@router.get("/{movement_id}")
def get_movement(movement_id: str, db: Session = Depends(get_db)):
    return ok(MovementRead.model_validate(movements.get_movement(db, movement_id)))


# pas de PUT / DELETE : le journal des mouvements est append-only
@router.post("", status_code=201)
def create_movement(payload: MovementCreate, response: Response, db: Session = Depends(get_db)):
    with transaction(db):
        mv = movements.create_movement(db, payload)
    invalidates(response, "movement.create")
    return ok(MovementRead.model_validate(mv), "Mouvement enregistré")

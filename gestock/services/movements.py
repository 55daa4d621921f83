"""
Movement engine.

Validates a movement request, records it (append-only) and applies it to the
stock ledger. Record and ledger update share one SAVEPOINT: either both land
or neither does.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from gestock.app.core.exceptions import NotFoundError, ValidationError
from gestock.app.core.logging import get_logger
from gestock.app.db.base import utcnow
from gestock.app.db.models.core_types import MovementType, SiteType
from gestock.app.db.models.models_v1 import Product, Site, StockMovement
from gestock.app.schemas.movement import MovementCreate
from gestock.services import inventory
from gestock.services.read_models import touch

logger = get_logger(__name__)


# ---------- Helpers ----------
def _storage_site(db: Session, site_id: str, field: str, *, receiving: bool) -> Site:
    site = db.get(Site, site_id)
    if not site:
        raise ValidationError(f"Site not found: {site_id}", field=field)
    if site.type != SiteType.STORAGE:
        raise ValidationError(f"Site {site.name} is not a storage site", field=field)
    if receiving and not site.is_active:
        raise ValidationError(f"Site {site.name} is inactive", field=field)
    return site


def _validate(db: Session, data: MovementCreate) -> None:
    if data.quantity is None or data.quantity <= 0:
        raise ValidationError("Quantity must be a positive integer", field="quantity")
    if not db.get(Product, data.product_id):
        raise ValidationError(f"Product not found: {data.product_id}", field="productId")

    mtype = MovementType(data.type)
    if mtype in (MovementType.OUT, MovementType.TRANSFER) and not data.source_site_id:
        raise ValidationError(f"sourceSiteId is required for {mtype.value}", field="sourceSiteId")
    if mtype in (MovementType.IN, MovementType.TRANSFER) and not data.target_site_id:
        raise ValidationError(f"targetSiteId is required for {mtype.value}", field="targetSiteId")
    if mtype == MovementType.TRANSFER and data.source_site_id == data.target_site_id:
        raise ValidationError("Source and target sites must differ", field="targetSiteId")

    if mtype in (MovementType.OUT, MovementType.TRANSFER):
        _storage_site(db, data.source_site_id, "sourceSiteId", receiving=False)
    if mtype in (MovementType.IN, MovementType.TRANSFER):
        _storage_site(db, data.target_site_id, "targetSiteId", receiving=True)


# ---------- Operations ----------
def create_movement(
    db: Session,
    data: MovementCreate,
    *,
    order_id: str | None = None,
    publish: bool = True,
) -> StockMovement:
    """
    Record a movement and apply it to the ledger.

    OUT sites are only recorded on the OUT side and IN sites on the IN side;
    stray site ids sent by the client are dropped. `publish=False` lets a
    caller that already bumps the read models (orders, packs, imports) skip
    the per-movement bump.
    """
    _validate(db, data)
    mtype = MovementType(data.type)

    mv = StockMovement(
        product_id=data.product_id,
        type=mtype,
        source_site_id=data.source_site_id if mtype != MovementType.IN else None,
        target_site_id=data.target_site_id if mtype != MovementType.OUT else None,
        quantity=data.quantity,
        condition=data.condition,
        movement_date=data.movement_date or utcnow(),
        operator=data.operator,
        comment=data.comment,
        order_id=order_id,
    )

    with db.begin_nested():
        db.add(mv)
        db.flush()
        inventory.apply_movement(db, mv)

    if publish:
        touch(db, "movement.create")

    logger.info(
        "movement_created",
        movement_id=mv.id,
        type=mtype.value,
        product_id=mv.product_id,
        source_site_id=mv.source_site_id,
        target_site_id=mv.target_site_id,
        quantity=mv.quantity,
        condition=mv.condition.value,
    )
    return mv


def get_movement(db: Session, movement_id: str) -> StockMovement:
    mv = db.get(StockMovement, movement_id)
    if not mv:
        raise NotFoundError("Movement", movement_id)
    return mv


def list_movements(
    db: Session,
    *,
    type: MovementType | None = None,
    site_id: str | None = None,
    product_id: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[StockMovement], int]:
    """Newest first. `site_id` matches either side of the movement."""
    stmt = select(StockMovement)
    if type is not None:
        stmt = stmt.where(StockMovement.type == type)
    if site_id:
        stmt = stmt.where(
            or_(StockMovement.source_site_id == site_id, StockMovement.target_site_id == site_id)
        )
    if product_id:
        stmt = stmt.where(StockMovement.product_id == product_id)
    if start_date:
        stmt = stmt.where(StockMovement.movement_date >= start_date)
    if end_date:
        stmt = stmt.where(StockMovement.movement_date <= end_date)

    total = db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
    rows = (
        db.execute(
            stmt.order_by(StockMovement.movement_date.desc(), StockMovement.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        .scalars()
        .all()
    )
    return list(rows), total

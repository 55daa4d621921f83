"""
Pack expander.

Un pack est un modèle (liste produit/quantité) ; l'exécuter produit un
mouvement IN ou OUT par ligne. Tout ou rien : la première ligne en échec
annule le lot entier.
"""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from gestock.app.core.exceptions import ConflictError, GestockError, NotFoundError, ValidationError
from gestock.app.core.logging import get_logger
from gestock.app.db.base import utcnow
from gestock.app.db.models.core_types import MovementType, PackType
from gestock.app.db.models.models_v1 import Pack, PackItem, Product, StockMovement
from gestock.app.schemas.movement import MovementCreate
from gestock.app.schemas.pack import PackCreate, PackExecute, PackItemIn, PackUpdate
from gestock.services.inventory import lock_stocks
from gestock.services.movements import create_movement
from gestock.services.read_models import touch

logger = get_logger(__name__)


def _get_pack(db: Session, pack_id: str) -> Pack:
    pack = db.execute(
        select(Pack).where(Pack.id == pack_id).options(selectinload(Pack.items))
    ).scalar_one_or_none()
    if not pack:
        raise NotFoundError("Pack", pack_id)
    return pack


def _check_name(db: Session, name: str, exclude_id: str | None = None) -> None:
    stmt = select(Pack.id).where(Pack.name == name)
    if exclude_id:
        stmt = stmt.where(Pack.id != exclude_id)
    if db.execute(stmt).first():
        raise ConflictError(f"Pack name already exists: {name}", field="name")


def _build_items(db: Session, items: list[PackItemIn]) -> list[PackItem]:
    out: list[PackItem] = []
    for position, item in enumerate(items):
        if not db.get(Product, item.product_id):
            raise ValidationError(
                f"Product not found: {item.product_id}", field=f"items[{position}].productId"
            )
        out.append(PackItem(product_id=item.product_id, quantity=item.quantity, position=position))
    return out


# ---------- CRUD ----------
def create_pack(db: Session, data: PackCreate) -> Pack:
    _check_name(db, data.name)
    pack = Pack(name=data.name, type=data.type, description=data.description)
    pack.items = _build_items(db, data.items)
    db.add(pack)
    db.flush()
    touch(db, "pack.write")
    return pack


def update_pack(db: Session, pack_id: str, data: PackUpdate) -> Pack:
    pack = _get_pack(db, pack_id)
    changes = data.model_dump(exclude_unset=True, exclude={"items"})

    if changes.get("name") and changes["name"] != pack.name:
        _check_name(db, changes["name"], exclude_id=pack.id)
    for field, value in changes.items():
        if value is None and field in ("name", "type"):
            continue
        setattr(pack, field, value)

    if data.items is not None:
        # remplacement complet des lignes
        new_items = _build_items(db, data.items)
        pack.items.clear()
        db.flush()
        pack.items.extend(new_items)

    db.flush()
    touch(db, "pack.write")
    return pack


def delete_pack(db: Session, pack_id: str) -> None:
    pack = _get_pack(db, pack_id)
    db.delete(pack)
    db.flush()
    touch(db, "pack.write")


def get_pack(db: Session, pack_id: str) -> Pack:
    return _get_pack(db, pack_id)


def list_packs(
    db: Session, *, type: PackType | None = None, page: int = 1, limit: int = 50
) -> tuple[list[Pack], int]:
    stmt = select(Pack)
    if type is not None:
        stmt = stmt.where(Pack.type == type)
    total = db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
    rows = (
        db.execute(
            stmt.options(selectinload(Pack.items)).order_by(Pack.name).offset((page - 1) * limit).limit(limit)
        )
        .scalars()
        .all()
    )
    return list(rows), total


# ---------- Execution ----------
def execute_pack(db: Session, pack_id: str, data: PackExecute) -> list[StockMovement]:
    """
    Expand a pack into one movement per item, quantities scaled by the
    multiplier. A failing item aborts the whole batch; the raised error's
    details name the item index and product reference.
    """
    pack = _get_pack(db, pack_id)
    pack_type = PackType(pack.type)
    requested = PackType(data.type) if data.type is not None else pack_type
    if requested != pack_type:
        raise ValidationError(
            f"Pack {pack.name} is a {pack_type.value} pack, cannot execute as {requested.value}",
            field="type",
        )
    if data.quantity_multiplier is None or data.quantity_multiplier < 1:
        raise ValidationError("Quantity multiplier must be at least 1", field="quantityMultiplier")
    if not pack.items:
        raise ValidationError(f"Pack {pack.name} has no items", field="items")

    prefix = f"[Pack: {pack.name}]"
    comment = f"{prefix} {data.comment}" if data.comment else prefix
    movement_date = data.movement_date or utcnow()
    mtype = MovementType.IN if pack_type == PackType.IN else MovementType.OUT

    movements: list[StockMovement] = []
    with db.begin_nested():
        # verrous pris par id produit croissant, avant le premier mouvement
        lock_stocks(db, [item.product_id for item in pack.items], data.site_id)
        for index, item in enumerate(pack.items):
            payload = MovementCreate(
                product_id=item.product_id,
                type=mtype,
                source_site_id=data.site_id if mtype == MovementType.OUT else None,
                target_site_id=data.site_id if mtype == MovementType.IN else None,
                quantity=item.quantity * data.quantity_multiplier,
                condition=data.condition,
                movement_date=movement_date,
                operator=data.operator,
                comment=comment,
            )
            try:
                movements.append(create_movement(db, payload, publish=False))
            except GestockError as exc:
                product = db.get(Product, item.product_id)
                exc.details.update(
                    {
                        "packId": pack.id,
                        "itemIndex": index,
                        "productReference": product.reference if product else None,
                    }
                )
                logger.warning(
                    "pack_execution_rejected",
                    pack_id=pack.id,
                    item_index=index,
                    error=exc.code,
                )
                raise

    touch(db, "pack.execute")
    logger.info(
        "pack_executed",
        pack_id=pack.id,
        type=pack_type.value,
        site_id=data.site_id,
        multiplier=data.quantity_multiplier,
        movements=len(movements),
    )
    return movements

"""
Stock ledger.

Seul point d'écriture des lignes `stocks` : toute variation de quantité passe
par `apply_movement`, appelé par le moteur de mouvements.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from gestock.app.core.exceptions import InsufficientStockError
from gestock.app.db.base import utcnow
from gestock.app.db.models.core_types import Condition, MovementType, SiteType
from gestock.app.db.models.models_v1 import Product, Site, Stock, StockMovement


@dataclass(frozen=True)
class AvailableStock:
    site_id: str
    site_name: str
    site_type: SiteType
    condition: Condition
    quantity: int


def quantity_for(stock: Stock, condition: Condition) -> int:
    return stock.quantity_new if condition == Condition.NEW else stock.quantity_used


def _set_quantity(stock: Stock, condition: Condition, value: int) -> None:
    if condition == Condition.NEW:
        stock.quantity_new = value
    else:
        stock.quantity_used = value
    stock.updated_at = utcnow()


def _lock_stock(db: Session, product_id: str, site_id: str) -> Stock | None:
    return (
        db.execute(
            select(Stock)
            .where(Stock.product_id == product_id)
            .where(Stock.site_id == site_id)
            .with_for_update()
        )
        .scalar_one_or_none()
    )


def lock_stocks(db: Session, product_ids, site_id: str) -> None:
    """Lock the (product, site) rows of a batch up front, in product id order."""
    for product_id in sorted(set(product_ids)):
        _lock_stock(db, product_id, site_id)


def _get_or_create_stock(db: Session, product_id: str, site_id: str) -> Stock:
    stock = _lock_stock(db, product_id, site_id)
    if stock:
        return stock

    stock = Stock(product_id=product_id, site_id=site_id, quantity_new=0, quantity_used=0)
    db.add(stock)
    db.flush()
    return stock


def _insufficient(db: Session, movement: StockMovement, site_id: str, available: int) -> InsufficientStockError:
    product = db.get(Product, movement.product_id)
    site = db.get(Site, site_id)
    return InsufficientStockError(
        product_id=movement.product_id,
        product_reference=product.reference if product else None,
        site_id=site_id,
        site_name=site.name if site else None,
        condition=Condition(movement.condition).value,
        available=available,
        requested=movement.quantity,
    )


def apply_movement(db: Session, movement: StockMovement) -> list[Stock]:
    """
    Apply one movement to the ledger and return the touched stock rows.

    OUT and the OUT leg of a TRANSFER are checked before anything is written:
    a rejected movement leaves every row untouched.
    """
    condition = Condition(movement.condition)
    qty = movement.quantity
    mtype = MovementType(movement.type)

    if mtype == MovementType.IN:
        dst = _get_or_create_stock(db, movement.product_id, movement.target_site_id)
        _set_quantity(dst, condition, quantity_for(dst, condition) + qty)
        db.flush()
        return [dst]

    if mtype == MovementType.OUT:
        src = _lock_stock(db, movement.product_id, movement.source_site_id)
        available = quantity_for(src, condition) if src else 0
        if src is None or available < qty:
            raise _insufficient(db, movement, movement.source_site_id, available)
        _set_quantity(src, condition, available - qty)
        db.flush()
        return [src]

    # TRANSFER : verrouillage dans un ordre stable (évite les deadlocks croisés)
    locked: dict[str, Stock | None] = {}
    for site_id in sorted({movement.source_site_id, movement.target_site_id}):
        locked[site_id] = _lock_stock(db, movement.product_id, site_id)

    src = locked[movement.source_site_id]
    available = quantity_for(src, condition) if src else 0
    if src is None or available < qty:
        raise _insufficient(db, movement, movement.source_site_id, available)

    dst = locked[movement.target_site_id] or _get_or_create_stock(
        db, movement.product_id, movement.target_site_id
    )
    _set_quantity(src, condition, available - qty)
    _set_quantity(dst, condition, quantity_for(dst, condition) + qty)
    db.flush()
    return [src, dst]


def available_stock(
    db: Session,
    product_id: str,
    *,
    site_id: str | None = None,
    condition: Condition | None = None,
) -> list[AvailableStock]:
    """Positive quantities of a product, per site and condition."""
    stmt = (
        select(Stock, Site)
        .join(Site, Site.id == Stock.site_id)
        .where(Stock.product_id == product_id)
        .order_by(Site.name)
    )
    if site_id is not None:
        stmt = stmt.where(Stock.site_id == site_id)

    conditions = [condition] if condition is not None else [Condition.NEW, Condition.USED]
    out: list[AvailableStock] = []
    for stock, site in db.execute(stmt).all():
        for cond in conditions:
            qty = quantity_for(stock, cond)
            if qty > 0:
                out.append(
                    AvailableStock(
                        site_id=site.id,
                        site_name=site.name,
                        site_type=site.type,
                        condition=cond,
                        quantity=qty,
                    )
                )
    return out


def product_totals(db: Session, product_id: str) -> tuple[int, int]:
    """(total NEW, total USED) across every site."""
    rows = db.execute(
        select(Stock.quantity_new, Stock.quantity_used).where(Stock.product_id == product_id)
    ).all()
    return sum(r[0] for r in rows), sum(r[1] for r in rows)

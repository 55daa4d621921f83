"""
Procurement service.

Cycle de vie des commandes fournisseur : PENDING -> COMPLETED | CANCELLED.
La réception crée le mouvement IN correspondant ; aucune écriture de stock
ici, tout passe par le moteur de mouvements.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from gestock.app.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from gestock.app.core.logging import get_logger
from gestock.app.db.base import utcnow
from gestock.app.db.models.core_types import Condition, MovementType, OrderStatus, SiteType
from gestock.app.db.models.models_v1 import Order, Product, Site, StockMovement, Supplier
from gestock.app.schemas.movement import MovementCreate
from gestock.app.schemas.order import OrderCreate, OrderUpdate, ReceiveOrderInput
from gestock.services.movements import create_movement
from gestock.services.read_models import touch

logger = get_logger(__name__)


@dataclass
class Receipt:
    order: Order
    movement: StockMovement

    @property
    def quantity_delta(self) -> int:
        # reçu - commandé : négatif si livraison partielle
        return (self.order.received_qty or 0) - self.order.quantity


# ---------- Helpers ----------
def _get_order(db: Session, order_id: str, *, lock: bool = False) -> Order:
    stmt = select(Order).where(Order.id == order_id)
    if lock:
        stmt = stmt.with_for_update()
    order = db.execute(stmt).scalar_one_or_none()
    if not order:
        raise NotFoundError("Order", order_id)
    return order


def _destination(db: Session, site_id: str, field: str = "destinationSiteId") -> Site:
    site = db.get(Site, site_id)
    if not site:
        raise ValidationError(f"Site not found: {site_id}", field=field)
    if site.type != SiteType.STORAGE or not site.is_active:
        raise ValidationError(f"Site {site.name} is not an active storage site", field=field)
    return site


def _require_supplier(db: Session, supplier_id: str) -> Supplier:
    supplier = db.get(Supplier, supplier_id)
    if not supplier:
        raise ValidationError(f"Supplier not found: {supplier_id}", field="supplierId")
    return supplier


def _require_pending(order: Order, action: str) -> None:
    if order.status != OrderStatus.PENDING:
        raise InvalidStateError("Order", order.id, OrderStatus(order.status).value, action)


# ---------- Operations ----------
def create_order(db: Session, data: OrderCreate) -> Order:
    if data.quantity is None or data.quantity <= 0:
        raise ValidationError("Quantity must be a positive integer", field="quantity")
    if not db.get(Product, data.product_id):
        raise ValidationError(f"Product not found: {data.product_id}", field="productId")
    _require_supplier(db, data.supplier_id)
    if data.destination_site_id:
        _destination(db, data.destination_site_id)

    order = Order(
        product_id=data.product_id,
        supplier_id=data.supplier_id,
        quantity=data.quantity,
        status=OrderStatus.PENDING,
        order_date=data.order_date or utcnow(),
        expected_date=data.expected_date,
        destination_site_id=data.destination_site_id,
        responsible=data.responsible,
        supplier_ref=data.supplier_ref,
        comment=data.comment,
    )
    db.add(order)
    db.flush()
    touch(db, "order.write")
    logger.info("order_created", order_id=order.id, product_id=order.product_id, quantity=order.quantity)
    return order


def update_order(db: Session, order_id: str, data: OrderUpdate) -> Order:
    order = _get_order(db, order_id, lock=True)
    _require_pending(order, "update")

    changes = data.model_dump(exclude_unset=True)
    if "quantity" in changes and (changes["quantity"] is None or changes["quantity"] <= 0):
        raise ValidationError("Quantity must be a positive integer", field="quantity")
    if changes.get("supplier_id"):
        _require_supplier(db, changes["supplier_id"])
    elif "supplier_id" in changes:
        raise ValidationError("supplierId cannot be empty", field="supplierId")
    if changes.get("destination_site_id"):
        _destination(db, changes["destination_site_id"])
    if "order_date" in changes and changes["order_date"] is None:
        raise ValidationError("orderDate cannot be empty", field="orderDate")

    for field, value in changes.items():
        setattr(order, field, value)
    db.flush()
    touch(db, "order.write")
    return order


def receive_order(db: Session, order_id: str, data: ReceiveOrderInput) -> Receipt:
    """
    Receive a pending order.

    Destination: the order's own site, else the one given here (then stored
    on the order). Without either the receipt is rejected. The IN movement
    and the status change share one SAVEPOINT.
    """
    order = _get_order(db, order_id, lock=True)
    _require_pending(order, "receive")

    if data.received_qty is None or data.received_qty <= 0:
        raise ValidationError("Received quantity must be a positive integer", field="receivedQty")

    site_id = order.destination_site_id or data.destination_site_id
    if not site_id:
        raise ValidationError(
            "Order has no destination site; provide destinationSiteId", field="destinationSiteId"
        )
    _destination(db, site_id)

    supplier = db.get(Supplier, order.supplier_id)
    prefix = f"[Commande {supplier.name if supplier else order.supplier_id}]"
    received_at = data.received_date or utcnow()

    with db.begin_nested():
        mv = create_movement(
            db,
            MovementCreate(
                product_id=order.product_id,
                type=MovementType.IN,
                target_site_id=site_id,
                quantity=data.received_qty,
                condition=data.condition or Condition.NEW,
                movement_date=received_at,
                operator=data.operator or order.responsible,
                comment=f"{prefix} {data.comment}" if data.comment else prefix,
            ),
            order_id=order.id,
            publish=False,
        )
        order.destination_site_id = site_id
        order.status = OrderStatus.COMPLETED
        order.received_date = received_at
        order.received_qty = data.received_qty
        db.flush()

    touch(db, "order.receive")
    receipt = Receipt(order=order, movement=mv)
    logger.info(
        "order_received",
        order_id=order.id,
        movement_id=mv.id,
        site_id=site_id,
        received_qty=data.received_qty,
        quantity_delta=receipt.quantity_delta,
    )
    return receipt


def cancel_order(db: Session, order_id: str) -> Order:
    order = _get_order(db, order_id, lock=True)
    _require_pending(order, "cancel")
    order.status = OrderStatus.CANCELLED
    db.flush()
    touch(db, "order.write")
    logger.info("order_cancelled", order_id=order.id)
    return order


def delete_order(db: Session, order_id: str) -> None:
    order = _get_order(db, order_id, lock=True)
    # une commande reçue est référencée par son mouvement de réception
    if order.status == OrderStatus.COMPLETED:
        raise InvalidStateError("Order", order.id, OrderStatus.COMPLETED.value, "delete")
    db.delete(order)
    db.flush()
    touch(db, "order.write")


def get_order(db: Session, order_id: str) -> Order:
    return _get_order(db, order_id)


def list_orders(
    db: Session,
    *,
    status: OrderStatus | None = None,
    supplier_id: str | None = None,
    product_id: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Order], int]:
    stmt = select(Order)
    if status is not None:
        stmt = stmt.where(Order.status == status)
    if supplier_id:
        stmt = stmt.where(Order.supplier_id == supplier_id)
    if product_id:
        stmt = stmt.where(Order.product_id == product_id)
    if start_date:
        stmt = stmt.where(Order.order_date >= start_date)
    if end_date:
        stmt = stmt.where(Order.order_date <= end_date)

    total = db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
    rows = (
        db.execute(
            stmt.order_by(Order.order_date.desc(), Order.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        .scalars()
        .all()
    )
    return list(rows), total

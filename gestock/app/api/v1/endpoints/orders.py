from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from gestock.app.api.deps import PageParams, get_db
from gestock.app.api.responses import invalidates, ok, paginated
from gestock.app.db.models.core_types import OrderStatus
from gestock.app.db.session import transaction
from gestock.app.schemas.order import OrderCreate, OrderRead, OrderUpdate, ReceiptRead, ReceiveOrderInput
from gestock.services import procurement

router = APIRouter(prefix="/orders")


@router.get("")
def list_orders(
    status: OrderStatus | None = Query(None),
    supplier_id: str | None = Query(None, alias="supplierId"),
    product_id: str | None = Query(None, alias="productId"),
    start_date: datetime | None = Query(None, alias="startDate"),
    end_date: datetime | None = Query(None, alias="endDate"),
    paging: PageParams = Depends(),
    db: Session = Depends(get_db),
):
    rows, total = procurement.list_orders(
        db,
        status=status,
        supplier_id=supplier_id,
        product_id=product_id,
        start_date=start_date,
        end_date=end_date,
        page=paging.page,
        limit=paging.limit,
    )
    return paginated([OrderRead.model_validate(o) for o in rows], paging.page, paging.limit, total)


@router.get("/{order_id}")
def get_order(order_id: str, db: Session = Depends(get_db)):
    return ok(OrderRead.model_validate(procurement.get_order(db, order_id)))


@router.post("", status_code=201)
def create_order(payload: OrderCreate, response: Response, db: Session = Depends(get_db)):
    with transaction(db):
        order = procurement.create_order(db, payload)
    invalidates(response, "order.write")
    return ok(OrderRead.model_validate(order), "Commande créée")


@router.put("/{order_id}")
def update_order(order_id: str, payload: OrderUpdate, response: Response, db: Session = Depends(get_db)):
    with transaction(db):
        order = procurement.update_order(db, order_id, payload)
    invalidates(response, "order.write")
    return ok(OrderRead.model_validate(order), "Commande mise à jour")


@router.post("/{order_id}/receive")
def receive_order(order_id: str, payload: ReceiveOrderInput, response: Response, db: Session = Depends(get_db)):
    with transaction(db):
        receipt = procurement.receive_order(db, order_id, payload)
    invalidates(response, "order.receive")
    data = ReceiptRead.model_validate(
        {
            **OrderRead.model_validate(receipt.order).model_dump(),
            "movement_id": receipt.movement.id,
            "quantity_delta": receipt.quantity_delta,
        }
    )
    return ok(data, "Commande réceptionnée")


@router.post("/{order_id}/cancel")
def cancel_order(order_id: str, response: Response, db: Session = Depends(get_db)):
    with transaction(db):
        order = procurement.cancel_order(db, order_id)
    invalidates(response, "order.write")
    return ok(OrderRead.model_validate(order), "Commande annulée")


@router.delete("/{order_id}")
def delete_order(order_id: str, response: Response, db: Session = Depends(get_db)):
    with transaction(db):
        procurement.delete_order(db, order_id)
    invalidates(response, "order.write")
    return ok(None, "Commande supprimée")

from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select

from gestock.app.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from gestock.app.db.models.core_types import Condition, MovementType, OrderStatus
from gestock.app.db.models.models_v1 import Stock, StockMovement
from gestock.app.schemas.order import OrderCreate, OrderUpdate, ReceiveOrderInput
from gestock.services import procurement


@pytest.fixture
def order_factory(db_session, product, supplier):
    def _order(quantity=5, destination=None, **extra):
        return procurement.create_order(
            db_session,
            OrderCreate(
                product_id=product.id,
                supplier_id=supplier.id,
                quantity=quantity,
                destination_site_id=destination.id if destination else None,
                **extra,
            ),
        )

    return _order


def _qty_new(db, product, site):
    stock = db.execute(
        select(Stock).where(Stock.product_id == product.id, Stock.site_id == site.id)
    ).scalar_one_or_none()
    return stock.quantity_new if stock else 0


def test_receive_creates_in_movement_and_completes(db_session, product, site_a, order_factory):
    order = order_factory(quantity=5, destination=site_a)
    assert order.status == OrderStatus.PENDING
    received_at = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)

    receipt = procurement.receive_order(
        db_session,
        order.id,
        ReceiveOrderInput(received_qty=5, condition=Condition.NEW, received_date=received_at),
    )

    assert receipt.order.status == OrderStatus.COMPLETED
    assert receipt.order.received_qty == 5
    assert receipt.quantity_delta == 0

    mv = receipt.movement
    assert mv.type == MovementType.IN
    assert mv.target_site_id == site_a.id
    assert mv.quantity == 5
    assert mv.order_id == order.id
    assert mv.comment == "[Commande Acme Composants]"
    assert _qty_new(db_session, product, site_a) == 5


def test_partial_receipt_reports_delta(db_session, site_a, order_factory):
    order = order_factory(quantity=10, destination=site_a)
    receipt = procurement.receive_order(
        db_session, order.id, ReceiveOrderInput(received_qty=8, comment="carton abîmé")
    )
    assert receipt.quantity_delta == -2
    assert receipt.movement.comment == "[Commande Acme Composants] carton abîmé"


def test_receive_used_condition(db_session, product, site_a, order_factory):
    order = order_factory(destination=site_a)
    procurement.receive_order(db_session, order.id, ReceiveOrderInput(received_qty=3, condition=Condition.USED))
    stock = db_session.execute(select(Stock).where(Stock.product_id == product.id)).scalar_one()
    assert (stock.quantity_new, stock.quantity_used) == (0, 3)


def test_receive_twice_is_rejected(db_session, site_a, order_factory):
    order = order_factory(destination=site_a)
    procurement.receive_order(db_session, order.id, ReceiveOrderInput(received_qty=5))

    with pytest.raises(InvalidStateError):
        procurement.receive_order(db_session, order.id, ReceiveOrderInput(received_qty=5))
    assert db_session.scalar(select(func.count(StockMovement.id))) == 1


def test_receive_without_destination_is_rejected(db_session, order_factory):
    order = order_factory(destination=None)

    with pytest.raises(ValidationError) as exc:
        procurement.receive_order(db_session, order.id, ReceiveOrderInput(received_qty=5))

    assert exc.value.field == "destinationSiteId"
    assert procurement.get_order(db_session, order.id).status == OrderStatus.PENDING
    assert db_session.scalar(select(func.count(StockMovement.id))) == 0


def test_receive_time_destination_is_stored(db_session, product, site_b, order_factory):
    order = order_factory(destination=None)
    receipt = procurement.receive_order(
        db_session, order.id, ReceiveOrderInput(received_qty=2, destination_site_id=site_b.id)
    )
    assert receipt.order.destination_site_id == site_b.id
    assert _qty_new(db_session, product, site_b) == 2


def test_order_destination_wins_over_payload(db_session, product, site_a, site_b, order_factory):
    order = order_factory(destination=site_a)
    procurement.receive_order(
        db_session, order.id, ReceiveOrderInput(received_qty=1, destination_site_id=site_b.id)
    )
    assert _qty_new(db_session, product, site_a) == 1
    assert _qty_new(db_session, product, site_b) == 0


def test_exit_site_is_not_a_destination(db_session, exit_site, order_factory):
    with pytest.raises(ValidationError):
        order_factory(destination=exit_site)

    order = order_factory(destination=None)
    with pytest.raises(ValidationError):
        procurement.receive_order(
            db_session, order.id, ReceiveOrderInput(received_qty=1, destination_site_id=exit_site.id)
        )
    assert procurement.get_order(db_session, order.id).status == OrderStatus.PENDING


def test_cancelled_order_is_terminal(db_session, site_a, order_factory):
    order = order_factory(destination=site_a)
    procurement.cancel_order(db_session, order.id)
    assert order.status == OrderStatus.CANCELLED

    with pytest.raises(InvalidStateError):
        procurement.receive_order(db_session, order.id, ReceiveOrderInput(received_qty=1))
    with pytest.raises(InvalidStateError):
        procurement.update_order(db_session, order.id, OrderUpdate(quantity=3))
    with pytest.raises(InvalidStateError):
        procurement.cancel_order(db_session, order.id)


def test_update_pending_order(db_session, site_b, order_factory):
    order = order_factory(quantity=5)
    procurement.update_order(
        db_session, order.id, OrderUpdate(quantity=7, destination_site_id=site_b.id, responsible="Marie")
    )
    assert (order.quantity, order.destination_site_id, order.responsible) == (7, site_b.id, "Marie")


def test_delete_policy(db_session, site_a, order_factory):
    pending = order_factory(destination=site_a)
    procurement.delete_order(db_session, pending.id)
    with pytest.raises(NotFoundError):
        procurement.get_order(db_session, pending.id)

    received = order_factory(destination=site_a)
    procurement.receive_order(db_session, received.id, ReceiveOrderInput(received_qty=5))
    with pytest.raises(InvalidStateError):
        procurement.delete_order(db_session, received.id)


def test_create_order_checks_references(db_session, product, supplier):
    with pytest.raises(ValidationError) as exc:
        procurement.create_order(
            db_session, OrderCreate(product_id=product.id, supplier_id="ghost", quantity=1)
        )
    assert exc.value.field == "supplierId"


def test_list_orders_by_status(db_session, site_a, order_factory):
    first = order_factory(destination=site_a)
    order_factory(destination=site_a)
    procurement.cancel_order(db_session, first.id)

    rows, total = procurement.list_orders(db_session, status=OrderStatus.PENDING)
    assert total == 1
    assert rows[0].id != first.id

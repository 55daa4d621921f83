from datetime import datetime, timedelta, timezone

import pytest

from gestock.app.db.models.core_types import Condition, SupplyRisk
from gestock.app.schemas.order import OrderCreate, ReceiveOrderInput
from gestock.app.schemas.product import ProductSupplierLink, ProductUpdate
from gestock.services import catalog, dashboard, procurement

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def stocked(db_session, product, product_b, supplier, site_a, site_b, move):
    catalog.link_supplier(
        db_session, product.id, ProductSupplierLink(supplier_id=supplier.id, unit_price=2.5, is_primary=True)
    )
    catalog.update_product(db_session, product_b.id, ProductUpdate(supply_risk=SupplyRisk.HIGH))
    move(product, "IN", 10, target=site_a, movement_date=NOW - timedelta(days=1))
    move(product_b, "IN", 8, target=site_b, condition=Condition.USED, movement_date=NOW)
    move(product, "OUT", 1, source=site_a, movement_date=NOW)


def test_stats(db_session, stocked):
    out = dashboard.stats(db_session, now=NOW)

    assert out["totalProducts"] == 2
    assert out["totalSites"] == 2
    assert out["totalSuppliers"] == 1
    assert (out["totalStockNew"], out["totalStockUsed"], out["totalItems"]) == (9, 8, 17)
    assert out["totalStockValue"] == 22.5
    assert out["highRiskProducts"] == 1
    # P1 : 9 // 1, P2 : 8 // 4
    assert out["totalPossibleUnits"] == 11
    assert out["pendingOrders"] == 0


def test_low_stock_alerts_and_top_products(db_session, stocked):
    alerts = dashboard.low_stock_alerts(db_session, threshold=5)
    assert [(a["reference"], a["possibleUnits"]) for a in alerts] == [("P2", 2)]
    assert "unitPrice" not in alerts[0]

    top = dashboard.top_products(db_session, limit=1)
    assert top == [{"reference": "P1", "group": "", "totalNew": 9, "totalUsed": 0, "total": 9}]


def test_movements_by_day_fills_the_calendar(db_session, stocked):
    days = dashboard.movements_by_day(db_session, days=3, now=NOW)

    assert [d["date"] for d in days] == ["2026-03-13", "2026-03-14", "2026-03-15"]
    assert days[0] == {"date": "2026-03-13", "IN": 0, "OUT": 0, "TRANSFER": 0}
    assert days[1]["IN"] == 1
    assert (days[2]["IN"], days[2]["OUT"]) == (1, 1)


def test_stock_by_site(db_session, stocked):
    assert dashboard.stock_by_site(db_session) == [
        {"name": "Entrepôt A", "totalNew": 9, "totalUsed": 0, "productCount": 1},
        {"name": "Entrepôt B", "totalNew": 0, "totalUsed": 8, "productCount": 1},
    ]


def test_orders_by_month(db_session, product, supplier, site_a):
    def order(day, qty):
        return procurement.create_order(
            db_session,
            OrderCreate(
                product_id=product.id,
                supplier_id=supplier.id,
                quantity=qty,
                order_date=day,
                destination_site_id=site_a.id,
            ),
        )

    procurement.cancel_order(db_session, order(datetime(2026, 1, 20, tzinfo=timezone.utc), 4).id)
    done = order(datetime(2026, 3, 2, tzinfo=timezone.utc), 6)
    order(datetime(2026, 3, 10, tzinfo=timezone.utc), 2)
    procurement.receive_order(
        db_session, done.id, ReceiveOrderInput(received_qty=6, received_date=datetime(2026, 3, 5, tzinfo=timezone.utc))
    )

    months = dashboard.orders_by_month(db_session, months=3, now=NOW)

    assert [m["month"] for m in months] == ["2026-01", "2026-02", "2026-03"]
    assert months[0] == {"month": "2026-01", "pending": 0, "completed": 0, "cancelled": 1, "totalQty": 4}
    assert months[1]["totalQty"] == 0
    assert (months[2]["pending"], months[2]["completed"], months[2]["totalQty"]) == (1, 1, 8)

    stats = dashboard.stats(db_session, now=NOW)
    assert stats["completedOrdersThisMonth"] == 1
    assert stats["pendingOrders"] == 1
    assert [o.quantity for o in dashboard.pending_orders(db_session)] == [2]

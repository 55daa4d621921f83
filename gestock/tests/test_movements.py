from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy import func, select

from gestock.app.core.exceptions import InsufficientStockError, NotFoundError, ValidationError
from gestock.app.db.models.core_types import Condition, MovementType
from gestock.app.db.models.models_v1 import Stock, StockMovement
from gestock.app.schemas.movement import MovementCreate
from gestock.app.schemas.site import SiteUpdate
from gestock.services import catalog, movements
from gestock.services.read_models import versions


def _stock(db, product, site):
    return db.execute(
        select(Stock).where(Stock.product_id == product.id, Stock.site_id == site.id)
    ).scalar_one_or_none()


def _movement_count(db):
    return db.scalar(select(func.count(StockMovement.id)))


def test_in_then_oversized_out_is_rejected(db_session, product, site_a, move):
    move(product, "IN", 10, target=site_a)
    assert _stock(db_session, product, site_a).quantity_new == 10

    with pytest.raises(InsufficientStockError) as exc:
        move(product, "OUT", 15, source=site_a)

    assert exc.value.details["available"] == 10
    assert exc.value.details["requested"] == 15
    assert exc.value.details["productReference"] == "P1"
    assert exc.value.status_code == 409

    # rien n'a bougé
    assert _stock(db_session, product, site_a).quantity_new == 10
    assert _movement_count(db_session) == 1


def test_out_without_any_stock_row(db_session, product, site_a, move):
    with pytest.raises(InsufficientStockError) as exc:
        move(product, "OUT", 1, source=site_a)
    assert exc.value.details["available"] == 0
    assert _stock(db_session, product, site_a) is None


def test_conditions_are_separate_buckets(db_session, product, site_a, move):
    move(product, "IN", 5, target=site_a, condition=Condition.USED)

    with pytest.raises(InsufficientStockError):
        move(product, "OUT", 1, source=site_a, condition=Condition.NEW)

    move(product, "OUT", 2, source=site_a, condition=Condition.USED)
    stock = _stock(db_session, product, site_a)
    assert (stock.quantity_new, stock.quantity_used) == (0, 3)


def test_transfer_conserves_total(db_session, product, site_a, site_b, move):
    move(product, "IN", 10, target=site_a)
    mv = move(product, "TRANSFER", 4, source=site_a, target=site_b)

    assert mv.type == MovementType.TRANSFER
    assert _stock(db_session, product, site_a).quantity_new == 6
    assert _stock(db_session, product, site_b).quantity_new == 4


def test_rejected_transfer_leaves_both_sites_untouched(db_session, product, site_a, site_b, move):
    move(product, "IN", 3, target=site_a)
    move(product, "IN", 7, target=site_b)

    with pytest.raises(InsufficientStockError):
        move(product, "TRANSFER", 5, source=site_a, target=site_b)

    assert _stock(db_session, product, site_a).quantity_new == 3
    assert _stock(db_session, product, site_b).quantity_new == 7


def test_transfer_to_same_site_is_invalid(db_session, product, site_a, move):
    move(product, "IN", 10, target=site_a)
    with pytest.raises(ValidationError) as exc:
        move(product, "TRANSFER", 1, source=site_a, target=site_a)
    assert exc.value.field == "targetSiteId"


@pytest.mark.parametrize(
    "type, missing",
    [("IN", "targetSiteId"), ("OUT", "sourceSiteId"), ("TRANSFER", "sourceSiteId")],
)
def test_required_sites(db_session, product, type, missing, move):
    with pytest.raises(ValidationError) as exc:
        move(product, type, 1)
    assert exc.value.field == missing


def test_exit_site_cannot_hold_stock(db_session, product, exit_site, move):
    with pytest.raises(ValidationError) as exc:
        move(product, "IN", 1, target=exit_site)
    assert exc.value.field == "targetSiteId"
    assert _movement_count(db_session) == 0


def test_inactive_site_can_be_emptied_but_not_filled(db_session, product, site_a, move):
    move(product, "IN", 4, target=site_a)
    catalog.update_site(db_session, site_a.id, SiteUpdate(is_active=False))

    with pytest.raises(ValidationError):
        move(product, "IN", 1, target=site_a)

    move(product, "OUT", 4, source=site_a)
    assert _stock(db_session, product, site_a).quantity_new == 0


def test_unknown_product(db_session, site_a):
    data = MovementCreate(product_id="nope", type=MovementType.IN, target_site_id=site_a.id, quantity=1)
    with pytest.raises(ValidationError) as exc:
        movements.create_movement(db_session, data)
    assert exc.value.field == "productId"


def test_quantity_must_be_positive():
    with pytest.raises(SchemaValidationError):
        MovementCreate(product_id="x", type=MovementType.IN, target_site_id="s", quantity=0)


def test_stray_site_ids_are_dropped(db_session, product, site_a, site_b, move):
    mv = move(product, "IN", 2, source=site_b, target=site_a)
    assert mv.source_site_id is None
    assert mv.target_site_id == site_a.id


def test_movement_bumps_read_models(db_session, product, site_a, move):
    before = versions(db_session)
    move(product, "IN", 1, target=site_a)
    after = versions(db_session)

    for view in ("movements", "stocks", "products", "dashboard"):
        assert after[view] == before[view] + 1
    assert after["orders"] == before["orders"]


def test_list_movements_filters(db_session, product, product_b, site_a, site_b, move):
    now = datetime.now(timezone.utc)
    move(product, "IN", 10, target=site_a, movement_date=now - timedelta(days=3))
    move(product, "TRANSFER", 2, source=site_a, target=site_b, movement_date=now - timedelta(days=1))
    move(product_b, "IN", 5, target=site_b, movement_date=now)

    rows, total = movements.list_movements(db_session, site_id=site_b.id)
    assert total == 2
    assert [m.type for m in rows] == [MovementType.IN, MovementType.TRANSFER]

    rows, total = movements.list_movements(db_session, product_id=product.id, type=MovementType.IN)
    assert total == 1

    rows, total = movements.list_movements(db_session, start_date=now - timedelta(days=2))
    assert total == 2

    rows, total = movements.list_movements(db_session, page=2, limit=2)
    assert total == 3
    assert len(rows) == 1


def test_get_movement_not_found(db_session):
    with pytest.raises(NotFoundError):
        movements.get_movement(db_session, "missing")

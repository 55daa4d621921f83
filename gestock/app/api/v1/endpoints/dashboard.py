from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from gestock.app.api.deps import get_db
from gestock.app.api.responses import ok
from gestock.app.core.config import get_settings
from gestock.app.schemas.movement import MovementRead
from gestock.app.schemas.order import OrderRead
from gestock.services import dashboard

router = APIRouter(prefix="/dashboard")


@router.get("/stats")
def stats(db: Session = Depends(get_db)):
    return ok(dashboard.stats(db))


@router.get("/recent-movements")
def recent_movements(limit: int = Query(10, ge=1, le=100), db: Session = Depends(get_db)):
    return ok([MovementRead.model_validate(m) for m in dashboard.recent_movements(db, limit)])


@router.get("/pending-orders")
def pending_orders(limit: int = Query(10, ge=1, le=100), db: Session = Depends(get_db)):
    return ok([OrderRead.model_validate(o) for o in dashboard.pending_orders(db, limit)])


@router.get("/low-stock-alerts")
def low_stock_alerts(threshold: int | None = Query(None, ge=0), db: Session = Depends(get_db)):
    if threshold is None:
        threshold = get_settings().LOW_STOCK_THRESHOLD
    return ok(dashboard.low_stock_alerts(db, threshold))


@router.get("/top-products")
def top_products(limit: int = Query(10, ge=1, le=100), db: Session = Depends(get_db)):
    return ok(dashboard.top_products(db, limit))


@router.get("/movements-by-day")
def movements_by_day(days: int = Query(14, ge=1, le=366), db: Session = Depends(get_db)):
    return ok(dashboard.movements_by_day(db, days))


@router.get("/stock-by-site")
def stock_by_site(db: Session = Depends(get_db)):
    return ok(dashboard.stock_by_site(db))


@router.get("/orders-by-month")
def orders_by_month(months: int = Query(6, ge=1, le=36), db: Session = Depends(get_db)):
    return ok(dashboard.orders_by_month(db, months))

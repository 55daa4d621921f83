from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from gestock.app.api.deps import get_db
from gestock.app.api.responses import ok
from gestock.app.db.models.core_types import Condition
from gestock.app.db.models.models_v1 import Stock
from gestock.app.schemas.stock_level import AvailableStockRead, StockWithProduct
from gestock.services import catalog
from gestock.services.inventory import available_stock

router = APIRouter(prefix="/stocks")


# READ ONLY : les quantités ne bougent que par /movements
@router.get("")
def list_stocks(
    product_id: str | None = Query(None, alias="productId"),
    site_id: str | None = Query(None, alias="siteId"),
    db: Session = Depends(get_db),
):
    stmt = select(Stock).options(selectinload(Stock.product), selectinload(Stock.site))
    if product_id:
        stmt = stmt.where(Stock.product_id == product_id)
    if site_id:
        stmt = stmt.where(Stock.site_id == site_id)
    rows = db.execute(stmt.order_by(Stock.product_id, Stock.site_id)).scalars().all()
    return ok([StockWithProduct.model_validate(s) for s in rows])


@router.get("/available")
def get_available_stock(
    product_id: str = Query(..., alias="productId"),
    site_id: str | None = Query(None, alias="siteId"),
    condition: Condition | None = Query(None),
    db: Session = Depends(get_db),
):
    catalog.get_product(db, product_id)
    rows = available_stock(db, product_id, site_id=site_id, condition=condition)
    return ok([AvailableStockRead.model_validate(r) for r in rows])

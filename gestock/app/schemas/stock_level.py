from __future__ import annotations

from gestock.app.db.models.core_types import Condition, SiteType
from gestock.app.schemas.common import CamelModel
from gestock.app.schemas.product import ProductBrief, StockRead


class StockWithProduct(StockRead):
    # READ ONLY : écrit uniquement par le ledger
    product: ProductBrief


class AvailableStockRead(CamelModel):
    site_id: str
    site_name: str
    site_type: SiteType
    condition: Condition
    quantity: int

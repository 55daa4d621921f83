from __future__ import annotations

from datetime import datetime

from pydantic import Field

from gestock.app.db.models.core_types import Condition, MovementType
from gestock.app.schemas.common import CamelModel
from gestock.app.schemas.product import ProductBrief
from gestock.app.schemas.site import SiteRead


class MovementCreate(CamelModel):
    product_id: str
    type: MovementType
    source_site_id: str | None = None
    target_site_id: str | None = None
    quantity: int = Field(gt=0)
    condition: Condition = Condition.NEW
    movement_date: datetime | None = None
    operator: str | None = Field(default=None, max_length=200)
    comment: str | None = None


class MovementRead(CamelModel):
    id: str
    product_id: str
    product: ProductBrief
    type: MovementType
    source_site_id: str | None = None
    source_site: SiteRead | None = None
    target_site_id: str | None = None
    target_site: SiteRead | None = None
    quantity: int
    condition: Condition
    movement_date: datetime
    operator: str | None = None
    comment: str | None = None
    order_id: str | None = None
    created_at: datetime

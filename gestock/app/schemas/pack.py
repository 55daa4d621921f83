from __future__ import annotations

from datetime import datetime

from pydantic import Field

from gestock.app.db.models.core_types import Condition, PackType
from gestock.app.schemas.common import CamelModel
from gestock.app.schemas.product import ProductBrief


class PackItemIn(CamelModel):
    product_id: str
    quantity: int = Field(gt=0)


class PackCreate(CamelModel):
    name: str = Field(min_length=1, max_length=200)
    type: PackType
    description: str | None = None
    items: list[PackItemIn] = Field(min_length=1)


class PackUpdate(CamelModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    type: PackType | None = None
    description: str | None = None
    # remplacées en bloc si fournies
    items: list[PackItemIn] | None = Field(default=None, min_length=1)


class PackExecute(CamelModel):
    type: PackType | None = None
    quantity_multiplier: int = Field(default=1, ge=1)
    site_id: str
    condition: Condition = Condition.NEW
    movement_date: datetime | None = None
    operator: str | None = Field(default=None, max_length=200)
    comment: str | None = None


class PackItemRead(CamelModel):
    id: str
    product_id: str
    product: ProductBrief
    quantity: int


class PackRead(CamelModel):
    id: str
    name: str
    type: PackType
    description: str | None = None
    items: list[PackItemRead] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from gestock.app.db.models.core_types import Condition, OrderStatus
from gestock.app.schemas.common import CamelModel
from gestock.app.schemas.product import ProductBrief
from gestock.app.schemas.site import SiteRead
from gestock.app.schemas.supplier import SupplierRead


class OrderCreate(CamelModel):
    product_id: str
    supplier_id: str
    quantity: int = Field(gt=0)
    order_date: datetime | None = None
    expected_date: datetime | None = None
    destination_site_id: str | None = None
    responsible: str | None = Field(default=None, max_length=200)
    supplier_ref: str | None = Field(default=None, max_length=128)
    comment: str | None = None


class OrderUpdate(CamelModel):
    supplier_id: str | None = None
    quantity: int | None = Field(default=None, gt=0)
    order_date: datetime | None = None
    expected_date: datetime | None = None
    destination_site_id: str | None = None
    responsible: str | None = Field(default=None, max_length=200)
    supplier_ref: str | None = Field(default=None, max_length=128)
    comment: str | None = None


class ReceiveOrderInput(CamelModel):
    received_qty: int = Field(gt=0)
    condition: Condition = Condition.NEW
    received_date: datetime | None = None
    destination_site_id: str | None = None
    operator: str | None = Field(default=None, max_length=200)
    comment: str | None = None


class OrderRead(CamelModel):
    id: str
    product_id: str
    product: ProductBrief
    supplier_id: str
    supplier: SupplierRead
    quantity: int
    status: OrderStatus
    order_date: datetime
    expected_date: datetime | None = None
    received_date: datetime | None = None
    received_qty: int | None = None
    destination_site_id: str | None = None
    destination_site: SiteRead | None = None
    responsible: str | None = None
    supplier_ref: str | None = None
    comment: str | None = None
    created_at: datetime
    updated_at: datetime


class ReceiptRead(OrderRead):
    movement_id: str
    quantity_delta: int

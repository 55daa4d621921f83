from __future__ import annotations

from datetime import datetime

from pydantic import Field

from gestock.app.db.models.core_types import SupplyRisk
from gestock.app.schemas.common import CamelModel
from gestock.app.schemas.site import SiteRead
from gestock.app.schemas.supplier import SupplierRead
from gestock.app.schemas.taxonomy import AssemblyRead, GroupRead


class ProductCreate(CamelModel):
    reference: str = Field(min_length=1, max_length=50)
    description: str | None = None
    qty_per_unit: int = Field(default=1, ge=1)
    supply_risk: SupplyRisk | None = None
    location: str | None = Field(default=None, max_length=200)
    group_id: str | None = None
    assembly_id: str | None = None
    comment: str | None = None
    image_url: str | None = Field(default=None, max_length=1000)


class ProductUpdate(CamelModel):
    # renvoyée telle quelle par le formulaire ; immuable après création
    reference: str | None = Field(default=None, max_length=50)
    description: str | None = None
    qty_per_unit: int | None = Field(default=None, ge=1)
    supply_risk: SupplyRisk | None = None
    location: str | None = Field(default=None, max_length=200)
    group_id: str | None = None
    assembly_id: str | None = None
    comment: str | None = None
    image_url: str | None = Field(default=None, max_length=1000)


class ProductSupplierLink(CamelModel):
    supplier_id: str
    supplier_ref: str | None = Field(default=None, max_length=128)
    unit_price: float | None = Field(default=None, ge=0)
    lead_time: str | None = Field(default=None, max_length=100)
    product_url: str | None = Field(default=None, max_length=1000)
    shipping_cost: float | None = Field(default=None, ge=0)
    is_primary: bool = False


class ProductSupplierUpdate(CamelModel):
    supplier_ref: str | None = Field(default=None, max_length=128)
    unit_price: float | None = Field(default=None, ge=0)
    lead_time: str | None = Field(default=None, max_length=100)
    product_url: str | None = Field(default=None, max_length=1000)
    shipping_cost: float | None = Field(default=None, ge=0)
    is_primary: bool | None = None


class ProductSupplierRead(CamelModel):
    id: str
    product_id: str
    supplier_id: str
    supplier: SupplierRead
    supplier_ref: str | None = None
    unit_price: float | None = None
    lead_time: str | None = None
    product_url: str | None = None
    shipping_cost: float | None = None
    is_primary: bool
    price_updated_at: datetime | None = None


class StockRead(CamelModel):
    id: str
    product_id: str
    site_id: str
    site: SiteRead
    quantity_new: int
    quantity_used: int
    updated_at: datetime


class ProductBrief(CamelModel):
    id: str
    reference: str
    description: str | None = None
    qty_per_unit: int


class ProductRead(ProductBrief):
    supply_risk: SupplyRisk | None = None
    location: str | None = None
    group_id: str | None = None
    group: GroupRead | None = None
    assembly_id: str | None = None
    assembly: AssemblyRead | None = None
    assembly_qty_used: int = 1
    comment: str | None = None
    image_url: str | None = None
    created_at: datetime
    updated_at: datetime
    product_suppliers: list[ProductSupplierRead] = Field(default_factory=list)
    stocks: list[StockRead] = Field(default_factory=list)

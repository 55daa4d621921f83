from __future__ import annotations

from datetime import datetime

from pydantic import Field

from gestock.app.schemas.common import CamelModel


class SupplierCreate(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    contact: str | None = Field(default=None, max_length=255)
    email: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=64)
    website: str | None = Field(default=None, max_length=500)
    address: str | None = Field(default=None, max_length=500)
    postal_code: str | None = Field(default=None, max_length=20)
    city: str | None = Field(default=None, max_length=128)
    country: str | None = Field(default=None, max_length=128)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    comment: str | None = None


class SupplierUpdate(SupplierCreate):
    name: str | None = Field(default=None, min_length=1, max_length=255)


class SupplierCounts(CamelModel):
    product_suppliers: int = 0
    orders: int = 0


class SupplierRead(CamelModel):
    id: str
    name: str
    contact: str | None = None
    email: str | None = None
    phone: str | None = None
    website: str | None = None
    address: str | None = None
    postal_code: str | None = None
    city: str | None = None
    country: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    comment: str | None = None
    created_at: datetime
    counts: SupplierCounts | None = Field(default=None, alias="_count")

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from gestock.app.db.models.core_types import SiteType
from gestock.app.schemas.common import CamelModel


class SiteCreate(CamelModel):
    name: str = Field(min_length=1, max_length=200)
    type: SiteType = SiteType.STORAGE
    address: str | None = Field(default=None, max_length=500)
    is_active: bool = True


class SiteUpdate(CamelModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    type: SiteType | None = None
    address: str | None = Field(default=None, max_length=500)
    is_active: bool | None = None


class SiteCounts(CamelModel):
    stocks: int = 0


class SiteRead(CamelModel):
    id: str
    name: str
    type: SiteType
    address: str | None = None
    is_active: bool
    created_at: datetime
    counts: SiteCounts | None = Field(default=None, alias="_count")

from __future__ import annotations

from typing import Any

from pydantic import Field

from gestock.app.schemas.common import CamelModel


class SheetPreview(CamelModel):
    headers: list[str]
    row_count: int
    sample_rows: list[dict[str, Any]] = Field(default_factory=list)


class ImportPreview(CamelModel):
    sheets: dict[str, SheetPreview]


class EntityImportResult(CamelModel):
    created: int = 0
    updated: int = 0
    errors: list[str] = Field(default_factory=list)

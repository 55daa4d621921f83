from __future__ import annotations

from datetime import datetime

from pydantic import Field

from gestock.app.schemas.common import CamelModel


class TaxonomyCreate(CamelModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None


class TaxonomyUpdate(CamelModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None


class AssemblyCreate(TaxonomyCreate):
    assembly_type_ids: list[str] = Field(default_factory=list)


class AssemblyUpdate(TaxonomyUpdate):
    assembly_type_ids: list[str] | None = None


class AssemblyProductLink(CamelModel):
    product_id: str
    quantity_used: int = Field(default=1, ge=1)


class AssemblyProductUpdate(CamelModel):
    quantity_used: int = Field(ge=1)


class AssemblyProductRead(CamelModel):
    id: str
    reference: str
    description: str | None = None
    qty_per_unit: int
    quantity_used: int

    @classmethod
    def from_product(cls, product) -> "AssemblyProductRead":
        return cls(
            id=product.id,
            reference=product.reference,
            description=product.description,
            qty_per_unit=product.qty_per_unit,
            quantity_used=product.assembly_qty_used,
        )


class GroupRead(CamelModel):
    id: str
    name: str
    description: str | None = None
    created_at: datetime


class AssemblyTypeRead(GroupRead):
    pass


class AssemblyRead(GroupRead):
    assembly_types: list[AssemblyTypeRead] = Field(default_factory=list)

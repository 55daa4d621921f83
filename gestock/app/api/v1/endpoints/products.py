from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from gestock.app.api.deps import PageParams, get_db
from gestock.app.api.responses import invalidates, ok, paginated
from gestock.app.db.models.core_types import SupplyRisk
from gestock.app.db.session import transaction
from gestock.app.schemas.product import (
    ProductCreate,
    ProductRead,
    ProductSupplierLink,
    ProductSupplierRead,
    ProductSupplierUpdate,
    ProductUpdate,
)
from gestock.services import catalog

router = APIRouter(prefix="/products")


@router.get("")
def list_products(
    search: str | None = Query(None),
    group_id: str | None = Query(None, alias="groupId"),
    assembly_id: str | None = Query(None, alias="assemblyId"),
    supply_risk: SupplyRisk | None = Query(None, alias="supplyRisk"),
    paging: PageParams = Depends(),
    db: Session = Depends(get_db),
):
    rows, total = catalog.list_products(
        db,
        search=search,
        group_id=group_id,
        assembly_id=assembly_id,
        supply_risk=supply_risk,
        page=paging.page,
        limit=paging.limit,
    )
    return paginated([ProductRead.model_validate(p) for p in rows], paging.page, paging.limit, total)


@router.get("/{product_id}")
def get_product(product_id: str, db: Session = Depends(get_db)):
    return ok(ProductRead.model_validate(catalog.get_product(db, product_id)))


@router.post("", status_code=201)
def create_product(payload: ProductCreate, response: Response, db: Session = Depends(get_db)):
    with transaction(db):
        product = catalog.create_product(db, payload)
    invalidates(response, "product.write")
    return ok(ProductRead.model_validate(catalog.get_product(db, product.id)), "Produit créé")


@router.put("/{product_id}")
def update_product(product_id: str, payload: ProductUpdate, response: Response, db: Session = Depends(get_db)):
    with transaction(db):
        catalog.update_product(db, product_id, payload)
    invalidates(response, "product.write")
    return ok(ProductRead.model_validate(catalog.get_product(db, product_id)), "Produit mis à jour")


@router.delete("/{product_id}")
def delete_product(product_id: str, response: Response, db: Session = Depends(get_db)):
    with transaction(db):
        catalog.delete_product(db, product_id)
    invalidates(response, "product.write")
    return ok(None, "Produit supprimé")


# ---------- Fournisseurs du produit ----------
@router.post("/{product_id}/suppliers", status_code=201)
def link_supplier(
    product_id: str, payload: ProductSupplierLink, response: Response, db: Session = Depends(get_db)
):
    with transaction(db):
        link = catalog.link_supplier(db, product_id, payload)
    invalidates(response, "product_supplier.write")
    return ok(ProductSupplierRead.model_validate(link), "Fournisseur associé")


@router.put("/{product_id}/suppliers/{supplier_id}")
def update_product_supplier(
    product_id: str,
    supplier_id: str,
    payload: ProductSupplierUpdate,
    response: Response,
    db: Session = Depends(get_db),
):
    with transaction(db):
        link = catalog.update_product_supplier(db, product_id, supplier_id, payload)
    invalidates(response, "product_supplier.write")
    return ok(ProductSupplierRead.model_validate(link), "Fournisseur mis à jour")


@router.put("/{product_id}/suppliers/{supplier_id}/primary")
def set_primary_supplier(product_id: str, supplier_id: str, response: Response, db: Session = Depends(get_db)):
    with transaction(db):
        link = catalog.set_primary_supplier(db, product_id, supplier_id)
    invalidates(response, "product_supplier.write")
    return ok(ProductSupplierRead.model_validate(link), "Fournisseur principal défini")


@router.delete("/{product_id}/suppliers/{supplier_id}")
def unlink_supplier(product_id: str, supplier_id: str, response: Response, db: Session = Depends(get_db)):
    with transaction(db):
        catalog.unlink_supplier(db, product_id, supplier_id)
    invalidates(response, "product_supplier.write")
    return ok(None, "Fournisseur dissocié")

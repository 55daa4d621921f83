"""Assembly types, assemblies and product groups: same CRUD shape, three routers."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from gestock.app.api.deps import PageParams, get_db
from gestock.app.api.responses import invalidates, ok, paginated
from gestock.app.db.models.models_v1 import Assembly, AssemblyType, ProductGroup
from gestock.app.db.session import transaction
from gestock.app.schemas.taxonomy import (
    AssemblyCreate,
    AssemblyProductLink,
    AssemblyProductRead,
    AssemblyProductUpdate,
    AssemblyRead,
    AssemblyTypeRead,
    AssemblyUpdate,
    GroupRead,
    TaxonomyCreate,
    TaxonomyUpdate,
)
from gestock.services import catalog

router = APIRouter()


# ---------- Types d'assemblage ----------
@router.get("/assembly-types")
def list_assembly_types(paging: PageParams = Depends(), db: Session = Depends(get_db)):
    rows, total = catalog.list_taxonomy(db, AssemblyType, page=paging.page, limit=paging.limit)
    return paginated([AssemblyTypeRead.model_validate(t) for t in rows], paging.page, paging.limit, total)


@router.get("/assembly-types/{item_id}")
def get_assembly_type(item_id: str, db: Session = Depends(get_db)):
    return ok(AssemblyTypeRead.model_validate(catalog.get_taxonomy(db, AssemblyType, item_id)))


@router.post("/assembly-types", status_code=201)
def create_assembly_type(payload: TaxonomyCreate, response: Response, db: Session = Depends(get_db)):
    with transaction(db):
        item = catalog.create_taxonomy(db, AssemblyType, payload)
    invalidates(response, "taxonomy.write")
    return ok(AssemblyTypeRead.model_validate(item), "Type d'assemblage créé")


@router.put("/assembly-types/{item_id}")
def update_assembly_type(item_id: str, payload: TaxonomyUpdate, response: Response, db: Session = Depends(get_db)):
    with transaction(db):
        item = catalog.update_taxonomy(db, AssemblyType, item_id, payload)
    invalidates(response, "taxonomy.write")
    return ok(AssemblyTypeRead.model_validate(item), "Type d'assemblage mis à jour")


@router.delete("/assembly-types/{item_id}")
def delete_assembly_type(item_id: str, response: Response, db: Session = Depends(get_db)):
    with transaction(db):
        detached = catalog.delete_taxonomy(db, AssemblyType, item_id)
    invalidates(response, "taxonomy.write")
    return ok({"detached": detached}, f"Type d'assemblage supprimé ({detached} assemblage(s) détaché(s))")


# ---------- Assemblages ----------
@router.get("/assemblies")
def list_assemblies(paging: PageParams = Depends(), db: Session = Depends(get_db)):
    rows, total = catalog.list_taxonomy(db, Assembly, page=paging.page, limit=paging.limit)
    return paginated([AssemblyRead.model_validate(a) for a in rows], paging.page, paging.limit, total)


@router.get("/assemblies/{item_id}")
def get_assembly(item_id: str, db: Session = Depends(get_db)):
    assembly = catalog.get_taxonomy(db, Assembly, item_id)
    products = catalog.assembly_products(db, item_id)
    data = AssemblyRead.model_validate(assembly).dump()
    data["products"] = [AssemblyProductRead.from_product(p).dump() for p in products]
    return ok(data)


@router.post("/assemblies", status_code=201)
def create_assembly(payload: AssemblyCreate, response: Response, db: Session = Depends(get_db)):
    with transaction(db):
        item = catalog.create_taxonomy(db, Assembly, payload)
    invalidates(response, "taxonomy.write")
    return ok(AssemblyRead.model_validate(item), "Assemblage créé")


@router.put("/assemblies/{item_id}")
def update_assembly(item_id: str, payload: AssemblyUpdate, response: Response, db: Session = Depends(get_db)):
    with transaction(db):
        item = catalog.update_taxonomy(db, Assembly, item_id, payload)
    invalidates(response, "taxonomy.write")
    return ok(AssemblyRead.model_validate(item), "Assemblage mis à jour")


@router.delete("/assemblies/{item_id}")
def delete_assembly(item_id: str, response: Response, db: Session = Depends(get_db)):
    with transaction(db):
        detached = catalog.delete_taxonomy(db, Assembly, item_id)
    invalidates(response, "taxonomy.write")
    return ok({"detached": detached}, f"Assemblage supprimé ({detached} produit(s) détaché(s))")


@router.post("/assemblies/{item_id}/products", status_code=201)
def add_assembly_product(
    item_id: str, payload: AssemblyProductLink, response: Response, db: Session = Depends(get_db)
):
    with transaction(db):
        product = catalog.add_product_to_assembly(db, item_id, payload.product_id, payload.quantity_used)
    invalidates(response, "taxonomy.write")
    return ok(AssemblyProductRead.from_product(product), "Produit ajouté à l'assemblage")


@router.put("/assemblies/{item_id}/products/{product_id}")
def update_assembly_product(
    item_id: str, product_id: str, payload: AssemblyProductUpdate, response: Response, db: Session = Depends(get_db)
):
    with transaction(db):
        product = catalog.update_assembly_product(db, item_id, product_id, payload.quantity_used)
    invalidates(response, "taxonomy.write")
    return ok(AssemblyProductRead.from_product(product), "Quantité mise à jour")


@router.delete("/assemblies/{item_id}/products/{product_id}")
def remove_assembly_product(item_id: str, product_id: str, response: Response, db: Session = Depends(get_db)):
    with transaction(db):
        catalog.remove_product_from_assembly(db, item_id, product_id)
    invalidates(response, "taxonomy.write")
    return ok(None, "Produit retiré de l'assemblage")


# ---------- Groupes ----------
@router.get("/groups")
def list_groups(paging: PageParams = Depends(), db: Session = Depends(get_db)):
    rows, total = catalog.list_taxonomy(db, ProductGroup, page=paging.page, limit=paging.limit)
    return paginated([GroupRead.model_validate(g) for g in rows], paging.page, paging.limit, total)


@router.get("/groups/{item_id}")
def get_group(item_id: str, db: Session = Depends(get_db)):
    return ok(GroupRead.model_validate(catalog.get_taxonomy(db, ProductGroup, item_id)))


@router.post("/groups", status_code=201)
def create_group(payload: TaxonomyCreate, response: Response, db: Session = Depends(get_db)):
    with transaction(db):
        item = catalog.create_taxonomy(db, ProductGroup, payload)
    invalidates(response, "taxonomy.write")
    return ok(GroupRead.model_validate(item), "Groupe créé")


@router.put("/groups/{item_id}")
def update_group(item_id: str, payload: TaxonomyUpdate, response: Response, db: Session = Depends(get_db)):
    with transaction(db):
        item = catalog.update_taxonomy(db, ProductGroup, item_id, payload)
    invalidates(response, "taxonomy.write")
    return ok(GroupRead.model_validate(item), "Groupe mis à jour")


@router.delete("/groups/{item_id}")
def delete_group(item_id: str, response: Response, db: Session = Depends(get_db)):
    with transaction(db):
        detached = catalog.delete_taxonomy(db, ProductGroup, item_id)
    invalidates(response, "taxonomy.write")
    return ok({"detached": detached}, f"Groupe supprimé ({detached} produit(s) détaché(s))")

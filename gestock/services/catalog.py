"""
Catalog service: sites, suppliers, products, product/supplier links and the
product taxonomy (groups, assembly types, assemblies).

Master data only. Stock quantities are never written here, except that
empty stock rows go away together with their site or product.
"""

from __future__ import annotations

from typing import TypeVar

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session, selectinload

from gestock.app.core.exceptions import (
    ConflictError,
    NotFoundError,
    ReferentialIntegrityError,
    ValidationError,
)
from gestock.app.core.logging import get_logger
from gestock.app.db.base import utcnow
from gestock.app.db.models.core_types import SiteType, SupplyRisk
from gestock.app.db.models.models_v1 import (
    Assembly,
    AssemblyType,
    Order,
    PackItem,
    Product,
    ProductGroup,
    ProductSupplier,
    Site,
    Stock,
    StockMovement,
    Supplier,
)
from gestock.app.schemas.product import (
    ProductCreate,
    ProductSupplierLink,
    ProductSupplierUpdate,
    ProductUpdate,
)
from gestock.app.schemas.site import SiteCreate, SiteUpdate
from gestock.app.schemas.supplier import SupplierCreate, SupplierUpdate
from gestock.app.schemas.taxonomy import AssemblyCreate, AssemblyUpdate, TaxonomyCreate, TaxonomyUpdate
from gestock.services.geocoding import AddressGeocoder, format_address, try_locate
from gestock.services.read_models import touch

logger = get_logger(__name__)

T = TypeVar("T")

ADDRESS_FIELDS = ("address", "postal_code", "city", "country")


def _count(db: Session, stmt) -> int:
    return db.scalar(select(func.count()).select_from(stmt.subquery())) or 0


def _page(db: Session, stmt, order_by, page: int, limit: int) -> tuple[list, int]:
    total = _count(db, stmt)
    rows = db.execute(stmt.order_by(*order_by).offset((page - 1) * limit).limit(limit)).scalars().all()
    return list(rows), total


def _blocking(references: dict[str, int]) -> dict[str, int]:
    return {name: count for name, count in references.items() if count}


# ---------- SITES ----------
def list_sites(
    db: Session, *, type: SiteType | None = None, is_active: bool | None = None
) -> list[Site]:
    stmt = select(Site)
    if type is not None:
        stmt = stmt.where(Site.type == type)
    if is_active is not None:
        stmt = stmt.where(Site.is_active == is_active)
    return list(db.execute(stmt.order_by(Site.type, Site.name)).scalars().all())


def site_stock_counts(db: Session, site_ids: list[str]) -> dict[str, int]:
    if not site_ids:
        return {}
    rows = db.execute(
        select(Stock.site_id, func.count(Stock.id))
        .where(Stock.site_id.in_(site_ids))
        .where((Stock.quantity_new > 0) | (Stock.quantity_used > 0))
        .group_by(Stock.site_id)
    ).all()
    return {site_id: count for site_id, count in rows}


def get_site(db: Session, site_id: str) -> Site:
    site = db.get(Site, site_id)
    if not site:
        raise NotFoundError("Site", site_id)
    return site


def _check_site_key(db: Session, name: str, type: SiteType, exclude_id: str | None = None) -> None:
    stmt = select(Site.id).where(Site.name == name, Site.type == type)
    if exclude_id:
        stmt = stmt.where(Site.id != exclude_id)
    if db.execute(stmt).first():
        raise ConflictError(f"Site already exists: {name} ({SiteType(type).value})", field="name")


def create_site(db: Session, data: SiteCreate) -> Site:
    _check_site_key(db, data.name, data.type)
    site = Site(name=data.name, type=data.type, address=data.address, is_active=data.is_active)
    db.add(site)
    db.flush()
    touch(db, "site.write")
    return site


def update_site(db: Session, site_id: str, data: SiteUpdate) -> Site:
    site = get_site(db, site_id)
    changes = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None or k == "address"}
    name = changes.get("name", site.name)
    type_ = changes.get("type", site.type)
    if name != site.name or type_ != site.type:
        _check_site_key(db, name, type_, exclude_id=site.id)
    if type_ != site.type and type_ == SiteType.EXIT and site_stock_counts(db, [site.id]):
        raise ValidationError("A site holding stock cannot become an exit site", field="type")

    for field, value in changes.items():
        setattr(site, field, value)
    db.flush()
    touch(db, "site.write")
    return site


def delete_site(db: Session, site_id: str) -> None:
    site = get_site(db, site_id)
    references = _blocking(
        {
            "stocks": site_stock_counts(db, [site.id]).get(site.id, 0),
            "movements": _count(
                db,
                select(StockMovement.id).where(
                    or_(StockMovement.source_site_id == site.id, StockMovement.target_site_id == site.id)
                ),
            ),
            "orders": _count(db, select(Order.id).where(Order.destination_site_id == site.id)),
        }
    )
    if references:
        raise ReferentialIntegrityError("Site", site.id, references)

    # lignes de stock à zéro
    for stock in db.execute(select(Stock).where(Stock.site_id == site.id)).scalars():
        db.delete(stock)
    db.delete(site)
    db.flush()
    touch(db, "site.write")
    logger.info("site_deleted", site_id=site_id)


# ---------- SUPPLIERS ----------
def list_suppliers(
    db: Session, *, search: str | None = None, page: int = 1, limit: int = 50
) -> tuple[list[Supplier], int]:
    stmt = select(Supplier)
    if search:
        like = f"%{search.strip()}%"
        stmt = stmt.where(
            or_(
                Supplier.name.ilike(like),
                Supplier.contact.ilike(like),
                Supplier.email.ilike(like),
                Supplier.city.ilike(like),
            )
        )
    return _page(db, stmt, (Supplier.name,), page, limit)


def supplier_counts(db: Session, supplier_ids: list[str]) -> dict[str, dict[str, int]]:
    counts = {sid: {"product_suppliers": 0, "orders": 0} for sid in supplier_ids}
    if not supplier_ids:
        return counts
    for sid, n in db.execute(
        select(ProductSupplier.supplier_id, func.count(ProductSupplier.id))
        .where(ProductSupplier.supplier_id.in_(supplier_ids))
        .group_by(ProductSupplier.supplier_id)
    ).all():
        counts[sid]["product_suppliers"] = n
    for sid, n in db.execute(
        select(Order.supplier_id, func.count(Order.id))
        .where(Order.supplier_id.in_(supplier_ids))
        .group_by(Order.supplier_id)
    ).all():
        counts[sid]["orders"] = n
    return counts


def get_supplier(db: Session, supplier_id: str) -> Supplier:
    supplier = db.get(Supplier, supplier_id)
    if not supplier:
        raise NotFoundError("Supplier", supplier_id)
    return supplier


def _check_supplier_name(db: Session, name: str, exclude_id: str | None = None) -> None:
    stmt = select(Supplier.id).where(Supplier.name == name)
    if exclude_id:
        stmt = stmt.where(Supplier.id != exclude_id)
    if db.execute(stmt).first():
        raise ConflictError(f"Supplier already exists: {name}", field="name")


def _geocode_into(supplier: Supplier, geocoder: AddressGeocoder | None) -> bool:
    if geocoder is None:
        return False
    address = format_address(supplier.address, supplier.postal_code, supplier.city, supplier.country)
    coords = try_locate(geocoder, address)
    if coords is None:
        return False
    supplier.latitude = coords.latitude
    supplier.longitude = coords.longitude
    return True


def create_supplier(
    db: Session, data: SupplierCreate, geocoder: AddressGeocoder | None = None
) -> Supplier:
    _check_supplier_name(db, data.name)
    supplier = Supplier(**data.model_dump())
    if supplier.latitude is None or supplier.longitude is None:
        _geocode_into(supplier, geocoder)
    db.add(supplier)
    db.flush()
    touch(db, "supplier.write")
    return supplier


def update_supplier(
    db: Session, supplier_id: str, data: SupplierUpdate, geocoder: AddressGeocoder | None = None
) -> Supplier:
    supplier = get_supplier(db, supplier_id)
    changes = data.model_dump(exclude_unset=True)
    if "name" in changes:
        if not changes["name"]:
            raise ValidationError("Supplier name cannot be empty", field="name")
        if changes["name"] != supplier.name:
            _check_supplier_name(db, changes["name"], exclude_id=supplier.id)

    address_changed = any(
        field in changes and changes[field] != getattr(supplier, field) for field in ADDRESS_FIELDS
    )
    coords_given = "latitude" in changes or "longitude" in changes

    for field, value in changes.items():
        setattr(supplier, field, value)
    if address_changed and not coords_given:
        if not _geocode_into(supplier, geocoder):
            # l'ancienne position ne correspond plus à l'adresse
            supplier.latitude = None
            supplier.longitude = None

    db.flush()
    touch(db, "supplier.write")
    return supplier


def needs_geocoding(supplier: Supplier) -> bool:
    if supplier.latitude is not None and supplier.longitude is not None:
        return False
    return format_address(supplier.address, supplier.postal_code, supplier.city, supplier.country) is not None


def geocode_supplier(db: Session, supplier_id: str, geocoder: AddressGeocoder) -> bool:
    supplier = get_supplier(db, supplier_id)
    found = _geocode_into(supplier, geocoder)
    if found:
        db.flush()
        touch(db, "supplier.write")
    return found


def delete_supplier(db: Session, supplier_id: str) -> int:
    """Delete a supplier and its product links; returns the number of links removed."""
    supplier = get_supplier(db, supplier_id)
    orders = _count(db, select(Order.id).where(Order.supplier_id == supplier.id))
    if orders:
        raise ReferentialIntegrityError("Supplier", supplier.id, {"orders": orders})

    links = len(supplier.product_suppliers)
    db.delete(supplier)
    db.flush()
    touch(db, "product_supplier.write" if links else "supplier.write")
    logger.info("supplier_deleted", supplier_id=supplier_id, links_removed=links)
    return links


# ---------- PRODUCTS ----------
def _product_query():
    # relit toujours les collections (stocks, liens) depuis la base
    return select(Product).execution_options(populate_existing=True).options(
        selectinload(Product.product_suppliers).selectinload(ProductSupplier.supplier),
        selectinload(Product.stocks).selectinload(Stock.site),
        selectinload(Product.group),
        selectinload(Product.assembly).selectinload(Assembly.assembly_types),
    )


def list_products(
    db: Session,
    *,
    search: str | None = None,
    group_id: str | None = None,
    assembly_id: str | None = None,
    supply_risk: SupplyRisk | None = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[Product], int]:
    stmt = _product_query()
    if search:
        like = f"%{search.strip()}%"
        stmt = stmt.where(or_(Product.reference.ilike(like), Product.description.ilike(like)))
    if group_id:
        stmt = stmt.where(Product.group_id == group_id)
    if assembly_id:
        stmt = stmt.where(Product.assembly_id == assembly_id)
    if supply_risk is not None:
        stmt = stmt.where(Product.supply_risk == supply_risk)
    return _page(db, stmt, (Product.reference,), page, limit)


def get_product(db: Session, product_id: str) -> Product:
    product = db.execute(_product_query().where(Product.id == product_id)).scalar_one_or_none()
    if not product:
        raise NotFoundError("Product", product_id)
    return product


def find_product_by_reference(db: Session, reference: str) -> Product | None:
    return db.execute(select(Product).where(Product.reference == reference)).scalar_one_or_none()


def _check_taxonomy_refs(db: Session, group_id: str | None, assembly_id: str | None) -> None:
    if group_id and not db.get(ProductGroup, group_id):
        raise ValidationError(f"Group not found: {group_id}", field="groupId")
    if assembly_id and not db.get(Assembly, assembly_id):
        raise ValidationError(f"Assembly not found: {assembly_id}", field="assemblyId")


def create_product(db: Session, data: ProductCreate) -> Product:
    reference = data.reference.strip()
    if not reference:
        raise ValidationError("Reference is required", field="reference")
    if find_product_by_reference(db, reference):
        raise ConflictError(f"Product reference already exists: {reference}", field="reference")
    _check_taxonomy_refs(db, data.group_id, data.assembly_id)

    product = Product(**data.model_dump(exclude={"reference"}), reference=reference)
    db.add(product)
    db.flush()
    touch(db, "product.write")
    return product


def update_product(db: Session, product_id: str, data: ProductUpdate) -> Product:
    product = get_product(db, product_id)
    changes = data.model_dump(exclude_unset=True)
    reference = changes.pop("reference", None)
    if reference is not None and reference.strip() != product.reference:
        raise ValidationError("Product reference cannot be changed", field="reference")
    if "qty_per_unit" in changes and (changes["qty_per_unit"] is None or changes["qty_per_unit"] < 1):
        raise ValidationError("qtyPerUnit must be at least 1", field="qtyPerUnit")
    _check_taxonomy_refs(db, changes.get("group_id"), changes.get("assembly_id"))

    for field, value in changes.items():
        setattr(product, field, value)
    product.updated_at = utcnow()
    db.flush()
    touch(db, "product.write")
    return product


def delete_product(db: Session, product_id: str) -> None:
    product = get_product(db, product_id)
    stock_total = db.scalar(
        select(func.coalesce(func.sum(Stock.quantity_new + Stock.quantity_used), 0)).where(
            Stock.product_id == product.id
        )
    )
    references = _blocking(
        {
            "stock": int(stock_total or 0),
            "movements": _count(db, select(StockMovement.id).where(StockMovement.product_id == product.id)),
            "orders": _count(db, select(Order.id).where(Order.product_id == product.id)),
            "packItems": _count(db, select(PackItem.id).where(PackItem.product_id == product.id)),
        }
    )
    if references:
        raise ReferentialIntegrityError("Product", product.id, references)

    for stock in list(product.stocks):
        db.delete(stock)
    db.delete(product)
    db.flush()
    touch(db, "product.write")
    logger.info("product_deleted", product_id=product_id)


# ---------- PRODUCT SUPPLIERS ----------
def _get_link(db: Session, product_id: str, supplier_id: str) -> ProductSupplier:
    link = db.execute(
        select(ProductSupplier).where(
            ProductSupplier.product_id == product_id, ProductSupplier.supplier_id == supplier_id
        )
    ).scalar_one_or_none()
    if not link:
        raise NotFoundError("ProductSupplier", f"{product_id}/{supplier_id}")
    return link


def _clear_primary(db: Session, product_id: str, keep_id: str | None = None) -> None:
    # verrou produit : sérialise les changements de fournisseur principal
    db.execute(select(Product.id).where(Product.id == product_id).with_for_update())
    stmt = (
        update(ProductSupplier)
        .where(ProductSupplier.product_id == product_id, ProductSupplier.is_primary.is_(True))
        .values(is_primary=False)
        .execution_options(synchronize_session="fetch")
    )
    if keep_id:
        stmt = stmt.where(ProductSupplier.id != keep_id)
    db.execute(stmt)
    db.flush()


def link_supplier(db: Session, product_id: str, data: ProductSupplierLink) -> ProductSupplier:
    product = get_product(db, product_id)
    supplier = get_supplier(db, data.supplier_id)
    exists = db.execute(
        select(ProductSupplier.id).where(
            ProductSupplier.product_id == product.id, ProductSupplier.supplier_id == data.supplier_id
        )
    ).first()
    if exists:
        raise ConflictError("Supplier already linked to this product", field="supplierId")

    fields = data.model_dump(exclude={"is_primary", "supplier_id"})
    link = ProductSupplier(product=product, supplier=supplier, is_primary=False, **fields)
    if data.unit_price is not None:
        link.price_updated_at = utcnow()
    db.add(link)
    db.flush()
    if data.is_primary:
        _clear_primary(db, product.id, keep_id=link.id)
        link.is_primary = True
        db.flush()
    touch(db, "product_supplier.write")
    return link


def update_product_supplier(
    db: Session, product_id: str, supplier_id: str, data: ProductSupplierUpdate
) -> ProductSupplier:
    link = _get_link(db, product_id, supplier_id)
    changes = data.model_dump(exclude_unset=True)
    is_primary = changes.pop("is_primary", None)

    if "unit_price" in changes:
        old = float(link.unit_price) if link.unit_price is not None else None
        if changes["unit_price"] != old:
            link.price_updated_at = utcnow()
    for field, value in changes.items():
        setattr(link, field, value)
    db.flush()

    if is_primary is True and not link.is_primary:
        _clear_primary(db, product_id, keep_id=link.id)
        link.is_primary = True
    elif is_primary is False:
        link.is_primary = False
    db.flush()
    touch(db, "product_supplier.write")
    return link


def set_primary_supplier(db: Session, product_id: str, supplier_id: str) -> ProductSupplier:
    """Make one link primary; every other link of the product loses the flag."""
    link = _get_link(db, product_id, supplier_id)
    _clear_primary(db, product_id, keep_id=link.id)
    link.is_primary = True
    db.flush()
    touch(db, "product_supplier.write")
    return link


def unlink_supplier(db: Session, product_id: str, supplier_id: str) -> None:
    link = _get_link(db, product_id, supplier_id)
    db.delete(link)
    db.flush()
    # sinon la collection déjà chargée garde le lien supprimé
    db.expire(db.get(Product, product_id), ["product_suppliers"])
    touch(db, "product_supplier.write")


def primary_link(product: Product) -> ProductSupplier | None:
    return next((ps for ps in product.product_suppliers if ps.is_primary), None)


# ---------- TAXONOMY ----------
def list_taxonomy(db: Session, model: type[T], *, page: int = 1, limit: int = 50) -> tuple[list[T], int]:
    stmt = select(model)
    if model is Assembly:
        stmt = stmt.options(selectinload(Assembly.assembly_types))
    return _page(db, stmt, (model.name,), page, limit)


def get_taxonomy(db: Session, model: type[T], item_id: str) -> T:
    item = db.get(model, item_id)
    if not item:
        raise NotFoundError(model.__name__, item_id)
    return item


def _check_taxonomy_name(db: Session, model, name: str, exclude_id: str | None = None) -> None:
    stmt = select(model.id).where(model.name == name)
    if exclude_id:
        stmt = stmt.where(model.id != exclude_id)
    if db.execute(stmt).first():
        raise ConflictError(f"{model.__name__} already exists: {name}", field="name")


def _assembly_types(db: Session, ids: list[str]) -> list[AssemblyType]:
    found = list(db.execute(select(AssemblyType).where(AssemblyType.id.in_(ids))).scalars().all())
    missing = set(ids) - {t.id for t in found}
    if missing:
        raise ValidationError(f"Assembly type not found: {sorted(missing)[0]}", field="assemblyTypeIds")
    return found


def create_taxonomy(db: Session, model: type[T], data: TaxonomyCreate) -> T:
    _check_taxonomy_name(db, model, data.name)
    item = model(name=data.name, description=data.description)
    if model is Assembly and isinstance(data, AssemblyCreate):
        item.assembly_types = _assembly_types(db, data.assembly_type_ids)
    db.add(item)
    db.flush()
    touch(db, "taxonomy.write")
    return item


def update_taxonomy(db: Session, model: type[T], item_id: str, data: TaxonomyUpdate) -> T:
    item = get_taxonomy(db, model, item_id)
    changes = data.model_dump(exclude_unset=True, exclude={"assembly_type_ids"})
    if changes.get("name") and changes["name"] != item.name:
        _check_taxonomy_name(db, model, changes["name"], exclude_id=item.id)
    for field, value in changes.items():
        if field == "name" and not value:
            continue
        setattr(item, field, value)
    if isinstance(data, AssemblyUpdate) and data.assembly_type_ids is not None:
        item.assembly_types = _assembly_types(db, data.assembly_type_ids)
    db.flush()
    touch(db, "taxonomy.write")
    return item


def delete_taxonomy(db: Session, model: type[T], item_id: str) -> int:
    """Delete a taxonomy node; returns how many products (or assemblies) were detached."""
    item = get_taxonomy(db, model, item_id)
    detached = 0
    if model is ProductGroup:
        detached = db.execute(
            update(Product).where(Product.group_id == item.id).values(group_id=None)
        ).rowcount
    elif model is Assembly:
        detached = db.execute(
            update(Product).where(Product.assembly_id == item.id).values(assembly_id=None)
        ).rowcount
    elif model is AssemblyType:
        detached = len(item.assemblies)
        item.assemblies.clear()
    db.delete(item)
    db.flush()
    touch(db, "taxonomy.write")
    return detached or 0


def add_product_to_assembly(db: Session, assembly_id: str, product_id: str, quantity_used: int = 1) -> Product:
    assembly = get_taxonomy(db, Assembly, assembly_id)
    product = get_product(db, product_id)
    if quantity_used < 1:
        raise ValidationError("quantityUsed must be at least 1", field="quantityUsed")
    product.assembly_id = assembly.id
    product.assembly_qty_used = quantity_used
    product.updated_at = utcnow()
    db.flush()
    touch(db, "taxonomy.write")
    return product


def remove_product_from_assembly(db: Session, assembly_id: str, product_id: str) -> Product:
    product = get_product(db, product_id)
    if product.assembly_id != assembly_id:
        raise NotFoundError("AssemblyProduct", f"{assembly_id}/{product_id}")
    product.assembly_id = None
    product.assembly_qty_used = 1
    product.updated_at = utcnow()
    db.flush()
    touch(db, "taxonomy.write")
    return product


def update_assembly_product(db: Session, assembly_id: str, product_id: str, quantity_used: int) -> Product:
    product = get_product(db, product_id)
    if product.assembly_id != assembly_id:
        raise NotFoundError("AssemblyProduct", f"{assembly_id}/{product_id}")
    if quantity_used < 1:
        raise ValidationError("quantityUsed must be at least 1", field="quantityUsed")
    product.assembly_qty_used = quantity_used
    product.updated_at = utcnow()
    db.flush()
    touch(db, "taxonomy.write")
    return product


def assembly_products(db: Session, assembly_id: str) -> list[Product]:
    get_taxonomy(db, Assembly, assembly_id)
    return list(
        db.execute(select(Product).where(Product.assembly_id == assembly_id).order_by(Product.reference))
        .scalars()
        .all()
    )

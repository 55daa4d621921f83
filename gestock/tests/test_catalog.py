import pytest
from sqlalchemy import select

from gestock.app.core.exceptions import (
    ConflictError,
    GeocodingError,
    NotFoundError,
    ReferentialIntegrityError,
    ValidationError,
)
from gestock.app.db.models.core_types import SiteType
from gestock.app.db.models.models_v1 import Assembly, AssemblyType, ProductGroup, ProductSupplier
from gestock.app.schemas.order import OrderCreate
from gestock.app.schemas.product import ProductCreate, ProductSupplierLink, ProductSupplierUpdate, ProductUpdate
from gestock.app.schemas.site import SiteCreate, SiteUpdate
from gestock.app.schemas.supplier import SupplierCreate, SupplierUpdate
from gestock.app.schemas.taxonomy import AssemblyCreate, TaxonomyCreate
from gestock.services import catalog, procurement
from gestock.services.geocoding import Coordinates


class FakeGeocoder:
    def __init__(self, coords=None, fail=False):
        self.coords = coords
        self.fail = fail
        self.calls = []

    def locate(self, address):
        self.calls.append(address)
        if self.fail:
            raise GeocodingError(address, "timeout")
        return self.coords


def _primaries(db, product):
    return db.execute(
        select(ProductSupplier.supplier_id).where(
            ProductSupplier.product_id == product.id, ProductSupplier.is_primary.is_(True)
        )
    ).scalars().all()


# ---------- Sites ----------
def test_site_natural_key_is_name_and_type(db_session, site_a):
    with pytest.raises(ConflictError):
        catalog.create_site(db_session, SiteCreate(name="Entrepôt A", type=SiteType.STORAGE))
    # même nom, autre type : autorisé
    catalog.create_site(db_session, SiteCreate(name="Entrepôt A", type=SiteType.EXIT))


def test_site_with_stock_cannot_be_deleted_or_become_exit(db_session, product, site_a, move):
    move(product, "IN", 1, target=site_a)

    with pytest.raises(ReferentialIntegrityError) as exc:
        catalog.delete_site(db_session, site_a.id)
    assert exc.value.details["references"]["stocks"] == 1

    with pytest.raises(ValidationError):
        catalog.update_site(db_session, site_a.id, SiteUpdate(type=SiteType.EXIT))


def test_unused_site_is_deleted(db_session, site_b):
    catalog.delete_site(db_session, site_b.id)
    with pytest.raises(NotFoundError):
        catalog.get_site(db_session, site_b.id)


# ---------- Suppliers ----------
def test_supplier_is_geocoded_on_create(db_session):
    geocoder = FakeGeocoder(Coordinates(45.76, 4.84))
    supplier = catalog.create_supplier(
        db_session, SupplierCreate(name="Lyon Pièces", address="1 rue de la République", city="Lyon"), geocoder
    )
    assert (supplier.latitude, supplier.longitude) == (45.76, 4.84)
    assert geocoder.calls == ["1 rue de la République, Lyon"]


def test_geocoding_failure_never_blocks_save(db_session):
    supplier = catalog.create_supplier(
        db_session, SupplierCreate(name="Nulle Part", city="Atlantis"), FakeGeocoder(fail=True)
    )
    assert supplier.id
    assert supplier.latitude is None


def test_address_change_clears_stale_coordinates(db_session):
    supplier = catalog.create_supplier(
        db_session, SupplierCreate(name="Mobile", city="Paris", latitude=48.85, longitude=2.35)
    )
    catalog.update_supplier(db_session, supplier.id, SupplierUpdate(city="Brest"), FakeGeocoder(None))
    assert supplier.latitude is None and supplier.longitude is None


def test_supplier_delete_removes_links_but_not_orders(db_session, product, supplier):
    catalog.link_supplier(db_session, product.id, ProductSupplierLink(supplier_id=supplier.id, unit_price=1.5))
    assert catalog.delete_supplier(db_session, supplier.id) == 1

    other = catalog.create_supplier(db_session, SupplierCreate(name="Bolt & Co"))
    procurement.create_order(db_session, OrderCreate(product_id=product.id, supplier_id=other.id, quantity=1))
    with pytest.raises(ReferentialIntegrityError):
        catalog.delete_supplier(db_session, other.id)


# ---------- Products ----------
def test_product_reference_is_unique(db_session, product):
    with pytest.raises(ConflictError):
        catalog.create_product(db_session, ProductCreate(reference="P1"))


def test_product_with_history_cannot_be_deleted(db_session, product, site_a, move):
    move(product, "IN", 2, target=site_a)
    move(product, "OUT", 2, source=site_a)

    with pytest.raises(ReferentialIntegrityError) as exc:
        catalog.delete_product(db_session, product.id)
    assert exc.value.details["references"] == {"movements": 2}


def test_update_product_checks_taxonomy(db_session, product):
    with pytest.raises(ValidationError) as exc:
        catalog.update_product(db_session, product.id, ProductUpdate(group_id="ghost"))
    assert exc.value.field == "groupId"


def test_product_reference_cannot_change(db_session, product):
    # référence identique renvoyée par le formulaire : acceptée
    catalog.update_product(db_session, product.id, ProductUpdate(reference=" P1 ", description="Vis M8"))
    assert product.description == "Vis M8"

    with pytest.raises(ValidationError) as exc:
        catalog.update_product(db_session, product.id, ProductUpdate(reference="P9"))
    assert exc.value.field == "reference"
    assert product.reference == "P1"


# ---------- Product suppliers ----------
def test_single_primary_supplier(db_session, product, supplier):
    other = catalog.create_supplier(db_session, SupplierCreate(name="Bolt & Co"))

    catalog.link_supplier(db_session, product.id, ProductSupplierLink(supplier_id=supplier.id, is_primary=True))
    catalog.link_supplier(db_session, product.id, ProductSupplierLink(supplier_id=other.id, is_primary=True))
    assert _primaries(db_session, product) == [other.id]

    catalog.set_primary_supplier(db_session, product.id, supplier.id)
    assert _primaries(db_session, product) == [supplier.id]

    catalog.update_product_supplier(db_session, product.id, other.id, ProductSupplierUpdate(is_primary=True))
    assert _primaries(db_session, product) == [other.id]


def test_link_is_unique_per_pair(db_session, product, supplier):
    catalog.link_supplier(db_session, product.id, ProductSupplierLink(supplier_id=supplier.id))
    with pytest.raises(ConflictError):
        catalog.link_supplier(db_session, product.id, ProductSupplierLink(supplier_id=supplier.id))


def test_price_change_stamps_price_date(db_session, product, supplier):
    link = catalog.link_supplier(db_session, product.id, ProductSupplierLink(supplier_id=supplier.id))
    assert link.price_updated_at is None

    catalog.update_product_supplier(db_session, product.id, supplier.id, ProductSupplierUpdate(unit_price=3.2))
    assert link.price_updated_at is not None


def test_unlink(db_session, product, supplier):
    catalog.link_supplier(db_session, product.id, ProductSupplierLink(supplier_id=supplier.id))
    catalog.unlink_supplier(db_session, product.id, supplier.id)
    with pytest.raises(NotFoundError):
        catalog.unlink_supplier(db_session, product.id, supplier.id)


# ---------- Taxonomy ----------
def test_deleting_a_group_detaches_products(db_session):
    group = catalog.create_taxonomy(db_session, ProductGroup, TaxonomyCreate(name="Visserie"))
    product = catalog.create_product(db_session, ProductCreate(reference="V-1", group_id=group.id))

    assert catalog.delete_taxonomy(db_session, ProductGroup, group.id) == 1
    db_session.refresh(product)
    assert product.group_id is None


def test_assembly_membership(db_session, product):
    kind = catalog.create_taxonomy(db_session, AssemblyType, TaxonomyCreate(name="Châssis"))
    assembly = catalog.create_taxonomy(
        db_session, Assembly, AssemblyCreate(name="Cadre", assembly_type_ids=[kind.id])
    )
    assert [t.name for t in assembly.assembly_types] == ["Châssis"]

    catalog.add_product_to_assembly(db_session, assembly.id, product.id)
    assert [p.reference for p in catalog.assembly_products(db_session, assembly.id)] == ["P1"]

    catalog.remove_product_from_assembly(db_session, assembly.id, product.id)
    assert catalog.assembly_products(db_session, assembly.id) == []
    with pytest.raises(NotFoundError):
        catalog.remove_product_from_assembly(db_session, assembly.id, product.id)


def test_assembly_quantity_used(db_session, product):
    assembly = catalog.create_taxonomy(db_session, Assembly, AssemblyCreate(name="Cadre"))
    catalog.add_product_to_assembly(db_session, assembly.id, product.id, quantity_used=3)
    assert product.assembly_qty_used == 3

    catalog.update_assembly_product(db_session, assembly.id, product.id, 5)
    assert product.assembly_qty_used == 5
    with pytest.raises(ValidationError):
        catalog.update_assembly_product(db_session, assembly.id, product.id, 0)

    catalog.remove_product_from_assembly(db_session, assembly.id, product.id)
    assert product.assembly_qty_used == 1
    with pytest.raises(NotFoundError):
        catalog.update_assembly_product(db_session, assembly.id, product.id, 2)


def test_taxonomy_list_pages(db_session):
    for name in ("Boulons", "Ecrous", "Rondelles"):
        catalog.create_taxonomy(db_session, ProductGroup, TaxonomyCreate(name=name))

    rows, total = catalog.list_taxonomy(db_session, ProductGroup, page=2, limit=2)
    assert total == 3
    assert [g.name for g in rows] == ["Rondelles"]


def test_unknown_assembly_type(db_session):
    with pytest.raises(ValidationError):
        catalog.create_taxonomy(db_session, Assembly, AssemblyCreate(name="X", assembly_type_ids=["ghost"]))

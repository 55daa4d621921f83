"""
Import / export reconciliation.

Import
    .xlsx : une feuille par entité (noms FR ou EN, casse et accents ignorés)
    .csv  : une seule entité, choisie par l'appelant

    Entities are processed in dependency order so later sheets can reference
    rows created by earlier ones. Each row is upserted by natural key inside
    its own SAVEPOINT; a bad row is rolled back, reported as
    "<Feuille> ligne <n>: <message>" and the import moves on.

    Stock and order sheets never touch quantities directly: they go through
    the movement engine and the order lifecycle like any other write.

Export
    products, suppliers, sites, stocks, movements, orders -> xlsx or csv
    (csv: ';' separated, every cell quoted, UTF-8 with BOM, Excel friendly)
"""

from __future__ import annotations

import csv
import io
import unicodedata
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

import pandas as pd
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from gestock.app.core.config import get_settings
from gestock.app.core.exceptions import GestockError, RowImportError, ValidationError
from gestock.app.core.logging import get_logger
from gestock.app.db.base import as_utc
from gestock.app.db.models.core_types import (
    Condition,
    MovementType,
    OrderStatus,
    SiteType,
    SupplyRisk,
)
from gestock.app.db.models.models_v1 import (
    Assembly,
    Order,
    Product,
    ProductGroup,
    ProductSupplier,
    Site,
    Stock,
    StockMovement,
    Supplier,
)
from gestock.app.schemas.movement import MovementCreate
from gestock.app.schemas.order import OrderCreate, OrderUpdate, ReceiveOrderInput
from gestock.app.schemas.product import (
    ProductCreate,
    ProductSupplierLink,
    ProductSupplierUpdate,
    ProductUpdate,
)
from gestock.app.schemas.site import SiteCreate, SiteUpdate
from gestock.app.schemas.supplier import SupplierCreate, SupplierUpdate
from gestock.services import catalog, procurement
from gestock.services.inventory import quantity_for
from gestock.services.movements import create_movement
from gestock.services.read_models import touch

logger = get_logger(__name__)

ENTITY_ORDER = ("sites", "suppliers", "products", "productSuppliers", "stocks", "movements", "orders")

CREATED = "created"
UPDATED = "updated"


# ---------- Normalisation ----------
def _norm(value: Any) -> str:
    """'Qté/Unité' -> 'qteunite' : accents, casse, espaces et ponctuation ignorés."""
    s = unicodedata.normalize("NFKD", str(value or "").strip())
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    return "".join(ch for ch in s.lower() if ch.isalnum())


SHEET_ALIASES: dict[str, tuple[str, ...]] = {
    "sites": ("sites", "site"),
    "suppliers": ("suppliers", "supplier", "fournisseurs", "fournisseur"),
    "products": ("products", "product", "produits", "produit"),
    "productSuppliers": (
        "productsuppliers",
        "productsupplier",
        "produitsfournisseurs",
        "produitfournisseur",
        "tarifs",
    ),
    "stocks": ("stocks", "stock"),
    "movements": ("movements", "movement", "mouvements", "mouvement"),
    "orders": ("orders", "order", "commandes", "commande"),
}

SHEET_LABELS = {
    "sites": "Sites",
    "suppliers": "Fournisseurs",
    "products": "Produits",
    "productSuppliers": "ProduitsFournisseurs",
    "stocks": "Stocks",
    "movements": "Mouvements",
    "orders": "Commandes",
}

# champ -> en-têtes acceptés (forme normalisée)
COLUMNS: dict[str, dict[str, tuple[str, ...]]] = {
    "sites": {
        "name": ("name", "nom"),
        "type": ("type", "typesite"),
        "address": ("address", "adresse"),
        "is_active": ("isactive", "active", "actif"),
    },
    "suppliers": {
        "name": ("name", "nom"),
        "contact": ("contact",),
        "email": ("email", "mail"),
        "phone": ("phone", "telephone", "tel"),
        "website": ("website", "siteweb"),
        "address": ("address", "adresse"),
        "postal_code": ("postalcode", "codepostal", "cp"),
        "city": ("city", "ville"),
        "country": ("country", "pays"),
        "latitude": ("latitude", "lat"),
        "longitude": ("longitude", "lng", "lon"),
        "comment": ("comment", "commentaire"),
    },
    "products": {
        "reference": ("reference", "ref"),
        "description": ("description",),
        "qty_per_unit": ("qtyperunit", "qteunite", "qteparunite", "quantiteparunite"),
        "supply_risk": ("supplyrisk", "risqueappro", "risque"),
        "location": ("location", "emplacement"),
        "group": ("group", "groupe"),
        "assembly": ("assembly", "assemblage"),
        "comment": ("comment", "commentaire"),
        "image_url": ("imageurl", "image"),
        "primary_supplier": ("primarysupplier", "fournisseurprincipal"),
    },
    "productSuppliers": {
        "product_reference": ("productreference", "referenceproduit", "reference"),
        "supplier_name": ("suppliername", "fournisseur", "nomfournisseur"),
        "supplier_ref": ("supplierref", "referencefournisseur", "reffournisseur"),
        "unit_price": ("unitprice", "prixunitaire", "prix"),
        "lead_time": ("leadtime", "delai", "delailivraison"),
        "product_url": ("producturl", "url", "lien"),
        "shipping_cost": ("shippingcost", "fraisdeport", "fraisdelivraison"),
        "is_primary": ("isprimary", "principal"),
    },
    "stocks": {
        "product_reference": ("productreference", "referenceproduit", "reference"),
        "site_name": ("sitename", "site", "nomsite"),
        "site_type": ("sitetype", "typesite"),
        "quantity_new": ("quantitynew", "quantiteneuf", "neuf"),
        "quantity_used": ("quantityused", "quantiteoccasion", "occasion"),
    },
    "movements": {
        "product_reference": ("productreference", "referenceproduit", "reference"),
        "type": ("type",),
        "source_site": ("sourcesite", "sitesource", "source"),
        "target_site": ("targetsite", "sitecible", "cible", "destination"),
        "quantity": ("quantity", "quantite"),
        "condition": ("condition", "etat"),
        "movement_date": ("movementdate", "date"),
        "operator": ("operator", "operateur"),
        "comment": ("comment", "commentaire"),
    },
    "orders": {
        "product_reference": ("productreference", "referenceproduit", "reference"),
        "supplier_name": ("suppliername", "fournisseur"),
        "quantity": ("quantity", "quantite"),
        "status": ("status", "statut"),
        "order_date": ("orderdate", "datecommande", "date"),
        "expected_date": ("expecteddate", "dateprevue"),
        "received_date": ("receiveddate", "datereception"),
        "received_qty": ("receivedqty", "quantiterecue"),
        "destination_site": ("destinationsite", "sitedestination", "destination"),
        "responsible": ("responsible", "responsable"),
        "supplier_ref": ("supplierref", "reffournisseur", "referencefournisseur"),
        "comment": ("comment", "commentaire"),
    },
}

SITE_TYPES = {"storage": SiteType.STORAGE, "stockage": SiteType.STORAGE, "exit": SiteType.EXIT, "sortie": SiteType.EXIT}
RISKS = {
    "low": SupplyRisk.LOW, "faible": SupplyRisk.LOW, "bas": SupplyRisk.LOW,
    "medium": SupplyRisk.MEDIUM, "moyen": SupplyRisk.MEDIUM, "moyenne": SupplyRisk.MEDIUM,
    "high": SupplyRisk.HIGH, "eleve": SupplyRisk.HIGH, "elevee": SupplyRisk.HIGH, "haut": SupplyRisk.HIGH,
}
MOVEMENT_TYPES = {
    "in": MovementType.IN, "entree": MovementType.IN,
    "out": MovementType.OUT, "sortie": MovementType.OUT,
    "transfer": MovementType.TRANSFER, "transfert": MovementType.TRANSFER,
}
CONDITIONS = {"new": Condition.NEW, "neuf": Condition.NEW, "used": Condition.USED, "occasion": Condition.USED}
ORDER_STATUSES = {
    "pending": OrderStatus.PENDING, "enattente": OrderStatus.PENDING, "encours": OrderStatus.PENDING,
    "completed": OrderStatus.COMPLETED, "recue": OrderStatus.COMPLETED, "recu": OrderStatus.COMPLETED,
    "terminee": OrderStatus.COMPLETED,
    "cancelled": OrderStatus.CANCELLED, "canceled": OrderStatus.CANCELLED, "annulee": OrderStatus.CANCELLED,
}
TRUE_VALUES = {"oui", "yes", "true", "vrai", "1", "x"}
FALSE_VALUES = {"non", "no", "false", "faux", "0"}


def match_entity(name: str) -> str | None:
    key = _norm(name)
    for entity, aliases in SHEET_ALIASES.items():
        if key in aliases or key == _norm(entity):
            return entity
    return None


# ---------- Cellules ----------
def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and pd.isna(value):
        return True
    return isinstance(value, str) and not value.strip()


def _text(value: Any) -> str | None:
    if _is_blank(value):
        return None
    if isinstance(value, float) and value.is_integer():
        # '12345' lu comme 12345.0 par Excel
        return str(int(value))
    return str(value).strip()


def _number(value: Any, field: str) -> float | None:
    if _is_blank(value):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip().replace(" ", "").replace(",", "."))
    except ValueError:
        raise ValidationError(f"{field}: nombre invalide '{value}'", field=field) from None


def _int(value: Any, field: str) -> int | None:
    number = _number(value, field)
    if number is None:
        return None
    if not float(number).is_integer():
        raise ValidationError(f"{field}: entier attendu, reçu '{value}'", field=field)
    return int(number)


def _bool(value: Any, field: str, default: bool) -> bool:
    if _is_blank(value):
        return default
    if isinstance(value, bool):
        return value
    key = _norm(value)
    if key in TRUE_VALUES:
        return True
    if key in FALSE_VALUES:
        return False
    raise ValidationError(f"{field}: booléen invalide '{value}'", field=field)


def _choice(value: Any, table: dict, field: str):
    if _is_blank(value):
        return None
    found = table.get(_norm(value))
    if found is None:
        raise ValidationError(f"{field}: valeur invalide '{value}'", field=field)
    return found


def _date(value: Any, field: str) -> datetime | None:
    if _is_blank(value):
        return None
    try:
        if isinstance(value, datetime):
            ts = pd.Timestamp(value)
        else:
            text = str(value).strip()
            # 2026-03-02 (ISO) vs 02/03/2026 (FR)
            ts = pd.to_datetime(text, dayfirst=not text[:4].isdigit())
    except (ValueError, TypeError, OverflowError):
        raise ValidationError(f"{field}: date invalide '{value}'", field=field) from None
    if pd.isna(ts):
        raise ValidationError(f"{field}: date invalide '{value}'", field=field)
    ts = ts.tz_localize(timezone.utc) if ts.tzinfo is None else ts.tz_convert(timezone.utc)
    return ts.to_pydatetime()


def _required(record: dict, field: str, label: str) -> str:
    value = _text(record.get(field))
    if not value:
        raise ValidationError(f"{label} obligatoire", field=field)
    return value


def _describe(exc: Exception) -> str:
    if isinstance(exc, GestockError):
        return exc.message
    if isinstance(exc, SchemaValidationError):
        err = exc.errors()[0]
        loc = ".".join(str(part) for part in err.get("loc", ()))
        return f"{loc}: {err.get('msg')}" if loc else str(err.get("msg"))
    if isinstance(exc, IntegrityError):
        return f"contrainte d'intégrité violée ({exc.orig})"
    return str(exc)


# ---------- Lecture ----------
def _frame_rows(df: pd.DataFrame) -> tuple[list[str], list[dict[str, Any]]]:
    df = df.dropna(how="all")
    headers = [str(c).strip() for c in df.columns]
    clean = df.astype(object).where(pd.notna(df), None)
    rows = []
    for index, values in zip(clean.index, clean.itertuples(index=False, name=None)):
        rows.append({"__row__": int(index) + 2, **dict(zip(headers, values))})
    return headers, rows


def read_workbook(content: bytes, filename: str) -> dict[str, tuple[list[str], list[dict[str, Any]]]]:
    """{sheet name: (headers, rows)}; rows keep their spreadsheet line number in '__row__'."""
    suffix = Path(filename or "").suffix.lower()
    if suffix in (".xlsx", ".xlsm"):
        try:
            frames = pd.read_excel(io.BytesIO(content), sheet_name=None, dtype=object, engine="openpyxl")
        except Exception as exc:
            raise ValidationError(f"Fichier Excel illisible: {exc}", field="file") from exc
        return {str(name): _frame_rows(df) for name, df in frames.items()}

    if suffix == ".csv":
        try:
            text = content.decode("utf-8-sig")
        except UnicodeDecodeError:
            text = content.decode("cp1252")
        try:
            df = pd.read_csv(
                io.StringIO(text), sep=None, engine="python", dtype=str, keep_default_na=False
            )
        except (pd.errors.ParserError, pd.errors.EmptyDataError, csv.Error) as exc:
            raise ValidationError(f"Fichier CSV illisible: {exc}", field="file") from exc
        return {Path(filename).stem: _frame_rows(df)}

    raise ValidationError(f"Format non supporté: {suffix or filename!r} (attendu .xlsx ou .csv)", field="file")


def _record(entity: str, row: dict[str, Any]) -> dict[str, Any]:
    by_header = {_norm(k): v for k, v in row.items() if k != "__row__"}
    record: dict[str, Any] = {}
    for field, aliases in COLUMNS[entity].items():
        for alias in aliases:
            if alias in by_header and not _is_blank(by_header[alias]):
                record[field] = by_header[alias]
                break
    return record


def _json_safe(value: Any) -> Any:
    if isinstance(value, (pd.Timestamp, datetime)):
        return value.isoformat()
    if hasattr(value, "item"):
        return value.item()
    return value


# ---------- Preview ----------
def preview_import(content: bytes, filename: str) -> dict:
    """Headers, row count and a few sample rows per sheet. Never touches the database."""
    sample_size = get_settings().IMPORT_SAMPLE_ROWS
    sheets = {}
    for name, (headers, rows) in read_workbook(content, filename).items():
        sheets[name] = {
            "entity": match_entity(name),
            "headers": headers,
            "rowCount": len(rows),
            "sampleRows": [
                {k: _json_safe(v) for k, v in row.items() if k != "__row__"} for row in rows[:sample_size]
            ],
        }
    return {"sheets": sheets}


# ---------- Lookups ----------
def _product(db: Session, reference: str) -> Product:
    product = catalog.find_product_by_reference(db, reference)
    if not product:
        raise ValidationError(f"produit introuvable '{reference}'", field="productReference")
    return product


def _supplier(db: Session, name: str) -> Supplier:
    supplier = db.execute(select(Supplier).where(Supplier.name == name)).scalar_one_or_none()
    if not supplier:
        raise ValidationError(f"fournisseur introuvable '{name}'", field="supplierName")
    return supplier


def _site(db: Session, name: str, type: SiteType | None = SiteType.STORAGE) -> Site:
    stmt = select(Site).where(Site.name == name)
    if type is not None:
        stmt = stmt.where(Site.type == type)
    site = db.execute(stmt.order_by(Site.type)).scalars().first()
    if not site:
        raise ValidationError(f"site introuvable '{name}'", field="site")
    return site


def _named(db: Session, model, name: str | None):
    # groupes / assemblages créés à la volée
    if not name:
        return None
    item = db.execute(select(model).where(model.name == name)).scalar_one_or_none()
    if item is None:
        item = model(name=name)
        db.add(item)
        db.flush()
    return item


# ---------- Upserts ----------
def _import_site(db: Session, record: dict) -> str:
    name = _required(record, "name", "nom")
    type_ = _choice(record.get("type"), SITE_TYPES, "type") or SiteType.STORAGE
    address = _text(record.get("address"))
    active_cell = record.get("is_active")
    is_active = _bool(active_cell, "isActive", True)

    existing = db.execute(select(Site).where(Site.name == name, Site.type == type_)).scalar_one_or_none()
    if existing:
        # colonne absente ou vide : on ne touche pas à l'état actif
        changes: dict[str, Any] = {} if _is_blank(active_cell) else {"is_active": is_active}
        if address is not None:
            changes["address"] = address
        catalog.update_site(db, existing.id, SiteUpdate(**changes))
        return UPDATED
    catalog.create_site(db, SiteCreate(name=name, type=type_, address=address, is_active=is_active))
    return CREATED


def _import_supplier(db: Session, record: dict) -> str:
    name = _required(record, "name", "nom")
    fields: dict[str, Any] = {
        key: _text(record.get(key))
        for key in ("contact", "email", "phone", "website", "address", "postal_code", "city", "country", "comment")
        if key in record
    }
    for key in ("latitude", "longitude"):
        if key in record:
            fields[key] = _number(record[key], key)

    existing = db.execute(select(Supplier).where(Supplier.name == name)).scalar_one_or_none()
    if existing:
        catalog.update_supplier(db, existing.id, SupplierUpdate(**fields))
        return UPDATED
    catalog.create_supplier(db, SupplierCreate(name=name, **fields))
    return CREATED


def _import_product(db: Session, record: dict) -> str:
    reference = _required(record, "reference", "référence")
    fields: dict[str, Any] = {
        key: _text(record.get(key)) for key in ("description", "location", "comment", "image_url") if key in record
    }
    if "qty_per_unit" in record:
        fields["qty_per_unit"] = _int(record["qty_per_unit"], "qtyPerUnit")
    if "supply_risk" in record:
        fields["supply_risk"] = _choice(record["supply_risk"], RISKS, "supplyRisk")
    if "group" in record:
        fields["group_id"] = _named(db, ProductGroup, _text(record["group"])).id
    if "assembly" in record:
        fields["assembly_id"] = _named(db, Assembly, _text(record["assembly"])).id

    existing = catalog.find_product_by_reference(db, reference)
    if existing:
        product = catalog.update_product(db, existing.id, ProductUpdate(**fields))
        outcome = UPDATED
    else:
        product = catalog.create_product(db, ProductCreate(reference=reference, **fields))
        outcome = CREATED

    primary = _text(record.get("primary_supplier"))
    if primary:
        supplier = _supplier(db, primary)
        linked = db.execute(
            select(ProductSupplier).where(
                ProductSupplier.product_id == product.id, ProductSupplier.supplier_id == supplier.id
            )
        ).scalar_one_or_none()
        if linked is None:
            catalog.link_supplier(db, product.id, ProductSupplierLink(supplier_id=supplier.id, is_primary=True))
        elif not linked.is_primary:
            catalog.set_primary_supplier(db, product.id, supplier.id)
    return outcome


def _import_product_supplier(db: Session, record: dict) -> str:
    product = _product(db, _required(record, "product_reference", "référence produit"))
    supplier = _supplier(db, _required(record, "supplier_name", "fournisseur"))
    fields: dict[str, Any] = {
        key: _text(record.get(key)) for key in ("supplier_ref", "lead_time", "product_url") if key in record
    }
    for key in ("unit_price", "shipping_cost"):
        if key in record:
            fields[key] = _number(record[key], key)
    if "is_primary" in record:
        fields["is_primary"] = _bool(record["is_primary"], "isPrimary", False)

    existing = db.execute(
        select(ProductSupplier.id).where(
            ProductSupplier.product_id == product.id, ProductSupplier.supplier_id == supplier.id
        )
    ).first()
    if existing:
        catalog.update_product_supplier(db, product.id, supplier.id, ProductSupplierUpdate(**fields))
        return UPDATED
    catalog.link_supplier(db, product.id, ProductSupplierLink(supplier_id=supplier.id, **fields))
    return CREATED


def _import_stock(db: Session, record: dict) -> str:
    """Align the ledger on the sheet through compensating IN/OUT movements."""
    product = _product(db, _required(record, "product_reference", "référence produit"))
    site_type = _choice(record.get("site_type"), SITE_TYPES, "siteType") or SiteType.STORAGE
    site = _site(db, _required(record, "site_name", "site"), site_type)

    wanted = {
        Condition.NEW: _int(record.get("quantity_new"), "quantityNew"),
        Condition.USED: _int(record.get("quantity_used"), "quantityUsed"),
    }
    for condition, qty in wanted.items():
        if qty is not None and qty < 0:
            raise ValidationError(f"quantité négative pour {condition.value}", field="quantity")

    stock = db.execute(
        select(Stock).where(Stock.product_id == product.id, Stock.site_id == site.id)
    ).scalar_one_or_none()
    outcome = UPDATED if stock else CREATED

    for condition, qty in wanted.items():
        if qty is None:
            continue
        current = quantity_for(stock, condition) if stock else 0
        delta = qty - current
        if delta == 0:
            continue
        create_movement(
            db,
            MovementCreate(
                product_id=product.id,
                type=MovementType.IN if delta > 0 else MovementType.OUT,
                target_site_id=site.id if delta > 0 else None,
                source_site_id=site.id if delta < 0 else None,
                quantity=abs(delta),
                condition=condition,
                comment="[Import] ajustement d'inventaire",
            ),
            publish=False,
        )
        stock = stock or db.execute(
            select(Stock).where(Stock.product_id == product.id, Stock.site_id == site.id)
        ).scalar_one_or_none()
    return outcome


def _import_movement(db: Session, record: dict) -> str:
    product = _product(db, _required(record, "product_reference", "référence produit"))
    mtype = _choice(_required(record, "type", "type"), MOVEMENT_TYPES, "type")
    source = _text(record.get("source_site"))
    target = _text(record.get("target_site"))
    quantity = _int(record.get("quantity"), "quantity")
    if quantity is None:
        raise ValidationError("quantité obligatoire", field="quantity")

    create_movement(
        db,
        MovementCreate(
            product_id=product.id,
            type=mtype,
            source_site_id=_site(db, source).id if source and mtype != MovementType.IN else None,
            target_site_id=_site(db, target).id if target and mtype != MovementType.OUT else None,
            quantity=quantity,
            condition=_choice(record.get("condition"), CONDITIONS, "condition") or Condition.NEW,
            movement_date=_date(record.get("movement_date"), "movementDate"),
            operator=_text(record.get("operator")),
            comment=_text(record.get("comment")),
        ),
        publish=False,
    )
    return CREATED


def _import_order(db: Session, record: dict) -> str:
    product = _product(db, _required(record, "product_reference", "référence produit"))
    supplier = _supplier(db, _required(record, "supplier_name", "fournisseur"))
    order_date = _date(record.get("order_date"), "orderDate")
    if order_date is None:
        raise ValidationError("date de commande obligatoire", field="orderDate")
    quantity = _int(record.get("quantity"), "quantity")
    status = _choice(record.get("status"), ORDER_STATUSES, "status") or OrderStatus.PENDING
    destination = _text(record.get("destination_site"))
    destination_id = _site(db, destination).id if destination else None

    fields: dict[str, Any] = {
        key: _text(record.get(key)) for key in ("responsible", "supplier_ref", "comment") if key in record
    }
    if "expected_date" in record:
        fields["expected_date"] = _date(record["expected_date"], "expectedDate")

    # l'export ne garde que le jour : on rapproche sur la date calendaire
    existing = None
    for candidate in db.execute(
        select(Order)
        .where(Order.product_id == product.id, Order.supplier_id == supplier.id)
        .order_by(Order.created_at)
    ).scalars():
        if as_utc(candidate.order_date).date() == order_date.date():
            existing = candidate
            break

    if existing is None:
        if quantity is None:
            raise ValidationError("quantité obligatoire", field="quantity")
        order = procurement.create_order(
            db,
            OrderCreate(
                product_id=product.id,
                supplier_id=supplier.id,
                quantity=quantity,
                order_date=order_date,
                destination_site_id=destination_id,
                **fields,
            ),
        )
        outcome = CREATED
    else:
        order = existing
        if order.status == OrderStatus.PENDING:
            changes = dict(fields)
            if quantity is not None:
                changes["quantity"] = quantity
            if destination_id:
                changes["destination_site_id"] = destination_id
            procurement.update_order(db, order.id, OrderUpdate(**changes))
        else:
            # commande close : seuls les champs libres bougent
            for key in ("responsible", "supplier_ref", "comment"):
                if key in fields:
                    setattr(order, key, fields[key])
            db.flush()
        outcome = UPDATED

    if order.status == OrderStatus.PENDING and status == OrderStatus.COMPLETED:
        received_qty = _int(record.get("received_qty"), "receivedQty") or order.quantity
        procurement.receive_order(
            db,
            order.id,
            ReceiveOrderInput(
                received_qty=received_qty,
                received_date=_date(record.get("received_date"), "receivedDate"),
                destination_site_id=destination_id,
                comment="import",
            ),
        )
    elif order.status == OrderStatus.PENDING and status == OrderStatus.CANCELLED:
        procurement.cancel_order(db, order.id)
    elif order.status != status and status != OrderStatus.PENDING:
        raise ValidationError(
            f"commande déjà {OrderStatus(order.status).value}, statut {status.value} ignoré", field="status"
        )
    return outcome


HANDLERS: dict[str, Callable[[Session, dict], str]] = {
    "sites": _import_site,
    "suppliers": _import_supplier,
    "products": _import_product,
    "productSuppliers": _import_product_supplier,
    "stocks": _import_stock,
    "movements": _import_movement,
    "orders": _import_order,
}


# ---------- Import ----------
def _import_rows(db: Session, entity: str, sheet: str, rows: list[dict], result: dict) -> None:
    handler = HANDLERS[entity]
    for row in rows:
        record = _record(entity, row)
        if not record:
            continue
        try:
            with db.begin_nested():
                outcome = handler(db, record)
        except (GestockError, SchemaValidationError, IntegrityError, ValueError) as exc:
            error = RowImportError(sheet, row["__row__"], _describe(exc))
            result["errors"].append(error.message)
            logger.info("import_row_rejected", entity=entity, sheet=sheet, row=row["__row__"], reason=_describe(exc))
            continue
        result[outcome] += 1


def run_import(db: Session, content: bytes, filename: str, entity: str | None = None) -> dict:
    """
    Import a workbook (every recognised sheet) or a single-entity CSV.

    Returns {entity: {created, updated, errors}} for every entity; row errors
    never abort the import.
    """
    workbook = read_workbook(content, filename)
    results = {name: {"created": 0, "updated": 0, "errors": []} for name in ENTITY_ORDER}

    sheets: dict[str, tuple[str, list[dict]]] = {}
    if Path(filename or "").suffix.lower() == ".csv":
        target = match_entity(entity or "")
        if target is None:
            raise ValidationError(
                f"Type d'import inconnu: {entity!r} (attendu: {', '.join(ENTITY_ORDER)})", field="type"
            )
        _, rows = next(iter(workbook.values()))
        sheets[target] = (SHEET_LABELS[target], rows)
    else:
        for sheet_name, (_, rows) in workbook.items():
            target = match_entity(sheet_name)
            if target is None:
                logger.warning("import_sheet_ignored", sheet=sheet_name)
                continue
            sheets[target] = (sheet_name, rows)

    for name in ENTITY_ORDER:
        if name in sheets:
            sheet_name, rows = sheets[name]
            _import_rows(db, name, sheet_name, rows, results[name])

    touch(db, "import.run")
    logger.info(
        "import_completed",
        filename=filename,
        summary={k: {"created": v["created"], "updated": v["updated"], "errors": len(v["errors"])} for k, v in results.items()},
    )
    return results


# ---------- Export ----------
SITE_TYPE_LABELS = {SiteType.STORAGE: "Stockage", SiteType.EXIT: "Sortie"}
MOVEMENT_LABELS = {MovementType.IN: "Entrée", MovementType.OUT: "Sortie", MovementType.TRANSFER: "Transfert"}
CONDITION_LABELS = {Condition.NEW: "Neuf", Condition.USED: "Occasion"}
STATUS_LABELS = {OrderStatus.PENDING: "En attente", OrderStatus.COMPLETED: "Reçue", OrderStatus.CANCELLED: "Annulée"}


def _day(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d") if value else ""


def _products_frame(db: Session) -> pd.DataFrame:
    products = db.execute(
        select(Product)
        .execution_options(populate_existing=True)
        .options(selectinload(Product.product_suppliers).selectinload(ProductSupplier.supplier))
        .options(selectinload(Product.group), selectinload(Product.assembly))
        .order_by(Product.reference)
    ).scalars()
    rows = []
    for p in products:
        primary = catalog.primary_link(p)
        rows.append(
            {
                "Référence": p.reference,
                "Description": p.description or "",
                "Qté/Unité": p.qty_per_unit,
                "Risque Appro": p.supply_risk.value if p.supply_risk else "",
                "Emplacement": p.location or "",
                "Groupe": p.group.name if p.group else "",
                "Assemblage": p.assembly.name if p.assembly else "",
                "Fournisseur Principal": primary.supplier.name if primary else "",
                "Commentaire": p.comment or "",
            }
        )
    return pd.DataFrame(rows, columns=["Référence", "Description", "Qté/Unité", "Risque Appro", "Emplacement",
                                       "Groupe", "Assemblage", "Fournisseur Principal", "Commentaire"])


def _suppliers_frame(db: Session) -> pd.DataFrame:
    columns = ["Nom", "Contact", "Email", "Téléphone", "Site Web", "Adresse", "Code Postal", "Ville", "Pays",
               "Commentaire"]
    rows = [
        [s.name, s.contact, s.email, s.phone, s.website, s.address, s.postal_code, s.city, s.country, s.comment]
        for s in db.execute(select(Supplier).order_by(Supplier.name)).scalars()
    ]
    return pd.DataFrame(rows, columns=columns).fillna("")


def _sites_frame(db: Session) -> pd.DataFrame:
    rows = [
        [s.name, SITE_TYPE_LABELS[SiteType(s.type)], s.address or "", "Oui" if s.is_active else "Non"]
        for s in catalog.list_sites(db)
    ]
    return pd.DataFrame(rows, columns=["Nom", "Type", "Adresse", "Actif"])


def _stocks_frame(db: Session) -> pd.DataFrame:
    rows = [
        [
            product.reference,
            product.description or "",
            site.name,
            SITE_TYPE_LABELS[SiteType(site.type)],
            stock.quantity_new,
            stock.quantity_used,
            stock.quantity_new + stock.quantity_used,
        ]
        for stock, product, site in db.execute(
            select(Stock, Product, Site)
            .join(Product, Product.id == Stock.product_id)
            .join(Site, Site.id == Stock.site_id)
            .order_by(Product.reference, Site.name)
        ).all()
    ]
    return pd.DataFrame(
        rows,
        columns=["Référence Produit", "Description", "Site", "Type Site", "Quantité Neuf", "Quantité Occasion", "Total"],
    )


def _movements_frame(db: Session) -> pd.DataFrame:
    movements = db.execute(
        select(StockMovement)
        .options(
            selectinload(StockMovement.product),
            selectinload(StockMovement.source_site),
            selectinload(StockMovement.target_site),
        )
        .order_by(StockMovement.movement_date.desc())
    ).scalars()
    rows = [
        [
            _day(m.movement_date),
            MOVEMENT_LABELS[MovementType(m.type)],
            m.product.reference,
            m.source_site.name if m.source_site else "",
            m.target_site.name if m.target_site else "",
            m.quantity,
            CONDITION_LABELS[Condition(m.condition)],
            m.operator or "",
            m.comment or "",
        ]
        for m in movements
    ]
    return pd.DataFrame(
        rows,
        columns=["Date", "Type", "Référence Produit", "Site Source", "Site Cible", "Quantité", "État", "Opérateur",
                 "Commentaire"],
    )


def _orders_frame(db: Session) -> pd.DataFrame:
    orders = db.execute(
        select(Order)
        .options(selectinload(Order.product), selectinload(Order.supplier), selectinload(Order.destination_site))
        .order_by(Order.order_date.desc())
    ).scalars()
    rows = [
        [
            o.product.reference,
            o.supplier.name,
            o.quantity,
            STATUS_LABELS[OrderStatus(o.status)],
            _day(o.order_date),
            _day(o.expected_date),
            _day(o.received_date),
            o.received_qty if o.received_qty is not None else "",
            o.destination_site.name if o.destination_site else "",
            o.responsible or "",
            o.supplier_ref or "",
            o.comment or "",
        ]
        for o in orders
    ]
    return pd.DataFrame(
        rows,
        columns=["Référence Produit", "Fournisseur", "Quantité", "Statut", "Date Commande", "Date Prévue",
                 "Date Réception", "Quantité Reçue", "Site Destination", "Responsable", "Réf. Fournisseur",
                 "Commentaire"],
    )


FRAMES: dict[str, Callable[[Session], pd.DataFrame]] = {
    "products": _products_frame,
    "suppliers": _suppliers_frame,
    "sites": _sites_frame,
    "stocks": _stocks_frame,
    "movements": _movements_frame,
    "orders": _orders_frame,
}

MEDIA_TYPES = {
    "csv": "text/csv; charset=utf-8",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


def export_entity(db: Session, entity: str, format: str = "xlsx") -> tuple[bytes, str, str]:
    """Returns (content, media type, file name)."""
    if entity not in FRAMES:
        raise ValidationError(f"Entité non exportable: {entity}", field="entity")
    if format not in MEDIA_TYPES:
        raise ValidationError(f"Format non supporté: {format}", field="format")

    df = FRAMES[entity](db)
    label = SHEET_LABELS[entity]
    filename = f"{label.lower()}_{datetime.now(timezone.utc):%Y-%m-%d}.{format}"

    if format == "csv":
        text = df.to_csv(sep=";", index=False, quoting=csv.QUOTE_ALL, lineterminator="\n")
        return text.encode("utf-8-sig"), MEDIA_TYPES[format], filename

    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name=label)
    return buffer.getvalue(), MEDIA_TYPES[format], filename

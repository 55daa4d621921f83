import io
from datetime import datetime, timezone

import pandas as pd
import pytest
from sqlalchemy import func, select

from gestock.app.core.exceptions import ValidationError
from gestock.app.db.models.core_types import MovementType, OrderStatus, SupplyRisk
from gestock.app.db.models.models_v1 import Order, Product, ProductGroup, Stock, StockMovement, Supplier
from gestock.app.schemas.order import OrderCreate, ReceiveOrderInput
from gestock.app.schemas.site import SiteUpdate
from gestock.services import catalog, procurement, reconciliation


def _xlsx(sheets):
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        for name, rows in sheets.items():
            pd.DataFrame(rows).to_excel(writer, index=False, sheet_name=name)
    return buffer.getvalue()


def _count(db, model):
    return db.scalar(select(func.count()).select_from(model))


PRODUCTS = [
    {"Référence": "R-100", "Description": "Roulement", "Qté/Unité": 2, "Risque Appro": "Élevé"},
    {"Référence": "R-200", "Description": "Courroie", "Qté/Unité": "abc", "Risque Appro": "faible"},
    {"Référence": "R-300", "Description": "Poulie", "Qté/Unité": 1, "Groupe": "Transmission"},
]


def test_preview_reads_without_writing(db_session):
    content = _xlsx({"Produits": PRODUCTS, "Notes": [{"Texte": "hors import"}]})

    first = reconciliation.preview_import(content, "catalogue.xlsx")
    second = reconciliation.preview_import(content, "catalogue.xlsx")

    assert first == second
    sheet = first["sheets"]["Produits"]
    assert sheet["entity"] == "products"
    assert sheet["rowCount"] == 3
    assert sheet["headers"][:2] == ["Référence", "Description"]
    assert sheet["sampleRows"][0]["Référence"] == "R-100"
    assert first["sheets"]["Notes"]["entity"] is None
    assert _count(db_session, Product) == 0


def test_bad_row_is_reported_and_skipped(db_session):
    result = reconciliation.run_import(db_session, _xlsx({"Produits": PRODUCTS}), "catalogue.xlsx")

    products = result["products"]
    assert products["created"] == 2
    assert len(products["errors"]) == 1
    assert products["errors"][0].startswith("Produits ligne 3:")
    assert "abc" in products["errors"][0]

    r100 = catalog.find_product_by_reference(db_session, "R-100")
    assert (r100.qty_per_unit, r100.supply_risk) == (2, SupplyRisk.HIGH)
    assert catalog.find_product_by_reference(db_session, "R-200") is None
    # groupe créé à la volée
    assert db_session.scalar(select(ProductGroup.name)) == "Transmission"

    # toutes les entités sont présentes dans le résultat
    assert set(result) == set(reconciliation.ENTITY_ORDER)


def test_reimport_updates_by_natural_key(db_session):
    rows = [{"Reference": "R-100", "Description": "v1"}, {"Reference": "R-300", "Description": "v1"}]
    reconciliation.run_import(db_session, _xlsx({"Products": rows}), "a.xlsx")

    rows[0]["Description"] = "v2"
    result = reconciliation.run_import(db_session, _xlsx({"Products": rows}), "a.xlsx")

    assert (result["products"]["created"], result["products"]["updated"]) == (0, 2)
    assert catalog.find_product_by_reference(db_session, "R-100").description == "v2"
    assert _count(db_session, Product) == 2


def test_sheets_are_processed_in_dependency_order(db_session, site_a):
    ordered_at = datetime(2026, 2, 1, tzinfo=timezone.utc)
    content = _xlsx(
        {
            # feuilles volontairement dans le "mauvais" ordre
            "Commandes": [
                {
                    "Référence Produit": "R-100",
                    "Fournisseur": "Acier SA",
                    "Quantité": 10,
                    "Statut": "Reçue",
                    "Date Commande": ordered_at.replace(tzinfo=None),
                    "Quantité Reçue": 9,
                    "Site Destination": "Entrepôt A",
                },
                {"Référence Produit": "R-100", "Fournisseur": "Inconnu", "Quantité": 1, "Date Commande": "2026-02-03"},
            ],
            "Produits": [{"Référence": "R-100", "Fournisseur Principal": "Acier SA"}],
            "Fournisseurs": [{"Nom": "Acier SA", "Ville": "Lille"}],
        }
    )

    result = reconciliation.run_import(db_session, content, "complet.xlsx")

    assert result["suppliers"]["created"] == 1
    assert result["products"]["created"] == 1
    assert result["orders"]["created"] == 1
    assert result["orders"]["errors"] == ["Commandes ligne 3: fournisseur introuvable 'Inconnu'"]

    product = catalog.find_product_by_reference(db_session, "R-100")
    assert catalog.primary_link(product).supplier.name == "Acier SA"

    order = db_session.execute(select(Order)).scalar_one()
    assert order.status == OrderStatus.COMPLETED
    assert order.received_qty == 9
    stock = db_session.execute(select(Stock).where(Stock.product_id == product.id)).scalar_one()
    assert (stock.site_id, stock.quantity_new) == (site_a.id, 9)


def test_order_reimport_matches_existing(db_session, product, supplier, site_a):
    row = {
        "Référence Produit": "P1",
        "Fournisseur": "Acme Composants",
        "Quantité": 4,
        "Date Commande": "2026-02-10",
        "Site Destination": "Entrepôt A",
    }
    reconciliation.run_import(db_session, _xlsx({"Commandes": [row]}), "c.xlsx")
    row["Quantité"] = 6
    result = reconciliation.run_import(db_session, _xlsx({"Commandes": [row]}), "c.xlsx")

    assert result["orders"]["updated"] == 1
    order = db_session.execute(select(Order)).scalar_one()
    assert order.quantity == 6
    assert order.order_date.day == 10 and order.order_date.month == 2


def test_stock_sheet_goes_through_movements(db_session, product, site_a):
    def run(qty):
        rows = [{"Référence Produit": "P1", "Site": "Entrepôt A", "Quantité Neuf": qty}]
        return reconciliation.run_import(db_session, _xlsx({"Stocks": rows}), "inventaire.xlsx")

    assert run(7)["stocks"]["created"] == 1
    assert run(4)["stocks"]["updated"] == 1

    stock = db_session.execute(select(Stock).where(Stock.product_id == product.id)).scalar_one()
    assert stock.quantity_new == 4
    types = db_session.execute(select(StockMovement.type).order_by(StockMovement.quantity.desc())).scalars().all()
    assert types == [MovementType.IN, MovementType.OUT]


def test_csv_import_needs_an_entity(db_session):
    content = "Référence;Description;Qté/Unité\nCSV-1;Rondelle;10\nCSV-2;Clip;\n".encode("utf-8")

    with pytest.raises(ValidationError) as exc:
        reconciliation.run_import(db_session, content, "produits.csv")
    assert exc.value.field == "type"

    result = reconciliation.run_import(db_session, content, "produits.csv", entity="products")
    assert result["products"]["created"] == 2
    assert catalog.find_product_by_reference(db_session, "CSV-1").qty_per_unit == 10


def test_csv_export_is_excel_friendly_and_reimportable(db_session, product, product_b, supplier):
    content, media_type, filename = reconciliation.export_entity(db_session, "products", "csv")

    assert media_type.startswith("text/csv")
    assert filename.startswith("produits_") and filename.endswith(".csv")
    assert content.startswith(b"\xef\xbb\xbf")
    header = content.decode("utf-8-sig").splitlines()[0]
    assert header.startswith('"Référence";"Description";"Qté/Unité"')

    result = reconciliation.run_import(db_session, content, filename, entity="products")
    assert (result["products"]["created"], result["products"]["updated"]) == (0, 2)
    assert result["products"]["errors"] == []


def test_xlsx_export_roundtrips_suppliers(db_session, supplier):
    content, _, filename = reconciliation.export_entity(db_session, "suppliers", "xlsx")
    frames = pd.read_excel(io.BytesIO(content), sheet_name=None, engine="openpyxl")
    assert list(frames) == ["Fournisseurs"]
    assert frames["Fournisseurs"]["Nom"].tolist() == ["Acme Composants"]

    result = reconciliation.run_import(db_session, content, filename)
    assert result["suppliers"]["updated"] == 1
    assert _count(db_session, Supplier) == 1


def test_unsupported_inputs(db_session):
    with pytest.raises(ValidationError):
        reconciliation.preview_import(b"whatever", "notes.txt")
    with pytest.raises(ValidationError):
        reconciliation.export_entity(db_session, "packs", "csv")
    with pytest.raises(ValidationError):
        reconciliation.export_entity(db_session, "products", "pdf")


def test_site_reimport_keeps_disabled_state(db_session, site_a):
    catalog.update_site(db_session, site_a.id, SiteUpdate(is_active=False))

    rows = [{"Nom": "Entrepôt A", "Type": "Stockage", "Adresse": "Quai 3"}]
    result = reconciliation.run_import(db_session, _xlsx({"Sites": rows}), "sites.xlsx")

    assert result["sites"]["updated"] == 1
    assert site_a.is_active is False
    assert site_a.address == "Quai 3"

    # une colonne Actif renseignée s'applique
    rows[0]["Actif"] = "oui"
    reconciliation.run_import(db_session, _xlsx({"Sites": rows}), "sites.xlsx")
    assert site_a.is_active is True


def test_orders_export_reimports_without_duplicates(db_session, product, supplier, site_a):
    order = procurement.create_order(
        db_session,
        OrderCreate(
            product_id=product.id,
            supplier_id=supplier.id,
            quantity=5,
            order_date=datetime(2026, 3, 2, 14, 30, tzinfo=timezone.utc),
            destination_site_id=site_a.id,
        ),
    )
    procurement.receive_order(db_session, order.id, ReceiveOrderInput(received_qty=5))

    content, _, filename = reconciliation.export_entity(db_session, "orders", "xlsx")
    result = reconciliation.run_import(db_session, content, filename)

    assert result["orders"] == {"created": 0, "updated": 1, "errors": []}
    assert _count(db_session, Order) == 1
    assert _count(db_session, StockMovement) == 1
    stock = db_session.execute(select(Stock).where(Stock.product_id == product.id)).scalar_one()
    assert stock.quantity_new == 5

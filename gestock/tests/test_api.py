import io

import pandas as pd
import pytest

from gestock.app.api.deps import get_geocoder
from gestock.services.geocoding import Coordinates

API = "/api"


@pytest.fixture
def ids(client):
    site = client.post(f"{API}/sites", json={"name": "Magasin", "type": "STORAGE"}).json()["data"]
    product = client.post(f"{API}/products", json={"reference": "API-1", "qtyPerUnit": 2}).json()["data"]
    supplier = client.post(f"{API}/suppliers", json={"name": "Fournil"}).json()["data"]
    return {"site": site["id"], "product": product["id"], "supplier": supplier["id"]}


def test_health(client):
    body = client.get(f"{API}/health").json()
    assert body["success"] is True
    assert body["data"]["database"] == "ok"


def test_single_envelope_and_invalidation_header(client):
    r = client.post(f"{API}/sites", json={"name": "Quai 2", "type": "STORAGE"})

    assert r.status_code == 201
    body = r.json()
    assert body["success"] is True
    assert body["message"] == "Site créé"
    assert body["data"]["name"] == "Quai 2"
    assert body["data"]["isActive"] is True
    assert r.headers["X-Invalidates"] == "sites,dashboard"


def test_list_envelope_is_paginated(client):
    for name in ("Alpha", "Bravo", "Charlie"):
        client.post(f"{API}/suppliers", json={"name": name})

    body = client.get(f"{API}/suppliers", params={"page": 2, "limit": 2}).json()

    assert body["pagination"] == {"page": 2, "limit": 2, "total": 3, "totalPages": 2}
    assert [s["name"] for s in body["data"]] == ["Charlie"]
    assert body["data"][0]["_count"] == {"productSuppliers": 0, "orders": 0}


def test_movement_flow(client, ids):
    r = client.post(
        f"{API}/movements",
        json={"productId": ids["product"], "type": "IN", "targetSiteId": ids["site"], "quantity": 10},
    )
    assert r.status_code == 201
    assert r.json()["data"]["product"]["reference"] == "API-1"
    assert r.headers["X-Invalidates"] == "movements,stocks,products,dashboard"

    r = client.post(
        f"{API}/movements",
        json={"productId": ids["product"], "type": "OUT", "sourceSiteId": ids["site"], "quantity": 15},
    )
    assert r.status_code == 409
    body = r.json()
    assert body["success"] is False
    assert body["code"] == "INSUFFICIENT_STOCK"
    # texte lisible, affiché tel quel par le front
    assert body["error"] == body["message"]
    assert "available=10, requested=15" in body["error"]
    assert body["details"] == []
    assert body["context"]["available"] == 10

    stocks = client.get(f"{API}/stocks", params={"productId": ids["product"]}).json()["data"]
    assert [(s["site"]["name"], s["quantityNew"]) for s in stocks] == [("Magasin", 10)]

    available = client.get(f"{API}/stocks/available", params={"productId": ids["product"]}).json()["data"]
    assert available == [
        {"siteId": ids["site"], "siteName": "Magasin", "siteType": "STORAGE", "condition": "NEW", "quantity": 10}
    ]


def test_request_validation_is_400(client, ids):
    r = client.post(
        f"{API}/movements",
        json={"productId": ids["product"], "type": "IN", "targetSiteId": ids["site"], "quantity": 0},
    )
    assert r.status_code == 400
    body = r.json()
    assert body["code"] == "VALIDATION_ERROR"
    assert body["error"].startswith("quantity:")
    assert isinstance(body["details"], list)
    assert body["details"][0]["field"] == "quantity"
    assert body["details"][0]["message"]


def test_not_found_is_404(client):
    r = client.get(f"{API}/products/does-not-exist")
    assert r.status_code == 404
    assert r.json() == {
        "success": False,
        "error": "Product not found: does-not-exist",
        "code": "NOT_FOUND",
        "message": "Product not found: does-not-exist",
        "details": [],
        "context": {"entity": "Product", "id": "does-not-exist"},
    }


def test_duplicate_is_409(client, ids):
    r = client.post(f"{API}/products", json={"reference": "API-1"})
    assert r.status_code == 409
    body = r.json()
    assert body["code"] == "CONFLICT"
    assert body["details"] == [{"field": "reference", "message": "Product reference already exists: API-1"}]


def test_order_receive_endpoint(client, ids):
    order = client.post(
        f"{API}/orders",
        json={"productId": ids["product"], "supplierId": ids["supplier"], "quantity": 5},
    ).json()["data"]
    assert order["status"] == "PENDING"

    r = client.post(f"{API}/orders/{order['id']}/receive", json={"receivedQty": 5})
    assert r.status_code == 400
    assert r.json()["details"][0]["field"] == "destinationSiteId"

    r = client.post(
        f"{API}/orders/{order['id']}/receive",
        json={"receivedQty": 4, "condition": "NEW", "destinationSiteId": ids["site"]},
    )
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["status"] == "COMPLETED"
    assert data["quantityDelta"] == -1
    assert data["destinationSite"]["name"] == "Magasin"
    assert "orders" in r.headers["X-Invalidates"].split(",")

    movement = client.get(f"{API}/movements/{data['movementId']}").json()["data"]
    assert movement["orderId"] == order["id"]

    r = client.post(f"{API}/orders/{order['id']}/cancel")
    assert r.status_code == 409
    assert r.json()["code"] == "INVALID_STATE"


def test_pack_execute_endpoint(client, ids):
    client.post(
        f"{API}/movements",
        json={"productId": ids["product"], "type": "IN", "targetSiteId": ids["site"], "quantity": 10},
    )
    pack = client.post(
        f"{API}/packs",
        json={"name": "Sortie chantier", "type": "OUT", "items": [{"productId": ids["product"], "quantity": 3}]},
    ).json()["data"]

    r = client.post(f"{API}/packs/{pack['id']}/execute", json={"siteId": ids["site"], "quantityMultiplier": 2})
    assert r.status_code == 200
    assert [m["quantity"] for m in r.json()["data"]] == [6]

    r = client.post(f"{API}/packs/{pack['id']}/execute", json={"siteId": ids["site"], "quantityMultiplier": 2})
    assert r.status_code == 409
    assert r.json()["context"]["itemIndex"] == 0


def test_read_models_endpoint(client, ids):
    body = client.get(f"{API}/read-models").json()["data"]
    assert body["versions"]["sites"] >= 1
    assert body["affects"]["pack.write"] == ["packs"]


def test_import_and_export_endpoints(client, ids):
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        pd.DataFrame([{"Nom": "Sud Fixations", "Ville": "Marseille"}]).to_excel(
            writer, index=False, sheet_name="Fournisseurs"
        )
    xlsx = buffer.getvalue()
    files = {"file": ("fournisseurs.xlsx", xlsx, "application/octet-stream")}

    preview = client.post(f"{API}/import/preview", files=files).json()["data"]
    assert preview["sheets"]["Fournisseurs"]["rowCount"] == 1

    r = client.post(f"{API}/import", files=files)
    assert r.status_code == 200
    assert r.json()["data"]["suppliers"]["created"] == 1
    assert r.headers["X-Invalidates"].startswith("sites,suppliers")

    r = client.get(f"{API}/export/suppliers", params={"format": "csv"})
    assert r.status_code == 200
    assert "attachment" in r.headers["content-disposition"]
    assert "Sud Fixations" in r.content.decode("utf-8-sig")

    r = client.get(f"{API}/export/packs")
    assert r.status_code == 400


def test_dashboard_endpoints(client, ids):
    stats = client.get(f"{API}/dashboard/stats").json()["data"]
    assert stats["totalProducts"] == 1

    alerts = client.get(f"{API}/dashboard/low-stock-alerts", params={"threshold": 0}).json()["data"]
    assert [a["reference"] for a in alerts] == ["API-1"]

    days = client.get(f"{API}/dashboard/movements-by-day", params={"days": 7}).json()["data"]
    assert len(days) == 7


def test_taxonomy_lists_are_paginated(client):
    for name in ("Châssis", "Moteur", "Roue"):
        client.post(f"{API}/assembly-types", json={"name": name})

    body = client.get(f"{API}/assembly-types", params={"limit": 2}).json()
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "totalPages": 2}
    assert [t["name"] for t in body["data"]] == ["Châssis", "Moteur"]

    body = client.get(f"{API}/assemblies", params={"limit": 100}).json()
    assert body["data"] == []
    assert body["pagination"]["total"] == 0
    assert "pagination" in client.get(f"{API}/groups").json()


def test_assembly_membership_carries_quantity_used(client, ids):
    assembly = client.post(f"{API}/assemblies", json={"name": "Cadre"}).json()["data"]
    url = f"{API}/assemblies/{assembly['id']}/products"

    r = client.post(url, json={"productId": ids["product"], "quantityUsed": 4})
    assert r.status_code == 201
    assert r.json()["data"]["quantityUsed"] == 4

    r = client.put(f"{url}/{ids['product']}", json={"quantityUsed": 6})
    assert r.status_code == 200
    assert r.json()["data"]["quantityUsed"] == 6

    detail = client.get(f"{API}/assemblies/{assembly['id']}").json()["data"]
    assert [(p["reference"], p["quantityUsed"]) for p in detail["products"]] == [("API-1", 6)]
    assert client.get(f"{API}/products/{ids['product']}").json()["data"]["assemblyQtyUsed"] == 6

    r = client.put(f"{url}/{ids['product']}", json={"quantityUsed": 0})
    assert r.status_code == 400
    assert r.json()["details"][0]["field"] == "quantityUsed"


def test_product_reference_is_immutable(client, ids):
    url = f"{API}/products/{ids['product']}"

    # le formulaire renvoie la référence inchangée
    r = client.put(url, json={"reference": "API-1", "description": "Vis inox"})
    assert r.status_code == 200
    assert r.json()["data"]["description"] == "Vis inox"

    r = client.put(url, json={"reference": "API-2"})
    assert r.status_code == 400
    assert r.json()["details"] == [{"field": "reference", "message": "Product reference cannot be changed"}]
    assert client.get(url).json()["data"]["reference"] == "API-1"


class _FixedGeocoder:
    def __init__(self):
        self.calls = []

    def locate(self, address):
        self.calls.append(address)
        return Coordinates(43.3, 5.37)


def test_supplier_geocoding_runs_after_the_save(client):
    geocoder = _FixedGeocoder()
    client.app.dependency_overrides[get_geocoder] = lambda: geocoder

    r = client.post(f"{API}/suppliers", json={"name": "Marseille Pièces", "city": "Marseille"})

    assert r.status_code == 201
    # la réponse part avant la recherche de coordonnées
    data = r.json()["data"]
    assert data["latitude"] is None
    assert geocoder.calls == ["Marseille"]

    supplier = client.get(f"{API}/suppliers/{data['id']}").json()["data"]
    assert (supplier["latitude"], supplier["longitude"]) == (43.3, 5.37)

import pytest
from fastapi.testclient import TestClient

from fab_inventory.config import AppConfig
from fab_inventory.services import InventoryService
from fab_inventory.web.app import create_app

ADMIN = {"X-User-Role": "admin", "X-User-Id": "u-admin"}
SUPERVISOR = {"X-User-Role": "supervisor", "X-User-Id": "u-super"}
PRODUCTION = {"X-User-Role": "production", "X-User-Id": "u-prod"}
SALES = {"X-User-Role": "sales", "X-User-Id": "u-sales"}


@pytest.fixture
def service(clock):
    # Alerts go to the built-in inbox so the notification feed has content.
    return InventoryService(clock=clock)


@pytest.fixture
def client(service):
    app = create_app(AppConfig(seed_demo_data=False), service=service)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def material_id(client):
    response = client.post(
        "/api/inventory/materials",
        json={"sku": "SKU-100", "name": "Flat bar", "unit": "m", "reorderPointQty": 5},
        headers=SUPERVISOR,
    )
    return response.json()["data"]["id"]


class TestSettingsEndpoints:
    def test_admin_reads_and_patches(self, client):
        response = client.patch(
            "/api/inventory/settings",
            json={"preset": "STRICT", "lowStockRules": {"alertCooldownMinutes": 90}},
            headers=ADMIN,
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["consumptionMode"] == "BOM_STRICT"
        assert data["lowStockRules"]["alertCooldownMinutes"] == 90
        assert data["lowStockRules"]["alertOnNegative"] is True
        assert client.get("/api/inventory/settings", headers=ADMIN).json()["data"][
            "preset"
        ] == "STRICT"

    def test_malformed_section_is_ignored(self, client):
        response = client.patch(
            "/api/inventory/settings",
            json={"preset": "STRICT", "qtyPrecision": 5, "permissions": ["x"]},
            headers=ADMIN,
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["consumptionMode"] == "BOM_STRICT"
        assert data["qtyPrecision"]["maxDecimals"] == 3


    def test_non_admin_forbidden(self, client):
        response = client.get("/api/inventory/settings", headers=SUPERVISOR)

        assert response.status_code == 403
        assert response.json() == {
            "ok": False,
            "error": {
                "code": "FORBIDDEN",
                "message": "Role 'supervisor' may not perform this action",
                "entity": "role",
            },
        }


class TestMaterialEndpoints:
    def test_create_and_fetch(self, client, material_id):
        response = client.get(f"/api/inventory/materials/{material_id}", headers=SALES)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["sku"] == "SKU-100"
        assert data["onHandQty"] == 0
        assert data["lowStock"] == {"isLow": False, "lastAlertAt": None, "lastAlertQty": None}
        assert data["createdBy"] == "u-super"

    def test_duplicate_sku_conflicts(self, client, material_id):
        response = client.post(
            "/api/inventory/materials",
            json={"sku": "SKU-100", "name": "Again", "unit": "m"},
            headers=ADMIN,
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CONFLICT"

    def test_missing_fields_rejected(self, client):
        response = client.post(
            "/api/inventory/materials", json={"sku": "SKU-1"}, headers=ADMIN
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_spec_keys_kept_verbatim(self, client):
        response = client.post(
            "/api/inventory/materials",
            json={"sku": "S-1", "name": "Sheet", "unit": "kg", "spec": {"thickness_mm": 3}},
            headers=ADMIN,
        )

        assert response.json()["data"]["spec"] == {"thickness_mm": 3}

    def test_patch_and_list(self, client, material_id):
        client.patch(
            f"/api/inventory/materials/{material_id}",
            json={"name": "Flat bar 40x8"},
            headers=ADMIN,
        )

        response = client.get("/api/inventory/materials?q=40x8", headers=PRODUCTION)

        data = response.json()["data"]
        assert data["total"] == 1
        assert data["page"] == 0
        assert data["items"][0]["name"] == "Flat bar 40x8"

    def test_unknown_material(self, client):
        response = client.get("/api/inventory/materials/missing", headers=ADMIN)

        assert response.status_code == 404
        assert response.json()["error"]["entity"] == "material"


class TestStockEndpoints:
    def test_receive_adjust_and_ledger(self, client, material_id):
        received = client.post(
            f"/api/inventory/materials/{material_id}/receive",
            json={"qty": 10, "unitCost": 6.4},
            headers=SUPERVISOR,
        )
        adjusted = client.post(
            f"/api/inventory/materials/{material_id}/adjust",
            json={"qtyDelta": -1.5, "notes": "Offcut scrapped"},
            headers=ADMIN,
        )

        assert received.status_code == 201
        assert adjusted.json()["data"]["material"]["onHandQty"] == 8.5
        ledger = client.get(
            f"/api/inventory/materials/{material_id}/ledger", headers=SALES
        ).json()["data"]
        assert [entry["type"] for entry in ledger] == ["ADJUSTMENT", "RECEIPT"]
        assert ledger[0]["balanceAfter"] == 8.5
        assert ledger[1]["ref"]["entityType"] == "manual"

    def test_production_receive_needs_permission(self, client, material_id):
        denied = client.post(
            f"/api/inventory/materials/{material_id}/receive",
            json={"qty": 1},
            headers=PRODUCTION,
        )
        client.patch(
            "/api/inventory/settings",
            json={"permissions": {"productionCanReceive": True}},
            headers=ADMIN,
        )
        allowed = client.post(
            f"/api/inventory/materials/{material_id}/receive",
            json={"qty": 1},
            headers=PRODUCTION,
        )

        assert denied.status_code == 403
        assert allowed.status_code == 201

    def test_sales_cannot_adjust(self, client, material_id):
        response = client.post(
            f"/api/inventory/materials/{material_id}/adjust",
            json={"qtyDelta": 1},
            headers=SALES,
        )

        assert response.status_code == 403

    def test_zero_delta_rejected(self, client, material_id):
        response = client.post(
            f"/api/inventory/materials/{material_id}/adjust",
            json={"qtyDelta": 0.0001},
            headers=ADMIN,
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


class TestOrderEndpoints:
    def test_bom_and_consumption(self, client, service, order, material_id):
        assert client.get(f"/api/inventory/orders/{order.id}/bom", headers=SALES).json() == {
            "ok": True,
            "data": None,
        }

        bom = client.patch(
            f"/api/inventory/orders/{order.id}/bom",
            json={"status": "locked", "lines": [{"materialId": material_id, "plannedQty": 6}]},
            headers=SUPERVISOR,
        ).json()["data"]
        assert bom["status"] == "locked"
        assert bom["lines"][0]["materialSnapshot"]["sku"] == "SKU-100"

        consumed = client.post(
            f"/api/inventory/orders/{order.id}/consume",
            json={"items": [{"materialId": material_id, "qty": 2}]},
            headers=PRODUCTION,
        )

        assert consumed.status_code == 201
        data = consumed.json()["data"]
        assert data["mode"] == "BOM_ASSISTED"
        assert data["orderNumber"] == "WO-1042"
        assert data["items"][0]["material"]["onHandQty"] == -2
        assert data["bom"]["lines"][0]["consumedQty"] == 2

    def test_strict_mode_error_code(self, client, order, material_id):
        client.patch("/api/inventory/settings", json={"preset": "STRICT"}, headers=ADMIN)

        response = client.post(
            f"/api/inventory/orders/{order.id}/consume",
            json={"items": [{"materialId": material_id, "qty": 1}]},
            headers=SUPERVISOR,
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "BOM_LINE_REQUIRED"

    def test_production_consume_can_be_revoked(self, client, order, material_id):
        client.patch(
            "/api/inventory/settings",
            json={"permissions": {"productionCanConsume": False}},
            headers=ADMIN,
        )

        response = client.post(
            f"/api/inventory/orders/{order.id}/consume",
            json={"items": [{"materialId": material_id, "qty": 1}]},
            headers=PRODUCTION,
        )

        assert response.status_code == 403


class TestNotificationEndpoints:
    def test_feed_and_mark_read(self, client, material_id):
        client.post(
            f"/api/inventory/materials/{material_id}/receive",
            json={"qty": 2},
            headers=ADMIN,
        )

        feed = client.get("/api/inventory/notifications", headers=SUPERVISOR).json()["data"]
        assert feed["unreadCount"] == 1
        notification = feed["items"][0]
        assert notification["title"] == "Low stock: SKU-100"

        client.post(
            f"/api/inventory/notifications/{notification['id']}/read", headers=SUPERVISOR
        )
        feed = client.get("/api/inventory/notifications", headers=SUPERVISOR).json()["data"]
        assert feed["unreadCount"] == 0
        sales_feed = client.get("/api/inventory/notifications", headers=SALES).json()["data"]
        assert sales_feed["items"] == []


class TestHtmlOverview:
    def test_overview_and_receive_form(self, client, material_id):
        page = client.get("/")
        assert page.status_code == 200
        assert "SKU-100" in page.text

        response = client.post(
            f"/materials/{material_id}/receive",
            data={"qty": "4", "notes": "Counter"},
            follow_redirects=False,
        )

        assert response.status_code == 303
        assert response.headers["location"] == "/"

    def test_form_error_redirects_with_message(self, client, material_id):
        response = client.post(
            f"/materials/{material_id}/adjust",
            data={"qty_delta": "0"},
            follow_redirects=False,
        )

        assert response.status_code == 303
        assert response.headers["location"].startswith("/?error=")

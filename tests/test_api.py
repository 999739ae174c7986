"""
HTTP tests for contacts, orders, deliveries, dashboard stats and health.
"""

from unittest.mock import patch

import pytest

from bizdash.errors import Unavailable
from bizdash.models import Order


def _order_payload(contact_id: int, **overrides) -> dict:
    payload = {
        "contactId": contact_id,
        "orderDate": "2024-03-10T09:30:00",
        "netTotal": "1000",
        "vatTotal": "270",
        "grossTotal": "1270",
        "items": [{"productId": 1, "quantity": 2, "price": "500", "vatRate": "27", "vatAmount": "270"}],
        "invoiceNumber": "INV-2024-001",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def contact_id(auth_client):
    response = auth_client.post(
        "/api/contacts", json={"name": "Kovács Kft.", "type": "customer", "email": "info@kovacs.hu"}
    )
    assert response.status_code == 201
    return response.get_json()["id"]


class TestContactsApi:
    def test_create_and_list(self, auth_client, contact_id):
        contacts = auth_client.get("/api/contacts").get_json()

        assert len(contacts) == 1
        assert contacts[0]["id"] == contact_id
        assert contacts[0]["type"] == "customer"
        assert contacts[0]["email"] == "info@kovacs.hu"
        assert contacts[0]["totalOrders"] == 0

    def test_invalid_type(self, auth_client):
        response = auth_client.post("/api/contacts", json={"name": "X", "type": "partner"})

        assert response.status_code == 400
        error = response.get_json()["errors"][0]
        assert (error["field"], error["code"]) == ("type", "invalid_format")

    def test_aggregates_follow_orders(self, auth_client, contact_id):
        auth_client.post("/api/orders", json=_order_payload(contact_id, status="completed"))
        auth_client.post("/api/orders", json=_order_payload(contact_id, orderDate="2024-04-01T10:00:00"))
        auth_client.post("/api/orders", json=_order_payload(contact_id, status="cancelled", orderDate="2024-05-01T10:00:00"))

        contact = auth_client.get(f"/api/contacts/{contact_id}").get_json()

        assert contact["totalOrders"] == 2
        assert contact["totalSpent"] == "2540.00"
        assert contact["lastOrderDate"] == "2024-04-01T10:00:00"

    def test_update_rating(self, auth_client, contact_id):
        response = auth_client.patch(f"/api/contacts/{contact_id}", json={"rating": 4, "phone": "+36 1 234 5678"})

        assert response.status_code == 200
        assert response.get_json()["rating"] == 4
        assert response.get_json()["phone"] == "+36 1 234 5678"

    def test_delete_contact_with_orders_conflicts(self, auth_client, contact_id):
        auth_client.post("/api/orders", json=_order_payload(contact_id))

        response = auth_client.delete(f"/api/contacts/{contact_id}")

        assert response.status_code == 409
        assert response.get_json() == {"message": "Contact is referenced by orders or deliveries"}

    def test_delete_supplier_with_deliveries_conflicts(self, auth_client, contact_id):
        auth_client.post("/api/deliveries", json={"supplierId": contact_id, "expectedDate": "2024-07-01T08:00:00"})

        response = auth_client.delete(f"/api/contacts/{contact_id}")

        assert response.status_code == 409
        assert response.get_json() == {"message": "Contact is referenced by orders or deliveries"}
        assert len(auth_client.get("/api/deliveries").get_json()) == 1
        assert auth_client.get(f"/api/contacts/{contact_id}").status_code == 200


class TestOrdersApi:
    def test_create(self, auth_client, contact_id):
        response = auth_client.post("/api/orders", json=_order_payload(contact_id))

        assert response.status_code == 201
        body = response.get_json()
        assert body["status"] == "pending"
        assert body["grossTotal"] == "1270"
        assert body["orderDate"] == "2024-03-10T09:30:00"
        assert body["items"][0] == {
            "productId": 1,
            "quantity": 2,
            "price": "500",
            "vatRate": "27",
            "vatAmount": "270",
        }

    def test_order_date_defaults_to_now(self, auth_client, contact_id):
        payload = _order_payload(contact_id)
        del payload["orderDate"]

        body = auth_client.post("/api/orders", json=payload).get_json()

        assert body["orderDate"] is not None

    def test_totals_mismatch(self, auth_client, contact_id):
        response = auth_client.post("/api/orders", json=_order_payload(contact_id, grossTotal="1300"))

        assert response.status_code == 400
        assert response.get_json()["errors"][0]["field"] == "grossTotal"
        assert Order.query.count() == 0

    def test_unknown_contact(self, auth_client):
        response = auth_client.post("/api/orders", json=_order_payload(999))

        assert response.status_code == 409
        assert response.get_json() == {"message": "Referenced contact does not exist"}
        assert Order.query.count() == 0

    def test_patch_breaking_totals(self, auth_client, contact_id):
        order = auth_client.post("/api/orders", json=_order_payload(contact_id)).get_json()

        response = auth_client.patch(f"/api/orders/{order['id']}", json={"vatTotal": "300"})

        assert response.status_code == 400
        assert auth_client.get(f"/api/orders/{order['id']}").get_json()["vatTotal"] == "270"

    def test_patch_status(self, auth_client, contact_id):
        order = auth_client.post("/api/orders", json=_order_payload(contact_id)).get_json()

        response = auth_client.patch(f"/api/orders/{order['id']}", json={"status": "completed"})

        assert response.status_code == 200
        assert response.get_json()["status"] == "completed"

    def test_list_newest_first(self, auth_client, contact_id):
        auth_client.post("/api/orders", json=_order_payload(contact_id, invoiceNumber="OLD"))
        auth_client.post(
            "/api/orders", json=_order_payload(contact_id, invoiceNumber="NEW", orderDate="2024-06-01T00:00:00")
        )

        orders = auth_client.get("/api/orders").get_json()

        assert [o["invoiceNumber"] for o in orders] == ["NEW", "OLD"]


class TestDeliveriesApi:
    def test_crud(self, auth_client, contact_id):
        created = auth_client.post(
            "/api/deliveries",
            json={
                "supplierId": contact_id,
                "expectedDate": "2024-07-01T08:00:00",
                "items": [{"productId": 1, "quantity": 10, "price": "250"}],
            },
        )
        assert created.status_code == 201
        delivery = created.get_json()
        assert delivery["status"] == "pending"
        assert delivery["items"] == [{"productId": 1, "quantity": 10, "price": "250"}]

        updated = auth_client.patch(f"/api/deliveries/{delivery['id']}", json={"status": "in_transit"})
        assert updated.get_json()["status"] == "in_transit"

        assert auth_client.delete(f"/api/deliveries/{delivery['id']}").status_code == 204
        assert auth_client.get(f"/api/deliveries/{delivery['id']}").status_code == 404

    def test_unknown_supplier(self, auth_client):
        response = auth_client.post("/api/deliveries", json={"supplierId": 999, "expectedDate": "2024-07-01T08:00:00"})

        assert response.status_code == 409
        assert response.get_json() == {"message": "Referenced supplier does not exist"}

    def test_item_missing_price(self, auth_client, contact_id):
        response = auth_client.post(
            "/api/deliveries",
            json={"supplierId": contact_id, "expectedDate": "2024-07-01T08:00:00", "items": [{"productId": 1, "quantity": 1}]},
        )

        assert response.status_code == 400
        assert response.get_json()["errors"][0]["field"] == "items.0.price"

    def test_unknown_status(self, auth_client, contact_id):
        response = auth_client.post(
            "/api/deliveries",
            json={"supplierId": contact_id, "expectedDate": "2024-07-01T08:00:00", "status": "lost"},
        )

        assert response.status_code == 400


class TestDashboardAndHealth:
    def test_stats(self, auth_client, contact_id, vat_rate):
        auth_client.post(
            "/api/products",
            json={"name": "W", "sku": "W", "price": "1", "vatRateId": vat_rate.id, "stockLevel": 0},
        )
        auth_client.post("/api/orders", json=_order_payload(contact_id, status="completed"))

        stats = auth_client.get("/api/dashboard/stats").get_json()

        assert stats == {
            "productCount": 1,
            "lowStockCount": 1,
            "contactCount": 1,
            "orderCount": 1,
            "revenue": "1270.00",
            "openDeliveries": 0,
        }

    def test_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.get_json() == {"status": "ok"}

    def test_health_when_database_is_down(self, client, storage):
        with patch.object(storage, "ping", side_effect=Unavailable()):
            response = client.get("/api/health")

        assert response.status_code == 503
        assert response.get_json() == {"message": "Storage is temporarily unavailable"}

    def test_unknown_route_is_json(self, client):
        response = client.get("/api/nothing-here")

        assert response.status_code == 404
        assert "message" in response.get_json()

    def test_unexpected_error_is_500_without_details(self, auth_client, storage):
        with patch.object(storage.products, "get_all", side_effect=RuntimeError("secret driver text")):
            response = auth_client.get("/api/products")

        assert response.status_code == 500
        assert response.get_json() == {"message": "Internal server error"}

"""Integration tests for POST /checkout."""
from datetime import timedelta

from fastapi.testclient import TestClient

from src.marketplace.models import OrderStatus, ProductStatus
from src.marketplace.services import inventory

ADDRESS = {
    "name": "Jane Doe",
    "street1": "1 Main St",
    "city": "New York",
    "state": "NY",
    "postal_code": "10001",
    "country": "US",
}


class TestCheckoutAPI:
    """Checkout in demo mode (no provider key configured)."""

    def test_requires_session(self, client, data):
        product = data.product()
        response = client.post("/checkout", json={"product_id": product.id, "shipping_address": ADDRESS})
        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "UNAUTHORIZED"
        assert body["error"]["type"] == "UnauthorizedError"

    def test_demo_checkout_confirms_order(self, client_for, data):
        buyer = data.user()
        product = data.product(price_cents=200000)

        response = client_for(buyer).post(
            "/checkout", json={"product_id": product.id, "shipping_address": ADDRESS}
        )

        assert response.status_code == 201
        body = response.json()
        assert body["is_demo"] is True
        assert body["session_id"] == f"demo_session_{body['order']['id']}"
        assert body["checkout_url"].endswith(f"order={body['order']['order_number']}&demo=true")
        assert body["order"]["status"] == "CONFIRMED"
        assert body["order"]["payment_status"] == "CAPTURED"
        assert body["order"]["platform_fee_cents"] == 20000
        assert body["order"]["shipping_address"]["postal_code"] == "10001"
        assert data.repos().products.get(product.id).status == ProductStatus.SOLD

    def test_sold_item_conflicts(self, client_for, data):
        product = data.product()
        client_for(data.user()).post("/checkout", json={"product_id": product.id, "shipping_address": ADDRESS})

        response = client_for(data.user()).post(
            "/checkout", json={"product_id": product.id, "shipping_address": ADDRESS}
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CONFLICT"
        assert len(data.repos().orders.find(status=OrderStatus.CONFIRMED)) == 1

    def test_item_reserved_by_someone_else(self, client_for, data):
        holder = data.user()
        product = data.product()

        inventory.reserve(data.repos(), product.id, holder.id, timedelta(minutes=15))

        response = client_for(data.user()).post(
            "/checkout", json={"product_id": product.id, "shipping_address": ADDRESS}
        )

        assert response.status_code == 409
        assert "reserved by another buyer" in response.json()["error"]["message"]

    def test_unknown_product(self, client_for, data):
        response = client_for(data.user()).post("/checkout", json={"product_id": 999, "shipping_address": ADDRESS})
        assert response.status_code == 404
        assert response.json()["error"]["message"] == "Product not found"

    def test_invalid_address_is_400(self, client_for, data):
        product = data.product()
        response = client_for(data.user()).post(
            "/checkout", json={"product_id": product.id, "shipping_address": {"name": "Jane"}}
        )
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert "shipping_address.street1" in error["details"]["fields"]

    def test_tampered_session_cookie(self, app, settings, data):
        with TestClient(app, cookies={settings.session_cookie_name: "not-a-jwt"}) as c:
            response = c.post("/checkout", json={"product_id": data.product().id, "shipping_address": ADDRESS})
        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid or expired session"

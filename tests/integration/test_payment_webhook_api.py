"""Integration tests for POST /webhooks/payment."""
import time
from datetime import timedelta

import pytest

from src.marketplace.models import OrderStatus, PaymentStatus, ProductStatus
from src.marketplace.services import inventory


@pytest.fixture
def pending(data):
    """A product reserved by a buyer with a PENDING order awaiting payment."""
    buyer = data.user()
    product = data.product()
    inventory.reserve(data.repos(), product.id, buyer.id, timedelta(minutes=15))
    order = data.order(buyer, product, payment_session_id="cs_test_1")
    return order


def session_event(event_id, event_type, order, **obj):
    return {
        "id": event_id,
        "type": event_type,
        "data": {
            "object": {
                "id": order.payment_session_id,
                "metadata": {"orderId": str(order.id), "orderNumber": order.order_number},
                **obj,
            }
        },
    }


class TestSignature:
    """Only signed deliveries are processed."""

    def test_missing_header(self, client):
        response = client.post("/webhooks/payment", content=b"{}")
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Invalid signature"

    def test_wrong_secret(self, post_event, pending, data):
        response = post_event(
            session_event("evt_bad", "checkout.session.completed", pending), secret="whsec_other"
        )
        assert response.status_code == 400
        assert data.repos().orders.get(pending.id).status == OrderStatus.PENDING

    def test_stale_timestamp(self, post_event, pending):
        response = post_event(
            session_event("evt_old", "checkout.session.completed", pending),
            timestamp=int(time.time()) - 3600,
        )
        assert response.status_code == 400


class TestPaymentEvents:
    """Event handling through the HTTP surface."""

    def test_completed_confirms_and_sells(self, post_event, pending, data):
        response = post_event(
            session_event("evt_1", "checkout.session.completed", pending, payment_intent="pi_1")
        )

        assert response.status_code == 200
        assert response.json() == {"received": True, "status": "processed"}
        repos = data.repos()
        order = repos.orders.get(pending.id)
        assert order.status == OrderStatus.CONFIRMED
        assert order.payment_status == PaymentStatus.CAPTURED
        assert order.payment_intent_id == "pi_1"
        assert repos.products.get(pending.product_id).status == ProductStatus.SOLD

    def test_redelivery_is_duplicate(self, post_event, pending, data):
        event = session_event("evt_1", "checkout.session.completed", pending, payment_intent="pi_1")
        post_event(event)

        response = post_event(event)

        assert response.json()["status"] == "duplicate"
        assert data.repos().webhook_events.count() == 1

    def test_expired_releases_reservation(self, post_event, pending, data):
        response = post_event(session_event("evt_2", "checkout.session.expired", pending))

        assert response.json()["status"] == "processed"
        repos = data.repos()
        assert repos.orders.get(pending.id).status == OrderStatus.CANCELLED
        product = repos.products.get(pending.product_id)
        assert product.status == ProductStatus.ACTIVE
        assert product.reserved_by is None
        assert product.reserved_until is None

    def test_expiry_after_completion_changes_nothing(self, post_event, pending, data):
        post_event(session_event("evt_1", "checkout.session.completed", pending, payment_intent="pi_1"))
        post_event(session_event("evt_2", "checkout.session.expired", pending))

        repos = data.repos()
        assert repos.orders.get(pending.id).status == OrderStatus.CONFIRMED
        assert repos.products.get(pending.product_id).status == ProductStatus.SOLD

    def test_unknown_event_type_is_acknowledged(self, post_event, data):
        response = post_event({"id": "evt_x", "type": "customer.created", "data": {"object": {}}})

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"
        assert data.repos().webhook_events.count() == 0

    def test_unknown_order_is_ignored(self, post_event):
        event = {
            "id": "evt_3",
            "type": "checkout.session.completed",
            "data": {"object": {"id": "cs_x", "metadata": {"orderId": "424242"}}},
        }
        assert post_event(event).json()["status"] == "ignored"

    def test_refund_of_delivered_order(self, post_event, data):
        buyer = data.user()
        order = data.delivered_order(buyer, data.product(status=ProductStatus.SOLD), days_ago=1)
        event = {
            "id": "evt_4",
            "type": "charge.refunded",
            "data": {"object": {"id": "ch_1", "metadata": {"orderId": str(order.id)}}},
        }

        assert post_event(event).json()["status"] == "processed"
        refunded = data.repos().orders.get(order.id)
        assert refunded.status == OrderStatus.REFUNDED
        assert refunded.payment_status == PaymentStatus.REFUNDED

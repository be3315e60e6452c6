"""Pytest fixtures for integration tests."""
import dataclasses
import hashlib
import hmac
import json
import time
from contextlib import ExitStack
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from src.marketplace import models
from src.marketplace.auth import create_session_token
from src.marketplace.config import get_settings
from src.marketplace.database import MemoryBackend, SqlBackend, make_engine
from src.marketplace.main import create_app
from src.marketplace.models import OrderStatus, PaymentStatus, ProductStatus, StoreType, UserRole
from src.marketplace.utils import utcnow

WEBHOOK_SECRET = "whsec_test_secret"
CRON_SECRET = "cron-test-secret"
JWT_SECRET = "integration-jwt-secret-0123456789abcdef"


@pytest.fixture
def settings():
    return dataclasses.replace(
        get_settings(),
        environment="test",
        app_url="http://testserver",
        stripe_secret_key="",
        stripe_webhook_secret=WEBHOOK_SECRET,
        cron_secret=CRON_SECRET,
        jwt_secret=JWT_SECRET,
        smtp_host="",
    )


@pytest.fixture(params=["sql", "memory"])
def backend(request):
    if request.param == "memory":
        return MemoryBackend()
    return SqlBackend(make_engine("sqlite:///:memory:"))


@pytest.fixture
def app(settings, backend):
    return create_app(settings=settings, backend=backend)


@pytest.fixture
def client(app):
    """Anonymous client."""
    with TestClient(app) as c:
        yield c


@pytest.fixture
def client_for(app, settings):
    """Build a client carrying a session cookie for `user`."""
    clients = []

    def factory(user, store_id=None):
        token = create_session_token(user, settings.jwt_secret, store_id=store_id)
        c = TestClient(app, cookies={settings.session_cookie_name: token})
        clients.append(c)
        return c

    yield factory
    for c in clients:
        c.close()


class DataHelper:
    """Direct data access for arranging and checking state.

    Every `repos()` call opens a fresh session so reads see what the app
    committed.
    """

    def __init__(self, backend):
        self.backend = backend
        self._stack = ExitStack()
        self._n = 0

    def repos(self):
        return self._stack.enter_context(self.backend.repositories())

    def close(self):
        self._stack.close()

    def _next(self):
        self._n += 1
        return self._n

    def user(self, role=UserRole.BUYER):
        n = self._next()
        return self.repos().users.add(
            models.User(email=f"person{n}@example.com", name=f"Person {n}", role=role, created_at=utcnow())
        )

    def store(self, owner=None, take_rate=0.10):
        n = self._next()
        owner = owner or self.user(UserRole.STORE_ADMIN)
        return self.repos().stores.add(
            models.Store(
                slug=f"boutique-{n}",
                name=f"Boutique {n}",
                owner_id=owner.id,
                store_type=StoreType.PARTNER,
                take_rate=take_rate,
                stripe_connect_id=f"acct_{n}",
                created_at=utcnow(),
            )
        )

    def product(self, store=None, price_cents=200000, status=ProductStatus.ACTIVE):
        n = self._next()
        store = store or self.store()
        now = utcnow()
        return self.repos().products.add(
            models.Product(
                store_id=store.id,
                sku=f"INT-{n:04d}",
                title="Speedy 30",
                brand="Louis Vuitton",
                description="Monogram canvas.",
                price_cents=price_cents,
                status=status,
                created_at=now,
                updated_at=now,
            )
        )

    def order(self, buyer, product, status=OrderStatus.PENDING, **kw):
        n = self._next()
        now = utcnow()
        fields = dict(
            order_number=f"COV-INT-{n:04d}",
            buyer_id=buyer.id,
            store_id=product.store_id,
            product_id=product.id,
            product_title=f"{product.brand} - {product.title}",
            product_sku=product.sku,
            subtotal_cents=product.price_cents,
            shipping_cents=0,
            tax_cents=0,
            total_cents=product.price_cents,
            platform_fee_cents=product.price_cents // 10,
            status=status,
            payment_status=PaymentStatus.CAPTURED if status != OrderStatus.PENDING else PaymentStatus.PENDING,
            shipping_address={"name": buyer.name},
            created_at=now,
            updated_at=now,
        )
        fields.update(kw)
        return self.repos().orders.add(models.Order(**fields))

    def delivered_order(self, buyer, product, days_ago):
        delivered_at = utcnow() - timedelta(days=days_ago)
        return self.order(
            buyer, product, OrderStatus.DELIVERED,
            delivered_at=delivered_at, dispute_deadline=delivered_at + timedelta(days=14),
        )


@pytest.fixture
def data(backend):
    d = DataHelper(backend)
    yield d
    d.close()


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp=None) -> str:
    """Provider-style signature header: t=<unix>,v1=<hex hmac of "t.payload">."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.".encode("utf-8") + payload
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


@pytest.fixture
def post_event(client):
    """Sign and deliver a webhook event."""
    def send(event, secret=WEBHOOK_SECRET, timestamp=None):
        body = json.dumps(event).encode("utf-8")
        return client.post(
            "/webhooks/payment",
            content=body,
            headers={"Stripe-Signature": sign_payload(body, secret, timestamp), "Content-Type": "application/json"},
        )
    return send

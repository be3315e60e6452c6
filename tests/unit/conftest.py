"""Pytest fixtures for unit tests.

Service tests run once per store backend: SQLite in memory and the
dict-backed memory store must behave identically.
"""
import dataclasses
from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from src.marketplace import models
from src.marketplace.config import get_settings
from src.marketplace.models import Base, OrderStatus, PaymentStatus, ProductStatus, StoreType, UserRole
from src.marketplace.notifications import Notifier
from src.marketplace.payments import CheckoutSession, PaymentGateway, PaymentProviderError
from src.marketplace.repositories import MemoryRepositories, SqlRepositories

NOW = datetime(2026, 3, 1, 12, 0, 0)


@pytest.fixture
def now():
    return NOW


@pytest.fixture(params=["sql", "memory"])
def repos(request):
    """Repositories for one backend."""
    if request.param == "memory":
        yield MemoryRepositories()
        return
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = SessionLocal()
    yield SqlRepositories(session)
    session.close()
    engine.dispose()


@pytest.fixture
def settings():
    return dataclasses.replace(
        get_settings(),
        environment="test",
        app_url="http://testserver",
        stripe_secret_key="",
        stripe_webhook_secret="whsec_test",
        smtp_host="",
        reservation_minutes=15,
        checkout_session_minutes=30,
        payout_hold_days=7,
        dispute_window_days=14,
    )


class RecordingNotifier(Notifier):
    """Collects emails instead of sending them; can be told to fail."""

    def __init__(self, settings, fail=False):
        super().__init__(settings)
        self.sent = []
        self.fail = fail

    def send_email(self, *, to_email, subject, body):
        if self.fail:
            raise ConnectionRefusedError("smtp down")
        self.sent.append({"to": to_email, "subject": subject, "body": body})


class FakeGateway(PaymentGateway):
    """Provider double for the non-demo paths."""

    def __init__(self, settings, fail_checkout=False, failing_stores=()):
        super().__init__(dataclasses.replace(settings, stripe_secret_key="sk_test_fake"))
        self.fail_checkout = fail_checkout
        self.failing_stores = set(failing_stores)
        self.sessions = []
        self.transfers = []

    def create_checkout_session(self, *, order, product, buyer_email, metadata, success_url, cancel_url):
        if self.fail_checkout:
            raise PaymentProviderError("card network unavailable")
        self.sessions.append({"order_id": order.id, "metadata": metadata})
        return CheckoutSession(id=f"cs_test_{order.id}", url=f"https://pay.example/cs_test_{order.id}")

    def create_transfer(self, *, store, amount_cents, metadata, idempotency_key=None):
        if store.id in self.failing_stores:
            raise PaymentProviderError("account restricted")
        if not store.stripe_connect_id:
            raise PaymentProviderError(f"store {store.id} has no connected payout account")
        self.transfers.append(
            {"store_id": store.id, "amount_cents": amount_cents, "metadata": metadata, "idempotency_key": idempotency_key}
        )
        return f"tr_{store.id}_{len(self.transfers)}"


@pytest.fixture
def notifier(settings):
    return RecordingNotifier(settings)


@pytest.fixture
def demo_gateway(settings):
    return PaymentGateway(settings)


@pytest.fixture
def gateway(settings):
    return FakeGateway(settings)


class Seeder:
    """Builds fully populated rows with sensible defaults."""

    def __init__(self, repos):
        self.repos = repos
        self._n = 0

    def _next(self):
        self._n += 1
        return self._n

    def user(self, role=UserRole.BUYER, **kw):
        n = self._next()
        return self.repos.users.add(
            models.User(
                email=kw.pop("email", f"user{n}@example.com"),
                name=kw.pop("name", f"User {n}"),
                role=role,
                created_at=NOW,
                **kw,
            )
        )

    def store(self, owner=None, store_type=StoreType.PARTNER, take_rate=0.10, **kw):
        n = self._next()
        owner = owner or self.user(UserRole.STORE_ADMIN)
        return self.repos.stores.add(
            models.Store(
                slug=kw.pop("slug", f"store-{n}"),
                name=kw.pop("name", f"Store {n}"),
                owner_id=owner.id,
                store_type=store_type,
                take_rate=take_rate,
                stripe_connect_id=kw.pop("stripe_connect_id", f"acct_{n}"),
                created_at=NOW,
                **kw,
            )
        )

    def product(self, store=None, price_cents=200000, status=ProductStatus.ACTIVE, **kw):
        n = self._next()
        store = store or self.store()
        return self.repos.products.add(
            models.Product(
                store_id=store.id,
                sku=kw.pop("sku", f"SKU-{n:04d}"),
                title=kw.pop("title", "Classic Flap Bag"),
                brand=kw.pop("brand", "Chanel"),
                description=kw.pop("description", "Caviar leather, gold hardware."),
                price_cents=price_cents,
                original_price_cents=kw.pop("original_price_cents", None),
                status=status,
                reserved_by=kw.pop("reserved_by", None),
                reserved_until=kw.pop("reserved_until", None),
                created_at=NOW,
                updated_at=NOW,
            )
        )

    def order(
        self,
        buyer=None,
        product=None,
        status=OrderStatus.PENDING,
        payment_status=PaymentStatus.PENDING,
        platform_fee_cents=None,
        **kw,
    ):
        n = self._next()
        buyer = buyer or self.user()
        product = product or self.product()
        total = product.price_cents
        return self.repos.orders.add(
            models.Order(
                order_number=f"COV-TEST-{n:04d}",
                buyer_id=buyer.id,
                store_id=product.store_id,
                product_id=product.id,
                product_title=f"{product.brand} - {product.title}",
                product_sku=product.sku,
                subtotal_cents=total,
                shipping_cents=0,
                tax_cents=0,
                total_cents=total,
                platform_fee_cents=total // 10 if platform_fee_cents is None else platform_fee_cents,
                status=status,
                payment_status=payment_status,
                shipping_address={"name": buyer.name, "city": "New York"},
                created_at=NOW,
                updated_at=NOW,
                **kw,
            )
        )

    def delivered_order(self, days_ago, **kw):
        delivered_at = NOW - timedelta(days=days_ago)
        return self.order(
            status=OrderStatus.DELIVERED,
            payment_status=PaymentStatus.CAPTURED,
            delivered_at=delivered_at,
            dispute_deadline=delivered_at + timedelta(days=14),
            **kw,
        )


@pytest.fixture
def seed(repos):
    return Seeder(repos)


@pytest.fixture
def memory_seed():
    """Seeder over a memory store, for tests that share it across threads."""
    return Seeder(MemoryRepositories())


@pytest.fixture
def make_gateway(settings):
    """Factory for provider doubles with injected failures."""
    def factory(**kw):
        base = kw.pop("settings", settings)
        return FakeGateway(base, **kw)
    return factory


@pytest.fixture
def broken_notifier(settings):
    return RecordingNotifier(settings, fail=True)

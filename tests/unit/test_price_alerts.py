"""Unit tests for price alerts."""
import threading

import pytest

from src.marketplace.errors import ForbiddenError, NotFoundError, ValidationError
from src.marketplace.models import ProductStatus
from src.marketplace.services import alerts


class TestCreateAlert:
    """create_or_update_alert"""

    def test_create(self, repos, seed, now):
        user = seed.user()
        product = seed.product(price_cents=10000)

        alert, created = alerts.create_or_update_alert(repos, user.id, product.id, 8000, now)

        assert created is True
        assert alert.is_active is True
        assert alert.price_at_creation_cents == 10000

    def test_second_call_updates_target(self, repos, seed, now):
        user = seed.user()
        product = seed.product(price_cents=10000)
        first, _ = alerts.create_or_update_alert(repos, user.id, product.id, 8000, now)

        second, created = alerts.create_or_update_alert(repos, user.id, product.id, 7000, now)

        assert created is False
        assert second.id == first.id
        assert second.target_price_cents == 7000
        assert repos.price_alerts.count() == 1

    @pytest.mark.parametrize("target", [10000, 12000, 0, -5, 99.5, True])
    def test_rejects_invalid_targets(self, repos, seed, now, target):
        product = seed.product(price_cents=10000)
        with pytest.raises(ValidationError):
            alerts.create_or_update_alert(repos, seed.user().id, product.id, target, now)

    def test_unknown_product(self, repos, seed, now):
        with pytest.raises(NotFoundError):
            alerts.create_or_update_alert(repos, seed.user().id, 404, 100, now)

    def test_concurrent_creates_leave_one_active_alert(self, memory_seed, now):
        seed = memory_seed
        repos = seed.repos
        user = seed.user()
        product = seed.product(price_cents=10000)
        targets = [9000 - i * 100 for i in range(8)]
        start = threading.Barrier(len(targets))
        created, failures = [], []

        def attempt(target):
            start.wait()
            try:
                _, was_created = alerts.create_or_update_alert(repos, user.id, product.id, target, now)
                created.append(was_created)
            except Exception as e:
                failures.append(e)

        threads = [threading.Thread(target=attempt, args=(t,)) for t in targets]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert failures == []
        assert created.count(True) == 1
        assert repos.price_alerts.count(user_id=user.id, product_id=product.id, is_active=True) == 1

    def test_losing_the_create_race_updates_the_winner(self, repos, seed, now, monkeypatch):
        user = seed.user()
        product = seed.product(price_cents=10000)
        winner, _ = alerts.create_or_update_alert(repos, user.id, product.id, 9000, now)
        lookup = repos.price_alerts.first
        misses = []

        def stale_first(**filters):
            # the first lookup runs before the other request's insert lands
            if not misses:
                misses.append(filters)
                return None
            return lookup(**filters)

        monkeypatch.setattr(repos.price_alerts, "first", stale_first)

        alert, created = alerts.create_or_update_alert(repos, user.id, product.id, 8000, now)

        assert created is False
        assert alert.id == winner.id
        assert alert.target_price_cents == 8000
        assert repos.price_alerts.count() == 1


class TestListAndDelete:
    """list_alerts / delete_alert"""

    def test_list_includes_price_and_watchers(self, repos, seed, now):
        a, b = seed.user(), seed.user()
        product = seed.product(price_cents=10000)
        alerts.create_or_update_alert(repos, a.id, product.id, 9000, now)
        alerts.create_or_update_alert(repos, b.id, product.id, 8000, now)

        listed = alerts.list_alerts(repos, a.id)

        assert len(listed) == 1
        assert listed[0]["current_price_cents"] == 10000
        assert listed[0]["watcher_count"] == 2

    def test_delete_by_product_is_soft(self, repos, seed, now):
        user = seed.user()
        product = seed.product(price_cents=10000)
        alert, _ = alerts.create_or_update_alert(repos, user.id, product.id, 9000, now)

        alerts.delete_alert(repos, user.id, product_id=product.id, now=now)

        assert repos.price_alerts.get(alert.id).is_active is False
        assert alerts.list_alerts(repos, user.id) == []

    def test_delete_someone_elses_alert(self, repos, seed, now):
        owner, other = seed.user(), seed.user()
        alert, _ = alerts.create_or_update_alert(repos, owner.id, seed.product(price_cents=10000).id, 9000, now)
        with pytest.raises(ForbiddenError):
            alerts.delete_alert(repos, other.id, alert_id=alert.id, now=now)

    def test_delete_needs_an_id(self, repos, seed, now):
        with pytest.raises(ValidationError):
            alerts.delete_alert(repos, seed.user().id, now=now)


class TestSendPriceAlerts:
    """The price-drop notification job."""

    def test_notifies_once_when_price_drops(self, repos, seed, notifier, now):
        user = seed.user(email="watcher@example.com")
        product = seed.product(price_cents=10000)
        alerts.create_or_update_alert(repos, user.id, product.id, 9000, now)
        repos.products.update(product.id, price_cents=8500)

        first = alerts.send_price_alerts(repos, notifier, now)
        second = alerts.send_price_alerts(repos, notifier, now)

        assert first["processed"] == 1
        assert first["details"]["alerts_sent"][0]["user_email"] == "wa***@example.com"
        assert second["processed"] == 0
        assert [m["to"] for m in notifier.sent] == ["watcher@example.com"]

    def test_skips_unavailable_products(self, repos, seed, notifier, now):
        user = seed.user()
        product = seed.product(price_cents=10000)
        alerts.create_or_update_alert(repos, user.id, product.id, 9000, now)
        repos.products.update(product.id, price_cents=8000, status=ProductStatus.SOLD)

        assert alerts.send_price_alerts(repos, notifier, now)["processed"] == 0

    def test_email_failure_is_counted_and_retried_later(self, repos, seed, broken_notifier, notifier, now):
        user = seed.user()
        product = seed.product(price_cents=10000)
        alerts.create_or_update_alert(repos, user.id, product.id, 9000, now)
        repos.products.update(product.id, price_cents=9000)

        failed = alerts.send_price_alerts(repos, broken_notifier, now)
        retried = alerts.send_price_alerts(repos, notifier, now)

        assert failed["errors"] == 1
        assert failed["success"] is False
        assert retried["processed"] == 1

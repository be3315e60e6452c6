import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .. import models
from ..errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..models import ProductStatus
from ..notifications import Notifier
from ..repositories import Repositories
from ..utils import mask_email, utcnow

logger = logging.getLogger(__name__)


def _watchers(repos: Repositories, product_id: int) -> int:
    return repos.price_alerts.count(product_id=product_id, is_active=True)


def list_alerts(repos: Repositories, user_id: int) -> List[Dict[str, Any]]:
    """Active alerts for a user, newest first, with the product's current price."""
    alerts = sorted(
        repos.price_alerts.find(user_id=user_id, is_active=True),
        key=lambda a: (a.created_at, a.id),
        reverse=True,
    )
    result = []
    for alert in alerts:
        product = repos.products.get(alert.product_id)
        if product is None:
            continue
        result.append(
            {
                "id": alert.id,
                "product_id": product.id,
                "product_title": product.title,
                "product_brand": product.brand,
                "current_price_cents": product.price_cents,
                "target_price_cents": alert.target_price_cents,
                "price_at_creation_cents": alert.price_at_creation_cents,
                "watcher_count": _watchers(repos, product.id),
                "created_at": alert.created_at,
            }
        )
    return result


def create_or_update_alert(
    repos: Repositories,
    user_id: int,
    product_id: int,
    target_price_cents: int,
    now: Optional[datetime] = None,
) -> Tuple[models.PriceAlert, bool]:
    """Watch a product for a price drop. Returns (alert, created).

    A second alert for the same product replaces the target of the first.
    """
    now = now or utcnow()
    if isinstance(target_price_cents, bool) or not isinstance(target_price_cents, int) or target_price_cents <= 0:
        raise ValidationError("Valid target price is required")
    product = repos.products.get(product_id)
    if product is None:
        raise NotFoundError("Product")
    if target_price_cents >= product.price_cents:
        raise ValidationError("Target price must be less than current price")

    existing = repos.price_alerts.first(user_id=user_id, product_id=product_id, is_active=True)
    if existing is None:
        try:
            alert = repos.price_alerts.add(
                models.PriceAlert(
                    user_id=user_id,
                    product_id=product_id,
                    target_price_cents=target_price_cents,
                    price_at_creation_cents=product.price_cents,
                    is_active=True,
                    triggered_at=None,
                    created_at=now,
                    updated_at=now,
                )
            )
            return alert, True
        except ConflictError:
            # a concurrent request created it first
            existing = repos.price_alerts.first(user_id=user_id, product_id=product_id, is_active=True)
            if existing is None:
                raise

    updated = repos.price_alerts.update(existing.id, target_price_cents=target_price_cents, updated_at=now)
    return updated, False


def delete_alert(
    repos: Repositories,
    user_id: int,
    alert_id: Optional[int] = None,
    product_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> models.PriceAlert:
    """Soft delete by alert id or by product id."""
    now = now or utcnow()
    if alert_id is not None:
        alert = repos.price_alerts.get(alert_id)
        if alert is None or not alert.is_active:
            raise NotFoundError("Alert")
        if alert.user_id != user_id:
            raise ForbiddenError()
    elif product_id is not None:
        alert = repos.price_alerts.first(user_id=user_id, product_id=product_id, is_active=True)
        if alert is None:
            raise NotFoundError("Alert")
    else:
        raise ValidationError("Alert ID or Product ID is required")
    return repos.price_alerts.update(alert.id, is_active=False, updated_at=now)


def send_price_alerts(
    repos: Repositories, notifier: Notifier, now: Optional[datetime] = None
) -> Dict[str, Any]:
    """Email every user whose target price has been reached, once per alert."""
    now = now or utcnow()
    processed = errors = 0
    sent = []
    for alert in repos.price_alerts.find(is_active=True, triggered_at=None):
        product = repos.products.get(alert.product_id)
        if product is None or product.status != ProductStatus.ACTIVE:
            continue
        if product.price_cents > alert.target_price_cents:
            continue
        user = repos.users.get(alert.user_id)
        if user is None:
            continue
        try:
            notifier.price_alert(user.email, product, alert.target_price_cents)
        except Exception:
            errors += 1
            logger.exception("Failed to send price alert %s", alert.id)
            continue
        repos.price_alerts.update(alert.id, triggered_at=now, is_active=False, updated_at=now)
        processed += 1
        sent.append(
            {
                "product_sku": product.sku,
                "user_email": mask_email(user.email),
                "target_price_cents": alert.target_price_cents,
                "price_cents": product.price_cents,
            }
        )
        logger.info("Price alert %s sent for %s", alert.id, product.sku)

    return {
        "success": errors == 0,
        "processed": processed,
        "errors": errors,
        "details": {"alerts_sent": sent, "check_time": now.isoformat()},
    }

"""Payment-provider webhook processing.

Each event is recorded in the WebhookEvent ledger before its handler runs,
so a redelivered event id is acknowledged without doing any work. Handlers
also re-read the order and check its status before writing, which keeps a
replay (or an out-of-order completed/expired pair) harmless on its own.

`handle_event` never raises for business errors: the provider retries
anything that is not acknowledged, so failures are logged and reported as
"failed" while the request itself still succeeds.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from .. import models
from ..errors import AppError, ConflictError
from ..models import OrderStatus
from ..notifications import Notifier
from ..repositories import Repositories
from ..utils import utcnow
from . import checkout, inventory, orders

logger = logging.getLogger(__name__)

PROCESSED = "processed"
IGNORED = "ignored"
DUPLICATE = "duplicate"
FAILED = "failed"

LOG_ONLY_EVENTS = {"payment_intent.succeeded", "charge.dispute.created"}


def _object(event: Dict[str, Any]) -> Dict[str, Any]:
    return (event.get("data") or {}).get("object") or {}


def _metadata_order(repos: Repositories, obj: Dict[str, Any]) -> Optional[models.Order]:
    order_id = (obj.get("metadata") or {}).get("orderId")
    if not order_id:
        return None
    try:
        return repos.orders.get(int(order_id))
    except (TypeError, ValueError):
        logger.warning("Malformed orderId in webhook metadata: %r", order_id)
        return None


def _on_checkout_completed(repos, notifier, obj, now) -> str:
    order = _metadata_order(repos, obj)
    if order is None:
        logger.error("Order not found for completed checkout session %s", obj.get("id"))
        return IGNORED
    checkout.complete_payment(repos, notifier, order.id, obj.get("payment_intent"), now)
    return PROCESSED


def _on_checkout_expired(repos, notifier, obj, now) -> str:
    order = _metadata_order(repos, obj)
    if order is None:
        logger.error("Order not found for expired checkout session %s", obj.get("id"))
        return IGNORED
    if not orders.cancel_pending(repos, order.id, now):
        logger.info("Order %s is %s, ignoring expiry", order.order_number, order.status.value)
        return PROCESSED
    # a completed event may have confirmed it in between
    if orders.get_order(repos, order.id).status == OrderStatus.CANCELLED:
        inventory.release(repos, order.product_id, reserved_by=order.buyer_id, now=now)
    return PROCESSED


def _on_payment_failed(repos, notifier, obj, now) -> str:
    order = _metadata_order(repos, obj)
    if order is None:
        logger.error("Order not found for failed payment intent %s", obj.get("id"))
        return IGNORED
    orders.mark_payment_failed(repos, order.id, now)
    order = orders.get_order(repos, order.id)
    if order.status in (OrderStatus.PENDING, OrderStatus.CANCELLED):
        inventory.release(repos, order.product_id, reserved_by=order.buyer_id, now=now)
    return PROCESSED


def _on_charge_refunded(repos, notifier, obj, now) -> str:
    order = _metadata_order(repos, obj)
    if order is None and obj.get("payment_intent"):
        order = repos.orders.first(payment_intent_id=obj["payment_intent"])
    if order is None:
        logger.error("Order not found for refunded charge %s", obj.get("id"))
        return IGNORED
    orders.refund_order(repos, order.id, now)
    return PROCESSED


HANDLERS: Dict[str, Callable[..., str]] = {
    "checkout.session.completed": _on_checkout_completed,
    "checkout.session.expired": _on_checkout_expired,
    "payment_intent.payment_failed": _on_payment_failed,
    "charge.refunded": _on_charge_refunded,
}


def record_webhook_event(repos: Repositories, event_id: str, event_type: str, now: datetime) -> bool:
    """Add the event to the ledger. False means it was already there."""
    try:
        repos.webhook_events.add(
            models.WebhookEvent(event_id=event_id, event_type=event_type, received_at=now)
        )
    except ConflictError:
        return False
    return True


def handle_event(
    repos: Repositories,
    notifier: Notifier,
    event: Dict[str, Any],
    now: Optional[datetime] = None,
) -> str:
    now = now or utcnow()
    event_type = event.get("type") or ""
    event_id = event.get("id")

    handler = HANDLERS.get(event_type)
    if handler is None:
        if event_type in LOG_ONLY_EVENTS:
            logger.info("Webhook %s (%s) acknowledged", event_type, event_id)
        else:
            logger.info("Unhandled webhook event type: %s", event_type)
        return IGNORED

    ledger_entry = None
    if event_id:
        if not record_webhook_event(repos, event_id, event_type, now):
            logger.info("Duplicate webhook event %s ignored", event_id)
            return DUPLICATE
        ledger_entry = repos.webhook_events.first(event_id=event_id)

    try:
        return handler(repos, notifier, _object(event), now)
    except AppError as e:
        logger.error("Webhook %s (%s) failed: %s", event_type, event_id, e.message)
    except Exception:
        logger.exception("Webhook %s (%s) failed", event_type, event_id)
    # forget the event so a redelivery gets another chance
    if ledger_entry is not None:
        repos.webhook_events.delete(ledger_entry.id)
    return FAILED

"""Order lifecycle.

Every status change goes through `transition`, which validates the edge
against `ALLOWED_TRANSITIONS` and writes with a compare-and-set on the
status it read, so two writers racing on one order cannot both succeed.
"""
import logging
from datetime import datetime, timedelta
from typing import Dict, FrozenSet, List, Optional

from .. import models
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import OrderStatus, PaymentStatus
from ..repositories import Repositories
from ..utils import utcnow

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}

DEFAULT_CARRIER = "Other"


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def get_order(repos: Repositories, order_id: int) -> models.Order:
    order = repos.orders.get(order_id)
    if order is None:
        raise NotFoundError("Order")
    return order


def transition(
    repos: Repositories,
    order_id: int,
    target: OrderStatus,
    now: Optional[datetime] = None,
    **changes,
) -> models.Order:
    """Move an order to `target`, applying `changes` in the same write.

    Raises ValidationError for an edge not in the table (state unchanged) and
    ConflictError when another writer changed the status first.
    """
    now = now or utcnow()
    order = get_order(repos, order_id)
    current = order.status
    if not can_transition(current, target):
        raise ValidationError(f"Invalid transition from {current.value} to {target.value}")
    updated = repos.orders.update_if(
        order.id, {"status": current}, status=target, updated_at=now, **changes
    )
    if updated is None:
        raise ConflictError("Order was modified concurrently")
    logger.info("Order %s: %s -> %s", updated.order_number, current.value, target.value)
    return updated


def confirm_payment(
    repos: Repositories,
    order_id: int,
    payment_intent_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> bool:
    """PENDING -> CONFIRMED with payment CAPTURED.

    Returns False without writing when the order is no longer PENDING, which
    makes repeated confirmations harmless.
    """
    now = now or utcnow()
    order = get_order(repos, order_id)
    if order.status != OrderStatus.PENDING:
        return False
    changes = {"payment_status": PaymentStatus.CAPTURED}
    if payment_intent_id:
        changes["payment_intent_id"] = payment_intent_id
    updated = repos.orders.update_if(
        order.id,
        {"status": OrderStatus.PENDING},
        status=OrderStatus.CONFIRMED,
        updated_at=now,
        **changes,
    )
    if updated is None:
        return False
    logger.info("Order %s confirmed", updated.order_number)
    return True


def cancel_pending(repos: Repositories, order_id: int, now: Optional[datetime] = None) -> bool:
    """Cancel an order whose payment never completed. No-op once it left PENDING."""
    now = now or utcnow()
    order = get_order(repos, order_id)
    if order.status != OrderStatus.PENDING:
        return False
    updated = repos.orders.update_if(
        order.id,
        {"status": OrderStatus.PENDING},
        status=OrderStatus.CANCELLED,
        payment_status=PaymentStatus.FAILED,
        updated_at=now,
    )
    if updated is not None:
        logger.info("Order %s cancelled before payment", updated.order_number)
    return updated is not None


def hold_for_refund(
    repos: Repositories,
    order_id: int,
    payment_intent_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> bool:
    """PENDING -> CANCELLED for an order that was paid but cannot be fulfilled.

    Payment stays CAPTURED so the charge is visible for a manual refund.
    """
    now = now or utcnow()
    changes = {"payment_status": PaymentStatus.CAPTURED, "notes": "Paid after the item was sold; refund required"}
    if payment_intent_id:
        changes["payment_intent_id"] = payment_intent_id
    updated = repos.orders.update_if(
        order_id, {"status": OrderStatus.PENDING}, status=OrderStatus.CANCELLED, updated_at=now, **changes
    )
    if updated is not None:
        logger.error("Order %s paid but its item is gone; refund required", updated.order_number)
    return updated is not None


def mark_payment_failed(repos: Repositories, order_id: int, now: Optional[datetime] = None) -> bool:
    now = now or utcnow()
    order = get_order(repos, order_id)
    if order.payment_status in (PaymentStatus.CAPTURED, PaymentStatus.REFUNDED, PaymentStatus.FAILED):
        return False
    updated = repos.orders.update_if(
        order.id,
        {"payment_status": order.payment_status},
        payment_status=PaymentStatus.FAILED,
        updated_at=now,
    )
    return updated is not None


def start_processing(repos: Repositories, order_id: int, now: Optional[datetime] = None) -> models.Order:
    return transition(repos, order_id, OrderStatus.PROCESSING, now)


def ship_order(
    repos: Repositories,
    order_id: int,
    tracking_number: Optional[str],
    carrier: Optional[str] = None,
    now: Optional[datetime] = None,
) -> models.Order:
    now = now or utcnow()
    if not tracking_number or not tracking_number.strip():
        raise ValidationError("Tracking number is required to ship an order")
    return transition(
        repos,
        order_id,
        OrderStatus.SHIPPED,
        now,
        tracking_number=tracking_number.strip(),
        carrier=(carrier or DEFAULT_CARRIER).strip() or DEFAULT_CARRIER,
        shipped_at=now,
    )


def mark_delivered(
    repos: Repositories,
    order_id: int,
    dispute_window: timedelta = timedelta(days=14),
    now: Optional[datetime] = None,
) -> models.Order:
    now = now or utcnow()
    return transition(
        repos,
        order_id,
        OrderStatus.DELIVERED,
        now,
        delivered_at=now,
        dispute_deadline=now + dispute_window,
    )


def cancel_order(repos: Repositories, order_id: int, now: Optional[datetime] = None) -> models.Order:
    return transition(repos, order_id, OrderStatus.CANCELLED, now)


def refund_order(repos: Repositories, order_id: int, now: Optional[datetime] = None) -> models.Order:
    """DELIVERED -> REFUNDED. An already refunded order is returned unchanged."""
    order = get_order(repos, order_id)
    if order.status == OrderStatus.REFUNDED:
        return order
    return transition(repos, order_id, OrderStatus.REFUNDED, now, payment_status=PaymentStatus.REFUNDED)


def list_buyer_orders(repos: Repositories, buyer_id: int) -> List[models.Order]:
    return sorted(repos.orders.find(buyer_id=buyer_id), key=lambda o: o.created_at, reverse=True)


def list_store_orders(
    repos: Repositories, store_id: Optional[int], status: Optional[OrderStatus] = None
) -> List[models.Order]:
    """Orders of one store, newest first. `store_id=None` lists every store's."""
    filters = {} if store_id is None else {"store_id": store_id}
    if status is not None:
        filters["status"] = status
    return sorted(repos.orders.find(**filters), key=lambda o: o.created_at, reverse=True)

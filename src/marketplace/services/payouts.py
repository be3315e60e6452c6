"""Seller payouts for delivered orders past the dispute hold window.

An order is paid out once: a store's payout stamps `payout_id` on each of
its orders before the transfer is made, and stamped orders are never
eligible again, so running the job twice in a row pays nobody twice. A
payout that fails releases its orders and is kept as FAILED.
"""
import logging
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from .. import models
from ..models import DisputeStatus, OrderStatus, PayoutStatus
from ..payments import PaymentGateway
from ..repositories import Repositories
from ..utils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_HOLD_DAYS = 7

BLOCKING_DISPUTE_STATUSES = (
    DisputeStatus.OPEN,
    DisputeStatus.SELLER_RESPONSE,
    DisputeStatus.UNDER_REVIEW,
)


def find_eligible_orders(
    repos: Repositories, now: Optional[datetime] = None, hold_days: int = DEFAULT_HOLD_DAYS
) -> List[models.Order]:
    now = now or utcnow()
    cutoff = now - timedelta(days=hold_days)
    disputed = {
        d.order_id for d in repos.disputes.find(status=list(BLOCKING_DISPUTE_STATUSES))
    }
    return [
        order
        for order in repos.orders.find(status=OrderStatus.DELIVERED, payout_id=None)
        if order.delivered_at is not None
        and order.delivered_at < cutoff
        and order.id not in disputed
    ]


def net_payout_cents(order: models.Order) -> int:
    return order.total_cents - order.platform_fee_cents


def _stamp_orders(
    repos: Repositories, payout: models.StorePayout, store_orders: List[models.Order], now: datetime
) -> None:
    """Claim every order for `payout`, or none of them."""
    stamped = []
    try:
        for order in store_orders:
            if repos.orders.update_if(order.id, {"payout_id": None}, payout_id=payout.id, updated_at=now) is None:
                raise RuntimeError(f"order {order.id} was claimed by another payout")
            stamped.append(order)
    except Exception:
        _release_orders(repos, payout, stamped, now)
        raise


def _release_orders(
    repos: Repositories, payout: models.StorePayout, store_orders: List[models.Order], now: datetime
) -> None:
    for order in store_orders:
        try:
            repos.orders.update_if(order.id, {"payout_id": payout.id}, payout_id=None, updated_at=now)
        except Exception:
            # left stamped: never paid twice, but needs a manual payout
            logger.exception("Could not release order %s from failed payout %s", order.id, payout.id)
    repos.payouts.update(payout.id, status=PayoutStatus.FAILED)


def _pay_store(
    repos: Repositories,
    gateway: PaymentGateway,
    store_id: int,
    store_orders: List[models.Order],
    now: datetime,
) -> models.StorePayout:
    """Record, claim, then transfer.

    The orders are stamped before any money moves, so a crash part way
    through can leave a payout unpaid but never pays an order twice. The
    transfer is keyed on the payout id, so the provider collapses a retried
    request into the original transfer.
    """
    amount = sum(net_payout_cents(o) for o in store_orders)
    store = repos.stores.get(store_id)
    if store is None:
        raise LookupError(f"store {store_id} not found")
    payout = repos.payouts.add(
        models.StorePayout(
            store_id=store_id,
            amount_cents=amount,
            order_count=len(store_orders),
            status=PayoutStatus.PENDING,
            transfer_id=None,
            created_at=now,
        )
    )
    _stamp_orders(repos, payout, store_orders, now)

    transfer_id = None
    if gateway.is_demo:
        logger.info(
            "Demo payout for store %s: %s orders, %s cents", store_id, len(store_orders), amount
        )
    else:
        try:
            transfer_id = gateway.create_transfer(
                store=store,
                amount_cents=amount,
                metadata={
                    "storeId": str(store_id),
                    "payoutId": str(payout.id),
                    "orderCount": str(len(store_orders)),
                },
                idempotency_key=f"payout-{payout.id}",
            )
        except Exception:
            _release_orders(repos, payout, store_orders, now)
            raise
    return repos.payouts.update(payout.id, status=PayoutStatus.PROCESSING, transfer_id=transfer_id)


def process_payouts(
    repos: Repositories,
    gateway: PaymentGateway,
    now: Optional[datetime] = None,
    hold_days: int = DEFAULT_HOLD_DAYS,
) -> Dict[str, Any]:
    """Create one payout per store from the eligible orders.

    A failing store is logged and counted; the other stores still get paid.
    """
    now = now or utcnow()
    cutoff = now - timedelta(days=hold_days)

    by_store: "OrderedDict[int, List[models.Order]]" = OrderedDict()
    for order in find_eligible_orders(repos, now, hold_days):
        by_store.setdefault(order.store_id, []).append(order)

    processed = errors = total_cents = 0
    details = []
    for store_id, store_orders in by_store.items():
        amount = sum(net_payout_cents(o) for o in store_orders)
        try:
            payout = _pay_store(repos, gateway, store_id, store_orders, now)
        except Exception as e:
            errors += 1
            logger.error("Payout failed for store %s: %s", store_id, e)
            details.append(
                {"store_id": store_id, "orders": len(store_orders), "amount_cents": amount, "status": "failed"}
            )
            continue
        processed += 1
        total_cents += payout.amount_cents
        details.append(
            {
                "store_id": store_id,
                "payout_id": payout.id,
                "orders": payout.order_count,
                "amount_cents": payout.amount_cents,
                "status": "skipped" if gateway.is_demo else "success",
            }
        )

    logger.info("Payout run: %s stores paid, %s failed, %s cents", processed, errors, total_cents)
    return {
        "success": errors == 0,
        "processed": processed,
        "errors": errors,
        "details": {
            "total_payout_cents": total_cents,
            "hold_cutoff": cutoff.isoformat(),
            "payouts": details,
            "is_demo": gateway.is_demo,
        },
    }

"""Checkout: reserve the item, open a PENDING order, hand off to the payment page.

The payment page may not exist. In demo mode the gateway returns a local
success URL and the order is confirmed immediately through
`complete_payment`, the same path the `checkout.session.completed` webhook
takes, so nothing downstream can assume the external step happened.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from .. import models
from ..config import Settings
from ..errors import ConflictError, NotFoundError, ServerError
from ..models import OrderStatus, PaymentStatus, ProductStatus
from ..notifications import Notifier
from ..payments import PaymentGateway, PaymentProviderError
from ..repositories import Repositories
from ..utils import calculate_platform_fee, generate_order_number, utcnow
from . import inventory, orders

logger = logging.getLogger(__name__)

UNAVAILABLE = "This item is no longer available"


@dataclass
class ReturnUrls:
    success_url: str
    cancel_url: str

    @classmethod
    def for_app(cls, app_url: str, product: models.Product) -> "ReturnUrls":
        return cls(
            success_url=f"{app_url}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{app_url}/products/{product.id}?checkout=cancelled",
        )


@dataclass
class CheckoutResult:
    order: models.Order
    session_id: str
    checkout_url: str
    is_demo: bool


def _session_metadata(order: models.Order, product: models.Product) -> Dict[str, str]:
    # the provider only stores string values
    return {
        "orderId": str(order.id),
        "orderNumber": order.order_number,
        "productId": str(product.id),
        "buyerId": str(order.buyer_id),
        "storeId": str(order.store_id),
        "sku": product.sku,
        "platformFeeCents": str(order.platform_fee_cents),
    }


def create_session(
    repos: Repositories,
    gateway: PaymentGateway,
    order: models.Order,
    product: models.Product,
    return_urls: ReturnUrls,
    buyer_email: Optional[str] = None,
    now: Optional[datetime] = None,
):
    """Open a payment session for a PENDING order.

    The reservation is re-checked here, not only when it was placed, so a
    reservation that lapsed (or was reclaimed by someone else) in between
    cancels the order with ConflictError instead of charging for an item
    somebody else now holds.
    """
    now = now or utcnow()
    current = repos.products.get(product.id)
    if current is None or not inventory.is_reserved_for(current, order.buyer_id, now):
        logger.warning("Reservation lost before payment session for order %s", order.order_number)
        orders.cancel_pending(repos, order.id, now)
        raise ConflictError(UNAVAILABLE)

    try:
        session = gateway.create_checkout_session(
            order=order,
            product=current,
            buyer_email=buyer_email,
            metadata=_session_metadata(order, current),
            success_url=return_urls.success_url,
            cancel_url=return_urls.cancel_url,
        )
    except PaymentProviderError:
        inventory.release(repos, current.id, reserved_by=order.buyer_id, now=now)
        orders.cancel_pending(repos, order.id, now)
        raise ServerError("Failed to create payment session")

    repos.orders.update(
        order.id, payment_session_id=session.id, payment_session_url=session.url, updated_at=now
    )
    return session


def complete_payment(
    repos: Repositories,
    notifier: Notifier,
    order_id: int,
    payment_intent_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> bool:
    """Sell the product to a paid order and confirm it. Returns False on a repeat.

    The product is claimed before the order is confirmed, so a payment that
    lands after the item went to someone else never yields a second
    CONFIRMED order; that order is cancelled with its charge left for a
    refund instead. Emails go out only on the first confirmation; their
    failures are logged and otherwise ignored.
    """
    now = now or utcnow()
    order = orders.get_order(repos, order_id)
    if order.status == OrderStatus.CANCELLED:
        # paid after the order was given up; needs a manual refund
        logger.error("Payment completed for cancelled order %s", order.order_number)
        return False
    if order.status != OrderStatus.PENDING:
        logger.info("Order %s already confirmed, skipping", order.order_number)
        return False

    if not inventory.sell_to_order(repos, order.product_id, order.id, order.buyer_id, now):
        orders.hold_for_refund(repos, order.id, payment_intent_id, now)
        return False

    if not orders.confirm_payment(repos, order.id, payment_intent_id, now):
        current = orders.get_order(repos, order.id)
        if current.status == OrderStatus.CANCELLED:
            # cancelled between the sale and the confirmation; put the item back
            logger.error("Payment completed for cancelled order %s", current.order_number)
            repos.products.update_if(
                order.product_id,
                {"status": ProductStatus.SOLD, "sold_order_id": order.id},
                status=ProductStatus.ACTIVE,
                sold_order_id=None,
                updated_at=now,
            )
        else:
            logger.info("Order %s already confirmed, skipping", order.order_number)
        return False

    _send_confirmation_emails(repos, notifier, orders.get_order(repos, order.id))
    return True


def _send_confirmation_emails(repos: Repositories, notifier: Notifier, order: models.Order) -> None:
    product = repos.products.get(order.product_id)
    buyer = repos.users.get(order.buyer_id)
    store = repos.stores.get(order.store_id)
    seller = repos.users.get(store.owner_id) if store else None
    try:
        if buyer is not None:
            notifier.order_confirmation(buyer.email, order, product)
        if seller is not None:
            notifier.seller_order_notification(
                seller.email, order, product, buyer.name if buyer else "A buyer"
            )
    except Exception:
        logger.exception("Failed to send confirmation emails for order %s", order.order_number)


def reservation_hold(settings: Settings, gateway: PaymentGateway) -> timedelta:
    """How long checkout holds the item.

    With a live provider the hold has to outlast the hosted payment page,
    which cannot be shorter than the provider's own minimum session length.
    """
    minutes = settings.reservation_minutes
    if not gateway.is_demo:
        minutes = max(minutes, settings.checkout_session_minutes)
    return timedelta(minutes=minutes)


def _open_checkout(
    repos: Repositories, product: models.Product, buyer_id: int, now: datetime
) -> Optional[models.Order]:
    """The buyer's unpaid order for this product, while its hold and payment page are still live."""
    if not inventory.is_reserved_for(product, buyer_id, now):
        return None
    for order in repos.orders.find(product_id=product.id, buyer_id=buyer_id, status=OrderStatus.PENDING):
        if order.payment_session_id and order.payment_session_url:
            return order
    return None


def start_checkout(
    repos: Repositories,
    gateway: PaymentGateway,
    notifier: Notifier,
    settings: Settings,
    *,
    buyer_id: int,
    buyer_email: Optional[str],
    product_id: int,
    shipping_address: Dict[str, Any],
    now: Optional[datetime] = None,
) -> CheckoutResult:
    """Reserve a product and open its payment page.

    Submitting again while an earlier attempt is still open returns that
    attempt instead of opening a second order and payment session.
    """
    now = now or utcnow()
    product = repos.products.get(product_id)
    if product is None:
        raise NotFoundError("Product")

    existing = _open_checkout(repos, product, buyer_id, now)
    if existing is not None:
        logger.info("Reusing open checkout %s for product %s", existing.order_number, product.sku)
        return CheckoutResult(
            order=existing,
            session_id=existing.payment_session_id,
            checkout_url=existing.payment_session_url,
            is_demo=gateway.is_demo,
        )

    product = inventory.reserve(repos, product.id, buyer_id, reservation_hold(settings, gateway), now)

    store = repos.stores.get(product.store_id)
    if store is None:
        inventory.release(repos, product.id, reserved_by=buyer_id, now=now)
        raise NotFoundError("Store")
    platform_fee_cents = calculate_platform_fee(product.price_cents, store.take_rate)

    order = repos.orders.add(
        models.Order(
            order_number=generate_order_number(),
            buyer_id=buyer_id,
            store_id=store.id,
            product_id=product.id,
            product_title=f"{product.brand} - {product.title}",
            product_sku=product.sku,
            subtotal_cents=product.price_cents,
            shipping_cents=0,
            tax_cents=0,
            total_cents=product.price_cents,
            platform_fee_cents=platform_fee_cents,
            status=OrderStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            shipping_address=shipping_address,
            created_at=now,
            updated_at=now,
        )
    )
    logger.info("Order %s created for product %s", order.order_number, product.sku)

    session = create_session(
        repos,
        gateway,
        order,
        product,
        ReturnUrls.for_app(settings.app_url, product),
        buyer_email=buyer_email,
        now=now,
    )

    if gateway.is_demo:
        complete_payment(repos, notifier, order.id, now=now)

    return CheckoutResult(
        order=orders.get_order(repos, order.id),
        session_id=session.id,
        checkout_url=session.url,
        is_demo=gateway.is_demo,
    )

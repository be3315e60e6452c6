"""Payment provider integration (Stripe).

Without `STRIPE_SECRET_KEY` the gateway runs in demo mode: checkout returns a
local success-page URL and payouts are only logged. Webhook signature checks
always need `STRIPE_WEBHOOK_SECRET`, demo mode or not.
"""
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import stripe

from .config import Settings

logger = logging.getLogger(__name__)

# Stripe's default replay window for signed webhook payloads
WEBHOOK_TOLERANCE_SECONDS = 300


class PaymentProviderError(Exception):
    pass


class SignatureError(Exception):
    pass


@dataclass
class CheckoutSession:
    id: str
    url: str


class PaymentGateway:
    def __init__(self, settings: Settings):
        self.settings = settings
        if settings.stripe_secret_key:
            stripe.api_key = settings.stripe_secret_key

    @property
    def is_demo(self) -> bool:
        return self.settings.is_payment_demo

    def create_checkout_session(
        self,
        *,
        order,
        product,
        buyer_email: Optional[str],
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSession:
        if self.is_demo:
            logger.info("Demo mode: simulating checkout for order %s", order.order_number)
            return CheckoutSession(
                id=f"demo_session_{order.id}",
                url=f"{self.settings.app_url}/checkout/success?order={order.order_number}&demo=true",
            )

        try:
            session = stripe.checkout.Session.create(
                mode="payment",
                payment_method_types=["card"],
                customer_email=buyer_email,
                line_items=[
                    {
                        "price_data": {
                            "currency": self.settings.stripe_currency,
                            "unit_amount": order.total_cents,
                            "product_data": {
                                "name": f"{product.brand} - {product.title}",
                                "description": (product.description or product.title)[:500],
                            },
                        },
                        "quantity": 1,
                    }
                ],
                metadata=metadata,
                # copied onto the payment intent so payment_intent.* events correlate too
                payment_intent_data={"metadata": metadata},
                success_url=success_url,
                cancel_url=cancel_url,
                expires_at=int(time.time()) + self.settings.checkout_session_minutes * 60,
            )
        except stripe.StripeError as e:
            logger.error("Checkout session creation failed for order %s: %s", order.order_number, e)
            raise PaymentProviderError(str(e)) from e
        return CheckoutSession(id=session.id, url=session.url)

    def verify_event(self, payload: bytes, sig_header: Optional[str]) -> Dict[str, Any]:
        """Check the provider signature on the raw body and return the parsed event."""
        secret = self.settings.stripe_webhook_secret
        if not secret:
            # Fail closed if the secret isn't configured
            logger.error("STRIPE_WEBHOOK_SECRET not configured")
            raise SignatureError("webhook secret not configured")
        if not sig_header:
            raise SignatureError("missing signature")
        try:
            text = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(text, sig_header, secret, WEBHOOK_TOLERANCE_SECONDS)
        except (UnicodeDecodeError, stripe.SignatureVerificationError) as e:
            raise SignatureError("invalid signature") from e
        try:
            event = json.loads(text)
        except ValueError as e:
            raise SignatureError("invalid payload") from e
        if not isinstance(event, dict):
            raise SignatureError("invalid payload")
        return event

    def create_transfer(
        self, *, store, amount_cents: int, metadata: Dict[str, str], idempotency_key: Optional[str] = None
    ) -> str:
        """Move a seller's net payout to their connected account; returns the transfer id.

        Retries with the same `idempotency_key` return the original transfer.
        """
        if not store.stripe_connect_id:
            raise PaymentProviderError(f"store {store.id} has no connected payout account")
        try:
            transfer = stripe.Transfer.create(
                amount=amount_cents,
                currency=self.settings.stripe_currency,
                destination=store.stripe_connect_id,
                metadata=metadata,
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as e:
            raise PaymentProviderError(str(e)) from e
        return transfer.id
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header

from .. import schemas
from ..database import get_repositories
from ..errors import ValidationError, error_response
from ..notifications import Notifier
from ..payments import PaymentGateway, SignatureError
from ..repositories import Repositories
from ..services import webhooks
from .deps import get_gateway, get_notifier, get_raw_body

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


@router.post(
    "/webhooks/payment",
    response_model=schemas.WebhookAck,
    responses={
        200: {
            "description": "Event acknowledged",
            "content": {"application/json": {"example": {"received": True, "status": "processed"}}},
        },
        400: {"description": "Missing or invalid signature"},
    },
)
def payment_webhook(
    body: bytes = Depends(get_raw_body),
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    repos: Repositories = Depends(get_repositories),
    gateway: PaymentGateway = Depends(get_gateway),
    notifier: Notifier = Depends(get_notifier),
):
    """Payment provider events.

    Signature failure is the only rejection. Every verified event is
    acknowledged, including unknown types and events whose processing
    failed, so the provider does not retry them forever.
    """
    try:
        event = gateway.verify_event(body, stripe_signature)
    except SignatureError as e:
        logger.warning("Webhook signature verification failed: %s", e)
        return error_response(ValidationError("Invalid signature"))

    result = webhooks.handle_event(repos, notifier, event)
    return {"received": True, "status": result}

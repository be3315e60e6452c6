from fastapi import APIRouter, Depends, status

from .. import schemas
from ..auth import Session, get_current_session
from ..config import Settings
from ..database import get_repositories
from ..notifications import Notifier
from ..payments import PaymentGateway
from ..repositories import Repositories
from ..services import checkout
from .deps import get_app_settings, get_gateway, get_notifier

router = APIRouter(tags=["checkout"])


@router.post(
    "/checkout",
    status_code=status.HTTP_201_CREATED,
    response_model=schemas.CheckoutResponse,
    responses={
        404: {"description": "Product not found"},
        409: {"description": "This item is no longer available"},
    },
)
def start_checkout(
    payload: schemas.CheckoutRequest,
    session: Session = Depends(get_current_session),
    repos: Repositories = Depends(get_repositories),
    gateway: PaymentGateway = Depends(get_gateway),
    notifier: Notifier = Depends(get_notifier),
    settings: Settings = Depends(get_app_settings),
):
    """Reserve the product and open a payment session.

    `checkout_url` is the provider's hosted page, or the local success page
    when payments run in demo mode (`is_demo`), in which case the order is
    already confirmed.
    """
    result = checkout.start_checkout(
        repos,
        gateway,
        notifier,
        settings,
        buyer_id=session.user_id,
        buyer_email=session.email,
        product_id=payload.product_id,
        shipping_address=payload.shipping_address.model_dump(),
    )
    return {
        "order": result.order,
        "session_id": result.session_id,
        "checkout_url": result.checkout_url,
        "is_demo": result.is_demo,
    }

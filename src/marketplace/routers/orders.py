import logging
from datetime import timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends

from .. import schemas
from ..auth import Session, get_current_session, require_store_admin
from ..config import Settings
from ..database import get_repositories
from ..errors import ForbiddenError, NotFoundError, ValidationError
from ..models import OrderStatus
from ..notifications import Notifier
from ..repositories import Repositories
from ..services import orders
from .deps import get_app_settings, get_notifier

logger = logging.getLogger(__name__)

router = APIRouter(tags=["orders"])


@router.get("/orders", response_model=List[schemas.Order])
def list_my_orders(
    session: Session = Depends(get_current_session),
    repos: Repositories = Depends(get_repositories),
):
    return orders.list_buyer_orders(repos, session.user_id)


@router.get("/orders/{order_id}", response_model=schemas.Order, responses={404: {"description": "Order not found"}})
def get_my_order(
    order_id: int,
    session: Session = Depends(get_current_session),
    repos: Repositories = Depends(get_repositories),
):
    order = orders.get_order(repos, order_id)
    if order.buyer_id != session.user_id and not session.is_admin:
        # don't reveal other buyers' order ids
        raise NotFoundError("Order")
    return order


def _store_order(repos: Repositories, session: Session, order_id: int):
    order = orders.get_order(repos, order_id)
    if order.store_id != session.store_id and not session.is_admin:
        raise ForbiddenError("You can only manage your own store's orders")
    return order


@router.get("/store/orders", response_model=List[schemas.Order])
def list_store_orders(
    status: Optional[OrderStatus] = None,
    session: Session = Depends(require_store_admin),
    repos: Repositories = Depends(get_repositories),
):
    """The caller's store orders; an admin without a store sees every store's."""
    return orders.list_store_orders(repos, session.store_id, status)


@router.get("/store/orders/{order_id}", response_model=schemas.Order)
def get_store_order(
    order_id: int,
    session: Session = Depends(require_store_admin),
    repos: Repositories = Depends(get_repositories),
):
    return _store_order(repos, session, order_id)


@router.put(
    "/store/orders/{order_id}",
    response_model=schemas.Order,
    responses={400: {"description": "Invalid transition or missing tracking number"}},
)
def update_store_order(
    order_id: int,
    payload: schemas.StoreOrderUpdate,
    session: Session = Depends(require_store_admin),
    repos: Repositories = Depends(get_repositories),
    notifier: Notifier = Depends(get_notifier),
    settings: Settings = Depends(get_app_settings),
):
    """Seller fulfilment: start processing, ship (tracking required), deliver or cancel.

    Only edges of the order state machine are accepted; anything else is a
    400 and leaves the order unchanged.
    """
    order = _store_order(repos, session, order_id)

    if payload.status is None and payload.notes is None:
        raise ValidationError("Nothing to update")

    if payload.status == "PROCESSING":
        order = orders.start_processing(repos, order.id)
    elif payload.status == "SHIPPED":
        order = orders.ship_order(repos, order.id, payload.tracking_number, payload.carrier)
        _notify(notifier.shipping_confirmation, repos, order)
    elif payload.status == "DELIVERED":
        order = orders.mark_delivered(
            repos, order.id, dispute_window=timedelta(days=settings.dispute_window_days)
        )
        _notify(notifier.delivery_confirmation, repos, order)
    elif payload.status == "CANCELLED":
        order = orders.cancel_order(repos, order.id)

    if payload.notes is not None:
        order = repos.orders.update(order.id, notes=payload.notes)
    return order


def _notify(send, repos: Repositories, order) -> None:
    buyer = repos.users.get(order.buyer_id)
    if buyer is None:
        return
    try:
        send(buyer.email, order)
    except Exception:
        logger.exception("Failed to email buyer about order %s", order.order_number)

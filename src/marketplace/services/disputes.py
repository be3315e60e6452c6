"""Buyer disputes on shipped or delivered orders.

A dispute in OPEN, SELLER_RESPONSE or UNDER_REVIEW holds back the seller's
payout for the order (see `payouts.BLOCKING_DISPUTE_STATUSES`); resolving or
closing it releases the hold on the next payout run.
"""
import logging
from datetime import datetime
from typing import List, Optional, Sequence

from .. import models
from ..auth import Session
from ..errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..models import DisputeReason, DisputeResolution, DisputeStatus, OrderStatus
from ..repositories import Repositories
from ..utils import utcnow

logger = logging.getLogger(__name__)

FINAL_STATUSES = (DisputeStatus.RESOLVED, DisputeStatus.CLOSED)


def _is_seller(session: Session, dispute: models.Dispute) -> bool:
    return dispute.seller_id == session.user_id or (
        session.store_id is not None and session.store_id == dispute.store_id
    )


def _sender_role(session: Session, dispute: models.Dispute) -> str:
    if session.is_admin:
        return "ADMIN"
    if dispute.buyer_id == session.user_id:
        return "BUYER"
    if _is_seller(session, dispute):
        return "SELLER"
    raise ForbiddenError()


def open_dispute(
    repos: Repositories,
    session: Session,
    *,
    order_id: int,
    reason: DisputeReason,
    description: str,
    evidence: Sequence[str] = (),
    now: Optional[datetime] = None,
) -> models.Dispute:
    now = now or utcnow()
    order = repos.orders.get(order_id)
    if order is None:
        raise NotFoundError("Order")
    if order.buyer_id != session.user_id:
        raise ForbiddenError("You can only dispute your own orders")
    if order.status not in (OrderStatus.SHIPPED, OrderStatus.DELIVERED):
        raise ValidationError("Can only dispute shipped or delivered orders")
    if order.status == OrderStatus.DELIVERED and order.dispute_deadline and now > order.dispute_deadline:
        raise ValidationError("Dispute window has closed")
    if repos.disputes.first(order_id=order.id) is not None:
        raise ConflictError("Dispute already exists for this order")
    store = repos.stores.get(order.store_id)
    if store is None:
        raise NotFoundError("Store")

    try:
        dispute = repos.disputes.add(
            models.Dispute(
                order_id=order.id,
                buyer_id=order.buyer_id,
                seller_id=store.owner_id,
                store_id=store.id,
                reason=reason,
                description=description,
                evidence=list(evidence),
                status=DisputeStatus.OPEN,
                created_at=now,
                updated_at=now,
            )
        )
    except ConflictError:
        raise ConflictError("Dispute already exists for this order")
    logger.info("Dispute %s opened on order %s (%s)", dispute.id, order.order_number, reason.value)
    return dispute


def get_dispute(repos: Repositories, session: Session, dispute_id: int) -> models.Dispute:
    dispute = repos.disputes.get(dispute_id)
    if dispute is None:
        raise NotFoundError("Dispute")
    _sender_role(session, dispute)
    return dispute


def get_messages(repos: Repositories, dispute_id: int) -> List[models.DisputeMessage]:
    return sorted(
        repos.dispute_messages.find(dispute_id=dispute_id), key=lambda m: (m.created_at, m.id)
    )


def list_disputes(
    repos: Repositories, session: Session, status: Optional[DisputeStatus] = None
) -> List[models.Dispute]:
    filters = {}
    if status is not None:
        filters["status"] = status
    if session.is_admin:
        pass
    elif session.store_id is not None:
        filters["store_id"] = session.store_id
    else:
        filters["buyer_id"] = session.user_id
    return sorted(repos.disputes.find(**filters), key=lambda d: d.created_at, reverse=True)


def add_message(
    repos: Repositories,
    session: Session,
    dispute_id: int,
    message: str,
    attachments: Sequence[str] = (),
    now: Optional[datetime] = None,
) -> models.Dispute:
    now = now or utcnow()
    dispute = get_dispute(repos, session, dispute_id)
    if dispute.status in FINAL_STATUSES:
        raise ValidationError("This dispute is closed")
    role = _sender_role(session, dispute)

    repos.dispute_messages.add(
        models.DisputeMessage(
            dispute_id=dispute.id,
            sender_id=session.user_id,
            sender_name=session.name,
            sender_role=role,
            message=message,
            attachments=list(attachments),
            created_at=now,
        )
    )
    changes = {"updated_at": now}
    if role == "SELLER" and dispute.status == DisputeStatus.OPEN:
        changes["status"] = DisputeStatus.SELLER_RESPONSE
    return repos.disputes.update(dispute.id, **changes)


def mark_under_review(
    repos: Repositories, session: Session, dispute_id: int, now: Optional[datetime] = None
) -> models.Dispute:
    now = now or utcnow()
    if not session.is_admin:
        raise ForbiddenError("Only admins can review disputes")
    dispute = get_dispute(repos, session, dispute_id)
    if dispute.status in FINAL_STATUSES:
        raise ValidationError("This dispute is closed")
    return repos.disputes.update(dispute.id, status=DisputeStatus.UNDER_REVIEW, updated_at=now)


def resolve_dispute(
    repos: Repositories,
    session: Session,
    dispute_id: int,
    resolution: DisputeResolution,
    notes: Optional[str] = None,
    status: DisputeStatus = DisputeStatus.RESOLVED,
    now: Optional[datetime] = None,
) -> models.Dispute:
    now = now or utcnow()
    if not session.is_admin:
        raise ForbiddenError("Only admins can resolve disputes")
    if status not in FINAL_STATUSES:
        raise ValidationError("A dispute can only be resolved or closed")
    dispute = get_dispute(repos, session, dispute_id)
    if dispute.status in FINAL_STATUSES:
        raise ConflictError("Dispute is already resolved")
    updated = repos.disputes.update_if(
        dispute.id,
        {"status": dispute.status},
        status=status,
        resolution=resolution,
        resolution_notes=notes,
        resolved_by=session.user_id,
        resolved_at=now,
        updated_at=now,
    )
    if updated is None:
        raise ConflictError("Dispute was modified concurrently")
    logger.info("Dispute %s %s: %s", dispute.id, status.value.lower(), resolution.value)
    return updated

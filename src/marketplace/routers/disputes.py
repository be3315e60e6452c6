from typing import List, Optional

from fastapi import APIRouter, Depends, status

from .. import schemas
from ..auth import Session, get_current_session, require_admin
from ..database import get_repositories
from ..models import DisputeStatus
from ..repositories import Repositories
from ..services import disputes

router = APIRouter(prefix="/disputes", tags=["disputes"])


def _detail(repos: Repositories, dispute):
    detail = schemas.DisputeDetail.model_validate(dispute)
    detail.messages = [
        schemas.DisputeMessage.model_validate(m) for m in disputes.get_messages(repos, dispute.id)
    ]
    return detail


@router.get("", response_model=List[schemas.Dispute])
def list_disputes(
    status: Optional[DisputeStatus] = None,
    session: Session = Depends(get_current_session),
    repos: Repositories = Depends(get_repositories),
):
    """Admins see every dispute, store admins their store's, buyers their own."""
    return disputes.list_disputes(repos, session, status)


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=schemas.Dispute,
    responses={409: {"description": "Dispute already exists for this order"}},
)
def open_dispute(
    payload: schemas.DisputeCreate,
    session: Session = Depends(get_current_session),
    repos: Repositories = Depends(get_repositories),
):
    return disputes.open_dispute(
        repos,
        session,
        order_id=payload.order_id,
        reason=payload.reason,
        description=payload.description,
        evidence=payload.evidence,
    )


@router.get("/{dispute_id}", response_model=schemas.DisputeDetail)
def get_dispute(
    dispute_id: int,
    session: Session = Depends(get_current_session),
    repos: Repositories = Depends(get_repositories),
):
    return _detail(repos, disputes.get_dispute(repos, session, dispute_id))


@router.post("/{dispute_id}", response_model=schemas.DisputeDetail)
def add_message(
    dispute_id: int,
    payload: schemas.DisputeMessageCreate,
    session: Session = Depends(get_current_session),
    repos: Repositories = Depends(get_repositories),
):
    dispute = disputes.add_message(repos, session, dispute_id, payload.message, payload.attachments)
    return _detail(repos, dispute)


@router.put("/{dispute_id}", response_model=schemas.DisputeDetail)
def resolve_dispute(
    dispute_id: int,
    payload: schemas.DisputeResolve,
    session: Session = Depends(require_admin),
    repos: Repositories = Depends(get_repositories),
):
    dispute = disputes.resolve_dispute(
        repos,
        session,
        dispute_id,
        payload.resolution,
        payload.resolution_notes,
        DisputeStatus(payload.status),
    )
    return _detail(repos, dispute)


@router.post("/{dispute_id}/review", response_model=schemas.DisputeDetail)
def review_dispute(
    dispute_id: int,
    session: Session = Depends(require_admin),
    repos: Repositories = Depends(get_repositories),
):
    return _detail(repos, disputes.mark_under_review(repos, session, dispute_id))

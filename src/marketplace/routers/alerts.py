from typing import List

from fastapi import APIRouter, Depends, Response, status

from .. import schemas
from ..auth import Session, get_current_session
from ..database import get_repositories
from ..repositories import Repositories
from ..services import alerts

router = APIRouter(prefix="/alerts/price", tags=["alerts"])


@router.get("", response_model=List[schemas.PriceAlert])
def list_alerts(
    session: Session = Depends(get_current_session),
    repos: Repositories = Depends(get_repositories),
):
    return alerts.list_alerts(repos, session.user_id)


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    responses={
        200: {"description": "Existing alert updated"},
        400: {"description": "Target price must be a positive integer below the current price"},
    },
)
def create_alert(
    payload: schemas.PriceAlertCreate,
    response: Response,
    session: Session = Depends(get_current_session),
    repos: Repositories = Depends(get_repositories),
):
    alert, created = alerts.create_or_update_alert(
        repos, session.user_id, payload.product_id, payload.target_price_cents
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    return {
        "id": alert.id,
        "product_id": alert.product_id,
        "target_price_cents": alert.target_price_cents,
        "price_at_creation_cents": alert.price_at_creation_cents,
        "is_active": alert.is_active,
        "created": created,
    }


@router.delete("")
def delete_alert(
    target: schemas.PriceAlertDelete = Depends(),
    session: Session = Depends(get_current_session),
    repos: Repositories = Depends(get_repositories),
):
    """Stop watching a product, by alert id or by product id (query parameters)."""
    alert = alerts.delete_alert(repos, session.user_id, alert_id=target.alert_id, product_id=target.product_id)
    return {"id": alert.id, "is_active": alert.is_active}

from typing import List

from fastapi import APIRouter, Depends, Query, status

from .. import schemas
from ..auth import Session, get_current_session
from ..database import get_repositories
from ..repositories import Repositories
from ..services import reviews

router = APIRouter(tags=["reviews"])


@router.get("/reviews", response_model=List[schemas.Review])
def list_my_reviews(
    session: Session = Depends(get_current_session),
    repos: Repositories = Depends(get_repositories),
):
    return reviews.list_my_reviews(repos, session.user_id)


@router.post(
    "/reviews",
    status_code=status.HTTP_201_CREATED,
    response_model=schemas.Review,
    responses={409: {"description": "Review already exists for this order"}},
)
def create_review(
    payload: schemas.ReviewCreate,
    session: Session = Depends(get_current_session),
    repos: Repositories = Depends(get_repositories),
):
    """Review a delivered order you bought. One review per order."""
    return reviews.create_review(
        repos,
        session,
        order_id=payload.order_id,
        rating=payload.rating,
        title=payload.title,
        comment=payload.comment,
        images=payload.images,
    )


@router.get("/products/{product_id}/reviews", response_model=schemas.ReviewList)
def product_reviews(
    product_id: int,
    limit: int = Query(reviews.PRODUCT_PAGE, ge=1, le=100),
    repos: Repositories = Depends(get_repositories),
):
    items, stats = reviews.product_reviews(repos, product_id, limit)
    return {"reviews": items, "stats": stats}


@router.get("/stores/{slug}/reviews", response_model=schemas.ReviewList)
def store_reviews(
    slug: str,
    limit: int = Query(reviews.STORE_PAGE, ge=1, le=100),
    repos: Repositories = Depends(get_repositories),
):
    items, stats = reviews.store_reviews(repos, slug, limit)
    return {"reviews": items, "stats": stats}

"""Buyer reviews of delivered orders, one per order."""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .. import models
from ..auth import Session
from ..errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..models import OrderStatus
from ..repositories import Repositories
from ..utils import utcnow

logger = logging.getLogger(__name__)

PRODUCT_PAGE = 10
STORE_PAGE = 50


def create_review(
    repos: Repositories,
    session: Session,
    *,
    order_id: int,
    rating: int,
    title: Optional[str] = None,
    comment: Optional[str] = None,
    images: Sequence[str] = (),
    now: Optional[datetime] = None,
) -> models.Review:
    now = now or utcnow()
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError("Rating must be between 1 and 5")
    order = repos.orders.get(order_id)
    if order is None:
        raise NotFoundError("Order")
    if order.buyer_id != session.user_id:
        raise ForbiddenError("You can only review your own orders")
    if order.status != OrderStatus.DELIVERED:
        raise ValidationError("Can only review delivered orders")
    if repos.reviews.first(order_id=order.id) is not None:
        raise ConflictError("Review already exists for this order")

    try:
        review = repos.reviews.add(
            models.Review(
                order_id=order.id,
                product_id=order.product_id,
                store_id=order.store_id,
                buyer_id=order.buyer_id,
                buyer_name=session.name,
                rating=rating,
                title=title,
                comment=comment,
                images=list(images),
                created_at=now,
                updated_at=now,
            )
        )
    except ConflictError:
        raise ConflictError("Review already exists for this order")
    logger.info("Review %s (%s stars) on order %s", review.id, rating, order.order_number)
    return review


def review_stats(reviews: Sequence[models.Review]) -> Dict[str, Any]:
    """Count, average rounded to one decimal, and count per star."""
    distribution = {star: 0 for star in range(1, 6)}
    for review in reviews:
        distribution[review.rating] += 1
    total = len(reviews)
    average = round(sum(r.rating for r in reviews) / total, 1) if total else 0.0
    return {"total_reviews": total, "average_rating": average, "rating_distribution": distribution}


def _newest_first(reviews: List[models.Review]) -> List[models.Review]:
    return sorted(reviews, key=lambda r: (r.created_at, r.id), reverse=True)


def product_reviews(
    repos: Repositories, product_id: int, limit: int = PRODUCT_PAGE
) -> Tuple[List[models.Review], Dict[str, Any]]:
    """Latest reviews of a product, with stats over all of them."""
    if repos.products.get(product_id) is None:
        raise NotFoundError("Product")
    reviews = repos.reviews.find(product_id=product_id)
    return _newest_first(reviews)[:limit], review_stats(reviews)


def store_reviews(
    repos: Repositories, slug: str, limit: int = STORE_PAGE
) -> Tuple[List[models.Review], Dict[str, Any]]:
    store = repos.stores.first(slug=slug)
    if store is None:
        raise NotFoundError("Store")
    reviews = repos.reviews.find(store_id=store.id)
    return _newest_first(reviews)[:limit], review_stats(reviews)


def list_my_reviews(repos: Repositories, user_id: int) -> List[models.Review]:
    return _newest_first(repos.reviews.find(buyer_id=user_id))

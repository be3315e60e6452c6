"""Product inventory and checkout reservations.

A product holds at most one reservation at a time. A reservation whose
`reserved_until` has passed counts as released: every read through
`get_product` clears it lazily, and `reserve` reclaims it directly, so no
background sweep is needed for correctness.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from .. import models
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import ProductStatus
from ..repositories import Repositories
from ..utils import utcnow

logger = logging.getLogger(__name__)

_CLEARED = {"reserved_by": None, "reserved_until": None}


def is_reservation_expired(product: models.Product, now: Optional[datetime] = None) -> bool:
    now = now or utcnow()
    return (
        product.status == ProductStatus.RESERVED
        and (product.reserved_until is None or product.reserved_until <= now)
    )


def is_reserved_for(product: models.Product, user_id: int, now: Optional[datetime] = None) -> bool:
    """True while `user_id` holds an unexpired reservation on the product."""
    return (
        product.status == ProductStatus.RESERVED
        and product.reserved_by == user_id
        and not is_reservation_expired(product, now)
    )


def _release_expired(repos: Repositories, product: models.Product, now: datetime) -> models.Product:
    released = repos.products.update_if(
        product.id,
        {"status": ProductStatus.RESERVED, "reserved_by": product.reserved_by, "reserved_until": product.reserved_until},
        status=ProductStatus.ACTIVE,
        updated_at=now,
        **_CLEARED,
    )
    if released is not None:
        logger.info("Released expired reservation on product %s", product.id)
        return released
    # someone else moved it first; report what is there now
    return repos.products.get(product.id)


def get_product(repos: Repositories, product_id: int, now: Optional[datetime] = None) -> Optional[models.Product]:
    now = now or utcnow()
    product = repos.products.get(product_id)
    if product is not None and is_reservation_expired(product, now):
        product = _release_expired(repos, product, now)
    return product


def get_product_by_sku(repos: Repositories, sku: str, now: Optional[datetime] = None) -> Optional[models.Product]:
    product = repos.products.first(sku=sku)
    if product is None:
        return None
    return get_product(repos, product.id, now)


def reserve(
    repos: Repositories,
    product_id: int,
    user_id: int,
    ttl: timedelta,
    now: Optional[datetime] = None,
) -> models.Product:
    """Hold a product for `user_id` until now + ttl.

    Raises ConflictError when the product is not available to this user.
    """
    now = now or utcnow()
    product = repos.products.get(product_id)
    if product is None:
        raise NotFoundError("Product")

    if is_reserved_for(product, user_id, now):
        return product

    reclaimable = product.status == ProductStatus.ACTIVE or is_reservation_expired(product, now)
    if not reclaimable:
        if product.status == ProductStatus.SOLD:
            raise ConflictError("This item has been sold")
        if product.status == ProductStatus.RESERVED:
            raise ConflictError("This item is currently reserved by another buyer")
        raise ConflictError("This item is no longer available")

    reserved = repos.products.update_if(
        product.id,
        {"status": product.status, "reserved_by": product.reserved_by, "reserved_until": product.reserved_until},
        status=ProductStatus.RESERVED,
        reserved_by=user_id,
        reserved_until=now + ttl,
        updated_at=now,
    )
    if reserved is None:
        # lost the race to a concurrent checkout
        raise ConflictError("This item is no longer available")
    logger.info("Product %s reserved by user %s until %s", product.id, user_id, reserved.reserved_until)
    return reserved


def release(
    repos: Repositories,
    product_id: int,
    reserved_by: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Optional[models.Product]:
    """Drop a reservation. Safe to call repeatedly; never touches a SOLD product.

    With `reserved_by`, a reservation now held by somebody else is left alone.
    """
    now = now or utcnow()
    product = repos.products.get(product_id)
    if product is None:
        return None
    if product.status == ProductStatus.SOLD:
        return product
    if reserved_by is not None and product.reserved_by not in (None, reserved_by):
        logger.info(
            "Not releasing product %s: reserved by %s, not %s", product.id, product.reserved_by, reserved_by
        )
        return product
    if product.status == ProductStatus.RESERVED:
        released = repos.products.update_if(
            product.id,
            {"status": ProductStatus.RESERVED, "reserved_by": product.reserved_by},
            status=ProductStatus.ACTIVE,
            updated_at=now,
            **_CLEARED,
        )
        return released or repos.products.get(product.id)
    if product.reserved_by is not None or product.reserved_until is not None:
        return repos.products.update(product.id, updated_at=now, **_CLEARED)
    return product


def mark_sold(repos: Repositories, product_id: int, now: Optional[datetime] = None) -> bool:
    """Mark a product SOLD. Returns False if it already was (or is missing)."""
    now = now or utcnow()
    product = repos.products.get(product_id)
    if product is None or product.status == ProductStatus.SOLD:
        return False
    updated = repos.products.update_if(
        product.id,
        {"status": product.status},
        status=ProductStatus.SOLD,
        updated_at=now,
        **_CLEARED,
    )
    return updated is not None


def sell_to_order(
    repos: Repositories,
    product_id: int,
    order_id: int,
    buyer_id: int,
    now: Optional[datetime] = None,
) -> bool:
    """Mark a product SOLD to one order. True once it belongs to that order.

    The buyer's own reservation qualifies, and so does a product nobody holds
    (ACTIVE, or a lapsed reservation). A product held by or sold to anyone
    else is left untouched and False is returned.
    """
    now = now or utcnow()
    for _ in range(3):
        product = repos.products.get(product_id)
        if product is None:
            return False
        if product.status == ProductStatus.SOLD:
            return product.sold_order_id == order_id
        available = (
            is_reserved_for(product, buyer_id, now)
            or product.status == ProductStatus.ACTIVE
            or is_reservation_expired(product, now)
        )
        if not available:
            return False
        sold = repos.products.update_if(
            product.id,
            {"status": product.status, "reserved_by": product.reserved_by, "reserved_until": product.reserved_until},
            status=ProductStatus.SOLD,
            sold_order_id=order_id,
            updated_at=now,
            **_CLEARED,
        )
        if sold is not None:
            logger.info("Product %s sold to order %s", product.id, order_id)
            return True
    logger.warning("Gave up selling product %s to order %s after repeated conflicts", product_id, order_id)
    return False


def cleanup_expired_reservations(repos: Repositories, now: Optional[datetime] = None) -> Tuple[List[str], int]:
    """Release every lapsed reservation. Returns (released SKUs, error count)."""
    now = now or utcnow()
    released, errors = [], 0
    for product in repos.products.find(status=ProductStatus.RESERVED):
        if not is_reservation_expired(product, now):
            continue
        try:
            if _release_expired(repos, product, now).status == ProductStatus.ACTIVE:
                released.append(product.sku)
        except Exception:
            errors += 1
            logger.exception("Failed to release reservation on product %s", product.id)
    return released, errors


# Catalog management


def create_product(
    repos: Repositories,
    store_id: int,
    *,
    sku: str,
    title: str,
    brand: str,
    price_cents: int,
    description: str = "",
    original_price_cents: Optional[int] = None,
    now: Optional[datetime] = None,
) -> models.Product:
    now = now or utcnow()
    if price_cents <= 0:
        raise ValidationError("price_cents must be > 0")
    product = models.Product(
        store_id=store_id,
        sku=sku,
        title=title,
        brand=brand,
        description=description,
        price_cents=price_cents,
        original_price_cents=original_price_cents,
        status=ProductStatus.DRAFT,
        reserved_by=None,
        reserved_until=None,
        created_at=now,
        updated_at=now,
    )
    try:
        return repos.products.add(product)
    except ConflictError:
        raise ConflictError("sku already exists")


def update_product(repos: Repositories, product_id: int, now: Optional[datetime] = None, **changes) -> models.Product:
    """Edit listing fields. Only provided (non-None) fields are changed."""
    now = now or utcnow()
    allowed = {"title", "brand", "description", "price_cents", "original_price_cents"}
    changes = {k: v for k, v in changes.items() if k in allowed and v is not None}
    if "price_cents" in changes and changes["price_cents"] <= 0:
        raise ValidationError("price_cents must be > 0")
    product = get_product(repos, product_id, now)
    if product is None:
        raise NotFoundError("Product")
    if product.status == ProductStatus.SOLD:
        raise ValidationError("Sold products cannot be edited")
    return repos.products.update(product.id, updated_at=now, **changes)


def publish_product(repos: Repositories, product_id: int, now: Optional[datetime] = None) -> models.Product:
    now = now or utcnow()
    product = get_product(repos, product_id, now)
    if product is None:
        raise NotFoundError("Product")
    if product.status == ProductStatus.ACTIVE:
        return product
    if product.status not in (ProductStatus.DRAFT, ProductStatus.ARCHIVED):
        raise ValidationError(f"Cannot publish a {product.status.value} product")
    updated = repos.products.update_if(
        product.id, {"status": product.status}, status=ProductStatus.ACTIVE, updated_at=now
    )
    if updated is None:
        raise ConflictError("Product was modified concurrently")
    return updated


def archive_product(repos: Repositories, product_id: int, now: Optional[datetime] = None) -> models.Product:
    now = now or utcnow()
    product = get_product(repos, product_id, now)
    if product is None:
        raise NotFoundError("Product")
    if product.status == ProductStatus.ARCHIVED:
        return product
    if product.status not in (ProductStatus.DRAFT, ProductStatus.ACTIVE):
        raise ValidationError(f"Cannot archive a {product.status.value} product")
    updated = repos.products.update_if(
        product.id, {"status": product.status}, status=ProductStatus.ARCHIVED, updated_at=now
    )
    if updated is None:
        raise ConflictError("Product was modified concurrently")
    return updated


def list_active_products(
    repos: Repositories, skip: int = 0, limit: int = 100, now: Optional[datetime] = None
) -> Tuple[List[models.Product], int]:
    """Products a buyer can purchase right now, lapsed reservations included."""
    now = now or utcnow()
    for product in repos.products.find(status=ProductStatus.RESERVED):
        if is_reservation_expired(product, now):
            _release_expired(repos, product, now)
    items = repos.products.find(status=ProductStatus.ACTIVE)
    return items[skip:skip + limit], len(items)

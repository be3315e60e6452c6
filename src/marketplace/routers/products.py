from fastapi import APIRouter, Depends, Query, Response, status

from .. import schemas
from ..auth import Session, require_store_admin
from ..database import get_repositories
from ..errors import ForbiddenError, NotFoundError
from ..repositories import Repositories
from ..services import inventory

router = APIRouter(tags=["products"])


@router.get("/products", response_model=schemas.ProductList)
def list_products(
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    repos: Repositories = Depends(get_repositories),
):
    """Products available for purchase, paged. Lapsed reservations count as available."""
    items, total = inventory.list_active_products(repos, skip=(page - 1) * size, limit=size)
    return {"items": items, "page": page, "size": size, "total": total}


@router.get(
    "/products/sku/{sku}",
    response_model=schemas.Product,
    responses={404: {"description": "Product not found"}},
)
def get_product_by_sku(sku: str, repos: Repositories = Depends(get_repositories)):
    product = inventory.get_product_by_sku(repos, sku)
    if product is None:
        raise NotFoundError("Product")
    return product


@router.get(
    "/products/{product_id}",
    response_model=schemas.Product,
    responses={404: {"description": "Product not found"}},
)
def get_product(product_id: int, repos: Repositories = Depends(get_repositories)):
    product = inventory.get_product(repos, product_id)
    if product is None:
        raise NotFoundError("Product")
    return product


def _own_product(repos: Repositories, session: Session, product_id: int):
    product = inventory.get_product(repos, product_id)
    if product is None:
        raise NotFoundError("Product")
    if product.store_id != session.store_id and not session.is_admin:
        raise ForbiddenError("You can only manage your own store's products")
    return product


@router.post(
    "/store/products",
    status_code=status.HTTP_201_CREATED,
    response_model=schemas.Product,
    responses={409: {"description": "Conflict - SKU exists"}},
)
def create_product(
    payload: schemas.ProductCreate,
    response: Response,
    session: Session = Depends(require_store_admin),
    repos: Repositories = Depends(get_repositories),
):
    """Create a DRAFT listing in the caller's store. Publish it with PUT status=ACTIVE."""
    if session.store_id is None:
        raise ForbiddenError("No store found")
    product = inventory.create_product(repos, session.store_id, **payload.model_dump())
    response.headers["Location"] = f"/products/{product.id}"
    return product


@router.put("/store/products/{product_id}", response_model=schemas.Product)
def update_product(
    product_id: int,
    payload: schemas.ProductUpdate,
    session: Session = Depends(require_store_admin),
    repos: Repositories = Depends(get_repositories),
):
    product = _own_product(repos, session, product_id)
    fields = payload.model_dump(exclude_unset=True, exclude={"status"})
    if fields:
        product = inventory.update_product(repos, product.id, **fields)
    if payload.status == "ACTIVE":
        product = inventory.publish_product(repos, product.id)
    elif payload.status == "ARCHIVED":
        product = inventory.archive_product(repos, product.id)
    return product

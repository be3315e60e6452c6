from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt, field_validator

from ..models import (
    DisputeReason,
    DisputeResolution,
    DisputeStatus,
    OrderStatus,
    PaymentStatus,
    ProductStatus,
)


class ProductBase(BaseModel):
    sku: str = Field(..., min_length=1, max_length=64)
    title: str = Field(..., min_length=1, max_length=200)
    brand: str = Field(..., min_length=1, max_length=100)
    description: str = ""
    price_cents: int = Field(..., gt=0)
    original_price_cents: Optional[int] = Field(None, gt=0)


class ProductCreate(ProductBase):
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "sku": "HER-BIRKIN-30-001",
                "title": "Birkin 30 Togo Gold",
                "brand": "Hermes",
                "description": "Gold hardware, excellent condition.",
                "price_cents": 1850000,
                "original_price_cents": 2100000,
            }
        }
    )


class ProductUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    brand: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    price_cents: Optional[int] = Field(None, gt=0)
    original_price_cents: Optional[int] = Field(None, gt=0)
    status: Optional[Literal["ACTIVE", "ARCHIVED"]] = None

    model_config = ConfigDict(json_schema_extra={"example": {"price_cents": 1750000, "status": "ACTIVE"}})


class Product(ProductBase):
    id: int
    store_id: int
    status: ProductStatus
    reserved_until: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProductList(BaseModel):
    items: List[Product]
    page: int
    size: int
    total: int


class Address(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    street1: str = Field(..., min_length=1, max_length=200)
    street2: Optional[str] = Field(None, max_length=200)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    postal_code: str = Field(..., min_length=1, max_length=20)
    country: str = Field("US", min_length=2, max_length=2)
    phone: Optional[str] = Field(None, max_length=30)


class CheckoutRequest(BaseModel):
    product_id: int
    shipping_address: Address

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "product_id": 1,
                "shipping_address": {
                    "name": "Jane Doe",
                    "street1": "1 Main St",
                    "city": "New York",
                    "state": "NY",
                    "postal_code": "10001",
                    "country": "US",
                },
            }
        }
    )


class Order(BaseModel):
    id: int
    order_number: str
    buyer_id: int
    store_id: int
    product_id: int
    product_title: str
    product_sku: str
    subtotal_cents: int
    shipping_cents: int
    tax_cents: int
    total_cents: int
    platform_fee_cents: int
    status: OrderStatus
    payment_status: PaymentStatus
    shipping_address: Dict[str, Any]
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    dispute_deadline: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CheckoutResponse(BaseModel):
    order: Order
    session_id: str
    checkout_url: str
    is_demo: bool


class StoreOrderUpdate(BaseModel):
    status: Optional[Literal["PROCESSING", "SHIPPED", "DELIVERED", "CANCELLED"]] = None
    carrier: Optional[str] = Field(None, max_length=50)
    tracking_number: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=2000)

    model_config = ConfigDict(
        json_schema_extra={"example": {"status": "SHIPPED", "carrier": "UPS", "tracking_number": "1Z999"}}
    )


class DisputeCreate(BaseModel):
    order_id: int
    reason: DisputeReason
    description: str = Field(..., min_length=20, max_length=2000)
    evidence: List[str] = Field(default_factory=list, max_length=10)

    @field_validator("evidence")
    @classmethod
    def evidence_urls(cls, v):
        for url in v:
            if not url.startswith(("http://", "https://")):
                raise ValueError("evidence entries must be URLs")
        return v


class DisputeMessageCreate(BaseModel):
    message: str = Field(..., min_length=1, max_length=2000)
    attachments: List[str] = Field(default_factory=list, max_length=5)


class DisputeResolve(BaseModel):
    status: Literal["RESOLVED", "CLOSED"] = "RESOLVED"
    resolution: DisputeResolution
    resolution_notes: Optional[str] = Field(None, max_length=2000)


class DisputeMessage(BaseModel):
    id: int
    sender_id: int
    sender_name: str
    sender_role: str
    message: str
    attachments: List[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class Dispute(BaseModel):
    id: int
    order_id: int
    buyer_id: int
    seller_id: int
    store_id: int
    reason: DisputeReason
    description: str
    evidence: List[str]
    status: DisputeStatus
    resolution: Optional[DisputeResolution] = None
    resolution_notes: Optional[str] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DisputeDetail(Dispute):
    messages: List[DisputeMessage] = []


class PriceAlertCreate(BaseModel):
    product_id: int
    # a float such as 99.5 is rejected rather than truncated
    target_price_cents: StrictInt = Field(..., gt=0)


class PriceAlertDelete(BaseModel):
    alert_id: Optional[int] = None
    product_id: Optional[int] = None


class PriceAlert(BaseModel):
    id: int
    product_id: int
    product_title: str
    product_brand: str
    current_price_cents: int
    target_price_cents: int
    price_at_creation_cents: int
    watcher_count: int
    created_at: datetime


class ReviewCreate(BaseModel):
    order_id: int
    rating: StrictInt = Field(..., ge=1, le=5)
    title: Optional[str] = Field(None, max_length=100)
    comment: Optional[str] = Field(None, max_length=2000)
    images: List[str] = Field(default_factory=list, max_length=5)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"order_id": 42, "rating": 5, "title": "As described", "comment": "Arrived fast."}
        }
    )


class Review(BaseModel):
    id: int
    order_id: int
    product_id: int
    store_id: int
    buyer_name: str
    rating: int
    title: Optional[str] = None
    comment: Optional[str] = None
    images: List[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ReviewStats(BaseModel):
    total_reviews: int
    average_rating: float
    rating_distribution: Dict[int, int]


class ReviewList(BaseModel):
    reviews: List[Review]
    stats: ReviewStats


class CronResult(BaseModel):
    success: bool
    processed: int
    errors: int
    details: Dict[str, Any] = {}
    duration_ms: int


class WebhookAck(BaseModel):
    received: bool
    status: str

"""Schemas package re-exports for easy imports from `src.marketplace.schemas`."""
from .schemas import (
    Address,
    CheckoutRequest,
    CheckoutResponse,
    CronResult,
    Dispute,
    DisputeCreate,
    DisputeDetail,
    DisputeMessage,
    DisputeMessageCreate,
    DisputeResolve,
    Order,
    PriceAlert,
    PriceAlertCreate,
    PriceAlertDelete,
    Product,
    ProductBase,
    ProductCreate,
    ProductList,
    ProductUpdate,
    Review,
    ReviewCreate,
    ReviewList,
    ReviewStats,
    StoreOrderUpdate,
    WebhookAck,
)

__all__ = [
    "Address",
    "CheckoutRequest",
    "CheckoutResponse",
    "CronResult",
    "Dispute",
    "DisputeCreate",
    "DisputeDetail",
    "DisputeMessage",
    "DisputeMessageCreate",
    "DisputeResolve",
    "Order",
    "PriceAlert",
    "PriceAlertCreate",
    "PriceAlertDelete",
    "Product",
    "ProductBase",
    "ProductCreate",
    "ProductList",
    "ProductUpdate",
    "Review",
    "ReviewCreate",
    "ReviewList",
    "ReviewStats",
    "StoreOrderUpdate",
    "WebhookAck",
]

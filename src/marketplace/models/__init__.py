"""Models package re-exports for easy imports from `src.marketplace.models`."""
from .models import (
    Base,
    User,
    UserRole,
    Store,
    StoreType,
    Product,
    ProductStatus,
    Order,
    OrderStatus,
    PaymentStatus,
    Dispute,
    DisputeMessage,
    DisputeStatus,
    DisputeReason,
    DisputeResolution,
    PriceAlert,
    Review,
    StorePayout,
    PayoutStatus,
    WebhookEvent,
)

__all__ = [
    "Base",
    "User",
    "UserRole",
    "Store",
    "StoreType",
    "Product",
    "ProductStatus",
    "Order",
    "OrderStatus",
    "PaymentStatus",
    "Dispute",
    "DisputeMessage",
    "DisputeStatus",
    "DisputeReason",
    "DisputeResolution",
    "PriceAlert",
    "Review",
    "StorePayout",
    "PayoutStatus",
    "WebhookEvent",
]

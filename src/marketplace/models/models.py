from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import text
import enum

Base = declarative_base()


class UserRole(enum.Enum):
    BUYER = "BUYER"
    STORE_ADMIN = "STORE_ADMIN"
    ADMIN = "ADMIN"


class StoreType(enum.Enum):
    FLAGSHIP = "FLAGSHIP"
    PARTNER = "PARTNER"


class ProductStatus(enum.Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    RESERVED = "RESERVED"
    SOLD = "SOLD"
    ARCHIVED = "ARCHIVED"


class OrderStatus(enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class PaymentStatus(enum.Enum):
    PENDING = "PENDING"
    AUTHORIZED = "AUTHORIZED"
    CAPTURED = "CAPTURED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class DisputeStatus(enum.Enum):
    OPEN = "OPEN"
    SELLER_RESPONSE = "SELLER_RESPONSE"
    UNDER_REVIEW = "UNDER_REVIEW"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"


class DisputeReason(enum.Enum):
    NOT_AS_DESCRIBED = "NOT_AS_DESCRIBED"
    AUTHENTICATION_CONCERN = "AUTHENTICATION_CONCERN"
    DAMAGED_IN_SHIPPING = "DAMAGED_IN_SHIPPING"
    NOT_RECEIVED = "NOT_RECEIVED"
    WRONG_ITEM = "WRONG_ITEM"
    OTHER = "OTHER"


class DisputeResolution(enum.Enum):
    FULL_REFUND = "FULL_REFUND"
    PARTIAL_REFUND = "PARTIAL_REFUND"
    RETURN_AND_REFUND = "RETURN_AND_REFUND"
    REPLACEMENT = "REPLACEMENT"
    NO_ACTION = "NO_ACTION"
    BUYER_WITHDREW = "BUYER_WITHDREW"


class PayoutStatus(enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=False)
    role = Column(SAEnum(UserRole), nullable=False)
    created_at = Column(DateTime, nullable=False)


class Store(Base):
    __tablename__ = "stores"
    id = Column(Integer, primary_key=True, index=True)
    slug = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=False)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    store_type = Column(SAEnum(StoreType), nullable=False)
    # fraction of the sale kept by the platform, e.g. 0.10
    take_rate = Column(Float, nullable=False)
    stripe_connect_id = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False)

    __table_args__ = (
        CheckConstraint("take_rate >= 0 AND take_rate < 1", name="ck_store_take_rate_range"),
    )


class Product(Base):
    __tablename__ = "products"
    id = Column(Integer, primary_key=True, index=True)
    store_id = Column(Integer, ForeignKey("stores.id"), nullable=False, index=True)
    sku = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    brand = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    price_cents = Column(Integer, nullable=False)
    original_price_cents = Column(Integer, nullable=True)
    status = Column(SAEnum(ProductStatus), nullable=False)
    reserved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    reserved_until = Column(DateTime, nullable=True)
    # order that bought it; no FK since orders already point at products
    sold_order_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("sku", name="uq_product_sku"),
        CheckConstraint("price_cents > 0", name="ck_product_price_positive"),
    )


class StorePayout(Base):
    __tablename__ = "store_payouts"
    id = Column(Integer, primary_key=True, index=True)
    store_id = Column(Integer, ForeignKey("stores.id"), nullable=False, index=True)
    amount_cents = Column(Integer, nullable=False)
    order_count = Column(Integer, nullable=False)
    status = Column(SAEnum(PayoutStatus), nullable=False)
    transfer_id = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False)


class Order(Base):
    __tablename__ = "orders"
    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String, nullable=False, unique=True, index=True)
    buyer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    store_id = Column(Integer, ForeignKey("stores.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    product_title = Column(String, nullable=False)
    product_sku = Column(String, nullable=False)
    subtotal_cents = Column(Integer, nullable=False)
    shipping_cents = Column(Integer, nullable=False, default=0)
    tax_cents = Column(Integer, nullable=False, default=0)
    total_cents = Column(Integer, nullable=False)
    platform_fee_cents = Column(Integer, nullable=False, default=0)
    status = Column(SAEnum(OrderStatus), nullable=False)
    payment_status = Column(SAEnum(PaymentStatus), nullable=False)
    payment_session_id = Column(String, nullable=True, index=True)
    payment_session_url = Column(String, nullable=True)
    payment_intent_id = Column(String, nullable=True, index=True)
    shipping_address = Column(JSON, nullable=False)
    carrier = Column(String, nullable=True)
    tracking_number = Column(String, nullable=True)
    shipped_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    dispute_deadline = Column(DateTime, nullable=True)
    payout_id = Column(Integer, ForeignKey("store_payouts.id"), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    __table_args__ = (
        CheckConstraint("total_cents >= 0", name="ck_order_total_non_negative"),
    )


class Dispute(Base):
    __tablename__ = "disputes"
    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, unique=True)
    buyer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    seller_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    store_id = Column(Integer, ForeignKey("stores.id"), nullable=False, index=True)
    reason = Column(SAEnum(DisputeReason), nullable=False)
    description = Column(Text, nullable=False)
    evidence = Column(JSON, nullable=False)
    status = Column(SAEnum(DisputeStatus), nullable=False)
    resolution = Column(SAEnum(DisputeResolution), nullable=True)
    resolution_notes = Column(Text, nullable=True)
    resolved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)


class DisputeMessage(Base):
    __tablename__ = "dispute_messages"
    id = Column(Integer, primary_key=True, index=True)
    dispute_id = Column(Integer, ForeignKey("disputes.id"), nullable=False, index=True)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    sender_name = Column(String, nullable=False)
    sender_role = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    attachments = Column(JSON, nullable=False)
    created_at = Column(DateTime, nullable=False)


class PriceAlert(Base):
    __tablename__ = "price_alerts"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    target_price_cents = Column(Integer, nullable=False)
    price_at_creation_cents = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    triggered_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    __table_args__ = (
        CheckConstraint("target_price_cents > 0", name="ck_alert_target_positive"),
        Index(
            "uq_price_alert_active",
            "user_id",
            "product_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )


class WebhookEvent(Base):
    __tablename__ = "webhook_events"
    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(String, nullable=False, unique=True, index=True)
    event_type = Column(String, nullable=False)
    received_at = Column(DateTime, nullable=False)


class Review(Base):
    __tablename__ = "reviews"
    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, unique=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    store_id = Column(Integer, ForeignKey("stores.id"), nullable=False, index=True)
    buyer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    buyer_name = Column(String, nullable=False)
    rating = Column(Integer, nullable=False)
    title = Column(String, nullable=True)
    comment = Column(Text, nullable=True)
    images = Column(JSON, nullable=False)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    __table_args__ = (
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_review_rating_range"),
    )

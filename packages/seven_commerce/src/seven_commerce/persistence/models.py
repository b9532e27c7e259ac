"""
Commerce Database Models

Tables owned by the commerce package:
- users: tenants (account, plan, credit balance)
- subscription_plans: billing tiers and their limits
- products / product_logs: catalog and stock movements
- orders / order_items: orders detected from conversations
- leads: CRM records
- notifications: dashboard notifications
- credit_usage: credit ledger
- admin_anomalies: events surfaced to platform admins
"""

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from sevencore.clock import utcnow
from sevencore.db import Base, JSONType


class OrderStatus(str, Enum):
    PENDING = "pending"
    VALIDATED = "validated"
    REJECTED = "rejected"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DELIVERED = "delivered"


class PaymentMethod(str, Enum):
    ON_DELIVERY = "on_delivery"
    ONLINE = "online"


class StockAction(str, Enum):
    ADD = "stock_add"
    REMOVE = "stock_remove"


class LeadStatus(str, Enum):
    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    CONVERTED = "converted"
    REJECTED = "rejected"


class NotificationType(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    LEAD = "lead"
    WHATSAPP = "whatsapp"
    CREDIT = "credit"
    AGENT = "agent"


class TimestampMixin:
    """Common fields for all commerce models."""

    id = Column(Uuid, primary_key=True, default=uuid4)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )


class User(Base, TimestampMixin):
    """A tenant account. Owns agents, products, orders, leads and campaigns."""

    __tablename__ = "users"

    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(255), nullable=True)
    company = Column(String(255), nullable=True)
    plan = Column(String(50), nullable=False, default="free")
    credits = Column(Integer, nullable=False, default=100)
    is_admin = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)


class SubscriptionPlan(Base, TimestampMixin):
    """Billing tier. `limits` values of -1 mean unlimited."""

    __tablename__ = "subscription_plans"

    name = Column(String(50), nullable=False, unique=True)
    display_name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(12, 2), nullable=False, default=0)
    price_currency = Column(String(3), nullable=False, default="XOF")
    limits = Column(JSONType, nullable=False, default=dict)
    features = Column(JSONType, nullable=False, default=dict)
    sort_order = Column(Integer, nullable=False, default=0)
    is_default = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)


class Product(Base, TimestampMixin):
    __tablename__ = "products"

    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    sku = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    price = Column(Numeric(12, 2), nullable=False, default=0)
    stock = Column(Integer, nullable=False, default=0)
    category = Column(String(100), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("idx_products_user_active", "user_id", "is_active"),
    )


class ProductLog(Base, TimestampMixin):
    """One stock movement."""

    __tablename__ = "product_logs"

    product_id = Column(Uuid, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    action = Column(String(30), nullable=False)
    quantity_change = Column(Integer, nullable=False)
    stock_before = Column(Integer, nullable=False)
    stock_after = Column(Integer, nullable=False)
    order_id = Column(Uuid, nullable=True)
    notes = Column(Text, nullable=True)

    product = relationship("Product")

    __table_args__ = (
        Index("idx_product_logs_user_created", "user_id", "created_at"),
        Index("idx_product_logs_product", "product_id"),
    )


class Order(Base, TimestampMixin):
    __tablename__ = "orders"

    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    # Conversation and agent live in the messaging tables; plain references
    conversation_id = Column(Uuid, nullable=True)
    agent_id = Column(Uuid, nullable=True)
    customer_name = Column(String(255), nullable=False)
    customer_phone = Column(String(50), nullable=True)
    total_amount = Column(Numeric(14, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="XOF")
    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value)
    payment_method = Column(String(20), nullable=False, default=PaymentMethod.ON_DELIVERY.value)
    notes = Column(Text, nullable=True)
    validated_by = Column(Uuid, nullable=True)
    validated_at = Column(DateTime(timezone=True), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="OrderItem.created_at",
    )

    __table_args__ = (
        Index("idx_orders_user_status", "user_id", "status"),
        Index("idx_orders_conversation_status", "conversation_id", "status"),
        Index("idx_orders_user_created", "user_id", "created_at"),
    )


class OrderItem(Base, TimestampMixin):
    __tablename__ = "order_items"

    order_id = Column(Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(Uuid, ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    product_name = Column(String(255), nullable=False)
    product_sku = Column(String(100), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(12, 2), nullable=False, default=0)
    total_price = Column(Numeric(14, 2), nullable=False, default=0)

    order = relationship("Order", back_populates="items")

    __table_args__ = (
        Index("idx_order_items_order", "order_id"),
    )


class Lead(Base, TimestampMixin):
    __tablename__ = "leads"

    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    company = Column(String(255), nullable=True)
    source = Column(String(50), nullable=False, default="whatsapp")
    status = Column(String(20), nullable=False, default=LeadStatus.NEW.value)
    is_suggested = Column(Boolean, nullable=False, default=False)
    ai_confidence = Column(Float, nullable=True)
    ai_reason = Column(Text, nullable=True)
    agent_id = Column(Uuid, nullable=True)
    conversation_id = Column(Uuid, nullable=True)
    notes = Column(Text, nullable=True)
    validated_at = Column(DateTime(timezone=True), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", "phone", name="uq_leads_user_phone"),
        Index("idx_leads_conversation", "conversation_id"),
        Index("idx_leads_user_suggested", "user_id", "is_suggested"),
    )


class Notification(Base, TimestampMixin):
    __tablename__ = "notifications"

    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(20), nullable=False, default=NotificationType.INFO.value)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=True)
    link = Column(String(255), nullable=True)
    metadata_json = Column("metadata", JSONType, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("idx_notifications_user_read", "user_id", "is_read"),
        Index("idx_notifications_user_created", "user_id", "created_at"),
    )


class CreditUsage(Base, TimestampMixin):
    """Credit ledger. Positive amounts are consumption, negative are additions."""

    __tablename__ = "credit_usage"

    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    action = Column(String(100), nullable=False)
    amount = Column(Integer, nullable=False, default=0)
    metadata_json = Column("metadata", JSONType, nullable=True)

    __table_args__ = (
        Index("idx_credit_usage_user_created", "user_id", "created_at"),
    )


class AdminAnomaly(Base, TimestampMixin):
    __tablename__ = "admin_anomalies"

    type = Column(String(50), nullable=False)
    severity = Column(String(20), nullable=False, default="medium")
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=True)
    metadata_json = Column("metadata", JSONType, nullable=True)
    is_resolved = Column(Boolean, nullable=False, default=False)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_admin_anomalies_resolved", "is_resolved", "created_at"),
    )

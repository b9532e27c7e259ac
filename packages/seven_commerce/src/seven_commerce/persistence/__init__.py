"""
Commerce Persistence

Models and repository for tenants, catalog, orders, leads and credits.
"""

from seven_commerce.persistence.models import (
    AdminAnomaly,
    CreditUsage,
    Lead,
    LeadStatus,
    Notification,
    NotificationType,
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    Product,
    ProductLog,
    StockAction,
    SubscriptionPlan,
    User,
)
from seven_commerce.persistence.repo import CommerceRepository

__all__ = [
    "AdminAnomaly",
    "CommerceRepository",
    "CreditUsage",
    "Lead",
    "LeadStatus",
    "Notification",
    "NotificationType",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentMethod",
    "Product",
    "ProductLog",
    "StockAction",
    "SubscriptionPlan",
    "User",
]

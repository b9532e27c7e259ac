"""
Commerce Repository

Common queries over the commerce tables. Services own the transaction:
nothing here commits.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from seven_commerce.persistence.models import (
    Lead,
    Order,
    OrderStatus,
    Product,
    User,
)


class CommerceRepository:
    """Repository for commerce database operations."""

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # Users
    # =========================================================================

    def get_user(self, user_id: UUID) -> User | None:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_active_users(self) -> list[User]:
        return self.db.query(User).filter(User.is_active == True).all()  # noqa: E712

    # =========================================================================
    # Products
    # =========================================================================

    def get_active_products(self, user_id: UUID) -> list[Product]:
        """Active catalog of a tenant, oldest first."""
        return (
            self.db.query(Product)
            .filter(Product.user_id == user_id, Product.is_active == True)  # noqa: E712
            .order_by(Product.created_at)
            .all()
        )

    def get_product(self, product_id: UUID, user_id: UUID, lock: bool = False) -> Product | None:
        """
        Get a tenant product.

        With `lock`, the row is selected FOR UPDATE. Backends without row
        locks (SQLite) ignore the clause.
        """
        query = self.db.query(Product).filter(Product.id == product_id, Product.user_id == user_id)
        if lock:
            query = query.with_for_update()
        return query.first()

    def find_product_by_name(self, user_id: UUID, name: str) -> Product | None:
        return (
            self.db.query(Product)
            .filter(Product.user_id == user_id, Product.name == name.strip())
            .first()
        )

    def find_product_by_sku(self, user_id: UUID, sku: str) -> Product | None:
        return (
            self.db.query(Product)
            .filter(Product.user_id == user_id, Product.sku == sku.strip())
            .first()
        )

    # =========================================================================
    # Orders
    # =========================================================================

    def get_order(self, order_id: UUID, user_id: UUID) -> Order | None:
        return (
            self.db.query(Order)
            .filter(Order.id == order_id, Order.user_id == user_id)
            .first()
        )

    def get_pending_order_for_conversation(self, conversation_id: UUID) -> Order | None:
        """Most recent pending order of a conversation."""
        return (
            self.db.query(Order)
            .filter(
                Order.conversation_id == conversation_id,
                Order.status == OrderStatus.PENDING.value,
            )
            .order_by(Order.created_at.desc())
            .first()
        )

    def list_orders(
        self,
        user_id: UUID,
        status: str | None = None,
        limit: int = 50,
    ) -> list[Order]:
        query = self.db.query(Order).filter(Order.user_id == user_id)
        if status:
            query = query.filter(Order.status == status)
        return query.order_by(Order.created_at.desc()).limit(limit).all()

    def count_orders(self, user_id: UUID, status: str | None = None) -> int:
        query = self.db.query(Order).filter(Order.user_id == user_id)
        if status:
            query = query.filter(Order.status == status)
        return query.count()

    # =========================================================================
    # Leads
    # =========================================================================

    def get_lead(self, lead_id: UUID, user_id: UUID) -> Lead | None:
        return self.db.query(Lead).filter(Lead.id == lead_id, Lead.user_id == user_id).first()

    def get_lead_for_conversation(self, conversation_id: UUID) -> Lead | None:
        return self.db.query(Lead).filter(Lead.conversation_id == conversation_id).first()

    def get_lead_by_phone(self, user_id: UUID, phone: str) -> Lead | None:
        return self.db.query(Lead).filter(Lead.user_id == user_id, Lead.phone == phone).first()

    def list_suggested_leads(self, user_id: UUID) -> list[Lead]:
        return (
            self.db.query(Lead)
            .filter(
                Lead.user_id == user_id,
                Lead.is_suggested == True,  # noqa: E712
            )
            .order_by(Lead.created_at.desc())
            .all()
        )

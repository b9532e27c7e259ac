"""
Order Service

Orders detected from WhatsApp conversations, their validation against
stock, and the stock ledger.

Validation is the only place stock is decremented for a sale. The stock
check and the decrement for every item happen in one transaction with the
product rows selected FOR UPDATE, so two concurrent validations of orders
for the same product cannot both pass the check.
"""

import logging
from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from sevencore.clock import as_utc, utcnow
from sevencore.errors import InsufficientStockError, InvalidStateError, NotFoundError
from sevencore.settings import get_settings
from seven_commerce.contracts.payloads import (
    DeliveryPayload,
    DetectedItem,
    OrderValidatedPayload,
)
from seven_commerce.detection.delivery import parse_delivery_block
from seven_commerce.engines.lead_analyzer import LeadAnalyzer
from seven_commerce.events import DomainEventPublisher, DomainEventType
from seven_commerce.persistence.models import (
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    Product,
    ProductLog,
    StockAction,
)
from seven_commerce.persistence.repo import CommerceRepository
from seven_commerce.services.notifications import NotificationService

logger = logging.getLogger(__name__)

ANALYTICS_PERIODS = {"7d": 7, "30d": 30, "90d": 90, "all": None}
REVENUE_STATUSES = (OrderStatus.VALIDATED.value, OrderStatus.DELIVERED.value)


class OrderNotFoundError(NotFoundError):
    def __init__(self):
        super().__init__("Commande non trouvée", code="order_not_found")


class OrderAlreadyProcessedError(InvalidStateError):
    def __init__(self, message: str = "Cette commande a déjà été traitée"):
        super().__init__(message, code="order_already_processed")


def format_amount(value: Decimal | int | float | None) -> str:
    return f"{Decimal(str(value or 0)):,.0f}"


def format_order_items(order: Order) -> str:
    """One "• name xqty = total currency" line per item."""
    return "\n".join(
        f"• {item.product_name or 'Produit'} x{item.quantity or 1} = "
        f"{format_amount(item.total_price)} {order.currency}"
        for item in order.items
    )


def coerce_payment_method(value: str | None) -> str:
    return PaymentMethod.ONLINE.value if value == PaymentMethod.ONLINE.value else PaymentMethod.ON_DELIVERY.value


def _growth(current: Decimal | int, previous: Decimal | int) -> float:
    if not previous:
        return 0.0
    return round(float((Decimal(current) - Decimal(previous)) / Decimal(previous) * 100), 1)


class OrderService:
    def __init__(
        self,
        db: Session,
        notifications: NotificationService | None = None,
        publisher: DomainEventPublisher | None = None,
        lead_analyzer: LeadAnalyzer | None = None,
    ):
        self.db = db
        self.repo = CommerceRepository(db)
        self.notifications = notifications or NotificationService(db)
        self.publisher = publisher or DomainEventPublisher()
        self.lead_analyzer = lead_analyzer or LeadAnalyzer(
            db, notifications=self.notifications, publisher=self.publisher
        )
        self.low_stock_threshold = get_settings().LOW_STOCK_THRESHOLD

    # =========================================================================
    # Orders
    # =========================================================================

    def _build_item(self, item: DetectedItem) -> OrderItem:
        unit_price = Decimal(str(item.unit_price or 0))
        quantity = item.quantity or 1
        return OrderItem(
            product_id=item.product_id,
            product_name=item.product_name,
            product_sku=item.product_sku,
            quantity=quantity,
            unit_price=unit_price,
            total_price=unit_price * quantity,
        )

    def create_order(
        self,
        user_id: UUID,
        conversation_id: UUID | None,
        customer_name: str,
        customer_phone: str | None,
        items: list[DetectedItem],
        notes: str | None = None,
        currency: str = "XOF",
        payment_method: str = PaymentMethod.ON_DELIVERY.value,
        agent_id: UUID | None = None,
        commit: bool = True,
    ) -> Order:
        """
        Create a pending order from detected items.

        With `commit=False` the order is only flushed and joins the caller's
        transaction.
        """
        order = Order(
            user_id=user_id,
            conversation_id=conversation_id,
            agent_id=agent_id,
            customer_name=customer_name,
            customer_phone=customer_phone,
            currency=currency,
            notes=notes,
            payment_method=coerce_payment_method(payment_method),
            status=OrderStatus.PENDING.value,
        )
        order.items = [self._build_item(item) for item in items]
        order.total_amount = sum((i.total_price for i in order.items), Decimal("0"))
        self.db.add(order)
        self.db.flush()

        self.notifications.create(
            user_id,
            type="warning",
            title="Nouvelle commande à valider",
            message=f"{customer_name} - {format_amount(order.total_amount)} {currency}",
            link="/dashboard/orders",
        )
        if commit:
            self.db.commit()

        logger.info(
            f"Created order {order.id} with {len(order.items)} items, total: {order.total_amount} {currency}",
            extra={"user_id": str(user_id), "order_id": str(order.id)},
        )
        return order

    def add_items_to_order(
        self, order_id: UUID, user_id: UUID, items: list[DetectedItem], commit: bool = True
    ) -> Order:
        """
        Append items whose product is not already on the pending order.

        The order is returned unchanged when every item is already present.
        With `commit=False` the change is only flushed.
        """
        order = self.repo.get_order(order_id, user_id)
        if not order:
            raise OrderNotFoundError()
        if order.status != OrderStatus.PENDING.value:
            raise OrderAlreadyProcessedError()

        present_ids = {i.product_id for i in order.items if i.product_id}
        present_names = {i.product_name.strip().lower() for i in order.items if not i.product_id}

        new_items = []
        for item in items:
            if item.product_id and item.product_id in present_ids:
                continue
            if not item.product_id and item.product_name.strip().lower() in present_names:
                continue
            new_items.append(item)
            if item.product_id:
                present_ids.add(item.product_id)
            else:
                present_names.add(item.product_name.strip().lower())

        if not new_items:
            return order

        for item in new_items:
            order.items.append(self._build_item(item))
        order.total_amount = sum((i.total_price for i in order.items), Decimal("0"))
        if commit:
            self.db.commit()
        else:
            self.db.flush()

        logger.info(f"Added {len(new_items)} items to pending order {order.id}")
        return order

    def get_order(self, order_id: UUID, user_id: UUID) -> Order:
        order = self.repo.get_order(order_id, user_id)
        if not order:
            raise OrderNotFoundError()
        return order

    def list_orders(self, user_id: UUID, status: str | None = None, limit: int = 50) -> list[Order]:
        return self.repo.list_orders(user_id, status=status, limit=limit)

    def get_pending_count(self, user_id: UUID) -> int:
        return self.repo.count_orders(user_id, OrderStatus.PENDING.value)

    def resolve_product_id(self, user_id: UUID, name: str | None, sku: str | None) -> UUID | None:
        """Find a catalog product by trimmed name, then by SKU."""
        if name:
            product = self.repo.find_product_by_name(user_id, name)
            if product:
                return product.id
        if sku:
            product = self.repo.find_product_by_sku(user_id, sku)
            if product:
                return product.id
        return None

    def validate_order(self, order_id: UUID, user_id: UUID, validated_by: UUID | None = None) -> Order:
        """
        Validate a pending order and take its items out of stock.

        Raises:
            OrderNotFoundError, OrderAlreadyProcessedError, InsufficientStockError
        """
        order = self.repo.get_order(order_id, user_id)
        if not order:
            raise OrderNotFoundError()
        if order.status != OrderStatus.PENDING.value:
            raise OrderAlreadyProcessedError()

        try:
            for item in order.items:
                if not item.product_id and (item.product_name or item.product_sku):
                    item.product_id = self.resolve_product_id(user_id, item.product_name, item.product_sku)
                    if not item.product_id:
                        logger.warning(f"Could not resolve product for item: {item.product_name or item.product_sku}")

            requested: dict[UUID, int] = defaultdict(int)
            for item in order.items:
                if item.product_id:
                    requested[item.product_id] += item.quantity

            # Lock in a stable order so concurrent validations cannot deadlock
            products: dict[UUID, Product] = {}
            for product_id in sorted(requested, key=str):
                product = self.repo.get_product(product_id, user_id, lock=True)
                if product:
                    products[product_id] = product

            stock_issues = []
            for item in order.items:
                product = products.get(item.product_id) if item.product_id else None
                if product and product.stock < requested[item.product_id]:
                    stock_issues.append(
                        {"product": item.product_name, "requested": item.quantity, "available": product.stock}
                    )
            if stock_issues:
                raise InsufficientStockError("Stock insuffisant pour certains produits", stock_issues)

            note = f"Vente - Commande #{str(order.id)[:8]}"
            for item in order.items:
                product = products.get(item.product_id) if item.product_id else None
                if product:
                    self._apply_stock_change(product, user_id, -item.quantity, order_id=order.id, notes=note)

            order.status = OrderStatus.VALIDATED.value
            order.validated_by = validated_by or user_id
            order.validated_at = utcnow()

            self.lead_analyzer.create_lead_from_order(order)
            self.notifications.create(
                user_id,
                type="success",
                title="Commande validée",
                message=f"Commande de {order.customer_name} - {format_amount(order.total_amount)} {order.currency}",
                link="/dashboard/orders",
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Validated order {order.id}", extra={"user_id": str(user_id), "order_id": str(order.id)})
        self._publish_validated(order)
        return order

    def _publish_validated(self, order: Order) -> None:
        delivery = parse_delivery_block(order.notes)
        payload = OrderValidatedPayload(
            order_id=order.id,
            conversation_id=order.conversation_id,
            customer_name=order.customer_name,
            customer_phone=order.customer_phone,
            items=[
                DetectedItem(
                    product_id=i.product_id,
                    product_name=i.product_name,
                    product_sku=i.product_sku,
                    quantity=i.quantity,
                    unit_price=i.unit_price,
                )
                for i in order.items
            ],
            total_amount=order.total_amount,
            currency=order.currency,
            payment_method=order.payment_method,
            items_summary=format_order_items(order),
            delivery=DeliveryPayload(
                city=delivery.city,
                neighborhood=delivery.neighborhood,
                phone=delivery.phone or order.customer_phone,
            ),
            validated_at=order.validated_at,
        )
        self.publisher.publish(DomainEventType.ORDER_VALIDATED, order.user_id, payload)

    def reject_order(self, order_id: UUID, user_id: UUID, reason: str | None = None) -> Order:
        order = self.get_order(order_id, user_id)
        if order.status != OrderStatus.PENDING.value:
            raise OrderAlreadyProcessedError()

        order.status = OrderStatus.REJECTED.value
        order.rejected_at = utcnow()
        order.rejection_reason = reason
        self.db.commit()

        logger.info(f"Rejected order {order.id}")
        return order

    def update_payment_method(self, order_id: UUID, user_id: UUID, payment_method: str) -> Order:
        order = self.get_order(order_id, user_id)
        order.payment_method = coerce_payment_method(payment_method)
        self.db.commit()
        return order

    def mark_as_delivered(self, order_id: UUID, user_id: UUID) -> Order:
        order = self.get_order(order_id, user_id)
        if order.status != OrderStatus.VALIDATED.value:
            raise OrderAlreadyProcessedError(
                "Seules les commandes validées peuvent être marquées comme livrées"
            )
        order.status = OrderStatus.DELIVERED.value
        order.delivered_at = utcnow()
        self.db.commit()

        logger.info(f"Marked order {order.id} as delivered")
        return order

    # =========================================================================
    # Stock
    # =========================================================================

    def _apply_stock_change(
        self,
        product: Product,
        user_id: UUID,
        change: int,
        order_id: UUID | None = None,
        notes: str | None = None,
    ) -> ProductLog:
        stock_before = product.stock
        stock_after = max(0, stock_before + change)
        product.stock = stock_after

        log = ProductLog(
            product_id=product.id,
            user_id=user_id,
            action=StockAction.ADD.value if change > 0 else StockAction.REMOVE.value,
            quantity_change=change,
            stock_before=stock_before,
            stock_after=stock_after,
            order_id=order_id,
            notes=notes,
        )
        self.db.add(log)

        logger.info(f"Stock updated for {product.name}: {stock_before} -> {stock_after} ({change:+d})")

        if stock_before > self.low_stock_threshold >= stock_after:
            self.notifications.create(
                user_id,
                type="warning",
                title="Stock faible",
                message=f"{product.name} - Il ne reste que {stock_after} unité(s)",
                link="/dashboard/products",
            )
        return log

    def update_product_stock(
        self,
        product_id: UUID,
        user_id: UUID,
        change: int,
        order_id: UUID | None = None,
        notes: str | None = None,
    ) -> ProductLog:
        """Manual stock movement. Stock never goes below zero."""
        product = self.repo.get_product(product_id, user_id, lock=True)
        if not product:
            raise NotFoundError("Produit non trouvé")
        log = self._apply_stock_change(product, user_id, change, order_id=order_id, notes=notes)
        self.db.commit()
        return log

    def get_product_logs(self, product_id: UUID, user_id: UUID, limit: int = 50) -> list[ProductLog]:
        return (
            self.db.query(ProductLog)
            .filter(ProductLog.product_id == product_id, ProductLog.user_id == user_id)
            .order_by(ProductLog.created_at.desc())
            .limit(limit)
            .all()
        )

    def get_all_product_logs(self, user_id: UUID, limit: int = 100) -> list[ProductLog]:
        return (
            self.db.query(ProductLog)
            .filter(ProductLog.user_id == user_id)
            .order_by(ProductLog.created_at.desc())
            .limit(limit)
            .all()
        )

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_stats(self, user_id: UUID) -> dict[str, Any]:
        orders = self.db.query(Order).filter(Order.user_id == user_id).all()
        today = utcnow().date()

        stats: dict[str, Any] = {
            "pending": 0,
            "validated": 0,
            "delivered": 0,
            "rejected": 0,
            "total_revenue": Decimal("0"),
            "today_orders": 0,
        }
        for order in orders:
            if order.status in ("pending", "validated", "delivered", "rejected"):
                stats[order.status] += 1
            if order.status in REVENUE_STATUSES:
                stats["total_revenue"] += Decimal(str(order.total_amount or 0))
            if order.created_at and as_utc(order.created_at).date() == today:
                stats["today_orders"] += 1
        return stats

    def get_analytics(self, user_id: UUID, period: str = "30d") -> dict[str, Any]:
        days = ANALYTICS_PERIODS.get(period, 30)
        now = utcnow()
        today = now.date()

        all_orders = self.db.query(Order).filter(Order.user_id == user_id).all()
        if days is None:
            in_period = all_orders
        else:
            since = now - timedelta(days=days)
            in_period = [o for o in all_orders if as_utc(o.created_at) >= since]

        validated = [o for o in in_period if o.status == OrderStatus.VALIDATED.value]
        conversion_rate = round(len(validated) / len(in_period) * 100, 1) if in_period else 0.0

        products: dict[str, dict[str, Any]] = defaultdict(
            lambda: {"total_quantity": 0, "total_revenue": Decimal("0"), "orders": set()}
        )
        customers: dict[tuple, dict[str, Any]] = defaultdict(
            lambda: {"order_count": 0, "total_spent": Decimal("0")}
        )
        for order in validated:
            for item in order.items:
                entry = products[item.product_name]
                entry["total_quantity"] += item.quantity
                entry["total_revenue"] += Decimal(str(item.total_price or 0))
                entry["orders"].add(order.id)
            customer = customers[(order.customer_phone, order.customer_name)]
            customer["order_count"] += 1
            customer["total_spent"] += Decimal(str(order.total_amount or 0))

        top_products = sorted(
            (
                {
                    "product_name": name,
                    "total_quantity": v["total_quantity"],
                    "total_revenue": v["total_revenue"],
                    "order_count": len(v["orders"]),
                }
                for name, v in products.items()
            ),
            key=lambda p: p["total_quantity"],
            reverse=True,
        )[:5]
        top_customers = sorted(
            (
                {"customer_name": name, "customer_phone": phone, **v}
                for (phone, name), v in customers.items()
            ),
            key=lambda c: c["total_spent"],
            reverse=True,
        )[:5]

        def revenue(orders: list[Order]) -> Decimal:
            return sum(
                (Decimal(str(o.total_amount or 0)) for o in orders if o.status == OrderStatus.VALIDATED.value),
                Decimal("0"),
            )

        def in_month(order: Order, year: int, month: int) -> bool:
            created = as_utc(order.created_at)
            return created.year == year and created.month == month

        last_month_day = today.replace(day=1) - timedelta(days=1)
        this_month_orders = [o for o in all_orders if in_month(o, today.year, today.month)]
        last_month_orders = [o for o in all_orders if in_month(o, last_month_day.year, last_month_day.month)]

        chart_start = today - timedelta(days=30)
        chart: dict[date, dict[str, Any]] = {}
        for order in sorted(all_orders, key=lambda o: as_utc(o.created_at)):
            day = as_utc(order.created_at).date()
            if day < chart_start:
                continue
            entry = chart.setdefault(day, {"date": day.isoformat(), "orders": 0, "revenue": Decimal("0")})
            entry["orders"] += 1
            if order.status == OrderStatus.VALIDATED.value:
                entry["revenue"] += Decimal(str(order.total_amount or 0))

        this_month = {"orders": len(this_month_orders), "revenue": revenue(this_month_orders)}
        last_month = {"orders": len(last_month_orders), "revenue": revenue(last_month_orders)}

        return {
            "conversion_rate": conversion_rate,
            "top_products": top_products,
            "top_customers": top_customers,
            "daily_revenue": revenue([o for o in all_orders if as_utc(o.created_at).date() == today]),
            "monthly_revenue": this_month["revenue"],
            "chart_data": list(chart.values()),
            "period_comparison": {
                "this_month": this_month,
                "last_month": last_month,
                "revenue_growth": _growth(this_month["revenue"], last_month["revenue"]),
                "orders_growth": _growth(this_month["orders"], last_month["orders"]),
            },
        }

    # =========================================================================
    # Cleanup
    # =========================================================================

    def _delete_orders(self, orders: list[Order]) -> int:
        for order in orders:
            self.db.delete(order)
        self.db.commit()
        return len(orders)

    def delete_order(self, order_id: UUID, user_id: UUID) -> None:
        order = self.get_order(order_id, user_id)
        self._delete_orders([order])
        logger.info(f"Deleted order {order_id}")

    def delete_orders_by_status(self, user_id: UUID, status: str) -> int:
        orders = self.db.query(Order).filter(Order.user_id == user_id, Order.status == status).all()
        deleted = self._delete_orders(orders)
        logger.info(f"Deleted {deleted} orders with status '{status}'")
        return deleted

    def cleanup_old_orders(
        self,
        user_id: UUID,
        days_old: int = 30,
        statuses: tuple[str, ...] = (OrderStatus.REJECTED.value, OrderStatus.CANCELLED.value),
    ) -> int:
        cutoff = utcnow() - timedelta(days=days_old)
        orders = (
            self.db.query(Order)
            .filter(Order.user_id == user_id, Order.status.in_(statuses), Order.created_at < cutoff)
            .all()
        )
        deleted = self._delete_orders(orders)
        logger.info(f"Cleaned up {deleted} old orders (> {days_old} days)")
        return deleted

    def clear_product_logs(self, user_id: UUID, days_old: int | None = None) -> int:
        query = self.db.query(ProductLog).filter(ProductLog.user_id == user_id)
        if days_old:
            query = query.filter(ProductLog.created_at < utcnow() - timedelta(days=days_old))
        deleted = query.delete(synchronize_session=False)
        self.db.commit()
        logger.info(f"Cleared {deleted} product logs")
        return deleted

"""
Order Detector

Turns a customer message into a pending order when the customer confirms a
purchase or sends delivery details. Products are looked up in the message
first, then in the recent conversation (a customer often discusses the
product, then answers "Bingerville, Santai 0758519080").
"""

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from seven_commerce.contracts.payloads import ConversationContext, DetectedItem, OrderCreatedPayload
from seven_commerce.detection.classifier import MessageClassifier
from seven_commerce.detection.delivery import (
    extract_delivery_info,
    format_delivery_block,
    merge_delivery_block,
)
from seven_commerce.detection.matching import extract_quantity, match_product
from seven_commerce.events import DomainEventPublisher, DomainEventType
from seven_commerce.persistence.models import Order
from seven_commerce.persistence.repo import CommerceRepository
from seven_commerce.services.orders import OrderService

logger = logging.getLogger(__name__)

CONTEXT_MESSAGES = 10


@dataclass
class OrderDetection:
    """What one message did to the conversation's pending order."""

    order: Order
    created: bool
    items: list[DetectedItem]


class OrderDetector:
    def __init__(
        self,
        db: Session,
        order_service: OrderService | None = None,
        publisher: DomainEventPublisher | None = None,
        classifier: MessageClassifier | None = None,
    ):
        self.db = db
        self.repo = CommerceRepository(db)
        self.publisher = publisher or DomainEventPublisher()
        self.orders = order_service or OrderService(db, publisher=self.publisher)
        self.classifier = classifier or MessageClassifier()

    def analyze_message(self, text: str, conversation: ConversationContext) -> Order | None:
        """
        Create or extend the conversation's pending order from `text`.

        Commits, then publishes ORDER_CREATED for a new order. Returns the
        created or updated order, or None when the message is not an order.
        """
        try:
            detection = self.detect(text, conversation)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if not detection:
            return None
        if detection.created:
            self.publish_order_created(detection, conversation)
        return detection.order

    def detect(self, text: str, conversation: ConversationContext) -> OrderDetection | None:
        """
        Flush-only variant of `analyze_message` for callers that own the
        transaction. Nothing is committed or published.
        """
        flags = self.classifier.classify(text)

        if flags.is_refusal:
            logger.info(f'Refusal detected in message: "{text[:50]}"')
            return None
        if flags.is_question:
            logger.info(f'Question detected in message: "{text[:50]}"')
            return None

        if not (flags.has_purchase_intent or flags.has_explicit_confirmation or flags.has_delivery_info):
            return None

        delivery_block = None
        if flags.has_delivery_info:
            delivery_block = format_delivery_block(extract_delivery_info(text))
            if delivery_block:
                pending = self.repo.get_pending_order_for_conversation(conversation.conversation_id)
                if pending:
                    pending.notes = merge_delivery_block(pending.notes, delivery_block)
                    self.db.flush()
                    logger.info(f"Updated pending order {pending.id} with delivery info: {delivery_block}")

        if not flags.has_explicit_confirmation and not flags.has_delivery_info:
            logger.info("Purchase intent detected but missing explicit confirmation or delivery info")
            return None

        products = self.repo.get_active_products(conversation.user_id)
        if not products:
            return None

        context_text = conversation.recent_text(CONTEXT_MESSAGES)
        items: list[DetectedItem] = []
        for product in products:
            if match_product(text, product).matched:
                quantity = extract_quantity(text, product.name)
            elif match_product(context_text, product).matched:
                quantity = extract_quantity(context_text, product.name)
            else:
                continue
            items.append(
                DetectedItem(
                    product_id=product.id,
                    product_name=product.name,
                    product_sku=product.sku,
                    quantity=quantity,
                    unit_price=product.price,
                    available_stock=product.stock,
                )
            )

        if not items:
            return None

        pending = self.repo.get_pending_order_for_conversation(conversation.conversation_id)
        if pending:
            order = self.orders.add_items_to_order(pending.id, conversation.user_id, items, commit=False)
            return OrderDetection(order=order, created=False, items=items)

        customer_name = conversation.display_name("Client WhatsApp")
        notes = f'Commande détectée automatiquement depuis WhatsApp\nMessage: "{text[:200]}..."'
        if delivery_block:
            notes += f"\n{delivery_block}"

        logger.info(f"Detected purchase intent: {len(items)} items from {customer_name}")
        order = self.orders.create_order(
            user_id=conversation.user_id,
            conversation_id=conversation.conversation_id,
            customer_name=customer_name,
            customer_phone=conversation.contact_number,
            items=items,
            notes=notes,
            currency="XOF",
            agent_id=conversation.agent_id,
            commit=False,
        )
        return OrderDetection(order=order, created=True, items=items)

    def publish_order_created(self, detection: OrderDetection, conversation: ConversationContext) -> None:
        """Publish ORDER_CREATED once the order is committed."""
        order = detection.order
        self.publisher.publish(
            DomainEventType.ORDER_CREATED,
            conversation.user_id,
            OrderCreatedPayload(
                order_id=order.id,
                conversation_id=conversation.conversation_id,
                agent_id=conversation.agent_id,
                contact_jid=conversation.contact_jid,
                contact_name=order.customer_name,
                contact_number=conversation.contact_number,
                items=detection.items,
                total_amount=order.total_amount,
                currency=order.currency,
            ),
        )

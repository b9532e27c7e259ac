"""
Tests for order detection from customer messages.
"""

from decimal import Decimal

import pytest

from seven_commerce.engines.order_detector import OrderDetector
from seven_commerce.events import DomainEventType
from seven_commerce.persistence.models import Order, OrderStatus


@pytest.fixture
def detector(db, publisher):
    return OrderDetector(db, publisher=publisher)


class TestOrderDetector:
    def test_explicit_confirmation_creates_order(self, db, detector, publisher, products, make_conversation):
        conversation = make_conversation()

        order = detector.analyze_message("je confirme, je prends 2 T-shirt", conversation)

        assert order is not None
        assert order.status == OrderStatus.PENDING.value
        assert order.customer_name == "Kouassi"
        assert order.customer_phone == "2250758519080"
        assert order.conversation_id == conversation.conversation_id
        assert len(order.items) == 1
        assert order.items[0].product_name == "T-shirt"
        assert order.items[0].quantity == 2
        assert order.total_amount == Decimal("10000")
        assert order.notes.startswith("Commande détectée automatiquement depuis WhatsApp")

        events = publisher.of_type(DomainEventType.ORDER_CREATED)
        assert len(events) == 1
        assert events[0].payload["order_id"] == str(order.id)

    @pytest.mark.parametrize(
        "text",
        [
            "le T-shirt est disponible ?",
            "Non je veux connaître le prix du T-shirt",
            "pas maintenant, je prends le T-shirt plus tard",
        ],
    )
    def test_questions_and_refusals_never_create_orders(self, db, detector, products, make_conversation, text):
        assert detector.analyze_message(text, make_conversation()) is None
        assert db.query(Order).count() == 0

    def test_intent_without_confirmation_is_ignored(self, db, detector, products, make_conversation):
        """Test "je veux" alone waits for a confirmation or delivery details."""
        assert detector.analyze_message("je veux un T-shirt", make_conversation()) is None
        assert db.query(Order).count() == 0

    def test_delivery_details_use_conversation_context(self, detector, products, make_conversation):
        conversation = make_conversation(
            history=[
                ("user", "Bonjour, vous avez des T-shirt ?"),
                ("assistant", "Oui, il est disponible"),
            ]
        )

        order = detector.analyze_message("Bingerville, Santai 0758519080", conversation)

        assert order is not None
        assert [i.product_name for i in order.items] == ["T-shirt"]
        assert order.items[0].quantity == 1
        assert "[LIVRAISON]ville:Bingerville|quartier:Santai|tel:0758519080" in order.notes

    def test_no_matching_product(self, detector, products, make_conversation):
        assert detector.analyze_message("je confirme la commande", make_conversation()) is None

    def test_second_confirmation_extends_pending_order(self, db, detector, publisher, products, make_conversation):
        first = make_conversation()
        order = detector.analyze_message("je confirme, je prends 2 T-shirt", first)

        second = make_conversation(
            conversation_id=first.conversation_id,
            history=[("user", "je confirme, je prends 2 T-shirt")],
        )
        updated = detector.analyze_message("je confirme aussi 1 Samsung S21 Ultra", second)

        assert updated.id == order.id
        assert sorted(i.product_name for i in updated.items) == ["Samsung S21 Ultra", "T-shirt"]
        assert updated.total_amount == Decimal("460000")
        assert db.query(Order).count() == 1
        assert len(publisher.of_type(DomainEventType.ORDER_CREATED)) == 1

    def test_delivery_details_update_pending_order(self, db, detector, products, make_conversation):
        conversation = make_conversation()
        order = detector.analyze_message("je confirme, je prends 2 T-shirt", conversation)

        result = detector.analyze_message(
            "quartier Cocody, numéro 0102030405",
            make_conversation(conversation_id=conversation.conversation_id),
        )

        assert result is None
        db.refresh(order)
        assert "[LIVRAISON]quartier:Cocody|tel:0102030405" in order.notes
        assert len(order.items) == 1

    def test_no_products(self, detector, user, make_conversation):
        assert detector.analyze_message("je confirme, je prends 2 T-shirt", make_conversation()) is None

    def test_detect_joins_callers_transaction(self, db, detector, publisher, products, make_conversation):
        conversation = make_conversation()

        detection = detector.detect("je confirme, je prends 2 T-shirt", conversation)

        assert detection.created is True
        assert detection.order.total_amount == Decimal("10000")
        assert publisher.of_type(DomainEventType.ORDER_CREATED) == []

        db.rollback()

        assert db.query(Order).count() == 0

    def test_detect_reports_extension(self, detector, products, make_conversation):
        conversation = make_conversation()
        detector.analyze_message("je confirme, je prends 2 T-shirt", conversation)

        detection = detector.detect(
            "je confirme aussi 1 Samsung S21 Ultra",
            make_conversation(conversation_id=conversation.conversation_id),
        )

        assert detection.created is False
        assert len(detection.order.items) == 2

"""
Tests for the inbound message pipeline.
"""

import asyncio

import pytest

from sevencore.envelope import EventEnvelope
from seven_commerce.events import DomainEventType
from seven_commerce.persistence.models import AdminAnomaly, CreditUsage, Lead, Notification, Order
from seven_whatsapp.contracts.event_types import WhatsAppEventType
from seven_whatsapp.contracts.payloads import ConnectionUpdatePayload, InboundMessagePayload
from seven_whatsapp.persistence.models import (
    Conversation,
    ConversationStatus,
    Message,
    MessageRole,
    MessageStatus,
    ToolStatus,
)
from seven_whatsapp.providers.stub import StubWhatsAppProvider
from seven_whatsapp.service.automation import DEFAULT_REPLIES, AutoReplyType
from seven_whatsapp.service.inbound_handler import InboundHandler


@pytest.fixture
def handler(db, stub_provider, publisher, responder):
    return InboundHandler(
        db,
        provider_factory=lambda tool: stub_provider,
        publisher=publisher,
        responder=responder,
    )


def process(handler, tool, message):
    return asyncio.run(handler.process_message(tool, message))


def messages_for(db, conversation_id):
    return (
        db.query(Message)
        .filter(Message.conversation_id == conversation_id)
        .order_by(Message.created_at)
        .all()
    )


class TestSkips:
    def test_group_message(self, handler, tool, agent, make_message, stub_provider):
        result = process(handler, tool, make_message("Bonjour", remote_jid="120363025@g.us"))

        assert result["status"] == "skipped"
        assert result["reason"] == "group_or_broadcast"
        assert stub_provider.sent_messages == []

    def test_duplicate_message(self, db, handler, tool, agent, make_message, stub_provider):
        message = make_message("Bonjour")
        process(handler, tool, message)
        stub_provider.clear_sent_messages()

        result = process(handler, tool, message)

        assert result["status"] == "skipped"
        assert result["reason"] == "already_processed"
        assert stub_provider.sent_messages == []
        assert db.query(Message).filter(Message.role == MessageRole.USER.value).count() == 1

    def test_no_agent(self, db, handler, tool, make_message):
        result = process(handler, tool, make_message("Bonjour"))

        assert result["status"] == "skipped"
        assert result["reason"] == "no_active_agent"
        assert db.query(Conversation).count() == 0

    def test_inactive_agent(self, db, handler, tool, agent, make_message):
        agent.is_active = False
        db.commit()

        result = process(handler, tool, make_message("Bonjour"))
        assert result["reason"] == "no_active_agent"


class TestReplies:
    def test_greeting_gets_static_reply(self, db, handler, tool, agent, user, make_message, stub_provider, completions):
        result = process(handler, tool, make_message("Bonjour"))

        assert result["status"] == "processed"
        assert result["reply_type"] == "greeting"
        assert result["reply"] == DEFAULT_REPLIES[AutoReplyType.GREETING]
        assert completions.requests == []

        sent = stub_provider.get_sent_messages()
        assert len(sent) == 1
        assert sent[0]["to"] == "2250758519080@s.whatsapp.net"
        assert stub_provider.read_messages == ["wamid-1"]

        db.refresh(user)
        assert user.credits == 100
        assert stub_provider.presences == []

    def test_response_delay_shows_typing(self, db, handler, tool, agent, make_message, stub_provider):
        agent.response_delay = 3
        db.commit()

        process(handler, tool, make_message("Bonjour"))

        assert stub_provider.presences == [
            {"to": "2250758519080@s.whatsapp.net", "presence": "composing", "delay_ms": 3000}
        ]
        assert len(stub_provider.get_sent_messages()) == 1

    def test_ai_reply_charges_credits(self, db, handler, tool, agent, user, products, make_message, completions, stub_provider):
        result = process(handler, tool, make_message("Le Samsung S21 Ultra est disponible ?"))

        assert result["reply_type"] == "ai"
        assert result["reply"] == completions.reply

        request = completions.requests[0]
        assert request["model"] == "openai/gpt-4o-mini"
        assert request["messages"][0]["role"] == "system"
        assert "- Samsung S21 Ultra (SAM-S21U): 450,000 FCFA ✅ En stock (10)" in request["messages"][0]["content"]
        assert request["messages"][-1] == {"role": "user", "content": "Le Samsung S21 Ultra est disponible ?"}

        db.refresh(user)
        assert user.credits == 98
        usage = db.query(CreditUsage).one()
        assert usage.action == "openai/gpt-4o-mini"
        assert usage.amount == 2

        assert stub_provider.get_sent_messages()[0]["text"] == completions.reply

    def test_history_is_sent_to_the_model(self, handler, tool, agent, make_message, completions):
        process(handler, tool, make_message("Bonjour"))
        process(handler, tool, make_message("Vous vendez des montres connectées ?"))

        contents = [m["content"] for m in completions.requests[0]["messages"]]
        assert contents[1] == "Bonjour"
        assert contents[2] == DEFAULT_REPLIES[AutoReplyType.GREETING]
        assert contents[-1] == "Vous vendez des montres connectées ?"

    def test_no_credits_uses_fallback(self, db, handler, tool, agent, user, make_message, completions):
        user.credits = 0
        db.commit()

        result = process(handler, tool, make_message("Vous livrez à Yamoussoukro ?"))

        assert result["reply_type"] == "fallback"
        assert "Awa Assistant" in result["reply"]
        assert completions.requests == []
        db.refresh(user)
        assert user.credits == 0

    def test_ai_error_uses_fallback_and_logs_anomaly(self, db, handler, tool, agent, user, make_message, completions):
        completions.status = 500

        result = process(handler, tool, make_message("Vous livrez à Yamoussoukro ?"))

        assert result["status"] == "processed"
        assert result["reply_type"] == "fallback"
        anomaly = db.query(AdminAnomaly).one()
        assert anomaly.type == "ai_error"
        assert anomaly.user_id == user.id
        db.refresh(user)
        assert user.credits == 100

    def test_auto_reply_disabled(self, db, handler, tool, agent, make_message, stub_provider):
        agent.auto_reply = False
        db.commit()

        result = process(handler, tool, make_message("Bonjour"))

        assert result["status"] == "processed"
        assert result["reply"] is None
        assert stub_provider.sent_messages == []

    def test_failed_send_is_recorded(self, db, tool, agent, publisher, responder, make_message):
        failing = StubWhatsAppProvider("boutique-awa", simulate_failures=True, failure_rate=1.0)
        handler = InboundHandler(db, provider_factory=lambda t: failing, publisher=publisher, responder=responder)

        result = process(handler, tool, make_message("Bonjour"))

        reply = db.query(Message).filter(Message.role == MessageRole.ASSISTANT.value).one()
        assert result["status"] == "processed"
        assert reply.status == MessageStatus.FAILED.value
        assert reply.error_message == "Échec simulé"
        assert reply.provider_message_id is None


class TestConversationState:
    def test_messages_are_stored(self, db, handler, tool, agent, make_message, stub_provider):
        result = process(handler, tool, make_message("Bonjour"))

        conversation = db.query(Conversation).one()
        assert result["conversation_id"] == str(conversation.id)
        assert conversation.contact_number == "2250758519080"
        assert conversation.contact_name == "Kouassi"
        assert conversation.message_count == 2

        stored = messages_for(db, conversation.id)
        assert [m.role for m in stored] == ["user", "assistant"]
        assert stored[0].provider_message_id == "wamid-1"
        assert stored[1].provider_message_id == stub_provider.sent_messages[0]["message_id"]
        assert stored[1].status == MessageStatus.SENT.value

    def test_push_name_update(self, db, handler, tool, agent, make_message):
        process(handler, tool, make_message("Bonjour", push_name=None))
        conversation = db.query(Conversation).one()
        assert conversation.contact_name == "2250758519080"

        process(handler, tool, make_message("Salut", push_name="Kouassi Yao"))
        db.refresh(conversation)
        assert conversation.push_name == "Kouassi Yao"
        assert conversation.contact_name == "Kouassi Yao"

    def test_human_takeover_stops_automation(self, db, handler, tool, agent, make_message, stub_provider):
        process(handler, tool, make_message("Bonjour"))
        conversation = db.query(Conversation).one()
        conversation.status = ConversationStatus.HUMAN_TAKEOVER.value
        db.commit()
        stub_provider.clear_sent_messages()

        result = process(handler, tool, make_message("Vous êtes là ?"))

        assert result["status"] == "human_takeover"
        assert stub_provider.sent_messages == []
        assert len(messages_for(db, conversation.id)) == 3

    def test_human_request(self, db, handler, tool, agent, user, make_message, completions):
        result = process(handler, tool, make_message("Je veux parler à un conseiller"))

        conversation = db.query(Conversation).one()
        assert conversation.status == ConversationStatus.HUMAN_TAKEOVER.value
        assert result["reply_type"] == "human_requested"
        assert result["reply"] == DEFAULT_REPLIES[AutoReplyType.HUMAN_REQUESTED]
        assert completions.requests == []

        notification = db.query(Notification).filter(Notification.type == "agent").one()
        assert notification.user_id == user.id
        assert notification.message == "Kouassi souhaite parler à un conseiller"
        assert notification.link == f"/dashboard/conversations/{conversation.id}"

    def test_from_me_is_recorded(self, db, handler, tool, agent, make_message, stub_provider):
        result = process(handler, tool, make_message("Je vous l'envoie demain", from_me=True, push_name="Boutique"))

        assert result["status"] == "recorded"
        assert stub_provider.sent_messages == []

        conversation = db.query(Conversation).one()
        assert conversation.push_name is None
        stored = messages_for(db, conversation.id)
        assert len(stored) == 1
        assert stored[0].role == MessageRole.ASSISTANT.value
        assert stored[0].status == MessageStatus.SENT.value


class TestDetection:
    def test_order_is_created(self, db, handler, tool, agent, user, products, make_message, publisher):
        result = process(handler, tool, make_message("je confirme, je prends le Samsung S21 Ultra"))

        order = db.query(Order).one()
        assert result["order_id"] == str(order.id)
        assert order.user_id == user.id
        assert order.conversation_id is not None
        assert str(order.conversation_id) == result["conversation_id"]
        assert order.customer_name == "Kouassi"
        assert order.customer_phone == "2250758519080"
        assert order.items[0].product_name == "Samsung S21 Ultra"
        assert len(publisher.of_type(DomainEventType.ORDER_CREATED)) == 1
        assert result["reply_type"] == "ai"

    def test_failure_after_detection_rolls_back_order(
        self, db, tool, agent, products, publisher, responder, make_message, stub_provider
    ):
        """Test a failed attempt leaves nothing behind, so the retry replies."""
        calls = {"n": 0}

        def flaky_factory(_tool):
            calls["n"] += 1
            if calls["n"] == 1:
                raise RuntimeError("provider unavailable")
            return stub_provider

        handler = InboundHandler(db, provider_factory=flaky_factory, publisher=publisher, responder=responder)
        message = make_message("je confirme 2 Samsung S21 Ultra")

        first = process(handler, tool, message)

        assert first["status"] == "failed"
        assert db.query(Order).count() == 0
        assert db.query(Message).count() == 0
        assert publisher.of_type(DomainEventType.ORDER_CREATED) == []

        retry = process(handler, tool, message)

        assert retry["status"] == "processed"
        order = db.query(Order).one()
        assert retry["order_id"] == str(order.id)
        assert order.items[0].quantity == 2
        assert len(stub_provider.sent_messages) == 1
        assert len(publisher.of_type(DomainEventType.ORDER_CREATED)) == 1

    def test_order_detection_disabled(self, db, handler, tool, agent, products, make_message):
        agent.order_detection = False
        db.commit()

        result = process(handler, tool, make_message("je confirme, je prends le Samsung S21 Ultra"))

        assert result["order_id"] is None
        assert db.query(Order).count() == 0

    def test_lead_is_suggested_once(self, db, handler, tool, agent, user, make_message, publisher):
        first = process(handler, tool, make_message("Bonjour je veux acheter"))
        second = process(handler, tool, make_message("quel est le prix ?"))
        third = process(handler, tool, make_message("livraison possible ?"))

        assert first["lead_id"] is None
        lead = db.query(Lead).one()
        assert second["lead_id"] == str(lead.id)
        assert third["lead_id"] is None

        assert lead.is_suggested is True
        assert lead.phone == "2250758519080"
        assert lead.name == "Kouassi"
        assert len(publisher.of_type(DomainEventType.LEAD_DETECTED)) == 1

    def test_lead_detection_disabled(self, db, handler, tool, agent, make_message):
        agent.lead_detection = False
        db.commit()

        process(handler, tool, make_message("Bonjour je veux acheter"))
        process(handler, tool, make_message("quel est le prix ?"))

        assert db.query(Lead).count() == 0


class TestEnvelopes:
    def test_inbound_envelope(self, db, handler, tool, agent, user, make_message, stub_provider):
        payload = InboundMessagePayload.from_inbound_message(tool.id, make_message("Bonjour"))
        envelope = EventEnvelope.create(
            event_type=str(WhatsAppEventType.INBOUND_RECEIVED),
            tenant_id=user.id,
            payload=payload.model_dump(mode="json"),
        )

        result = asyncio.run(handler.handle_envelope(envelope))

        assert result["status"] == "processed"
        assert result["message_id"] == "wamid-1"
        assert len(stub_provider.sent_messages) == 1

    def test_unknown_event(self, handler, user):
        envelope = EventEnvelope.create(event_type="something_else", tenant_id=user.id, payload={})

        result = asyncio.run(handler.handle_envelope(envelope))
        assert result == {"status": "skipped", "reason": "unknown_event"}

    def test_connection_closed(self, db, handler, tool, agent, user):
        payload = ConnectionUpdatePayload(tool_id=tool.id, instance_name="boutique-awa", state="close")
        envelope = EventEnvelope.create(
            event_type=str(WhatsAppEventType.CONNECTION_UPDATED),
            tenant_id=user.id,
            payload=payload.model_dump(mode="json"),
        )

        result = asyncio.run(handler.handle_envelope(envelope))

        assert result["status"] == "updated"
        assert result["tool_status"] == ToolStatus.DISCONNECTED.value
        db.refresh(agent)
        assert agent.whatsapp_connected is False

        notification = db.query(Notification).one()
        assert notification.title == "Agent déconnecté"
        assert notification.message == "Awa Assistant a été déconnecté"

    def test_connection_opened(self, db, handler, tool, agent):
        tool.status = ToolStatus.DISCONNECTED.value
        agent.whatsapp_connected = False
        db.commit()

        result = handler.handle_connection_update(tool, "open")

        assert result["tool_status"] == ToolStatus.CONNECTED.value
        db.refresh(agent)
        assert agent.whatsapp_connected is True
        assert db.query(Notification).count() == 0

    def test_unknown_state(self, handler, tool, agent):
        result = handler.handle_connection_update(tool, "refused")
        assert result["status"] == "skipped"

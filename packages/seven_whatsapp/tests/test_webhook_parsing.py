"""
Tests for Evolution webhook parsing.
"""

import pytest

from seven_whatsapp.persistence.models import Conversation, MessageRole, MessageStatus
from seven_whatsapp.persistence.repo import WhatsAppRepository
from seven_whatsapp.providers.base import MessageType, jid_to_number, number_to_jid
from seven_whatsapp.providers.evolution.webhook import (
    extract_instance_name,
    is_connection_webhook,
    is_message_webhook,
    is_status_webhook,
    parse_connection_state,
    parse_evolution_webhook,
    validate_api_key,
)
from seven_whatsapp.providers.stub import StubWhatsAppProvider


@pytest.fixture
def text_webhook():
    """Evolution webhook for a text message."""
    return {
        "event": "messages.upsert",
        "instance": "boutique-awa",
        "data": {
            "key": {
                "id": "3EB0A1",
                "remoteJid": "2250758519080@s.whatsapp.net",
                "fromMe": False,
            },
            "pushName": "Kouassi",
            "message": {"conversation": "Bonjour, le Samsung est disponible ?"},
            "messageType": "conversation",
            "messageTimestamp": 1704067200,
        },
    }


@pytest.fixture
def status_webhook():
    return {
        "event": "messages.update",
        "instance": "boutique-awa",
        "data": {
            "key": {"id": "3EB0B2", "remoteJid": "2250758519080@s.whatsapp.net"},
            "update": {"status": "DELIVERY_ACK"},
        },
    }


class TestJids:
    def test_jid_to_number(self):
        assert jid_to_number("2250758519080@s.whatsapp.net") == "2250758519080"

    def test_number_to_jid(self):
        assert number_to_jid("+2250758519080") == "2250758519080@s.whatsapp.net"
        assert number_to_jid("2250758519080@s.whatsapp.net") == "2250758519080@s.whatsapp.net"


class TestEventDetection:
    def test_extract_instance_name(self, text_webhook):
        assert extract_instance_name(text_webhook) == "boutique-awa"
        assert extract_instance_name({}) is None

    def test_message_and_status_events(self, text_webhook, status_webhook):
        assert is_message_webhook(text_webhook) is True
        assert is_message_webhook(status_webhook) is False
        assert is_status_webhook(status_webhook) is True
        assert is_status_webhook(text_webhook) is False

    def test_uppercase_event_names(self, text_webhook):
        """Evolution v1 sends MESSAGES_UPSERT."""
        text_webhook["event"] = "MESSAGES_UPSERT"
        assert is_message_webhook(text_webhook) is True

    def test_connection_update(self):
        payload = {"event": "connection.update", "instance": "boutique-awa", "data": {"state": "close"}}
        assert is_connection_webhook(payload) is True
        assert parse_connection_state(payload) == "close"
        assert parse_connection_state({"event": "messages.upsert", "data": {}}) is None


class TestParseEvolutionWebhook:
    def test_text_message(self, text_webhook):
        messages, statuses = parse_evolution_webhook(text_webhook)

        assert len(messages) == 1
        assert statuses == []
        msg = messages[0]
        assert msg.message_id == "3EB0A1"
        assert msg.instance_name == "boutique-awa"
        assert msg.from_phone == "2250758519080"
        assert msg.message_type == MessageType.TEXT
        assert msg.text == "Bonjour, le Samsung est disponible ?"
        assert msg.push_name == "Kouassi"
        assert msg.from_me is False

    def test_extended_text_message(self, text_webhook):
        text_webhook["data"]["message"] = {"extendedTextMessage": {"text": "Je prends 2"}}
        text_webhook["data"]["messageType"] = "extendedTextMessage"

        messages, _ = parse_evolution_webhook(text_webhook)

        assert messages[0].text == "Je prends 2"

    def test_image_caption_is_body(self, text_webhook):
        text_webhook["data"]["message"] = {"imageMessage": {"caption": "Celui-ci en noir"}}
        text_webhook["data"]["messageType"] = "imageMessage"

        messages, _ = parse_evolution_webhook(text_webhook)

        assert messages[0].message_type == MessageType.IMAGE
        assert messages[0].text is None
        assert messages[0].body == "Celui-ci en noir"

    def test_button_response(self, text_webhook):
        text_webhook["data"]["message"] = {
            "buttonsResponseMessage": {"selectedButtonId": "btn_order", "selectedButtonText": "Commander"}
        }
        text_webhook["data"]["messageType"] = "buttonsResponseMessage"

        messages, _ = parse_evolution_webhook(text_webhook)

        assert messages[0].message_type == MessageType.BUTTON
        assert messages[0].button_payload == "btn_order"
        assert messages[0].text == "Commander"

    def test_from_me_and_group_flags(self, text_webhook):
        text_webhook["data"]["key"]["fromMe"] = True
        text_webhook["data"]["key"]["remoteJid"] = "120363025@g.us"

        messages, _ = parse_evolution_webhook(text_webhook)

        assert messages[0].from_me is True
        assert messages[0].is_group is True

    def test_lid_uses_sender_phone(self, text_webhook):
        text_webhook["data"]["key"]["remoteJid"] = "1234567890@lid"
        text_webhook["data"]["key"]["senderPn"] = "2250758519080@s.whatsapp.net"

        messages, _ = parse_evolution_webhook(text_webhook)

        assert messages[0].from_phone == "2250758519080"

    def test_list_of_entries(self, text_webhook):
        second = {**text_webhook["data"], "key": {"id": "3EB0A2", "remoteJid": "2250101010101@s.whatsapp.net"}}
        text_webhook["data"] = [text_webhook["data"], second]

        messages, _ = parse_evolution_webhook(text_webhook)

        assert [m.message_id for m in messages] == ["3EB0A1", "3EB0A2"]

    def test_entry_without_key_is_skipped(self, text_webhook):
        text_webhook["data"]["key"] = {}

        messages, _ = parse_evolution_webhook(text_webhook)

        assert messages == []

    def test_status_update(self, status_webhook):
        messages, statuses = parse_evolution_webhook(status_webhook)

        assert messages == []
        assert len(statuses) == 1
        assert statuses[0].message_id == "3EB0B2"
        assert statuses[0].status == "delivered"

    def test_unknown_event(self):
        messages, statuses = parse_evolution_webhook({"event": "qrcode.updated", "instance": "boutique-awa"})

        assert messages == []
        assert statuses == []


class TestValidateApiKey:
    def test_apikey_header(self):
        assert validate_api_key({"apikey": "secret"}, "secret") is True
        assert validate_api_key({"apikey": "secret"}, "other") is False

    def test_bearer_token(self):
        assert validate_api_key({"authorization": "Bearer secret"}, "secret") is True
        assert validate_api_key({"authorization": "Basic secret"}, "secret") is False


class TestStubParsing:
    def test_simplified_format(self):
        provider = StubWhatsAppProvider(instance_name="boutique-awa")

        messages, statuses = provider.parse_webhook(
            {"from": "+2250758519080", "text": "Bonjour", "message_id": "test_1", "name": "Kouassi"}
        )

        assert statuses == []
        assert messages[0].remote_jid == "2250758519080@s.whatsapp.net"
        assert messages[0].from_phone == "2250758519080"
        assert messages[0].instance_name == "boutique-awa"
        assert messages[0].push_name == "Kouassi"

    def test_evolution_format(self, text_webhook):
        messages, _ = StubWhatsAppProvider().parse_webhook(text_webhook)

        assert messages[0].message_id == "3EB0A1"


class TestDeliveryStatuses:
    @pytest.fixture
    def stored(self, db, agent):
        conversation = Conversation(
            agent_id=agent.id,
            user_id=agent.user_id,
            contact_jid="2250758519080@s.whatsapp.net",
            contact_number="2250758519080",
        )
        db.add(conversation)
        db.flush()
        repo = WhatsAppRepository(db)
        reply = repo.create_message(
            conversation.id,
            MessageRole.ASSISTANT,
            "Il est disponible",
            provider_message_id="3EB0B2",
            status=MessageStatus.SENT,
        )
        question = repo.create_message(conversation.id, MessageRole.USER, "Disponible ?", provider_message_id="3EB0A1")
        db.commit()
        return {"reply": reply, "question": question}

    def test_failed_status_flags_assistant_message(self, db, stored, status_webhook):
        status_webhook["data"]["update"]["status"] = "ERROR"
        _, statuses = parse_evolution_webhook(status_webhook)

        assert WhatsAppRepository(db).apply_delivery_statuses(statuses) == 1
        db.commit()

        db.refresh(stored["reply"])
        assert stored["reply"].status == MessageStatus.FAILED.value
        assert stored["reply"].error_message == "Échec signalé par WhatsApp"

    def test_user_message_never_flagged(self, db, stored, status_webhook):
        status_webhook["data"]["key"]["id"] = "3EB0A1"
        status_webhook["data"]["update"]["status"] = "ERROR"
        _, statuses = parse_evolution_webhook(status_webhook)

        assert WhatsAppRepository(db).apply_delivery_statuses(statuses) == 0

        db.refresh(stored["question"])
        assert stored["question"].status == MessageStatus.RECEIVED.value

    def test_other_statuses_are_ignored(self, db, stored, status_webhook):
        _, statuses = parse_evolution_webhook(status_webhook)

        assert statuses[0].status == "delivered"
        assert WhatsAppRepository(db).apply_delivery_statuses(statuses) == 0

        db.refresh(stored["reply"])
        assert stored["reply"].status == MessageStatus.SENT.value

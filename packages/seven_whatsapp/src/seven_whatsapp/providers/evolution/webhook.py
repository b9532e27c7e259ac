"""
Evolution API Webhook Utilities

Helper functions for processing Evolution API webhooks.

Evolution API webhook format:
{
    "event": "messages.upsert",
    "instance": "instance_name",
    "data": {
        "key": {"id": "...", "remoteJid": "...", "fromMe": false},
        "pushName": "Kouassi",
        "message": {...},
        "messageType": "conversation",
        "messageTimestamp": 1234567890,
    }
}
"""

import logging
from typing import Any

from sevencore.clock import from_unix, utcnow
from seven_whatsapp.providers.base import (
    DeliveryStatus,
    InboundMessage,
    MessageType,
    jid_to_number,
)

logger = logging.getLogger(__name__)

MESSAGES_UPSERT = "messages.upsert"
MESSAGES_UPDATE = "messages.update"
CONNECTION_UPDATE = "connection.update"

TYPE_MAPPING = {
    "conversation": MessageType.TEXT,
    "extendedTextMessage": MessageType.TEXT,
    "imageMessage": MessageType.IMAGE,
    "videoMessage": MessageType.VIDEO,
    "audioMessage": MessageType.AUDIO,
    "documentMessage": MessageType.DOCUMENT,
    "stickerMessage": MessageType.STICKER,
    "locationMessage": MessageType.LOCATION,
    "contactsArrayMessage": MessageType.CONTACTS,
    "buttonsResponseMessage": MessageType.BUTTON,
    "listResponseMessage": MessageType.INTERACTIVE,
    "reactionMessage": MessageType.REACTION,
}

STATUS_MAPPING = {
    "READ": "read",
    "READ_ACK": "read",
    "PLAYED": "read",
    "DELIVERED": "delivered",
    "DELIVERY_ACK": "delivered",
    "SENT": "sent",
    "SERVER_ACK": "sent",
    "ERROR": "failed",
}


def normalize_event(event: str | None) -> str:
    """'MESSAGES_UPSERT' and 'messages.upsert' are the same event."""
    return (event or "").lower().replace("_", ".")


def extract_instance_name(payload: dict[str, Any]) -> str | None:
    """
    Extract instance name from webhook payload.

    This is used for tool resolution before full parsing.
    """
    return payload.get("instance")


def is_message_webhook(payload: dict[str, Any]) -> bool:
    """Check if this webhook contains messages."""
    return normalize_event(payload.get("event")) == MESSAGES_UPSERT


def is_status_webhook(payload: dict[str, Any]) -> bool:
    """Check if this webhook contains status updates."""
    return normalize_event(payload.get("event")) == MESSAGES_UPDATE


def is_connection_webhook(payload: dict[str, Any]) -> bool:
    return normalize_event(payload.get("event")) == CONNECTION_UPDATE


def parse_connection_state(payload: dict[str, Any]) -> str | None:
    """'open', 'connecting' or 'close' from a connection.update webhook."""
    if not is_connection_webhook(payload):
        return None
    data = payload.get("data") or {}
    if not isinstance(data, dict):
        return None
    return data.get("state")


def _entries(data: Any) -> list[dict[str, Any]]:
    if isinstance(data, list):
        return [d for d in data if isinstance(d, dict)]
    if isinstance(data, dict) and data:
        return [data]
    return []


def parse_message(instance_name: str, data: dict[str, Any]) -> InboundMessage | None:
    """Parse one `messages.upsert` entry."""
    key = data.get("key") or {}
    message_data = data.get("message") or {}
    remote_jid = key.get("remoteJid") or ""
    message_id = key.get("id")
    if not remote_jid or not message_id:
        logger.debug("Skipping Evolution message without key")
        return None

    message_type_str = data.get("messageType") or next(iter(message_data), "conversation")
    msg_type = TYPE_MAPPING.get(message_type_str, MessageType.UNKNOWN)

    text = None
    caption = None
    button_payload = None
    if msg_type == MessageType.TEXT:
        text = message_data.get("conversation") or (message_data.get("extendedTextMessage") or {}).get("text")
    elif msg_type in (MessageType.IMAGE, MessageType.VIDEO, MessageType.DOCUMENT):
        caption = (message_data.get(message_type_str) or {}).get("caption")
    elif msg_type == MessageType.BUTTON:
        button_obj = message_data.get("buttonsResponseMessage") or {}
        button_payload = button_obj.get("selectedButtonId")
        text = button_obj.get("selectedButtonText")

    timestamp = utcnow()
    if data.get("messageTimestamp"):
        try:
            timestamp = from_unix(int(data["messageTimestamp"]))
        except (ValueError, TypeError):
            pass

    # Newer WhatsApp clients address some contacts by LID; senderPn carries the phone JID
    if remote_jid.endswith("@lid") and key.get("senderPn"):
        remote_jid = key["senderPn"]

    return InboundMessage(
        message_id=message_id,
        instance_name=instance_name,
        remote_jid=remote_jid,
        from_phone=jid_to_number(remote_jid),
        message_type=msg_type,
        timestamp=timestamp,
        text=text,
        caption=caption,
        push_name=data.get("pushName") or None,
        from_me=bool(key.get("fromMe")),
        button_payload=button_payload,
        raw_payload=data,
    )


def parse_status(data: dict[str, Any]) -> DeliveryStatus | None:
    """Parse one `messages.update` entry."""
    key = data.get("key") or {}
    update = data.get("update") or {}
    message_id = key.get("id") or data.get("keyId")
    if not message_id:
        return None

    status_str = str(update.get("status") or data.get("status") or "sent")
    return DeliveryStatus(
        message_id=message_id,
        remote_jid=key.get("remoteJid") or data.get("remoteJid") or "",
        status=STATUS_MAPPING.get(status_str.upper(), status_str.lower()),
        timestamp=utcnow(),
        raw_payload=data,
    )


def parse_evolution_webhook(
    payload: dict[str, Any],
) -> tuple[list[InboundMessage], list[DeliveryStatus]]:
    """Parse an Evolution API webhook into messages and status updates."""
    messages: list[InboundMessage] = []
    statuses: list[DeliveryStatus] = []

    instance = extract_instance_name(payload)
    event = normalize_event(payload.get("event"))
    if not instance or not event:
        return messages, statuses

    if event == MESSAGES_UPSERT:
        for data in _entries(payload.get("data")):
            msg = parse_message(instance, data)
            if msg:
                messages.append(msg)

    elif event == MESSAGES_UPDATE:
        for data in _entries(payload.get("data")):
            status = parse_status(data)
            if status:
                statuses.append(status)

    else:
        logger.debug(f"Ignoring Evolution event {event}", extra={"instance": instance})

    return messages, statuses


def validate_api_key(request_headers: dict[str, str], expected_api_key: str) -> bool:
    """
    Validate API key from request headers.

    Evolution API can send API key in:
    - Header: "apikey"
    - Header: "Authorization: Bearer <key>"
    """
    apikey_header = request_headers.get("apikey") or request_headers.get("Apikey")
    if apikey_header == expected_api_key:
        return True

    auth_header = request_headers.get("authorization") or request_headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:]
        if token == expected_api_key:
            return True

    return False

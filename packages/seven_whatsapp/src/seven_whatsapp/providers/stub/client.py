"""
In-memory WhatsApp provider.

Used when a tool's provider is "stub" (local development) and by the test
suite. Nothing leaves the process: sends, presences and read receipts are
recorded on the instance.
"""

import logging
import random
from typing import Any
from uuid import uuid4

from sevencore.clock import utcnow
from seven_whatsapp.providers.base import (
    DeliveryStatus,
    InboundMessage,
    MessageType,
    ProviderResponse,
    WhatsAppProvider,
    jid_to_number,
    number_to_jid,
)
from seven_whatsapp.providers.evolution.webhook import parse_evolution_webhook

logger = logging.getLogger(__name__)


class StubWhatsAppProvider(WhatsAppProvider):
    """
    Recording provider.

    With `simulate_failures`, each send fails with probability
    `failure_rate` (1.0 makes every send fail).
    """

    def __init__(
        self,
        instance_name: str = "stub",
        simulate_failures: bool = False,
        failure_rate: float = 0.1,
    ):
        self.instance_name = instance_name
        self.simulate_failures = simulate_failures
        self.failure_rate = failure_rate
        self.sent_messages: list[dict[str, Any]] = []
        self.presences: list[dict[str, Any]] = []
        self.read_messages: list[str] = []

    async def send_text(self, to: str, text: str, reply_to: str | None = None) -> ProviderResponse:
        message_id = f"stub_msg_{uuid4().hex[:16]}"
        self.sent_messages.append(
            {
                "type": "text",
                "to": to,
                "text": text,
                "reply_to": reply_to,
                "message_id": message_id,
                "timestamp": utcnow().isoformat(),
            }
        )

        if self.simulate_failures and random.random() < self.failure_rate:
            logger.info("[STUB] Simulated send failure", extra={"to": jid_to_number(to)})
            return ProviderResponse(
                success=False,
                error_code="STUB_SIMULATED_FAILURE",
                error_message="Échec simulé",
            )

        logger.info(
            "[STUB] Message sent",
            extra={"to": jid_to_number(to), "message_id": message_id, "chars": len(text)},
        )
        return ProviderResponse(success=True, message_id=message_id, raw_response={"stub": True})

    async def send_presence(self, to: str, presence: str = "composing", delay_ms: int = 0) -> bool:
        self.presences.append({"to": to, "presence": presence, "delay_ms": delay_ms})
        return True

    async def mark_as_read(self, remote_jid: str, message_id: str) -> bool:
        self.read_messages.append(message_id)
        return True

    def parse_webhook(self, payload: dict[str, Any]) -> tuple[list[InboundMessage], list[DeliveryStatus]]:
        """
        Accepts the Evolution format, or a shorthand for manual testing:

            {"from": "2250758519080", "text": "Bonjour", "name": "Kouassi"}

        Optional shorthand keys: message_id, instance, from_me.
        """
        if "from" not in payload or "text" not in payload:
            return parse_evolution_webhook(payload)

        remote_jid = number_to_jid(str(payload["from"]))
        message = InboundMessage(
            message_id=payload.get("message_id") or f"stub_in_{uuid4().hex[:16]}",
            instance_name=payload.get("instance") or self.instance_name,
            remote_jid=remote_jid,
            from_phone=jid_to_number(remote_jid),
            message_type=MessageType.TEXT,
            timestamp=utcnow(),
            text=payload.get("text"),
            push_name=payload.get("name"),
            from_me=bool(payload.get("from_me", False)),
            raw_payload=payload,
        )
        return [message], []

    def get_sent_messages(self) -> list[dict[str, Any]]:
        return list(self.sent_messages)

    def clear_sent_messages(self) -> None:
        self.sent_messages.clear()

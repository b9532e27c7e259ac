"""
WhatsApp Provider Base

Abstract interface for WhatsApp API providers.
Implementations: Evolution API (production), Stub (development and tests).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from sevencore.errors import SevenError


class ProviderError(SevenError):
    """Error from WhatsApp provider."""

    default_code = "provider_error"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        retryable: bool = False,
    ):
        super().__init__(message, code=code, details=details)
        self.retryable = retryable


class MessageType(str, Enum):
    """Types of WhatsApp messages."""

    TEXT = "text"
    IMAGE = "image"
    DOCUMENT = "document"
    AUDIO = "audio"
    VIDEO = "video"
    LOCATION = "location"
    CONTACTS = "contacts"
    STICKER = "sticker"
    BUTTON = "button"
    INTERACTIVE = "interactive"
    REACTION = "reaction"
    UNKNOWN = "unknown"


def jid_to_number(jid: str) -> str:
    """'2250758519080@s.whatsapp.net' -> '2250758519080'"""
    return jid.split("@", 1)[0]


def number_to_jid(number: str) -> str:
    if "@" in number:
        return number
    return f"{number.lstrip('+')}@s.whatsapp.net"


@dataclass
class InboundMessage:
    """
    Parsed inbound message from webhook.

    Provider-agnostic representation of an incoming WhatsApp message.
    """

    message_id: str
    instance_name: str
    remote_jid: str
    from_phone: str
    message_type: MessageType
    timestamp: datetime
    text: str | None = None
    caption: str | None = None
    push_name: str | None = None  # Sender's WhatsApp profile name
    from_me: bool = False  # Sent from the tenant's own phone
    button_payload: str | None = None
    raw_payload: dict[str, Any] = field(default_factory=dict)

    @property
    def is_group(self) -> bool:
        return self.remote_jid.endswith("@g.us")

    @property
    def is_broadcast(self) -> bool:
        return "broadcast" in self.remote_jid

    @property
    def body(self) -> str | None:
        """Text content, falling back to the media caption."""
        return self.text or self.caption


@dataclass
class DeliveryStatus:
    """
    Parsed delivery status update from webhook.
    """

    message_id: str
    remote_jid: str
    status: str  # sent, delivered, read, failed
    timestamp: datetime
    raw_payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class ProviderResponse:
    """
    Response from provider after sending a message.
    """

    success: bool
    message_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


class WhatsAppProvider(ABC):
    """
    Abstract interface for WhatsApp API providers.

    Implementations must handle:
    - Sending text messages
    - Marking messages as read
    - Webhook payload parsing
    """

    @abstractmethod
    async def send_text(
        self,
        to: str,
        text: str,
        reply_to: str | None = None,
    ) -> ProviderResponse:
        """
        Send a text message.

        Args:
            to: Recipient phone number or JID
            text: Message text
            reply_to: Message ID to quote (optional)

        Returns:
            ProviderResponse with message ID if successful
        """
        ...

    @abstractmethod
    async def mark_as_read(self, remote_jid: str, message_id: str) -> bool:
        """Mark a received message as read. Returns True if successful."""
        ...

    @abstractmethod
    def parse_webhook(
        self,
        payload: dict[str, Any],
    ) -> tuple[list[InboundMessage], list[DeliveryStatus]]:
        """
        Parse webhook payload into messages and status updates.

        Args:
            payload: Parsed JSON webhook payload

        Returns:
            Tuple of (list of inbound messages, list of delivery statuses)
        """
        ...

    async def send_presence(self, to: str, presence: str = "composing", delay_ms: int = 0) -> bool:
        """
        Show a chat presence ("composing", "recording", "paused") to a contact.

        Providers without presence support return False.
        """
        return False

    async def close(self) -> None:
        """Release network resources."""
        return None

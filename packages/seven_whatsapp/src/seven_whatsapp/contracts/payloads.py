"""
WhatsApp Payload Models

Pydantic models for the payloads the webhook publishes and the worker
consumes on Redis Streams.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from seven_whatsapp.providers.base import InboundMessage, MessageType


class InboundMessagePayload(BaseModel):
    """
    Payload for WHATSAPP_INBOUND_RECEIVED.

    Contains everything the worker needs to rebuild the inbound message.
    """

    tool_id: UUID = Field(..., description="Tool (WhatsApp connection) that received the message")
    instance_name: str = Field(..., description="Evolution instance name")
    message_id: str = Field(..., description="Provider message ID")
    remote_jid: str = Field(..., description="WhatsApp JID of the contact")
    from_phone: str = Field(..., description="Contact phone number")
    message_type: MessageType = Field(MessageType.TEXT, description="Type of message")
    text: str | None = Field(None, description="Text content")
    caption: str | None = Field(None, description="Media caption")
    push_name: str | None = Field(None, description="Contact WhatsApp profile name")
    from_me: bool = Field(False, description="Sent from the tenant's own phone")
    button_payload: str | None = None
    timestamp: datetime = Field(..., description="Message timestamp from provider")
    raw_payload: dict[str, Any] = Field(default_factory=dict, description="Raw provider payload")

    @classmethod
    def from_inbound_message(cls, tool_id: UUID, message: InboundMessage) -> "InboundMessagePayload":
        return cls(
            tool_id=tool_id,
            instance_name=message.instance_name,
            message_id=message.message_id,
            remote_jid=message.remote_jid,
            from_phone=message.from_phone,
            message_type=message.message_type,
            text=message.text,
            caption=message.caption,
            push_name=message.push_name,
            from_me=message.from_me,
            button_payload=message.button_payload,
            timestamp=message.timestamp,
            raw_payload=message.raw_payload,
        )

    def to_inbound_message(self) -> InboundMessage:
        return InboundMessage(
            message_id=self.message_id,
            instance_name=self.instance_name,
            remote_jid=self.remote_jid,
            from_phone=self.from_phone,
            message_type=self.message_type,
            timestamp=self.timestamp,
            text=self.text,
            caption=self.caption,
            push_name=self.push_name,
            from_me=self.from_me,
            button_payload=self.button_payload,
            raw_payload=self.raw_payload,
        )


class ConnectionUpdatePayload(BaseModel):
    """Payload for WHATSAPP_CONNECTION_UPDATED."""

    tool_id: UUID = Field(..., description="Tool whose session changed")
    instance_name: str = Field(..., description="Evolution instance name")
    state: str = Field(..., description="open, connecting or close")

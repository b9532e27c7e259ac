"""
WhatsApp Event Types

Events carried on the WhatsApp streams.
"""

from enum import Enum


class WhatsAppEventType(str, Enum):
    """
    Event types for the WhatsApp pipeline.

    - INBOUND_RECEIVED: Customer sent a message (webhook -> worker)
    - CONNECTION_UPDATED: The tool's WhatsApp session changed state
    - DLQ_ENTRY: Inbound message that kept failing
    """

    INBOUND_RECEIVED = "whatsapp_inbound_received"
    CONNECTION_UPDATED = "whatsapp_connection_updated"
    DLQ_ENTRY = "whatsapp_dlq_entry"

    def __str__(self) -> str:
        return self.value

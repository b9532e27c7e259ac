"""
WhatsApp Contracts

Event types and payloads exchanged between the webhook and the worker.
"""

from seven_whatsapp.contracts.event_types import WhatsAppEventType
from seven_whatsapp.contracts.payloads import ConnectionUpdatePayload, InboundMessagePayload

__all__ = [
    "ConnectionUpdatePayload",
    "InboundMessagePayload",
    "WhatsAppEventType",
]

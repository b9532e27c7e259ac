"""
WhatsApp Providers

Provider implementations for different WhatsApp APIs.
Supports Evolution API (production) and Stub (development).
"""

from seven_whatsapp.providers.base import (
    DeliveryStatus,
    InboundMessage,
    MessageType,
    ProviderError,
    ProviderResponse,
    WhatsAppProvider,
)

__all__ = [
    "DeliveryStatus",
    "InboundMessage",
    "MessageType",
    "ProviderError",
    "ProviderResponse",
    "WhatsAppProvider",
]

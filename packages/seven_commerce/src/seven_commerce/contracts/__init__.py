"""
Commerce Contracts

Domain event payloads and the conversation snapshot used by detectors.
"""

from seven_commerce.contracts.payloads import (
    CampaignFinishedPayload,
    ChatMessage,
    ConversationContext,
    DeliveryPayload,
    DetectedItem,
    LeadDetectedPayload,
    OrderCreatedPayload,
    OrderValidatedPayload,
)

__all__ = [
    "CampaignFinishedPayload",
    "ChatMessage",
    "ConversationContext",
    "DeliveryPayload",
    "DetectedItem",
    "LeadDetectedPayload",
    "OrderCreatedPayload",
    "OrderValidatedPayload",
]

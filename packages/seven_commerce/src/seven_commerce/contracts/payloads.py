"""
Commerce Payload Models

Pydantic models for the domain events published on `seven:events`
and for the conversation snapshot the detectors work on.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    """One message of a conversation history."""

    role: str = Field(..., description="user, assistant or system")
    content: str = Field("", description="Message text")


class ConversationContext(BaseModel):
    """
    Snapshot of a WhatsApp conversation as seen by the commerce detectors.

    Built by the inbound pipeline from its conversation row so commerce
    code never reads messaging tables.
    """

    conversation_id: UUID = Field(..., description="Conversation ID")
    user_id: UUID = Field(..., description="Owning tenant")
    agent_id: UUID | None = Field(None, description="Agent handling the conversation")
    contact_jid: str | None = Field(None, description="WhatsApp JID of the contact")
    contact_number: str | None = Field(None, description="Contact phone number")
    contact_name: str | None = None
    push_name: str | None = None
    notify_name: str | None = None
    saved_contact_name: str | None = None
    history: list[ChatMessage] = Field(
        default_factory=list, description="Messages, oldest first"
    )

    def display_name(self, default: str) -> str:
        """Best known name for the contact."""
        return (
            self.saved_contact_name
            or self.contact_name
            or self.push_name
            or self.notify_name
            or self.contact_number
            or default
        )

    def recent_text(self, limit: int = 10) -> str:
        """Last `limit` messages joined and lower-cased."""
        recent = list(reversed(self.history))[:limit]
        return " ".join(m.content for m in recent).lower()

    def user_messages(self) -> list[ChatMessage]:
        return [m for m in self.history if m.role == "user"]


class DetectedItem(BaseModel):
    """An order line detected from, or submitted for, an order."""

    product_id: UUID | None = Field(None, description="Catalog product, if resolved")
    product_name: str = Field(..., description="Product name at order time")
    product_sku: str | None = Field(None, description="Product SKU")
    quantity: int = Field(1, ge=1, description="Ordered quantity")
    unit_price: Decimal = Field(Decimal("0"), description="Unit price")
    available_stock: int | None = Field(None, description="Stock when detected")


class DeliveryPayload(BaseModel):
    city: str | None = None
    neighborhood: str | None = None
    phone: str | None = None


class OrderCreatedPayload(BaseModel):
    """Payload for ORDER_CREATED."""

    order_id: UUID = Field(..., description="Order ID")
    conversation_id: UUID | None = Field(None, description="Source conversation")
    agent_id: UUID | None = Field(None, description="Agent that detected it")
    contact_jid: str | None = None
    contact_name: str = Field(..., description="Customer display name")
    contact_number: str | None = None
    items: list[DetectedItem] = Field(default_factory=list)
    total_amount: Decimal = Field(..., description="Order total")
    currency: str = Field("XOF", description="ISO currency")


class OrderValidatedPayload(BaseModel):
    """Payload for ORDER_VALIDATED. Carries what a delivery person needs."""

    order_id: UUID = Field(..., description="Order ID")
    conversation_id: UUID | None = None
    customer_name: str = Field(..., description="Customer name")
    customer_phone: str | None = None
    items: list[DetectedItem] = Field(default_factory=list)
    total_amount: Decimal = Field(..., description="Order total")
    currency: str = Field("XOF", description="ISO currency")
    payment_method: str = Field("on_delivery", description="on_delivery or online")
    items_summary: str = Field("", description="One line per item, for messages")
    delivery: DeliveryPayload = Field(default_factory=DeliveryPayload)
    validated_at: datetime = Field(..., description="Validation time")


class LeadDetectedPayload(BaseModel):
    """Payload for LEAD_DETECTED."""

    lead_id: UUID = Field(..., description="Lead ID")
    conversation_id: UUID | None = None
    agent_id: UUID | None = None
    name: str = Field(..., description="Lead name")
    phone: str | None = None
    confidence: float = Field(..., description="Detection confidence 0..1")
    reason: str = Field("", description="Human readable reason")


class CampaignFinishedPayload(BaseModel):
    """Payload for CAMPAIGN_FINISHED."""

    campaign_id: UUID = Field(..., description="Campaign ID")
    name: str = Field(..., description="Campaign name")
    sent: int = Field(0, description="Recipients reached")
    failed: int = Field(0, description="Recipients that failed")

"""
WhatsApp Database Models

Tables owned by the WhatsApp package:
- tools: a tenant's connected WhatsApp instance (provider credentials)
- agents: AI agents answering on a tool
- conversations: one thread per agent and contact
- messages: every message of a conversation
- campaigns / campaign_recipients: bulk sends
"""

from enum import Enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from sevencore.db import Base, JSONType
from seven_commerce.persistence.models import TimestampMixin


class ToolStatus(str, Enum):
    CONNECTED = "connected"
    CONNECTING = "connecting"
    DISCONNECTED = "disconnected"


class ConversationStatus(str, Enum):
    """Status of a WhatsApp conversation."""

    ACTIVE = "active"
    HUMAN_TAKEOVER = "human_takeover"
    CLOSED = "closed"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class MessageStatus(str, Enum):
    """Status of a WhatsApp message."""

    RECEIVED = "received"
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class CampaignStatus(str, Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    SENDING = "sending"
    SENT = "sent"
    FAILED = "failed"


class RecipientStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class Tool(Base, TimestampMixin):
    """
    A tenant's WhatsApp connection.

    The Evolution `instance_name` routes incoming webhooks to the tool.
    """

    __tablename__ = "tools"

    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(50), nullable=False, default="whatsapp")
    label = Column(String(255), nullable=True)
    status = Column(String(30), nullable=False, default=ToolStatus.DISCONNECTED.value)
    provider = Column(String(50), nullable=False, default="stub")  # stub, evolution
    instance_name = Column(String(100), nullable=True, unique=True)
    api_url = Column(String(500), nullable=True)
    api_key_encrypted = Column(Text, nullable=True)
    config = Column(JSONType, nullable=False, default=dict)

    agents = relationship("Agent", back_populates="tool")


class Agent(Base, TimestampMixin):
    """An AI agent answering customers on a tool."""

    __tablename__ = "agents"

    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    tool_id = Column(Uuid, ForeignKey("tools.id", ondelete="SET NULL"), nullable=True)
    name = Column(String(255), nullable=False)
    model = Column(String(100), nullable=True)
    system_prompt = Column(Text, nullable=True)
    temperature = Column(Float, nullable=False, default=0.7)
    max_tokens = Column(Integer, nullable=False, default=500)

    whatsapp_connected = Column(Boolean, nullable=False, default=False)
    whatsapp_number = Column(String(30), nullable=True)

    auto_reply = Column(Boolean, nullable=False, default=True)
    lead_detection = Column(Boolean, nullable=False, default=True)
    order_detection = Column(Boolean, nullable=False, default=True)
    response_delay = Column(Integer, nullable=False, default=0)  # seconds of "composing" before a reply
    is_active = Column(Boolean, nullable=False, default=True)

    tool = relationship("Tool", back_populates="agents")

    __table_args__ = (
        Index("idx_agents_tool", "tool_id"),
    )


class Conversation(Base, TimestampMixin):
    """A thread between an agent and one WhatsApp contact."""

    __tablename__ = "conversations"

    agent_id = Column(Uuid, ForeignKey("agents.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    contact_jid = Column(String(100), nullable=False)
    contact_number = Column(String(30), nullable=True)

    contact_name = Column(String(255), nullable=True)
    push_name = Column(String(255), nullable=True)
    notify_name = Column(String(255), nullable=True)
    saved_contact_name = Column(String(255), nullable=True)

    status = Column(String(30), nullable=False, default=ConversationStatus.ACTIVE.value)
    last_message_at = Column(DateTime(timezone=True), nullable=True)
    message_count = Column(Integer, nullable=False, default=0)

    agent = relationship("Agent")
    messages = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="Message.created_at",
    )

    __table_args__ = (
        UniqueConstraint("agent_id", "contact_jid", name="uq_conversations_agent_contact"),
        Index("idx_conversations_user_last", "user_id", "last_message_at"),
    )


class Message(Base, TimestampMixin):
    """One message. `provider_message_id` makes inbound processing idempotent."""

    __tablename__ = "messages"

    conversation_id = Column(
        Uuid, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    role = Column(String(20), nullable=False)
    content = Column(Text, nullable=False, default="")
    message_type = Column(String(30), nullable=False, default="text")
    provider_message_id = Column(String(255), nullable=True, unique=True)
    status = Column(String(20), nullable=False, default=MessageStatus.RECEIVED.value)
    error_message = Column(Text, nullable=True)

    conversation = relationship("Conversation", back_populates="messages")

    __table_args__ = (
        Index("idx_messages_conversation_created", "conversation_id", "created_at"),
    )


class Campaign(Base, TimestampMixin):
    """A bulk message sent through an agent's WhatsApp."""

    __tablename__ = "campaigns"

    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    agent_id = Column(Uuid, ForeignKey("agents.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=CampaignStatus.DRAFT.value)
    scheduled_at = Column(DateTime(timezone=True), nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    sent_count = Column(Integer, nullable=False, default=0)
    failed_count = Column(Integer, nullable=False, default=0)

    agent = relationship("Agent")
    recipients = relationship(
        "CampaignRecipient",
        back_populates="campaign",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("idx_campaigns_status_scheduled", "status", "scheduled_at"),
    )


class CampaignRecipient(Base, TimestampMixin):
    __tablename__ = "campaign_recipients"

    campaign_id = Column(Uuid, ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False)
    contact_number = Column(String(30), nullable=False)
    contact_name = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default=RecipientStatus.PENDING.value)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)

    campaign = relationship("Campaign", back_populates="recipients")

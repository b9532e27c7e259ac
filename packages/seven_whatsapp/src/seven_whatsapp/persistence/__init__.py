"""
WhatsApp Persistence

SQLAlchemy models and repository for tools, agents, conversations,
messages and campaigns.
"""

from seven_whatsapp.persistence.models import (
    Agent,
    Campaign,
    CampaignRecipient,
    CampaignStatus,
    Conversation,
    ConversationStatus,
    Message,
    MessageRole,
    MessageStatus,
    RecipientStatus,
    Tool,
    ToolStatus,
)
from seven_whatsapp.persistence.repo import WhatsAppRepository

__all__ = [
    "Agent",
    "Campaign",
    "CampaignRecipient",
    "CampaignStatus",
    "Conversation",
    "ConversationStatus",
    "Message",
    "MessageRole",
    "MessageStatus",
    "RecipientStatus",
    "Tool",
    "ToolStatus",
    "WhatsAppRepository",
]

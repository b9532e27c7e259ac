"""
WhatsApp Repository

Repository pattern for WhatsApp database operations.
Provides CRUD operations and common queries for tools, agents,
conversations, messages and campaigns.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import text, update
from sqlalchemy.orm import Session

from sevencore.clock import utcnow
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
)
from seven_whatsapp.providers.base import DeliveryStatus


class WhatsAppRepository:
    """Repository for WhatsApp database operations."""

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # Tools and agents
    # =========================================================================

    def get_tool(self, tool_id: UUID) -> Tool | None:
        return self.db.query(Tool).filter(Tool.id == tool_id).first()

    def get_tool_by_instance_name(self, instance_name: str) -> Tool | None:
        """Get the tool that owns an Evolution instance."""
        return self.db.query(Tool).filter(Tool.instance_name == instance_name).first()

    def list_tools(self, user_id: UUID | None = None) -> list[Tool]:
        query = self.db.query(Tool)
        if user_id:
            query = query.filter(Tool.user_id == user_id)
        return query.order_by(Tool.created_at.desc()).all()

    def create_tool(
        self,
        user_id: UUID,
        provider: str,
        instance_name: str | None = None,
        api_url: str | None = None,
        api_key_encrypted: str | None = None,
        label: str | None = None,
        config: dict[str, Any] | None = None,
    ) -> Tool:
        tool = Tool(
            user_id=user_id,
            type="whatsapp",
            provider=provider,
            instance_name=instance_name,
            api_url=api_url,
            api_key_encrypted=api_key_encrypted,
            label=label or instance_name,
            config=config or {},
        )
        self.db.add(tool)
        return tool

    def get_agent(self, agent_id: UUID) -> Agent | None:
        return self.db.query(Agent).filter(Agent.id == agent_id).first()

    def get_agent_for_tool(self, tool_id: UUID) -> Agent | None:
        """Agent bound to a tool, active ones first."""
        return (
            self.db.query(Agent)
            .filter(Agent.tool_id == tool_id)
            .order_by(Agent.is_active.desc(), Agent.created_at)
            .first()
        )

    # =========================================================================
    # Conversations
    # =========================================================================

    def get_conversation(self, agent_id: UUID, contact_jid: str) -> Conversation | None:
        """Get conversation by agent and contact JID."""
        return (
            self.db.query(Conversation)
            .filter(
                Conversation.agent_id == agent_id,
                Conversation.contact_jid == contact_jid,
            )
            .first()
        )

    def get_conversation_by_id(self, conversation_id: UUID) -> Conversation | None:
        return self.db.query(Conversation).filter(Conversation.id == conversation_id).first()

    def get_or_create_conversation(
        self,
        agent: Agent,
        contact_jid: str,
        contact_number: str | None = None,
        push_name: str | None = None,
    ) -> tuple[Conversation, bool]:
        """
        Get existing conversation or create a new one.

        Returns:
            Tuple of (conversation, created) where created is True if new.
        """
        conversation = self.get_conversation(agent.id, contact_jid)
        if conversation:
            return conversation, False

        conversation = Conversation(
            agent_id=agent.id,
            user_id=agent.user_id,
            contact_jid=contact_jid,
            contact_number=contact_number,
            contact_name=push_name or contact_number,
            push_name=push_name,
            status=ConversationStatus.ACTIVE.value,
            message_count=0,
        )
        self.db.add(conversation)
        self.db.flush()
        return conversation, True

    def touch_conversation(self, conversation: Conversation, timestamp: datetime | None = None) -> None:
        """Update counters after a message."""
        now = timestamp or utcnow()
        conversation.last_message_at = now
        conversation.message_count = (conversation.message_count or 0) + 1

    def list_conversations(
        self,
        user_id: UUID,
        status: ConversationStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Conversation]:
        """List conversations for a tenant."""
        query = self.db.query(Conversation).filter(Conversation.user_id == user_id)

        if status:
            query = query.filter(Conversation.status == status.value)

        return (
            query.order_by(Conversation.last_message_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    # =========================================================================
    # Messages
    # =========================================================================

    def is_message_processed(self, provider_message_id: str) -> bool:
        """Check if a message has already been stored (idempotency)."""
        result = self.db.execute(
            text("SELECT 1 FROM messages WHERE provider_message_id = :id LIMIT 1"),
            {"id": provider_message_id},
        )
        return result.fetchone() is not None

    def create_message(
        self,
        conversation_id: UUID,
        role: MessageRole,
        content: str,
        message_type: str = "text",
        provider_message_id: str | None = None,
        status: MessageStatus = MessageStatus.RECEIVED,
    ) -> Message:
        message = Message(
            conversation_id=conversation_id,
            role=role.value,
            content=content,
            message_type=message_type,
            provider_message_id=provider_message_id,
            status=status.value,
        )
        self.db.add(message)
        return message

    def get_recent_messages(self, conversation_id: UUID, limit: int = 20) -> list[Message]:
        """Most recent messages of a conversation, newest first."""
        return (
            self.db.query(Message)
            .filter(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.desc())
            .limit(limit)
            .all()
        )

    def mark_message_failed(self, provider_message_id: str, error: str | None = None) -> bool:
        """Flag an outbound message the provider reported as failed."""
        message = self.db.query(Message).filter(Message.provider_message_id == provider_message_id).first()
        if not message or message.role == MessageRole.USER.value:
            return False
        message.status = MessageStatus.FAILED.value
        message.error_message = error
        return True

    def apply_delivery_statuses(self, statuses: list[DeliveryStatus], error: str = "Échec signalé par WhatsApp") -> int:
        """
        Apply webhook delivery statuses to stored messages.

        Only `failed` changes anything; sent, delivered and read are ignored.
        Returns the number of messages flagged.
        """
        flagged = 0
        for status in statuses:
            if status.status == "failed" and self.mark_message_failed(status.message_id, error):
                flagged += 1
        return flagged

    # =========================================================================
    # Campaigns
    # =========================================================================

    def get_campaign(self, campaign_id: UUID) -> Campaign | None:
        return self.db.query(Campaign).filter(Campaign.id == campaign_id).first()

    def get_pending_recipients(self, campaign_id: UUID) -> list[CampaignRecipient]:
        return (
            self.db.query(CampaignRecipient)
            .filter(
                CampaignRecipient.campaign_id == campaign_id,
                CampaignRecipient.status == RecipientStatus.PENDING.value,
            )
            .order_by(CampaignRecipient.created_at)
            .all()
        )

    def get_due_campaigns(self, now: datetime | None = None) -> list[Campaign]:
        """Scheduled campaigns whose time has come."""
        now = now or utcnow()
        return (
            self.db.query(Campaign)
            .filter(
                Campaign.status == CampaignStatus.SCHEDULED.value,
                Campaign.scheduled_at <= now,
            )
            .order_by(Campaign.scheduled_at)
            .all()
        )

    def claim_campaign_for_sending(self, campaign_id: UUID) -> bool:
        """
        Move a campaign to `sending`.

        Only succeeds from draft or scheduled; False means another runner
        already claimed it.
        """
        result = self.db.execute(
            update(Campaign)
            .where(
                Campaign.id == campaign_id,
                Campaign.status.in_([CampaignStatus.DRAFT.value, CampaignStatus.SCHEDULED.value]),
            )
            .values(status=CampaignStatus.SENDING.value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1

    def count_campaign_recipients(self, campaign_id: UUID, status: RecipientStatus) -> int:
        return (
            self.db.query(CampaignRecipient)
            .filter(
                CampaignRecipient.campaign_id == campaign_id,
                CampaignRecipient.status == status.value,
            )
            .count()
        )

"""
Conversation State Management

Keeps conversation rows current (contact names, counters, takeover status)
and builds the conversation snapshot the commerce detectors work on.
"""

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from seven_commerce.contracts.payloads import ChatMessage, ConversationContext
from seven_whatsapp.persistence.models import Agent, Conversation, ConversationStatus
from seven_whatsapp.persistence.repo import WhatsAppRepository
from seven_whatsapp.providers.base import InboundMessage

logger = logging.getLogger(__name__)


class ConversationManager:
    """
    Manages conversation state and transitions.

    Provides methods to:
    - Get or create conversations
    - Record messages
    - Hand a conversation over to a human and back
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = WhatsAppRepository(db)

    def get_or_create_conversation(
        self,
        agent: Agent,
        message: InboundMessage,
    ) -> tuple[Conversation, bool]:
        """
        Get or create the conversation for the message sender.

        Returns:
            Tuple of (conversation, is_new)
        """
        conversation, created = self.repo.get_or_create_conversation(
            agent,
            contact_jid=message.remote_jid,
            contact_number=message.from_phone,
            push_name=None if message.from_me else message.push_name,
        )
        if created:
            logger.info(
                f"New conversation created for {conversation.contact_name}",
                extra={"conversation_id": str(conversation.id), "agent_id": str(agent.id)},
            )
        elif not message.from_me:
            self.update_contact_names(conversation, message.push_name)
        return conversation, created

    def update_contact_names(self, conversation: Conversation, push_name: str | None) -> None:
        """
        Refresh names from a new message.

        The display name only changes while it is still the bare number.
        """
        if not push_name:
            return
        if push_name != conversation.push_name:
            conversation.push_name = push_name
        if not conversation.contact_name or conversation.contact_name == conversation.contact_number:
            conversation.contact_name = push_name

    def record_inbound_message(
        self,
        conversation: Conversation,
        timestamp: datetime | None = None,
    ) -> None:
        """
        Record that an inbound message was received.

        Updates timestamps and counters.
        """
        self.repo.touch_conversation(conversation, timestamp)

        # Reopen closed conversations
        if conversation.status == ConversationStatus.CLOSED.value:
            conversation.status = ConversationStatus.ACTIVE.value

    def record_outbound_message(
        self,
        conversation: Conversation,
        timestamp: datetime | None = None,
    ) -> None:
        self.repo.touch_conversation(conversation, timestamp)

    def take_over(self, conversation: Conversation) -> None:
        """A human answers this conversation; automation stops."""
        conversation.status = ConversationStatus.HUMAN_TAKEOVER.value
        logger.info("Conversation handed over to a human", extra={"conversation_id": str(conversation.id)})

    def release(self, conversation: Conversation) -> None:
        conversation.status = ConversationStatus.ACTIVE.value

    def close_conversation(self, conversation: Conversation) -> None:
        conversation.status = ConversationStatus.CLOSED.value

    def is_automated(self, conversation: Conversation) -> bool:
        return conversation.status != ConversationStatus.HUMAN_TAKEOVER.value

    def build_context(self, conversation: Conversation, history_size: int = 20) -> ConversationContext:
        """Snapshot of the conversation with its recent history, oldest first."""
        recent = self.repo.get_recent_messages(conversation.id, limit=history_size)
        history = [ChatMessage(role=m.role, content=m.content or "") for m in reversed(recent)]

        return ConversationContext(
            conversation_id=conversation.id,
            user_id=conversation.user_id,
            agent_id=conversation.agent_id,
            contact_jid=conversation.contact_jid,
            contact_number=conversation.contact_number,
            contact_name=conversation.contact_name,
            push_name=conversation.push_name,
            notify_name=conversation.notify_name,
            saved_contact_name=conversation.saved_contact_name,
            history=history,
        )

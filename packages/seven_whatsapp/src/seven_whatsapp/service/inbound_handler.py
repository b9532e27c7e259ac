"""
Inbound Message Handler

Processes incoming WhatsApp messages:
1. Skips duplicates, groups and broadcasts
2. Resolves the agent bound to the tool
3. Gets or creates conversation
4. Persists message
5. Runs order and lead detection
6. Replies (static text, AI, or fallback)
7. Commits once, then publishes events
"""

import logging
from collections.abc import Callable
from typing import Any

from sqlalchemy.orm import Session

from sevencore.clock import utcnow
from sevencore.envelope import EventEnvelope
from seven_commerce.contracts.payloads import ConversationContext
from seven_commerce.detection.classifier import MessageClassifier
from seven_commerce.detection.matching import match_product
from seven_commerce.engines.lead_analyzer import LeadAnalyzer
from seven_commerce.engines.order_detector import OrderDetection, OrderDetector
from seven_commerce.events import DomainEventPublisher
from seven_commerce.persistence.models import Lead, NotificationType
from seven_commerce.persistence.repo import CommerceRepository
from seven_commerce.services.anomalies import AdminAnomalyService
from seven_commerce.services.credits import CreditService
from seven_commerce.services.notifications import NotificationService
from seven_whatsapp.contracts.event_types import WhatsAppEventType
from seven_whatsapp.contracts.payloads import ConnectionUpdatePayload, InboundMessagePayload
from seven_whatsapp.persistence.models import (
    Agent,
    Conversation,
    MessageRole,
    MessageStatus,
    Tool,
    ToolStatus,
)
from seven_whatsapp.persistence.repo import WhatsAppRepository
from seven_whatsapp.providers.base import InboundMessage, ProviderError, WhatsAppProvider
from seven_whatsapp.routing.conversation import ConversationManager
from seven_whatsapp.routing.tool_resolver import ToolResolver
from seven_whatsapp.service.automation import AutoReply, AutomationEngine, AutoReplyType, ReplyIntent
from seven_whatsapp.service.responder import AiResponder

logger = logging.getLogger(__name__)

# Messages loaded into the detector context
CONTEXT_SIZE = 20

CONNECTION_STATES = {
    "open": ToolStatus.CONNECTED,
    "connecting": ToolStatus.CONNECTING,
    "close": ToolStatus.DISCONNECTED,
}


class InboundHandler:
    """
    Handles incoming WhatsApp messages.

    Responsibilities:
    - Persist messages and conversation state
    - Detect orders and leads
    - Reply through the agent's provider
    - Charge credits for AI replies
    """

    def __init__(
        self,
        db: Session,
        provider_factory: Callable[[Tool], WhatsAppProvider] | None = None,
        publisher: DomainEventPublisher | None = None,
        responder: AiResponder | None = None,
        automation: AutomationEngine | None = None,
        credits: CreditService | None = None,
    ):
        self.db = db
        self.repo = WhatsAppRepository(db)
        self.commerce = CommerceRepository(db)
        self.conversations = ConversationManager(db)
        self.provider_factory = provider_factory or ToolResolver(db).build_provider
        self.publisher = publisher or DomainEventPublisher()
        self.responder = responder or AiResponder()
        self.automation = automation or AutomationEngine()
        self.classifier = MessageClassifier()
        self.notifications = NotificationService(db)
        self.anomalies = AdminAnomalyService(db)
        self.credits = credits or CreditService(db, notifications=self.notifications, anomalies=self.anomalies)
        self.order_detector = OrderDetector(db, publisher=self.publisher, classifier=self.classifier)
        self.lead_analyzer = LeadAnalyzer(db, notifications=self.notifications, publisher=self.publisher)

    async def handle_envelope(self, envelope: EventEnvelope) -> dict[str, Any]:
        """
        Process an envelope read from the inbound stream.

        Returns:
            Processing result dict
        """
        if envelope.event_type == WhatsAppEventType.CONNECTION_UPDATED.value:
            update = ConnectionUpdatePayload.model_validate(envelope.payload)
            tool = self.repo.get_tool(update.tool_id)
            if not tool:
                return {"status": "skipped", "reason": "tool_not_found"}
            return self.handle_connection_update(tool, update.state)

        if envelope.event_type != WhatsAppEventType.INBOUND_RECEIVED.value:
            logger.warning(f"Unknown event type on inbound stream: {envelope.event_type}")
            return {"status": "skipped", "reason": "unknown_event"}

        payload = InboundMessagePayload.model_validate(envelope.payload)
        tool = self.repo.get_tool(payload.tool_id)
        if not tool:
            logger.warning(f"Tool {payload.tool_id} not found, dropping message {payload.message_id}")
            return {"status": "skipped", "reason": "tool_not_found", "message_id": payload.message_id}

        return await self.process_message(tool, payload.to_inbound_message())

    async def process_message(self, tool: Tool, message: InboundMessage) -> dict[str, Any]:
        """
        Process a single inbound message.

        Args:
            tool: Tool (WhatsApp connection) that received the message
            message: Parsed inbound message

        Returns:
            Processing result dict
        """
        result: dict[str, Any] = {
            "status": "processed",
            "message_id": message.message_id,
            "conversation_id": None,
            "order_id": None,
            "lead_id": None,
            "reply": None,
        }

        if message.is_group or message.is_broadcast:
            return {**result, "status": "skipped", "reason": "group_or_broadcast"}

        if message.message_id and self.repo.is_message_processed(message.message_id):
            logger.debug(f"Message {message.message_id} already processed, skipping")
            return {**result, "status": "skipped", "reason": "already_processed"}

        agent = self.repo.get_agent_for_tool(tool.id)
        if not agent or not agent.is_active:
            logger.info(f"No active agent for tool {tool.id}, skipping message")
            return {**result, "status": "skipped", "reason": "no_active_agent"}

        lead: Lead | None = None
        detection: OrderDetection | None = None
        try:
            conversation, _ = self.conversations.get_or_create_conversation(agent, message)
            result["conversation_id"] = str(conversation.id)
            text = message.body or ""

            if message.from_me:
                # Typed by the tenant on their own phone
                self.repo.create_message(
                    conversation.id,
                    MessageRole.ASSISTANT,
                    text,
                    message_type=message.message_type.value,
                    provider_message_id=message.message_id,
                    status=MessageStatus.SENT,
                )
                self.conversations.record_outbound_message(conversation, message.timestamp)
                self.db.commit()
                result["status"] = "recorded"
                return result

            self.repo.create_message(
                conversation.id,
                MessageRole.USER,
                text,
                message_type=message.message_type.value,
                provider_message_id=message.message_id,
            )
            self.conversations.record_inbound_message(conversation, message.timestamp)
            self.db.flush()

            if not self.conversations.is_automated(conversation):
                self.db.commit()
                result["status"] = "human_takeover"
                return result

            context = self.conversations.build_context(conversation, history_size=CONTEXT_SIZE)

            if agent.order_detection and text:
                detection = self.order_detector.detect(text, context)
                if detection:
                    result["order_id"] = str(detection.order.id)

            if agent.lead_detection:
                suggestion = self.lead_analyzer.analyze_conversation(context)
                if suggestion:
                    lead = self.lead_analyzer.create_suggested_lead(agent.user_id, context, agent.id, suggestion)
                    result["lead_id"] = str(lead.id)

            if agent.auto_reply and text:
                reply = await self._choose_reply(
                    agent, conversation, context, text, order_created=detection is not None
                )
                result["reply"] = reply.text
                result["reply_type"] = reply.reply_type.value
                await self._send_reply(tool, agent, conversation, message, reply.text)

            self.db.commit()

        except Exception as e:
            self.db.rollback()
            logger.error(
                f"Failed to process inbound message: {e}",
                extra={"message_id": message.message_id, "tool_id": str(tool.id)},
                exc_info=True,
            )
            result["status"] = "failed"
            result["error"] = str(e)
            return result

        if detection and detection.created:
            self.order_detector.publish_order_created(detection, context)
        if lead:
            self.lead_analyzer.publish_lead_detected(lead)
        return result

    def _mentions_product(self, user_id, text: str) -> bool:
        return any(match_product(text, p).matched for p in self.commerce.get_active_products(user_id))

    async def _choose_reply(
        self,
        agent: Agent,
        conversation: Conversation,
        context: ConversationContext,
        text: str,
        order_created: bool,
    ) -> AutoReply:
        """Static reply, AI reply when credits allow, otherwise the fallback text."""
        detection = self.automation.detect(
            text,
            classification=self.classifier.classify(text),
            mentions_product=order_created or self._mentions_product(agent.user_id, text),
        )

        if detection.intent == ReplyIntent.HUMAN_REQUEST:
            self.conversations.take_over(conversation)
            name = context.display_name("Un client")
            self.notifications.create(
                agent.user_id,
                type=NotificationType.AGENT.value,
                title="Intervention humaine requise",
                message=f"{name} souhaite parler à un conseiller",
                link=f"/dashboard/conversations/{conversation.id}",
                metadata={"conversation_id": str(conversation.id), "agent_id": str(agent.id)},
            )

        static = self.automation.static_reply(detection)
        if static:
            logger.info(f"Static reply ({static.reply_type.value})", extra={"conversation_id": str(conversation.id)})
            return static

        model = self.responder.model_for(agent)
        if not self.credits.has_enough_credits(agent.user_id, model):
            logger.info("Insufficient credits for AI reply, using fallback", extra={"user_id": str(agent.user_id)})
            return self.automation.fallback_reply(agent.name)

        # The current message is the last history entry
        history = context.history[:-1]
        ai_text = await self.responder.generate(
            agent,
            history,
            text,
            on_error=self._log_ai_error,
            products=self.commerce.get_active_products(agent.user_id),
        )
        if not ai_text:
            return self.automation.fallback_reply(agent.name)

        self.credits.deduct_credits(
            agent.user_id,
            model,
            metadata={"agent_id": str(agent.id), "conversation_id": str(conversation.id)},
        )
        return AutoReply(reply_type=AutoReplyType.AI, text=ai_text)

    def _log_ai_error(self, agent: Agent, error: str) -> None:
        self.anomalies.log_ai_error(agent.user_id, error, agent.model)

    async def _send_reply(
        self,
        tool: Tool,
        agent: Agent,
        conversation: Conversation,
        message: InboundMessage,
        text: str,
    ) -> None:
        """Persist the reply as an assistant message and send it."""
        provider = self.provider_factory(tool)
        try:
            try:
                await provider.mark_as_read(message.remote_jid, message.message_id)
            except ProviderError as e:
                logger.warning(f"Failed to mark message as read: {e}")

            if agent.response_delay:
                await provider.send_presence(
                    conversation.contact_jid, "composing", delay_ms=agent.response_delay * 1000
                )

            try:
                response = await provider.send_text(conversation.contact_jid, text)
            except ProviderError as e:
                logger.error(f"Failed to send reply: {e}", extra={"conversation_id": str(conversation.id)})
                status, provider_id, error = MessageStatus.FAILED, None, str(e)
            else:
                if response.success:
                    status, provider_id, error = MessageStatus.SENT, response.message_id, None
                else:
                    status, provider_id, error = MessageStatus.FAILED, None, response.error_message
        finally:
            await provider.close()

        reply = self.repo.create_message(
            conversation.id,
            MessageRole.ASSISTANT,
            text,
            provider_message_id=provider_id,
            status=status,
        )
        reply.error_message = error
        self.conversations.record_outbound_message(conversation, utcnow())

    def handle_connection_update(self, tool: Tool, state: str) -> dict[str, Any]:
        """
        Apply a WhatsApp session state change to the tool and its agent.

        The tenant is notified when a connected agent drops.
        """
        new_status = CONNECTION_STATES.get(state)
        if not new_status:
            return {"status": "skipped", "reason": "unknown_state", "state": state}

        was_connected = tool.status == ToolStatus.CONNECTED.value
        tool.status = new_status.value

        agent = self.repo.get_agent_for_tool(tool.id)
        if agent:
            agent.whatsapp_connected = new_status == ToolStatus.CONNECTED
            if was_connected and new_status == ToolStatus.DISCONNECTED:
                self.notifications.notify_whatsapp_disconnected(tool.user_id, agent.name)

        self.db.commit()
        logger.info(f"Tool {tool.id} is now {new_status.value}", extra={"instance_name": tool.instance_name})
        return {"status": "updated", "tool_id": str(tool.id), "tool_status": new_status.value}

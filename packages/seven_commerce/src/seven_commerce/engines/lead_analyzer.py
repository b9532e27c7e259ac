"""
Lead Analyzer

Scores a conversation on buying-intent keywords and engagement, and turns
promising contacts into suggested leads for the tenant to validate.
"""

import logging
import math
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.orm import Session

from sevencore.clock import utcnow
from sevencore.errors import NotFoundError
from seven_commerce.contracts.payloads import (
    ChatMessage,
    ConversationContext,
    LeadDetectedPayload,
)
from seven_commerce.detection.keywords import (
    LEAD_HIGH_INTENT_KEYWORDS,
    LEAD_MEDIUM_INTENT_KEYWORDS,
    LEAD_NEGATIVE_KEYWORDS,
)
from seven_commerce.events import DomainEventPublisher, DomainEventType
from seven_commerce.persistence.models import Lead, LeadStatus, Order
from seven_commerce.persistence.repo import CommerceRepository
from seven_commerce.services.notifications import NotificationService

logger = logging.getLogger(__name__)

MIN_SCORE = 30
MIN_CONFIDENCE = 0.4


class LeadNotFoundError(NotFoundError):
    def __init__(self):
        super().__init__("Lead non trouvé", code="lead_not_found")


@dataclass
class IntentScore:
    score: int
    confidence: float
    reason: str
    matched_keywords: list[str] = field(default_factory=list)


@dataclass
class LeadSuggestion:
    confidence: float
    reason: str
    keywords: list[str] = field(default_factory=list)


def _round2(value: float) -> float:
    return math.floor(value * 100 + 0.5) / 100


def calculate_intent_score(text: str, message_count: int) -> IntentScore:
    score = 0
    matched: list[str] = []
    reasons: list[str] = []

    for keyword in LEAD_HIGH_INTENT_KEYWORDS:
        if keyword in text:
            score += 10
            matched.append(keyword)
            if len(matched) <= 3:
                reasons.append(f'Mention de "{keyword}"')

    for keyword in LEAD_MEDIUM_INTENT_KEYWORDS:
        if keyword in text:
            score += 5
            matched.append(keyword)

    if message_count >= 3:
        score += 10
        reasons.append("Conversation active (3+ messages)")
    if message_count >= 5:
        score += 10
        reasons.append("Engagement élevé (5+ messages)")

    if text.count("?") >= 2:
        score += 5
        reasons.append("Pose plusieurs questions")

    keyword_confidence = min(len(matched) / 5, 1)
    engagement_confidence = min(message_count / 5, 1)
    confidence = _round2(keyword_confidence * 0.7 + engagement_confidence * 0.3)

    return IntentScore(
        score=score,
        confidence=confidence,
        reason=", ".join(reasons) if reasons else "Intérêt potentiel détecté",
        matched_keywords=matched,
    )


class LeadAnalyzer:
    """Keyword-based lead detection and lead lifecycle."""

    def __init__(
        self,
        db: Session,
        notifications: NotificationService | None = None,
        publisher: DomainEventPublisher | None = None,
    ):
        self.db = db
        self.repo = CommerceRepository(db)
        self.notifications = notifications or NotificationService(db)
        self.publisher = publisher or DomainEventPublisher()

    def analyze_conversation(
        self,
        conversation: ConversationContext,
        messages: list[ChatMessage] | None = None,
        user_id: UUID | None = None,
    ) -> LeadSuggestion | None:
        messages = messages if messages is not None else conversation.history
        user_id = user_id or conversation.user_id

        user_messages = [m for m in messages if m.role == "user"]
        if not user_messages:
            return None

        text = " ".join(m.content for m in user_messages).lower()

        for keyword in LEAD_NEGATIVE_KEYWORDS:
            if keyword in text:
                logger.debug(f"Non-lead keyword detected: {keyword}")
                return None

        if self.repo.get_lead_for_conversation(conversation.conversation_id):
            return None
        if conversation.contact_number and self.repo.get_lead_by_phone(user_id, conversation.contact_number):
            return None

        analysis = calculate_intent_score(text, len(user_messages))
        logger.info(
            f"Lead score {analysis.score}, confidence {analysis.confidence}",
            extra={"conversation_id": str(conversation.conversation_id)},
        )

        if analysis.score >= MIN_SCORE and analysis.confidence >= MIN_CONFIDENCE:
            return LeadSuggestion(
                confidence=analysis.confidence,
                reason=analysis.reason,
                keywords=analysis.matched_keywords,
            )
        return None

    def create_suggested_lead(
        self,
        user_id: UUID,
        conversation: ConversationContext,
        agent_id: UUID | None,
        suggestion: LeadSuggestion,
    ) -> Lead:
        """Persist a suggested lead and notify the tenant. Joins the caller's transaction."""
        name = conversation.display_name("Contact WhatsApp")
        lead = Lead(
            user_id=user_id,
            name=name,
            phone=conversation.contact_number,
            source="whatsapp",
            status=LeadStatus.NEW.value,
            is_suggested=True,
            ai_confidence=suggestion.confidence,
            ai_reason=suggestion.reason,
            agent_id=agent_id,
            conversation_id=conversation.conversation_id,
            notes=f"Mots-clés détectés: {', '.join(suggestion.keywords[:5])}",
        )
        self.db.add(lead)
        self.db.flush()

        self.notifications.notify_new_lead(user_id, name, conversation.conversation_id)
        logger.info(f"Created suggested lead {lead.id}", extra={"conversation_id": str(conversation.conversation_id)})
        return lead

    def publish_lead_detected(self, lead: Lead) -> None:
        """Publish LEAD_DETECTED once the lead is committed."""
        self.publisher.publish(
            DomainEventType.LEAD_DETECTED,
            lead.user_id,
            LeadDetectedPayload(
                lead_id=lead.id,
                conversation_id=lead.conversation_id,
                agent_id=lead.agent_id,
                name=lead.name,
                phone=lead.phone,
                confidence=lead.ai_confidence or 0.0,
                reason=lead.ai_reason or "",
            ),
        )

    def validate_lead(self, lead_id: UUID, user_id: UUID) -> Lead:
        lead = self.repo.get_lead(lead_id, user_id)
        if not lead:
            raise LeadNotFoundError()
        lead.is_suggested = False
        lead.validated_at = utcnow()
        self.db.commit()
        return lead

    def reject_lead(self, lead_id: UUID, user_id: UUID) -> Lead:
        lead = self.repo.get_lead(lead_id, user_id)
        if not lead:
            raise LeadNotFoundError()
        lead.status = LeadStatus.REJECTED.value
        lead.is_suggested = False
        lead.rejected_at = utcnow()
        self.db.commit()
        return lead

    def create_lead_from_order(self, order: Order) -> Lead | None:
        """
        Make sure a validated order's customer appears in the CRM.

        Idempotent per conversation and per phone. Joins the caller's transaction.
        """
        if not order.conversation_id:
            return None

        existing = self.repo.get_lead_for_conversation(order.conversation_id)
        if existing:
            return existing
        if order.customer_phone:
            existing = self.repo.get_lead_by_phone(order.user_id, order.customer_phone)
            if existing:
                return existing

        lead = Lead(
            user_id=order.user_id,
            name=order.customer_name or "Contact",
            phone=order.customer_phone,
            source="whatsapp",
            status=LeadStatus.NEW.value,
            is_suggested=False,
            agent_id=order.agent_id,
            conversation_id=order.conversation_id,
            notes="Créé à partir de la commande validée",
        )
        self.db.add(lead)
        self.db.flush()
        logger.info(f"Created lead {lead.id} from validated order {order.id}")
        return lead

    def get_suggested_leads(self, user_id: UUID) -> list[Lead]:
        return self.repo.list_suggested_leads(user_id)

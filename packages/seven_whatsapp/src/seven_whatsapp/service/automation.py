"""
WhatsApp Automation Engine

Picks the automatic reply for a customer message when the AI is not needed
(or not affordable):
- Static reply for a plain greeting
- Acknowledgment when the customer asks for a human
- Fallback text when no AI reply could be produced
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum

from seven_commerce.detection.classifier import Classification

logger = logging.getLogger(__name__)


class ReplyIntent(str, Enum):
    GREETING = "greeting"
    HUMAN_REQUEST = "human_request"


class AutoReplyType(str, Enum):
    """Types of auto-replies."""

    GREETING = "greeting"
    HUMAN_REQUESTED = "human_requested"
    FALLBACK = "fallback"
    AI = "ai"


GREETING_KEYWORDS = [
    "bonjour",
    "salut",
    "bonsoir",
    "hello",
    "hi",
    "coucou",
    "bonne journée",
    "ça va",
]

HUMAN_REQUEST_KEYWORDS = [
    "parler à un humain",
    "conseiller",
    "responsable",
    "manager",
    "personne réelle",
    "pas un robot",
    "assistance humaine",
]

# A greeting followed by a short question ("salut, ça va ?") is still a greeting
SHORT_MESSAGE_WORDS = 4

DEFAULT_REPLIES: dict[AutoReplyType, str] = {
    AutoReplyType.GREETING: "Bonjour ! Comment puis-je vous aider aujourd'hui ?",
    AutoReplyType.HUMAN_REQUESTED: "Entendu ! Un conseiller va vous répondre très bientôt.",
    AutoReplyType.FALLBACK: (
        "Merci pour votre message ! 😊 Je suis {agent_name}. "
        "Notre équipe vous répondra très bientôt. "
        "En attendant, n'hésitez pas à me poser d'autres questions !"
    ),
}


@dataclass
class DetectionResult:
    """Result of keyword detection."""

    intent: ReplyIntent | None = None
    keyword: str | None = None


@dataclass
class AutoReply:
    """An auto-reply message to send."""

    reply_type: AutoReplyType
    text: str


class AutomationEngine:
    """Keyword rules for replies that do not need the AI."""

    def __init__(
        self,
        greeting_keywords: list[str] | None = None,
        human_request_keywords: list[str] | None = None,
        replies: dict[AutoReplyType, str] | None = None,
    ):
        self.greeting_keywords = greeting_keywords or GREETING_KEYWORDS
        self.human_request_keywords = human_request_keywords or HUMAN_REQUEST_KEYWORDS
        self.replies = {**DEFAULT_REPLIES, **(replies or {})}

    def _matches(self, text: str, keyword: str) -> bool:
        """Check if text matches keyword (word boundary aware)."""
        pattern = r"\b" + re.escape(keyword) + r"\b"
        return bool(re.search(pattern, text, re.IGNORECASE))

    def _find(self, text: str, keywords: list[str]) -> str | None:
        for keyword in keywords:
            if self._matches(text, keyword):
                return keyword
        return None

    def detect(
        self,
        text: str | None,
        classification: Classification | None = None,
        mentions_product: bool = False,
    ) -> DetectionResult:
        """
        Detect a reply intent.

        A greeting only counts when the message carries nothing else: no
        product, no purchase or delivery words and no real question.
        """
        if not text:
            return DetectionResult()
        lower = text.lower().strip()

        keyword = self._find(lower, self.human_request_keywords)
        if keyword:
            return DetectionResult(intent=ReplyIntent.HUMAN_REQUEST, keyword=keyword)

        keyword = self._find(lower, self.greeting_keywords)
        if not keyword or mentions_product:
            return DetectionResult()

        flags = classification or Classification()
        if flags.has_purchase_intent or flags.has_explicit_confirmation or flags.has_delivery_info:
            return DetectionResult()
        if flags.is_question and len(lower.split()) > SHORT_MESSAGE_WORDS:
            return DetectionResult()

        return DetectionResult(intent=ReplyIntent.GREETING, keyword=keyword)

    def get_auto_reply(self, reply_type: AutoReplyType, agent_name: str | None = None) -> AutoReply:
        text = self.replies[reply_type].replace("{agent_name}", agent_name or "votre assistant")
        return AutoReply(reply_type=reply_type, text=text)

    def static_reply(self, detection: DetectionResult) -> AutoReply | None:
        """Reply that needs no AI call, if any."""
        if detection.intent == ReplyIntent.GREETING:
            return self.get_auto_reply(AutoReplyType.GREETING)
        if detection.intent == ReplyIntent.HUMAN_REQUEST:
            return self.get_auto_reply(AutoReplyType.HUMAN_REQUESTED)
        return None

    def fallback_reply(self, agent_name: str | None) -> AutoReply:
        return self.get_auto_reply(AutoReplyType.FALLBACK, agent_name)

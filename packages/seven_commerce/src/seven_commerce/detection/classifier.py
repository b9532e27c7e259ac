"""
Message Classifier

Keyword classification of an incoming customer message. A refusal or a
question blocks order creation even when purchase words are present:
"Non je veux connaître le prix" must not become an order.
"""

import re
from dataclasses import dataclass

from seven_commerce.detection.keywords import (
    DELIVERY_WORDS,
    EXPLICIT_CONFIRMATION_KEYWORDS,
    PURCHASE_KEYWORDS,
    QUESTION_KEYWORDS,
    REFUSAL_KEYWORDS,
)

_DELIVERY_NUMBER_PATTERNS = [
    re.compile(r"\b\d{10}\b"),
    re.compile(r"\b\d{8}\b"),
]

_CONFIRMATION_PATTERNS = [
    re.compile(r"^(oui|yes|ok|d'accord|je confirme|c'est bon|parfait|super)", re.IGNORECASE),
    re.compile(r"je (confirme|valide|prends|veux)", re.IGNORECASE),
    re.compile(r"^(ok|oui)\s*(pour|je)", re.IGNORECASE),
]


@dataclass
class Classification:
    """Flags computed for one message."""

    is_refusal: bool = False
    is_question: bool = False
    has_purchase_intent: bool = False
    has_explicit_confirmation: bool = False
    has_delivery_info: bool = False

    @property
    def blocks_order(self) -> bool:
        return self.is_refusal or self.is_question


class MessageClassifier:
    """Stateless keyword classifier."""

    def __init__(self):
        self._refusal_patterns = [
            (kw, re.compile(rf"\b{re.escape(kw)}\b")) for kw in REFUSAL_KEYWORDS
        ]

    def classify(self, text: str) -> Classification:
        lower = (text or "").lower()
        trimmed = lower.strip()

        return Classification(
            is_refusal=self._is_refusal(lower, trimmed),
            is_question=any(kw in lower for kw in QUESTION_KEYWORDS),
            has_purchase_intent=any(kw in lower for kw in PURCHASE_KEYWORDS),
            has_explicit_confirmation=any(kw in lower for kw in EXPLICIT_CONFIRMATION_KEYWORDS),
            has_delivery_info=self.has_delivery_info(lower),
        )

    def _is_refusal(self, lower: str, trimmed: str) -> bool:
        for keyword, pattern in self._refusal_patterns:
            if trimmed.startswith(keyword) or pattern.search(lower):
                return True
        return False

    @staticmethod
    def has_delivery_info(text: str) -> bool:
        """Phone-like digit runs or an address word."""
        lower = text.lower()
        if any(p.search(lower) for p in _DELIVERY_NUMBER_PATTERNS):
            return True
        return any(word in lower for word in DELIVERY_WORDS)

    @staticmethod
    def is_order_confirmation(text: str) -> bool:
        """True when the message reads like "oui", "je confirme", "ok pour ..."."""
        trimmed = (text or "").strip()
        return any(p.search(trimmed) for p in _CONFIRMATION_PATTERNS)

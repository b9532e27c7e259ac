"""
Tests for the automation engine.
"""

import pytest

from seven_commerce.detection.classifier import MessageClassifier
from seven_whatsapp.service.automation import AutomationEngine, AutoReplyType, ReplyIntent


class TestAutomationEngine:
    """Tests for keyword detection and static replies."""

    @pytest.fixture
    def engine(self):
        return AutomationEngine()

    @pytest.fixture
    def classify(self):
        return MessageClassifier().classify

    def test_plain_greeting(self, engine, classify):
        """A bare greeting gets the static reply."""
        result = engine.detect("Bonjour", classify("Bonjour"))
        assert result.intent == ReplyIntent.GREETING
        assert result.keyword == "bonjour"

    def test_short_greeting_question(self, engine, classify):
        """'Salut, ça va ?' is a question but still a greeting."""
        text = "Salut, ça va ?"
        assert engine.detect(text, classify(text)).intent == ReplyIntent.GREETING

    def test_greeting_with_real_question(self, engine, classify):
        text = "Bonjour, quel est le prix de votre meilleur téléphone ?"
        assert engine.detect(text, classify(text)).intent is None

    def test_greeting_with_purchase_intent(self, engine, classify):
        text = "Bonjour je voudrais un téléphone"
        assert engine.detect(text, classify(text)).intent is None

    def test_greeting_mentioning_product(self, engine, classify):
        text = "Bonjour, Samsung S21"
        assert engine.detect(text, classify(text), mentions_product=True).intent is None

    def test_word_boundaries(self, engine):
        """'hi' must not match inside 'chic'."""
        assert engine.detect("Une robe chic").intent is None

    def test_human_request(self, engine):
        result = engine.detect("Je veux parler à un conseiller svp")
        assert result.intent == ReplyIntent.HUMAN_REQUEST
        assert result.keyword == "conseiller"

    def test_human_request_beats_greeting(self, engine):
        result = engine.detect("Bonjour, je veux parler à un humain, pas un robot")
        assert result.intent == ReplyIntent.HUMAN_REQUEST

    def test_empty_text(self, engine):
        assert engine.detect("").intent is None
        assert engine.detect(None).intent is None

    def test_static_replies(self, engine, classify):
        greeting = engine.static_reply(engine.detect("Coucou", classify("Coucou")))
        assert greeting.reply_type == AutoReplyType.GREETING
        assert greeting.text == "Bonjour ! Comment puis-je vous aider aujourd'hui ?"

        human = engine.static_reply(engine.detect("assistance humaine"))
        assert human.reply_type == AutoReplyType.HUMAN_REQUESTED

        assert engine.static_reply(engine.detect("Le prix du T-shirt")) is None

    def test_fallback_uses_agent_name(self, engine):
        reply = engine.fallback_reply("Awa Assistant")
        assert reply.reply_type == AutoReplyType.FALLBACK
        assert "Je suis Awa Assistant." in reply.text

    def test_fallback_without_name(self, engine):
        assert "Je suis votre assistant." in engine.fallback_reply(None).text

    def test_custom_replies(self):
        engine = AutomationEngine(replies={AutoReplyType.GREETING: "Salut ! Que cherchez-vous ?"})
        reply = engine.get_auto_reply(AutoReplyType.GREETING)
        assert reply.text == "Salut ! Que cherchez-vous ?"

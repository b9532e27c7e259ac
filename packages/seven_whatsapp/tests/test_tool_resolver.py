"""
Tests for tool resolution and provider construction.
"""

import asyncio

import pytest
from cryptography.fernet import Fernet

from sevencore.crypto import encrypt_secret
from sevencore.errors import ConfigurationError
from seven_whatsapp.persistence.models import Tool
from seven_whatsapp.providers.evolution import EvolutionWhatsAppProvider
from seven_whatsapp.providers.stub import StubWhatsAppProvider
from seven_whatsapp.routing.tool_resolver import ToolResolver


@pytest.fixture
def key():
    return Fernet.generate_key().decode()


@pytest.fixture
def evolution_tool(db, user, key):
    tool = Tool(
        user_id=user.id,
        provider="evolution",
        instance_name="awa-evolution",
        api_url="https://evolution.test/",
        api_key_encrypted=encrypt_secret("evo-secret", key),
    )
    db.add(tool)
    db.commit()
    return tool


class TestResolve:
    def test_by_instance_name(self, db, tool):
        assert ToolResolver(db).resolve_from_instance_name("boutique-awa").id == tool.id

    def test_unknown_instance(self, db, tool):
        assert ToolResolver(db).resolve_from_instance_name("inconnue") is None

    def test_from_webhook_payload(self, db, tool):
        payload = {"event": "messages.upsert", "instance": "boutique-awa", "data": {}}
        assert ToolResolver(db).resolve_from_webhook_payload(payload).id == tool.id

    def test_payload_without_instance(self, db, tool):
        assert ToolResolver(db).resolve_from_webhook_payload({"event": "messages.upsert"}) is None


class TestBuildProvider:
    def test_stub(self, db, tool):
        provider = ToolResolver(db).build_provider(tool)

        assert isinstance(provider, StubWhatsAppProvider)
        assert provider.instance_name == "boutique-awa"

    def test_evolution_decrypts_key(self, db, evolution_tool, key):
        resolver = ToolResolver(db, encryption_key=key)

        assert resolver.get_api_key(evolution_tool) == "evo-secret"

        provider = resolver.build_provider(evolution_tool)
        assert isinstance(provider, EvolutionWhatsAppProvider)
        assert provider.api_url == "https://evolution.test"
        assert provider.api_key == "evo-secret"
        assert provider.instance_name == "awa-evolution"
        asyncio.run(provider.close())

    def test_wrong_key(self, db, evolution_tool):
        resolver = ToolResolver(db, encryption_key=Fernet.generate_key().decode())

        with pytest.raises(ConfigurationError):
            resolver.get_api_key(evolution_tool)

    def test_evolution_without_instance(self, db, user):
        tool = Tool(user_id=user.id, provider="evolution")
        db.add(tool)
        db.commit()

        with pytest.raises(ConfigurationError):
            ToolResolver(db).build_provider(tool)

    def test_unknown_provider(self, db, user):
        tool = Tool(user_id=user.id, provider="twilio", instance_name="awa-twilio")
        db.add(tool)
        db.commit()

        with pytest.raises(ConfigurationError) as exc:
            ToolResolver(db).build_provider(tool)
        assert exc.value.details == {"tool_id": str(tool.id)}

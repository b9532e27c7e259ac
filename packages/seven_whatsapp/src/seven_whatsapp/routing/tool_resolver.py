"""
Tool Resolver

Resolves the tool (a tenant's WhatsApp connection) from incoming webhooks
using the Evolution instance name, and builds its provider.
"""

import logging
from typing import Any

from sqlalchemy.orm import Session

from sevencore.crypto import decrypt_secret
from sevencore.errors import ConfigurationError
from sevencore.settings import get_settings
from seven_whatsapp.persistence.models import Tool
from seven_whatsapp.persistence.repo import WhatsAppRepository
from seven_whatsapp.providers.base import WhatsAppProvider
from seven_whatsapp.providers.evolution import EvolutionWhatsAppProvider
from seven_whatsapp.providers.evolution.webhook import extract_instance_name
from seven_whatsapp.providers.stub import StubWhatsAppProvider

logger = logging.getLogger(__name__)


class ToolResolver:
    """
    Resolves tools from WhatsApp webhook data.

    Uses the instance name to look up the tool.
    """

    def __init__(self, db: Session, encryption_key: str | None = None):
        self.db = db
        self.repo = WhatsAppRepository(db)
        self.encryption_key = encryption_key

    def resolve_from_instance_name(self, instance_name: str) -> Tool | None:
        """
        Resolve tool from Evolution API instance name.

        Args:
            instance_name: Evolution API instance name from webhook

        Returns:
            Tool if found, None otherwise
        """
        tool = self.repo.get_tool_by_instance_name(instance_name)

        if tool:
            logger.debug(
                "Resolved tool from instance_name",
                extra={"instance_name": instance_name, "tool_id": str(tool.id)},
            )
        else:
            logger.warning(f"No tool found for instance_name: {instance_name}")

        return tool

    def resolve_from_webhook_payload(self, payload: dict[str, Any]) -> Tool | None:
        instance_name = extract_instance_name(payload)
        if not instance_name:
            logger.warning("Webhook payload has no instance name")
            return None
        return self.resolve_from_instance_name(instance_name)

    def get_api_key(self, tool: Tool) -> str:
        """Decrypted Evolution API key, falling back to the global key."""
        if tool.api_key_encrypted:
            return decrypt_secret(tool.api_key_encrypted, self.encryption_key)
        return get_settings().EVOLUTION_API_KEY or ""

    def build_provider(self, tool: Tool) -> WhatsAppProvider:
        """Provider instance for a tool."""
        if tool.provider == "evolution":
            settings = get_settings()
            if not tool.instance_name:
                raise ConfigurationError(f"Tool {tool.id} has no Evolution instance name")
            return EvolutionWhatsAppProvider(
                api_url=tool.api_url or settings.EVOLUTION_API_URL,
                api_key=self.get_api_key(tool),
                instance_name=tool.instance_name,
            )
        if tool.provider == "stub":
            return StubWhatsAppProvider(instance_name=tool.instance_name or "stub")

        raise ConfigurationError(
            f"Unknown WhatsApp provider: {tool.provider}",
            details={"tool_id": str(tool.id)},
        )

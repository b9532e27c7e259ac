"""Evolution API WhatsApp provider."""

from seven_whatsapp.providers.evolution.client import EvolutionWhatsAppProvider
from seven_whatsapp.providers.evolution.webhook import parse_evolution_webhook, validate_api_key

__all__ = [
    "EvolutionWhatsAppProvider",
    "parse_evolution_webhook",
    "validate_api_key",
]

"""Stub WhatsApp provider for development and tests."""

from seven_whatsapp.providers.stub.client import StubWhatsAppProvider

__all__ = ["StubWhatsAppProvider"]

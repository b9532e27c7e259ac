"""
Symmetric encryption for stored credentials (tool API keys).

Uses Fernet with WHATSAPP_ENCRYPTION_KEY. Without a key, values are stored
in clear text, which is only acceptable for local development.
"""

import logging

from cryptography.fernet import Fernet, InvalidToken

from sevencore.errors import ConfigurationError
from sevencore.settings import get_settings

logger = logging.getLogger(__name__)


def _get_fernet(key: str | None) -> Fernet | None:
    key = key if key is not None else get_settings().WHATSAPP_ENCRYPTION_KEY
    if not key:
        return None
    return Fernet(key.encode())


def encrypt_secret(value: str, key: str | None = None) -> str:
    """Encrypt a secret for storage."""
    fernet = _get_fernet(key)
    if fernet is None:
        logger.warning("WHATSAPP_ENCRYPTION_KEY not set, storing secret unencrypted")
        return value
    return fernet.encrypt(value.encode()).decode()


def decrypt_secret(value: str, key: str | None = None) -> str:
    """Decrypt a stored secret."""
    fernet = _get_fernet(key)
    if fernet is None:
        return value
    try:
        return fernet.decrypt(value.encode()).decode()
    except InvalidToken as e:
        raise ConfigurationError("Stored secret cannot be decrypted with the configured key") from e

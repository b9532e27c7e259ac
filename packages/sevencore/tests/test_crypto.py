"""
Tests for secret encryption.
"""

import pytest
from cryptography.fernet import Fernet

from sevencore.crypto import decrypt_secret, encrypt_secret
from sevencore.errors import ConfigurationError


class TestSecrets:
    def test_encrypted_value_differs_and_decrypts(self):
        key = Fernet.generate_key().decode()

        stored = encrypt_secret("sk-live-123", key=key)

        assert stored != "sk-live-123"
        assert decrypt_secret(stored, key=key) == "sk-live-123"

    def test_wrong_key(self):
        stored = encrypt_secret("sk-live-123", key=Fernet.generate_key().decode())

        with pytest.raises(ConfigurationError):
            decrypt_secret(stored, key=Fernet.generate_key().decode())

    def test_empty_key_stores_clear_text(self):
        assert encrypt_secret("sk-live-123", key="") == "sk-live-123"
        assert decrypt_secret("sk-live-123", key="") == "sk-live-123"

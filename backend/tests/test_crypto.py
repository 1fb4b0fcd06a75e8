"""Unit tests for TOTP secret encryption at rest."""

from unittest.mock import patch

from cryptography.fernet import Fernet

from auth_service.config import settings
from auth_service.services.crypto import decrypt_value, encrypt_value


def test_roundtrip_with_key():
    with patch.object(settings, "encryption_key", Fernet.generate_key().decode()):
        encrypted = encrypt_value("JBSWY3DPEHPK3PXP")
        assert encrypted != "JBSWY3DPEHPK3PXP"
        assert decrypt_value(encrypted) == "JBSWY3DPEHPK3PXP"


def test_plaintext_without_key():
    with patch.object(settings, "encryption_key", ""):
        assert encrypt_value("JBSWY3DPEHPK3PXP") == "JBSWY3DPEHPK3PXP"
        assert decrypt_value("JBSWY3DPEHPK3PXP") == "JBSWY3DPEHPK3PXP"


def test_empty_values_are_none():
    assert encrypt_value(None) is None
    assert encrypt_value("") is None
    assert decrypt_value(None) is None


def test_wrong_key_gives_none():
    with patch.object(settings, "encryption_key", Fernet.generate_key().decode()):
        encrypted = encrypt_value("JBSWY3DPEHPK3PXP")
    with patch.object(settings, "encryption_key", Fernet.generate_key().decode()):
        assert decrypt_value(encrypted) is None

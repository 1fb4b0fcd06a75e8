"""Encryption at rest for TOTP secrets (Fernet)."""

from cryptography.fernet import Fernet, InvalidToken
from auth_service.config import settings


def get_fernet() -> Fernet | None:
    if not settings.encryption_key:
        return None
    key = settings.encryption_key.encode() if isinstance(settings.encryption_key, str) else settings.encryption_key
    return Fernet(key)


def encrypt_value(value: str | None) -> str | None:
    if not value:
        return None
    f = get_fernet()
    if f is None:
        return value  # dev: no key → store plaintext
    return f.encrypt(value.encode()).decode()


def decrypt_value(encrypted: str | None) -> str | None:
    if not encrypted:
        return None
    f = get_fernet()
    if f is None:
        return encrypted  # dev: no key
    try:
        return f.decrypt(encrypted.encode()).decode()
    except InvalidToken:
        # Key rotated or value stored before a key was configured
        return None

"""TOTP (RFC 6238) enrollment and verification for two-factor login."""

from __future__ import annotations

from dataclasses import dataclass

import pyotp

from auth_service.config import settings

TOTP_DIGITS = 6
TOTP_INTERVAL = 30
# Accept the previous and next 30 s step for clock drift
TOTP_VALID_WINDOW = 1


@dataclass(frozen=True)
class Enrollment:
    secret: str
    enrollment_uri: str


def generate_secret(account_name: str) -> Enrollment:
    """New base32 secret plus the otpauth:// URI an authenticator app can scan."""
    secret = pyotp.random_base32()
    uri = pyotp.TOTP(secret, digits=TOTP_DIGITS, interval=TOTP_INTERVAL).provisioning_uri(
        name=account_name,
        issuer_name=settings.totp_issuer,
    )
    return Enrollment(secret=secret, enrollment_uri=uri)


def verify_code(secret: str, code: str) -> bool:
    code = (code or "").strip().replace(" ", "")
    if not secret or len(code) != TOTP_DIGITS or not code.isdigit():
        return False
    try:
        totp = pyotp.TOTP(secret, digits=TOTP_DIGITS, interval=TOTP_INTERVAL)
        return totp.verify(code, valid_window=TOTP_VALID_WINDOW)
    except (ValueError, TypeError):
        # Secret is not valid base32
        return False


def current_code(secret: str) -> str:
    """Code for the current time step (used by tests and tooling)."""
    return pyotp.TOTP(secret, digits=TOTP_DIGITS, interval=TOTP_INTERVAL).now()

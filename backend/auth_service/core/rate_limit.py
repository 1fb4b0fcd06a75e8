"""
Request rate limiting (slowapi) for credential endpoints.
Per-client-address limits on login, two-factor and forgot-password to slow brute force.
"""

from __future__ import annotations

from slowapi import Limiter
from slowapi.util import get_remote_address

from auth_service.config import settings

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.default_rate_limit],
    enabled=settings.rate_limit_enabled,
)


def login_limit() -> str:
    return settings.login_rate_limit


def two_factor_limit() -> str:
    return settings.two_factor_rate_limit


def forgot_limit() -> str:
    return settings.forgot_rate_limit

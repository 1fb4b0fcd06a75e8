"""Error taxonomy for the session service.

Every error is an expected outcome that the transport translates into a
response (see ``auth_error_handler`` in ``main.py``); none of them should crash
the process. Unexpected collaborator failures are wrapped in ``DependencyError``
so the original cause stays attached via ``raise ... from``.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base error. ``status_code`` and ``detail`` are used by the HTTP layer."""

    status_code: int = 400
    default_detail: str = "Request failed"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(AuthError):
    """Malformed or mismatched input."""

    status_code = 400
    default_detail = "Invalid input"


class ConflictError(AuthError):
    """Uniqueness violation (e.g. email already registered)."""

    status_code = 409
    default_detail = "Already exists"


class NotFoundError(AuthError):
    status_code = 404
    default_detail = "Not found"


class ExpiredError(NotFoundError):
    """Reset token past its validity horizon."""

    default_detail = "Token expired"


class InvalidCredentials(AuthError):
    """Password or one-time code mismatch."""

    status_code = 401
    default_detail = "Invalid credentials"


class Unauthenticated(AuthError):
    """Missing, invalid, expired or revoked token."""

    status_code = 401
    default_detail = "Unauthenticated"


class InvalidToken(AuthError):
    """Raised by the token issuer on bad signature, wrong type or expiry."""

    status_code = 401
    default_detail = "Invalid or expired token"


class DependencyError(AuthError):
    """Storage or mail collaborator failed."""

    status_code = 503
    default_detail = "Service temporarily unavailable"

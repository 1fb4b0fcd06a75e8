"""
Session orchestration: register, login, two-factor completion, refresh,
logout and the password reset flow.

Two-factor is mandatory: ``login`` never issues tokens. A user without an
enrolled authenticator gets a fresh secret back from ``login`` and enrolls it
on the first successful ``complete_two_factor``.

Refresh tokens are rotated on every ``refresh`` when REFRESH_TOKEN_ROTATION is
on (default). Presenting a token that was already rotated is treated as theft:
the whole token family is revoked.
"""

from __future__ import annotations

import functools
import hmac
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from auth_service.config import settings
from auth_service.core.auth import (
    burn_password_check,
    create_access_token,
    create_refresh_token,
    hash_password,
    new_family_id,
    verify_access_token,
    verify_password,
    verify_refresh_token,
)
from auth_service.core.errors import (
    AuthError,
    ConflictError,
    DependencyError,
    InvalidCredentials,
    InvalidToken,
    NotFoundError,
    Unauthenticated,
    ValidationError,
)
from auth_service.core.totp import generate_secret, verify_code
from auth_service.models.user import User
from auth_service.schemas.auth import LoginResult, MessageResponse, TokenPair, UserPublic
from auth_service.services.audit import log_event
from auth_service.services.crypto import decrypt_value, encrypt_value
from auth_service.services.mailer import Mailer, get_mailer, password_reset_email
from auth_service.services.refresh_tokens import (
    REVOKED_LOGOUT,
    REVOKED_PASSWORD_RESET,
    REVOKED_ROTATED,
    RefreshTokenStore,
)
from auth_service.services.reset_tokens import ResetTokenStore
from auth_service.services.user_store import UserStore, normalize_email

logger = logging.getLogger(__name__)

FORGOT_PASSWORD_MESSAGE = "If an account exists for that email, a reset link has been sent."


def _storage_errors(fn):
    """Surface unexpected database failures as DependencyError instead of a generic 500."""

    @functools.wraps(fn)
    async def wrapper(self, *args, **kwargs):
        try:
            return await fn(self, *args, **kwargs)
        except SQLAlchemyError as e:
            logger.exception("Storage failure in %s", fn.__name__)
            raise DependencyError("Storage unavailable") from e

    return wrapper


class SessionService:
    def __init__(
        self,
        session: AsyncSession,
        mailer: Mailer | None = None,
        ip_address: str | None = None,
    ):
        self.session = session
        self.users = UserStore(session)
        self.refresh_tokens = RefreshTokenStore(session)
        self.reset_tokens = ResetTokenStore(session)
        self.mailer = mailer or get_mailer()
        self.ip_address = ip_address

    async def _audit(self, action: str, user_id: int | None, outcome: str = "success", **details) -> None:
        await log_event(
            self.session,
            user_id,
            action,
            outcome=outcome,
            details=details or None,
            ip_address=self.ip_address,
        )

    async def _reject(self, error: AuthError, action: str, user_id: int | None = None, **details) -> None:
        """Audit a failure, commit it (and any revocations made so far), then raise."""
        await self._audit(action, user_id, outcome="failure", reason=type(error).__name__, **details)
        await self.session.commit()
        raise error

    async def _stored_secret(self, user: User, action: str) -> str | None:
        """Decrypted enrolled secret, None if not enrolled. A stored value that will not decrypt is a key fault."""
        if not user.tfa_secret:
            return None
        secret = decrypt_value(user.tfa_secret)
        if secret is None:
            logger.error("TOTP secret of user %s cannot be decrypted; check ENCRYPTION_KEY", user.id)
            await self._reject(DependencyError("Two-factor secret unavailable"), action, user.id)
        return secret

    async def _issue_session(self, user_id: int, family_id: str) -> TokenPair:
        refresh_token, expires_at = create_refresh_token(user_id, family_id)
        await self.refresh_tokens.save(user_id, refresh_token, expires_at, family_id)
        return TokenPair(
            access_token=create_access_token(user_id),
            refresh_token=refresh_token,
            expires_in=settings.access_token_expire_seconds,
        )

    @_storage_errors
    async def register(
        self,
        first_name: str,
        last_name: str,
        email: str,
        password: str,
        password_confirm: str,
    ) -> UserPublic:
        if password != password_confirm:
            raise ValidationError("Passwords do not match")
        email = normalize_email(email)
        if not email or not password:
            raise ValidationError("Email and password required")
        if await self.users.find_by_email(email) is not None:
            await self._reject(ConflictError("Email already registered"), "register")
        try:
            user = await self.users.save(
                User(
                    first_name=first_name,
                    last_name=last_name,
                    email=email,
                    password_hash=hash_password(password),
                )
            )
        except ConflictError as e:
            await self._reject(e, "register")
        await self._audit("register", user.id)
        return UserPublic.model_validate(user)

    @_storage_errors
    async def login(self, email: str, password: str) -> LoginResult:
        user = await self.users.find_by_email(email)
        if user is None:
            burn_password_check(password)
            await self._reject(NotFoundError("User not found"), "login")
        if not verify_password(password, user.password_hash):
            await self._reject(InvalidCredentials(), "login", user.id)

        if await self._stored_secret(user, "login"):
            await self._audit("login", user.id, stage="two_factor")
            return LoginResult(user_id=user.id)

        enrollment = generate_secret(user.email)
        # Only the latest handed-out secret can be enrolled
        await self.users.update(user.id, tfa_pending_secret=encrypt_value(enrollment.secret))
        await self._audit("login", user.id, stage="enroll")
        return LoginResult(
            user_id=user.id,
            secret=enrollment.secret,
            enrollment_uri=enrollment.enrollment_uri,
        )

    @_storage_errors
    async def complete_two_factor(self, user_id: int, code: str, secret: str | None = None) -> TokenPair:
        user = await self.users.find_by_id(user_id)
        if user is None:
            await self._reject(InvalidCredentials(), "two_factor")

        stored = await self._stored_secret(user, "two_factor")
        enrolling = not stored
        if enrolling:
            pending = decrypt_value(user.tfa_pending_secret)
            if not secret or not pending or not hmac.compare_digest(secret, pending):
                await self._reject(InvalidCredentials(), "two_factor", user.id, stage="enroll")
            effective = secret
        else:
            effective = stored

        if not verify_code(effective, code):
            await self._reject(InvalidCredentials(), "two_factor", user.id)

        if enrolling:
            if not await self.users.enroll_tfa_secret(user.id, encrypt_value(effective)):
                # Another request enrolled a different secret first
                await self._reject(InvalidCredentials(), "two_factor", user.id, stage="enroll")
            await self._audit("tfa_enroll", user.id)

        tokens = await self._issue_session(user.id, new_family_id())
        await self._audit("two_factor", user.id)
        return tokens

    @_storage_errors
    async def refresh(self, refresh_token: str | None) -> TokenPair:
        if not refresh_token:
            raise Unauthenticated("Refresh token required")
        try:
            claims = verify_refresh_token(refresh_token)
        except InvalidToken as e:
            raise Unauthenticated("Invalid or expired refresh token") from e

        if not settings.refresh_token_rotation:
            if not await self.refresh_tokens.touch(refresh_token, claims.user_id):
                raise Unauthenticated("Invalid or expired refresh token")
            return TokenPair(
                access_token=create_access_token(claims.user_id),
                expires_in=settings.access_token_expire_seconds,
            )

        family_id = await self.refresh_tokens.rotate(refresh_token, claims.user_id)
        if family_id is None:
            row = await self.refresh_tokens.find_by_value(refresh_token)
            if row is not None and row.revoked_reason == REVOKED_ROTATED:
                revoked = await self.refresh_tokens.revoke_family(row.family_id)
                logger.warning(
                    "Refresh token reuse for user %s; revoked %s tokens in family %s",
                    row.user_id,
                    revoked,
                    row.family_id,
                )
                await self._reject(
                    Unauthenticated("Refresh token reuse detected"),
                    "refresh_reuse",
                    row.user_id,
                    family_id=row.family_id,
                    revoked=revoked,
                )
            raise Unauthenticated("Invalid or expired refresh token")

        return await self._issue_session(claims.user_id, family_id)

    @_storage_errors
    async def logout(self, refresh_token: str | None) -> MessageResponse:
        if not refresh_token:
            raise Unauthenticated("Refresh token required")
        try:
            claims = verify_refresh_token(refresh_token)
        except InvalidToken as e:
            raise Unauthenticated("Invalid or expired refresh token") from e
        revoked = await self.refresh_tokens.revoke_all_for_user(claims.user_id, REVOKED_LOGOUT)
        await self._audit("logout", claims.user_id, revoked=revoked)
        return MessageResponse(message="Logged out")

    @_storage_errors
    async def forgot_password(self, email: str) -> MessageResponse:
        user = await self.users.find_by_email(email)
        if user is None:
            logger.info("Password reset requested for unknown email")
            return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)

        token = await self.reset_tokens.issue(user.email)
        await self._audit("password_reset_request", user.id)
        # Token must be durable before the link leaves the building
        await self.session.commit()
        subject, html = password_reset_email(token)
        await self.mailer.send(user.email, subject, html)
        return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)

    @_storage_errors
    async def reset_password(self, token: str, password: str, password_confirm: str) -> MessageResponse:
        if password != password_confirm:
            raise ValidationError("Passwords do not match")
        if not password:
            raise ValidationError("Password required")
        email = await self.reset_tokens.redeem(token)
        user = await self.users.find_by_email(email)
        if user is None:
            raise NotFoundError("User not found")
        await self.users.update(user.id, password_hash=hash_password(password))
        revoked = await self.refresh_tokens.revoke_all_for_user(user.id, REVOKED_PASSWORD_RESET)
        await self._audit("password_reset", user.id, revoked=revoked)
        return MessageResponse(message="Password updated")

    @_storage_errors
    async def current_user(self, access_token: str | None) -> UserPublic:
        if not access_token:
            raise Unauthenticated("Not authenticated")
        try:
            user_id = verify_access_token(access_token)
        except InvalidToken as e:
            raise Unauthenticated("Invalid or expired token") from e
        user = await self.users.find_by_id(user_id)
        if user is None:
            raise Unauthenticated("User not found")
        return UserPublic.model_validate(user)

"""Password reset tokens: issue an unguessable single-use token, redeem it once."""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from auth_service.config import settings
from auth_service.core.auth import hash_token
from auth_service.core.errors import ExpiredError, NotFoundError
from auth_service.models.reset_token import ResetToken

RESET_TOKEN_BYTES = 32  # 256 bits of entropy


class ResetTokenStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def issue(self, email: str) -> str:
        """Persist a new reset token for email and return the plain value (only the hash is stored)."""
        token = secrets.token_urlsafe(RESET_TOKEN_BYTES)
        now = datetime.now(timezone.utc)
        self.session.add(
            ResetToken(
                email=email,
                token_hash=hash_token(token),
                created_at=now,
                expires_at=now + timedelta(minutes=settings.reset_token_expire_minutes),
            )
        )
        await self.session.flush()
        return token

    async def redeem(self, token: str) -> str:
        """
        Mark the token used and return its email.
        Raises NotFoundError if unknown or already used, ExpiredError if past its horizon.
        """
        token_hash = hash_token(token or "")
        now = datetime.now(timezone.utc)
        result = await self.session.execute(
            update(ResetToken)
            .where(
                ResetToken.token_hash == token_hash,
                ResetToken.used_at.is_(None),
                ResetToken.expires_at > now,
            )
            .values(used_at=now)
            .returning(ResetToken.email)
            .execution_options(synchronize_session=False)
        )
        email = result.scalar_one_or_none()
        if email is not None:
            return email

        r = await self.session.execute(select(ResetToken.used_at).where(ResetToken.token_hash == token_hash))
        row = r.one_or_none()
        if row is None or row.used_at is not None:
            raise NotFoundError("Token not found")
        raise ExpiredError("Token expired")

"""
Refresh token persistence: save, look up, rotate and revoke.

Token values are stored as SHA-256 hashes. Every trust decision is a single
conditional UPDATE (``revoked_at IS NULL AND expires_at > now``) so two
instances racing on the same token cannot both win.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from auth_service.core.auth import hash_token
from auth_service.models.refresh_token import RefreshToken

logger = logging.getLogger(__name__)

REVOKED_ROTATED = "rotated"
REVOKED_LOGOUT = "logout"
REVOKED_REUSE = "reuse_detected"
REVOKED_PASSWORD_RESET = "password_reset"


def _active(token_hash: str, now: datetime):
    return (
        RefreshToken.token_hash == token_hash,
        RefreshToken.revoked_at.is_(None),
        RefreshToken.expires_at > now,
    )


class RefreshTokenStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def save(self, user_id: int, token_value: str, expires_at: datetime, family_id: str) -> RefreshToken:
        row = RefreshToken(
            user_id=user_id,
            token_hash=hash_token(token_value),
            family_id=family_id,
            expires_at=expires_at,
        )
        self.session.add(row)
        await self.session.flush()
        return row

    async def find_active(self, token_value: str) -> RefreshToken | None:
        now = datetime.now(timezone.utc)
        r = await self.session.execute(
            select(RefreshToken)
            .where(*_active(hash_token(token_value), now))
            .execution_options(populate_existing=True)
        )
        return r.scalar_one_or_none()

    async def find_by_value(self, token_value: str) -> RefreshToken | None:
        """Any row for this value, revoked or not. Only used to classify a failed rotation."""
        r = await self.session.execute(
            select(RefreshToken)
            .where(RefreshToken.token_hash == hash_token(token_value))
            .execution_options(populate_existing=True)
        )
        return r.scalar_one_or_none()

    async def rotate(self, token_value: str, user_id: int) -> str | None:
        """Revoke an active token as rotated and return its family id; None if it was not active."""
        now = datetime.now(timezone.utc)
        result = await self.session.execute(
            update(RefreshToken)
            .where(*_active(hash_token(token_value), now), RefreshToken.user_id == user_id)
            .values(revoked_at=now, revoked_reason=REVOKED_ROTATED, last_used_at=now)
            .returning(RefreshToken.family_id)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()

    async def touch(self, token_value: str, user_id: int) -> bool:
        """Mark an active token as used without rotating it. False if it was not active."""
        now = datetime.now(timezone.utc)
        result = await self.session.execute(
            update(RefreshToken)
            .where(*_active(hash_token(token_value), now), RefreshToken.user_id == user_id)
            .values(last_used_at=now)
            .returning(RefreshToken.id)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none() is not None

    async def revoke_all_for_user(self, user_id: int, reason: str = REVOKED_LOGOUT) -> int:
        now = datetime.now(timezone.utc)
        result = await self.session.execute(
            update(RefreshToken)
            .where(RefreshToken.user_id == user_id, RefreshToken.revoked_at.is_(None))
            .values(revoked_at=now, revoked_reason=reason)
            .execution_options(synchronize_session=False)
        )
        logger.debug("Revoked %s refresh tokens for user %s (%s)", result.rowcount, user_id, reason)
        return result.rowcount

    async def revoke_family(self, family_id: str, reason: str = REVOKED_REUSE) -> int:
        now = datetime.now(timezone.utc)
        result = await self.session.execute(
            update(RefreshToken)
            .where(RefreshToken.family_id == family_id, RefreshToken.revoked_at.is_(None))
            .values(revoked_at=now, revoked_reason=reason)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

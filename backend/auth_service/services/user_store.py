"""Credential store: durable user records looked up by id or email."""

from __future__ import annotations

from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from auth_service.core.errors import ConflictError
from auth_service.models.user import User


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class UserStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_email(self, email: str) -> User | None:
        r = await self.session.execute(
            select(User).where(User.email == normalize_email(email)).execution_options(populate_existing=True)
        )
        return r.scalar_one_or_none()

    async def find_by_id(self, user_id: int) -> User | None:
        r = await self.session.execute(
            select(User).where(User.id == user_id).execution_options(populate_existing=True)
        )
        return r.scalar_one_or_none()

    async def save(self, user: User) -> User:
        """Insert a new user. Raises ConflictError when the email is taken."""
        user.email = normalize_email(user.email)
        self.session.add(user)
        try:
            await self.session.flush()
        except IntegrityError as e:
            # Lost the race on the unique email index; the insert is the only pending write
            await self.session.rollback()
            raise ConflictError("Email already registered") from e
        await self.session.refresh(user)
        return user

    async def update(self, user_id: int, **values: Any) -> None:
        await self.session.execute(
            update(User).where(User.id == user_id).values(**values).execution_options(synchronize_session=False)
        )

    async def enroll_tfa_secret(self, user_id: int, encrypted_secret: str) -> bool:
        """Store the TOTP secret only if none is stored yet. Returns False if someone enrolled first."""
        result = await self.session.execute(
            update(User)
            .where(User.id == user_id, User.tfa_secret.is_(None))
            .values(tfa_secret=encrypted_secret, tfa_pending_secret=None)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

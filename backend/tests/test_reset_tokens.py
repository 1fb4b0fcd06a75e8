"""Tests for password reset tokens: single use, expiry, entropy."""

import asyncio
from unittest.mock import patch

import pytest
from sqlalchemy import select

from auth_service.config import settings
from auth_service.core.errors import ExpiredError, NotFoundError
from auth_service.db.session import async_session_maker
from auth_service.models.reset_token import ResetToken
from auth_service.services.reset_tokens import ResetTokenStore


@pytest.mark.asyncio
async def test_issue_stores_only_hash(db_session):
    store = ResetTokenStore(db_session)
    token = await store.issue("bob@test.com")
    assert len(token) >= 43  # 32 random bytes, url-safe base64
    r = await db_session.execute(select(ResetToken))
    row = r.scalar_one()
    assert row.email == "bob@test.com"
    assert row.token_hash != token
    assert row.used_at is None


@pytest.mark.asyncio
async def test_tokens_are_unique(db_session):
    store = ResetTokenStore(db_session)
    tokens = {await store.issue("bob@test.com") for _ in range(20)}
    assert len(tokens) == 20


@pytest.mark.asyncio
async def test_redeem_is_single_use(db_session):
    store = ResetTokenStore(db_session)
    token = await store.issue("bob@test.com")
    assert await store.redeem(token) == "bob@test.com"
    with pytest.raises(NotFoundError) as exc_info:
        await store.redeem(token)
    assert not isinstance(exc_info.value, ExpiredError)


@pytest.mark.asyncio
async def test_redeem_unknown_token(db_session):
    with pytest.raises(NotFoundError):
        await ResetTokenStore(db_session).redeem("does-not-exist")


@pytest.mark.asyncio
async def test_redeem_expired_token(db_session):
    store = ResetTokenStore(db_session)
    with patch.object(settings, "reset_token_expire_minutes", -1):
        token = await store.issue("bob@test.com")
    with pytest.raises(ExpiredError):
        await store.redeem(token)
    # ExpiredError is a NotFoundError for callers that only care about "unusable"
    with pytest.raises(NotFoundError):
        await store.redeem(token)


@pytest.mark.asyncio
async def test_concurrent_redeem_has_one_winner(clean_db):
    async with async_session_maker() as session:
        token = await ResetTokenStore(session).issue("bob@test.com")
        await session.commit()

    async def redeem():
        async with async_session_maker() as session:
            try:
                email = await ResetTokenStore(session).redeem(token)
            except NotFoundError:
                return None
            await session.commit()
            return email

    results = await asyncio.gather(redeem(), redeem())
    assert results.count("bob@test.com") == 1
    assert results.count(None) == 1

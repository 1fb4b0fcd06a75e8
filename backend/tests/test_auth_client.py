"""Tests for AuthClient: retry after refresh, shared in-flight refresh, behaviour after logout."""

import asyncio
from datetime import timedelta

import httpx
import pytest
from httpx import ASGITransport

from auth_service.core.auth import create_access_token
from auth_service.core.totp import current_code
from auth_service.main import app
from auth_service.services.auth_client import AuthClient


class FakeApi:
    """Mock server: accepts only the 'fresh' token and counts refresh calls."""

    def __init__(self, refresh_status: int = 200):
        self.refresh_status = refresh_status
        self.refresh_calls = 0

    async def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/auth/refresh"):
            self.refresh_calls += 1
            await asyncio.sleep(0.05)
            if self.refresh_status != 200:
                return httpx.Response(self.refresh_status, json={"detail": "nope"})
            return httpx.Response(200, json={"access_token": "fresh", "token_type": "bearer", "expires_in": 30})
        if request.headers.get("Authorization") == "Bearer fresh":
            return httpx.Response(200, json={"path": request.url.path})
        return httpx.Response(401, json={"detail": "Invalid or expired token"})


@pytest.mark.asyncio
async def test_concurrent_401s_share_one_refresh():
    api = FakeApi()
    async with AuthClient("http://api.test/api/v1/", transport=httpx.MockTransport(api.handler)) as client:
        client.access_token = "stale"
        responses = await asyncio.gather(*(client.get(f"items/{i}") for i in range(5)))
    assert [r.status_code for r in responses] == [200] * 5
    assert api.refresh_calls == 1
    assert client.access_token == "fresh"


@pytest.mark.asyncio
async def test_later_401_triggers_new_refresh():
    api = FakeApi()
    async with AuthClient("http://api.test/api/v1/", transport=httpx.MockTransport(api.handler)) as client:
        client.access_token = "stale"
        assert (await client.get("items")).status_code == 200
        client.access_token = "stale-again"
        assert (await client.get("items")).status_code == 200
    assert api.refresh_calls == 2


@pytest.mark.asyncio
async def test_failed_refresh_returns_the_401():
    api = FakeApi(refresh_status=401)
    async with AuthClient("http://api.test/api/v1/", transport=httpx.MockTransport(api.handler)) as client:
        client.access_token = "stale"
        responses = await asyncio.gather(client.get("a"), client.get("b"))
    assert [r.status_code for r in responses] == [401, 401]
    assert api.refresh_calls == 1
    assert client.access_token is None


@pytest.mark.asyncio
async def test_client_against_app(clean_db):
    async with AuthClient("http://test/api/v1/", transport=ASGITransport(app=app)) as client:
        resp = await client.post(
            "auth/register",
            json={
                "first_name": "Carol",
                "last_name": "Client",
                "email": "carol@example.com",
                "password": "pw123",
                "password_confirm": "pw123",
            },
        )
        assert resp.status_code == 201

        login = await client.login("carol@example.com", "pw123")
        secret = login["secret"]
        await client.two_factor(login["user_id"], current_code(secret), secret)
        assert (await client.get("auth/user")).json()["email"] == "carol@example.com"

        # Expired access token: the client refreshes through the cookie and retries
        client.access_token = create_access_token(login["user_id"], expires_delta=timedelta(seconds=-1))
        expired = client.access_token
        resp = await client.get("auth/user")
        assert resp.status_code == 200
        assert client.access_token != expired

        await client.logout()
        assert client.access_token is None
        resp = await client.get("auth/user")
        assert resp.status_code == 401
        assert client.access_token is None

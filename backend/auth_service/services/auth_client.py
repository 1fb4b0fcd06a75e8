"""
Async HTTP client for the auth API that keeps an access token and renews it on 401.

The refresh token lives in the client's cookie jar (HTTP-only cookie set by
/auth/two-factor). When a request comes back 401 the client refreshes once and
retries. Concurrent 401s share a single in-flight refresh: callers whose token
was already replaced skip straight to the retry, the rest await the same task.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class AuthClient:
    def __init__(
        self,
        base_url: str,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30.0,
        refresh_path: str = "auth/refresh",
    ):
        self._client = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)
        self.refresh_path = refresh_path
        self.access_token: str | None = None
        self._refresh_task: asyncio.Task | None = None

    async def __aenter__(self) -> AuthClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self, token: str | None, extra: dict | None) -> dict:
        headers = dict(extra or {})
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def login(self, email: str, password: str) -> dict[str, Any]:
        """First login step. Returns user_id (and secret + enrollment_uri when not enrolled yet)."""
        resp = await self._client.post("auth/login", json={"email": email, "password": password})
        resp.raise_for_status()
        return resp.json()

    async def two_factor(self, user_id: int, code: str, secret: str | None = None) -> str:
        body: dict[str, Any] = {"user_id": user_id, "code": code}
        if secret:
            body["secret"] = secret
        resp = await self._client.post("auth/two-factor", json=body)
        resp.raise_for_status()
        self.access_token = resp.json()["access_token"]
        return self.access_token

    async def logout(self) -> None:
        resp = await self._client.delete("auth/logout")
        resp.raise_for_status()
        self.access_token = None

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        extra_headers = kwargs.pop("headers", None)
        token = self.access_token
        resp = await self._client.request(method, url, headers=self._headers(token, extra_headers), **kwargs)
        if resp.status_code != 401 or url == self.refresh_path:
            return resp
        if not await self.refresh_access_token(stale_token=token):
            return resp
        return await self._client.request(
            method, url, headers=self._headers(self.access_token, extra_headers), **kwargs
        )

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def refresh_access_token(self, stale_token: str | None = None) -> bool:
        """Renew the access token, joining a refresh already in flight. True if a usable token is held."""
        if stale_token is not None and self.access_token and self.access_token != stale_token:
            return True
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.ensure_future(self._refresh())
        # shield: one cancelled waiter must not cancel the refresh the others are waiting on
        return await asyncio.shield(self._refresh_task)

    async def _refresh(self) -> bool:
        resp = await self._client.post(self.refresh_path)
        if resp.status_code != 200:
            logger.info("Token refresh rejected (%s)", resp.status_code)
            self.access_token = None
            return False
        self.access_token = resp.json()["access_token"]
        return True

"""Pytest configuration and shared fixtures for service and API tests."""

import os
import re
import tempfile

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Point config/engine at a throwaway SQLite file before app imports
_TEST_DB = os.path.join(tempfile.gettempdir(), f"auth_service_test_{os.getpid()}.db")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DB}"
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SMTP_HOST"] = ""

from auth_service.core.errors import DependencyError
from auth_service.core.totp import current_code
from auth_service.db.base import Base
from auth_service.db.session import async_session_maker, engine, init_db
from auth_service.main import app
from auth_service.services.mailer import get_mailer
from auth_service.services.sessions import SessionService

RESET_LINK_RE = re.compile(r"/reset/([A-Za-z0-9_\-]+)")


class FakeMailer:
    """Records messages instead of sending; set fail=True to simulate an SMTP outage."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[tuple[str, str, str]] = []

    async def send(self, to: str, subject: str, html: str) -> None:
        if self.fail:
            raise DependencyError("Mail delivery failed")
        self.sent.append((to, subject, html))

    def last_reset_token(self) -> str:
        _, __, html = self.sent[-1]
        match = RESET_LINK_RE.search(html)
        assert match, html
        return match.group(1)


async def _delete_all():
    """Empty all tables in reverse dependency order so tests start clean."""
    async with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            await conn.execute(table.delete())


@pytest_asyncio.fixture
async def clean_db():
    await init_db()
    await _delete_all()
    yield


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest_asyncio.fixture
async def db_session(clean_db):
    async with async_session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def service(db_session, mailer):
    return SessionService(db_session, mailer=mailer)


@pytest_asyncio.fixture
async def client(clean_db, mailer):
    """AsyncClient against the app with the fake mailer injected."""
    app.dependency_overrides[get_mailer] = lambda: mailer
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.pop(get_mailer, None)


async def sign_in(client: AsyncClient, email: str, password: str, secret: str | None = None):
    """Login + two-factor. Returns (user_id, secret, two-factor response)."""
    resp = await client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    data = resp.json()
    body = {"user_id": data["user_id"]}
    if "secret" in data:
        secret = data["secret"]
        body["secret"] = secret
    body["code"] = current_code(secret)
    resp = await client.post("/api/v1/auth/two-factor", json=body)
    assert resp.status_code == 200, resp.text
    return data["user_id"], secret, resp


@pytest_asyncio.fixture
async def alice(client):
    """Registered and 2FA-enrolled user: dict with user_id, secret, access_token, refresh_token."""
    resp = await client.post(
        "/api/v1/auth/register",
        json={
            "first_name": "Alice",
            "last_name": "Liddell",
            "email": "alice@example.com",
            "password": "pw123",
            "password_confirm": "pw123",
        },
    )
    assert resp.status_code == 201, resp.text
    user_id, secret, tf = await sign_in(client, "alice@example.com", "pw123")
    return {
        "user_id": user_id,
        "secret": secret,
        "access_token": tf.json()["access_token"],
        "refresh_token": tf.cookies.get("refresh_token"),
    }

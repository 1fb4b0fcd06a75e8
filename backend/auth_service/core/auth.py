"""Password hashing and JWT creation/verification."""

from __future__ import annotations

import hashlib
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from functools import lru_cache
from typing import Any

import bcrypt
from jose import JWTError, jwt

from auth_service.config import settings
from auth_service.core.errors import InvalidToken

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


def hash_password(password: str) -> str:
    """Hash password with bcrypt. Bytes truncated to 72 (bcrypt limit); no passlib re-encoding."""
    pwd_bytes = password.encode("utf-8")[:72]
    hashed = bcrypt.hashpw(pwd_bytes, bcrypt.gensalt(rounds=settings.bcrypt_rounds))
    return hashed.decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Verify password with bcrypt. Plain password truncated to 72 bytes."""
    plain_bytes = plain_password.encode("utf-8")[:72]
    try:
        return bcrypt.checkpw(plain_bytes, password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


@lru_cache(maxsize=1)
def _dummy_password_hash() -> str:
    return hash_password("dummy-password-for-timing")


def burn_password_check(plain_password: str) -> None:
    """Run one bcrypt comparison against a throwaway hash so unknown emails cost the same as known ones."""
    verify_password(plain_password, _dummy_password_hash())


def hash_token(token: str) -> str:
    """SHA256 hash of an opaque token (refresh or reset) for storage."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _get_jwt_signing_key_and_algorithm() -> tuple[str, str]:
    """Return (key, algorithm) for signing tokens."""
    if settings.use_rs256:
        return settings.jwt_private_key.strip(), "RS256"
    return settings.secret_key, settings.jwt_algorithm


def _get_jwt_verification_key_and_algorithms() -> tuple[str, list[str]]:
    """Return (key, algorithms) for verifying tokens."""
    if settings.use_rs256:
        return settings.jwt_public_key.strip(), ["RS256"]
    return settings.secret_key, [settings.jwt_algorithm]


def _encode(payload: dict[str, Any]) -> str:
    key, algorithm = _get_jwt_signing_key_and_algorithm()
    result = jwt.encode(payload, key, algorithm=algorithm)
    return result if isinstance(result, str) else result.decode("utf-8")


def decode_token(token: str) -> dict[str, Any]:
    """Verify signature and expiry; return claims. Raises InvalidToken."""
    key, algorithms = _get_jwt_verification_key_and_algorithms()
    try:
        payload = jwt.decode(
            token,
            key,
            algorithms=algorithms,
            options={"leeway": settings.jwt_leeway_seconds},
        )
    except JWTError as e:
        raise InvalidToken() from e
    exp = payload.get("exp")
    # jose accepts a token at its exact exp second; the token is dead at or after exp
    if not isinstance(exp, (int, float)) or time.time() >= exp + settings.jwt_leeway_seconds:
        raise InvalidToken()
    return payload


def _subject_as_user_id(payload: dict[str, Any]) -> int:
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidToken() from e


def create_access_token(user_id: int, expires_delta: timedelta | None = None) -> str:
    now = datetime.now(timezone.utc)
    if expires_delta is None:
        expires_delta = timedelta(seconds=settings.access_token_expire_seconds)
    payload = {
        "sub": str(user_id),
        "type": ACCESS_TOKEN_TYPE,
        "iat": now,
        "exp": now + expires_delta,
    }
    return _encode(payload)


def verify_access_token(token: str) -> int:
    """Return the user id asserted by a valid access token. Raises InvalidToken."""
    payload = decode_token(token)
    if payload.get("type") != ACCESS_TOKEN_TYPE:
        raise InvalidToken()
    return _subject_as_user_id(payload)


@dataclass(frozen=True)
class RefreshClaims:
    user_id: int
    family_id: str
    jti: str


def create_refresh_token(
    user_id: int, family_id: str, expires_delta: timedelta | None = None
) -> tuple[str, datetime]:
    """Return (token, expires_at). The random jti makes every token value unique."""
    now = datetime.now(timezone.utc)
    if expires_delta is None:
        expires_delta = timedelta(days=settings.refresh_token_expire_days)
    expires_at = now + expires_delta
    payload = {
        "sub": str(user_id),
        "type": REFRESH_TOKEN_TYPE,
        "fam": family_id,
        "jti": uuid.uuid4().hex,
        "iat": now,
        "exp": expires_at,
    }
    return _encode(payload), expires_at


def verify_refresh_token(token: str) -> RefreshClaims:
    payload = decode_token(token)
    if payload.get("type") != REFRESH_TOKEN_TYPE:
        raise InvalidToken()
    family_id = payload.get("fam")
    jti = payload.get("jti")
    if not isinstance(family_id, str) or not isinstance(jti, str):
        raise InvalidToken()
    return RefreshClaims(user_id=_subject_as_user_id(payload), family_id=family_id, jti=jti)


def new_family_id() -> str:
    return str(uuid.uuid4())

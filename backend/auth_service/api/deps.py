"""FastAPI dependencies: session service per request, mailer, current user from JWT."""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from auth_service.db.session import get_db
from auth_service.schemas.auth import UserPublic
from auth_service.services.mailer import Mailer, get_mailer
from auth_service.services.sessions import SessionService


def get_session_service(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_db)],
    mailer: Annotated[Mailer, Depends(get_mailer)],
) -> SessionService:
    ip_address = request.client.host if request.client else None
    return SessionService(session, mailer=mailer, ip_address=ip_address)


def bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header[7:].strip() or None


async def get_current_user(
    service: Annotated[SessionService, Depends(get_session_service)],
    token: Annotated[str | None, Depends(bearer_token)],
) -> UserPublic:
    return await service.current_user(token)

"""Auth: register, login, two-factor, user, refresh, logout, forgot, reset."""

import logging
from typing import Annotated

from fastapi import APIRouter, Cookie, Depends, Request, Response
from fastapi.responses import JSONResponse

from auth_service.api.deps import get_current_user, get_session_service
from auth_service.config import settings
from auth_service.core.errors import AuthError, InvalidCredentials, NotFoundError
from auth_service.core.rate_limit import forgot_limit, limiter, login_limit, two_factor_limit
from auth_service.schemas.auth import (
    AccessTokenResponse,
    ForgotBody,
    LoginBody,
    LoginResult,
    MessageResponse,
    RefreshBody,
    RegisterBody,
    ResetBody,
    TokenPair,
    TwoFactorBody,
    UserPublic,
)
from auth_service.services.sessions import SessionService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])

Service = Annotated[SessionService, Depends(get_session_service)]
RefreshCookie = Annotated[str | None, Cookie(alias=settings.refresh_cookie_name)]


def _set_refresh_cookie(response: Response, refresh_token: str) -> None:
    response.set_cookie(
        key=settings.refresh_cookie_name,
        value=refresh_token,
        max_age=settings.refresh_token_expire_days * 24 * 3600,
        path=settings.refresh_cookie_path,
        httponly=True,
        secure=settings.refresh_cookie_secure,
        samesite=settings.refresh_cookie_samesite,
    )


def _clear_refresh_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.refresh_cookie_name,
        path=settings.refresh_cookie_path,
        httponly=True,
        secure=settings.refresh_cookie_secure,
        samesite=settings.refresh_cookie_samesite,
    )


def _token_response(response: Response, tokens: TokenPair) -> AccessTokenResponse:
    if tokens.refresh_token:
        _set_refresh_cookie(response, tokens.refresh_token)
    return AccessTokenResponse(access_token=tokens.access_token, expires_in=tokens.expires_in)


@router.post(
    "/register",
    response_model=UserPublic,
    status_code=201,
    summary="Register a new user",
    responses={
        400: {"description": "Passwords do not match"},
        409: {"description": "Email already registered"},
    },
)
async def register(service: Service, body: RegisterBody) -> UserPublic:
    return await service.register(
        first_name=body.first_name,
        last_name=body.last_name,
        email=body.email,
        password=body.password,
        password_confirm=body.password_confirm,
    )


@router.post(
    "/login",
    response_model=LoginResult,
    response_model_exclude_none=True,
    summary="Check email and password; start two-factor",
    responses={401: {"description": "Invalid email or password"}},
)
@limiter.limit(login_limit)
async def login(request: Request, service: Service, body: LoginBody) -> LoginResult:
    """Returns user_id, plus secret and enrollment_uri when the user has no authenticator yet."""
    try:
        return await service.login(body.email, body.password)
    except NotFoundError as e:
        # Unknown email and wrong password look the same to the caller
        raise InvalidCredentials() from e


@router.post(
    "/two-factor",
    response_model=AccessTokenResponse,
    summary="Verify a one-time code and issue tokens",
    responses={401: {"description": "Invalid credentials"}},
)
@limiter.limit(two_factor_limit)
async def two_factor(
    request: Request,
    response: Response,
    service: Service,
    body: TwoFactorBody,
) -> AccessTokenResponse:
    """Access token in the body, refresh token as an HTTP-only cookie."""
    tokens = await service.complete_two_factor(body.user_id, body.code, body.secret)
    return _token_response(response, tokens)


@router.get(
    "/user",
    response_model=UserPublic,
    summary="Get current authenticated user",
    responses={401: {"description": "Not authenticated or invalid token"}},
)
async def current_user(user: Annotated[UserPublic, Depends(get_current_user)]) -> UserPublic:
    return user


@router.post(
    "/refresh",
    response_model=AccessTokenResponse,
    summary="Exchange refresh token for a new access token",
    responses={401: {"description": "Refresh token missing, invalid, expired or revoked"}},
)
async def refresh(
    response: Response,
    service: Service,
    refresh_cookie: RefreshCookie = None,
    body: RefreshBody | None = None,
) -> AccessTokenResponse:
    """Reads a JSON body token (non-browser clients) or the refresh_token cookie. Rotates the cookie."""
    token = (body.refresh_token if body else None) or refresh_cookie
    tokens = await service.refresh(token)
    return _token_response(response, tokens)


@router.delete(
    "/logout",
    response_model=MessageResponse,
    status_code=202,
    summary="Revoke every refresh token of the user",
    responses={401: {"description": "Refresh token missing or invalid"}},
)
async def logout(
    response: Response,
    service: Service,
    refresh_cookie: RefreshCookie = None,
) -> MessageResponse:
    result = await service.logout(refresh_cookie)
    _clear_refresh_cookie(response)
    return result


@router.post(
    "/forgot",
    response_model=MessageResponse,
    summary="Email a password reset link",
    responses={503: {"description": "Mail delivery failed"}},
)
@limiter.limit(forgot_limit)
async def forgot(request: Request, service: Service, body: ForgotBody) -> MessageResponse:
    return await service.forgot_password(body.email)


@router.post(
    "/reset",
    response_model=MessageResponse,
    summary="Set a new password with a reset token",
    responses={
        400: {"description": "Passwords do not match"},
        404: {"description": "Token unknown, used or expired, or user not found"},
    },
)
async def reset(service: Service, body: ResetBody) -> MessageResponse:
    return await service.reset_password(body.token, body.password, body.password_confirm)


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Translate AuthError subclasses into JSON responses; the status lives on the error class."""
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

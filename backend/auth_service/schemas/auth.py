"""Request and response schemas for the auth endpoints."""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def _clean_email(value: str) -> str:
    email = (value or "").strip().lower()
    local, sep, domain = email.partition("@")
    if not sep or not local or "." not in domain or " " in email:
        raise ValueError("Invalid email address")
    return email


def _not_blank(value: str) -> str:
    if not value or not value.strip():
        raise ValueError("Must not be empty")
    return value


class RegisterBody(BaseModel):
    first_name: str = Field(max_length=100)
    last_name: str = Field(max_length=100)
    email: str = Field(max_length=255)
    password: str = Field(max_length=256)
    password_confirm: str = Field(
        max_length=256, validation_alias=AliasChoices("password_confirm", "passwordConfirm")
    )

    @field_validator("first_name", "last_name")
    @classmethod
    def _strip_names(cls, v: str) -> str:
        return _not_blank(v).strip()

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return _clean_email(v)

    @field_validator("password", "password_confirm")
    @classmethod
    def _password(cls, v: str) -> str:
        return _not_blank(v)


class LoginBody(BaseModel):
    email: str = Field(max_length=255)
    password: str = Field(max_length=256)

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return _not_blank(v).strip().lower()

    @field_validator("password")
    @classmethod
    def _password(cls, v: str) -> str:
        return _not_blank(v)


class TwoFactorBody(BaseModel):
    user_id: int = Field(validation_alias=AliasChoices("user_id", "id"))
    code: str = Field(max_length=16)
    secret: str | None = Field(default=None, max_length=128)

    @field_validator("code")
    @classmethod
    def _code(cls, v: str) -> str:
        return _not_blank(v).strip()


class RefreshBody(BaseModel):
    """Non-browser clients may send the refresh token in the body instead of the cookie."""

    refresh_token: str | None = None


class ForgotBody(BaseModel):
    email: str = Field(max_length=255)

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return _not_blank(v).strip().lower()


class ResetBody(BaseModel):
    token: str = Field(max_length=256)
    password: str = Field(max_length=256)
    password_confirm: str = Field(
        max_length=256, validation_alias=AliasChoices("password_confirm", "passwordConfirm")
    )

    @field_validator("token", "password", "password_confirm")
    @classmethod
    def _required(cls, v: str) -> str:
        return _not_blank(v)


class UserPublic(BaseModel):
    """User as returned to callers: never includes the password hash or TOTP secret."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    first_name: str
    last_name: str


class LoginResult(BaseModel):
    user_id: int
    # Present only when the user still has to enroll an authenticator
    secret: str | None = None
    enrollment_uri: str | None = None


class TokenPair(BaseModel):
    access_token: str
    # None when refresh tokens are not rotated (the caller keeps the one it has)
    refresh_token: str | None = None
    expires_in: int


class AccessTokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds until access token expires


class MessageResponse(BaseModel):
    message: str

"""Pydantic schemas for authentication endpoints.

Includes request bodies (validated the same way for every entry point),
the public user projection and token response shapes. Password hashes
never appear in any of these models.
"""

import re
from datetime import datetime
from typing import Annotated

from models.auth import LoginType, Role
from pydantic import AfterValidator, ConfigDict, EmailStr, Field, HttpUrl, model_validator
from schemas.common import CamelModel

USERNAME_PATTERN = r"^[a-zA-Z0-9_-]+$"


def _check_password_strength(value: str) -> str:
    if not re.search(r"[a-z]", value) or not re.search(r"[A-Z]", value) or not re.search(r"\d", value):
        raise ValueError(
            "Password must contain at least one lowercase letter, "
            "one uppercase letter, and one number"
        )
    return value


StrongPassword = Annotated[
    str, Field(min_length=8, max_length=128), AfterValidator(_check_password_strength)
]
Name = Annotated[str, Field(min_length=1, max_length=50)]
Username = Annotated[str, Field(min_length=3, max_length=30, pattern=USERNAME_PATTERN)]


class RegisterRequest(CamelModel):
    email: EmailStr
    password: StrongPassword
    first_name: Name | None = None
    last_name: Name | None = None
    username: Username | None = None


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1)


class RefreshTokenRequest(CamelModel):
    refresh_token: str = Field(min_length=1)


class LogoutRequest(CamelModel):
    refresh_token: str | None = None


class EmailRequest(CamelModel):
    """Body for resend-verification and forgot-password."""

    email: EmailStr


class ResetPasswordRequest(CamelModel):
    token: str = Field(min_length=1)
    new_password: StrongPassword


class UpdateProfileRequest(CamelModel):
    first_name: Name | None = None
    last_name: Name | None = None
    username: Username | None = None
    avatar: HttpUrl | None = None


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(min_length=1)
    new_password: StrongPassword

    @model_validator(mode="after")
    def _passwords_differ(self) -> "ChangePasswordRequest":
        if self.new_password == self.current_password:
            raise ValueError("New password must be different from current password")
        return self


class UserPublic(CamelModel):
    """Public user projection returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    avatar: str | None = None
    role: Role
    is_email_verified: bool
    email_verified_at: datetime | None = None
    last_login_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class TokenPair(CamelModel):
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int


class UserData(CamelModel):
    user: UserPublic


class LoginData(CamelModel):
    user: UserPublic
    tokens: TokenPair


class TokensData(CamelModel):
    tokens: TokenPair


class LoginLogPublic(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    login_type: LoginType
    ip_address: str | None = None
    user_agent: str | None = None
    is_success: bool
    fail_reason: str | None = None
    created_at: datetime | None = None

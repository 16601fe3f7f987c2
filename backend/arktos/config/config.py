"""Application settings loaded from environment for the Arktos backend.

This module defines the :class:`Settings` model (based on Pydantic's
``BaseSettings``). A validated instance is built once by the application
factory through :func:`get_settings` and handed to the components that
need it, so a missing or malformed value fails at startup rather than on
the first request that touches it.

Notable fields include the database connection URL, the signing secrets
and lifetimes for the three token classes, the bcrypt cost factor and the
transactional email provider settings.
"""

from pathlib import Path
from typing import Literal

from limits import parse
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

BACKEND_DIR = Path(__file__).resolve().parent.parent.parent
ENV_FILE = BACKEND_DIR / ".env"

MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Environment-backed application settings.

    Attributes:
        ENVIRONMENT: Deployment environment (development, production, test).
        APP_NAME: Name shown in the API info endpoint and in emails.
        APP_VERSION: Version string reported by the info and health endpoints.
        DATABASE_URL_ASYNC: Async database URL for SQLAlchemy.
        DATABASE_ECHO: Echo SQL statements to the log.

        JWT_SECRET: Access token signing secret.
        JWT_REFRESH_SECRET: Refresh token signing secret (must differ).
        JWT_PURPOSE_SECRET: Optional secret for email-verify/password-reset
            tokens; the access secret is used when unset.
        ALGORITHM: JWT signing algorithm.
        ACCESS_TOKEN_EXPIRE_MINUTES: Access token lifetime in minutes.
        REFRESH_TOKEN_EXPIRE_DAYS: Refresh token lifetime in days.
        EMAIL_VERIFICATION_EXPIRE_HOURS: Email verification token lifetime.
        PASSWORD_RESET_EXPIRE_MINUTES: Password reset token lifetime.
        BCRYPT_SALT_ROUNDS: bcrypt cost factor for password hashes.

        RESEND_API_KEY: API key for the Resend email provider.
        RESEND_API_URL: Resend send-email endpoint.
        FROM_EMAIL: Sender address for transactional emails.
        FROM_NAME: Sender display name.
        FRONTEND_URL: Base URL used to build links in emails.

        CORS_ORIGINS: Origins allowed by the CORS middleware.
        LOG_LEVEL: Loguru sink level.
        RATE_LIMIT_ENABLED: Enforce request rate limits; defaults to on in
            production only.
        API_RATE_LIMIT: Per-client limit for every API request.
        AUTH_RATE_LIMIT: Per-client limit for failed register, login and
            refresh attempts.
    """

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE), env_file_encoding="utf-8", extra="ignore"
    )

    ENVIRONMENT: Literal["development", "production", "test"] = "development"
    APP_NAME: str = "Arktos"
    APP_VERSION: str = "1.0.0"

    DATABASE_URL_ASYNC: str
    DATABASE_ECHO: bool = False

    JWT_SECRET: str = Field(min_length=MIN_SECRET_LENGTH)
    JWT_REFRESH_SECRET: str = Field(min_length=MIN_SECRET_LENGTH)
    JWT_PURPOSE_SECRET: str | None = Field(default=None, min_length=MIN_SECRET_LENGTH)
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=15, gt=0)
    REFRESH_TOKEN_EXPIRE_DAYS: int = Field(default=7, gt=0)
    EMAIL_VERIFICATION_EXPIRE_HOURS: int = Field(default=24, gt=0)
    PASSWORD_RESET_EXPIRE_MINUTES: int = Field(default=60, gt=0)
    BCRYPT_SALT_ROUNDS: int = Field(default=12, ge=4, le=31)

    RESEND_API_KEY: str | None = None
    RESEND_API_URL: str = "https://api.resend.com/emails"
    FROM_EMAIL: str = "noreply@arktos.dev"
    FROM_NAME: str = "Arktos"
    FRONTEND_URL: str = "http://localhost:3000"

    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]
    LOG_LEVEL: str = "INFO"

    RATE_LIMIT_ENABLED: bool | None = None
    API_RATE_LIMIT: str = "100/15 minutes"
    AUTH_RATE_LIMIT: str = "5/15 minutes"

    @field_validator("API_RATE_LIMIT", "AUTH_RATE_LIMIT")
    @classmethod
    def _check_rate_limit(cls, value: str) -> str:
        parse(value)
        return value

    @model_validator(mode="after")
    def _check_distinct_secrets(self) -> "Settings":
        # NOTE: a leaked access secret must not allow refresh-token forgery.
        if self.JWT_SECRET == self.JWT_REFRESH_SECRET:
            raise ValueError("JWT_REFRESH_SECRET must differ from JWT_SECRET")
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def rate_limit_enabled(self) -> bool:
        if self.RATE_LIMIT_ENABLED is None:
            return self.is_production
        return self.RATE_LIMIT_ENABLED

    @property
    def purpose_secret(self) -> str:
        """Secret used for email-verify and password-reset tokens."""
        return self.JWT_PURPOSE_SECRET or self.JWT_SECRET


def get_settings(**overrides) -> Settings:
    """Build and validate settings from the environment.

    Args:
        **overrides: Explicit values that take precedence over the
            environment (used by tests and the CLI).

    Returns:
        Settings: The validated settings object.

    Raises:
        pydantic.ValidationError: If a required value is missing or invalid.
    """
    return Settings(**overrides)

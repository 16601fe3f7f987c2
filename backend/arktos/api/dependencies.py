"""FastAPI dependencies wiring request-scoped services to app-wide handles."""

from datetime import timedelta
from typing import Annotated

from config.config import Settings
from db.session import get_db
from fastapi import Depends, Query, Request
from services.auth_service import AuthService
from services.credential_store import CredentialStore
from sqlalchemy.ext.asyncio import AsyncSession


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


async def get_auth_service(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> AuthService:
    """Build an ``AuthService`` bound to this request's session."""
    state = request.app.state
    settings: Settings = state.settings
    return AuthService(
        CredentialStore(db),
        state.token_issuer,
        state.password_hash,
        state.email_service,
        email_verification_ttl=timedelta(hours=settings.EMAIL_VERIFICATION_EXPIRE_HOURS),
        password_reset_ttl=timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES),
    )


class PageParams:
    """``page`` / ``limit`` query parameters for paginated endpoints."""

    def __init__(
        self,
        page: Annotated[int, Query(ge=1)] = 1,
        limit: Annotated[int, Query(ge=1, le=100)] = 10,
    ):
        self.page = page
        self.limit = limit

"""Request gate: bearer-token authentication and authorization helpers.

REQUEST FLOW:

1. The ``Authorization: Bearer <access token>`` header is extracted;
   a missing or non-bearer header is ``TokenRequiredError``.
2. The token is verified as an ACCESS token (expired / invalid /
   wrong purpose are reported separately).
3. The user is re-read from the database on every request; a missing
   user is ``UserNotFoundError`` and a deactivated one ``AccountDisabledError``.
4. The resulting :class:`AuthContext` is returned to the route and stored
   on ``request.state.auth``.

``get_current_user`` and ``get_optional_user`` are the required and optional
variants; both share :func:`resolve_auth_context`. Role and email
verification gates are layered on top of the required variant.
"""

from dataclasses import dataclass
from typing import Annotated

from core.errors import (
    AccountDisabledError,
    EmailNotVerifiedError,
    InsufficientPermissionsError,
    TokenExpiredError,
    TokenInvalidError,
    TokenRequiredError,
    UserNotFoundError,
)
from core.logging import logger
from core.tokens import TokenIssuer, TokenKind
from db.session import get_db
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from models.auth import Role
from schemas.auth import UserPublic
from services.auth_service import ClientInfo
from services.credential_store import CredentialStore
from sqlalchemy.ext.asyncio import AsyncSession

bearer_scheme = HTTPBearer(auto_error=False)

# Width of the ip_address columns.
MAX_IP_LENGTH = 64


@dataclass(frozen=True)
class AuthContext:
    """Authorization context attached to an authenticated request."""

    user: UserPublic
    session_id: str | None = None

    @property
    def user_id(self) -> str:
        return self.user.id

    @property
    def role(self) -> Role:
        return self.user.role

    @property
    def is_email_verified(self) -> bool:
        return self.user.is_email_verified


@dataclass(frozen=True)
class RoleGate:
    """Set of roles allowed through a role-gated route."""

    allowed_roles: frozenset[Role]


STAFF_ONLY = RoleGate(frozenset({Role.ADMIN, Role.MODERATOR}))


async def resolve_auth_context(
    token: str, issuer: TokenIssuer, store: CredentialStore
) -> AuthContext:
    """Verify an access token and load its (active) user.

    Raises:
        TokenExpiredError: The access token expired.
        TokenInvalidError: Bad signature, format or purpose.
        UserNotFoundError: The token's user does not exist anymore.
        AccountDisabledError: The user is deactivated.
    """
    claims = issuer.verify(token, TokenKind.ACCESS)
    user = await store.get_user_by_id(claims.user_id)
    if user is None:
        raise UserNotFoundError()
    if not user.is_active:
        raise AccountDisabledError()
    return AuthContext(user=UserPublic.model_validate(user), session_id=claims.session_id)


async def get_current_user(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> AuthContext:
    """Authenticate the request or fail.

    Raises:
        TokenRequiredError: No bearer token was sent.
    """
    if credentials is None or not credentials.credentials:
        raise TokenRequiredError()

    context = await resolve_auth_context(
        credentials.credentials, request.app.state.token_issuer, CredentialStore(db)
    )
    request.state.auth = context
    return context


async def get_optional_user(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> AuthContext | None:
    """Authenticate the request when possible; anonymous callers get None."""
    if credentials is None or not credentials.credentials:
        return None

    try:
        context = await resolve_auth_context(
            credentials.credentials, request.app.state.token_issuer, CredentialStore(db)
        )
    except (
        TokenExpiredError,
        TokenInvalidError,
        UserNotFoundError,
        AccountDisabledError,
    ) as exc:
        logger.debug("Optional auth ignored credentials: {}", exc.code)
        return None

    request.state.auth = context
    return context


def check_role(context: AuthContext, gate: RoleGate) -> AuthContext:
    if context.role not in gate.allowed_roles:
        logger.warning(
            "Role {} denied (allowed: {}) user_id={}",
            context.role.value,
            sorted(role.value for role in gate.allowed_roles),
            context.user_id,
        )
        raise InsufficientPermissionsError()
    return context


def check_email_verified(context: AuthContext) -> AuthContext:
    if not context.is_email_verified:
        raise EmailNotVerifiedError()
    return context


def require_role(gate: RoleGate):
    """Build a dependency that admits only the roles in ``gate``."""

    async def role_dependency(
        context: Annotated[AuthContext, Depends(get_current_user)],
    ) -> AuthContext:
        return check_role(context, gate)

    return role_dependency


async def require_verified_email(
    context: Annotated[AuthContext, Depends(get_current_user)],
) -> AuthContext:
    """Dependency admitting only users whose email is verified."""
    return check_email_verified(context)


def get_device_info(request: Request) -> str:
    """Extract device information (user-agent) from a request.

    Args:
        request: FastAPI request object.

    Returns:
        str: Truncated user-agent string (max 255 characters).
    """

    user_agent = request.headers.get("user-agent", "unknown")
    return user_agent[:255]


def get_client_ip(request: Request) -> str:
    """Determine the client's IP address from the request.

    Prefers the `X-Forwarded-For` header when present (typical when
    the app is behind a proxy/load-balancer), otherwise falls back to the
    direct client address exposed by the ASGI server.

    Args:
        request: FastAPI request object.

    Returns:
        str: Client IP address (max 64 characters) or "unknown" if it cannot
            be determined.
    """

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()[:MAX_IP_LENGTH]
    return request.client.host[:MAX_IP_LENGTH] if request.client else "unknown"


def get_client_info(request: Request) -> ClientInfo:
    return ClientInfo(ip_address=get_client_ip(request), user_agent=get_device_info(request))

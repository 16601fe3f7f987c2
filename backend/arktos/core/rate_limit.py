"""Per-client request rate limiting for the API routes.

Limits are moving windows kept in process memory by the ``limits``
library and keyed by client IP. Two dependencies are exposed:

1. ``limit_api_requests`` counts every request to the /auth and /admin
   routers.
2. ``limit_auth_attempts`` guards register, login and refresh-token and
   only counts attempts that fail, so a client that keeps signing in
   successfully is never locked out.

Both are no-ops unless ``Settings.rate_limit_enabled`` is set, which by
default is only the case in production.
"""

from config.config import Settings
from core.auth_helper import get_client_ip
from core.errors import AppError, RateLimitExceededError
from core.logging import logger
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from limits import RateLimitItem, parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter


class RateLimiter:
    """Moving-window limits for API requests and auth attempts.

    Args:
        api_limit: Limit string (``"100/15 minutes"``) for every request.
        auth_limit: Limit string for failed authentication attempts.
        enabled: When False every check passes and nothing is counted.
    """

    def __init__(self, *, api_limit: str, auth_limit: str, enabled: bool = True):
        self.api_limit: RateLimitItem = parse(api_limit)
        self.auth_limit: RateLimitItem = parse(auth_limit)
        self.enabled = enabled
        self._limiter = MovingWindowRateLimiter(MemoryStorage())

    @classmethod
    def from_settings(cls, settings: Settings) -> "RateLimiter":
        return cls(
            api_limit=settings.API_RATE_LIMIT,
            auth_limit=settings.AUTH_RATE_LIMIT,
            enabled=settings.rate_limit_enabled,
        )

    def hit_api(self, client_ip: str) -> bool:
        """Count one request; False when the client is over its limit."""
        return self._limiter.hit(self.api_limit, "api", client_ip)

    def auth_allowed(self, client_ip: str) -> bool:
        return self._limiter.test(self.auth_limit, "auth", client_ip)

    def record_auth_failure(self, client_ip: str):
        self._limiter.hit(self.auth_limit, "auth", client_ip)


async def limit_api_requests(request: Request):
    limiter: RateLimiter = request.app.state.rate_limiter
    if not limiter.enabled:
        return

    client_ip = get_client_ip(request)
    if not limiter.hit_api(client_ip):
        logger.warning("API rate limit exceeded ip={} path={}", client_ip, request.url.path)
        raise RateLimitExceededError(
            "Too many requests from this IP, please try again later."
        )


async def limit_auth_attempts(request: Request):
    """Reject clients with too many recent failed authentication attempts.

    The attempt is only counted when the request fails.
    """
    limiter: RateLimiter = request.app.state.rate_limiter
    if not limiter.enabled:
        yield
        return

    client_ip = get_client_ip(request)
    if not limiter.auth_allowed(client_ip):
        logger.warning("Auth rate limit exceeded ip={} path={}", client_ip, request.url.path)
        raise RateLimitExceededError(
            "Too many authentication attempts, please try again later."
        )

    try:
        yield
    except (AppError, RequestValidationError):
        limiter.record_auth_failure(client_ip)
        raise

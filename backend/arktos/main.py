"""FastAPI application entrypoint for the Arktos backend.

``create_app`` builds the application, its middleware and routes, and the
long-lived handles shared by all requests (database, token issuer,
password hasher, email service, rate limiter), which are stored on
``app.state``. The lifespan context manager creates the database tables
on startup and disposes the engine on shutdown.
"""

import asyncio
from contextlib import asynccontextmanager

import uvicorn
from api.error_handling import register_exception_handlers
from api.middleware import add_security_headers
from api.routes.admin import router as admin_router
from api.routes.auth import router as auth_router
from api.routes.health import router as health_router
from config.config import Settings, get_settings
from core.logging import configure_logging, logger
from core.rate_limit import RateLimiter, limit_api_requests
from core.security import build_password_hash
from core.tokens import TokenIssuer
from db.session import Database
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from services.email_service import EmailService


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context to run startup and shutdown routines.

    On startup this will attempt to create the metadata tables, retrying a
    few times if the DB isn't ready yet.

    Yields:
        None: Control is returned to FastAPI while the app is running.
    """

    logger.info("Starting up")
    database: Database = app.state.database

    max_retries = 5
    for attempt in range(max_retries):
        try:
            await database.initialize()
            break
        except Exception as e:
            # NOTE: transient DB connectivity issues are retried so the app
            # tolerates the database container starting after it.
            if attempt < max_retries - 1:
                logger.warning(
                    "Database connection attempt {} failed: {}. Retrying..",
                    attempt + 1,
                    e,
                )
                await asyncio.sleep(2)
            else:
                logger.exception(
                    "Failed to create database tables after {} attempts", max_retries
                )
                raise

    yield

    logger.info("Shutting down")
    await app.state.email_service.aclose()
    await database.dispose()


def create_app(
    settings: Settings | None = None,
    *,
    database: Database | None = None,
    email_service: EmailService | None = None,
) -> FastAPI:
    """Build the application.

    Args:
        settings: Validated settings; loaded from the environment when
            omitted (a missing or invalid value aborts startup).
        database: Optional prebuilt database handle.
        email_service: Optional prebuilt email service.

    Returns:
        FastAPI: The configured application.
    """
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title=f"{settings.APP_NAME} Backend API",
        version=settings.APP_VERSION,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.database = database or Database(
        settings.DATABASE_URL_ASYNC, echo=settings.DATABASE_ECHO
    )
    app.state.token_issuer = TokenIssuer.from_settings(settings)
    app.state.password_hash = build_password_hash(settings.BCRYPT_SALT_ROUNDS)
    app.state.email_service = email_service or EmailService.from_settings(settings)
    app.state.rate_limiter = RateLimiter.from_settings(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    )
    add_security_headers(app)
    register_exception_handlers(app, is_production=settings.is_production)

    app.include_router(health_router)
    api_limit = [Depends(limit_api_requests)]
    app.include_router(auth_router, dependencies=api_limit)
    app.include_router(admin_router, dependencies=api_limit)

    logger.info(
        "Application configured environment={} email_configured={} rate_limited={}",
        settings.ENVIRONMENT,
        app.state.email_service.is_configured,
        settings.rate_limit_enabled,
    )
    return app


if __name__ == "__main__":
    uvicorn.run("main:create_app", factory=True, host="0.0.0.0", port=8000, reload=True)

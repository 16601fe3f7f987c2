"""Async SQLAlchemy engine and session helpers.

Provides :class:`Database`, the single long-lived handle to the relational
store. It is constructed once by the application factory, stored on
``app.state.database`` and handed to request handlers through
:func:`get_db`, which yields one session per request.
"""

import time
from datetime import datetime, timezone

from core.logging import logger
from fastapi import Request
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps read back from drivers without tz support."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Database:
    """Owns the async engine and the session factory.

    Args:
        url: Async SQLAlchemy database URL.
        echo: Whether to echo SQL statements.
    """

    def __init__(self, url: str, echo: bool = False):
        engine_kwargs = {"echo": echo}
        if not make_url(url).get_backend_name().startswith("sqlite"):
            engine_kwargs.update(pool_size=5, max_overflow=10, pool_pre_ping=True)

        self.engine = create_async_engine(url, **engine_kwargs)
        self.session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    async def initialize(self):
        """Create all metadata tables defined on the declarative ``Base``.

        Raises:
            Exception: Re-raises any exception encountered while initializing.
        """

        # NOTE: import models so their tables are registered on Base.metadata
        import models.auth  # noqa: F401

        logger.info("Initializing database tables")
        async with self.engine.begin() as conn:
            try:
                await conn.run_sync(Base.metadata.create_all)
                logger.info("Database initialization complete")
            except Exception:
                logger.exception("Database initialization failed")
                raise

    def session(self) -> AsyncSession:
        return self.session_factory()

    async def health_check(self) -> dict:
        """Run ``SELECT 1`` and report connectivity and latency."""
        started = time.perf_counter()
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as exc:
            logger.error("Database health check failed: {}", exc)
            return {"connected": False, "error": str(exc)}
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        return {"connected": True, "responseTime": elapsed_ms}

    async def dispose(self):
        await self.engine.dispose()
        logger.info("Database engine disposed")


async def get_db(request: Request):
    """Yield an async database session for FastAPI dependency injection.

    Usage:
        db: AsyncSession = Depends(get_db)

    Yields:
        AsyncSession: an asynchronous SQLAlchemy session.
    """

    database: Database = request.app.state.database
    async with database.session() as session:
        yield session

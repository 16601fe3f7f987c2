"""Centralized logging configuration using Loguru for the application.

This module configures Loguru and installs an intercept handler so code
that uses the standard library ``logging`` (uvicorn, asyncio) is routed
through Loguru. The log level can be adjusted via the ``LOG_LEVEL``
environment variable and re-applied with :func:`configure_logging` once the
settings have been loaded.
"""

import logging
import os
import sys

from loguru import logger

# NOTE: Allow overriding of log level via environment for runtime control
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | {name} | {message}"


class InterceptHandler(logging.Handler):
    """Handler to route stdlib logging records into Loguru.

    This preserves caller information so Loguru logs reflect the originating
    module/line rather than the interception point.
    """

    def emit(
        self, record: logging.LogRecord
    ) -> None:  # pragma: no cover - simple routing
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # NOTE: Walk frames to skip logging internals and find original caller
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def configure_logging(level: str = LOG_LEVEL) -> None:
    """(Re)install the stdout sink and stdlib interception at ``level``."""
    level = level.upper()

    # Remove any previously configured handlers to avoid duplicate logs
    logger.remove()
    logger.add(
        sys.stdout,
        level=level,
        format=LOG_FORMAT,
        backtrace=True,
        diagnose=False,
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=level, force=True)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "asyncio"):
        logging.getLogger(name).handlers = [InterceptHandler()]
        logging.getLogger(name).propagate = False
        logging.getLogger(name).setLevel(level)


def redact_email(email: str) -> str:
    """Shorten an address for log output, e.g. ``al***@example.com``."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


configure_logging()

# Export the configured Loguru logger for application modules to import
# Usage: from core.logging import logger

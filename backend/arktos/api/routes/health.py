"""API info and health check routes."""

import time

from api.dependencies import get_settings_dep
from config.config import Settings
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from schemas.common import ApiResponse, success_response, utc_timestamp

router = APIRouter(tags=["health"])

STARTED_AT = time.monotonic()


@router.get("/", response_model=ApiResponse[dict])
async def root(settings: Settings = Depends(get_settings_dep)):
    """Return a simple landing response describing the API."""
    return success_response(
        {
            "name": f"{settings.APP_NAME} Backend API",
            "version": settings.APP_VERSION,
            "documentation": "/docs",
            "health": "/health",
        },
        f"Welcome to {settings.APP_NAME} Backend API",
        "API_INFO",
    )


@router.get("/health")
async def health(request: Request, settings: Settings = Depends(get_settings_dep)):
    """Report database connectivity; 503 when the database is unreachable."""
    database_health = await request.app.state.database.health_check()
    body = {
        "status": "ok" if database_health["connected"] else "error",
        "timestamp": utc_timestamp(),
        "uptime": round(time.monotonic() - STARTED_AT, 3),
        "database": database_health,
        "version": settings.APP_VERSION,
    }
    return JSONResponse(body, status_code=200 if database_health["connected"] else 503)

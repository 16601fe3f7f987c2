"""Response envelope, error mapping, middleware and health endpoints."""

import pytest
from core.errors import (
    AccountDisabledError,
    EmailTakenError,
    InternalError,
    InvalidCredentialsError,
    RateLimitExceededError,
    TokenExpiredError,
    TokenRequiredError,
)
from httpx import ASGITransport, AsyncClient
from main import create_app
from schemas.common import Pagination
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession


def production_app(settings, database, email_service):
    return create_app(
        settings.model_copy(update={"ENVIRONMENT": "production"}),
        database=database,
        email_service=email_service,
    )


@pytest.mark.parametrize(
    "error, status_code, code",
    [
        (InvalidCredentialsError, 401, "AUTH_INVALID_CREDENTIALS"),
        (AccountDisabledError, 403, "AUTH_ACCOUNT_DEACTIVATED"),
        (EmailTakenError, 409, "AUTH_USER_EXISTS"),
        (TokenRequiredError, 401, "AUTH_TOKEN_REQUIRED"),
        (TokenExpiredError, 401, "AUTH_TOKEN_EXPIRED"),
        (InternalError, 500, "INTERNAL_ERROR"),
        (RateLimitExceededError, 429, "RATE_LIMIT_EXCEEDED"),
    ],
)
def test_error_taxonomy(error, status_code, code):
    assert error.status_code == status_code
    assert error.code == code
    assert error().message
    assert error("custom").message == "custom"


def test_pagination_block():
    pagination = Pagination.build(total=21, page=3, limit=10)

    assert pagination.model_dump(by_alias=True) == {
        "total": 21,
        "page": 3,
        "limit": 10,
        "totalPages": 3,
        "hasNext": False,
        "hasPrev": True,
    }
    assert Pagination.build(total=0, page=1, limit=10).total_pages == 0


async def test_app_error_envelope(app, client):
    @app.get("/boom/conflict")
    async def conflict():
        raise EmailTakenError()

    response = await client.get("/boom/conflict")

    assert response.status_code == 409
    body = response.json()
    assert body["success"] is False
    assert body["code"] == "AUTH_USER_EXISTS"
    assert body["message"] == "User already exists with this email"
    assert body["timestamp"].endswith("Z")
    assert "data" not in body


async def test_unknown_route(client):
    response = await client.get("/no/such/route")

    assert response.status_code == 404
    assert response.json()["code"] == "ROUTE_NOT_FOUND"
    assert response.json()["message"] == "Route /no/such/route not found"


async def test_unexpected_error_shows_detail_outside_production(app):
    @app.get("/boom/unexpected")
    async def unexpected():
        raise RuntimeError("database exploded")

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/boom/unexpected")

    assert response.status_code == 500
    assert response.json()["code"] == "INTERNAL_ERROR"
    assert response.json()["message"] == "database exploded"


async def test_unexpected_error_is_generic_in_production(settings, database, email_service):
    app = production_app(settings, database, email_service)

    @app.get("/boom/unexpected")
    async def unexpected():
        raise RuntimeError("database exploded")

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/boom/unexpected")

    assert response.status_code == 500
    assert response.json()["message"] == "Something went wrong!"


@pytest.fixture
def broken_database(monkeypatch):
    async def failing_execute(self, *args, **kwargs):
        raise OperationalError("SELECT users", {}, Exception("disk I/O error"))

    monkeypatch.setattr(AsyncSession, "execute", failing_execute)


async def test_persistence_error_shows_cause_outside_production(app, broken_database):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post(
            "/auth/login", json={"email": "a@x.com", "password": "Passw0rd1"}
        )

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["code"] == "INTERNAL_ERROR"
    assert "disk I/O error" in body["message"]


async def test_persistence_error_is_generic_in_production(
    settings, database, email_service, broken_database
):
    app = production_app(settings, database, email_service)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post(
            "/auth/login", json={"email": "a@x.com", "password": "Passw0rd1"}
        )

    assert response.status_code == 500
    assert response.json()["code"] == "INTERNAL_ERROR"
    assert response.json()["message"] == "Internal server error"


async def test_security_headers(client):
    info = await client.get("/")
    auth = await client.post("/auth/logout")

    assert info.headers["x-content-type-options"] == "nosniff"
    assert info.headers["x-frame-options"] == "DENY"
    assert "cache-control" not in info.headers
    assert auth.headers["cache-control"].startswith("no-store")


async def test_cors_preflight(client):
    response = await client.options(
        "/auth/login",
        headers={
            "Origin": "http://localhost:3000",
            "Access-Control-Request-Method": "POST",
        },
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "http://localhost:3000"


async def test_api_info(client):
    response = await client.get("/")

    assert response.status_code == 200
    body = response.json()
    assert body["code"] == "API_INFO"
    assert body["data"]["name"] == "Arktos Backend API"
    assert body["data"]["health"] == "/health"


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["database"]["connected"] is True
    assert body["database"]["responseTime"] >= 0
    assert body["version"] == "1.0.0"


async def test_health_reports_database_outage(app, client):
    async def unreachable():
        return {"connected": False, "error": "connection refused"}

    app.state.database.health_check = unreachable

    response = await client.get("/health")

    assert response.status_code == 503
    assert response.json()["status"] == "error"

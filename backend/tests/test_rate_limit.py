"""Per-client rate limits on the API and authentication routes."""

import pytest
from config.config import get_settings
from core.rate_limit import RateLimiter
from httpx import ASGITransport, AsyncClient
from main import create_app
from pydantic import ValidationError

from conftest import ACCESS_SECRET, PASSWORD, REFRESH_SECRET


def limited_app(settings, database, email_service, **overrides):
    return create_app(
        settings.model_copy(update={"ENVIRONMENT": "production", **overrides}),
        database=database,
        email_service=email_service,
    )


def make_client(app):
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def login(client, email="a@x.com", password=PASSWORD, headers=None):
    return await client.post(
        "/auth/login", json={"email": email, "password": password}, headers=headers
    )


async def test_failed_logins_are_limited_in_production(settings, database, email_service):
    app = limited_app(settings, database, email_service)

    async with make_client(app) as client:
        await client.post("/auth/register", json={"email": "a@x.com", "password": PASSWORD})
        for _ in range(5):
            response = await login(client, password="Wr0ngPassword")
            assert response.status_code == 401

        blocked = await login(client)

    assert blocked.status_code == 429
    body = blocked.json()
    assert body["success"] is False
    assert body["code"] == "RATE_LIMIT_EXCEEDED"
    assert body["message"] == "Too many authentication attempts, please try again later."


async def test_successful_attempts_are_not_counted(settings, database, email_service):
    app = limited_app(settings, database, email_service)

    async with make_client(app) as client:
        registered = await client.post(
            "/auth/register", json={"email": "a@x.com", "password": PASSWORD}
        )
        assert registered.status_code == 201
        statuses = [(await login(client)).status_code for _ in range(7)]

    assert statuses == [200] * 7


async def test_refresh_failures_share_the_auth_limit(settings, database, email_service):
    app = limited_app(settings, database, email_service)

    async with make_client(app) as client:
        for _ in range(3):
            await login(client, email="nobody@x.com")
        for _ in range(2):
            response = await client.post("/auth/refresh-token", json={"refreshToken": "bogus"})
            assert response.status_code == 401

        blocked = await client.post("/auth/refresh-token", json={"refreshToken": "bogus"})

    assert blocked.status_code == 429


async def test_limits_are_per_client(settings, database, email_service):
    app = limited_app(settings, database, email_service)

    first = {"X-Forwarded-For": "203.0.113.1"}
    second = {"X-Forwarded-For": "203.0.113.2"}

    async with make_client(app) as client:
        for _ in range(5):
            await login(client, email="nobody@x.com", headers=first)

        blocked = await login(client, email="nobody@x.com", headers=first)
        other = await login(client, email="nobody@x.com", headers=second)

    assert blocked.status_code == 429
    assert other.status_code == 401


async def test_limits_are_off_outside_production(client):
    statuses = [(await login(client, email="nobody@x.com")).status_code for _ in range(8)]

    assert statuses == [401] * 8


async def test_api_limit_counts_every_request(settings, database, email_service):
    app = limited_app(settings, database, email_service, API_RATE_LIMIT="2/minute")

    async with make_client(app) as client:
        statuses = [(await client.get("/auth/profile")).status_code for _ in range(3)]
        health = await client.get("/health")

    assert statuses == [401, 401, 429]
    assert health.status_code == 200


def test_rate_limiter_from_settings(settings):
    assert RateLimiter.from_settings(settings).enabled is False

    enabled = settings.model_copy(update={"RATE_LIMIT_ENABLED": True})
    limiter = RateLimiter.from_settings(enabled)
    assert limiter.enabled is True
    assert limiter.auth_limit.amount == 5

    for _ in range(5):
        assert limiter.auth_allowed("10.0.0.1")
        limiter.record_auth_failure("10.0.0.1")
    assert not limiter.auth_allowed("10.0.0.1")
    assert limiter.auth_allowed("10.0.0.2")


def test_invalid_rate_limit_setting_is_rejected(tmp_path):
    with pytest.raises(ValidationError):
        get_settings(
            DATABASE_URL_ASYNC=f"sqlite+aiosqlite:///{tmp_path / 'arktos.db'}",
            JWT_SECRET=ACCESS_SECRET,
            JWT_REFRESH_SECRET=REFRESH_SECRET,
            AUTH_RATE_LIMIT="lots",
        )

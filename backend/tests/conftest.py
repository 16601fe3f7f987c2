"""Shared pytest fixtures for the Arktos backend tests.

Each test gets its own SQLite file database, a recording email service
in place of Resend, and a cheap bcrypt cost factor.
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL_ASYNC", "sqlite+aiosqlite:///./arktos-test.db")
os.environ.setdefault("JWT_SECRET", "test-access-secret-0123456789-abcdefghij")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret-0123456789-abcdefghij")
os.environ.setdefault("BCRYPT_SALT_ROUNDS", "4")

import pytest
from config.config import get_settings
from core.security import build_password_hash
from core.tokens import TokenIssuer
from db.session import Database
from httpx import ASGITransport, AsyncClient
from main import create_app
from services.auth_service import AuthService
from services.credential_store import CredentialStore
from services.email_service import EmailDeliveryError, EmailService

ACCESS_SECRET = "test-access-secret-0123456789-abcdefghij"
REFRESH_SECRET = "test-refresh-secret-0123456789-abcdefghij"
PASSWORD = "Passw0rd1"


class RecordingEmailService(EmailService):
    """Email service that records rendered messages instead of sending them."""

    def __init__(self, **kwargs):
        kwargs.setdefault("api_key", None)
        super().__init__(**kwargs)
        self.sent: list[dict] = []

    async def _send(self, to_email: str, subject: str, html: str):
        self.sent.append({"to": to_email, "subject": subject, "html": html})


class FailingEmailService(EmailService):
    def __init__(self, **kwargs):
        kwargs.setdefault("api_key", None)
        super().__init__(**kwargs)

    async def _send(self, to_email: str, subject: str, html: str):
        raise EmailDeliveryError(f"Failed to send email: {subject}")


@pytest.fixture
def settings(tmp_path):
    return get_settings(
        ENVIRONMENT="test",
        DATABASE_URL_ASYNC=f"sqlite+aiosqlite:///{tmp_path / 'arktos.db'}",
        JWT_SECRET=ACCESS_SECRET,
        JWT_REFRESH_SECRET=REFRESH_SECRET,
        BCRYPT_SALT_ROUNDS=4,
        RESEND_API_KEY=None,
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
async def database(settings):
    database = Database(settings.DATABASE_URL_ASYNC)
    await database.initialize()
    yield database
    await database.dispose()


@pytest.fixture
def issuer(settings):
    return TokenIssuer.from_settings(settings)


@pytest.fixture
def password_hash():
    return build_password_hash(rounds=4)


@pytest.fixture
async def email_service():
    service = RecordingEmailService(frontend_url="http://frontend.test")
    yield service
    await service.aclose()


@pytest.fixture
async def session(database):
    async with database.session() as session:
        yield session


@pytest.fixture
def store(session):
    return CredentialStore(session)


@pytest.fixture
def auth_service(store, issuer, password_hash, email_service):
    return AuthService(store, issuer, password_hash, email_service)


@pytest.fixture
def app(settings, database, email_service):
    return create_app(settings, database=database, email_service=email_service)


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

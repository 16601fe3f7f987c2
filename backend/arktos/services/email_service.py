"""Transactional email delivery through the Resend HTTP API.

Message bodies are rendered from the jinja2 templates in
``services/templates/email``. When no API key is configured the service
runs in development mode and logs each message instead of sending it.
"""

import asyncio
from datetime import timedelta
from pathlib import Path

import httpx
import jinja2
from config.config import Settings
from core.logging import logger, redact_email

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates" / "email"


class EmailDeliveryError(Exception):
    """Raised when the provider rejects or cannot receive a message."""


def _humanize(delta: timedelta) -> str:
    hours = int(delta.total_seconds() // 3600)
    if hours >= 1 and delta.total_seconds() % 3600 == 0:
        return f"{hours} hour" + ("s" if hours != 1 else "")
    minutes = int(delta.total_seconds() // 60)
    return f"{minutes} minute" + ("s" if minutes != 1 else "")


class EmailService:
    """Renders and sends verification, reset and welcome emails.

    Args:
        api_key: Resend API key; ``None`` enables development mode.
        api_url: Resend send-email endpoint.
        from_email: Sender address.
        from_name: Sender display name.
        frontend_url: Base URL for links embedded in emails.
        app_name: Product name used in templates.
        client: Optional preconfigured ``httpx.AsyncClient``.
    """

    def __init__(
        self,
        *,
        api_key: str | None,
        api_url: str = "https://api.resend.com/emails",
        from_email: str = "noreply@arktos.dev",
        from_name: str = "Arktos",
        frontend_url: str = "http://localhost:3000",
        app_name: str = "Arktos",
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.from_email = from_email
        self.from_name = from_name
        self.frontend_url = frontend_url.rstrip("/")
        self.app_name = app_name
        self._client = client
        self._owns_client = client is None
        self._pending: set[asyncio.Task] = set()
        self._templates = jinja2.Environment(
            loader=jinja2.FileSystemLoader(searchpath=str(TEMPLATE_DIR)),
            autoescape=jinja2.select_autoescape(["html"]),
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailService":
        return cls(
            api_key=settings.RESEND_API_KEY,
            api_url=settings.RESEND_API_URL,
            from_email=settings.FROM_EMAIL,
            from_name=settings.FROM_NAME,
            frontend_url=settings.FRONTEND_URL,
            app_name=settings.APP_NAME,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def render(self, template_name: str, **context) -> str:
        template = self._templates.get_template(template_name)
        return template.render(app_name=self.app_name, **context)

    async def send_verification_email(
        self, email: str, token: str, user_name: str | None, expires_in: timedelta
    ):
        link = f"{self.frontend_url}/verify-email?token={token}"
        html = self.render(
            "verify_email.html",
            user_name=user_name or email,
            link=link,
            expires_in=_humanize(expires_in),
        )
        await self._send(email, "Verify Your Email Address", html)

    async def send_password_reset_email(
        self, email: str, token: str, user_name: str | None, expires_in: timedelta
    ):
        link = f"{self.frontend_url}/reset-password?token={token}"
        html = self.render(
            "reset_password.html",
            user_name=user_name or email,
            link=link,
            expires_in=_humanize(expires_in),
        )
        await self._send(email, "Reset Your Password", html)

    async def send_welcome_email(self, email: str, user_name: str | None):
        html = self.render(
            "welcome.html",
            user_name=user_name or email,
            link=f"{self.frontend_url}/dashboard",
        )
        await self._send(email, f"Welcome to {self.app_name}!", html)

    async def _send(self, to_email: str, subject: str, html: str):
        if not self.is_configured:
            # Dev mode: log the email instead of sending
            logger.info(
                "Email not sent (no RESEND_API_KEY) to={} subject={!r}",
                redact_email(to_email),
                subject,
            )
            return

        if self._client is None:
            self._client = httpx.AsyncClient(timeout=30.0)

        try:
            response = await self._client.post(
                self.api_url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "from": f"{self.from_name} <{self.from_email}>",
                    "to": [to_email],
                    "subject": subject,
                    "html": html,
                },
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error(
                "Failed to send email to={} subject={!r}: {}",
                redact_email(to_email),
                subject,
                exc,
            )
            raise EmailDeliveryError(f"Failed to send email: {subject}") from exc

        logger.info("Email sent to={} subject={!r}", redact_email(to_email), subject)

    def send_in_background(self, coro) -> asyncio.Task:
        """Schedule ``coro`` without awaiting it; failures are only logged."""
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task):
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error("Background email dispatch failed")

    async def drain(self):
        """Wait for every scheduled send to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self):
        await self.drain()
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

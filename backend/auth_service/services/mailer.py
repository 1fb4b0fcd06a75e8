"""
Outbound email. SmtpMailer sends through SMTP_HOST; when no host is configured
LoggingMailer writes the message to the log instead (local development).
Delivery failures raise DependencyError; nothing is retried here.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Protocol

from auth_service.config import settings
from auth_service.core.errors import DependencyError

logger = logging.getLogger(__name__)


class Mailer(Protocol):
    async def send(self, to: str, subject: str, html: str) -> None: ...


class SmtpMailer:
    def __init__(
        self,
        host: str,
        port: int,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        sender: str = "",
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender = sender
        self.timeout = timeout

    def _build_message(self, to: str, subject: str, html: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to
        msg.attach(MIMEText(html, "html"))
        return msg

    def _send_sync(self, msg: MIMEMultipart) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(msg)

    async def send(self, to: str, subject: str, html: str) -> None:
        msg = self._build_message(to, subject, html)
        try:
            await asyncio.to_thread(self._send_sync, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Mail delivery to %s failed: %s", to, e)
            raise DependencyError("Mail delivery failed") from e


class LoggingMailer:
    """Development mailer: logs instead of sending."""

    async def send(self, to: str, subject: str, html: str) -> None:
        logger.info("Mail (not sent, SMTP_HOST unset) to=%s subject=%r body=%s", to, subject, html)


def get_mailer() -> Mailer:
    if not settings.smtp_host:
        return LoggingMailer()
    return SmtpMailer(
        host=settings.smtp_host,
        port=settings.smtp_port,
        username=settings.smtp_username,
        password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
        sender=settings.mail_from,
        timeout=settings.smtp_timeout_seconds,
    )


def password_reset_email(token: str) -> tuple[str, str]:
    """Return (subject, html) for a reset link pointing at the frontend."""
    url = f"{settings.frontend_url.rstrip('/')}/reset/{token}"
    html = (
        f'<p>Click <a href="{url}">here</a> to reset your password.</p>'
        f"<p>This link expires in {settings.reset_token_expire_minutes} minutes.</p>"
        "<p>If you didn't request this, you can ignore this email.</p>"
    )
    return "Reset your password", html

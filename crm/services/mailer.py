"""Outbound campaign email: SMTP when configured, log-only otherwise."""

from email.message import EmailMessage
from typing import Protocol

import aiosmtplib

from crm.core.config import Settings
from crm.core.logging import get_logger

log = get_logger(__name__)


class EmailSender(Protocol):
    async def send(self, to: str, subject: str, html_body: str, text_body: str) -> None:
        """Deliver one message; raise on failure (the message of the error is recorded)."""
        ...


def build_message(sender: str, to: str, subject: str, html_body: str, text_body: str) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content(text_body or "")
    if html_body:
        msg.add_alternative(html_body, subtype="html")
    return msg


class SmtpEmailSender:
    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        username: str = "",
        password: str = "",
        start_tls: bool = True,
        timeout: float = 15.0,
    ) -> None:
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.start_tls = start_tls
        self.timeout = timeout

    async def send(self, to: str, subject: str, html_body: str, text_body: str) -> None:
        msg = build_message(self.sender, to, subject, html_body, text_body)
        await aiosmtplib.send(
            msg,
            hostname=self.host,
            port=self.port,
            username=self.username or None,
            password=self.password or None,
            start_tls=self.start_tls,
            timeout=self.timeout,
        )
        log.info("email_sent", to=to)


class LoggingEmailSender:
    """Used when SMTP is not configured: every send succeeds and is only logged."""

    async def send(self, to: str, subject: str, html_body: str, text_body: str) -> None:
        log.info("email_logged_only", to=to, subject=subject, reason="smtp_not_configured")


def get_email_sender(settings: Settings) -> EmailSender:
    if settings.smtp_configured:
        return SmtpEmailSender(
            host=settings.smtp_host,
            port=settings.smtp_port,
            sender=settings.smtp_from,
            username=settings.smtp_user,
            password=settings.smtp_pass,
            start_tls=settings.smtp_starttls,
            timeout=settings.smtp_timeout_seconds,
        )
    log.warning("smtp_not_configured", msg="Campaign emails will be logged, not sent")
    return LoggingEmailSender()

"""
auth/mailer.py -- Outbound email for activation and password-reset links.

The workflows only need one capability: send(to, subject, link). Delivery is
synchronous. A failure raises MailDeliveryError, which the workflow lets
propagate so the surrounding transaction rolls back -- registration is not
considered complete unless the activation link actually went out.

Backends:
  SmtpMailer -- smtplib + EmailMessage, STARTTLS and login when configured.
  LogMailer  -- writes the subject and recipient to the log and keeps the
                last OUTBOX_SIZE links in memory; for local development
                (MAIL_BACKEND=log).
"""

from __future__ import annotations

import logging
import smtplib
from collections import deque
from email.message import EmailMessage
from typing import TYPE_CHECKING, Protocol

from core.errors import fatal

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("tillgate.mail")

OUTBOX_SIZE = 100


class MailDeliveryError(Exception):
    """Raised when an email could not be handed to the mail server."""


class Mailer(Protocol):
    def send(self, to_address: str, subject: str, link: str) -> None: ...


def _compose_body(subject: str, link: str) -> str:
    return (
        f"{subject}\n\n"
        f"Open the link below to continue:\n\n{link}\n\n"
        "If you did not request this, ignore this email.\n"
    )


class SmtpMailer:
    """Deliver links through an SMTP relay."""

    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "SmtpMailer":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            sender=settings.mail_from,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            timeout=settings.smtp_timeout_seconds,
        )

    def send(self, to_address: str, subject: str, link: str) -> None:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to_address
        msg.set_content(_compose_body(subject, link))

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls()
                if self.username:
                    server.login(self.username, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Email delivery to %s failed: %s", to_address, exc)
            raise MailDeliveryError(f"Could not deliver email to {to_address}") from exc
        logger.info("Sent '%s' email to %s", subject, to_address)


class LogMailer:
    """Development backend: log the send and remember the link.

    The link is a bearer credential and is never logged. The most recent
    sends (up to outbox_size) are kept on .outbox for whoever holds the
    process; older ones are dropped.
    """

    def __init__(self, outbox_size: int = OUTBOX_SIZE) -> None:
        self.outbox: deque[tuple[str, str, str]] = deque(maxlen=outbox_size)

    def send(self, to_address: str, subject: str, link: str) -> None:
        self.outbox.append((to_address, subject, link))
        logger.info("Queued '%s' email to %s (log backend, not sent)", subject, to_address)


def deliver(mailer: Mailer, to_address: str, subject: str, link: str) -> None:
    """Send through mailer, reporting a delivery failure as AuthError(FATAL).

    Called inside the workflow's transaction, so the raise rolls it back.
    """
    try:
        mailer.send(to_address, subject, link)
    except MailDeliveryError as exc:
        raise fatal("Could not send email, please try again later.") from exc


def build_mailer(settings: Settings) -> Mailer:
    """Return the mailer selected by settings.mail_backend."""
    if settings.mail_backend == "log":
        return LogMailer()
    return SmtpMailer.from_settings(settings)

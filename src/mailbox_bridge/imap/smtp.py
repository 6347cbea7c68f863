"""SMTP submission for the IMAP/SMTP driver."""

from __future__ import annotations

import asyncio
import smtplib
import ssl
from collections.abc import Callable
from email.message import EmailMessage
from typing import Any

import structlog

from mailbox_bridge.exceptions import ConfigurationError, SendFailureError

logger = structlog.get_logger()


def default_smtp_factory(host: str, port: int, secure: bool, timeout: float) -> smtplib.SMTP:
    if secure:
        return smtplib.SMTP_SSL(host, port, timeout=timeout, context=ssl.create_default_context())

    smtp = smtplib.SMTP(host, port, timeout=timeout)
    smtp.ehlo()
    if smtp.has_extn("starttls"):
        smtp.starttls(context=ssl.create_default_context())
        smtp.ehlo()
    return smtp


class SmtpTransport:
    """Sends fully composed messages over SMTP.

    Implicit TLS is used when ``secure`` is set (port 465), otherwise the
    connection is upgraded with STARTTLS when the server offers it.
    """

    def __init__(
        self,
        *,
        host: str | None,
        port: int,
        secure: bool,
        username: str,
        password: str,
        timeout: float = 30.0,
        smtp_factory: Callable[..., Any] | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self.secure = secure
        self.username = username
        self._password = password
        self.timeout = timeout
        self._smtp_factory = smtp_factory or default_smtp_factory

    async def send(self, message: EmailMessage) -> None:
        """Submit ``message``.

        Raises:
            SendFailureError: If the server rejects the message or any recipient.
            smtplib.SMTPAuthenticationError: If the credentials are refused.
        """

        if not self.host:
            raise ConfigurationError("SMTP host is not configured")
        await asyncio.to_thread(self._send_sync, message)

    def _send_sync(self, message: EmailMessage) -> None:
        logger.info(
            "smtp_sending",
            host=self.host,
            port=self.port,
            secure=self.secure,
            message_id=str(message.get("Message-ID") or ""),
        )
        try:
            with self._smtp_factory(self.host, self.port, self.secure, self.timeout) as smtp:
                smtp.login(self.username, self._password)
                refused = smtp.send_message(message)
        except smtplib.SMTPAuthenticationError:
            raise
        except (smtplib.SMTPException, OSError) as exc:
            raise SendFailureError(
                f"SMTP submission failed: {exc}",
                context={"host": self.host, "port": self.port},
                original_error=exc,
            ) from exc

        if refused:
            raise SendFailureError(
                "SMTP server refused some recipients",
                context={"refused": sorted(refused)},
            )
        logger.info("smtp_sent", host=self.host)

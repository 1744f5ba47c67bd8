"""SMTP connector for the email.send block (aiosmtplib)."""

from __future__ import annotations

import logging
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Any

import aiosmtplib

from blockflow.config import settings

logger = logging.getLogger("blockflow.connectors.email")


class EmailSendError(Exception):
    pass


class EmailConnector:
    def __init__(
        self,
        hostname: str | None = None,
        port: int | None = None,
        username: str | None = None,
        password: str | None = None,
        default_from: str | None = None,
    ) -> None:
        self.hostname = hostname or settings.SMTP_HOST
        self.port = port or settings.SMTP_PORT
        self.username = username if username is not None else settings.SMTP_USERNAME
        self.password = password if password is not None else settings.SMTP_PASSWORD
        self.default_from = default_from or settings.SMTP_FROM

    def build_message(
        self,
        to: list[str],
        subject: str,
        body: str,
        sender: str | None = None,
        cc: list[str] | None = None,
        bcc: list[str] | None = None,
        html: bool = True,
    ) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = sender or self.default_from
        msg["To"] = ", ".join(to)
        if cc:
            msg["Cc"] = ", ".join(cc)
        if bcc:
            msg["Bcc"] = ", ".join(bcc)
        msg["Subject"] = subject
        msg["Message-ID"] = make_msgid(domain=self.default_from.rpartition("@")[2] or None)
        if html:
            msg.set_content("This message requires an HTML-capable mail client.")
            msg.add_alternative(body, subtype="html")
        else:
            msg.set_content(body)
        return msg

    async def send(self, message: EmailMessage) -> dict[str, Any]:
        logger.info("Sending email to %s via %s:%s", message["To"], self.hostname, self.port)
        try:
            errors, response = await aiosmtplib.send(
                message,
                hostname=self.hostname,
                port=self.port,
                username=self.username,
                password=self.password,
                use_tls=self.port == 465,
                start_tls=settings.SMTP_USE_TLS if self.port != 465 else False,
                timeout=settings.SMTP_TIMEOUT_SECONDS,
            )
        except aiosmtplib.SMTPException as exc:
            raise EmailSendError(f"Failed to send email: {exc}") from exc
        except OSError as exc:
            raise EmailSendError(f"Failed to connect to SMTP server: {exc}") from exc

        if errors:
            rejected = ", ".join(sorted(errors))
            raise EmailSendError(f"Recipients rejected: {rejected}")
        return {"messageId": message["Message-ID"], "response": response}

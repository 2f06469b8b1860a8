# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""SMTP provider built on aiosmtplib.

Opens one connection per email. The dispatch queue already serialises sends,
so there is never more than one connection at a time.

TLS behavior based on port and use_tls flag:
    - Port 465 with use_tls=True: Direct TLS (implicit TLS)
    - Other ports with use_tls=True: STARTTLS
    - use_tls=False: Plain SMTP
"""

from __future__ import annotations

import asyncio
from email.message import EmailMessage
from email.utils import make_msgid

import aiosmtplib

from ..logger import get_logger
from ..models import EmailPayload
from .base import EmailProvider, ProviderError


def build_message(payload: EmailPayload) -> EmailMessage:
    """Build a MIME message from a payload.

    When both bodies are present the text part comes first and the HTML part
    is added as an alternative.
    """
    msg = EmailMessage()
    msg["From"] = payload.from_addr
    msg["To"] = ", ".join(payload.to)
    msg["Subject"] = payload.subject
    msg["Message-ID"] = make_msgid()
    if payload.cc:
        msg["Cc"] = ", ".join(payload.cc)
    if payload.reply_to:
        msg["Reply-To"] = payload.reply_to
    if payload.text:
        msg.set_content(payload.text)
        if payload.html:
            msg.add_alternative(payload.html, subtype="html")
    else:
        msg.set_content(payload.html or "", subtype="html")
    return msg


class SMTPProvider(EmailProvider):
    """Email provider delivering through an SMTP relay.

    Attributes:
        host: SMTP server hostname.
        port: SMTP server port.
        user: Username for authentication, or None for no auth.
        password: Password for authentication.
        use_tls: Whether to use TLS (direct TLS on 465, STARTTLS elsewhere).
        timeout: Seconds allowed for connect, login and send together.
    """

    name = "smtp"

    def __init__(
        self,
        host: str,
        port: int = 587,
        user: str | None = None,
        password: str | None = None,
        *,
        use_tls: bool = True,
        timeout: float = 30.0,
        logger=None,
    ):
        self.host = host
        self.port = int(port)
        self.user = user
        self.password = password
        self.use_tls = bool(use_tls)
        self.timeout = float(timeout)
        self.logger = logger or get_logger("SMTPProvider")

    def _client(self) -> aiosmtplib.SMTP:
        if self.use_tls and self.port == 465:
            return aiosmtplib.SMTP(hostname=self.host, port=self.port, use_tls=True, start_tls=False, timeout=10.0)
        if self.use_tls:
            return aiosmtplib.SMTP(hostname=self.host, port=self.port, use_tls=False, start_tls=True, timeout=10.0)
        return aiosmtplib.SMTP(hostname=self.host, port=self.port, use_tls=False, start_tls=False, timeout=10.0)

    async def send(self, payload: EmailPayload) -> str | None:
        """Send one email over a fresh SMTP connection.

        Returns:
            The Message-ID header of the sent message.

        Raises:
            ProviderError: If the server rejects the message or a recipient.
            asyncio.TimeoutError: If the whole exchange exceeds ``timeout``.
        """
        msg = build_message(payload)
        recipients = [*payload.to, *payload.cc, *payload.bcc]
        smtp = self._client()

        async def _deliver() -> None:
            async with smtp:
                if self.user and self.password:
                    await smtp.login(self.user, self.password)
                await smtp.send_message(msg, sender=payload.from_addr, recipients=recipients)

        try:
            await asyncio.wait_for(_deliver(), timeout=self.timeout)
        except aiosmtplib.SMTPResponseException as exc:
            raise ProviderError(exc.message, status=exc.code) from exc
        except aiosmtplib.SMTPRecipientsRefused as exc:
            raise ProviderError(f"all recipients refused: {exc.recipients}") from exc
        self.logger.debug("SMTP relay %s accepted email for %s", self.host, payload.recipient_label)
        return msg.get("Message-ID")

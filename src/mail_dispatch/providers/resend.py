# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Resend HTTP API provider.

Sends one email per request to ``POST {base_url}/emails`` authenticated with
a bearer API key. Resend limits each API key to 2 requests per second, which
is why the dispatch queue spaces sends by 500 ms by default.

Example:
    Sending directly through the provider::

        provider = ResendProvider(api_key="re_123")
        message_id = await provider.send(payload)
        await provider.close()
"""

from __future__ import annotations

from typing import Any

import aiohttp

from ..logger import get_logger
from ..models import EmailPayload
from .base import EmailProvider, ProviderError

DEFAULT_BASE_URL = "https://api.resend.com"


class ResendProvider(EmailProvider):
    """Email provider backed by the Resend REST API.

    One ``aiohttp.ClientSession`` is shared by all sends. It is created by
    ``open`` or lazily on the first send, and released by ``close``.

    Attributes:
        api_key: Resend API key.
        base_url: API root URL without trailing slash.
        timeout: Total request timeout in seconds.
    """

    name = "resend"

    def __init__(self, api_key: str, base_url: str = DEFAULT_BASE_URL, timeout: float = 30.0, logger=None):
        if not api_key:
            raise ValueError("Resend API key is required")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = float(timeout)
        self.logger = logger or get_logger("ResendProvider")
        self._session: aiohttp.ClientSession | None = None

    async def open(self) -> None:
        self._get_session()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        return self._session

    @staticmethod
    def build_body(payload: EmailPayload) -> dict[str, Any]:
        """Translate an EmailPayload into the Resend request body."""
        body: dict[str, Any] = {
            "from": payload.from_addr,
            "to": payload.to,
            "subject": payload.subject,
        }
        if payload.html:
            body["html"] = payload.html
        if payload.text:
            body["text"] = payload.text
        if payload.cc:
            body["cc"] = payload.cc
        if payload.bcc:
            body["bcc"] = payload.bcc
        if payload.reply_to:
            body["reply_to"] = payload.reply_to
        if payload.tags:
            body["tags"] = [tag.model_dump() for tag in payload.tags]
        return body

    async def send(self, payload: EmailPayload) -> str | None:
        """Post one email to Resend.

        Returns:
            The Resend email id.

        Raises:
            ProviderError: On a non-2xx response.
            aiohttp.ClientError: On network failures.
        """
        session = self._get_session()
        async with session.post(f"{self.base_url}/emails", json=self.build_body(payload)) as resp:
            try:
                data = await resp.json(content_type=None)
            except ValueError:
                data = None
            if resp.status >= 400:
                message = data.get("message") if isinstance(data, dict) else None
                raise ProviderError(message or resp.reason or "Resend request failed", status=resp.status)
        message_id = data.get("id") if isinstance(data, dict) else None
        self.logger.debug("Resend accepted email %s for %s", message_id, payload.recipient_label)
        return message_id

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Log-only provider for development and tests.

Nothing leaves the process: each email is written to the log and kept in
``sent`` for inspection.
"""

from __future__ import annotations

import uuid

from ..logger import get_logger
from ..models import EmailPayload
from .base import EmailProvider


class LogProvider(EmailProvider):
    name = "log"

    def __init__(self, logger=None):
        self.logger = logger or get_logger("LogProvider")
        self.sent: list[EmailPayload] = []

    async def send(self, payload: EmailPayload) -> str | None:
        message_id = f"log-{uuid.uuid4().hex}"
        self.sent.append(payload)
        self.logger.info(
            "Email not delivered (log provider): id=%s from=%s to=%s subject=%r",
            message_id,
            payload.from_addr,
            payload.recipient_label,
            payload.subject,
        )
        return message_id

# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Base interface for email providers.

Every provider turns an :class:`~mail_dispatch.models.EmailPayload` into one
delivery attempt. Providers do their own error classification: any exception
raised by ``send`` is a failed delivery.
"""

from __future__ import annotations

from ..models import EmailPayload


class ProviderError(RuntimeError):
    """Raised when the provider rejects or fails a delivery.

    Attributes:
        status: HTTP status or SMTP reply code, when known.
        message: Provider supplied error description.
    """

    def __init__(self, message: str, status: int | None = None):
        super().__init__(f"{message} (status {status})" if status is not None else message)
        self.message = message
        self.status = status


class EmailProvider:
    """Abstract base class defining the email provider interface.

    Attributes:
        name: Short backend name used in logs and status output.
    """

    name = "base"

    async def open(self) -> None:
        """Acquire long-lived resources. The default does nothing."""

    async def send(self, payload: EmailPayload) -> str | None:
        """Deliver one email.

        Args:
            payload: The email to send.

        Returns:
            The provider's message identifier, if it returns one.

        Raises:
            ProviderError: If the provider refuses the message.
            NotImplementedError: If called on the base class directly.
        """
        raise NotImplementedError

    async def close(self) -> None:
        """Release resources acquired by ``open`` or lazily by ``send``."""

# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Process-wide email dispatch service.

``DispatchService`` owns one dispatch queue, one email provider and one
metrics collector. It is constructed explicitly by the entry point (server or
CLI) and handed to whoever needs it; its lifecycle follows the application:
``start`` on startup, ``stop`` on shutdown.

Example:
    Wiring the service by hand::

        settings = load_settings()
        service = DispatchService(create_provider(settings), settings=settings)
        await service.start()

        service.queue_notification("casting_invite", emails, params)

        await service.stop()  # waits for the backlog, then closes the provider
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from .config_loader import DispatchSettings
from .dispatch_queue import DispatchQueue, DispatchTask, SendFn
from .logger import get_logger
from .models import EmailPayload
from .notifications import render_notification
from .prometheus import DispatchMetrics
from .providers import EmailProvider


class DispatchService:
    """Central coordinator between callers, the queue and the provider.

    Attributes:
        provider: Email provider used for every send.
        settings: Resolved configuration.
        metrics: Prometheus metrics collector shared with the queue.
        queue: The dispatch queue.
        logger: Logger instance for diagnostic output.
    """

    def __init__(
        self,
        provider: EmailProvider,
        *,
        settings: DispatchSettings | None = None,
        queue: DispatchQueue | None = None,
        metrics: DispatchMetrics | None = None,
        logger=None,
    ):
        self.provider = provider
        self.settings = settings or DispatchSettings()
        self.logger = logger or get_logger("DispatchService")
        if queue is None:
            self.metrics = metrics or DispatchMetrics()
            queue = DispatchQueue(
                inter_send_delay=self.settings.inter_send_delay,
                send_timeout=self.settings.send_timeout,
                metrics=self.metrics,
                log_delivery_activity=self.settings.log_delivery_activity,
            )
        else:
            self.metrics = queue.metrics
        self.queue = queue

    # ----------------------------------------------------------------- lifecycle
    async def start(self) -> None:
        """Open the provider's long-lived resources."""
        await self.provider.open()
        self.logger.info(
            "Mail dispatch started (provider=%s, delay=%.3fs)",
            self.provider.name,
            self.queue.inter_send_delay,
        )

    async def stop(self) -> int:
        """Drain the backlog within the shutdown timeout, then close the provider.

        Returns:
            Number of queued emails dropped because the timeout expired.
        """
        try:
            dropped = await self.queue.stop(timeout=self.settings.shutdown_timeout)
        finally:
            await self.provider.close()
        self.logger.info("Mail dispatch stopped")
        return dropped

    # ------------------------------------------------------------------ queueing
    def _send_fn(self, payload: EmailPayload) -> SendFn:
        async def send() -> str | None:
            return await self.provider.send(payload)

        return send

    def queue_emails(self, payloads: Iterable[EmailPayload]) -> list[DispatchTask]:
        """Queue emails for background delivery and return immediately."""
        tasks = self.queue.submit_many(
            (self._send_fn(payload), payload.recipient_label) for payload in payloads
        )
        if tasks:
            self.logger.info("Queued %d email(s) for background sending", len(tasks))
        return tasks

    def queue_notification(
        self, name: str, recipients: Iterable[str], params: dict[str, Any] | None = None
    ) -> list[DispatchTask]:
        """Render one notification per recipient and queue them in order.

        All emails are rendered before any is queued, so a template error
        leaves the queue untouched.

        Raises:
            UnknownTemplateError: If the template does not exist.
            TemplateParamsError: If required parameters are missing.
            NotificationRenderError: If a recipient or the rendered subject is invalid.
        """
        payloads = [render_notification(name, recipient, params, self.settings) for recipient in recipients]
        return self.queue_emails(payloads)

    async def send_now(self, payload: EmailPayload) -> str | None:
        """Send directly through the provider, bypassing the queue.

        Used where the caller needs immediate feedback, such as test emails.
        Provider errors propagate to the caller.
        """
        self.logger.info("Sending email directly to %s", payload.recipient_label)
        return await self.provider.send(payload)

    def status(self) -> dict[str, Any]:
        return {
            "pending": self.queue.pending,
            "draining": self.queue.draining,
            "inter_send_delay": self.queue.inter_send_delay,
            "backend": self.provider.name,
        }

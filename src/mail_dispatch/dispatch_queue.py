# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""In-memory, rate-limited dispatch queue for asynchronous send operations.

The queue accepts send operations from many independent callers and runs them
one at a time, in submission order, spaced by a fixed inter-send delay so that
an external provider's rate limit is respected. Submitting never waits for the
send: the caller's request can complete while delivery happens in the
background.

Behavior summary:

- Strict FIFO: task N settles before task N+1 is invoked.
- At most one drain loop per queue instance. The loop is started by the first
  ``submit`` on an idle queue and exits as soon as the backlog is empty; an
  idle queue schedules no timers.
- A failing send is logged and skipped. It is never retried and never
  surfaces to the submitter.
- Tasks live only in memory. A process restart loses every task that has not
  been processed yet, so the queue is suitable for best-effort notification
  email only, never for anything that requires guaranteed delivery.
- Without ``send_timeout`` a send that never completes stalls the whole
  backlog behind it.

Example:
    Queueing emails from a request handler::

        queue = DispatchQueue(inter_send_delay=delay_for_rate(2))

        for creator in creators:
            queue.submit(lambda c=creator: provider.send(invite(c)), c.email)

        # On shutdown
        await queue.stop(timeout=30)
"""

from __future__ import annotations

import asyncio
import itertools
import time
from collections import deque
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .logger import get_logger
from .prometheus import DispatchMetrics

SendFn = Callable[[], Awaitable[Any]]
ResultCallback = Callable[[dict[str, Any]], None]

DEFAULT_SENDS_PER_SECOND = 2.0  # Resend allows 2 requests per second

_task_counter = itertools.count(1)


class _DeadlineExpired(Exception):
    """The queue's own per-send deadline elapsed."""


def delay_for_rate(sends_per_second: float) -> float:
    """Return the inter-send delay in seconds for a permitted send rate.

    Raises:
        ValueError: If ``sends_per_second`` is not positive.
    """
    rate = float(sends_per_second)
    if rate <= 0:
        raise ValueError("sends_per_second must be positive")
    return 1.0 / rate


def _new_task_id() -> str:
    return f"{int(time.time() * 1000)}-{next(_task_counter)}"


@dataclass(frozen=True)
class DispatchTask:
    """One unit of queued work.

    Attributes:
        send_fn: Zero-argument coroutine function performing the send.
        recipient: Label used only for logging.
        id: Unique identifier assigned at submission.
    """

    send_fn: SendFn
    recipient: str = "-"
    id: str = field(default_factory=_new_task_id)


class DispatchQueue:
    """Sequential, rate-limited executor of send operations.

    The backlog and the draining flag are only touched from the event loop
    thread, so ``submit`` must be called from a coroutine or callback running
    on that loop.

    Attributes:
        inter_send_delay: Seconds to pause between two consecutive sends.
        send_timeout: Optional per-send timeout in seconds.
        metrics: Prometheus metrics collector.
        logger: Logger receiving one record per settled task.
    """

    def __init__(
        self,
        *,
        inter_send_delay: float = delay_for_rate(DEFAULT_SENDS_PER_SECOND),
        send_timeout: float | None = None,
        metrics: DispatchMetrics | None = None,
        logger=None,
        on_result: ResultCallback | None = None,
        log_delivery_activity: bool = True,
    ):
        """Initialize an idle queue.

        Args:
            inter_send_delay: Minimum spacing between consecutive sends.
            send_timeout: Abandon a send after this many seconds and report it
                as ``timeout``. None waits forever.
            metrics: Prometheus metrics collector. If None, creates new instance.
            logger: Custom logger instance. If None, uses default logger.
            on_result: Optional callback receiving every delivery event.
            log_delivery_activity: Log successful sends at INFO level. Failures
                and timeouts are always logged.

        Raises:
            ValueError: If the delay is negative or the timeout not positive.
        """
        if inter_send_delay < 0:
            raise ValueError("inter_send_delay must not be negative")
        if send_timeout is not None and send_timeout <= 0:
            raise ValueError("send_timeout must be positive")
        self.inter_send_delay = float(inter_send_delay)
        self.send_timeout = float(send_timeout) if send_timeout is not None else None
        self.metrics = metrics or DispatchMetrics()
        self.logger = logger or get_logger("DispatchQueue")
        self._on_result = on_result
        self._log_delivery_activity = bool(log_delivery_activity)

        self._backlog: deque[DispatchTask] = deque()
        self._draining = False
        self._drain_task: asyncio.Task | None = None
        self._in_flight: DispatchTask | None = None

    # ------------------------------------------------------------------ state
    @property
    def pending(self) -> int:
        """Number of tasks waiting in the backlog (the in-flight one excluded)."""
        return len(self._backlog)

    @property
    def draining(self) -> bool:
        return self._draining

    # ------------------------------------------------------------- submission
    def submit(self, send_fn: SendFn, recipient: str = "-") -> DispatchTask:
        """Append a send operation to the backlog and return immediately.

        Starts a drain loop when none is active. The send function is never
        invoked before this method returns.

        Raises:
            RuntimeError: If called outside a running event loop.
        """
        loop = asyncio.get_running_loop()
        task = DispatchTask(send_fn=send_fn, recipient=recipient or "-")
        self._backlog.append(task)
        self.metrics.set_pending(len(self._backlog))
        # Check-and-set with no await in between: only one drain can start.
        if not self._draining:
            self._draining = True
            self._drain_task = loop.create_task(self._drain(), name="dispatch-drain")
        return task

    def submit_many(self, jobs: Iterable[tuple[SendFn, str]]) -> list[DispatchTask]:
        """Submit ``(send_fn, recipient)`` pairs, preserving their order."""
        return [self.submit(send_fn, recipient) for send_fn, recipient in jobs]

    # -------------------------------------------------------------- lifecycle
    async def join(self) -> None:
        """Wait until the backlog is empty and no drain loop is running."""
        while self._drain_task is not None and not self._drain_task.done():
            await asyncio.wait({self._drain_task})

    async def stop(self, timeout: float | None = None) -> int:
        """Let the backlog drain, cancelling it after ``timeout`` seconds.

        Returns:
            Number of tasks dropped without being delivered (the interrupted
            in-flight send included).
        """
        if self._drain_task is None or self._drain_task.done():
            return 0
        try:
            await asyncio.wait_for(self.join(), timeout=timeout)
            return 0
        except asyncio.TimeoutError:
            pass

        drain_task = self._drain_task
        interrupted = self._in_flight
        drain_task.cancel()
        await asyncio.gather(drain_task, return_exceptions=True)
        dropped = len(self._backlog) + (1 if interrupted is not None else 0)
        self._backlog.clear()
        self.metrics.set_pending(0)
        self.logger.warning(
            "Dispatch queue stopped after %ss, %d undelivered task(s) dropped", timeout, dropped
        )
        return dropped

    # ------------------------------------------------------------------ drain
    async def _drain(self) -> None:
        self.logger.debug("Drain loop started (pending=%d)", len(self._backlog))
        try:
            while self._backlog:
                task = self._backlog.popleft()
                self.metrics.set_pending(len(self._backlog))
                await self._run(task)
                if self._backlog:
                    await asyncio.sleep(self.inter_send_delay)
        finally:
            self._draining = False
            self.logger.debug("Drain loop finished")

    async def _run(self, task: DispatchTask) -> None:
        """Invoke one send function and record its outcome."""
        self._in_flight = task
        started = time.monotonic()
        try:
            if self.send_timeout is None:
                await task.send_fn()
            else:
                await self._await_with_deadline(task.send_fn)
        except _DeadlineExpired:
            event = self._build_event(
                task, "timeout", started, f"send timed out after {self.send_timeout}s"
            )
        except Exception as exc:
            event = self._build_event(task, "error", started, _describe(exc))
        else:
            event = self._build_event(task, "sent", started)
        finally:
            self._in_flight = None
        self._publish_result(event)

    async def _await_with_deadline(self, send_fn: SendFn) -> Any:
        """Await ``send_fn`` in a child task bounded by ``send_timeout``.

        Only the expiry of this deadline raises ``_DeadlineExpired``; a
        ``TimeoutError`` raised by the send itself propagates unchanged.
        """
        send = asyncio.ensure_future(send_fn())
        try:
            done, _ = await asyncio.wait({send}, timeout=self.send_timeout)
        except asyncio.CancelledError:
            send.cancel()
            raise
        if not done:
            send.cancel()
            await asyncio.gather(send, return_exceptions=True)
            raise _DeadlineExpired()
        return send.result()

    # ----------------------------------------------------------------- events
    @staticmethod
    def _build_event(
        task: DispatchTask, status: str, started: float, error: str | None = None
    ) -> dict[str, Any]:
        event: dict[str, Any] = {
            "id": task.id,
            "recipient": task.recipient,
            "status": status,
            "duration": round(time.monotonic() - started, 6),
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        }
        if error is not None:
            event["error"] = error
        return event

    def _publish_result(self, event: dict[str, Any]) -> None:
        """Send a delivery event to metrics, the log and the result callback.

        None of these sinks may stop the drain loop: their errors are logged
        and the next task still runs.
        """
        try:
            self._record_metrics(event)
        except Exception:
            self.logger.exception("Metrics update failed for task %s", event["id"])
        try:
            self._log_delivery_event(event)
        except Exception:
            self.logger.exception("Delivery logging failed for task %s", event["id"])
        if self._on_result is None:
            return
        try:
            self._on_result(event)
        except Exception:
            self.logger.exception("Result callback failed for task %s", event["id"])

    def _record_metrics(self, event: dict[str, Any]) -> None:
        self.metrics.observe_send(event["duration"])
        match event["status"]:
            case "sent":
                self.metrics.inc_sent()
            case "timeout":
                self.metrics.inc_timeout()
            case _:
                self.metrics.inc_error()

    def _log_delivery_event(self, event: dict[str, Any]) -> None:
        recipient = event["recipient"]
        match event["status"]:
            case "sent":
                if self._log_delivery_activity:
                    self.logger.info("Email sent successfully to %s (task %s)", recipient, event["id"])
            case "timeout":
                self.logger.warning(
                    "Email to %s abandoned (task %s): %s", recipient, event["id"], event["error"]
                )
            case _:
                self.logger.error(
                    "Failed to send email to %s (task %s): %s", recipient, event["id"], event["error"]
                )


def _describe(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__

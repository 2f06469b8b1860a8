# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Prometheus metrics for monitoring the dispatch queue.

All metrics use the ``mds_`` prefix (mail dispatch service).

Metrics exposed:
    - ``mds_sent_total``: Counter of successful sends.
    - ``mds_errors_total``: Counter of failed sends.
    - ``mds_timeouts_total``: Counter of sends abandoned after the send timeout.
    - ``mds_pending_tasks``: Gauge of tasks waiting in the backlog.
    - ``mds_send_seconds``: Histogram of send durations.

Example:
    Accessing metrics via the REST API::

        GET /metrics
"""

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest


class DispatchMetrics:
    """Prometheus metrics collector for the dispatch queue.

    Attributes:
        registry: The Prometheus CollectorRegistry holding all metrics.
        sent: Counter tracking successful sends.
        errors: Counter tracking failed sends.
        timeouts: Counter tracking timed out sends.
        pending: Gauge showing current backlog depth.
        send_seconds: Histogram of send durations.
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """Initialize metrics with an optional custom registry.

        Args:
            registry: Optional Prometheus CollectorRegistry. If not provided,
                a new registry is created so that several queues (or tests)
                never collide on metric names.
        """
        self.registry = registry or CollectorRegistry()
        self.sent = Counter(
            "mds_sent_total",
            "Total sent emails",
            registry=self.registry,
        )
        self.errors = Counter(
            "mds_errors_total",
            "Total send errors",
            registry=self.registry,
        )
        self.timeouts = Counter(
            "mds_timeouts_total",
            "Total timed out sends",
            registry=self.registry,
        )
        self.pending = Gauge(
            "mds_pending_tasks",
            "Current pending tasks",
            registry=self.registry,
        )
        self.send_seconds = Histogram(
            "mds_send_seconds",
            "Duration of individual sends",
            registry=self.registry,
        )

    def inc_sent(self) -> None:
        self.sent.inc()

    def inc_error(self) -> None:
        self.errors.inc()

    def inc_timeout(self) -> None:
        self.timeouts.inc()

    def set_pending(self, value: int) -> None:
        """Set the pending tasks gauge to a specific value."""
        self.pending.set(value)

    def observe_send(self, seconds: float) -> None:
        self.send_seconds.observe(seconds)

    def generate_latest(self) -> bytes:
        """Export all metrics in Prometheus text exposition format."""
        return generate_latest(self.registry)

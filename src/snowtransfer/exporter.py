"""
Prometheus metrics exporter for the request dispatcher.

Exports low-cardinality metrics only. Route keys, bucket ids, paths and
request ids never become labels.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from prometheus_client import Counter, Gauge
from prometheus_client.registry import CollectorRegistry

if TYPE_CHECKING:
    from snowtransfer.dispatcher import RequestDispatcher
    from snowtransfer.types import DispatcherMetrics


# Labels that would cause cardinality explosion
FORBIDDEN_LABELS = frozenset(
    {
        "route",
        "bucket",
        "bucket_id",
        "endpoint",
        "path",
        "query",
        "request_id",
        "channel_id",
        "guild_id",
        "user_id",
        "webhook_id",
        "token",
    }
)

# (metric attribute on DispatcherMetrics, exported name, help text)
_COUNTERS: tuple[tuple[str, str, str], ...] = (
    ("requests_submitted", "snowtransfer_requests_submitted", "Total requests submitted to the dispatcher"),
    ("requests_dispatched", "snowtransfer_requests_dispatched", "Total transport sends, retries included"),
    ("requests_succeeded", "snowtransfer_requests_succeeded", "Total requests settled with a result"),
    ("requests_failed", "snowtransfer_requests_failed", "Total requests settled with an error"),
    ("requests_retried", "snowtransfer_requests_retried", "Total retries scheduled"),
    ("requests_ratelimited", "snowtransfer_requests_ratelimited", "Total 429 responses received"),
    ("global_ratelimits", "snowtransfer_global_ratelimits", "Total global rate limits engaged"),
    ("requests_cancelled", "snowtransfer_requests_cancelled", "Total requests cancelled before dispatch"),
    ("requests_timed_out", "snowtransfer_requests_timed_out", "Total requests that timed out in queue"),
)


class MetricsExporter:
    """
    Prometheus exporter for RequestDispatcher metrics.

    Counters are exported as deltas of the dispatcher's monotonic counters;
    gauges are set directly.

    Usage:
        registry = CollectorRegistry()
        exporter = MetricsExporter(registry=registry)
        exporter.update(client.dispatcher)
        # generate_latest(registry) -> bytes for a /metrics endpoint
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """
        Initialize metrics exporter.

        Args:
            registry: Prometheus CollectorRegistry. If None, a private one is created.
        """
        self._registry = registry or CollectorRegistry()

        self._counters: dict[str, Counter] = {
            attr: Counter(name, doc, registry=self._registry) for attr, name, doc in _COUNTERS
        }
        self._last: dict[str, int] = dict.fromkeys(self._counters, 0)

        self._current_queued = Gauge(
            "snowtransfer_current_queued",
            "Requests waiting in bucket queues",
            registry=self._registry,
        )
        self._current_in_flight = Gauge(
            "snowtransfer_current_in_flight",
            "Requests currently on the wire",
            registry=self._registry,
        )
        self._bucket_count = Gauge(
            "snowtransfer_bucket_count",
            "Bucket schedulers currently tracked",
            registry=self._registry,
        )
        self._max_queue_wait_ms = Gauge(
            "snowtransfer_max_queue_wait_ms",
            "Longest observed time between submit and first dispatch",
            registry=self._registry,
        )
        self._global_lock_remaining_ms = Gauge(
            "snowtransfer_global_lock_remaining_ms",
            "Milliseconds until the global rate limit lifts (0 when unlocked)",
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def update(self, dispatcher: RequestDispatcher) -> None:
        """
        Sync dispatcher metrics to Prometheus.

        Call periodically (every scrape or on a timer).
        """
        self.update_from_metrics(dispatcher.metrics)
        self._global_lock_remaining_ms.set(dispatcher.global_lock.remaining_ms())

    def update_from_metrics(self, metrics: DispatcherMetrics) -> None:
        self._current_queued.set(metrics.current_queued)
        self._current_in_flight.set(metrics.current_in_flight)
        self._bucket_count.set(metrics.bucket_count)
        self._max_queue_wait_ms.set(metrics.max_queue_wait_ms)

        for attr, counter in self._counters.items():
            current = getattr(metrics, attr)
            delta = current - self._last[attr]
            if delta > 0:
                counter.inc(delta)
            self._last[attr] = current

    def reset_counter_tracking(self) -> None:
        """
        Reset internal counter tracking.

        Use when the dispatcher is replaced. Does NOT reset the Prometheus
        counters themselves.
        """
        self._last = dict.fromkeys(self._counters, 0)


# Counters are exported with the _total suffix by prometheus_client
REQUIRED_METRIC_NAMES: frozenset[str] = frozenset(
    {f"{name}_total" for _, name, _ in _COUNTERS}
    | {
        "snowtransfer_current_queued",
        "snowtransfer_current_in_flight",
        "snowtransfer_bucket_count",
        "snowtransfer_max_queue_wait_ms",
        "snowtransfer_global_lock_remaining_ms",
    }
)

"""
Tests for the Prometheus metrics exporter.

Verifies:
1. No high-cardinality labels (route, bucket, request ids) are exported
2. Every required metric name is present
3. Counters advance by deltas of the dispatcher's counters
"""

from __future__ import annotations

import re

import pytest
from prometheus_client import CollectorRegistry, generate_latest

from snowtransfer.dispatcher import RequestDispatcher
from snowtransfer.exporter import FORBIDDEN_LABELS, REQUIRED_METRIC_NAMES, MetricsExporter
from snowtransfer.ratelimit.global_lock import GlobalLock
from snowtransfer.types import DispatcherMetrics, RouteDescriptor
from tests.fixtures.fake_transport import FakeTransport, ok

BASE_URL = "https://discord.test/api/v10"


def _output(registry: CollectorRegistry) -> str:
    return generate_latest(registry).decode("utf-8")


class TestLabelCardinality:
    """Exported series carry no forbidden labels."""

    def test_no_forbidden_labels_in_output(self) -> None:
        registry = CollectorRegistry()
        exporter = MetricsExporter(registry=registry)
        exporter.update_from_metrics(DispatcherMetrics(requests_submitted=3, bucket_count=2))

        for line in _output(registry).splitlines():
            if line.startswith("#") or "{" not in line:
                continue
            labels = re.findall(r"(\w+)=", line[line.index("{") :])
            assert not set(labels) & FORBIDDEN_LABELS, f"Forbidden label in: {line}"

    def test_forbidden_labels_cover_identifiers(self) -> None:
        assert {"route", "bucket_id", "request_id", "channel_id", "token"} <= FORBIDDEN_LABELS


class TestRequiredMetrics:
    """REQUIRED_METRIC_NAMES."""

    def test_required_names(self) -> None:
        assert "snowtransfer_requests_submitted_total" in REQUIRED_METRIC_NAMES
        assert "snowtransfer_global_ratelimits_total" in REQUIRED_METRIC_NAMES
        assert "snowtransfer_global_lock_remaining_ms" in REQUIRED_METRIC_NAMES
        assert len(REQUIRED_METRIC_NAMES) == 14

    def test_exporter_exports_all_required_metrics(self) -> None:
        registry = CollectorRegistry()
        exporter = MetricsExporter(registry=registry)
        exporter.update(RequestDispatcher(FakeTransport(), BASE_URL))

        output = _output(registry)
        missing = [name for name in REQUIRED_METRIC_NAMES if name not in output]
        assert not missing, f"Missing required metrics: {missing}\n{output}"

    def test_line_format(self) -> None:
        registry = CollectorRegistry()
        MetricsExporter(registry=registry).update_from_metrics(DispatcherMetrics())

        for line in _output(registry).strip().split("\n"):
            assert (
                line.startswith("# HELP") or line.startswith("# TYPE") or re.match(r"^snowtransfer_\w+", line)
            ), f"Invalid line format: {line}"


class TestMetricValues:
    """Gauge and counter values."""

    def test_gauges_set_directly(self) -> None:
        registry = CollectorRegistry()
        exporter = MetricsExporter(registry=registry)

        exporter.update_from_metrics(
            DispatcherMetrics(current_queued=42, current_in_flight=3, bucket_count=7, max_queue_wait_ms=1250)
        )

        output = _output(registry)
        assert "snowtransfer_current_queued 42.0" in output
        assert "snowtransfer_current_in_flight 3.0" in output
        assert "snowtransfer_bucket_count 7.0" in output
        assert "snowtransfer_max_queue_wait_ms 1250.0" in output

    def test_counters_increment_by_delta(self) -> None:
        registry = CollectorRegistry()
        exporter = MetricsExporter(registry=registry)
        metrics = DispatcherMetrics(requests_submitted=50, requests_ratelimited=5)

        exporter.update_from_metrics(metrics)
        output1 = _output(registry)
        assert "snowtransfer_requests_submitted_total 50.0" in output1
        assert "snowtransfer_requests_ratelimited_total 5.0" in output1

        metrics.requests_submitted = 75
        metrics.requests_ratelimited = 8
        exporter.update_from_metrics(metrics)
        output2 = _output(registry)
        assert "snowtransfer_requests_submitted_total 75.0" in output2
        assert "snowtransfer_requests_ratelimited_total 8.0" in output2

    def test_reset_counter_tracking(self) -> None:
        """After a dispatcher swap the new counters accumulate on top."""
        registry = CollectorRegistry()
        exporter = MetricsExporter(registry=registry)

        exporter.update_from_metrics(DispatcherMetrics(requests_succeeded=100))
        # Source went backwards: negative delta ignored
        exporter.update_from_metrics(DispatcherMetrics(requests_succeeded=0))
        assert "snowtransfer_requests_succeeded_total 100.0" in _output(registry)

        exporter.reset_counter_tracking()
        exporter.update_from_metrics(DispatcherMetrics(requests_succeeded=50))
        assert "snowtransfer_requests_succeeded_total 150.0" in _output(registry)

    def test_global_lock_gauge(self) -> None:
        now = [1_000]
        lock = GlobalLock(_time_fn=lambda: now[0])
        lock.lock_for(2_500)
        dispatcher = RequestDispatcher(FakeTransport(), BASE_URL, global_lock=lock, _time_fn=lambda: now[0])
        registry = CollectorRegistry()
        exporter = MetricsExporter(registry=registry)

        exporter.update(dispatcher)
        assert "snowtransfer_global_lock_remaining_ms 2500.0" in _output(registry)

        now[0] = 5_000
        exporter.update(dispatcher)
        assert "snowtransfer_global_lock_remaining_ms 0.0" in _output(registry)


class TestDispatcherActivity:
    """Exporter driven by a live dispatcher."""

    @pytest.mark.asyncio
    async def test_counts_after_requests(self) -> None:
        transport = FakeTransport(ok({"id": "1"}), ok({"id": "2"}))
        dispatcher = RequestDispatcher(transport, BASE_URL)
        registry = CollectorRegistry()
        exporter = MetricsExporter(registry=registry)

        await dispatcher.submit(RouteDescriptor("GET", "/users/@me"))
        await dispatcher.submit(RouteDescriptor("GET", "/channels/1"))
        exporter.update(dispatcher)

        output = _output(registry)
        assert "snowtransfer_requests_submitted_total 2.0" in output
        assert "snowtransfer_requests_succeeded_total 2.0" in output
        assert "snowtransfer_bucket_count 2.0" in output
        assert "snowtransfer_current_in_flight 0.0" in output

        await dispatcher.close()

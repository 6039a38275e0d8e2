"""Unit tests for in-process turn metrics."""

from __future__ import annotations

from agentruntime.observability import degradation_snapshot
from agentruntime.observability import latency_metrics_snapshot
from agentruntime.observability import record_degradation
from agentruntime.observability import record_latency
from agentruntime.observability import reset_latency_metrics


class TestLatencyMetrics:
    def setup_method(self):
        reset_latency_metrics()

    def teardown_method(self):
        reset_latency_metrics()

    def test_records_latency_aggregates(self):
        record_latency(operation="compose_state", duration_ms=10.0, ok=True)
        record_latency(operation="compose_state", duration_ms=30.0, ok=False)

        metrics = latency_metrics_snapshot()["compose_state"]
        assert metrics["count"] == 2
        assert metrics["failures"] == 1
        assert metrics["total_ms"] == 40.0
        assert metrics["mean_ms"] == 20.0
        assert metrics["worst_ms"] == 30.0
        assert metrics["last_ms"] == 30.0

    def test_negative_durations_clamp_to_zero(self):
        record_latency(operation="evaluate", duration_ms=-5.0)

        assert latency_metrics_snapshot()["evaluate"]["total_ms"] == 0.0

    def test_operations_sorted(self):
        record_latency(operation="process_actions", duration_ms=1.0)
        record_latency(operation="knowledge.get", duration_ms=1.0)

        assert list(latency_metrics_snapshot()) == ["knowledge.get", "process_actions"]

    def test_reset_clears_everything(self):
        record_latency(operation="knowledge.set", duration_ms=12.0)
        record_degradation(operation="knowledge.get", reason="backend_error")

        reset_latency_metrics()

        assert latency_metrics_snapshot() == {}
        assert degradation_snapshot() == {}


class TestDegradations:
    def setup_method(self):
        reset_latency_metrics()

    def teardown_method(self):
        reset_latency_metrics()

    def test_counts_by_operation_and_reason(self):
        record_degradation(operation="knowledge.get", reason="empty_query")
        record_degradation(operation="knowledge.get", reason="empty_query")
        record_degradation(operation="knowledge.get", reason="backend_error")

        assert degradation_snapshot() == {
            "knowledge.get": {"backend_error": 1, "empty_query": 2}
        }

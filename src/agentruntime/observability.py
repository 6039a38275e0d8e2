"""In-process turn metrics: operation latency and degraded outcomes."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from threading import Lock

logger = logging.getLogger(__name__)


@dataclass
class OperationStats:
    """Aggregated metrics for one runtime operation."""

    count: int = 0
    failures: int = 0
    total_ms: float = 0.0
    worst_ms: float = 0.0
    last_ms: float = 0.0


class _TurnMetrics:
    def __init__(self) -> None:
        self._lock = Lock()
        self._operations: dict[str, OperationStats] = {}
        self._degradations: Counter[tuple[str, str]] = Counter()

    def observe(self, operation: str, duration_ms: float, ok: bool) -> None:
        elapsed = max(float(duration_ms), 0.0)
        with self._lock:
            stats = self._operations.setdefault(operation, OperationStats())
            stats.count += 1
            stats.failures += 0 if ok else 1
            stats.total_ms += elapsed
            stats.last_ms = elapsed
            stats.worst_ms = max(stats.worst_ms, elapsed)
        logger.debug("op=%s elapsed_ms=%.3f ok=%s", operation, elapsed, ok)

    def degrade(self, operation: str, reason: str) -> None:
        with self._lock:
            self._degradations[(operation, reason)] += 1
        logger.info("degraded op=%s reason=%s", operation, reason)

    def latency(self) -> dict[str, dict[str, float | int]]:
        with self._lock:
            out: dict[str, dict[str, float | int]] = {}
            for operation in sorted(self._operations):
                stats = self._operations[operation]
                mean = stats.total_ms / stats.count if stats.count else 0.0
                out[operation] = {
                    "count": stats.count,
                    "failures": stats.failures,
                    "total_ms": round(stats.total_ms, 3),
                    "mean_ms": round(mean, 3),
                    "worst_ms": round(stats.worst_ms, 3),
                    "last_ms": round(stats.last_ms, 3),
                }
            return out

    def degradations(self) -> dict[str, dict[str, int]]:
        with self._lock:
            out: dict[str, dict[str, int]] = {}
            for (operation, reason), hits in sorted(self._degradations.items()):
                out.setdefault(operation, {})[reason] = hits
            return out

    def clear(self) -> None:
        with self._lock:
            self._operations.clear()
            self._degradations.clear()


_METRICS = _TurnMetrics()


def record_latency(*, operation: str, duration_ms: float, ok: bool = True) -> None:
    """Record one latency sample for *operation*."""
    _METRICS.observe(operation, duration_ms, ok)


def record_degradation(*, operation: str, reason: str) -> None:
    """Count one degraded-but-successful outcome (e.g. knowledge unavailable)."""
    _METRICS.degrade(operation, reason)


def latency_metrics_snapshot() -> dict[str, dict[str, float | int]]:
    """Return current latency aggregates keyed by operation."""
    return _METRICS.latency()


def degradation_snapshot() -> dict[str, dict[str, int]]:
    """Return degraded-outcome counters keyed by operation then reason."""
    return _METRICS.degradations()


def reset_latency_metrics() -> None:
    """Clear all aggregates (test helper)."""
    _METRICS.clear()

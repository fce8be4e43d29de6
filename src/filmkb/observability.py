"""In-process ingestion metrics: operation latency and per-source outcomes."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from threading import Lock

logger = logging.getLogger(__name__)


@dataclass
class LatencySummary:
    """Aggregated latency metrics for one operation."""

    count: int = 0
    error_count: int = 0
    total_ms: float = 0.0
    min_ms: float = 0.0
    max_ms: float = 0.0
    last_ms: float = 0.0


class _IngestionMetrics:
    def __init__(self) -> None:
        self._lock = Lock()
        self._latency: dict[str, LatencySummary] = {}
        self._outcomes: dict[str, Counter[str]] = {}

    def record_latency(self, *, operation: str, duration_ms: float, ok: bool) -> None:
        duration = max(float(duration_ms), 0.0)
        with self._lock:
            summary = self._latency.setdefault(operation, LatencySummary())
            summary.count += 1
            if not ok:
                summary.error_count += 1
            summary.total_ms += duration
            summary.last_ms = duration
            if summary.count == 1:
                summary.min_ms = summary.max_ms = duration
            else:
                summary.min_ms = min(summary.min_ms, duration)
                summary.max_ms = max(summary.max_ms, duration)

        logger.debug(
            "latency operation=%s duration_ms=%.3f ok=%s",
            operation,
            duration,
            ok,
        )

    def record_outcome(self, *, source: str, status: str) -> None:
        with self._lock:
            self._outcomes.setdefault(source, Counter())[status] += 1

    def latency_snapshot(self) -> dict[str, dict[str, float | int]]:
        with self._lock:
            return {
                operation: {
                    "count": summary.count,
                    "error_count": summary.error_count,
                    "total_ms": round(summary.total_ms, 3),
                    "avg_ms": round(
                        summary.total_ms / summary.count if summary.count else 0.0,
                        3,
                    ),
                    "min_ms": round(summary.min_ms, 3),
                    "max_ms": round(summary.max_ms, 3),
                    "last_ms": round(summary.last_ms, 3),
                }
                for operation, summary in sorted(self._latency.items())
            }

    def outcome_snapshot(self) -> dict[str, dict[str, int]]:
        with self._lock:
            return {
                source: dict(sorted(counts.items()))
                for source, counts in sorted(self._outcomes.items())
            }

    def reset(self) -> None:
        with self._lock:
            self._latency.clear()
            self._outcomes.clear()


_METRICS = _IngestionMetrics()


def record_latency(*, operation: str, duration_ms: float, ok: bool = True) -> None:
    """Record one latency sample."""
    _METRICS.record_latency(operation=operation, duration_ms=duration_ms, ok=ok)


def record_source_outcome(*, source: str, status: str) -> None:
    """Count one settled source fetch (``done``, ``empty`` or ``error``)."""
    _METRICS.record_outcome(source=source, status=status)


def latency_metrics_snapshot() -> dict[str, dict[str, float | int]]:
    """Return current in-process latency aggregates."""
    return _METRICS.latency_snapshot()


def source_outcome_snapshot() -> dict[str, dict[str, int]]:
    """Return per-source outcome counts."""
    return _METRICS.outcome_snapshot()


def reset_latency_metrics() -> None:
    """Clear latency aggregates and outcome counters (test helper)."""
    _METRICS.reset()

"""In-process request metrics, keyed by route label.

Counts are running totals; latency keeps the most recent samples per
label for a simple p95. State lives for the process lifetime only.
"""

from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass, field
from threading import Lock

MAX_SAMPLES = 200


@dataclass
class _RouteStats:
    count: int = 0
    error_count: int = 0
    latencies: deque[float] = field(default_factory=lambda: deque(maxlen=MAX_SAMPLES))


def p95(values: list[float]) -> float:
    """Nearest-rank (floor) 95th percentile; 0 for no samples."""
    if not values:
        return 0
    ordered = sorted(values)
    return ordered[math.floor(0.95 * (len(ordered) - 1))]


class MetricsRegistry:
    """Thread-safe rolling metrics, one instance per application."""

    def __init__(self, max_samples: int = MAX_SAMPLES) -> None:
        self._max_samples = max_samples
        self._routes: dict[str, _RouteStats] = {}
        self._lock = Lock()

    def record(self, label: str, latency_ms: float, status_code: int) -> None:
        key = label or "unknown"
        with self._lock:
            stats = self._routes.get(key)
            if stats is None:
                stats = _RouteStats(latencies=deque(maxlen=self._max_samples))
                self._routes[key] = stats
            stats.count += 1
            if status_code >= 400:
                stats.error_count += 1
            stats.latencies.append(latency_ms)

    def snapshot(self) -> dict[str, dict[str, int | float]]:
        with self._lock:
            return {
                label: {
                    "count": stats.count,
                    "error_count": stats.error_count,
                    "p95_ms": p95(list(stats.latencies)),
                }
                for label, stats in self._routes.items()
            }

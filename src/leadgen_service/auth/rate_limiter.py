"""In-memory rate limiters.

Both limiters are process-local and approximate under concurrency.
For multi-instance deployments: replace with a shared backend.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from threading import Lock

Clock = Callable[[], float]


class OperationClass(StrEnum):
    CREATE = "create"
    LIST = "list"


@dataclass(frozen=True)
class Verdict:
    allowed: bool
    limit: int
    remaining: int
    reset: int = 1


@dataclass
class _Bucket:
    second: int
    count: int = 0


class FixedWindowRateLimiter:
    """Per-second fixed-window counters keyed by (tenant, operation class).

    A bucket resets whenever the observed wall-clock second differs from
    the one it last recorded. Thread-safe via Lock.
    """

    def __init__(
        self,
        limits: dict[OperationClass, int],
        clock: Clock = time.time,
    ) -> None:
        self._limits = dict(limits)
        self._clock = clock
        self._buckets: dict[str, _Bucket] = {}
        self._lock = Lock()

    def check(self, tenant_id: str, op: OperationClass) -> Verdict:
        """Count one request and report whether it fits in the current second."""
        limit = self._limits[op]
        second = int(self._clock())
        key = f"{op}:{tenant_id}"

        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None or bucket.second != second:
                bucket = _Bucket(second=second)
                self._buckets[key] = bucket
            bucket.count += 1
            count = bucket.count

        return Verdict(
            allowed=count <= limit,
            limit=limit,
            remaining=max(0, limit - count),
        )

    def cleanup(self) -> int:
        """Drop buckets from past seconds. Call periodically.

        Returns:
            Number of keys cleaned up.
        """
        second = int(self._clock())
        with self._lock:
            stale = [k for k, b in self._buckets.items() if b.second != second]
            for key in stale:
                del self._buckets[key]
        return len(stale)


class ScanRateLimiter:
    """Per (tenant, caller address) scan counter capped per window.

    Counters are not expired per key; ``sweep`` clears all of them once
    the window has elapsed and is driven by a periodic task.
    """

    def __init__(
        self,
        max_per_window: int = 60,
        window_seconds: float = 60.0,
        clock: Clock = time.monotonic,
    ) -> None:
        self._max = max_per_window
        self._window = window_seconds
        self._clock = clock
        self._counts: dict[str, int] = {}
        self._window_started = clock()
        self._lock = Lock()

    @property
    def window_seconds(self) -> float:
        return self._window

    def check(self, tenant_id: str, address: str) -> Verdict:
        key = f"{tenant_id}:{address}"
        with self._lock:
            count = self._counts.get(key, 0) + 1
            self._counts[key] = count
        return Verdict(
            allowed=count <= self._max,
            limit=self._max,
            remaining=max(0, self._max - count),
            reset=max(1, int(self._window_started + self._window - self._clock())),
        )

    def sweep(self) -> int:
        """Reset all counters if the current window has elapsed.

        Returns:
            Number of keys cleared (0 if the window is still open).
        """
        now = self._clock()
        with self._lock:
            if now - self._window_started < self._window:
                return 0
            cleared = len(self._counts)
            self._counts.clear()
            self._window_started = now
        return cleared

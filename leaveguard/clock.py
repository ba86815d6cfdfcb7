"""Millisecond clocks used by the rate limiter."""

import threading
import time


class SystemClock:
    """Wall-clock time in integer epoch milliseconds."""

    def now_ms(self) -> int:
        return time.time_ns() // 1_000_000


class ManualClock:
    """Clock that only moves when told to. Used by tests and simulations."""

    def __init__(self, start_ms: int = 0) -> None:
        self._now = start_ms
        self._lock = threading.Lock()

    def now_ms(self) -> int:
        with self._lock:
            return self._now

    def set(self, value_ms: int) -> None:
        with self._lock:
            self._now = value_ms

    def advance(self, delta_ms: int) -> int:
        """Move the clock forward by *delta_ms* and return the new time."""
        with self._lock:
            self._now += delta_ms
            return self._now

"""In-memory sliding-window rate limiter.

Each store key (identifier and operation category) owns a deque of request
timestamps in epoch milliseconds. A check prunes the expired prefix, then
admits the request only if fewer than ``max_requests`` timestamps remain.
A timestamp exactly ``window_ms`` old is still inside the window.
State is per process: several workers each enforce their own quota.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Hashable, Iterable, Optional, Union

from leaveguard.clock import SystemClock
from leaveguard.quotas import Quota, longest_window_ms

logger = logging.getLogger(__name__)

DEFAULT_RECLAIM_INTERVAL = 60.0  # seconds


@dataclass
class WindowRecord:
    """Recent admitted timestamps for one store key, oldest first."""

    timestamps: Deque[int] = field(default_factory=deque)
    last_touched: int = 0

    def prune(self, cutoff_ms: int) -> None:
        """Drop timestamps older than *cutoff_ms*."""
        while self.timestamps and self.timestamps[0] < cutoff_ms:
            self.timestamps.popleft()


@dataclass(frozen=True)
class AdmissionResult:
    allowed: bool
    limit: int
    remaining: int
    reset_time_ms: int


@dataclass(frozen=True)
class AdmissionFault:
    """An unexpected error raised while checking a request."""

    identifier: str
    category: str
    timestamp_ms: int
    error: BaseException


class SlidingWindowLimiter:
    """Thread-safe sliding-window admission control.

    Args:
        quotas: Quotas the service is configured with. The longest window
            among them bounds how long reclamation keeps a record.
        clock: Object with ``now_ms()``. Defaults to wall-clock time.
        reclaim_interval: Seconds between background reclamation passes.
        start_reclaimer: Start the reclamation thread on construction.
        shared_key: Key records by bare identifier, so every category
            counts against one timestamp list. Off by default.
    """

    def __init__(self, quotas: Iterable[Quota] = (), clock=None,
                 reclaim_interval: float = DEFAULT_RECLAIM_INTERVAL,
                 start_reclaimer: bool = True, shared_key: bool = False) -> None:
        if reclaim_interval <= 0:
            raise ValueError(f"reclaim_interval must be > 0, got {reclaim_interval}")
        self._clock = clock or SystemClock()
        self._records: dict[Hashable, WindowRecord] = {}
        self._lock = threading.Lock()
        self._horizon_ms = longest_window_ms(quotas)
        self.reclaim_interval = reclaim_interval
        self.shared_key = shared_key
        self._stop_event: Optional[threading.Event] = None
        self._reclaimer: Optional[threading.Thread] = None

        if start_reclaimer:
            self.start()

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def _key(self, identifier: str, quota: Quota) -> Hashable:
        if self.shared_key:
            return identifier
        return (identifier, quota.category)

    def check(self, identifier: str, quota: Quota) -> AdmissionResult:
        """Admit or deny one request from *identifier* under *quota*.

        Admitted requests are recorded; denied ones do not consume a slot.
        """
        key = self._key(identifier, quota)

        with self._lock:
            now = self._clock.now_ms()
            if quota.window_ms > self._horizon_ms:
                self._horizon_ms = quota.window_ms

            record = self._records.get(key)
            if record is None:
                record = WindowRecord(last_touched=now)
                self._records[key] = record

            record.prune(now - quota.window_ms)
            count = len(record.timestamps)
            record.last_touched = now

            if count < quota.max_requests:
                record.timestamps.append(now)
                return AdmissionResult(
                    allowed=True,
                    limit=quota.max_requests,
                    remaining=quota.max_requests - count - 1,
                    reset_time_ms=record.timestamps[0] + quota.window_ms,
                )

            return AdmissionResult(
                allowed=False,
                limit=quota.max_requests,
                remaining=0,
                reset_time_ms=record.timestamps[0] + quota.window_ms,
            )

    def try_check(self, identifier: str, quota: Quota) -> Union[AdmissionResult, AdmissionFault]:
        """Like :meth:`check`, but return unexpected errors as an ``AdmissionFault``."""
        try:
            return self.check(identifier, quota)
        except Exception as exc:
            return AdmissionFault(
                identifier=identifier,
                category=quota.category,
                timestamp_ms=time.time_ns() // 1_000_000,
                error=exc,
            )

    def reset(self, identifier: Optional[str] = None) -> None:
        """Forget *identifier* across all categories, or everything if None."""
        with self._lock:
            if identifier is None:
                self._records.clear()
                return
            for key in list(self._records):
                owner = key if self.shared_key else key[0]
                if owner == identifier:
                    del self._records[key]

    def now_ms(self) -> int:
        """Current time according to the limiter's clock."""
        return self._clock.now_ms()

    def size(self) -> int:
        """Number of records currently held."""
        with self._lock:
            return len(self._records)

    # ------------------------------------------------------------------
    # Reclamation
    # ------------------------------------------------------------------

    def reclaim(self) -> int:
        """Prune every record against the longest window; drop empty ones.

        Returns:
            Number of records removed.
        """
        with self._lock:
            cutoff = self._clock.now_ms() - self._horizon_ms
            empty = []
            for key, record in self._records.items():
                record.prune(cutoff)
                if not record.timestamps:
                    empty.append(key)
            for key in empty:
                del self._records[key]
            remaining = len(self._records)

        if empty:
            logger.debug("Reclaimed %d rate-limit records (%d left)", len(empty), remaining)
        return len(empty)

    def _run_reclaimer(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self.reclaim_interval):
            try:
                self.reclaim()
            except Exception:
                logger.exception("Rate-limit reclamation pass failed")

    @property
    def running(self) -> bool:
        return self._reclaimer is not None and self._reclaimer.is_alive()

    def start(self) -> None:
        """Start the background reclamation thread (no-op if running)."""
        if self.running:
            return
        self._stop_event = threading.Event()
        self._reclaimer = threading.Thread(
            target=self._run_reclaimer,
            args=(self._stop_event,),
            name="leaveguard-reclaimer",
            daemon=True,
        )
        self._reclaimer.start()

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Stop the reclamation thread and wait for it to exit."""
        if self._stop_event is not None:
            self._stop_event.set()
        if self._reclaimer is not None:
            self._reclaimer.join(timeout)
        self._reclaimer = None
        self._stop_event = None

    def __enter__(self) -> "SlidingWindowLimiter":
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()

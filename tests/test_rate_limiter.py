"""Unit tests for the in-memory sliding-window rate limiter."""

import threading
import time
from unittest.mock import MagicMock

import pytest

from leaveguard.clock import ManualClock
from leaveguard.quotas import Quota
from leaveguard.rate_limiter import AdmissionFault, SlidingWindowLimiter


def _limiter(clock=None, quotas=(), **kwargs) -> SlidingWindowLimiter:
    """Limiter with a manual clock and no background thread."""
    return SlidingWindowLimiter(
        quotas=quotas,
        clock=clock or ManualClock(0),
        start_reclaimer=False,
        **kwargs,
    )


QUOTA = Quota("create-leave-request", window_ms=10_000, max_requests=10)


# ---------------------------------------------------------------------------
# Admission
# ---------------------------------------------------------------------------

def test_allows_under_limit():
    """Requests under the limit are allowed."""
    limiter = _limiter()
    quota = Quota("read-operation", window_ms=60_000, max_requests=3)
    assert limiter.check("user:1", quota).allowed is True
    assert limiter.check("user:1", quota).allowed is True
    assert limiter.check("user:1", quota).allowed is True


def test_blocks_over_limit():
    """Request exceeding the limit is denied."""
    limiter = _limiter()
    quota = Quota("read-operation", window_ms=60_000, max_requests=2)
    assert limiter.check("user:1", quota).allowed is True
    assert limiter.check("user:1", quota).allowed is True
    assert limiter.check("user:1", quota).allowed is False


def test_concrete_scenario():
    """10 quick checks pass, the 11th is denied, the oldest expiry frees a slot."""
    clock = ManualClock(0)
    limiter = _limiter(clock)

    for t in range(10):
        clock.set(t)
        result = limiter.check("user:42", QUOTA)
        assert result.allowed is True
    assert result.remaining == 0

    clock.set(9500)
    denied = limiter.check("user:42", QUOTA)
    assert denied.allowed is False
    assert denied.remaining == 0
    assert denied.reset_time_ms == 10_000

    clock.set(10_001)
    result = limiter.check("user:42", QUOTA)
    assert result.allowed is True
    assert result.remaining == 0


def test_window_boundary_is_inclusive():
    """A timestamp exactly one window old still counts."""
    clock = ManualClock(0)
    limiter = _limiter(clock)
    quota = Quota("approve-leave", window_ms=1000, max_requests=1)

    assert limiter.check("user:1", quota).allowed is True
    clock.set(1000)
    assert limiter.check("user:1", quota).allowed is False
    clock.set(1001)
    assert limiter.check("user:1", quota).allowed is True


def test_sliding_not_fixed_window():
    """A slot frees up as soon as the oldest request leaves the window."""
    clock = ManualClock(0)
    limiter = _limiter(clock)
    quota = Quota("approve-leave", window_ms=1000, max_requests=2)

    limiter.check("user:1", quota)          # t=0
    clock.set(600)
    limiter.check("user:1", quota)          # t=600
    clock.set(900)
    assert limiter.check("user:1", quota).allowed is False

    # Only t=0 has expired; t=600 is still counted.
    clock.set(1001)
    result = limiter.check("user:1", quota)
    assert result.allowed is True
    assert result.remaining == 0
    assert result.reset_time_ms == 600 + 1000


def test_remaining_accounting():
    """remaining counts down and is 0 on denial."""
    limiter = _limiter()
    quota = Quota("read-operation", window_ms=60_000, max_requests=3)
    assert limiter.check("user:1", quota).remaining == 2
    assert limiter.check("user:1", quota).remaining == 1
    assert limiter.check("user:1", quota).remaining == 0
    assert limiter.check("user:1", quota).remaining == 0


def test_denied_does_not_consume_slot():
    """Denied checks are not recorded."""
    clock = ManualClock(0)
    limiter = _limiter(clock)
    quota = Quota("approve-leave", window_ms=1000, max_requests=1)

    limiter.check("user:1", quota)
    for t in (100, 200, 300):
        clock.set(t)
        assert limiter.check("user:1", quota).allowed is False

    clock.set(1001)
    assert limiter.check("user:1", quota).allowed is True


def test_reset_time_of_first_request():
    """An empty record resets one window after now."""
    clock = ManualClock(5000)
    limiter = _limiter(clock)
    result = limiter.check("user:1", QUOTA)
    assert result.reset_time_ms == 5000 + QUOTA.window_ms
    assert result.limit == QUOTA.max_requests


def test_separate_identifiers_independent():
    """Different identifiers have independent limits."""
    limiter = _limiter()
    quota = Quota("read-operation", window_ms=60_000, max_requests=1)
    assert limiter.check("user:1", quota).allowed is True
    assert limiter.check("ip:10.0.0.1", quota).allowed is True
    assert limiter.check("user:1", quota).allowed is False
    assert limiter.check("ip:10.0.0.1", quota).allowed is False


def test_categories_keyed_separately():
    """Each category keeps its own counter for the same identifier."""
    limiter = _limiter()
    create = Quota("create-leave-request", window_ms=10_000, max_requests=1)
    read = Quota("read-operation", window_ms=60_000, max_requests=5)

    assert limiter.check("user:1", create).allowed is True
    assert limiter.check("user:1", create).allowed is False
    assert limiter.check("user:1", read).remaining == 4
    assert limiter.size() == 2


def test_shared_key_couples_categories():
    """With shared_key, all categories count against one list."""
    limiter = _limiter(shared_key=True)
    create = Quota("create-leave-request", window_ms=10_000, max_requests=2)
    read = Quota("read-operation", window_ms=60_000, max_requests=5)

    limiter.check("user:1", read)
    limiter.check("user:1", read)
    assert limiter.check("user:1", create).allowed is False
    assert limiter.size() == 1


def test_reset_single_identifier():
    limiter = _limiter()
    quota = Quota("read-operation", window_ms=60_000, max_requests=1)
    limiter.check("user:1", quota)
    limiter.check("user:1", QUOTA)
    limiter.check("user:2", quota)

    limiter.reset("user:1")

    assert limiter.size() == 1
    assert limiter.check("user:1", quota).allowed is True


def test_reset_all():
    limiter = _limiter()
    limiter.check("user:1", QUOTA)
    limiter.check("user:2", QUOTA)
    limiter.reset()
    assert limiter.size() == 0


def test_concurrent_checks_never_exceed_quota():
    """Parallel checks for one identifier admit exactly max_requests."""
    limiter = _limiter()
    quota = Quota("read-operation", window_ms=60_000, max_requests=50)
    allowed = []
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        for _ in range(25):
            if limiter.check("user:1", quota).allowed:
                allowed.append(1)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(allowed) == 50


def test_try_check_returns_fault():
    """try_check converts unexpected errors into an AdmissionFault."""
    clock = MagicMock()
    clock.now_ms.side_effect = RuntimeError("clock broke")
    limiter = _limiter(clock)

    outcome = limiter.try_check("user:1", QUOTA)

    assert isinstance(outcome, AdmissionFault)
    assert outcome.identifier == "user:1"
    assert outcome.category == QUOTA.category
    assert isinstance(outcome.error, RuntimeError)


def test_invalid_reclaim_interval():
    with pytest.raises(ValueError):
        SlidingWindowLimiter(reclaim_interval=0, start_reclaimer=False)


# ---------------------------------------------------------------------------
# Reclamation
# ---------------------------------------------------------------------------

def test_reclaim_removes_expired_records():
    """Records whose timestamps all expired are dropped."""
    clock = ManualClock(0)
    limiter = _limiter(clock, quotas=[QUOTA])
    limiter.check("user:1", QUOTA)
    limiter.check("user:2", QUOTA)
    assert limiter.size() == 2

    clock.set(QUOTA.window_ms + 1)
    assert limiter.reclaim() == 2
    assert limiter.size() == 0


def test_reclaim_keeps_active_records():
    clock = ManualClock(0)
    limiter = _limiter(clock, quotas=[QUOTA])
    limiter.check("user:1", QUOTA)
    clock.set(5000)
    limiter.check("user:2", QUOTA)

    clock.set(QUOTA.window_ms + 1)
    assert limiter.reclaim() == 1
    assert limiter.size() == 1
    assert limiter.check("user:2", QUOTA).remaining == QUOTA.max_requests - 2


def test_reclaim_uses_longest_window():
    """A record outlives its own window until the longest window passes."""
    clock = ManualClock(0)
    short = Quota("create-leave-request", window_ms=1000, max_requests=5)
    long = Quota("document-upload", window_ms=60_000, max_requests=5)
    limiter = _limiter(clock, quotas=[short, long])

    limiter.check("user:1", short)
    clock.set(2000)
    assert limiter.reclaim() == 0
    clock.set(60_001)
    assert limiter.reclaim() == 1


def test_reclaimer_thread_runs_and_stops():
    """Background thread reclaims on its interval and stops cleanly."""
    clock = ManualClock(0)
    limiter = SlidingWindowLimiter(quotas=[QUOTA], clock=clock, reclaim_interval=0.01)
    try:
        assert limiter.running is True
        limiter.check("user:1", QUOTA)
        clock.set(QUOTA.window_ms + 1)

        for _ in range(200):
            if limiter.size() == 0:
                break
            time.sleep(0.01)
        assert limiter.size() == 0
    finally:
        limiter.stop()
    assert limiter.running is False


def test_context_manager_stops_reclaimer():
    with SlidingWindowLimiter(reclaim_interval=10) as limiter:
        assert limiter.running is True
    assert limiter.running is False

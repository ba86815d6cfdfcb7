"""Turn admission results into HTTP quota headers and 429 bodies."""

import math
from typing import Optional

from leaveguard.clock import SystemClock
from leaveguard.rate_limiter import AdmissionResult

RATE_LIMIT_ERROR = "rate_limit_exceeded"


def retry_after_seconds(result: AdmissionResult, now_ms: Optional[int] = None) -> int:
    """Whole seconds until the oldest counted request leaves the window."""
    if now_ms is None:
        now_ms = SystemClock().now_ms()
    return max(0, math.ceil((result.reset_time_ms - now_ms) / 1000))


def format_headers(result: AdmissionResult, now_ms: Optional[int] = None) -> dict[str, str]:
    """Build ``X-RateLimit-*`` headers, plus ``Retry-After`` on denial.

    ``X-RateLimit-Reset`` is in epoch seconds, rounded up. *now_ms* is only
    read for ``Retry-After`` and defaults to the wall clock.
    """
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(math.ceil(result.reset_time_ms / 1000)),
    }
    if not result.allowed:
        headers["Retry-After"] = str(retry_after_seconds(result, now_ms))
    return headers


def rate_limit_body(result: AdmissionResult, now_ms: Optional[int] = None) -> dict:
    """Error payload returned with a 429 response."""
    retry = retry_after_seconds(result, now_ms)
    return {
        "error": RATE_LIMIT_ERROR,
        "message": f"Rate limit exceeded. Try again in {retry} seconds.",
        "retry_after": retry,
    }

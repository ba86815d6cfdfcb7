"""LeaveGuard: sliding-window rate limiting for a leave-management API."""

from leaveguard.clock import ManualClock, SystemClock
from leaveguard.quotas import DEFAULT_QUOTAS, Quota
from leaveguard.identifier import resolve_identifier
from leaveguard.rate_limiter import AdmissionFault, AdmissionResult, SlidingWindowLimiter
from leaveguard.headers import format_headers
from leaveguard.guard import check_rate_limit

__all__ = [
    "ManualClock", "SystemClock", "DEFAULT_QUOTAS", "Quota",
    "resolve_identifier", "AdmissionFault", "AdmissionResult",
    "SlidingWindowLimiter", "format_headers", "check_rate_limit",
]
__version__ = "0.1.0"

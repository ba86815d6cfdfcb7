"""Handler-side rate-limit check with fail-open fault handling."""

import logging
from datetime import datetime, timezone
from typing import Mapping, Optional

from leaveguard.identifier import redact_identifier, resolve_identifier
from leaveguard.quotas import Quota
from leaveguard.rate_limiter import AdmissionFault, AdmissionResult, SlidingWindowLimiter

logger = logging.getLogger(__name__)


def _iso(epoch_ms: int) -> str:
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc).isoformat()


def fail_open(fault: AdmissionFault, quota: Quota) -> AdmissionResult:
    """Allowed result used when the limiter itself fails."""
    return AdmissionResult(
        allowed=True,
        limit=quota.max_requests,
        remaining=quota.max_requests,
        reset_time_ms=fault.timestamp_ms + quota.window_ms,
    )


def check_rate_limit(limiter: SlidingWindowLimiter, headers: Mapping[str, str],
                     principal_id: Optional[str], quota: Quota) -> AdmissionResult:
    """Resolve the caller's identifier and run the admission check.

    A fault inside the limiter is logged and the request is admitted
    (fail-open). Denials are logged and returned, never raised.
    """
    identifier = resolve_identifier(headers, principal_id)
    outcome = limiter.try_check(identifier, quota)

    if isinstance(outcome, AdmissionFault):
        logger.error(
            "Rate limiter fault for %s (category=%s, at=%s); allowing request",
            redact_identifier(outcome.identifier),
            outcome.category,
            _iso(outcome.timestamp_ms),
            exc_info=outcome.error,
        )
        return fail_open(outcome, quota)

    if not outcome.allowed:
        logger.warning(
            "Rate limit exceeded for %s (category=%s, limit=%d, window=%dms, reset=%s)",
            redact_identifier(identifier),
            quota.category,
            quota.max_requests,
            quota.window_ms,
            _iso(outcome.reset_time_ms),
        )
    return outcome

"""Derive the admission-control key for an inbound request."""

from typing import Mapping, Optional

UNKNOWN_ADDRESS = "unknown"


def _header(headers: Mapping[str, str], name: str) -> str:
    """Case-insensitive header lookup that tolerates plain dicts."""
    value = headers.get(name)
    if value is None:
        lowered = name.lower()
        for key, candidate in headers.items():
            if key.lower() == lowered:
                value = candidate
                break
    return (value or "").strip()


def resolve_identifier(headers: Mapping[str, str], principal_id: Optional[str] = None) -> str:
    """Return ``user:<principal_id>`` or ``ip:<address>``.

    Authenticated callers are keyed by principal. Anonymous callers are keyed
    by the first ``X-Forwarded-For`` hop, then ``X-Real-IP``, then
    ``ip:unknown``.
    """
    if principal_id:
        return f"user:{principal_id}"

    address = _header(headers, "X-Forwarded-For").split(",")[0].strip()
    if not address:
        address = _header(headers, "X-Real-IP")
    return f"ip:{address or UNKNOWN_ADDRESS}"


def redact_identifier(identifier: str) -> str:
    """Shorten user identifiers for log output."""
    if identifier.startswith("user:"):
        principal = identifier[len("user:"):]
        if len(principal) > 8:
            return f"user:{principal[:8]}..."
    return identifier

"""Quota catalog: one fixed sliding-window quota per operation category."""

from dataclasses import dataclass
from typing import Mapping, Optional

CREATE_LEAVE_REQUEST = "create-leave-request"
APPROVE_LEAVE = "approve-leave"
READ_OPERATION = "read-operation"
DOCUMENT_UPLOAD = "document-upload"
ADMIN_OPERATION = "admin-operation"


@dataclass(frozen=True)
class Quota:
    """At most *max_requests* per rolling *window_ms* for one category."""

    category: str
    window_ms: int
    max_requests: int

    def __post_init__(self) -> None:
        if self.window_ms <= 0:
            raise ValueError(f"Quota {self.category!r}: window_ms must be > 0, got {self.window_ms}")
        if self.max_requests <= 0:
            raise ValueError(
                f"Quota {self.category!r}: max_requests must be > 0, got {self.max_requests}"
            )


DEFAULT_QUOTAS: dict[str, Quota] = {
    CREATE_LEAVE_REQUEST: Quota(CREATE_LEAVE_REQUEST, window_ms=10 * 1000, max_requests=10),
    APPROVE_LEAVE: Quota(APPROVE_LEAVE, window_ms=60 * 1000, max_requests=30),
    READ_OPERATION: Quota(READ_OPERATION, window_ms=60 * 1000, max_requests=100),
    DOCUMENT_UPLOAD: Quota(DOCUMENT_UPLOAD, window_ms=60 * 60 * 1000, max_requests=50),
    ADMIN_OPERATION: Quota(ADMIN_OPERATION, window_ms=60 * 1000, max_requests=200),
}


def parse_overrides(raw: Optional[str]) -> dict[str, tuple[int, int]]:
    """Parse ``category=window_ms:max_requests`` pairs separated by commas.

    Example: ``"create-leave-request=5000:3,read-operation=60000:500"``.

    Raises:
        ValueError: If an entry is malformed.
    """
    overrides: dict[str, tuple[int, int]] = {}
    if not raw:
        return overrides

    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        category, sep, spec = entry.partition("=")
        window, sep2, limit = spec.partition(":")
        if not sep or not sep2 or not category.strip():
            raise ValueError(
                f"LEAVEGUARD_QUOTAS: expected 'category=window_ms:max_requests', got {entry!r}"
            )
        try:
            overrides[category.strip()] = (int(window), int(limit))
        except ValueError:
            raise ValueError(
                f"LEAVEGUARD_QUOTAS: window and limit must be integers in {entry!r}"
            ) from None
    return overrides


def build_catalog(overrides: Optional[Mapping[str, tuple[int, int]]] = None) -> dict[str, Quota]:
    """Return the default catalog with *overrides* applied.

    Raises:
        ValueError: If an override names a category not in the catalog.
    """
    catalog = dict(DEFAULT_QUOTAS)
    for category, (window_ms, max_requests) in (overrides or {}).items():
        if category not in catalog:
            known = ", ".join(sorted(catalog))
            raise ValueError(f"Unknown quota category {category!r} (known: {known})")
        catalog[category] = Quota(category, window_ms=window_ms, max_requests=max_requests)
    return catalog


def longest_window_ms(quotas) -> int:
    """Largest window among *quotas* (0 when empty)."""
    return max((q.window_ms for q in quotas), default=0)

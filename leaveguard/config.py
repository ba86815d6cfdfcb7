"""Runtime settings read from the environment (and ``.env`` if present)."""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from leaveguard.quotas import Quota, build_catalog, parse_overrides
from leaveguard.rate_limiter import DEFAULT_RECLAIM_INTERVAL

DEFAULT_ORIGINS = "http://localhost:3000,http://127.0.0.1:3000"


def _load_env() -> None:
    """Load .env file if present."""
    load_dotenv()


def _flag(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    quotas: dict[str, Quota]
    reclaim_interval: float = DEFAULT_RECLAIM_INTERVAL
    shared_key: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    allowed_origins: list[str] = field(default_factory=list)


def load_settings() -> Settings:
    """Build :class:`Settings` from ``LEAVEGUARD_*`` environment variables.

    Raises:
        ValueError: If a variable cannot be parsed.
    """
    _load_env()

    quotas = build_catalog(parse_overrides(os.getenv("LEAVEGUARD_QUOTAS")))

    raw_interval = os.getenv("LEAVEGUARD_RECLAIM_INTERVAL")
    try:
        reclaim_interval = float(raw_interval) if raw_interval else DEFAULT_RECLAIM_INTERVAL
        port = int(os.getenv("LEAVEGUARD_PORT", "8000"))
    except ValueError as exc:
        raise ValueError(f"Invalid LEAVEGUARD_* setting: {exc}") from exc

    origins = [
        o.strip()
        for o in os.getenv("ALLOWED_ORIGINS", DEFAULT_ORIGINS).split(",")
        if o.strip()
    ]

    return Settings(
        quotas=quotas,
        reclaim_interval=reclaim_interval,
        shared_key=_flag(os.getenv("LEAVEGUARD_SHARED_KEY")),
        host=os.getenv("LEAVEGUARD_HOST", "0.0.0.0"),
        port=port,
        log_level=os.getenv("LEAVEGUARD_LOG_LEVEL", "INFO").upper(),
        allowed_origins=origins,
    )

"""Engine settings loaded from the environment.

Values are read once and cached; tests call reset_settings() after
patching os.environ.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


@dataclass(frozen=True)
class EngineSettings:
    """Tunables for allocation, the grace-period sweep and pricing."""

    grace_period_minutes: int = 30
    default_pickup_hour: int = 9
    timezone: str = "Asia/Manila"
    sweep_batch_size: int = 50
    sweep_max_batches: int = 20
    lock_timeout_ms: int = 2000
    statement_timeout_ms: int = 5000
    price_tolerance_cents: int = 1
    currency: str = "PHP"


def _int_env(name: str, default: int, *, minimum: int = 0) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise RuntimeError(f"{name} must be >= {minimum}, got {value}")
    return value


@lru_cache(maxsize=1)
def get_settings() -> EngineSettings:
    """Load EngineSettings from environment variables (cached)."""
    pickup_hour = _int_env("DEFAULT_PICKUP_HOUR", 9)
    if pickup_hour > 23:
        raise RuntimeError(f"DEFAULT_PICKUP_HOUR must be 0..23, got {pickup_hour}")

    return EngineSettings(
        grace_period_minutes=_int_env("GRACE_PERIOD_MINUTES", 30),
        default_pickup_hour=pickup_hour,
        timezone=os.environ.get("RENTALS_TIMEZONE", "Asia/Manila"),
        sweep_batch_size=_int_env("SWEEP_BATCH_SIZE", 50, minimum=1),
        sweep_max_batches=_int_env("SWEEP_MAX_BATCHES", 20, minimum=1),
        lock_timeout_ms=_int_env("ALLOCATION_LOCK_TIMEOUT_MS", 2000, minimum=1),
        statement_timeout_ms=_int_env("ALLOCATION_STATEMENT_TIMEOUT_MS", 5000, minimum=1),
        price_tolerance_cents=_int_env("PRICE_TOLERANCE_CENTS", 1),
        currency=os.environ.get("DEFAULT_CURRENCY", "PHP"),
    )


def reset_settings() -> None:
    """Drop the cached settings (next get_settings() re-reads the env)."""
    get_settings.cache_clear()

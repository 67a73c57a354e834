"""Time utilities for consistent timestamp handling."""

from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def local_pickup_time(day: date, hour: int, tz_name: str) -> datetime:
    """Return `day` at `hour`:00 in `tz_name`, as an aware datetime."""
    return datetime.combine(day, time(hour=hour), tzinfo=ZoneInfo(tz_name))


def local_date(moment: datetime, tz_name: str) -> date:
    """Calendar date of an aware `moment` in `tz_name`."""
    return moment.astimezone(ZoneInfo(tz_name)).date()

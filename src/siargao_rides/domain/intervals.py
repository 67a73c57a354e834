"""Date interval model.

Rentals occupy half-open day ranges [start, end): the end date is the
return day and is free for the next renter. overlaps() is the single
overlap predicate for the whole engine; SQL queries mirror it as
`start_date < :end AND end_date > :start` and the store-level exclusion
constraint uses daterange(start, end, '[)').
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterator

from siargao_rides.domain.errors import ValidationError


@dataclass(frozen=True, order=True)
class DateInterval:
    """Half-open interval of calendar days."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if not isinstance(self.start, date) or not isinstance(self.end, date):
            raise ValidationError("start and end must be dates")
        if self.start >= self.end:
            raise ValidationError(
                f"start ({self.start.isoformat()}) must be before end ({self.end.isoformat()})"
            )

    @classmethod
    def single_day(cls, day: date) -> "DateInterval":
        return cls(day, day + timedelta(days=1))

    @property
    def days(self) -> int:
        return (self.end - self.start).days

    def overlaps(self, other: "DateInterval") -> bool:
        return overlaps(self, other)

    def contains_day(self, day: date) -> bool:
        return self.start <= day < self.end

    def iter_days(self) -> Iterator[date]:
        """Yield each occupied day, start inclusive, end exclusive."""
        current = self.start
        while current < self.end:
            yield current
            current += timedelta(days=1)

    def as_dict(self) -> dict[str, str]:
        return {"start_date": self.start.isoformat(), "end_date": self.end.isoformat()}


def overlaps(a: DateInterval, b: DateInterval) -> bool:
    """True iff a and b share at least one day (touching ends do not)."""
    return a.start < b.end and b.start < a.end


def parse_interval(start: date | str, end: date | str) -> DateInterval:
    """Build a DateInterval from dates or ISO-8601 strings."""
    try:
        start_day = start if isinstance(start, date) else date.fromisoformat(start)
        end_day = end if isinstance(end, date) else date.fromisoformat(end)
    except (TypeError, ValueError):
        raise ValidationError("dates must be ISO-8601 (YYYY-MM-DD)")
    return DateInterval(start_day, end_day)


def next_free_day(occupied: list[DateInterval], after: date) -> date:
    """Earliest day >= `after` not covered by any interval in `occupied`.

    Intervals that chain onto each other (one starts on or before the
    day another ends) are walked through, so the returned day is really
    free rather than the end of just the first blocking period.
    """
    candidate = after
    for interval in sorted(occupied):
        if interval.end <= candidate:
            continue
        if interval.start > candidate:
            break
        candidate = interval.end
    return candidate

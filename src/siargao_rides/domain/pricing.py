"""Pricing collaborator: day-count multiplication only.

Pricing policy (seasonal rates, discounts) lives outside the engine;
allocation only needs a deterministic total to compare against the
client's expectation.
"""

from __future__ import annotations

from dataclasses import dataclass

from siargao_rides.domain.errors import PriceMismatchError, ValidationError
from siargao_rides.domain.intervals import DateInterval


@dataclass(frozen=True)
class PriceBreakdown:
    daily_rate_cents: int
    days: int
    total_cents: int


def compute_total(daily_rate_cents: int, interval: DateInterval) -> PriceBreakdown:
    """Compute the rental total for `interval` at `daily_rate_cents` per day."""
    if daily_rate_cents < 0:
        raise ValidationError("daily rate cannot be negative")
    days = interval.days
    return PriceBreakdown(
        daily_rate_cents=daily_rate_cents,
        days=days,
        total_cents=daily_rate_cents * days,
    )


def assert_price_matches(
    breakdown: PriceBreakdown,
    expected_total_cents: int | None,
    tolerance_cents: int,
) -> None:
    """Raise PriceMismatchError if the client's total drifts beyond tolerance.

    A missing expectation means the caller accepts the server total.
    """
    if expected_total_cents is None:
        return
    if abs(expected_total_cents - breakdown.total_cents) > tolerance_cents:
        raise PriceMismatchError(expected_total_cents, breakdown.total_cents)

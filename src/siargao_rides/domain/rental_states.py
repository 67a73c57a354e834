"""Rental status machine.

    pending -> confirmed -> completed
    pending -> cancelled          confirmed -> cancelled
    pending -> auto_cancelled     (grace-period sweep only)

cancelled, auto_cancelled and completed are terminal. The single way out
of auto_cancelled is an owner override, which reinstates the rental to
pending after a live availability re-check (lifecycle.override).
"""

from __future__ import annotations

from datetime import datetime, timedelta

from siargao_rides.domain.errors import InvalidTransitionError

PENDING = "pending"
CONFIRMED = "confirmed"
CANCELLED = "cancelled"
AUTO_CANCELLED = "auto_cancelled"
COMPLETED = "completed"

ACTIVE_STATUSES = frozenset({PENDING, CONFIRMED})
TERMINAL_STATUSES = frozenset({CANCELLED, AUTO_CANCELLED, COMPLETED})

_TRANSITIONS: dict[str, frozenset[str]] = {
    PENDING: frozenset({CONFIRMED, CANCELLED, AUTO_CANCELLED}),
    CONFIRMED: frozenset({COMPLETED, CANCELLED}),
    CANCELLED: frozenset(),
    AUTO_CANCELLED: frozenset(),
    COMPLETED: frozenset(),
}

AUTO_CANCEL_REASON = "Auto-cancelled due to no-show"


def can_transition(current: str, target: str) -> bool:
    return target in _TRANSITIONS.get(current, frozenset())


def assert_transition(rental_id: str, current: str, target: str) -> None:
    if not can_transition(current, target):
        raise InvalidTransitionError(rental_id, current, target)


def locks_calendar(rental: dict) -> bool:
    """True once a rental must block its days in the calendar index.

    Online payments lock on payment completion; cash bookings lock once
    the shop records the deposit.
    """
    if rental["status"] != CONFIRMED:
        return False
    if rental.get("payment_status") == "paid":
        return True
    return bool(rental.get("deposit_required") and rental.get("deposit_paid"))


def grace_deadline(rental: dict) -> datetime:
    return rental["pickup_time"] + timedelta(minutes=rental["grace_period_minutes"])


def is_overdue(rental: dict, now: datetime) -> bool:
    """Pending, not overridden, and past pickup + grace period."""
    return (
        rental["status"] == PENDING
        and not rental["auto_cancel_override"]
        and now >= grace_deadline(rental)
    )

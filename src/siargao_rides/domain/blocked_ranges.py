"""Blocked-range index: per-day materialization of vehicle unavailability.

The index is a cache derived from rentals plus seller-entered manual
blocks. Every rental-derived day is tagged with the rental that put it
there, so releasing one rental never unblocks a day still held by
another rental or a manual block. rebuild_vehicle_index() regenerates
the rental-derived part from the rentals table at any time.

Eligibility is never decided here; see availability.py.
"""

from __future__ import annotations

from datetime import date

from psycopg2.extensions import cursor as PgCursor

from siargao_rides.domain.errors import NotFoundError, ValidationError
from siargao_rides.domain.intervals import DateInterval
from siargao_rides.domain.ownership import Actor, assert_owns_shop
from siargao_rides.domain.rental_states import locks_calendar
from siargao_rides.domain.store_errors import write_txn
from siargao_rides.infra.db import txn
from siargao_rides.infra.repositories.blocked_dates_repository import (
    MANUAL_SOURCE,
    add_source,
    list_blocked_days,
    list_days_for_source,
    remove_rental_sources,
    remove_source,
    rental_source,
)
from siargao_rides.infra.repositories.history_repository import insert_history
from siargao_rides.infra.repositories.rentals_repository import (
    get_rental,
    list_calendar_candidates,
)
from siargao_rides.infra.repositories.vehicles_repository import get_vehicle
from siargao_rides.observability.logging import get_logger
from siargao_rides.observability.redaction import safe_log_context, short_id

logger = get_logger(__name__)

MAX_MANUAL_BLOCK_DAYS = 366


def materialize_rental(cur: PgCursor, rental: dict) -> int:
    """Tag every day of the rental in the index (inside the caller's txn).

    Idempotent: days already tagged for this rental are skipped.

    Returns:
        Number of days newly tagged.
    """
    interval = DateInterval(rental["start_date"], rental["end_date"])
    source = rental_source(rental["id"])
    added = 0
    for day in interval.iter_days():
        if add_source(cur, vehicle_id=rental["vehicle_id"], day=day, source=source, reason="booking"):
            added += 1
    return added


def release_rental(cur: PgCursor, rental: dict) -> int:
    """Remove this rental's tag from the index (inside the caller's txn).

    Returns:
        Number of days released by this rental.
    """
    return remove_source(cur, vehicle_id=rental["vehicle_id"], source=rental_source(rental["id"]))


def materialize(rental_id: str, *, cur: PgCursor | None = None) -> dict:
    """Materialize a rental's days into the index.

    Safe to call repeatedly (retries, duplicate task deliveries).

    Returns:
        - {"status": "not_eligible"} if the rental does not lock the calendar yet
        - {"status": "materialized", "rental_id": str, "days_added": int}

    Raises:
        NotFoundError: If the rental does not exist.
    """

    def _do(c: PgCursor) -> dict:
        rental = get_rental(c, rental_id, lock=True)
        if rental is None:
            raise NotFoundError(f"Rental {rental_id} not found")
        if not locks_calendar(rental):
            return {"status": "not_eligible", "rental_id": rental_id}

        added = materialize_rental(c, rental)
        if added:
            insert_history(
                c,
                rental_id=rental_id,
                event_type="dates_blocked",
                status=rental["status"],
                notes=f"Blocked {added} dates for this booking",
            )
        return {"status": "materialized", "rental_id": rental_id, "days_added": added}

    if cur is not None:
        result = _do(cur)
    else:
        with write_txn("materialize") as c:
            result = _do(c)

    logger.info(
        "calendar materialized",
        extra={
            "extra_fields": safe_log_context(
                rental_id_prefix=short_id(rental_id),
                status=result["status"],
                days_added=result.get("days_added"),
            )
        },
    )
    return result


def release(rental_id: str, *, cur: PgCursor | None = None) -> dict:
    """Release a rental's days from the index.

    Returns:
        {"status": "released", "rental_id": str, "days_released": int}
    """

    def _do(c: PgCursor) -> dict:
        rental = get_rental(c, rental_id, lock=True)
        if rental is None:
            raise NotFoundError(f"Rental {rental_id} not found")
        released = release_rental(c, rental)
        return {"status": "released", "rental_id": rental_id, "days_released": released}

    if cur is not None:
        return _do(cur)

    with write_txn("release") as c:
        return _do(c)


def rebuild_vehicle_index(vehicle_id: str) -> dict:
    """Regenerate the rental-derived part of a vehicle's index.

    Drops all rental tags (manual blocks stay), then re-materializes every
    rental that currently locks the calendar. The vehicle row lock keeps
    allocations and manual blocks out for the duration. Confirmations only
    lock the rental row; one that lands mid-rebuild re-adds tags the rebuild
    would add anyway, and add_source skips tags already present.
    """
    with write_txn("rebuild_vehicle_index") as cur:
        vehicle = get_vehicle(cur, vehicle_id, lock=True)
        if vehicle is None:
            raise NotFoundError(f"Vehicle {vehicle_id} not found")

        remove_rental_sources(cur, vehicle_id)
        rentals = [r for r in list_calendar_candidates(cur, vehicle_id) if locks_calendar(r)]
        days = sum(materialize_rental(cur, r) for r in rentals)

    logger.info(
        "calendar index rebuilt",
        extra={
            "extra_fields": safe_log_context(
                vehicle_id=vehicle_id,
                rentals=len(rentals),
                days=days,
            )
        },
    )
    return {"status": "rebuilt", "vehicle_id": vehicle_id, "rentals": len(rentals), "days": days}


def _validate_manual_days(days: list[date]) -> list[date]:
    unique = sorted(set(days))
    if not unique:
        raise ValidationError("at least one date is required")
    if len(unique) > MAX_MANUAL_BLOCK_DAYS:
        raise ValidationError(f"cannot block more than {MAX_MANUAL_BLOCK_DAYS} days at once")
    return unique


def block_dates(vehicle_id: str, days: list[date], *, actor: Actor, reason: str | None = None) -> dict:
    """Seller-entered block (maintenance, private use) on specific days."""
    unique = _validate_manual_days(days)
    with write_txn("block_dates") as cur:
        # Vehicle lock serializes manual blocks with allocations on this vehicle
        vehicle = get_vehicle(cur, vehicle_id, lock=True)
        if vehicle is None:
            raise NotFoundError(f"Vehicle {vehicle_id} not found")
        assert_owns_shop(cur, actor, vehicle["shop_id"])

        added = sum(
            1
            for day in unique
            if add_source(cur, vehicle_id=vehicle_id, day=day, source=MANUAL_SOURCE, reason=reason)
        )

    logger.info(
        "manual block added",
        extra={"extra_fields": safe_log_context(vehicle_id=vehicle_id, days=added)},
    )
    return {"vehicle_id": vehicle_id, "days_blocked": added}


def unblock_dates(vehicle_id: str, days: list[date], *, actor: Actor) -> dict:
    """Remove manual blocks; rental-derived days are untouched."""
    unique = _validate_manual_days(days)
    with write_txn("unblock_dates") as cur:
        vehicle = get_vehicle(cur, vehicle_id)
        if vehicle is None:
            raise NotFoundError(f"Vehicle {vehicle_id} not found")
        assert_owns_shop(cur, actor, vehicle["shop_id"])
        removed = remove_source(cur, vehicle_id=vehicle_id, source=MANUAL_SOURCE, days=unique)

    return {"vehicle_id": vehicle_id, "days_unblocked": removed}


def get_blocked_days(vehicle_id: str, interval: DateInterval) -> list[dict]:
    """Fast-path read of the index for calendars (may lag rentals slightly)."""
    with txn() as cur:
        vehicle = get_vehicle(cur, vehicle_id)
        if vehicle is None:
            raise NotFoundError(f"Vehicle {vehicle_id} not found")
        rows = list_blocked_days(
            cur, vehicle_id=vehicle_id, start_date=interval.start, end_date=interval.end
        )

    return [
        {
            "date": row["date"],
            "reason": "manual" if MANUAL_SOURCE in row["sources"] else "booking",
            "note": row["reason"] if MANUAL_SOURCE in row["sources"] else None,
        }
        for row in rows
    ]


def rental_index_days(rental_id: str, vehicle_id: str) -> list[date]:
    """Days currently attributed to a rental."""
    with txn() as cur:
        return list_days_for_source(cur, vehicle_id=vehicle_id, source=rental_source(rental_id))

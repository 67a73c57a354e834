"""Allocation transaction - the only write path that creates rentals.

Optimistic read, pessimistic commit: whatever the caller saw from the
availability resolver, allocate() locks the candidate vehicle rows,
re-checks availability live inside the same transaction and only then
inserts. The rentals exclusion constraint is the last line: an overlap
that slips past the re-check surfaces as ConflictError, never as a
double booking.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from psycopg2.extensions import cursor as PgCursor

from siargao_rides.domain.availability import Target, check_vehicle_live
from siargao_rides.domain.errors import (
    ConflictError,
    NotFoundError,
    PriceMismatchError,
    ValidationError,
)
from siargao_rides.domain.intervals import DateInterval
from siargao_rides.domain.pricing import PriceBreakdown, assert_price_matches, compute_total
from siargao_rides.domain.store_errors import write_txn
from siargao_rides.infra.notifications import dispatch_events
from siargao_rides.infra.repositories.history_repository import insert_history
from siargao_rides.infra.repositories.outbox_repository import emit_rental_event
from siargao_rides.infra.repositories.rentals_repository import (
    get_rental_by_idempotency_key,
    guest_contact_matches,
    insert_rental,
)
from siargao_rides.infra.repositories.vehicles_repository import (
    get_group,
    get_vehicle,
    list_group_members,
)
from siargao_rides.infra.settings import get_settings
from siargao_rides.infra.time import local_date, local_pickup_time
from siargao_rides.observability.logging import get_logger
from siargao_rides.observability.redaction import safe_log_context, short_id

logger = get_logger(__name__)

MAX_IDEMPOTENCY_KEY_LENGTH = 200


@dataclass(frozen=True)
class Requester:
    """Signed-in user, or a guest contact snapshot."""

    user_id: str | None = None
    guest_name: str | None = None
    guest_email: str | None = None
    guest_phone: str | None = None

    def __post_init__(self) -> None:
        if self.user_id:
            return
        if not self.guest_name or not (self.guest_email or self.guest_phone):
            raise ValidationError("guest bookings need a name and an e-mail or phone number")


def _same_requester(cur: PgCursor, existing: dict, requester: Requester) -> bool:
    if existing["user_id"] is not None or requester.user_id:
        return existing["user_id"] == requester.user_id
    return guest_contact_matches(
        cur,
        existing["id"],
        guest_email=requester.guest_email,
        guest_phone=requester.guest_phone,
    )


def _assert_same_request(
    cur: PgCursor,
    existing: dict,
    requester: Requester,
    target: Target,
    interval: DateInterval,
) -> None:
    """An idempotency key replays one logical booking attempt by the same requester."""
    if not _same_requester(cur, existing, requester):
        raise ValidationError("Idempotency-Key was already used by another requester")
    same_target = (
        existing["requested_group_id"] == target.group_id
        if target.is_group
        else existing["vehicle_id"] == target.vehicle_id and existing["requested_group_id"] is None
    )
    same_dates = existing["start_date"] == interval.start and existing["end_date"] == interval.end
    if not (same_target and same_dates):
        raise ValidationError("Idempotency-Key was already used for a different booking")


def _load_candidates(cur: PgCursor, target: Target) -> tuple[list[dict], int]:
    """Lock candidate vehicles and return them with the daily rate.

    A group's members are locked in group_index order; every group
    allocation uses the same order so two of them cannot deadlock.
    """
    if not target.is_group:
        vehicle = get_vehicle(cur, target.vehicle_id, lock=True)
        if vehicle is None:
            raise NotFoundError(f"Vehicle {target.vehicle_id} not found")
        return [vehicle], vehicle["price_per_day_cents"]

    group = get_group(cur, target.group_id, lock=True)
    if group is None:
        raise NotFoundError(f"Vehicle group {target.group_id} not found")
    if not group["is_active"]:
        raise ValidationError(f"Vehicle group {target.group_id} is not active")

    members = list_group_members(cur, target.group_id, lock=True)
    if not members:
        raise ConflictError("no longer available")
    # Groups share pricing; the primary unit carries the listing's rate
    primary = next((m for m in members if m["is_group_primary"]), members[0])
    return members, primary["price_per_day_cents"]


def _select_unit(cur: PgCursor, candidates: list[dict], interval: DateInterval) -> dict:
    """First candidate (in lock order) whose live re-check passes."""
    first_conflict: str | None = None
    for vehicle in candidates:
        result = check_vehicle_live(cur, vehicle, interval)
        if result.available:
            return vehicle
        if first_conflict is None and result.conflicts:
            first_conflict = result.conflicts[0]["id"]

    raise ConflictError(
        "no longer available",
        vehicle_id=candidates[0]["id"] if len(candidates) == 1 else None,
        conflicting_rental_id=first_conflict,
    )


def allocate(
    *,
    target: Target,
    interval: DateInterval,
    requester: Requester,
    idempotency_key: str | None,
    expected_total_cents: int | None = None,
    pickup_time: datetime | None = None,
    deposit_required: bool = False,
    correlation_id: str | None = None,
) -> dict:
    """Atomically reserve `interval` on the target, or refuse.

    Steps (one transaction, bounded by lock/statement timeouts):
    1. Replay fast path: a known idempotency key returns its rental.
    2. Lock the candidate vehicle rows (group members in group_index order).
    3. Re-check the key (a same-key request may have committed while we waited).
    4. Compute the price and compare with expected_total_cents before any write.
    5. Pick the first candidate that is free per the live re-check.
    6. Insert the pending rental, history row and RENTAL_CREATED event.
    After commit the notification dispatcher is called; its failures are
    logged only.

    Returns:
        {"created": bool, "rental": dict}; created is False on replay.

    Raises:
        ValidationError: Bad inputs or an idempotency key reused for another booking.
        NotFoundError: Unknown vehicle or group.
        PriceMismatchError: expected_total_cents off by more than the tolerance.
        ConflictError: No candidate is free (lost a race or already booked).
        TransientStoreError: Lock/statement timeout or store unavailable.
    """
    if idempotency_key is not None and not (0 < len(idempotency_key) <= MAX_IDEMPOTENCY_KEY_LENGTH):
        raise ValidationError("Idempotency-Key must be 1..200 characters")

    settings = get_settings()
    if pickup_time is not None:
        if pickup_time.tzinfo is None or pickup_time.utcoffset() is None:
            raise ValidationError("pickup_time must include a UTC offset")
        if local_date(pickup_time, settings.timezone) != interval.start:
            raise ValidationError("pickup_time must fall on start_date")

    log_ctx = {
        "vehicle_id": target.vehicle_id,
        "group_id": target.group_id,
        "start_date": interval.start,
        "end_date": interval.end,
    }

    events: list[dict] = []
    with write_txn("allocate") as cur:
        # Step 1: Replay fast path (no locks taken)
        if idempotency_key is not None:
            existing = get_rental_by_idempotency_key(cur, idempotency_key)
            if existing is not None:
                _assert_same_request(cur, existing, requester, target, interval)
                return {"created": False, "rental": existing}

        # Step 2: Lock candidates
        candidates, daily_rate_cents = _load_candidates(cur, target)

        # Step 3: Re-check the key now that we hold the locks
        if idempotency_key is not None:
            existing = get_rental_by_idempotency_key(cur, idempotency_key)
            if existing is not None:
                _assert_same_request(cur, existing, requester, target, interval)
                return {"created": False, "rental": existing}

        # Step 4: Price before any write
        breakdown: PriceBreakdown = compute_total(daily_rate_cents, interval)
        try:
            assert_price_matches(breakdown, expected_total_cents, settings.price_tolerance_cents)
        except PriceMismatchError:
            logger.info(
                "allocation refused: price mismatch",
                extra={
                    "extra_fields": safe_log_context(
                        **log_ctx,
                        expected_cents=expected_total_cents,
                        computed_cents=breakdown.total_cents,
                    )
                },
            )
            raise

        # Step 5: Live re-check inside the commit boundary
        try:
            unit = _select_unit(cur, candidates, interval)
        except ConflictError as exc:
            logger.info(
                "allocation refused: no longer available",
                extra={
                    "extra_fields": safe_log_context(
                        **log_ctx,
                        candidates=len(candidates),
                        conflicting_rental_prefix=short_id(exc.conflicting_rental_id),
                    )
                },
            )
            raise

        # Step 6: Insert (ON CONFLICT on the idempotency key)
        rental = insert_rental(
            cur,
            vehicle_id=unit["id"],
            shop_id=unit["shop_id"],
            user_id=requester.user_id,
            guest_name=requester.guest_name,
            guest_email=requester.guest_email,
            guest_phone=requester.guest_phone,
            start_date=interval.start,
            end_date=interval.end,
            pickup_time=pickup_time
            or local_pickup_time(interval.start, settings.default_pickup_hour, settings.timezone),
            grace_period_minutes=settings.grace_period_minutes,
            deposit_required=deposit_required,
            daily_rate_cents=breakdown.daily_rate_cents,
            days=breakdown.days,
            total_cents=breakdown.total_cents,
            currency=settings.currency,
            idempotency_key=idempotency_key,
            requested_group_id=target.group_id,
        )
        if rental is None:
            existing = get_rental_by_idempotency_key(cur, idempotency_key)
            if existing is None:
                raise ConflictError("no longer available")
            _assert_same_request(cur, existing, requester, target, interval)
            return {"created": False, "rental": existing}

        insert_history(
            cur,
            rental_id=rental["id"],
            event_type="created",
            status=rental["status"],
            notes=f"Booked {breakdown.days} day(s)",
            created_by=requester.user_id,
        )
        events.append(
            emit_rental_event(
                cur,
                rental,
                "RENTAL_CREATED",
                correlation_id=correlation_id,
                extra={"requested_group_id": target.group_id},
            )
        )

    logger.info(
        "rental allocated",
        extra={
            "extra_fields": safe_log_context(
                **log_ctx,
                rental_id_prefix=short_id(rental["id"]),
                allocated_vehicle_id=rental["vehicle_id"],
                total_cents=rental["total_cents"],
            )
        },
    )
    dispatch_events(events, correlation_id=correlation_id)
    return {"created": True, "rental": rental}

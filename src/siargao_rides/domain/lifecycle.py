"""Rental lifecycle operations: confirm, complete, cancel, override.

Each operation is one short transaction: lock the rental row, validate
the transition (rental_states), write status + index + history + outbox
together, commit, then hand the outbox events to the notification
dispatcher. A date release and its status change never commit apart.
"""

from __future__ import annotations

from siargao_rides.domain.availability import check_vehicle_live
from siargao_rides.domain.blocked_ranges import materialize_rental, release_rental
from siargao_rides.domain.errors import ConflictError, NotFoundError, ValidationError
from siargao_rides.domain.intervals import DateInterval
from siargao_rides.domain.ownership import Actor, assert_can_cancel, assert_owns_shop
from siargao_rides.domain.rental_states import (
    AUTO_CANCELLED,
    CANCELLED,
    COMPLETED,
    CONFIRMED,
    PENDING,
    assert_transition,
    locks_calendar,
)
from siargao_rides.domain.store_errors import write_txn
from siargao_rides.infra.notifications import dispatch_events
from siargao_rides.infra.repositories.history_repository import insert_history
from siargao_rides.infra.repositories.outbox_repository import emit_rental_event
from siargao_rides.infra.repositories.processed_events_repository import mark_processed
from siargao_rides.infra.repositories.rentals_repository import (
    get_rental,
    mark_deposit_paid,
    mark_payment_paid,
    reinstate_rental,
    set_override,
    update_status,
)
from siargao_rides.infra.repositories.vehicles_repository import get_vehicle
from siargao_rides.observability.logging import get_logger
from siargao_rides.observability.redaction import safe_log_context, short_id

logger = get_logger(__name__)

# Source identifier for processed_events dedupe
PAYMENT_SOURCE = "payments.completed"


def _lock_rental(cur, rental_id: str) -> dict:
    rental = get_rental(cur, rental_id, lock=True)
    if rental is None:
        raise NotFoundError(f"Rental {rental_id} not found")
    return rental


def confirm_payment(rental_id: str, *, external_id: str, correlation_id: str | None = None) -> dict:
    """Apply a "payment completed" event from the payment collaborator.

    Deduped by external_id: a redelivered event is a no-op.

    Returns:
        - {"status": "duplicate"} - event already applied
        - {"status": "confirmed", ...} - pending rental confirmed and dates blocked
        - {"status": "paid", ...} - already confirmed (by deposit); payment recorded
        - {"status": "not_confirmable", ...} - rental was cancelled first;
          payment recorded for the refund flow, no status change
    """
    events: list[dict] = []
    with write_txn("confirm_payment") as cur:
        rental = _lock_rental(cur, rental_id)

        if not mark_processed(cur, source=PAYMENT_SOURCE, external_id=external_id):
            return {"status": "duplicate", "rental_id": rental_id}

        mark_payment_paid(cur, rental_id)
        rental = {**rental, "payment_status": "paid"}

        if rental["status"] == PENDING:
            update_status(cur, rental_id, status=CONFIRMED)
            rental["status"] = CONFIRMED
            days = materialize_rental(cur, rental)
            insert_history(
                cur,
                rental_id=rental_id,
                event_type="payment_completed",
                status=CONFIRMED,
                notes=f"Payment {external_id} completed; blocked {days} dates",
            )
            events.append(emit_rental_event(cur, rental, "RENTAL_CONFIRMED", correlation_id=correlation_id))
            result = {"status": "confirmed", "rental_id": rental_id, "days_blocked": days}
        elif rental["status"] == CONFIRMED:
            days = materialize_rental(cur, rental)
            insert_history(
                cur,
                rental_id=rental_id,
                event_type="payment_completed",
                status=CONFIRMED,
                notes=f"Payment {external_id} completed",
            )
            result = {"status": "paid", "rental_id": rental_id, "days_blocked": days}
        else:
            insert_history(
                cur,
                rental_id=rental_id,
                event_type="payment_after_cancellation",
                status=rental["status"],
                notes=f"Payment {external_id} arrived for a {rental['status']} rental",
            )
            result = {"status": "not_confirmable", "rental_id": rental_id, "rental_status": rental["status"]}

    logger.info(
        "payment applied",
        extra={
            "extra_fields": safe_log_context(
                rental_id_prefix=short_id(rental_id),
                status=result["status"],
            )
        },
    )
    dispatch_events(events, correlation_id=correlation_id)
    return result


def confirm_deposit(rental_id: str, *, actor: Actor, correlation_id: str | None = None) -> dict:
    """Shop records the cash deposit; the rental is confirmed and blocks its dates."""
    events: list[dict] = []
    with write_txn("confirm_deposit") as cur:
        rental = _lock_rental(cur, rental_id)
        assert_owns_shop(cur, actor, rental["shop_id"])

        if not rental["deposit_required"]:
            raise ValidationError("This rental does not take a deposit")
        if rental["deposit_paid"] and rental["status"] == CONFIRMED:
            return {"status": "noop", "rental_id": rental_id}

        assert_transition(rental_id, rental["status"], CONFIRMED)
        mark_deposit_paid(cur, rental_id)
        update_status(cur, rental_id, status=CONFIRMED)
        rental = {**rental, "deposit_paid": True, "status": CONFIRMED}

        days = materialize_rental(cur, rental) if locks_calendar(rental) else 0
        insert_history(
            cur,
            rental_id=rental_id,
            event_type="deposit_confirmed",
            status=CONFIRMED,
            notes=f"Deposit recorded; blocked {days} dates",
            created_by=actor.user_id,
        )
        events.append(emit_rental_event(cur, rental, "RENTAL_CONFIRMED", correlation_id=correlation_id))

    dispatch_events(events, correlation_id=correlation_id)
    return {"status": "confirmed", "rental_id": rental_id, "days_blocked": days}


def complete(rental_id: str, *, actor: Actor, correlation_id: str | None = None) -> dict:
    """confirmed -> completed; the rental's remaining days are released."""
    events: list[dict] = []
    with write_txn("complete") as cur:
        rental = _lock_rental(cur, rental_id)
        assert_owns_shop(cur, actor, rental["shop_id"])
        if rental["status"] == COMPLETED:
            return {"status": "noop", "rental_id": rental_id}

        assert_transition(rental_id, rental["status"], COMPLETED)
        update_status(cur, rental_id, status=COMPLETED)
        release_rental(cur, rental)
        rental = {**rental, "status": COMPLETED}
        insert_history(
            cur,
            rental_id=rental_id,
            event_type="completed",
            status=COMPLETED,
            created_by=actor.user_id,
        )
        events.append(emit_rental_event(cur, rental, "RENTAL_COMPLETED", correlation_id=correlation_id))

    dispatch_events(events, correlation_id=correlation_id)
    return {"status": "completed", "rental_id": rental_id}


def cancel(
    rental_id: str,
    *,
    actor: Actor,
    reason: str | None = None,
    correlation_id: str | None = None,
) -> dict:
    """Cancel a pending or confirmed rental (renter, shop owner or admin).

    Status change and date release commit together. Cancelling an already
    cancelled rental is a no-op.

    Raises:
        InvalidTransitionError: Rental is completed or auto-cancelled.
    """
    events: list[dict] = []
    with write_txn("cancel") as cur:
        rental = _lock_rental(cur, rental_id)
        assert_can_cancel(cur, actor, rental)

        if rental["status"] == CANCELLED:
            return {"status": "already_cancelled", "rental_id": rental_id}

        assert_transition(rental_id, rental["status"], CANCELLED)
        update_status(
            cur,
            rental_id,
            status=CANCELLED,
            cancellation_reason=reason,
            cancelled_by=actor.user_id,
        )
        released = release_rental(cur, rental)
        rental = {**rental, "status": CANCELLED}
        insert_history(
            cur,
            rental_id=rental_id,
            event_type="cancelled",
            status=CANCELLED,
            notes=reason,
            created_by=actor.user_id,
        )
        events.append(
            emit_rental_event(
                cur,
                rental,
                "RENTAL_CANCELLED",
                correlation_id=correlation_id,
                extra={"cancelled_by_renter": actor.user_id == rental["user_id"]},
            )
        )

    logger.info(
        "rental cancelled",
        extra={
            "extra_fields": safe_log_context(
                rental_id_prefix=short_id(rental_id),
                days_released=released,
            )
        },
    )
    dispatch_events(events, correlation_id=correlation_id)
    return {"status": "cancelled", "rental_id": rental_id, "days_released": released}


def override(rental_id: str, *, actor: Actor, correlation_id: str | None = None) -> dict:
    """Set the one-way auto-cancel override (shop owner or admin).

    On a pending or confirmed rental this only sets the flag. On a rental
    the sweep already auto-cancelled, the rental goes back to pending
    once a live re-check under the vehicle lock shows its dates are
    still free.

    Returns:
        - {"status": "overridden"} - flag set
        - {"status": "already_overridden"} - flag was already set
        - {"status": "reinstated"} - auto-cancelled rental is pending again

    Raises:
        ConflictError: Dates of an auto-cancelled rental were taken meanwhile.
        ValidationError: Rental is cancelled or completed.
    """
    events: list[dict] = []
    with write_txn("override") as cur:
        rental = _lock_rental(cur, rental_id)
        assert_owns_shop(cur, actor, rental["shop_id"])

        status = rental["status"]
        if status in (CANCELLED, COMPLETED):
            raise ValidationError(f"Cannot override auto-cancellation of a {status} rental")

        if status == AUTO_CANCELLED:
            vehicle = get_vehicle(cur, rental["vehicle_id"], lock=True)
            interval = DateInterval(rental["start_date"], rental["end_date"])
            check = check_vehicle_live(cur, vehicle, interval)
            if not check.available:
                raise ConflictError(
                    "no longer available",
                    vehicle_id=rental["vehicle_id"],
                    conflicting_rental_id=check.conflicts[0]["id"] if check.conflicts else None,
                )
            set_override(cur, rental_id, actor_id=actor.user_id)
            reinstate_rental(cur, rental_id)
            rental = {**rental, "status": PENDING, "auto_cancel_override": True}
            insert_history(
                cur,
                rental_id=rental_id,
                event_type="reinstated",
                status=PENDING,
                notes="Auto-cancellation overridden after the sweep; booking reinstated",
                created_by=actor.user_id,
            )
            events.append(emit_rental_event(cur, rental, "RENTAL_OVERRIDDEN", correlation_id=correlation_id))
            events.append(emit_rental_event(cur, rental, "RENTAL_REINSTATED", correlation_id=correlation_id))
            result = {"status": "reinstated", "rental_id": rental_id}
        elif rental["auto_cancel_override"]:
            return {"status": "already_overridden", "rental_id": rental_id}
        else:
            set_override(cur, rental_id, actor_id=actor.user_id)
            rental = {**rental, "auto_cancel_override": True}
            insert_history(
                cur,
                rental_id=rental_id,
                event_type="auto_cancel_override",
                status=status,
                notes="Auto-cancellation disabled",
                created_by=actor.user_id,
            )
            events.append(emit_rental_event(cur, rental, "RENTAL_OVERRIDDEN", correlation_id=correlation_id))
            result = {"status": "overridden", "rental_id": rental_id}

    logger.info(
        "auto-cancel override recorded",
        extra={
            "extra_fields": safe_log_context(
                rental_id_prefix=short_id(rental_id),
                actor_id=actor.user_id,
                status=result["status"],
            )
        },
    )
    dispatch_events(events, correlation_id=correlation_id)
    return result

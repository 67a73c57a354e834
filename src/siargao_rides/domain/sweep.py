"""Grace-period sweep: auto-cancel no-shows.

Periodic batch reconciliation, not per-rental timers. Each overdue rental
is cancelled in its own short transaction that locks the row with SKIP
LOCKED and re-checks status, override flag and deadline at transition
time; a rental being overridden right now is skipped and an override
committed before the lock is respected. Re-running the sweep is safe.
"""

from __future__ import annotations

from datetime import datetime

from siargao_rides.domain.blocked_ranges import release_rental
from siargao_rides.domain.errors import EngineError
from siargao_rides.domain.rental_states import (
    AUTO_CANCEL_REASON,
    AUTO_CANCELLED,
    assert_transition,
    is_overdue,
)
from siargao_rides.domain.store_errors import translate_store_errors, write_txn
from siargao_rides.infra.db import txn
from siargao_rides.infra.notifications import dispatch_events
from siargao_rides.infra.repositories.history_repository import insert_history
from siargao_rides.infra.repositories.outbox_repository import emit_rental_event
from siargao_rides.infra.repositories.rentals_repository import (
    get_rental,
    list_overdue_rental_ids,
    update_status,
)
from siargao_rides.infra.settings import get_settings
from siargao_rides.infra.time import utc_now
from siargao_rides.observability.logging import get_logger
from siargao_rides.observability.redaction import safe_log_context, short_id

logger = get_logger(__name__)


def auto_cancel_if_overdue(
    rental_id: str,
    *,
    now: datetime,
    correlation_id: str | None = None,
) -> dict:
    """Auto-cancel one rental if it is still overdue at transition time.

    Returns:
        - {"status": "auto_cancelled", "rental_id": str}
        - {"status": "skipped", "reason": "locked"} - row locked by another writer (or gone)
        - {"status": "skipped", "reason": "not_overdue"} - confirmed, overridden or cancelled meanwhile
    """
    events: list[dict] = []
    with write_txn("auto_cancel") as cur:
        rental = get_rental(cur, rental_id, lock=True, skip_locked=True)
        if rental is None:
            return {"status": "skipped", "rental_id": rental_id, "reason": "locked"}
        if not is_overdue(rental, now):
            return {"status": "skipped", "rental_id": rental_id, "reason": "not_overdue"}

        assert_transition(rental_id, rental["status"], AUTO_CANCELLED)
        update_status(cur, rental_id, status=AUTO_CANCELLED, cancellation_reason=AUTO_CANCEL_REASON)
        release_rental(cur, rental)
        rental = {**rental, "status": AUTO_CANCELLED}
        insert_history(
            cur,
            rental_id=rental_id,
            event_type="auto_cancelled",
            status=AUTO_CANCELLED,
            notes=AUTO_CANCEL_REASON,
        )
        events.append(
            emit_rental_event(cur, rental, "RENTAL_AUTO_CANCELLED", correlation_id=correlation_id)
        )

    dispatch_events(events, correlation_id=correlation_id)
    return {"status": "auto_cancelled", "rental_id": rental_id}


def sweep_overdue(
    now: datetime | None = None,
    *,
    batch_size: int | None = None,
    max_batches: int | None = None,
    correlation_id: str | None = None,
) -> dict:
    """Auto-cancel every pending rental past pickup + grace period.

    Works in keyset-paginated batches of `batch_size`. A rental that fails
    with an engine error is logged and reported in "failed"; the rest of
    the batch and later batches still run.

    Returns:
        {"cancelled_count": int, "skipped_count": int, "failed": [{"rental_id", "error"}],
         "batches": int}

    Raises:
        TransientStoreError: If the overdue scan itself cannot run.
    """
    settings = get_settings()
    now = now or utc_now()
    batch_size = batch_size or settings.sweep_batch_size
    max_batches = max_batches or settings.sweep_max_batches

    cancelled = 0
    skipped = 0
    failed: list[dict] = []
    batches = 0
    after = None

    while batches < max_batches:
        with translate_store_errors("sweep_scan"):
            with txn() as cur:
                batch = list_overdue_rental_ids(cur, now=now, limit=batch_size, after=after)
        if not batch:
            break
        batches += 1

        for rental_id, deadline in batch:
            try:
                result = auto_cancel_if_overdue(rental_id, now=now, correlation_id=correlation_id)
            except EngineError as exc:
                logger.warning(
                    "sweep failed for rental",
                    extra={
                        "extra_fields": safe_log_context(
                            rental_id_prefix=short_id(rental_id),
                            error=type(exc).__name__,
                        )
                    },
                )
                failed.append({"rental_id": rental_id, "error": type(exc).__name__})
                continue

            if result["status"] == "auto_cancelled":
                cancelled += 1
            else:
                skipped += 1

        after = (batch[-1][1], batch[-1][0])
        if len(batch) < batch_size:
            break

    logger.info(
        "sweep completed",
        extra={
            "extra_fields": safe_log_context(
                cancelled=cancelled,
                skipped=skipped,
                failed=len(failed),
                batches=batches,
            )
        },
    )
    return {
        "cancelled_count": cancelled,
        "skipped_count": skipped,
        "failed": failed,
        "batches": batches,
    }

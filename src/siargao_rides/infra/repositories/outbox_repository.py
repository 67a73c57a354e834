"""Outbox repository - lifecycle events for the notification collaborator.

Uses raw SQL with psycopg2 (no ORM). Events are written in the same
transaction as the state change they describe; delivery happens after
commit and never affects the rental.
"""

import json

from psycopg2.extensions import cursor as PgCursor


def emit_event(
    cur: PgCursor,
    *,
    shop_id: str,
    event_type: str,
    aggregate_type: str,
    aggregate_id: str,
    payload: dict | None = None,
    correlation_id: str | None = None,
) -> int:
    """Emit an event to the outbox.

    Args:
        cur: Database cursor (within transaction).
        shop_id: Owning shop (tenant) identifier.
        event_type: Event type (e.g., RENTAL_CREATED).
        aggregate_type: Aggregate type (e.g., rental).
        aggregate_id: Aggregate ID (e.g., rental UUID).
        payload: Optional JSON payload (no PII).
        correlation_id: Optional correlation ID for tracing.

    Returns:
        The generated event ID.
    """
    payload_json = json.dumps(payload, default=str) if payload else None

    cur.execute(
        """
        INSERT INTO outbox_events (
            shop_id, event_type, aggregate_type,
            aggregate_id, payload, correlation_id
        )
        VALUES (%s, %s, %s, %s, %s, %s)
        RETURNING id
        """,
        (
            shop_id,
            event_type,
            aggregate_type,
            aggregate_id,
            payload_json,
            correlation_id,
        ),
    )
    return cur.fetchone()[0]


def emit_rental_event(
    cur: PgCursor,
    rental: dict,
    event_type: str,
    *,
    correlation_id: str | None = None,
    extra: dict | None = None,
) -> dict:
    """Emit a rental lifecycle event and return a dispatch descriptor.

    The descriptor is what the notification dispatcher enqueues after
    commit; it references the outbox row, never guest contact data.
    """
    payload = {
        "vehicle_id": rental["vehicle_id"],
        "start_date": rental["start_date"].isoformat(),
        "end_date": rental["end_date"].isoformat(),
        "status": rental["status"],
        "total_cents": rental["total_cents"],
        "currency": rental["currency"],
    }
    if extra:
        payload.update(extra)

    event_id = emit_event(
        cur,
        shop_id=rental["shop_id"],
        event_type=event_type,
        aggregate_type="rental",
        aggregate_id=rental["id"],
        payload=payload,
        correlation_id=correlation_id,
    )
    return {
        "outbox_event_id": event_id,
        "event_type": event_type,
        "rental_id": rental["id"],
        "shop_id": rental["shop_id"],
    }


def get_event(cur: PgCursor, event_id: int) -> dict | None:
    cur.execute(
        """
        SELECT id, shop_id, event_type, aggregate_type, aggregate_id, payload, correlation_id
        FROM outbox_events
        WHERE id = %s
        """,
        (event_id,),
    )
    row = cur.fetchone()
    if row is None:
        return None
    return {
        "id": row[0],
        "shop_id": str(row[1]),
        "event_type": row[2],
        "aggregate_type": row[3],
        "aggregate_id": str(row[4]),
        "payload": row[5],
        "correlation_id": row[6],
    }

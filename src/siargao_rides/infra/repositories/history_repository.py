"""Booking history repository - audit trail for rental changes.

Uses raw SQL with psycopg2 (no ORM).
"""

from psycopg2.extensions import cursor as PgCursor


def insert_history(
    cur: PgCursor,
    *,
    rental_id: str,
    event_type: str,
    status: str,
    notes: str | None = None,
    created_by: str | None = None,
) -> int:
    """Append an audit entry.

    Args:
        rental_id: Rental UUID.
        event_type: e.g. created, override, reinstated, dates_blocked.
        status: Rental status after the event.
        notes: Free-form note (no PII).
        created_by: Acting user id; None for system actions (sweep, payments).

    Returns:
        The history row id.
    """
    cur.execute(
        """
        INSERT INTO booking_history (rental_id, event_type, status, notes, created_by)
        VALUES (%s, %s, %s, %s, %s)
        RETURNING id
        """,
        (rental_id, event_type, status, notes, created_by),
    )
    return cur.fetchone()[0]


def list_history(cur: PgCursor, rental_id: str) -> list[dict]:
    cur.execute(
        """
        SELECT id, event_type, status, notes, created_by, created_at
        FROM booking_history
        WHERE rental_id = %s
        ORDER BY created_at, id
        """,
        (rental_id,),
    )
    return [
        {
            "id": row[0],
            "event_type": row[1],
            "status": row[2],
            "notes": row[3],
            "created_by": str(row[4]) if row[4] is not None else None,
            "created_at": row[5],
        }
        for row in cur.fetchall()
    ]

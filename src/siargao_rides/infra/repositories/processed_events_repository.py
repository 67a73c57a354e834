"""Processed events - dedupe of payment events and task deliveries."""

from psycopg2.extensions import cursor as PgCursor


def mark_processed(cur: PgCursor, *, source: str, external_id: str) -> bool:
    """Record (source, external_id) as processed.

    Returns:
        True on first sight, False if it was already processed.
    """
    cur.execute(
        """
        INSERT INTO processed_events (source, external_id)
        VALUES (%s, %s)
        ON CONFLICT (source, external_id) DO NOTHING
        """,
        (source, external_id),
    )
    return cur.rowcount == 1

"""Blocked-dates repository - the per-day unavailability index.

One row per (vehicle_id, date). `sources` carries provenance tags:
`rental:<uuid>` for days materialized from a rental, `manual` for
seller-entered blocks. Removing the last tag deletes the row.
"""

from datetime import date

from psycopg2.extensions import cursor as PgCursor

MANUAL_SOURCE = "manual"
RENTAL_SOURCE_PREFIX = "rental:"


def rental_source(rental_id: str) -> str:
    return f"{RENTAL_SOURCE_PREFIX}{rental_id}"


def add_source(
    cur: PgCursor,
    *,
    vehicle_id: str,
    day: date,
    source: str,
    reason: str | None = None,
) -> bool:
    """Tag one day as blocked by `source` (idempotent upsert).

    Returns:
        True if the tag was added, False if the day already carried it.
    """
    cur.execute(
        """
        INSERT INTO vehicle_blocked_dates (vehicle_id, date, sources, reason)
        VALUES (%s, %s, ARRAY[%s]::text[], %s)
        ON CONFLICT (vehicle_id, date) DO UPDATE
        SET sources = array_append(vehicle_blocked_dates.sources, EXCLUDED.sources[1]),
            reason = COALESCE(vehicle_blocked_dates.reason, EXCLUDED.reason),
            updated_at = now()
        WHERE NOT (EXCLUDED.sources[1] = ANY(vehicle_blocked_dates.sources))
        """,
        (vehicle_id, day, source, reason),
    )
    return cur.rowcount == 1


def remove_source(
    cur: PgCursor,
    *,
    vehicle_id: str,
    source: str,
    days: list[date] | None = None,
) -> int:
    """Drop `source` from the vehicle's days (all days, or only `days`).

    Rows left without any tag are deleted; days still covered by another
    rental or a manual block keep their row.

    Returns:
        Number of days the tag was removed from.
    """
    conditions = ["vehicle_id = %s", "%s = ANY(sources)"]
    params: list = [source, vehicle_id, source]
    if days is not None:
        conditions.append("date = ANY(%s::date[])")
        params.append(list(days))

    cur.execute(
        f"""
        UPDATE vehicle_blocked_dates
        SET sources = array_remove(sources, %s), updated_at = now()
        WHERE {" AND ".join(conditions)}
        """,
        params,
    )
    removed = cur.rowcount
    _delete_untagged(cur, vehicle_id)
    return removed


def remove_rental_sources(cur: PgCursor, vehicle_id: str) -> int:
    """Strip every rental-derived tag of a vehicle, keeping manual blocks."""
    cur.execute(
        """
        UPDATE vehicle_blocked_dates
        SET sources = ARRAY(
                SELECT s FROM unnest(sources) AS s
                WHERE s NOT LIKE %s
            ),
            updated_at = now()
        WHERE vehicle_id = %s
        """,
        (RENTAL_SOURCE_PREFIX + "%", vehicle_id),
    )
    touched = cur.rowcount
    _delete_untagged(cur, vehicle_id)
    return touched


def _delete_untagged(cur: PgCursor, vehicle_id: str) -> None:
    cur.execute(
        """
        DELETE FROM vehicle_blocked_dates
        WHERE vehicle_id = %s AND cardinality(sources) = 0
        """,
        (vehicle_id,),
    )


def list_blocked_days(
    cur: PgCursor,
    *,
    vehicle_id: str,
    start_date: date,
    end_date: date,
) -> list[dict]:
    """Index rows of a vehicle in [start_date, end_date)."""
    cur.execute(
        """
        SELECT date, sources, reason
        FROM vehicle_blocked_dates
        WHERE vehicle_id = %s AND date >= %s AND date < %s
        ORDER BY date
        """,
        (vehicle_id, start_date, end_date),
    )
    return [
        {"date": row[0], "sources": list(row[1]), "reason": row[2]}
        for row in cur.fetchall()
    ]


def list_days_for_source(cur: PgCursor, *, vehicle_id: str, source: str) -> list[date]:
    cur.execute(
        """
        SELECT date FROM vehicle_blocked_dates
        WHERE vehicle_id = %s AND %s = ANY(sources)
        ORDER BY date
        """,
        (vehicle_id, source),
    )
    return [row[0] for row in cur.fetchall()]


def list_manual_blocks(
    cur: PgCursor,
    *,
    vehicle_ids: list[str],
    from_date: date,
    to_date: date | None = None,
) -> dict[str, list[date]]:
    """Manually blocked days per vehicle from from_date on (to_date exclusive)."""
    conditions = ["vehicle_id = ANY(%s::uuid[])", "%s = ANY(sources)", "date >= %s"]
    params: list = [list(vehicle_ids), MANUAL_SOURCE, from_date]
    if to_date is not None:
        conditions.append("date < %s")
        params.append(to_date)

    cur.execute(
        f"""
        SELECT vehicle_id, date
        FROM vehicle_blocked_dates
        WHERE {" AND ".join(conditions)}
        ORDER BY vehicle_id, date
        """,
        params,
    )
    result: dict[str, list[date]] = {}
    for vehicle_id, day in cur.fetchall():
        result.setdefault(str(vehicle_id), []).append(day)
    return result

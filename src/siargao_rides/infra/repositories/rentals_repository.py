"""Rentals repository - persistence for reservation records.

Uses raw SQL with psycopg2 (no ORM). Overlap queries mirror
intervals.overlaps(): existing.start_date < new.end AND existing.end_date > new.start.
"""

from datetime import date, datetime

from psycopg2.extensions import cursor as PgCursor

ACTIVE_STATUSES = ("pending", "confirmed")

_RENTAL_COLUMNS = """
    id, vehicle_id, shop_id, user_id, start_date, end_date, pickup_time,
    grace_period_minutes, status, payment_status, deposit_required,
    deposit_paid, auto_cancel_override, daily_rate_cents, days,
    total_cents, currency, idempotency_key, requested_group_id, created_at
"""


def _row_to_rental(row: tuple) -> dict:
    return {
        "id": str(row[0]),
        "vehicle_id": str(row[1]),
        "shop_id": str(row[2]),
        "user_id": str(row[3]) if row[3] is not None else None,
        "start_date": row[4],
        "end_date": row[5],
        "pickup_time": row[6],
        "grace_period_minutes": row[7],
        "status": row[8],
        "payment_status": row[9],
        "deposit_required": row[10],
        "deposit_paid": row[11],
        "auto_cancel_override": row[12],
        "daily_rate_cents": row[13],
        "days": row[14],
        "total_cents": row[15],
        "currency": row[16],
        "idempotency_key": row[17],
        "requested_group_id": str(row[18]) if row[18] is not None else None,
        "created_at": row[19],
    }


def get_rental(
    cur: PgCursor,
    rental_id: str,
    *,
    lock: bool = False,
    skip_locked: bool = False,
) -> dict | None:
    """Fetch a rental by id.

    Args:
        lock: Take a row lock (FOR UPDATE).
        skip_locked: With lock, return None instead of waiting when the row
            is already locked by another transaction.
    """
    suffix = ""
    if lock:
        suffix = " FOR UPDATE SKIP LOCKED" if skip_locked else " FOR UPDATE"
    cur.execute(
        f"SELECT {_RENTAL_COLUMNS} FROM rentals WHERE id = %s{suffix}",
        (rental_id,),
    )
    row = cur.fetchone()
    return _row_to_rental(row) if row else None


def get_rental_by_idempotency_key(cur: PgCursor, idempotency_key: str) -> dict | None:
    cur.execute(
        f"SELECT {_RENTAL_COLUMNS} FROM rentals WHERE idempotency_key = %s",
        (idempotency_key,),
    )
    row = cur.fetchone()
    return _row_to_rental(row) if row else None


def guest_contact_matches(
    cur: PgCursor,
    rental_id: str,
    *,
    guest_email: str | None,
    guest_phone: str | None,
) -> bool:
    """True when a guest rental was booked with this e-mail/phone.

    Compared in SQL so the contact snapshot never leaves the database.
    E-mail is compared case-insensitively; a NULL on either side never matches.
    """
    cur.execute(
        """
        SELECT 1 FROM rentals
        WHERE id = %s
          AND user_id IS NULL
          AND (lower(guest_email) = lower(%s) OR guest_phone = %s)
        """,
        (rental_id, guest_email, guest_phone),
    )
    return cur.fetchone() is not None


def find_overlapping_rentals(
    cur: PgCursor,
    *,
    vehicle_id: str,
    start_date: date,
    end_date: date,
    exclude_rental_id: str | None = None,
    limit: int | None = None,
) -> list[dict]:
    """Active (pending/confirmed) rentals of a vehicle overlapping [start, end).

    Ordered by start_date so the first row is the earliest conflict.
    """
    conditions = [
        "vehicle_id = %s",
        "status = ANY(%s)",
        "start_date < %s",  # existing start < new end
        "end_date > %s",  # existing end > new start
    ]
    params: list = [vehicle_id, list(ACTIVE_STATUSES), end_date, start_date]

    if exclude_rental_id is not None:
        conditions.append("id != %s")
        params.append(exclude_rental_id)

    query = f"""
        SELECT {_RENTAL_COLUMNS}
        FROM rentals
        WHERE {" AND ".join(conditions)}
        ORDER BY start_date, id
    """
    if limit is not None:
        query += " LIMIT %s"
        params.append(limit)

    cur.execute(query, params)
    return [_row_to_rental(row) for row in cur.fetchall()]


def list_active_rentals_from(
    cur: PgCursor,
    *,
    vehicle_ids: list[str],
    from_date: date,
) -> list[dict]:
    """Active rentals of the given vehicles that end after from_date."""
    cur.execute(
        f"""
        SELECT {_RENTAL_COLUMNS}
        FROM rentals
        WHERE vehicle_id = ANY(%s::uuid[])
          AND status = ANY(%s)
          AND end_date > %s
        ORDER BY vehicle_id, start_date
        """,
        (list(vehicle_ids), list(ACTIVE_STATUSES), from_date),
    )
    return [_row_to_rental(row) for row in cur.fetchall()]


def list_calendar_candidates(cur: PgCursor, vehicle_id: str) -> list[dict]:
    """Confirmed rentals of a vehicle (calendar rebuild input)."""
    cur.execute(
        f"""
        SELECT {_RENTAL_COLUMNS}
        FROM rentals
        WHERE vehicle_id = %s AND status = 'confirmed'
        ORDER BY start_date, id
        """,
        (vehicle_id,),
    )
    return [_row_to_rental(row) for row in cur.fetchall()]


def insert_rental(
    cur: PgCursor,
    *,
    vehicle_id: str,
    shop_id: str,
    user_id: str | None,
    guest_name: str | None,
    guest_email: str | None,
    guest_phone: str | None,
    start_date: date,
    end_date: date,
    pickup_time: datetime,
    grace_period_minutes: int,
    deposit_required: bool,
    daily_rate_cents: int,
    days: int,
    total_cents: int,
    currency: str,
    idempotency_key: str | None,
    requested_group_id: str | None,
) -> dict | None:
    """Insert a pending rental.

    Uses ON CONFLICT DO NOTHING on idempotency_key: returns None when a
    rental with the same key already exists (the caller replays it).
    """
    cur.execute(
        f"""
        INSERT INTO rentals (
            vehicle_id, shop_id, user_id, guest_name, guest_email, guest_phone,
            start_date, end_date, pickup_time, grace_period_minutes,
            status, payment_status, deposit_required, deposit_paid,
            auto_cancel_override, daily_rate_cents, days, total_cents,
            currency, idempotency_key, requested_group_id
        )
        VALUES (
            %s, %s, %s, %s, %s, %s,
            %s, %s, %s, %s,
            'pending', 'pending', %s, false,
            false, %s, %s, %s,
            %s, %s, %s
        )
        ON CONFLICT (idempotency_key) WHERE idempotency_key IS NOT NULL
        DO NOTHING
        RETURNING {_RENTAL_COLUMNS}
        """,
        (
            vehicle_id,
            shop_id,
            user_id,
            guest_name,
            guest_email,
            guest_phone,
            start_date,
            end_date,
            pickup_time,
            grace_period_minutes,
            deposit_required,
            daily_rate_cents,
            days,
            total_cents,
            currency,
            idempotency_key,
            requested_group_id,
        ),
    )
    row = cur.fetchone()
    return _row_to_rental(row) if row else None


def update_status(
    cur: PgCursor,
    rental_id: str,
    *,
    status: str,
    cancellation_reason: str | None = None,
    cancelled_by: str | None = None,
) -> None:
    cur.execute(
        """
        UPDATE rentals
        SET status = %s,
            cancellation_reason = COALESCE(%s, cancellation_reason),
            cancelled_by = COALESCE(%s, cancelled_by),
            updated_at = now()
        WHERE id = %s
        """,
        (status, cancellation_reason, cancelled_by, rental_id),
    )


def mark_payment_paid(cur: PgCursor, rental_id: str) -> None:
    cur.execute(
        """
        UPDATE rentals
        SET payment_status = 'paid', updated_at = now()
        WHERE id = %s
        """,
        (rental_id,),
    )


def mark_deposit_paid(cur: PgCursor, rental_id: str) -> None:
    cur.execute(
        """
        UPDATE rentals
        SET deposit_paid = true, updated_at = now()
        WHERE id = %s
        """,
        (rental_id,),
    )


def set_override(cur: PgCursor, rental_id: str, *, actor_id: str) -> None:
    """Set the one-way auto-cancel override flag with who/when."""
    cur.execute(
        """
        UPDATE rentals
        SET auto_cancel_override = true,
            override_by = %s,
            override_at = now(),
            updated_at = now()
        WHERE id = %s
        """,
        (actor_id, rental_id),
    )


def list_overdue_rental_ids(
    cur: PgCursor,
    *,
    now: datetime,
    limit: int,
    after: tuple[datetime, str] | None = None,
) -> list[tuple[str, datetime]]:
    """Pending, non-overridden rentals whose grace deadline has passed.

    Keyset-paginated on (deadline, id) so a batch that keeps failing does
    not starve the rentals behind it.

    Returns:
        List of (rental_id, deadline) tuples ordered by deadline, id.
    """
    conditions = [
        "status = 'pending'",
        "auto_cancel_override = false",
        "pickup_time + make_interval(mins => grace_period_minutes) <= %s",
    ]
    params: list = [now]

    if after is not None:
        conditions.append("(pickup_time + make_interval(mins => grace_period_minutes), id) > (%s, %s)")
        params.extend([after[0], after[1]])

    params.append(limit)
    cur.execute(
        f"""
        SELECT id, pickup_time + make_interval(mins => grace_period_minutes) AS deadline
        FROM rentals
        WHERE {" AND ".join(conditions)}
        ORDER BY deadline, id
        LIMIT %s
        """,
        params,
    )
    return [(str(row[0]), row[1]) for row in cur.fetchall()]


def reinstate_rental(cur: PgCursor, rental_id: str) -> None:
    """Put an auto-cancelled rental back to pending (override path)."""
    cur.execute(
        """
        UPDATE rentals
        SET status = 'pending',
            cancellation_reason = NULL,
            cancelled_by = NULL,
            updated_at = now()
        WHERE id = %s AND status = 'auto_cancelled'
        """,
        (rental_id,),
    )

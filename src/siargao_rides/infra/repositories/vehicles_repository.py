"""Vehicles and vehicle groups repository.

Uses raw SQL with psycopg2 (no ORM). Row locks are always taken in a
fixed order (group_index, then id) so concurrent allocations against the
same group cannot deadlock.
"""

from psycopg2.extensions import cursor as PgCursor

_VEHICLE_COLUMNS = """
    id, shop_id, name, vehicle_type, category, is_available,
    price_per_day_cents, group_id, group_index, individual_identifier,
    is_group_primary
"""


def _row_to_vehicle(row: tuple) -> dict:
    return {
        "id": str(row[0]),
        "shop_id": str(row[1]),
        "name": row[2],
        "vehicle_type": row[3],
        "category": row[4],
        "is_available": row[5],
        "price_per_day_cents": row[6],
        "group_id": str(row[7]) if row[7] is not None else None,
        "group_index": row[8],
        "individual_identifier": row[9],
        "is_group_primary": row[10],
    }


def get_vehicle(cur: PgCursor, vehicle_id: str, *, lock: bool = False) -> dict | None:
    """Fetch one vehicle, optionally locking its row."""
    suffix = " FOR UPDATE" if lock else ""
    cur.execute(
        f"SELECT {_VEHICLE_COLUMNS} FROM vehicles WHERE id = %s{suffix}",
        (vehicle_id,),
    )
    row = cur.fetchone()
    return _row_to_vehicle(row) if row else None


def get_vehicles(cur: PgCursor, vehicle_ids: list[str], *, lock: bool = False) -> list[dict]:
    """Fetch vehicles by id, ordered by id (lock order for ad-hoc sets)."""
    suffix = " FOR UPDATE" if lock else ""
    cur.execute(
        f"""
        SELECT {_VEHICLE_COLUMNS}
        FROM vehicles
        WHERE id = ANY(%s::uuid[])
        ORDER BY id
        {suffix}
        """,
        (list(vehicle_ids),),
    )
    return [_row_to_vehicle(row) for row in cur.fetchall()]


def get_group(cur: PgCursor, group_id: str, *, lock: bool = False) -> dict | None:
    """Fetch a vehicle group."""
    suffix = " FOR UPDATE" if lock else ""
    cur.execute(
        f"""
        SELECT id, shop_id, name, vehicle_type, category, total_quantity,
               naming_pattern, base_vehicle_id, is_active
        FROM vehicle_groups
        WHERE id = %s{suffix}
        """,
        (group_id,),
    )
    row = cur.fetchone()
    if row is None:
        return None
    return {
        "id": str(row[0]),
        "shop_id": str(row[1]),
        "name": row[2],
        "vehicle_type": row[3],
        "category": row[4],
        "total_quantity": row[5],
        "naming_pattern": row[6],
        "base_vehicle_id": str(row[7]) if row[7] is not None else None,
        "is_active": row[8],
    }


def list_group_members(cur: PgCursor, group_id: str, *, lock: bool = False) -> list[dict]:
    """List group members in group_index order, optionally locking them.

    Locking in group_index order is the deadlock-free ordering every
    auto-select allocation uses.
    """
    suffix = " FOR UPDATE" if lock else ""
    cur.execute(
        f"""
        SELECT {_VEHICLE_COLUMNS}
        FROM vehicles
        WHERE group_id = %s
        ORDER BY group_index ASC, id ASC
        {suffix}
        """,
        (group_id,),
    )
    return [_row_to_vehicle(row) for row in cur.fetchall()]


def insert_group(
    cur: PgCursor,
    *,
    shop_id: str,
    name: str,
    vehicle_type: str | None,
    category: str | None,
    total_quantity: int,
    naming_pattern: str,
    base_vehicle_id: str | None,
) -> str:
    """Insert a vehicle group and return its id."""
    cur.execute(
        """
        INSERT INTO vehicle_groups (
            shop_id, name, vehicle_type, category, total_quantity,
            naming_pattern, base_vehicle_id, is_active
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, true)
        RETURNING id
        """,
        (shop_id, name, vehicle_type, category, total_quantity, naming_pattern, base_vehicle_id),
    )
    return str(cur.fetchone()[0])


def insert_vehicle(
    cur: PgCursor,
    *,
    shop_id: str,
    name: str,
    vehicle_type: str | None,
    category: str | None,
    price_per_day_cents: int,
    group_id: str,
    group_index: int,
    individual_identifier: str,
    is_group_primary: bool,
) -> str:
    """Insert a new unit directly into a group and return its id."""
    cur.execute(
        """
        INSERT INTO vehicles (
            shop_id, name, vehicle_type, category, is_available,
            price_per_day_cents, group_id, group_index,
            individual_identifier, is_group_primary
        )
        VALUES (%s, %s, %s, %s, true, %s, %s, %s, %s, %s)
        RETURNING id
        """,
        (
            shop_id,
            name,
            vehicle_type,
            category,
            price_per_day_cents,
            group_id,
            group_index,
            individual_identifier,
            is_group_primary,
        ),
    )
    return str(cur.fetchone()[0])


def set_group_base_vehicle(cur: PgCursor, group_id: str, vehicle_id: str) -> None:
    cur.execute(
        "UPDATE vehicle_groups SET base_vehicle_id = %s, updated_at = now() WHERE id = %s",
        (vehicle_id, group_id),
    )


def update_group_details(
    cur: PgCursor,
    group_id: str,
    *,
    name: str | None = None,
    is_active: bool | None = None,
) -> None:
    """Update name and/or is_active; a None argument leaves the column as is."""
    cur.execute(
        """
        UPDATE vehicle_groups
        SET name = COALESCE(%s, name),
            is_active = COALESCE(%s, is_active),
            updated_at = now()
        WHERE id = %s
        """,
        (name, is_active, group_id),
    )


def set_group_price(cur: PgCursor, group_id: str, price_per_day_cents: int) -> int:
    """Apply the shared daily price to every member. Returns vehicles updated."""
    cur.execute(
        """
        UPDATE vehicles
        SET price_per_day_cents = %s, updated_at = now()
        WHERE group_id = %s
        """,
        (price_per_day_cents, group_id),
    )
    return cur.rowcount


def assign_group_membership(
    cur: PgCursor,
    *,
    vehicle_id: str,
    group_id: str,
    group_index: int,
    individual_identifier: str,
    is_group_primary: bool,
) -> bool:
    """Attach an ungrouped vehicle to a group.

    Guarded by `group_id IS NULL`: returns False when the vehicle was
    grouped by someone else in the meantime.
    """
    cur.execute(
        """
        UPDATE vehicles
        SET group_id = %s,
            group_index = %s,
            individual_identifier = %s,
            is_group_primary = %s,
            updated_at = now()
        WHERE id = %s AND group_id IS NULL
        """,
        (group_id, group_index, individual_identifier, is_group_primary, vehicle_id),
    )
    return cur.rowcount == 1


def clear_group_membership(cur: PgCursor, group_id: str) -> int:
    """Detach every member of a group. Returns the number of vehicles updated."""
    cur.execute(
        """
        UPDATE vehicles
        SET group_id = NULL,
            group_index = NULL,
            individual_identifier = NULL,
            is_group_primary = false,
            updated_at = now()
        WHERE group_id = %s
        """,
        (group_id,),
    )
    return cur.rowcount


def delete_group(cur: PgCursor, group_id: str) -> None:
    cur.execute("DELETE FROM vehicle_groups WHERE id = %s", (group_id,))


def set_availability(
    cur: PgCursor,
    *,
    group_id: str,
    is_available: bool,
    vehicle_ids: list[str] | None = None,
) -> int:
    """Flip the seller master switch for group members.

    With vehicle_ids, only those members are touched (ids outside the
    group are ignored). Returns the number of vehicles updated.
    """
    if vehicle_ids:
        cur.execute(
            """
            UPDATE vehicles
            SET is_available = %s, updated_at = now()
            WHERE group_id = %s AND id = ANY(%s::uuid[])
            """,
            (is_available, group_id, list(vehicle_ids)),
        )
    else:
        cur.execute(
            """
            UPDATE vehicles
            SET is_available = %s, updated_at = now()
            WHERE group_id = %s
            """,
            (is_available, group_id),
        )
    return cur.rowcount


def list_ungrouped_vehicles(cur: PgCursor, shop_id: str) -> list[dict]:
    """Standalone vehicles of a shop (candidates for grouping)."""
    cur.execute(
        f"""
        SELECT {_VEHICLE_COLUMNS}
        FROM vehicles
        WHERE shop_id = %s AND group_id IS NULL
        ORDER BY name, id
        """,
        (shop_id,),
    )
    return [_row_to_vehicle(row) for row in cur.fetchall()]


def group_has_rentals(cur: PgCursor, group_id: str) -> bool:
    """True if any rental (any status) references a member of the group."""
    cur.execute(
        """
        SELECT 1
        FROM rentals r
        JOIN vehicles v ON v.id = r.vehicle_id
        WHERE v.group_id = %s
        LIMIT 1
        """,
        (group_id,),
    )
    return cur.fetchone() is not None

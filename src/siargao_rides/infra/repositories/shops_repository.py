"""Shops and users lookups used for ownership checks."""

from psycopg2.extensions import cursor as PgCursor


def get_shop_owner_id(cur: PgCursor, shop_id: str) -> str | None:
    cur.execute("SELECT owner_id FROM rental_shops WHERE id = %s", (shop_id,))
    row = cur.fetchone()
    return str(row[0]) if row else None


def get_user_by_subject(cur: PgCursor, external_subject: str) -> dict | None:
    cur.execute(
        "SELECT id, external_subject, email, name, role FROM users WHERE external_subject = %s",
        (external_subject,),
    )
    row = cur.fetchone()
    if row is None:
        return None
    return {
        "id": str(row[0]),
        "external_subject": row[1],
        "email": row[2],
        "name": row[3],
        "role": row[4],
    }

"""PostgreSQL access with psycopg2 (raw SQL, no ORM, no pool).

Every unit of work opens its own short-lived connection through txn().
Write paths pass lock/statement timeouts so a transaction queued behind
a row lock fails fast instead of holding a request open.
"""

import os
from contextlib import contextmanager
from typing import Iterator
from urllib.parse import urlparse

import psycopg2
from psycopg2.extensions import connection as PgConnection, cursor as PgCursor

# set_config(..., true) is SET LOCAL: the value is gone at commit/rollback
_TIMEOUT_SQL = {
    "lock_timeout_ms": "SELECT set_config('lock_timeout', %s, true)",
    "statement_timeout_ms": "SELECT set_config('statement_timeout', %s, true)",
}


def _dsn_has_password(dsn: str) -> bool:
    if "://" in dsn:
        return bool(urlparse(dsn).password)
    return any(part.startswith("password=") for part in dsn.split())


def get_conn() -> PgConnection:
    """Open a connection to DATABASE_URL (URL or libpq key=value DSN).

    DB_PASSWORD fills in the password when the DSN has none; on Cloud Run
    the secret is mounted apart from the connection string.

    Raises:
        RuntimeError: If DATABASE_URL is not set.
        psycopg2.Error: On connection failure.
    """
    dsn = os.environ.get("DATABASE_URL")
    if not dsn:
        raise RuntimeError("DATABASE_URL environment variable not set")

    db_password = os.environ.get("DB_PASSWORD")
    if db_password and not _dsn_has_password(dsn):
        return psycopg2.connect(dsn, password=db_password)
    return psycopg2.connect(dsn)


def _apply_timeouts(cur: PgCursor, **timeouts_ms: int | None) -> None:
    for kwarg, sql in _TIMEOUT_SQL.items():
        value = timeouts_ms.get(kwarg)
        if value is not None:
            cur.execute(sql, (f"{int(value)}ms",))


@contextmanager
def txn(
    conn: PgConnection | None = None,
    *,
    lock_timeout_ms: int | None = None,
    statement_timeout_ms: int | None = None,
) -> Iterator[PgCursor]:
    """One transaction: commit on clean exit, rollback on any exception.

    A connection passed in is borrowed and left open; otherwise a new one
    is opened and closed on exit.

    Example:
        with txn(lock_timeout_ms=2000) as cur:
            cur.execute("SELECT 1 FROM vehicles WHERE id = %s FOR UPDATE", (vehicle_id,))
    """
    owns_conn = conn is None
    if owns_conn:
        conn = get_conn()

    try:
        with conn.cursor() as cur:
            _apply_timeouts(
                cur,
                lock_timeout_ms=lock_timeout_ms,
                statement_timeout_ms=statement_timeout_ms,
            )
            yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        if owns_conn:
            conn.close()

"""Database URL helpers for Alembic migrations.

Kept apart from env.py so they import without an alembic context.
DATABASE_URL may be a URL or a libpq key=value DSN (Cloud SQL sockets);
DB_PASSWORD fills in a missing password either way.
"""

from __future__ import annotations

import os

from psycopg2.extensions import parse_dsn
from sqlalchemy.engine import URL, make_url

DRIVER = "postgresql+psycopg2"


def _url_from_dsn(dsn: str) -> URL:
    """libpq DSN -> SQLAlchemy URL. Socket hosts go to the query string."""
    params = parse_dsn(dsn)
    password = params.get("password") or os.environ.get("DB_PASSWORD") or None
    host = params.get("host", "localhost")

    if host.startswith("/"):
        return URL.create(
            DRIVER,
            username=params.get("user"),
            password=password,
            database=params.get("dbname"),
            query={"host": host},
        )
    return URL.create(
        DRIVER,
        username=params.get("user"),
        password=password,
        host=host,
        port=int(params.get("port", 5432)),
        database=params.get("dbname"),
    )


def _url_from_url(raw: str) -> URL:
    if raw.startswith("postgres://"):
        raw = "postgresql://" + raw[len("postgres://"):]
    url = make_url(raw)
    if url.drivername == "postgresql":
        url = url.set(drivername=DRIVER)
    db_password = os.environ.get("DB_PASSWORD")
    if db_password and not url.password:
        url = url.set(password=db_password)
    return url


def get_database_url() -> str:
    """SQLAlchemy URL string for DATABASE_URL (password included).

    Raises:
        RuntimeError: If DATABASE_URL is not set.
    """
    raw = os.environ.get("DATABASE_URL")
    if not raw:
        raise RuntimeError("DATABASE_URL is required to run migrations")
    url = _url_from_url(raw) if "://" in raw else _url_from_dsn(raw)
    return url.render_as_string(hide_password=False)

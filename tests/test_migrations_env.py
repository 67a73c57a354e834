"""Tests for migrations/env_helpers.py DATABASE_URL handling."""

from __future__ import annotations

import os
import sys
from unittest.mock import patch

import pytest

# Make migrations importable without alembic context
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from migrations.env_helpers import _url_from_dsn, get_database_url  # noqa: E402


class TestUrlFromDsn:
    def test_cloudsql_socket_goes_to_query(self):
        dsn = "dbname=siargao user=rides-sa password=s3cret host=/cloudsql/proj:asia-southeast1:inst"
        url = _url_from_dsn(dsn)
        assert url.drivername == "postgresql+psycopg2"
        assert url.host is None
        assert url.query["host"] == "/cloudsql/proj:asia-southeast1:inst"
        assert url.database == "siargao"
        assert url.password == "s3cret"

    def test_tcp_host(self):
        url = _url_from_dsn("dbname=siargao user=admin password=pw host=localhost port=5432")
        assert url.render_as_string(hide_password=False) == (
            "postgresql+psycopg2://admin:pw@localhost:5432/siargao"
        )

    def test_default_port(self):
        url = _url_from_dsn("dbname=db user=u password=p host=myhost")
        assert url.port == 5432

    def test_quoted_password(self):
        url = _url_from_dsn("dbname=db user=u password='p@ss w0rd' host=h port=5432")
        assert url.password == "p@ss w0rd"

    def test_db_password_env_fallback(self, monkeypatch):
        monkeypatch.setenv("DB_PASSWORD", "from-env")
        url = _url_from_dsn("dbname=db user=u host=h port=5432")
        assert url.password == "from-env"

    def test_dsn_password_wins_over_env(self, monkeypatch):
        monkeypatch.setenv("DB_PASSWORD", "from-env")
        url = _url_from_dsn("dbname=db user=u password=from-dsn host=h port=5432")
        assert url.password == "from-dsn"


class TestGetDatabaseUrl:
    def test_url_passthrough(self):
        with patch.dict(os.environ, {"DATABASE_URL": "postgresql+psycopg2://u:p@h/db"}):
            assert get_database_url() == "postgresql+psycopg2://u:p@h/db"

    def test_dsn_converted(self):
        dsn = "dbname=siargao user=sa password=pw host=/cloudsql/p:r:i"
        with patch.dict(os.environ, {"DATABASE_URL": dsn}):
            result = get_database_url()
        assert result.startswith("postgresql+psycopg2://")
        assert "cloudsql" in result

    def test_missing_raises(self):
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(RuntimeError, match="DATABASE_URL is required"):
                get_database_url()

    @pytest.mark.parametrize("scheme", ["postgres", "postgresql"])
    def test_scheme_gets_driver(self, scheme):
        with patch.dict(os.environ, {"DATABASE_URL": f"{scheme}://u:p@h/db"}):
            assert get_database_url() == "postgresql+psycopg2://u:p@h/db"

    def test_url_db_password_fallback(self):
        with patch.dict(os.environ, {"DATABASE_URL": "postgresql://u@h/db", "DB_PASSWORD": "secret"}):
            assert get_database_url() == "postgresql+psycopg2://u:secret@h/db"

    def test_driver_not_doubled(self):
        with patch.dict(os.environ, {"DATABASE_URL": "postgresql+psycopg2://u:p@h/db"}):
            assert get_database_url().count("+psycopg2") == 1

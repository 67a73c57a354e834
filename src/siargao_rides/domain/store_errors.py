"""Translate psycopg2 failures into engine errors.

Write paths wrap their transaction in translate_store_errors() so callers
only ever see the typed taxonomy from errors.py.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import psycopg2
from psycopg2 import errors as pg_errors
from psycopg2.extensions import cursor as PgCursor

from siargao_rides.domain.errors import ConflictError, TransientStoreError
from siargao_rides.infra.db import txn
from siargao_rides.infra.settings import get_settings
from siargao_rides.observability.logging import get_logger
from siargao_rides.observability.redaction import safe_log_context

logger = get_logger(__name__)

_RETRYABLE = (
    pg_errors.LockNotAvailable,
    pg_errors.QueryCanceled,
    pg_errors.SerializationFailure,
    pg_errors.DeadlockDetected,
)


@contextmanager
def translate_store_errors(operation: str) -> Iterator[None]:
    """Map store-level failures raised inside the block.

    - exclusion constraint on rentals (overlap) -> ConflictError
    - lock/statement timeout, serialization failure, deadlock,
      connection loss -> TransientStoreError
    """
    try:
        yield
    except pg_errors.ExclusionViolation as exc:
        logger.warning(
            "store rejected overlapping rental",
            extra={"extra_fields": safe_log_context(operation=operation, pgcode=exc.pgcode)},
        )
        raise ConflictError("no longer available") from exc
    except _RETRYABLE as exc:
        logger.warning(
            "store aborted transaction",
            extra={"extra_fields": safe_log_context(operation=operation, pgcode=exc.pgcode)},
        )
        raise TransientStoreError(f"{operation} timed out or was aborted; retry") from exc
    except psycopg2.OperationalError as exc:
        logger.error(
            "store unavailable",
            extra={"extra_fields": safe_log_context(operation=operation, error=type(exc).__name__)},
        )
        raise TransientStoreError(f"{operation} failed: store unavailable") from exc


@contextmanager
def write_txn(operation: str) -> Iterator[PgCursor]:
    """Bounded write transaction with store errors translated.

    Lock and statement timeouts come from settings so no write path holds
    a row lock indefinitely.
    """
    settings = get_settings()
    with translate_store_errors(operation):
        with txn(
            lock_timeout_ms=settings.lock_timeout_ms,
            statement_timeout_ms=settings.statement_timeout_ms,
        ) as cur:
            yield cur

"""Correlation IDs tying together a request, its outbox events and worker tasks."""

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar, Token

# Empty string means "no request in flight" (e.g. a scheduler-triggered sweep)
correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

CORRELATION_ID_HEADER = "X-Correlation-ID"


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def get_correlation_id() -> str:
    return correlation_id_var.get()


def set_correlation_id(cid: str) -> Token[str]:
    return correlation_id_var.set(cid)


def reset_correlation_id(token: Token[str]) -> None:
    correlation_id_var.reset(token)


@contextmanager
def correlation_scope(cid: str | None = None) -> Iterator[str]:
    """Bind `cid` (or a fresh id) for the duration of the block."""
    bound = cid or generate_correlation_id()
    token = set_correlation_id(bound)
    try:
        yield bound
    finally:
        reset_correlation_id(token)


def current_or_new_correlation_id() -> str:
    """The bound correlation ID, or a fresh one for work outside any request."""
    return get_correlation_id() or generate_correlation_id()

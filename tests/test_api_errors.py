"""Tests for engine error -> HTTP mapping."""

import pytest

from siargao_rides.api.errors import to_http_exception
from siargao_rides.domain.errors import (
    AuthorizationError,
    ConflictError,
    EngineError,
    InvalidTransitionError,
    NotFoundError,
    PriceMismatchError,
    TransientStoreError,
    ValidationError,
)


def test_conflict_is_no_longer_available():
    exc = to_http_exception(ConflictError(vehicle_id="v1", conflicting_rental_id="r-other"))
    assert exc.status_code == 409
    assert exc.detail["error_code"] == "no_longer_available"
    assert exc.detail["vehicle_id"] == "v1"
    # The other party's rental id stays server-side
    assert "r-other" not in str(exc.detail)


def test_price_mismatch_reports_both_totals():
    exc = to_http_exception(PriceMismatchError(expected_cents=120000, computed_cents=150000))
    assert exc.status_code == 422
    assert exc.detail["expected_cents"] == 120000
    assert exc.detail["computed_cents"] == 150000


def test_transient_sets_retry_after():
    exc = to_http_exception(TransientStoreError("lock timeout"))
    assert exc.status_code == 503
    assert exc.headers == {"Retry-After": "1"}


@pytest.mark.parametrize(
    ("error", "status"),
    [
        (ValidationError("bad dates"), 400),
        (InvalidTransitionError("r1", "completed", "cancelled"), 400),
        (AuthorizationError("not your rental"), 403),
        (NotFoundError("Rental r1 not found"), 404),
        (EngineError("boom"), 500),
    ],
)
def test_status_codes(error, status):
    assert to_http_exception(error).status_code == status


def test_retryable_flags():
    assert ConflictError().retryable is True
    assert TransientStoreError().retryable is True
    assert ValidationError().retryable is False

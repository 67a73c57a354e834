"""Map engine errors to HTTP responses.

ConflictError is an expected outcome under contention and is always
reported as "no longer available", never as a generic failure.
"""

from __future__ import annotations

from fastapi import HTTPException

from siargao_rides.domain.errors import (
    AuthorizationError,
    ConflictError,
    EngineError,
    NotFoundError,
    PriceMismatchError,
    TransientStoreError,
    ValidationError,
)

RETRY_AFTER_SECONDS = "1"


def to_http_exception(exc: EngineError) -> HTTPException:
    if isinstance(exc, ConflictError):
        return HTTPException(
            status_code=409,
            detail={
                "error_code": "no_longer_available",
                "message": "This vehicle is no longer available for the selected dates",
                "vehicle_id": exc.vehicle_id,
            },
        )
    if isinstance(exc, PriceMismatchError):
        return HTTPException(
            status_code=422,
            detail={
                "error_code": "price_mismatch",
                "message": "The price has changed, please review the new total",
                "expected_cents": exc.expected_cents,
                "computed_cents": exc.computed_cents,
            },
        )
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, AuthorizationError):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, TransientStoreError):
        return HTTPException(
            status_code=503,
            detail="Temporarily unavailable, please retry",
            headers={"Retry-After": RETRY_AFTER_SECONDS},
        )
    return HTTPException(status_code=500, detail="Internal error")

"""Worker routes for the blocked-range index.

- /materialize: retry path when a confirmation's inline materialization
  needs to be replayed (idempotent)
- /rebuild: regenerate a vehicle's rental-derived days from rentals
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from siargao_rides.api.task_auth import verify_task_auth
from siargao_rides.domain import blocked_ranges
from siargao_rides.domain.errors import EngineError, NotFoundError, TransientStoreError
from siargao_rides.observability.correlation import get_correlation_id
from siargao_rides.observability.logging import get_logger
from siargao_rides.observability.redaction import safe_log_context

router = APIRouter(prefix="/tasks/calendar", tags=["tasks"])

logger = get_logger(__name__)


async def _authorized_payload(request: Request, field: str) -> tuple[str | None, JSONResponse | None]:
    correlation_id = get_correlation_id()
    if not verify_task_auth(request):
        logger.warning(
            "task auth failed",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        payload: dict[str, Any] = await request.json()
    except ValueError:
        return None, JSONResponse(status_code=400, content={"ok": False, "error": "invalid json"})

    value = payload.get(field, "") if isinstance(payload, dict) else ""
    if not value:
        return None, JSONResponse(
            status_code=400, content={"ok": False, "error": "missing required fields"}
        )
    return value, None


def _failure(exc: EngineError, operation: str) -> JSONResponse:
    if isinstance(exc, NotFoundError):
        return JSONResponse(status_code=200, content={"ok": True, "status": "not_found"})
    if isinstance(exc, TransientStoreError):
        return JSONResponse(status_code=503, content={"ok": False, "error": "store unavailable"})
    logger.error(
        f"{operation} task failed",
        extra={"extra_fields": safe_log_context(error=type(exc).__name__)},
    )
    return JSONResponse(status_code=500, content={"ok": False, "error": "processing failed"})


@router.post("/materialize")
async def handle_materialize(request: Request) -> JSONResponse:
    """Expected payload: rental_id (required)."""
    rental_id, error = await _authorized_payload(request, "rental_id")
    if error is not None:
        return error
    try:
        result = blocked_ranges.materialize(rental_id)
    except EngineError as exc:
        return _failure(exc, "materialize")
    return JSONResponse(status_code=200, content={"ok": True, **result})


@router.post("/rebuild")
async def handle_rebuild(request: Request) -> JSONResponse:
    """Expected payload: vehicle_id (required)."""
    vehicle_id, error = await _authorized_payload(request, "vehicle_id")
    if error is not None:
        return error
    try:
        result = blocked_ranges.rebuild_vehicle_index(vehicle_id)
    except EngineError as exc:
        return _failure(exc, "rebuild")
    return JSONResponse(status_code=200, content={"ok": True, **result})

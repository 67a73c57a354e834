"""Worker route for the grace-period sweep.

Triggered on a fixed schedule (Cloud Scheduler -> OIDC-authenticated POST).
Re-running is safe: every auto-cancellation re-checks its rental under a
row lock.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from siargao_rides.api.task_auth import verify_task_auth
from siargao_rides.domain import sweep
from siargao_rides.domain.errors import EngineError, TransientStoreError
from siargao_rides.observability.correlation import current_or_new_correlation_id
from siargao_rides.observability.logging import get_logger
from siargao_rides.observability.redaction import safe_log_context

router = APIRouter(prefix="/tasks/bookings", tags=["tasks"])

logger = get_logger(__name__)


async def _optional_json(request: Request) -> dict[str, Any] | None:
    body = await request.body()
    if not body:
        return {}
    try:
        payload = await request.json()
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None


@router.post("/sweep-overdue")
async def handle_sweep_overdue(request: Request) -> JSONResponse:
    """Auto-cancel pending rentals past pickup + grace period.

    Optional payload:
    - now: ISO-8601 timestamp overriding the current time (replays, tests)
    - batch_size: rentals per batch

    Returns 200 with counts. Per-rental failures are listed in "failed" and
    answered with 500 so the scheduler retries; the retry skips everything
    already cancelled.
    """
    correlation_id = current_or_new_correlation_id()

    if not verify_task_auth(request):
        logger.warning(
            "task auth failed",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        raise HTTPException(status_code=401, detail="Unauthorized")

    payload = await _optional_json(request)
    if payload is None:
        return JSONResponse(status_code=400, content={"ok": False, "error": "invalid json"})

    now = None
    if payload.get("now"):
        try:
            now = datetime.fromisoformat(str(payload["now"]))
        except ValueError:
            return JSONResponse(status_code=400, content={"ok": False, "error": "invalid now"})
        if now.tzinfo is None:
            return JSONResponse(
                status_code=400, content={"ok": False, "error": "now must include a UTC offset"}
            )

    batch_size = payload.get("batch_size")
    if batch_size is not None and (not isinstance(batch_size, int) or batch_size < 1):
        return JSONResponse(status_code=400, content={"ok": False, "error": "invalid batch_size"})

    try:
        result = sweep.sweep_overdue(now, batch_size=batch_size, correlation_id=correlation_id)
    except TransientStoreError:
        logger.warning(
            "sweep deferred: store unavailable",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return JSONResponse(status_code=503, content={"ok": False, "error": "store unavailable"})
    except EngineError as exc:
        logger.error(
            "sweep failed",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id, error=type(exc).__name__)},
        )
        return JSONResponse(status_code=500, content={"ok": False, "error": "sweep failed"})

    status_code = 500 if result["failed"] else 200
    return JSONResponse(status_code=status_code, content={"ok": not result["failed"], **result})

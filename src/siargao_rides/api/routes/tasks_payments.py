"""Worker route for payment-collaborator events.

POST /tasks/payments/completed confirms a pending rental once its online
payment went through. Deduped by external_id, so redelivery is harmless.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from siargao_rides.api.task_auth import verify_task_auth
from siargao_rides.domain import lifecycle
from siargao_rides.domain.errors import EngineError, NotFoundError, TransientStoreError
from siargao_rides.observability.correlation import get_correlation_id
from siargao_rides.observability.logging import get_logger
from siargao_rides.observability.redaction import safe_log_context, short_id

router = APIRouter(prefix="/tasks/payments", tags=["tasks"])

logger = get_logger(__name__)


@router.post("/completed")
async def handle_payment_completed(request: Request) -> JSONResponse:
    """Apply a payment-completed event.

    Expected payload:
    - rental_id: Rental UUID (required)
    - external_id: Payment provider event/charge id (required, dedupe key)
    """
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
        return JSONResponse(status_code=400, content={"ok": False, "error": "invalid json"})

    rental_id = payload.get("rental_id", "")
    external_id = payload.get("external_id", "")
    if not rental_id or not external_id:
        return JSONResponse(
            status_code=400, content={"ok": False, "error": "missing required fields"}
        )

    try:
        result = lifecycle.confirm_payment(
            rental_id, external_id=external_id, correlation_id=correlation_id
        )
    except NotFoundError:
        # Nothing to retry: the rental does not exist
        return JSONResponse(status_code=200, content={"ok": True, "status": "not_found"})
    except TransientStoreError:
        return JSONResponse(status_code=503, content={"ok": False, "error": "store unavailable"})
    except EngineError as exc:
        logger.error(
            "payment task failed",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    rental_id_prefix=short_id(rental_id),
                    error=type(exc).__name__,
                )
            },
        )
        return JSONResponse(status_code=500, content={"ok": False, "error": "processing failed"})

    return JSONResponse(status_code=200, content={"ok": True, **result})

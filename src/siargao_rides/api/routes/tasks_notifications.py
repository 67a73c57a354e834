"""Worker route receiving outbox events for the notification collaborator.

The engine only guarantees at-most-once hand-off per outbox event;
e-mail/SMS rendering and sending live with the notification service,
which consumes the "notification handed off" records.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from siargao_rides.api.task_auth import verify_task_auth
from siargao_rides.infra.db import txn
from siargao_rides.infra.repositories.outbox_repository import get_event
from siargao_rides.infra.repositories.processed_events_repository import mark_processed
from siargao_rides.observability.correlation import get_correlation_id
from siargao_rides.observability.logging import get_logger
from siargao_rides.observability.redaction import safe_log_context, short_id

router = APIRouter(prefix="/tasks/notifications", tags=["tasks"])

logger = get_logger(__name__)

TASK_SOURCE = "tasks.notifications.deliver"


@router.post("/deliver")
async def handle_deliver(request: Request) -> JSONResponse:
    """Expected payload: outbox_event_id (required), event_type, rental_id, shop_id."""
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

    event_id = payload.get("outbox_event_id")
    if not isinstance(event_id, int):
        return JSONResponse(
            status_code=400, content={"ok": False, "error": "missing required fields"}
        )

    with txn() as cur:
        event = get_event(cur, event_id)
        if event is None:
            return JSONResponse(status_code=200, content={"ok": True, "status": "not_found"})
        if not mark_processed(cur, source=TASK_SOURCE, external_id=str(event_id)):
            return JSONResponse(status_code=200, content={"ok": True, "status": "duplicate"})

    logger.info(
        "notification handed off",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                outbox_event_id=event_id,
                event_type=event["event_type"],
                rental_id_prefix=short_id(event["aggregate_id"]),
                shop_id=event["shop_id"],
            )
        },
    )
    return JSONResponse(status_code=200, content={"ok": True, "status": "delivered"})

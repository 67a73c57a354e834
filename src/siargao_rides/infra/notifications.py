"""Notification dispatch for rental lifecycle events.

Events are already durable in outbox_events when this runs (after
commit). Delivery problems are logged and left for the outbox sweeper:
a failed e-mail/SMS must never undo a rental.
"""

from siargao_rides.observability.logging import get_logger
from siargao_rides.observability.redaction import safe_log_context, short_id
from siargao_rides.tasks.client import TasksClient

logger = get_logger(__name__)

DELIVER_PATH = "/tasks/notifications/deliver"

# Module-level singleton (tests swap it via _get_tasks_client patching)
_tasks_client = TasksClient()


def _get_tasks_client() -> TasksClient:
    """Get tasks client (allows override in tests)."""
    return _tasks_client


def dispatch_events(events: list[dict], correlation_id: str | None = None) -> int:
    """Enqueue delivery of outbox events. Never raises.

    Args:
        events: Descriptors returned by outbox_repository.emit_rental_event.
        correlation_id: Correlation ID to propagate to the worker.

    Returns:
        Number of events handed to the tasks backend.
    """
    dispatched = 0
    client = _get_tasks_client()
    for event in events:
        task_id = f"notify:{event['outbox_event_id']}"
        try:
            if client.enqueue_http(
                task_id=task_id,
                url_path=DELIVER_PATH,
                payload={
                    "outbox_event_id": event["outbox_event_id"],
                    "event_type": event["event_type"],
                    "rental_id": event["rental_id"],
                    "shop_id": event["shop_id"],
                },
                correlation_id=correlation_id,
            ):
                dispatched += 1
        except Exception:
            logger.exception(
                "notification dispatch failed",
                extra={
                    "extra_fields": safe_log_context(
                        event_type=event.get("event_type"),
                        rental_id_prefix=short_id(event.get("rental_id")),
                        outbox_event_id=event.get("outbox_event_id"),
                    )
                },
            )
    return dispatched

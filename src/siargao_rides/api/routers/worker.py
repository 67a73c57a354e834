"""Worker/internal routes (APP_ROLE=worker)."""

from fastapi import APIRouter

from siargao_rides.api.routes import (
    tasks_bookings,
    tasks_calendar,
    tasks_notifications,
    tasks_payments,
)

router = APIRouter()


@router.get("/tasks/health")
def tasks_health() -> dict:
    """Tasks subsystem health check."""
    return {"status": "ok", "subsystem": "tasks"}


router.include_router(tasks_bookings.router)
router.include_router(tasks_payments.router)
router.include_router(tasks_calendar.router)
router.include_router(tasks_notifications.router)

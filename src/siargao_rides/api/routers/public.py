"""Public-facing routes (APP_ROLE=public)."""

from fastapi import APIRouter

from siargao_rides.api.routes import bookings, vehicle_groups, vehicles

router = APIRouter()


@router.get("/health")
def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


router.include_router(vehicles.router)
router.include_router(vehicle_groups.router)
router.include_router(bookings.router)

"""Vehicle availability and calendar endpoints."""

from __future__ import annotations

from datetime import date, timedelta

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel, Field

from siargao_rides.api.auth import CurrentUser, get_current_user
from siargao_rides.api.errors import to_http_exception
from siargao_rides.domain import availability, blocked_ranges
from siargao_rides.domain.errors import EngineError
from siargao_rides.domain.intervals import DateInterval

router = APIRouter(prefix="/vehicles", tags=["vehicles"])

DEFAULT_CALENDAR_DAYS = 90


class AvailabilityRequest(BaseModel):
    start_date: date
    end_date: date


class BlockDatesRequest(BaseModel):
    dates: list[date] = Field(min_length=1)
    reason: str | None = Field(default=None, max_length=200)


class UnblockDatesRequest(BaseModel):
    dates: list[date] = Field(min_length=1)


@router.post("/{vehicle_id}/availability")
def check_vehicle_availability(
    body: AvailabilityRequest,
    vehicle_id: str = Path(..., description="Vehicle UUID"),
) -> dict:
    """Is this vehicle free for [start_date, end_date)? Conflicts included."""
    try:
        interval = DateInterval(body.start_date, body.end_date)
        result = availability.check_availability(availability.Target(vehicle_id=vehicle_id), interval)
    except EngineError as exc:
        raise to_http_exception(exc)
    return {**result.as_dict(), **interval.as_dict()}


@router.get("/{vehicle_id}/blocked-dates")
def get_blocked_dates(
    vehicle_id: str = Path(..., description="Vehicle UUID"),
    from_date: date | None = Query(None, alias="from"),
    to_date: date | None = Query(None, alias="to"),
) -> dict:
    """Calendar read from the blocked-range index (`to` exclusive)."""
    start = from_date or date.today()
    end = to_date or start + timedelta(days=DEFAULT_CALENDAR_DAYS)
    try:
        interval = DateInterval(start, end)
        days = blocked_ranges.get_blocked_days(vehicle_id, interval)
    except EngineError as exc:
        raise to_http_exception(exc)

    return {
        "vehicle_id": vehicle_id,
        **interval.as_dict(),
        "blocked_dates": [{**d, "date": d["date"].isoformat()} for d in days],
    }


@router.post("/{vehicle_id}/blocked-dates")
def block_vehicle_dates(
    body: BlockDatesRequest,
    vehicle_id: str = Path(..., description="Vehicle UUID"),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    try:
        return blocked_ranges.block_dates(
            vehicle_id, body.dates, actor=user.as_actor(), reason=body.reason
        )
    except EngineError as exc:
        raise to_http_exception(exc)


@router.delete("/{vehicle_id}/blocked-dates")
def unblock_vehicle_dates(
    body: UnblockDatesRequest,
    vehicle_id: str = Path(..., description="Vehicle UUID"),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    try:
        return blocked_ranges.unblock_dates(vehicle_id, body.dates, actor=user.as_actor())
    except EngineError as exc:
        raise to_http_exception(exc)

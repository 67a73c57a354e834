"""Vehicle group endpoints: pooled availability and group administration."""

from __future__ import annotations

from datetime import date
from typing import Any, Literal

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from siargao_rides.api.auth import CurrentUser, get_current_user
from siargao_rides.api.errors import to_http_exception
from siargao_rides.domain import availability, grouping
from siargao_rides.domain.errors import EngineError
from siargao_rides.domain.intervals import DateInterval
from siargao_rides.observability.logging import get_logger
from siargao_rides.observability.redaction import safe_log_context

router = APIRouter(prefix="/vehicle-groups", tags=["vehicle-groups"])

logger = get_logger(__name__)


class GroupAvailabilityRequest(BaseModel):
    start_date: date
    end_date: date


class ConvertToGroupRequest(BaseModel):
    vehicle_ids: list[str] = Field(min_length=2)
    group_name: str = Field(min_length=1, max_length=120)
    naming_pattern: str | None = Field(default=None, max_length=120)


class CreateGroupRequest(BaseModel):
    shop_id: str
    name: str = Field(min_length=1, max_length=120)
    quantity: int = Field(ge=1, le=100)
    price_per_day_cents: int = Field(ge=0)
    vehicle_type: str | None = Field(default=None, max_length=60)
    category: str | None = Field(default=None, max_length=60)
    naming_pattern: str | None = Field(default=None, max_length=120)
    individual_names: list[str] | None = None


class UpdateGroupRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    is_active: bool | None = None
    price_per_day_cents: int | None = Field(default=None, ge=0)


class BulkActionRequest(BaseModel):
    action: Literal["set-availability"]
    data: dict[str, Any]
    vehicle_ids: list[str] | None = None


@router.get("/candidates")
def list_group_candidates(
    shop_id: str = Query(..., description="Shop UUID"),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    """Look-alike standalone listings that could be merged into groups."""
    try:
        candidates = grouping.find_group_candidates(shop_id, actor=user.as_actor())
    except EngineError as exc:
        raise to_http_exception(exc)
    return {"shop_id": shop_id, "candidates": candidates}


@router.post("")
def create_group(
    body: CreateGroupRequest,
    user: CurrentUser = Depends(get_current_user),
) -> JSONResponse:
    """New group with `quantity` fresh units, all committed together."""
    try:
        result = grouping.create_group_with_units(
            actor=user.as_actor(),
            **body.model_dump(),
        )
    except EngineError as exc:
        raise to_http_exception(exc)
    return JSONResponse(status_code=201, content=result)


@router.put("/{group_id}")
def update_group(
    body: UpdateGroupRequest,
    group_id: str = Path(..., description="Vehicle group UUID"),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    try:
        return grouping.update_group(
            group_id,
            actor=user.as_actor(),
            **body.model_dump(),
        )
    except EngineError as exc:
        raise to_http_exception(exc)


@router.post("/convert")
def convert_to_group(
    body: ConvertToGroupRequest,
    user: CurrentUser = Depends(get_current_user),
) -> JSONResponse:
    try:
        result = grouping.convert_to_group(
            actor=user.as_actor(),
            vehicle_ids=body.vehicle_ids,
            group_name=body.group_name,
            naming_pattern=body.naming_pattern,
        )
    except EngineError as exc:
        raise to_http_exception(exc)
    return JSONResponse(status_code=201, content=result)


@router.post("/{group_id}/availability")
def check_group_availability(
    body: GroupAvailabilityRequest,
    group_id: str = Path(..., description="Vehicle group UUID"),
) -> dict:
    """Which units of the group are free, and when the others free up."""
    try:
        interval = DateInterval(body.start_date, body.end_date)
        result = availability.check_availability(availability.Target(group_id=group_id), interval)
    except EngineError as exc:
        raise to_http_exception(exc)
    return result.as_dict()


@router.delete("/{group_id}")
def dissolve_group(
    group_id: str = Path(..., description="Vehicle group UUID"),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    try:
        return grouping.dissolve_group(group_id, actor=user.as_actor())
    except EngineError as exc:
        raise to_http_exception(exc)


@router.post("/{group_id}/bulk-action")
def bulk_action(
    body: BulkActionRequest,
    group_id: str = Path(..., description="Vehicle group UUID"),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    is_available = body.data.get("is_available")
    if not isinstance(is_available, bool):
        raise HTTPException(status_code=400, detail="is_available must be a boolean")

    try:
        result = grouping.set_group_availability(
            group_id,
            actor=user.as_actor(),
            is_available=is_available,
            vehicle_ids=body.vehicle_ids,
        )
    except EngineError as exc:
        raise to_http_exception(exc)

    logger.info(
        "group bulk action applied",
        extra={
            "extra_fields": safe_log_context(
                group_id=group_id,
                action=body.action,
                updated=result["updated"],
            )
        },
    )
    return result

"""Booking endpoints: allocation and lifecycle actions.

POST /bookings is the single write path for new rentals; it re-checks
availability inside its own transaction, so a stale availability read
on the client can only ever end in 409 no_longer_available.
"""

from __future__ import annotations

from datetime import date, datetime

from fastapi import APIRouter, Depends, Header, Path
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field, model_validator

from siargao_rides.api.auth import CurrentUser, get_current_user, get_optional_user
from siargao_rides.api.errors import to_http_exception
from siargao_rides.domain import allocation, lifecycle
from siargao_rides.domain.availability import Target
from siargao_rides.domain.errors import EngineError
from siargao_rides.domain.intervals import DateInterval
from siargao_rides.observability.correlation import get_correlation_id
from siargao_rides.observability.logging import get_logger
from siargao_rides.observability.redaction import safe_log_context, short_id

router = APIRouter(prefix="/bookings", tags=["bookings"])

logger = get_logger(__name__)


class CreateBookingRequest(BaseModel):
    vehicle_id: str | None = None
    group_id: str | None = None
    start_date: date
    end_date: date
    expected_total_cents: int | None = Field(default=None, ge=0)
    pickup_time: datetime | None = None
    deposit_required: bool = False
    guest_name: str | None = Field(default=None, max_length=200)
    guest_email: str | None = Field(default=None, max_length=320)
    guest_phone: str | None = Field(default=None, max_length=40)

    @model_validator(mode="after")
    def _one_target(self) -> "CreateBookingRequest":
        if (self.vehicle_id is None) == (self.group_id is None):
            raise ValueError("exactly one of vehicle_id or group_id is required")
        return self


class CancelBookingRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


def _serialize_rental(rental: dict) -> dict:
    return jsonable_encoder(
        {
            "id": rental["id"],
            "vehicle_id": rental["vehicle_id"],
            "shop_id": rental["shop_id"],
            "start_date": rental["start_date"],
            "end_date": rental["end_date"],
            "pickup_time": rental["pickup_time"],
            "grace_period_minutes": rental["grace_period_minutes"],
            "status": rental["status"],
            "payment_status": rental["payment_status"],
            "deposit_required": rental["deposit_required"],
            "deposit_paid": rental["deposit_paid"],
            "auto_cancel_override": rental["auto_cancel_override"],
            "daily_rate_cents": rental["daily_rate_cents"],
            "days": rental["days"],
            "total_cents": rental["total_cents"],
            "currency": rental["currency"],
            "requested_group_id": rental["requested_group_id"],
        }
    )


@router.post("")
def create_booking(
    body: CreateBookingRequest,
    idempotency_key: str = Header(..., alias="Idempotency-Key"),
    user: CurrentUser | None = Depends(get_optional_user),
) -> JSONResponse:
    """Allocate a rental. 201 on creation, 200 when replaying a known key."""
    correlation_id = get_correlation_id()
    try:
        requester = allocation.Requester(
            user_id=user.id if user else None,
            guest_name=body.guest_name,
            guest_email=body.guest_email,
            guest_phone=body.guest_phone,
        )
        result = allocation.allocate(
            target=Target(vehicle_id=body.vehicle_id, group_id=body.group_id),
            interval=DateInterval(body.start_date, body.end_date),
            requester=requester,
            idempotency_key=idempotency_key,
            expected_total_cents=body.expected_total_cents,
            pickup_time=body.pickup_time,
            deposit_required=body.deposit_required,
            correlation_id=correlation_id,
        )
    except EngineError as exc:
        raise to_http_exception(exc)

    if not result["created"]:
        logger.info(
            "booking replayed",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    rental_id_prefix=short_id(result["rental"]["id"]),
                )
            },
        )
    return JSONResponse(
        status_code=201 if result["created"] else 200,
        content=_serialize_rental(result["rental"]),
    )


@router.post("/{rental_id}/actions/cancel")
def cancel_booking(
    body: CancelBookingRequest | None = None,
    rental_id: str = Path(..., description="Rental UUID"),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    try:
        return lifecycle.cancel(
            rental_id,
            actor=user.as_actor(),
            reason=body.reason if body else None,
            correlation_id=get_correlation_id(),
        )
    except EngineError as exc:
        raise to_http_exception(exc)


@router.post("/{rental_id}/actions/override-auto-cancellation")
def override_auto_cancellation(
    rental_id: str = Path(..., description="Rental UUID"),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    try:
        return lifecycle.override(
            rental_id, actor=user.as_actor(), correlation_id=get_correlation_id()
        )
    except EngineError as exc:
        raise to_http_exception(exc)


@router.post("/{rental_id}/actions/confirm-deposit")
def confirm_deposit(
    rental_id: str = Path(..., description="Rental UUID"),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    try:
        return lifecycle.confirm_deposit(
            rental_id, actor=user.as_actor(), correlation_id=get_correlation_id()
        )
    except EngineError as exc:
        raise to_http_exception(exc)


@router.post("/{rental_id}/actions/complete")
def complete_booking(
    rental_id: str = Path(..., description="Rental UUID"),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    try:
        return lifecycle.complete(
            rental_id, actor=user.as_actor(), correlation_id=get_correlation_id()
        )
    except EngineError as exc:
        raise to_http_exception(exc)

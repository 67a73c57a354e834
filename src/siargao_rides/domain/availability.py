"""Availability resolver: is a vehicle (or a unit of a group) free?

Read-only. Results may be stale by the time a write happens; the only
gate for committing a rental is allocation.allocate(), which re-runs
evaluate_unit() under row locks inside its own transaction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from psycopg2.extensions import cursor as PgCursor

from siargao_rides.domain.errors import NotFoundError, ValidationError
from siargao_rides.domain.intervals import DateInterval, overlaps, next_free_day
from siargao_rides.infra.db import txn
from siargao_rides.infra.repositories.blocked_dates_repository import list_manual_blocks
from siargao_rides.infra.repositories.rentals_repository import (
    find_overlapping_rentals,
    list_active_rentals_from,
)
from siargao_rides.infra.repositories.vehicles_repository import (
    get_group,
    get_vehicle,
    list_group_members,
)

REASON_DISABLED = "disabled"
REASON_BOOKED = "booked"
REASON_BLOCKED = "blocked"


@dataclass(frozen=True)
class Target:
    """A single vehicle, or a group with auto-select."""

    vehicle_id: str | None = None
    group_id: str | None = None

    def __post_init__(self) -> None:
        if (self.vehicle_id is None) == (self.group_id is None):
            raise ValidationError("exactly one of vehicle_id or group_id is required")

    @property
    def is_group(self) -> bool:
        return self.group_id is not None


@dataclass(frozen=True)
class SingleAvailability:
    vehicle_id: str
    available: bool
    reason: str | None = None
    conflicts: list[dict] = field(default_factory=list)
    blocked_days: list[date] = field(default_factory=list)
    next_available_date: date | None = None

    def as_dict(self) -> dict:
        return {
            "vehicle_id": self.vehicle_id,
            "available": self.available,
            "reason": self.reason,
            "conflicts": [
                {
                    "rental_id": r["id"],
                    "start_date": r["start_date"].isoformat(),
                    "end_date": r["end_date"].isoformat(),
                    "status": r["status"],
                }
                for r in self.conflicts
            ],
            "blocked_days": [d.isoformat() for d in self.blocked_days],
            "next_available_date": (
                self.next_available_date.isoformat() if self.next_available_date else None
            ),
        }


@dataclass(frozen=True)
class UnitAvailability:
    vehicle_id: str
    group_index: int | None
    identifier: str | None
    available: bool
    next_available_date: date | None = None


@dataclass(frozen=True)
class GroupAvailability:
    group_id: str
    interval: DateInterval
    total_units: int
    units: list[UnitAvailability]
    is_active: bool = True

    @property
    def available_unit_ids(self) -> list[str]:
        return [u.vehicle_id for u in self.units if u.available]

    @property
    def occupied_units(self) -> list[UnitAvailability]:
        return [u for u in self.units if not u.available]

    @property
    def next_available_dates(self) -> dict[str, date | None]:
        return {u.vehicle_id: u.next_available_date for u in self.occupied_units}

    def as_dict(self) -> dict:
        return {
            "group_id": self.group_id,
            **self.interval.as_dict(),
            "total_units": self.total_units,
            "is_active": self.is_active,
            "available_count": len(self.available_unit_ids),
            "available_unit_ids": self.available_unit_ids,
            "occupied_units": [
                {
                    "vehicle_id": u.vehicle_id,
                    "group_index": u.group_index,
                    "identifier": u.identifier,
                    "next_available_date": (
                        u.next_available_date.isoformat() if u.next_available_date else None
                    ),
                }
                for u in self.occupied_units
            ],
        }


def evaluate_unit(
    vehicle: dict,
    interval: DateInterval,
    rentals: list[dict],
    manual_days: list[date],
) -> SingleAvailability:
    """Decide one vehicle's availability from already-loaded state.

    Args:
        vehicle: Vehicle dict (vehicles_repository shape).
        interval: Requested interval.
        rentals: Active rentals of this vehicle; may include rentals that
            do not overlap (they feed the next-available walk).
        manual_days: Manually blocked days of this vehicle from interval.start on.

    The next available date is the first day on or after the end of the
    latest overlapping period that no rental or manual block covers. It
    stays None for a vehicle the seller switched off.
    """
    periods = [DateInterval(r["start_date"], r["end_date"]) for r in rentals]
    periods.extend(DateInterval.single_day(d) for d in manual_days)

    conflicts = [
        r for r in rentals if overlaps(DateInterval(r["start_date"], r["end_date"]), interval)
    ]
    blocked = sorted(d for d in set(manual_days) if interval.contains_day(d))

    if not vehicle["is_available"]:
        return SingleAvailability(
            vehicle_id=vehicle["id"],
            available=False,
            reason=REASON_DISABLED,
            conflicts=conflicts,
            blocked_days=blocked,
        )

    if not conflicts and not blocked:
        return SingleAvailability(vehicle_id=vehicle["id"], available=True)

    latest_end = max(p.end for p in periods if overlaps(p, interval))
    return SingleAvailability(
        vehicle_id=vehicle["id"],
        available=False,
        reason=REASON_BOOKED if conflicts else REASON_BLOCKED,
        conflicts=conflicts,
        blocked_days=blocked,
        next_available_date=next_free_day(periods, after=latest_end),
    )


def check_vehicle_live(cur: PgCursor, vehicle: dict, interval: DateInterval) -> SingleAvailability:
    """Authoritative check against rentals (not the index) on `cur`.

    Used inside the allocation transaction after the vehicle row is locked.
    """
    overlapping = find_overlapping_rentals(
        cur, vehicle_id=vehicle["id"], start_date=interval.start, end_date=interval.end
    )
    manual = list_manual_blocks(
        cur, vehicle_ids=[vehicle["id"]], from_date=interval.start, to_date=interval.end
    )
    return evaluate_unit(vehicle, interval, overlapping, manual.get(vehicle["id"], []))


def check_single(vehicle_id: str, interval: DateInterval) -> SingleAvailability:
    """Availability of one vehicle, with conflicts and next free day.

    Raises:
        NotFoundError: Unknown vehicle.
    """
    with txn() as cur:
        vehicle = get_vehicle(cur, vehicle_id)
        if vehicle is None:
            raise NotFoundError(f"Vehicle {vehicle_id} not found")
        rentals = list_active_rentals_from(cur, vehicle_ids=[vehicle_id], from_date=interval.start)
        manual = list_manual_blocks(cur, vehicle_ids=[vehicle_id], from_date=interval.start)

    return evaluate_unit(vehicle, interval, rentals, manual.get(vehicle_id, []))


def check_group(group_id: str, interval: DateInterval) -> GroupAvailability:
    """Per-unit availability of a group, ordered by group_index.

    Raises:
        NotFoundError: Unknown group.
    """
    with txn() as cur:
        group = get_group(cur, group_id)
        if group is None:
            raise NotFoundError(f"Vehicle group {group_id} not found")
        members = list_group_members(cur, group_id)
        member_ids = [m["id"] for m in members]
        rentals = list_active_rentals_from(cur, vehicle_ids=member_ids, from_date=interval.start)
        manual = list_manual_blocks(cur, vehicle_ids=member_ids, from_date=interval.start)

    return build_group_availability(group, members, interval, rentals, manual)


def build_group_availability(
    group: dict,
    members: list[dict],
    interval: DateInterval,
    rentals: list[dict],
    manual: dict[str, list[date]],
) -> GroupAvailability:
    by_vehicle: dict[str, list[dict]] = {}
    for rental in rentals:
        by_vehicle.setdefault(rental["vehicle_id"], []).append(rental)

    ordered = sorted(
        members,
        key=lambda m: (m["group_index"] if m["group_index"] is not None else 0, m["id"]),
    )
    units = []
    for member in ordered:
        # A deactivated group takes no bookings; allocate() refuses it too
        available, next_date = False, None
        if group["is_active"]:
            result = evaluate_unit(
                member,
                interval,
                by_vehicle.get(member["id"], []),
                manual.get(member["id"], []),
            )
            available, next_date = result.available, result.next_available_date
        units.append(
            UnitAvailability(
                vehicle_id=member["id"],
                group_index=member["group_index"],
                identifier=member["individual_identifier"],
                available=available,
                next_available_date=next_date,
            )
        )

    return GroupAvailability(
        group_id=group["id"],
        interval=interval,
        total_units=group["total_quantity"],
        units=units,
        is_active=group["is_active"],
    )


def check_availability(target: Target, interval: DateInterval) -> SingleAvailability | GroupAvailability:
    """Entry point used by the HTTP layer and other callers."""
    if target.is_group:
        return check_group(target.group_id, interval)
    return check_single(target.vehicle_id, interval)

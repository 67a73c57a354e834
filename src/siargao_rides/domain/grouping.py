"""Grouping model: N interchangeable vehicles bookable as one listing.

Conversion is all-or-nothing: the group row and every member update
commit together, or nothing does. Members get group_index 1..N in the
order the seller listed them; the first becomes the primary unit that
carries the listing's price. Creating a group with fresh units follows
the same rule.
"""

from __future__ import annotations

from dataclasses import dataclass

from siargao_rides.domain.errors import ConflictError, NotFoundError, ValidationError
from siargao_rides.domain.ownership import Actor, assert_owns_shop
from siargao_rides.domain.store_errors import write_txn
from siargao_rides.infra.db import txn
from siargao_rides.infra.repositories.vehicles_repository import (
    assign_group_membership,
    clear_group_membership,
    delete_group,
    get_group,
    get_vehicles,
    group_has_rentals,
    insert_group,
    insert_vehicle,
    list_group_members,
    list_ungrouped_vehicles,
    set_availability,
    set_group_base_vehicle,
    set_group_price,
    update_group_details,
)
from siargao_rides.observability.logging import get_logger
from siargao_rides.observability.redaction import safe_log_context

logger = get_logger(__name__)

DEFAULT_NAMING_PATTERN = "Unit {index}"
MAX_PRICE_VARIATION_PERCENT = 20
MAX_GROUP_SIZE = 100


def derive_identifier(pattern: str, index: int, name: str) -> str:
    """Display identifier for unit `index` ("Unit {index}" -> "Unit 3")."""
    return pattern.replace("{index}", str(index)).replace("{name}", name)


@dataclass(frozen=True)
class MemberPlan:
    vehicle_id: str
    group_index: int
    individual_identifier: str
    is_group_primary: bool


def plan_group_conversion(
    vehicle_ids: list[str],
    vehicles: list[dict],
    naming_pattern: str = DEFAULT_NAMING_PATTERN,
) -> list[MemberPlan]:
    """Validate candidates and assign indexes; no I/O.

    Raises:
        ValidationError: Fewer than two vehicles, duplicates, mixed owner,
            type or category, or a vehicle already grouped.
        NotFoundError: A listed vehicle does not exist.
    """
    if len(vehicle_ids) < 2:
        raise ValidationError("A group needs at least two vehicles")
    if len(vehicle_ids) > MAX_GROUP_SIZE:
        raise ValidationError(f"A group can hold at most {MAX_GROUP_SIZE} vehicles")
    if len(set(vehicle_ids)) != len(vehicle_ids):
        raise ValidationError("Duplicate vehicle ids")
    if not naming_pattern.strip():
        raise ValidationError("naming_pattern cannot be empty")

    by_id = {v["id"]: v for v in vehicles}
    missing = [vid for vid in vehicle_ids if vid not in by_id]
    if missing:
        raise NotFoundError(f"Vehicles not found: {', '.join(missing)}")

    ordered = [by_id[vid] for vid in vehicle_ids]
    first = ordered[0]
    for vehicle in ordered[1:]:
        if vehicle["shop_id"] != first["shop_id"]:
            raise ValidationError("All vehicles must belong to the same shop")
        if vehicle["vehicle_type"] != first["vehicle_type"] or vehicle["category"] != first["category"]:
            raise ValidationError("All vehicles must share vehicle type and category")

    grouped = [v["id"] for v in ordered if v["group_id"] is not None]
    if grouped:
        raise ValidationError(f"Vehicles already in a group: {', '.join(grouped)}")

    return [
        MemberPlan(
            vehicle_id=vehicle["id"],
            group_index=index,
            individual_identifier=derive_identifier(naming_pattern, index, vehicle["name"]),
            is_group_primary=index == 1,
        )
        for index, vehicle in enumerate(ordered, start=1)
    ]


def convert_to_group(
    *,
    actor: Actor,
    vehicle_ids: list[str],
    group_name: str,
    naming_pattern: str | None = None,
) -> dict:
    """Turn standalone vehicles into one group.

    Returns:
        {"group_id": str, "total_quantity": int, "members": [...]}

    Raises:
        ConflictError: A member was grouped concurrently (nothing is kept).
    """
    if not group_name or not group_name.strip():
        raise ValidationError("group_name is required")
    pattern = naming_pattern or DEFAULT_NAMING_PATTERN

    with write_txn("convert_to_group") as cur:
        vehicles = get_vehicles(cur, vehicle_ids, lock=True)
        plan = plan_group_conversion(vehicle_ids, vehicles, pattern)
        base = next(v for v in vehicles if v["id"] == plan[0].vehicle_id)
        assert_owns_shop(cur, actor, base["shop_id"])

        group_id = insert_group(
            cur,
            shop_id=base["shop_id"],
            name=group_name.strip(),
            vehicle_type=base["vehicle_type"],
            category=base["category"],
            total_quantity=len(plan),
            naming_pattern=pattern,
            base_vehicle_id=base["id"],
        )
        for member in plan:
            if not assign_group_membership(
                cur,
                vehicle_id=member.vehicle_id,
                group_id=group_id,
                group_index=member.group_index,
                individual_identifier=member.individual_identifier,
                is_group_primary=member.is_group_primary,
            ):
                # Raising rolls back the group row and earlier members
                raise ConflictError(
                    "Vehicle was grouped concurrently", vehicle_id=member.vehicle_id
                )

    logger.info(
        "vehicle group created",
        extra={
            "extra_fields": safe_log_context(
                group_id=group_id,
                shop_id=base["shop_id"],
                units=len(plan),
            )
        },
    )
    return {
        "group_id": group_id,
        "total_quantity": len(plan),
        "members": [
            {
                "vehicle_id": m.vehicle_id,
                "group_index": m.group_index,
                "individual_identifier": m.individual_identifier,
                "is_group_primary": m.is_group_primary,
            }
            for m in plan
        ],
    }


def plan_unit_identifiers(
    quantity: int,
    name: str,
    naming_pattern: str = DEFAULT_NAMING_PATTERN,
    individual_names: list[str] | None = None,
) -> list[str]:
    """Identifiers for units 1..quantity of a new group.

    individual_names, when given, must name every unit; otherwise the
    naming pattern is expanded per index.
    """
    if not 1 <= quantity <= MAX_GROUP_SIZE:
        raise ValidationError(f"Quantity must be between 1 and {MAX_GROUP_SIZE}")
    if individual_names:
        names = [n.strip() for n in individual_names]
        if len(names) != quantity:
            raise ValidationError("individual_names must name every unit")
        if not all(names):
            raise ValidationError("individual_names cannot contain blank names")
        if len(set(names)) != len(names):
            raise ValidationError("individual_names must be unique")
        return names
    if not naming_pattern.strip():
        raise ValidationError("naming_pattern cannot be empty")
    return [derive_identifier(naming_pattern, index, name) for index in range(1, quantity + 1)]


def create_group_with_units(
    *,
    actor: Actor,
    shop_id: str,
    name: str,
    quantity: int,
    price_per_day_cents: int,
    vehicle_type: str | None = None,
    category: str | None = None,
    naming_pattern: str | None = None,
    individual_names: list[str] | None = None,
) -> dict:
    """Create a group together with `quantity` brand-new units.

    The group row and every unit commit together. Unit 1 is the primary
    and becomes the group's base vehicle.
    """
    if not name or not name.strip():
        raise ValidationError("name is required")
    if price_per_day_cents < 0:
        raise ValidationError("price_per_day_cents cannot be negative")
    name = name.strip()
    pattern = naming_pattern or DEFAULT_NAMING_PATTERN
    identifiers = plan_unit_identifiers(quantity, name, pattern, individual_names)

    with write_txn("create_group_with_units") as cur:
        assert_owns_shop(cur, actor, shop_id)
        group_id = insert_group(
            cur,
            shop_id=shop_id,
            name=name,
            vehicle_type=vehicle_type,
            category=category,
            total_quantity=quantity,
            naming_pattern=pattern,
            base_vehicle_id=None,
        )
        vehicle_ids = [
            insert_vehicle(
                cur,
                shop_id=shop_id,
                name=name,
                vehicle_type=vehicle_type,
                category=category,
                price_per_day_cents=price_per_day_cents,
                group_id=group_id,
                group_index=index,
                individual_identifier=identifier,
                is_group_primary=index == 1,
            )
            for index, identifier in enumerate(identifiers, start=1)
        ]
        set_group_base_vehicle(cur, group_id, vehicle_ids[0])

    logger.info(
        "vehicle group created with new units",
        extra={"extra_fields": safe_log_context(group_id=group_id, shop_id=shop_id, units=quantity)},
    )
    return {"group_id": group_id, "total_quantity": quantity, "vehicle_ids": vehicle_ids}


def update_group(
    group_id: str,
    *,
    actor: Actor,
    name: str | None = None,
    is_active: bool | None = None,
    price_per_day_cents: int | None = None,
) -> dict:
    """Rename, (de)activate or reprice a group in one transaction.

    A price change goes to every member since groups share pricing;
    existing rentals keep the rate they were booked at. A deactivated
    group is refused by allocate() and reported with no free units.
    """
    if name is None and is_active is None and price_per_day_cents is None:
        raise ValidationError("Nothing to update")
    if name is not None:
        name = name.strip()
        if not name:
            raise ValidationError("name cannot be blank")
    if price_per_day_cents is not None and price_per_day_cents < 0:
        raise ValidationError("price_per_day_cents cannot be negative")

    repriced = 0
    with write_txn("update_group") as cur:
        group = get_group(cur, group_id, lock=True)
        if group is None:
            raise NotFoundError(f"Vehicle group {group_id} not found")
        assert_owns_shop(cur, actor, group["shop_id"])

        if name is not None or is_active is not None:
            update_group_details(cur, group_id, name=name, is_active=is_active)
        if price_per_day_cents is not None:
            # Lock order matches allocate(): group row, then members by group_index
            list_group_members(cur, group_id, lock=True)
            repriced = set_group_price(cur, group_id, price_per_day_cents)

    logger.info(
        "vehicle group updated",
        extra={
            "extra_fields": safe_log_context(
                group_id=group_id,
                is_active=is_active,
                repriced=repriced,
            )
        },
    )
    return {
        "group_id": group_id,
        "name": group["name"] if name is None else name,
        "is_active": group["is_active"] if is_active is None else is_active,
        "vehicles_repriced": repriced,
    }


def dissolve_group(group_id: str, *, actor: Actor) -> dict:
    """Ungroup every member and delete the group.

    Refused while any rental references a member: membership is frozen
    once bookings exist.
    """
    with write_txn("dissolve_group") as cur:
        group = get_group(cur, group_id, lock=True)
        if group is None:
            raise NotFoundError(f"Vehicle group {group_id} not found")
        assert_owns_shop(cur, actor, group["shop_id"])

        list_group_members(cur, group_id, lock=True)
        if group_has_rentals(cur, group_id):
            raise ConflictError("Group has bookings and cannot be dissolved")

        released = clear_group_membership(cur, group_id)
        delete_group(cur, group_id)

    logger.info(
        "vehicle group dissolved",
        extra={"extra_fields": safe_log_context(group_id=group_id, units=released)},
    )
    return {"group_id": group_id, "vehicles_released": released}


def set_group_availability(
    group_id: str,
    *,
    actor: Actor,
    is_available: bool,
    vehicle_ids: list[str] | None = None,
) -> dict:
    """Bulk seller master switch for a group (or some of its members)."""
    with write_txn("set_group_availability") as cur:
        group = get_group(cur, group_id)
        if group is None:
            raise NotFoundError(f"Vehicle group {group_id} not found")
        assert_owns_shop(cur, actor, group["shop_id"])
        updated = set_availability(
            cur, group_id=group_id, is_available=is_available, vehicle_ids=vehicle_ids
        )

    return {"group_id": group_id, "updated": updated, "is_available": is_available}


def should_group(a: dict, b: dict) -> bool:
    """Same name, type and category, daily price within 20 % of the pair's mean."""
    if a["group_id"] is not None and a["group_id"] == b["group_id"]:
        return True
    if (a["name"], a["vehicle_type"], a["category"]) != (b["name"], b["vehicle_type"], b["category"]):
        return False
    price_a, price_b = a["price_per_day_cents"], b["price_per_day_cents"]
    average = (price_a + price_b) / 2
    if average == 0:
        return True
    return abs(price_a - price_b) / average * 100 <= MAX_PRICE_VARIATION_PERCENT


def cluster_group_candidates(vehicles: list[dict]) -> list[list[dict]]:
    """Clusters of two or more ungrouped look-alike vehicles.

    Each vehicle joins the first cluster whose anchor (first member) it
    matches under should_group(); output order follows input order.
    """
    clusters: list[list[dict]] = []
    for vehicle in vehicles:
        if vehicle["group_id"] is not None:
            continue
        for cluster in clusters:
            if should_group(cluster[0], vehicle):
                cluster.append(vehicle)
                break
        else:
            clusters.append([vehicle])
    return [c for c in clusters if len(c) > 1]


def find_group_candidates(shop_id: str, *, actor: Actor) -> list[dict]:
    """Duplicate-listing detection for a shop's dashboard."""
    with txn() as cur:
        assert_owns_shop(cur, actor, shop_id)
        vehicles = list_ungrouped_vehicles(cur, shop_id)

    return [
        {
            "name": cluster[0]["name"],
            "vehicle_type": cluster[0]["vehicle_type"],
            "category": cluster[0]["category"],
            "vehicle_ids": [v["id"] for v in cluster],
            "price_range_cents": {
                "min": min(v["price_per_day_cents"] for v in cluster),
                "max": max(v["price_per_day_cents"] for v in cluster),
            },
        }
        for cluster in cluster_group_candidates(vehicles)
    ]

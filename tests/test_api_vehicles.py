"""Tests for /vehicles and /vehicle-groups endpoints (domain patched)."""

from __future__ import annotations

from datetime import date
from unittest.mock import patch
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from siargao_rides.api.auth import CurrentUser, get_current_user
from siargao_rides.api.factory import create_app
from siargao_rides.domain.availability import (
    GroupAvailability,
    SingleAvailability,
    Target,
    UnitAvailability,
)
from siargao_rides.domain.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from siargao_rides.domain.intervals import DateInterval


@pytest.fixture
def fake_user():
    return CurrentUser(
        id=str(uuid4()),
        external_subject="owner-123",
        email="owner@example.com",
        name="Shop Owner",
    )


@pytest.fixture
def client(fake_user):
    app = create_app(role="public")
    app.dependency_overrides[get_current_user] = lambda: fake_user
    return TestClient(app)


class TestVehicleAvailability:
    def test_available(self, client):
        with patch(
            "siargao_rides.domain.availability.check_availability",
            return_value=SingleAvailability(vehicle_id="veh-1", available=True),
        ) as mock_check:
            response = client.post(
                "/vehicles/veh-1/availability",
                json={"start_date": "2024-06-13", "end_date": "2024-06-15"},
            )

        assert response.status_code == 200
        body = response.json()
        assert body["available"] is True
        assert body["start_date"] == "2024-06-13"
        mock_check.assert_called_once_with(
            Target(vehicle_id="veh-1"), DateInterval(date(2024, 6, 13), date(2024, 6, 15))
        )

    def test_not_available_lists_next_date(self, client):
        result = SingleAvailability(
            vehicle_id="veh-1",
            available=False,
            reason="blocked",
            blocked_days=[date(2024, 6, 12)],
            next_available_date=date(2024, 6, 13),
        )
        with patch("siargao_rides.domain.availability.check_single", return_value=result):
            response = client.post(
                "/vehicles/veh-1/availability",
                json={"start_date": "2024-06-12", "end_date": "2024-06-15"},
            )

        body = response.json()
        assert body["available"] is False
        assert body["reason"] == "blocked"
        assert body["blocked_days"] == ["2024-06-12"]
        assert body["next_available_date"] == "2024-06-13"

    def test_empty_interval_rejected(self, client):
        with patch("siargao_rides.domain.availability.check_single") as mock_check:
            response = client.post(
                "/vehicles/veh-1/availability",
                json={"start_date": "2024-06-12", "end_date": "2024-06-12"},
            )
        assert response.status_code == 400
        mock_check.assert_not_called()

    def test_unknown_vehicle(self, client):
        with patch(
            "siargao_rides.domain.availability.check_single",
            side_effect=NotFoundError("Vehicle veh-9 not found"),
        ):
            response = client.post(
                "/vehicles/veh-9/availability",
                json={"start_date": "2024-06-12", "end_date": "2024-06-13"},
            )
        assert response.status_code == 404


class TestBlockedDates:
    def test_calendar_read(self, client):
        days = [{"date": date(2024, 6, 10), "reason": "booking", "note": None}]
        with patch("siargao_rides.domain.blocked_ranges.get_blocked_days", return_value=days) as mock_get:
            response = client.get("/vehicles/veh-1/blocked-dates?from=2024-06-01&to=2024-07-01")

        assert response.status_code == 200
        assert response.json()["blocked_dates"] == [
            {"date": "2024-06-10", "reason": "booking", "note": None}
        ]
        assert mock_get.call_args.args[1] == DateInterval(date(2024, 6, 1), date(2024, 7, 1))

    def test_block(self, client, fake_user):
        with patch(
            "siargao_rides.domain.blocked_ranges.block_dates",
            return_value={"vehicle_id": "veh-1", "days_blocked": 2},
        ) as mock_block:
            response = client.post(
                "/vehicles/veh-1/blocked-dates",
                json={"dates": ["2024-06-10", "2024-06-11"], "reason": "Maintenance"},
            )

        assert response.status_code == 200
        assert response.json()["days_blocked"] == 2
        assert mock_block.call_args.args == ("veh-1", [date(2024, 6, 10), date(2024, 6, 11)])
        assert mock_block.call_args.kwargs["actor"].user_id == fake_user.id

    def test_block_by_non_owner(self, client):
        with patch(
            "siargao_rides.domain.blocked_ranges.block_dates",
            side_effect=AuthorizationError("You do not own this shop"),
        ):
            response = client.post("/vehicles/veh-1/blocked-dates", json={"dates": ["2024-06-10"]})
        assert response.status_code == 403

    def test_unblock(self, client):
        with patch(
            "siargao_rides.domain.blocked_ranges.unblock_dates",
            return_value={"vehicle_id": "veh-1", "days_unblocked": 1},
        ):
            response = client.request(
                "DELETE", "/vehicles/veh-1/blocked-dates", json={"dates": ["2024-06-10"]}
            )
        assert response.status_code == 200
        assert response.json()["days_unblocked"] == 1

    def test_block_requires_auth(self):
        response = TestClient(create_app(role="public")).post(
            "/vehicles/veh-1/blocked-dates", json={"dates": ["2024-06-10"]}
        )
        assert response.status_code == 401


class TestVehicleGroups:
    def test_group_availability(self, client):
        interval = DateInterval(date(2024, 6, 10), date(2024, 6, 12))
        result = GroupAvailability(
            group_id="g1",
            interval=interval,
            total_units=3,
            units=[
                UnitAvailability("u1", 1, "Unit 1", True),
                UnitAvailability("u2", 2, "Unit 2", False, date(2024, 6, 12)),
                UnitAvailability("u3", 3, "Unit 3", True),
            ],
        )
        with patch(
            "siargao_rides.domain.availability.check_availability", return_value=result
        ) as mock_check:
            response = client.post(
                "/vehicle-groups/g1/availability",
                json={"start_date": "2024-06-10", "end_date": "2024-06-12"},
            )

        mock_check.assert_called_once_with(Target(group_id="g1"), interval)
        body = response.json()
        assert body["available_unit_ids"] == ["u1", "u3"]
        assert body["available_count"] == 2
        assert body["occupied_units"][0]["next_available_date"] == "2024-06-12"

    def test_convert(self, client):
        created = {"group_id": "g-new", "total_quantity": 2, "members": []}
        with patch("siargao_rides.domain.grouping.convert_to_group", return_value=created) as mock_convert:
            response = client.post(
                "/vehicle-groups/convert",
                json={"vehicle_ids": ["v1", "v2"], "group_name": "Honda Click fleet"},
            )

        assert response.status_code == 201
        assert response.json()["group_id"] == "g-new"
        assert mock_convert.call_args.kwargs["naming_pattern"] is None

    def test_create_group_with_units(self, client, fake_user):
        created = {"group_id": "g-new", "total_quantity": 2, "vehicle_ids": ["u1", "u2"]}
        with patch(
            "siargao_rides.domain.grouping.create_group_with_units", return_value=created
        ) as mock_create:
            response = client.post(
                "/vehicle-groups",
                json={
                    "shop_id": "shop-1",
                    "name": "Honda Click fleet",
                    "quantity": 2,
                    "price_per_day_cents": 45000,
                    "individual_names": ["Red", "Blue"],
                },
            )

        assert response.status_code == 201
        assert response.json() == created
        kwargs = mock_create.call_args.kwargs
        assert kwargs["actor"].user_id == fake_user.id
        assert kwargs["quantity"] == 2
        assert kwargs["individual_names"] == ["Red", "Blue"]
        assert kwargs["naming_pattern"] is None

    @pytest.mark.parametrize("quantity", [0, 101])
    def test_create_group_quantity_bounds(self, client, quantity):
        with patch("siargao_rides.domain.grouping.create_group_with_units") as mock_create:
            response = client.post(
                "/vehicle-groups",
                json={
                    "shop_id": "shop-1",
                    "name": "Fleet",
                    "quantity": quantity,
                    "price_per_day_cents": 45000,
                },
            )
        assert response.status_code == 422
        mock_create.assert_not_called()

    def test_update_group(self, client):
        updated = {"group_id": "g1", "name": "Fleet", "is_active": False, "vehicles_repriced": 0}
        with patch("siargao_rides.domain.grouping.update_group", return_value=updated) as mock_update:
            response = client.put("/vehicle-groups/g1", json={"is_active": False})

        assert response.status_code == 200
        assert response.json() == updated
        assert mock_update.call_args.args == ("g1",)
        kwargs = mock_update.call_args.kwargs
        assert kwargs["is_active"] is False
        assert kwargs["name"] is None
        assert kwargs["price_per_day_cents"] is None

    def test_update_unknown_group(self, client):
        with patch(
            "siargao_rides.domain.grouping.update_group",
            side_effect=NotFoundError("Vehicle group g9 not found"),
        ):
            response = client.put("/vehicle-groups/g9", json={"name": "Renamed"})
        assert response.status_code == 404

    def test_convert_single_vehicle_rejected(self, client):
        with patch("siargao_rides.domain.grouping.convert_to_group") as mock_convert:
            response = client.post(
                "/vehicle-groups/convert", json={"vehicle_ids": ["v1"], "group_name": "Solo"}
            )
        assert response.status_code == 422
        mock_convert.assert_not_called()

    def test_convert_mixed_categories(self, client):
        with patch(
            "siargao_rides.domain.grouping.convert_to_group",
            side_effect=ValidationError("All vehicles must share vehicle type and category"),
        ):
            response = client.post(
                "/vehicle-groups/convert",
                json={"vehicle_ids": ["v1", "v2"], "group_name": "Mixed"},
            )
        assert response.status_code == 400

    def test_dissolve_with_bookings(self, client):
        with patch(
            "siargao_rides.domain.grouping.dissolve_group",
            side_effect=ConflictError("Group has bookings and cannot be dissolved"),
        ):
            response = client.delete("/vehicle-groups/g1")
        assert response.status_code == 409

    def test_candidates(self, client):
        candidates = [{"name": "Honda Click", "vehicle_ids": ["v1", "v2"]}]
        with patch("siargao_rides.domain.grouping.find_group_candidates", return_value=candidates):
            response = client.get("/vehicle-groups/candidates?shop_id=shop-1")
        assert response.json() == {"shop_id": "shop-1", "candidates": candidates}

    def test_bulk_set_availability(self, client):
        with patch(
            "siargao_rides.domain.grouping.set_group_availability",
            return_value={"group_id": "g1", "updated": 3, "is_available": False},
        ) as mock_set:
            response = client.post(
                "/vehicle-groups/g1/bulk-action",
                json={"action": "set-availability", "data": {"is_available": False}},
            )

        assert response.status_code == 200
        assert mock_set.call_args.kwargs["is_available"] is False
        assert mock_set.call_args.kwargs["vehicle_ids"] is None

    def test_bulk_action_needs_boolean(self, client):
        response = client.post(
            "/vehicle-groups/g1/bulk-action",
            json={"action": "set-availability", "data": {"is_available": "yes"}},
        )
        assert response.status_code == 400

    def test_unknown_bulk_action(self, client):
        response = client.post(
            "/vehicle-groups/g1/bulk-action",
            json={"action": "delete-all", "data": {}},
        )
        assert response.status_code == 422

"""Tests for the blocked-range index (repositories patched)."""

from datetime import date
from unittest.mock import call, patch

import pytest

from helpers import FakeTxn, make_rental, make_vehicle
from siargao_rides.domain.blocked_ranges import (
    MAX_MANUAL_BLOCK_DAYS,
    block_dates,
    get_blocked_days,
    materialize,
    materialize_rental,
    rebuild_vehicle_index,
    release,
    release_rental,
    rental_index_days,
    unblock_dates,
)
from siargao_rides.domain.errors import NotFoundError, ValidationError
from siargao_rides.domain.intervals import DateInterval
from siargao_rides.domain.ownership import Actor

M = "siargao_rides.domain.blocked_ranges"

OWNER = Actor(user_id="owner-1")
PAID = make_rental("r1", status="confirmed", payment_status="paid")


@pytest.fixture
def fake_txn():
    fake = FakeTxn()
    with patch("siargao_rides.domain.store_errors.txn", fake), patch(f"{M}.txn", fake):
        yield fake


class TestMaterializeRental:
    def test_tags_every_day_of_the_rental(self, fake_txn):
        with patch(f"{M}.add_source", return_value=True) as mock_add:
            added = materialize_rental(fake_txn.cursor, PAID)

        assert added == 3
        assert mock_add.call_args_list == [
            call(fake_txn.cursor, vehicle_id="veh-1", day=date(2025, 6, d), source="rental:r1", reason="booking")
            for d in (10, 11, 12)
        ]

    def test_second_run_adds_nothing(self, fake_txn):
        with patch(f"{M}.add_source", return_value=False):
            assert materialize_rental(fake_txn.cursor, PAID) == 0

    def test_release_removes_only_this_rentals_tag(self, fake_txn):
        with patch(f"{M}.remove_source", return_value=3) as mock_remove:
            assert release_rental(fake_txn.cursor, PAID) == 3
        mock_remove.assert_called_once_with(fake_txn.cursor, vehicle_id="veh-1", source="rental:r1")


class TestMaterialize:
    def test_eligible_rental(self, fake_txn):
        with patch(f"{M}.get_rental", return_value=PAID), \
             patch(f"{M}.add_source", return_value=True), \
             patch(f"{M}.insert_history") as mock_history:
            result = materialize("r1")

        assert result == {"status": "materialized", "rental_id": "r1", "days_added": 3}
        assert mock_history.call_args.kwargs["event_type"] == "dates_blocked"

    def test_idempotent_replay_writes_no_history(self, fake_txn):
        with patch(f"{M}.get_rental", return_value=PAID), \
             patch(f"{M}.add_source", return_value=False), \
             patch(f"{M}.insert_history") as mock_history:
            result = materialize("r1")

        assert result["days_added"] == 0
        mock_history.assert_not_called()

    def test_pending_rental_not_eligible(self, fake_txn):
        with patch(f"{M}.get_rental", return_value=make_rental("r1")), \
             patch(f"{M}.add_source") as mock_add:
            assert materialize("r1")["status"] == "not_eligible"
        mock_add.assert_not_called()

    def test_unknown_rental(self, fake_txn):
        with patch(f"{M}.get_rental", return_value=None):
            with pytest.raises(NotFoundError):
                materialize("r-missing")


class TestRelease:
    def test_releases_this_rentals_days(self, fake_txn):
        cancelled = make_rental("r1", status="cancelled", payment_status="paid")
        with patch(f"{M}.get_rental", return_value=cancelled) as mock_get, \
             patch(f"{M}.remove_source", return_value=2) as mock_remove:
            result = release("r1")

        assert result == {"status": "released", "rental_id": "r1", "days_released": 2}
        mock_get.assert_called_once_with(fake_txn.cursor, "r1", lock=True)
        mock_remove.assert_called_once_with(fake_txn.cursor, vehicle_id="veh-1", source="rental:r1")

    def test_runs_inside_callers_transaction(self):
        cur = object()
        with patch(f"{M}.write_txn") as mock_write_txn, \
             patch(f"{M}.get_rental", return_value=PAID), \
             patch(f"{M}.remove_source", return_value=0):
            assert release("r1", cur=cur)["days_released"] == 0
        mock_write_txn.assert_not_called()

    def test_unknown_rental(self, fake_txn):
        with patch(f"{M}.get_rental", return_value=None), \
             patch(f"{M}.remove_source") as mock_remove:
            with pytest.raises(NotFoundError):
                release("r-missing")
        mock_remove.assert_not_called()


class TestRentalIndexDays:
    def test_reads_days_tagged_for_the_rental(self, fake_txn):
        days = [date(2025, 6, 10), date(2025, 6, 11)]
        with patch(f"{M}.list_days_for_source", return_value=days) as mock_days:
            assert rental_index_days("r1", "veh-1") == days
        mock_days.assert_called_once_with(fake_txn.cursor, vehicle_id="veh-1", source="rental:r1")


class TestRebuild:
    def test_drops_rental_tags_and_rematerializes(self, fake_txn):
        unpaid = make_rental("r2", status="confirmed", deposit_required=True, deposit_paid=False)
        with patch(f"{M}.get_vehicle", return_value=make_vehicle("veh-1")) as mock_vehicle, \
             patch(f"{M}.remove_rental_sources") as mock_strip, \
             patch(f"{M}.list_calendar_candidates", return_value=[PAID, unpaid]), \
             patch(f"{M}.add_source", return_value=True) as mock_add:
            result = rebuild_vehicle_index("veh-1")

        assert result == {"status": "rebuilt", "vehicle_id": "veh-1", "rentals": 1, "days": 3}
        mock_vehicle.assert_called_once_with(fake_txn.cursor, "veh-1", lock=True)
        mock_strip.assert_called_once_with(fake_txn.cursor, "veh-1")
        assert {c.kwargs["source"] for c in mock_add.call_args_list} == {"rental:r1"}

    def test_unknown_vehicle(self, fake_txn):
        with patch(f"{M}.get_vehicle", return_value=None):
            with pytest.raises(NotFoundError):
                rebuild_vehicle_index("veh-missing")


class TestManualBlocks:
    def test_block_dedupes_days(self, fake_txn):
        days = [date(2025, 6, 11), date(2025, 6, 10), date(2025, 6, 11)]
        with patch(f"{M}.get_vehicle", return_value=make_vehicle("veh-1")), \
             patch(f"{M}.assert_owns_shop") as mock_owner, \
             patch(f"{M}.add_source", return_value=True) as mock_add:
            result = block_dates("veh-1", days, actor=OWNER, reason="Maintenance")

        assert result == {"vehicle_id": "veh-1", "days_blocked": 2}
        mock_owner.assert_called_once_with(fake_txn.cursor, OWNER, "shop-1")
        assert [c.kwargs["day"] for c in mock_add.call_args_list] == [date(2025, 6, 10), date(2025, 6, 11)]
        assert all(c.kwargs["source"] == "manual" for c in mock_add.call_args_list)

    def test_too_many_days(self):
        start = date(2025, 1, 1).toordinal()
        days = [date.fromordinal(start + i) for i in range(MAX_MANUAL_BLOCK_DAYS + 1)]
        with pytest.raises(ValidationError):
            block_dates("veh-1", days, actor=OWNER)

    def test_empty_days(self):
        with pytest.raises(ValidationError):
            unblock_dates("veh-1", [], actor=OWNER)

    def test_unblock_only_touches_manual_tag(self, fake_txn):
        with patch(f"{M}.get_vehicle", return_value=make_vehicle("veh-1")), \
             patch(f"{M}.assert_owns_shop"), \
             patch(f"{M}.remove_source", return_value=1) as mock_remove:
            result = unblock_dates("veh-1", [date(2025, 6, 10)], actor=OWNER)

        assert result["days_unblocked"] == 1
        mock_remove.assert_called_once_with(
            fake_txn.cursor, vehicle_id="veh-1", source="manual", days=[date(2025, 6, 10)]
        )


class TestGetBlockedDays:
    def test_labels_rows_by_provenance(self, fake_txn):
        rows = [
            {"date": date(2025, 6, 10), "sources": ["rental:r1"], "reason": "booking"},
            {"date": date(2025, 6, 11), "sources": ["rental:r1", "manual"], "reason": "Oil change"},
        ]
        with patch(f"{M}.get_vehicle", return_value=make_vehicle("veh-1")), \
             patch(f"{M}.list_blocked_days", return_value=rows):
            result = get_blocked_days("veh-1", DateInterval(date(2025, 6, 1), date(2025, 7, 1)))

        assert result == [
            {"date": date(2025, 6, 10), "reason": "booking", "note": None},
            {"date": date(2025, 6, 11), "reason": "manual", "note": "Oil change"},
        ]

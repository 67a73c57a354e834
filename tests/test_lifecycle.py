"""Tests for rental lifecycle operations (repositories patched)."""

from unittest.mock import patch

import pytest

from helpers import FakeTxn, make_rental, make_vehicle
from siargao_rides.domain.availability import SingleAvailability
from siargao_rides.domain.errors import (
    AuthorizationError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from siargao_rides.domain.lifecycle import (
    cancel,
    complete,
    confirm_deposit,
    confirm_payment,
    override,
)
from siargao_rides.domain.ownership import Actor

M = "siargao_rides.domain.lifecycle"

OWNER = Actor(user_id="owner-1")
RENTER = Actor(user_id="user-1")


@pytest.fixture
def fake_txn():
    fake = FakeTxn()
    with patch("siargao_rides.domain.store_errors.txn", fake):
        yield fake


@pytest.fixture
def writes():
    with patch(f"{M}.update_status") as update_status, \
         patch(f"{M}.insert_history") as insert_history, \
         patch(f"{M}.emit_rental_event") as emit_event, \
         patch(f"{M}.dispatch_events") as dispatch, \
         patch(f"{M}.materialize_rental", return_value=3) as materialize, \
         patch(f"{M}.release_rental", return_value=3) as release, \
         patch(f"{M}.assert_owns_shop") as owns_shop:
        emit_event.side_effect = lambda cur, rental, event_type, **kw: {
            "outbox_event_id": 1,
            "event_type": event_type,
            "rental_id": rental["id"],
            "shop_id": rental["shop_id"],
        }
        yield {
            "update_status": update_status,
            "insert_history": insert_history,
            "emit_event": emit_event,
            "dispatch": dispatch,
            "materialize": materialize,
            "release": release,
            "owns_shop": owns_shop,
        }


def _event_types(writes) -> list[str]:
    return [c.args[2] for c in writes["emit_event"].call_args_list]


class TestConfirmPayment:
    def test_pending_is_confirmed_and_blocks_dates(self, fake_txn, writes):
        with patch(f"{M}.get_rental", return_value=make_rental("r1")), \
             patch(f"{M}.mark_processed", return_value=True) as mock_processed, \
             patch(f"{M}.mark_payment_paid") as mock_paid:
            result = confirm_payment("r1", external_id="pay_123")

        assert result == {"status": "confirmed", "rental_id": "r1", "days_blocked": 3}
        mock_processed.assert_called_once_with(
            fake_txn.cursor, source="payments.completed", external_id="pay_123"
        )
        mock_paid.assert_called_once_with(fake_txn.cursor, "r1")
        writes["update_status"].assert_called_once_with(fake_txn.cursor, "r1", status="confirmed")
        materialized = writes["materialize"].call_args.args[1]
        assert materialized["status"] == "confirmed"
        assert materialized["payment_status"] == "paid"
        assert _event_types(writes) == ["RENTAL_CONFIRMED"]

    def test_duplicate_event_is_noop(self, fake_txn, writes):
        with patch(f"{M}.get_rental", return_value=make_rental("r1")), \
             patch(f"{M}.mark_processed", return_value=False), \
             patch(f"{M}.mark_payment_paid") as mock_paid:
            result = confirm_payment("r1", external_id="pay_123")

        assert result["status"] == "duplicate"
        mock_paid.assert_not_called()
        writes["update_status"].assert_not_called()

    def test_payment_after_cancellation(self, fake_txn, writes):
        with patch(f"{M}.get_rental", return_value=make_rental("r1", status="auto_cancelled")), \
             patch(f"{M}.mark_processed", return_value=True), \
             patch(f"{M}.mark_payment_paid"):
            result = confirm_payment("r1", external_id="pay_123")

        assert result["status"] == "not_confirmable"
        assert result["rental_status"] == "auto_cancelled"
        writes["update_status"].assert_not_called()
        writes["materialize"].assert_not_called()
        assert writes["insert_history"].call_args.kwargs["event_type"] == "payment_after_cancellation"

    def test_unknown_rental(self, fake_txn, writes):
        with patch(f"{M}.get_rental", return_value=None):
            with pytest.raises(NotFoundError):
                confirm_payment("r-missing", external_id="pay_1")


class TestConfirmDeposit:
    def test_confirms_cash_booking(self, fake_txn, writes):
        rental = make_rental("r1", deposit_required=True)
        with patch(f"{M}.get_rental", return_value=rental), \
             patch(f"{M}.mark_deposit_paid") as mock_deposit:
            result = confirm_deposit("r1", actor=OWNER)

        assert result == {"status": "confirmed", "rental_id": "r1", "days_blocked": 3}
        mock_deposit.assert_called_once_with(fake_txn.cursor, "r1")
        writes["owns_shop"].assert_called_once_with(fake_txn.cursor, OWNER, "shop-1")

    def test_rental_without_deposit(self, fake_txn, writes):
        with patch(f"{M}.get_rental", return_value=make_rental("r1")):
            with pytest.raises(ValidationError):
                confirm_deposit("r1", actor=OWNER)

    def test_already_recorded(self, fake_txn, writes):
        rental = make_rental("r1", status="confirmed", deposit_required=True, deposit_paid=True)
        with patch(f"{M}.get_rental", return_value=rental):
            assert confirm_deposit("r1", actor=OWNER)["status"] == "noop"

    def test_cancelled_rental_refused(self, fake_txn, writes):
        rental = make_rental("r1", status="cancelled", deposit_required=True)
        with patch(f"{M}.get_rental", return_value=rental):
            with pytest.raises(InvalidTransitionError):
                confirm_deposit("r1", actor=OWNER)


class TestComplete:
    def test_confirmed_to_completed_releases_days(self, fake_txn, writes):
        rental = make_rental("r1", status="confirmed", payment_status="paid")
        with patch(f"{M}.get_rental", return_value=rental):
            result = complete("r1", actor=OWNER)

        assert result["status"] == "completed"
        writes["release"].assert_called_once_with(fake_txn.cursor, rental)
        assert _event_types(writes) == ["RENTAL_COMPLETED"]

    def test_pending_cannot_complete(self, fake_txn, writes):
        with patch(f"{M}.get_rental", return_value=make_rental("r1")):
            with pytest.raises(InvalidTransitionError):
                complete("r1", actor=OWNER)


class TestCancel:
    def test_renter_cancels_and_days_are_released(self, fake_txn, writes):
        rental = make_rental("r1", status="confirmed", payment_status="paid")
        with patch(f"{M}.get_rental", return_value=rental), \
             patch(f"{M}.assert_can_cancel"):
            result = cancel("r1", actor=RENTER, reason="Flight moved")

        assert result == {"status": "cancelled", "rental_id": "r1", "days_released": 3}
        writes["update_status"].assert_called_once_with(
            fake_txn.cursor,
            "r1",
            status="cancelled",
            cancellation_reason="Flight moved",
            cancelled_by="user-1",
        )
        assert writes["emit_event"].call_args.kwargs["extra"] == {"cancelled_by_renter": True}

    def test_cancel_twice_is_noop(self, fake_txn, writes):
        with patch(f"{M}.get_rental", return_value=make_rental("r1", status="cancelled")), \
             patch(f"{M}.assert_can_cancel"):
            assert cancel("r1", actor=RENTER)["status"] == "already_cancelled"
        writes["release"].assert_not_called()

    def test_completed_cannot_be_cancelled(self, fake_txn, writes):
        with patch(f"{M}.get_rental", return_value=make_rental("r1", status="completed")), \
             patch(f"{M}.assert_can_cancel"):
            with pytest.raises(InvalidTransitionError):
                cancel("r1", actor=RENTER)
        writes["release"].assert_not_called()

    def test_stranger_refused(self, fake_txn, writes):
        with patch(f"{M}.get_rental", return_value=make_rental("r1")), \
             patch(f"{M}.assert_can_cancel", side_effect=AuthorizationError("You do not own this shop")):
            with pytest.raises(AuthorizationError):
                cancel("r1", actor=Actor(user_id="someone-else"))
        writes["update_status"].assert_not_called()


class TestOverride:
    def test_sets_flag_on_pending(self, fake_txn, writes):
        with patch(f"{M}.get_rental", return_value=make_rental("r1")), \
             patch(f"{M}.set_override") as mock_override:
            result = override("r1", actor=OWNER)

        assert result["status"] == "overridden"
        mock_override.assert_called_once_with(fake_txn.cursor, "r1", actor_id="owner-1")
        assert _event_types(writes) == ["RENTAL_OVERRIDDEN"]

    def test_already_overridden(self, fake_txn, writes):
        with patch(f"{M}.get_rental", return_value=make_rental("r1", auto_cancel_override=True)), \
             patch(f"{M}.set_override") as mock_override:
            assert override("r1", actor=OWNER)["status"] == "already_overridden"
        mock_override.assert_not_called()

    def test_reinstates_auto_cancelled_when_dates_free(self, fake_txn, writes):
        with patch(f"{M}.get_rental", return_value=make_rental("r1", status="auto_cancelled")), \
             patch(f"{M}.get_vehicle", return_value=make_vehicle("veh-1")) as mock_vehicle, \
             patch(f"{M}.check_vehicle_live", return_value=SingleAvailability("veh-1", True)), \
             patch(f"{M}.set_override"), \
             patch(f"{M}.reinstate_rental") as mock_reinstate:
            result = override("r1", actor=OWNER)

        assert result["status"] == "reinstated"
        mock_vehicle.assert_called_once_with(fake_txn.cursor, "veh-1", lock=True)
        mock_reinstate.assert_called_once_with(fake_txn.cursor, "r1")
        assert _event_types(writes) == ["RENTAL_OVERRIDDEN", "RENTAL_REINSTATED"]

    def test_auto_cancelled_dates_taken_meanwhile(self, fake_txn, writes):
        taken = SingleAvailability(
            "veh-1", False, reason="booked", conflicts=[make_rental("r-new")]
        )
        with patch(f"{M}.get_rental", return_value=make_rental("r1", status="auto_cancelled")), \
             patch(f"{M}.get_vehicle", return_value=make_vehicle("veh-1")), \
             patch(f"{M}.check_vehicle_live", return_value=taken), \
             patch(f"{M}.reinstate_rental") as mock_reinstate:
            with pytest.raises(ConflictError) as exc_info:
                override("r1", actor=OWNER)

        assert exc_info.value.conflicting_rental_id == "r-new"
        mock_reinstate.assert_not_called()

    @pytest.mark.parametrize("status", ["cancelled", "completed"])
    def test_terminal_rentals_refused(self, fake_txn, writes, status):
        with patch(f"{M}.get_rental", return_value=make_rental("r1", status=status)):
            with pytest.raises(ValidationError):
                override("r1", actor=OWNER)

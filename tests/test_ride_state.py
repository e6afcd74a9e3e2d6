"""Tests for the ride state machine (State Pattern)."""

from datetime import datetime, timedelta, timezone

import pytest

from ridecore.domain.enums import PaymentStatus, RideStatus
from ridecore.domain.errors import InvalidTransitionError, ValidationError
from ridecore.domain.entities import RideRequest
from tests.conftest import DRIVER, make_ride

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class TestRideStateMachine:
    def test_pending_to_accepted(self):
        ride = make_ride(id="r1", created_at=T0)
        changes = ride.accept(DRIVER, T0 + timedelta(minutes=1))
        assert ride.status == RideStatus.ACCEPTED
        assert ride.driver == DRIVER
        assert set(changes) == {"status", "driver", "accepted_at"}

    def test_full_happy_path(self):
        ride = make_ride(id="r1", created_at=T0)
        ride.accept(DRIVER, T0 + timedelta(minutes=1))
        ride.start(T0 + timedelta(minutes=5))
        ride.complete(T0 + timedelta(minutes=20))
        assert ride.status == RideStatus.COMPLETED
        assert ride.is_terminal

    def test_cancel_from_every_live_state(self):
        for steps in ([], ["accept"], ["accept", "start"]):
            ride = make_ride(id="r1", created_at=T0)
            if "accept" in steps:
                ride.accept(DRIVER, T0)
            if "start" in steps:
                ride.start(T0)
            ride.cancel(T0)
            assert ride.status == RideStatus.CANCELLED

    def test_pending_cannot_start(self):
        ride = make_ride(id="r1", created_at=T0)
        with pytest.raises(InvalidTransitionError):
            ride.start(T0)
        assert ride.status == RideStatus.PENDING
        assert ride.started_at is None

    def test_pending_cannot_complete(self):
        ride = make_ride(id="r1", created_at=T0)
        with pytest.raises(InvalidTransitionError):
            ride.complete(T0)

    def test_accept_twice_rejected(self):
        ride = make_ride(id="r1", created_at=T0)
        ride.accept(DRIVER, T0)
        with pytest.raises(InvalidTransitionError):
            ride.accept(DRIVER, T0)

    def test_accept_requires_driver(self):
        ride = make_ride(id="r1", created_at=T0)
        with pytest.raises(ValidationError):
            ride.accept(None, T0)
        assert ride.status == RideStatus.PENDING

    def test_terminal_states_are_final(self):
        completed = make_ride(id="r1", created_at=T0)
        completed.accept(DRIVER, T0)
        completed.start(T0)
        completed.complete(T0)
        with pytest.raises(InvalidTransitionError):
            completed.cancel(T0)

        cancelled = make_ride(id="r2", created_at=T0)
        cancelled.cancel(T0)
        with pytest.raises(InvalidTransitionError):
            cancelled.accept(DRIVER, T0)

    def test_error_message_names_ride_and_status(self):
        ride = make_ride(id="r1", created_at=T0)
        with pytest.raises(InvalidTransitionError, match="Cannot start ride r1 in status pending"):
            ride.start(T0)


class TestTimestamps:
    def test_timestamps_never_go_backwards(self):
        ride = make_ride(id="r1", created_at=T0)
        ride.accept(DRIVER, T0 - timedelta(minutes=5))
        assert ride.accepted_at == T0
        ride.start(T0 - timedelta(minutes=1))
        assert ride.started_at >= ride.accepted_at

    def test_each_transition_stamps_its_own_field(self):
        ride = make_ride(id="r1", created_at=T0)
        ride.accept(DRIVER, T0 + timedelta(seconds=1))
        ride.start(T0 + timedelta(seconds=2))
        ride.complete(T0 + timedelta(seconds=3))
        assert ride.accepted_at < ride.started_at < ride.completed_at
        assert ride.cancelled_at is None


class TestPayment:
    def test_mark_paid_once(self):
        ride = make_ride(id="r1", created_at=T0)
        assert ride.mark_paid() == {"payment_status": PaymentStatus.COMPLETED}
        assert ride.mark_paid() == {}
        assert ride.payment_status == PaymentStatus.COMPLETED

    def test_mark_paid_on_completed_ride(self):
        ride = make_ride(id="r1", created_at=T0)
        ride.accept(DRIVER, T0)
        ride.start(T0)
        ride.complete(T0)
        ride.mark_paid()
        assert ride.status == RideStatus.COMPLETED
        assert ride.payment_status == PaymentStatus.COMPLETED

    def test_mark_paid_rejected_when_cancelled(self):
        ride = make_ride(id="r1", created_at=T0)
        ride.cancel(T0)
        with pytest.raises(InvalidTransitionError):
            ride.mark_paid()


class TestDocumentMapping:
    def test_document_is_lossless(self):
        ride = make_ride(id="r1", created_at=T0, security_code="4821")
        ride.accept(DRIVER, T0 + timedelta(seconds=30))
        restored = RideRequest.from_document(ride.to_document())
        assert restored == ride

    def test_price_is_serialised_as_string(self):
        doc = make_ride(id="r1", created_at=T0).to_document()
        assert doc["price"] == "25.00"
        assert doc["status"] == "pending"

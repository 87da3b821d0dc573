"""Unit tests for ride / booking state transitions (State Pattern) and seat ledger."""

from datetime import datetime, timedelta, timezone

import pytest

from rideshare.domain.entities import Booking, Ride, SeatLedger
from rideshare.domain.enums import BookingStatus, RideStatus
from rideshare.domain.errors import InvalidStateTransition

NOW = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)
TTL = timedelta(minutes=30)


class TestRideStateMachine:
    def test_initial_status_is_active(self):
        ride = Ride()
        assert ride.status == RideStatus.ACTIVE

    # ── Valid transitions ─────────────────────────────────────────

    def test_active_to_completed(self):
        ride = Ride(status=RideStatus.ACTIVE)
        ride.transition_to(RideStatus.COMPLETED)
        assert ride.status == RideStatus.COMPLETED

    def test_active_to_cancelled(self):
        ride = Ride(status=RideStatus.ACTIVE)
        ride.transition_to(RideStatus.CANCELLED)
        assert ride.status == RideStatus.CANCELLED

    # ── Invalid transitions ───────────────────────────────────────

    def test_completed_to_anything_fails(self):
        ride = Ride(status=RideStatus.COMPLETED)
        with pytest.raises(InvalidStateTransition):
            ride.transition_to(RideStatus.CANCELLED)

    def test_cancelled_to_active_fails(self):
        ride = Ride(status=RideStatus.CANCELLED)
        with pytest.raises(InvalidStateTransition):
            ride.transition_to(RideStatus.ACTIVE)

    # ── Bookability ───────────────────────────────────────────────

    def test_future_active_ride_is_bookable(self):
        ride = Ride(departure_time=NOW + timedelta(hours=2))
        assert ride.is_bookable(NOW)

    def test_departed_active_ride_is_not_bookable(self):
        ride = Ride(departure_time=NOW - timedelta(minutes=1))
        assert ride.status == RideStatus.ACTIVE
        assert not ride.is_bookable(NOW)

    def test_departure_instant_is_still_bookable(self):
        ride = Ride(departure_time=NOW)
        assert not ride.has_departed(NOW)
        assert ride.is_bookable(NOW)

    def test_naive_departure_is_read_as_utc(self):
        ride = Ride(departure_time=datetime(2026, 3, 2, 9, 0))
        assert ride.is_bookable(NOW)

    def test_cancelled_ride_is_not_bookable(self):
        ride = Ride(
            departure_time=NOW + timedelta(days=1), status=RideStatus.CANCELLED
        )
        assert not ride.is_bookable(NOW)


class TestBookingStateMachine:
    def test_initial_status_is_pending(self):
        assert Booking().status == BookingStatus.PENDING

    def test_pending_to_confirmed(self):
        booking = Booking()
        booking.transition_to(BookingStatus.CONFIRMED)
        assert booking.status == BookingStatus.CONFIRMED

    def test_confirmed_to_cancelled(self):
        booking = Booking(status=BookingStatus.CONFIRMED)
        booking.transition_to(BookingStatus.CANCELLED)
        assert booking.status == BookingStatus.CANCELLED

    def test_confirmed_never_returns_to_pending(self):
        booking = Booking(status=BookingStatus.CONFIRMED)
        with pytest.raises(InvalidStateTransition):
            booking.transition_to(BookingStatus.PENDING)

    def test_cancelled_is_terminal(self):
        booking = Booking(status=BookingStatus.CANCELLED)
        with pytest.raises(InvalidStateTransition, match="cancelled to confirmed"):
            booking.transition_to(BookingStatus.CONFIRMED)


class TestPendingExpiry:
    def test_fresh_pending_is_live(self):
        booking = Booking(created_at=NOW - timedelta(minutes=5))
        assert not booking.is_expired(NOW, TTL)

    def test_stale_pending_expires(self):
        booking = Booking(created_at=NOW - TTL)
        assert booking.is_expired(NOW, TTL)

    def test_confirmed_never_expires(self):
        booking = Booking(
            status=BookingStatus.CONFIRMED, created_at=NOW - timedelta(days=3)
        )
        assert not booking.is_expired(NOW, TTL)

    def test_no_ttl_keeps_pending_forever(self):
        booking = Booking(created_at=NOW - timedelta(days=30))
        assert not booking.is_expired(NOW, None)


class TestSeatLedger:
    def test_cannot_exceed_capacity(self):
        assert not SeatLedger(capacity=3, held=2).can_accommodate(2)

    def test_exact_fit_is_accepted(self):
        assert SeatLedger(capacity=3, held=2).can_accommodate(1)

    def test_remaining_never_negative(self):
        assert SeatLedger(capacity=2, held=5).remaining == 0

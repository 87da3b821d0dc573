"""
Concurrency-safety tests.

* Booking-engine level: many simultaneous requests for the last seats never
  overbook a ride, and a lost version check is retried.
* Lock level: per-ride locks are independent, and the Redis sweeper lock
  behaves as a mutex (mocked Redis).
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from rideshare.domain.errors import (
    CapacityError,
    RideUnavailableError,
    StorageContentionError,
)
from rideshare.domain.enums import BookingStatus
from rideshare.infrastructure.locks import DistributedLock, RideLockRegistry
from rideshare.infrastructure.repositories import RideRepository
from tests.conftest import DRIVER


class TestConcurrentBooking:
    """Ledger-level capacity guard under concurrent requests."""

    @pytest.mark.asyncio
    async def test_last_seats_are_never_oversold(self, marketplace, ride):
        passengers = [f"passenger-{n}" for n in range(10)]

        results = await asyncio.gather(
            *(marketplace.request_booking(ride.id, p, 1) for p in passengers),
            return_exceptions=True,
        )

        booked = [r for r in results if not isinstance(r, Exception)]
        rejected = [r for r in results if isinstance(r, Exception)]
        assert len(booked) == 3
        assert len(rejected) == 7
        assert all(isinstance(r, CapacityError) for r in rejected)
        assert await marketplace.remaining_seats(ride.id) == 0

    @pytest.mark.asyncio
    async def test_mixed_party_sizes_fill_exactly(self, marketplace, ride):
        requests = [("passenger-a", 2), ("passenger-b", 2), ("passenger-c", 1)]

        results = await asyncio.gather(
            *(marketplace.request_booking(ride.id, p, n) for p, n in requests),
            return_exceptions=True,
        )

        seats = sum(r.seats_booked for r in results if not isinstance(r, Exception))
        assert seats <= 3
        assert await marketplace.remaining_seats(ride.id) == 3 - seats

    @pytest.mark.asyncio
    async def test_cancellation_racing_bookings(self, marketplace, ride):
        requests = [
            marketplace.request_booking(ride.id, f"passenger-{n}", 1) for n in range(4)
        ]

        results = await asyncio.gather(
            *requests[:2],
            marketplace.cancel_ride(ride.id, DRIVER),
            *requests[2:],
            return_exceptions=True,
        )

        for result in results[3:]:
            assert isinstance(result, (RideUnavailableError, CapacityError))
        bookings = await marketplace.ride_bookings(ride.id, DRIVER)
        assert all(b.status == BookingStatus.CANCELLED for b in bookings)


class TestLedgerRetry:
    @pytest.mark.asyncio
    async def test_lost_version_check_is_retried(self, marketplace, ride, monkeypatch):
        original = RideRepository.advance_version
        calls = []

        async def flaky(self, ride_id, expected, now):
            calls.append(expected)
            if len(calls) == 1:
                return False
            return await original(self, ride_id, expected, now)

        monkeypatch.setattr(RideRepository, "advance_version", flaky)

        booking = await marketplace.request_booking(ride.id, "passenger-aya", 2)

        assert len(calls) == 2
        assert booking.seats_booked == 2
        assert await marketplace.remaining_seats(ride.id) == 1

    @pytest.mark.asyncio
    async def test_persistent_conflict_surfaces_contention(
        self, marketplace, ride, monkeypatch
    ):
        async def always_lost(self, ride_id, expected, now):
            return False

        monkeypatch.setattr(RideRepository, "advance_version", always_lost)

        with pytest.raises(StorageContentionError):
            await marketplace.request_booking(ride.id, "passenger-aya", 1)

        monkeypatch.undo()
        assert await marketplace.remaining_seats(ride.id) == 3
        assert await marketplace.passenger_bookings("passenger-aya") == []


class TestRideLockRegistry:
    @pytest.mark.asyncio
    async def test_different_rides_do_not_block(self):
        locks = RideLockRegistry()

        async def take_other_ride():
            async with locks.hold("ride-2"):
                return locks.is_locked("ride-2")

        async with locks.hold("ride-1"):
            assert locks.is_locked("ride-1")
            assert await asyncio.wait_for(take_other_ride(), timeout=1)

    @pytest.mark.asyncio
    async def test_same_ride_is_serialized(self):
        locks = RideLockRegistry()
        order = []

        async def worker(name):
            async with locks.hold("ride-1"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert order == ["a-in", "a-out", "b-in", "b-out"]

    @pytest.mark.asyncio
    async def test_idle_locks_are_dropped(self):
        locks = RideLockRegistry()
        async with locks.hold("ride-1"):
            assert len(locks) == 1
        assert len(locks) == 0
        assert not locks.is_locked("ride-1")


class TestDistributedLock:
    """Tests the Redis distributed lock logic (mocked Redis)."""

    @pytest.mark.asyncio
    async def test_acquire_succeeds(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)

        lock = DistributedLock(mock_redis, "booking_sweeper", ttl_seconds=10)
        assert await lock.acquire() is True
        mock_redis.set.assert_awaited_once_with(
            "lock:booking_sweeper", lock.token, nx=True, ex=10
        )

    @pytest.mark.asyncio
    async def test_acquire_fails_if_held(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=None)

        lock = DistributedLock(mock_redis, "booking_sweeper", ttl_seconds=10)
        assert await lock.acquire() is False

    @pytest.mark.asyncio
    async def test_release_checks_ownership(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)

        lock = DistributedLock(mock_redis, "booking_sweeper", ttl_seconds=10)
        await lock.acquire()
        await lock.release()

        args = mock_redis.eval.await_args.args
        assert args[1:] == (1, "lock:booking_sweeper", lock.token)

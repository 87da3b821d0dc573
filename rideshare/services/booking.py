"""
Booking Engine
==============

Sole authority over seat reservations and booking status.

Serialization unit
------------------
Every write to a ride's booking ledger runs through ``serialized(ride_id)``:

1. the ride's in-process ``asyncio.Lock`` (``RideLockRegistry``) orders
   coroutines of this worker; other rides are never blocked;
2. a fresh transaction loads the ride with ``SELECT ... FOR UPDATE`` so
   workers in other processes queue on the row;
3. the write bumps ``rides.version`` with a compare-and-set.  A lost
   compare-and-set (or a storage ``OperationalError``: deadlock, serialization
   failure, SQLite busy) rolls the whole unit back and retries it, up to
   ``max_attempts`` times, before raising ``StorageContentionError``.

Domain errors (capacity, duplicate, unavailable, ...) are raised inside the
transaction, so the unit rolls back and nothing is half-written.

Booking policies
----------------
* ``auto_confirm`` -- new bookings start ``confirmed`` instead of ``pending``.
* ``allow_multiple_bookings`` -- a passenger may hold several bookings on the
  same ride (top-ups); otherwise a second one is a ``DuplicateBookingError``.
* ``pending_ttl`` -- a pending booking older than this stops holding seats and
  is cancelled lazily (on the next ledger write for its ride) or by the
  sweeper.  ``None`` keeps pending bookings forever.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rideshare.config import Settings
from rideshare.domain.clock import Clock, utcnow
from rideshare.domain.entities import Booking, SeatLedger
from rideshare.domain.enums import BookingStatus
from rideshare.domain.errors import (
    AuthorizationError,
    CapacityError,
    DuplicateBookingError,
    InvalidStateTransition,
    NotFoundError,
    RideUnavailableError,
    StorageContentionError,
    ValidationError,
)
from rideshare.infrastructure.locks import RideLockRegistry
from rideshare.infrastructure.models import BookingModel, RideModel
from rideshare.infrastructure.repositories import BookingRepository, RideRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")
LedgerWork = Callable[[AsyncSession, Optional[RideModel]], Awaitable[T]]


class LedgerConflict(Exception):
    """Another writer advanced the ride's ledger version first."""


class BookingEngine:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        auto_confirm: bool = False,
        allow_multiple_bookings: bool = False,
        pending_ttl: Optional[timedelta] = None,
        max_attempts: int = 5,
        retry_backoff: float = 0.02,
        clock: Clock = utcnow,
        locks: Optional[RideLockRegistry] = None,
    ):
        self._session_factory = session_factory
        self.auto_confirm = auto_confirm
        self.allow_multiple_bookings = allow_multiple_bookings
        self.pending_ttl = pending_ttl
        self.max_attempts = max(1, max_attempts)
        self.retry_backoff = retry_backoff
        self._clock = clock
        self._locks = locks or RideLockRegistry()

    @classmethod
    def from_settings(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        config: Settings,
        clock: Clock = utcnow,
    ) -> "BookingEngine":
        ttl = config.pending_booking_ttl_seconds
        return cls(
            session_factory,
            auto_confirm=config.auto_confirm,
            allow_multiple_bookings=config.allow_multiple_bookings,
            pending_ttl=timedelta(seconds=ttl) if ttl > 0 else None,
            max_attempts=config.booking_max_attempts,
            retry_backoff=config.booking_retry_backoff_ms / 1000,
            clock=clock,
        )

    # ── Serialization unit ────────────────────────────────────────────

    async def serialized(self, ride_id: str, work: LedgerWork[T]) -> T:
        """Run *work(session, ride)* as the ride's atomic unit, retrying contention."""
        for attempt in range(1, self.max_attempts + 1):
            try:
                async with self._locks.hold(ride_id):
                    async with self._session_factory() as session:
                        async with session.begin():
                            ride = await RideRepository(session).get_for_update(
                                ride_id
                            )
                            return await work(session, ride)
            except (LedgerConflict, OperationalError) as exc:
                logger.warning(
                    "Ledger contention on ride %s (attempt %d/%d): %s",
                    ride_id,
                    attempt,
                    self.max_attempts,
                    exc,
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.retry_backoff * attempt)
        raise StorageContentionError(
            f"Ride {ride_id} is busy; gave up after {self.max_attempts} attempts"
        )

    async def _advance_ledger(
        self, session: AsyncSession, ride: RideModel, now: datetime
    ) -> None:
        if not await RideRepository(session).advance_version(ride.id, ride.version, now):
            raise LedgerConflict(f"ride {ride.id} changed under version {ride.version}")

    def holding_cutoff(self, now: datetime) -> Optional[datetime]:
        """Pending bookings created at or before this instant have expired."""
        return now - self.pending_ttl if self.pending_ttl else None

    # ── Requests ──────────────────────────────────────────────────────

    async def request_booking(
        self, ride_id: str, passenger_id: str, seats_requested: int
    ) -> Booking:
        if isinstance(seats_requested, bool) or not isinstance(seats_requested, int):
            raise ValidationError("seats_requested must be an integer", field="seats")
        if seats_requested < 1:
            raise ValidationError("seats_requested must be at least 1", field="seats")
        if not passenger_id:
            raise ValidationError("passenger_id is required", field="passenger_id")

        async def _book(session: AsyncSession, ride: Optional[RideModel]) -> Booking:
            if ride is None:
                raise NotFoundError("Ride", ride_id)
            now = self._clock()
            await self.expire_pending(session, ride, now)

            if not ride.to_entity().is_bookable(now):
                raise RideUnavailableError(f"Ride {ride_id} is not open for booking")
            if ride.owner_id == passenger_id:
                raise AuthorizationError("Drivers cannot book seats on their own ride")

            repo = BookingRepository(session)
            cutoff = self.holding_cutoff(now)
            if not self.allow_multiple_bookings and await repo.has_holding_booking(
                ride_id, passenger_id, cutoff
            ):
                raise DuplicateBookingError(
                    f"Passenger {passenger_id} already holds a booking on ride {ride_id}"
                )

            ledger = SeatLedger(ride.available_seats, await repo.seats_held(ride_id, cutoff))
            if not ledger.can_accommodate(seats_requested):
                raise CapacityError(seats_requested, ledger.remaining)

            booking = await repo.create(
                BookingModel(
                    ride_id=ride_id,
                    passenger_id=passenger_id,
                    seats_booked=seats_requested,
                    total_price=seats_requested * ride.price_per_seat,
                    status=(
                        BookingStatus.CONFIRMED
                        if self.auto_confirm
                        else BookingStatus.PENDING
                    ),
                    created_at=now,
                    updated_at=now,
                )
            )
            await self._advance_ledger(session, ride, now)
            logger.info(
                "Booking %s: %d seat(s) on ride %s for %s (%d left)",
                booking.id,
                seats_requested,
                ride_id,
                passenger_id,
                ledger.remaining - seats_requested,
            )
            return booking.to_entity()

        return await self.serialized(ride_id, _book)

    async def confirm_booking(self, booking_id: str, requester_id: str) -> Booking:
        """Driver acceptance: ``pending -> confirmed``.  Re-confirming is a no-op."""
        ride_id = await self._ride_of(booking_id)

        async def _confirm(session: AsyncSession, ride: Optional[RideModel]) -> Booking:
            booking = await BookingRepository(session).get_by_id(booking_id)
            if ride is None or booking is None:
                raise NotFoundError("Booking", booking_id)
            if ride.owner_id != requester_id:
                raise AuthorizationError("Only the driver can confirm a booking")
            if booking.status == BookingStatus.CONFIRMED:
                return booking.to_entity()

            now = self._clock()
            entity = booking.to_entity()
            if entity.is_expired(now, self.pending_ttl):
                raise InvalidStateTransition(f"Booking {booking_id} has expired")
            if not ride.to_entity().is_bookable(now):
                raise RideUnavailableError(f"Ride {ride.id} is no longer active")
            entity.transition_to(BookingStatus.CONFIRMED)

            booking.status = entity.status
            booking.updated_at = now
            await self._advance_ledger(session, ride, now)
            logger.info("Booking %s confirmed", booking_id)
            return booking.to_entity()

        return await self.serialized(ride_id, _confirm)

    async def cancel_booking(self, booking_id: str, requester_id: str) -> Booking:
        """Passenger (or driver) cancellation.  Cancelling twice is a no-op."""
        ride_id = await self._ride_of(booking_id)

        async def _cancel(session: AsyncSession, ride: Optional[RideModel]) -> Booking:
            booking = await BookingRepository(session).get_by_id(booking_id)
            if ride is None or booking is None:
                raise NotFoundError("Booking", booking_id)
            if requester_id not in (booking.passenger_id, ride.owner_id):
                raise AuthorizationError("Only the passenger or the driver can cancel")
            if booking.status == BookingStatus.CANCELLED:
                return booking.to_entity()

            now = self._clock()
            entity = booking.to_entity()
            entity.transition_to(BookingStatus.CANCELLED)
            booking.status = entity.status
            booking.updated_at = now
            await self._advance_ledger(session, ride, now)
            logger.info(
                "Booking %s cancelled; %d seat(s) released on ride %s",
                booking_id,
                booking.seats_booked,
                ride.id,
            )
            return booking.to_entity()

        return await self.serialized(ride_id, _cancel)

    # ── Transitions driven by the catalog and the sweeper ─────────────

    async def cancel_bookings_for_ride(
        self, session: AsyncSession, ride: RideModel, now: datetime
    ) -> int:
        """Cascade for a cancelled ride.  Must run inside ``serialized``."""
        open_bookings = await BookingRepository(session).get_open_for_ride(ride.id)
        for booking in open_bookings:
            booking.status = BookingStatus.CANCELLED
            booking.updated_at = now
        await self._advance_ledger(session, ride, now)
        return len(open_bookings)

    async def expire_pending(
        self, session: AsyncSession, ride: RideModel, now: datetime
    ) -> int:
        """Cancel pending bookings past their TTL.  Must run inside ``serialized``."""
        cutoff = self.holding_cutoff(now)
        if cutoff is None:
            return 0
        stale = await BookingRepository(session).get_stale_pending(ride.id, cutoff)
        for booking in stale:
            booking.status = BookingStatus.CANCELLED
            booking.updated_at = now
        if stale:
            await session.flush()
            logger.info(
                "Expired %d pending booking(s) on ride %s", len(stale), ride.id
            )
        return len(stale)

    async def sweep_expired(self) -> int:
        """Expire stale pending bookings on every ride, one ride unit at a time."""
        now = self._clock()
        cutoff = self.holding_cutoff(now)
        if cutoff is None:
            return 0
        async with self._session_factory() as session:
            ride_ids = await BookingRepository(session).ride_ids_with_stale_pending(cutoff)

        async def _expire(session: AsyncSession, ride: Optional[RideModel]) -> int:
            if ride is None:
                return 0
            expired = await self.expire_pending(session, ride, now)
            if expired:
                await self._advance_ledger(session, ride, now)
            return expired

        total = 0
        for ride_id in ride_ids:
            try:
                total += await self.serialized(ride_id, _expire)
            except StorageContentionError as exc:
                logger.warning("Skipping expiry on ride %s this sweep: %s", ride_id, exc)
        return total

    # ── Reads ─────────────────────────────────────────────────────────

    async def remaining_seats(self, ride_id: str) -> int:
        now = self._clock()
        async with self._session_factory() as session:
            ride = await RideRepository(session).get_by_id(ride_id)
            if ride is None:
                raise NotFoundError("Ride", ride_id)
            held = await BookingRepository(session).seats_held(
                ride_id, self.holding_cutoff(now)
            )
        return SeatLedger(ride.available_seats, held).remaining

    async def bookings_for_ride(self, ride_id: str, requester_id: str) -> list[Booking]:
        async with self._session_factory() as session:
            ride = await RideRepository(session).get_by_id(ride_id)
            if ride is None:
                raise NotFoundError("Ride", ride_id)
            if ride.owner_id != requester_id:
                raise AuthorizationError("Only the driver can list a ride's bookings")
            bookings = await BookingRepository(session).get_for_ride(ride_id)
        return [b.to_entity() for b in bookings]

    async def bookings_for_passenger(self, passenger_id: str) -> list[Booking]:
        async with self._session_factory() as session:
            bookings = await BookingRepository(session).get_for_passenger(passenger_id)
        return [b.to_entity() for b in bookings]

    async def _ride_of(self, booking_id: str) -> str:
        async with self._session_factory() as session:
            booking = await BookingRepository(session).get_by_id(booking_id)
        if booking is None:
            raise NotFoundError("Booking", booking_id)
        return booking.ride_id

"""
Query Façade
============

``RideMarketplace`` is the public surface of the core: the presentation layer
(or any other caller) talks to it instead of wiring the catalog, the
availability index and the booking engine itself.  All of them share one
session factory and one clock.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rideshare.config import Settings
from rideshare.config import settings as default_settings
from rideshare.domain.clock import Clock, utcnow
from rideshare.domain.entities import Booking, Ride, RideAvailability
from rideshare.domain.search import SearchCriteria, SearchCursor
from rideshare.services.availability import AvailabilityIndex
from rideshare.services.booking import BookingEngine
from rideshare.services.catalog import RideCatalog


class RideMarketplace:
    def __init__(
        self,
        catalog: RideCatalog,
        index: AvailabilityIndex,
        bookings: BookingEngine,
    ):
        self.catalog = catalog
        self.index = index
        self.bookings = bookings

    @classmethod
    def from_settings(
        cls,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        config: Optional[Settings] = None,
        clock: Clock = utcnow,
    ) -> "RideMarketplace":
        config = config or default_settings
        if session_factory is None:
            from rideshare.infrastructure.database import async_session_factory

            session_factory = async_session_factory
        bookings = BookingEngine.from_settings(session_factory, config, clock)
        return cls(
            RideCatalog.from_settings(session_factory, bookings, config, clock),
            AvailabilityIndex.from_settings(session_factory, bookings, config, clock),
            bookings,
        )

    # ── Rides ─────────────────────────────────────────────────────────

    async def create_ride(
        self,
        owner_id: str,
        origin: str,
        destination: str,
        departure_time: datetime,
        seats: int,
        price_per_seat: int,
        description: Optional[str] = None,
    ) -> Ride:
        return await self.catalog.create_ride(
            owner_id,
            origin,
            destination,
            departure_time,
            seats,
            price_per_seat,
            description,
        )

    async def get_ride(self, ride_id: str) -> Ride:
        return await self.catalog.get_ride(ride_id)

    async def cancel_ride(self, ride_id: str, requester_id: str) -> Ride:
        return await self.catalog.cancel_ride(ride_id, requester_id)

    async def update_price(
        self, ride_id: str, requester_id: str, price_per_seat: int
    ) -> Ride:
        return await self.catalog.update_price(ride_id, requester_id, price_per_seat)

    async def rides_for_owner(self, owner_id: str) -> list[Ride]:
        return await self.catalog.rides_for_owner(owner_id)

    # ── Search ────────────────────────────────────────────────────────

    def search(
        self,
        origin: str = "",
        destination: str = "",
        on_date: Optional[date] = None,
        min_seats: int = 1,
        after: Optional[SearchCursor] = None,
    ) -> AsyncIterator[RideAvailability]:
        """Lazy, restartable sequence of matching rides by departure time."""
        criteria = SearchCriteria(origin, destination, on_date, min_seats)
        return self.index.search(criteria, after)

    async def search_page(
        self,
        criteria: SearchCriteria,
        cursor: Optional[SearchCursor] = None,
        limit: Optional[int] = None,
    ) -> tuple[list[RideAvailability], Optional[SearchCursor]]:
        return await self.index.search_page(criteria, cursor, limit)

    # ── Bookings ──────────────────────────────────────────────────────

    async def request_booking(
        self, ride_id: str, passenger_id: str, seats_requested: int
    ) -> Booking:
        return await self.bookings.request_booking(ride_id, passenger_id, seats_requested)

    async def confirm_booking(self, booking_id: str, requester_id: str) -> Booking:
        return await self.bookings.confirm_booking(booking_id, requester_id)

    async def cancel_booking(self, booking_id: str, requester_id: str) -> Booking:
        return await self.bookings.cancel_booking(booking_id, requester_id)

    async def remaining_seats(self, ride_id: str) -> int:
        return await self.bookings.remaining_seats(ride_id)

    async def ride_bookings(self, ride_id: str, requester_id: str) -> list[Booking]:
        return await self.bookings.bookings_for_ride(ride_id, requester_id)

    async def passenger_bookings(self, passenger_id: str) -> list[Booking]:
        return await self.bookings.bookings_for_passenger(passenger_id)

    # ── Housekeeping (sweeper) ────────────────────────────────────────

    async def sweep(self) -> tuple[int, int]:
        """Expire stale pending bookings and complete departed rides."""
        expired = await self.bookings.sweep_expired()
        completed = await self.catalog.complete_departed()
        return expired, completed

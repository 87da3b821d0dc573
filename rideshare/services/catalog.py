"""
Ride Catalog
============

Owns ride records and their lifecycle (ACTIVE -> COMPLETED | CANCELLED).

Status changes that touch capacity (cancellation, repricing) run inside the
Booking Engine's per-ride serialization unit so a concurrent booking request
sees either the state before the change or the state after it, never a mix.
Departed rides are completed lazily by ``get_ride`` and ``rides_for_owner``,
and in bulk by the sweeper via ``complete_departed``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rideshare.config import Settings
from rideshare.domain.clock import Clock, utcnow
from rideshare.domain.entities import Ride
from rideshare.domain.enums import RideStatus
from rideshare.domain.errors import (
    AuthorizationError,
    InvalidStateTransition,
    NotFoundError,
    RideUnavailableError,
    ValidationError,
)
from rideshare.domain.rules import check_price, validate_listing
from rideshare.domain.search import search_key
from rideshare.infrastructure.models import RideModel
from rideshare.infrastructure.repositories import RideRepository
from rideshare.services.booking import BookingEngine

logger = logging.getLogger(__name__)


class RideCatalog:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        bookings: BookingEngine,
        *,
        min_departure_lead: timedelta = timedelta(hours=1),
        max_seats: int = 8,
        min_price: int = 500,
        max_price: int = 50_000,
        clock: Clock = utcnow,
    ):
        self._session_factory = session_factory
        self._bookings = bookings
        self.min_departure_lead = min_departure_lead
        self.max_seats = max_seats
        self.min_price = min_price
        self.max_price = max_price
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        bookings: BookingEngine,
        config: Settings,
        clock: Clock = utcnow,
    ) -> "RideCatalog":
        return cls(
            session_factory,
            bookings,
            min_departure_lead=timedelta(minutes=config.min_departure_lead_minutes),
            max_seats=config.max_seats_per_ride,
            min_price=config.min_price_per_seat,
            max_price=config.max_price_per_seat,
            clock=clock,
        )

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
        if not owner_id:
            raise ValidationError("owner_id is required", field="owner_id")
        now = self._clock()
        listing = validate_listing(
            origin=origin,
            destination=destination,
            departure_time=departure_time,
            seats=seats,
            price_per_seat=price_per_seat,
            description=description,
            now=now,
            lead=self.min_departure_lead,
            max_seats=self.max_seats,
            min_price=self.min_price,
            max_price=self.max_price,
        )

        async with self._session_factory() as session, session.begin():
            ride = await RideRepository(session).create(
                RideModel(
                    owner_id=owner_id,
                    origin=listing.origin,
                    destination=listing.destination,
                    origin_key=search_key(listing.origin),
                    destination_key=search_key(listing.destination),
                    departure_time=listing.departure_time,
                    available_seats=listing.seats,
                    price_per_seat=listing.price_per_seat,
                    description=listing.description,
                    status=RideStatus.ACTIVE,
                    version=0,
                    created_at=now,
                    updated_at=now,
                )
            )
            created = ride.to_entity()

        logger.info(
            "Ride %s listed: %s -> %s at %s, %d seat(s)",
            created.id,
            created.origin,
            created.destination,
            created.departure_time.isoformat(),
            created.available_seats,
        )
        return created

    async def get_ride(self, ride_id: str) -> Ride:
        now = self._clock()
        async with self._session_factory() as session, session.begin():
            repo = RideRepository(session)
            if await repo.complete_if_departed(ride_id, now):
                logger.info("Ride %s departed; marked completed", ride_id)
            ride = await repo.get_by_id(ride_id)
            if ride is None:
                raise NotFoundError("Ride", ride_id)
            return ride.to_entity()

    async def cancel_ride(self, ride_id: str, requester_id: str) -> Ride:
        """Cancel a ride and cascade to its bookings.  Re-cancelling is a no-op."""

        async def _cancel(session: AsyncSession, ride: Optional[RideModel]) -> Ride:
            if ride is None:
                raise NotFoundError("Ride", ride_id)
            if ride.owner_id != requester_id:
                raise AuthorizationError("Only the driver can cancel this ride")
            if ride.status == RideStatus.CANCELLED:
                return ride.to_entity()

            now = self._clock()
            entity = ride.to_entity()
            if entity.has_departed(now):
                raise InvalidStateTransition(
                    f"Ride {ride_id} has already departed and cannot be cancelled"
                )
            entity.transition_to(RideStatus.CANCELLED)

            ride.status = entity.status
            ride.updated_at = now
            released = await self._bookings.cancel_bookings_for_ride(session, ride, now)
            logger.info(
                "Ride %s cancelled by driver; %d booking(s) cancelled", ride_id, released
            )
            return ride.to_entity()

        return await self._bookings.serialized(ride_id, _cancel)

    async def update_price(
        self, ride_id: str, requester_id: str, price_per_seat: int
    ) -> Ride:
        """Change the listed price.  Existing bookings keep their total price."""
        check_price(price_per_seat, self.min_price, self.max_price)

        async def _reprice(session: AsyncSession, ride: Optional[RideModel]) -> Ride:
            if ride is None:
                raise NotFoundError("Ride", ride_id)
            if ride.owner_id != requester_id:
                raise AuthorizationError("Only the driver can change the price")
            now = self._clock()
            if not ride.to_entity().is_bookable(now):
                raise RideUnavailableError(f"Ride {ride_id} is no longer active")
            ride.price_per_seat = price_per_seat
            ride.updated_at = now
            return ride.to_entity()

        return await self._bookings.serialized(ride_id, _reprice)

    async def complete_departed(self) -> int:
        now = self._clock()
        async with self._session_factory() as session, session.begin():
            completed = await RideRepository(session).complete_departed(now)
        if completed:
            logger.info("Marked %d departed ride(s) completed", completed)
        return completed

    async def rides_for_owner(self, owner_id: str) -> list[Ride]:
        now = self._clock()
        async with self._session_factory() as session, session.begin():
            repo = RideRepository(session)
            if await repo.complete_departed(now, owner_id=owner_id):
                logger.info("Departed rides of %s marked completed", owner_id)
            rides = await repo.get_for_owner(owner_id)
            return [r.to_entity() for r in rides]

"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  Seat counts are always aggregated from live
booking rows; there is no denormalised counter to drift.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import BookingModel, RideModel
from rideshare.domain.enums import SEAT_HOLDING_STATUSES, BookingStatus, RideStatus


def holding_clause(cutoff: Optional[datetime]):
    """Bookings that count against capacity.

    A pending booking created at or before *cutoff* has outlived its TTL and
    no longer holds seats; ``None`` disables expiry.
    """
    pending = BookingModel.status == BookingStatus.PENDING
    if cutoff is not None:
        pending = and_(pending, BookingModel.created_at > cutoff)
    return or_(BookingModel.status == BookingStatus.CONFIRMED, pending)


class RideRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, ride: RideModel) -> RideModel:
        self.session.add(ride)
        await self.session.flush()
        return ride

    async def get_by_id(self, ride_id: str) -> Optional[RideModel]:
        return await self.session.get(RideModel, ride_id)

    async def get_for_update(self, ride_id: str) -> Optional[RideModel]:
        """SELECT ... FOR UPDATE: the row lock is the cross-process serialization unit."""
        result = await self.session.execute(
            select(RideModel)
            .where(RideModel.id == ride_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def advance_version(
        self, ride_id: str, expected: int, now: datetime
    ) -> bool:
        """Optimistic check: bump the ledger version only if nobody else did."""
        result = await self.session.execute(
            update(RideModel)
            .where(RideModel.id == ride_id, RideModel.version == expected)
            .values(version=expected + 1, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def complete_if_departed(self, ride_id: str, now: datetime) -> bool:
        result = await self.session.execute(
            update(RideModel)
            .where(
                RideModel.id == ride_id,
                RideModel.status == RideStatus.ACTIVE,
                RideModel.departure_time < now,
            )
            .values(status=RideStatus.COMPLETED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def complete_departed(
        self, now: datetime, owner_id: Optional[str] = None
    ) -> int:
        """Mark every active ride whose departure has passed as completed."""
        query = update(RideModel).where(
            RideModel.status == RideStatus.ACTIVE,
            RideModel.departure_time < now,
        )
        if owner_id is not None:
            query = query.where(RideModel.owner_id == owner_id)
        result = await self.session.execute(
            query
            .values(status=RideStatus.COMPLETED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def get_for_owner(self, owner_id: str) -> list[RideModel]:
        result = await self.session.execute(
            select(RideModel)
            .where(RideModel.owner_id == owner_id)
            .order_by(RideModel.departure_time.desc(), RideModel.id)
        )
        return list(result.scalars().all())

    async def search_available(
        self,
        *,
        origin_pattern: str,
        destination_pattern: str,
        earliest: datetime,
        latest: Optional[datetime],
        min_seats: int,
        holding_cutoff: Optional[datetime],
        after: Optional[tuple[datetime, str]] = None,
        limit: int = 20,
    ) -> list[tuple[RideModel, int]]:
        """Active rides with at least *min_seats* free, by departure then id."""
        held = (
            select(
                BookingModel.ride_id.label("ride_id"),
                func.sum(BookingModel.seats_booked).label("seats"),
            )
            .where(holding_clause(holding_cutoff))
            .group_by(BookingModel.ride_id)
            .subquery()
        )
        remaining = RideModel.available_seats - func.coalesce(held.c.seats, 0)

        query = (
            select(RideModel, remaining.label("remaining"))
            .outerjoin(held, held.c.ride_id == RideModel.id)
            .where(
                RideModel.status == RideStatus.ACTIVE,
                RideModel.origin_key.like(origin_pattern, escape="\\"),
                RideModel.destination_key.like(destination_pattern, escape="\\"),
                RideModel.departure_time >= earliest,
                remaining >= min_seats,
            )
            .order_by(RideModel.departure_time, RideModel.id)
            .limit(limit)
        )
        if latest is not None:
            query = query.where(RideModel.departure_time < latest)
        if after is not None:
            departed_at, ride_id = after
            query = query.where(
                or_(
                    RideModel.departure_time > departed_at,
                    and_(
                        RideModel.departure_time == departed_at,
                        RideModel.id > ride_id,
                    ),
                )
            )
        result = await self.session.execute(query)
        return [(ride, int(seats)) for ride, seats in result.all()]


class BookingRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, booking: BookingModel) -> BookingModel:
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def get_by_id(self, booking_id: str) -> Optional[BookingModel]:
        return await self.session.get(BookingModel, booking_id)

    async def get_for_ride(self, ride_id: str) -> list[BookingModel]:
        result = await self.session.execute(
            select(BookingModel)
            .where(BookingModel.ride_id == ride_id)
            .order_by(BookingModel.created_at, BookingModel.id)
        )
        return list(result.scalars().all())

    async def get_for_passenger(self, passenger_id: str) -> list[BookingModel]:
        result = await self.session.execute(
            select(BookingModel)
            .where(BookingModel.passenger_id == passenger_id)
            .order_by(BookingModel.created_at.desc(), BookingModel.id)
        )
        return list(result.scalars().all())

    async def get_open_for_ride(self, ride_id: str) -> list[BookingModel]:
        """Every pending or confirmed booking, expired or not."""
        result = await self.session.execute(
            select(BookingModel).where(
                BookingModel.ride_id == ride_id,
                BookingModel.status.in_(sorted(SEAT_HOLDING_STATUSES)),
            )
        )
        return list(result.scalars().all())

    async def get_stale_pending(
        self, ride_id: str, cutoff: datetime
    ) -> list[BookingModel]:
        result = await self.session.execute(
            select(BookingModel).where(
                BookingModel.ride_id == ride_id,
                BookingModel.status == BookingStatus.PENDING,
                BookingModel.created_at <= cutoff,
            )
        )
        return list(result.scalars().all())

    async def ride_ids_with_stale_pending(self, cutoff: datetime) -> list[str]:
        result = await self.session.execute(
            select(BookingModel.ride_id)
            .where(
                BookingModel.status == BookingStatus.PENDING,
                BookingModel.created_at <= cutoff,
            )
            .distinct()
        )
        return list(result.scalars().all())

    async def seats_held(self, ride_id: str, cutoff: Optional[datetime]) -> int:
        result = await self.session.execute(
            select(func.coalesce(func.sum(BookingModel.seats_booked), 0)).where(
                BookingModel.ride_id == ride_id, holding_clause(cutoff)
            )
        )
        return int(result.scalar() or 0)

    async def has_holding_booking(
        self, ride_id: str, passenger_id: str, cutoff: Optional[datetime]
    ) -> bool:
        result = await self.session.execute(
            select(func.count())
            .select_from(BookingModel)
            .where(
                BookingModel.ride_id == ride_id,
                BookingModel.passenger_id == passenger_id,
                holding_clause(cutoff),
            )
        )
        return (result.scalar() or 0) > 0

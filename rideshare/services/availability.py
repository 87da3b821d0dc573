"""
Availability Index
==================

Answers "which active, future, seat-sufficient rides match this route and
date?".  One SQL statement per page joins rides to the live per-ride seat sum
of holding bookings, so the free-seat count is never a cached value.

Results are ordered by ``(departure_time, id)`` and paged with a keyset
cursor; ``search`` walks the pages lazily and can be restarted from any
cursor it handed out.

Complexity: one index range scan per page, O(page_size) rows returned.
"""

from __future__ import annotations

from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rideshare.config import Settings
from rideshare.domain.clock import Clock, as_utc, utcnow
from rideshare.domain.entities import RideAvailability
from rideshare.domain.search import (
    SearchCriteria,
    SearchCursor,
    day_window,
    like_pattern,
)
from rideshare.infrastructure.repositories import RideRepository
from rideshare.services.booking import BookingEngine


class AvailabilityIndex:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        bookings: BookingEngine,
        *,
        page_size: int = 20,
        utc_offset_minutes: int = 0,
        clock: Clock = utcnow,
    ):
        self._session_factory = session_factory
        self._bookings = bookings
        self.page_size = page_size
        self.utc_offset_minutes = utc_offset_minutes
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        bookings: BookingEngine,
        config: Settings,
        clock: Clock = utcnow,
    ) -> "AvailabilityIndex":
        return cls(
            session_factory,
            bookings,
            page_size=config.search_page_size,
            utc_offset_minutes=config.search_utc_offset_minutes,
            clock=clock,
        )

    async def search_page(
        self,
        criteria: SearchCriteria,
        cursor: Optional[SearchCursor] = None,
        limit: Optional[int] = None,
    ) -> tuple[list[RideAvailability], Optional[SearchCursor]]:
        """One page of matches plus the cursor of the next page (``None`` at the end)."""
        limit = limit or self.page_size
        now = self._clock()
        earliest, latest = now, None
        if criteria.date is not None:
            start, latest = day_window(criteria.date, self.utc_offset_minutes)
            earliest = max(start, now)
            if earliest >= latest:
                return [], None

        async with self._session_factory() as session:
            rows = await RideRepository(session).search_available(
                origin_pattern=like_pattern(criteria.origin_key),
                destination_pattern=like_pattern(criteria.destination_key),
                earliest=earliest,
                latest=latest,
                min_seats=criteria.min_seats,
                holding_cutoff=self._bookings.holding_cutoff(now),
                after=(cursor.departure_time, cursor.ride_id) if cursor else None,
                limit=limit,
            )

        hits = [RideAvailability(ride.to_entity(), seats) for ride, seats in rows]
        next_cursor = None
        if len(rows) == limit:
            last = rows[-1][0]
            next_cursor = SearchCursor(as_utc(last.departure_time), last.id)
        return hits, next_cursor

    async def search(
        self, criteria: SearchCriteria, after: Optional[SearchCursor] = None
    ) -> AsyncIterator[RideAvailability]:
        cursor = after
        while True:
            page, cursor = await self.search_page(criteria, cursor)
            for hit in page:
                yield hit
            if cursor is None:
                return

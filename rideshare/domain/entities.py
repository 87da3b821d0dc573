"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** on ``Ride`` and ``Booking``: enforces valid lifecycle
  transitions (ACTIVE -> COMPLETED | CANCELLED, PENDING -> CONFIRMED ->
  CANCELLED).
- ``SeatLedger.can_accommodate`` encapsulates the capacity invariant.

Entities are plain dataclasses returned to callers; the ORM rows never leave
the infrastructure and service layers.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from .clock import as_utc
from .enums import (
    BOOKING_TRANSITIONS,
    RIDE_TRANSITIONS,
    BookingStatus,
    RideStatus,
)
from .errors import InvalidStateTransition


def check_transition(current, new_status, transitions) -> None:
    """Raise unless *current* -> *new_status* is an edge of *transitions*."""
    if new_status not in transitions.get(current, set()):
        raise InvalidStateTransition(
            f"Cannot transition from {current.value} to {new_status.value}"
        )


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class SeatLedger:
    capacity: int
    held: int = 0

    @property
    def remaining(self) -> int:
        return max(0, self.capacity - self.held)

    def can_accommodate(self, seats: int) -> bool:
        return seats <= self.remaining


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class Ride:
    id: Optional[str] = None
    owner_id: str = ""
    origin: str = ""
    destination: str = ""
    departure_time: Optional[datetime] = None
    available_seats: int = 1
    price_per_seat: int = 0
    status: RideStatus = RideStatus.ACTIVE
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def transition_to(self, new_status: RideStatus) -> None:
        """Move to *new_status* if the transition is legal, else raise."""
        check_transition(self.status, new_status, RIDE_TRANSITIONS)
        self.status = new_status

    def has_departed(self, now: datetime) -> bool:
        return self.departure_time is not None and as_utc(self.departure_time) < now

    def is_bookable(self, now: datetime) -> bool:
        return self.status == RideStatus.ACTIVE and not self.has_departed(now)


@dataclass
class Booking:
    id: Optional[str] = None
    ride_id: str = ""
    passenger_id: str = ""
    seats_booked: int = 1
    total_price: int = 0
    status: BookingStatus = BookingStatus.PENDING
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def transition_to(self, new_status: BookingStatus) -> None:
        check_transition(self.status, new_status, BOOKING_TRANSITIONS)
        self.status = new_status

    def is_expired(self, now: datetime, ttl: Optional[timedelta]) -> bool:
        """A pending booking older than *ttl* no longer holds its seats."""
        if ttl is None or self.status != BookingStatus.PENDING:
            return False
        return self.created_at is not None and as_utc(self.created_at) <= now - ttl


@dataclass(frozen=True)
class RideAvailability:
    """A search hit: the ride plus its live free-seat count."""

    ride: Ride
    seats_remaining: int

"""
SQLAlchemy ORM models  (maps to PostgreSQL).

Tables
------
* ``rides``     -- driver listings with their original seat capacity
* ``bookings``  -- passenger reservations against a ride

Account ids (driver / passenger) are opaque strings issued by the external
identity provider, so they are not foreign keys.

Indexes
-------
* **B-Tree** on ``(status, departure_time)`` for the availability search and
  on the folded route keys for substring filtering.
* **B-Tree** on ``(ride_id, status)`` so the per-ride seat sum stays an
  index range scan, and on ``passenger_id`` for "my bookings".
"""

import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)

from .database import Base
from rideshare.domain.clock import as_utc
from rideshare.domain.entities import Booking, Ride
from rideshare.domain.enums import BookingStatus, RideStatus


def _new_id() -> str:
    return str(uuid.uuid4())


def _utc(value):
    return as_utc(value) if value is not None else None


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class RideModel(Base):
    __tablename__ = "rides"

    id = Column(String(36), primary_key=True, default=_new_id)
    owner_id = Column(String(64), nullable=False)

    origin = Column(String(120), nullable=False)
    destination = Column(String(120), nullable=False)
    # Folded copies for accent/case-insensitive LIKE (see domain.search)
    origin_key = Column(String(120), nullable=False)
    destination_key = Column(String(120), nullable=False)

    departure_time = Column(DateTime(timezone=True), nullable=False)
    available_seats = Column(Integer, nullable=False)
    price_per_seat = Column(Integer, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(
        Enum(RideStatus, name="ridestatus", values_callable=_enum_values),
        default=RideStatus.ACTIVE,
        nullable=False,
    )
    # Bumped by every write to this ride's booking ledger
    version = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint("available_seats > 0", name="ck_rides_seats_positive"),
        CheckConstraint("price_per_seat > 0", name="ck_rides_price_positive"),
        Index("idx_rides_status_departure", "status", "departure_time"),
        Index("idx_rides_owner", "owner_id"),
        Index("idx_rides_origin_key", "origin_key"),
        Index("idx_rides_destination_key", "destination_key"),
    )

    def to_entity(self) -> Ride:
        return Ride(
            id=self.id,
            owner_id=self.owner_id,
            origin=self.origin,
            destination=self.destination,
            departure_time=_utc(self.departure_time),
            available_seats=self.available_seats,
            price_per_seat=self.price_per_seat,
            status=RideStatus(self.status),
            description=self.description,
            created_at=_utc(self.created_at),
            updated_at=_utc(self.updated_at),
        )


class BookingModel(Base):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=_new_id)
    ride_id = Column(String(36), ForeignKey("rides.id"), nullable=False)
    passenger_id = Column(String(64), nullable=False)
    seats_booked = Column(Integer, nullable=False)
    # Frozen at acceptance time; never recomputed from the ride's price
    total_price = Column(Integer, nullable=False)
    status = Column(
        Enum(BookingStatus, name="bookingstatus", values_callable=_enum_values),
        default=BookingStatus.PENDING,
        nullable=False,
    )

    # Written from the service clock so pending-TTL expiry is deterministic
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint("seats_booked > 0", name="ck_bookings_seats_positive"),
        Index("idx_bookings_ride_status", "ride_id", "status"),
        Index("idx_bookings_passenger", "passenger_id"),
    )

    def to_entity(self) -> Booking:
        return Booking(
            id=self.id,
            ride_id=self.ride_id,
            passenger_id=self.passenger_id,
            seats_booked=self.seats_booked,
            total_price=self.total_price,
            status=BookingStatus(self.status),
            created_at=_utc(self.created_at),
            updated_at=_utc(self.updated_at),
        )

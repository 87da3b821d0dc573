"""
Ride listing rules
==================

Checks a driver's listing before the catalog stores it:

* origin / destination: 2 to 120 characters after trimming
* departure: timezone-aware, at least ``min_departure_lead_minutes`` ahead
* seats: 1 .. ``max_seats_per_ride`` (8)
* price per seat: whole currency units within
  [``min_price_per_seat``, ``max_price_per_seat``]

Each failure raises ``ValidationError`` naming the offending field.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from .clock import as_utc
from .errors import ValidationError

MIN_PLACE_LENGTH = 2
MAX_PLACE_LENGTH = 120
MAX_DESCRIPTION_LENGTH = 1000


@dataclass(frozen=True)
class RideListing:
    """A validated, normalised listing ready to be stored."""

    origin: str
    destination: str
    departure_time: datetime
    seats: int
    price_per_seat: int
    description: Optional[str]


def clean_place(value: str, field: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(f"{field} must not be empty", field=field)
    if len(cleaned) < MIN_PLACE_LENGTH:
        raise ValidationError(
            f"{field} must be at least {MIN_PLACE_LENGTH} characters", field=field
        )
    if len(cleaned) > MAX_PLACE_LENGTH:
        raise ValidationError(
            f"{field} must be at most {MAX_PLACE_LENGTH} characters", field=field
        )
    return cleaned


def check_seats(seats: int, max_seats: int) -> int:
    if isinstance(seats, bool) or not isinstance(seats, int):
        raise ValidationError("seats must be an integer", field="seats")
    if not 1 <= seats <= max_seats:
        raise ValidationError(
            f"seats must be between 1 and {max_seats}", field="seats"
        )
    return seats


def check_price(price: int, min_price: int, max_price: int) -> int:
    if isinstance(price, bool) or not isinstance(price, int):
        raise ValidationError(
            "price_per_seat must be a whole number", field="price_per_seat"
        )
    if not min_price <= price <= max_price:
        raise ValidationError(
            f"price_per_seat must be between {min_price} and {max_price}",
            field="price_per_seat",
        )
    return price


def check_departure(departure: datetime, now: datetime, lead: timedelta) -> datetime:
    if departure.tzinfo is None:
        raise ValidationError(
            "departure_time must carry a timezone", field="departure_time"
        )
    departure = as_utc(departure)
    if departure < now + lead:
        minutes = int(lead.total_seconds() // 60)
        raise ValidationError(
            f"departure_time must be at least {minutes} minutes in the future",
            field="departure_time",
        )
    return departure


def validate_listing(
    *,
    origin: str,
    destination: str,
    departure_time: datetime,
    seats: int,
    price_per_seat: int,
    description: Optional[str],
    now: datetime,
    lead: timedelta,
    max_seats: int,
    min_price: int,
    max_price: int,
) -> RideListing:
    if description is not None:
        description = description.strip() or None
    if description and len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(
            f"description must be at most {MAX_DESCRIPTION_LENGTH} characters",
            field="description",
        )
    return RideListing(
        origin=clean_place(origin, "origin"),
        destination=clean_place(destination, "destination"),
        departure_time=check_departure(departure_time, now, lead),
        seats=check_seats(seats, max_seats),
        price_per_seat=check_price(price_per_seat, min_price, max_price),
        description=description,
    )

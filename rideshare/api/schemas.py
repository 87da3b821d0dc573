"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from rideshare.domain.entities import Ride
from rideshare.domain.enums import BookingStatus, RideStatus


# ── Requests ──────────────────────────────────────────────────────────


class RideCreateRequest(BaseModel):
    origin: str = Field(..., min_length=1, max_length=120)
    destination: str = Field(..., min_length=1, max_length=120)
    departure_time: datetime = Field(
        ..., description="ISO-8601 timestamp with an explicit UTC offset."
    )
    seats: int = Field(..., ge=1, le=8)
    price_per_seat: int = Field(..., gt=0)
    description: Optional[str] = Field(None, max_length=1000)


class PriceUpdateRequest(BaseModel):
    price_per_seat: int = Field(..., gt=0)


class BookingCreateRequest(BaseModel):
    seats: int = Field(1, ge=1, le=8)


# ── Responses ─────────────────────────────────────────────────────────


class RideResponse(BaseModel):
    id: str
    owner_id: str
    origin: str
    destination: str
    departure_time: datetime
    available_seats: int
    price_per_seat: int
    status: RideStatus
    description: Optional[str] = None
    seats_remaining: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @classmethod
    def from_entity(
        cls, ride: Ride, seats_remaining: Optional[int] = None
    ) -> "RideResponse":
        response = cls.model_validate(ride)
        response.seats_remaining = seats_remaining
        return response


class BookingResponse(BaseModel):
    id: str
    ride_id: str
    passenger_id: str
    seats_booked: int
    total_price: int
    status: BookingStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class SearchResponse(BaseModel):
    results: list[RideResponse] = []
    next_cursor: Optional[str] = Field(
        None, description="Pass back as ``cursor`` to fetch the next page."
    )


class SweepResponse(BaseModel):
    bookings_expired: int
    rides_completed: int


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str
    code: str

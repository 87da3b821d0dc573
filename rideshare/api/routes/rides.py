"""
Ride endpoints
==============

POST  /api/v1/rides                     -- list a ride (driver)
GET   /api/v1/rides/search              -- search active rides by route/date/party size
GET   /api/v1/rides/mine                -- the caller's own listings
GET   /api/v1/rides/{ride_id}           -- ride details with live free seats
PATCH /api/v1/rides/{ride_id}/cancel    -- cancel a ride (cascades to bookings)
PATCH /api/v1/rides/{ride_id}/price     -- change the listed price per seat
GET   /api/v1/rides/{ride_id}/bookings  -- bookings on the caller's ride
POST  /api/v1/rides/{ride_id}/bookings  -- reserve seats (returns 201)
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from rideshare.api.dependencies import get_account_id, get_marketplace
from rideshare.api.middleware import limiter
from rideshare.api.schemas import (
    BookingCreateRequest,
    BookingResponse,
    ErrorResponse,
    PriceUpdateRequest,
    RideCreateRequest,
    RideResponse,
    SearchResponse,
)
from rideshare.config import settings
from rideshare.domain.search import SearchCriteria, SearchCursor
from rideshare.services.marketplace import RideMarketplace

router = APIRouter(prefix="/rides", tags=["rides"])


@router.post(
    "",
    status_code=201,
    response_model=RideResponse,
    summary="List a ride",
    responses={422: {"model": ErrorResponse}},
)
@limiter.limit(settings.rate_limit)
async def create_ride(
    request: Request,
    body: RideCreateRequest,
    account_id: str = Depends(get_account_id),
    marketplace: RideMarketplace = Depends(get_marketplace),
):
    ride = await marketplace.create_ride(
        account_id,
        body.origin,
        body.destination,
        body.departure_time,
        body.seats,
        body.price_per_seat,
        body.description,
    )
    return RideResponse.from_entity(ride, seats_remaining=ride.available_seats)


@router.get(
    "/search",
    response_model=SearchResponse,
    summary="Search active rides",
    description=(
        "Case- and accent-insensitive substring match on origin and "
        "destination.  Only active rides that have not departed and still "
        "have at least ``min_seats`` free seats are returned, earliest "
        "departure first."
    ),
)
@limiter.limit(settings.rate_limit)
async def search_rides(
    request: Request,
    origin: str = Query("", max_length=120),
    destination: str = Query("", max_length=120),
    on_date: Optional[date] = Query(None, alias="date"),
    min_seats: int = Query(1, ge=1, le=8),
    cursor: Optional[str] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=100),
    marketplace: RideMarketplace = Depends(get_marketplace),
):
    criteria = SearchCriteria(origin, destination, on_date, min_seats)
    start = SearchCursor.decode(cursor) if cursor else None
    hits, next_cursor = await marketplace.search_page(criteria, start, limit)
    return SearchResponse(
        results=[RideResponse.from_entity(h.ride, h.seats_remaining) for h in hits],
        next_cursor=next_cursor.encode() if next_cursor else None,
    )


@router.get("/mine", response_model=list[RideResponse], summary="My listings")
@limiter.limit(settings.rate_limit)
async def my_rides(
    request: Request,
    account_id: str = Depends(get_account_id),
    marketplace: RideMarketplace = Depends(get_marketplace),
):
    rides = await marketplace.rides_for_owner(account_id)
    return [RideResponse.from_entity(r) for r in rides]


@router.get(
    "/{ride_id}",
    response_model=RideResponse,
    summary="Get ride details and free seats",
    responses={404: {"model": ErrorResponse}},
)
@limiter.limit(settings.rate_limit)
async def get_ride(
    request: Request,
    ride_id: str,
    marketplace: RideMarketplace = Depends(get_marketplace),
):
    ride = await marketplace.get_ride(ride_id)
    remaining = await marketplace.remaining_seats(ride_id)
    return RideResponse.from_entity(ride, seats_remaining=remaining)


@router.patch(
    "/{ride_id}/cancel",
    response_model=RideResponse,
    summary="Cancel a ride",
    description=(
        "Transitions an ACTIVE ride to CANCELLED and cancels every pending or "
        "confirmed booking on it.  Cancelling an already cancelled ride is a "
        "no-op."
    ),
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
@limiter.limit(settings.rate_limit)
async def cancel_ride(
    request: Request,
    ride_id: str,
    account_id: str = Depends(get_account_id),
    marketplace: RideMarketplace = Depends(get_marketplace),
):
    ride = await marketplace.cancel_ride(ride_id, account_id)
    return RideResponse.from_entity(ride)


@router.patch(
    "/{ride_id}/price",
    response_model=RideResponse,
    summary="Change the price per seat",
    description="Existing bookings keep the total price they were accepted at.",
)
@limiter.limit(settings.rate_limit)
async def update_price(
    request: Request,
    ride_id: str,
    body: PriceUpdateRequest,
    account_id: str = Depends(get_account_id),
    marketplace: RideMarketplace = Depends(get_marketplace),
):
    ride = await marketplace.update_price(ride_id, account_id, body.price_per_seat)
    return RideResponse.from_entity(ride)


@router.get(
    "/{ride_id}/bookings",
    response_model=list[BookingResponse],
    summary="Bookings on my ride",
)
@limiter.limit(settings.rate_limit)
async def ride_bookings(
    request: Request,
    ride_id: str,
    account_id: str = Depends(get_account_id),
    marketplace: RideMarketplace = Depends(get_marketplace),
):
    bookings = await marketplace.ride_bookings(ride_id, account_id)
    return [BookingResponse.model_validate(b) for b in bookings]


@router.post(
    "/{ride_id}/bookings",
    status_code=201,
    response_model=BookingResponse,
    summary="Reserve seats on a ride",
    responses={
        409: {
            "model": ErrorResponse,
            "description": "Ride unavailable, not enough seats, or duplicate booking.",
        },
        503: {"model": ErrorResponse, "description": "Ride busy; retry shortly."},
    },
)
@limiter.limit(settings.rate_limit)
async def request_booking(
    request: Request,
    ride_id: str,
    body: BookingCreateRequest,
    account_id: str = Depends(get_account_id),
    marketplace: RideMarketplace = Depends(get_marketplace),
):
    booking = await marketplace.request_booking(ride_id, account_id, body.seats)
    return BookingResponse.model_validate(booking)

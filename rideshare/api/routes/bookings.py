"""
Booking endpoints
=================

GET   /api/v1/bookings/mine                  -- the caller's bookings
PATCH /api/v1/bookings/{booking_id}/confirm  -- driver accepts a pending booking
PATCH /api/v1/bookings/{booking_id}/cancel   -- passenger or driver cancels
"""

from fastapi import APIRouter, Depends, Request

from rideshare.api.dependencies import get_account_id, get_marketplace
from rideshare.api.middleware import limiter
from rideshare.api.schemas import BookingResponse, ErrorResponse
from rideshare.config import settings
from rideshare.services.marketplace import RideMarketplace

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.get("/mine", response_model=list[BookingResponse], summary="My bookings")
@limiter.limit(settings.rate_limit)
async def my_bookings(
    request: Request,
    account_id: str = Depends(get_account_id),
    marketplace: RideMarketplace = Depends(get_marketplace),
):
    bookings = await marketplace.passenger_bookings(account_id)
    return [BookingResponse.model_validate(b) for b in bookings]


@router.patch(
    "/{booking_id}/confirm",
    response_model=BookingResponse,
    summary="Confirm a pending booking",
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
@limiter.limit(settings.rate_limit)
async def confirm_booking(
    request: Request,
    booking_id: str,
    account_id: str = Depends(get_account_id),
    marketplace: RideMarketplace = Depends(get_marketplace),
):
    booking = await marketplace.confirm_booking(booking_id, account_id)
    return BookingResponse.model_validate(booking)


@router.patch(
    "/{booking_id}/cancel",
    response_model=BookingResponse,
    summary="Cancel a booking",
    description="Releases the booking's seats.  Cancelling twice is a no-op.",
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
@limiter.limit(settings.rate_limit)
async def cancel_booking(
    request: Request,
    booking_id: str,
    account_id: str = Depends(get_account_id),
    marketplace: RideMarketplace = Depends(get_marketplace),
):
    booking = await marketplace.cancel_booking(booking_id, account_id)
    return BookingResponse.model_validate(booking)

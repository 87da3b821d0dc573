"""
FastAPI application factory.

* Registers routes for rides, bookings and admin.
* Builds the ``RideMarketplace`` façade the routes depend on.
* Starts / stops the background sweeper via lifespan events.
* Applies rate-limiting middleware and maps domain errors to HTTP codes.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from rideshare.api.errors import register_error_handlers
from rideshare.api.middleware import limiter
from rideshare.api.routes import admin, bookings, rides
from rideshare.config import Settings, settings as default_settings
from rideshare.infrastructure.redis_client import close_redis
from rideshare.services.marketplace import RideMarketplace
from rideshare.workers import sweeper as _sweeper

logging.basicConfig(level=logging.INFO)


def create_app(
    marketplace: Optional[RideMarketplace] = None,
    config: Optional[Settings] = None,
) -> FastAPI:
    config = config or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start the sweeper on startup; stop on shutdown."""
        if config.sweep_enabled:
            await _sweeper.start_sweep_loop(app.state.marketplace)
        yield
        if config.sweep_enabled:
            await _sweeper.stop_sweep_loop()
            await close_redis()

    app = FastAPI(
        title="Rideshare Booking API",
        description=(
            "Drivers list trips with a fixed seat capacity; passengers search "
            "by route, date and party size and reserve seats.  Seat "
            "reservations are serialized per ride so a ride is never "
            "overbooked."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.marketplace = marketplace or RideMarketplace.from_settings(config=config)

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    register_error_handlers(app)

    # Routers
    app.include_router(rides.router, prefix="/api/v1")
    app.include_router(bookings.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app

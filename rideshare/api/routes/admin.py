"""
Admin / observability endpoints
===============================

GET  /api/v1/admin/health -- simple health check
POST /api/v1/admin/sweep  -- run one expiry / completion sweep now, under the
                            sweeper lock (skipped while another sweep holds it)
"""

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, Request

from rideshare.api.dependencies import get_marketplace
from rideshare.api.middleware import limiter
from rideshare.api.schemas import HealthResponse, SweepResponse
from rideshare.infrastructure.redis_client import get_redis
from rideshare.services.marketplace import RideMarketplace
from rideshare.workers.sweeper import run_sweep_cycle

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post(
    "/sweep",
    response_model=SweepResponse,
    summary="Expire stale pending bookings and complete departed rides",
)
@limiter.limit("10/minute")
async def sweep(
    request: Request,
    marketplace: RideMarketplace = Depends(get_marketplace),
    redis: aioredis.Redis = Depends(get_redis),
):
    expired, completed = await run_sweep_cycle(marketplace, redis)
    return SweepResponse(bookings_expired=expired, rides_completed=completed)


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()

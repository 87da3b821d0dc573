"""
Background Sweeper
==================

Runs every ``SWEEP_INTERVAL_SECONDS`` (default 60 s).

Concurrency safety
------------------
* **Redis distributed lock** ensures only one instance runs the sweep cycle
  at a time across multiple API processes.
* Each ride's expired pending bookings are cancelled inside the Booking
  Engine's per-ride serialization unit, the same one live booking requests
  use, so a sweep never races a request for the same seats.

Cycle
-----
1. Cancel pending bookings older than the pending TTL (releases held seats).
2. Mark ``active`` rides whose departure has passed as ``completed``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import redis.asyncio as aioredis

from rideshare.config import settings
from rideshare.infrastructure.locks import DistributedLock
from rideshare.infrastructure.redis_client import get_redis
from rideshare.services.marketplace import RideMarketplace

logger = logging.getLogger(__name__)

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


# ── Public API ────────────────────────────────────────────────────────


async def start_sweep_loop(marketplace: RideMarketplace) -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop(marketplace))
    logger.info("Sweeper started (interval=%ds)", settings.sweep_interval_seconds)


async def stop_sweep_loop() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Sweeper stopped")


# ── Internals ─────────────────────────────────────────────────────────


async def _loop(marketplace: RideMarketplace) -> None:
    """Periodic loop: run a sweep cycle then sleep."""
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            await run_sweep_cycle(marketplace)
        except Exception:
            logger.exception("Unhandled error in sweep cycle")
        # Wait for the interval or until stop is signalled
        try:
            await asyncio.wait_for(
                _stop_event.wait(), timeout=settings.sweep_interval_seconds
            )
            break
        except asyncio.TimeoutError:
            pass  # next cycle


async def run_sweep_cycle(
    marketplace: RideMarketplace, redis: Optional[aioredis.Redis] = None
) -> tuple[int, int]:
    """Execute one sweep.  Returns ``(bookings_expired, rides_completed)``."""
    if redis is None:
        redis = await get_redis()
    lock = DistributedLock(redis, "booking_sweeper", ttl_seconds=60)

    if not await lock.acquire():
        logger.debug("Lock held by another worker – skipping cycle")
        return 0, 0

    try:
        expired, completed = await marketplace.sweep()
        if expired or completed:
            logger.info(
                "Sweep cycle: %d booking(s) expired, %d ride(s) completed",
                expired,
                completed,
            )
        return expired, completed
    finally:
        await lock.release()

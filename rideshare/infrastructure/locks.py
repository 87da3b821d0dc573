"""
Locks
=====

``RideLockRegistry``
    In-process, per-ride ``asyncio.Lock``.  Every booking-ledger write for a
    ride runs under its lock, so two coroutines in the same worker never race
    for the last seat.  Locks for different rides are independent and an
    entry is dropped as soon as nobody holds or waits on it.  Across worker
    processes the ride row lock (``SELECT ... FOR UPDATE``) plays the same
    role.

``DistributedLock``
    Redis-based lock used by the background sweeper so only one API process
    runs a sweep cycle at a time.  Uses SET NX EX for acquire and a Lua
    script for atomic check-and-delete on release.
"""

from __future__ import annotations

import asyncio
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator

import redis.asyncio as aioredis


class RideLockRegistry:
    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, ride_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(ride_id, asyncio.Lock())
        self._users[ride_id] = self._users.get(ride_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[ride_id] -= 1
            if not self._users[ride_id]:
                del self._users[ride_id]
                del self._locks[ride_id]

    def is_locked(self, ride_id: str) -> bool:
        lock = self._locks.get(ride_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)


class DistributedLock:
    def __init__(
        self, client: aioredis.Redis, key: str, ttl_seconds: int = 30
    ):
        self.redis = client
        self.key = f"lock:{key}"
        self.ttl = ttl_seconds
        self.token = str(uuid.uuid4())

    async def acquire(self) -> bool:
        """Try to acquire. Returns True on success."""
        return bool(
            await self.redis.set(self.key, self.token, nx=True, ex=self.ttl)
        )

    async def release(self) -> None:
        """Release only if we still own the lock (atomic via Lua)."""
        lua = """
        if redis.call("get", KEYS[1]) == ARGV[1] then
            return redis.call("del", KEYS[1])
        else
            return 0
        end
        """
        await self.redis.eval(lua, 1, self.key, self.token)

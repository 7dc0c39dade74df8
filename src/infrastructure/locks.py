"""
Redis-based distributed lock.

Used by the release reconciler so that only one API process sweeps
stranded reservations per interval.

Acquire is ``SET NX EX``; release is a Lua compare-and-delete, so a lock
that expired and was taken by another process is never deleted by us.
"""

from __future__ import annotations

import uuid

import redis.asyncio as aioredis

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class LockNotAcquired(RuntimeError):
    pass


class DistributedLock:
    def __init__(
        self, client: aioredis.Redis, key: str, ttl_seconds: int = 30
    ):
        self.redis = client
        self.key = f"lock:{key}"
        self.ttl = ttl_seconds
        self.token = str(uuid.uuid4())
        self.held = False

    async def acquire(self) -> bool:
        """Try once, without waiting. Returns True on success."""
        self.held = bool(
            await self.redis.set(self.key, self.token, nx=True, ex=self.ttl)
        )
        return self.held

    async def release(self) -> bool:
        """Delete the key only if it still carries our token."""
        if not self.held:
            return False
        deleted = await self.redis.eval(_RELEASE_SCRIPT, 1, self.key, self.token)
        self.held = False
        return bool(deleted)

    async def __aenter__(self):
        if not await self.acquire():
            raise LockNotAcquired(f"Could not acquire lock: {self.key}")
        return self

    async def __aexit__(self, *args):
        await self.release()

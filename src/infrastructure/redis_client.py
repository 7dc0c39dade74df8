"""
Redis async connection pool shared by the notifier and the reconciler lock.

The pool is created lazily so importing this module never needs a
reachable Redis (tests replace the client with a mock).
"""

from __future__ import annotations

from typing import Optional

import redis.asyncio as aioredis

from src.config import settings

_pool: Optional[aioredis.ConnectionPool] = None


async def get_redis() -> aioredis.Redis:
    """Return a Redis client backed by the shared connection pool."""
    global _pool
    if _pool is None:
        _pool = aioredis.ConnectionPool.from_url(
            settings.redis_url, decode_responses=True
        )
    return aioredis.Redis(connection_pool=_pool)


async def close_redis() -> None:
    global _pool
    if _pool is not None:
        await _pool.disconnect()
        _pool = None

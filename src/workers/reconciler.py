"""
Release Reconciler
==================

Runs every ``RECONCILE_INTERVAL_SECONDS`` (default 30 s).

A booking that reaches ``completed`` / ``cancelled`` commits first and
releases its fulfiller second.  If that second write fails the caller gets
``PartialFailure`` and the fulfiller stays bound to a finished booking.
This worker finds such fulfillers and releases them.

Concurrency safety
------------------
* **Redis distributed lock** ensures only one instance sweeps at a time
  across multiple API processes.
* The release itself is conditional on the stale ``current_booking_id``,
  so a fulfiller re-assigned in the meantime is left alone.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import async_sessionmaker

from src.config import settings
from src.infrastructure.database import async_session_factory
from src.infrastructure.locks import DistributedLock
from src.infrastructure.redis_client import get_redis
from src.infrastructure.repositories import FulfillerRepository
from src.services.availability import FulfillerAvailability

logger = logging.getLogger(__name__)

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


# ── Public API ────────────────────────────────────────────────────────


async def start_reconcile_loop() -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop())
    logger.info(
        "Release reconciler started (interval=%ds)",
        settings.reconcile_interval_seconds,
    )


async def stop_reconcile_loop() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Release reconciler stopped")


# ── Internals ─────────────────────────────────────────────────────────


async def _loop() -> None:
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            await run_reconcile_cycle()
        except Exception:
            logger.exception("Unhandled error in reconcile cycle")
        try:
            await asyncio.wait_for(
                _stop_event.wait(), timeout=settings.reconcile_interval_seconds
            )
            break
        except asyncio.TimeoutError:
            pass  # next cycle


async def run_reconcile_cycle(
    session_factory: Optional[async_sessionmaker] = None,
    redis: Optional[aioredis.Redis] = None,
) -> int:
    """Execute one sweep.  Returns the number of fulfillers released."""
    session_factory = session_factory or async_session_factory
    redis = redis or await get_redis()
    lock = DistributedLock(redis, "release_reconciler", ttl_seconds=60)

    if not await lock.acquire():
        logger.debug("Lock held by another worker – skipping cycle")
        return 0

    released = 0
    try:
        async with session_factory() as session:
            stranded = await FulfillerRepository(session).get_stranded()
            await session.commit()
            availability = FulfillerAvailability(session)
            for fulfiller in stranded:
                fulfiller_id, booking_id = fulfiller.id, fulfiller.current_booking_id
                try:
                    await availability.release(fulfiller_id, booking_id)
                except Exception:
                    await session.rollback()
                    logger.exception(
                        "Could not release fulfiller %d from booking %d",
                        fulfiller_id,
                        booking_id,
                    )
                    continue
                released += 1
                logger.info(
                    "Reconciled fulfiller %d left on finished booking %d",
                    fulfiller_id,
                    booking_id,
                )
    finally:
        await lock.release()

    return released

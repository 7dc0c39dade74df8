"""
Bounded retries for transient storage failures.

Only connection-level problems (``OperationalError``, ``InterfaceError``,
invalidated connections) are retried; integrity errors and every domain
error propagate immediately.  The unit of work is rolled back between
attempts, so *operation* must re-read whatever it depends on.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.domain.errors import Unavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient(exc: DBAPIError) -> bool:
    return isinstance(exc, (OperationalError, InterfaceError)) or bool(
        exc.connection_invalidated
    )


async def with_store_retry(
    session: AsyncSession,
    operation: Callable[[], Awaitable[T]],
    *,
    label: str,
    attempts: Optional[int] = None,
    backoff: Optional[float] = None,
) -> T:
    attempts = attempts or settings.store_retry_attempts
    backoff = settings.store_retry_backoff_seconds if backoff is None else backoff

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except DBAPIError as exc:
            if not is_transient(exc):
                raise
            await session.rollback()
            if attempt == attempts:
                raise Unavailable(
                    f"{label}: storage unavailable after {attempts} attempts"
                ) from exc
            logger.warning(
                "%s: transient storage error (attempt %d/%d): %s",
                label,
                attempt,
                attempts,
                exc.orig,
            )
            await asyncio.sleep(backoff * attempt)

    raise Unavailable(f"{label}: no attempts made")

"""Shared plumbing for the application services."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from src.infrastructure.notifications import Notifier, NullNotifier
from src.infrastructure.retry import with_store_retry

T = TypeVar("T")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Service:
    """Holds the unit-of-work and the notification side channel."""

    def __init__(self, session: AsyncSession, notifier: Optional[Notifier] = None):
        self.session = session
        self.notifier = notifier or NullNotifier()

    async def _retrying(self, operation: Callable[[], Awaitable[T]], label: str) -> T:
        return await with_store_retry(self.session, operation, label=label)

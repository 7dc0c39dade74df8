"""
Fire-and-forget notifications.

Events are pushed as JSON onto a Redis list that the mail/push worker
consumes.  ``dispatch`` schedules the push as a background task and returns
immediately; a failed push is logged and dropped, never re-raised into the
operation that triggered it.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


class Notifier:
    def __init__(
        self,
        client: Optional[aioredis.Redis],
        queue: str = "notifications",
        enabled: bool = True,
    ):
        self.redis = client
        self.queue = queue
        self.enabled = enabled and client is not None
        self._pending: set[asyncio.Task] = set()

    async def send(self, event: str, payload: dict[str, Any]) -> None:
        message = json.dumps(
            {
                "event": event,
                "sent_at": datetime.now(timezone.utc).isoformat(),
                **payload,
            },
            default=str,
        )
        await self.redis.rpush(self.queue, message)

    def dispatch(self, event: str, **payload: Any) -> None:
        if not self.enabled:
            return
        task = asyncio.create_task(self._deliver(event, payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, event: str, payload: dict[str, Any]) -> None:
        try:
            await self.send(event, payload)
        except Exception:
            logger.exception("Notification %s could not be queued", event)

    async def drain(self) -> None:
        """Wait for in-flight sends (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending))


class NullNotifier(Notifier):
    """Used where no Redis is configured, e.g. CLI scripts."""

    def __init__(self):
        super().__init__(None, enabled=False)

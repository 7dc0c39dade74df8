"""
RatingAggregator
================

Folds one new rating into a fulfiller's running averages without scanning
review history.  The read-modify-write is guarded by ``rating_version``:
the UPDATE only applies if nobody else bumped the version since we read
it; on conflict we re-read and fold again, a bounded number of times.
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from src.config import settings
from src.domain.entities import RatingSnapshot
from src.domain.enums import RatingDimension
from src.domain.errors import NotFound, Unavailable
from src.domain.rating import fold_rating
from src.infrastructure.repositories import (
    FulfillerRepository,
    breakdown_to_json,
    fulfiller_to_entity,
)
from src.services.base import Service

logger = logging.getLogger(__name__)


class RatingAggregator(Service):
    def __init__(self, session, notifier=None, legacy_breakdown: Optional[bool] = None):
        super().__init__(session, notifier)
        self.fulfillers = FulfillerRepository(session)
        self.legacy_breakdown = (
            settings.rating_legacy_breakdown
            if legacy_breakdown is None
            else legacy_breakdown
        )

    async def record_rating(
        self,
        fulfiller_id: int,
        rating: float,
        breakdown: Optional[Mapping[RatingDimension, float]] = None,
    ) -> RatingSnapshot:
        """Fold *rating* in; joins the caller's transaction (no commit)."""
        for attempt in range(1, settings.store_retry_attempts + 1):
            row = await self.fulfillers.get_by_id(fulfiller_id)
            if row is None:
                raise NotFound(f"Fulfiller {fulfiller_id} not found")
            current = fulfiller_to_entity(row).rating
            updated = fold_rating(
                current, rating, breakdown, legacy_breakdown=self.legacy_breakdown
            )
            if await self.fulfillers.compare_and_set_rating(
                fulfiller_id,
                current.version,
                average=updated.average,
                total=updated.total,
                breakdown=breakdown_to_json(updated.breakdown),
            ):
                logger.info(
                    "Fulfiller %d rating %.2f over %d reviews",
                    fulfiller_id,
                    updated.average,
                    updated.total,
                )
                return RatingSnapshot(
                    average=updated.average,
                    total=updated.total,
                    breakdown=updated.breakdown,
                    version=current.version + 1,
                )
            logger.debug(
                "Rating version conflict on fulfiller %d (attempt %d)",
                fulfiller_id,
                attempt,
            )
        raise Unavailable(
            f"Rating of fulfiller {fulfiller_id} kept changing concurrently"
        )

"""Review submission (one review per completed booking, feeding the rating) and rating stats."""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from sqlalchemy.exc import IntegrityError

from src.domain.entities import Principal, Review
from src.domain.enums import ActorRole, BookingStatus, RatingDimension, ReviewType
from src.domain.errors import DuplicateReview, NotFound, Unauthorized, WrongBookingState
from src.domain.rating import MAX_RATING, MIN_RATING, validate_rating
from src.infrastructure.models import ReviewModel
from src.infrastructure.repositories import (
    BookingRepository,
    ReviewRepository,
    booking_to_entity,
    review_to_entity,
)
from src.services.availability import FulfillerAvailability
from src.services.base import Service, utcnow
from src.services.rating import RatingAggregator

logger = logging.getLogger(__name__)


class ReviewService(Service):
    def __init__(self, session, notifier=None, ratings=None):
        super().__init__(session, notifier)
        self.bookings = BookingRepository(session)
        self.reviews = ReviewRepository(session)
        self.ratings = ratings or RatingAggregator(session, notifier)
        self.availability = FulfillerAvailability(session, notifier)

    async def submit(
        self,
        principal: Principal,
        booking_id: int,
        rating: int,
        *,
        comment: Optional[str] = None,
        feedback: Optional[Mapping[RatingDimension, int]] = None,
        is_anonymous: bool = False,
    ) -> Review:
        feedback = dict(feedback or {})
        validate_rating(rating)
        for dimension, value in feedback.items():
            validate_rating(value, dimension.value)

        async def _submit() -> Review:
            row = await self.bookings.get_by_id(booking_id)
            if row is None:
                raise NotFound(f"Booking {booking_id} not found")
            booking = booking_to_entity(row)
            if principal.role is not ActorRole.USER or principal.id != booking.requester_id:
                raise Unauthorized(f"Not authorized to review booking {booking_id}")
            if booking.status is not BookingStatus.COMPLETED:
                raise WrongBookingState("Can only review completed bookings")
            if booking.fulfiller_id is None:
                raise WrongBookingState(f"Booking {booking_id} has no fulfiller")
            if await self.reviews.get_by_booking(booking_id) is not None:
                raise DuplicateReview(f"Booking {booking_id} already reviewed")

            review = ReviewModel(
                booking_id=booking_id,
                reviewer_id=principal.id,
                fulfiller_id=booking.fulfiller_id,
                type=ReviewType.USER_TO_DRIVER,
                rating=rating,
                comment=comment,
                feedback={d.value: v for d, v in feedback.items()},
                is_anonymous=is_anonymous,
                created_at=utcnow(),
            )
            try:
                await self.reviews.create(review)
            except IntegrityError as exc:
                await self.session.rollback()
                raise DuplicateReview(f"Booking {booking_id} already reviewed") from exc

            await self.ratings.record_rating(booking.fulfiller_id, rating, feedback)
            await self.session.commit()
            return review_to_entity(review)

        review = await self._retrying(_submit, f"review booking {booking_id}")
        logger.info("Booking %d reviewed with %d", booking_id, rating)
        self.notifier.dispatch(
            "review.submitted",
            booking_id=booking_id,
            fulfiller_id=review.fulfiller_id,
            rating=rating,
        )
        return review

    async def list_for_fulfiller(
        self, fulfiller_id: int, *, page: int = 1, limit: int = 10
    ) -> tuple[list[Review], int]:
        rows, total = await self.reviews.list_for_fulfiller(
            fulfiller_id, page=page, limit=limit
        )
        return [review_to_entity(r) for r in rows], total

    async def rating_stats(self, fulfiller_id: int) -> dict:
        """Aggregate rating of a fulfiller plus a count per star, 1 through 5."""
        fulfiller = await self.availability.get(fulfiller_id)
        counts = await self.reviews.rating_distribution(fulfiller_id)
        return {
            "fulfiller_id": fulfiller_id,
            "average": round(fulfiller.rating.average, 2),
            "total": fulfiller.rating.total,
            "distribution": {
                star: counts.get(star, 0)
                for star in range(MIN_RATING, MAX_RATING + 1)
            },
        }

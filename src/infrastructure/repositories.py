"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  Every state change that two requests could
race on is a *conditional* ``UPDATE ... WHERE <expected state>``; the
methods return ``True`` only when exactly one row matched, so callers can
tell a lost race from a successful write without holding row locks.
"""

from __future__ import annotations

from typing import Iterable, Optional

from sqlalchemy import and_, case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import BookingModel, FulfillerModel, ReviewModel
from src.domain.entities import (
    Booking,
    DeliveryDetails,
    DimensionRating,
    Fulfiller,
    Location,
    PackageDetails,
    Payment,
    Price,
    RatingSnapshot,
    Review,
    RideDetails,
)
from src.domain.enums import (
    ASSIGNABLE_APPROVALS,
    TERMINAL_STATUSES,
    ApprovalStatus,
    Availability,
    BookingStatus,
    BookingType,
    FulfillerKind,
    PaymentStatus,
    RatingDimension,
)


# ── Row <-> entity mapping ────────────────────────────────────────────


def booking_to_entity(row: BookingModel) -> Booking:
    pickup = Location(row.pickup_address, row.pickup_lat, row.pickup_lng)
    destination = Location(
        row.destination_address, row.destination_lat, row.destination_lng
    )
    if row.type is BookingType.DELIVERY:
        details = DeliveryDetails(
            pickup=pickup,
            destination=destination,
            package=PackageDetails(
                description=row.package_description,
                weight_kg=row.package_weight_kg,
                length_cm=row.package_length_cm,
                width_cm=row.package_width_cm,
                height_cm=row.package_height_cm,
                declared_value=row.package_value,
                is_fragile=bool(row.package_is_fragile),
                special_instructions=row.package_special_instructions,
            ),
        )
    else:
        details = RideDetails(pickup=pickup, destination=destination)

    price = None
    if row.price_amount is not None:
        price = Price(
            amount=row.price_amount,
            currency=row.price_currency,
            set_by=row.price_set_by,
            set_at=row.price_set_at,
        )

    return Booking(
        id=row.id,
        requester_id=row.requester_id,
        type=row.type,
        details=details,
        status=row.status,
        fulfiller_id=row.fulfiller_id,
        price=price,
        payment=Payment(
            method=row.payment_method,
            status=row.payment_status,
            confirmed_at=row.payment_confirmed_at,
            confirmed_by=row.payment_confirmed_by,
        ),
        requested_at=row.requested_at,
        assigned_at=row.assigned_at,
        en_route_at=row.en_route_at,
        picked_up_at=row.picked_up_at,
        in_transit_at=row.in_transit_at,
        completed_at=row.completed_at,
        cancelled_at=row.cancelled_at,
        cancellation_reason=row.cancellation_reason,
        cancelled_by=row.cancelled_by,
    )


def breakdown_from_json(raw: Optional[dict]) -> dict[RatingDimension, DimensionRating]:
    return {
        RatingDimension(name): DimensionRating(
            average=float(value["average"]), count=int(value["count"])
        )
        for name, value in (raw or {}).items()
    }


def breakdown_to_json(breakdown: dict[RatingDimension, DimensionRating]) -> dict:
    return {
        dimension.value: {"average": value.average, "count": value.count}
        for dimension, value in breakdown.items()
    }


def fulfiller_to_entity(row: FulfillerModel) -> Fulfiller:
    return Fulfiller(
        id=row.id,
        user_id=row.user_id,
        kind=row.kind,
        display_name=row.display_name,
        approval_status=row.approval_status,
        availability=row.availability,
        current_booking_id=row.current_booking_id,
        rating=RatingSnapshot(
            average=row.rating_average,
            total=row.rating_total,
            breakdown=breakdown_from_json(row.rating_breakdown),
            version=row.rating_version,
        ),
        approved_by=row.approved_by,
        approved_at=row.approved_at,
        rejection_reason=row.rejection_reason,
        suspended_at=row.suspended_at,
        suspension_reason=row.suspension_reason,
    )


def review_to_entity(row: ReviewModel) -> Review:
    return Review(
        id=row.id,
        booking_id=row.booking_id,
        reviewer_id=row.reviewer_id,
        fulfiller_id=row.fulfiller_id,
        rating=row.rating,
        comment=row.comment,
        feedback={RatingDimension(k): v for k, v in (row.feedback or {}).items()},
        is_anonymous=bool(row.is_anonymous),
        created_at=row.created_at,
    )


async def _paginate(session: AsyncSession, query, page: int, limit: int):
    total = (
        await session.execute(
            select(func.count()).select_from(query.order_by(None).subquery())
        )
    ).scalar() or 0
    result = await session.execute(query.offset((page - 1) * limit).limit(limit))
    return list(result.scalars().all()), total


# ── Repositories ──────────────────────────────────────────────────────


class BookingRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, booking: BookingModel) -> BookingModel:
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def get_by_id(self, booking_id: int) -> Optional[BookingModel]:
        # populate_existing: conditional UPDATEs bypass the identity map
        return await self.session.get(
            BookingModel, booking_id, populate_existing=True
        )

    async def compare_and_set(
        self, booking_id: int, expected_status: BookingStatus, changes: dict
    ) -> bool:
        """Apply *changes* only if the booking is still in *expected_status*."""
        result = await self.session.execute(
            update(BookingModel)
            .where(
                BookingModel.id == booking_id,
                BookingModel.status == expected_status,
            )
            .values(**changes)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def set_price(
        self, booking_id: int, expected_set_by, changes: dict
    ) -> bool:
        result = await self.session.execute(
            update(BookingModel)
            .where(
                BookingModel.id == booking_id,
                BookingModel.price_set_by == expected_set_by,
                BookingModel.status.not_in(list(TERMINAL_STATUSES)),
            )
            .values(**changes)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def confirm_payment(self, booking_id: int, changes: dict) -> bool:
        result = await self.session.execute(
            update(BookingModel)
            .where(
                BookingModel.id == booking_id,
                BookingModel.status == BookingStatus.COMPLETED,
                BookingModel.payment_status != PaymentStatus.CONFIRMED,
            )
            .values(**changes)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def list_for_requester(
        self,
        requester_id: int,
        *,
        page: int = 1,
        limit: int = 10,
        status: Optional[BookingStatus] = None,
        booking_type: Optional[BookingType] = None,
    ) -> tuple[list[BookingModel], int]:
        query = select(BookingModel).where(BookingModel.requester_id == requester_id)
        if status:
            query = query.where(BookingModel.status == status)
        if booking_type:
            query = query.where(BookingModel.type == booking_type)
        query = query.order_by(BookingModel.created_at.desc(), BookingModel.id.desc())
        return await _paginate(self.session, query, page, limit)

    async def list_for_fulfiller(
        self,
        fulfiller_id: int,
        *,
        page: int = 1,
        limit: int = 10,
        statuses: Optional[Iterable[BookingStatus]] = None,
    ) -> tuple[list[BookingModel], int]:
        query = select(BookingModel).where(BookingModel.fulfiller_id == fulfiller_id)
        if statuses:
            query = query.where(BookingModel.status.in_(list(statuses)))
        query = query.order_by(BookingModel.created_at.desc(), BookingModel.id.desc())
        return await _paginate(self.session, query, page, limit)

    async def requester_stats(self, requester_id: int) -> dict:
        completed = BookingModel.status == BookingStatus.COMPLETED
        result = await self.session.execute(
            select(
                func.count().label("total_bookings"),
                func.sum(case((completed, 1), else_=0)).label("completed_bookings"),
                func.sum(
                    case((BookingModel.status == BookingStatus.CANCELLED, 1), else_=0)
                ).label("cancelled_bookings"),
                func.sum(
                    case((completed, BookingModel.price_amount), else_=0)
                ).label("total_spent"),
                func.sum(
                    case((BookingModel.type == BookingType.RIDE, 1), else_=0)
                ).label("ride_bookings"),
                func.sum(
                    case((BookingModel.type == BookingType.DELIVERY, 1), else_=0)
                ).label("delivery_bookings"),
            ).where(BookingModel.requester_id == requester_id)
        )
        return {k: (v or 0) for k, v in result.one()._mapping.items()}

    async def fulfiller_stats(self, fulfiller_id: int) -> dict:
        completed = BookingModel.status == BookingStatus.COMPLETED
        result = await self.session.execute(
            select(
                func.count().label("total_bookings"),
                func.sum(case((completed, 1), else_=0)).label("completed_bookings"),
                func.sum(
                    case((BookingModel.status == BookingStatus.CANCELLED, 1), else_=0)
                ).label("cancelled_bookings"),
                func.sum(
                    case((completed, BookingModel.price_amount), else_=0)
                ).label("gross_earnings"),
            ).where(BookingModel.fulfiller_id == fulfiller_id)
        )
        return {k: (v or 0) for k, v in result.one()._mapping.items()}


class FulfillerRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, fulfiller: FulfillerModel) -> FulfillerModel:
        self.session.add(fulfiller)
        await self.session.flush()
        return fulfiller

    async def get_by_id(self, fulfiller_id: int) -> Optional[FulfillerModel]:
        return await self.session.get(
            FulfillerModel, fulfiller_id, populate_existing=True
        )

    async def get_by_user(
        self, user_id: int, kind: FulfillerKind
    ) -> Optional[FulfillerModel]:
        result = await self.session.execute(
            select(FulfillerModel)
            .where(FulfillerModel.user_id == user_id, FulfillerModel.kind == kind)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def try_reserve(
        self, fulfiller_id: int, booking_id: int, reservation: Availability
    ) -> bool:
        """Bind *booking_id* only if the fulfiller is approved and unbound."""
        result = await self.session.execute(
            update(FulfillerModel)
            .where(
                FulfillerModel.id == fulfiller_id,
                FulfillerModel.current_booking_id.is_(None),
                FulfillerModel.approval_status.in_(list(ASSIGNABLE_APPROVALS)),
            )
            .values(current_booking_id=booking_id, availability=reservation)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def release(
        self, fulfiller_id: int, booking_id: Optional[int] = None
    ) -> bool:
        """Clear the reservation.  With *booking_id*, never clobber a
        reservation that already belongs to a different booking."""
        query = update(FulfillerModel).where(FulfillerModel.id == fulfiller_id)
        if booking_id is not None:
            query = query.where(
                (FulfillerModel.current_booking_id == booking_id)
                | FulfillerModel.current_booking_id.is_(None)
            )
        result = await self.session.execute(
            query.values(current_booking_id=None, availability=Availability.AVAILABLE)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def try_set_availability(
        self, fulfiller_id: int, desired: Availability
    ) -> bool:
        result = await self.session.execute(
            update(FulfillerModel)
            .where(
                FulfillerModel.id == fulfiller_id,
                FulfillerModel.current_booking_id.is_(None),
                FulfillerModel.approval_status.in_(list(ASSIGNABLE_APPROVALS)),
            )
            .values(availability=desired)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def set_approval(
        self, fulfiller_id: int, expected: ApprovalStatus, changes: dict
    ) -> bool:
        result = await self.session.execute(
            update(FulfillerModel)
            .where(
                FulfillerModel.id == fulfiller_id,
                FulfillerModel.approval_status == expected,
            )
            .values(**changes)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def take_offline_if_idle(self, fulfiller_id: int) -> bool:
        result = await self.session.execute(
            update(FulfillerModel)
            .where(
                FulfillerModel.id == fulfiller_id,
                FulfillerModel.current_booking_id.is_(None),
            )
            .values(availability=Availability.OFFLINE)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def compare_and_set_rating(
        self,
        fulfiller_id: int,
        expected_version: int,
        *,
        average: float,
        total: int,
        breakdown: dict,
    ) -> bool:
        result = await self.session.execute(
            update(FulfillerModel)
            .where(
                FulfillerModel.id == fulfiller_id,
                FulfillerModel.rating_version == expected_version,
            )
            .values(
                rating_average=average,
                rating_total=total,
                rating_breakdown=breakdown,
                rating_version=expected_version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def list_eligible(
        self, kinds: Iterable[FulfillerKind], limit: int = 20
    ) -> list[FulfillerModel]:
        result = await self.session.execute(
            select(FulfillerModel)
            .where(
                FulfillerModel.approval_status.in_(list(ASSIGNABLE_APPROVALS)),
                FulfillerModel.kind.in_(list(kinds)),
            )
            .order_by(FulfillerModel.rating_average.desc(), FulfillerModel.id)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_stranded(self) -> list[FulfillerModel]:
        """Fulfillers still bound to a booking that already finished."""
        result = await self.session.execute(
            select(FulfillerModel)
            .join(
                BookingModel,
                and_(
                    BookingModel.id == FulfillerModel.current_booking_id,
                    BookingModel.status.in_(list(TERMINAL_STATUSES)),
                ),
            )
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())


class ReviewRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, review: ReviewModel) -> ReviewModel:
        self.session.add(review)
        await self.session.flush()
        return review

    async def get_by_booking(self, booking_id: int) -> Optional[ReviewModel]:
        result = await self.session.execute(
            select(ReviewModel).where(ReviewModel.booking_id == booking_id)
        )
        return result.scalar_one_or_none()

    async def list_for_fulfiller(
        self, fulfiller_id: int, *, page: int = 1, limit: int = 10
    ) -> tuple[list[ReviewModel], int]:
        query = (
            select(ReviewModel)
            .where(ReviewModel.fulfiller_id == fulfiller_id)
            .order_by(ReviewModel.created_at.desc(), ReviewModel.id.desc())
        )
        return await _paginate(self.session, query, page, limit)

    async def rating_distribution(self, fulfiller_id: int) -> dict[int, int]:
        """Review count per star rating; ratings nobody gave are absent."""
        result = await self.session.execute(
            select(ReviewModel.rating, func.count().label("count"))
            .where(ReviewModel.fulfiller_id == fulfiller_id)
            .group_by(ReviewModel.rating)
        )
        return {rating: count for rating, count in result.all()}

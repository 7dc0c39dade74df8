"""
End-to-end service tests for the booking lifecycle.

Covers the full ride scenario (assign -> en route -> picked up -> in transit
-> completed -> auto-release -> payment -> review), cancellation rules, the
lost-race path and the release-failure path.
"""

from unittest.mock import AsyncMock, patch

import pytest

from src.domain.entities import DeliveryDetails
from src.domain.enums import (
    Availability,
    BookingStatus,
    CancelledBy,
    FulfillerKind,
    PaymentStatus,
)
from src.domain.errors import (
    AlreadyTerminal,
    DuplicateReview,
    InvalidTransition,
    NotFound,
    PartialFailure,
    Unauthorized,
    Unavailable,
    WrongBookingState,
)
from src.services.assignment import AssignmentService
from src.services.availability import FulfillerAvailability
from src.services.bookings import BookingDesk
from src.services.lifecycle import BookingLifecycle
from src.services.reviews import ReviewService
from tests.conftest import (
    ADMIN,
    OTHER_USER,
    REQUESTER,
    RIDE,
    driver,
    logistics,
    make_fulfiller,
)

TRIP = (
    BookingStatus.DRIVER_EN_ROUTE,
    BookingStatus.PICKED_UP,
    BookingStatus.IN_TRANSIT,
)


async def _assigned_ride(session, notifier=None, user_id=50):
    fulfiller = await make_fulfiller(session, user_id=user_id)
    booking = await BookingDesk(session, notifier).create(REQUESTER, RIDE)
    await AssignmentService(session, notifier).assign(
        booking.id, fulfiller.id, 100, ADMIN
    )
    return booking.id, fulfiller.id


class TestFullRide:
    @pytest.mark.asyncio
    async def test_full_ride_scenario(self, db_session, notifier):
        booking_id, fulfiller_id = await _assigned_ride(db_session, notifier)
        lifecycle = BookingLifecycle(db_session, notifier)
        availability = FulfillerAvailability(db_session)

        assigned = await availability.get(fulfiller_id)
        assert assigned.current_booking_id == booking_id
        assert assigned.availability == Availability.ON_TRIP

        for status in TRIP:
            booking = await lifecycle.advance(booking_id, driver(), status)
            assert booking.status == status
            assert (await availability.get(fulfiller_id)).current_booking_id == booking_id

        booking = await lifecycle.advance(booking_id, driver(), BookingStatus.COMPLETED)
        assert booking.status == BookingStatus.COMPLETED
        assert booking.price.amount == 100
        assert booking.price.currency == "GMD"

        released = await availability.get(fulfiller_id)
        assert released.current_booking_id is None
        assert released.availability == Availability.AVAILABLE

        paid = await BookingDesk(db_session, notifier).confirm_payment(
            booking_id, REQUESTER
        )
        assert paid.payment.status == PaymentStatus.CONFIRMED

        await ReviewService(db_session, notifier).submit(REQUESTER, booking_id, 5)
        rated = await availability.get(fulfiller_id)
        assert rated.rating.average == 5
        assert rated.rating.total == 1

        assert notifier.names() == [
            "booking.created",
            "booking.assigned",
            "booking.status_changed",
            "booking.status_changed",
            "booking.status_changed",
            "booking.status_changed",
            "booking.payment_confirmed",
            "review.submitted",
        ]

    @pytest.mark.asyncio
    async def test_every_status_gets_its_own_timestamp(self, db_session):
        booking_id, _ = await _assigned_ride(db_session)
        lifecycle = BookingLifecycle(db_session)
        for status in TRIP + (BookingStatus.COMPLETED,):
            booking = await lifecycle.advance(booking_id, driver(), status)

        stamps = [
            booking.requested_at,
            booking.assigned_at,
            booking.en_route_at,
            booking.picked_up_at,
            booking.in_transit_at,
            booking.completed_at,
        ]
        assert all(stamps)
        assert booking.cancelled_at is None

    @pytest.mark.asyncio
    async def test_second_review_is_rejected(self, db_session):
        booking_id, fulfiller_id = await _assigned_ride(db_session)
        lifecycle = BookingLifecycle(db_session)
        for status in TRIP + (BookingStatus.COMPLETED,):
            await lifecycle.advance(booking_id, driver(), status)

        reviews = ReviewService(db_session)
        await reviews.submit(REQUESTER, booking_id, 4)
        with pytest.raises(DuplicateReview):
            await reviews.submit(REQUESTER, booking_id, 5)

        rated = await FulfillerAvailability(db_session).get(fulfiller_id)
        assert rated.rating.total == 1
        assert rated.rating.average == 4

    @pytest.mark.asyncio
    async def test_review_requires_completed_booking(self, db_session):
        booking_id, _ = await _assigned_ride(db_session)
        with pytest.raises(WrongBookingState):
            await ReviewService(db_session).submit(REQUESTER, booking_id, 5)

    @pytest.mark.asyncio
    async def test_only_requester_reviews(self, db_session):
        booking_id, _ = await _assigned_ride(db_session)
        lifecycle = BookingLifecycle(db_session)
        for status in TRIP + (BookingStatus.COMPLETED,):
            await lifecycle.advance(booking_id, driver(), status)
        with pytest.raises(Unauthorized):
            await ReviewService(db_session).submit(OTHER_USER, booking_id, 5)


class TestCancellation:
    @pytest.mark.asyncio
    async def test_requester_cancels_pending(self, db_session):
        booking = await BookingDesk(db_session).create(REQUESTER, RIDE)
        cancelled = await BookingLifecycle(db_session).cancel(
            booking.id, REQUESTER, "Found another ride"
        )
        assert cancelled.status == BookingStatus.CANCELLED
        assert cancelled.cancelled_by == CancelledBy.USER
        assert cancelled.cancellation_reason == "Found another ride"

    @pytest.mark.asyncio
    async def test_cancel_releases_fulfiller(self, db_session):
        booking_id, fulfiller_id = await _assigned_ride(db_session)
        await BookingLifecycle(db_session).cancel(booking_id, REQUESTER)
        fulfiller = await FulfillerAvailability(db_session).get(fulfiller_id)
        assert fulfiller.current_booking_id is None
        assert fulfiller.availability == Availability.AVAILABLE

    @pytest.mark.asyncio
    async def test_fulfiller_cannot_cancel_in_transit(self, db_session):
        booking_id, fulfiller_id = await _assigned_ride(db_session)
        lifecycle = BookingLifecycle(db_session)
        for status in TRIP:
            await lifecycle.advance(booking_id, driver(), status)

        with pytest.raises(Unauthorized):
            await lifecycle.cancel(booking_id, driver())

        fulfiller = await FulfillerAvailability(db_session).get(fulfiller_id)
        assert fulfiller.current_booking_id == booking_id

    @pytest.mark.asyncio
    async def test_admin_cancels_in_transit(self, db_session):
        booking_id, fulfiller_id = await _assigned_ride(db_session)
        lifecycle = BookingLifecycle(db_session)
        for status in TRIP:
            await lifecycle.advance(booking_id, driver(), status)

        booking = await lifecycle.cancel(booking_id, ADMIN, "Vehicle breakdown")
        assert booking.cancelled_by == CancelledBy.ADMIN
        fulfiller = await FulfillerAvailability(db_session).get(fulfiller_id)
        assert fulfiller.current_booking_id is None

    @pytest.mark.asyncio
    async def test_logistics_cancel_recorded_as_driver(self, db_session):
        courier = await make_fulfiller(
            db_session, user_id=60, kind=FulfillerKind.LOGISTICS
        )
        parcel = DeliveryDetails(pickup=RIDE.pickup, destination=RIDE.destination)
        booking = await BookingDesk(db_session).create(REQUESTER, parcel)
        await AssignmentService(db_session).assign(booking.id, courier.id, 80, ADMIN)

        cancelled = await BookingLifecycle(db_session).cancel(booking.id, logistics(60))
        assert cancelled.cancelled_by == CancelledBy.DRIVER

    @pytest.mark.asyncio
    async def test_cancelled_booking_is_terminal(self, db_session):
        booking = await BookingDesk(db_session).create(REQUESTER, RIDE)
        lifecycle = BookingLifecycle(db_session)
        await lifecycle.cancel(booking.id, REQUESTER)
        with pytest.raises(AlreadyTerminal):
            await lifecycle.cancel(booking.id, ADMIN)


class TestAdvanceErrors:
    @pytest.mark.asyncio
    async def test_missing_booking(self, db_session):
        with pytest.raises(NotFound):
            await BookingLifecycle(db_session).advance(
                999, ADMIN, BookingStatus.CANCELLED
            )

    @pytest.mark.asyncio
    async def test_unrelated_driver_is_unauthorized(self, db_session):
        booking_id, _ = await _assigned_ride(db_session)
        await make_fulfiller(db_session, user_id=51, display_name="Fatou Ceesay")
        with pytest.raises(Unauthorized):
            await BookingLifecycle(db_session).advance(
                booking_id, driver(51), BookingStatus.DRIVER_EN_ROUTE
            )

    @pytest.mark.asyncio
    async def test_skipping_ahead_is_invalid(self, db_session):
        booking_id, _ = await _assigned_ride(db_session)
        with pytest.raises(InvalidTransition):
            await BookingLifecycle(db_session).advance(
                booking_id, driver(), BookingStatus.COMPLETED
            )

    @pytest.mark.asyncio
    async def test_lost_race_is_wrong_booking_state(self, db_session):
        booking_id, _ = await _assigned_ride(db_session)
        lifecycle = BookingLifecycle(db_session)
        with patch.object(
            lifecycle.bookings, "compare_and_set", AsyncMock(return_value=False)
        ):
            with pytest.raises(WrongBookingState):
                await lifecycle.advance(
                    booking_id, driver(), BookingStatus.DRIVER_EN_ROUTE
                )


class TestReleaseFailure:
    @pytest.mark.asyncio
    async def test_failed_release_is_partial_failure(self, db_session, notifier):
        booking_id, fulfiller_id = await _assigned_ride(db_session)
        availability = FulfillerAvailability(db_session)
        lifecycle = BookingLifecycle(db_session, notifier, availability=availability)
        for status in TRIP:
            await lifecycle.advance(booking_id, driver(), status)

        with patch.object(
            availability, "release", AsyncMock(side_effect=Unavailable("db down"))
        ):
            with pytest.raises(PartialFailure) as excinfo:
                await lifecycle.advance(booking_id, driver(), BookingStatus.COMPLETED)

        assert excinfo.value.booking_id == booking_id
        assert excinfo.value.fulfiller_id == fulfiller_id
        # the booking write stands; the fulfiller is still bound
        booking = await BookingDesk(db_session).get(booking_id, ADMIN)
        assert booking.status == BookingStatus.COMPLETED
        stranded = await availability.get(fulfiller_id)
        assert stranded.current_booking_id == booking_id
        assert notifier.names().count("booking.status_changed") == len(TRIP)

        # the release is idempotent and can be retried
        retried = await availability.release_if_finished(fulfiller_id)
        assert retried.current_booking_id is None
        assert retried.availability == Availability.AVAILABLE

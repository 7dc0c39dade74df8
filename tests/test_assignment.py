"""Tests for manual assignment, price revision and eligible-fulfiller listing."""

from unittest.mock import AsyncMock, patch

import pytest

from src.domain.enums import (
    ApprovalStatus,
    Availability,
    BookingStatus,
    BookingType,
    FulfillerKind,
    PriceSetBy,
)
from src.domain.errors import (
    AlreadyTerminal,
    FulfillerBusy,
    FulfillerNotApproved,
    IneligibleFulfiller,
    NotFound,
    Unauthorized,
    WrongBookingState,
)
from src.services.assignment import AssignmentService
from src.services.availability import FulfillerAvailability
from src.services.bookings import BookingDesk
from src.services.lifecycle import BookingLifecycle
from tests.conftest import ADMIN, REQUESTER, RIDE, driver, make_booking, make_fulfiller


class TestAssign:
    @pytest.mark.asyncio
    async def test_assign_sets_price_and_reserves(self, db_session, notifier):
        fulfiller = await make_fulfiller(db_session)
        booking = await make_booking(db_session)

        assigned = await AssignmentService(db_session, notifier).assign(
            booking.id, fulfiller.id, 100, ADMIN
        )

        assert assigned.status == BookingStatus.DRIVER_ASSIGNED
        assert assigned.fulfiller_id == fulfiller.id
        assert assigned.assigned_at is not None
        assert assigned.price.amount == 100
        assert assigned.price.currency == "GMD"
        assert assigned.price.set_by == PriceSetBy.ADMIN
        reserved = await FulfillerAvailability(db_session).get(fulfiller.id)
        assert reserved.current_booking_id == booking.id
        assert notifier.names() == ["booking.assigned"]

    @pytest.mark.asyncio
    async def test_explicit_currency(self, db_session):
        fulfiller = await make_fulfiller(db_session)
        booking = await make_booking(db_session)
        assigned = await AssignmentService(db_session).assign(
            booking.id, fulfiller.id, 12.5, ADMIN, currency="USD"
        )
        assert assigned.price.currency == "USD"

    @pytest.mark.asyncio
    async def test_only_admin_assigns(self, db_session):
        fulfiller = await make_fulfiller(db_session)
        booking = await make_booking(db_session)
        with pytest.raises(Unauthorized):
            await AssignmentService(db_session).assign(
                booking.id, fulfiller.id, 100, REQUESTER
            )

    @pytest.mark.asyncio
    async def test_missing_booking_or_fulfiller(self, db_session):
        fulfiller = await make_fulfiller(db_session)
        booking = await make_booking(db_session)
        service = AssignmentService(db_session)
        with pytest.raises(NotFound):
            await service.assign(999, fulfiller.id, 100, ADMIN)
        with pytest.raises(NotFound):
            await service.assign(booking.id, 999, 100, ADMIN)

    @pytest.mark.asyncio
    async def test_non_pending_booking_is_rejected(self, db_session):
        fulfiller = await make_fulfiller(db_session)
        booking = await make_booking(db_session, status=BookingStatus.CANCELLED)
        with pytest.raises(WrongBookingState):
            await AssignmentService(db_session).assign(
                booking.id, fulfiller.id, 100, ADMIN
            )
        assert (await FulfillerAvailability(db_session).get(fulfiller.id)).current_booking_id is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "approval",
        [
            ApprovalStatus.PENDING_APPROVAL,
            ApprovalStatus.REJECTED,
            ApprovalStatus.SUSPENDED,
        ],
    )
    async def test_unapproved_fulfiller_is_rejected(self, db_session, approval):
        fulfiller = await make_fulfiller(db_session, approval=approval)
        booking = await make_booking(db_session)
        with pytest.raises(FulfillerNotApproved):
            await AssignmentService(db_session).assign(
                booking.id, fulfiller.id, 100, ADMIN
            )

    @pytest.mark.asyncio
    async def test_reserved_fulfiller_is_busy(self, db_session):
        # a failed assign rolls the session back and expires these rows
        fulfiller_id = (await make_fulfiller(db_session)).id
        first_id = (await make_booking(db_session)).id
        second_id = (await make_booking(db_session)).id
        service = AssignmentService(db_session)
        await service.assign(first_id, fulfiller_id, 100, ADMIN)

        with pytest.raises(FulfillerBusy):
            await service.assign(second_id, fulfiller_id, 100, ADMIN)

        untouched = await BookingDesk(db_session).get(second_id, ADMIN)
        assert untouched.status == BookingStatus.PENDING
        assert untouched.fulfiller_id is None

    @pytest.mark.asyncio
    async def test_failed_booking_write_undoes_reservation(self, db_session):
        fulfiller_id = (await make_fulfiller(db_session)).id
        booking_id = (await make_booking(db_session)).id
        service = AssignmentService(db_session)

        with patch.object(
            service.bookings, "compare_and_set", AsyncMock(return_value=False)
        ):
            with pytest.raises(WrongBookingState):
                await service.assign(booking_id, fulfiller_id, 100, ADMIN)

        after = await FulfillerAvailability(db_session).get(fulfiller_id)
        assert after.current_booking_id is None
        assert after.availability == Availability.AVAILABLE
        untouched = await BookingDesk(db_session).get(booking_id, ADMIN)
        assert untouched.status == BookingStatus.PENDING

    @pytest.mark.asyncio
    async def test_logistics_cannot_take_a_ride(self, db_session):
        courier_id = (
            await make_fulfiller(db_session, user_id=60, kind=FulfillerKind.LOGISTICS)
        ).id
        booking_id = (await make_booking(db_session)).id

        with pytest.raises(IneligibleFulfiller):
            await AssignmentService(db_session).assign(
                booking_id, courier_id, 100, ADMIN
            )

        idle = await FulfillerAvailability(db_session).get(courier_id)
        assert idle.current_booking_id is None

    @pytest.mark.asyncio
    async def test_driver_can_take_a_delivery(self, db_session):
        fulfiller = await make_fulfiller(db_session)
        booking = await make_booking(db_session, booking_type=BookingType.DELIVERY)
        assigned = await AssignmentService(db_session).assign(
            booking.id, fulfiller.id, 60, ADMIN
        )
        assert assigned.fulfiller_id == fulfiller.id


class TestRevisePrice:
    @pytest.mark.asyncio
    async def test_admin_revises_admin_price(self, db_session):
        fulfiller = await make_fulfiller(db_session)
        booking = await make_booking(db_session)
        service = AssignmentService(db_session)
        await service.assign(booking.id, fulfiller.id, 100, ADMIN)

        revised = await service.revise_price(booking.id, 120, ADMIN)
        assert revised.price.amount == 120
        assert revised.price.set_by == PriceSetBy.ADMIN

    @pytest.mark.asyncio
    async def test_driver_cannot_revise_admin_price(self, db_session):
        fulfiller = await make_fulfiller(db_session)
        booking = await make_booking(db_session)
        service = AssignmentService(db_session)
        await service.assign(booking.id, fulfiller.id, 100, ADMIN)

        with pytest.raises(Unauthorized):
            await service.revise_price(booking.id, 80, driver())

    @pytest.mark.asyncio
    async def test_admin_cannot_revise_driver_price(self, db_session):
        fulfiller = await make_fulfiller(db_session)
        booking = await make_booking(
            db_session,
            status=BookingStatus.DRIVER_ASSIGNED,
            fulfiller_id=fulfiller.id,
            price_amount=75,
            price_set_by=PriceSetBy.DRIVER,
        )
        booking_id = booking.id

        with pytest.raises(Unauthorized):
            await AssignmentService(db_session).revise_price(booking_id, 120, ADMIN)

        kept = await BookingDesk(db_session).get(booking_id, ADMIN)
        assert kept.price.amount == 75
        assert kept.price.set_by == PriceSetBy.DRIVER

    @pytest.mark.asyncio
    async def test_terminal_booking_price_is_frozen(self, db_session):
        fulfiller = await make_fulfiller(db_session)
        booking = await make_booking(db_session)
        service = AssignmentService(db_session)
        await service.assign(booking.id, fulfiller.id, 100, ADMIN)
        await BookingLifecycle(db_session).cancel(booking.id, ADMIN)

        with pytest.raises(AlreadyTerminal):
            await service.revise_price(booking.id, 120, ADMIN)

    @pytest.mark.asyncio
    async def test_unpriced_booking(self, db_session):
        booking = await BookingDesk(db_session).create(REQUESTER, RIDE)
        with pytest.raises(WrongBookingState):
            await AssignmentService(db_session).revise_price(booking.id, 120, ADMIN)


class TestListAvailable:
    @pytest.mark.asyncio
    async def test_ride_lists_approved_drivers_including_busy(self, db_session):
        busy = await make_fulfiller(
            db_session, user_id=50, availability=Availability.ON_TRIP,
            current_booking_id=7, rating_average=4.9,
        )
        idle = await make_fulfiller(db_session, user_id=51, rating_average=4.1)
        await make_fulfiller(db_session, user_id=52, approval=ApprovalStatus.PENDING_APPROVAL)
        await make_fulfiller(db_session, user_id=60, kind=FulfillerKind.LOGISTICS)

        listed = await AssignmentService(db_session).list_available(BookingType.RIDE)

        assert [f.id for f in listed] == [busy.id, idle.id]

    @pytest.mark.asyncio
    async def test_delivery_lists_drivers_and_logistics(self, db_session):
        await make_fulfiller(db_session, user_id=50)
        await make_fulfiller(
            db_session, user_id=60, kind=FulfillerKind.LOGISTICS,
            approval=ApprovalStatus.ACTIVE,
        )
        listed = await AssignmentService(db_session).list_available(BookingType.DELIVERY)
        assert {f.kind for f in listed} == {FulfillerKind.DRIVER, FulfillerKind.LOGISTICS}

    @pytest.mark.asyncio
    async def test_listing_is_capped(self, db_session):
        for user_id in range(100, 125):
            await make_fulfiller(db_session, user_id=user_id)
        listed = await AssignmentService(db_session).list_available(BookingType.RIDE)
        assert len(listed) == 20

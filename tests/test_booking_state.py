"""Unit tests for booking state transitions and the fulfiller invariant."""

from datetime import datetime, timezone

import pytest

from src.domain.entities import Booking, Fulfiller, Principal
from src.domain.enums import (
    BOOKING_TRANSITIONS,
    ActorRole,
    ApprovalStatus,
    Availability,
    BookingStatus,
    CancelledBy,
    FulfillerKind,
    Party,
)
from src.domain.errors import (
    AlreadyReserved,
    AlreadyTerminal,
    BlockedByActiveBooking,
    InvalidTransition,
    InvariantViolation,
    NotApproved,
    Unauthorized,
)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class TestBookingStateMachine:
    def test_initial_status_is_pending(self):
        assert Booking().status == BookingStatus.PENDING

    # ── Valid transitions ─────────────────────────────────────────

    def test_dispatch_assigns_pending(self):
        booking = Booking(id=1)
        changes = booking.transition_to(
            BookingStatus.DRIVER_ASSIGNED, Party.DISPATCH, NOW
        )
        assert booking.status == BookingStatus.DRIVER_ASSIGNED
        assert booking.assigned_at == NOW
        assert changes == {"status": BookingStatus.DRIVER_ASSIGNED, "assigned_at": NOW}

    @pytest.mark.parametrize(
        "start,target,stamp",
        [
            (BookingStatus.DRIVER_ASSIGNED, BookingStatus.DRIVER_EN_ROUTE, "en_route_at"),
            (BookingStatus.DRIVER_EN_ROUTE, BookingStatus.PICKED_UP, "picked_up_at"),
            (BookingStatus.PICKED_UP, BookingStatus.IN_TRANSIT, "in_transit_at"),
            (BookingStatus.IN_TRANSIT, BookingStatus.COMPLETED, "completed_at"),
        ],
    )
    def test_fulfiller_moves_trip_forward(self, start, target, stamp):
        booking = Booking(id=1, status=start, fulfiller_id=7)
        booking.transition_to(target, Party.FULFILLER, NOW)
        assert booking.status == target
        assert getattr(booking, stamp) == NOW

    def test_requester_cancel_records_reason(self):
        booking = Booking(id=1)
        changes = booking.transition_to(
            BookingStatus.CANCELLED, Party.REQUESTER, NOW, reason="Plans changed"
        )
        assert booking.cancelled_by == CancelledBy.USER
        assert booking.cancellation_reason == "Plans changed"
        assert changes["cancelled_at"] == NOW

    def test_fulfiller_cancel_is_recorded_as_driver(self):
        booking = Booking(id=1, status=BookingStatus.DRIVER_EN_ROUTE, fulfiller_id=7)
        booking.transition_to(BookingStatus.CANCELLED, Party.FULFILLER, NOW)
        assert booking.cancelled_by == CancelledBy.DRIVER

    def test_admin_can_cancel_in_transit(self):
        booking = Booking(id=1, status=BookingStatus.IN_TRANSIT, fulfiller_id=7)
        booking.transition_to(BookingStatus.CANCELLED, Party.ADMIN, NOW)
        assert booking.cancelled_by == CancelledBy.ADMIN

    # ── Invalid transitions ───────────────────────────────────────

    def test_pending_to_completed_fails(self):
        booking = Booking(id=1)
        with pytest.raises(InvalidTransition):
            booking.transition_to(BookingStatus.COMPLETED, Party.ADMIN, NOW)

    def test_skipping_a_step_fails(self):
        booking = Booking(id=1, status=BookingStatus.DRIVER_ASSIGNED)
        with pytest.raises(InvalidTransition):
            booking.transition_to(BookingStatus.IN_TRANSIT, Party.FULFILLER, NOW)

    @pytest.mark.parametrize("terminal", [BookingStatus.COMPLETED, BookingStatus.CANCELLED])
    def test_terminal_bookings_never_move(self, terminal):
        booking = Booking(id=1, status=terminal)
        with pytest.raises(AlreadyTerminal):
            booking.transition_to(BookingStatus.CANCELLED, Party.ADMIN, NOW)
        assert booking.status == terminal

    def test_fulfiller_cannot_cancel_in_transit(self):
        booking = Booking(id=1, status=BookingStatus.IN_TRANSIT, fulfiller_id=7)
        with pytest.raises(Unauthorized):
            booking.transition_to(BookingStatus.CANCELLED, Party.FULFILLER, NOW)
        assert booking.status == BookingStatus.IN_TRANSIT

    def test_requester_cannot_cancel_after_pickup(self):
        booking = Booking(id=1, status=BookingStatus.PICKED_UP, fulfiller_id=7)
        with pytest.raises(Unauthorized):
            booking.transition_to(BookingStatus.CANCELLED, Party.REQUESTER, NOW)

    def test_only_dispatch_assigns(self):
        booking = Booking(id=1)
        with pytest.raises(Unauthorized):
            booking.transition_to(BookingStatus.DRIVER_ASSIGNED, Party.ADMIN, NOW)

    def test_every_terminal_status_has_no_successors(self):
        assert BOOKING_TRANSITIONS[BookingStatus.COMPLETED] == {}
        assert BOOKING_TRANSITIONS[BookingStatus.CANCELLED] == {}


class TestPartyOf:
    def test_admin(self):
        booking = Booking(id=1, requester_id=3)
        assert booking.party_of(Principal(9, ActorRole.ADMIN)) == Party.ADMIN

    def test_owner(self):
        booking = Booking(id=1, requester_id=3)
        assert booking.party_of(Principal(3, ActorRole.USER)) == Party.REQUESTER

    def test_bound_fulfiller(self):
        booking = Booking(id=1, requester_id=3, fulfiller_id=7)
        principal = Principal(50, ActorRole.LOGISTICS)
        assert booking.party_of(principal, acting_fulfiller_id=7) == Party.FULFILLER

    def test_other_fulfiller_is_rejected(self):
        booking = Booking(id=1, requester_id=3, fulfiller_id=7)
        with pytest.raises(Unauthorized):
            booking.party_of(Principal(50, ActorRole.DRIVER), acting_fulfiller_id=8)

    def test_stranger_is_rejected(self):
        booking = Booking(id=1, requester_id=3)
        with pytest.raises(Unauthorized):
            booking.party_of(Principal(4, ActorRole.USER))


class TestFulfillerInvariant:
    def test_reserve_uses_kind_specific_variant(self):
        driver = Fulfiller(id=1, approval_status=ApprovalStatus.APPROVED)
        driver.reserve(10)
        assert driver.availability == Availability.ON_TRIP

        courier = Fulfiller(
            id=2, kind=FulfillerKind.LOGISTICS, approval_status=ApprovalStatus.ACTIVE
        )
        courier.reserve(11)
        assert courier.availability == Availability.ON_DELIVERY

    def test_reserve_twice_fails(self):
        driver = Fulfiller(id=1, approval_status=ApprovalStatus.APPROVED)
        driver.reserve(10)
        with pytest.raises(AlreadyReserved):
            driver.reserve(11)
        assert driver.current_booking_id == 10

    def test_unapproved_cannot_be_reserved(self):
        driver = Fulfiller(id=1, approval_status=ApprovalStatus.SUSPENDED)
        with pytest.raises(NotApproved):
            driver.reserve(10)

    def test_release_restores_available(self):
        driver = Fulfiller(id=1, approval_status=ApprovalStatus.APPROVED)
        driver.reserve(10)
        driver.release()
        assert driver.current_booking_id is None
        assert driver.availability == Availability.AVAILABLE

    def test_self_declared_busy_is_not_a_reservation(self):
        Fulfiller(id=1, availability=Availability.BUSY).check_invariant()

    def test_bound_but_available_violates_invariant(self):
        driver = Fulfiller(id=1, availability=Availability.AVAILABLE, current_booking_id=5)
        with pytest.raises(InvariantViolation):
            driver.check_invariant()

    @pytest.mark.parametrize(
        "desired", [Availability.AVAILABLE, Availability.OFFLINE, Availability.BUSY]
    )
    def test_cannot_change_availability_while_bound(self, desired):
        driver = Fulfiller(id=1, approval_status=ApprovalStatus.APPROVED)
        driver.reserve(10)
        with pytest.raises(BlockedByActiveBooking):
            driver.ensure_can_set(desired)

    def test_reservation_variant_cannot_be_self_declared(self):
        driver = Fulfiller(id=1, approval_status=ApprovalStatus.APPROVED)
        with pytest.raises(InvalidTransition):
            driver.ensure_can_set(Availability.ON_TRIP)

    def test_pending_approval_cannot_go_available(self):
        driver = Fulfiller(id=1)
        with pytest.raises(NotApproved):
            driver.ensure_can_set(Availability.AVAILABLE)

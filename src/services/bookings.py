"""
BookingDesk
===========

Requester-facing booking operations that sit outside the status machine:
creating a ride or delivery request, reading bookings, statistics, and the
payment-confirmed flag.  Status changes go through ``BookingLifecycle``.
"""

from __future__ import annotations

import logging
from typing import Optional

from src.domain.entities import (
    Booking,
    BookingDetails,
    DeliveryDetails,
    Principal,
)
from src.domain.enums import (
    ActorRole,
    BookingStatus,
    BookingType,
    ConfirmedBy,
    PaymentMethod,
    PaymentStatus,
)
from src.domain.errors import NotFound, Unauthorized, WrongBookingState
from src.infrastructure.models import BookingModel
from src.infrastructure.repositories import (
    BookingRepository,
    FulfillerRepository,
    booking_to_entity,
)
from src.services.base import Service, utcnow

logger = logging.getLogger(__name__)


def completion_rate(completed: int, total: int) -> int:
    """Whole-number percentage; 0 when there is nothing to complete."""
    return round(completed / total * 100) if total else 0


class BookingDesk(Service):
    def __init__(self, session, notifier=None):
        super().__init__(session, notifier)
        self.bookings = BookingRepository(session)
        self.fulfillers = FulfillerRepository(session)

    async def create(
        self,
        principal: Principal,
        details: BookingDetails,
        payment_method: PaymentMethod = PaymentMethod.CASH,
    ) -> Booking:
        if principal.role is not ActorRole.USER:
            raise Unauthorized("Only users can request bookings")

        booking_type = (
            BookingType.DELIVERY
            if isinstance(details, DeliveryDetails)
            else BookingType.RIDE
        )
        row = BookingModel(
            requester_id=principal.id,
            type=booking_type,
            status=BookingStatus.PENDING,
            pickup_address=details.pickup.address,
            pickup_lat=details.pickup.latitude,
            pickup_lng=details.pickup.longitude,
            destination_address=details.destination.address,
            destination_lat=details.destination.latitude,
            destination_lng=details.destination.longitude,
            payment_method=payment_method,
            payment_status=PaymentStatus.PENDING,
            requested_at=utcnow(),
        )
        if isinstance(details, DeliveryDetails):
            package = details.package
            row.package_description = package.description
            row.package_weight_kg = package.weight_kg
            row.package_length_cm = package.length_cm
            row.package_width_cm = package.width_cm
            row.package_height_cm = package.height_cm
            row.package_value = package.declared_value
            row.package_is_fragile = package.is_fragile
            row.package_special_instructions = package.special_instructions

        async def _create() -> Booking:
            await self.bookings.create(row)
            await self.session.commit()
            return booking_to_entity(row)

        booking = await self._retrying(_create, "create booking")
        logger.info(
            "Booking %d (%s) requested by user %d",
            booking.id,
            booking_type.value,
            principal.id,
        )
        self.notifier.dispatch(
            "booking.created",
            booking_id=booking.id,
            requester_id=principal.id,
            type=booking_type.value,
        )
        return booking

    async def get(self, booking_id: int, principal: Principal) -> Booking:
        row = await self.bookings.get_by_id(booking_id)
        if row is None:
            raise NotFound(f"Booking {booking_id} not found")
        booking = booking_to_entity(row)
        acting = None
        kind = principal.fulfiller_kind
        if kind is not None:
            profile = await self.fulfillers.get_by_user(principal.id, kind)
            acting = profile.id if profile else None
        # raises Unauthorized for anyone unrelated to the booking
        booking.party_of(principal, acting)
        return booking

    async def list_mine(
        self,
        principal: Principal,
        *,
        page: int = 1,
        limit: int = 10,
        status: Optional[BookingStatus] = None,
        booking_type: Optional[BookingType] = None,
    ) -> tuple[list[Booking], int]:
        rows, total = await self.bookings.list_for_requester(
            principal.id,
            page=page,
            limit=limit,
            status=status,
            booking_type=booking_type,
        )
        return [booking_to_entity(r) for r in rows], total

    async def stats(self, principal: Principal) -> dict:
        stats = await self.bookings.requester_stats(principal.id)
        stats["total_spent"] = float(stats["total_spent"])
        stats["completion_rate"] = completion_rate(
            stats["completed_bookings"], stats["total_bookings"]
        )
        return stats

    async def confirm_payment(self, booking_id: int, principal: Principal) -> Booking:
        """Mark a completed booking as paid.  Re-confirming is a no-op."""

        async def _confirm() -> tuple[Booking, bool]:
            row = await self.bookings.get_by_id(booking_id)
            if row is None:
                raise NotFound(f"Booking {booking_id} not found")
            booking = booking_to_entity(row)
            if principal.is_admin:
                confirmed_by = ConfirmedBy.ADMIN
            elif (
                principal.role is ActorRole.USER
                and principal.id == booking.requester_id
            ):
                confirmed_by = ConfirmedBy.USER
            else:
                raise Unauthorized(
                    f"Not authorized to confirm payment for booking {booking_id}"
                )
            if booking.status is not BookingStatus.COMPLETED:
                raise WrongBookingState(
                    "Payment can only be confirmed for completed bookings"
                )
            if booking.payment.status is PaymentStatus.CONFIRMED:
                return booking, False

            now = utcnow()
            changed = await self.bookings.confirm_payment(
                booking_id,
                {
                    "payment_status": PaymentStatus.CONFIRMED,
                    "payment_confirmed_at": now,
                    "payment_confirmed_by": confirmed_by,
                },
            )
            await self.session.commit()
            if changed:
                booking.payment.status = PaymentStatus.CONFIRMED
                booking.payment.confirmed_at = now
                booking.payment.confirmed_by = confirmed_by
                return booking, True
            # someone else confirmed it between our read and write
            return booking_to_entity(await self.bookings.get_by_id(booking_id)), False

        booking, changed = await self._retrying(
            _confirm, f"confirm payment of {booking_id}"
        )
        if changed:
            logger.info("Payment confirmed for booking %d", booking_id)
            self.notifier.dispatch(
                "booking.payment_confirmed",
                booking_id=booking.id,
                requester_id=booking.requester_id,
                fulfiller_id=booking.fulfiller_id,
            )
        return booking


"""
AssignmentService
=================

Manual, admin-driven assignment: an admin names one fulfiller for one
pending booking and fixes the price.  There is no automatic matching.

The reservation (fulfiller row) and the booking update happen in one
transaction; both are conditional updates, so two admins assigning the
same fulfiller to different bookings cannot both succeed.  Whichever write
fails rolls the whole unit back, leaving the booking untouched.
"""

from __future__ import annotations

import logging

from src.config import settings
from src.domain.entities import Booking, Fulfiller, Price, Principal
from src.domain.enums import (
    KINDS_FOR_BOOKING_TYPE,
    BookingStatus,
    BookingType,
    Party,
    PriceSetBy,
)
from src.domain.errors import (
    AlreadyReserved,
    AlreadyTerminal,
    FulfillerBusy,
    FulfillerNotApproved,
    IneligibleFulfiller,
    NotApproved,
    NotFound,
    Unauthorized,
    WrongBookingState,
)
from src.infrastructure.repositories import (
    BookingRepository,
    FulfillerRepository,
    booking_to_entity,
    fulfiller_to_entity,
)
from src.services.availability import FulfillerAvailability
from src.services.base import Service, utcnow

logger = logging.getLogger(__name__)


class AssignmentService(Service):
    def __init__(self, session, notifier=None, availability=None):
        super().__init__(session, notifier)
        self.bookings = BookingRepository(session)
        self.fulfillers = FulfillerRepository(session)
        self.availability = availability or FulfillerAvailability(session, notifier)

    async def _load(self, booking_id: int) -> Booking:
        row = await self.bookings.get_by_id(booking_id)
        if row is None:
            raise NotFound(f"Booking {booking_id} not found")
        return booking_to_entity(row)

    async def assign(
        self,
        booking_id: int,
        fulfiller_id: int,
        amount: float,
        principal: Principal,
        currency: str | None = None,
    ) -> Booking:
        if not principal.is_admin:
            raise Unauthorized("Only admins can assign fulfillers")
        currency = currency or settings.default_currency

        async def _assign() -> Booking:
            booking = await self._load(booking_id)
            fulfiller = await self.availability.get(fulfiller_id)

            if booking.status is not BookingStatus.PENDING:
                raise WrongBookingState(
                    f"Booking {booking_id} cannot be assigned while "
                    f"{booking.status.value}"
                )
            if not fulfiller.is_approved:
                raise FulfillerNotApproved(
                    f"Fulfiller {fulfiller_id} is {fulfiller.approval_status.value}"
                )
            if fulfiller.kind not in KINDS_FOR_BOOKING_TYPE[booking.type]:
                raise IneligibleFulfiller(
                    f"A {fulfiller.kind.value} cannot serve a "
                    f"{booking.type.value} booking"
                )

            now = utcnow()
            changes = booking.transition_to(
                BookingStatus.DRIVER_ASSIGNED, Party.DISPATCH, now
            )
            try:
                await self.availability.reserve(fulfiller_id, booking_id)
            except AlreadyReserved as exc:
                await self.session.rollback()
                raise FulfillerBusy(
                    f"Fulfiller {fulfiller_id} is already on another booking"
                ) from exc
            except NotApproved as exc:
                await self.session.rollback()
                raise FulfillerNotApproved(exc.message) from exc

            price = Price(
                amount=amount, currency=currency, set_by=PriceSetBy.ADMIN, set_at=now
            )
            changes.update(
                fulfiller_id=fulfiller_id,
                price_amount=price.amount,
                price_currency=price.currency,
                price_set_by=price.set_by,
                price_set_at=price.set_at,
            )
            if not await self.bookings.compare_and_set(
                booking_id, BookingStatus.PENDING, changes
            ):
                await self.session.rollback()  # undoes the reservation too
                raise WrongBookingState(
                    f"Booking {booking_id} is no longer pending"
                )
            await self.session.commit()

            booking.fulfiller_id = fulfiller_id
            booking.price = price
            return booking

        booking = await self._retrying(_assign, f"assign booking {booking_id}")
        logger.info(
            "Booking %d assigned to fulfiller %d at %.2f %s",
            booking_id,
            fulfiller_id,
            amount,
            currency,
        )
        self.notifier.dispatch(
            "booking.assigned",
            booking_id=booking.id,
            requester_id=booking.requester_id,
            fulfiller_id=fulfiller_id,
            amount=amount,
            currency=currency,
        )
        return booking

    async def revise_price(
        self,
        booking_id: int,
        amount: float,
        principal: Principal,
        currency: str | None = None,
    ) -> Booking:
        """Change an admin-set price.

        Every price this service writes is admin-set; a row recorded as
        driver-set keeps its price.
        """
        if not principal.is_admin:
            raise Unauthorized("Only admins can revise prices")

        async def _revise() -> Booking:
            booking = await self._load(booking_id)
            if booking.is_terminal:
                raise AlreadyTerminal(
                    f"Booking {booking_id} is already {booking.status.value}"
                )
            if booking.price is None:
                raise WrongBookingState(f"Booking {booking_id} has no price yet")

            if booking.price.set_by is not PriceSetBy.ADMIN:
                raise Unauthorized(
                    f"Price was set by {booking.price.set_by.value}; "
                    "an admin may not change it"
                )

            price = Price(
                amount=amount,
                currency=currency or booking.price.currency,
                set_by=PriceSetBy.ADMIN,
                set_at=utcnow(),
            )
            changed = await self.bookings.set_price(
                booking_id,
                booking.price.set_by,
                {
                    "price_amount": price.amount,
                    "price_currency": price.currency,
                    "price_set_at": price.set_at,
                },
            )
            if not changed:
                await self.session.rollback()
                raise WrongBookingState(
                    f"Booking {booking_id} changed while its price was revised"
                )
            await self.session.commit()
            booking.price = price
            return booking

        booking = await self._retrying(_revise, f"revise price of {booking_id}")
        logger.info("Booking %d price revised to %.2f", booking_id, amount)
        return booking

    async def list_available(self, booking_type: BookingType) -> list[Fulfiller]:
        """Approved fulfillers for *booking_type*, busy ones included.

        Busy fulfillers are listed on purpose: the admin sees the full
        picture and ``assign`` still refuses a reserved fulfiller.
        """
        rows = await self.fulfillers.list_eligible(
            KINDS_FOR_BOOKING_TYPE[booking_type],
            limit=settings.eligible_fulfillers_limit,
        )
        return [fulfiller_to_entity(r) for r in rows]

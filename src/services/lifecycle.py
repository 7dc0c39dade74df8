"""
BookingLifecycle
================

Owns every status change after assignment:

    driver_assigned -> driver_en_route -> picked_up -> in_transit -> completed
    (any non-terminal state) -> cancelled   (who may cancel depends on the state)

Write path
----------
1. Load the booking and classify the actor (requester / bound fulfiller /
   admin).
2. ``Booking.transition_to`` validates against ``BOOKING_TRANSITIONS`` and
   returns the changed fields (status + its timestamp, cancel metadata).
3. Persist with a conditional UPDATE keyed on the status we read.  If it
   matches nothing another request won the race -> ``WrongBookingState``.
4. Commit.  Then, for ``completed`` / ``cancelled`` with a bound fulfiller,
   release it (separate commit).  A failed release surfaces as
   ``PartialFailure``; the reconciler or an admin retries it.

This is the only place a booking frees its fulfiller.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from src.domain.entities import Booking, Principal
from src.domain.enums import BookingStatus
from src.domain.errors import (
    NotFound,
    PartialFailure,
    Unavailable,
    WrongBookingState,
)
from src.infrastructure.repositories import (
    BookingRepository,
    FulfillerRepository,
    booking_to_entity,
)
from src.services.availability import FulfillerAvailability
from src.services.base import Service, utcnow

logger = logging.getLogger(__name__)


class BookingLifecycle(Service):
    def __init__(self, session, notifier=None, availability=None):
        super().__init__(session, notifier)
        self.bookings = BookingRepository(session)
        self.fulfillers = FulfillerRepository(session)
        self.availability = availability or FulfillerAvailability(session, notifier)

    async def acting_fulfiller_id(self, principal: Principal) -> Optional[int]:
        kind = principal.fulfiller_kind
        if kind is None:
            return None
        row = await self.fulfillers.get_by_user(principal.id, kind)
        return row.id if row else None

    async def advance(
        self,
        booking_id: int,
        principal: Principal,
        new_status: BookingStatus,
        *,
        reason: Optional[str] = None,
    ) -> Booking:
        async def _write() -> Booking:
            row = await self.bookings.get_by_id(booking_id)
            if row is None:
                raise NotFound(f"Booking {booking_id} not found")
            booking = booking_to_entity(row)
            party = booking.party_of(
                principal, await self.acting_fulfiller_id(principal)
            )
            previous = booking.status
            changes = booking.transition_to(new_status, party, utcnow(), reason=reason)

            if not await self.bookings.compare_and_set(booking_id, previous, changes):
                await self.session.rollback()
                current = await self.bookings.get_by_id(booking_id)
                raise WrongBookingState(
                    f"Booking {booking_id} moved from {previous.value} to "
                    f"{current.status.value} concurrently"
                )
            await self.session.commit()
            return booking

        booking = await self._retrying(_write, f"advance booking {booking_id}")
        logger.info(
            "Booking %d -> %s by %s %d",
            booking_id,
            new_status.value,
            principal.role.value,
            principal.id,
        )

        if booking.is_terminal and booking.fulfiller_id is not None:
            await self._release_fulfiller(booking)

        self.notifier.dispatch(
            "booking.status_changed",
            booking_id=booking.id,
            status=booking.status.value,
            requester_id=booking.requester_id,
            fulfiller_id=booking.fulfiller_id,
            cancelled_by=booking.cancelled_by.value if booking.cancelled_by else None,
        )
        return booking

    async def cancel(
        self, booking_id: int, principal: Principal, reason: Optional[str] = None
    ) -> Booking:
        return await self.advance(
            booking_id, principal, BookingStatus.CANCELLED, reason=reason
        )

    async def _release_fulfiller(self, booking: Booking) -> None:
        try:
            await self.availability.release(booking.fulfiller_id, booking.id)
        except (Unavailable, SQLAlchemyError) as exc:
            logger.exception(
                "Booking %d is %s but fulfiller %d was not released",
                booking.id,
                booking.status.value,
                booking.fulfiller_id,
            )
            raise PartialFailure(
                f"Booking {booking.id} is {booking.status.value}; releasing "
                f"fulfiller {booking.fulfiller_id} failed and can be retried",
                booking_id=booking.id,
                fulfiller_id=booking.fulfiller_id,
            ) from exc

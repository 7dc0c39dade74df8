"""
FulfillerAvailability
=====================

Single source of truth for whether a fulfiller can take a new booking.

* ``reserve``          -- atomic "bind only if unbound" (joins the caller's
  transaction so assignment can roll both writes back together).
* ``release``          -- idempotent unbind, committed on its own.
* ``release_if_finished`` -- admin retry after a ``PartialFailure``.
* ``set_availability`` -- the fulfiller's own offline/available/busy toggle.

After every mutation the re-read entity is checked against the invariant
``current_booking_id is not None  <=>  availability in RESERVED_AVAILABILITY``.
"""

from __future__ import annotations

import logging
from typing import Optional

from src.domain.entities import Fulfiller, Principal
from src.domain.enums import RESERVATION_FOR_KIND, TERMINAL_STATUSES, Availability
from src.domain.errors import (
    AlreadyReserved,
    BlockedByActiveBooking,
    NotFound,
    Unauthorized,
)
from src.infrastructure.repositories import (
    BookingRepository,
    FulfillerRepository,
    fulfiller_to_entity,
)
from src.services.base import Service

logger = logging.getLogger(__name__)


class FulfillerAvailability(Service):
    def __init__(self, session, notifier=None):
        super().__init__(session, notifier)
        self.fulfillers = FulfillerRepository(session)

    async def get(self, fulfiller_id: int) -> Fulfiller:
        row = await self.fulfillers.get_by_id(fulfiller_id)
        if row is None:
            raise NotFound(f"Fulfiller {fulfiller_id} not found")
        return fulfiller_to_entity(row)

    async def for_principal(self, principal: Principal) -> Fulfiller:
        """The fulfiller profile behind a driver / logistics principal."""
        kind = principal.fulfiller_kind
        if kind is None:
            raise Unauthorized("Only drivers and logistics personnel have a profile")
        row = await self.fulfillers.get_by_user(principal.id, kind)
        if row is None:
            raise NotFound(f"No {kind.value} profile for user {principal.id}")
        return fulfiller_to_entity(row)

    async def _checked(self, fulfiller_id: int) -> Fulfiller:
        fulfiller = await self.get(fulfiller_id)
        fulfiller.check_invariant()
        return fulfiller

    async def reserve(self, fulfiller_id: int, booking_id: int) -> Fulfiller:
        """Bind *booking_id*; the caller commits or rolls back."""
        fulfiller = await self.get(fulfiller_id)
        reservation = RESERVATION_FOR_KIND[fulfiller.kind]
        if not await self.fulfillers.try_reserve(fulfiller_id, booking_id, reservation):
            current = await self.get(fulfiller_id)
            current.ensure_reservable()
            # approved and unbound now, but it was not when we wrote
            raise AlreadyReserved(f"Fulfiller {fulfiller_id} was reserved concurrently")
        logger.info("Fulfiller %d reserved for booking %d", fulfiller_id, booking_id)
        return await self._checked(fulfiller_id)

    async def release(
        self, fulfiller_id: int, booking_id: Optional[int] = None
    ) -> Fulfiller:
        """Clear the reservation and commit.  Safe to call repeatedly."""

        async def _release() -> Fulfiller:
            await self.get(fulfiller_id)
            changed = await self.fulfillers.release(fulfiller_id, booking_id)
            await self.session.commit()
            if not changed:
                logger.warning(
                    "Fulfiller %d is bound to another booking; release of %s skipped",
                    fulfiller_id,
                    booking_id,
                )
            return await self._checked(fulfiller_id)

        fulfiller = await self._retrying(_release, f"release fulfiller {fulfiller_id}")
        logger.info("Fulfiller %d released", fulfiller_id)
        return fulfiller

    async def release_if_finished(self, fulfiller_id: int) -> Fulfiller:
        """Manual retry of a release that a finished booking left undone."""
        fulfiller = await self.get(fulfiller_id)
        booking_id = fulfiller.current_booking_id
        if booking_id is None:
            return fulfiller
        booking = await BookingRepository(self.session).get_by_id(booking_id)
        if booking is not None and booking.status not in TERMINAL_STATUSES:
            raise BlockedByActiveBooking(
                f"Booking {booking_id} is still {booking.status.value}"
            )
        return await self.release(fulfiller_id, booking_id)

    async def set_availability(
        self, fulfiller_id: int, desired: Availability
    ) -> Fulfiller:
        async def _set() -> Fulfiller:
            fulfiller = await self.get(fulfiller_id)
            fulfiller.ensure_can_set(desired)
            if not await self.fulfillers.try_set_availability(fulfiller_id, desired):
                await self.session.rollback()
                (await self.get(fulfiller_id)).ensure_can_set(desired)
                raise BlockedByActiveBooking(
                    f"Fulfiller {fulfiller_id} was reserved concurrently"
                )
            await self.session.commit()
            return await self._checked(fulfiller_id)

        fulfiller = await self._retrying(_set, f"set availability of {fulfiller_id}")
        logger.info("Fulfiller %d is now %s", fulfiller_id, desired.value)
        return fulfiller

"""
FulfillerRegistry
=================

Profile management for drivers and logistics personnel: registration,
the admin approval / suspension workflow, assignment listings and earnings
statistics.  Availability and reservations live in ``FulfillerAvailability``.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError

from src.config import settings
from src.domain.entities import Booking, Fulfiller, Principal
from src.domain.enums import (
    APPROVAL_TRANSITIONS,
    ActorRole,
    ApprovalStatus,
    Availability,
    BookingStatus,
    FulfillerKind,
)
from src.domain.errors import (
    DuplicateRegistration,
    InvalidTransition,
    Unauthorized,
)
from src.infrastructure.models import FulfillerModel
from src.infrastructure.repositories import (
    BookingRepository,
    FulfillerRepository,
    booking_to_entity,
    fulfiller_to_entity,
)
from src.services.availability import FulfillerAvailability
from src.services.base import Service, utcnow
from src.services.bookings import completion_rate

logger = logging.getLogger(__name__)

# Statuses a fulfiller still has work to do on
ACTIVE_ASSIGNMENT_STATUSES = (
    BookingStatus.DRIVER_ASSIGNED,
    BookingStatus.DRIVER_EN_ROUTE,
    BookingStatus.PICKED_UP,
    BookingStatus.IN_TRANSIT,
)


class FulfillerRegistry(Service):
    def __init__(self, session, notifier=None, availability=None):
        super().__init__(session, notifier)
        self.fulfillers = FulfillerRepository(session)
        self.bookings = BookingRepository(session)
        self.availability = availability or FulfillerAvailability(session, notifier)

    async def register(
        self, principal: Principal, kind: FulfillerKind, display_name: str
    ) -> Fulfiller:
        """Create a profile awaiting approval; one per user and kind."""
        if principal.role is ActorRole.ADMIN:
            raise Unauthorized("Admins cannot register as fulfillers")

        async def _register() -> Fulfiller:
            if await self.fulfillers.get_by_user(principal.id, kind) is not None:
                raise DuplicateRegistration(
                    f"User {principal.id} already has a {kind.value} profile"
                )
            row = FulfillerModel(
                user_id=principal.id,
                kind=kind,
                display_name=display_name,
                approval_status=ApprovalStatus.PENDING_APPROVAL,
                availability=Availability.OFFLINE,
                rating_average=0.0,
                rating_total=0,
                rating_breakdown={},
                rating_version=0,
            )
            try:
                await self.fulfillers.create(row)
            except IntegrityError as exc:
                await self.session.rollback()
                raise DuplicateRegistration(
                    f"User {principal.id} already has a {kind.value} profile"
                ) from exc
            await self.session.commit()
            return fulfiller_to_entity(row)

        fulfiller = await self._retrying(_register, f"register {kind.value}")
        logger.info(
            "User %d registered as %s (fulfiller %d)",
            principal.id,
            kind.value,
            fulfiller.id,
        )
        self.notifier.dispatch(
            "fulfiller.registered",
            fulfiller_id=fulfiller.id,
            user_id=principal.id,
            kind=kind.value,
        )
        return fulfiller

    async def profile(
        self, principal: Principal, kind: Optional[FulfillerKind] = None
    ) -> Fulfiller:
        if kind is not None and kind is not principal.fulfiller_kind:
            raise Unauthorized(f"Role {principal.role.value} has no {kind.value} profile")
        return await self.availability.for_principal(principal)

    # ── Approval workflow ─────────────────────────────────────────────

    async def _move_approval(
        self,
        fulfiller_id: int,
        target: ApprovalStatus,
        principal: Principal,
        changes: dict,
    ) -> Fulfiller:
        if not principal.is_admin:
            raise Unauthorized("Only admins can change approval status")

        async def _move() -> Fulfiller:
            current = await self.availability.get(fulfiller_id)
            if target not in APPROVAL_TRANSITIONS[current.approval_status]:
                raise InvalidTransition(
                    f"Cannot move fulfiller {fulfiller_id} from "
                    f"{current.approval_status.value} to {target.value}"
                )
            if not await self.fulfillers.set_approval(
                fulfiller_id,
                current.approval_status,
                {"approval_status": target, **changes},
            ):
                await self.session.rollback()
                raise InvalidTransition(
                    f"Approval of fulfiller {fulfiller_id} changed concurrently"
                )
            if target is ApprovalStatus.SUSPENDED:
                # a bound booking still finishes; only an idle fulfiller goes offline
                await self.fulfillers.take_offline_if_idle(fulfiller_id)
            await self.session.commit()
            return await self.availability.get(fulfiller_id)

        fulfiller = await self._retrying(
            _move, f"set approval of {fulfiller_id} to {target.value}"
        )
        logger.info(
            "Fulfiller %d is now %s (admin %d)",
            fulfiller_id,
            target.value,
            principal.id,
        )
        self.notifier.dispatch(
            "fulfiller.approval_changed",
            fulfiller_id=fulfiller_id,
            user_id=fulfiller.user_id,
            approval_status=target.value,
        )
        return fulfiller

    async def set_approval(
        self,
        fulfiller_id: int,
        approved: bool,
        principal: Principal,
        reason: Optional[str] = None,
    ) -> Fulfiller:
        if approved:
            return await self._move_approval(
                fulfiller_id,
                ApprovalStatus.APPROVED,
                principal,
                {
                    "approved_by": principal.id,
                    "approved_at": utcnow(),
                    "rejection_reason": None,
                },
            )
        return await self._move_approval(
            fulfiller_id,
            ApprovalStatus.REJECTED,
            principal,
            {"rejection_reason": reason},
        )

    async def set_suspension(
        self,
        fulfiller_id: int,
        suspended: bool,
        principal: Principal,
        reason: Optional[str] = None,
    ) -> Fulfiller:
        if suspended:
            return await self._move_approval(
                fulfiller_id,
                ApprovalStatus.SUSPENDED,
                principal,
                {"suspended_at": utcnow(), "suspension_reason": reason},
            )
        return await self._move_approval(
            fulfiller_id,
            ApprovalStatus.APPROVED,
            principal,
            {"suspended_at": None, "suspension_reason": None},
        )

    # ── Assignments & statistics ──────────────────────────────────────

    async def assignments(
        self,
        principal: Principal,
        *,
        page: int = 1,
        limit: int = 10,
        active_only: bool = False,
    ) -> tuple[list[Booking], int]:
        fulfiller = await self.availability.for_principal(principal)
        rows, total = await self.bookings.list_for_fulfiller(
            fulfiller.id,
            page=page,
            limit=limit,
            statuses=ACTIVE_ASSIGNMENT_STATUSES if active_only else None,
        )
        return [booking_to_entity(r) for r in rows], total

    async def statistics(self, principal: Principal) -> dict:
        fulfiller = await self.availability.for_principal(principal)
        stats = await self.bookings.fulfiller_stats(fulfiller.id)
        gross = float(stats.pop("gross_earnings"))
        stats.update(
            gross_earnings=round(gross, 2),
            platform_fee=round(gross * settings.platform_fee_rate, 2),
            total_earnings=round(gross * (1 - settings.platform_fee_rate), 2),
            completion_rate=completion_rate(
                stats["completed_bookings"], stats["total_bookings"]
            ),
            rating_average=round(fulfiller.rating.average, 2),
            rating_total=fulfiller.rating.total,
            availability=fulfiller.availability.value,
        )
        return stats

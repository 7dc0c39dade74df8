"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** on ``Booking``: the legal lifecycle lives in
  ``BOOKING_TRANSITIONS``; ``Booking.transition_to`` is the only way the
  status moves and it stamps exactly one timestamp per move.
- **Tagged union** for booking details: ``RideDetails`` or
  ``DeliveryDetails``, selected by ``Booking.type``.
- ``Fulfiller`` guards the reservation invariant: a bound booking implies
  the reservation availability variant and vice versa.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Union

from .enums import (
    ASSIGNABLE_APPROVALS,
    BOOKING_TRANSITIONS,
    RESERVATION_FOR_KIND,
    RESERVED_AVAILABILITY,
    SELF_SERVICE_AVAILABILITY,
    STATUS_TIMESTAMPS,
    TERMINAL_STATUSES,
    ActorRole,
    ApprovalStatus,
    Availability,
    BookingStatus,
    BookingType,
    CancelledBy,
    ConfirmedBy,
    FulfillerKind,
    Party,
    PaymentMethod,
    PaymentStatus,
    PriceSetBy,
    RatingDimension,
)
from .errors import (
    AlreadyReserved,
    AlreadyTerminal,
    BlockedByActiveBooking,
    InvalidTransition,
    InvariantViolation,
    NotApproved,
    Unauthorized,
)


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Principal:
    """Authenticated caller as handed over by the identity provider."""

    id: int
    role: ActorRole

    @property
    def is_admin(self) -> bool:
        return self.role is ActorRole.ADMIN

    @property
    def fulfiller_kind(self) -> Optional[FulfillerKind]:
        if self.role is ActorRole.DRIVER:
            return FulfillerKind.DRIVER
        if self.role is ActorRole.LOGISTICS:
            return FulfillerKind.LOGISTICS
        return None


@dataclass(frozen=True)
class Location:
    address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None


@dataclass(frozen=True)
class PackageDetails:
    description: Optional[str] = None
    weight_kg: Optional[float] = None
    length_cm: Optional[float] = None
    width_cm: Optional[float] = None
    height_cm: Optional[float] = None
    declared_value: Optional[float] = None
    is_fragile: bool = False
    special_instructions: Optional[str] = None


@dataclass(frozen=True)
class RideDetails:
    pickup: Location
    destination: Location


@dataclass(frozen=True)
class DeliveryDetails:
    pickup: Location
    destination: Location
    package: PackageDetails = field(default_factory=PackageDetails)


BookingDetails = Union[RideDetails, DeliveryDetails]


@dataclass(frozen=True)
class Price:
    amount: float
    currency: str
    set_by: PriceSetBy
    set_at: datetime


@dataclass
class Payment:
    method: PaymentMethod = PaymentMethod.CASH
    status: PaymentStatus = PaymentStatus.PENDING
    confirmed_at: Optional[datetime] = None
    confirmed_by: Optional[ConfirmedBy] = None


@dataclass(frozen=True)
class DimensionRating:
    average: float = 0.0
    count: int = 0


@dataclass(frozen=True)
class RatingSnapshot:
    average: float = 0.0
    total: int = 0
    breakdown: dict[RatingDimension, DimensionRating] = field(default_factory=dict)
    version: int = 0


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class Booking:
    id: Optional[int] = None
    requester_id: int = 0
    type: BookingType = BookingType.RIDE
    details: Optional[BookingDetails] = None
    status: BookingStatus = BookingStatus.PENDING
    fulfiller_id: Optional[int] = None
    price: Optional[Price] = None
    payment: Payment = field(default_factory=Payment)
    requested_at: Optional[datetime] = None
    assigned_at: Optional[datetime] = None
    en_route_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    in_transit_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[CancelledBy] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def party_of(
        self, principal: Principal, acting_fulfiller_id: Optional[int] = None
    ) -> Party:
        """Classify *principal* relative to this booking, else raise."""
        if principal.is_admin:
            return Party.ADMIN
        if (
            principal.fulfiller_kind is not None
            and acting_fulfiller_id is not None
            and self.fulfiller_id == acting_fulfiller_id
        ):
            return Party.FULFILLER
        if principal.role is ActorRole.USER and principal.id == self.requester_id:
            return Party.REQUESTER
        raise Unauthorized(f"Not authorized to act on booking {self.id}")

    def check_transition(self, new_status: BookingStatus, party: Party) -> None:
        if self.is_terminal:
            raise AlreadyTerminal(
                f"Booking {self.id} is already {self.status.value}"
            )
        successors = BOOKING_TRANSITIONS.get(self.status, {})
        if new_status not in successors:
            raise InvalidTransition(
                f"Cannot change status from {self.status.value} to {new_status.value}"
            )
        if party not in successors[new_status]:
            raise Unauthorized(
                f"{party.value} may not move booking {self.id} "
                f"from {self.status.value} to {new_status.value}"
            )

    def transition_to(
        self,
        new_status: BookingStatus,
        party: Party,
        at: datetime,
        *,
        reason: Optional[str] = None,
    ) -> dict:
        """Move to *new_status* if the transition is legal, else raise.

        Returns the changed fields so a repository can persist them with a
        conditional write keyed on the previous status.
        """
        self.check_transition(new_status, party)
        changes: dict = {"status": new_status, STATUS_TIMESTAMPS[new_status]: at}
        if new_status is BookingStatus.CANCELLED:
            changes["cancelled_by"] = _CANCELLED_BY[party]
            changes["cancellation_reason"] = reason
        for name, value in changes.items():
            setattr(self, name, value)
        return changes


_CANCELLED_BY = {
    Party.REQUESTER: CancelledBy.USER,
    Party.FULFILLER: CancelledBy.DRIVER,
    Party.ADMIN: CancelledBy.ADMIN,
}


@dataclass
class Fulfiller:
    id: Optional[int] = None
    user_id: int = 0
    kind: FulfillerKind = FulfillerKind.DRIVER
    display_name: str = ""
    approval_status: ApprovalStatus = ApprovalStatus.PENDING_APPROVAL
    availability: Availability = Availability.OFFLINE
    current_booking_id: Optional[int] = None
    rating: RatingSnapshot = field(default_factory=RatingSnapshot)
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    suspended_at: Optional[datetime] = None
    suspension_reason: Optional[str] = None

    @property
    def is_approved(self) -> bool:
        return self.approval_status in ASSIGNABLE_APPROVALS

    @property
    def reservation_status(self) -> Availability:
        return RESERVATION_FOR_KIND[self.kind]

    def check_invariant(self) -> None:
        bound = self.current_booking_id is not None
        if bound != (self.availability in RESERVED_AVAILABILITY):
            raise InvariantViolation(
                f"Fulfiller {self.id}: current_booking_id={self.current_booking_id} "
                f"with availability {self.availability.value}"
            )

    def ensure_reservable(self) -> None:
        if not self.is_approved:
            raise NotApproved(
                f"Fulfiller {self.id} is {self.approval_status.value}"
            )
        if self.current_booking_id is not None:
            raise AlreadyReserved(
                f"Fulfiller {self.id} is already bound to booking "
                f"{self.current_booking_id}"
            )

    def ensure_can_set(self, desired: Availability) -> None:
        if desired not in SELF_SERVICE_AVAILABILITY:
            raise InvalidTransition(f"Invalid availability status {desired.value}")
        # a bound booking wins over approval: suspension keeps the booking
        if self.current_booking_id is not None:
            raise BlockedByActiveBooking(
                f"Cannot set status to {desired.value} while booking "
                f"{self.current_booking_id} is active"
            )
        if not self.is_approved:
            raise NotApproved(
                f"Fulfiller {self.id} is {self.approval_status.value}"
            )

    def reserve(self, booking_id: int) -> None:
        self.ensure_reservable()
        self.current_booking_id = booking_id
        self.availability = self.reservation_status
        self.check_invariant()

    def release(self) -> None:
        self.current_booking_id = None
        self.availability = Availability.AVAILABLE
        self.check_invariant()


@dataclass
class Review:
    id: Optional[int] = None
    booking_id: int = 0
    reviewer_id: int = 0
    fulfiller_id: int = 0
    rating: int = 0
    comment: Optional[str] = None
    feedback: dict[RatingDimension, int] = field(default_factory=dict)
    is_anonymous: bool = False
    created_at: Optional[datetime] = None

"""Domain enumerations and state-transition rules."""

import enum


class BookingType(str, enum.Enum):
    RIDE = "ride"
    DELIVERY = "delivery"


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    DRIVER_ASSIGNED = "driver_assigned"
    DRIVER_EN_ROUTE = "driver_en_route"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Party(str, enum.Enum):
    """How an actor relates to a particular booking."""

    DISPATCH = "dispatch"  # the assignment service itself
    REQUESTER = "requester"
    FULFILLER = "fulfiller"
    ADMIN = "admin"


# State machine: current status -> {next status -> parties allowed to move it}
BOOKING_TRANSITIONS: dict[BookingStatus, dict[BookingStatus, frozenset[Party]]] = {
    BookingStatus.PENDING: {
        BookingStatus.DRIVER_ASSIGNED: frozenset({Party.DISPATCH}),
        BookingStatus.CANCELLED: frozenset({Party.REQUESTER, Party.ADMIN}),
    },
    BookingStatus.DRIVER_ASSIGNED: {
        BookingStatus.DRIVER_EN_ROUTE: frozenset({Party.FULFILLER}),
        BookingStatus.CANCELLED: frozenset(
            {Party.REQUESTER, Party.FULFILLER, Party.ADMIN}
        ),
    },
    BookingStatus.DRIVER_EN_ROUTE: {
        BookingStatus.PICKED_UP: frozenset({Party.FULFILLER}),
        BookingStatus.CANCELLED: frozenset(
            {Party.REQUESTER, Party.FULFILLER, Party.ADMIN}
        ),
    },
    BookingStatus.PICKED_UP: {
        BookingStatus.IN_TRANSIT: frozenset({Party.FULFILLER}),
        BookingStatus.CANCELLED: frozenset({Party.ADMIN}),
    },
    BookingStatus.IN_TRANSIT: {
        BookingStatus.COMPLETED: frozenset({Party.FULFILLER}),
        BookingStatus.CANCELLED: frozenset({Party.ADMIN}),
    },
    BookingStatus.COMPLETED: {},
    BookingStatus.CANCELLED: {},
}

TERMINAL_STATUSES = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED})

# Timestamp column stamped when a booking enters each status
STATUS_TIMESTAMPS: dict[BookingStatus, str] = {
    BookingStatus.PENDING: "requested_at",
    BookingStatus.DRIVER_ASSIGNED: "assigned_at",
    BookingStatus.DRIVER_EN_ROUTE: "en_route_at",
    BookingStatus.PICKED_UP: "picked_up_at",
    BookingStatus.IN_TRANSIT: "in_transit_at",
    BookingStatus.COMPLETED: "completed_at",
    BookingStatus.CANCELLED: "cancelled_at",
}


class ActorRole(str, enum.Enum):
    USER = "user"
    DRIVER = "driver"
    LOGISTICS = "logistics"
    ADMIN = "admin"


class CancelledBy(str, enum.Enum):
    USER = "user"
    DRIVER = "driver"
    ADMIN = "admin"


class FulfillerKind(str, enum.Enum):
    DRIVER = "driver"
    LOGISTICS = "logistics"


class ApprovalStatus(str, enum.Enum):
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    SUSPENDED = "suspended"
    ACTIVE = "active"


ASSIGNABLE_APPROVALS = frozenset({ApprovalStatus.APPROVED, ApprovalStatus.ACTIVE})

APPROVAL_TRANSITIONS: dict[ApprovalStatus, set[ApprovalStatus]] = {
    ApprovalStatus.PENDING_APPROVAL: {ApprovalStatus.APPROVED, ApprovalStatus.REJECTED},
    ApprovalStatus.APPROVED: {ApprovalStatus.SUSPENDED},
    ApprovalStatus.ACTIVE: {ApprovalStatus.SUSPENDED},
    ApprovalStatus.SUSPENDED: {ApprovalStatus.APPROVED},
    ApprovalStatus.REJECTED: set(),
}


class Availability(str, enum.Enum):
    OFFLINE = "offline"
    AVAILABLE = "available"
    BUSY = "busy"  # self-declared, no booking bound
    ON_TRIP = "on_trip"
    ON_DELIVERY = "on_delivery"


# Availability values that mean "a booking is bound to this fulfiller"
RESERVED_AVAILABILITY = frozenset({Availability.ON_TRIP, Availability.ON_DELIVERY})

# Values a fulfiller may pick for themselves
SELF_SERVICE_AVAILABILITY = frozenset(
    {Availability.OFFLINE, Availability.AVAILABLE, Availability.BUSY}
)

RESERVATION_FOR_KIND: dict[FulfillerKind, Availability] = {
    FulfillerKind.DRIVER: Availability.ON_TRIP,
    FulfillerKind.LOGISTICS: Availability.ON_DELIVERY,
}

# Which fulfiller kinds an admin is offered for each booking type
KINDS_FOR_BOOKING_TYPE: dict[BookingType, frozenset[FulfillerKind]] = {
    BookingType.RIDE: frozenset({FulfillerKind.DRIVER}),
    BookingType.DELIVERY: frozenset({FulfillerKind.DRIVER, FulfillerKind.LOGISTICS}),
}


class PriceSetBy(str, enum.Enum):
    ADMIN = "admin"
    DRIVER = "driver"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    TRANSFER = "transfer"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class ConfirmedBy(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


class RatingDimension(str, enum.Enum):
    PUNCTUALITY = "punctuality"
    PROFESSIONALISM = "professionalism"
    VEHICLE_CONDITION = "vehicle_condition"
    COMMUNICATION = "communication"
    PACKAGE_HANDLING = "package_handling"


class ReviewType(str, enum.Enum):
    USER_TO_DRIVER = "user_to_driver"

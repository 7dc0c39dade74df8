"""
Domain error taxonomy.

Every error carries a machine-readable ``kind`` so the API layer can map it
to a status code without inspecting messages.  All of these are expected
outcomes reported straight to the caller; only ``Unavailable`` comes from
the storage layer.
"""

from __future__ import annotations


class BookingError(Exception):
    kind = "booking_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(BookingError):
    kind = "not_found"


class Unauthorized(BookingError):
    """Actor is not the owner, the bound fulfiller, or an admin."""

    kind = "unauthorized"


class InvalidTransition(BookingError):
    """Raised when a booking status change violates the state machine."""

    kind = "invalid_transition"


class WrongBookingState(InvalidTransition):
    kind = "wrong_booking_state"


class AlreadyTerminal(BookingError):
    kind = "already_terminal"


class NotApproved(BookingError):
    kind = "not_approved"


class FulfillerNotApproved(NotApproved):
    kind = "fulfiller_not_approved"


class IneligibleFulfiller(BookingError):
    """The fulfiller's kind cannot serve this booking type."""

    kind = "ineligible_fulfiller"


class AlreadyReserved(BookingError):
    kind = "already_reserved"


class FulfillerBusy(BookingError):
    kind = "fulfiller_busy"


class BlockedByActiveBooking(BookingError):
    kind = "blocked_by_active_booking"


class DuplicateReview(BookingError):
    kind = "duplicate_review"


class DuplicateRegistration(BookingError):
    kind = "duplicate_registration"


class InvalidRating(BookingError):
    kind = "invalid_rating"


class InvariantViolation(BookingError):
    kind = "invariant_violation"


class Unavailable(BookingError):
    """Storage kept failing after the bounded number of retries."""

    kind = "unavailable"


class PartialFailure(BookingError):
    """The booking write committed but the fulfiller release did not.

    Release is idempotent, so the caller (or the reconciler) can retry it
    using ``fulfiller_id``.
    """

    kind = "partial_failure"

    def __init__(self, message: str, *, booking_id: int, fulfiller_id: int):
        super().__init__(message)
        self.booking_id = booking_id
        self.fulfiller_id = fulfiller_id

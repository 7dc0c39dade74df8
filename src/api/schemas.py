"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from src.domain.entities import (
    Booking,
    DeliveryDetails,
    Fulfiller,
    Location,
    PackageDetails,
    Review,
)
from src.domain.enums import (
    ApprovalStatus,
    Availability,
    BookingStatus,
    BookingType,
    CancelledBy,
    ConfirmedBy,
    FulfillerKind,
    PaymentMethod,
    PaymentStatus,
    PriceSetBy,
    RatingDimension,
)


# ── Requests ──────────────────────────────────────────────────────────


class LocationIn(BaseModel):
    address: str = Field(..., min_length=1, max_length=255)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)

    def to_domain(self) -> Location:
        return Location(self.address, self.latitude, self.longitude)


class PackageIn(BaseModel):
    description: Optional[str] = Field(None, max_length=500)
    weight_kg: Optional[float] = Field(None, gt=0)
    length_cm: Optional[float] = Field(None, gt=0)
    width_cm: Optional[float] = Field(None, gt=0)
    height_cm: Optional[float] = Field(None, gt=0)
    declared_value: Optional[float] = Field(None, ge=0)
    is_fragile: bool = False
    special_instructions: Optional[str] = Field(None, max_length=500)

    def to_domain(self) -> PackageDetails:
        return PackageDetails(**self.model_dump())


class RideBookingCreate(BaseModel):
    pickup: LocationIn
    destination: LocationIn
    payment_method: PaymentMethod = PaymentMethod.CASH


class DeliveryBookingCreate(RideBookingCreate):
    package: PackageIn = Field(default_factory=PackageIn)


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class StatusUpdateRequest(BaseModel):
    status: BookingStatus
    reason: Optional[str] = Field(None, max_length=500)


class AssignRequest(BaseModel):
    fulfiller_id: int
    amount: float = Field(..., gt=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class PriceRequest(BaseModel):
    amount: float = Field(..., gt=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class ReviewCreate(BaseModel):
    booking_id: int
    # range is checked by the domain so it reports ``invalid_rating``
    rating: int
    comment: Optional[str] = Field(None, max_length=500)
    feedback: dict[RatingDimension, int] = Field(default_factory=dict)
    is_anonymous: bool = False


class FulfillerRegister(BaseModel):
    kind: FulfillerKind
    display_name: str = Field(..., min_length=1, max_length=120)


class AvailabilityUpdate(BaseModel):
    availability: Availability


class ApprovalUpdate(BaseModel):
    approved: bool
    reason: Optional[str] = Field(None, max_length=500)


class SuspensionUpdate(BaseModel):
    suspended: bool
    reason: Optional[str] = Field(None, max_length=500)


# ── Responses ─────────────────────────────────────────────────────────


class LocationOut(BaseModel):
    address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    model_config = {"from_attributes": True}


class PackageOut(BaseModel):
    description: Optional[str] = None
    weight_kg: Optional[float] = None
    length_cm: Optional[float] = None
    width_cm: Optional[float] = None
    height_cm: Optional[float] = None
    declared_value: Optional[float] = None
    is_fragile: bool = False
    special_instructions: Optional[str] = None

    model_config = {"from_attributes": True}


class PriceOut(BaseModel):
    amount: float
    currency: str
    set_by: PriceSetBy
    set_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PaymentOut(BaseModel):
    method: PaymentMethod
    status: PaymentStatus
    confirmed_at: Optional[datetime] = None
    confirmed_by: Optional[ConfirmedBy] = None

    model_config = {"from_attributes": True}


class BookingResponse(BaseModel):
    id: int
    requester_id: int
    type: BookingType
    status: BookingStatus
    fulfiller_id: Optional[int] = None
    pickup: LocationOut
    destination: LocationOut
    package: Optional[PackageOut] = None
    price: Optional[PriceOut] = None
    payment: PaymentOut
    requested_at: Optional[datetime] = None
    assigned_at: Optional[datetime] = None
    en_route_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    in_transit_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[CancelledBy] = None

    @classmethod
    def from_entity(cls, booking: Booking) -> "BookingResponse":
        details = booking.details
        package = None
        if isinstance(details, DeliveryDetails):
            package = PackageOut.model_validate(details.package)
        return cls(
            id=booking.id,
            requester_id=booking.requester_id,
            type=booking.type,
            status=booking.status,
            fulfiller_id=booking.fulfiller_id,
            pickup=LocationOut.model_validate(details.pickup),
            destination=LocationOut.model_validate(details.destination),
            package=package,
            price=PriceOut.model_validate(booking.price) if booking.price else None,
            payment=PaymentOut.model_validate(booking.payment),
            requested_at=booking.requested_at,
            assigned_at=booking.assigned_at,
            en_route_at=booking.en_route_at,
            picked_up_at=booking.picked_up_at,
            in_transit_at=booking.in_transit_at,
            completed_at=booking.completed_at,
            cancelled_at=booking.cancelled_at,
            cancellation_reason=booking.cancellation_reason,
            cancelled_by=booking.cancelled_by,
        )


class DimensionRatingOut(BaseModel):
    average: float
    count: int


class FulfillerResponse(BaseModel):
    id: int
    user_id: int
    kind: FulfillerKind
    display_name: str
    approval_status: ApprovalStatus
    availability: Availability
    current_booking_id: Optional[int] = None
    rating_average: float = 0.0
    rating_total: int = 0
    rating_breakdown: dict[str, DimensionRatingOut] = {}
    rejection_reason: Optional[str] = None
    suspension_reason: Optional[str] = None

    @classmethod
    def from_entity(cls, fulfiller: Fulfiller) -> "FulfillerResponse":
        return cls(
            id=fulfiller.id,
            user_id=fulfiller.user_id,
            kind=fulfiller.kind,
            display_name=fulfiller.display_name,
            approval_status=fulfiller.approval_status,
            availability=fulfiller.availability,
            current_booking_id=fulfiller.current_booking_id,
            rating_average=round(fulfiller.rating.average, 2),
            rating_total=fulfiller.rating.total,
            rating_breakdown={
                dimension.value: DimensionRatingOut(
                    average=round(value.average, 2), count=value.count
                )
                for dimension, value in fulfiller.rating.breakdown.items()
            },
            rejection_reason=fulfiller.rejection_reason,
            suspension_reason=fulfiller.suspension_reason,
        )


class ReviewResponse(BaseModel):
    id: int
    booking_id: int
    reviewer_id: Optional[int] = None
    fulfiller_id: int
    rating: int
    comment: Optional[str] = None
    feedback: dict[str, int] = {}
    is_anonymous: bool = False
    created_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, review: Review) -> "ReviewResponse":
        return cls(
            id=review.id,
            booking_id=review.booking_id,
            reviewer_id=None if review.is_anonymous else review.reviewer_id,
            fulfiller_id=review.fulfiller_id,
            rating=review.rating,
            comment=review.comment,
            feedback={d.value: v for d, v in review.feedback.items()},
            is_anonymous=review.is_anonymous,
            created_at=review.created_at,
        )


class Pagination(BaseModel):
    page: int
    pages: int
    total: int
    limit: int

    @classmethod
    def of(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, pages=-(-total // limit), total=total, limit=limit)


class BookingPage(BaseModel):
    data: list[BookingResponse]
    pagination: Pagination


class ReviewPage(BaseModel):
    data: list[ReviewResponse]
    pagination: Pagination


class RatingStats(BaseModel):
    fulfiller_id: int
    average: float
    total: int
    distribution: dict[int, int]


class RequesterStats(BaseModel):
    total_bookings: int
    completed_bookings: int
    cancelled_bookings: int
    ride_bookings: int
    delivery_bookings: int
    total_spent: float
    completion_rate: int


class FulfillerStats(BaseModel):
    total_bookings: int
    completed_bookings: int
    cancelled_bookings: int
    gross_earnings: float
    platform_fee: float
    total_earnings: float
    completion_rate: int
    rating_average: float
    rating_total: int
    availability: str


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    kind: str
    detail: str

"""
SQLAlchemy ORM models  (maps to PostgreSQL).

Tables
------
* ``fulfillers`` -- drivers and logistics personnel (discriminated by ``kind``)
* ``bookings``   -- ride and delivery requests
* ``reviews``    -- one review per completed booking

Indexes
-------
* **B-Tree** on ``bookings(requester_id, created_at)``, ``bookings(fulfiller_id,
  status)``, ``bookings(status)`` and ``bookings(type, status)`` for the
  listing and statistics queries.
* ``fulfillers(approval_status)`` and ``fulfillers(rating_average)`` for the
  eligible-fulfiller listing.
* Unique ``reviews(booking_id)`` enforces one review per booking.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)

from .database import Base
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
    ReviewType,
)


def _enum(enum_cls, name: str) -> Enum:
    # persist the lowercase ``.value`` rather than the member name
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
    )


class FulfillerModel(Base):
    __tablename__ = "fulfillers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False)
    kind = Column(_enum(FulfillerKind, "fulfillerkind"), nullable=False)
    display_name = Column(String(120), nullable=False, default="")

    approval_status = Column(
        _enum(ApprovalStatus, "approvalstatus"),
        default=ApprovalStatus.PENDING_APPROVAL,
        nullable=False,
    )
    availability = Column(
        _enum(Availability, "availability"),
        default=Availability.OFFLINE,
        nullable=False,
    )
    # Plain integer rather than a FK: bookings already reference fulfillers
    current_booking_id = Column(Integer, nullable=True)

    rating_average = Column(Float, default=0.0, nullable=False)
    rating_total = Column(Integer, default=0, nullable=False)
    rating_breakdown = Column(JSON, default=dict, nullable=False)
    rating_version = Column(Integer, default=0, nullable=False)

    approved_by = Column(Integer, nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(String(500), nullable=True)
    suspended_at = Column(DateTime(timezone=True), nullable=True)
    suspension_reason = Column(String(500), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "kind", name="uq_fulfillers_user_kind"),
        Index("idx_fulfillers_approval", "approval_status"),
        Index("idx_fulfillers_availability", "availability"),
        Index("idx_fulfillers_rating", "rating_average"),
    )


class BookingModel(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    requester_id = Column(Integer, nullable=False)
    type = Column(_enum(BookingType, "bookingtype"), nullable=False)
    status = Column(
        _enum(BookingStatus, "bookingstatus"),
        default=BookingStatus.PENDING,
        nullable=False,
    )
    fulfiller_id = Column(Integer, ForeignKey("fulfillers.id"), nullable=True)

    # Locations (shared by both booking types)
    pickup_address = Column(String(255), nullable=False)
    pickup_lat = Column(Float, nullable=True)
    pickup_lng = Column(Float, nullable=True)
    destination_address = Column(String(255), nullable=False)
    destination_lat = Column(Float, nullable=True)
    destination_lng = Column(Float, nullable=True)

    # Delivery-only package details
    package_description = Column(String(500), nullable=True)
    package_weight_kg = Column(Float, nullable=True)
    package_length_cm = Column(Float, nullable=True)
    package_width_cm = Column(Float, nullable=True)
    package_height_cm = Column(Float, nullable=True)
    package_value = Column(Float, nullable=True)
    package_is_fragile = Column(Boolean, default=False, nullable=False)
    package_special_instructions = Column(String(500), nullable=True)

    price_amount = Column(Float, nullable=True)
    price_currency = Column(String(3), nullable=True)
    price_set_by = Column(_enum(PriceSetBy, "pricesetby"), nullable=True)
    price_set_at = Column(DateTime(timezone=True), nullable=True)

    payment_method = Column(
        _enum(PaymentMethod, "paymentmethod"),
        default=PaymentMethod.CASH,
        nullable=False,
    )
    payment_status = Column(
        _enum(PaymentStatus, "paymentstatus"),
        default=PaymentStatus.PENDING,
        nullable=False,
    )
    payment_confirmed_at = Column(DateTime(timezone=True), nullable=True)
    payment_confirmed_by = Column(_enum(ConfirmedBy, "confirmedby"), nullable=True)

    requested_at = Column(DateTime(timezone=True), nullable=True)
    assigned_at = Column(DateTime(timezone=True), nullable=True)
    en_route_at = Column(DateTime(timezone=True), nullable=True)
    picked_up_at = Column(DateTime(timezone=True), nullable=True)
    in_transit_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    cancellation_reason = Column(String(500), nullable=True)
    cancelled_by = Column(_enum(CancelledBy, "cancelledby"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_bookings_requester", "requester_id", "created_at"),
        Index("idx_bookings_fulfiller", "fulfiller_id", "status"),
        Index("idx_bookings_status", "status"),
        Index("idx_bookings_type_status", "type", "status"),
    )


class ReviewModel(Base):
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(
        Integer, ForeignKey("bookings.id"), unique=True, nullable=False
    )
    reviewer_id = Column(Integer, nullable=False)
    fulfiller_id = Column(Integer, ForeignKey("fulfillers.id"), nullable=False)
    type = Column(
        _enum(ReviewType, "reviewtype"),
        default=ReviewType.USER_TO_DRIVER,
        nullable=False,
    )
    rating = Column(Integer, nullable=False)
    comment = Column(String(500), nullable=True)
    feedback = Column(JSON, default=dict, nullable=False)
    is_anonymous = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_reviews_fulfiller", "fulfiller_id", "created_at"),
        Index("idx_reviews_reviewer", "reviewer_id", "created_at"),
    )

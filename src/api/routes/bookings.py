"""
Booking endpoints
=================

POST  /api/v1/bookings/ride                       -- request a ride
POST  /api/v1/bookings/delivery                   -- request a delivery
GET   /api/v1/bookings                            -- my bookings (paginated)
GET   /api/v1/bookings/stats                      -- my booking statistics
GET   /api/v1/bookings/{booking_id}               -- one booking
PATCH /api/v1/bookings/{booking_id}/cancel        -- cancel
PATCH /api/v1/bookings/{booking_id}/confirm-payment -- mark a completed booking paid
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db, get_notifier, get_principal
from src.api.middleware import limiter
from src.api.schemas import (
    BookingPage,
    BookingResponse,
    CancelRequest,
    DeliveryBookingCreate,
    Pagination,
    RequesterStats,
    RideBookingCreate,
)
from src.config import settings
from src.domain.entities import DeliveryDetails, Principal, RideDetails
from src.domain.enums import BookingStatus, BookingType
from src.infrastructure.notifications import Notifier
from src.services.bookings import BookingDesk
from src.services.lifecycle import BookingLifecycle

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post(
    "/ride",
    status_code=201,
    response_model=BookingResponse,
    summary="Request a ride",
)
@limiter.limit(settings.rate_limit)
async def create_ride_booking(
    request: Request,
    body: RideBookingCreate,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    details = RideDetails(
        pickup=body.pickup.to_domain(), destination=body.destination.to_domain()
    )
    booking = await BookingDesk(db, notifier).create(
        principal, details, body.payment_method
    )
    return BookingResponse.from_entity(booking)


@router.post(
    "/delivery",
    status_code=201,
    response_model=BookingResponse,
    summary="Request a package delivery",
)
@limiter.limit(settings.rate_limit)
async def create_delivery_booking(
    request: Request,
    body: DeliveryBookingCreate,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    details = DeliveryDetails(
        pickup=body.pickup.to_domain(),
        destination=body.destination.to_domain(),
        package=body.package.to_domain(),
    )
    booking = await BookingDesk(db, notifier).create(
        principal, details, body.payment_method
    )
    return BookingResponse.from_entity(booking)


@router.get("", response_model=BookingPage, summary="List my bookings")
@limiter.limit(settings.rate_limit)
async def list_my_bookings(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[BookingStatus] = None,
    type: Optional[BookingType] = None,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    bookings, total = await BookingDesk(db).list_mine(
        principal, page=page, limit=limit, status=status, booking_type=type
    )
    return BookingPage(
        data=[BookingResponse.from_entity(b) for b in bookings],
        pagination=Pagination.of(page, limit, total),
    )


@router.get("/stats", response_model=RequesterStats, summary="My booking statistics")
@limiter.limit(settings.rate_limit)
async def booking_stats(
    request: Request,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    return RequesterStats(**await BookingDesk(db).stats(principal))


@router.get("/{booking_id}", response_model=BookingResponse, summary="Get a booking")
@limiter.limit(settings.rate_limit)
async def get_booking(
    request: Request,
    booking_id: int,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    return BookingResponse.from_entity(await BookingDesk(db).get(booking_id, principal))


@router.patch(
    "/{booking_id}/cancel",
    response_model=BookingResponse,
    summary="Cancel a booking",
)
@limiter.limit(settings.rate_limit)
async def cancel_booking(
    request: Request,
    booking_id: int,
    body: Optional[CancelRequest] = None,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    reason = body.reason if body else None
    booking = await BookingLifecycle(db, notifier).cancel(booking_id, principal, reason)
    return BookingResponse.from_entity(booking)


@router.patch(
    "/{booking_id}/confirm-payment",
    response_model=BookingResponse,
    summary="Confirm payment for a completed booking",
)
@limiter.limit(settings.rate_limit)
async def confirm_payment(
    request: Request,
    booking_id: int,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    booking = await BookingDesk(db, notifier).confirm_payment(booking_id, principal)
    return BookingResponse.from_entity(booking)

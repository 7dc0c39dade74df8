"""
Fulfiller (driver / logistics) endpoints
========================================

POST  /api/v1/fulfillers                                   -- register a profile
GET   /api/v1/fulfillers/me                                -- my profile
PUT   /api/v1/fulfillers/me/availability                   -- go offline / available / busy
GET   /api/v1/fulfillers/me/assignments                    -- bookings assigned to me
PATCH /api/v1/fulfillers/me/assignments/{booking_id}/status -- advance a trip
GET   /api/v1/fulfillers/me/statistics                     -- earnings and completion
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db, get_notifier, get_principal
from src.api.middleware import limiter
from src.api.schemas import (
    AvailabilityUpdate,
    BookingPage,
    BookingResponse,
    FulfillerRegister,
    FulfillerResponse,
    FulfillerStats,
    Pagination,
    StatusUpdateRequest,
)
from src.config import settings
from src.domain.entities import Principal
from src.domain.enums import FulfillerKind
from src.infrastructure.notifications import Notifier
from src.services.availability import FulfillerAvailability
from src.services.fulfillers import FulfillerRegistry
from src.services.lifecycle import BookingLifecycle

router = APIRouter(prefix="/fulfillers", tags=["fulfillers"])


@router.post(
    "",
    status_code=201,
    response_model=FulfillerResponse,
    summary="Register as a driver or logistics fulfiller",
)
@limiter.limit(settings.rate_limit)
async def register_fulfiller(
    request: Request,
    body: FulfillerRegister,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    fulfiller = await FulfillerRegistry(db, notifier).register(
        principal, body.kind, body.display_name
    )
    return FulfillerResponse.from_entity(fulfiller)


@router.get("/me", response_model=FulfillerResponse, summary="My fulfiller profile")
@limiter.limit(settings.rate_limit)
async def my_profile(
    request: Request,
    kind: Optional[FulfillerKind] = None,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    return FulfillerResponse.from_entity(
        await FulfillerRegistry(db).profile(principal, kind)
    )


@router.put(
    "/me/availability",
    response_model=FulfillerResponse,
    summary="Set my availability",
)
@limiter.limit(settings.rate_limit)
async def set_availability(
    request: Request,
    body: AvailabilityUpdate,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    availability = FulfillerAvailability(db)
    me = await availability.for_principal(principal)
    fulfiller = await availability.set_availability(me.id, body.availability)
    return FulfillerResponse.from_entity(fulfiller)


@router.get(
    "/me/assignments",
    response_model=BookingPage,
    summary="Bookings assigned to me",
)
@limiter.limit(settings.rate_limit)
async def my_assignments(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    active: bool = False,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    bookings, total = await FulfillerRegistry(db).assignments(
        principal, page=page, limit=limit, active_only=active
    )
    return BookingPage(
        data=[BookingResponse.from_entity(b) for b in bookings],
        pagination=Pagination.of(page, limit, total),
    )


@router.patch(
    "/me/assignments/{booking_id}/status",
    response_model=BookingResponse,
    summary="Advance an assigned trip",
)
@limiter.limit(settings.rate_limit)
async def advance_trip(
    request: Request,
    booking_id: int,
    body: StatusUpdateRequest,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    # only fulfillers with a profile reach the state machine here
    await FulfillerAvailability(db).for_principal(principal)
    booking = await BookingLifecycle(db, notifier).advance(
        booking_id, principal, body.status, reason=body.reason
    )
    return BookingResponse.from_entity(booking)


@router.get(
    "/me/statistics",
    response_model=FulfillerStats,
    summary="My earnings and completion statistics",
)
@limiter.limit(settings.rate_limit)
async def my_statistics(
    request: Request,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    return FulfillerStats(**await FulfillerRegistry(db).statistics(principal))

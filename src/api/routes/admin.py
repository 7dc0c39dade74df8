"""
Admin / observability endpoints
===============================

PUT  /api/v1/admin/bookings/{booking_id}/assign     -- assign a fulfiller and price
PUT  /api/v1/admin/bookings/{booking_id}/price      -- revise an admin-set price
GET  /api/v1/admin/fulfillers/eligible              -- approved fulfillers for a booking type
PUT  /api/v1/admin/fulfillers/{fulfiller_id}/approval   -- approve / reject
PUT  /api/v1/admin/fulfillers/{fulfiller_id}/suspension -- suspend / reactivate
POST /api/v1/admin/fulfillers/{fulfiller_id}/release    -- retry a failed release
GET  /api/v1/admin/health                           -- simple health check
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db, get_notifier, get_principal
from src.api.middleware import limiter
from src.api.schemas import (
    ApprovalUpdate,
    AssignRequest,
    BookingResponse,
    FulfillerResponse,
    HealthResponse,
    PriceRequest,
    SuspensionUpdate,
)
from src.config import settings
from src.domain.entities import Principal
from src.domain.enums import BookingType
from src.domain.errors import Unauthorized
from src.infrastructure.notifications import Notifier
from src.services.assignment import AssignmentService
from src.services.availability import FulfillerAvailability
from src.services.fulfillers import FulfillerRegistry

router = APIRouter(prefix="/admin", tags=["admin"])


def _require_admin(principal: Principal) -> None:
    if not principal.is_admin:
        raise Unauthorized("Admin role required")


@router.put(
    "/bookings/{booking_id}/assign",
    response_model=BookingResponse,
    summary="Assign a fulfiller to a pending booking",
)
@limiter.limit(settings.rate_limit)
async def assign_fulfiller(
    request: Request,
    booking_id: int,
    body: AssignRequest,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    booking = await AssignmentService(db, notifier).assign(
        booking_id, body.fulfiller_id, body.amount, principal, body.currency
    )
    return BookingResponse.from_entity(booking)


@router.put(
    "/bookings/{booking_id}/price",
    response_model=BookingResponse,
    summary="Revise the price of a booking",
)
@limiter.limit(settings.rate_limit)
async def revise_price(
    request: Request,
    booking_id: int,
    body: PriceRequest,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    _require_admin(principal)
    booking = await AssignmentService(db).revise_price(
        booking_id, body.amount, principal, body.currency
    )
    return BookingResponse.from_entity(booking)


@router.get(
    "/fulfillers/eligible",
    response_model=list[FulfillerResponse],
    summary="Approved fulfillers that can serve a booking type",
)
@limiter.limit(settings.rate_limit)
async def eligible_fulfillers(
    request: Request,
    booking_type: BookingType,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    _require_admin(principal)
    fulfillers = await AssignmentService(db).list_available(booking_type)
    return [FulfillerResponse.from_entity(f) for f in fulfillers]


@router.put(
    "/fulfillers/{fulfiller_id}/approval",
    response_model=FulfillerResponse,
    summary="Approve or reject a fulfiller",
)
@limiter.limit(settings.rate_limit)
async def update_approval(
    request: Request,
    fulfiller_id: int,
    body: ApprovalUpdate,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    fulfiller = await FulfillerRegistry(db, notifier).set_approval(
        fulfiller_id, body.approved, principal, body.reason
    )
    return FulfillerResponse.from_entity(fulfiller)


@router.put(
    "/fulfillers/{fulfiller_id}/suspension",
    response_model=FulfillerResponse,
    summary="Suspend or reactivate a fulfiller",
)
@limiter.limit(settings.rate_limit)
async def update_suspension(
    request: Request,
    fulfiller_id: int,
    body: SuspensionUpdate,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    fulfiller = await FulfillerRegistry(db, notifier).set_suspension(
        fulfiller_id, body.suspended, principal, body.reason
    )
    return FulfillerResponse.from_entity(fulfiller)


@router.post(
    "/fulfillers/{fulfiller_id}/release",
    response_model=FulfillerResponse,
    summary="Release a fulfiller left bound by a failed release",
)
@limiter.limit(settings.rate_limit)
async def release_fulfiller(
    request: Request,
    fulfiller_id: int,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    _require_admin(principal)
    fulfiller = await FulfillerAvailability(db).release_if_finished(fulfiller_id)
    return FulfillerResponse.from_entity(fulfiller)


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()

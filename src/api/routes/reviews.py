"""
Review endpoints
================

POST /api/v1/reviews                          -- review a completed booking
GET  /api/v1/fulfillers/{fulfiller_id}/reviews -- reviews of one fulfiller
GET  /api/v1/fulfillers/{fulfiller_id}/rating-stats -- star distribution of one fulfiller
"""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db, get_notifier, get_principal
from src.api.middleware import limiter
from src.api.schemas import (
    Pagination,
    RatingStats,
    ReviewCreate,
    ReviewPage,
    ReviewResponse,
)
from src.config import settings
from src.domain.entities import Principal
from src.infrastructure.notifications import Notifier
from src.services.availability import FulfillerAvailability
from src.services.reviews import ReviewService

router = APIRouter(tags=["reviews"])


@router.post(
    "/reviews",
    status_code=201,
    response_model=ReviewResponse,
    summary="Review the fulfiller of a completed booking",
)
@limiter.limit(settings.rate_limit)
async def submit_review(
    request: Request,
    body: ReviewCreate,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    review = await ReviewService(db, notifier).submit(
        principal,
        body.booking_id,
        body.rating,
        comment=body.comment,
        feedback=body.feedback,
        is_anonymous=body.is_anonymous,
    )
    return ReviewResponse.from_entity(review)


@router.get(
    "/fulfillers/{fulfiller_id}/reviews",
    response_model=ReviewPage,
    summary="List reviews of a fulfiller",
)
@limiter.limit(settings.rate_limit)
async def list_fulfiller_reviews(
    request: Request,
    fulfiller_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    await FulfillerAvailability(db).get(fulfiller_id)
    reviews, total = await ReviewService(db).list_for_fulfiller(
        fulfiller_id, page=page, limit=limit
    )
    return ReviewPage(
        data=[ReviewResponse.from_entity(r) for r in reviews],
        pagination=Pagination.of(page, limit, total),
    )


@router.get(
    "/fulfillers/{fulfiller_id}/rating-stats",
    response_model=RatingStats,
    summary="Rating average and 1-5 star distribution of a fulfiller",
)
@limiter.limit(settings.rate_limit)
async def fulfiller_rating_stats(
    request: Request,
    fulfiller_id: int,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    return RatingStats(**await ReviewService(db).rating_stats(fulfiller_id))

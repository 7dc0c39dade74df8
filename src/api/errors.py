"""
Domain error -> HTTP response mapping.

Services raise ``BookingError`` subclasses; this handler turns each into
``{"kind": ..., "detail": ...}`` with the status code for its ``kind``.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.domain.errors import BookingError, PartialFailure

logger = logging.getLogger(__name__)

STATUS_BY_KIND: dict[str, int] = {
    "not_found": 404,
    "unauthorized": 403,
    "invalid_transition": 409,
    "wrong_booking_state": 409,
    "already_terminal": 409,
    "not_approved": 409,
    "fulfiller_not_approved": 409,
    "ineligible_fulfiller": 409,
    "already_reserved": 409,
    "fulfiller_busy": 409,
    "blocked_by_active_booking": 409,
    "duplicate_review": 409,
    "duplicate_registration": 409,
    "invalid_rating": 422,
    "invariant_violation": 500,
    "partial_failure": 500,
    "unavailable": 503,
}


async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    status_code = STATUS_BY_KIND.get(exc.kind, 400)
    body = {"kind": exc.kind, "detail": exc.message}
    if isinstance(exc, PartialFailure):
        body.update(booking_id=exc.booking_id, fulfiller_id=exc.fulfiller_id)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status_code, content=body)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BookingError, booking_error_handler)

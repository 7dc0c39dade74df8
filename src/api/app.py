"""
FastAPI application factory.

* Registers routes for bookings, fulfillers, reviews and admin.
* Maps domain errors to ``{"kind", "detail"}`` JSON responses.
* Starts / stops the release reconciler via lifespan events.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.api.errors import register_error_handlers
from src.api.middleware import limiter
from src.api.routes import admin, bookings, fulfillers, reviews
from src.config import settings
from src.infrastructure.notifications import Notifier, NullNotifier
from src.infrastructure.redis_client import close_redis, get_redis
from src.workers import reconciler as _reconciler

logging.basicConfig(level=logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Wire Redis and start the reconciler on startup; undo on shutdown."""
    app.state.notifier = Notifier(
        await get_redis(),
        queue=settings.notification_queue,
        enabled=settings.notifications_enabled,
    )
    await _reconciler.start_reconcile_loop()
    yield
    await _reconciler.stop_reconcile_loop()
    await app.state.notifier.drain()
    await close_redis()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Ride & Delivery Booking API",
        description=(
            "Tracks ride and delivery bookings from request to completion, "
            "binds each to exactly one approved driver or logistics "
            "fulfiller, and keeps fulfillers from being double-booked."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.notifier = NullNotifier()

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    register_error_handlers(app)

    # Routers
    app.include_router(bookings.router, prefix="/api/v1")
    app.include_router(fulfillers.router, prefix="/api/v1")
    app.include_router(reviews.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app

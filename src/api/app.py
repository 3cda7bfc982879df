"""
FastAPI application factory.

* Registers routes for users, rides, admin, pricing and notifications.
* Creates tables and starts / stops the notification worker via lifespan.
* Applies rate limiting and request logging.
* Maps domain errors (bad fare input, illegal ride transitions) to HTTP.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.api.middleware import limiter, log_requests
from src.api.routes import admin, notifications, pricing, rides, users
from src.config import settings
from src.domain.entities import InvalidStateTransition
from src.domain.pricing import InvalidInputError
from src.infrastructure.database import init_models
from src.workers import notifier as _notifier

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and start the notification worker; stop it on shutdown."""
    if settings.create_tables_on_startup:
        await init_models()
    await _notifier.start_notification_loop()
    yield
    await _notifier.stop_notification_loop()


async def invalid_input_handler(request: Request, exc: InvalidInputError):
    return JSONResponse(
        status_code=400,
        content={"detail": {"error": str(exc), "code": "VALIDATION_ERROR"}},
    )


async def invalid_transition_handler(request: Request, exc: InvalidStateTransition):
    logger.info("Rejected ride transition on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=409,
        content={"detail": {"error": str(exc), "code": "INVALID_TRANSITION"}},
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="Corporate Ride Booking API",
        description=(
            "Employees book rides that admins approve or reject.  Fares are "
            "computed from versioned pricing configurations, access tokens "
            "are revoked by password changes and account locks, and ride "
            "events fan out as notifications."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Domain errors
    app.add_exception_handler(InvalidInputError, invalid_input_handler)
    app.add_exception_handler(InvalidStateTransition, invalid_transition_handler)

    # Request logging
    app.middleware("http")(log_requests)

    # Routers
    app.include_router(users.router, prefix="/api/v1")
    app.include_router(rides.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")
    app.include_router(pricing.router, prefix="/api/v1")
    app.include_router(notifications.router, prefix="/api/v1")

    return app

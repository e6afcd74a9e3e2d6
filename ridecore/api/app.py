"""
FastAPI application factory.

* Registers routes for rides, dispatch and admin.
* Builds / releases the backends (store, location channel, locks,
  webhook notifier) via lifespan events.
* Maps domain errors to HTTP status codes.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from ridecore.api.middleware import limiter
from ridecore.api.routes import admin, dispatch, rides
from ridecore.bootstrap import build_container
from ridecore.config import settings
from ridecore.domain.errors import (
    CreditLimitExceededError,
    InvalidTransitionError,
    NotFoundError,
    TransientIOError,
    ValidationError,
)

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the ride core on startup; release it on shutdown."""
    container = await build_container(settings)
    app.state.container = container
    yield
    await container.aclose()


def _error(status_code: int):
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    return handler


async def _transient_io(request: Request, exc: TransientIOError) -> JSONResponse:
    logger.warning("Transient I/O failure on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"detail": "Service temporarily unavailable, retry later"},
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="Ride Core API",
        description=(
            "Ride lifecycle and dispatch for moto-taxi and delivery rides: "
            "pricing, driver matching by radius, live driver location, "
            "corporate credit checks and lifecycle webhooks."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Domain errors (resolved along the exception MRO)
    app.add_exception_handler(CreditLimitExceededError, _error(402))
    app.add_exception_handler(ValidationError, _error(422))
    app.add_exception_handler(NotFoundError, _error(404))
    app.add_exception_handler(InvalidTransitionError, _error(409))
    app.add_exception_handler(TransientIOError, _transient_io)

    # Routers
    app.include_router(rides.router, prefix="/api/v1")
    app.include_router(dispatch.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app

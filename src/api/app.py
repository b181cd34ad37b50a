"""
FastAPI application factory.

* Registers routes for rides, bookings, sweep jobs and admin.
* Starts / stops the background sweeper via lifespan events.
* Maps domain errors (``BookingEngineError``) and datastore failures to
  JSON responses.
* Applies rate-limiting.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError

from src.api.middleware import limiter
from src.api.routes import admin, bookings, jobs, rides
from src.config import settings
from src.domain.errors import BookingEngineError
from src.infrastructure.redis_client import close_redis
from src.workers import sweeper as _sweeper

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the sweeper on startup; stop it and release Redis on shutdown."""
    await _sweeper.start_sweeper_loop()
    yield
    await _sweeper.stop_sweeper_loop()
    await close_redis()


async def _engine_error_handler(request: Request, exc: BookingEngineError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def _datastore_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Datastore failure on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "datastore_unavailable",
            "detail": "The datastore could not complete the request; retry later.",
        },
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="Ride Capacity & Booking Engine",
        description=(
            "Brokers seat capacity on scheduled rides against concurrent "
            "booking requests, approvals, payments and cancellations, and "
            "sweeps stale rides to expired or completed."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Domain / infrastructure errors
    app.add_exception_handler(BookingEngineError, _engine_error_handler)
    app.add_exception_handler(SQLAlchemyError, _datastore_error_handler)

    # Routers
    app.include_router(rides.router, prefix="/api/v1")
    app.include_router(bookings.router, prefix="/api/v1")
    app.include_router(jobs.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app

"""FastAPI application for MentalSpace scheduling."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mentalspace import __version__
from mentalspace.api.middleware import RequestLoggingMiddleware
from mentalspace.api.routes import appointments, auth, health, recurring_appointments
from mentalspace.config import get_settings
from mentalspace.core.database import dispose_engine

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings = get_settings()
    logger.info("Starting MentalSpace API (practice timezone %s)", settings.practice_timezone)

    yield

    logger.info("Shutting down MentalSpace API")
    await dispose_engine()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="MentalSpace Scheduling API",
        description="Appointments and recurring appointment series for a mental-health practice",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health.router, tags=["health"])
    app.include_router(auth.router, prefix="/api/v1", tags=["auth"])
    app.include_router(appointments.router, prefix="/api/v1", tags=["appointments"])
    app.include_router(recurring_appointments.router, prefix="/api/v1", tags=["recurring-appointments"])

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception: {exc}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc) if settings.debug_mode else None,
            },
        )

    return app

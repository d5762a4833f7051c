"""
FastAPI Application Entry Point.

This is the main application file for the Tour Fleet Allocator.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from tourfleet.app.core.config import settings
from tourfleet.app.api.v1.router import router as api_v1_router
from tourfleet.app.db.session import engine, Base
from tourfleet.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)
from tourfleet.app.core.observability import ObservabilityMiddleware, configure_logging
from tourfleet.app.core.redis_client import close_redis, ping_redis

# Import models to ensure they are registered with Base
from tourfleet.app.models.fleet_vehicle import FleetVehicle  # noqa: F401 (before blocks for FK)
from tourfleet.app.models.availability_block import VehicleAvailabilityBlock  # noqa: F401
from tourfleet.app.models.driver_assignment import DriverAssignment  # noqa: F401
from tourfleet.app.models.blackout_date import BlackoutDate  # noqa: F401
from tourfleet.app.models.audit_log import AuditLog  # noqa: F401

configure_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    Creates database tables on startup, including the overlap
    constraint on availability blocks.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await close_redis()
    await engine.dispose()

# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Vehicle availability and booking allocation across storefront brands",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status, application information and cache reachability
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "cache": "up" if await ping_redis() else "down",
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Welcome to the Tour Fleet Allocator API",
        "docs": "/docs",
        "health": "/health",
    }

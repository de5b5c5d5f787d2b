"""
FastAPI Application Entry Point.

This is the main application file for the Tracking Backend.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from tracking_backend.app.core.config import settings
from tracking_backend.app.api.v1.router import router as api_v1_router
from tracking_backend.app.core.observability import ObservabilityMiddleware, configure_logging
from tracking_backend.app.core.store import TrackingStore, build_change_feed
from tracking_backend.app.db.procedures import install_procedures
from tracking_backend.app.db.session import Base, build_engine, build_session_factory
from tracking_backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from tracking_backend.app.models.priest_booking import PriestBooking  # noqa: F401
from tracking_backend.app.models.priest_location import PriestLocation  # noqa: F401


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Creates database tables and the location procedure on startup.
    2. Builds the tracking store once and shares it through app.state.
    3. Closes the change feed and disposes the engine on shutdown.

    A store placed on app.state before startup is used as-is.
    """
    configure_logging(settings.debug)

    if getattr(app.state, "store", None) is not None:
        yield
        return

    engine = build_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        if settings.location_rpc_enabled:
            await install_procedures(conn, settings.location_rpc_name)

    store = TrackingStore(build_session_factory(engine), build_change_feed())
    app.state.store = store
    try:
        yield
    finally:
        await store.close()
        await engine.dispose()
        app.state.store = None


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Live journey tracking for priest bookings",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """
    Health check endpoint.

    Returns:
        dict: Status, change feed reachability and application information
    """
    store = getattr(request.app.state, "store", None)
    feed_ok = store is not None and await store.feed.ping()
    return {
        "status": "healthy" if feed_ok else "degraded",
        "change_feed": "ok" if feed_ok else "unavailable",
        "app_name": settings.app_name,
        "version": settings.api_version,
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
        "message": "Welcome to the Priest Journey Tracking API",
        "docs": "/docs",
        "health": "/health",
    }

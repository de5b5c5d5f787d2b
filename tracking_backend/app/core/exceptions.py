"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes, the tracking error taxonomy and
global exception handlers.
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict, Optional

logger = logging.getLogger("tracking.errors")


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


# Tracking error taxonomy

class PositioningUnavailable(AppException):
    """Platform has no geolocation capability. Fatal for sampling only."""

    def __init__(self, message: str = "Geolocation is not supported by this platform"):
        super().__init__(
            message=message,
            error_code="ERR_GEO_001",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE
        )


class PositioningFailure(AppException):
    """A single position request failed (timeout, permission, unavailable)."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="ERR_GEO_002",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"code": code}
        )
        self.code = code


class JourneyStartError(AppException):
    """Writing the journey start failed. Carries the underlying store message."""

    def __init__(self, message: str, booking_id: Any = None):
        super().__init__(
            message=message or "Failed to start journey",
            error_code="ERR_JOURNEY_001",
            status_code=status.HTTP_502_BAD_GATEWAY,
            details={"booking_id": booking_id}
        )


class JourneyNotStartableError(AppException):
    """Caller-side gate: the booking is not confirmed or the journey already started."""

    def __init__(self, booking_id: Any, booking_status: str, journey_started: bool):
        super().__init__(
            message=(
                f"Tracking can only start for a confirmed booking whose journey has not started "
                f"(status: {booking_status}, journey started: {journey_started})"
            ),
            error_code="ERR_JOURNEY_002",
            status_code=status.HTTP_409_CONFLICT,
            details={
                "booking_id": booking_id,
                "status": booking_status,
                "journey_started": journey_started
            }
        )


class LocationUpdateError(AppException):
    """A single location write failed on every write path."""

    def __init__(self, booking_id: Any = None, errors: Optional[list] = None):
        super().__init__(
            message="Failed to update priest location",
            error_code="ERR_LOCATION_001",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"booking_id": booking_id, "errors": errors or []}
        )


class SnapshotFetchError(AppException):
    """Booking missing, unreadable, or not owned by the caller."""

    def __init__(self, message: str, booking_id: Any = None, reason: str = "not_found"):
        super().__init__(
            message=message,
            error_code="ERR_SNAPSHOT_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"booking_id": booking_id, "reason": reason}
        )
        self.reason = reason


class SubscriptionError(AppException):
    """Push transport failure for a change feed."""

    def __init__(self, message: str, channel: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="ERR_REALTIME_001",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"channel": channel}
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        409: "ERR_CONFLICT",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        },
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": jsonable_errors(exc.errors())
            }
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception: %s: %s", type(exc).__name__, exc)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )


def jsonable_errors(errors) -> list:
    # pydantic v2 puts the raw exception under "ctx"; keep only its text
    cleaned = []
    for error in errors:
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {k: str(v) for k, v in error["ctx"].items()}
        cleaned.append(error)
    return cleaned

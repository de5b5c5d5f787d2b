"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from tracking_backend.app.api.v1.endpoints import priest_tracking, booking_tracking

router = APIRouter()

# Priest - journey start and location writes
router.include_router(priest_tracking.router)

# Customer - snapshot and live feed
router.include_router(booking_tracking.router)

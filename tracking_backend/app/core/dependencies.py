"""
Authentication and service dependencies for FastAPI.

Identity comes from the bearer token; booking ownership is checked by
the services that need it.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from tracking_backend.app.core.jwt import decode_access_token
from tracking_backend.app.core.store import TrackingStore, get_store
from tracking_backend.app.services.journey_service import JourneyService
from tracking_backend.app.services.location_service import LocationService
from tracking_backend.app.services.snapshot_service import SnapshotService

# HTTP Bearer security scheme
security = HTTPBearer()


def user_from_token(token: str) -> dict:
    """
    Decode a bearer token into the caller's identity.

    Raises:
        HTTPException: 401 if the token is invalid or carries no user id
    """
    payload = decode_access_token(token)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not payload.get("user_id"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return payload


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> dict:
    """
    FastAPI dependency for JWT authentication.

    Returns:
        Decoded token payload containing sub, user_id and role
    """
    return user_from_token(credentials.credentials)


def get_journey_service(store: TrackingStore = Depends(get_store)) -> JourneyService:
    return JourneyService(store)


def get_location_service(store: TrackingStore = Depends(get_store)) -> LocationService:
    return LocationService(store)


def get_snapshot_service(store: TrackingStore = Depends(get_store)) -> SnapshotService:
    return SnapshotService(store)

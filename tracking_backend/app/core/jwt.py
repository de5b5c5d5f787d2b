"""
Access tokens for priests and customers.

Tracking endpoints only trust two claims: `user_id`, which must match the
booking's priest or customer, and `role`, checked by the role guards. The
live WebSocket receives the same token in its query string.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from tracking_backend.app.core.config import settings


def create_access_token(claims: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Sign a token carrying `claims` plus an `exp` claim.

    Example claims:
        {"sub": "pandit.sharma", "user_id": "6f1c...", "role": "PRIEST"}
    """
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    return jwt.encode(
        {**claims, "exp": datetime.now(timezone.utc) + lifetime},
        settings.secret_key,
        algorithm=settings.algorithm
    )


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Return the verified claims, or None for a bad, tampered or expired token."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None

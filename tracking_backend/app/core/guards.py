"""
Security guards for role-based access control.
"""

from typing import List
from fastapi import Depends, HTTPException, status
from tracking_backend.app.models.enums import UserRole
from tracking_backend.app.core.dependencies import get_current_user


def check_role(current_user: dict, allowed_roles: List[UserRole]) -> dict:
    """
    Validate the caller's role against ``allowed_roles``.

    Raises:
        HTTPException 403 if the role is missing, unknown or not allowed
    """
    user_role_str = current_user.get("role")

    if not user_role_str:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Role information missing from token"
        )

    try:
        user_role = UserRole(user_role_str)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid role in token"
        )

    if user_role not in allowed_roles:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Access denied. Required role: {', '.join([r.value for r in allowed_roles])}"
        )

    return current_user


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.post("/priest/bookings/{booking_id}/location")
        async def record_location(current_user: dict = Depends(require_role([UserRole.PRIEST]))):
            ...
    """
    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        return check_role(current_user, allowed_roles)

    return role_checker

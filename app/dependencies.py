"""
FastAPI dependency injection for authentication and authorization
"""

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional

from app.exceptions import PermissionDeniedError, UnauthenticatedError
from app.services.auth_service import CurrentUser, auth_service
from app.services.organization_service import organization_service

# Security scheme for Firebase ID tokens; a missing header becomes a 401 from our handler
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> CurrentUser:
    """
    Dependency to resolve the caller from a Firebase ID token

    Raises:
        UnauthenticatedError: If the token is missing or invalid
    """
    if credentials is None or not credentials.credentials:
        raise UnauthenticatedError("Missing bearer token")

    claims = await auth_service.verify_token(credentials.credentials)
    return await auth_service.resolve_current_user(claims)


async def require_platform_admin(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """Require a platform administrator (reviews requests, runs follower sync)"""
    if not current_user.is_platform_admin:
        raise PermissionDeniedError("Platform administrator access required")
    return current_user


async def require_organization_admin(
    organization_id: str,
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """
    Require the caller to be an admin of the organization in the path.

    Platform administrators pass as well.
    """
    if current_user.is_platform_admin:
        return current_user
    if not await organization_service.is_admin(current_user.uid, organization_id):
        raise PermissionDeniedError(
            f"Not an administrator of organization {organization_id}")
    return current_user


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[CurrentUser]:
    """
    Dependency to optionally get current user (doesn't raise error if not authenticated)
    """
    if credentials is None or not credentials.credentials:
        return None
    try:
        claims = await auth_service.verify_token(credentials.credentials)
        return await auth_service.resolve_current_user(claims)
    except UnauthenticatedError:
        return None

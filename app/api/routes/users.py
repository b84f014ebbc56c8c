"""
Current user's profile, followed organizations, alert feed and device registration
"""

from fastapi import APIRouter, Depends, status

from app.dependencies import get_current_user
from app.models.user import NotificationPreferences, User
from app.schemas.alert import AlertListResponse
from app.schemas.organization import OrganizationListResponse
from app.schemas.user import DeviceRegistration, ProfileUpdate
from app.services.alert_service import alert_service
from app.services.auth_service import CurrentUser, auth_service
from app.services.follow_service import follow_service

# Create router
router = APIRouter(prefix="/api/v1/users", tags=["Users"])


@router.get("/me", response_model=User)
async def get_profile(current_user: CurrentUser = Depends(get_current_user)):
    """
    Get current user's profile

    The profile document is created on first access.
    """
    return await auth_service.get_or_create_profile(current_user)


@router.put("/me", response_model=User)
async def update_profile(
    body: ProfileUpdate, current_user: CurrentUser = Depends(get_current_user)
):
    await auth_service.get_or_create_profile(current_user)
    return await auth_service.update_profile(
        current_user.uid, display_name=body.display_name, alert_radius=body.alert_radius
    )


@router.put("/me/preferences", response_model=User)
async def update_preferences(
    preferences: NotificationPreferences,
    current_user: CurrentUser = Depends(get_current_user),
):
    await auth_service.get_or_create_profile(current_user)
    return await auth_service.update_preferences(current_user.uid, preferences)


@router.post("/me/device", status_code=status.HTTP_204_NO_CONTENT)
async def register_device(
    body: DeviceRegistration, current_user: CurrentUser = Depends(get_current_user)
):
    """Store the push token for this user's device"""
    await auth_service.register_device(current_user.uid, body.fcm_token)


@router.delete("/me/device", status_code=status.HTTP_204_NO_CONTENT)
async def unregister_device(current_user: CurrentUser = Depends(get_current_user)):
    await auth_service.unregister_device(current_user.uid)


@router.get("/me/following", response_model=OrganizationListResponse)
async def get_followed_organizations(current_user: CurrentUser = Depends(get_current_user)):
    organizations = await follow_service.followed_organizations(current_user.uid)
    return {"organizations": organizations, "total": len(organizations)}


@router.get("/me/alerts", response_model=AlertListResponse)
async def get_alert_feed(current_user: CurrentUser = Depends(get_current_user)):
    """Active alerts from followed organizations, newest first"""
    alerts = await alert_service.list_followed_alerts(current_user.uid)
    return {"alerts": alerts, "total": len(alerts)}

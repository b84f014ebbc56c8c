"""
API Router for following organizations and per-group preferences
"""

from fastapi import APIRouter, Depends

from app.dependencies import get_current_user
from app.schemas.organization import FollowStatus, GroupPreferences, GroupPreferenceUpdate
from app.services.auth_service import CurrentUser
from app.services.follow_service import follow_service

router = APIRouter(prefix="/api/v1/organizations", tags=["Following"])


@router.post("/{organization_id}/follow", response_model=FollowStatus)
async def follow_organization(
    organization_id: str, current_user: CurrentUser = Depends(get_current_user)
):
    """Follow an organization. Following twice is a no-op."""
    changed = await follow_service.follow(current_user.uid, organization_id)
    return {"organizationId": organization_id, "following": True, "changed": changed}


@router.delete("/{organization_id}/follow", response_model=FollowStatus)
async def unfollow_organization(
    organization_id: str, current_user: CurrentUser = Depends(get_current_user)
):
    changed = await follow_service.unfollow(current_user.uid, organization_id)
    return {"organizationId": organization_id, "following": False, "changed": changed}


@router.get("/{organization_id}/follow", response_model=FollowStatus)
async def get_follow_status(
    organization_id: str, current_user: CurrentUser = Depends(get_current_user)
):
    following = await follow_service.is_following(current_user.uid, organization_id)
    return {"organizationId": organization_id, "following": following}


@router.put(
    "/{organization_id}/groups/{group_id}/preference", response_model=GroupPreferences
)
async def set_group_preference(
    organization_id: str,
    group_id: str,
    body: GroupPreferenceUpdate,
    current_user: CurrentUser = Depends(get_current_user),
):
    """Enable or mute one group's alerts. Groups never set are muted."""
    preferences = await follow_service.set_group_preference(
        current_user.uid, organization_id, group_id, body.enabled
    )
    return {"organizationId": organization_id, "preferences": preferences}


@router.get("/{organization_id}/preferences", response_model=GroupPreferences)
async def get_group_preferences(
    organization_id: str, current_user: CurrentUser = Depends(get_current_user)
):
    preferences = await follow_service.get_group_preferences(current_user.uid, organization_id)
    return {"organizationId": organization_id, "preferences": preferences}

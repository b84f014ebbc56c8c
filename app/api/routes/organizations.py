"""
API Router for the organization directory
"""

from fastapi import APIRouter, Depends, File, Query, UploadFile, status

from app.dependencies import get_current_user, require_organization_admin, require_platform_admin
from app.models.organization import Organization, OrganizationGroup
from app.schemas.organization import (
    AdminAdd,
    FollowerSyncResult,
    FollowerSyncSummary,
    GroupCreate,
    GroupListResponse,
    GroupUpdate,
    LogoResponse,
    OrganizationListResponse,
    OrganizationUpdate,
)
from app.services.auth_service import CurrentUser
from app.services.follow_service import follow_service
from app.services.organization_service import organization_service

router = APIRouter(prefix="/api/v1/organizations", tags=["Organizations"])


@router.get("", response_model=OrganizationListResponse)
async def list_organizations():
    """List verified organizations, sorted by name"""
    organizations = await organization_service.list_organizations(verified_only=True)
    return {"organizations": organizations, "total": len(organizations)}


@router.get("/search", response_model=OrganizationListResponse)
async def search_organizations(q: str = Query("", max_length=200)):
    """
    Search verified organizations

    - **q**: matched case-insensitively against name, type, city, state and zip
    """
    organizations = await organization_service.search(q)
    return {"organizations": organizations, "total": len(organizations)}


@router.post("/followers/sync", response_model=FollowerSyncSummary)
async def sync_all_followers(current_user: CurrentUser = Depends(require_platform_admin)):
    """Rebuild follower views and counts for every organization"""
    return await follow_service.sync_all_followers()


@router.get("/{organization_id}", response_model=Organization)
async def get_organization(organization_id: str):
    return await organization_service.get_organization(organization_id)


@router.put("/{organization_id}", response_model=Organization)
async def update_organization(
    organization_id: str,
    org_update: OrganizationUpdate,
    current_user: CurrentUser = Depends(require_organization_admin),
):
    """Update organization profile fields"""
    return await organization_service.update_organization(
        organization_id, org_update.to_firestore()
    )


@router.delete("/{organization_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_organization(
    organization_id: str,
    current_user: CurrentUser = Depends(require_organization_admin),
):
    await organization_service.delete_organization(organization_id)


@router.post("/{organization_id}/admins", response_model=Organization)
async def add_admin(
    organization_id: str,
    body: AdminAdd,
    current_user: CurrentUser = Depends(require_organization_admin),
):
    return await organization_service.add_admin(organization_id, body.user_id)


@router.delete("/{organization_id}/admins/{user_id}", response_model=Organization)
async def remove_admin(
    organization_id: str,
    user_id: str,
    current_user: CurrentUser = Depends(require_organization_admin),
):
    return await organization_service.remove_admin(organization_id, user_id)


@router.post("/{organization_id}/logo", response_model=LogoResponse)
async def upload_logo(
    organization_id: str,
    file: UploadFile = File(...),
    current_user: CurrentUser = Depends(require_organization_admin),
):
    """Upload a logo image (png, jpeg, webp or gif)"""
    content = await file.read()
    logo_url = await organization_service.upload_logo(
        organization_id, content, file.content_type
    )
    return {"logoURL": logo_url}


@router.post("/{organization_id}/followers/sync", response_model=FollowerSyncResult)
async def sync_followers(
    organization_id: str,
    current_user: CurrentUser = Depends(require_platform_admin),
):
    """Recompute the followers subcollection and followerCount from follow edges"""
    return await follow_service.sync_followers(organization_id)


# ============================================
# GROUPS
# ============================================


@router.get("/{organization_id}/groups", response_model=GroupListResponse)
async def list_groups(organization_id: str, current_user: CurrentUser = Depends(get_current_user)):
    return {"groups": await organization_service.list_groups(organization_id)}


@router.post(
    "/{organization_id}/groups",
    response_model=OrganizationGroup,
    status_code=status.HTTP_201_CREATED,
)
async def create_group(
    organization_id: str,
    group: GroupCreate,
    current_user: CurrentUser = Depends(require_organization_admin),
):
    return await organization_service.create_group(
        organization_id, group.name, group.description, group.is_active
    )


@router.put("/{organization_id}/groups/{group_id}", response_model=OrganizationGroup)
async def update_group(
    organization_id: str,
    group_id: str,
    group: GroupUpdate,
    current_user: CurrentUser = Depends(require_organization_admin),
):
    return await organization_service.update_group(organization_id, group_id, group.to_firestore())


@router.delete("/{organization_id}/groups/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_group(
    organization_id: str,
    group_id: str,
    current_user: CurrentUser = Depends(require_organization_admin),
):
    await organization_service.delete_group(organization_id, group_id)

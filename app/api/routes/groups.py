"""
API Router for group membership and group invitations
"""

from fastapi import APIRouter, Depends, status

from app.dependencies import get_current_user, require_organization_admin
from app.exceptions import PermissionDeniedError
from app.models.group import GroupInvitation
from app.schemas.group import (
    InvitationCreate,
    InvitationListResponse,
    InvitationReply,
    MemberAdd,
    MemberCount,
    MemberListResponse,
    MembershipStatus,
)
from app.services.auth_service import CurrentUser
from app.services.group_service import group_service
from app.services.organization_service import organization_service

router = APIRouter(prefix="/api/v1", tags=["Groups"])


# ============================================
# MEMBERS
# ============================================


@router.get(
    "/organizations/{organization_id}/groups/{group_id}/members",
    response_model=MemberListResponse,
)
async def list_members(
    organization_id: str,
    group_id: str,
    current_user: CurrentUser = Depends(require_organization_admin),
):
    members = await group_service.list_members(organization_id, group_id)
    return {"members": members, "total": len(members)}


@router.post(
    "/organizations/{organization_id}/groups/{group_id}/members",
    response_model=MembershipStatus,
)
async def add_member(
    organization_id: str,
    group_id: str,
    body: MemberAdd,
    current_user: CurrentUser = Depends(require_organization_admin),
):
    """Add a user to a group directly, without an invitation"""
    changed = await group_service.add_member(organization_id, group_id, body.user_id)
    return {
        "organizationId": organization_id,
        "groupId": group_id,
        "userId": body.user_id,
        "member": True,
        "changed": changed,
    }


@router.delete(
    "/organizations/{organization_id}/groups/{group_id}/members/{user_id}",
    response_model=MembershipStatus,
)
async def remove_member(
    organization_id: str,
    group_id: str,
    user_id: str,
    current_user: CurrentUser = Depends(get_current_user),
):
    """Remove a member. Members may remove themselves; anyone else needs admin rights."""
    if user_id != current_user.uid and not current_user.is_platform_admin:
        if not await organization_service.is_admin(current_user.uid, organization_id):
            raise PermissionDeniedError(
                f"Not an administrator of organization {organization_id}")
    changed = await group_service.remove_member(organization_id, group_id, user_id)
    return {
        "organizationId": organization_id,
        "groupId": group_id,
        "userId": user_id,
        "member": False,
        "changed": changed,
    }


@router.get(
    "/organizations/{organization_id}/groups/{group_id}/membership",
    response_model=MembershipStatus,
)
async def get_membership(
    organization_id: str,
    group_id: str,
    current_user: CurrentUser = Depends(get_current_user),
):
    member = await group_service.is_member(organization_id, group_id, current_user.uid)
    return {
        "organizationId": organization_id,
        "groupId": group_id,
        "userId": current_user.uid,
        "member": member,
    }


@router.post(
    "/organizations/{organization_id}/groups/{group_id}/members/sync",
    response_model=MemberCount,
)
async def sync_member_count(
    organization_id: str,
    group_id: str,
    current_user: CurrentUser = Depends(require_organization_admin),
):
    """Recompute memberCount from the member documents"""
    return {"memberCount": await group_service.sync_member_count(organization_id, group_id)}


# ============================================
# INVITATIONS
# ============================================


@router.post(
    "/organizations/{organization_id}/groups/{group_id}/invitations",
    response_model=GroupInvitation,
    status_code=status.HTTP_201_CREATED,
)
async def send_invitation(
    organization_id: str,
    group_id: str,
    body: InvitationCreate,
    current_user: CurrentUser = Depends(require_organization_admin),
):
    inviter_name = current_user.profile.display_name if current_user.profile else None
    return await group_service.send_invitation(
        organization_id,
        group_id,
        body.user_id,
        invited_by_user_id=current_user.uid,
        invited_by_name=inviter_name or current_user.email,
        message=body.message,
    )


@router.get("/organizations/{organization_id}/invitations", response_model=InvitationListResponse)
async def list_organization_invitations(
    organization_id: str,
    current_user: CurrentUser = Depends(require_organization_admin),
):
    return {"invitations": await group_service.list_organization_invitations(organization_id)}


@router.delete(
    "/organizations/{organization_id}/invitations/{invitation_id}",
    response_model=GroupInvitation,
)
async def cancel_invitation(
    organization_id: str,
    invitation_id: str,
    current_user: CurrentUser = Depends(require_organization_admin),
):
    return await group_service.cancel_invitation(organization_id, invitation_id)


@router.get("/users/me/invitations", response_model=InvitationListResponse)
async def list_my_invitations(current_user: CurrentUser = Depends(get_current_user)):
    """Invitations addressed to the current user, newest first"""
    return {"invitations": await group_service.list_user_invitations(current_user.uid)}


@router.post("/users/me/invitations/{invitation_id}", response_model=GroupInvitation)
async def respond_to_invitation(
    invitation_id: str,
    body: InvitationReply,
    current_user: CurrentUser = Depends(get_current_user),
):
    """Accept or decline an invitation. Accepting adds the caller to the group."""
    return await group_service.respond(invitation_id, current_user.uid, body.accepted)

"""
API Router for organization onboarding requests
"""

from fastapi import APIRouter, Depends, Query, status
from typing import Optional

from app.dependencies import get_current_user, get_optional_user, require_platform_admin
from app.exceptions import PermissionDeniedError
from app.models.organization_request import OrganizationRequest, RequestStatus
from app.schemas.organization_request import (
    OrganizationRequestCreate,
    OrganizationRequestListResponse,
    OrganizationRequestResubmit,
    ReviewRequest,
)
from app.services.auth_service import CurrentUser
from app.services.request_service import request_service

router = APIRouter(prefix="/api/v1/organization-requests", tags=["Organization Requests"])


def _can_view(current_user: CurrentUser, request: OrganizationRequest) -> bool:
    if current_user.is_platform_admin:
        return True
    if request.submitted_by_user_id and request.submitted_by_user_id == current_user.uid:
        return True
    return bool(current_user.email) and current_user.email == request.contact_person_email


@router.post("", response_model=OrganizationRequest, status_code=status.HTTP_201_CREATED)
async def submit_request(
    body: OrganizationRequestCreate,
    current_user: Optional[CurrentUser] = Depends(get_optional_user),
):
    """
    Submit an organization for onboarding

    Signing in is optional. A signed-in applicant becomes the organization
    admin on approval. Anonymous submissions get an account provisioned for
    the contact email, whose owner sets credentials later through a password
    reset link.
    """
    return await request_service.submit(
        body.to_fields(), submitted_by_user_id=current_user.uid if current_user else None
    )


@router.get("", response_model=OrganizationRequestListResponse)
async def list_requests(
    status_filter: Optional[RequestStatus] = Query(None, alias="status"),
    current_user: CurrentUser = Depends(require_platform_admin),
):
    requests = await request_service.list_requests(status_filter)
    return {"requests": requests, "total": len(requests)}


@router.get("/{request_id}", response_model=OrganizationRequest)
async def get_request(request_id: str, current_user: CurrentUser = Depends(get_current_user)):
    request = await request_service.get_request(request_id)
    if not _can_view(current_user, request):
        raise PermissionDeniedError("Not allowed to view this request")
    return request


@router.post("/{request_id}/review", response_model=OrganizationRequest)
async def review_request(
    request_id: str,
    body: ReviewRequest,
    current_user: CurrentUser = Depends(require_platform_admin),
):
    """
    Approve, reject or ask for more information

    Only pending requests can be reviewed; anything else is a 409.
    """
    return await request_service.review(
        request_id, body.decision, notes=body.notes, reviewer_id=current_user.uid
    )


@router.post("/{request_id}/resubmit", response_model=OrganizationRequest)
async def resubmit_request(
    request_id: str,
    body: OrganizationRequestResubmit,
    current_user: CurrentUser = Depends(get_current_user),
):
    request = await request_service.get_request(request_id)
    if not _can_view(current_user, request):
        raise PermissionDeniedError("Not allowed to resubmit this request")
    return await request_service.resubmit(request_id, body.to_fields())

"""
API Router for organization alerts and scheduled alerts
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status

from app.dependencies import get_current_user, require_organization_admin
from app.exceptions import PermissionDeniedError
from app.models.alert import OrganizationAlert, ScheduledAlert
from app.schemas.alert import (
    AlertCreate,
    AlertListResponse,
    ScheduledAlertCreate,
    ScheduledAlertListResponse,
)
from app.services.alert_service import alert_service
from app.services.auth_service import CurrentUser
from app.services.organization_service import organization_service
from app.services.scheduled_alert_service import scheduled_alert_service

router = APIRouter(prefix="/api/v1", tags=["Alerts"])


def _posted_by(current_user: CurrentUser) -> str:
    if current_user.profile and current_user.profile.display_name:
        return current_user.profile.display_name
    return current_user.email or current_user.uid


@router.post(
    "/organizations/{organization_id}/alerts",
    response_model=OrganizationAlert,
    status_code=status.HTTP_201_CREATED,
)
async def post_alert(
    organization_id: str,
    body: AlertCreate,
    background_tasks: BackgroundTasks,
    current_user: CurrentUser = Depends(require_organization_admin),
):
    """
    Post an alert to the organization's followers

    The alert is stored before the response is sent; push notifications go
    out afterwards in the background.
    """
    alert = OrganizationAlert(
        title=body.title,
        description=body.description,
        organization_id=organization_id,
        group_id=body.group_id,
        type=body.type,
        severity=body.severity,
        location=body.location,
        image_urls=body.image_urls,
        posted_by=_posted_by(current_user),
        posted_by_user_id=current_user.uid,
    )
    alert = await alert_service.post_alert(alert)
    background_tasks.add_task(alert_service.fan_out, alert)
    return alert


@router.get("/organizations/{organization_id}/alerts", response_model=AlertListResponse)
async def list_alerts(
    organization_id: str,
    include_inactive: bool = Query(False, alias="includeInactive"),
    current_user: CurrentUser = Depends(get_current_user),
):
    if include_inactive and not (
        current_user.is_platform_admin
        or await organization_service.is_admin(current_user.uid, organization_id)
    ):
        raise PermissionDeniedError("Only organization admins can list deleted alerts")
    alerts = await alert_service.list_alerts(organization_id, include_inactive=include_inactive)
    return {"alerts": alerts, "total": len(alerts)}


@router.delete(
    "/organizations/{organization_id}/alerts/{alert_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_alert(
    organization_id: str,
    alert_id: str,
    current_user: CurrentUser = Depends(require_organization_admin),
):
    await alert_service.delete_alert(organization_id, alert_id)


@router.post(
    "/scheduled-alerts",
    response_model=ScheduledAlert,
    status_code=status.HTTP_201_CREATED,
)
async def schedule_alert(
    body: ScheduledAlertCreate,
    current_user: CurrentUser = Depends(get_current_user),
):
    """Store an alert to be posted at scheduledDate, optionally recurring"""
    if not (
        current_user.is_platform_admin
        or await organization_service.is_admin(current_user.uid, body.organization_id)
    ):
        raise PermissionDeniedError(
            f"Not an administrator of organization {body.organization_id}")

    scheduled = ScheduledAlert(
        title=body.title,
        description=body.description,
        organization_id=body.organization_id,
        group_id=body.group_id,
        type=body.type,
        severity=body.severity,
        location=body.location,
        image_urls=body.image_urls,
        posted_by=_posted_by(current_user),
        posted_by_user_id=current_user.uid,
        scheduled_date=body.scheduled_date,
        is_recurring=body.is_recurring,
        recurrence_pattern=body.recurrence_pattern,
        expires_at=body.expires_at,
    )
    return await scheduled_alert_service.schedule(scheduled)


@router.get(
    "/organizations/{organization_id}/scheduled-alerts",
    response_model=ScheduledAlertListResponse,
)
async def list_scheduled_alerts(
    organization_id: str,
    current_user: CurrentUser = Depends(require_organization_admin),
):
    alerts = await scheduled_alert_service.list_for_organization(organization_id)
    return {"alerts": alerts, "total": len(alerts)}

"""
Credential setup for provisioned accounts
"""

from fastapi import APIRouter, Depends

from app.dependencies import require_platform_admin
from app.schemas.user import PasswordResetRequest, PasswordResetResponse
from app.services.auth_service import CurrentUser, auth_service

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


@router.post("/password-reset", response_model=PasswordResetResponse)
async def create_password_reset_link(
    body: PasswordResetRequest,
    current_user: CurrentUser = Depends(require_platform_admin),
):
    """
    Generate a password reset link for an account

    Used to hand a newly approved organization admin a way to set their
    password. Restricted to platform admins, since the link grants access to
    the account.
    """
    link = await auth_service.password_reset_link(body.email)
    return {"email": body.email, "link": link}

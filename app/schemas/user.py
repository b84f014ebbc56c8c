"""
Schemas for the current user's profile, device and credentials
"""

from pydantic import BaseModel, Field, ConfigDict, EmailStr
from typing import Optional


class ProfileUpdate(BaseModel):
    display_name: Optional[str] = Field(None, alias="displayName")
    alert_radius: Optional[float] = Field(None, alias="alertRadius")

    model_config = ConfigDict(populate_by_name=True)


class DeviceRegistration(BaseModel):
    fcm_token: str = Field(..., alias="fcmToken")

    model_config = ConfigDict(populate_by_name=True)


class PasswordResetRequest(BaseModel):
    email: EmailStr


class PasswordResetResponse(BaseModel):
    email: EmailStr
    link: str

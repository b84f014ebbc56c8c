"""
Schemas for organization onboarding requests
"""

from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List, Dict, Any

from app.models.organization import OrganizationType
from app.models.organization_request import OrganizationRequest, ReviewDecision


class OrganizationRequestCreate(BaseModel):
    """
    Submission from an applicant.

    Blank required fields are rejected by the service with a 400, so they are
    plain strings here rather than constrained types.
    """

    name: str
    type: OrganizationType = OrganizationType.OTHER
    description: str = ""
    website: Optional[str] = None
    phone: Optional[str] = None
    email: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = Field("", alias="zipCode")
    contact_person_name: str = Field(..., alias="contactPersonName")
    contact_person_title: str = Field("", alias="contactPersonTitle")
    contact_person_phone: str = Field(..., alias="contactPersonPhone")
    contact_person_email: str = Field(..., alias="contactPersonEmail")

    model_config = ConfigDict(
        populate_by_name=True,
        use_enum_values=True,
        # Older clients still send adminPassword; it is dropped, never stored
        extra="ignore",
        json_schema_extra={
            "example": {
                "name": "Velocity Physical Therapy",
                "type": "business",
                "description": "Outpatient physical therapy",
                "email": "info@velocitypt.example.com",
                "address": "100 Main St",
                "city": "Denton",
                "state": "TX",
                "zipCode": "76201",
                "contactPersonName": "Dana Reyes",
                "contactPersonTitle": "Owner",
                "contactPersonPhone": "940-555-0100",
                "contactPersonEmail": "dana@velocitypt.example.com",
            }
        },
    )

    def to_fields(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class OrganizationRequestResubmit(BaseModel):
    name: Optional[str] = None
    type: Optional[OrganizationType] = None
    description: Optional[str] = None
    website: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = Field(None, alias="zipCode")
    contact_person_name: Optional[str] = Field(None, alias="contactPersonName")
    contact_person_title: Optional[str] = Field(None, alias="contactPersonTitle")
    contact_person_phone: Optional[str] = Field(None, alias="contactPersonPhone")
    contact_person_email: Optional[str] = Field(None, alias="contactPersonEmail")

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    def to_fields(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_unset=True)


class ReviewRequest(BaseModel):
    decision: ReviewDecision
    notes: str = ""


class OrganizationRequestListResponse(BaseModel):
    requests: List[OrganizationRequest]
    total: int

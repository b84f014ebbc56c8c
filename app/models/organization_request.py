"""
Organization onboarding request model

Collection: organizationRequests/
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, ConfigDict

from app.models.organization import OrganizationType


def utc_now():
    return datetime.now(timezone.utc)


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    REQUIRES_MORE_INFO = "requires_more_info"


class ReviewDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_MORE_INFO = "request_more_info"


# Status a request lands in for each review decision
DECISION_STATUS = {
    ReviewDecision.APPROVE: RequestStatus.APPROVED,
    ReviewDecision.REJECT: RequestStatus.REJECTED,
    ReviewDecision.REQUEST_MORE_INFO: RequestStatus.REQUIRES_MORE_INFO,
}


class OrganizationRequest(BaseModel):
    """
    A submission to onboard a new organization.

    Immutable until reviewed. The applicant's credentials are never part of
    this document; account setup goes through the placeholder account created
    at submission time.
    """

    id: str
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

    status: RequestStatus = RequestStatus.PENDING
    submitted_by_user_id: Optional[str] = Field(None, alias="submittedByUserId")
    reviewed_by: Optional[str] = Field(None, alias="reviewedBy")
    review_notes: Optional[str] = Field(None, alias="reviewNotes")
    reviewed_at: Optional[datetime] = Field(None, alias="reviewedAt")
    organization_id: Optional[str] = Field(None, alias="organizationId")

    submitted_at: Optional[datetime] = Field(default_factory=utc_now, alias="submittedAt")
    updated_at: Optional[datetime] = Field(default_factory=utc_now, alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    @property
    def full_address(self) -> str:
        return f"{self.address}, {self.city}, {self.state} {self.zip_code}".strip()


def firestore_request_to_model(doc: dict, request_id: str) -> OrganizationRequest:
    # Legacy documents carried the applicant's password; it is never read back
    data = {k: v for k, v in doc.items() if k != "adminPassword"}
    return OrganizationRequest.model_validate({**data, "id": request_id})


def request_model_to_firestore(request: OrganizationRequest) -> Dict[str, Any]:
    return request.model_dump(by_alias=True)

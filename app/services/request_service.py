"""
Organization onboarding: request submission, review and the approval workflow
"""

import logging
import re
import unicodedata
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from firebase_admin import firestore

from app.config import settings
from app.exceptions import ChimeoError, InvalidInputError, InvalidStateError, NotFoundError
from app.models.organization import Location, Organization, organization_model_to_firestore
from app.models.organization_request import (
    DECISION_STATUS,
    OrganizationRequest,
    RequestStatus,
    ReviewDecision,
    firestore_request_to_model,
    request_model_to_firestore,
)
from app.services import collections
from app.services.firebase_service import array_union, firebase_service
from app.services.geocoding_service import geocoding_service
from app.services.organization_service import organization_service

logger = logging.getLogger(__name__)

MAX_DOCUMENT_ID_LENGTH = 1500

# Fields an applicant may change when answering a request for more information
RESUBMITTABLE_FIELDS = {
    "name", "type", "description", "website", "phone", "email", "address", "city",
    "state", "zipCode", "contactPersonName", "contactPersonTitle", "contactPersonPhone",
    "contactPersonEmail",
}

REQUIRED_FIELDS = {
    "name": "Organization name",
    "contact_person_name": "Contact person name",
    "contact_person_email": "Contact person email",
    "contact_person_phone": "Contact person phone",
}


def slugify(name: str) -> str:
    """
    Lowercase; '&' becomes '_and_'; apostrophes, quotes, dots and commas are
    dropped; accents are folded to ASCII; spaces, hyphens and any other
    character outside [a-z0-9] become '_'; leading and trailing underscores
    are stripped.
    """
    slug = (name or "").lower().replace("&", "_and_")
    slug = unicodedata.normalize("NFKD", slug).encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"['\".,]", "", slug)
    slug = re.sub(r"[^a-z0-9]", "_", slug)
    return slug.strip("_")


def is_valid_slug(slug: str) -> bool:
    return (
        bool(slug)
        and len(slug) <= MAX_DOCUMENT_ID_LENGTH
        and "/" not in slug
        and "\\" not in slug
        and not slug.startswith("_")
        and not slug.endswith("_")
        and "__" not in slug
    )


def organization_id_for(name: str) -> str:
    slug = slugify(name)
    if is_valid_slug(slug):
        return slug
    logger.warning("Slug %r for organization %r is unusable; using a generated id", slug, name)
    return uuid.uuid4().hex


class RequestService:
    """Lifecycle of organizationRequests/: pending -> approved | rejected | requires_more_info"""

    def __init__(self):
        self.firebase = firebase_service
        self.geocoder = geocoding_service
        self.organizations = organization_service

    async def get_request(self, request_id: str) -> OrganizationRequest:
        doc = await self.firebase.get_document(f"{collections.ORGANIZATION_REQUESTS}/{request_id}")
        if not doc:
            raise NotFoundError(f"Organization request {request_id} not found")
        return firestore_request_to_model(doc, request_id)

    async def list_requests(self, status: Optional[RequestStatus] = None) -> List[OrganizationRequest]:
        filters = [("status", "==", RequestStatus(status).value)] if status else None
        docs = await self.firebase.query_collection(
            collections.ORGANIZATION_REQUESTS,
            filters=filters,
            order_by="submittedAt",
            direction=firestore.Query.DESCENDING,
        )
        return [firestore_request_to_model(data, doc_id) for doc_id, data in docs]

    async def submit(
        self, fields: Dict[str, Any], submitted_by_user_id: Optional[str] = None
    ) -> OrganizationRequest:
        """
        Store a new request as pending and provision an account for its future
        organization admin.

        Raises:
            InvalidInputError: If a required contact field or the name is blank
        """
        request_id = self.firebase.new_document_id(collections.ORGANIZATION_REQUESTS)
        try:
            request = OrganizationRequest.model_validate(
                {**fields, "id": request_id, "submittedByUserId": submitted_by_user_id}
            )
        except ValueError as e:
            raise InvalidInputError(str(e)) from e

        for field_name, label in REQUIRED_FIELDS.items():
            value = (getattr(request, field_name) or "").strip()
            if not value:
                raise InvalidInputError(f"{label} is required")
            setattr(request, field_name, value)

        now = datetime.now(timezone.utc)
        request.status = RequestStatus.PENDING.value
        request.submitted_at = now
        request.updated_at = now

        data = request_model_to_firestore(request)
        data.pop("id", None)
        await self.firebase.set_document(f"{collections.ORGANIZATION_REQUESTS}/{request_id}", data)
        logger.info("Organization request %s submitted for %r", request_id, request.name)

        await self._provision_account(request)
        return request

    async def _provision_account(self, request: OrganizationRequest) -> None:
        """
        Make sure the future organization admin has a user document. Never raises.

        A signed-in applicant is provisioned under their own uid. Otherwise the
        contact email gets a password-less Auth account, or a placeholder user
        when Auth is unavailable.
        """
        email = request.contact_person_email
        try:
            if request.submitted_by_user_id:
                await self._create_user_document(
                    request.submitted_by_user_id, request, needs_password_setup=False
                )
                return

            existing = await self.firebase.query_collection(
                collections.USERS, filters=[("email", "==", email)], limit=1
            )
            if existing:
                logger.info("User already exists for %s; no account provisioned", email)
                return

            try:
                uid = await self.firebase.create_auth_account(email, request.contact_person_name)
            except ChimeoError as e:
                logger.warning("Could not create auth account for %s: %s", email, e)
                user_id = self.firebase.new_document_id(collections.USERS)
                await self._create_user_document(user_id, request, needs_password_setup=True)
                return

            await self._create_user_document(uid, request, needs_password_setup=False)
            logger.info("Provisioned account %s for %s", uid, email)
        except ChimeoError as e:
            logger.warning("Account provisioning failed for %s: %s", email, e)

    async def _create_user_document(
        self, user_id: str, request: OrganizationRequest, needs_password_setup: bool
    ) -> None:
        path = collections.user_path(user_id)
        if await self.firebase.get_document(path) is not None:
            return
        now = datetime.now(timezone.utc)
        await self.firebase.set_document(path, {
            "email": request.contact_person_email,
            "displayName": request.contact_person_name,
            "isAdmin": False,
            "isOrganizationAdmin": False,
            "organizations": [],
            "followedOrganizations": [],
            "needsPasswordSetup": needs_password_setup,
            "createdAt": now,
            "updatedAt": now,
        })

    async def review(
        self,
        request_id: str,
        decision: ReviewDecision,
        notes: str = "",
        reviewer_id: Optional[str] = None,
    ) -> OrganizationRequest:
        """
        Apply the single review transition out of pending.

        Raises:
            NotFoundError: Unknown request
            InvalidStateError: The request is not pending
        """
        request = await self.get_request(request_id)
        if request.status != RequestStatus.PENDING:
            raise InvalidStateError(
                f"Organization request {request_id} is {request.status}; only pending requests can be reviewed"
            )

        decision = ReviewDecision(decision)
        if decision == ReviewDecision.APPROVE:
            return await self._approve(request, notes, reviewer_id)

        now = datetime.now(timezone.utc)
        status = DECISION_STATUS[decision]
        await self.firebase.update_document(
            f"{collections.ORGANIZATION_REQUESTS}/{request_id}",
            {
                "status": status.value,
                "reviewedBy": reviewer_id,
                "reviewNotes": notes,
                "reviewedAt": now,
                "updatedAt": now,
            },
        )
        logger.info("Organization request %s moved to %s", request_id, status.value)
        return request.model_copy(
            update={
                "status": status.value,
                "reviewed_by": reviewer_id,
                "review_notes": notes,
                "reviewed_at": now,
                "updated_at": now,
            }
        )

    async def resubmit(self, request_id: str, updates: Dict[str, Any]) -> OrganizationRequest:
        """Move a requires_more_info request back to pending with the applicant's changes."""
        request = await self.get_request(request_id)
        if request.status != RequestStatus.REQUIRES_MORE_INFO:
            raise InvalidStateError(
                f"Organization request {request_id} is {request.status}; only requests needing more information can be resubmitted"
            )

        changes = {k: v for k, v in (updates or {}).items() if k in RESUBMITTABLE_FIELDS}
        try:
            merged = OrganizationRequest.model_validate(
                {**request.model_dump(by_alias=True), **changes}
            )
        except ValueError as e:
            raise InvalidInputError(str(e)) from e
        for field_name, label in REQUIRED_FIELDS.items():
            if not (getattr(merged, field_name) or "").strip():
                raise InvalidInputError(f"{label} is required")

        now = datetime.now(timezone.utc)
        await self.firebase.update_document(
            f"{collections.ORGANIZATION_REQUESTS}/{request_id}",
            {**changes, "status": RequestStatus.PENDING.value, "updatedAt": now},
        )
        logger.info("Organization request %s resubmitted", request_id)
        return merged.model_copy(update={"status": RequestStatus.PENDING.value, "updated_at": now})

    async def _resolve_admin_id(self, request: OrganizationRequest) -> Optional[str]:
        """The submitting user when signed in, else the user owning the contact email."""
        if request.submitted_by_user_id:
            return request.submitted_by_user_id
        users = await self.firebase.query_collection(
            collections.USERS, filters=[("email", "==", request.contact_person_email)], limit=1
        )
        if users:
            return users[0][0]
        return None

    async def _approve(
        self, request: OrganizationRequest, notes: str, reviewer_id: Optional[str]
    ) -> OrganizationRequest:
        geocoded = await self.geocoder.geocode(request.full_address)
        if geocoded is not None:
            latitude, longitude = geocoded.latitude, geocoded.longitude
        else:
            logger.warning(
                "Could not geocode %r; using default coordinates", request.full_address)
            latitude, longitude = settings.DEFAULT_LATITUDE, settings.DEFAULT_LONGITUDE

        organization_id = organization_id_for(request.name)
        if await self.organizations.find_organization(organization_id) is not None:
            logger.warning(
                "Organization id %s already taken; using a generated id", organization_id)
            organization_id = uuid.uuid4().hex

        user_id = await self._resolve_admin_id(request)
        admin_id = user_id
        if admin_id is None:
            logger.warning(
                "No user found for %s; keying organization admin by email",
                request.contact_person_email,
            )
            admin_id = request.contact_person_email

        now = datetime.now(timezone.utc)
        organization = Organization(
            id=organization_id,
            name=request.name,
            type=request.type,
            description=request.description,
            website=request.website,
            phone=request.phone,
            email=request.email,
            location=Location(
                latitude=latitude,
                longitude=longitude,
                address=request.address,
                city=request.city,
                state=request.state,
                zip_code=request.zip_code,
            ),
            verified=True,
            follower_count=0,
            admin_ids={admin_id: True},
            created_at=now,
            updated_at=now,
        )
        request_update = {
            "status": RequestStatus.APPROVED.value,
            "reviewedBy": reviewer_id,
            "reviewNotes": notes,
            "reviewedAt": now,
            "organizationId": organization_id,
            "updatedAt": now,
        }

        # Organization creation and the status change succeed or fail together
        await self.firebase.commit_batch([
            ("set", collections.organization_path(organization_id),
             organization_model_to_firestore(organization)),
            ("update", f"{collections.ORGANIZATION_REQUESTS}/{request.id}", request_update),
        ])
        logger.info("Organization request %s approved as %s", request.id, organization_id)

        if user_id is not None:
            try:
                await self.firebase.update_document(
                    collections.user_path(user_id),
                    {
                        "isOrganizationAdmin": True,
                        "organizations": array_union(organization_id),
                        "updatedAt": now,
                    },
                )
            except ChimeoError as e:
                logger.warning("Failed to promote %s to organization admin: %s", user_id, e)

        self.organizations.cache.invalidate()

        return request.model_copy(
            update={
                "status": RequestStatus.APPROVED.value,
                "reviewed_by": reviewer_id,
                "review_notes": notes,
                "reviewed_at": now,
                "organization_id": organization_id,
                "updated_at": now,
            }
        )


request_service = RequestService()

from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import pytest
from firebase_admin import auth as firebase_auth

from app.exceptions import ExternalServiceError, InvalidInputError, InvalidStateError
from app.models.organization_request import RequestStatus, ReviewDecision
from app.services.firebase_service import firebase_service
from app.services.geocoding_service import GeocodeResult
from app.services.organization_service import organization_service
from app.services.request_service import (
    is_valid_slug,
    organization_id_for,
    request_service,
    slugify,
)
from conftest import seed_organization, seed_user


def request_fields(**overrides):
    fields = {
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
        "contactPersonEmail": "dana@example.com",
    }
    fields.update(overrides)
    return fields


@pytest.fixture
def auth_account(monkeypatch):
    mock = AsyncMock(return_value="auth-uid-1")
    monkeypatch.setattr(firebase_service, "create_auth_account", mock)
    return mock


# --- slugs ---


def test_slugify_replaces_spaces_and_punctuation():
    assert slugify("Velocity Physical Therapy") == "velocity_physical_therapy"
    assert slugify("St. Mary's Church-North") == "st_marys_church_north"
    assert slugify("Parents&Teachers") == "parents_and_teachers"


def test_slugify_folds_non_ascii_letters():
    assert slugify("Café Olé") == "cafe_ole"
    assert slugify("Ñandú Ärzte") == "nandu_arzte"
    assert all(ch.isascii() for ch in organization_id_for("東京 Fire Dept"))


@pytest.mark.parametrize("name", ["!!!", "", "Tom & Jerry", "a/b"])
def test_unusable_slug_falls_back_to_generated_id(name):
    org_id = organization_id_for(name)
    assert org_id
    assert "/" not in org_id and "\\" not in org_id
    assert not org_id.startswith("_") and not org_id.endswith("_")
    assert "__" not in org_id


def test_slug_length_bound():
    assert not is_valid_slug("a" * 1501)
    assert is_valid_slug("a" * 1500)


# --- submit ---


@pytest.mark.asyncio
async def test_submit_stores_pending_request_without_password(fake_db, auth_account):
    request = await request_service.submit(request_fields(adminPassword="hunter2"))

    assert request.status == RequestStatus.PENDING
    stored = fake_db.docs[f"organizationRequests/{request.id}"]
    assert stored["status"] == "pending"
    assert "adminPassword" not in stored
    assert all("password" not in key.lower() for key in stored)


@pytest.mark.asyncio
async def test_submit_provisions_auth_account(fake_db, auth_account):
    await request_service.submit(request_fields())

    auth_account.assert_awaited_once_with("dana@example.com", "Dana Reyes")
    user = fake_db.docs["users/auth-uid-1"]
    assert user["email"] == "dana@example.com"
    assert user["needsPasswordSetup"] is False


@pytest.mark.asyncio
async def test_submit_falls_back_to_placeholder_when_auth_fails(fake_db, monkeypatch):
    monkeypatch.setattr(
        firebase_service,
        "create_auth_account",
        AsyncMock(side_effect=ExternalServiceError("auth down")),
    )

    request = await request_service.submit(request_fields())

    users = fake_db.collection("users")
    assert len(users) == 1
    (user,) = users.values()
    assert user["needsPasswordSetup"] is True
    assert request.status == RequestStatus.PENDING


@pytest.mark.asyncio
async def test_submit_skips_provisioning_for_existing_user(fake_db, auth_account):
    seed_user(fake_db, "existing", email="dana@example.com")

    await request_service.submit(request_fields())

    auth_account.assert_not_awaited()
    assert list(fake_db.collection("users")) == ["existing"]


@pytest.mark.asyncio
async def test_submit_survives_user_lookup_failure(fake_db, auth_account, monkeypatch):
    monkeypatch.setattr(
        firebase_service,
        "query_collection",
        AsyncMock(side_effect=ExternalServiceError("firestore down")),
    )

    request = await request_service.submit(request_fields())
    assert f"organizationRequests/{request.id}" in fake_db.docs


@pytest.mark.asyncio
async def test_signed_in_applicant_becomes_organization_admin(fake_db, auth_account):
    request = await request_service.submit(request_fields(), submitted_by_user_id="applicant-uid")

    auth_account.assert_not_awaited()
    assert fake_db.docs["users/applicant-uid"]["email"] == "dana@example.com"

    approved = await request_service.review(request.id, ReviewDecision.APPROVE)

    org_id = approved.organization_id
    assert fake_db.docs[f"organizations/{org_id}"]["adminIds"] == {"applicant-uid": True}
    assert await organization_service.is_admin("applicant-uid", org_id)
    assert fake_db.docs["users/applicant-uid"]["isOrganizationAdmin"] is True
    assert list(fake_db.collection("users")) == ["applicant-uid"]


@pytest.mark.asyncio
async def test_signed_in_applicant_profile_is_not_overwritten(fake_db, auth_account):
    seed_user(fake_db, "applicant-uid", email="dana.personal@example.com", alertRadius=25)

    await request_service.submit(request_fields(), submitted_by_user_id="applicant-uid")

    user = fake_db.docs["users/applicant-uid"]
    assert user["email"] == "dana.personal@example.com"
    assert user["alertRadius"] == 25


@pytest.mark.asyncio
async def test_existing_auth_account_is_reused(monkeypatch):
    monkeypatch.setattr(firebase_service, "_ensure_initialized", lambda: None)
    monkeypatch.setattr(
        firebase_auth,
        "create_user",
        Mock(side_effect=firebase_auth.EmailAlreadyExistsError("exists", None, None)),
    )
    lookup = Mock(return_value=SimpleNamespace(uid="existing-uid"))
    monkeypatch.setattr(firebase_auth, "get_user_by_email", lookup)

    uid = await firebase_service.create_auth_account("dana@example.com", "Dana Reyes")

    assert uid == "existing-uid"
    lookup.assert_called_once_with("dana@example.com")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "field", ["name", "contactPersonName", "contactPersonEmail", "contactPersonPhone"]
)
async def test_submit_rejects_blank_required_fields(fake_db, auth_account, field):
    with pytest.raises(InvalidInputError):
        await request_service.submit(request_fields(**{field: "   "}))
    assert fake_db.collection("organizationRequests") == {}


# --- review ---


@pytest.mark.asyncio
async def test_approve_creates_verified_organization(fake_db, auth_account, geocoder):
    geocoder.return_value = GeocodeResult(latitude=33.21, longitude=-97.13)
    request = await request_service.submit(request_fields())

    approved = await request_service.review(
        request.id, ReviewDecision.APPROVE, notes="Looks good", reviewer_id="admin-1"
    )

    assert approved.status == RequestStatus.APPROVED
    assert approved.organization_id == "velocity_physical_therapy"

    org = fake_db.docs["organizations/velocity_physical_therapy"]
    assert org["verified"] is True
    assert org["followerCount"] == 0
    assert org["adminIds"] == {"auth-uid-1": True}
    assert org["location"]["latitude"] == 33.21

    stored = fake_db.docs[f"organizationRequests/{request.id}"]
    assert stored["status"] == "approved"
    assert stored["reviewedBy"] == "admin-1"
    assert stored["reviewNotes"] == "Looks good"

    user = fake_db.docs["users/auth-uid-1"]
    assert user["isOrganizationAdmin"] is True
    assert user["organizations"] == ["velocity_physical_therapy"]


@pytest.mark.asyncio
async def test_approve_uses_default_coordinates_when_geocoding_fails(fake_db, auth_account):
    request = await request_service.submit(request_fields())

    await request_service.review(request.id, ReviewDecision.APPROVE)

    location = fake_db.docs["organizations/velocity_physical_therapy"]["location"]
    assert (location["latitude"], location["longitude"]) == (33.2148, -97.1331)


@pytest.mark.asyncio
async def test_approve_keys_admin_by_email_when_no_user(fake_db, monkeypatch):
    monkeypatch.setattr(
        firebase_service, "create_auth_account", AsyncMock(side_effect=ExternalServiceError("x"))
    )
    request = await request_service.submit(request_fields())
    # Placeholder account vanished before review
    for path in list(fake_db.docs):
        if path.startswith("users/"):
            del fake_db.docs[path]

    await request_service.review(request.id, ReviewDecision.APPROVE)

    org = fake_db.docs["organizations/velocity_physical_therapy"]
    assert org["adminIds"] == {"dana@example.com": True}


@pytest.mark.asyncio
async def test_approve_uses_generated_id_for_unusable_slug(fake_db, auth_account):
    request = await request_service.submit(request_fields(name="!!!"))

    approved = await request_service.review(request.id, ReviewDecision.APPROVE)

    org_id = approved.organization_id
    assert org_id and not org_id.startswith("_") and "/" not in org_id
    assert f"organizations/{org_id}" in fake_db.docs


@pytest.mark.asyncio
async def test_approve_does_not_overwrite_existing_organization(fake_db, auth_account):
    seed_organization(fake_db, "velocity_physical_therapy", "Velocity Physical Therapy")
    request = await request_service.submit(request_fields())

    approved = await request_service.review(request.id, ReviewDecision.APPROVE)

    assert approved.organization_id != "velocity_physical_therapy"
    assert fake_db.docs["organizations/velocity_physical_therapy"]["adminIds"] == {}


@pytest.mark.asyncio
async def test_re_review_is_rejected_and_creates_no_second_organization(fake_db, auth_account):
    request = await request_service.submit(request_fields())
    await request_service.review(request.id, ReviewDecision.APPROVE)

    with pytest.raises(InvalidStateError):
        await request_service.review(request.id, ReviewDecision.APPROVE)

    assert len(fake_db.collection("organizations")) == 1


@pytest.mark.asyncio
async def test_batch_failure_propagates_and_leaves_request_pending(fake_db, auth_account):
    request = await request_service.submit(request_fields())
    fake_db.fail_batches = True

    with pytest.raises(ExternalServiceError):
        await request_service.review(request.id, ReviewDecision.APPROVE)

    assert fake_db.collection("organizations") == {}
    assert fake_db.docs[f"organizationRequests/{request.id}"]["status"] == "pending"


@pytest.mark.asyncio
async def test_promotion_failure_does_not_fail_approval(fake_db, auth_account):
    request = await request_service.submit(request_fields())
    fake_db.fail_updates_for.add("users/auth-uid-1")

    approved = await request_service.review(request.id, ReviewDecision.APPROVE)

    assert approved.status == RequestStatus.APPROVED
    assert "organizations/velocity_physical_therapy" in fake_db.docs
    assert fake_db.docs["users/auth-uid-1"]["isOrganizationAdmin"] is False


@pytest.mark.asyncio
async def test_approval_refreshes_cached_listing(fake_db, auth_account):
    assert await organization_service.list_organizations() == []
    request = await request_service.submit(request_fields())

    await request_service.review(request.id, ReviewDecision.APPROVE)

    names = [org.name for org in await organization_service.list_organizations()]
    assert names == ["Velocity Physical Therapy"]


@pytest.mark.asyncio
async def test_reject_is_terminal(fake_db, auth_account):
    request = await request_service.submit(request_fields())

    rejected = await request_service.review(request.id, ReviewDecision.REJECT, notes="Duplicate")

    assert rejected.status == RequestStatus.REJECTED
    assert fake_db.collection("organizations") == {}
    with pytest.raises(InvalidStateError):
        await request_service.review(request.id, ReviewDecision.APPROVE)


@pytest.mark.asyncio
async def test_more_info_then_resubmit_returns_to_pending(fake_db, auth_account):
    request = await request_service.submit(request_fields())
    await request_service.review(request.id, ReviewDecision.REQUEST_MORE_INFO, notes="Need website")

    with pytest.raises(InvalidStateError):
        await request_service.review(request.id, ReviewDecision.APPROVE)

    resubmitted = await request_service.resubmit(
        request.id, {"website": "https://velocitypt.example.com", "status": "approved"}
    )

    assert resubmitted.status == RequestStatus.PENDING
    stored = fake_db.docs[f"organizationRequests/{request.id}"]
    assert stored["status"] == "pending"
    assert stored["website"] == "https://velocitypt.example.com"


@pytest.mark.asyncio
async def test_resubmit_only_from_requires_more_info(fake_db, auth_account):
    request = await request_service.submit(request_fields())
    with pytest.raises(InvalidStateError):
        await request_service.resubmit(request.id, {"website": "https://x.example.com"})


# --- routes ---


def test_submit_route_anonymous(client, fake_db, auth_account):
    r = client.post("/api/v1/organization-requests", json=request_fields())
    assert r.status_code == 201
    assert r.json()["status"] == "pending"


def test_submit_route_blank_contact_is_400(client, fake_db, auth_account):
    r = client.post(
        "/api/v1/organization-requests", json=request_fields(contactPersonName="")
    )
    assert r.status_code == 400
    assert r.json()["code"] == "validation_error"


def test_review_route_requires_platform_admin(client, login, fake_db, auth_account):
    login("someone")
    r = client.post("/api/v1/organization-requests", json=request_fields())
    request_id = r.json()["id"]

    r = client.post(
        f"/api/v1/organization-requests/{request_id}/review", json={"decision": "approve"}
    )
    assert r.status_code == 403


def test_review_route_conflict_on_second_review(client, login, fake_db, auth_account):
    login("admin-1", admin=True)
    request_id = client.post(
        "/api/v1/organization-requests", json=request_fields()
    ).json()["id"]

    r = client.post(
        f"/api/v1/organization-requests/{request_id}/review",
        json={"decision": "approve", "notes": "ok"},
    )
    assert r.status_code == 200
    assert r.json()["status"] == "approved"

    r = client.post(
        f"/api/v1/organization-requests/{request_id}/review", json={"decision": "reject"}
    )
    assert r.status_code == 409
    assert r.json()["code"] == "invalid_state"


def test_list_requests_filters_by_status(client, login, fake_db, auth_account):
    login("admin-1", admin=True)
    first = client.post("/api/v1/organization-requests", json=request_fields()).json()
    client.post(
        "/api/v1/organization-requests",
        json=request_fields(name="Allied Velocity Supplies", contactPersonEmail="lee@example.com"),
    )
    client.post(
        f"/api/v1/organization-requests/{first['id']}/review", json={"decision": "reject"}
    )

    r = client.get("/api/v1/organization-requests", params={"status": "pending"})
    assert r.status_code == 200
    names = [req["name"] for req in r.json()["requests"]]
    assert names == ["Allied Velocity Supplies"]

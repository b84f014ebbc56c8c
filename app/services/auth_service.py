"""
Identity resolution and user profile management
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from firebase_admin import auth as firebase_auth
from pydantic import BaseModel, Field

from app.exceptions import (
    ExternalServiceError,
    InvalidInputError,
    NotFoundError,
    UnauthenticatedError,
)
from app.models.user import (
    NotificationPreferences,
    User,
    firestore_user_to_model,
    user_model_to_firestore,
)
from app.services import collections
from app.services.firebase_service import firebase_service

logger = logging.getLogger(__name__)


class CurrentUser(BaseModel):
    """The authenticated caller, resolved once per request."""

    uid: str
    email: Optional[str] = None
    is_platform_admin: bool = False
    profile: Optional[User] = None
    claims: Dict[str, Any] = Field(default_factory=dict)


class AuthService:
    """Service for identity and user profile operations"""

    def __init__(self):
        self.firebase = firebase_service

    async def verify_token(self, id_token: str) -> Dict[str, Any]:
        try:
            return await self.firebase.verify_id_token(id_token)
        except (firebase_auth.InvalidIdTokenError, firebase_auth.UserDisabledError, ValueError) as e:
            raise UnauthenticatedError("Invalid or expired ID token") from e
        except firebase_auth.CertificateFetchError as e:
            raise ExternalServiceError("Could not fetch token signing certificates") from e

    async def resolve_current_user(self, claims: Dict[str, Any]) -> CurrentUser:
        """
        The single source of the current user id.

        Precedence: the verified token's uid; only when the token carries no
        uid is the stored profile matched by the token's email.

        Raises:
            UnauthenticatedError: Neither source yields a user id
        """
        uid = claims.get("uid") or claims.get("user_id") or claims.get("sub")
        email = claims.get("email")
        profile: Optional[User] = None

        if uid:
            profile = await self.get_user(uid)
        elif email:
            matches = await self.firebase.query_collection(
                collections.USERS, filters=[("email", "==", email)], limit=1
            )
            if matches:
                uid, data = matches[0]
                profile = firestore_user_to_model(data, uid)

        if not uid:
            raise UnauthenticatedError("No user id available for this request")

        is_admin = claims.get("admin") is True or (profile is not None and profile.is_admin)
        return CurrentUser(
            uid=uid,
            email=email or (profile.email if profile else None),
            is_platform_admin=is_admin,
            profile=profile,
            claims=claims,
        )

    async def get_user(self, uid: str) -> Optional[User]:
        doc = await self.firebase.get_document(collections.user_path(uid))
        return firestore_user_to_model(doc, uid) if doc else None

    async def get_or_create_profile(self, current_user: CurrentUser) -> User:
        """Return the caller's profile, creating it on first use."""
        if current_user.profile is not None:
            return current_user.profile
        existing = await self.get_user(current_user.uid)
        if existing is not None:
            return existing

        user = User(
            uid=current_user.uid,
            email=current_user.email,
            display_name=current_user.claims.get("name"),
        )
        await self.firebase.set_document(
            collections.user_path(user.uid), user_model_to_firestore(user), merge=True
        )
        logger.info("Created profile for %s", user.uid)
        return user

    async def update_profile(
        self,
        uid: str,
        display_name: Optional[str] = None,
        alert_radius: Optional[float] = None,
    ) -> User:
        fields: Dict[str, Any] = {}
        if display_name is not None:
            if not display_name.strip():
                raise InvalidInputError("Display name cannot be blank")
            fields["displayName"] = display_name.strip()
        if alert_radius is not None:
            if alert_radius <= 0:
                raise InvalidInputError("Alert radius must be positive")
            fields["alertRadius"] = alert_radius
        if fields:
            fields["updatedAt"] = datetime.now(timezone.utc)
            await self.firebase.set_document(collections.user_path(uid), fields, merge=True)
        return await self._require_user(uid)

    async def update_preferences(self, uid: str, preferences: NotificationPreferences) -> User:
        await self.firebase.set_document(
            collections.user_path(uid),
            {
                "preferences": preferences.model_dump(by_alias=True, mode="json"),
                "updatedAt": datetime.now(timezone.utc),
            },
            merge=True,
        )
        return await self._require_user(uid)

    async def register_device(self, uid: str, token: str) -> None:
        token = (token or "").strip()
        if not token:
            raise InvalidInputError("Device token is required")
        now = datetime.now(timezone.utc)
        await self.firebase.set_document(
            collections.user_path(uid),
            {"fcmToken": token, "fcmTokenUpdatedAt": now, "updatedAt": now},
            merge=True,
        )
        logger.info("Registered push token for %s", uid)

    async def unregister_device(self, uid: str) -> None:
        now = datetime.now(timezone.utc)
        await self.firebase.set_document(
            collections.user_path(uid),
            {"fcmToken": None, "fcmTokenUpdatedAt": now, "updatedAt": now},
            merge=True,
        )

    async def password_reset_link(self, email: str) -> str:
        """Deferred credential setup for provisioned organization admins."""
        link = await self.firebase.generate_password_reset_link(email)
        logger.info("Generated password reset link for %s", email)
        return link

    async def _require_user(self, uid: str) -> User:
        user = await self.get_user(uid)
        if user is None:
            raise NotFoundError(f"User {uid} not found")
        return user


auth_service = AuthService()

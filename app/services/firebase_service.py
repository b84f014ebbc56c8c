"""
Firebase service for Firestore, Authentication and Storage operations
"""

from __future__ import annotations
import asyncio
import json
import logging
import os
from datetime import timedelta
from typing import Optional, Dict, Any, List, Tuple

import firebase_admin
from firebase_admin import credentials, firestore, auth as firebase_auth
from google.api_core import exceptions as google_exceptions

from app.config import settings
from app.exceptions import ExternalServiceError, NotFoundError

logger = logging.getLogger(__name__)

# A batch operation is (kind, document_path, data); kind is "set", "merge",
# "update" or "delete". data is ignored for "delete".
BatchOperation = Tuple[str, str, Optional[Dict[str, Any]]]


def increment(amount: int = 1):
    """Server-side numeric increment for update/merge payloads."""
    return firestore.Increment(amount)


def array_union(*values):
    return firestore.ArrayUnion(list(values))


def array_remove(*values):
    return firestore.ArrayRemove(list(values))


class FirebaseService:
    """Service for Firebase operations"""

    _instance = None
    _initialized = False

    def __new__(cls):
        """Singleton pattern to ensure only one Firebase instance"""
        if cls._instance is None:
            cls._instance = super(FirebaseService, cls).__new__(cls)
        return cls._instance

    def __init__(self):
        if not hasattr(self, "_db"):
            self._db = None

    @property
    def db(self):
        """Firestore client, created on first use so importing the app needs no credentials."""
        if not FirebaseService._initialized:
            self._initialize_firebase()
            self._db = firestore.client()
            FirebaseService._initialized = True
        return self._db

    def _ensure_initialized(self) -> None:
        """Auth and Storage calls need the default app even when Firestore is untouched."""
        _ = self.db

    def _initialize_firebase(self):
        """Initialize Firebase Admin SDK with credentials"""
        try:
            firebase_admin.get_app()
            logger.info("Firebase already initialized")
        except ValueError:
            if settings.DEV_MODE and settings.FIREBASE_EMULATOR_HOST:
                # Use emulator for development
                os.environ["FIRESTORE_EMULATOR_HOST"] = settings.FIREBASE_EMULATOR_HOST
                firebase_admin.initialize_app()
                logger.info(
                    "Firebase initialized with emulator: %s", settings.FIREBASE_EMULATOR_HOST)
            else:
                if settings.FIREBASE_CREDENTIALS_JSON:
                    try:
                        cred_dict = json.loads(settings.FIREBASE_CREDENTIALS_JSON)
                        cred = credentials.Certificate(cred_dict)
                        logger.info(
                            "Firebase initialized with credentials from FIREBASE_CREDENTIALS_JSON")
                    except json.JSONDecodeError as e:
                        logger.error("Error parsing FIREBASE_CREDENTIALS_JSON: %s", e)
                        raise
                else:
                    cred = credentials.Certificate(settings.FIREBASE_CREDENTIALS_PATH)
                    logger.info(
                        "Firebase initialized with credentials from %s",
                        settings.FIREBASE_CREDENTIALS_PATH)

                firebase_admin.initialize_app(
                    cred, {"storageBucket": settings.FIREBASE_STORAGE_BUCKET}
                )
            logger.info("Firebase Admin SDK initialization successful.")
        except Exception as e:
            logger.error("Firebase Admin SDK initialization failed: %s", e)
            raise  # Re-raise to prevent the app from running with a broken Firebase setup

    # ============================================
    # DOCUMENT OPERATIONS
    # ============================================

    async def get_document(self, path: str) -> Optional[Dict[str, Any]]:
        """
        Fetch a single document by its slash-separated path.

        Returns:
            The document data, or None if the document does not exist
        """
        try:
            doc = await asyncio.to_thread(self.db.document(path).get)
        except Exception as e:
            raise ExternalServiceError(f"Error reading {path}: {e}") from e
        if doc.exists:
            return doc.to_dict()
        return None

    async def set_document(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        try:
            await asyncio.to_thread(self.db.document(path).set, data, merge=merge)
        except Exception as e:
            raise ExternalServiceError(f"Error writing {path}: {e}") from e

    async def update_document(self, path: str, data: Dict[str, Any]) -> None:
        """
        Update fields of an existing document.

        Raises:
            NotFoundError: If the document does not exist
        """
        try:
            await asyncio.to_thread(self.db.document(path).update, data)
        except google_exceptions.NotFound as e:
            raise NotFoundError(f"Document not found: {path}") from e
        except Exception as e:
            raise ExternalServiceError(f"Error updating {path}: {e}") from e

    async def delete_document(self, path: str) -> None:
        try:
            await asyncio.to_thread(self.db.document(path).delete)
        except Exception as e:
            raise ExternalServiceError(f"Error deleting {path}: {e}") from e

    async def create_document(self, collection_path: str, data: Dict[str, Any]) -> str:
        """Create a document with a generated id and return the id."""
        try:
            ref = self.db.collection(collection_path).document()
            await asyncio.to_thread(ref.set, data)
            return ref.id
        except Exception as e:
            raise ExternalServiceError(f"Error creating document in {collection_path}: {e}") from e

    def new_document_id(self, collection_path: str) -> str:
        """Generate a document id without writing anything."""
        return self.db.collection(collection_path).document().id

    async def commit_batch(self, operations: List[BatchOperation]) -> None:
        """
        Apply several writes atomically.

        Either every operation is applied or none is.
        """

        def _commit():
            batch = self.db.batch()
            for kind, path, data in operations:
                ref = self.db.document(path)
                if kind == "set":
                    batch.set(ref, data)
                elif kind == "merge":
                    batch.set(ref, data, merge=True)
                elif kind == "update":
                    batch.update(ref, data)
                elif kind == "delete":
                    batch.delete(ref)
                else:
                    raise ValueError(f"Unknown batch operation: {kind}")
            batch.commit()

        try:
            await asyncio.to_thread(_commit)
        except google_exceptions.NotFound as e:
            raise NotFoundError(f"Batch write touched a missing document: {e}") from e
        except ValueError:
            raise
        except Exception as e:
            raise ExternalServiceError(f"Batch write failed: {e}") from e

    # ============================================
    # GENERIC QUERY OPERATIONS
    # ============================================
    async def query_collection(
        self,
        collection_name: str,
        filters: Optional[List[tuple]] = None,
        order_by: Optional[str] = None,
        direction: str = firestore.Query.ASCENDING,
        limit: Optional[int] = None,
    ) -> List[Tuple[str, Dict[str, Any]]]:
        """
        Queries a Firestore collection (or subcollection path) with filters and ordering.

        Args:
            collection_name: Collection name or path, e.g. "organizations/abc/alerts".
            filters: A list of (field, op, value) tuples, e.g. [("verified", "==", True)].
                     A {field: value} dict is accepted and means equality.
            order_by: The field to order the results by.
            direction: firestore.Query.ASCENDING or firestore.Query.DESCENDING.
            limit: The maximum number of documents to return.

        Returns:
            A list of (document_id, document_data) tuples.
        """
        query = self.db.collection(collection_name)

        if filters:
            if isinstance(filters, dict):
                filters = [(k, "==", v) for k, v in filters.items()]

            for f in filters:
                if len(f) == 3:
                    query = query.where(f[0], f[1], f[2])
                else:
                    raise ValueError(
                        f"Invalid filter format: {f}. Expected (field, op, value)")

        if order_by:
            query = query.order_by(order_by, direction=direction)

        if limit:
            query = query.limit(limit)

        def _get_stream_data(q):
            return [(doc.id, doc.to_dict()) for doc in q.stream()]

        try:
            return await asyncio.to_thread(_get_stream_data, query)
        except Exception as e:
            raise ExternalServiceError(f"Error querying {collection_name}: {e}") from e

    # ============================================
    # AUTHENTICATION
    # ============================================

    async def verify_id_token(self, id_token: str) -> Dict[str, Any]:
        """
        Verify Firebase ID token

        Args:
            id_token: Firebase ID token to verify

        Returns:
            Decoded token claims
        """
        self._ensure_initialized()
        return await asyncio.to_thread(firebase_auth.verify_id_token, id_token)

    async def create_auth_account(self, email: str, display_name: Optional[str] = None) -> str:
        """
        Create a password-less Firebase Auth account and return its uid.

        The owner links to it by signing in with a federated provider using the
        same email, or sets a password through a password-reset link. When an
        account already exists for the email, its uid is returned instead.
        """
        self._ensure_initialized()
        try:
            record = await asyncio.to_thread(
                firebase_auth.create_user, email=email, display_name=display_name
            )
            return record.uid
        except firebase_auth.EmailAlreadyExistsError:
            logger.info("Auth account already exists for %s; reusing it", email)
        except Exception as e:
            raise ExternalServiceError(f"Error creating auth account: {e}") from e
        return await self.get_auth_uid_by_email(email)

    async def get_auth_uid_by_email(self, email: str) -> str:
        self._ensure_initialized()
        try:
            record = await asyncio.to_thread(firebase_auth.get_user_by_email, email)
            return record.uid
        except firebase_auth.UserNotFoundError as e:
            raise NotFoundError(f"No account for {email}") from e
        except Exception as e:
            raise ExternalServiceError(f"Error looking up auth account: {e}") from e

    async def generate_password_reset_link(self, email: str) -> str:
        self._ensure_initialized()
        try:
            return await asyncio.to_thread(firebase_auth.generate_password_reset_link, email)
        except firebase_auth.UserNotFoundError as e:
            raise NotFoundError(f"No account for {email}") from e
        except Exception as e:
            raise ExternalServiceError(f"Error generating password reset link: {e}") from e

    # ============================================
    # STORAGE HELPERS
    # ============================================

    async def upload_file(self, path: str, content: bytes, content_type: str) -> str:
        """Upload bytes to Firebase Storage and return a usable URL.

        Tries to make the object public and return `public_url`. If signing is
        available will attempt to generate a signed URL, otherwise returns a
        gs:// path as a fallback.
        """
        self._ensure_initialized()
        from firebase_admin import storage as fb_storage

        def _upload():
            bucket = fb_storage.bucket()
            blob = bucket.blob(path)
            blob.upload_from_string(content, content_type=content_type)
            try:
                blob.make_public()
                return blob.public_url
            except Exception:
                try:
                    return blob.generate_signed_url(expiration=timedelta(hours=1))
                except Exception:
                    return f"gs://{bucket.name}/{path}"

        try:
            return await asyncio.to_thread(_upload)
        except Exception as e:
            raise ExternalServiceError(f"Storage upload failed: {e}") from e


# Global Firebase service instance
firebase_service = FirebaseService()

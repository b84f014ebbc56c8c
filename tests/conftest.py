import copy
import uuid
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from firebase_admin import firestore

from app.dependencies import get_current_user, get_optional_user
from app.exceptions import ExternalServiceError, NotFoundError
from app.main import app
from app.services.auth_service import CurrentUser
from app.services.firebase_service import firebase_service
from app.services.geocoding_service import geocoding_service
from app.services.notification_service import notification_service
from app.services.organization_service import organization_service


def _transform(current, value):
    if isinstance(value, firestore.Increment):
        return (current or 0) + value.value
    if isinstance(value, firestore.ArrayUnion):
        merged = list(current or [])
        for item in value.values:
            if item not in merged:
                merged.append(item)
        return merged
    if isinstance(value, firestore.ArrayRemove):
        return [item for item in (current or []) if item not in value.values]
    if isinstance(value, dict):
        result = {}
        _merge(result, value)
        return result
    return copy.deepcopy(value)


def _merge(target: Dict[str, Any], data: Dict[str, Any]) -> None:
    for key, value in data.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge(target[key], value)
        else:
            target[key] = _transform(target.get(key), value)


def _update(target: Dict[str, Any], data: Dict[str, Any]) -> None:
    for key, value in data.items():
        *parents, leaf = key.split(".")
        node = target
        for part in parents:
            node = node.setdefault(part, {})
        node[leaf] = _transform(node.get(leaf), value)


def _compare(value, op, expected) -> bool:
    if op == "==":
        return value == expected
    if op == "!=":
        return value is not None and value != expected
    if op == "array_contains":
        return isinstance(value, list) and expected in value
    if op == "in":
        return value in expected
    if value is None:
        return False
    try:
        if op == "<":
            return value < expected
        if op == "<=":
            return value <= expected
        if op == ">":
            return value > expected
        if op == ">=":
            return value >= expected
    except TypeError:
        return False
    raise ValueError(f"Unsupported operator {op}")


class InMemoryFirestore:
    """Stands in for the document methods of FirebaseService."""

    def __init__(self):
        self.docs: Dict[str, Dict[str, Any]] = {}
        self.fail_batches = False
        self.fail_updates_for: set = set()

    def seed(self, path: str, data: Dict[str, Any]) -> None:
        self.docs[path] = copy.deepcopy(data)

    def collection(self, collection_path: str) -> Dict[str, Dict[str, Any]]:
        prefix = f"{collection_path}/"
        return {
            path[len(prefix):]: data
            for path, data in self.docs.items()
            if path.startswith(prefix) and "/" not in path[len(prefix):]
        }

    async def get_document(self, path: str) -> Optional[Dict[str, Any]]:
        doc = self.docs.get(path)
        return copy.deepcopy(doc) if doc is not None else None

    async def set_document(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        self._set(self.docs, path, data, merge)

    async def update_document(self, path: str, data: Dict[str, Any]) -> None:
        if path in self.fail_updates_for:
            raise ExternalServiceError(f"Error updating {path}: simulated")
        self._apply_update(self.docs, path, data)

    async def delete_document(self, path: str) -> None:
        self.docs.pop(path, None)

    async def create_document(self, collection_path: str, data: Dict[str, Any]) -> str:
        doc_id = self.new_document_id(collection_path)
        self._set(self.docs, f"{collection_path}/{doc_id}", data, False)
        return doc_id

    def new_document_id(self, collection_path: str) -> str:
        return uuid.uuid4().hex[:20]

    async def commit_batch(self, operations: List[tuple]) -> None:
        if self.fail_batches:
            raise ExternalServiceError("Batch write failed: simulated")
        staged = copy.deepcopy(self.docs)
        for kind, path, data in operations:
            if kind == "set":
                self._set(staged, path, data, False)
            elif kind == "merge":
                self._set(staged, path, data, True)
            elif kind == "update":
                self._apply_update(staged, path, data)
            elif kind == "delete":
                staged.pop(path, None)
            else:
                raise ValueError(f"Unknown batch operation: {kind}")
        self.docs = staged

    async def query_collection(
        self,
        collection_name: str,
        filters=None,
        order_by: Optional[str] = None,
        direction: str = firestore.Query.ASCENDING,
        limit: Optional[int] = None,
    ):
        if isinstance(filters, dict):
            filters = [(k, "==", v) for k, v in filters.items()]
        results = []
        for doc_id, data in self.collection(collection_name).items():
            if all(_compare(data.get(field), op, value) for field, op, value in (filters or [])):
                results.append((doc_id, copy.deepcopy(data)))
        if order_by:
            results = [r for r in results if r[1].get(order_by) is not None]
            results.sort(
                key=lambda r: r[1][order_by],
                reverse=direction == firestore.Query.DESCENDING,
            )
        if limit:
            results = results[:limit]
        return results

    @staticmethod
    def _set(docs, path, data, merge):
        if merge and path in docs:
            _merge(docs[path], data)
        else:
            doc: Dict[str, Any] = {}
            _merge(doc, data)
            docs[path] = doc

    @staticmethod
    def _apply_update(docs, path, data):
        if path not in docs:
            raise NotFoundError(f"Document not found: {path}")
        _update(docs[path], data)


@pytest.fixture
def fake_db(monkeypatch):
    db = InMemoryFirestore()
    for name in (
        "get_document",
        "set_document",
        "update_document",
        "delete_document",
        "create_document",
        "new_document_id",
        "commit_batch",
        "query_collection",
    ):
        monkeypatch.setattr(firebase_service, name, getattr(db, name))
    organization_service.cache.invalidate()
    yield db
    organization_service.cache.invalidate()


@pytest.fixture(autouse=True)
def geocoder(monkeypatch):
    """No network in tests; geocoding fails unless a test says otherwise."""
    mock = AsyncMock(return_value=None)
    monkeypatch.setattr(geocoding_service, "geocode", mock)
    return mock


@pytest.fixture(autouse=True)
def push(monkeypatch):
    mock = AsyncMock(return_value="projects/chimeo/messages/1")
    monkeypatch.setattr(notification_service, "send_alert", mock)
    return mock


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides = {}


@pytest.fixture
def login():
    def _login(uid: str, email: Optional[str] = None, admin: bool = False) -> CurrentUser:
        user = CurrentUser(uid=uid, email=email, is_platform_admin=admin)
        app.dependency_overrides[get_current_user] = lambda: user
        app.dependency_overrides[get_optional_user] = lambda: user
        return user

    yield _login
    app.dependency_overrides = {}


def seed_organization(db: InMemoryFirestore, org_id: str, name: str, **fields) -> None:
    data = {
        "name": name,
        "type": "business",
        "verified": True,
        "followerCount": 0,
        "alertCount": 0,
        "adminIds": {},
        "location": {"latitude": 33.2, "longitude": -97.1},
    }
    data.update(fields)
    db.seed(f"organizations/{org_id}", data)


def seed_user(db: InMemoryFirestore, uid: str, **fields) -> None:
    data = {"email": f"{uid}@example.com", "displayName": uid}
    data.update(fields)
    db.seed(f"users/{uid}", data)

import pytest
from fastapi.testclient import TestClient

from opsconsole.core.audit import audit_repo
from opsconsole.core.cache import query_cache
from opsconsole.core.config import settings
from opsconsole.core.session import session_store
from opsconsole.db.memory import InMemoryBackend
from opsconsole.db.session import get_backend
from opsconsole.main import app

PASSWORD = "secret123"

USERS = {
    "admin@example.com": {
        "user_id": "u-admin",
        "username": "admin",
        "roles": [{"name": "admin"}],
        "permissions": [],
    },
    "clerk@example.com": {
        "user_id": "u-clerk",
        "username": "clerk",
        "roles": ["operator"],
        "permissions": [{"permission": "bams_view"}, {"permission": "sales_view"}],
    },
}


def _user_by_id(user_id):
    return next((u for u in USERS.values() if u["user_id"] == user_id), None)


def validate_user_credentials(args):
    user = USERS.get(args["input_username"])
    if user is None or args["input_password"] != PASSWORD:
        return []
    return [{
        "user_id": user["user_id"],
        "username": user["username"],
        "email": args["input_username"],
        "first_name": "Test",
        "last_name": user["username"].title(),
        "is_valid": True,
    }]


def get_user_with_roles(args):
    user = _user_by_id(args["user_uuid"])
    return [{"roles": user["roles"]}] if user else []


def get_user_permissions(args):
    user = _user_by_id(args["user_uuid"])
    return user["permissions"] if user else []


@pytest.fixture
def backend(monkeypatch):
    mem = InMemoryBackend()
    mem.register_rpc("validate_user_credentials", validate_user_credentials)
    mem.register_rpc("get_user_with_roles", get_user_with_roles)
    mem.register_rpc("get_user_permissions", get_user_permissions)

    monkeypatch.setattr(settings, "MARKETPLACE_THROTTLE_SECONDS", 0)
    app.dependency_overrides[get_backend] = lambda: mem
    query_cache.clear()
    session_store.clear()
    audit_repo._storage.clear()
    yield mem
    app.dependency_overrides.clear()


@pytest.fixture
def client(backend):
    return TestClient(app)


def login(client, email):
    response = client.post("/auth/login", json={"email": email, "password": PASSWORD})
    assert response.status_code == 200, response.text
    return response


@pytest.fixture
def admin_client(client):
    login(client, "admin@example.com")
    return client


@pytest.fixture
def clerk_client(client):
    login(client, "clerk@example.com")
    return client

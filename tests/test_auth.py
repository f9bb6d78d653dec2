from opsconsole.core.auth import ADMIN_PERMISSIONS
from opsconsole.core.config import settings
from opsconsole.core.session import now_ms, session_store


def test_login_stores_session(client):
    response = client.post("/auth/login", json={"email": "Admin@Example.com ", "password": "secret123"})
    assert response.status_code == 200
    body = response.json()

    token = body["token"]
    assert client.cookies.get(settings.SESSION_COOKIE) == token
    assert body["redirect_url"] == "/dashboard"

    blob = session_store.load(token)
    assert blob is not None
    assert blob.expiresIn == 604800000
    assert abs(blob.timestamp - now_ms()) < 60000
    assert blob.user.id == "u-admin"
    assert blob.user.is_admin()
    assert blob.permissions == ADMIN_PERMISSIONS


def test_invalid_credentials(client):
    response = client.post("/auth/login", json={"email": "admin@example.com", "password": "wrong"})
    assert response.status_code == 401
    body = response.json()
    assert body["toast"]["title"] == "Authentication failed"
    assert body["toast"]["variant"] == "destructive"
    assert settings.SESSION_COOKIE not in client.cookies


def test_credential_rpc_error_is_authentication_failure(client, backend):
    backend.fail_next("rpc", "validate_user_credentials", "connection reset")
    response = client.post("/auth/login", json={"email": "admin@example.com", "password": "secret123"})
    assert response.status_code == 401


def test_non_admin_permissions_come_from_rpc(clerk_client):
    response = clerk_client.get("/auth/session")
    assert response.status_code == 200
    session = response.json()
    assert session["user"]["roles"] == ["operator"]
    assert session["permissions"] == ["bams_view", "sales_view"]


def test_header_token_is_accepted(client):
    token = client.post("/auth/login", json={"email": "clerk@example.com", "password": "secret123"}).json()["token"]
    client.cookies.clear()
    response = client.get("/auth/session", headers={settings.SESSION_HEADER: token})
    assert response.status_code == 200
    assert response.json()["user"]["id"] == "u-clerk"


def test_expired_session_is_discarded(admin_client):
    token = admin_client.cookies.get(settings.SESSION_COOKIE)
    blob = session_store.load(token)
    blob.timestamp = now_ms() - settings.SESSION_TTL_MS - 1000

    response = admin_client.get("/auth/session")
    assert response.status_code == 401
    assert response.json()["toast"]["title"] == "Session expired"
    assert session_store.load(token) is None


def test_logout_removes_session(admin_client):
    token = admin_client.cookies.get(settings.SESSION_COOKIE)
    response = admin_client.post("/auth/logout")
    assert response.status_code == 200
    assert session_store.load(token) is None


def test_permission_denied(clerk_client):
    response = clerk_client.post("/bams/accounts", json={"account_name": "X"})
    assert response.status_code == 403
    assert response.json()["toast"]["title"] == "Access denied"


def test_register_validation_runs_before_rpc(client, backend):
    payload = {
        "first_name": "Asha",
        "last_name": "Rao",
        "username": "asha",
        "email": "asha@example.com",
        "password": "secret123",
        "confirmPassword": "secret124",
    }
    response = client.post("/auth/register", json=payload)
    assert response.status_code == 400
    assert response.json()["detail"] == "Passwords do not match"
    assert response.json()["toast"]["title"] == "Validation Error"
    assert not backend.called("rpc", "register_user_request")


def test_register_rejects_bad_email(client):
    payload = {
        "first_name": "Asha",
        "last_name": "Rao",
        "username": "asha",
        "email": "not-an-email",
        "password": "secret123",
        "confirmPassword": "secret123",
    }
    response = client.post("/auth/register", json=payload)
    assert response.status_code == 400
    assert response.json()["detail"] == "Please enter a valid email address"


def test_register_submits_request(client, backend):
    captured = {}

    def register_user_request(args):
        captured.update(args)
        return "reg-42"

    backend.register_rpc("register_user_request", register_user_request)
    payload = {
        "first_name": " Asha ",
        "last_name": "Rao",
        "username": "asha",
        "email": "Asha@Example.com",
        "phone": "9876543210",
        "password": "secret123",
        "confirmPassword": "secret123",
    }
    response = client.post("/auth/register", json=payload)
    assert response.status_code == 200
    assert response.json()["data"] == {"registration_id": "reg-42"}
    assert captured["p_first_name"] == "Asha"
    assert captured["p_email"] == "asha@example.com"


def test_profile_update_uploads_avatar(admin_client, backend):
    backend.register_rpc("update_user_profile", lambda args: True)
    response = admin_client.post(
        "/auth/profile",
        data={"first_name": "Ada"},
        files={"avatar": ("me photo.png", b"\x89PNG", "image/png")},
    )
    assert response.status_code == 200
    avatar_url = response.json()["data"]["avatar_url"]
    assert avatar_url.startswith("memory://avatars/u-admin/")

    stored = backend.storage["avatars"]
    assert len(stored) == 1
    assert admin_client.get("/auth/session").json()["user"]["firstName"] == "Ada"


def test_change_password_wrong_current(admin_client, backend):
    backend.register_rpc("update_user_password", lambda args: False)
    response = admin_client.post(
        "/auth/password",
        json={"current_password": "old", "new_password": "newpass1", "confirm_password": "newpass1"},
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Current password is incorrect"


def test_change_password_mismatch(admin_client, backend):
    response = admin_client.post(
        "/auth/password",
        json={"current_password": "old", "new_password": "newpass1", "confirm_password": "newpass2"},
    )
    assert response.status_code == 400
    assert not backend.called("rpc", "update_user_password")

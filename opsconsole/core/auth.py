import logging
import re
from typing import Any, List, Optional, Tuple

from opsconsole.core.audit import ActionTypes, log_action
from opsconsole.core.config import settings
from opsconsole.core.errors import AuthenticationError, BackendError, FormValidationError
from opsconsole.core.session import create_session, session_store
from opsconsole.core.uploads import store_file
from opsconsole.db.backend import Backend
from opsconsole.schemas.auth import (
    AuthenticatedUser,
    PasswordChange,
    ProfileUpdate,
    RegistrationRequest,
    SessionBlob,
)

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 6

MODULES = [
    "sales", "purchase", "bams", "clients", "leads", "user_management", "hrms", "payroll",
    "compliance", "stock", "accounting", "video_kyc", "kyc_approvals", "statistics",
]
ADMIN_PERMISSIONS = ["dashboard_view"] + [f"{m}_{a}" for m in MODULES for a in ("view", "manage")]


def _first(result: Any) -> Optional[dict]:
    if isinstance(result, list):
        return result[0] if result else None
    return result if isinstance(result, dict) else None


def _role_names(raw_roles: Any) -> List[str]:
    if not isinstance(raw_roles, list):
        return []
    names = []
    for role in raw_roles:
        name = role.get("name") if isinstance(role, dict) else role
        if name:
            names.append(str(name))
    return names


def has_permission(session: SessionBlob, permission: str) -> bool:
    return session.user.is_admin() or permission in session.permissions


async def _permissions_for(backend: Backend, user: AuthenticatedUser) -> List[str]:
    if user.is_admin():
        return list(ADMIN_PERMISSIONS)
    try:
        rows = await backend.rpc("get_user_permissions", {"user_uuid": user.id}) or []
    except BackendError as e:
        logger.warning(f"Could not load permissions for {user.id}: {e.message}")
        return []
    return [r["permission"] if isinstance(r, dict) else str(r) for r in rows]


async def login(backend: Backend, email: str, password: str) -> Tuple[str, SessionBlob]:
    """
    Exchange email + password for a stored session blob.
    Credentials are checked by the `validate_user_credentials` RPC; roles come from `get_user_with_roles`.
    """
    email = (email or "").strip().lower()
    if not email or not password:
        raise AuthenticationError()

    try:
        result = await backend.rpc("validate_user_credentials", {"input_username": email, "input_password": password})
    except BackendError as e:
        logger.info(f"Credential validation failed for {email}: {e.message}")
        raise AuthenticationError()

    validation = _first(result)
    if not validation or not validation.get("is_valid"):
        logger.info(f"Invalid credentials for {email}")
        raise AuthenticationError()

    roles: List[str] = []
    try:
        user_with_roles = _first(await backend.rpc("get_user_with_roles", {"user_uuid": validation["user_id"]}))
        if user_with_roles:
            roles = _role_names(user_with_roles.get("roles"))
    except BackendError as e:
        logger.warning(f"Role lookup failed for {validation['user_id']}: {e.message}")

    user = AuthenticatedUser(
        id=validation["user_id"],
        username=validation.get("username") or email,
        email=validation.get("email") or email,
        firstName=validation.get("first_name") or None,
        lastName=validation.get("last_name") or None,
        roles=roles or ["user"],
    )
    permissions = await _permissions_for(backend, user)
    token, blob = create_session(user, permissions)
    logger.info(f"User authenticated: {user.id} roles={user.roles}")
    return token, blob


def logout(token: Optional[str]):
    if token:
        session_store.delete(token)


def validate_registration(form: RegistrationRequest) -> Optional[str]:
    if not form.first_name.strip():
        return "First name is required"
    if not form.last_name.strip():
        return "Last name is required"
    if not form.username.strip():
        return "Username is required"
    email = form.email.strip().lower()
    if not email:
        return "Email is required"
    if not EMAIL_PATTERN.match(email):
        return "Please enter a valid email address"
    if not form.password:
        return "Password is required"
    if len(form.password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
    if form.password != form.confirmPassword:
        return "Passwords do not match"
    return None


async def register(backend: Backend, form: RegistrationRequest) -> Any:
    error = validate_registration(form)
    if error:
        raise FormValidationError(error, title="Validation Error")

    registration_id = await backend.rpc("register_user_request", {
        "p_first_name": form.first_name.strip(),
        "p_last_name": form.last_name.strip(),
        "p_username": form.username.strip(),
        "p_email": form.email.strip().lower(),
        "p_phone": form.phone.strip(),
        "p_password": form.password,
    })
    logger.info(f"Registration request submitted for {form.email.strip().lower()}")
    return registration_id


async def update_profile(backend: Backend, session: SessionBlob, form: ProfileUpdate, avatar: Optional[Tuple[str, bytes, str]] = None) -> Any:
    avatar_url = form.avatar_url
    if avatar is not None:
        filename, content, content_type = avatar
        avatar_url = await store_file(backend, settings.AVATAR_BUCKET, session.user.id, filename, content, content_type)

    result = await backend.rpc("update_user_profile", {
        "p_user_id": session.user.id,
        "p_first_name": form.first_name,
        "p_last_name": form.last_name,
        "p_phone": form.phone,
        "p_avatar_url": avatar_url,
    })

    # Keep the cached session in step with the profile
    if form.first_name is not None:
        session.user.firstName = form.first_name
    if form.last_name is not None:
        session.user.lastName = form.last_name

    await log_action(backend, session.user.id, ActionTypes.USER_UPDATED, "user", session.user.id, "user_management")
    return {"result": result, "avatar_url": avatar_url}


async def change_password(backend: Backend, session: SessionBlob, form: PasswordChange) -> Any:
    if not form.current_password:
        raise FormValidationError("Current password is required")
    if len(form.new_password) < MIN_PASSWORD_LENGTH:
        raise FormValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if form.new_password != form.confirm_password:
        raise FormValidationError("Passwords do not match")

    result = await backend.rpc("update_user_password", {
        "p_user_id": session.user.id,
        "p_current_password": form.current_password,
        "p_new_password": form.new_password,
    })
    if result is False:
        raise FormValidationError("Current password is incorrect")

    await log_action(backend, session.user.id, ActionTypes.USER_PASSWORD_RESET, "user", session.user.id, "user_management")
    return result

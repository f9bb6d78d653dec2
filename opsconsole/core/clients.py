import logging
import random
import string
import time
from datetime import date
from typing import Optional

from opsconsole.core.audit import ActionTypes, log_action
from opsconsole.core.errors import BackendError, FormValidationError
from opsconsole.db.backend import Backend, Row
from opsconsole.schemas.sales import ClientRef

logger = logging.getLogger(__name__)

CLIENT_ID_ALPHABET = string.digits + string.ascii_uppercase
CLIENT_ID_LENGTH = 6
MAX_CLIENT_ID_ATTEMPTS = 10


def escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _base36(n: int) -> str:
    digits = ""
    while n:
        n, r = divmod(n, 36)
        digits = CLIENT_ID_ALPHABET[r] + digits
    return digits or "0"


async def find_client_by_name(backend: Backend, name: str) -> Optional[Row]:
    """Oldest live client whose name matches case-insensitively."""
    rows = await (
        backend.table("clients")
        .select("*")
        .ilike("name", escape_like(name.strip()))
        .eq("is_deleted", False)
        .order("created_at")
        .limit(1)
        .execute()
    )
    return rows[0] if rows else None


async def generate_unique_client_id(backend: Backend) -> str:
    client_id = ""
    for attempt in range(MAX_CLIENT_ID_ATTEMPTS):
        client_id = "".join(random.choice(CLIENT_ID_ALPHABET) for _ in range(CLIENT_ID_LENGTH))
        try:
            existing = await backend.table("clients").select("id").eq("client_id", client_id).maybe_single().execute()
        except BackendError as e:
            logger.error(f"Error checking client ID uniqueness: {e.message}")
            continue
        if existing is None:
            return client_id

    # Fallback: last two base-36 digits of the clock
    fallback = client_id[:4] + _base36(int(time.time() * 1000))[-2:]
    logger.warning(f"No unique client id after {MAX_CLIENT_ID_ATTEMPTS} attempts, using {fallback}")
    return fallback


async def create_buyer_client(
    backend: Backend,
    name: str,
    contact_number: Optional[str] = None,
    state: Optional[str] = None,
    user_id: Optional[str] = None,
) -> ClientRef:
    """Reuse the client matching `name` (filling in missing phone/state) or insert a new BUYER."""
    if not name or not name.strip():
        raise FormValidationError("Client name is required")

    existing = await find_client_by_name(backend, name)
    if existing:
        updates = {}
        if contact_number and not existing.get("phone"):
            updates["phone"] = contact_number
        if state and not existing.get("state"):
            updates["state"] = state
        if updates:
            await backend.table("clients").update(updates).eq("id", existing["id"]).execute()
        return ClientRef(id=existing["id"], client_id=existing["client_id"])

    client_id = await generate_unique_client_id(backend)
    try:
        created = await backend.table("clients").insert({
            "name": name.strip(),
            "client_id": client_id,
            "client_type": "BUYER",
            "kyc_status": "PENDING",
            "date_of_onboarding": date.today().isoformat(),
            "phone": contact_number or None,
            "state": state or None,
            "risk_appetite": "MEDIUM",
            "is_buyer": True,
            "is_seller": False,
            "is_deleted": False,
            "buyer_approval_status": "PENDING",
            "seller_approval_status": "NOT_APPLICABLE",
        }).select("id, client_id").single().execute()
    except BackendError as e:
        if e.is_unique_violation:
            # Created concurrently by another operator
            logger.info(f"Client {name!r} already exists, fetching existing")
            existing = await find_client_by_name(backend, name)
            if existing:
                return ClientRef(id=existing["id"], client_id=existing["client_id"])
        raise

    await log_action(backend, user_id, ActionTypes.CLIENT_CREATED, "client", created["id"], "clients",
                     {"client_id": created["client_id"], "name": name.strip()})
    return ClientRef(id=created["id"], client_id=created["client_id"])

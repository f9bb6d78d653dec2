from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import logging

from opsconsole.core.errors import BackendError
from opsconsole.db.backend import Backend
from opsconsole.schemas.audit import ActionLog, AuditLogEntry

logger = logging.getLogger(__name__)

class AuditRepository(ABC):
    @abstractmethod
    def save(self, entry: AuditLogEntry):
        pass

    @abstractmethod
    def get_all(self) -> List[AuditLogEntry]:
        pass

class InMemoryAuditRepository(AuditRepository):
    def __init__(self):
        self._storage: List[AuditLogEntry] = []

    def save(self, entry: AuditLogEntry):
        self._storage.append(entry)
        logger.info(f"Audit Logged: {entry.model_dump_json()}")

    def get_all(self) -> List[AuditLogEntry]:
        return list(self._storage)

# Global Accessor
audit_repo = InMemoryAuditRepository()


class ActionTypes:
    SALES_ORDER_CREATED = "sales.order_created"
    SALES_SYNC_REJECTED = "sales.terminal_sync_rejected"
    CLIENT_CREATED = "client.created"
    BANK_ACCOUNT_CREATED = "bank.account_created"
    BANK_ACCOUNT_UPDATED = "bank.account_updated"
    BANK_ACCOUNT_CLOSED = "bank.account_closed"
    BANK_TRANSACTION_CREATED = "bank.transaction_created"
    BANK_TRANSFER_COMPLETED = "bank.transfer_completed"
    KYC_APPROVED = "kyc.approved"
    KYC_REJECTED = "kyc.rejected"
    USER_UPDATED = "user.updated"
    USER_PASSWORD_RESET = "user.password_reset"


async def log_action(
    backend: Backend,
    user_id: Optional[str],
    action_type: str,
    entity_type: str,
    entity_id: Optional[str],
    module: str,
    metadata: Optional[Dict[str, Any]] = None,
):
    """
    Record a business action in `system_action_logs`.
    Idempotent per (entity_id, action_type) and never raises: a failed log must not fail the mutation.
    """
    if not user_id or not entity_id:
        logger.warning(f"Skipping action log {action_type}: missing user or entity id")
        return

    entry = ActionLog(
        user_id=user_id,
        action_type=action_type,
        entity_type=entity_type,
        entity_id=entity_id,
        module=module,
        metadata=metadata or {},
    )
    row = entry.model_dump()
    row["recorded_at"] = datetime.now(timezone.utc).isoformat()
    try:
        await backend.table("system_action_logs").upsert(row, on_conflict="entity_id,action_type").execute()
    except BackendError as e:
        logger.error(f"Failed to log action {action_type} for {entity_id}: {e.message}")

from enum import Enum
from pydantic import BaseModel, Field
from datetime import date
from typing import Any, Dict, Optional

class SyncStatus(str, Enum):
    SYNCED_PENDING_APPROVAL = "synced_pending_approval"
    CLIENT_MAPPING_PENDING = "client_mapping_pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    DUPLICATE_BLOCKED = "duplicate_blocked"

REVIEWABLE_STATUSES = (SyncStatus.SYNCED_PENDING_APPROVAL, SyncStatus.CLIENT_MAPPING_PENDING)

class TerminalSalesSync(BaseModel):
    id: str
    binance_order_number: str
    sync_status: SyncStatus
    order_data: Dict[str, Any] = Field(default_factory=dict)
    client_id: Optional[str] = None
    counterparty_name: Optional[str] = None
    contact_number: Optional[str] = None
    state: Optional[str] = None
    synced_by: Optional[str] = None
    synced_at: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[str] = None
    sales_order_id: Optional[str] = None
    rejection_reason: Optional[str] = None

class SyncSummary(BaseModel):
    synced: int = 0
    duplicates: int = 0

class HistoryImportSummary(BaseModel):
    fetched: int = 0
    stored: int = 0
    failed: int = 0

class ApprovalRequest(BaseModel):
    bank_account_id: str = ""
    settlement_date: Optional[date] = None
    remarks: str = ""
    contact_number: Optional[str] = Field(default=None, max_length=15)
    state: Optional[str] = None
    client_id: Optional[str] = None

class ApprovalResult(BaseModel):
    sync_id: str
    sales_order_id: str
    order_number: str
    fee_recorded: bool = False

class RejectionRequest(BaseModel):
    reason: str = ""

class BuyerClientRequest(BaseModel):
    contact_number: Optional[str] = None
    state: Optional[str] = None

class ClientRef(BaseModel):
    id: str
    client_id: str

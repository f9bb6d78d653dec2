from enum import Enum
from pydantic import BaseModel, Field, computed_field, field_validator
from datetime import date
from typing import List, Optional

class AccountStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    PENDING_APPROVAL = "PENDING_APPROVAL"

class AccountLifecycle(str, Enum):
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"

class AccountType(str, Enum):
    SAVINGS = "SAVINGS"
    CURRENT = "CURRENT"

class TransactionType(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"
    TRANSFER_IN = "TRANSFER_IN"
    TRANSFER_OUT = "TRANSFER_OUT"

class BankAccount(BaseModel):
    id: str
    account_name: str
    bank_name: str
    account_number: str
    IFSC: Optional[str] = None
    branch: Optional[str] = None
    bank_account_holder_name: Optional[str] = None
    account_type: Optional[AccountType] = None
    balance: float = 0.0
    lien_amount: float = 0.0
    subsidiary_id: Optional[str] = None
    status: AccountStatus = AccountStatus.ACTIVE
    account_status: AccountLifecycle = AccountLifecycle.ACTIVE

    @field_validator("balance", "lien_amount", mode="before")
    @classmethod
    def none_as_zero(cls, v):
        return 0.0 if v is None else v

    @computed_field
    @property
    def available_balance(self) -> float:
        return round(self.balance - self.lien_amount, 2)

class BankAccountForm(BaseModel):
    # Completeness is checked in core.bams
    account_name: str = ""
    bank_name: str = ""
    account_number: str = ""
    ifsc_code: str = ""
    branch: Optional[str] = None
    bank_account_holder_name: Optional[str] = None
    account_type: Optional[str] = None
    balance: Optional[float] = None
    lien_amount: Optional[float] = 0.0
    subsidiary_id: Optional[str] = None
    status: AccountStatus = AccountStatus.ACTIVE

    @field_validator("account_name", "bank_name", "account_number", "ifsc_code", mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else ("" if v is None else v)

class TransactionForm(BaseModel):
    bank_account_id: str = ""
    transaction_type: str = ""
    amount: Optional[float] = None
    category: str = ""
    description: str = ""
    transaction_date: Optional[date] = None
    reference_number: Optional[str] = None
    client_id: Optional[str] = None

class TransferForm(BaseModel):
    from_account_id: str = ""
    to_account_id: str = ""
    amount: Optional[float] = None
    transaction_date: Optional[date] = None
    description: Optional[str] = None

class TransferResult(BaseModel):
    transfer_out_id: str
    transfer_in_id: str
    amount: float

class CloseAccountForm(BaseModel):
    closure_reason: str = ""
    transfer_balance: bool = False
    settlement_bank_id: Optional[str] = None
    manual_delete: bool = False

class ClosureResult(BaseModel):
    account_id: str
    deleted: bool = False
    final_balance: float = 0.0
    documents: List[str] = Field(default_factory=list)

class ImportResult(BaseModel):
    imported: int
    errors: List[str] = Field(default_factory=list)

class CategoryGroup(BaseModel):
    value: str
    label: str
    subcategories: List[dict] = Field(default_factory=list)

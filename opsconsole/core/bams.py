"""
Bank Account Management (BAMS).

Balance arithmetic lives in the backend: every `bank_transactions` row adjusts its
account's balance server-side. This module validates forms, checks available
balance before money leaves an account, and sequences the writes.
"""

import csv
import io
import logging
from datetime import date, datetime, timezone
from typing import List, Optional

from opsconsole.core.audit import ActionTypes, log_action
from opsconsole.core.cache import query_cache
from opsconsole.core.categories import category_label
from opsconsole.core.config import settings
from opsconsole.core.errors import BackendError, FormValidationError, RecordNotFound
from opsconsole.core.uploads import UploadedFile, store_files
from opsconsole.db.backend import Backend, Row
from opsconsole.schemas.bank import (
    AccountLifecycle,
    AccountStatus,
    AccountType,
    BankAccount,
    BankAccountForm,
    CloseAccountForm,
    ClosureResult,
    ImportResult,
    TransactionForm,
    TransactionType,
    TransferForm,
    TransferResult,
)

logger = logging.getLogger(__name__)

ACCOUNT_TYPES = {t.value for t in AccountType}
IMPORT_COLUMNS = ["account_name", "bank_name", "account_number", "ifsc_code", "balance", "account_type", "company_name"]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _invalidate_ledger():
    query_cache.invalidate("bank_accounts", "bank_transactions", "pending_approval_accounts")


async def list_accounts(
    backend: Backend,
    status: Optional[AccountStatus] = None,
    account_status: Optional[AccountLifecycle] = None,
) -> List[BankAccount]:
    async def load():
        query = backend.table("bank_accounts").select("*").order("created_at", desc=True)
        if status is not None:
            query = query.eq("status", status.value)
        if account_status is not None:
            query = query.eq("account_status", account_status.value)
        return [BankAccount(**row) for row in await query.execute()]

    key = ("bank_accounts", status.value if status else None, account_status.value if account_status else None)
    return await query_cache.fetch(key, load)


async def get_account(backend: Backend, account_id: str) -> BankAccount:
    row = await backend.table("bank_accounts").select("*").eq("id", account_id).maybe_single().execute()
    if row is None:
        raise RecordNotFound("Bank account", account_id)
    return BankAccount(**row)


def _validate_account_form(form: BankAccountForm, require_company: bool):
    if require_company and not form.subsidiary_id:
        raise FormValidationError("Please select a company")
    if not form.account_name or not form.bank_name or not form.account_number:
        raise FormValidationError("Please fill in all required fields")
    if form.balance is None:
        raise FormValidationError("Please enter the opening balance")
    if form.balance < 0:
        raise FormValidationError("Balance cannot be negative")
    if (form.lien_amount or 0) < 0:
        raise FormValidationError("Lien amount cannot be negative")
    if form.account_type and form.account_type.upper() not in ACCOUNT_TYPES:
        raise FormValidationError("Account type must be SAVINGS or CURRENT")


def _account_row(form: BankAccountForm) -> Row:
    return {
        "account_name": form.account_name,
        "bank_name": form.bank_name,
        "account_number": form.account_number,
        "IFSC": form.ifsc_code or None,
        "branch": form.branch or None,
        "bank_account_holder_name": form.bank_account_holder_name or None,
        "account_type": form.account_type.upper() if form.account_type else None,
        "balance": form.balance,
        "lien_amount": form.lien_amount or 0,
        "subsidiary_id": form.subsidiary_id,
        "status": form.status.value,
    }


async def create_account(backend: Backend, form: BankAccountForm, user_id: Optional[str] = None) -> BankAccount:
    _validate_account_form(form, require_company=True)

    row = _account_row(form)
    row["account_status"] = AccountLifecycle.ACTIVE.value
    created = await backend.table("bank_accounts").insert(row).select().single().execute()

    await log_action(backend, user_id, ActionTypes.BANK_ACCOUNT_CREATED, "bank_account", created["id"], "bams",
                     {"account_name": form.account_name, "bank_name": form.bank_name})
    _invalidate_ledger()
    return BankAccount(**created)


async def update_account(backend: Backend, account_id: str, form: BankAccountForm, user_id: Optional[str] = None) -> BankAccount:
    _validate_account_form(form, require_company=False)

    values = _account_row(form)
    if not form.subsidiary_id:
        values.pop("subsidiary_id")
    values["updated_at"] = _now_iso()
    try:
        rows = await backend.table("bank_accounts").update(values).eq("id", account_id).execute()
    except BackendError as e:
        if "cannot be negative" in e.message:
            raise FormValidationError("Bank account balance cannot be negative.", title="Invalid Balance") from e
        raise
    if not rows:
        raise RecordNotFound("Bank account", account_id)

    await log_action(backend, user_id, ActionTypes.BANK_ACCOUNT_UPDATED, "bank_account", account_id, "bams")
    _invalidate_ledger()
    return BankAccount(**rows[0])


def _parse_number(value: str) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


async def import_accounts(backend: Backend, content: bytes) -> ImportResult:
    """
    Bulk-create accounts from a CSV export.
    Rows failing validation are reported and skipped; valid rows are inserted as PENDING_APPROVAL.
    """
    try:
        decoded = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise FormValidationError("Invalid encoding. Please upload a UTF-8 CSV file.")

    reader = csv.DictReader(io.StringIO(decoded))
    rows = [{k.strip(): (v or "").strip() for k, v in row.items() if k} for row in reader]
    if not rows:
        raise FormValidationError("The file contains no bank accounts")

    headers = [f.strip() for f in reader.fieldnames or []]
    missing = [c for c in IMPORT_COLUMNS if c not in headers]
    if missing:
        raise FormValidationError(f"Missing required columns: {', '.join(missing)}")

    subsidiaries = await backend.table("subsidiaries").select("id, firm_name").execute()
    firms = {s["firm_name"].lower(): s["id"] for s in subsidiaries if s.get("firm_name")}

    errors: List[str] = []
    to_insert: List[Row] = []
    for index, row in enumerate(rows):
        row_num = index + 2  # header is row 1
        row_errors = []
        if not row.get("account_name"):
            row_errors.append(f"Row {row_num}: Account name is required")
        if not row.get("bank_name"):
            row_errors.append(f"Row {row_num}: Bank name is required")
        if not row.get("account_number"):
            row_errors.append(f"Row {row_num}: Account number is required")
        if not row.get("ifsc_code"):
            row_errors.append(f"Row {row_num}: IFSC code is required")
        balance = _parse_number(row.get("balance"))
        if balance is None:
            row_errors.append(f"Row {row_num}: Valid balance is required")
        company = row.get("company_name", "")
        if not company:
            row_errors.append(f"Row {row_num}: Company name is required")
        elif company.lower() not in firms:
            row_errors.append(f'Row {row_num}: Company "{company}" not found')
        if row.get("account_type", "").upper() not in ACCOUNT_TYPES:
            row_errors.append(f"Row {row_num}: Account type must be SAVINGS or CURRENT")

        if row_errors:
            errors.extend(row_errors)
            continue

        to_insert.append({
            "account_name": row["account_name"],
            "bank_name": row["bank_name"],
            "account_number": row["account_number"],
            "IFSC": row["ifsc_code"],
            "branch": row.get("branch") or None,
            "balance": balance,
            "lien_amount": _parse_number(row.get("lien_amount")) or 0,
            "bank_account_holder_name": row.get("account_holder_name") or None,
            "account_type": row["account_type"].upper(),
            "subsidiary_id": firms[company.lower()],
            "status": AccountStatus.PENDING_APPROVAL.value,
            "account_status": AccountLifecycle.ACTIVE.value,
        })

    if to_insert:
        await backend.table("bank_accounts").insert(to_insert).execute()
        _invalidate_ledger()

    logger.info(f"Bank account import: {len(to_insert)} imported, {len(errors)} errors")
    return ImportResult(imported=len(to_insert), errors=errors)


async def get_open_account(backend: Backend, account_id: str) -> BankAccount:
    account = await get_account(backend, account_id)
    if account.account_status == AccountLifecycle.CLOSED:
        raise FormValidationError(f"{account.account_name} is closed and cannot take new transactions", title="Account closed")
    return account


async def check_available_balance(backend: Backend, account_id: str, amount: float) -> BankAccount:
    account = await get_open_account(backend, account_id)
    if amount > account.available_balance:
        raise FormValidationError(
            f"Insufficient balance in {account.account_name}. "
            f"Available: Rs. {account.available_balance:,.2f}, Required: Rs. {amount:,.2f}",
            title="Insufficient balance",
        )
    return account


async def record_transaction(backend: Backend, form: TransactionForm, user_id: Optional[str] = None) -> Row:
    if form.transaction_type not in (TransactionType.INCOME.value, TransactionType.EXPENSE.value):
        raise FormValidationError("Transaction type must be INCOME or EXPENSE")
    if not form.bank_account_id or form.amount is None or not form.transaction_date or not form.description.strip():
        raise FormValidationError("Please fill in all required fields including description")
    if not form.category:
        raise FormValidationError("Please select a category")
    label = category_label(form.transaction_type, form.category)
    if label is None:
        raise FormValidationError(f"Category is not valid for {form.transaction_type.lower()} entries")
    if form.amount <= 0:
        raise FormValidationError("Amount must be greater than 0")

    if form.transaction_type == TransactionType.EXPENSE.value:
        await check_available_balance(backend, form.bank_account_id, form.amount)
    else:
        await get_open_account(backend, form.bank_account_id)

    created = await backend.table("bank_transactions").insert({
        "bank_account_id": form.bank_account_id,
        "transaction_type": form.transaction_type,
        "amount": form.amount,
        "category": label,
        "description": form.description.strip(),
        "transaction_date": form.transaction_date.isoformat(),
        "reference_number": form.reference_number or None,
        "created_by": user_id,
        "client_id": form.client_id or None,
    }).select().single().execute()

    await log_action(backend, user_id, ActionTypes.BANK_TRANSACTION_CREATED, "bank_transaction", created["id"], "bams",
                     {"transaction_type": form.transaction_type, "amount": form.amount})
    _invalidate_ledger()
    return created


async def transfer(backend: Backend, form: TransferForm, user_id: Optional[str] = None) -> TransferResult:
    """Contra entry: TRANSFER_OUT, TRANSFER_IN pointing back at it, then the OUT row is linked forward."""
    if not form.from_account_id or not form.to_account_id or form.amount is None or not form.transaction_date:
        raise FormValidationError("Please fill in all required fields")
    if form.from_account_id == form.to_account_id:
        raise FormValidationError("From and To accounts must be different")
    if form.amount <= 0:
        raise FormValidationError("Transfer amount must be greater than 0")

    from_account = await check_available_balance(backend, form.from_account_id, form.amount)
    to_account = await get_open_account(backend, form.to_account_id)

    stamp = int(datetime.now(timezone.utc).timestamp() * 1000)
    txn_date = form.transaction_date.isoformat()

    transfer_out = await backend.table("bank_transactions").insert({
        "bank_account_id": from_account.id,
        "transaction_type": TransactionType.TRANSFER_OUT.value,
        "amount": form.amount,
        "description": form.description or f"Transfer to {to_account.account_name}",
        "transaction_date": txn_date,
        "reference_number": f"TRF-OUT-{stamp}",
        "related_account_name": to_account.account_name,
        "created_by": user_id,
    }).select().single().execute()

    transfer_in = await backend.table("bank_transactions").insert({
        "bank_account_id": to_account.id,
        "transaction_type": TransactionType.TRANSFER_IN.value,
        "amount": form.amount,
        "description": form.description or f"Transfer from {from_account.account_name}",
        "transaction_date": txn_date,
        "reference_number": f"TRF-IN-{stamp}",
        "related_account_name": from_account.account_name,
        "related_transaction_id": transfer_out["id"],
        "created_by": user_id,
    }).select().single().execute()

    await backend.table("bank_transactions").update({"related_transaction_id": transfer_in["id"]}).eq("id", transfer_out["id"]).execute()

    await log_action(backend, user_id, ActionTypes.BANK_TRANSFER_COMPLETED, "bank_transaction", transfer_out["id"], "bams", {
        "from_account_id": from_account.id,
        "to_account_id": to_account.id,
        "amount": form.amount,
    })
    _invalidate_ledger()
    return TransferResult(transfer_out_id=transfer_out["id"], transfer_in_id=transfer_in["id"], amount=form.amount)


async def _deactivate_payment_methods(backend: Backend, account: BankAccount):
    try:
        await backend.table("sales_payment_methods").update({"is_active": False}).eq("bank_account_id", account.id).execute()
    except BackendError as e:
        logger.warning(f"Failed to deactivate sales payment methods for {account.id}: {e.message}")
    try:
        await (
            backend.table("purchase_payment_methods")
            .update({"is_active": False})
            .or_(("bank_account_name", "eq", account.account_name), ("bank_account_id", "eq", account.id))
            .execute()
        )
    except BackendError as e:
        logger.warning(f"Failed to deactivate purchase payment methods for {account.id}: {e.message}")


async def close_account(
    backend: Backend,
    account_id: str,
    form: CloseAccountForm,
    documents: Optional[List[UploadedFile]] = None,
    user_id: Optional[str] = None,
) -> ClosureResult:
    """
    Close (or, when enabled, hard-delete) an account.
    Writes are sequential and not wrapped in a transaction: a failure leaves earlier steps committed.
    """
    if not form.closure_reason.strip():
        raise FormValidationError("Please provide a closure reason")
    if form.manual_delete and not settings.ALLOW_MANUAL_ACCOUNT_DELETE:
        raise FormValidationError("Manual deletion of bank accounts is disabled")

    account = await get_account(backend, account_id)
    if account.account_status == AccountLifecycle.CLOSED:
        raise FormValidationError("Bank account is already closed")

    settle = form.transfer_balance and account.balance != 0
    if settle and not form.settlement_bank_id:
        raise FormValidationError("Please select a bank account for balance settlement")
    if settle and form.settlement_bank_id == account.id:
        raise FormValidationError("Settlement account must be different from the account being closed")
    if settle:
        await get_open_account(backend, form.settlement_bank_id)

    document_urls = await store_files(backend, settings.KYC_BUCKET, "bank-closures", documents or [])

    if settle:
        today = date.today().isoformat()
        amount = abs(account.balance)
        try:
            await backend.table("bank_transactions").insert({
                "bank_account_id": account.id,
                "transaction_type": TransactionType.TRANSFER_OUT.value,
                "amount": amount,
                "description": "Balance transfer to settlement account during closure",
                "transaction_date": today,
                "related_transaction_id": None,
                "created_by": user_id,
            }).execute()
        except BackendError as e:
            raise BackendError(f"Failed to create transfer out transaction: {e.message}", code=e.code) from e
        try:
            await backend.table("bank_transactions").insert({
                "bank_account_id": form.settlement_bank_id,
                "transaction_type": TransactionType.TRANSFER_IN.value,
                "amount": amount,
                "description": f"Balance received from closed account: {account.account_name}",
                "transaction_date": today,
                "related_transaction_id": None,
                "created_by": user_id,
            }).execute()
        except BackendError as e:
            raise BackendError(f"Failed to create transfer in transaction: {e.message}", code=e.code) from e

    await _deactivate_payment_methods(backend, account)

    final_balance = 0.0 if settle else account.balance
    if form.manual_delete:
        await backend.table("bank_accounts").delete().eq("id", account.id).execute()
        logger.warning(f"Bank account {account.id} permanently deleted by {user_id}")
    else:
        await backend.table("closed_bank_accounts").insert({
            "account_name": account.account_name,
            "bank_name": account.bank_name,
            "account_number": account.account_number,
            "ifsc": account.IFSC,
            "branch": account.branch,
            "bank_account_holder_name": account.bank_account_holder_name,
            "final_balance": final_balance,
            "closure_reason": form.closure_reason.strip(),
            "closure_documents": document_urls,
            "closed_by": user_id,
        }).execute()
        await backend.table("bank_accounts").update({
            "account_status": AccountLifecycle.CLOSED.value,
            "balance": final_balance,
            "updated_at": _now_iso(),
        }).eq("id", account.id).execute()

    await log_action(backend, user_id, ActionTypes.BANK_ACCOUNT_CLOSED, "bank_account", account.id, "bams", {
        "closure_reason": form.closure_reason.strip(),
        "settled_to": form.settlement_bank_id if settle else None,
        "deleted": form.manual_delete,
    })
    _invalidate_ledger()
    return ClosureResult(account_id=account.id, deleted=form.manual_delete, final_balance=final_balance, documents=document_urls)


async def list_transactions(
    backend: Backend,
    account_id: str,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> List[Row]:
    async def load():
        query = backend.table("bank_transactions").select("*").eq("bank_account_id", account_id)
        if start:
            query = query.gte("transaction_date", start.isoformat())
        if end:
            query = query.lte("transaction_date", end.isoformat())
        return await query.order("transaction_date").order("created_at").execute()

    key = ("bank_transactions", account_id, start.isoformat() if start else None, end.isoformat() if end else None)
    return await query_cache.fetch(key, load)

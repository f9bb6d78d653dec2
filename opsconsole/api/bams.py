from fastapi import APIRouter, Body, Depends, File, Form, Query, UploadFile
from fastapi.responses import StreamingResponse
from datetime import date
from typing import Dict, List, Optional
import io
import logging

from opsconsole.api.deps import read_upload, require
from opsconsole.core import bams
from opsconsole.core.categories import categories
from opsconsole.core.errors import FormValidationError
from opsconsole.core.statements import statement_pdf
from opsconsole.db.backend import Backend
from opsconsole.db.session import get_backend
from opsconsole.schemas.auth import SessionBlob
from opsconsole.schemas.bank import (
    AccountLifecycle,
    AccountStatus,
    BankAccount,
    BankAccountForm,
    CategoryGroup,
    CloseAccountForm,
    TransactionForm,
    TransferForm,
)
from opsconsole.schemas.common import MutationResponse, success

router = APIRouter(prefix="/bams", tags=["bams"])
logger = logging.getLogger(__name__)


@router.get("/accounts", response_model=List[BankAccount])
async def list_accounts(
    status: Optional[AccountStatus] = Query(None),
    account_status: Optional[AccountLifecycle] = Query(None),
    session: SessionBlob = Depends(require("bams_view")),
    backend: Backend = Depends(get_backend),
):
    return await bams.list_accounts(backend, status, account_status)


@router.post("/accounts", response_model=MutationResponse)
async def create_account(
    payload: BankAccountForm = Body(...),
    session: SessionBlob = Depends(require("bams_manage")),
    backend: Backend = Depends(get_backend),
):
    account = await bams.create_account(backend, payload, session.user.id)
    return success("Bank Account Created", "New bank account has been successfully added.", data=account)


@router.put("/accounts/{account_id}", response_model=MutationResponse)
async def update_account(
    account_id: str,
    payload: BankAccountForm = Body(...),
    session: SessionBlob = Depends(require("bams_manage")),
    backend: Backend = Depends(get_backend),
):
    account = await bams.update_account(backend, account_id, payload, session.user.id)
    return success("Bank Account Updated", "Bank account has been successfully updated.", data=account)


@router.post("/accounts/import", response_model=MutationResponse)
async def import_accounts(
    file: UploadFile = File(...),
    session: SessionBlob = Depends(require("bams_manage")),
    backend: Backend = Depends(get_backend),
):
    if not file.filename.endswith(".csv"):
        raise FormValidationError("Invalid file format. Please upload a CSV file.")

    result = await bams.import_accounts(backend, await file.read())
    if not result.imported:
        return success("Nothing Imported", f"{len(result.errors)} validation errors found", data=result)
    return success("Import Successful", f"{result.imported} bank accounts imported successfully.", data=result)


@router.post("/accounts/{account_id}/close", response_model=MutationResponse)
async def close_account(
    account_id: str,
    closure_reason: str = Form(""),
    transfer_balance: bool = Form(False),
    settlement_bank_id: Optional[str] = Form(None),
    manual_delete: bool = Form(False),
    documents: List[UploadFile] = File(default=[]),
    session: SessionBlob = Depends(require("bams_manage")),
    backend: Backend = Depends(get_backend),
):
    form = CloseAccountForm(
        closure_reason=closure_reason,
        transfer_balance=transfer_balance,
        settlement_bank_id=settlement_bank_id or None,
        manual_delete=manual_delete,
    )
    files = [f for f in [await read_upload(d) for d in documents] if f]
    result = await bams.close_account(backend, account_id, form, files, session.user.id)
    message = "Bank account has been permanently deleted" if result.deleted else "Bank account has been closed successfully"
    return success("Success", message, data=result)


@router.get("/accounts/{account_id}/statement")
async def download_statement(
    account_id: str,
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    session: SessionBlob = Depends(require("bams_view")),
    backend: Backend = Depends(get_backend),
):
    filename, pdf_bytes = await statement_pdf(backend, account_id, start, end)
    return StreamingResponse(
        io.BytesIO(pdf_bytes),
        media_type="application/pdf",
        headers={
            "Content-Disposition": f"attachment; filename={filename}",
            "Content-Length": str(len(pdf_bytes)),
        },
    )


@router.get("/accounts/{account_id}/transactions")
async def list_transactions(
    account_id: str,
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    session: SessionBlob = Depends(require("bams_view")),
    backend: Backend = Depends(get_backend),
):
    return await bams.list_transactions(backend, account_id, start, end)


@router.post("/transactions", response_model=MutationResponse)
async def record_transaction(
    payload: TransactionForm = Body(...),
    session: SessionBlob = Depends(require("bams_manage")),
    backend: Backend = Depends(get_backend),
):
    txn = await bams.record_transaction(backend, payload, session.user.id)
    return success("Success", "Transaction recorded successfully. Bank balance updated automatically.", data=txn)


@router.post("/transfers", response_model=MutationResponse)
async def transfer(
    payload: TransferForm = Body(...),
    session: SessionBlob = Depends(require("bams_manage")),
    backend: Backend = Depends(get_backend),
):
    result = await bams.transfer(backend, payload, session.user.id)
    return success("Success", "Fund transfer completed successfully. Bank balances updated automatically.", data=result)


@router.get("/categories", response_model=Dict[str, List[CategoryGroup]])
async def list_categories(session: SessionBlob = Depends(require("bams_view"))):
    return categories()

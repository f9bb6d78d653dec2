from fastapi import APIRouter, Body, Depends, File, Form, Query, UploadFile
from typing import List, Optional

from opsconsole.api.deps import read_upload, require
from opsconsole.core import kyc
from opsconsole.db.backend import Backend
from opsconsole.db.session import get_backend
from opsconsole.schemas.auth import SessionBlob
from opsconsole.schemas.common import MutationResponse, success
from opsconsole.schemas.kyc import KYCRequestForm, KYCStatus, RaiseQueryRequest, RejectKYCRequest, ResolutionAction, TimelineEvent

router = APIRouter(prefix="/kyc", tags=["kyc"])


@router.get("/requests")
async def list_requests(
    status: Optional[KYCStatus] = Query(None),
    session: SessionBlob = Depends(require("kyc_approvals_view")),
    backend: Backend = Depends(get_backend),
):
    return await kyc.list_requests(backend, status)


@router.post("/requests", response_model=MutationResponse)
async def create_request(
    counterparty_name: str = Form(""),
    order_amount: Optional[float] = Form(None),
    purpose_of_buying: str = Form(""),
    additional_info: str = Form(""),
    aadhar_front: Optional[UploadFile] = File(None),
    aadhar_back: Optional[UploadFile] = File(None),
    verified_feedback: Optional[UploadFile] = File(None),
    negative_feedback: Optional[UploadFile] = File(None),
    session: SessionBlob = Depends(require("kyc_approvals_manage")),
    backend: Backend = Depends(get_backend),
):
    form = KYCRequestForm(
        counterparty_name=counterparty_name,
        order_amount=order_amount,
        purpose_of_buying=purpose_of_buying,
        additional_info=additional_info,
    )
    files = {
        "aadhar_front": await read_upload(aadhar_front),
        "aadhar_back": await read_upload(aadhar_back),
        "verified_feedback": await read_upload(verified_feedback),
        "negative_feedback": await read_upload(negative_feedback),
    }
    created = await kyc.create_request(backend, form, files, session.user.id)
    return success("Success", "KYC request created successfully", data=created)


@router.post("/requests/{request_id}/approve", response_model=MutationResponse)
async def approve(
    request_id: str,
    session: SessionBlob = Depends(require("kyc_approvals_manage")),
    backend: Backend = Depends(get_backend),
):
    updated = await kyc.approve(backend, request_id, session.user.id)
    return success("KYC Approved", f"{updated['counterparty_name']}'s KYC has been approved.", data=updated)


@router.post("/requests/{request_id}/reject", response_model=MutationResponse)
async def reject(
    request_id: str,
    payload: RejectKYCRequest = Body(...),
    session: SessionBlob = Depends(require("kyc_approvals_manage")),
    backend: Backend = Depends(get_backend),
):
    updated = await kyc.reject(backend, request_id, payload.reason, session.user.id)
    return success("KYC Rejected", "KYC request has been rejected.", data=updated)


@router.post("/requests/{request_id}/queries", response_model=MutationResponse)
async def raise_query(
    request_id: str,
    payload: RaiseQueryRequest = Body(...),
    session: SessionBlob = Depends(require("kyc_approvals_manage")),
    backend: Backend = Depends(get_backend),
):
    query = await kyc.raise_query(backend, request_id, payload, session.user.id)
    return success("Query Raised", "KYC request moved to queries.", data=query)


@router.post("/queries/{query_id}/resolve", response_model=MutationResponse)
async def resolve_query(
    query_id: str,
    action: ResolutionAction = Form(...),
    resolution_text: str = Form(""),
    resolution_file: Optional[UploadFile] = File(None),
    aadhar_front: Optional[UploadFile] = File(None),
    aadhar_back: Optional[UploadFile] = File(None),
    session: SessionBlob = Depends(require("kyc_approvals_manage")),
    backend: Backend = Depends(get_backend),
):
    files = {
        "resolution": await read_upload(resolution_file),
        "aadhar_front": await read_upload(aadhar_front),
        "aadhar_back": await read_upload(aadhar_back),
    }
    updated = await kyc.resolve_query(backend, query_id, action, resolution_text, files, session.user.id)
    return success("Query Resolved", f"KYC request is now {updated['status']}.", data=updated)


@router.get("/requests/{request_id}/timeline", response_model=List[TimelineEvent])
async def timeline(
    request_id: str,
    session: SessionBlob = Depends(require("kyc_approvals_view")),
    backend: Backend = Depends(get_backend),
):
    return await kyc.timeline(backend, request_id)

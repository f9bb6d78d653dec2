from fastapi import APIRouter, Body, Depends, File, Form, Query, UploadFile
from typing import Optional

from opsconsole.api.deps import read_upload, require
from opsconsole.core import recruitment
from opsconsole.db.backend import Backend
from opsconsole.db.session import get_backend
from opsconsole.schemas.auth import SessionBlob
from opsconsole.schemas.common import MutationResponse, success
from opsconsole.schemas.hrms import (
    ApplicantForm,
    ApplicantStage,
    InterviewForm,
    JobPostingForm,
    JobStatus,
    JobStatusChange,
    OfferDocumentForm,
    OfferDocumentType,
)

router = APIRouter(prefix="/hrms", tags=["hrms"])


@router.get("/job-postings")
async def list_job_postings(
    status: Optional[JobStatus] = Query(None),
    session: SessionBlob = Depends(require("hrms_view")),
    backend: Backend = Depends(get_backend),
):
    return await recruitment.list_job_postings(backend, status)


@router.post("/job-postings", response_model=MutationResponse)
async def create_job_posting(
    payload: JobPostingForm = Body(...),
    session: SessionBlob = Depends(require("hrms_manage")),
    backend: Backend = Depends(get_backend),
):
    posting = await recruitment.create_job_posting(backend, payload, session.user.id)
    return success("Success", "Job posting created successfully", data=posting)


@router.patch("/job-postings/{posting_id}/status", response_model=MutationResponse)
async def change_job_status(
    posting_id: str,
    payload: JobStatusChange = Body(...),
    session: SessionBlob = Depends(require("hrms_manage")),
    backend: Backend = Depends(get_backend),
):
    posting = await recruitment.change_job_status(backend, posting_id, payload.status)
    return success("Job Posting Updated", f"Status changed to {payload.status.value}", data=posting)


@router.get("/applicants")
async def list_applicants(
    job_posting_id: Optional[str] = Query(None),
    stage: Optional[ApplicantStage] = Query(None),
    session: SessionBlob = Depends(require("hrms_view")),
    backend: Backend = Depends(get_backend),
):
    return await recruitment.list_applicants(backend, job_posting_id, stage)


@router.post("/applicants", response_model=MutationResponse)
async def add_applicant(
    payload: ApplicantForm = Body(...),
    session: SessionBlob = Depends(require("hrms_manage")),
    backend: Backend = Depends(get_backend),
):
    applicant = await recruitment.add_applicant(backend, payload)
    return success("Applicant Added", "Job applicant has been successfully added.", data=applicant)


@router.post("/interviews", response_model=MutationResponse)
async def schedule_interview(
    payload: InterviewForm = Body(...),
    session: SessionBlob = Depends(require("hrms_manage")),
    backend: Backend = Depends(get_backend),
):
    interview = await recruitment.schedule_interview(backend, payload, session.user.id)
    return success("Interview Scheduled", "Interview has been successfully scheduled.", data=interview)


@router.post("/offer-documents", response_model=MutationResponse)
async def add_offer_document(
    applicant_id: str = Form(""),
    document_type: OfferDocumentType = Form(OfferDocumentType.OFFER_LETTER),
    document_url: str = Form(""),
    notes: str = Form(""),
    file: Optional[UploadFile] = File(None),
    session: SessionBlob = Depends(require("hrms_manage")),
    backend: Backend = Depends(get_backend),
):
    form = OfferDocumentForm(applicant_id=applicant_id, document_type=document_type, document_url=document_url, notes=notes)
    document = await recruitment.add_offer_document(backend, form, await read_upload(file), session.user.id)
    return success("Offer Document Added", "Offer document has been successfully added.", data=document)

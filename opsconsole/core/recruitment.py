import logging
from typing import List, Optional

from opsconsole.core.auth import EMAIL_PATTERN
from opsconsole.core.cache import query_cache
from opsconsole.core.config import settings
from opsconsole.core.errors import FormValidationError, RecordNotFound
from opsconsole.core.uploads import UploadedFile, store_file
from opsconsole.db.backend import Backend, Row
from opsconsole.schemas.hrms import (
    ApplicantForm,
    ApplicantStage,
    InterviewForm,
    JobPostingForm,
    JobStatus,
    OfferDocumentForm,
)

logger = logging.getLogger(__name__)


# Job postings

async def create_job_posting(backend: Backend, form: JobPostingForm, user_id: Optional[str] = None) -> Row:
    if not form.title.strip():
        raise FormValidationError("Job title is required")
    if form.salary_range_min is not None and form.salary_range_max is not None and form.salary_range_min > form.salary_range_max:
        raise FormValidationError("Minimum salary cannot exceed maximum salary")

    row = form.model_dump(mode="json")
    row["title"] = form.title.strip()
    row["created_by"] = user_id
    created = await backend.table("job_postings").insert(row).select().single().execute()
    query_cache.invalidate("job-postings")
    logger.info(f"Job posting created: {created['id']} {created['title']}")
    return created


async def list_job_postings(backend: Backend, status: Optional[JobStatus] = None) -> List[Row]:
    async def load():
        query = backend.table("job_postings").select("*").order("created_at", desc=True)
        if status is not None:
            query = query.eq("status", status.value)
        return await query.execute()

    return await query_cache.fetch(("job-postings", status.value if status else None), load)


async def change_job_status(backend: Backend, posting_id: str, status: JobStatus) -> Row:
    rows = await backend.table("job_postings").update({"status": status.value}).eq("id", posting_id).execute()
    if not rows:
        raise RecordNotFound("Job posting", posting_id)
    query_cache.invalidate("job-postings")
    return rows[0]


# Applicants

async def add_applicant(backend: Backend, form: ApplicantForm) -> Row:
    if not form.name.strip():
        raise FormValidationError("Applicant name is required")
    if not EMAIL_PATTERN.match(form.email.strip()):
        raise FormValidationError("Please enter a valid email address")
    if not form.job_posting_id:
        raise FormValidationError("Please select a job posting")

    posting = await backend.table("job_postings").select("id, status").eq("id", form.job_posting_id).maybe_single().execute()
    if posting is None or posting.get("status") != JobStatus.OPEN.value:
        raise FormValidationError("Applicants can only be added to open job postings")

    row = form.model_dump(mode="json")
    row.update({"name": form.name.strip(), "email": form.email.strip().lower(), "is_interested": True})
    created = await backend.table("job_applicants").insert(row).select().single().execute()
    query_cache.invalidate("job_applicants", "interview_applicants", "offer_applicants")
    return created


async def list_applicants(backend: Backend, job_posting_id: Optional[str] = None, stage: Optional[ApplicantStage] = None) -> List[Row]:
    async def load():
        query = backend.table("job_applicants").select("*").order("created_at", desc=True)
        if job_posting_id:
            query = query.eq("job_posting_id", job_posting_id)
        if stage is not None:
            query = query.eq("stage", stage.value)
        return await query.execute()

    return await query_cache.fetch(("job_applicants", job_posting_id, stage.value if stage else None), load)


# Interviews

async def schedule_interview(backend: Backend, form: InterviewForm, user_id: Optional[str] = None) -> Row:
    if not form.applicant_id:
        raise FormValidationError("Please select an applicant")
    if form.interview_date is None:
        raise FormValidationError("Please select an interview date")

    applicant = await backend.table("job_applicants").select("id").eq("id", form.applicant_id).maybe_single().execute()
    if applicant is None:
        raise RecordNotFound("Applicant", form.applicant_id)

    row = form.model_dump(mode="json")
    row.update({"status": "SCHEDULED", "created_by": user_id})
    created = await backend.table("interview_schedules").insert(row).select().single().execute()
    query_cache.invalidate("interview_schedules")
    return created


# Offer documents

async def add_offer_document(
    backend: Backend,
    form: OfferDocumentForm,
    upload: Optional[UploadedFile] = None,
    user_id: Optional[str] = None,
) -> Row:
    if not form.applicant_id:
        raise FormValidationError("Please select an applicant")
    if upload is None and not form.document_url.strip():
        raise FormValidationError("Please upload a document or provide its URL")

    document_url = form.document_url.strip()
    if upload is not None:
        filename, content, content_type = upload
        document_url = await store_file(backend, settings.OFFER_BUCKET, "offer-documents", filename, content, content_type)

    row = form.model_dump(mode="json")
    row.update({"document_url": document_url, "created_by": user_id})
    created = await backend.table("offer_documents").insert(row).select().single().execute()
    query_cache.invalidate("offer_documents")
    return created

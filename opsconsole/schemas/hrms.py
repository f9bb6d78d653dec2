from enum import Enum
from pydantic import BaseModel
from datetime import datetime
from typing import Optional

class JobStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    ON_HOLD = "ON_HOLD"

class ApplicantStage(str, Enum):
    APPLIED = "APPLIED"
    SCREENING = "SCREENING"
    INTERVIEW = "INTERVIEW"
    OFFERED = "OFFERED"
    HIRED = "HIRED"
    REJECTED = "REJECTED"

class InterviewType(str, Enum):
    TECHNICAL = "TECHNICAL"
    HR = "HR"
    MANAGERIAL = "MANAGERIAL"
    FINAL = "FINAL"

class OfferDocumentType(str, Enum):
    OFFER_LETTER = "OFFER_LETTER"
    APPOINTMENT_LETTER = "APPOINTMENT_LETTER"
    CONTRACT = "CONTRACT"

class JobPostingForm(BaseModel):
    title: str = ""
    department: str = ""
    description: str = ""
    qualifications: str = ""
    experience_required: str = ""
    location: str = ""
    salary_range_min: Optional[float] = None
    salary_range_max: Optional[float] = None
    job_type: str = ""
    status: JobStatus = JobStatus.OPEN

class JobStatusChange(BaseModel):
    status: JobStatus

class ApplicantForm(BaseModel):
    name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    job_posting_id: str = ""
    stage: ApplicantStage = ApplicantStage.APPLIED
    notes: str = ""

class InterviewForm(BaseModel):
    applicant_id: str = ""
    interview_date: Optional[datetime] = None
    interview_type: InterviewType = InterviewType.TECHNICAL
    interviewer_name: str = ""
    notes: str = ""

class OfferDocumentForm(BaseModel):
    applicant_id: str = ""
    document_type: OfferDocumentType = OfferDocumentType.OFFER_LETTER
    document_url: str = ""
    notes: str = ""

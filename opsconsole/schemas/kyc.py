from enum import Enum
from pydantic import BaseModel
from typing import Optional

class KYCStatus(str, Enum):
    PENDING = "PENDING"
    QUERY = "QUERY"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"

class ResolutionAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    MOVE_TO_PENDING = "move_to_pending"
    MOVE_TO_VIDEO_KYC = "move_to_video_kyc"

class KYCRequestForm(BaseModel):
    counterparty_name: str = ""
    order_amount: Optional[float] = None
    purpose_of_buying: str = ""
    additional_info: str = ""

class RejectKYCRequest(BaseModel):
    reason: str = ""

class RaiseQueryRequest(BaseModel):
    query_type: str = "MANUAL"
    vkyc_required: bool = False
    manual_query_text: str = ""

class TimelineEvent(BaseModel):
    date: str
    status: str
    title: str
    description: str

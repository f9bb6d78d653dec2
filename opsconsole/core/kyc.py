import logging
from datetime import date, datetime, timezone
from typing import Dict, List, Optional

from opsconsole.core.audit import ActionTypes, log_action
from opsconsole.core.cache import query_cache
from opsconsole.core.config import settings
from opsconsole.core.errors import BackendError, FormValidationError, RecordNotFound
from opsconsole.core.uploads import UploadedFile, store_file
from opsconsole.db.backend import Backend, Row
from opsconsole.schemas.kyc import KYCRequestForm, KYCStatus, RaiseQueryRequest, ResolutionAction, TimelineEvent

logger = logging.getLogger(__name__)

# Upload slot -> (storage folder, request column)
DOCUMENT_SLOTS = {
    "aadhar_front": ("aadhar-front", "aadhar_front_url"),
    "aadhar_back": ("aadhar-back", "aadhar_back_url"),
    "verified_feedback": ("verified-feedback", "verified_feedback_url"),
    "negative_feedback": ("negative-feedback", "negative_feedback_url"),
    "binance_id_screenshot": ("binance-id", "binance_id_screenshot_url"),
}

RESOLUTION_STATUS = {
    ResolutionAction.APPROVE: KYCStatus.APPROVED,
    ResolutionAction.REJECT: KYCStatus.REJECTED,
    ResolutionAction.MOVE_TO_PENDING: KYCStatus.PENDING,
    # Stays under query until the video session is completed
    ResolutionAction.MOVE_TO_VIDEO_KYC: KYCStatus.QUERY,
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _day(stamp: Optional[str]) -> str:
    if not stamp:
        return date.today().isoformat()
    return stamp[:10]


def _invalidate():
    query_cache.invalidate("kyc_requests", "kyc_queries")


async def _upload_documents(backend: Backend, files: Dict[str, UploadedFile]) -> Row:
    urls = {}
    for slot, upload in files.items():
        if slot not in DOCUMENT_SLOTS or upload is None:
            continue
        folder, column = DOCUMENT_SLOTS[slot]
        filename, content, content_type = upload
        urls[column] = await store_file(backend, settings.KYC_BUCKET, folder, filename, content, content_type)
    return urls


async def get_request(backend: Backend, request_id: str) -> Row:
    row = await backend.table("kyc_approval_requests").select("*").eq("id", request_id).maybe_single().execute()
    if row is None:
        raise RecordNotFound("KYC request", request_id)
    return row


async def create_request(backend: Backend, form: KYCRequestForm, files: Optional[Dict[str, UploadedFile]] = None,
                         user_id: Optional[str] = None) -> Row:
    if not form.counterparty_name.strip():
        raise FormValidationError("Counterparty name is required")
    if form.order_amount is None or form.order_amount <= 0:
        raise FormValidationError("Order amount must be greater than 0")

    row = {
        "counterparty_name": form.counterparty_name.strip(),
        "order_amount": form.order_amount,
        "purpose_of_buying": form.purpose_of_buying or None,
        "additional_info": form.additional_info or None,
        "status": KYCStatus.PENDING.value,
        "created_by": user_id,
        "binance_id_screenshot_url": "",
    }
    row.update(await _upload_documents(backend, files or {}))

    created = await backend.table("kyc_approval_requests").insert(row).select().single().execute()
    _invalidate()
    logger.info(f"KYC request created for {row['counterparty_name']}: {created['id']}")
    return created


async def list_requests(backend: Backend, status: Optional[KYCStatus] = None) -> List[Row]:
    async def load():
        query = backend.table("kyc_approval_requests").select("*").order("created_at", desc=True)
        if status is not None:
            query = query.eq("status", status.value)
        requests = await query.execute()
        if status == KYCStatus.QUERY and requests:
            queries = await (
                backend.table("kyc_queries")
                .select("*")
                .in_("kyc_request_id", [r["id"] for r in requests])
                .order("created_at", desc=True)
                .execute()
            )
            for r in requests:
                r["queries"] = [q for q in queries if q["kyc_request_id"] == r["id"]]
        return requests

    return await query_cache.fetch(("kyc_requests", status.value if status else None), load)


async def _set_status(backend: Backend, request_id: str, status: KYCStatus, extra: Optional[Row] = None) -> Row:
    values = {"status": status.value, "updated_at": _now_iso()}
    values.update(extra or {})
    rows = await backend.table("kyc_approval_requests").update(values).eq("id", request_id).execute()
    if not rows:
        raise RecordNotFound("KYC request", request_id)
    _invalidate()
    return rows[0]


async def approve(backend: Backend, request_id: str, user_id: Optional[str] = None) -> Row:
    request = await get_request(backend, request_id)
    if request["status"] in (KYCStatus.APPROVED.value, KYCStatus.REJECTED.value):
        raise FormValidationError(f"KYC request is already {request['status'].lower()}")

    updated = await _set_status(backend, request_id, KYCStatus.APPROVED)
    await log_action(backend, user_id, ActionTypes.KYC_APPROVED, "kyc_request", request_id, "kyc_approvals",
                     {"counterparty_name": request.get("counterparty_name")})
    return updated


async def reject(backend: Backend, request_id: str, reason: str, user_id: Optional[str] = None) -> Row:
    if not reason or not reason.strip():
        raise FormValidationError("Please provide a reason for rejection")

    request = await get_request(backend, request_id)
    if request["status"] in (KYCStatus.APPROVED.value, KYCStatus.REJECTED.value):
        raise FormValidationError(f"KYC request is already {request['status'].lower()}")

    updated = await _set_status(backend, request_id, KYCStatus.REJECTED, {"rejection_reason": reason.strip()})
    await log_action(backend, user_id, ActionTypes.KYC_REJECTED, "kyc_request", request_id, "kyc_approvals",
                     {"reason": reason.strip()})
    return updated


async def raise_query(backend: Backend, request_id: str, form: RaiseQueryRequest, user_id: Optional[str] = None) -> Row:
    if not form.vkyc_required and not form.manual_query_text.strip():
        raise FormValidationError("Please enter the query details")

    await get_request(backend, request_id)
    query = await backend.table("kyc_queries").insert({
        "kyc_request_id": request_id,
        "vkyc_required": form.vkyc_required,
        "manual_query": form.manual_query_text.strip() or None,
        "created_by": user_id,
        "resolved": False,
    }).select().single().execute()

    await _set_status(backend, request_id, KYCStatus.QUERY)
    logger.info(f"Query {query['id']} raised on KYC request {request_id} ({form.query_type})")
    return query


async def resolve_query(
    backend: Backend,
    query_id: str,
    action: ResolutionAction,
    resolution_text: str,
    files: Optional[Dict[str, UploadedFile]] = None,
    user_id: Optional[str] = None,
) -> Row:
    files = files or {}
    if not resolution_text or not resolution_text.strip():
        raise FormValidationError("Please provide resolution details.", title="Resolution Required")
    if action == ResolutionAction.MOVE_TO_PENDING and (not files.get("aadhar_front") or not files.get("aadhar_back")):
        raise FormValidationError(
            "Aadhar front and back documents are required when moving to pending KYC.",
            title="Missing Required Documents",
        )

    query = await backend.table("kyc_queries").select("*").eq("id", query_id).maybe_single().execute()
    if query is None:
        raise RecordNotFound("KYC query", query_id)

    resolution_url = None
    if files.get("resolution"):
        filename, content, content_type = files["resolution"]
        resolution_url = await store_file(backend, settings.KYC_BUCKET, "resolutions", filename, content, content_type)
    document_urls = {}
    if action == ResolutionAction.MOVE_TO_PENDING:
        document_urls = await _upload_documents(backend, {k: files[k] for k in ("aadhar_front", "aadhar_back")})

    await backend.table("kyc_queries").update({
        "resolved": True,
        "resolved_at": _now_iso(),
        "response_text": resolution_text.strip(),
        "resolution_document_url": resolution_url,
    }).eq("id", query_id).execute()

    if action == ResolutionAction.MOVE_TO_VIDEO_KYC:
        try:
            await backend.table("video_kyc_sessions").insert({
                "kyc_request_id": query["kyc_request_id"],
                "status": "PENDING",
                "created_by": user_id,
            }).execute()
        except BackendError as e:
            logger.warning(f"Video KYC session creation failed for {query['kyc_request_id']}: {e.message}")

    updated = await _set_status(backend, query["kyc_request_id"], RESOLUTION_STATUS[action], document_urls)
    if action == ResolutionAction.APPROVE:
        await log_action(backend, user_id, ActionTypes.KYC_APPROVED, "kyc_request", query["kyc_request_id"], "kyc_approvals")
    elif action == ResolutionAction.REJECT:
        await log_action(backend, user_id, ActionTypes.KYC_REJECTED, "kyc_request", query["kyc_request_id"], "kyc_approvals",
                         {"reason": resolution_text.strip()})
    return updated


async def timeline(backend: Backend, request_id: str) -> List[TimelineEvent]:
    request = await get_request(backend, request_id)
    queries = await backend.table("kyc_queries").select("*").eq("kyc_request_id", request_id).order("created_at").execute()
    sessions = await (
        backend.table("video_kyc_sessions")
        .select("*")
        .eq("kyc_request_id", request_id)
        .eq("status", "COMPLETED")
        .execute()
    )

    events = [TimelineEvent(
        date=_day(request.get("created_at")),
        status="CREATED",
        title="KYC Request Submitted",
        description=f"KYC request submitted for {request['counterparty_name']} with order amount Rs. {request.get('order_amount') or 0:,.2f}",
    )]
    for q in queries:
        events.append(TimelineEvent(
            date=_day(q.get("created_at") or request.get("created_at")),
            status="QUERIED",
            title="Query Raised",
            description=q.get("manual_query") or "Query raised for additional information",
        ))
        if q.get("resolved"):
            events.append(TimelineEvent(
                date=_day(q.get("resolved_at") or request.get("updated_at")),
                status="QUERY_RESOLVED",
                title="Query Resolved",
                description=q.get("response_text") or "Query resolved successfully",
            ))
    for s in sessions:
        rating = s.get("rating")
        events.append(TimelineEvent(
            date=_day(s.get("completed_at") or s.get("created_at")),
            status="VIDEO_KYC_COMPLETED",
            title="Video KYC Completed",
            description="Video KYC session completed successfully" + (f" with rating {rating}/10" if rating else ""),
        ))

    status = request.get("status")
    if status == KYCStatus.APPROVED.value:
        events.append(TimelineEvent(date=_day(request.get("updated_at")), status="APPROVED", title="KYC Approved",
                                    description="KYC request has been approved and is ready for payment processing"))
    elif status == KYCStatus.REJECTED.value:
        events.append(TimelineEvent(date=_day(request.get("updated_at")), status="REJECTED", title="KYC Rejected",
                                    description=request.get("rejection_reason") or "KYC request has been rejected"))
    elif status == KYCStatus.PENDING.value:
        events.append(TimelineEvent(date=date.today().isoformat(), status="PENDING", title="Pending Review",
                                    description="KYC request is currently under review"))
    return events

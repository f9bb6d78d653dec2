from fastapi import APIRouter, Body, Depends, Query
from typing import List, Optional
import logging

from opsconsole.api.deps import require
from opsconsole.core import terminal_sales
from opsconsole.db.backend import Backend
from opsconsole.db.session import get_backend
from opsconsole.schemas.auth import SessionBlob
from opsconsole.schemas.common import MutationResponse, success
from opsconsole.schemas.sales import (
    ApprovalRequest,
    BuyerClientRequest,
    RejectionRequest,
    SyncStatus,
    TerminalSalesSync,
)

router = APIRouter(prefix="/terminal-sales", tags=["terminal-sales"])
logger = logging.getLogger(__name__)


@router.get("/sync-records", response_model=List[TerminalSalesSync])
async def list_sync_records(
    status: Optional[SyncStatus] = Query(None),
    session: SessionBlob = Depends(require("sales_view")),
    backend: Backend = Depends(get_backend),
):
    return await terminal_sales.list_sync_records(backend, status)


@router.post("/import-history", response_model=MutationResponse)
async def import_order_history(
    start_timestamp: Optional[int] = Query(None),
    end_timestamp: Optional[int] = Query(None),
    session: SessionBlob = Depends(require("sales_manage")),
    backend: Backend = Depends(get_backend),
):
    summary = await terminal_sales.import_order_history(backend, start_timestamp, end_timestamp)
    return success("Order History Synced", f"Stored {summary.stored} of {summary.fetched} orders", data=summary)


@router.post("/sync", response_model=MutationResponse)
async def sync_completed_sell_orders(
    session: SessionBlob = Depends(require("sales_manage")),
    backend: Backend = Depends(get_backend),
):
    summary = await terminal_sales.sync_completed_sell_orders(backend, session.user.id)
    return success("Sales Sync Complete", f"Synced {summary.synced} orders, {summary.duplicates} already present", data=summary)


@router.post("/sync-records/{sync_id}/approve", response_model=MutationResponse)
async def approve(
    sync_id: str,
    payload: ApprovalRequest = Body(...),
    session: SessionBlob = Depends(require("sales_manage")),
    backend: Backend = Depends(get_backend),
):
    result = await terminal_sales.approve(backend, sync_id, payload, session.user.id)
    return success("Sales Order Approved", "Terminal sell order has been approved and sales order created", data=result)


@router.post("/sync-records/{sync_id}/reject", response_model=MutationResponse)
async def reject(
    sync_id: str,
    payload: RejectionRequest = Body(...),
    session: SessionBlob = Depends(require("sales_manage")),
    backend: Backend = Depends(get_backend),
):
    record = await terminal_sales.reject(backend, sync_id, payload.reason, session.user.id)
    return success("Order Rejected", "Terminal sell order has been rejected", data=record)


@router.post("/sync-records/{sync_id}/client", response_model=MutationResponse)
async def create_buyer_client(
    sync_id: str,
    payload: BuyerClientRequest = Body(...),
    session: SessionBlob = Depends(require("sales_manage")),
    backend: Backend = Depends(get_backend),
):
    client = await terminal_sales.create_client_for_record(backend, sync_id, payload, session.user.id)
    return success("Client Created", "Buyer client linked to the sync record", data=client)

"""
Terminal P2P sales workflow.

Completed marketplace SELL orders are staged in `terminal_sales_sync`; an operator
approves each staged record into a `sales_orders` row, which deducts the terminal
wallet and books the marketplace commission as a fee.
"""

import asyncio
import logging
import time
from datetime import date, datetime, timezone
from typing import List, Optional

from opsconsole.core.audit import ActionTypes, log_action
from opsconsole.core.cache import query_cache
from opsconsole.core.clients import create_buyer_client
from opsconsole.core.config import settings
from opsconsole.core.errors import BackendError, FormValidationError, RecordNotFound
from opsconsole.core.marketplace import PAGE_SIZE, MarketplaceClient
from opsconsole.db.backend import Backend, Row
from opsconsole.schemas.sales import (
    REVIEWABLE_STATUSES,
    ApprovalRequest,
    ApprovalResult,
    BuyerClientRequest,
    ClientRef,
    HistoryImportSummary,
    SyncStatus,
    SyncSummary,
    TerminalSalesSync,
)

logger = logging.getLogger(__name__)

HISTORY_WINDOW_DAYS = 30
MAX_HISTORY_PAGES = 20


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_float(value) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def sales_order_number(marketplace_order_number: Optional[str]) -> str:
    if marketplace_order_number:
        return f"SO-TRM-{marketplace_order_number[-8:]}"
    return f"SO-TRM-{int(time.time() * 1000)}"


async def _throttle():
    if settings.MARKETPLACE_THROTTLE_SECONDS > 0:
        await asyncio.sleep(settings.MARKETPLACE_THROTTLE_SECONDS)


async def import_order_history(
    backend: Backend,
    start_timestamp: Optional[int] = None,
    end_timestamp: Optional[int] = None,
) -> HistoryImportSummary:
    """Page through the marketplace order history and store each order with `sync_p2p_order`."""
    now = int(time.time() * 1000)
    end_timestamp = end_timestamp or now
    start_timestamp = start_timestamp or now - HISTORY_WINDOW_DAYS * 24 * 60 * 60 * 1000
    marketplace = MarketplaceClient(backend)

    orders: List[Row] = []
    seen = set()
    for page in range(1, MAX_HISTORY_PAGES + 1):
        batch = await marketplace.get_order_history(start_timestamp, end_timestamp, page=page)
        for order in batch:
            if order.get("orderNumber") not in seen:
                seen.add(order.get("orderNumber"))
                orders.append(order)
        logger.info(f"Order history page={page} received={len(batch)} total={len(orders)}")
        if len(batch) < PAGE_SIZE:
            break
        await _throttle()

    summary = HistoryImportSummary(fetched=len(orders))
    for o in orders:
        try:
            await backend.rpc("sync_p2p_order", {
                "p_order_number": o.get("orderNumber"),
                "p_adv_no": o.get("advNo") or None,
                "p_nickname": o.get("counterPartNickName") or "Unknown",
                "p_trade_type": o.get("tradeType"),
                "p_asset": o.get("asset") or "USDT",
                "p_fiat": o.get("fiatUnit") or "INR",
                "p_amount": _to_float(o.get("amount")),
                "p_total_price": _to_float(o.get("totalPrice")),
                "p_unit_price": _to_float(o.get("unitPrice")),
                "p_commission": _to_float(o.get("commission")),
                "p_status": o.get("orderStatus") or "TRADING",
                "p_pay_method": o.get("payMethodName") or None,
                "p_create_time": o.get("createTime") or 0,
            })
            summary.stored += 1
        except BackendError as e:
            summary.failed += 1
            logger.error(f"Sync order error for {o.get('orderNumber')}: {e.message}")

    query_cache.invalidate("p2p-orders", "p2p-counterparties")
    logger.info(f"Order history import: {summary.model_dump()}")
    return summary


async def sync_completed_sell_orders(backend: Backend, user_id: Optional[str] = None) -> SyncSummary:
    summary = SyncSummary()

    active_link = await (
        backend.table("terminal_wallet_links")
        .select("id, wallet_id, fee_treatment")
        .eq("status", "active")
        .eq("platform_source", "terminal")
        .limit(1)
        .maybe_single()
        .execute()
    )
    if not active_link:
        logger.info("No active terminal wallet link found, skipping sales sync")
        return summary

    wallet = await backend.table("wallets").select("wallet_name").eq("id", active_link["wallet_id"]).maybe_single().execute()

    cutoff = int(time.time() * 1000) - settings.SALES_SYNC_WINDOW_HOURS * 60 * 60 * 1000
    completed_sells = await (
        backend.table("binance_order_history")
        .select("*")
        .eq("trade_type", "SELL")
        .eq("order_status", "COMPLETED")
        .gte("create_time", cutoff)
        .execute()
    )
    if not completed_sells:
        logger.info("No recent completed SELL orders found")
        return summary

    order_numbers = [o["order_number"] for o in completed_sells]
    existing = await (
        backend.table("terminal_sales_sync")
        .select("binance_order_number, sync_status")
        .in_("binance_order_number", order_numbers)
        .execute()
    )
    existing_numbers = {s["binance_order_number"] for s in existing}

    nicknames = sorted({o.get("counter_part_nick_name") for o in completed_sells if o.get("counter_part_nick_name")})
    contacts = await (
        backend.table("counterparty_contact_records")
        .select("counterparty_nickname, contact_number, state")
        .in_("counterparty_nickname", nicknames or ["__none__"])
        .execute()
    )
    contact_map = {c["counterparty_nickname"]: c for c in contacts}

    marketplace = MarketplaceClient(backend)
    fresh = []
    for order in completed_sells:
        if order["order_number"] in existing_numbers:
            summary.duplicates += 1
            continue

        nickname = order.get("counter_part_nick_name")
        verified_name = order.get("verified_name") or None
        if not verified_name or verified_name == nickname:
            fetched = await marketplace.fetch_verified_buyer_name(order["order_number"])
            if fetched:
                verified_name = fetched
            await _throttle()
        fresh.append((order, nickname, verified_name, verified_name or nickname or "Unknown"))

    names = sorted({name for _, _, _, name in fresh})
    matched_clients = await backend.table("clients").select("id, name").in_("name", names or ["__none__"]).execute()
    client_map = {c["name"].lower(): c["id"] for c in matched_clients}

    to_insert: List[Row] = []
    for order, nickname, verified_name, counterparty_name in fresh:
        contact = contact_map.get(nickname or "")
        client_id = client_map.get(counterparty_name.lower())
        status = SyncStatus.SYNCED_PENDING_APPROVAL if client_id else SyncStatus.CLIENT_MAPPING_PENDING

        to_insert.append({
            "binance_order_number": order["order_number"],
            "sync_status": status.value,
            "order_data": {
                "order_number": order["order_number"],
                "asset": order.get("asset") or "USDT",
                "amount": order.get("amount"),
                "total_price": order.get("total_price"),
                "unit_price": order.get("unit_price"),
                "commission": order.get("commission"),
                "counterparty_name": counterparty_name,
                "counterparty_nickname": nickname,
                "verified_name": verified_name,
                "create_time": order.get("create_time"),
                "pay_method": order.get("pay_method_name"),
                "wallet_id": active_link["wallet_id"],
                "wallet_name": (wallet or {}).get("wallet_name") or "Terminal Wallet",
                "fee_treatment": active_link.get("fee_treatment"),
            },
            "client_id": client_id,
            "counterparty_name": counterparty_name,
            "contact_number": (contact or {}).get("contact_number"),
            "state": (contact or {}).get("state"),
            "synced_by": user_id,
            "synced_at": _now_iso(),
        })

    if to_insert:
        await backend.table("terminal_sales_sync").insert(to_insert).execute()
        summary.synced = len(to_insert)
        query_cache.invalidate("terminal-sales-sync")

    logger.info(f"Sales sync: synced={summary.synced} duplicates={summary.duplicates}")
    return summary


async def get_sync_record(backend: Backend, sync_id: str) -> TerminalSalesSync:
    row = await backend.table("terminal_sales_sync").select("*").eq("id", sync_id).maybe_single().execute()
    if row is None:
        raise RecordNotFound("Sync record", sync_id)
    return TerminalSalesSync(**row)


def _ensure_reviewable(record: TerminalSalesSync):
    if record.sync_status not in REVIEWABLE_STATUSES:
        raise FormValidationError(f"This order is already {record.sync_status.value.replace('_', ' ')}")


def _order_date(order_data: dict, settlement_date: Optional[date]) -> str:
    create_time = order_data.get("create_time")
    if create_time:
        return datetime.fromtimestamp(int(create_time) / 1000, tz=timezone.utc).date().isoformat()
    return (settlement_date or date.today()).isoformat()


async def approve(backend: Backend, sync_id: str, form: ApprovalRequest, user_id: Optional[str] = None) -> ApprovalResult:
    """
    Turn a staged sync record into a sales order.

    Steps run in order against the backend with no transaction around them:
    sales order insert, wallet deduction, fee rows, sync record update, contact/client patch.
    A failed wallet deduction deletes the sales order again; nothing else is rolled back.
    """
    if not form.bank_account_id:
        raise FormValidationError("Please select a bank account")

    record = await get_sync_record(backend, sync_id)
    _ensure_reviewable(record)

    od = record.order_data
    order_number = sales_order_number(od.get("order_number"))

    duplicate = await backend.table("sales_orders").select("id").eq("order_number", order_number).limit(1).execute()
    if duplicate:
        await backend.table("terminal_sales_sync").update({
            "sync_status": SyncStatus.DUPLICATE_BLOCKED.value,
            "reviewed_by": user_id,
            "reviewed_at": _now_iso(),
        }).eq("id", record.id).execute()
        query_cache.invalidate("terminal-sales-sync")
        logger.warning(f"Sales order {order_number} already exists; sync record {record.id} blocked")
        raise FormValidationError(f"Sales order {order_number} already exists", title="Duplicate order")

    total_amount = _to_float(od.get("total_price"))
    quantity = _to_float(od.get("amount"))
    unit_price = _to_float(od.get("unit_price"))
    commission = _to_float(od.get("commission"))
    wallet_id = od.get("wallet_id")
    client_id = form.client_id or record.client_id

    products = await backend.table("products").select("id").eq("code", od.get("asset") or "USDT").limit(1).execute()

    description = f"Terminal P2P Sale - {od.get('order_number')}"
    if form.remarks:
        description += f" | {form.remarks}"

    sales_order = await backend.table("sales_orders").insert({
        "order_number": order_number,
        "client_name": record.counterparty_name,
        "client_phone": form.contact_number or None,
        "client_state": form.state or None,
        "order_date": _order_date(od, form.settlement_date),
        "settlement_date": form.settlement_date.isoformat() if form.settlement_date else None,
        "total_amount": total_amount,
        "quantity": quantity,
        "price_per_unit": unit_price,
        "product_id": products[0]["id"] if products else None,
        "wallet_id": wallet_id,
        "sales_payment_method_id": None,
        "bank_account_id": form.bank_account_id,
        "platform": od.get("wallet_name") or "Binance",
        "fee_percentage": 0,
        "fee_amount": commission,
        "net_amount": total_amount,
        "payment_status": "COMPLETED",
        "status": "COMPLETED",
        "is_off_market": False,
        "description": description,
        "created_by": user_id,
        "source": "terminal",
        "terminal_sync_id": record.id,
    }).select("id").single().execute()
    sales_order_id = sales_order["id"]

    if wallet_id and quantity > 0:
        try:
            await backend.rpc("process_sales_order_wallet_deduction", {
                "sales_order_id": sales_order_id,
                "usdt_amount": quantity,
                "wallet_id": wallet_id,
            })
        except BackendError as e:
            logger.error(f"Wallet deduction failed for {order_number}, removing sales order {sales_order_id}: {e.message}")
            await backend.table("sales_orders").delete().eq("id", sales_order_id).execute()
            raise BackendError(f"Wallet deduction failed: {e.message}", code=e.code, details=e.details) from e

    fee_recorded = False
    if commission > 0 and wallet_id:
        fee_txn = await backend.table("wallet_transactions").insert({
            "wallet_id": wallet_id,
            "transaction_type": "DEBIT",
            "amount": commission,
            "reference_type": "SALES_ORDER_FEE",
            "reference_id": sales_order_id,
            "description": f"Platform fee for {order_number}",
            "created_by": user_id,
        }).select("id").single().execute()
        await backend.table("wallet_fee_deductions").insert({
            "order_id": sales_order_id,
            "order_type": "SALES",
            "order_number": order_number,
            "wallet_id": wallet_id,
            "gross_amount": quantity,
            "fee_amount": commission,
            "fee_percentage": round(commission / quantity * 100, 4) if quantity else 0,
            "net_amount": round(quantity - commission, 8),
            "fee_usdt_amount": commission,
            "wallet_transaction_id": fee_txn["id"],
            "created_by": user_id,
        }).execute()
        fee_recorded = True

    await backend.table("terminal_sales_sync").update({
        "sync_status": SyncStatus.APPROVED.value,
        "sales_order_id": sales_order_id,
        "client_id": client_id,
        "contact_number": form.contact_number or None,
        "state": form.state or None,
        "reviewed_by": user_id,
        "reviewed_at": _now_iso(),
    }).eq("id", record.id).execute()

    if form.contact_number or form.state:
        await backend.table("counterparty_contact_records").upsert({
            "counterparty_nickname": od.get("counterparty_nickname") or record.counterparty_name,
            "contact_number": form.contact_number or None,
            "state": form.state or None,
            "collected_by": user_id,
            "updated_at": _now_iso(),
        }, on_conflict="counterparty_nickname").execute()

        if client_id:
            updates = {}
            if form.contact_number:
                updates["phone"] = form.contact_number
            if form.state:
                updates["state"] = form.state
            await backend.table("clients").update(updates).eq("id", client_id).execute()

    await log_action(backend, user_id, ActionTypes.SALES_ORDER_CREATED, "sales_order", sales_order_id, "sales", {
        "order_number": order_number,
        "source": "terminal",
        "terminal_sync_id": record.id,
    })
    query_cache.invalidate("sales_orders", "terminal-sales-sync", "clients")
    logger.info(f"Approved terminal sale {record.binance_order_number} as {order_number}")
    return ApprovalResult(sync_id=record.id, sales_order_id=sales_order_id, order_number=order_number, fee_recorded=fee_recorded)


async def reject(backend: Backend, sync_id: str, reason: str, user_id: Optional[str] = None) -> TerminalSalesSync:
    if not reason or not reason.strip():
        raise FormValidationError("Please provide a rejection reason")

    record = await get_sync_record(backend, sync_id)
    _ensure_reviewable(record)

    rows = await backend.table("terminal_sales_sync").update({
        "sync_status": SyncStatus.REJECTED.value,
        "rejection_reason": reason.strip(),
        "reviewed_by": user_id,
        "reviewed_at": _now_iso(),
    }).eq("id", record.id).execute()

    await log_action(backend, user_id, ActionTypes.SALES_SYNC_REJECTED, "terminal_sales_sync", record.id, "sales",
                     {"binance_order_number": record.binance_order_number, "reason": reason.strip()})
    query_cache.invalidate("terminal-sales-sync")
    return TerminalSalesSync(**rows[0])


async def create_client_for_record(backend: Backend, sync_id: str, form: BuyerClientRequest, user_id: Optional[str] = None) -> ClientRef:
    """Create (or reuse) the buyer client for a staged record and link it."""
    record = await get_sync_record(backend, sync_id)
    client = await create_buyer_client(
        backend,
        record.counterparty_name or "",
        contact_number=form.contact_number,
        state=form.state,
        user_id=user_id,
    )

    updates = {"client_id": client.id}
    if record.sync_status == SyncStatus.CLIENT_MAPPING_PENDING:
        updates["sync_status"] = SyncStatus.SYNCED_PENDING_APPROVAL.value
    await backend.table("terminal_sales_sync").update(updates).eq("id", record.id).execute()

    query_cache.invalidate("clients", "terminal-sales-sync")
    return client


async def list_sync_records(backend: Backend, status: Optional[SyncStatus] = None) -> List[TerminalSalesSync]:
    async def load():
        query = backend.table("terminal_sales_sync").select("*").order("synced_at", desc=True)
        if status is not None:
            query = query.eq("sync_status", status.value)
        return [TerminalSalesSync(**row) for row in await query.execute()]

    return await query_cache.fetch(("terminal-sales-sync", status.value if status else None), load)

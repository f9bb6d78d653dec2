import io
import logging
from datetime import date, datetime
from typing import Dict, List, Optional, Tuple
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from opsconsole.core.bams import get_account, list_transactions
from opsconsole.db.backend import Backend, Row
from opsconsole.schemas.bank import BankAccount, TransactionType

logger = logging.getLogger(__name__)

CREDIT_TYPES = {TransactionType.INCOME.value, TransactionType.TRANSFER_IN.value}


def statement_totals(rows: List[Row]) -> Dict[str, float]:
    totals = {t.value: 0.0 for t in TransactionType}
    for row in rows:
        kind = row.get("transaction_type")
        if kind in totals:
            totals[kind] += float(row.get("amount") or 0)
    totals = {k: round(v, 2) for k, v in totals.items()}
    credits = sum(v for k, v in totals.items() if k in CREDIT_TYPES)
    debits = sum(v for k, v in totals.items() if k not in CREDIT_TYPES)
    totals["NET"] = round(credits - debits, 2)
    return totals


def build_statement_pdf(account: BankAccount, rows: List[Row], start: Optional[date], end: Optional[date]) -> bytes:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4)
    styles = getSampleStyleSheet()
    elements = []

    # 1. Header
    period = f"{start.isoformat() if start else 'Beginning'} to {end.isoformat() if end else 'Today'}"
    elements.append(Paragraph("Bank Account Statement", styles["Title"]))
    elements.append(Spacer(1, 12))
    elements.append(Paragraph(f"<b>Account:</b> {escape(account.account_name)}", styles["Normal"]))
    elements.append(Paragraph(f"<b>Bank:</b> {escape(account.bank_name)} ({account.account_number})", styles["Normal"]))
    elements.append(Paragraph(f"<b>IFSC:</b> {account.IFSC or '-'}", styles["Normal"]))
    elements.append(Paragraph(f"<b>Period:</b> {period}", styles["Normal"]))
    elements.append(Paragraph(f"<b>Generated:</b> {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}", styles["Normal"]))
    elements.append(Spacer(1, 24))

    # 2. Ledger
    elements.append(Paragraph("Transactions", styles["Heading2"]))
    ledger = [["Date", "Type", "Description", "Reference", "Credit", "Debit"]]
    for row in rows:
        amount = float(row.get("amount") or 0)
        is_credit = row.get("transaction_type") in CREDIT_TYPES
        ledger.append([
            row.get("transaction_date") or "-",
            row.get("transaction_type") or "-",
            Paragraph(escape(row.get("description") or "-"), styles["BodyText"]),
            row.get("reference_number") or "-",
            f"{amount:,.2f}" if is_credit else "",
            "" if is_credit else f"{amount:,.2f}",
        ])
    if len(ledger) == 1:
        ledger.append(["-", "-", "No transactions in this period", "-", "", ""])
    ledger_table = Table(ledger, colWidths=[60, 75, 170, 80, 65, 65], repeatRows=1)
    ledger_table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.navy),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.whitesmoke),
        ("FONTSIZE", (0, 0), (-1, -1), 8),
        ("ALIGN", (4, 1), (-1, -1), "RIGHT"),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
    ]))
    elements.append(ledger_table)
    elements.append(Spacer(1, 24))

    # 3. Totals
    totals = statement_totals(rows)
    elements.append(Paragraph("Summary", styles["Heading2"]))
    summary = [["Type", "Amount"]] + [[k.replace("_", " ").title(), f"Rs. {v:,.2f}"] for k, v in totals.items()]
    summary.append(["Current Balance", f"Rs. {account.balance:,.2f}"])
    summary.append(["Available Balance", f"Rs. {account.available_balance:,.2f}"])
    summary_table = Table(summary, colWidths=[200, 150])
    summary_table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.navy),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.whitesmoke),
        ("ALIGN", (0, 0), (-1, -1), "LEFT"),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
    ]))
    elements.append(summary_table)

    elements.append(Spacer(1, 48))
    elements.append(Paragraph(
        "System generated statement for internal use.",
        ParagraphStyle(name="Footer", fontSize=8, textColor=colors.grey, alignment=1),
    ))

    doc.build(elements)
    return buffer.getvalue()


async def statement_pdf(backend: Backend, account_id: str, start: Optional[date] = None, end: Optional[date] = None) -> Tuple[str, bytes]:
    account = await get_account(backend, account_id)
    rows = await list_transactions(backend, account_id, start, end)
    pdf_bytes = build_statement_pdf(account, rows, start, end)
    logger.info(f"Statement generated for {account.id}: {len(rows)} rows, {len(pdf_bytes)} bytes")
    filename = f"Statement_{account.account_number[-4:]}_{(end or date.today()).isoformat()}.pdf"
    return filename, pdf_bytes

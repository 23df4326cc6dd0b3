"""GREC (Georgia Real Estate Commission) audit workbook for one reconciliation.

Six sheets: Summary, Transaction Ledger, Revenue Receipts, Expense
Disbursements, Visit Fees and Audit Trail.
"""

from __future__ import annotations

import io
import re
from datetime import datetime

import openpyxl
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from peachhaus import db
from peachhaus.errors import PeachHausError

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

ACTION_NAMES = {
    "created": "Reconciliation Created",
    "item_verified": "Item Verified",
    "item_excluded": "Item Excluded",
    "item_added": "Item Added",
    "reviewed": "Reviewed",
    "approved": "Approved",
    "statement_sent": "Statement Sent",
    "totals_recalculated": "Totals Recalculated",
}


class ReconciliationNotFound(PeachHausError):
    status_code = 404


def format_currency(amount: float | None) -> str:
    amount = amount or 0
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"


def _day(value: str | None) -> str:
    if not value:
        return ""
    return datetime.fromisoformat(value[:10]).strftime("%m/%d/%Y")


def _stamp(value: str | None, fmt: str = "%m/%d/%Y %I:%M %p") -> str:
    if not value:
        return ""
    return datetime.fromisoformat(value).strftime(fmt)


def _action_name(action: str) -> str:
    return ACTION_NAMES.get(action) or action.replace("_", " ").title()


def _sheet(wb, title: str, rows: list[list], widths: list[int], header: bool = True):
    ws = wb.create_sheet(title)
    for r in rows:
        ws.append(r)
    if header and rows:
        for cell in ws[1]:
            cell.font = Font(bold=True)
    for i, w in enumerate(widths, 1):
        ws.column_dimensions[get_column_letter(i)].width = w
    return ws


def load_reconciliation(c, reconciliation_id: str) -> dict:
    rec = db.row(c, """
        SELECT r.*, p.name AS property_name, p.address AS property_address,
               o.name AS owner_name, o.email AS owner_email, o.service_type
        FROM monthly_reconciliations r
        LEFT JOIN properties p ON p.id = r.property_id
        LEFT JOIN property_owners o ON o.id = p.owner_id
        WHERE r.id=?""", (reconciliation_id,))
    if not rec:
        raise ReconciliationNotFound(f"Reconciliation not found: {reconciliation_id}")
    rec["line_items"] = db.rows(
        c, "SELECT * FROM reconciliation_line_items WHERE reconciliation_id=? ORDER BY date",
        (reconciliation_id,))
    rec["audit_log"] = db.rows(
        c, "SELECT * FROM reconciliation_audit_log WHERE reconciliation_id=? ORDER BY created_at, id",
        (reconciliation_id,))
    return rec


def report_filename(rec: dict) -> str:
    name = re.sub(r"[^a-zA-Z0-9]", "_", rec.get("property_name") or "Property")
    month = (rec.get("reconciliation_month") or "")[:7]
    return f"GREC_Audit_{name}_{month}.xlsx"


def build_workbook(rec: dict, generated_at: datetime | None = None) -> openpyxl.Workbook:
    generated_at = generated_at or datetime.now()
    items = rec["line_items"]
    wb = openpyxl.Workbook()
    wb.remove(wb.active)

    period = datetime.fromisoformat(rec["reconciliation_month"][:10]).strftime("%B %Y")
    service = "Full-Service Management" if rec.get("service_type") == "full_service" else "Co-Hosting"
    settle = (["Payout to Owner", format_currency(rec.get("payout_to_owner"))]
              if (rec.get("payout_to_owner") or 0) > 0
              else ["Due from Owner", format_currency(rec.get("due_from_owner"))])
    summary = [
        ["PROPERTY OWNER LEDGER"],
        ["Georgia Real Estate Commission Audit Report"],
        [""],
        ["Property Name", rec.get("property_name") or "N/A"],
        ["Property Address", rec.get("property_address") or "N/A"],
        ["Owner Name", rec.get("owner_name") or "N/A"],
        ["Owner Email", rec.get("owner_email") or "N/A"],
        ["Service Type", service],
        [""],
        ["Reconciliation Period", period],
        ["Report Generated", generated_at.strftime("%B %d, %Y at %I:%M %p")],
        ["Status", (rec.get("status") or "").upper()],
        [""],
        ["FINANCIAL SUMMARY"],
        ["Total Revenue", format_currency(rec.get("total_revenue"))],
        ["Management Fee", format_currency(rec.get("management_fee"))],
        ["Order Minimum Fee", format_currency(rec.get("order_minimum_fee"))],
        ["Visit Fees", format_currency(rec.get("visit_fees"))],
        ["Total Expenses", format_currency(rec.get("total_expenses"))],
        [""],
        settle,
        [""],
        ["APPROVAL INFORMATION"],
        ["Reviewed By", rec.get("reviewed_by") or "Not Yet Reviewed"],
        ["Reviewed At", _stamp(rec.get("reviewed_at"), "%B %d, %Y at %I:%M %p") or "Not Yet Reviewed"],
        ["Approved By", rec.get("approved_by") or "Pending"],
        ["Approved At", _stamp(rec.get("approved_at"), "%B %d, %Y at %I:%M %p") or "Pending"],
        [""],
        ["Notes", rec.get("notes") or "None"],
    ]
    ws = _sheet(wb, "Summary", summary, [25, 50], header=False)
    for r in (1, 14, 23):
        ws.cell(row=r, column=1).font = Font(bold=True)

    ledger = [["Date", "Type", "Description", "Category", "Debit (Expense)", "Credit (Revenue)",
               "Verified", "Verified By", "Verified At", "Excluded", "Exclusion Reason"]]
    for it in items:
        revenue = (it["amount"] or 0) > 0
        amount = format_currency(abs(it["amount"] or 0))
        ledger.append([
            _day(it["date"]), it["item_type"], it["description"], it["category"] or "",
            "" if revenue else amount, amount if revenue else "",
            "Yes" if it["verified"] else "No", it["approved_by"] or "",
            _stamp(it["approved_at"]), "Yes" if it["excluded"] else "No",
            it["exclusion_reason"] or "",
        ])
    _sheet(wb, "Transaction Ledger", ledger, [12, 15, 40, 15, 15, 15, 10, 20, 20, 10, 25])

    revenue_rows = [["Date", "Type", "Description", "Amount", "Status"]]
    for it in items:
        if it["item_type"] in ("booking", "mid_term_booking") or (it["amount"] or 0) > 0:
            revenue_rows.append([
                _day(it["date"]),
                "Mid-Term Booking" if it["item_type"] == "mid_term_booking" else "Short-Term Booking",
                it["description"], format_currency(abs(it["amount"] or 0)),
                "Excluded" if it["excluded"] else "Verified" if it["verified"] else "Pending",
            ])
    _sheet(wb, "Revenue Receipts", revenue_rows, [12, 18, 40, 15, 12])

    expense_rows = [["Date", "Category", "Description", "Amount", "Verified", "Verified By"]]
    for it in items:
        if it["item_type"] == "expense" and (it["amount"] or 0) < 0:
            expense_rows.append([
                _day(it["date"]), it["category"] or "Uncategorized", it["description"],
                format_currency(abs(it["amount"])), "Yes" if it["verified"] else "No",
                it["approved_by"] or "",
            ])
    _sheet(wb, "Expense Disbursements", expense_rows, [12, 18, 40, 15, 10, 20])

    visit_rows = [["Date", "Description", "Amount", "Verified", "Verified By"]]
    for it in items:
        if it["item_type"] == "visit":
            visit_rows.append([
                _day(it["date"]), it["description"], format_currency(abs(it["amount"] or 0)),
                "Yes" if it["verified"] else "No", it["approved_by"] or "",
            ])
    _sheet(wb, "Visit Fees", visit_rows, [12, 40, 15, 10, 20])

    audit_rows = [["Timestamp", "Action", "Performed By", "Notes"]]
    for entry in rec["audit_log"]:
        audit_rows.append([
            _stamp(entry["created_at"], "%m/%d/%Y %I:%M:%S %p"), _action_name(entry["action"]),
            entry["user_id"] or "System", entry["notes"] or "",
        ])
    _sheet(wb, "Audit Trail", audit_rows, [22, 25, 25, 50])
    return wb


def export_audit_report(c, reconciliation_id: str) -> tuple[str, bytes]:
    """Return ``(filename, xlsx bytes)`` for a reconciliation."""
    rec = load_reconciliation(c, reconciliation_id)
    output = io.BytesIO()
    build_workbook(rec).save(output)
    db.log(c, reconciliation_id, "audit_report_exported", report_filename(rec))
    return report_filename(rec), output.getvalue()

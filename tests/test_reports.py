"""Expense cleanup and the GREC audit workbook."""
import io
from datetime import datetime

import openpyxl
import pytest

from peachhaus import db
from peachhaus.reports.audit_export import (
    ReconciliationNotFound,
    build_workbook,
    export_audit_report,
    format_currency,
    load_reconciliation,
    report_filename,
)
from peachhaus.reports.cleanup import cleanup_contaminated_expenses, find_contaminated, is_contaminated


@pytest.fixture
def ledger(c):
    db.insert(c, "property_owners", {"id": "o1", "name": "Olivia Owner", "email": "olivia@example.com",
                                     "service_type": "full_service"})
    db.insert(c, "properties", {"id": "p1", "name": "The Berkley", "address": "9 Lake Dr", "owner_id": "o1"})
    db.insert(c, "monthly_reconciliations", {
        "id": "r1", "property_id": "p1", "reconciliation_month": "2026-08-01", "status": "approved",
        "total_revenue": 4200, "management_fee": 756, "visit_fees": 0, "total_expenses": 0,
        "payout_to_owner": 3100.5, "approved_by": "Anja",
    })
    db.insert(c, "email_insights", {"id": "i1", "sender_email": "ops@peachhausgroup.com", "expense_created": 1})

    expenses = [
        ("e-ok", "Air filters", "Home Depot", "HD-1"),
        ("e-multi", "Multiple expenses logged for March", "Amazon", None),
        ("e-vendor", "Supplies", "Property Central", None),
        ("e-dup", "Air filters", "Home Depot", "HD-1"),
        ("e-internal", "Forwarded receipt", "Lowe's", None),
    ]
    for i, (eid, purpose, vendor, order) in enumerate(expenses):
        db.insert(c, "expenses", {"id": eid, "property_id": "p1", "amount": 25 + i, "purpose": purpose,
                                  "vendor": vendor, "order_number": order,
                                  "email_insight_id": "i1" if eid == "e-internal" else None,
                                  "created_at": f"2026-08-0{i + 1} 09:00:00"})
        db.insert(c, "reconciliation_line_items", {
            "id": f"li-{eid}", "reconciliation_id": "r1", "item_type": "expense", "item_id": eid,
            "description": purpose, "amount": -(25 + i), "date": f"2026-08-0{i + 1}", "verified": 1})

    db.insert(c, "reconciliation_line_items", {
        "id": "li-visit", "reconciliation_id": "r1", "item_type": "visit", "description": "Monthly visit",
        "amount": -150, "date": "2026-08-10", "verified": 1})
    db.insert(c, "reconciliation_line_items", {
        "id": "li-booking", "reconciliation_id": "r1", "item_type": "booking", "description": "Airbnb stay",
        "amount": 4200, "date": "2026-08-12", "verified": 1})
    db.insert(c, "reconciliation_audit_log", {"reconciliation_id": "r1", "action": "approved", "user_id": "Anja",
                                              "created_at": "2026-09-02 10:15:00"})
    return "r1"


# ── Cleanup ──────────────────────────────────────────────────────────────────

def test_contamination_rules():
    assert is_contaminated({"purpose": "Expense across MULTIPLE PROPERTIES"})
    assert is_contaminated({"vendor": " PeachHausGroup "})
    assert not is_contaminated({"purpose": "Air filters", "vendor": "Home Depot"})


def test_find_contaminated_includes_duplicates_and_internal(c, ledger):
    assert find_contaminated(c) == ["e-multi", "e-vendor", "e-internal", "e-dup"]


def test_cleanup_deletes_and_recalculates(c, ledger):
    result = cleanup_contaminated_expenses(c)
    assert result.deleted_expenses == 4
    assert result.deleted_line_items == 4
    assert result.affected_reconciliations == ["r1"]
    assert result.to_dict()["affected_reconciliations"] == 1

    assert [e["id"] for e in db.rows(c, "SELECT id FROM expenses")] == ["e-ok"]
    rec = db.row(c, "SELECT visit_fees, total_expenses FROM monthly_reconciliations WHERE id='r1'")
    assert rec == {"visit_fees": 150, "total_expenses": 25}
    actions = [r["action"] for r in db.rows(c, "SELECT action FROM reconciliation_audit_log ORDER BY id")]
    assert actions[-1] == "totals_recalculated"

    again = cleanup_contaminated_expenses(c)
    assert again.deleted_expenses == 0 and again.affected_reconciliations == []


def test_cleanup_over_http(client, c, ledger):
    c.commit()
    data = client.post("/functions/cleanup-contaminated-expenses", json={}).get_json()
    assert data["success"] is True
    assert data["deleted_expenses"] == 4
    assert data["message"].startswith("Cleanup complete: Deleted 4")


# ── Audit export ─────────────────────────────────────────────────────────────

def test_currency_format():
    assert format_currency(1234.5) == "$1,234.50"
    assert format_currency(-75) == "-$75.00"
    assert format_currency(None) == "$0.00"


def test_workbook_sheets_and_summary(c, ledger):
    rec = load_reconciliation(c, ledger)
    assert report_filename(rec) == "GREC_Audit_The_Berkley_2026-08.xlsx"

    wb = build_workbook(rec, generated_at=datetime(2026, 9, 3, 14, 30))
    assert wb.sheetnames == ["Summary", "Transaction Ledger", "Revenue Receipts",
                             "Expense Disbursements", "Visit Fees", "Audit Trail"]

    summary = {row[0]: row[1] for row in wb["Summary"].iter_rows(values_only=True) if len(row) > 1 and row[1]}
    assert summary["Property Name"] == "The Berkley"
    assert summary["Service Type"] == "Full-Service Management"
    assert summary["Reconciliation Period"] == "August 2026"
    assert summary["Payout to Owner"] == "$3,100.50"
    assert summary["Approved By"] == "Anja"

    ledger_rows = list(wb["Transaction Ledger"].iter_rows(values_only=True))
    assert len(ledger_rows) == 1 + 7
    booking = next(r for r in ledger_rows if r[1] == "booking")
    assert booking[5] == "$4,200.00" and booking[4] in (None, "")

    assert wb["Visit Fees"].max_row == 2
    assert wb["Expense Disbursements"].max_row == 1 + 5
    audit = list(wb["Audit Trail"].iter_rows(values_only=True))
    assert audit[1][2] == "Anja"


def test_export_returns_xlsx_bytes(c, ledger):
    filename, data = export_audit_report(c, ledger)
    assert filename.endswith(".xlsx")
    assert openpyxl.load_workbook(io.BytesIO(data)).sheetnames[0] == "Summary"


def test_export_unknown_reconciliation(c):
    with pytest.raises(ReconciliationNotFound):
        export_audit_report(c, "missing")


def test_export_over_http(client, c, ledger):
    c.commit()
    resp = client.get("/functions/export-audit-report", query_string={"reconciliationId": ledger})
    assert resp.status_code == 200
    assert resp.mimetype == "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    assert "GREC_Audit_The_Berkley_2026-08.xlsx" in resp.headers["Content-Disposition"]
    assert client.get("/functions/export-audit-report",
                      query_string={"reconciliationId": "nope"}).status_code == 404

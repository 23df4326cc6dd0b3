"""Remove contaminated and duplicate expenses, then recalculate reconciliations."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field

from peachhaus import db

log = logging.getLogger(__name__)

CONTAMINATION_PHRASES = ("multiple expenses logged", "multiple properties")
CONTAMINATED_VENDORS = ("property central", "peachhausgroup")
INTERNAL_DOMAIN = "@peachhausgroup.com"


@dataclass
class CleanupResult:
    deleted_expenses: int = 0
    deleted_line_items: int = 0
    affected_reconciliations: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        return (f"Cleanup complete: Deleted {self.deleted_expenses} fake/duplicate expenses, "
                f"{self.deleted_line_items} line items, and updated "
                f"{len(self.affected_reconciliations)} reconciliations.")

    def to_dict(self) -> dict:
        d = asdict(self)
        d["affected_reconciliations"] = len(self.affected_reconciliations)
        d["message"] = self.message
        return d


def is_contaminated(expense: dict) -> bool:
    purpose = (expense.get("purpose") or "").lower()
    items = (expense.get("items_detail") or "").lower()
    vendor = (expense.get("vendor") or "").lower().strip()
    return (
        any(p in purpose or p in items for p in CONTAMINATION_PHRASES)
        or vendor in CONTAMINATED_VENDORS
    )


def find_contaminated(c) -> list[str]:
    """Expense ids to delete, in discovery order."""
    ids: list[str] = []

    for exp in db.rows(c, "SELECT * FROM expenses"):
        if is_contaminated(exp):
            ids.append(exp["id"])

    for exp in db.rows(c, """
            SELECT e.id FROM expenses e JOIN email_insights i ON i.id = e.email_insight_id
            WHERE lower(i.sender_email) LIKE ? AND i.expense_created=1""",
            (f"%{INTERNAL_DOMAIN}%",)):
        if exp["id"] not in ids:
            ids.append(exp["id"])

    seen: set[tuple] = set()
    for exp in db.rows(c, "SELECT id, property_id, order_number FROM expenses"
                          " WHERE order_number IS NOT NULL AND order_number != ''"
                          " ORDER BY created_at, rowid"):
        key = (exp["property_id"], exp["order_number"])
        if key in seen:
            if exp["id"] not in ids:
                ids.append(exp["id"])
        else:
            seen.add(key)
    return ids


def recalculate_totals(c, reconciliation_id: str) -> dict:
    """Recompute visit fees and total expenses from verified, non-excluded items."""
    items = db.rows(c, "SELECT item_type, amount FROM reconciliation_line_items"
                       " WHERE reconciliation_id=? AND verified=1 AND excluded=0",
                    (reconciliation_id,))
    visit_fees = sum(abs(i["amount"] or 0) for i in items if i["item_type"] == "visit")
    total_expenses = sum(abs(i["amount"] or 0) for i in items if i["item_type"] == "expense")
    c.execute("UPDATE monthly_reconciliations SET visit_fees=?, total_expenses=?, updated_at=? WHERE id=?",
              (visit_fees, total_expenses, db.now(), reconciliation_id))
    return {"visit_fees": visit_fees, "total_expenses": total_expenses}


def cleanup_contaminated_expenses(c) -> CleanupResult:
    result = CleanupResult()
    ids = find_contaminated(c)
    if not ids:
        log.info("No contaminated expenses found")
        return result

    marks = ",".join("?" * len(ids))
    affected = db.rows(c, f"SELECT DISTINCT reconciliation_id FROM reconciliation_line_items"
                          f" WHERE item_type='expense' AND item_id IN ({marks})", ids)
    result.affected_reconciliations = [r["reconciliation_id"] for r in affected if r["reconciliation_id"]]

    cur = c.execute(f"DELETE FROM reconciliation_line_items WHERE item_type='expense' AND item_id IN ({marks})", ids)
    result.deleted_line_items = cur.rowcount
    cur = c.execute(f"DELETE FROM expenses WHERE id IN ({marks})", ids)
    result.deleted_expenses = cur.rowcount

    for rid in result.affected_reconciliations:
        totals = recalculate_totals(c, rid)
        db.insert(c, "reconciliation_audit_log", {
            "reconciliation_id": rid,
            "action": "totals_recalculated",
            "notes": f"Expense cleanup: visit fees {totals['visit_fees']:.2f}, expenses {totals['total_expenses']:.2f}",
        })

    db.log(c, "expenses", "cleanup_contaminated", result.message)
    log.info(result.message)
    return result

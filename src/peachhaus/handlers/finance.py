"""Bookkeeping handlers: expense cleanup and the GREC audit export."""
import io

from flask import send_file

from peachhaus.handlers.registry import handler, require
from peachhaus.reports.audit_export import XLSX_MIME, export_audit_report
from peachhaus.reports.cleanup import cleanup_contaminated_expenses


@handler("cleanup-contaminated-expenses")
def cleanup_expenses(c, body: dict):
    return {"success": True, **cleanup_contaminated_expenses(c).to_dict()}


@handler("export-audit-report", methods=("GET", "POST"))
def export_audit(c, body: dict):
    require(body, "reconciliationId")
    filename, data = export_audit_report(c, body["reconciliationId"])
    return send_file(io.BytesIO(data), mimetype=XLSX_MIME, as_attachment=True, download_name=filename)

"""Owner approval links for work order quotes."""
import hmac
import logging

from flask import make_response, render_template

from peachhaus import db
from peachhaus.errors import IntegrationError
from peachhaus.handlers.registry import handler
from peachhaus.integrations import ghl

log = logging.getLogger(__name__)

OUTCOMES = {
    "approve": (True, "scheduled", "approved"),
    "decline": (False, "on_hold", "declined"),
}


def approval_page(message: str, success: bool, approved: bool | None = None, status: int = 200):
    if not success:
        label, color = "Something went wrong", "#dc2626"
    elif approved:
        label, color = "Approved", "#111111"
    else:
        label, color = "Declined" if approved is False else "Notice", "#666666"
    html = render_template("approval.html", message=message, status=label, color=color)
    resp = make_response(html, status)
    resp.headers["Content-Type"] = "text/html; charset=utf-8"
    return resp


def _cost(amount) -> str:
    return f"${amount:,.0f}" if amount else "pending"


def _vendor_message(approved: bool, cost: str, property_name: str, wo_number: str) -> str:
    if approved:
        return (f"PeachHaus Property Management\n\nGood news! Your quote of {cost} for {property_name} "
                f"has been approved by the owner.\n\nPlease proceed with the work and reply DONE when "
                f"complete.\n\nWO #{wo_number}")
    return (f"PeachHaus Property Management\n\nThe owner has declined your quote of {cost} for "
            f"{property_name}.\n\nOur team will follow up with next steps.\n\nWO #{wo_number}")


@handler("owner-approval-action", methods=("GET",))
def owner_approval_action(c, body: dict):
    wo_id, action, token = body.get("workOrderId"), body.get("action"), body.get("token")
    if not wo_id or not action or not token:
        return approval_page("Missing required parameters", False, status=400)

    wo = db.row(c, """
        SELECT w.*, p.name AS property_name, p.owner_id,
               v.name AS vendor_name, v.phone AS vendor_phone
        FROM work_orders w
        LEFT JOIN properties p ON p.id = w.property_id
        LEFT JOIN vendors v ON v.id = w.vendor_id
        WHERE w.id=?""", (wo_id,))
    if not wo or not wo["owner_approval_token"] or not hmac.compare_digest(
            wo["owner_approval_token"].encode(), str(token).encode()):
        return approval_page("Invalid or expired approval link. Please contact your property manager.",
                             False, status=403)

    if wo["owner_approved"] is not None:
        done = "approved" if wo["owner_approved"] else "declined"
        return approval_page(f"This work order has already been {done}.", True, bool(wo["owner_approved"]))

    if action not in OUTCOMES:
        return approval_page("Invalid action", False, status=400)
    approved, new_status, verb = OUTCOMES[action]

    owner = db.row(c, "SELECT name FROM property_owners WHERE id=?", (wo["owner_id"],)) if wo["owner_id"] else None
    owner_name = (owner or {}).get("name") or "Owner"
    cost = _cost(wo["quoted_cost"])

    c.execute("UPDATE work_orders SET owner_approved=?, owner_approved_at=?, status=? WHERE id=?",
              (int(approved), db.now(), new_status, wo_id))
    db.insert(c, "work_order_timeline", {
        "work_order_id": wo_id,
        "action": f"Owner {owner_name} {verb} the quote of {cost}",
        "performed_by_type": "owner",
        "performed_by_name": owner_name,
        "previous_status": wo["status"],
        "new_status": new_status,
    })

    if wo["vendor_phone"]:
        message = _vendor_message(approved, cost, wo["property_name"] or "Property", wo_id[:8].upper())
        try:
            ghl.send_sms(c, wo["vendor_phone"], message, name=wo["vendor_name"] or "")
        except IntegrationError as e:
            log.warning("Vendor notification for work order %s failed: %s", wo_id, e)
    db.log(c, wo_id, f"owner_{verb}", f"{owner_name}: {cost}")

    if approved:
        msg = (f"Thank you! You have approved the quote of {cost} for {wo['title']}. "
               "The vendor has been notified to proceed.")
    else:
        msg = (f"You have declined the quote of {cost} for {wo['title']}. "
               "Our team will follow up with alternative options.")
    return approval_page(msg, True, approved)

"""Document handlers: field detection, SignWell drafts and native signing."""
import base64
import binascii
import json
import logging
from datetime import date

from flask import request

from peachhaus import db, signing, storage
from peachhaus.errors import HandlerError
from peachhaus.fields.extractor import extract_fields
from peachhaus.handlers.registry import handler, require
from peachhaus.integrations import signwell

log = logging.getLogger(__name__)

TEMPLATE_BUCKET = "onboarding-documents"

# pre-fill key -> extra api_ids that carry the same value
_ALIASES = {
    "property_address": ("address",),
    "monthly_rent": ("rent_amount", "rent"),
    "security_deposit": ("deposit_amount", "deposit"),
    "lease_start_date": ("start_date", "lease_start"),
    "start_date": ("lease_start",),
    "lease_end_date": ("end_date", "lease_end"),
    "end_date": ("lease_end",),
    "brand_name": ("property_name",),
    "property_name": ("brand_name",),
}
_MONEY_KEYS = ("monthly_rent", "security_deposit")
_DATE_KEYS = ("lease_start_date", "start_date", "lease_end_date", "end_date")


def _long_date(d: date) -> str:
    return f"{d.strftime('%B')} {d.day}, {d.year}"


def placeholder_fields(pre_fill: dict | None, recipient_name: str = "", recipient_email: str = "",
                       today: date | None = None) -> dict[str, str]:
    """Text-tag values for a SignWell document; the first value for an api_id wins."""
    out: dict[str, str] = {}

    def put(key, value):
        out.setdefault(key, value)

    for key, value in (pre_fill or {}).items():
        if not isinstance(value, str) or not value.strip():
            continue
        value = value.strip()
        if key in _MONEY_KEYS and not value.startswith("$"):
            value = f"${value}"
        elif key in _DATE_KEYS:
            try:
                value = _long_date(date.fromisoformat(value[:10]))
            except ValueError:
                pass
        put(key, value)
        for alias in _ALIASES.get(key, ()):
            put(alias, value)

    if recipient_name:
        for key in ("guest_name", "tenant_name", "renter_name", "lessee_name"):
            put(key, recipient_name)
    if recipient_email:
        for key in ("guest_email", "tenant_email", "renter_email"):
            put(key, recipient_email)
    today_str = _long_date(today or date.today())
    for key in ("agreement_date", "todays_date", "today_date", "current_date"):
        put(key, today_str)
    return out


def _template(c, template_id: str) -> dict:
    template = db.row(c, "SELECT * FROM document_templates WHERE id=?", (template_id,))
    if not template:
        raise HandlerError(404, "Template not found")
    return template


@handler("signwell-create-document")
def signwell_create_document(c, body: dict):
    require(body, "templateId", "recipientName", "recipientEmail")
    template = _template(c, body["templateId"])
    if not template["signwell_template_id"]:
        raise HandlerError(400, "Template has no SignWell template id")

    name = body.get("documentName") or template["name"]
    fields = placeholder_fields(body.get("preFillData"), body["recipientName"], body["recipientEmail"])
    doc = signwell.create_from_template(
        template["signwell_template_id"],
        [
            {"name": body["recipientName"], "email": body["recipientEmail"], "placeholder_name": "Guest"},
            {"name": "PeachHaus Group", "email": "anja@peachhausgroup.com", "placeholder_name": "Host"},
        ],
        name,
        template_fields=fields,
        draft=bool(body.get("draft", True)),
    )

    document_id = db.new_id()
    db.insert(c, "booking_documents", {
        "id": document_id,
        "template_id": template["id"],
        "document_name": name,
        "recipient_name": body["recipientName"],
        "recipient_email": body["recipientEmail"],
        "property_id": body.get("propertyId"),
        "signwell_document_id": doc.get("id"),
        "embedded_edit_url": doc.get("embedded_edit_url"),
        "field_values": body.get("preFillData") or {},
        "is_draft": 1,
        "status": "draft",
    })
    if body.get("leadId"):
        c.execute("UPDATE leads SET signwell_document_id=? WHERE id=?", (doc.get("id"), body["leadId"]))
    db.insert(c, "document_audit_log", {
        "document_id": document_id,
        "action": "draft_created",
        "actor_type": "admin",
        "metadata": {"signwellDocumentId": doc.get("id"), "fieldsPreFilled": len(fields)},
    })
    return {"success": True, "documentId": document_id, "signwellDocumentId": doc.get("id"),
            "embeddedEditUrl": doc.get("embedded_edit_url")}


@handler("create-signing-session")
def create_signing_session(c, body: dict):
    require(body, "ownerName", "ownerEmail")
    document_id = body.get("documentId")
    if not document_id:
        require(body, "templateId")
        template = _template(c, body["templateId"])
        document_id = db.new_id()
        db.insert(c, "booking_documents", {
            "id": document_id,
            "template_id": template["id"],
            "document_name": body.get("documentName") or template["name"],
            "property_id": body.get("propertyId"),
            "owner_id": body.get("ownerId"),
            "field_values": body.get("fieldValues") or {},
        })
    result = signing.create_signing_session(
        c, document_id, body["ownerName"], body["ownerEmail"],
        second_owner_name=body.get("secondOwnerName"),
        second_owner_email=body.get("secondOwnerEmail"),
        lead_id=body.get("leadId"),
    )
    return {"success": True, "documentId": document_id, "signingUrl": result["signing_url"],
            "expiresAt": result["expires_at"],
            "signers": [{k: t[k] for k in ("signer_type", "email", "order")} for t in result["tokens"]]}


@handler("validate-signing-token", methods=("GET", "POST"))
def validate_signing_token(c, body: dict):
    require(body, "token")
    return {"valid": True, **signing.validate_token(c, body["token"])}


@handler("submit-signature")
def submit_signature(c, body: dict):
    require(body, "token")
    if not body.get("signatureData"):
        raise HandlerError(400, "Signature is required")
    ip = (request.headers.get("x-forwarded-for") or request.remote_addr or "unknown").split(",")[0].strip()
    return signing.submit_signature(
        c, body["token"], body["signatureData"], bool(body.get("agreedToTerms")),
        field_values=body.get("fieldValues") or {},
        ip_address=ip,
        user_agent=request.headers.get("user-agent") or "unknown",
    )


@handler("detect-pdf-fields")
def detect_pdf_fields(c, body: dict):
    """Extract fields from ``pdfBase64``, a ``storagePath`` or the template's file.

    With a ``templateId`` the extracted fields are saved as its field mappings.
    """
    template = _template(c, body["templateId"]) if body.get("templateId") else None
    if body.get("pdfBase64"):
        try:
            pdf = base64.b64decode(body["pdfBase64"], validate=True)
        except (binascii.Error, ValueError):
            raise HandlerError(400, "pdfBase64 is not valid base64")
    else:
        path = body.get("storagePath") or (template or {}).get("file_path")
        if not path:
            raise HandlerError(400, "pdfBase64, storagePath or templateId is required")
        bucket, _, key = path.partition("/")
        pdf = storage.download(bucket, key)

    result = extract_fields(pdf)
    fields = [f.model_dump(mode="json") for f in result.fields]
    if template:
        c.execute("UPDATE document_templates SET field_mappings=? WHERE id=?",
                  (json.dumps(fields), template["id"]))
        db.log(c, template["id"], "fields_detected", f"{len(fields)} fields")
    for w in result.warnings:
        log.warning("detect-pdf-fields: %s", w)
    return {
        "success": True,
        "fields": fields,
        "totalPages": result.total_pages,
        "hasAcroForm": result.has_acroform,
        "documentType": result.document_type.value,
        "warnings": result.warnings,
    }

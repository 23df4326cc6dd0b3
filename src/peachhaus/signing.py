"""Native document signing: ordered signer tokens, submission and completion.

Each signer gets a 64-hex-character token valid for ``signing_link_hours``.
Signers sign in ``signing_order``: owner, optional second owner, then the
manager. A submission runs a fill session over the signer's own fields;
the last signature merges everything and flattens the final PDF.
"""

from __future__ import annotations

import json
import logging
import secrets
import tempfile
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from peachhaus import db, storage
from peachhaus.config import get_settings
from peachhaus.errors import (
    AlreadySigned,
    ConsentRequired,
    DocumentNotFound,
    FieldPermissionError,
    InvalidFieldValue,
    InvalidSigningToken,
    MissingRequiredFields,
    SigningTokenExpired,
    UnknownField,
)
from peachhaus.fields.flatten import flatten
from peachhaus.fields.session import FillSession, is_empty
from peachhaus.integrations.email_client import send_email
from peachhaus.models import FieldType, FilledBy, FormField, Signer, SignerType

log = logging.getLogger(__name__)

SIGNED_BUCKET = "signed-documents"

ROLE_FOR_SIGNER = {
    SignerType.OWNER: FilledBy.GUEST,
    SignerType.SECOND_OWNER: FilledBy.GUEST,
    SignerType.MANAGER: FilledBy.ADMIN,
}


def generate_token() -> str:
    return secrets.token_hex(32)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def signing_url(token: str) -> str:
    return f"{get_settings().app_url.rstrip('/')}/sign/{token}"


# ── Documents and fields ─────────────────────────────────────────────────────

def load_document(c, document_id: str) -> tuple[dict, dict, list[FormField]]:
    """Return the booking document, its template and the template's fields."""
    doc = db.row(c, "SELECT * FROM booking_documents WHERE id=?", (document_id,))
    if not doc:
        raise DocumentNotFound(document_id)
    template = db.row(c, "SELECT * FROM document_templates WHERE id=?", (doc["template_id"],)) or {}
    fields = [FormField(**f) for f in json.loads(template.get("field_mappings") or "[]")]
    return doc, template, fields


def fields_for_signer(fields: list[FormField], signer_type: SignerType | str) -> list[FormField]:
    """The subset of fields one signer is responsible for.

    Owner-side fields are split between the owner and the second owner by
    the ``second_owner`` api_id prefix.
    """
    signer_type = SignerType(signer_type)
    role = ROLE_FOR_SIGNER[signer_type]
    own = [f for f in fields if f.filled_by is role]
    if signer_type is SignerType.SECOND_OWNER:
        return [f for f in own if f.api_id.startswith("second_owner")]
    if signer_type is SignerType.OWNER:
        return [f for f in own if not f.api_id.startswith("second_owner")]
    return own


def _audit(c, document_id: str, action: str, actor_type: str = "system",
           actor_email: str = "", ip: str | None = None, **metadata):
    db.insert(c, "document_audit_log", {
        "document_id": document_id,
        "action": action,
        "actor_type": actor_type,
        "actor_email": actor_email,
        "ip_address": ip,
        "metadata": metadata,
    })


# ── Emails ───────────────────────────────────────────────────────────────────

def _signing_email(name: str, document_name: str, url: str, hours: int,
                   previous_signer: str | None = None) -> tuple[str, str]:
    first = (name or "there").split(" ")[0]
    lead = (f"<p><strong>{previous_signer}</strong> has completed signing the agreement. "
            f"It's now your turn to review and add your signature.</p>") if previous_signer else (
            "<p>Your agreement with PeachHaus Group is ready for signature. "
            "Please review the document and sign at your convenience.</p>")
    html = (
        f"<p>Dear {first},</p>{lead}"
        f"<p><strong>{document_name}</strong></p>"
        f'<p><a href="{url}">REVIEW &amp; SIGN DOCUMENT</a></p>'
        f"<p>This link expires in {hours} hours.</p>"
        "<p>Questions? Contact us at info@peachhausgroup.com</p>"
    )
    text = f"Dear {first},\n\nPlease review and sign {document_name}:\n{url}\n\nThis link expires in {hours} hours."
    return html, text


def _confirmation_email(name: str, document_name: str, property_address: str | None) -> tuple[str, str]:
    first = (name or "there").split(" ")[0]
    prop = f"<p>Property: {property_address}</p>" if property_address else ""
    html = (
        f"<h1>Signature Complete!</h1><p>Hi {first},</p>"
        "<p>Thank you for signing. Your signature has been recorded successfully.</p>"
        f"{prop}<p>Document signed: <strong>{document_name}</strong></p>"
        "<p>You'll receive the final signed document once all parties have completed signing.</p>"
    )
    text = f"Hi {first},\n\nThank you for signing {document_name}. Your signature has been recorded."
    return html, text


# ── Session creation ─────────────────────────────────────────────────────────

def build_signers(owner_name: str, owner_email: str, second_owner_name: str | None = None,
                  second_owner_email: str | None = None) -> list[Signer]:
    """Owner first, second owner if the email differs, manager last."""
    settings = get_settings()
    signers = [Signer(name=owner_name, email=owner_email, type=SignerType.OWNER, order=1)]
    if (second_owner_name and second_owner_email
            and second_owner_email.strip().lower() != owner_email.strip().lower()):
        signers.append(Signer(name=second_owner_name, email=second_owner_email,
                              type=SignerType.SECOND_OWNER, order=2))
    signers.append(Signer(name=settings.manager_signer_name, email=settings.manager_signer_email,
                          type=SignerType.MANAGER, order=len(signers) + 1))
    return signers


def create_signing_session(c, document_id: str, owner_name: str, owner_email: str,
                           second_owner_name: str | None = None,
                           second_owner_email: str | None = None,
                           lead_id: str | None = None) -> dict:
    settings = get_settings()
    doc, template, _ = load_document(c, document_id)
    signers = build_signers(owner_name, owner_email, second_owner_name, second_owner_email)
    expires_at = _utcnow() + timedelta(hours=settings.signing_link_hours)

    tokens = []
    for s in signers:
        token = generate_token()
        db.insert(c, "signing_tokens", {
            "document_id": document_id,
            "signer_name": s.name,
            "signer_email": s.email,
            "signer_type": s.type.value,
            "signing_order": s.order,
            "token": token,
            "expires_at": expires_at.isoformat(),
        })
        tokens.append({"signer_type": s.type.value, "email": s.email, "order": s.order, "token": token})

    c.execute(
        "UPDATE booking_documents SET status='pending', is_draft=0, sent_at=?,"
        " recipient_name=?, recipient_email=? WHERE id=?",
        (db.now(), owner_name, owner_email, document_id),
    )
    _audit(c, document_id, "signing_session_created",
           signers=[{"name": s.name, "email": s.email, "type": s.type.value} for s in signers],
           expires_at=expires_at.isoformat())

    document_name = doc.get("document_name") or template.get("name") or "Agreement"
    first_url = signing_url(tokens[0]["token"])
    html, text = _signing_email(owner_name, document_name, first_url, settings.signing_link_hours)
    send_email(c, owner_email, f"Your Agreement is Ready for Signature - {document_name}", html, text)

    if lead_id:
        c.execute("UPDATE leads SET last_contacted_at=? WHERE id=?", (db.now(), lead_id))
    db.log(c, document_id, "signing_session_created",
           f"{len(signers)} signers, first -> {owner_email}")
    return {"document_id": document_id, "tokens": tokens, "signing_url": first_url,
            "expires_at": expires_at.isoformat()}


# ── Token validation ─────────────────────────────────────────────────────────

def _token_row(c, token: str) -> dict:
    row = db.row(c, "SELECT * FROM signing_tokens WHERE token=?", (token or "",))
    if not row:
        raise InvalidSigningToken()
    return row


def _check_usable(row: dict, now: datetime | None = None):
    if row["signed_at"]:
        raise AlreadySigned()
    if (now or _utcnow()) > datetime.fromisoformat(row["expires_at"]):
        raise SigningTokenExpired()


def validate_token(c, token: str) -> dict:
    """Everything a signing page needs for one token."""
    row = _token_row(c, token)
    _check_usable(row)
    doc, template, fields = load_document(c, row["document_id"])
    own = {f.api_id for f in fields_for_signer(fields, row["signer_type"])}
    return {
        "document": {
            "id": doc["id"],
            "name": doc.get("document_name") or template.get("name") or "Agreement",
            "status": doc["status"],
        },
        "signer": {
            "name": row["signer_name"],
            "email": row["signer_email"],
            "type": row["signer_type"],
            "order": row["signing_order"],
        },
        "fields": [f.model_dump(mode="json") | {"editable": f.api_id in own} for f in fields],
        "values": json.loads(doc.get("field_values") or "{}"),
        "expires_at": row["expires_at"],
    }


# ── Submission ───────────────────────────────────────────────────────────────

def _signing_date() -> str:
    return datetime.now(ZoneInfo(get_settings().timezone)).date().isoformat()


def _property_address(c, values: dict, doc: dict) -> str | None:
    for key in ("property_address", "PropertyAddress", "property_street_address"):
        if values.get(key):
            return values[key]
    lead = db.row(c, "SELECT property_address FROM leads WHERE signwell_document_id=?", (doc["id"],))
    if lead and lead["property_address"]:
        return lead["property_address"]
    return None


def signer_changes(fields: list[FormField], own: set[str], submitted: dict,
                   existing: dict, signer_type: SignerType) -> dict:
    """Reduce a submitted value map to the signer's own fields.

    Signing pages send back the whole map they were given. Values for other
    fields are dropped when they match what is stored; a changed one raises
    FieldPermissionError.
    """
    by_id = {f.api_id: f for f in fields}
    changes = {}
    for api_id, value in submitted.items():
        if api_id in own:
            changes[api_id] = value
            continue
        stored = existing.get(api_id)
        if value == stored or (is_empty(value) and is_empty(stored)):
            continue
        field = by_id.get(api_id)
        if field is None:
            raise UnknownField(api_id)
        raise FieldPermissionError(api_id, field.filled_by.value, signer_type.value)
    return changes


def submit_signature(c, token: str, signature_data: str, agreed_to_terms: bool,
                     field_values: dict | None = None, ip_address: str = "unknown",
                     user_agent: str = "unknown") -> dict:
    """Record one signer's signature and hand off to the next signer.

    Raises MissingRequiredFields when the signer left a required field empty;
    nothing is written in that case.
    """
    if not agreed_to_terms:
        raise ConsentRequired()
    row = _token_row(c, token)
    _check_usable(row)

    document_id = row["document_id"]
    doc, template, fields = load_document(c, document_id)
    signer_type = SignerType(row["signer_type"])
    role = ROLE_FOR_SIGNER[signer_type]
    existing = json.loads(doc.get("field_values") or "{}")

    own = fields_for_signer(fields, signer_type)
    changes = signer_changes(fields, {f.api_id for f in own}, field_values or {}, existing, signer_type)
    session = FillSession(own, existing, document_id=document_id)
    session.update(changes, role)
    for f in session.fields.values():
        if f.type is FieldType.SIGNATURE and is_empty(session.get(f.api_id)) and signature_data:
            session.set_value(f.api_id, signature_data, role)
        elif f.type is FieldType.DATE and "signature_date" in f.api_id:
            session.set_value(f.api_id, _signing_date(), role)
    finalized = session.finalize()

    merged = {**existing, **finalized.values}
    now = db.now()
    c.execute(
        "UPDATE signing_tokens SET signed_at=?, signature_data=?, ip_address=?, user_agent=?,"
        " field_values=? WHERE id=?",
        (now, signature_data, ip_address, user_agent, json.dumps(changes), row["id"]),
    )
    c.execute("UPDATE booking_documents SET field_values=? WHERE id=?", (json.dumps(merged), document_id))

    property_address = _property_address(c, merged, doc)
    _audit(c, document_id, "signature_captured", actor_type=signer_type.value,
           actor_email=row["signer_email"], ip=ip_address, consent_given=True,
           signer_name=row["signer_name"], property_address=property_address)

    document_name = doc.get("document_name") or template.get("name") or "Agreement"
    subject = f"Signed: {property_address} - {document_name}" if property_address else f"You've signed: {document_name}"
    html, text = _confirmation_email(row["signer_name"], document_name, property_address)
    send_email(c, row["signer_email"], subject, html, text)

    remaining = db.rows(
        c, "SELECT * FROM signing_tokens WHERE document_id=? AND signed_at IS NULL ORDER BY signing_order",
        (document_id,),
    )
    db.log(c, document_id, "signature_captured", f"{signer_type.value} {row['signer_email']}")

    if remaining:
        nxt = remaining[0]
        url = signing_url(nxt["token"])
        html, text = _signing_email(nxt["signer_name"], document_name, url,
                                    get_settings().signing_link_hours, previous_signer=row["signer_name"])
        send_email(c, nxt["signer_email"], f"Your Signature is Needed - {document_name}", html, text)
        _audit(c, document_id, "next_signer_notified", next_signer=nxt["signer_email"],
               signer_type=nxt["signer_type"])
        return {"success": True, "completed": False,
                "next_signer": {"email": nxt["signer_email"], "type": nxt["signer_type"]}}

    return complete_document(c, document_id)


def complete_document(c, document_id: str) -> dict:
    """All signers are done: flatten the final PDF and mark the document completed."""
    doc, template, fields = load_document(c, document_id)
    values = json.loads(doc.get("field_values") or "{}")
    signed_path = None
    status = "completed"

    try:
        finalized = FillSession(fields, values, document_id=document_id).finalize()
    except (MissingRequiredFields, InvalidFieldValue) as e:
        log.warning("Document %s needs review: %s", document_id, e)
        status = "needs_review"
        finalized = None

    source = template.get("file_path")
    if finalized and source:
        bucket, _, key = source.partition("/")
        pdf = storage.download(bucket, key)
        with tempfile.TemporaryDirectory() as tmp:
            try:
                out = flatten(pdf, finalized, f"{tmp}/{document_id}.pdf")
            except Exception:
                log.exception("Flattening document %s failed; left for review", document_id)
                status = "needs_review"
            else:
                signed_path = storage.upload(SIGNED_BUCKET, f"{document_id}.pdf", out.read_bytes())

    now = db.now()
    c.execute(
        "UPDATE booking_documents SET status=?, completed_at=?, signed_pdf_path=? WHERE id=?",
        (status, now, signed_path, document_id),
    )
    signers = db.rows(c, "SELECT signer_name, signer_email, signer_type FROM signing_tokens"
                         " WHERE document_id=? ORDER BY signing_order", (document_id,))
    _audit(c, document_id, "document_completed", all_signers=signers, signed_pdf_path=signed_path,
           status=status)

    document_name = doc.get("document_name") or template.get("name") or "Agreement"
    link = storage.signed_url(*signed_path.split("/", 1)) if signed_path else None
    for s in signers:
        body = f"All parties have signed {document_name}."
        if link:
            body += f" Download your copy: {link}"
        send_email(c, s["signer_email"], f"Completed: {document_name}", f"<p>{body}</p>", body)

    db.log(c, document_id, "document_completed", status)
    return {"success": True, "completed": True, "status": status, "signed_pdf_path": signed_path}

"""Import GoHighLevel phone calls into lead_communications."""
import logging
import sqlite3

from peachhaus import db
from peachhaus.errors import IntegrationError
from peachhaus.handlers.registry import handler
from peachhaus.integrations import ghl
from peachhaus.phone import PhoneLookupCache, normalize_phone

log = logging.getLogger(__name__)

_BODY_FIELDS = ("body", "text", "message", "content", "transcript", "snippet")


def _already_synced(c, call_id: str) -> bool:
    return c.execute("SELECT 1 FROM lead_communications WHERE external_id=?", (call_id,)).fetchone() is not None


def _transcript(client: ghl.GHLClient, call: dict) -> str:
    try:
        text = client.call_transcript(call["id"])
    except IntegrationError as e:
        log.info("No transcript for call %s: %s", call["id"], e)
        text = ""
    if text:
        return text
    for key in _BODY_FIELDS:
        value = call.get(key)
        if isinstance(value, str) and value.strip() and len(value.strip()) > len(text):
            text = value.strip()
    return text


def call_body(text: str, direction: str, name: str, duration: int, summary: str = "") -> str:
    if text and len(text) >= 20:
        return text
    mins = round(duration / 60) if duration > 0 else 0
    length = f"{mins} min" if mins > 0 else "Unknown"
    return f"Phone call {'from' if direction == 'inbound' else 'to'} {name}. Duration: {length}. {summary}".strip()


def sync_calls(c, client: ghl.GHLClient, limit: int = 200) -> dict:
    """Insert calls not yet stored; returns ``inserted``, ``skipped`` and ``errors`` counts."""
    cache = PhoneLookupCache.load(c)
    inserted = skipped = errors = 0

    for call in ghl.fetch_calls(client, limit):
        call_id = call.get("id")
        if not call_id or _already_synced(c, call_id):
            skipped += 1
            continue

        phone = str(call.get("contactPhone") or call.get("fromNumber") or call.get("toNumber") or "")
        email = str(call.get("contactEmail") or "")
        contact = cache.lookup(phone) or cache.lookup_email(email)
        name = contact.name if contact and contact.name else str(call.get("contactName") or "Unknown Caller")
        direction = "outbound" if call.get("direction") == "outbound" else "inbound"
        duration = int(call.get("duration") or call.get("callDuration") or 0)
        summary = str(call.get("summary") or "")

        try:
            db.insert(c, "lead_communications", {
                "lead_id": contact.id if contact and contact.kind == "lead" else None,
                "owner_id": contact.id if contact and contact.kind == "owner" else None,
                "communication_type": "call",
                "direction": direction,
                "subject": summary or f"Call {'from' if direction == 'inbound' else 'to'} {name}",
                "body": call_body(_transcript(client, call), direction, name, duration, summary),
                "status": "completed",
                "external_id": call_id,
                "call_duration": duration or None,
                "created_at": call.get("dateAdded") or call.get("createdAt") or db.now(),
                "metadata": {
                    "ghl_data": {
                        "contactId": call.get("contactId"),
                        "contactName": name,
                        "contactPhone": normalize_phone(phone) or phone,
                        "contactEmail": email,
                        "conversationId": call.get("conversationId"),
                        "unmatched": contact is None,
                        "rawType": call.get("type"),
                    },
                    "recording_url": call.get("recordingUrl"),
                },
            })
            inserted += 1
        except sqlite3.Error as e:
            log.error("Failed to store call %s: %s", call_id, e)
            errors += 1

    db.log(c, "ghl", "sync_calls", f"inserted={inserted} skipped={skipped} errors={errors}")
    return {"inserted": inserted, "skipped": skipped, "errors": errors}


@handler("ghl-sync-calls")
def ghl_sync_calls(c, body: dict):
    client = ghl.GHLClient.from_settings()
    try:
        result = sync_calls(c, client, int(body.get("limit") or 200))
    finally:
        client.close()
    return {"success": True, **result}

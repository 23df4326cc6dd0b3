"""Monthly marketing stats pushed by the Marketing Hub."""
import hmac
import json
import logging
import re

from flask import request

from peachhaus import db
from peachhaus.config import get_settings
from peachhaus.handlers.registry import handler, require

log = logging.getLogger(__name__)

SOURCE = "marketing_hub"

# Marketing Hub name -> Property Central name
PROPERTY_NAME_MAPPINGS = {
    "the durham family retreat": "family retreat",
    "durham family retreat": "family retreat",
    "homerun hideaway": "family retreat",
    "the homerun hideaway": "family retreat",
    "the berkley at chimney lakes": "the berkley",
    "berkley at chimney lakes": "the berkley",
    "the alpine": "alpine",
    "the scandinavian retreat": "scandinavian retreat",
    "old roswell retreat": "modern + cozy townhome",
    "the old roswell retreat": "modern + cozy townhome",
    "old roswell": "modern + cozy townhome",
    "mableton meadows": "woodland lane",
    "the boho lux": "scandi chic",
    "boho lux": "scandi chic",
    "the bloom": "whispering oaks farmhouse",
    "bloom": "whispering oaks farmhouse",
    "the maple leaf": "canadian way",
    "maple leaf": "canadian way",
    "shift sanctuary": "midtown lighthouse",
    "the shift sanctuary": "midtown lighthouse",
    "alpharetta basecamp": "smoke hollow",
    "lavish living atlanta": "lavish living",
    "lavish living - 8 mins from braves stadium w/king": "lavish living",
    "the scandi chic": "scandi chic",
    "scandi chic-mins to ksu/dt, sleeps 5, w/king, pet frndly": "scandi chic",
}

_THE = re.compile(r"^the\s+", re.I)


def match_property(properties: list[dict], name: str) -> dict | None:
    """Match a Marketing Hub property name against our properties.

    Tried in order: known mapping, exact name, our name inside theirs,
    theirs inside ours, then both with a leading "The" removed.
    """
    search = name.lower().strip()
    names = [((p["name"] or "").lower(), p) for p in properties]

    mapped = PROPERTY_NAME_MAPPINGS.get(search)
    if mapped:
        for n, p in names:
            if n == mapped:
                return p
    for n, p in names:
        if n == search:
            return p
    for n, p in names:
        if len(n) > 3 and n in search:
            return p
    if len(search) > 3:
        for n, p in names:
            if search in n:
                return p
    cleaned = _THE.sub("", search).strip()
    for n, p in names:
        n = _THE.sub("", n).strip()
        if n and cleaned and (n == cleaned or cleaned in n or n in cleaned):
            return p
    return None


def _sync_log(c, sync_type: str, status: str, synced: int, details: dict):
    db.insert(c, "partner_sync_log", {
        "source_system": SOURCE,
        "sync_type": sync_type,
        "properties_synced": synced,
        "properties_failed": 0 if synced else 1,
        "sync_status": status,
        "error_details": details,
    })


@handler("receive-marketing-sync")
def receive_marketing_sync(c, body: dict):
    expected = get_settings().marketing_hub_api_key
    given = request.headers.get("x-api-key") or ""
    if not expected or not hmac.compare_digest(given.encode(), expected.encode()):
        return {"error": "Unauthorized"}, 401
    require(body, "report_period")

    prop = None
    if body.get("property_source_id"):
        prop = db.row(c, "SELECT id, name FROM properties WHERE id=?", (body["property_source_id"],))
    if not prop and body.get("property_name"):
        prop = match_property(db.rows(c, "SELECT id, name FROM properties"), body["property_name"])

    if not prop:
        _sync_log(c, "marketing_stats_unmatched", "failed", 0, {
            "property_name": body.get("property_name"),
            "marketing_hub_property_id": body.get("marketing_hub_property_id"),
            "report_month": body["report_period"],
            "reason": "Property not found in Property Central",
        })
        log.warning("Marketing sync: no property for %r", body.get("property_name"))
        return {
            "error": "Property not found",
            "source_id": body.get("property_source_id"),
            "property_name": body.get("property_name"),
            "marketing_hub_property_id": body.get("marketing_hub_property_id"),
            "suggestion": "Add property name mapping or create property in Property Central",
        }, 404

    stats = {
        "social_media": body.get("social_media") or {},
        "outreach": body.get("outreach") or {},
        "visibility": body.get("visibility") or {},
        "executive_summary": body.get("executive_summary"),
    }
    now = db.now()
    c.execute(
        "INSERT INTO property_marketing_stats(property_id, report_month, stats, synced_at) VALUES(?,?,?,?)"
        " ON CONFLICT(property_id, report_month) DO UPDATE SET stats=excluded.stats, synced_at=excluded.synced_at",
        (prop["id"], body["report_period"], json.dumps(stats), now),
    )
    _sync_log(c, "marketing_stats", "completed", 1, {
        "property_name": prop["name"],
        "report_month": body["report_period"],
        "marketing_hub_property_id": body.get("marketing_hub_property_id"),
    })
    return {"success": True, "property_name": prop["name"], "property_id": prop["id"],
            "report_month": body["report_period"], "received_at": now}

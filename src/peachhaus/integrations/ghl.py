"""GoHighLevel (LeadConnector) client: contacts, SMS and call history.

SMS is sandboxed by default (PEACHHAUS_SMS_SANDBOX=true): the message is
written to the outbox and a mock message id is returned.
"""

from __future__ import annotations

import logging
from uuid import uuid4

import httpx

from peachhaus.config import get_settings
from peachhaus.errors import IntegrationError, NotConfigured
from peachhaus.integrations import outbox
from peachhaus.integrations.transport import DEFAULT_TIMEOUT, send
from peachhaus.phone import to_e164

log = logging.getLogger(__name__)

CONTACTS_VERSION = "2021-07-28"
CONVERSATIONS_VERSION = "2021-04-15"


class GHLClient:
    def __init__(self, api_key: str, location_id: str, base_url: str,
                 client: httpx.Client | None = None):
        self.location_id = location_id
        self._client = client or httpx.Client(base_url=base_url, timeout=DEFAULT_TIMEOUT)
        self._client.headers.update({
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        })

    @classmethod
    def from_settings(cls, client: httpx.Client | None = None) -> "GHLClient":
        settings = get_settings()
        if not settings.has_ghl():
            raise NotConfigured("gohighlevel")
        return cls(settings.ghl_api_key, settings.ghl_location_id, settings.ghl_base_url, client)

    def close(self):
        self._client.close()

    def _get(self, path: str, version: str, **params) -> dict:
        resp = send("gohighlevel", self._client, "GET", path,
                    params=params, headers={"Version": version})
        return resp.json()

    def _post(self, path: str, version: str, payload: dict) -> dict:
        resp = send("gohighlevel", self._client, "POST", path,
                    json=payload, headers={"Version": version})
        return resp.json() if resp.content else {}

    # ── Contacts ──

    def find_contact_by_phone(self, phone: str) -> str | None:
        data = self._get("/contacts/search/duplicate", CONTACTS_VERSION,
                         locationId=self.location_id, phone=to_e164(phone))
        contact = data.get("contact") or {}
        return contact.get("id")

    def create_contact(self, phone: str, name: str = "", source: str = "PropertyCentral") -> str:
        data = self._post("/contacts/", CONTACTS_VERSION, {
            "locationId": self.location_id,
            "phone": to_e164(phone),
            "name": name or "Contact",
            "source": source,
        })
        contact_id = (data.get("contact") or {}).get("id")
        if not contact_id:
            raise IntegrationError("gohighlevel", "contact create returned no id")
        return contact_id

    def find_or_create_contact(self, phone: str, name: str = "", source: str = "PropertyCentral") -> str:
        return self.find_contact_by_phone(phone) or self.create_contact(phone, name, source)

    def get_contact(self, contact_id: str) -> dict:
        return self._get(f"/contacts/{contact_id}", CONTACTS_VERSION).get("contact") or {}

    # ── Messages ──

    def send_sms(self, contact_id: str, message: str, from_number: str) -> dict:
        data = self._post("/conversations/messages", CONVERSATIONS_VERSION, {
            "type": "SMS",
            "contactId": contact_id,
            "message": message,
            "fromNumber": from_number,
        })
        return {
            "message_id": data.get("messageId") or data.get("conversationId") or "sent",
            "conversation_id": data.get("conversationId"),
        }

    # ── Calls ──

    def search_conversations(self, limit: int = 100) -> list[dict]:
        data = self._get("/conversations/search", CONVERSATIONS_VERSION,
                         locationId=self.location_id, limit=min(limit, 100),
                         sort="desc", sortBy="last_message_date")
        return data.get("conversations") or []

    def conversation_messages(self, conversation_id: str, limit: int = 50) -> list[dict]:
        data = self._get(f"/conversations/{conversation_id}/messages", CONVERSATIONS_VERSION, limit=limit)
        if isinstance(data, list):
            return data
        msgs = data.get("messages")
        if isinstance(msgs, dict):
            return msgs.get("messages") or []
        return msgs or (data.get("data") or {}).get("messages") or []

    def call_transcript(self, message_id: str) -> str:
        try:
            data = self._get(
                f"/conversations/locations/{self.location_id}/messages/{message_id}/transcription",
                CONVERSATIONS_VERSION,
            )
        except IntegrationError as e:
            if e.status == 404:
                return ""
            raise
        if isinstance(data, list):
            return " ".join(t.get("sentence") or t.get("text") or "" for t in data).strip()
        return data.get("transcription") or data.get("text") or ""


def is_call_message(msg: dict) -> bool:
    raw_type = str(msg.get("type") or "").upper()
    msg_type = str(msg.get("messageType") or "")
    content_type = str(msg.get("contentType") or "").lower()
    body = str(msg.get("body") or "")
    return (
        "CALL" in raw_type or "VOICEMAIL" in raw_type or "PHONE" in raw_type
        or msg_type in ("7", "10", "TYPE_CALL")
        or "call" in content_type
        or "Call Duration:" in body
    )


def fetch_calls(client: GHLClient, limit: int = 200) -> list[dict]:
    """Collect call messages across recent conversations, with contact details."""
    calls: dict[str, dict] = {}
    for conv in client.search_conversations(limit):
        contact = {}
        if conv.get("contactId"):
            try:
                contact = client.get_contact(conv["contactId"])
            except IntegrationError as e:
                log.warning("Contact %s lookup failed: %s", conv["contactId"], e)
        try:
            messages = client.conversation_messages(conv["id"])
        except IntegrationError as e:
            log.warning("Messages for conversation %s failed: %s", conv["id"], e)
            continue
        for msg in messages:
            if not is_call_message(msg) or msg.get("id") in calls:
                continue
            calls[msg["id"]] = {
                **msg,
                "contactId": conv.get("contactId"),
                "contactName": contact.get("name") or contact.get("firstName") or conv.get("contactName") or "Unknown",
                "contactPhone": contact.get("phone") or "",
                "contactEmail": (contact.get("email") or "").lower(),
                "conversationId": conv.get("id"),
            }
    return list(calls.values())


def send_sms(c, phone: str, message: str, name: str = "",
             client: httpx.Client | None = None) -> dict:
    """Find-or-create the contact and send an SMS, or queue it when sandboxed."""
    settings = get_settings()
    to = to_e164(phone)
    if settings.sms_sandbox:
        oid = outbox.record(c, "sms", to, message, status="sandbox")
        log.info("SMS queued to outbox #%d for %s", oid, to)
        return {"status": "sandbox", "message_id": f"mock-{uuid4().hex[:12]}",
                "contact_id": None, "conversation_id": None}

    ghl = GHLClient.from_settings(client)
    try:
        contact_id = ghl.find_or_create_contact(to, name, source="PropertyCentral Voicemail")
        sent = ghl.send_sms(contact_id, message, settings.ghl_from_number)
    finally:
        if client is None:
            ghl.close()
    outbox.record(c, "sms", to, message, status="sent", provider_id=sent["message_id"])
    return {"status": "sent", "contact_id": contact_id, **sent}

"""Telnyx messaging: SMS and MMS with audio attachments."""

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


def send_message(c, phone: str, text: str, media_urls: list[str] | None = None,
                 client: httpx.Client | None = None) -> dict:
    """Send an SMS, or an MMS when ``media_urls`` is given.

    A failed MMS is retried once as plain SMS without the attachment.
    """
    settings = get_settings()
    to = to_e164(phone)
    if settings.sms_sandbox:
        body = text if not media_urls else f"{text}\n\n[media] {' '.join(media_urls)}"
        outbox.record(c, "mms" if media_urls else "sms", to, body, status="sandbox")
        return {"status": "sandbox", "id": f"mock-{uuid4().hex[:12]}", "mms": bool(media_urls)}
    if not settings.has_telnyx():
        raise NotConfigured("telnyx")

    own_client = client is None
    client = client or httpx.Client(base_url=settings.telnyx_base_url, timeout=DEFAULT_TIMEOUT)
    headers = {"Authorization": f"Bearer {settings.telnyx_api_key}"}
    payload = {"from": settings.telnyx_from_number, "to": to, "text": text}
    try:
        mms = bool(media_urls)
        try:
            if media_urls:
                resp = send("telnyx", client, "POST", "/messages", headers=headers,
                            json={**payload, "media_urls": media_urls, "type": "MMS"})
            else:
                resp = send("telnyx", client, "POST", "/messages", headers=headers, json=payload)
        except IntegrationError:
            if not media_urls:
                raise
            log.warning("MMS to %s failed, falling back to SMS", to)
            mms = False
            resp = send("telnyx", client, "POST", "/messages", headers=headers, json=payload)
    finally:
        if own_client:
            client.close()

    message_id = (resp.json().get("data") or {}).get("id", "")
    outbox.record(c, "mms" if mms else "sms", to, text, status="sent", provider_id=message_id)
    return {"status": "sent", "id": message_id, "mms": mms}

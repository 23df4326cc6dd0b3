"""Resend email client.

Sandboxed by default (PEACHHAUS_EMAIL_SANDBOX=true): messages are stored in
the outbox only. Live mode posts to the Resend API and records the message id.
"""

from __future__ import annotations

import logging

import httpx

from peachhaus.config import get_settings
from peachhaus.integrations import outbox
from peachhaus.integrations.transport import DEFAULT_TIMEOUT, send

log = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"


def send_email(
    c,
    to: str | list[str],
    subject: str,
    html: str,
    text: str = "",
    from_addr: str | None = None,
    client: httpx.Client | None = None,
) -> dict:
    """Send (or queue) an email.

    Returns ``{"status": "sandbox"|"sent", "id": ...}``. Live sends raise
    IntegrationError on provider failure.
    """
    settings = get_settings()
    recipients = [to] if isinstance(to, str) else list(to)
    joined = ", ".join(recipients)

    if settings.email_sandbox or not settings.has_resend():
        oid = outbox.record(c, "email", joined, text or html, subject=subject, status="sandbox")
        log.info("Email queued to outbox #%d for %s: %s", oid, joined, subject)
        return {"status": "sandbox", "id": f"outbox-{oid}"}

    payload = {
        "from": from_addr or settings.email_from,
        "to": recipients,
        "subject": subject,
        "html": html,
    }
    if text:
        payload["text"] = text

    own_client = client is None
    client = client or httpx.Client(timeout=DEFAULT_TIMEOUT)
    try:
        resp = send("resend", client, "POST", RESEND_URL, json=payload,
                    headers={"Authorization": f"Bearer {settings.resend_api_key}"})
    finally:
        if own_client:
            client.close()

    message_id = resp.json().get("id", "")
    outbox.record(c, "email", joined, text or html, subject=subject, status="sent", provider_id=message_id)
    log.info("Email sent to %s via Resend (%s)", joined, message_id)
    return {"status": "sent", "id": message_id}

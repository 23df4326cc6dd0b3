"""SignWell e-signature: create documents from templates."""

from __future__ import annotations

import httpx

from peachhaus.config import get_settings
from peachhaus.errors import NotConfigured
from peachhaus.integrations.transport import DEFAULT_TIMEOUT, send


def create_from_template(
    template_id: str,
    recipients: list[dict],
    name: str,
    template_fields: dict[str, str] | None = None,
    draft: bool = False,
    client: httpx.Client | None = None,
) -> dict:
    """Create a document from a SignWell template.

    ``recipients`` items carry ``name``, ``email`` and ``placeholder_name``.
    Returns the SignWell document JSON.
    """
    settings = get_settings()
    if not settings.has_signwell():
        raise NotConfigured("signwell")

    payload: dict = {
        "test_mode": settings.signwell_test_mode,
        "template_id": template_id,
        "name": name,
        "draft": draft,
        "recipients": [
            {"id": str(i + 1), "name": r["name"], "email": r["email"],
             "placeholder_name": r.get("placeholder_name") or f"Signer {i + 1}"}
            for i, r in enumerate(recipients)
        ],
    }
    if template_fields:
        payload["template_fields"] = [{"api_id": k, "value": v} for k, v in template_fields.items()]

    own_client = client is None
    client = client or httpx.Client(base_url=settings.signwell_base_url, timeout=DEFAULT_TIMEOUT)
    try:
        resp = send("signwell", client, "POST", "/document_templates/documents/",
                    json=payload, headers={"X-Api-Key": settings.signwell_api_key})
    finally:
        if own_client:
            client.close()
    return resp.json()

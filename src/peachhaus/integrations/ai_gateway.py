"""Chat completion through the AI gateway (OpenAI-compatible endpoint)."""

from __future__ import annotations

import httpx

from peachhaus.config import get_settings
from peachhaus.errors import IntegrationError, NotConfigured
from peachhaus.integrations.transport import send

TIMEOUT = httpx.Timeout(90.0, connect=10.0)


def chat_completion(messages: list[dict], model: str | None = None,
                    temperature: float | None = None,
                    client: httpx.Client | None = None) -> str:
    """Send chat messages and return the assistant's reply text."""
    settings = get_settings()
    if not settings.has_ai_gateway():
        raise NotConfigured("ai_gateway")

    payload: dict = {"model": model or settings.ai_model, "messages": messages}
    if temperature is not None:
        payload["temperature"] = temperature

    own_client = client is None
    client = client or httpx.Client(timeout=TIMEOUT)
    try:
        resp = send("ai_gateway", client, "POST", settings.ai_gateway_url, json=payload,
                    headers={"Authorization": f"Bearer {settings.ai_gateway_key}"})
    finally:
        if own_client:
            client.close()

    try:
        return resp.json()["choices"][0]["message"]["content"] or ""
    except (KeyError, IndexError, ValueError) as e:
        raise IntegrationError("ai_gateway", "unexpected response shape") from e

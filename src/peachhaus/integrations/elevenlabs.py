"""ElevenLabs text-to-speech."""

from __future__ import annotations

import httpx

from peachhaus.config import get_settings
from peachhaus.errors import NotConfigured
from peachhaus.integrations.transport import DEFAULT_TIMEOUT, send

MODEL_ID = "eleven_turbo_v2_5"
VOICE_SETTINGS = {
    "stability": 0.5,
    "similarity_boost": 0.75,
    "style": 0.3,
    "use_speaker_boost": True,
}


def text_to_speech(text: str, voice_id: str | None = None,
                   client: httpx.Client | None = None) -> bytes:
    """Return MP3 audio for ``text``."""
    settings = get_settings()
    if not settings.has_elevenlabs():
        raise NotConfigured("elevenlabs")
    voice = voice_id or settings.elevenlabs_voice_id

    own_client = client is None
    client = client or httpx.Client(base_url=settings.elevenlabs_base_url, timeout=DEFAULT_TIMEOUT)
    try:
        resp = send(
            "elevenlabs", client, "POST", f"/text-to-speech/{voice}",
            params={"output_format": "mp3_44100_128"},
            headers={"xi-api-key": settings.elevenlabs_api_key},
            json={"text": text, "model_id": MODEL_ID, "voice_settings": VOICE_SETTINGS},
        )
    finally:
        if own_client:
            client.close()
    return resp.content

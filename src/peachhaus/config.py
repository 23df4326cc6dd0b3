"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """All configuration is loaded from .env or PEACHHAUS_* environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", env_prefix="PEACHHAUS_", extra="ignore",
    )

    # Managed backend stand-ins
    db_path: str = "~/.peachhaus/peachhaus.db"
    storage_dir: str = "~/.peachhaus/storage"
    storage_secret: str = "change-me"
    signed_url_ttl_seconds: int = 3600

    # Public app
    app_url: str = "https://propertycentral.lovable.app"
    functions_url: str = "http://localhost:5055/functions"
    timezone: str = "America/New_York"

    # Sandbox flags: outgoing email/SMS are queued in the outbox table only
    email_sandbox: bool = True
    sms_sandbox: bool = True

    # Resend (email)
    resend_api_key: str = ""
    email_from: str = "PeachHaus Group <info@peachhausgroup.com>"

    # GoHighLevel (SMS)
    ghl_api_key: str = ""
    ghl_location_id: str = ""
    ghl_from_number: str = "+14048005932"
    ghl_base_url: str = "https://services.leadconnectorhq.com"

    # Telnyx (SMS / voice)
    telnyx_api_key: str = ""
    telnyx_from_number: str = ""
    telnyx_base_url: str = "https://api.telnyx.com/v2"

    # SignWell (e-signature)
    signwell_api_key: str = ""
    signwell_base_url: str = "https://www.signwell.com/api/v1"
    signwell_test_mode: bool = True

    # Google Calendar
    google_credentials_file: str = "credentials.json"
    google_token_file: str = "token.json"
    google_calendar_id: str = "primary"

    # ElevenLabs (text-to-speech)
    elevenlabs_api_key: str = ""
    elevenlabs_voice_id: str = "nPczCjzI2devNBz1zQrb"
    elevenlabs_base_url: str = "https://api.elevenlabs.io/v1"

    # AI gateway (chat completions)
    ai_gateway_url: str = "https://ai.gateway.lovable.dev/v1/chat/completions"
    ai_gateway_key: str = ""
    ai_model: str = "google/gemini-2.5-flash"

    # Inbound webhooks
    marketing_hub_api_key: str = ""

    # Signing
    manager_signer_name: str = "PeachHaus Group"
    manager_signer_email: str = "anja@peachhausgroup.com"
    signing_link_hours: int = 48

    # Watchdog alerts (comma-separated)
    admin_alert_emails: str = "anja@peachhausgroup.com"

    @property
    def db_file(self) -> Path:
        p = Path(self.db_path).expanduser()
        p.parent.mkdir(parents=True, exist_ok=True)
        return p

    @property
    def storage_path(self) -> Path:
        p = Path(self.storage_dir).expanduser()
        p.mkdir(parents=True, exist_ok=True)
        return p

    @property
    def admin_emails(self) -> list[str]:
        return [e.strip() for e in self.admin_alert_emails.split(",") if e.strip()]

    def has_resend(self) -> bool:
        return bool(self.resend_api_key)

    def has_ghl(self) -> bool:
        return bool(self.ghl_api_key and self.ghl_location_id)

    def has_telnyx(self) -> bool:
        return bool(self.telnyx_api_key and self.telnyx_from_number)

    def has_signwell(self) -> bool:
        return bool(self.signwell_api_key)

    def has_google(self) -> bool:
        return Path(self.google_token_file).exists() or Path(self.google_credentials_file).exists()

    def has_elevenlabs(self) -> bool:
        return bool(self.elevenlabs_api_key)

    def has_ai_gateway(self) -> bool:
        return bool(self.ai_gateway_key)


def get_settings() -> Settings:
    return Settings()

"""Google Calendar and Gmail access through OAuth user credentials."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build

from peachhaus.config import get_settings

SCOPES = [
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/gmail.readonly",
]


def get_credentials(interactive: bool = True) -> Credentials:
    """Get or refresh Google OAuth credentials."""
    settings = get_settings()
    creds = None
    token_path = Path(settings.google_token_file)

    if token_path.exists():
        creds = Credentials.from_authorized_user_file(str(token_path), SCOPES)

    if not creds or not creds.valid:
        if creds and creds.expired and creds.refresh_token:
            creds.refresh(Request())
        elif interactive:
            flow = InstalledAppFlow.from_client_secrets_file(
                settings.google_credentials_file, SCOPES
            )
            creds = flow.run_local_server(port=0)
        else:
            raise FileNotFoundError(f"No usable Google token at {token_path}")
        token_path.write_text(creds.to_json())

    return creds


def get_calendar_service(interactive: bool = False):
    """Get an authenticated Google Calendar API service."""
    return build("calendar", "v3", credentials=get_credentials(interactive))


def get_gmail_service(interactive: bool = False):
    return build("gmail", "v1", credentials=get_credentials(interactive))


def move_event(service, event_id: str, start: datetime, end: datetime,
               calendar_id: str | None = None, timezone: str | None = None) -> dict:
    """Patch an existing event to a new time slot."""
    settings = get_settings()
    tz = timezone or settings.timezone
    body = {
        "start": {"dateTime": start.isoformat(), "timeZone": tz},
        "end": {"dateTime": end.isoformat(), "timeZone": tz},
    }
    return service.events().patch(
        calendarId=calendar_id or settings.google_calendar_id,
        eventId=event_id,
        body=body,
        sendUpdates="all",
    ).execute()

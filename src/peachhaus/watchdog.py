"""Gmail token health check with a few retries before alerting admins."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable

from google.auth.exceptions import GoogleAuthError
from googleapiclient.errors import HttpError

from peachhaus import db
from peachhaus.config import get_settings
from peachhaus.integrations import google_calendar
from peachhaus.integrations.email_client import send_email

log = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
INITIAL_DELAY = 1.0

CHECK_ERRORS = (HttpError, GoogleAuthError, OSError)


def gmail_profile_address() -> str:
    """Refresh the stored token if needed and return the mailbox address."""
    service = google_calendar.get_gmail_service(interactive=False)
    return service.users().getProfile(userId="me").execute().get("emailAddress", "")


def _alert(c, error: str) -> int:
    settings = get_settings()
    html = (
        "<h1>Action Required</h1><p>Hi Team,</p>"
        "<p>Your Gmail integration has <strong>expired</strong> and email scanning has stopped working.</p>"
        "<p>New expenses and utility bills won't be detected from email until it is reconnected.</p>"
        f'<p><a href="{settings.app_url.rstrip("/")}/admin">Reconnect Gmail Now</a></p>'
        f"<p>Last error: {error}</p>"
    )
    for email in settings.admin_emails:
        send_email(c, email, "Action Required: Gmail Connection Expired - PeachHaus", html,
                   f"Gmail connection expired. Reconnect at {settings.app_url}/admin. Last error: {error}")
    return len(settings.admin_emails)


def check_gmail_health(
    c,
    fetch_address: Callable[[], str] = gmail_profile_address,
    attempts: int = MAX_ATTEMPTS,
    delay: float = INITIAL_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> dict:
    """Check Gmail up to ``attempts`` times, doubling the delay between tries.

    Returns ``{"status": "healthy" | "expired" | "not_connected", ...}``.
    Admins are emailed when every attempt fails.
    """
    if not Path(get_settings().google_token_file).exists():
        return {"status": "not_connected", "message": "Gmail is not connected"}

    last_error = ""
    for attempt in range(1, attempts + 1):
        try:
            address = fetch_address()
            db.log(c, "gmail", "health_ok", f"{address} (attempt {attempt})")
            return {"status": "healthy", "email": address, "attempts": attempt}
        except CHECK_ERRORS as e:
            last_error = str(e) or type(e).__name__
            log.warning("Gmail health attempt %d/%d failed: %s", attempt, attempts, last_error)
            if attempt < attempts:
                sleep(delay)
                delay *= 2

    alerted = _alert(c, last_error)
    db.log(c, "gmail", "health_expired", last_error)
    return {"status": "expired", "error": last_error, "attempts": attempts, "alerts_sent": alerted}

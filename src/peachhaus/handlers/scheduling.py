"""Discovery call rescheduling."""
import logging
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from google.auth.exceptions import GoogleAuthError
from googleapiclient.errors import HttpError

from peachhaus import db
from peachhaus.config import get_settings
from peachhaus.errors import HandlerError
from peachhaus.handlers.registry import handler, require
from peachhaus.integrations import google_calendar
from peachhaus.integrations.email_client import send_email

log = logging.getLogger(__name__)

REASON_LABELS = {
    "client_request": "Client requested change",
    "conflict": "Schedule conflict",
    "emergency": "Emergency/urgent matter",
    "availability": "Staff availability",
    "weather": "Weather conditions",
    "other": "Other reason",
}


def parse_when(value: str) -> datetime:
    """Parse an ISO timestamp; naive values are taken as UTC."""
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def find_conflict(c, call_id: str, start: datetime, duration_minutes: int) -> dict | None:
    window = timedelta(minutes=duration_minutes)
    for other in db.rows(c, "SELECT id, scheduled_at FROM discovery_calls"
                            " WHERE id != ? AND status IN ('scheduled','confirmed')", (call_id,)):
        if other["scheduled_at"] and abs(parse_when(other["scheduled_at"]) - start) <= window:
            return other
    return None


def _display(dt: datetime) -> str:
    local = dt.astimezone(ZoneInfo(get_settings().timezone))
    return local.strftime("%A, %B %d at %I:%M %p %Z")


@handler("reschedule-discovery-call")
def reschedule_discovery_call(c, body: dict):
    require(body, "appointmentId", "newScheduledAt", "reason")
    try:
        new_time = parse_when(body["newScheduledAt"])
    except ValueError:
        raise HandlerError(400, "newScheduledAt must be an ISO timestamp")
    if new_time <= datetime.now(timezone.utc):
        raise HandlerError(400, "New time must be in the future")

    call = db.row(c, "SELECT * FROM discovery_calls WHERE id=?", (body["appointmentId"],))
    if not call:
        raise HandlerError(404, "Appointment not found")
    duration = call["duration_minutes"] or 30
    if find_conflict(c, call["id"], new_time, duration):
        raise HandlerError(400, "This time slot conflicts with another appointment")

    reason = REASON_LABELS.get(body["reason"], body["reason"])
    note = f"[{_display(datetime.now(timezone.utc))}] Rescheduled: {reason}"
    if body.get("notes"):
        note += f" - {body['notes']}"
    c.execute(
        "UPDATE discovery_calls SET scheduled_at=?, rescheduled_at=?, rescheduled_from=?,"
        " reschedule_count=reschedule_count+1, meeting_notes=? WHERE id=?",
        (new_time.isoformat(), db.now(), call["scheduled_at"],
         f"{call['meeting_notes'] or ''}\n\n{note}".strip(), call["id"]),
    )

    calendar_updated = False
    settings = get_settings()
    if call["google_event_id"] and settings.has_google():
        try:
            service = google_calendar.get_calendar_service()
            google_calendar.move_event(service, call["google_event_id"], new_time,
                                       new_time + timedelta(minutes=duration), timezone="UTC")
            calendar_updated = True
        except (HttpError, GoogleAuthError, OSError) as e:
            log.warning("Calendar update for %s failed: %s", call["id"], e)

    lead = db.row(c, "SELECT * FROM leads WHERE id=?", (call["lead_id"],)) if call["lead_id"] else None
    notified = False
    if lead and lead["email"] and body.get("sendNotification", True):
        first = (lead["name"] or "there").split(" ")[0]
        when = _display(new_time)
        html = (f"<p>Hi {first},</p><p>Your discovery call with PeachHaus has been rescheduled to "
                f"<strong>{when}</strong>.</p><p>Reason: {reason}</p>"
                f"<p>Need a different time? Reply to this email and we'll find one.</p>")
        send_email(c, lead["email"], f"Your PeachHaus call has been rescheduled to {when}", html,
                   f"Hi {first}, your discovery call has been rescheduled to {when}. Reason: {reason}")
        notified = True

    db.log(c, call["id"], "discovery_call_rescheduled",
           f"{call['scheduled_at']} -> {new_time.isoformat()} ({reason})")
    return {"success": True, "appointmentId": call["id"], "newScheduledAt": new_time.isoformat(),
            "calendarUpdated": calendar_updated, "notificationSent": notified,
            "rescheduleCount": (call["reschedule_count"] or 0) + 1}

"""Voicemail delivery: recorded/AI audio or video messages sent as an SMS link."""
import base64
import binascii
import logging
import secrets
import time
from datetime import date

from peachhaus import db, storage
from peachhaus.config import get_settings
from peachhaus.errors import HandlerError, IntegrationError
from peachhaus.handlers.registry import handler, require
from peachhaus.integrations import elevenlabs, ghl, telnyx

log = logging.getLogger(__name__)

BUCKET = "message-attachments"
PLACEHOLDER_TEXTS = ("(Voice recording)", "(Video message)")
W9_VOICE_ID = "HXPJDxQ2YWg0wT4IBlof"
OFFICE_PHONE = "404-800-5932"

# (mime fragment, file extension)
_AUDIO_EXTENSIONS = [
    ("webm", "webm"),
    ("mp4", "m4a"),
    ("m4a", "m4a"),
    ("wav", "wav"),
    ("ogg", "ogg"),
    ("mpeg", "mp3"),
    ("mp3", "mp3"),
]


def normalize_mime(mime: str | None) -> tuple[str, str]:
    """Strip codec parameters and pick a file extension: ``(mime, ext)``."""
    mime = (mime or "audio/mpeg").split(";")[0].strip().lower()
    for fragment, ext in _AUDIO_EXTENSIONS:
        if fragment in mime:
            return mime, ext
    return mime, "mp3"


def player_url(token: str) -> str:
    return f"{get_settings().app_url.rstrip('/')}/vm/{token}"


def transcript_preview(text: str | None, limit: int = 100) -> str | None:
    if not text or not text.strip() or text in PLACEHOLDER_TEXTS:
        return None
    return text[:limit].strip() + "..." if len(text) > limit else text


def sms_body(sender_name: str | None, text: str | None, url: str, media_type: str = "audio") -> str:
    video = media_type == "video"
    emoji = "🎬" if video else "🎙️"
    verb = "sent you a video message" if video else "left you a voice message"
    sender = sender_name or "Your property manager"
    preview = transcript_preview(text)
    if preview:
        return (f"{emoji} {sender} from PeachHaus Property Management just {verb}:\n\n"
                f"\"{preview}\"\n\n▶️ {'Watch now' if video else 'Listen to full message'}:\n{url}")
    return (f"{emoji} {sender} from PeachHaus Property Management just {verb}.\n\n"
            f"Tap to {'watch' if video else 'listen'}:\n{url}")


def store_audio(data: bytes, ext: str, prefix: str = "voicemail") -> str:
    key = f"voicemails/{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(3)}.{ext}"
    return storage.upload(BUCKET, key, data, upsert=False)


def create_voicemail(c, **values) -> dict:
    vm = {"id": db.new_id(), "token": secrets.token_hex(16), "status": "pending", **values}
    db.insert(c, "voicemail_messages", vm)
    return vm


def _log_communication(c, vm: dict, text: str, extra: dict, **who):
    db.insert(c, "lead_communications", {
        **who,
        "communication_type": "voicemail",
        "direction": "outbound",
        "body": text or "(Voice recording)",
        "status": "sent",
        "metadata": {"voicemail_id": vm["id"], "audio_url": vm.get("audio_url"),
                     "player_url": player_url(vm["token"]), **extra},
    })


@handler("send-voicemail")
def send_voicemail(c, body: dict):
    try:
        require(body, "recipientPhone")
        media_type = body.get("mediaType") or "audio"
        if media_type == "audio" and not body.get("audioBase64"):
            raise HandlerError(400, "Audio data is required for audio messages")
        if media_type == "video" and not body.get("videoUrl"):
            raise HandlerError(400, "Video URL is required for video messages")
    except HandlerError as e:
        return {"success": False, "error": str(e)}, 400

    text = body.get("messageText") or ("(Video message)" if media_type == "video" else "(Voice recording)")
    audio_path = None
    if media_type == "audio":
        try:
            audio = base64.b64decode(body["audioBase64"], validate=True)
        except (binascii.Error, ValueError):
            return {"success": False, "error": "Audio data is not valid base64"}, 400
        _, ext = normalize_mime(body.get("audioMimeType"))
        audio_path = store_audio(audio, ext)

    vm = create_voicemail(
        c,
        lead_id=body.get("leadId"),
        owner_id=body.get("ownerId"),
        recipient_phone=body["recipientPhone"],
        recipient_name=body.get("recipientName") or "",
        sender_name=body.get("senderName") or "",
        message_text=text,
        audio_url=audio_path,
        video_url=body.get("videoUrl") if media_type == "video" else None,
        media_type=media_type,
        duration_seconds=body.get("durationSeconds"),
    )
    url = player_url(vm["token"])

    try:
        sent = ghl.send_sms(c, body["recipientPhone"], sms_body(body.get("senderName"), text, url, media_type),
                            name=body.get("recipientName") or "")
    except IntegrationError as e:
        log.warning("Voicemail %s SMS failed: %s", vm["id"], e)
        c.execute("UPDATE voicemail_messages SET status='failed', error_message=? WHERE id=?", (str(e), vm["id"]))
        return {"success": False, "error": str(e), "voicemailId": vm["id"]}, 400

    c.execute("UPDATE voicemail_messages SET status='sent', sent_at=?, sms_message_id=? WHERE id=?",
              (db.now(), sent["message_id"], vm["id"]))
    extra = {"provider": "gohighlevel", "ghl_message_id": sent["message_id"],
             "from_number": get_settings().ghl_from_number, "transcript": text}
    if body.get("leadId"):
        _log_communication(c, vm, text, extra, lead_id=body["leadId"])
    if body.get("ownerId"):
        _log_communication(c, vm, text, extra, owner_id=body["ownerId"])
    db.log(c, vm["id"], "voicemail_sent", f"{media_type} to {body['recipientPhone']}")

    return {"success": True, "voicemailId": vm["id"], "token": vm["token"],
            "playerUrl": url, "messageId": sent["message_id"]}


def w9_script(first_name: str, sender_name: str, tax_year: int) -> str:
    return (
        f"Hi {first_name}, this is {sender_name} from PeachHaus Property Management. "
        f"I'm calling because we still need your W-9 form for {tax_year} tax filing. "
        "This is required by the IRS for payments over $600, and the deadline is December 15th. "
        "I've sent you an email and text with a secure link to upload it, it only takes about 2 minutes. "
        f"If you have any questions at all, please call us back at {OFFICE_PHONE}. "
        "Thank you so much, and I hope you have a great day!"
    )


@handler("send-w9-voice-reminder")
def send_w9_voice_reminder(c, body: dict):
    require(body, "type", "id")
    kind = body["type"]
    if kind not in ("owner", "vendor"):
        raise HandlerError(400, "type must be 'owner' or 'vendor'")
    table = "property_owners" if kind == "owner" else "vendors"
    entity = db.row(c, f"SELECT id, name, phone FROM {table} WHERE id=?", (body["id"],))
    if not entity:
        raise HandlerError(404, f"{kind.title()} not found", success=False)
    if not entity["phone"]:
        raise HandlerError(400, "No phone number on file", success=False)

    tax_year = date.today().year
    first_name = (entity["name"] or "there").split(" ")[0]
    script = w9_script(first_name, body.get("senderName") or "Ingo", tax_year)
    audio = elevenlabs.text_to_speech(script, voice_id=body.get("voiceId") or W9_VOICE_ID)
    audio_path = store_audio(audio, "mp3", prefix="w9-reminder")

    vm = create_voicemail(
        c,
        owner_id=entity["id"] if kind == "owner" else None,
        recipient_phone=entity["phone"],
        recipient_name=entity["name"] or "",
        sender_name=body.get("senderName") or "Ingo",
        message_text=script,
        audio_url=audio_path,
    )
    app_url = get_settings().app_url.rstrip("/")
    text = (f"🎙️ Voice Message from PeachHaus\n\nHi {first_name}! We still need your W-9 form for "
            f"{tax_year} tax filing.\n\n📤 Upload here: {app_url}/{kind}/w9-upload\n\n"
            f"▶️ Listen: {player_url(vm['token'])}\n\n⏰ Deadline: Dec 15th\n"
            f"📞 Questions? Call (404) 800-5932")
    sent = telnyx.send_message(c, entity["phone"], text, media_urls=[storage.signed_url(*audio_path.split("/", 1))])

    now = db.now()
    c.execute(f"UPDATE {table} SET w9_voice_reminder_sent_at=? WHERE id=?", (now, entity["id"]))
    c.execute("UPDATE voicemail_messages SET status='sent', sent_at=?, sms_message_id=? WHERE id=?",
              (now, sent["id"], vm["id"]))
    db.insert(c, "lead_communications", {
        "owner_id": entity["id"] if kind == "owner" else None,
        "vendor_id": entity["id"] if kind == "vendor" else None,
        "communication_type": "voicemail",
        "direction": "outbound",
        "subject": f"W-9 Voice Reminder - {tax_year}",
        "body": script,
        "status": "sent",
        "metadata": {"type": "w9_voice_reminder", "phone": entity["phone"], "voicemail_id": vm["id"],
                     "mms": sent["mms"]},
    })
    db.log(c, entity["id"], "w9_voice_reminder_sent", entity["phone"])
    return {"success": True, "message": f"Voice reminder sent to {entity['phone']}", "voicemailId": vm["id"]}

"""Outbox for outgoing email and SMS.

Every message lands here. In sandbox mode that is all that happens; in live
mode the row records the provider's message id and delivery status.
"""

from peachhaus import db


def record(c, channel: str, to: str, body: str, subject: str = "",
           status: str = "sandbox", provider_id: str | None = None) -> int:
    return db.insert(c, "outbox", {
        "channel": channel,
        "to_addr": to,
        "subject": subject,
        "body": body,
        "status": status,
        "provider_id": provider_id,
        "sent_at": db.now() if status in ("sent", "sandbox") else None,
    })


def list_messages(c, channel: str | None = None, to: str | None = None) -> list[dict]:
    sql = "SELECT * FROM outbox WHERE 1=1"
    params: list = []
    if channel:
        sql += " AND channel=?"
        params.append(channel)
    if to:
        sql += " AND to_addr=?"
        params.append(to)
    return db.rows(c, sql + " ORDER BY id", params)

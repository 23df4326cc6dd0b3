"""Schema created on connect."""
from peachhaus import db


def _columns(c, table):
    return {r["name"] for r in c.execute(f"PRAGMA table_info({table})")}


def test_reminder_and_draft_columns_exist_on_a_fresh_database(c):
    assert "w9_reminder_sent_at" in _columns(c, "leads")
    assert "w9_voice_reminder_sent_at" in _columns(c, "property_owners")
    assert "w9_voice_reminder_sent_at" in _columns(c, "vendors")
    assert "is_draft" in _columns(c, "booking_documents")


def test_reconnecting_keeps_rows(c):
    db.insert(c, "booking_documents", {"id": "d1", "document_name": "Lease"})
    c.commit()
    with db.conn() as again:
        assert db.row(again, "SELECT is_draft FROM booking_documents WHERE id='d1'") == {"is_draft": 0}

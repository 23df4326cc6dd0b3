"""SQLite persistence standing in for the managed database."""
import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from uuid import uuid4

from .config import get_settings

SCHEMA = """\
CREATE TABLE IF NOT EXISTS leads(
  id TEXT PRIMARY KEY, name TEXT DEFAULT '', email TEXT DEFAULT '',
  phone TEXT DEFAULT '', property_address TEXT DEFAULT '',
  stage TEXT DEFAULT 'new_lead', ghl_contact_id TEXT,
  signwell_document_id TEXT, notes TEXT DEFAULT '',
  last_contacted_at TEXT, w9_reminder_sent_at TEXT,
  created_at TEXT DEFAULT(datetime('now','localtime'))
);
CREATE TABLE IF NOT EXISTS property_owners(
  id TEXT PRIMARY KEY, name TEXT DEFAULT '', email TEXT DEFAULT '',
  phone TEXT DEFAULT '', second_owner_name TEXT DEFAULT '',
  second_owner_email TEXT DEFAULT '', w9_received INTEGER DEFAULT 0,
  service_type TEXT DEFAULT 'full_service', w9_voice_reminder_sent_at TEXT,
  created_at TEXT DEFAULT(datetime('now','localtime'))
);
CREATE TABLE IF NOT EXISTS properties(
  id TEXT PRIMARY KEY, name TEXT DEFAULT '', address TEXT DEFAULT '',
  owner_id TEXT, visit_price REAL DEFAULT 0,
  created_at TEXT DEFAULT(datetime('now','localtime'))
);
CREATE TABLE IF NOT EXISTS vendors(
  id TEXT PRIMARY KEY, name TEXT DEFAULT '', company_name TEXT DEFAULT '',
  phone TEXT DEFAULT '', email TEXT DEFAULT '', ghl_contact_id TEXT,
  w9_voice_reminder_sent_at TEXT
);
CREATE TABLE IF NOT EXISTS work_orders(
  id TEXT PRIMARY KEY, property_id TEXT, vendor_id TEXT,
  title TEXT DEFAULT '', description TEXT DEFAULT '',
  status TEXT DEFAULT 'pending_approval', quoted_cost REAL,
  owner_approval_token TEXT, owner_approved INTEGER,
  owner_approved_at TEXT, owner_approval_notes TEXT,
  created_at TEXT DEFAULT(datetime('now','localtime'))
);
CREATE TABLE IF NOT EXISTS work_order_timeline(
  id INTEGER PRIMARY KEY AUTOINCREMENT, work_order_id TEXT,
  action TEXT, performed_by_type TEXT, performed_by_name TEXT,
  previous_status TEXT, new_status TEXT,
  created_at TEXT DEFAULT(datetime('now','localtime'))
);
CREATE TABLE IF NOT EXISTS onboarding_tasks(
  id TEXT PRIMARY KEY, project_id TEXT, property_id TEXT,
  title TEXT DEFAULT '', phase TEXT DEFAULT '', category TEXT DEFAULT '',
  status TEXT DEFAULT 'pending',
  due_date TEXT, assigned_to TEXT DEFAULT '', priority TEXT DEFAULT 'medium',
  created_at TEXT DEFAULT(datetime('now','localtime'))
);
CREATE TABLE IF NOT EXISTS lead_communications(
  id INTEGER PRIMARY KEY AUTOINCREMENT, lead_id TEXT, owner_id TEXT,
  vendor_id TEXT, communication_type TEXT, direction TEXT DEFAULT 'outbound',
  subject TEXT DEFAULT '',
  body TEXT DEFAULT '', status TEXT DEFAULT 'sent',
  external_id TEXT, call_duration INTEGER, metadata TEXT DEFAULT '{}',
  created_at TEXT DEFAULT(datetime('now','localtime'))
);
CREATE TABLE IF NOT EXISTS monthly_reconciliations(
  id TEXT PRIMARY KEY, property_id TEXT, reconciliation_month TEXT,
  status TEXT DEFAULT 'draft', total_revenue REAL DEFAULT 0,
  total_expenses REAL DEFAULT 0, visit_fees REAL DEFAULT 0,
  management_fee REAL DEFAULT 0, order_minimum_fee REAL DEFAULT 0,
  net_to_owner REAL DEFAULT 0, due_from_owner REAL DEFAULT 0,
  payout_to_owner REAL DEFAULT 0, notes TEXT DEFAULT '',
  reviewed_by TEXT, reviewed_at TEXT, approved_by TEXT, approved_at TEXT,
  updated_at TEXT,
  created_at TEXT DEFAULT(datetime('now','localtime'))
);
CREATE TABLE IF NOT EXISTS reconciliation_line_items(
  id TEXT PRIMARY KEY, reconciliation_id TEXT, item_type TEXT,
  item_id TEXT, description TEXT DEFAULT '', amount REAL DEFAULT 0,
  date TEXT, category TEXT DEFAULT '', source TEXT DEFAULT '',
  verified INTEGER DEFAULT 0, excluded INTEGER DEFAULT 0,
  exclusion_reason TEXT DEFAULT '', approved_by TEXT, approved_at TEXT
);
CREATE TABLE IF NOT EXISTS reconciliation_audit_log(
  id INTEGER PRIMARY KEY AUTOINCREMENT, reconciliation_id TEXT,
  action TEXT, user_id TEXT DEFAULT '', notes TEXT DEFAULT '',
  created_at TEXT DEFAULT(datetime('now','localtime'))
);
CREATE TABLE IF NOT EXISTS expenses(
  id TEXT PRIMARY KEY, property_id TEXT, amount REAL DEFAULT 0,
  date TEXT, purpose TEXT DEFAULT '', items_detail TEXT DEFAULT '',
  vendor TEXT DEFAULT '',
  category TEXT DEFAULT '', order_number TEXT, email_insight_id TEXT,
  created_at TEXT DEFAULT(datetime('now','localtime'))
);
CREATE TABLE IF NOT EXISTS email_insights(
  id TEXT PRIMARY KEY, sender_email TEXT DEFAULT '', subject TEXT DEFAULT '',
  summary TEXT DEFAULT '', expense_created INTEGER DEFAULT 0,
  priority TEXT DEFAULT 'medium', sentiment TEXT DEFAULT 'neutral',
  category TEXT DEFAULT '', action_required INTEGER DEFAULT 0,
  status TEXT DEFAULT 'new',
  created_at TEXT DEFAULT(datetime('now','localtime'))
);
CREATE TABLE IF NOT EXISTS saved_communications(
  id INTEGER PRIMARY KEY AUTOINCREMENT, title TEXT, body TEXT,
  category TEXT DEFAULT '', created_at TEXT DEFAULT(datetime('now','localtime'))
);
CREATE TABLE IF NOT EXISTS team_channels(
  id TEXT PRIMARY KEY, name TEXT, description TEXT DEFAULT ''
);
CREATE TABLE IF NOT EXISTS team_messages(
  id INTEGER PRIMARY KEY AUTOINCREMENT, channel_id TEXT, sender TEXT,
  content TEXT, created_at TEXT DEFAULT(datetime('now','localtime'))
);
CREATE TABLE IF NOT EXISTS scheduled_maintenance_tasks(
  id TEXT PRIMARY KEY, property_id TEXT, title TEXT, due_date TEXT,
  status TEXT DEFAULT 'scheduled'
);
CREATE TABLE IF NOT EXISTS insurance_certificates(
  id TEXT PRIMARY KEY, vendor_id TEXT, file_path TEXT, expires_on TEXT
);
CREATE TABLE IF NOT EXISTS voicemail_messages(
  id TEXT PRIMARY KEY, token TEXT UNIQUE, lead_id TEXT, owner_id TEXT,
  recipient_phone TEXT, recipient_name TEXT DEFAULT '',
  message_text TEXT DEFAULT '', audio_url TEXT, video_url TEXT,
  media_type TEXT DEFAULT 'audio', duration_seconds INTEGER,
  sender_name TEXT DEFAULT '', status TEXT DEFAULT 'pending',
  sms_message_id TEXT, sent_at TEXT, error_message TEXT,
  created_at TEXT DEFAULT(datetime('now','localtime'))
);
CREATE TABLE IF NOT EXISTS document_templates(
  id TEXT PRIMARY KEY, name TEXT, file_path TEXT,
  field_mappings TEXT DEFAULT '[]', signwell_template_id TEXT,
  created_at TEXT DEFAULT(datetime('now','localtime'))
);
CREATE TABLE IF NOT EXISTS booking_documents(
  id TEXT PRIMARY KEY, template_id TEXT, document_name TEXT,
  recipient_name TEXT DEFAULT '', recipient_email TEXT DEFAULT '',
  property_id TEXT, owner_id TEXT, status TEXT DEFAULT 'draft',
  field_values TEXT DEFAULT '{}', signed_pdf_path TEXT,
  signwell_document_id TEXT, embedded_edit_url TEXT,
  sent_at TEXT, completed_at TEXT, is_draft INTEGER DEFAULT 0,
  created_at TEXT DEFAULT(datetime('now','localtime'))
);
CREATE TABLE IF NOT EXISTS signing_tokens(
  id INTEGER PRIMARY KEY AUTOINCREMENT, document_id TEXT,
  signer_name TEXT, signer_email TEXT, signer_type TEXT,
  signing_order INTEGER, token TEXT UNIQUE, expires_at TEXT,
  signed_at TEXT, signature_data TEXT, ip_address TEXT, user_agent TEXT,
  field_values TEXT DEFAULT '{}'
);
CREATE TABLE IF NOT EXISTS document_audit_log(
  id INTEGER PRIMARY KEY AUTOINCREMENT, document_id TEXT, action TEXT,
  actor_type TEXT, actor_email TEXT DEFAULT '', ip_address TEXT,
  metadata TEXT DEFAULT '{}',
  created_at TEXT DEFAULT(datetime('now','localtime'))
);
CREATE TABLE IF NOT EXISTS property_marketing_stats(
  id INTEGER PRIMARY KEY AUTOINCREMENT, property_id TEXT,
  report_month TEXT, stats TEXT DEFAULT '{}', synced_at TEXT,
  UNIQUE(property_id, report_month)
);
CREATE TABLE IF NOT EXISTS partner_sync_log(
  id INTEGER PRIMARY KEY AUTOINCREMENT, sync_type TEXT, source_system TEXT,
  properties_synced INTEGER DEFAULT 0, properties_failed INTEGER DEFAULT 0,
  sync_status TEXT, error_details TEXT DEFAULT '{}',
  created_at TEXT DEFAULT(datetime('now','localtime'))
);
CREATE TABLE IF NOT EXISTS discovery_calls(
  id TEXT PRIMARY KEY, lead_id TEXT, scheduled_at TEXT,
  duration_minutes INTEGER DEFAULT 30, google_event_id TEXT,
  meeting_type TEXT DEFAULT 'phone', status TEXT DEFAULT 'scheduled',
  reschedule_count INTEGER DEFAULT 0, rescheduled_at TEXT,
  rescheduled_from TEXT, meeting_notes TEXT DEFAULT '',
  created_at TEXT DEFAULT(datetime('now','localtime'))
);
CREATE TABLE IF NOT EXISTS outbox(
  id INTEGER PRIMARY KEY AUTOINCREMENT, channel TEXT DEFAULT 'email',
  to_addr TEXT, subject TEXT DEFAULT '', body TEXT DEFAULT '',
  status TEXT DEFAULT 'queued', provider_id TEXT,
  created_at TEXT DEFAULT(datetime('now','localtime')), sent_at TEXT
);
CREATE TABLE IF NOT EXISTS audit(
  id INTEGER PRIMARY KEY AUTOINCREMENT, entity TEXT,
  action TEXT, detail TEXT,
  ts TEXT DEFAULT(datetime('now','localtime'))
);"""


@contextmanager
def conn(path: Path | None = None):
    path = path or get_settings().db_file
    c = sqlite3.connect(str(path))
    c.row_factory = sqlite3.Row
    c.executescript(SCHEMA)
    try:
        yield c
        c.commit()
    finally:
        c.close()


def now() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def new_id() -> str:
    return str(uuid4())


def row(c, sql: str, params=()) -> dict | None:
    r = c.execute(sql, params).fetchone()
    return dict(r) if r else None


def rows(c, sql: str, params=()) -> list[dict]:
    return [dict(r) for r in c.execute(sql, params).fetchall()]


def insert(c, table: str, values: dict) -> int:
    """Insert a row; dict/list values are stored as JSON text."""
    cols = list(values)
    params = [json.dumps(v) if isinstance(v, (dict, list)) else v for v in values.values()]
    cur = c.execute(
        f"INSERT INTO {table}({','.join(cols)}) VALUES({','.join('?' * len(cols))})",
        params,
    )
    return cur.lastrowid


def log(c, entity: str, action: str, detail: str = ""):
    c.execute("INSERT INTO audit(entity,action,detail) VALUES(?,?,?)", (entity, action, detail))

"""Shared fixtures: an isolated database and storage root per test, sandboxed messaging."""
import base64

import fitz
import pytest

from peachhaus import db

HUB_KEY = "hub-test-key"


@pytest.fixture(autouse=True)
def env(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("PEACHHAUS_DB_PATH", str(tmp_path / "peachhaus.db"))
    monkeypatch.setenv("PEACHHAUS_STORAGE_DIR", str(tmp_path / "storage"))
    monkeypatch.setenv("PEACHHAUS_STORAGE_SECRET", "test-secret")
    monkeypatch.setenv("PEACHHAUS_EMAIL_SANDBOX", "true")
    monkeypatch.setenv("PEACHHAUS_SMS_SANDBOX", "true")
    monkeypatch.setenv("PEACHHAUS_MARKETING_HUB_API_KEY", HUB_KEY)
    monkeypatch.setenv("PEACHHAUS_AI_GATEWAY_KEY", "")
    monkeypatch.setenv("PEACHHAUS_GOOGLE_TOKEN_FILE", str(tmp_path / "token.json"))
    monkeypatch.setenv("PEACHHAUS_GOOGLE_CREDENTIALS_FILE", str(tmp_path / "credentials.json"))
    monkeypatch.setenv("PEACHHAUS_APP_URL", "https://app.test")
    monkeypatch.setenv("PEACHHAUS_FUNCTIONS_URL", "http://localhost:5055/functions")
    return tmp_path


@pytest.fixture
def c():
    """Open connection for seeding and assertions; commit before calling the HTTP app."""
    with db.conn() as conn:
        yield conn


@pytest.fixture
def client():
    from peachhaus.handlers.app import app

    app.config["TESTING"] = True
    with app.test_client() as tc:
        yield tc


def make_pdf(lines=(), widgets=(), pages=1) -> bytes:
    """Build a letter-size PDF.

    ``lines`` are written top-down on page 1; ``widgets`` are
    ``(name, fitz widget type, rect)`` or ``(name, type, rect, flags)`` tuples.
    """
    doc = fitz.open()
    for _ in range(pages):
        doc.new_page(width=612, height=792)
    page = doc[0]
    y = 72
    for text in lines:
        page.insert_text((72, y), text, fontsize=11, fontname="helv")
        y += 28
    for entry in widgets:
        name, ftype, rect = entry[:3]
        w = fitz.Widget()
        w.field_name = name
        w.field_type = ftype
        w.rect = fitz.Rect(rect)
        if len(entry) > 3:
            w.field_flags = entry[3]
        page.add_widget(w)
    data = doc.tobytes()
    doc.close()
    return data


def signature_data_url() -> str:
    """A small PNG as the data URL a signature pad produces."""
    pix = fitz.Pixmap(fitz.csRGB, fitz.IRect(0, 0, 8, 4), False)
    pix.clear_with(40)
    return "data:image/png;base64," + base64.b64encode(pix.tobytes("png")).decode()

"""GoHighLevel call import against a mocked API."""
import httpx
import pytest

from peachhaus import db
from peachhaus.handlers.calls import call_body, sync_calls
from peachhaus.integrations import ghl

MESSAGES = {
    "messages": {
        "messages": [
            {"id": "m1", "type": "TYPE_CALL", "direction": "inbound", "duration": 125,
             "dateAdded": "2026-09-01T10:00:00Z"},
            {"id": "m2", "type": "TYPE_SMS", "body": "see you tomorrow"},
            {"id": "m3", "type": "TYPE_CALL", "direction": "outbound", "duration": 30,
             "body": "Discussed onboarding timeline and the cleaning schedule for October."},
        ]
    }
}


def ghl_api(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/conversations/search":
        return httpx.Response(200, json={"conversations": [{"id": "conv1", "contactId": "ct1"}]})
    if path == "/contacts/ct1":
        return httpx.Response(200, json={"contact": {"name": "Lee Lead", "phone": "+14045550101",
                                                     "email": "Lee@Example.com"}})
    if path == "/conversations/conv1/messages":
        return httpx.Response(200, json=MESSAGES)
    if path.endswith("/m1/transcription"):
        return httpx.Response(404, json={"message": "not found"})
    if path.endswith("/m3/transcription"):
        return httpx.Response(200, json=[{"sentence": "Hi Lee."}, {"sentence": "Thanks for calling."}])
    return httpx.Response(500, text=f"unexpected {path}")


@pytest.fixture
def ghl_client():
    http = httpx.Client(base_url="https://ghl.test", transport=httpx.MockTransport(ghl_api))
    client = ghl.GHLClient("key", "loc1", "https://ghl.test", client=http)
    yield client
    client.close()


def test_call_messages_are_detected():
    assert ghl.is_call_message({"type": "TYPE_CALL"})
    assert ghl.is_call_message({"messageType": "10"})
    assert ghl.is_call_message({"body": "Call Duration: 2m"})
    assert not ghl.is_call_message({"type": "TYPE_SMS", "body": "hello"})


def test_sync_matches_lead_and_skips_known_calls(c, ghl_client):
    db.insert(c, "leads", {"id": "l1", "name": "Lee Lead", "phone": "404-555-0101"})

    assert sync_calls(c, ghl_client) == {"inserted": 2, "skipped": 0, "errors": 0}
    rows = {r["external_id"]: r for r in db.rows(c, "SELECT * FROM lead_communications")}
    assert set(rows) == {"m1", "m3"}
    assert rows["m1"]["lead_id"] == "l1"
    assert rows["m1"]["body"] == "Phone call from Lee Lead. Duration: 2 min."
    assert rows["m1"]["call_duration"] == 125
    assert rows["m3"]["direction"] == "outbound"
    assert rows["m3"]["body"] == "Hi Lee. Thanks for calling."

    assert sync_calls(c, ghl_client) == {"inserted": 0, "skipped": 2, "errors": 0}


def test_call_body_prefers_long_transcripts():
    text = "We talked about listing the property in November."
    assert call_body(text, "inbound", "Lee", 60) == text
    assert call_body("ok", "outbound", "Lee", 0) == "Phone call to Lee. Duration: Unknown."


def test_sync_handler_requires_credentials(client):
    resp = client.post("/functions/ghl-sync-calls", json={})
    assert resp.status_code == 503
    assert "gohighlevel" in resp.get_json()["error"]

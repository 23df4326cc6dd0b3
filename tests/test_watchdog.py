"""Gmail token watchdog."""
from googleapiclient.errors import HttpError
from httplib2 import Response

from peachhaus.integrations.outbox import list_messages
from peachhaus.watchdog import check_gmail_health


def _http_error(status=401):
    return HttpError(Response({"status": status}), b'{"error": {"message": "invalid_grant"}}')


def test_not_connected_without_token(c):
    result = check_gmail_health(c, fetch_address=lambda: "never@called")
    assert result["status"] == "not_connected"


def test_healthy_after_a_retry(c, env):
    (env / "token.json").write_text("{}")
    attempts = iter([_http_error(), "ops@peachhausgroup.com"])
    sleeps = []

    def fetch_address():
        outcome = next(attempts)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    result = check_gmail_health(c, fetch_address=fetch_address, sleep=sleeps.append)
    assert result == {"status": "healthy", "email": "ops@peachhausgroup.com", "attempts": 2}
    assert sleeps == [1.0]
    assert list_messages(c, channel="email") == []


def test_expired_alerts_admins(c, env, monkeypatch):
    monkeypatch.setenv("PEACHHAUS_ADMIN_ALERT_EMAILS", "anja@peachhausgroup.com, ingo@peachhausgroup.com")
    (env / "token.json").write_text("{}")
    sleeps = []

    def fetch_address():
        raise _http_error()

    result = check_gmail_health(c, fetch_address=fetch_address, sleep=sleeps.append)
    assert result["status"] == "expired"
    assert result["attempts"] == 3
    assert result["alerts_sent"] == 2
    assert sleeps == [1.0, 2.0]
    alerts = list_messages(c, channel="email")
    assert {m["to_addr"] for m in alerts} == {"anja@peachhausgroup.com", "ingo@peachhausgroup.com"}
    assert alerts[0]["subject"] == "Action Required: Gmail Connection Expired - PeachHaus"

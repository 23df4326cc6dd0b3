"""Daily plan generation with and without the AI gateway."""
from datetime import datetime

import pytest

from peachhaus import db
from peachhaus.errors import IntegrationError
from peachhaus.handlers import planning


@pytest.fixture
def workload(c):
    db.insert(c, "email_insights", {"id": "i1", "subject": "Leak under sink", "summary": "Guest reports a leak",
                                    "priority": "high", "sentiment": "negative", "action_required": 1})
    db.insert(c, "email_insights", {"id": "i2", "subject": "Great stay", "summary": "Owner happy",
                                    "sentiment": "positive", "action_required": 1})
    db.insert(c, "onboarding_tasks", {"id": "t1", "title": "Upload W-9", "category": "Admin",
                                      "due_date": "2026-01-01"})
    db.insert(c, "discovery_calls", {"id": "dc1", "scheduled_at": "2026-10-19T15:00:00+00:00"})
    return datetime(2026, 10, 19, 9, 30)


def test_greeting():
    assert planning.greeting_for(8) == "Good morning"
    assert planning.greeting_for(13) == "Good afternoon"
    assert planning.greeting_for(19) == "Good evening"


def test_fallback_plan_without_gateway(c, workload):
    plan, source = planning.generate_plan(c, workload)
    assert source == "fallback"
    assert plan["greeting"] == "Good morning! Here's your focused plan for today."
    assert [p["source"] for p in plan["topPriorities"]] == ["call", "email"]
    assert plan["topPriorities"][1]["reason"] == "Guest reports a leak"
    assert plan["quickWins"][0]["action"] == "Clear 1 overdue tasks"
    assert plan["proactiveSuggestions"][0].startswith("Positive sentiment")


def test_ai_plan_is_parsed_from_fenced_json(c, workload, monkeypatch):
    monkeypatch.setenv("PEACHHAUS_AI_GATEWAY_KEY", "k")
    seen = {}

    def fake_chat(messages, model=None, temperature=None, client=None):
        seen["prompt"] = messages[1]["content"]
        return '```json\n{"greeting": "Hi", "topPriorities": [], "quickWins": [], "proactiveSuggestions": []}\n```'

    monkeypatch.setattr(planning.ai_gateway, "chat_completion", fake_chat)
    plan, source = planning.generate_plan(c, workload)
    assert source == "ai"
    assert plan["greeting"] == "Hi"
    assert "Overdue tasks: 1 total (Admin: 1)" in seen["prompt"]
    assert "[HIGH] Leak under sink" in seen["prompt"]


@pytest.mark.parametrize("failure", [IntegrationError("ai_gateway", "rate limited", status=429), None])
def test_ai_failures_fall_back(c, workload, monkeypatch, failure):
    monkeypatch.setenv("PEACHHAUS_AI_GATEWAY_KEY", "k")

    def fake_chat(messages, model=None, temperature=None, client=None):
        if failure:
            raise failure
        return "not json at all"

    monkeypatch.setattr(planning.ai_gateway, "chat_completion", fake_chat)
    _, source = planning.generate_plan(c, workload)
    assert source == "fallback"


def test_plan_handler(client):
    data = client.post("/functions/generate-ninja-plan", json={}).get_json()
    assert data["success"] is True
    assert data["source"] == "fallback"
    assert "greeting" in data["plan"]

"""Daily focus plan ("ninja plan") built from open work and an AI summary."""
import json
import logging
from collections import Counter
from datetime import date, datetime

from peachhaus import db
from peachhaus.config import get_settings
from peachhaus.errors import IntegrationError
from peachhaus.handlers.registry import handler
from peachhaus.integrations import ai_gateway

log = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are a property management efficiency expert. Return only valid JSON."


def greeting_for(hour: int) -> str:
    if hour >= 17:
        return "Good evening"
    if hour >= 12:
        return "Good afternoon"
    return "Good morning"


def gather_context(c, today: date | None = None) -> dict:
    today_s = (today or date.today()).isoformat()
    return {
        "emails": db.rows(c, "SELECT id, subject, summary, sender_email, priority, sentiment, category"
                             " FROM email_insights WHERE action_required=1 AND status='new'"
                             " ORDER BY created_at DESC LIMIT 15"),
        "overdue_tasks": db.rows(c, "SELECT id, title, category, due_date, property_id FROM onboarding_tasks"
                                    " WHERE status='pending' AND due_date < ? ORDER BY due_date LIMIT 20",
                                 (today_s,)),
        "discovery_calls": db.rows(c, "SELECT id, scheduled_at, lead_id, meeting_type FROM discovery_calls"
                                      " WHERE status='scheduled' AND substr(scheduled_at, 1, 10)=?",
                                   (today_s,)),
    }


def build_prompt(ctx: dict, greeting: str) -> str:
    emails = "\n\n".join(
        f"{i}. [{(e['priority'] or 'medium').upper()}] {e['subject']}\n"
        f"   Sentiment: {e['sentiment'] or 'neutral'}\n   Summary: {e['summary']}"
        for i, e in enumerate(ctx["emails"], 1)
    )
    by_category = Counter(t["category"] or "Other" for t in ctx["overdue_tasks"])
    tasks = ", ".join(f"{cat}: {n}" for cat, n in by_category.items())
    return f"""You are a property management efficiency expert and coach. Based on the following data, create a prioritized daily action plan for a property manager.

## Today's Context:
- Time: {greeting.replace("Good ", "")}
- Overdue tasks: {len(ctx["overdue_tasks"])} total ({tasks or "none"})
- Emails requiring action: {len(ctx["emails"])}
- Scheduled discovery calls: {len(ctx["discovery_calls"])}

## Email Insights Requiring Action:
{emails or "No urgent emails"}

## Overdue Tasks by Category:
{tasks or "No overdue tasks"}

## Guidelines:
1. Prioritize revenue-impacting items (owner calls, booking issues)
2. Address urgent maintenance before it escalates
3. Suggest proactive owner communication based on email sentiment
4. Include quick wins that can be completed in 5 minutes
5. Be specific and actionable - no vague suggestions

Return ONLY a valid JSON object (no markdown, no code blocks) with keys "greeting",
"topPriorities" (items with priority, action, reason, source), "quickWins" (same shape)
and "proactiveSuggestions" (strings).

Limit to 3 topPriorities, 2 quickWins, and 2 proactiveSuggestions."""


def parse_plan(content: str) -> dict:
    """Decode the model's JSON, tolerating a fenced code block around it."""
    if "```json" in content:
        content = content.split("```json", 1)[1].split("```", 1)[0]
    elif "```" in content:
        content = content.split("```", 1)[1].split("```", 1)[0]
    plan = json.loads(content.strip())
    if not isinstance(plan, dict):
        raise ValueError("plan is not a JSON object")
    return plan


def fallback_plan(ctx: dict, greeting: str) -> dict:
    top, quick, suggestions = [], [], []
    calls = len(ctx["discovery_calls"])
    if calls:
        top.append({"priority": "high", "action": f"{calls} discovery call{'s' if calls > 1 else ''} "
                    "scheduled - review lead profiles", "reason": "New business opportunities", "source": "call"})
    urgent = [e for e in ctx["emails"] if e["priority"] == "high" or e["sentiment"] == "negative"]
    if urgent:
        top.append({"priority": "critical",
                    "action": f"Address {len(urgent)} urgent email{'s' if len(urgent) > 1 else ''} requiring attention",
                    "reason": urgent[0]["summary"] or "Time-sensitive communication", "source": "email"})
    if ctx["overdue_tasks"]:
        quick.append({"priority": "medium", "action": f"Clear {min(len(ctx['overdue_tasks']), 3)} overdue tasks",
                      "reason": "Reduce backlog and prevent escalation", "source": "task"})
    if any(e["sentiment"] == "positive" for e in ctx["emails"]):
        suggestions.append("Positive sentiment detected in recent emails - good time to ask for referrals")
    suggestions.append("Review this week's owner communications for follow-up opportunities")
    return {"greeting": f"{greeting}! Here's your focused plan for today.",
            "topPriorities": top[:3], "quickWins": quick[:2], "proactiveSuggestions": suggestions[:2]}


def generate_plan(c, now: datetime | None = None) -> tuple[dict, str]:
    """Return ``(plan, source)`` where source is ``ai`` or ``fallback``."""
    now = now or datetime.now()
    greeting = greeting_for(now.hour)
    ctx = gather_context(c, now.date())
    if not get_settings().has_ai_gateway():
        return fallback_plan(ctx, greeting), "fallback"
    try:
        content = ai_gateway.chat_completion(
            [{"role": "system", "content": SYSTEM_PROMPT}, {"role": "user", "content": build_prompt(ctx, greeting)}],
            temperature=0.7,
        )
        return parse_plan(content), "ai"
    except (IntegrationError, ValueError) as e:
        log.warning("AI plan failed, using fallback: %s", e)
        return fallback_plan(ctx, greeting), "fallback"


@handler("generate-ninja-plan")
def generate_ninja_plan(c, body: dict):
    plan, source = generate_plan(c)
    return {"success": True, "plan": plan, "source": source}

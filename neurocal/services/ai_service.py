"""
AI service: natural-language event creation, scheduling help, insights and
meeting preparation.

The LLM is optional. Event parsing asks Gemini first when GOOGLE_API_KEY is
set and falls back to the heuristic parser on any failure; the result
records which path produced it ("llm" or "heuristic"). Meeting preparation
has no heuristic equivalent and raises LLMNotConfigured without a key.

Event creation, insights and meeting preparation are logged to
ai_interactions; /parse is read-only. Logging failures never fail the
request.
"""

import logging
import re
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple, cast

from supabase import Client

from neurocal.agents.calendar import run_event_parse_agent, run_meeting_prep_agent
from neurocal.config import settings
from neurocal.services import event_service, user_service
from neurocal.services.errors import LLMNotConfigured, NotFoundError
from neurocal.services.event_parser import (
    DEFAULT_PRIORITY,
    MAX_DURATION_MINUTES,
    event_window,
    parse_natural_language,
)
from neurocal.services.scheduling import generate_insights, suggest_optimal_times
from neurocal.utils.constants import EVENT_TYPES, INTERACTION_TYPES
from neurocal.utils.dates import resolve_timezone, utc_now

logger = logging.getLogger(__name__)

HEURISTIC_MODEL = "heuristic"
RULES_MODEL = "rules"

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_RECURRING_PATTERNS = ("daily", "weekly", "monthly", "yearly")
_PRIORITIES = ("high", "medium", "low")


def normalize_llm_event(payload: Dict[str, Any], fallback: Dict[str, Any]) -> Dict[str, Any]:
    """
    Coerce an LLM reply into the parser's output shape.

    Fields that are missing or malformed take the heuristic value, so the
    result is always a complete, valid event guess.
    """
    result = dict(fallback)

    title = payload.get("title")
    if isinstance(title, str) and title.strip():
        result["title"] = title.strip()[:200]

    raw_date = payload.get("date")
    if isinstance(raw_date, str):
        try:
            result["date"] = date.fromisoformat(raw_date[:10])
        except ValueError:
            pass

    raw_time = payload.get("time")
    if isinstance(raw_time, str) and _TIME_RE.match(raw_time.strip()):
        result["time"] = raw_time.strip()

    try:
        duration = int(payload.get("duration"))  # type: ignore[arg-type]
        if 0 < duration <= MAX_DURATION_MINUTES:
            result["duration"] = duration
    except (TypeError, ValueError, OverflowError):
        pass

    if payload.get("type") in EVENT_TYPES:
        result["type"] = payload["type"]

    location = payload.get("location")
    result["location"] = location.strip() if isinstance(location, str) and location.strip() else fallback.get("location")

    attendees = payload.get("attendees")
    if isinstance(attendees, list):
        result["attendees"] = [str(a).strip() for a in attendees if str(a).strip()]

    if payload.get("priority") in _PRIORITIES:
        result["priority"] = payload["priority"]

    try:
        result["confidence"] = min(1.0, max(0.0, float(payload.get("confidence"))))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        pass

    recurring = payload.get("recurring")
    if isinstance(recurring, dict) and recurring.get("pattern") in _RECURRING_PATTERNS:
        try:
            interval = max(1, int(recurring.get("interval") or 1))
        except (TypeError, ValueError):
            interval = 1
        result["recurring"] = {"pattern": recurring["pattern"], "interval": interval}
    elif recurring is None and "recurring" in payload:
        result["recurring"] = None

    return result


def parse_event_text(
    text: str,
    timezone_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Tuple[Dict[str, Any], str, Optional[int]]:
    """
    Parse free text into an event guess.

    Returns:
        Tuple of (parsed event, source "llm" | "heuristic", tokens used or None)
    """
    tz = resolve_timezone(timezone_name)
    now = (now or utc_now()).astimezone(tz)

    heuristic = parse_natural_language(text, now=now)

    if not settings.llm_enabled():
        return heuristic, "heuristic", None

    try:
        payload, tokens = run_event_parse_agent(text, now, str(tz))
    except Exception as e:
        logger.warning(f"LLM event parse failed, using heuristic parser: {e}")
        return heuristic, "heuristic", None

    return normalize_llm_event(payload, heuristic), "llm", tokens


def _serializable(parsed: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v.isoformat() if isinstance(v, date) else v for k, v in parsed.items()}


async def log_interaction(
    supabase_client: Client,
    user_id: str,
    interaction_type: str,
    input_text: str,
    ai_response: Dict[str, Any],
    model_used: str,
    tokens_used: Optional[int] = None,
    confidence_score: Optional[float] = None,
) -> None:
    """Record an AI call in ai_interactions. Failures are logged, not raised."""
    try:
        (
            supabase_client.table("ai_interactions")
            .insert({
                "user_id": user_id,
                "interaction_type": interaction_type,
                "input_text": input_text,
                "ai_response": ai_response,
                "model_used": model_used,
                "tokens_used": tokens_used,
                "confidence_score": confidence_score,
            })
            .execute()
        )
    except Exception as e:
        logger.error(f"Failed to log AI interaction for user {user_id}: {e}", exc_info=True)


def recurrence_rule(recurring: Optional[Dict[str, Any]]) -> Optional[str]:
    """RFC 5545 RRULE for a {pattern, interval} recurrence."""
    if not recurring:
        return None
    return f"FREQ={str(recurring['pattern']).upper()};INTERVAL={int(recurring.get('interval') or 1)}"


# =============================================================================
# OPERATIONS
# =============================================================================

async def create_event_from_text(
    supabase_client: Client,
    user_id: str,
    text: str,
    timezone_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Tuple[Dict[str, Any], Dict[str, Any], str]:
    """
    Parse text, persist the event and log the interaction.

    Only attendees that look like e-mail addresses are stored as
    event_attendees rows.

    Returns:
        Tuple of (created event, parsed guess, source)
    """
    parsed, source, tokens = parse_event_text(text, timezone_name, now)
    start, end = event_window(parsed, resolve_timezone(timezone_name))

    event_data = {
        "title": parsed["title"],
        "start_time": start,
        "end_time": end,
        "all_day": False,
        "location": parsed.get("location"),
        "type": parsed["type"],
        "priority": parsed.get("priority") or DEFAULT_PRIORITY,
        "recurrence_rule": recurrence_rule(parsed.get("recurring")),
        "is_ai_suggested": True,
        "ai_confidence": round(float(parsed["confidence"]), 2),
    }
    attendees = [
        {"email": a.lower()} for a in parsed.get("attendees") or [] if _EMAIL_RE.match(a)
    ]

    event = await event_service.create_event(supabase_client, user_id, event_data, attendees)

    await log_interaction(
        supabase_client,
        user_id,
        INTERACTION_TYPES['EVENT_CREATION'],
        text,
        _serializable(parsed),
        settings.LLM_MODEL if source == "llm" else HEURISTIC_MODEL,
        tokens,
        float(parsed["confidence"]),
    )

    logger.info(f"AI event {event['id']} created for user {user_id} (source={source})")
    return event, parsed, source


async def get_schedule_suggestions(
    supabase_client: Client,
    user_id: str,
    event_type: str,
    duration: int,
    preferred_date: date,
    preferred_time: Optional[str] = None,
    timezone_name: Optional[str] = None,
) -> Dict[str, Any]:
    """Suggest start times on preferred_date against the user's existing events."""
    tz = resolve_timezone(timezone_name)
    day_start = datetime(preferred_date.year, preferred_date.month, preferred_date.day, tzinfo=tz)
    existing = await event_service.get_events_in_range(
        supabase_client, user_id, day_start, day_start + timedelta(days=1)
    )
    logger.debug(f"Scheduling against {len(existing)} events for user {user_id}")

    return suggest_optimal_times(
        event_type,
        duration,
        preferred_date,
        existing,
        tz,
        preferred_time=preferred_time,
    )


async def get_calendar_insights(
    supabase_client: Client,
    user_id: str,
    days: int = 30,
    now: Optional[datetime] = None,
    timezone_name: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Insights over the last `days` days; timezone defaults to the user's stored one."""
    now = now or utc_now()
    if timezone_name is None:
        timezone_name = await user_service.get_user_timezone(supabase_client, user_id)
    events = await event_service.get_events_in_range(
        supabase_client, user_id, now - timedelta(days=days), now
    )
    insights = generate_insights(events, days, resolve_timezone(timezone_name))

    await log_interaction(
        supabase_client,
        user_id,
        INTERACTION_TYPES['CALENDAR_INSIGHTS'],
        f"insights:{days}d",
        {"insights": [i["title"] for i in insights]},
        RULES_MODEL,
        confidence_score=insights[0]["confidence"] if insights else None,
    )
    return insights


async def prepare_meeting(
    supabase_client: Client,
    user_id: str,
    event_id: str,
    notes: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Draft preparation notes for an event and store them as an AI suggestion.

    Raises:
        LLMNotConfigured: No LLM API key
        NotFoundError: Event missing or owned by another user
    """
    if not settings.llm_enabled():
        raise LLMNotConfigured("AI meeting preparation is not configured")

    event = await event_service.get_event_by_id(supabase_client, user_id, event_id)
    if not event:
        raise NotFoundError("Event not found")

    attendees = [
        a.get("name") or a.get("email")
        for a in cast(List[Dict[str, Any]], event.get("attendees") or [])
        if a.get("name") or a.get("email")
    ]

    payload, tokens = run_meeting_prep_agent(event, attendees, notes)

    try:
        prep_minutes: Optional[int] = int(payload.get("estimated_prep_minutes"))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        prep_minutes = None

    preparation = {
        "summary": str(payload.get("summary") or ""),
        "agenda": [str(x) for x in payload.get("agenda") or []],
        "questions": [str(x) for x in payload.get("questions") or []],
        "preparation_tasks": [str(x) for x in payload.get("preparation_tasks") or []],
        "estimated_prep_minutes": prep_minutes,
    }

    await log_interaction(
        supabase_client,
        user_id,
        INTERACTION_TYPES['MEETING_PREPARATION'],
        f"meeting-prep:{event_id}",
        preparation,
        settings.LLM_MODEL,
        tokens,
    )

    if preparation["summary"]:
        (
            supabase_client.table("ai_suggestions")
            .insert({
                "user_id": user_id,
                "event_id": event_id,
                "suggestion_type": "meeting_prep",
                "content": preparation["summary"],
                "is_applied": False,
            })
            .execute()
        )

    logger.info(f"Meeting preparation generated for event {event_id}")
    return preparation

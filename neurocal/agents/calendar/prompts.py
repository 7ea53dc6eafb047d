"""
Calendar Assistant Prompt Templates

Contains the system prompts and user prompt builders for the two single-shot
Gemini calls NeuroCal makes:

- Event parsing: free text -> structured event JSON
- Meeting preparation: one stored event -> preparation notes JSON

Architecture:
- Pattern: Single-shot LLM call with JSON response (no tools)
- Model: settings.LLM_MODEL (Gemini 2.5 Flash by default)
- Temperature: 0.0 for parsing, 0.4 for preparation notes
- Output: JSON (response_mime_type="application/json")

If a call fails or returns invalid JSON, event parsing falls back to the
heuristic parser in services/event_parser.py.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

# =============================================================================
# EVENT PARSING
# =============================================================================

EVENT_PARSE_SYSTEM_PROMPT = """You are the scheduling assistant of NeuroCal, a calendar and productivity app.

<role>
You turn a short natural-language request into ONE structured calendar event.
You never invent attendees, places or times the user did not mention.
</role>

<output_format>
Return ONLY a JSON object with exactly these keys:
{
  "title": string (2-6 words, no date or time words),
  "date": "YYYY-MM-DD",
  "time": "HH:MM" (24h),
  "duration": integer minutes,
  "type": "meeting" | "focus" | "break" | "personal" | "travel",
  "location": string or null,
  "attendees": array of strings (e-mail addresses or names),
  "priority": "high" | "medium" | "low",
  "confidence": number between 0 and 1,
  "recurring": {"pattern": "daily" | "weekly" | "monthly" | "yearly", "interval": integer} or null
}
</output_format>

<defaults>
- No date mentioned: use the reference date
- No time mentioned: 09:00
- No duration mentioned: 60
- No type cue: "meeting"
- No priority cue: "low"
</defaults>"""


def build_event_parse_user_prompt(text: str, now: datetime, timezone_name: str) -> str:
    """
    Build the user prompt for event parsing.

    Args:
        text: The user's request
        now: Reference "now" in the user's timezone
        timezone_name: IANA timezone name (e.g. "Europe/Madrid")
    """
    return f"""<context>
Reference date: {now.date().isoformat()} ({now:%A})
Reference time: {now:%H:%M}
Timezone: {timezone_name}
</context>

<request>
{text}
</request>

Parse the request into the JSON object described in your instructions."""


# =============================================================================
# MEETING PREPARATION
# =============================================================================

MEETING_PREP_SYSTEM_PROMPT = """You are the meeting preparation assistant of NeuroCal.

<role>
Given one calendar event, you write short, practical preparation notes so the
user walks in ready. Be specific to the event; avoid generic filler.
</role>

<output_format>
Return ONLY a JSON object with exactly these keys:
{
  "summary": string (one or two sentences),
  "agenda": array of strings (3-6 items),
  "questions": array of strings (2-5 questions to raise),
  "preparation_tasks": array of strings (things to do beforehand),
  "estimated_prep_minutes": integer
}
</output_format>"""


def build_meeting_prep_user_prompt(
    event: Dict[str, Any],
    attendees: List[str],
    notes: Optional[str] = None,
) -> str:
    """Build the user prompt for meeting preparation from an event row."""
    attendee_text = ", ".join(attendees) if attendees else "not specified"
    notes_block = f"\n<user_notes>\n{notes}\n</user_notes>\n" if notes else ""

    return f"""<event>
Title: {event.get('title') or 'Untitled'}
Type: {event.get('type') or 'meeting'}
Starts: {event.get('start_time')}
Ends: {event.get('end_time')}
Location: {event.get('location') or 'not specified'}
Attendees: {attendee_text}
Description: {event.get('description') or 'none'}
</event>
{notes_block}
Write the preparation notes JSON described in your instructions."""

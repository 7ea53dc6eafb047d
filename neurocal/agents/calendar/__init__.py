"""
Calendar Assistant Package

Single-shot Gemini calls used by the AI endpoints:
- run_event_parse_agent: natural-language text -> structured event JSON
- run_meeting_prep_agent: stored event -> preparation notes JSON

Usage:
    from neurocal.agents.calendar import run_event_parse_agent

    payload, tokens = run_event_parse_agent(
        text="Sync with the design team friday 3pm",
        now=now_in_user_tz,
        timezone_name="Europe/Madrid",
    )
"""

from neurocal.agents.calendar.agent import run_event_parse_agent, run_meeting_prep_agent
from neurocal.agents.calendar.prompts import (
    EVENT_PARSE_SYSTEM_PROMPT,
    MEETING_PREP_SYSTEM_PROMPT,
)

__all__ = [
    "run_event_parse_agent",
    "run_meeting_prep_agent",
    "EVENT_PARSE_SYSTEM_PROMPT",
    "MEETING_PREP_SYSTEM_PROMPT",
]

"""
Calendar Assistant - Gemini single-shot calls for event parsing and meeting prep.

Architecture:
- No tools, no multi-turn; one generate_content call per request
- JSON output enforced with response_mime_type
- Callers decide what to do on failure (event parsing falls back to the
  heuristic parser; meeting prep surfaces an error)

Raises:
    ValueError: GOOGLE_API_KEY missing, empty reply or reply that is not a JSON object
    Exception: Errors from the Gemini client propagate unchanged
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from google import genai
from google.genai import types

from neurocal.agents.calendar.prompts import (
    EVENT_PARSE_SYSTEM_PROMPT,
    MEETING_PREP_SYSTEM_PROMPT,
    build_event_parse_user_prompt,
    build_meeting_prep_user_prompt,
)
from neurocal.config import settings

logger = logging.getLogger(__name__)


def _generate_json(
    system_prompt: str,
    user_prompt: str,
    temperature: float,
) -> Tuple[Dict[str, Any], Optional[int]]:
    """Run one JSON-mode Gemini call and return (payload, total_tokens)."""
    if not settings.GOOGLE_API_KEY:
        logger.error("GOOGLE_API_KEY not configured")
        raise ValueError("GOOGLE_API_KEY is not configured")

    client = genai.Client(api_key=settings.GOOGLE_API_KEY)

    config = types.GenerateContentConfig(
        system_instruction=system_prompt,
        temperature=temperature,
        response_mime_type="application/json"
    )

    logger.debug(f"Sending single-shot request to {settings.LLM_MODEL}")
    response = client.models.generate_content(
        model=settings.LLM_MODEL,
        contents=user_prompt,
        config=config
    )

    response_text = (response.text or "").strip()
    if not response_text:
        raise ValueError("Model did not return a response")

    try:
        payload = json.loads(response_text)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse JSON response: {e}")
        raise ValueError("Failed to parse model response") from e

    if not isinstance(payload, dict):
        raise ValueError("Model response is not a JSON object")

    usage = getattr(response, "usage_metadata", None)
    total_tokens = getattr(usage, "total_token_count", None) if usage else None

    return payload, total_tokens


def run_event_parse_agent(
    text: str,
    now: datetime,
    timezone_name: str,
) -> Tuple[Dict[str, Any], Optional[int]]:
    """
    Ask the LLM to parse free text into an event.

    Returns:
        Tuple of (raw parsed JSON, total tokens used or None)
    """
    logger.info(f"Running event parse agent (input length={len(text)})")
    return _generate_json(
        EVENT_PARSE_SYSTEM_PROMPT,
        build_event_parse_user_prompt(text, now, timezone_name),
        temperature=0.0,
    )


def run_meeting_prep_agent(
    event: Dict[str, Any],
    attendees: List[str],
    notes: Optional[str] = None,
) -> Tuple[Dict[str, Any], Optional[int]]:
    """
    Ask the LLM for preparation notes for one event.

    Returns:
        Tuple of (notes JSON, total tokens used or None)
    """
    logger.info(f"Running meeting prep agent for event {event.get('id')}")
    return _generate_json(
        MEETING_PREP_SYSTEM_PROMPT,
        build_meeting_prep_user_prompt(event, attendees, notes),
        temperature=0.4,
    )

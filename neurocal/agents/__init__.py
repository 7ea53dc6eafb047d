"""
AI Components for the NeuroCal backend.

1. Calendar Assistant (Single-Shot JSON Workflow)
   - Uses Gemini to parse natural-language event requests
   - Uses Gemini to draft meeting preparation notes
   - NOT an ADK agent - uses the Google Gen AI SDK directly
   - Orchestrated by: neurocal/services/ai_service.py

Event parsing always has a heuristic fallback (services/event_parser.py),
so the app works without an LLM key.
"""

from neurocal.agents.calendar import run_event_parse_agent, run_meeting_prep_agent

__all__ = [
    "run_event_parse_agent",
    "run_meeting_prep_agent",
]

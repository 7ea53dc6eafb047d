"""
Logging setup and redaction helpers for NeuroCal.

CRITICAL SECURITY RULES:
- NEVER log passwords, password hashes or one-time tokens
- NEVER log JWT access tokens, API keys or Stripe secrets
- NEVER log full LLM prompts/responses (they contain the user's free text)
- NEVER log attendee e-mail lists; single recipients go through mask_email

Acceptable logging:
- High-level events (e.g., "Event created", "Trial expired")
- Identifiers (user_id, event_id, stripe_subscription_id)
- Counts and statuses (e.g., "Fetched 12 events", "parse source=heuristic")
- Error codes and sanitized error messages
"""

import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level_name: Optional[str] = None) -> None:
    """
    Configure the root logger once for the API process or a job script.

    Args:
        level_name: Level name such as "DEBUG" (unknown names fall back to INFO)

    Usage:
        >>> from neurocal.utils.logging import configure_logging
        >>> configure_logging(settings.LOG_LEVEL)
    """
    level = getattr(logging, (level_name or "INFO").upper(), None)
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    # httpx logs every Supabase request URL at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))


def mask_email(email: Optional[str]) -> str:
    """'ada@example.com' -> 'a***@example.com'."""
    if not email or "@" not in email:
        return "***"
    local, domain = email.split("@", 1)
    return f"{local[:1]}***@{domain}"

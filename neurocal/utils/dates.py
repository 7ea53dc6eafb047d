"""
Date/time helpers for values exchanged with Supabase.

Supabase returns timestamptz columns as ISO-8601 strings; these helpers
convert them to timezone-aware datetimes and back.
"""

import logging
import re
from datetime import date, datetime, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

# fromisoformat before 3.11 only accepts 3 or 6 fractional digits
_FRACTION_RE = re.compile(r"\.(\d+)(?=[+-]\d{2}:?\d{2}$|$)")
_HOUR_OFFSET_RE = re.compile(r"(T[\d:.]+[+-]\d{2})$")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a DB timestamp into an aware datetime.

    Naive values are assumed to be UTC. Returns None for empty or
    unparseable input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        text = _HOUR_OFFSET_RE.sub(r"\1:00", text)
        text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def month_year(moment: datetime) -> str:
    """Usage bucket key, e.g. '2026-10'."""
    return moment.strftime("%Y-%m")


def first_day_of_next_month(moment: datetime) -> date:
    if moment.month == 12:
        return date(moment.year + 1, 1, 1)
    return date(moment.year, moment.month + 1, 1)


def from_unix(ts: Any) -> Optional[datetime]:
    """Convert a Stripe unix timestamp to an aware datetime."""
    if ts is None:
        return None
    try:
        return datetime.fromtimestamp(int(ts), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def resolve_timezone(name: Optional[str]) -> ZoneInfo:
    """IANA timezone by name; unknown or empty names resolve to UTC."""
    if not name:
        return ZoneInfo("UTC")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone '{name}', using UTC")
        return ZoneInfo("UTC")

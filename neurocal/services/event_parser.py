"""
Heuristic natural-language event parser.

Turns text like "Meeting with team tomorrow at 2pm for 1 hour" into a
best-effort structured event. Each field is extracted independently by an
ordered list of regex rules; the first rule that matches wins and there is
no backtracking between fields.

confidence is the fraction of the seven scored fields (date, time, duration,
type, location, attendees, priority) that were matched rather than defaulted.
It is NOT a calibrated probability.
"""

import calendar
import math
import re
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Pattern, Tuple

from neurocal.utils.constants import DEFAULT_EVENT_TYPE
from neurocal.utils.dates import utc_now

DEFAULT_TIME = "09:00"
DEFAULT_DURATION_MINUTES = 60
MAX_DURATION_MINUTES = 24 * 60
DEFAULT_PRIORITY = "low"
DEFAULT_TITLE = "New Event"

SCORED_FIELDS = ("date", "time", "duration", "type", "location", "attendees", "priority")

TITLE_STOP_WORDS = {"the", "and", "or", "for", "with", "at", "on", "in"}
TITLE_MAX_WORDS = 4

Span = Tuple[int, int]

_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}
_MONTH_RE = (
    r"(jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|"
    r"aug(?:ust)?|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)"
)
_WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def _rx(pattern: str) -> Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


# =============================================================================
# DATE
# =============================================================================

def _add_months(day: date, months: int) -> date:
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def _calendar_date(month: int, day: int, today: date) -> Optional[date]:
    """Month/day in the current year; dates already past roll to next year."""
    try:
        candidate = date(today.year, month, day)
    except ValueError:
        return None
    if candidate < today:
        try:
            candidate = date(today.year + 1, month, day)
        except ValueError:
            # Feb 29 with no leap day next year
            return None
    return candidate


def _next_weekday(name: str, today: date) -> date:
    target = _WEEKDAYS.index(name.lower())
    days_ahead = (target - today.weekday()) % 7 or 7
    return today + timedelta(days=days_ahead)


_DATE_RULES: List[Tuple[Pattern[str], Callable[[re.Match, date], Optional[date]]]] = [
    (_rx(r"\btoday\b"), lambda m, today: today),
    (_rx(r"\btomorrow\b"), lambda m, today: today + timedelta(days=1)),
    (_rx(r"\bnext\s+week\b"), lambda m, today: today + timedelta(days=7)),
    (_rx(r"\bnext\s+month\b"), lambda m, today: _add_months(today, 1)),
    (
        _rx(r"\b(?:next\s+|on\s+)?(" + "|".join(_WEEKDAYS) + r")\b"),
        lambda m, today: _next_weekday(m.group(1), today),
    ),
    (
        _rx(r"\b(\d{1,2})/(\d{1,2})\b"),
        lambda m, today: _calendar_date(int(m.group(1)), int(m.group(2)), today),
    ),
    (
        _rx(r"\b(\d{1,2})-(\d{1,2})\b"),
        lambda m, today: _calendar_date(int(m.group(1)), int(m.group(2)), today),
    ),
    (
        _rx(r"\b" + _MONTH_RE + r"\.?\s+(\d{1,2})(?:st|nd|rd|th)?\b"),
        lambda m, today: _calendar_date(_MONTHS[m.group(1)[:3].lower()], int(m.group(2)), today),
    ),
    (
        _rx(r"\b(\d{1,2})(?:st|nd|rd|th)?\s+(?:of\s+)?" + _MONTH_RE + r"\b"),
        lambda m, today: _calendar_date(_MONTHS[m.group(2)[:3].lower()], int(m.group(1)), today),
    ),
]


def parse_date(text: str, today: date) -> Tuple[date, Optional[Span]]:
    for pattern, resolve in _DATE_RULES:
        for match in pattern.finditer(text):
            resolved = resolve(match, today)
            if resolved is not None:
                return resolved, match.span()
    return today, None


# =============================================================================
# TIME
# =============================================================================

def _twelve_hour(match: re.Match) -> Optional[str]:
    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    if not 1 <= hour <= 12 or minute > 59:
        return None
    if match.group(3).lower() == "a":
        hour = 0 if hour == 12 else hour
    else:
        hour = 12 if hour == 12 else hour + 12
    return f"{hour:02d}:{minute:02d}"


_TIME_RULES: List[Tuple[Pattern[str], Callable[[re.Match], Optional[str]]]] = [
    (_rx(r"\b(\d{1,2})(?::(\d{2}))?\s*([ap])\.?m\.?(?![a-z])"), _twelve_hour),
    (_rx(r"\b([01]?\d|2[0-3]):([0-5]\d)\b"), lambda m: f"{int(m.group(1)):02d}:{m.group(2)}"),
    (_rx(r"\bnoon\b"), lambda m: "12:00"),
    (_rx(r"\bmidnight\b"), lambda m: "00:00"),
]


def parse_time(text: str) -> Tuple[str, Optional[Span]]:
    for pattern, resolve in _TIME_RULES:
        for match in pattern.finditer(text):
            resolved = resolve(match)
            if resolved is not None:
                return resolved, match.span()
    return DEFAULT_TIME, None


# =============================================================================
# DURATION
# =============================================================================

_DURATION_RULES: List[Tuple[Pattern[str], Callable[[re.Match], float]]] = [
    (_rx(r"\bhalf\s+an?\s+hour\b"), lambda m: 30),
    (_rx(r"\b(\d+(?:\.\d+)?)\s*min(?:ute)?s?\b"), lambda m: float(m.group(1))),
    (_rx(r"\b(\d+(?:\.\d+)?)\s*(?:hrs?|hours?)\b"), lambda m: float(m.group(1)) * 60),
    (_rx(r"\ban\s+hour\b"), lambda m: 60),
    (_rx(r"\ball[\s-]*day\b"), lambda m: 480),
]


def parse_duration(text: str) -> Tuple[int, Optional[Span]]:
    for pattern, resolve in _DURATION_RULES:
        match = pattern.search(text)
        if match:
            value = resolve(match)
            # Absurd amounts ("for 9999999 minutes") count as no duration
            if not math.isfinite(value) or value > MAX_DURATION_MINUTES:
                continue
            minutes = int(round(value))
            if minutes > 0:
                return minutes, match.span()
    return DEFAULT_DURATION_MINUTES, None


# =============================================================================
# KEYWORD FIELDS
# =============================================================================

_TYPE_RULES = [
    (_rx(r"\b(?:meetings?|calls?|sync)\b"), "meeting"),
    (_rx(r"\b(?:focus|deep\s*work|work)\b"), "focus"),
    (_rx(r"\b(?:break|lunch|coffee)\b"), "break"),
    (_rx(r"\b(?:travel|flight|drive)\b"), "travel"),
    (_rx(r"\b(?:gym|doctor|dentist|birthday|dinner|personal)\b"), "personal"),
]

_LOCATION_RULES = [
    (_rx(r"\b(?:office|workplace)\b"), "Office"),
    (_rx(r"\b(?:conference|meeting)\s*room\b"), "Conference Room"),
    (_rx(r"\b(?:zoom|online|virtual)\b"), "Zoom/Online"),
    (_rx(r"\b(?:cafe|café|restaurant)\b"), "Cafe/Restaurant"),
]

_PRIORITY_RULES = [
    (_rx(r"\b(?:urgent|asap|critical)\b"), "high"),
    (_rx(r"\b(?:important|priority)\b"), "medium"),
]

_RECURRING_RULES = [
    (_rx(r"\b(?:daily|every\s+day)\b"), "daily"),
    (_rx(r"\b(?:weekly|every\s+week)\b"), "weekly"),
    (_rx(r"\b(?:monthly|every\s+month)\b"), "monthly"),
    (_rx(r"\b(?:yearly|annually|every\s+year)\b"), "yearly"),
]

_EMAIL_RE = _rx(r"[\w.+-]+@[\w-]+(?:\.[\w-]+)+")
_TEAM_RE = _rx(r"\b(?:team|everyone)\b")


def _first_keyword(text: str, rules: List[Tuple[Pattern[str], str]]) -> Optional[str]:
    for pattern, value in rules:
        if pattern.search(text):
            return value
    return None


def parse_attendees(text: str) -> List[str]:
    emails = _EMAIL_RE.findall(text)
    if emails:
        return list(dict.fromkeys(e.lower() for e in emails))
    if _TEAM_RE.search(text):
        return ["Team Members"]
    return []


def parse_recurring(text: str) -> Optional[Dict[str, Any]]:
    pattern = _first_keyword(text, _RECURRING_RULES)
    if pattern is None:
        return None
    return {"pattern": pattern, "interval": 1}


# =============================================================================
# TITLE
# =============================================================================

def generate_title(text: str, removed_spans: List[Span]) -> str:
    """
    Build a short title from what is left of the input.

    Matched date/time/duration phrases are cut out, then words of two
    characters or fewer and stop words are dropped and the first four kept.
    """
    merged: List[List[int]] = []
    for start, end in sorted(removed_spans):
        if merged and start <= merged[-1][1]:
            merged[-1][1] = max(merged[-1][1], end)
        else:
            merged.append([start, end])

    remaining = text
    for start, end in reversed(merged):
        remaining = remaining[:start] + " " + remaining[end:]

    words = []
    for raw in remaining.split():
        word = raw.strip(",.;:!?\"'()")
        if len(word) > 2 and word.lower() not in TITLE_STOP_WORDS:
            words.append(word)

    if not words:
        return DEFAULT_TITLE

    title = " ".join(words[:TITLE_MAX_WORDS])
    return title[0].upper() + title[1:]


# =============================================================================
# ENTRY POINT
# =============================================================================

def parse_natural_language(text: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Parse free text into a structured event guess.

    Args:
        text: User input, e.g. "Urgent call with bob@acme.com friday 3pm for 30 min"
        now: Reference time for relative dates (defaults to current UTC time)

    Returns:
        Dict with title, date (datetime.date), time ("HH:MM"), duration
        (minutes), type, location, attendees, priority, confidence and
        recurring ({pattern, interval} or None)
    """
    now = now or utc_now()
    today = now.date()

    event_date, date_span = parse_date(text, today)
    event_time, time_span = parse_time(text)
    duration, duration_span = parse_duration(text)
    event_type = _first_keyword(text, _TYPE_RULES)
    location = _first_keyword(text, _LOCATION_RULES)
    attendees = parse_attendees(text)
    priority = _first_keyword(text, _PRIORITY_RULES)

    matched = {
        "date": date_span is not None,
        "time": time_span is not None,
        "duration": duration_span is not None,
        "type": event_type is not None,
        "location": location is not None,
        "attendees": bool(attendees),
        "priority": priority is not None,
    }
    confidence = sum(matched.values()) / len(SCORED_FIELDS)

    spans = [s for s in (date_span, time_span, duration_span) if s is not None]

    return {
        "title": generate_title(text, spans),
        "date": event_date,
        "time": event_time,
        "duration": duration,
        "type": event_type or DEFAULT_EVENT_TYPE,
        "location": location,
        "attendees": attendees,
        "priority": priority or DEFAULT_PRIORITY,
        "confidence": confidence,
        "recurring": parse_recurring(text),
    }


def event_window(parsed: Dict[str, Any], tzinfo: Any) -> Tuple[datetime, datetime]:
    """Start and end datetimes of a parsed event in the given timezone."""
    hour, minute = (int(part) for part in str(parsed["time"]).split(":"))
    event_date = parsed["date"]
    if isinstance(event_date, str):
        event_date = date.fromisoformat(event_date)
    start = datetime(event_date.year, event_date.month, event_date.day, hour, minute, tzinfo=tzinfo)
    return start, start + timedelta(minutes=int(parsed["duration"]))

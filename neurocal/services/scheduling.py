"""
Scheduling heuristics: free-slot search, conflict detection and calendar insights.

Pure functions over event dicts as stored in the events table
(start_time/end_time as ISO strings or datetimes). Nothing here touches
the database or the LLM.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from neurocal.utils.dates import parse_timestamp

WORKING_HOURS = ("09:00", "17:00")

# Relative productivity by hour of day; hours not listed score DEFAULT_PRODUCTIVITY
PRODUCTIVITY_PATTERNS = {9: 0.9, 10: 0.95, 11: 0.85, 14: 0.8, 15: 0.75, 16: 0.7}
DEFAULT_PRODUCTIVITY = 0.5

SLOT_STEP_MINUTES = 30
MAX_SUGGESTIONS = 3
# Gap under which two events count as back-to-back
BUFFER_MINUTES = 10

Interval = Tuple[datetime, datetime]


def _hhmm(value: str) -> time:
    hour, minute = (int(part) for part in value.split(":"))
    return time(hour, minute)


def _event_interval(event: Dict[str, Any]) -> Optional[Interval]:
    start = parse_timestamp(event.get("start_time"))
    end = parse_timestamp(event.get("end_time"))
    if start is None or end is None or end <= start:
        return None
    return start, end


def _timed_events(events: Iterable[Dict[str, Any]]) -> List[Tuple[Dict[str, Any], Interval]]:
    """Events with a usable interval, all-day events excluded, sorted by start."""
    timed = []
    for event in events:
        if event.get("all_day"):
            continue
        interval = _event_interval(event)
        if interval:
            timed.append((event, interval))
    return sorted(timed, key=lambda pair: pair[1][0])


# =============================================================================
# SLOTS
# =============================================================================

def find_available_slots(
    day: date,
    duration: int,
    existing_events: Iterable[Dict[str, Any]],
    tzinfo: Any,
    working_hours: Tuple[str, str] = WORKING_HOURS,
) -> List[Interval]:
    """Free windows of `duration` minutes inside working hours, on a 30-minute grid."""
    day_start = datetime.combine(day, _hhmm(working_hours[0]), tzinfo=tzinfo)
    day_end = datetime.combine(day, _hhmm(working_hours[1]), tzinfo=tzinfo)
    busy = [interval for _, interval in _timed_events(existing_events)]

    slots = []
    length = timedelta(minutes=duration)
    step = timedelta(minutes=SLOT_STEP_MINUTES)
    cursor = day_start
    while cursor + length <= day_end:
        slot_end = cursor + length
        if not any(start < slot_end and end > cursor for start, end in busy):
            slots.append((cursor, slot_end))
        cursor += step
    return slots


def score_time_slot(slot_start: datetime, event_type: str) -> float:
    """
    Score a slot start for an event type (0..1).

    Focus work goes to the most productive hours, breaks to midday, and
    everything else to the hours focus work does not need.
    """
    productivity = PRODUCTIVITY_PATTERNS.get(slot_start.hour, DEFAULT_PRODUCTIVITY)
    if event_type == "focus":
        return productivity
    if event_type == "break":
        return 0.9 if 12 <= slot_start.hour < 14 else 0.5
    return round(1.0 - productivity / 2, 2)


def _slot_reason(slot_start: datetime, event_type: str) -> str:
    if event_type == "focus":
        return f"High productivity window at {slot_start:%H:%M}"
    if event_type == "break":
        return "Midday break to recharge" if 12 <= slot_start.hour < 14 else "Free time between commitments"
    return "Keeps your peak focus hours free"


# =============================================================================
# CONFLICTS
# =============================================================================

def detect_conflicts(
    existing_events: Iterable[Dict[str, Any]],
    proposed_start: datetime,
    proposed_end: datetime,
    buffer_minutes: int = BUFFER_MINUTES,
) -> List[Dict[str, Any]]:
    """
    Events that overlap the proposed window or sit within the buffer of it.

    Returns:
        [{event_id, title, conflict_type}] with conflict_type 'overlap' or 'too_close'
    """
    buffer = timedelta(minutes=buffer_minutes)
    conflicts = []
    for event, (start, end) in _timed_events(existing_events):
        if start < proposed_end and end > proposed_start:
            conflict_type = "overlap"
        elif start < proposed_end + buffer and end > proposed_start - buffer:
            conflict_type = "too_close"
        else:
            continue
        conflicts.append({
            "event_id": str(event.get("id", "")),
            "title": event.get("title") or "",
            "conflict_type": conflict_type,
        })
    return conflicts


def _recommendations(
    event_type: str,
    duration: int,
    conflicts: List[Dict[str, Any]],
    has_slots: bool,
) -> List[str]:
    recommendations = []
    if any(c["conflict_type"] == "overlap" for c in conflicts):
        recommendations.append("Your preferred time overlaps an existing event; pick one of the suggested slots")
    elif conflicts:
        recommendations.append("Your preferred time is back-to-back with another event; leave a short buffer")
    if not has_slots:
        recommendations.append("No free slot fits inside working hours on this day; try another day or a shorter duration")
    if event_type == "meeting" and duration > 60:
        recommendations.append("Long meetings lose focus; consider splitting into shorter sessions with a clear agenda")
    if event_type == "focus" and duration < 60:
        recommendations.append("Focus blocks of at least 60 minutes are more effective")
    if event_type == "meeting":
        recommendations.append("Consider blocking buffer time before and after meetings")
    return recommendations


def suggest_optimal_times(
    event_type: str,
    duration: int,
    preferred_date: date,
    existing_events: List[Dict[str, Any]],
    tzinfo: Any,
    preferred_time: Optional[str] = None,
    working_hours: Tuple[str, str] = WORKING_HOURS,
) -> Dict[str, Any]:
    """
    Suggest up to three start times for a new event on `preferred_date`.

    Free slots inside working hours are scored by score_time_slot; ties keep
    the earlier slot. Conflicts are reported against `preferred_time`
    (or the start of working hours when none is given).

    Returns:
        {suggested_times: [{start_time, end_time, reason, confidence}],
         conflicts: [{event_id, title, conflict_type}],
         recommendations: [str]}
    """
    slots = find_available_slots(preferred_date, duration, existing_events, tzinfo, working_hours)
    scored = sorted(
        ((score_time_slot(start, event_type), start, end) for start, end in slots),
        key=lambda item: (-item[0], item[1]),
    )
    suggested_times = [
        {
            "start_time": start,
            "end_time": end,
            "reason": _slot_reason(start, event_type),
            "confidence": score,
        }
        for score, start, end in scored[:MAX_SUGGESTIONS]
    ]

    proposed_start = datetime.combine(
        preferred_date, _hhmm(preferred_time or working_hours[0]), tzinfo=tzinfo
    )
    conflicts = detect_conflicts(
        existing_events, proposed_start, proposed_start + timedelta(minutes=duration)
    )

    return {
        "suggested_times": suggested_times,
        "conflicts": conflicts,
        "recommendations": _recommendations(event_type, duration, conflicts, bool(slots)),
    }


# =============================================================================
# INSIGHTS
# =============================================================================

HIGH_MEETING_RATIO = 0.7
MIN_FOCUS_BLOCKS_PER_WEEK = 3
AFTER_HOURS_THRESHOLD = 3


def _outside_hours(start: datetime, end: datetime, work_start: time, work_end: time) -> bool:
    return start.time() < work_start or end.time() > work_end or end.date() != start.date()


def _insight(
    insight_type: str,
    title: str,
    description: str,
    confidence: float,
    priority: str,
    data: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    return {
        "type": insight_type,
        "title": title,
        "description": description,
        "confidence": confidence,
        "actionable": True,
        "priority": priority,
        "data": data or {},
    }


def generate_insights(
    events: List[Dict[str, Any]],
    days: int = 30,
    tzinfo: Any = timezone.utc,
    working_hours: Tuple[str, str] = WORKING_HOURS,
) -> List[Dict[str, Any]]:
    """
    Rule-based insights over a window of `days` days, highest confidence first.

    Rules:
        - balance: more than 70% of events are meetings
        - productivity: fewer than 3 focus blocks per week
        - optimization: back-to-back meetings (gap under BUFFER_MINUTES)
        - balance: events starting or ending outside working hours

    Working hours are compared in `tzinfo`, the user's local zone.
    """
    insights: List[Dict[str, Any]] = []
    if not events:
        return insights

    meetings = [e for e in events if e.get("type") == "meeting"]
    meeting_ratio = len(meetings) / len(events)
    if meeting_ratio > HIGH_MEETING_RATIO:
        insights.append(_insight(
            "balance",
            "High Meeting Load",
            f"You're spending {meeting_ratio * 100:.0f}% of your time in meetings. Consider blocking focus time.",
            0.9,
            "high",
            {"meeting_ratio": round(meeting_ratio, 2)},
        ))

    weeks = max(days / 7, 1)
    focus_blocks = sum(1 for e in events if e.get("type") == "focus")
    if focus_blocks / weeks < MIN_FOCUS_BLOCKS_PER_WEEK:
        insights.append(_insight(
            "productivity",
            "Schedule More Focus Time",
            f"You had {focus_blocks} focus blocks in the last {days} days. "
            "Try reserving a morning block for deep work.",
            0.75,
            "medium",
            {"focus_blocks": focus_blocks, "days": days},
        ))

    timed_meetings = _timed_events(meetings)
    back_to_back = 0
    buffer = timedelta(minutes=BUFFER_MINUTES)
    for (_, (_, prev_end)), (_, (next_start, _)) in zip(timed_meetings, timed_meetings[1:]):
        if timedelta(0) <= next_start - prev_end < buffer:
            back_to_back += 1
    if back_to_back:
        insights.append(_insight(
            "optimization",
            "Back-to-Back Meetings",
            f"{back_to_back} meetings started less than {BUFFER_MINUTES} minutes after the previous one ended. "
            "Add buffers to prepare and recover.",
            0.8,
            "medium",
            {"back_to_back": back_to_back},
        ))

    work_start, work_end = _hhmm(working_hours[0]), _hhmm(working_hours[1])
    after_hours = sum(
        1 for _, (start, end) in _timed_events(events)
        if _outside_hours(start.astimezone(tzinfo), end.astimezone(tzinfo), work_start, work_end)
    )
    if after_hours >= AFTER_HOURS_THRESHOLD:
        insights.append(_insight(
            "balance",
            "Work-Life Balance",
            f"{after_hours} events fall outside your working hours. Protect your evenings.",
            0.7,
            "medium",
            {"after_hours_events": after_hours},
        ))

    return sorted(insights, key=lambda i: i["confidence"], reverse=True)

"""
Per-user analytics dashboard.

Aggregates the user's events and AI interactions over a trailing window.
Aggregation happens in Python over plain selects; the window is bounded
(max 365 days) so row counts stay small.
"""

import logging
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, cast

from supabase import Client

from neurocal.services import event_service, user_service
from neurocal.utils.constants import EVENT_TYPES
from neurocal.utils.dates import parse_timestamp, resolve_timezone, to_iso, utc_now

logger = logging.getLogger(__name__)


def _hours(event: Dict[str, Any]) -> float:
    if event.get("all_day"):
        return 0.0
    start = parse_timestamp(event.get("start_time"))
    end = parse_timestamp(event.get("end_time"))
    if start is None or end is None or end <= start:
        return 0.0
    return (end - start).total_seconds() / 3600


def build_dashboard(
    events: List[Dict[str, Any]],
    interactions: List[Dict[str, Any]],
    days: int,
    now: datetime,
    tzinfo: Any = timezone.utc,
) -> Dict[str, Any]:
    """
    Compute dashboard figures from raw rows.

    Days are calendar days in `tzinfo`, the user's local zone.

    Returns:
        Dict with period_days, total_events, event_distribution
        ([{type, count, hours}] for every event type), focus_hours,
        meeting_hours, avg_events_per_active_day, daily_trend
        ([{date, events, hours}] for every day of the window) and ai_stats
        ([{interaction_type, count, avg_confidence}])
    """
    counts: Dict[str, int] = defaultdict(int)
    hours: Dict[str, float] = defaultdict(float)
    per_day_events: Dict[date, int] = defaultdict(int)
    per_day_hours: Dict[date, float] = defaultdict(float)

    for event in events:
        event_type = event.get("type") or "meeting"
        event_hours = _hours(event)
        counts[event_type] += 1
        hours[event_type] += event_hours

        start = parse_timestamp(event.get("start_time"))
        if start is not None:
            local_day = start.astimezone(tzinfo).date()
            per_day_events[local_day] += 1
            per_day_hours[local_day] += event_hours

    distribution = [
        {"type": t, "count": counts.get(t, 0), "hours": round(hours.get(t, 0.0), 2)}
        for t in EVENT_TYPES
    ]

    first_day = (now.astimezone(tzinfo) - timedelta(days=days - 1)).date()
    daily_trend = []
    for offset in range(days):
        day = first_day + timedelta(days=offset)
        daily_trend.append({
            "date": day.isoformat(),
            "events": per_day_events.get(day, 0),
            "hours": round(per_day_hours.get(day, 0.0), 2),
        })

    active_days = len(per_day_events)
    avg_per_day = round(len(events) / active_days, 2) if active_days else 0.0

    interaction_counts: Dict[str, int] = defaultdict(int)
    confidences: Dict[str, List[float]] = defaultdict(list)
    for row in interactions:
        kind = row.get("interaction_type") or "unknown"
        interaction_counts[kind] += 1
        if row.get("confidence_score") is not None:
            confidences[kind].append(float(row["confidence_score"]))

    ai_stats = [
        {
            "interaction_type": kind,
            "count": count,
            "avg_confidence": (
                round(sum(confidences[kind]) / len(confidences[kind]), 2)
                if confidences[kind] else None
            ),
        }
        for kind, count in sorted(interaction_counts.items())
    ]

    return {
        "period_days": days,
        "total_events": len(events),
        "event_distribution": distribution,
        "focus_hours": round(hours.get("focus", 0.0), 2),
        "meeting_hours": round(hours.get("meeting", 0.0), 2),
        "avg_events_per_active_day": avg_per_day,
        "daily_trend": daily_trend,
        "ai_stats": ai_stats,
    }


async def get_dashboard(
    supabase_client: Client,
    user_id: str,
    days: int = 30,
    now: Optional[datetime] = None,
    timezone_name: Optional[str] = None,
) -> Dict[str, Any]:
    now = now or utc_now()
    if timezone_name is None:
        timezone_name = await user_service.get_user_timezone(supabase_client, user_id)
    since = now - timedelta(days=days)

    events = await event_service.get_events_in_range(supabase_client, user_id, since, now)

    result = (
        supabase_client.table("ai_interactions")
        .select("interaction_type, confidence_score")
        .eq("user_id", user_id)
        .gte("created_at", to_iso(since))
        .execute()
    )
    interactions = cast(List[Dict[str, Any]], result.data or [])

    logger.info(
        f"Building dashboard for user {user_id}: days={days}, "
        f"events={len(events)}, interactions={len(interactions)}"
    )
    return build_dashboard(events, interactions, days, now, resolve_timezone(timezone_name))

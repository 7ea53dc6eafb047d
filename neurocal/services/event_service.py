"""
Calendar event persistence service.

Events live in the events table with attendees in event_attendees
(ON DELETE CASCADE). Every query filters by user_id in addition to RLS.

CRITICAL RULES:
1. start_time must be strictly before end_time (checked on create AND update)
2. Passing attendees on update replaces the whole attendee list
3. Lists are ordered by start_time, newest first
"""

import logging
import re
from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Optional, cast

from postgrest.exceptions import APIError
from supabase import Client

from neurocal.services.errors import (
    InvalidRequestError,
    NotFoundError,
    is_malformed_id,
    malformed_id_as_not_found,
)
from neurocal.utils.dates import parse_timestamp, to_iso, utc_now

logger = logging.getLogger(__name__)

EVENT_SELECT = "*, attendees:event_attendees(email, name, response_status)"

# Postgres EXTRACT(DOW) numbering: 0 = Sunday
WEEKDAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")


def _check_time_order(start_time: Any, end_time: Any) -> None:
    start = parse_timestamp(start_time)
    end = parse_timestamp(end_time)
    if start is None or end is None:
        raise InvalidRequestError("Invalid start or end time", "invalid_time")
    if start >= end:
        raise InvalidRequestError("End time must be after start time", "invalid_time_range")


def _serialize(values: Dict[str, Any]) -> Dict[str, Any]:
    """Convert datetimes to ISO strings for the Supabase client."""
    return {k: to_iso(v) if isinstance(v, datetime) else v for k, v in values.items()}


async def _insert_attendees(
    supabase_client: Client,
    event_id: str,
    attendees: List[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    if not attendees:
        return []
    rows = [
        {
            "event_id": event_id,
            "email": a["email"],
            "name": a.get("name"),
            "response_status": a.get("response_status") or "pending",
        }
        for a in attendees
    ]
    result = supabase_client.table("event_attendees").insert(rows).execute()
    return [
        {"email": r.get("email"), "name": r.get("name"), "response_status": r.get("response_status")}
        for r in cast(List[Dict[str, Any]], result.data or [])
    ]


async def get_user_events(
    supabase_client: Client,
    user_id: str,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    event_type: Optional[str] = None,
    limit: int = 50,
) -> List[Dict[str, Any]]:
    """
    Fetch the user's events with attendees.

    Args:
        start_date: Only events starting at or after this instant
        end_date: Only events ending at or before this instant
        event_type: Filter by type
        limit: Maximum rows (1..100)

    Returns:
        Event records, newest start_time first
    """
    logger.debug(f"Fetching events for user {user_id}: type={event_type}, limit={limit}")

    query = supabase_client.table("events").select(EVENT_SELECT).eq("user_id", user_id)
    if start_date:
        query = query.gte("start_time", to_iso(start_date))
    if end_date:
        query = query.lte("end_time", to_iso(end_date))
    if event_type:
        query = query.eq("type", event_type)

    result = query.order("start_time", desc=True).limit(limit).execute()
    events = cast(List[Dict[str, Any]], result.data or [])

    logger.info(f"Fetched {len(events)} events for user {user_id}")
    return events


async def get_events_in_range(
    supabase_client: Client,
    user_id: str,
    range_start: datetime,
    range_end: datetime,
) -> List[Dict[str, Any]]:
    """All events overlapping [range_start, range_end), oldest first."""
    result = (
        supabase_client.table("events")
        .select("*")
        .eq("user_id", user_id)
        .lt("start_time", to_iso(range_end))
        .gt("end_time", to_iso(range_start))
        .order("start_time")
        .execute()
    )
    return cast(List[Dict[str, Any]], result.data or [])


async def get_event_by_id(
    supabase_client: Client,
    user_id: str,
    event_id: str,
) -> Optional[Dict[str, Any]]:
    try:
        result = (
            supabase_client.table("events")
            .select(EVENT_SELECT)
            .eq("id", event_id)
            .eq("user_id", user_id)
            .execute()
        )
    except APIError as e:
        if not is_malformed_id(e):
            raise
        logger.warning(f"Malformed event id {event_id!r} for user {user_id}")
        return None
    if not result.data:
        logger.warning(f"Event {event_id} not found for user {user_id}")
        return None
    return cast(Dict[str, Any], result.data[0])


async def create_event(
    supabase_client: Client,
    user_id: str,
    event_data: Dict[str, Any],
    attendees: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """
    Insert an event and its attendees.

    Args:
        event_data: Column values (title, start_time, end_time, type, ...)
        attendees: [{email, name?, response_status?}]

    Returns:
        The created event with an 'attendees' list

    Raises:
        InvalidRequestError: start_time is not before end_time
    """
    _check_time_order(event_data.get("start_time"), event_data.get("end_time"))

    row = _serialize({**event_data, "user_id": user_id})
    logger.info(f"Creating event for user {user_id}: type={row.get('type')}")

    result = supabase_client.table("events").insert(row).execute()
    if not result.data:
        raise Exception("Failed to create event: no data returned")

    event = cast(Dict[str, Any], result.data[0])
    event["attendees"] = await _insert_attendees(supabase_client, str(event["id"]), attendees or [])

    logger.info(f"Event {event['id']} created with {len(event['attendees'])} attendees")
    return event


async def update_event(
    supabase_client: Client,
    user_id: str,
    event_id: str,
    updates: Dict[str, Any],
    attendees: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """
    Partially update an event.

    The time ordering is re-checked against stored values for whichever of
    start_time/end_time is not being changed.

    Raises:
        InvalidRequestError: Nothing to update, or bad time ordering
        NotFoundError: Event missing or owned by another user
    """
    if not updates and attendees is None:
        raise InvalidRequestError("No fields to update", "no_fields")

    existing = await get_event_by_id(supabase_client, user_id, event_id)
    if not existing:
        raise NotFoundError("Event not found")

    if "start_time" in updates or "end_time" in updates:
        _check_time_order(
            updates.get("start_time", existing.get("start_time")),
            updates.get("end_time", existing.get("end_time")),
        )

    event = {k: v for k, v in existing.items() if k != "attendees"}

    if updates:
        row = _serialize({**updates, "updated_at": utc_now()})
        result = (
            supabase_client.table("events")
            .update(row)
            .eq("id", event_id)
            .eq("user_id", user_id)
            .execute()
        )
        if not result.data:
            raise NotFoundError("Event not found")
        event = cast(Dict[str, Any], result.data[0])

    if attendees is not None:
        supabase_client.table("event_attendees").delete().eq("event_id", event_id).execute()
        event["attendees"] = await _insert_attendees(supabase_client, event_id, attendees)
    else:
        event["attendees"] = existing.get("attendees") or []

    logger.info(f"Event {event_id} updated for user {user_id}: fields={list(updates.keys())}")
    return event


async def delete_event(supabase_client: Client, user_id: str, event_id: str) -> None:
    """
    Delete an event. Attendees cascade.

    Raises:
        NotFoundError: Event missing or owned by another user
    """
    with malformed_id_as_not_found("Event not found"):
        result = (
            supabase_client.table("events")
            .delete()
            .eq("id", event_id)
            .eq("user_id", user_id)
            .execute()
        )
    if not result.data:
        raise NotFoundError("Event not found")
    logger.info(f"Event {event_id} deleted for user {user_id}")


_OR_FILTER_UNSAFE = re.compile(r"[,()%*\\]")


async def search_events(
    supabase_client: Client,
    user_id: str,
    query: str,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    event_type: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Case-insensitive substring search over title, description and location."""
    term = _OR_FILTER_UNSAFE.sub(" ", query).strip()
    pattern = f"%{term}%"

    q = (
        supabase_client.table("events")
        .select(EVENT_SELECT)
        .eq("user_id", user_id)
        .or_(f"title.ilike.{pattern},description.ilike.{pattern},location.ilike.{pattern}")
    )
    if start_date:
        q = q.gte("start_time", to_iso(start_date))
    if end_date:
        q = q.lte("end_time", to_iso(end_date))
    if event_type:
        q = q.eq("type", event_type)

    result = q.order("start_time", desc=True).execute()
    return cast(List[Dict[str, Any]], result.data or [])


def summarize_events(events: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Aggregate statistics over event rows.

    Average duration only counts timed (non all-day) events; the busiest
    day uses Postgres weekday numbering (0 = Sunday).
    """
    by_type = Counter(e.get("type") or "meeting" for e in events)
    ai_suggested = sum(1 for e in events if e.get("is_ai_suggested"))

    durations = []
    weekdays: Counter = Counter()
    for e in events:
        start = parse_timestamp(e.get("start_time"))
        end = parse_timestamp(e.get("end_time"))
        if start is not None:
            weekdays[(start.weekday() + 1) % 7] += 1
        if start is not None and end is not None and not e.get("all_day"):
            durations.append((end - start).total_seconds() / 3600)

    busiest_day = None
    if weekdays:
        dow, count = max(weekdays.items(), key=lambda item: (item[1], -item[0]))
        busiest_day = {"day_of_week": dow, "day_name": WEEKDAY_NAMES[dow], "count": count}

    return {
        "total_events": len(events),
        "events_by_type": dict(by_type),
        "ai_suggested_events": ai_suggested,
        "average_duration_hours": round(sum(durations) / len(durations), 2) if durations else 0.0,
        "busiest_day": busiest_day,
    }


async def get_event_stats(
    supabase_client: Client,
    user_id: str,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> Dict[str, Any]:
    query = (
        supabase_client.table("events")
        .select("type, start_time, end_time, all_day, is_ai_suggested")
        .eq("user_id", user_id)
    )
    if start_date and end_date:
        query = query.gte("start_time", to_iso(start_date)).lte("end_time", to_iso(end_date))

    result = query.execute()
    return summarize_events(cast(List[Dict[str, Any]], result.data or []))

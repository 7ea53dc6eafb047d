"""
Calendar event API endpoints.

Provides CRUD over the user's events plus search and statistics.
Attendees are written alongside their event and returned inline.
"""

import logging
from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from neurocal.auth.dependencies import AuthenticatedUser, get_authenticated_user
from neurocal.db.client import get_supabase_client
from neurocal.schemas.events import (
    AttendeeResponse,
    BusiestDay,
    EventCreateRequest,
    EventCreateResponse,
    EventDeleteResponse,
    EventListResponse,
    EventResponse,
    EventSearchResponse,
    EventStatsResponse,
    EventType,
    EventUpdateRequest,
    EventUpdateResponse,
)
from neurocal.services import event_service
from neurocal.services.errors import ServiceError
from neurocal.utils.http_errors import internal_error, service_http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/calendar", tags=["calendar"])

# Columns a PATCH may set back to null
NULLABLE_EVENT_FIELDS = {"description", "location", "priority", "recurrence_rule"}


def _as_str(v: Any) -> str:
    return str(v) if v is not None else ""


def event_response(event: Dict[str, Any]) -> EventResponse:
    """Map an event row (with embedded attendees) to EventResponse."""
    ai_confidence = event.get("ai_confidence")
    return EventResponse(
        id=_as_str(event.get("id")),
        user_id=_as_str(event.get("user_id")),
        title=_as_str(event.get("title")),
        description=event.get("description"),
        start_time=_as_str(event.get("start_time")),
        end_time=_as_str(event.get("end_time")),
        all_day=bool(event.get("all_day")),
        location=event.get("location"),
        color=event.get("color"),
        type=event.get("type") or "meeting",  # type: ignore
        priority=event.get("priority"),
        recurrence_rule=event.get("recurrence_rule"),
        is_ai_suggested=bool(event.get("is_ai_suggested")),
        ai_confidence=float(ai_confidence) if ai_confidence is not None else None,
        attendees=[
            AttendeeResponse(
                email=_as_str(a.get("email")),
                name=a.get("name"),
                response_status=a.get("response_status"),
            )
            for a in event.get("attendees") or []
        ],
        created_at=event.get("created_at"),
        updated_at=event.get("updated_at"),
    )


@router.get(
    "/events",
    response_model=EventListResponse,
    status_code=status.HTTP_200_OK,
    summary="List user events",
    description="""
    Retrieve the authenticated user's events.

    This endpoint:
    - Returns events newest start_time first, with attendees
    - Optionally filters by start_date, end_date and type
    - Only accessible to the event owner (RLS enforced)

    Security:
    - Requires valid Authorization Bearer token
    - RLS ensures users only see their own events
    """
)
async def list_events(
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)],
    start_date: Optional[datetime] = Query(None, description="Events starting at or after (ISO-8601)"),
    end_date: Optional[datetime] = Query(None, description="Events ending at or before (ISO-8601)"),
    type: Optional[EventType] = Query(None, description="Filter by event type"),
    limit: int = Query(50, ge=1, le=100, description="Maximum number of events to return"),
) -> EventListResponse:
    """
    List events for the authenticated user.

    **6-STEP ENDPOINT FLOW:**

    Auth
    - Handled by get_authenticated_user dependency

    Parse/Validate Request
    - Query parameters validated by FastAPI (dates, type, limit)

    Domain & Intent Filter
    - Simple list request, no filtering beyond query params

    Call Service
    - Call get_user_events() service function

    Map Output -> ResponseModel
    - Convert events list to EventListResponse

    Persistence
    - Read-only operation (no persistence needed)
    """
    logger.info(f"Listing events for user {auth_user.user_id} (type={type}, limit={limit})")

    supabase_client = get_supabase_client(auth_user.access_token)

    try:
        events = await event_service.get_user_events(
            supabase_client=supabase_client,
            user_id=auth_user.user_id,
            start_date=start_date,
            end_date=end_date,
            event_type=type,
            limit=limit,
        )
    except Exception as e:
        logger.error(f"Failed to list events for user {auth_user.user_id}: {e}", exc_info=True)
        raise internal_error("fetch_error", "Failed to retrieve events from database")

    responses = [event_response(e) for e in events]
    return EventListResponse(events=responses, count=len(responses))


@router.post(
    "/events",
    response_model=EventCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create event",
    description="""
    Create a calendar event.

    This endpoint:
    - Requires start_time strictly before end_time (400 otherwise)
    - Validates type and #RRGGBB color
    - Inserts attendees alongside the event

    Security:
    - Requires valid Authorization Bearer token
    - RLS ensures the event is owned by the authenticated user
    """
)
async def create_new_event(
    request: EventCreateRequest,
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)]
) -> EventCreateResponse:
    logger.info(f"Creating event for user {auth_user.user_id}: type={request.type}")

    supabase_client = get_supabase_client(auth_user.access_token)

    try:
        event = await event_service.create_event(
            supabase_client=supabase_client,
            user_id=auth_user.user_id,
            event_data=request.model_dump(exclude={"attendees"}),
            attendees=[a.model_dump() for a in request.attendees],
        )
    except ServiceError as e:
        logger.warning(f"Event rejected for user {auth_user.user_id}: {e.error_code}")
        raise service_http_error(e)
    except Exception as e:
        logger.error(f"Failed to create event for user {auth_user.user_id}: {e}", exc_info=True)
        raise internal_error("create_error", "Failed to create event")

    return EventCreateResponse(
        status="CREATED",
        event=event_response(event),
        message="Event created successfully",
    )


@router.get(
    "/search",
    response_model=EventSearchResponse,
    status_code=status.HTTP_200_OK,
    summary="Search events",
    description="""
    Case-insensitive search over title, description and location,
    with optional date and type filters.
    """
)
async def search(
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)],
    query: str = Query(..., min_length=1, max_length=200, description="Search term"),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    type: Optional[EventType] = Query(None),
) -> EventSearchResponse:
    supabase_client = get_supabase_client(auth_user.access_token)

    try:
        events = await event_service.search_events(
            supabase_client,
            auth_user.user_id,
            query,
            start_date=start_date,
            end_date=end_date,
            event_type=type,
        )
    except Exception as e:
        logger.error(f"Event search failed for user {auth_user.user_id}: {e}", exc_info=True)
        raise internal_error("search_error", "Failed to search events")

    responses = [event_response(e) for e in events]
    return EventSearchResponse(events=responses, total=len(responses), query=query)


@router.get(
    "/stats",
    response_model=EventStatsResponse,
    status_code=status.HTTP_200_OK,
    summary="Event statistics",
    description="""
    Totals by type, AI-suggested count, average duration of timed events
    and the busiest weekday. Pass both start_date and end_date to restrict
    the range.
    """
)
async def event_stats(
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)],
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
) -> EventStatsResponse:
    supabase_client = get_supabase_client(auth_user.access_token)

    try:
        stats = await event_service.get_event_stats(
            supabase_client, auth_user.user_id, start_date, end_date
        )
    except Exception as e:
        logger.error(f"Failed to compute event stats for user {auth_user.user_id}: {e}", exc_info=True)
        raise internal_error("stats_error", "Failed to compute event statistics")

    busiest = stats.get("busiest_day")
    return EventStatsResponse(
        total_events=stats["total_events"],
        events_by_type=stats["events_by_type"],
        ai_suggested_events=stats["ai_suggested_events"],
        average_duration_hours=stats["average_duration_hours"],
        busiest_day=BusiestDay(**busiest) if busiest else None,
    )


@router.get(
    "/events/{event_id}",
    response_model=EventResponse,
    status_code=status.HTTP_200_OK,
    summary="Get event details",
)
async def get_event(
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)],
    event_id: str = Path(..., description="Event UUID"),
) -> EventResponse:
    supabase_client = get_supabase_client(auth_user.access_token)

    try:
        event = await event_service.get_event_by_id(supabase_client, auth_user.user_id, event_id)
    except Exception as e:
        logger.error(f"Failed to fetch event {event_id}: {e}", exc_info=True)
        raise internal_error("fetch_error", "Failed to retrieve event")

    if not event:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "not_found", "details": "Event not found"},
        )

    return event_response(event)


@router.patch(
    "/events/{event_id}",
    response_model=EventUpdateResponse,
    status_code=status.HTTP_200_OK,
    summary="Update event",
    description="""
    Partially update an event.

    This endpoint:
    - Requires at least one field (400 no_fields otherwise)
    - Re-checks start_time < end_time against stored values
    - Replaces all attendees when attendees is provided
    """
)
async def update_existing_event(
    request: EventUpdateRequest,
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)],
    event_id: str = Path(..., description="Event UUID"),
) -> EventUpdateResponse:
    supabase_client = get_supabase_client(auth_user.access_token)

    fields = request.model_dump(exclude_unset=True, exclude={"attendees"})
    updates = {
        k: v for k, v in fields.items()
        if v is not None or k in NULLABLE_EVENT_FIELDS
    }
    attendees: Optional[List[Dict[str, Any]]] = None
    if request.attendees is not None:
        attendees = [a.model_dump() for a in request.attendees]

    logger.info(f"Updating event {event_id} for user {auth_user.user_id}: fields={list(updates.keys())}")

    try:
        event = await event_service.update_event(
            supabase_client,
            auth_user.user_id,
            event_id,
            updates,
            attendees=attendees,
        )
    except ServiceError as e:
        raise service_http_error(e)
    except Exception as e:
        logger.error(f"Failed to update event {event_id}: {e}", exc_info=True)
        raise internal_error("update_error", "Failed to update event")

    return EventUpdateResponse(
        status="UPDATED",
        event=event_response(event),
        message="Event updated successfully",
    )


@router.delete(
    "/events/{event_id}",
    response_model=EventDeleteResponse,
    status_code=status.HTTP_200_OK,
    summary="Delete event",
    description="Delete an event. Its attendees are removed by cascade.",
)
async def delete_existing_event(
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)],
    event_id: str = Path(..., description="Event UUID"),
) -> EventDeleteResponse:
    supabase_client = get_supabase_client(auth_user.access_token)

    try:
        await event_service.delete_event(supabase_client, auth_user.user_id, event_id)
    except ServiceError as e:
        raise service_http_error(e)
    except Exception as e:
        logger.error(f"Failed to delete event {event_id}: {e}", exc_info=True)
        raise internal_error("delete_error", "Failed to delete event")

    return EventDeleteResponse(
        status="DELETED",
        event_id=event_id,
        message="Event deleted successfully",
    )

"""
AI API endpoints.

Provides endpoints for:
- Natural-language event parsing (POST /api/ai/parse) and AI event creation
- Scheduling suggestions and rule-based calendar insights
- LLM meeting preparation
- Stored AI suggestion CRUD

Event creation and meeting preparation are gated by the 'ai_suggestions'
plan feature; each call counts toward the monthly limit.
"""

import logging
from typing import Annotated, Any, Dict, Optional

from fastapi import APIRouter, Depends, Path, Query, status

from neurocal.auth.dependencies import AuthenticatedUser, get_authenticated_user, require_feature
from neurocal.db.client import get_supabase_client
from neurocal.routes.events import event_response
from neurocal.schemas.ai import (
    AICreateEventResponse,
    InsightListResponse,
    InsightResponse,
    MeetingPrepRequest,
    MeetingPrepResponse,
    ParsedEventResponse,
    ParseRequest,
    ScheduleConflict,
    ScheduleRequest,
    ScheduleResponse,
    SuggestedTime,
    SuggestionApplyResponse,
    SuggestionCreateRequest,
    SuggestionCreateResponse,
    SuggestionDeleteResponse,
    SuggestionListResponse,
    SuggestionResponse,
)
from neurocal.services import ai_service, suggestion_service
from neurocal.services.errors import ServiceError
from neurocal.utils.dates import to_iso
from neurocal.utils.http_errors import internal_error, service_http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai", tags=["ai"])


def _parsed_response(parsed: Dict[str, Any], source: str) -> ParsedEventResponse:
    return ParsedEventResponse(**parsed, source=source)  # type: ignore[arg-type]


def _suggestion_response(row: Dict[str, Any]) -> SuggestionResponse:
    return SuggestionResponse(
        id=str(row.get("id")),
        user_id=str(row.get("user_id")),
        event_id=str(row["event_id"]) if row.get("event_id") else None,
        suggestion_type=str(row.get("suggestion_type") or ""),
        content=str(row.get("content") or ""),
        is_applied=bool(row.get("is_applied")),
        created_at=row.get("created_at"),
    )


# =============================================================================
# PARSING & EVENT CREATION
# =============================================================================

@router.post(
    "/parse",
    response_model=ParsedEventResponse,
    status_code=status.HTTP_200_OK,
    summary="Parse free text into an event",
    description="""
    Turn a sentence like "Lunch with Sam tomorrow at noon" into a structured
    event guess.

    This endpoint:
    - Uses the LLM when configured, the keyword parser otherwise
    - Falls back to the keyword parser if the LLM call fails
    - Does NOT persist anything

    Security:
    - Requires valid Authorization Bearer token
    """
)
async def parse_event(
    request: ParseRequest,
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)]
) -> ParsedEventResponse:
    try:
        parsed, source, _tokens = ai_service.parse_event_text(request.text, request.timezone)
    except Exception as e:
        logger.error(f"Event parse failed for user {auth_user.user_id}: {e}", exc_info=True)
        raise internal_error("parse_error", "Failed to parse event text")

    logger.info(
        f"Parsed event text for user {auth_user.user_id}: "
        f"source={source}, confidence={parsed['confidence']:.2f}"
    )
    return _parsed_response(parsed, source)


@router.post(
    "/create-event",
    response_model=AICreateEventResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an event from free text",
    description="""
    Parse free text and save the result as an event.

    This endpoint:
    - Requires the 'ai_suggestions' feature (403 upgrade_required otherwise)
    - Marks the event is_ai_suggested with the parse confidence
    - Stores e-mail attendees found in the text
    - Logs the call in ai_interactions
    """
)
async def create_event_from_text(
    request: ParseRequest,
    auth_user: Annotated[AuthenticatedUser, Depends(require_feature("ai_suggestions"))]
) -> AICreateEventResponse:
    """
    Create an event from natural language.

    **6-STEP ENDPOINT FLOW:**

    Step 1: Auth
    - Handled by require_feature dependency (token + plan + usage)

    Step 2: Parse/Validate Request
    - FastAPI validates ParseRequest

    Step 3: Domain & Intent Filter
    - Feature gate already passed

    Step 4: Call Service
    - create_event_from_text() parses, persists and logs

    Step 5: Map Output -> ResponseModel
    - Event and parse result mapped to AICreateEventResponse

    Step 6: Persistence
    - Service layer inserts events, event_attendees, ai_interactions
    """
    supabase_client = get_supabase_client(auth_user.access_token)

    try:
        event, parsed, source = await ai_service.create_event_from_text(
            supabase_client,
            auth_user.user_id,
            request.text,
            timezone_name=request.timezone,
        )
    except ServiceError as e:
        raise service_http_error(e)
    except Exception as e:
        logger.error(f"AI event creation failed for user {auth_user.user_id}: {e}", exc_info=True)
        raise internal_error("create_error", "Failed to create event from text")

    return AICreateEventResponse(
        status="CREATED",
        event=event_response(event),
        parsed=_parsed_response(parsed, source),
        message="Event created from text",
    )


# =============================================================================
# SCHEDULING & INSIGHTS
# =============================================================================

@router.post(
    "/schedule",
    response_model=ScheduleResponse,
    status_code=status.HTTP_200_OK,
    summary="Suggest times for a new event",
    description="""
    Find free slots inside working hours on the preferred date, ranked by
    how well the time of day suits the event type. Conflicts and
    recommendations are reported for the preferred time.
    """
)
async def schedule(
    request: ScheduleRequest,
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)]
) -> ScheduleResponse:
    supabase_client = get_supabase_client(auth_user.access_token)

    try:
        result = await ai_service.get_schedule_suggestions(
            supabase_client,
            auth_user.user_id,
            request.event_type,
            request.duration,
            request.preferred_date,
            preferred_time=request.preferred_time,
            timezone_name=request.timezone,
        )
    except Exception as e:
        logger.error(f"Scheduling failed for user {auth_user.user_id}: {e}", exc_info=True)
        raise internal_error("schedule_error", "Failed to compute schedule suggestions")

    return ScheduleResponse(
        suggested_times=[
            SuggestedTime(
                start_time=to_iso(s["start_time"]) or "",
                end_time=to_iso(s["end_time"]) or "",
                reason=s["reason"],
                confidence=s["confidence"],
            )
            for s in result["suggested_times"]
        ],
        conflicts=[ScheduleConflict(**c) for c in result["conflicts"]],
        recommendations=result["recommendations"],
    )


@router.get(
    "/insights",
    response_model=InsightListResponse,
    status_code=status.HTTP_200_OK,
    summary="Calendar insights",
    description="""
    Rule-based insights over the last `days` days: meeting load, focus
    time, back-to-back meetings and after-hours work. Highest confidence
    first.
    """
)
async def insights(
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)],
    days: int = Query(30, ge=1, le=365, description="Length of the window in days"),
    timezone: Optional[str] = Query(
        None, max_length=64, description="IANA timezone for working hours (defaults to the profile timezone)"
    ),
) -> InsightListResponse:
    supabase_client = get_supabase_client(auth_user.access_token)

    try:
        results = await ai_service.get_calendar_insights(
            supabase_client, auth_user.user_id, days, timezone_name=timezone
        )
    except Exception as e:
        logger.error(f"Insights failed for user {auth_user.user_id}: {e}", exc_info=True)
        raise internal_error("insights_error", "Failed to generate insights")

    return InsightListResponse(
        insights=[InsightResponse(**i) for i in results],
        days=days,
    )


@router.post(
    "/meeting-prep",
    response_model=MeetingPrepResponse,
    status_code=status.HTTP_200_OK,
    summary="Prepare for a meeting",
    description="""
    Ask the LLM for a summary, agenda, questions and preparation tasks for
    one of the user's events.

    Returns 404 for unknown events and 503 when no LLM is configured.
    Requires the 'ai_suggestions' feature.
    """
)
async def meeting_prep(
    request: MeetingPrepRequest,
    auth_user: Annotated[AuthenticatedUser, Depends(require_feature("ai_suggestions"))]
) -> MeetingPrepResponse:
    supabase_client = get_supabase_client(auth_user.access_token)

    try:
        preparation = await ai_service.prepare_meeting(
            supabase_client, auth_user.user_id, request.event_id, request.notes
        )
    except ServiceError as e:
        raise service_http_error(e)
    except Exception as e:
        logger.error(f"Meeting prep failed for event {request.event_id}: {e}", exc_info=True)
        raise internal_error("meeting_prep_error", "Failed to prepare meeting")

    return MeetingPrepResponse(event_id=request.event_id, **preparation)


# =============================================================================
# STORED SUGGESTIONS
# =============================================================================

@router.get(
    "/suggestions",
    response_model=SuggestionListResponse,
    status_code=status.HTTP_200_OK,
    summary="List AI suggestions",
)
async def list_suggestions(
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)],
    event_id: Optional[str] = Query(None, description="Only suggestions for this event"),
    type: Optional[str] = Query(None, description="Only this suggestion_type"),
    unapplied_only: bool = Query(False, description="Hide applied suggestions"),
) -> SuggestionListResponse:
    supabase_client = get_supabase_client(auth_user.access_token)

    try:
        rows = await suggestion_service.get_suggestions(
            supabase_client,
            auth_user.user_id,
            event_id=event_id,
            suggestion_type=type,
            unapplied_only=unapplied_only,
        )
    except Exception as e:
        logger.error(f"Failed to list suggestions for user {auth_user.user_id}: {e}", exc_info=True)
        raise internal_error("fetch_error", "Failed to retrieve suggestions")

    suggestions = [_suggestion_response(r) for r in rows]
    return SuggestionListResponse(suggestions=suggestions, count=len(suggestions))


@router.post(
    "/suggestions",
    response_model=SuggestionCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Store an AI suggestion",
)
async def create_suggestion(
    request: SuggestionCreateRequest,
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)]
) -> SuggestionCreateResponse:
    supabase_client = get_supabase_client(auth_user.access_token)

    try:
        row = await suggestion_service.create_suggestion(
            supabase_client,
            auth_user.user_id,
            request.suggestion_type,
            request.content,
            event_id=request.event_id,
        )
    except ServiceError as e:
        raise service_http_error(e)
    except Exception as e:
        logger.error(f"Failed to create suggestion for user {auth_user.user_id}: {e}", exc_info=True)
        raise internal_error("create_error", "Failed to create suggestion")

    return SuggestionCreateResponse(
        status="CREATED",
        suggestion=_suggestion_response(row),
        message="Suggestion created successfully",
    )


@router.post(
    "/suggestions/{suggestion_id}/apply",
    response_model=SuggestionApplyResponse,
    status_code=status.HTTP_200_OK,
    summary="Mark a suggestion as applied",
)
async def apply_suggestion(
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)],
    suggestion_id: str = Path(..., description="Suggestion UUID"),
) -> SuggestionApplyResponse:
    supabase_client = get_supabase_client(auth_user.access_token)

    try:
        row = await suggestion_service.apply_suggestion(
            supabase_client, auth_user.user_id, suggestion_id
        )
    except ServiceError as e:
        raise service_http_error(e)
    except Exception as e:
        logger.error(f"Failed to apply suggestion {suggestion_id}: {e}", exc_info=True)
        raise internal_error("update_error", "Failed to apply suggestion")

    return SuggestionApplyResponse(status="APPLIED", suggestion=_suggestion_response(row))


@router.delete(
    "/suggestions/{suggestion_id}",
    response_model=SuggestionDeleteResponse,
    status_code=status.HTTP_200_OK,
    summary="Delete a suggestion",
)
async def delete_suggestion(
    auth_user: Annotated[AuthenticatedUser, Depends(get_authenticated_user)],
    suggestion_id: str = Path(..., description="Suggestion UUID"),
) -> SuggestionDeleteResponse:
    supabase_client = get_supabase_client(auth_user.access_token)

    try:
        await suggestion_service.delete_suggestion(supabase_client, auth_user.user_id, suggestion_id)
    except ServiceError as e:
        raise service_http_error(e)
    except Exception as e:
        logger.error(f"Failed to delete suggestion {suggestion_id}: {e}", exc_info=True)
        raise internal_error("delete_error", "Failed to delete suggestion")

    return SuggestionDeleteResponse(
        status="DELETED",
        suggestion_id=suggestion_id,
        message="Suggestion deleted successfully",
    )

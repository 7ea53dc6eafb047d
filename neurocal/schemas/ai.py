"""
Pydantic schemas for AI endpoints.

Covers natural-language parsing, AI event creation, scheduling suggestions,
calendar insights, meeting preparation and stored AI suggestions.
"""

from datetime import date as date_type
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from neurocal.schemas.events import EventResponse, EventType

ParseSource = Literal["llm", "heuristic"]
RecurrencePattern = Literal["daily", "weekly", "monthly", "yearly"]


# --- Natural-language parsing ---

class ParseRequest(BaseModel):
    """
    Request to parse free text into an event.

    The timezone anchors relative expressions like "tomorrow at 3pm".
    """
    text: str = Field(
        ...,
        min_length=1,
        max_length=1000,
        description="Free-text event description",
        examples=["Team standup tomorrow at 9am for 15 minutes"]
    )
    timezone: Optional[str] = Field(
        None,
        max_length=64,
        description="IANA timezone name (defaults to UTC)",
        examples=["Europe/Madrid"]
    )


class RecurrenceResponse(BaseModel):
    pattern: RecurrencePattern
    interval: int = Field(1, ge=1)


class ParsedEventResponse(BaseModel):
    """
    Parsed event guess.

    confidence is the fraction of scored fields (date, time, duration, type,
    location, attendees, priority) the parser actually found.
    """
    title: str
    date: date_type = Field(..., description="Event date (YYYY-MM-DD)")
    time: str = Field(..., description="Start time (HH:MM, 24h)", examples=["14:30"])
    duration: int = Field(..., description="Duration in minutes")
    type: EventType
    location: Optional[str] = None
    attendees: List[str] = Field(default_factory=list)
    priority: Literal["high", "medium", "low"] = "low"
    confidence: float = Field(..., ge=0.0, le=1.0)
    recurring: Optional[RecurrenceResponse] = None
    source: ParseSource = Field(..., description="Which parser produced the result")


class AICreateEventResponse(BaseModel):
    status: Literal["CREATED"] = Field("CREATED", description="Indicates successful creation")
    event: EventResponse
    parsed: ParsedEventResponse
    message: str = Field(..., examples=["Event created from text"])


# --- Scheduling ---

class ScheduleRequest(BaseModel):
    event_type: EventType = Field("meeting", description="Kind of event to place")
    duration: int = Field(..., ge=5, le=24 * 60, description="Duration in minutes")
    preferred_date: date_type = Field(..., description="Day to search (YYYY-MM-DD)")
    preferred_time: Optional[str] = Field(
        None,
        pattern=r"^([01]\d|2[0-3]):[0-5]\d$",
        description="Preferred start (HH:MM); conflicts are reported for this time"
    )
    timezone: Optional[str] = Field(None, max_length=64)


class SuggestedTime(BaseModel):
    start_time: str = Field(..., description="ISO-8601 start")
    end_time: str = Field(..., description="ISO-8601 end")
    reason: str
    confidence: float = Field(..., ge=0.0, le=1.0)


class ScheduleConflict(BaseModel):
    event_id: str
    title: str
    conflict_type: Literal["overlap", "too_close"]


class ScheduleResponse(BaseModel):
    suggested_times: List[SuggestedTime]
    conflicts: List[ScheduleConflict] = Field(
        default_factory=list,
        description="Conflicts for the preferred time, when one was given"
    )
    recommendations: List[str] = Field(default_factory=list)


# --- Insights ---

class InsightResponse(BaseModel):
    type: str = Field(..., examples=["meeting_load"])
    title: str
    description: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    actionable: bool
    priority: Literal["high", "medium", "low"]
    data: Dict[str, Any] = Field(default_factory=dict)


class InsightListResponse(BaseModel):
    insights: List[InsightResponse] = Field(..., description="Sorted by confidence, highest first")
    days: int = Field(..., description="Length of the analysed window in days")


# --- Meeting preparation ---

class MeetingPrepRequest(BaseModel):
    event_id: str = Field(..., min_length=1, description="Event UUID")
    notes: Optional[str] = Field(None, max_length=2000, description="Extra context for the model")


class MeetingPrepResponse(BaseModel):
    event_id: str
    summary: str
    agenda: List[str] = Field(default_factory=list)
    questions: List[str] = Field(default_factory=list)
    preparation_tasks: List[str] = Field(default_factory=list)
    estimated_prep_minutes: Optional[int] = None


# --- Stored suggestions ---

class SuggestionResponse(BaseModel):
    id: str
    user_id: str
    event_id: Optional[str] = None
    suggestion_type: str
    content: str
    is_applied: bool = False
    created_at: Optional[str] = None


class SuggestionListResponse(BaseModel):
    suggestions: List[SuggestionResponse]
    count: int


class SuggestionCreateRequest(BaseModel):
    suggestion_type: str = Field(..., min_length=1, max_length=50, examples=["reschedule"])
    content: str = Field(..., min_length=1, max_length=5000)
    event_id: Optional[str] = Field(None, description="Attach to one of the user's events")


class SuggestionCreateResponse(BaseModel):
    status: Literal["CREATED"] = Field("CREATED", description="Indicates successful creation")
    suggestion: SuggestionResponse
    message: str = Field(..., examples=["Suggestion created successfully"])


class SuggestionApplyResponse(BaseModel):
    status: Literal["APPLIED"] = Field("APPLIED")
    suggestion: SuggestionResponse


class SuggestionDeleteResponse(BaseModel):
    status: Literal["DELETED"] = Field("DELETED")
    suggestion_id: str
    message: str = Field(..., examples=["Suggestion deleted successfully"])

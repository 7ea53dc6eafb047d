"""
Pydantic schemas for calendar event endpoints.

Events belong to the authenticated user; attendees are stored in
event_attendees and returned inline.
"""

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

# Event type enum (matches DB CHECK constraint)
EventType = Literal["meeting", "focus", "break", "personal", "travel"]
EventPriority = Literal["high", "medium", "low"]
AttendeeStatus = Literal["pending", "accepted", "declined", "tentative"]

HEX_COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"


# --- Attendees ---

class AttendeeRequest(BaseModel):
    email: EmailStr = Field(..., description="Attendee e-mail")
    name: Optional[str] = Field(None, max_length=200, description="Display name")
    response_status: AttendeeStatus = Field("pending", description="RSVP status")


class AttendeeResponse(BaseModel):
    email: str
    name: Optional[str] = None
    response_status: Optional[str] = None


# --- Responses ---

class EventResponse(BaseModel):
    """
    Response for event details.

    Times are ISO-8601 timestamps with offset as stored by Postgres.
    """
    id: str = Field(..., description="Event UUID")
    user_id: str = Field(..., description="Owner user UUID")
    title: str = Field(..., description="Event title")
    description: Optional[str] = Field(None, description="Free-text description")
    start_time: str = Field(..., description="ISO-8601 start")
    end_time: str = Field(..., description="ISO-8601 end")
    all_day: bool = Field(False, description="All-day event (excluded from duration stats)")
    location: Optional[str] = Field(None, description="Where the event happens")
    color: Optional[str] = Field(None, description="#RRGGBB display color")
    type: EventType = Field("meeting", description="Event category")
    priority: Optional[EventPriority] = Field(None, description="Event priority")
    recurrence_rule: Optional[str] = Field(None, description="RFC 5545 RRULE", examples=["FREQ=WEEKLY;INTERVAL=1"])
    is_ai_suggested: bool = Field(False, description="Created from natural language by the AI endpoints")
    ai_confidence: Optional[float] = Field(None, description="Parser confidence (0-1) when AI-created")
    attendees: List[AttendeeResponse] = Field(default_factory=list, description="Event attendees")
    created_at: Optional[str] = Field(None, description="ISO-8601 timestamp when created")
    updated_at: Optional[str] = Field(None, description="ISO-8601 timestamp of last update")


class EventListResponse(BaseModel):
    events: List[EventResponse] = Field(..., description="Events, newest start_time first")
    count: int = Field(..., description="Number of events returned")


class EventSearchResponse(BaseModel):
    events: List[EventResponse]
    total: int = Field(..., description="Number of matches")
    query: str = Field(..., description="The search term used")


# --- Create / update ---

class EventCreateRequest(BaseModel):
    """
    Request to create an event.

    start_time must be strictly before end_time (checked by the service, 400 otherwise).
    """
    title: str = Field(..., min_length=1, max_length=255, examples=["Sprint planning"])
    description: Optional[str] = Field(None, max_length=5000)
    start_time: datetime = Field(..., description="ISO-8601 start", examples=["2026-10-20T14:00:00Z"])
    end_time: datetime = Field(..., description="ISO-8601 end", examples=["2026-10-20T15:00:00Z"])
    all_day: bool = Field(False)
    location: Optional[str] = Field(None, max_length=255)
    color: str = Field("#3B82F6", pattern=HEX_COLOR_PATTERN, description="#RRGGBB display color")
    type: EventType = Field("meeting")
    priority: Optional[EventPriority] = Field(None)
    recurrence_rule: Optional[str] = Field(None, max_length=500)
    attendees: List[AttendeeRequest] = Field(default_factory=list)


class EventCreateResponse(BaseModel):
    status: Literal["CREATED"] = Field("CREATED", description="Indicates successful creation")
    event: EventResponse
    message: str = Field(..., examples=["Event created successfully"])


class EventUpdateRequest(BaseModel):
    """
    Partial event update. At least one field must be provided.

    Passing attendees replaces the whole attendee list.
    """
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    all_day: Optional[bool] = None
    location: Optional[str] = Field(None, max_length=255)
    color: Optional[str] = Field(None, pattern=HEX_COLOR_PATTERN)
    type: Optional[EventType] = None
    priority: Optional[EventPriority] = None
    recurrence_rule: Optional[str] = Field(None, max_length=500)
    attendees: Optional[List[AttendeeRequest]] = None


class EventUpdateResponse(BaseModel):
    status: Literal["UPDATED"] = Field("UPDATED", description="Indicates successful update")
    event: EventResponse
    message: str = Field(..., examples=["Event updated successfully"])


class EventDeleteResponse(BaseModel):
    status: Literal["DELETED"] = Field("DELETED", description="Indicates successful deletion")
    event_id: str
    message: str = Field(..., examples=["Event deleted successfully"])


# --- Stats ---

class BusiestDay(BaseModel):
    day_of_week: int = Field(..., description="0 = Sunday ... 6 = Saturday")
    day_name: str = Field(..., examples=["Tuesday"])
    count: int


class EventStatsResponse(BaseModel):
    total_events: int
    events_by_type: Dict[str, int] = Field(..., description="Event count per type")
    ai_suggested_events: int
    average_duration_hours: float = Field(..., description="Mean duration of timed (non all-day) events")
    busiest_day: Optional[BusiestDay] = None

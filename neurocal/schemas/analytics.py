"""
Pydantic schemas for the analytics dashboard.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class EventDistributionItem(BaseModel):
    type: str
    count: int
    hours: float


class DailyTrendItem(BaseModel):
    date: str = Field(..., description="YYYY-MM-DD")
    events: int
    hours: float


class AIStatItem(BaseModel):
    interaction_type: str = Field(..., examples=["event_creation"])
    count: int
    avg_confidence: Optional[float] = None


class DashboardResponse(BaseModel):
    """
    Calendar summary for the trailing window.

    daily_trend has one entry per day, including days without events.
    """
    period_days: int
    total_events: int
    event_distribution: List[EventDistributionItem]
    focus_hours: float
    meeting_hours: float
    avg_events_per_active_day: float
    daily_trend: List[DailyTrendItem]
    ai_stats: List[AIStatItem]

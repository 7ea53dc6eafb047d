"""
Domain constants shared by schemas and services.

Values mirror the CHECK constraints and seed rows of the NeuroCal database.
"""

# Event types accepted by the events table
EVENT_TYPES = ("meeting", "focus", "break", "personal", "travel")

DEFAULT_EVENT_TYPE = "meeting"
DEFAULT_EVENT_COLOR = "#3B82F6"

# Subscription lifecycle states mirrored from Stripe
SUBSCRIPTION_STATUSES = ("trial", "active", "past_due", "canceled", "expired")

# Statuses that grant access to gated features
ENTITLED_STATUSES = ("trial", "active")

# Plan the free trial runs on
TRIAL_PLAN_NAME = "pro"

# Features with monthly usage counters
TRACKED_FEATURES = ("ai_suggestions", "calendar_integrations")

# Plan limit value meaning "no limit"
UNLIMITED = -1

# One-time token kinds stored in auth_tokens.token_type
TOKEN_TYPES = {
    'EMAIL_VERIFICATION': 'email_verification',
    'PASSWORD_RESET': 'password_reset',
}

# ai_interactions.interaction_type values
INTERACTION_TYPES = {
    'EVENT_CREATION': 'event_creation',
    'MEETING_PREPARATION': 'meeting_preparation',
    'CALENDAR_INSIGHTS': 'calendar_insights',
}

# Defaults merged under users.preferences
DEFAULT_PREFERENCES = {
    "theme": "light",
    "language": "en",
    "timezone": "UTC",
    "workingHours": {
        "start": "09:00",
        "end": "17:00",
    },
    "notifications": {
        "email": True,
        "push": True,
        "reminderTime": 15,
    },
    "calendar": {
        "defaultView": "month",
        "showWeekends": True,
        "firstDayOfWeek": 1,
    },
    "ai": {
        "suggestions": True,
        "autoScheduling": False,
        "meetingPrep": True,
    },
}

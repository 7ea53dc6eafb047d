"""
Tests for the AI service: LLM fallback, AI event creation and meeting prep.
"""

import pytest
from datetime import date, datetime, timezone
from unittest.mock import patch

from neurocal.config import Settings
from neurocal.services.ai_service import (
    create_event_from_text,
    get_calendar_insights,
    normalize_llm_event,
    parse_event_text,
    prepare_meeting,
    recurrence_rule,
    resolve_timezone,
)
from neurocal.services.errors import LLMNotConfigured, NotFoundError

NOW = datetime(2026, 10, 17, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def llm_enabled():
    with patch.object(Settings, "GOOGLE_API_KEY", "test-google-key"):
        yield


@pytest.fixture
def heuristic_guess():
    return {
        "title": "Lunch Sam",
        "date": date(2026, 10, 18),
        "time": "12:00",
        "duration": 60,
        "type": "break",
        "location": None,
        "attendees": [],
        "priority": "low",
        "confidence": 3 / 7,
        "recurring": None,
    }


class TestParseEventText:

    def test_heuristic_without_key(self):
        parsed, source, tokens = parse_event_text("lunch tomorrow at noon", now=NOW)

        assert source == "heuristic"
        assert tokens is None
        assert parsed["time"] == "12:00"

    @patch("neurocal.services.ai_service.run_event_parse_agent")
    def test_llm_failure_falls_back(self, mock_agent, llm_enabled):
        mock_agent.side_effect = Exception("quota exceeded")

        parsed, source, _ = parse_event_text("lunch tomorrow at noon", now=NOW)

        assert source == "heuristic"
        assert parsed["date"] == date(2026, 10, 18)

    @patch("neurocal.services.ai_service.run_event_parse_agent")
    def test_llm_result_is_used(self, mock_agent, llm_enabled):
        mock_agent.return_value = (
            {"title": "Lunch with Sam", "date": "2026-10-18", "time": "12:30", "duration": 45,
             "type": "break", "confidence": 0.92},
            321,
        )

        parsed, source, tokens = parse_event_text("lunch w/ sam tmrw 12:30", "Europe/Madrid", now=NOW)

        assert source == "llm"
        assert tokens == 321
        assert parsed["title"] == "Lunch with Sam"
        assert parsed["time"] == "12:30"
        assert parsed["duration"] == 45
        assert parsed["confidence"] == 0.92
        assert mock_agent.call_args.args[2] == "Europe/Madrid"


class TestNormalizeLLMEvent:

    def test_malformed_fields_keep_heuristic_values(self, heuristic_guess):
        payload = {
            "title": "   ",
            "date": "next tuesday",
            "time": "25:99",
            "duration": "forever",
            "type": "party",
            "priority": "extreme",
            "confidence": 7,
        }

        result = normalize_llm_event(payload, heuristic_guess)

        assert result["title"] == "Lunch Sam"
        assert result["date"] == date(2026, 10, 18)
        assert result["time"] == "12:00"
        assert result["duration"] == 60
        assert result["type"] == "break"
        assert result["priority"] == "low"
        assert result["confidence"] == 1.0

    @pytest.mark.parametrize("duration", [float("inf"), 10 ** 9, 0, -30])
    def test_out_of_range_duration_keeps_heuristic_value(self, heuristic_guess, duration):
        result = normalize_llm_event({"duration": duration}, heuristic_guess)

        assert result["duration"] == 60

    def test_recurrence(self, heuristic_guess):
        result = normalize_llm_event({"recurring": {"pattern": "weekly", "interval": "2"}}, heuristic_guess)

        assert result["recurring"] == {"pattern": "weekly", "interval": 2}

    def test_unknown_recurrence_pattern_ignored(self, heuristic_guess):
        result = normalize_llm_event({"recurring": {"pattern": "fortnightly"}}, heuristic_guess)

        assert result["recurring"] is None


class TestHelpers:

    def test_recurrence_rule(self):
        assert recurrence_rule({"pattern": "weekly", "interval": 1}) == "FREQ=WEEKLY;INTERVAL=1"
        assert recurrence_rule(None) is None

    def test_unknown_timezone_is_utc(self):
        assert str(resolve_timezone("Mars/Olympus_Mons")) == "UTC"
        assert str(resolve_timezone(None)) == "UTC"
        assert str(resolve_timezone("Europe/Madrid")) == "Europe/Madrid"


class TestCreateEventFromText:

    @pytest.mark.asyncio
    @patch("neurocal.services.ai_service.log_interaction")
    @patch("neurocal.services.event_service.create_event")
    async def test_marks_event_and_keeps_email_attendees(self, mock_create, mock_log, supabase_client):
        mock_create.return_value = {"id": "event-1", "attendees": [{"email": "bob@acme.com"}]}

        event, parsed, source = await create_event_from_text(
            supabase_client,
            "user-1",
            "Urgent sync with Bob@acme.com and team friday 3pm for 30 min",
            timezone_name="UTC",
            now=NOW,
        )

        assert event["id"] == "event-1"
        assert source == "heuristic"

        _, user_id, event_data, attendees = mock_create.call_args.args
        assert user_id == "user-1"
        assert event_data["is_ai_suggested"] is True
        assert event_data["ai_confidence"] == round(parsed["confidence"], 2)
        assert event_data["start_time"] == datetime(2026, 10, 23, 15, 0, tzinfo=timezone.utc)
        assert event_data["priority"] == "high"
        assert attendees == [{"email": "bob@acme.com"}]

        log_args = mock_log.call_args.args
        assert log_args[2] == "event_creation"
        assert log_args[5] == "heuristic"

    @pytest.mark.asyncio
    @patch("neurocal.services.ai_service.log_interaction")
    @patch("neurocal.services.event_service.create_event")
    async def test_recurring_text_sets_rrule(self, mock_create, mock_log, supabase_client):
        mock_create.return_value = {"id": "event-2", "attendees": []}

        await create_event_from_text(supabase_client, "user-1", "daily standup at 9:30am", now=NOW)

        event_data = mock_create.call_args.args[2]
        assert event_data["recurrence_rule"] == "FREQ=DAILY;INTERVAL=1"


class TestPrepareMeeting:

    @pytest.mark.asyncio
    async def test_requires_llm(self, supabase_client):
        with pytest.raises(LLMNotConfigured):
            await prepare_meeting(supabase_client, "user-1", "event-1")

    @pytest.mark.asyncio
    @patch("neurocal.services.event_service.get_event_by_id")
    async def test_unknown_event(self, mock_get, supabase_client, llm_enabled):
        mock_get.return_value = None

        with pytest.raises(NotFoundError):
            await prepare_meeting(supabase_client, "user-1", "missing")

    @pytest.mark.asyncio
    @patch("neurocal.services.ai_service.log_interaction")
    @patch("neurocal.services.ai_service.run_meeting_prep_agent")
    @patch("neurocal.services.event_service.get_event_by_id")
    async def test_stores_summary_as_suggestion(
        self, mock_get, mock_agent, mock_log, supabase_client, make_query, llm_enabled
    ):
        mock_get.return_value = {
            "id": "event-1",
            "title": "Sprint planning",
            "attendees": [{"email": "bob@acme.com", "name": "Bob"}, {"email": "eve@acme.com"}],
        }
        mock_agent.return_value = (
            {"summary": "Plan sprint 12", "agenda": ["Backlog"], "questions": [],
             "preparation_tasks": ["Groom tickets"], "estimated_prep_minutes": "20"},
            150,
        )
        suggestions = make_query([{"id": "sugg-1"}])
        supabase_client.table.return_value = suggestions

        result = await prepare_meeting(supabase_client, "user-1", "event-1", notes="Focus on bugs")

        assert result["estimated_prep_minutes"] == 20
        assert mock_agent.call_args.args[1] == ["Bob", "eve@acme.com"]
        assert mock_agent.call_args.args[2] == "Focus on bugs"
        row = suggestions.insert.call_args.args[0]
        assert row["suggestion_type"] == "meeting_prep"
        assert row["content"] == "Plan sprint 12"


class TestCalendarInsights:

    @pytest.fixture
    def afternoon_events(self):
        # 14:00-15:00 New York time on three days, as stored (UTC)
        return [
            {
                "id": f"e{day}",
                "type": "focus",
                "start_time": f"2026-10-{day}T18:00:00+00:00",
                "end_time": f"2026-10-{day}T19:00:00+00:00",
            }
            for day in (12, 13, 14)
        ]

    @pytest.mark.asyncio
    @patch("neurocal.services.ai_service.log_interaction")
    @patch("neurocal.services.user_service.get_user_timezone")
    @patch("neurocal.services.event_service.get_events_in_range")
    async def test_profile_timezone_is_used(
        self, mock_range, mock_tz, mock_log, supabase_client, afternoon_events
    ):
        mock_range.return_value = afternoon_events
        mock_tz.return_value = "America/New_York"

        insights = await get_calendar_insights(supabase_client, "user-1", 7, now=NOW)

        mock_tz.assert_awaited_once_with(supabase_client, "user-1")
        assert all(i["title"] != "Work-Life Balance" for i in insights)

    @pytest.mark.asyncio
    @patch("neurocal.services.ai_service.log_interaction")
    @patch("neurocal.services.user_service.get_user_timezone")
    @patch("neurocal.services.event_service.get_events_in_range")
    async def test_explicit_timezone_skips_lookup(
        self, mock_range, mock_tz, mock_log, supabase_client, afternoon_events
    ):
        mock_range.return_value = afternoon_events

        insights = await get_calendar_insights(supabase_client, "user-1", 7, now=NOW, timezone_name="UTC")

        mock_tz.assert_not_called()
        assert any(i["title"] == "Work-Life Balance" for i in insights)

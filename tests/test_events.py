"""
Tests for calendar event endpoints.

Tests cover:
- Event listing, retrieval, creation, update and deletion
- Time ordering and color validation
- Search and statistics
"""

import pytest
from fastapi.testclient import TestClient
from unittest.mock import MagicMock, patch

from postgrest.exceptions import APIError

from neurocal.main import app
from neurocal.services.errors import InvalidRequestError, NotFoundError

client = TestClient(app)


@pytest.fixture
def mock_event():
    """Mock event row with embedded attendees."""
    return {
        "id": "event-123",
        "user_id": "test-user-id",
        "title": "Sprint planning",
        "description": None,
        "start_time": "2026-10-20T14:00:00+00:00",
        "end_time": "2026-10-20T15:00:00+00:00",
        "all_day": False,
        "location": "Room 4",
        "color": "#3B82F6",
        "type": "meeting",
        "priority": "medium",
        "recurrence_rule": None,
        "is_ai_suggested": False,
        "ai_confidence": None,
        "attendees": [
            {"email": "bob@example.com", "name": "Bob", "response_status": "pending"}
        ],
        "created_at": "2026-10-17T10:00:00+00:00",
        "updated_at": "2026-10-17T10:00:00+00:00",
    }


@pytest.fixture
def mock_get_supabase_client():
    """Mock get_supabase_client to return a fake client."""
    with patch("neurocal.routes.events.get_supabase_client") as mock:
        mock.return_value = MagicMock()
        yield mock


class TestListEvents:
    """Tests for GET /api/calendar/events"""

    @patch("neurocal.services.event_service.get_user_events")
    def test_list_events_success(self, mock_get_events, mock_auth, mock_get_supabase_client, mock_event):
        mock_get_events.return_value = [mock_event]

        response = client.get("/api/calendar/events?type=meeting&limit=10")

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 1
        assert data["events"][0]["id"] == "event-123"
        assert data["events"][0]["attendees"][0]["email"] == "bob@example.com"
        assert mock_get_events.call_args.kwargs["event_type"] == "meeting"
        assert mock_get_events.call_args.kwargs["limit"] == 10

    def test_list_events_limit_out_of_range(self, mock_auth, mock_get_supabase_client):
        response = client.get("/api/calendar/events?limit=500")

        assert response.status_code == 422

    def test_list_events_requires_auth(self):
        response = client.get("/api/calendar/events")

        assert response.status_code == 401

    @patch("neurocal.services.event_service.get_user_events")
    def test_list_events_database_error(self, mock_get_events, mock_auth, mock_get_supabase_client):
        mock_get_events.side_effect = Exception("connection reset")

        response = client.get("/api/calendar/events")

        assert response.status_code == 500
        assert response.json()["detail"]["error"] == "fetch_error"


class TestCreateEvent:
    """Tests for POST /api/calendar/events"""

    @patch("neurocal.services.event_service.create_event")
    def test_create_event_success(self, mock_create, mock_auth, mock_get_supabase_client, mock_event):
        mock_create.return_value = mock_event

        response = client.post(
            "/api/calendar/events",
            json={
                "title": "Sprint planning",
                "start_time": "2026-10-20T14:00:00Z",
                "end_time": "2026-10-20T15:00:00Z",
                "location": "Room 4",
                "priority": "medium",
                "attendees": [{"email": "bob@example.com", "name": "Bob"}],
            }
        )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "CREATED"
        assert data["event"]["id"] == "event-123"
        assert data["message"] == "Event created successfully"

        kwargs = mock_create.call_args.kwargs
        assert kwargs["user_id"] == "test-user-id"
        assert kwargs["event_data"]["type"] == "meeting"
        assert "attendees" not in kwargs["event_data"]
        assert kwargs["attendees"][0]["response_status"] == "pending"

    @patch("neurocal.services.event_service.create_event")
    def test_create_event_end_before_start(self, mock_create, mock_auth, mock_get_supabase_client):
        mock_create.side_effect = InvalidRequestError(
            "End time must be after start time", "invalid_time_range"
        )

        response = client.post(
            "/api/calendar/events",
            json={
                "title": "Backwards",
                "start_time": "2026-10-20T15:00:00Z",
                "end_time": "2026-10-20T14:00:00Z",
            }
        )

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "invalid_time_range"

    def test_create_event_invalid_color(self, mock_auth, mock_get_supabase_client):
        response = client.post(
            "/api/calendar/events",
            json={
                "title": "Bad color",
                "start_time": "2026-10-20T14:00:00Z",
                "end_time": "2026-10-20T15:00:00Z",
                "color": "blue",
            }
        )

        assert response.status_code == 422

    def test_create_event_invalid_type(self, mock_auth, mock_get_supabase_client):
        response = client.post(
            "/api/calendar/events",
            json={
                "title": "Party",
                "start_time": "2026-10-20T14:00:00Z",
                "end_time": "2026-10-20T15:00:00Z",
                "type": "party",
            }
        )

        assert response.status_code == 422


class TestGetEvent:
    """Tests for GET /api/calendar/events/{event_id}"""

    @patch("neurocal.services.event_service.get_event_by_id")
    def test_get_event_success(self, mock_get, mock_auth, mock_get_supabase_client, mock_event):
        mock_get.return_value = mock_event

        response = client.get("/api/calendar/events/event-123")

        assert response.status_code == 200
        assert response.json()["title"] == "Sprint planning"

    @patch("neurocal.services.event_service.get_event_by_id")
    def test_get_event_not_found(self, mock_get, mock_auth, mock_get_supabase_client):
        mock_get.return_value = None

        response = client.get("/api/calendar/events/other-users-event")

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "not_found"


def _reject_malformed_ids(mock_get_supabase_client):
    """Make every events query fail the way Postgres does for a non-UUID key."""
    query = MagicMock()
    for method in ("select", "update", "delete", "eq"):
        getattr(query, method).return_value = query
    query.execute.side_effect = APIError({
        "message": 'invalid input syntax for type uuid: "not-a-uuid"',
        "code": "22P02",
        "hint": None,
        "details": None,
    })
    mock_get_supabase_client.return_value.table.return_value = query


class TestMalformedEventId:
    """Non-UUID ids behave like any other missing event."""

    def test_get(self, mock_auth, mock_get_supabase_client):
        _reject_malformed_ids(mock_get_supabase_client)

        response = client.get("/api/calendar/events/not-a-uuid")

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "not_found"

    def test_update(self, mock_auth, mock_get_supabase_client):
        _reject_malformed_ids(mock_get_supabase_client)

        response = client.patch("/api/calendar/events/not-a-uuid", json={"title": "x"})

        assert response.status_code == 404

    def test_delete(self, mock_auth, mock_get_supabase_client):
        _reject_malformed_ids(mock_get_supabase_client)

        response = client.delete("/api/calendar/events/not-a-uuid")

        assert response.status_code == 404


class TestUpdateEvent:
    """Tests for PATCH /api/calendar/events/{event_id}"""

    @patch("neurocal.services.event_service.update_event")
    def test_update_event_passes_only_set_fields(self, mock_update, mock_auth, mock_get_supabase_client, mock_event):
        mock_update.return_value = {**mock_event, "title": "Renamed", "location": None}

        response = client.patch(
            "/api/calendar/events/event-123",
            json={"title": "Renamed", "location": None}
        )

        assert response.status_code == 200
        assert response.json()["status"] == "UPDATED"

        args = mock_update.call_args
        updates = args.args[3]
        assert updates == {"title": "Renamed", "location": None}
        assert args.kwargs["attendees"] is None

    @patch("neurocal.services.event_service.update_event")
    def test_update_event_replaces_attendees(self, mock_update, mock_auth, mock_get_supabase_client, mock_event):
        mock_update.return_value = {**mock_event, "attendees": []}

        response = client.patch("/api/calendar/events/event-123", json={"attendees": []})

        assert response.status_code == 200
        assert mock_update.call_args.kwargs["attendees"] == []

    @patch("neurocal.services.event_service.update_event")
    def test_update_event_empty_body(self, mock_update, mock_auth, mock_get_supabase_client):
        mock_update.side_effect = InvalidRequestError("No fields to update", "no_fields")

        response = client.patch("/api/calendar/events/event-123", json={})

        assert response.status_code == 400

    @patch("neurocal.services.event_service.update_event")
    def test_update_event_not_found(self, mock_update, mock_auth, mock_get_supabase_client):
        mock_update.side_effect = NotFoundError("Event not found")

        response = client.patch("/api/calendar/events/missing", json={"title": "x"})

        assert response.status_code == 404


class TestDeleteEvent:
    """Tests for DELETE /api/calendar/events/{event_id}"""

    @patch("neurocal.services.event_service.delete_event")
    def test_delete_event_success(self, mock_delete, mock_auth, mock_get_supabase_client):
        mock_delete.return_value = None

        response = client.delete("/api/calendar/events/event-123")

        assert response.status_code == 200
        assert response.json() == {
            "status": "DELETED",
            "event_id": "event-123",
            "message": "Event deleted successfully",
        }

    @patch("neurocal.services.event_service.delete_event")
    def test_delete_event_not_found(self, mock_delete, mock_auth, mock_get_supabase_client):
        mock_delete.side_effect = NotFoundError("Event not found")

        response = client.delete("/api/calendar/events/missing")

        assert response.status_code == 404


class TestSearchAndStats:
    """Tests for GET /api/calendar/search and /stats"""

    @patch("neurocal.services.event_service.search_events")
    def test_search(self, mock_search, mock_auth, mock_get_supabase_client, mock_event):
        mock_search.return_value = [mock_event]

        response = client.get("/api/calendar/search?query=sprint")

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["query"] == "sprint"

    def test_search_requires_query(self, mock_auth, mock_get_supabase_client):
        response = client.get("/api/calendar/search")

        assert response.status_code == 422

    @patch("neurocal.services.event_service.get_event_stats")
    def test_stats(self, mock_stats, mock_auth, mock_get_supabase_client):
        mock_stats.return_value = {
            "total_events": 3,
            "events_by_type": {"meeting": 2, "focus": 1},
            "ai_suggested_events": 1,
            "average_duration_hours": 1.5,
            "busiest_day": {"day_of_week": 2, "day_name": "Tuesday", "count": 2},
        }

        response = client.get("/api/calendar/stats")

        assert response.status_code == 200
        data = response.json()
        assert data["events_by_type"]["meeting"] == 2
        assert data["busiest_day"]["day_name"] == "Tuesday"

    @patch("neurocal.services.event_service.get_event_stats")
    def test_stats_no_events(self, mock_stats, mock_auth, mock_get_supabase_client):
        mock_stats.return_value = {
            "total_events": 0,
            "events_by_type": {},
            "ai_suggested_events": 0,
            "average_duration_hours": 0.0,
            "busiest_day": None,
        }

        response = client.get("/api/calendar/stats")

        assert response.status_code == 200
        assert response.json()["busiest_day"] is None

"""
Tests for feature access endpoints and the require_feature gate.
"""

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient
from unittest.mock import MagicMock, patch

from neurocal.auth.dependencies import AuthenticatedUser, require_subscription
from neurocal.main import app

client = TestClient(app)


@pytest.fixture
def mock_get_supabase_client():
    with patch("neurocal.routes.features.get_supabase_client") as mock:
        mock.return_value = MagicMock()
        yield mock


class TestCheckFeature:
    """Tests for GET /api/features/check/{feature}"""

    @patch("neurocal.services.subscription_service.check_feature")
    def test_check_feature_with_access(self, mock_check, mock_auth, mock_get_supabase_client):
        mock_check.return_value = {
            "feature": "ai_suggestions",
            "has_access": True,
            "usage_count": 12,
            "limit": 50,
            "is_unlimited": False,
            "plan_name": "basic",
            "status": "active",
        }

        response = client.get("/api/features/check/ai_suggestions")

        assert response.status_code == 200
        data = response.json()
        assert data["has_access"] is True
        assert data["limit"] == 50
        assert mock_check.call_args.args[2] == "ai_suggestions"

    @patch("neurocal.services.subscription_service.check_feature")
    def test_check_feature_without_subscription(self, mock_check, mock_auth, mock_get_supabase_client):
        mock_check.return_value = {
            "feature": "ai_suggestions",
            "has_access": False,
            "usage_count": 0,
            "limit": None,
            "is_unlimited": True,
            "plan_name": None,
            "status": None,
        }

        response = client.get("/api/features/check/ai_suggestions")

        assert response.status_code == 200
        assert response.json()["has_access"] is False

    @patch("neurocal.services.subscription_service.track_usage")
    @patch("neurocal.services.subscription_service.check_feature")
    def test_check_does_not_count_usage(self, mock_check, mock_track, mock_auth, mock_get_supabase_client):
        mock_check.return_value = {
            "feature": "ai_suggestions",
            "has_access": True,
            "usage_count": 3,
            "limit": -1,
            "is_unlimited": True,
            "plan_name": "pro",
            "status": "trial",
        }

        client.get("/api/features/check/ai_suggestions")

        mock_track.assert_not_called()

    @patch("neurocal.services.subscription_service.check_feature")
    def test_check_feature_failure(self, mock_check, mock_auth, mock_get_supabase_client):
        mock_check.side_effect = Exception("timeout")

        response = client.get("/api/features/check/ai_suggestions")

        assert response.status_code == 500
        assert response.json()["detail"]["error"] == "feature_check_failed"

    def test_check_feature_requires_auth(self):
        response = client.get("/api/features/check/ai_suggestions")

        assert response.status_code == 401


class TestFeatureGate:
    """require_feature dependency on a gated endpoint"""

    @patch("neurocal.auth.dependencies.get_supabase_client", return_value=MagicMock())
    @patch("neurocal.services.subscription_service.has_feature_access")
    def test_gate_check_failure_returns_500(self, mock_access, _mock_client, mock_auth):
        mock_access.side_effect = Exception("database down")

        response = client.post("/api/ai/create-event", json={"text": "lunch tomorrow"})

        assert response.status_code == 500
        assert response.json()["detail"]["error"] == "feature_check_failed"

    @patch("neurocal.auth.dependencies.get_supabase_client", return_value=MagicMock())
    @patch("neurocal.services.subscription_service.track_usage")
    @patch("neurocal.services.subscription_service.has_feature_access")
    def test_gate_denied_for_meeting_prep(self, mock_access, mock_track, _mock_client, mock_auth):
        mock_access.return_value = False

        response = client.post("/api/ai/meeting-prep", json={"event_id": "event-123"})

        assert response.status_code == 403
        assert response.json()["detail"]["upgrade_required"] is True
        mock_track.assert_not_called()


class TestRequireSubscription:
    """Tests for the require_subscription dependency."""

    @pytest.fixture
    def auth_user(self):
        return AuthenticatedUser(user_id="test-user-id", access_token="test-access-token")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("sub_status", ["trial", "active"])
    async def test_entitled_subscription_returned(self, auth_user, sub_status):
        subscription = {"id": "sub-1", "status": sub_status}
        with patch("neurocal.auth.dependencies.get_supabase_client", return_value=MagicMock()), \
                patch("neurocal.services.subscription_service.get_user_subscription", return_value=subscription):
            result = await require_subscription(auth_user)

        assert result == subscription

    @pytest.mark.asyncio
    @pytest.mark.parametrize("subscription", [None, {"id": "sub-1", "status": "expired"}])
    async def test_missing_or_lapsed_subscription(self, auth_user, subscription):
        with patch("neurocal.auth.dependencies.get_supabase_client", return_value=MagicMock()), \
                patch("neurocal.services.subscription_service.get_user_subscription", return_value=subscription):
            with pytest.raises(HTTPException) as exc:
                await require_subscription(auth_user)

        assert exc.value.status_code == 403
        assert exc.value.detail["error"] == "subscription_required"

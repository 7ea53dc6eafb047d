"""
Tests for auth endpoints.

Tests cover:
- Registration and login (status codes, error mapping)
- One-time token flows (verify e-mail, reset password)
- Bearer token verification on protected endpoints
- Profile and preferences
"""

import pytest
from datetime import timedelta
from fastapi.testclient import TestClient
from unittest.mock import MagicMock, patch

from neurocal.auth.security import create_access_token
from neurocal.main import app
from neurocal.services.errors import AuthError, ConflictError, InvalidRequestError, NotFoundError

client = TestClient(app)


@pytest.fixture
def mock_user():
    """Mock public user record."""
    return {
        "id": "test-user-id",
        "email": "ada@example.com",
        "first_name": "Ada",
        "last_name": "Lovelace",
        "display_name": "Ada Lovelace",
        "email_verified": True,
        "timezone": "Europe/London",
        "preferences": {"theme": "dark"},
        "created_at": "2026-10-01T09:00:00+00:00",
    }


@pytest.fixture
def mock_service_client():
    with patch("neurocal.routes.auth.get_service_role_client") as mock:
        mock.return_value = MagicMock()
        yield mock


@pytest.fixture
def mock_get_supabase_client():
    with patch("neurocal.routes.auth.get_supabase_client") as mock:
        mock.return_value = MagicMock()
        yield mock


class TestRegister:
    """Tests for POST /api/auth/register"""

    @patch("neurocal.services.user_service.register_user")
    def test_register_success(self, mock_register, mock_service_client, mock_user):
        mock_register.return_value = {**mock_user, "email_verified": False}

        response = client.post(
            "/api/auth/register",
            json={
                "email": "Ada@Example.com",
                "password": "secret123",
                "first_name": " Ada ",
                "last_name": "Lovelace",
            }
        )

        assert response.status_code == 201
        data = response.json()
        assert data["user"]["id"] == "test-user-id"
        assert data["user"]["email_verified"] is False
        assert "password_hash" not in data["user"]
        assert mock_register.call_args.kwargs["first_name"] == "Ada"

    @patch("neurocal.services.user_service.register_user")
    def test_register_duplicate_email(self, mock_register, mock_service_client):
        mock_register.side_effect = ConflictError("User already exists", "user_exists")

        response = client.post(
            "/api/auth/register",
            json={
                "email": "ada@example.com",
                "password": "secret123",
                "first_name": "Ada",
                "last_name": "Lovelace",
            }
        )

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "user_exists"

    def test_register_short_password(self, mock_service_client):
        response = client.post(
            "/api/auth/register",
            json={
                "email": "ada@example.com",
                "password": "123",
                "first_name": "Ada",
                "last_name": "Lovelace",
            }
        )

        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"

    def test_register_invalid_email(self, mock_service_client):
        response = client.post(
            "/api/auth/register",
            json={
                "email": "not-an-email",
                "password": "secret123",
                "first_name": "Ada",
                "last_name": "Lovelace",
            }
        )

        assert response.status_code == 422

    @patch("neurocal.services.user_service.register_user")
    def test_register_unexpected_error(self, mock_register, mock_service_client):
        mock_register.side_effect = Exception("database down")

        response = client.post(
            "/api/auth/register",
            json={
                "email": "ada@example.com",
                "password": "secret123",
                "first_name": "Ada",
                "last_name": "Lovelace",
            }
        )

        assert response.status_code == 500
        assert response.json()["detail"]["error"] == "registration_failed"


class TestLogin:
    """Tests for POST /api/auth/login"""

    @patch("neurocal.services.user_service.login_user")
    def test_login_success(self, mock_login, mock_service_client, mock_user):
        mock_login.return_value = (mock_user, "signed.jwt.token")

        response = client.post(
            "/api/auth/login",
            json={"email": "ada@example.com", "password": "secret123"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["access_token"] == "signed.jwt.token"
        assert data["token_type"] == "bearer"
        assert data["expires_in"] > 0
        assert data["user"]["email"] == "ada@example.com"

    @patch("neurocal.services.user_service.login_user")
    def test_login_wrong_password(self, mock_login, mock_service_client):
        mock_login.side_effect = AuthError("Invalid credentials", "invalid_credentials")

        response = client.post(
            "/api/auth/login",
            json={"email": "ada@example.com", "password": "wrong"}
        )

        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "invalid_credentials"

    @patch("neurocal.services.user_service.login_user")
    def test_login_unverified_email(self, mock_login, mock_service_client):
        mock_login.side_effect = AuthError("Please verify", "email_not_verified")

        response = client.post(
            "/api/auth/login",
            json={"email": "ada@example.com", "password": "secret123"}
        )

        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "email_not_verified"


class TestTokenFlows:
    """Tests for e-mail verification and password reset"""

    @patch("neurocal.services.user_service.check_email")
    def test_check_email(self, mock_check, mock_service_client):
        mock_check.return_value = {"exists": True, "has_password": True, "email_verified": False}

        response = client.post("/api/auth/check-email", json={"email": "ada@example.com"})

        assert response.status_code == 200
        assert response.json() == {"exists": True, "has_password": True, "email_verified": False}

    @patch("neurocal.services.user_service.verify_email")
    def test_verify_email_success(self, mock_verify, mock_service_client, mock_user):
        mock_verify.return_value = mock_user

        response = client.post("/api/auth/verify-email", json={"token": "abc"})

        assert response.status_code == 200
        assert response.json()["user"]["email_verified"] is True

    @patch("neurocal.services.user_service.verify_email")
    def test_verify_email_bad_token(self, mock_verify, mock_service_client):
        mock_verify.side_effect = InvalidRequestError("Invalid or expired token", "invalid_token")

        response = client.post("/api/auth/verify-email", json={"token": "expired"})

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "invalid_token"

    @patch("neurocal.services.user_service.resend_verification")
    def test_resend_verification_unknown_user(self, mock_resend, mock_service_client):
        mock_resend.side_effect = NotFoundError("User not found")

        response = client.post("/api/auth/resend-verification", json={"email": "nobody@example.com"})

        assert response.status_code == 404

    @patch("neurocal.services.user_service.resend_verification")
    def test_resend_verification_already_verified(self, mock_resend, mock_service_client):
        mock_resend.side_effect = InvalidRequestError("Email is already verified", "already_verified")

        response = client.post("/api/auth/resend-verification", json={"email": "ada@example.com"})

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "already_verified"

    @patch("neurocal.services.user_service.request_password_reset")
    def test_forgot_password_same_message_for_unknown_email(self, mock_reset, mock_service_client):
        mock_reset.return_value = None

        known = client.post("/api/auth/forgot-password", json={"email": "ada@example.com"})
        unknown = client.post("/api/auth/forgot-password", json={"email": "nobody@example.com"})

        assert known.status_code == 200
        assert unknown.status_code == 200
        assert known.json() == unknown.json()

    @patch("neurocal.services.user_service.reset_password")
    def test_reset_password(self, mock_reset, mock_service_client):
        mock_reset.return_value = None

        response = client.post(
            "/api/auth/reset-password",
            json={"token": "reset-token", "password": "newsecret"}
        )

        assert response.status_code == 200
        mock_reset.assert_awaited_once()


class TestBearerToken:
    """Token verification on GET /api/auth/me"""

    def test_missing_header(self):
        response = client.get("/api/auth/me")

        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "unauthorized"

    def test_malformed_header(self):
        response = client.get("/api/auth/me", headers={"Authorization": "Token abc"})

        assert response.status_code == 401

    def test_garbage_token(self):
        response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "invalid_token"

    def test_expired_token(self):
        token = create_access_token("test-user-id", expires_delta=timedelta(seconds=-10))

        response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "token_expired"

    @patch("neurocal.services.user_service.get_user_by_id")
    def test_valid_token(self, mock_get_user, mock_get_supabase_client, mock_user):
        mock_get_user.return_value = mock_user
        token = create_access_token("test-user-id", email="ada@example.com")

        response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        data = response.json()
        assert data["user_id"] == "test-user-id"
        assert data["email"] == "ada@example.com"
        assert data["user"]["display_name"] == "Ada Lovelace"
        mock_get_supabase_client.assert_called_once_with(token)


class TestProfile:
    """Tests for profile, preferences and password change"""

    @patch("neurocal.services.user_service.get_user_by_id")
    def test_get_profile_not_found(self, mock_get_user, mock_auth, mock_get_supabase_client):
        mock_get_user.return_value = None

        response = client.get("/api/auth/profile")

        assert response.status_code == 404

    @patch("neurocal.services.user_service.update_profile")
    def test_update_profile(self, mock_update, mock_auth, mock_get_supabase_client, mock_user):
        mock_update.return_value = {**mock_user, "first_name": "Augusta", "display_name": "Augusta Lovelace"}

        response = client.put("/api/auth/profile", json={"first_name": "Augusta"})

        assert response.status_code == 200
        assert response.json()["user"]["display_name"] == "Augusta Lovelace"

    @patch("neurocal.services.user_service.update_profile")
    def test_update_profile_empty(self, mock_update, mock_auth, mock_get_supabase_client):
        mock_update.side_effect = InvalidRequestError("No fields to update", "no_fields")

        response = client.put("/api/auth/profile", json={})

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "no_fields"

    @patch("neurocal.services.user_service.update_preferences")
    def test_update_preferences(self, mock_update, mock_auth, mock_get_supabase_client):
        mock_update.return_value = {"theme": "dark", "language": "en"}

        response = client.put("/api/auth/preferences", json={"preferences": {"theme": "dark"}})

        assert response.status_code == 200
        assert response.json()["preferences"]["theme"] == "dark"

    @patch("neurocal.services.user_service.change_password")
    def test_change_password_wrong_current(self, mock_change, mock_auth, mock_get_supabase_client):
        mock_change.side_effect = AuthError("Current password is incorrect", "invalid_password")

        response = client.put(
            "/api/auth/change-password",
            json={"current_password": "wrong", "new_password": "newsecret"}
        )

        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "invalid_password"

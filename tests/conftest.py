"""
Pytest configuration for NeuroCal backend tests.

Sets up test environment and global fixtures.
"""
import os
import pytest
from unittest.mock import MagicMock

# Disable config validation during tests
# This allows tests to run without requiring real environment variables
os.environ["VALIDATE_CONFIG"] = "false"

# Set test environment variables (before any neurocal import reads them)
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_PUBLISHABLE_KEY", "test-publishable-key")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-with-at-least-32-bytes!")
os.environ.setdefault("EMAIL_ENABLED", "false")
# LLM and Stripe stay unconfigured unless a test patches settings
os.environ["GOOGLE_API_KEY"] = ""
os.environ["STRIPE_SECRET_KEY"] = ""

from neurocal.auth.dependencies import AuthenticatedUser, get_authenticated_user  # noqa: E402
from neurocal.main import app  # noqa: E402


async def mock_get_authenticated_user_dependency():
    """Mock dependency that returns test AuthenticatedUser."""
    return AuthenticatedUser(
        user_id="test-user-id",
        access_token="test-access-token",
        email="test@example.com",
    )


@pytest.fixture
def mock_auth():
    """Override get_authenticated_user dependency."""
    app.dependency_overrides[get_authenticated_user] = mock_get_authenticated_user_dependency
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def supabase_client():
    """
    Mock Supabase client for service tests.
    Returns a MagicMock that simulates Supabase client behavior.
    """
    mock_client = MagicMock()
    return mock_client


QUERY_METHODS = (
    "select", "insert", "update", "upsert", "delete",
    "eq", "neq", "in_", "gte", "lte", "lt", "gt", "is_", "or_", "ilike",
    "order", "limit", "range",
)


@pytest.fixture
def make_query():
    """
    Build a fluent Supabase query mock.

    Every builder method returns the same mock; execute() returns one
    result per call, in order, each with the given .data.
    """
    def _make(*results):
        query = MagicMock()
        for method in QUERY_METHODS:
            getattr(query, method).return_value = query
        query.execute.side_effect = [MagicMock(data=data) for data in results]
        return query

    return _make

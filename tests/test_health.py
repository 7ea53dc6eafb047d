"""
Tests for the public health endpoint and app-level error handling.
"""

from fastapi.testclient import TestClient

from neurocal.main import app

client = TestClient(app)


def test_health_check():
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_health_check_needs_no_auth():
    response = client.get("/health", headers={"Authorization": "Bearer garbage"})

    assert response.status_code == 200


def test_validation_errors_are_normalized():
    response = client.post("/api/auth/login", json={"email": "ada@example.com"})

    assert response.status_code == 422
    data = response.json()
    assert data["error"] == "validation_error"
    assert any("password" in [str(part) for part in d["loc"]] for d in data["details"])

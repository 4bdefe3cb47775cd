"""Smoke tests for FastAPI application."""

from fastapi.testclient import TestClient

from mediq.main import app


client = TestClient(app)


def test_health_endpoint() -> None:
    """Health endpoint should return status ok."""

    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_version_endpoint() -> None:
    """Version endpoint should expose application version."""

    response = client.get("/version")
    assert response.status_code == 200
    assert "version" in response.json()


def test_missing_identity_is_rejected() -> None:
    """Core endpoints refuse requests without forwarded caller identity."""

    response = client.post("/appointments/00000000-0000-0000-0000-000000000000/cancel")
    assert response.status_code == 403
    assert response.json()["error"] == "unauthorized"


def test_malformed_role_is_rejected() -> None:
    response = client.get(
        "/admin/revenue",
        headers={"X-User-Id": "3f1c2a9e-5a8d-4f4e-9b1e-2d7c6f0a1b2c", "X-User-Role": "nurse"},
    )
    assert response.status_code == 403

"""Tests for health endpoints."""

import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, MagicMock

from dental_os.core.database import get_db


def _app_with_session(session):
    from fastapi import FastAPI
    from dental_os.api.middleware import RequestLoggingMiddleware
    from dental_os.api.routes import health

    app = FastAPI()
    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(health.router)

    async def _override_get_db():
        yield session

    app.dependency_overrides[get_db] = _override_get_db
    return app


@pytest.fixture
def client():
    """Test client with a database that answers SELECT 1."""
    session = MagicMock()
    session.execute = AsyncMock(return_value=None)
    return TestClient(_app_with_session(session))


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    def test_health_check(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["service"] == "dental-os"
        assert response.json()["database"] == "ok"

    def test_health_check_database_down(self):
        session = MagicMock()
        session.execute = AsyncMock(side_effect=RuntimeError("connection refused"))
        client = TestClient(_app_with_session(session))

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"
        assert "connection refused" in response.json()["database"]

    def test_liveness_check(self, client):
        response = client.get("/health/live")

        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    def test_request_id_is_echoed(self, client):
        response = client.get("/health/live", headers={"X-Request-ID": "abc123"})

        assert response.headers["X-Request-ID"] == "abc123"
        assert "X-Process-Time" in response.headers

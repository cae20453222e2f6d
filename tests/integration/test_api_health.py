"""Integration tests for health check endpoints."""

from unittest.mock import patch

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
class TestHealthEndpoint:
    """Tests for GET /health endpoint."""

    async def test_health_returns_healthy(self, test_client: AsyncClient):
        response = await test_client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"
        assert "timestamp" in data

    async def test_health_requires_no_auth(self, test_client: AsyncClient):
        """No Authorization header is needed."""
        response = await test_client.get("/health")

        assert response.status_code == 200

    async def test_request_id_echoed(self, test_client: AsyncClient):
        response = await test_client.get("/health", headers={"X-Request-ID": "req-12345678"})

        assert response.headers["X-Request-ID"] == "req-12345678"

    async def test_request_id_generated(self, test_client: AsyncClient):
        response = await test_client.get("/health")

        assert len(response.headers["X-Request-ID"]) == 36


@pytest.mark.asyncio
class TestHealthDbEndpoint:
    """Tests for GET /health/db endpoint."""

    async def test_database_reachable(self, test_client: AsyncClient):
        response = await test_client.get("/health/db")

        assert response.status_code == 200
        data = response.json()
        assert data["database"]["status"] == "healthy"
        assert data["database"]["message"] == "Database connection successful"
        assert data["database"]["latency_ms"] >= 0


@pytest.mark.asyncio
class TestStartup:
    async def test_startup_logs_configuration_without_secrets(self, test_app):
        with (
            patch("planilla.api.app.setup_logging"),
            patch("planilla.api.app.logger") as logger,
        ):
            async with test_app.router.lifespan_context(test_app):
                pass

        events = {call.args[0]: call.kwargs for call in logger.info.call_args_list}
        starting = events["planilla_starting"]
        assert starting["environment"] == "test"
        assert starting["priced_plans"] == ["Enterprise", "Professional", "Starter"]
        assert starting["stripe_configured"] is True
        assert "whsec_test_planilla" not in repr(starting)
        assert "sqlite" not in repr(starting)
        assert "database_ready" in events

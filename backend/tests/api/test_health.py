"""Tests for health check endpoints and request middleware."""

import pytest
from httpx import AsyncClient

from getcare.main import sanitize_body


class TestHealthEndpoints:
    """Tests for /health and /health/scheduler."""

    @pytest.mark.asyncio
    async def test_health(self, async_client: AsyncClient) -> None:
        """Liveness check returns ok and a request id header."""
        response = await async_client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}
        assert response.headers["x-request-id"]

    @pytest.mark.asyncio
    async def test_scheduler_not_initialized(self, async_client: AsyncClient) -> None:
        """With the scheduler disabled the health check reports it as not running."""
        response = await async_client.get("/health/scheduler")

        assert response.status_code == 200
        data = response.json()
        assert data["running"] is False
        assert data["job_count"] == 0

    @pytest.mark.asyncio
    async def test_unknown_route_structured_404(self, async_client: AsyncClient) -> None:
        """Unknown routes use the structured error body."""
        response = await async_client.get("/api/v1/nothing-here")

        assert response.status_code == 404
        body = response.json()
        assert body["code"] == "NOT_FOUND"
        assert body["request_id"] == response.headers["x-request-id"]


class TestSanitizeBody:
    def test_redacts_nested_fields(self) -> None:
        body = {"notify_email": "ops@example.com", "options": {"api_key": "k", "count": 2}}
        assert sanitize_body(body) == {
            "notify_email": "****",
            "options": {"api_key": "****", "count": 2},
        }

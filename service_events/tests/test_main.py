"""
Unit tests for Events main service.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from shared.config import ServiceConfig
from shared.errors import CacheError, NotFoundError, StorageError
from service_events.app.main import EventsAggregatorService


class TestEventsAggregatorService:
    """Test cases for EventsAggregatorService."""

    @pytest.fixture
    def events_service(self):
        """Service with its list/lookup layer mocked."""
        config = ServiceConfig(
            service_name="events",
            port=3000,
            redis_url="redis://localhost:6379/15",
            postgres_dsn="postgres://localhost:5432/events_test",
            poll_interval_seconds=60,
        )
        service = EventsAggregatorService(config=config)
        service.events = MagicMock()
        service.events.get_by_id = AsyncMock()
        service.events.get_all = AsyncMock()
        return service

    @pytest.fixture
    def client(self, events_service):
        """Test client without lifespan, so no backend is contacted."""
        return TestClient(events_service.app)

    def test_root_endpoint(self, client):
        """Test root endpoint."""
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "events"
        assert data["version"] == "1.0.0"

    def test_get_event_found(self, client, events_service, record_factory):
        """Test event lookup."""
        events_service.events.get_by_id.return_value = record_factory("123", type="PushEvent")

        response = client.get("/events/123")

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == "123"
        assert data["type"] == "PushEvent"
        assert data["actor"] == {"login": "octocat"}
        events_service.events.get_by_id.assert_awaited_once_with("123")

    def test_get_event_not_found(self, client, events_service):
        """Test 404 on a missing event."""
        events_service.events.get_by_id.side_effect = NotFoundError("event not found")

        response = client.get("/events/999")

        assert response.status_code == 404
        assert response.json() == {"error": "event not found"}

    @pytest.mark.parametrize("error", [StorageError("db down"), CacheError("redis down")])
    def test_get_event_backend_failure(self, client, events_service, error):
        """Backend failures are 503, not 404."""
        events_service.events.get_by_id.side_effect = error

        response = client.get("/events/1")

        assert response.status_code == 503
        assert "error" in response.json()

    def test_list_events_returns_payload_verbatim(self, client, events_service):
        """Test listing events."""
        events_service.events.get_all.return_value = '[{"id":"1","type":"PushEvent"}]'

        response = client.get("/events")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/json")
        assert response.json() == [{"id": "1", "type": "PushEvent"}]

    def test_list_events_backend_failure(self, client, events_service):
        """Test listing when the cache is down."""
        events_service.events.get_all.side_effect = CacheError("redis down")

        response = client.get("/events")

        assert response.status_code == 503

    def test_health_check(self, client, events_service):
        """Test health endpoint with healthy dependencies."""
        events_service.repository.health_check = AsyncMock(return_value={"postgres": "ok", "redis": "ok"})
        events_service.worker._task = MagicMock()
        events_service.worker._task.done.return_value = False

        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "events"
        assert data["dependencies"] == {"postgres": "ok", "redis": "ok", "ingestion": "ok"}

    def test_health_check_unhealthy(self, client, events_service):
        """Test health endpoint with a failing dependency."""
        events_service.repository.health_check = AsyncMock(return_value={"postgres": "error", "redis": "ok"})

        response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "error"

    def test_metrics_endpoint(self, client):
        """Test Prometheus export."""
        client.get("/")

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "http_requests_total" in response.text

    @pytest.mark.asyncio
    async def test_start_and_stop_lifecycle(self, events_service):
        """Start opens the repository and the worker; stop reverses it."""
        events_service.repository.start = AsyncMock()
        events_service.repository.stop = AsyncMock()
        events_service.worker.fetcher = MagicMock()
        events_service.worker.fetcher.url = "https://api.example.test/events"
        events_service.worker.fetcher.fetch = AsyncMock(return_value=[])

        await events_service.start()
        assert events_service.worker.running

        await events_service.stop()

        events_service.repository.start.assert_awaited_once()
        events_service.repository.stop.assert_awaited_once()
        assert not events_service.worker.running

"""
Events service for the Events Aggregator.
"""

from typing import Optional

from fastapi import Response
from fastapi.responses import JSONResponse

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import CacheError, NotFoundError, StorageError

from .repository import EventRepository
from .service import EventsService
from .ingestion.fetcher import UpstreamFetcher
from .ingestion.worker import IngestionLocks, IngestionWorker


class EventsAggregatorService(BaseService):
    """Events service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None):
        super().__init__("events", 3000, config=config)

        # Initialize components
        self.repository = EventRepository.from_config(self.config, metrics=self.metrics)
        self.events = EventsService(
            self.repository,
            aggregate_ttl_seconds=self.config.aggregate_ttl_seconds
        )
        self.ingestion_locks = IngestionLocks()
        self.worker = IngestionWorker(
            self.repository,
            UpstreamFetcher(
                self.config.upstream_url,
                timeout=self.config.fetch_timeout_seconds,
                max_attempts=self.config.fetch_max_attempts
            ),
            interval=self.config.poll_interval_seconds,
            lock=self.ingestion_locks.get(self.config.upstream_url),
            metrics=self.metrics
        )

        self._setup_events_routes()

    def _setup_events_routes(self):
        """Set up events-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "events",
                "message": "Events Aggregator - Events Service",
                "version": "1.0.0",
                "capabilities": ["ingestion", "caching", "persistence"]
            }

        @self.app.get("/events/{event_id}")
        async def get_event(event_id: str):
            """Get a single event by ID."""
            try:
                record = await self.events.get_by_id(event_id)
            except NotFoundError:
                return JSONResponse(status_code=404, content={"error": "event not found"})
            except (StorageError, CacheError) as e:
                self.logger.error("Error getting event", event_id=event_id, code=e.code, error=e.message)
                self.metrics.record_error(e.code)
                return JSONResponse(status_code=503, content={"error": "backend unavailable"})

            return record.model_dump()

        @self.app.get("/events")
        async def list_events():
            """List all cached events."""
            try:
                payload = await self.events.get_all()
            except (StorageError, CacheError) as e:
                self.logger.error("Error listing events", code=e.code, error=e.message)
                self.metrics.record_error(e.code)
                return JSONResponse(status_code=503, content={"error": "backend unavailable"})

            return Response(content=payload, media_type="application/json")

    async def _check_dependencies(self):
        """Check events service dependencies."""
        dependencies = await self.repository.health_check()
        dependencies["ingestion"] = "ok" if self.worker.running else "error"
        return dependencies

    async def start(self):
        """Start events service components."""
        await self.repository.start()
        self.worker.start()

        self.logger.info("Events service components started")

    async def stop(self):
        """Stop events service components."""
        await self.worker.stop()
        await self.repository.stop()

        self.logger.info("Events service components stopped")


def create_app():
    """Create events service application."""
    service = EventsAggregatorService()
    return service.app


if __name__ == "__main__":
    service = EventsAggregatorService()
    service.run()

"""
List and lookup composition for Events Service.
"""

from shared.logging import get_logger
from shared.errors import CacheError
from .models import Record, RecordList
from .repository import EventRepository


class EventsService:
    """Serves single records and the cached full list."""

    def __init__(self, repository: EventRepository, aggregate_ttl_seconds: int = 60):
        self.repository = repository
        self.aggregate_ttl_seconds = aggregate_ttl_seconds
        self.logger = get_logger("events.service")

    async def get_by_id(self, record_id: str) -> Record:
        return await self.repository.get_by_id(record_id)

    async def get_all(self) -> str:
        """Return the full list as JSON, computing and caching it on a miss."""
        try:
            data, hit = await self.repository.get_agg_json()
            if hit:
                return data
        except CacheError as e:
            self.logger.warning("Aggregate cache read failed, recomputing", error=e.message)

        records = await self.repository.get_all()
        payload = RecordList.dump_json(records).decode("utf-8")

        try:
            await self.repository.set_agg_json(payload, self.aggregate_ttl_seconds)
        except CacheError as e:
            self.logger.warning("Aggregate cache store failed", error=e.message)

        return payload

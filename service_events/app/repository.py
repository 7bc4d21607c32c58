"""
Repository facade for Events Service.

Composes the durable store, the per-record cache and the aggregate cache.
The repository is the only owner of backend handles; callers never reach a
store or cache directly.
"""

from typing import Dict, List, Optional, Tuple

import redis.asyncio as redis

from shared.config import BaseConfig
from shared.errors import CacheError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from .models import Record
from .persistence.postgres import PostgresEventStore
from .cache.record_cache import RedisRecordCache
from .cache.aggregate_cache import RedisAggregateCache


class EventRepository:
    """Read-through/write-through access to records."""

    def __init__(
        self,
        store: PostgresEventStore,
        record_cache: RedisRecordCache,
        aggregate_cache: RedisAggregateCache,
        metrics: Optional[MetricsCollector] = None,
    ):
        self._store = store
        self._records = record_cache
        self._aggregate = aggregate_cache
        self._metrics = metrics
        self.logger = get_logger("events.repository")

    @classmethod
    def from_config(cls, config: BaseConfig, metrics: Optional[MetricsCollector] = None) -> "EventRepository":
        """Build the repository and every backend handle it owns."""
        client = redis.from_url(
            config.redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=config.cache_timeout_seconds,
            socket_timeout=config.cache_timeout_seconds,
            health_check_interval=30
        )
        return cls(
            store=PostgresEventStore(
                config.postgres_dsn,
                retention_limit=config.retention_limit,
                command_timeout=config.store_timeout_seconds
            ),
            record_cache=RedisRecordCache(client, recency_limit=config.recency_limit),
            aggregate_cache=RedisAggregateCache(client),
            metrics=metrics,
        )

    async def start(self):
        """Open backend handles."""
        await self._store.start()
        self.logger.info("Repository started")

    async def stop(self):
        """Close backend handles."""
        await self._store.stop()
        # Both caches share one client
        await self._records.close()
        self.logger.info("Repository stopped")

    async def save(self, record: Record) -> None:
        """Persist durably, then cache the snapshot and track its recency.

        A durable-store failure propagates before any cache mutation.
        """
        await self._store.save(record)
        await self._records.put(record)
        await self._records.track_recency(record.id)

    async def get_by_id(self, record_id: str) -> Record:
        """Cache first; on miss load from the durable store and backfill.

        The backfill does not touch the recency list.
        """
        cached = await self._records.get(record_id)
        if cached is not None:
            self._count("cache_hits_total", cache_type="record")
            return cached

        self._count("cache_misses_total", cache_type="record")
        record = await self._store.get_by_id(record_id)
        try:
            await self._records.put(record)
        except CacheError as e:
            self.logger.warning("Backfill failed, serving from store", record_id=record_id, error=e.message)
        return record

    async def get_all(self) -> List[Record]:
        """List whatever currently populates the per-record cache."""
        return await self._records.scan_all()

    async def get_agg_json(self) -> Tuple[Optional[str], bool]:
        data, hit = await self._aggregate.get()
        self._count("cache_hits_total" if hit else "cache_misses_total", cache_type="aggregate")
        return data, hit

    async def set_agg_json(self, data: str, ttl_seconds: int) -> None:
        await self._aggregate.set(data, ttl_seconds)

    async def health_check(self) -> Dict[str, str]:
        """Report backend health."""
        return {
            "postgres": "ok" if await self._store.health_check() else "error",
            "redis": "ok" if await self._records.health_check() else "error",
        }

    def _count(self, metric_name: str, **labels):
        if self._metrics:
            self._metrics.increment_counter(metric_name, **labels)

"""
Redis per-record cache for Events Service.
"""

from typing import List, Optional

from pydantic import ValidationError
from redis.exceptions import RedisError
import redis.asyncio as redis

from shared.logging import get_logger
from shared.errors import CacheError
from ..models import Record

# KEYS[1] recency list; ARGV: record id, recency limit, snapshot key prefix.
TRACK_RECENCY_LUA = """
redis.call('LREM', KEYS[1], 0, ARGV[1])
redis.call('LPUSH', KEYS[1], ARGV[1])
local limit = tonumber(ARGV[2])
local evicted = redis.call('LRANGE', KEYS[1], limit, -1)
redis.call('LTRIM', KEYS[1], 0, limit - 1)
for _, id in ipairs(evicted) do
    redis.call('DEL', ARGV[3] .. id)
end
return evicted
"""


class RedisRecordCache:
    """Snapshot cache keyed by ``record:<id>``, bounded by a recency list.

    Only saves go through ``track_recency``; read-through backfills call
    ``put`` alone and therefore sit outside the population bound until some
    later trim or external eviction removes them.
    """

    RECORD_PREFIX = "record:"
    RECENCY_KEY = "record_recency"
    SCAN_COUNT = 100

    def __init__(self, client: redis.Redis, recency_limit: int = 10):
        self.redis = client
        self.recency_limit = recency_limit
        self._track_script = client.register_script(TRACK_RECENCY_LUA)
        self.logger = get_logger("events.cache.records")

    def _key(self, record_id: str) -> str:
        return f"{self.RECORD_PREFIX}{record_id}"

    async def put(self, record: Record) -> None:
        """Store a record snapshot with no expiry."""
        try:
            await self.redis.set(self._key(record.id), record.model_dump_json())
        except RedisError as e:
            self.logger.error("Error caching record", record_id=record.id, error=str(e))
            raise CacheError(f"put failed: {e}", details={"id": record.id}) from e

    async def track_recency(self, record_id: str) -> List[str]:
        """Push an ID to the front of the recency list and evict what falls off.

        Dedupe, push, trim and snapshot deletion run as one script, so a
        failure leaves the list and the snapshots exactly as they were.
        Returns the evicted IDs.
        """
        try:
            evicted = await self._track_script(
                keys=[self.RECENCY_KEY],
                args=[record_id, self.recency_limit, self.RECORD_PREFIX]
            )
        except RedisError as e:
            self.logger.error("Error tracking record recency", record_id=record_id, error=str(e))
            raise CacheError(f"recency update failed: {e}", details={"id": record_id}) from e

        evicted = list(evicted or [])
        if evicted:
            self.logger.debug("Evicted records from cache", evicted=evicted)
        return evicted

    async def recent_ids(self) -> List[str]:
        """Return the recency list, most recent first."""
        try:
            return list(await self.redis.lrange(self.RECENCY_KEY, 0, -1))
        except RedisError as e:
            raise CacheError(f"recency read failed: {e}") from e

    async def get(self, record_id: str) -> Optional[Record]:
        """Get a cached snapshot, or None on miss."""
        try:
            cached_data = await self.redis.get(self._key(record_id))
        except RedisError as e:
            self.logger.error("Error reading cached record", record_id=record_id, error=str(e))
            raise CacheError(f"get failed: {e}", details={"id": record_id}) from e

        if cached_data is None:
            return None

        try:
            return Record.model_validate_json(cached_data)
        except ValidationError as e:
            self.logger.warning("Discarding undecodable cached record", record_id=record_id, error=str(e))
            return None

    async def scan_all(self) -> List[Record]:
        """Enumerate every cached snapshot via cursor-based SCAN."""
        records: List[Record] = []
        seen = set()
        cursor = 0

        try:
            while True:
                cursor, keys = await self.redis.scan(
                    cursor=cursor,
                    match=f"{self.RECORD_PREFIX}*",
                    count=self.SCAN_COUNT
                )

                # SCAN may return a key more than once across pages
                fresh = [k for k in keys if k not in seen]
                seen.update(fresh)

                if fresh:
                    values = await self.redis.mget(fresh)
                    for key, value in zip(fresh, values):
                        if value is None:
                            continue
                        try:
                            records.append(Record.model_validate_json(value))
                        except ValidationError:
                            self.logger.warning("Skipping undecodable cached record", key=key)

                if int(cursor) == 0:
                    break

        except RedisError as e:
            self.logger.error("Error scanning cached records", error=str(e))
            raise CacheError(f"scan failed: {e}") from e

        self.logger.debug("Scanned cached records", count=len(records))
        return records

    async def close(self):
        """Close the underlying Redis client."""
        await self.redis.aclose()
        self.logger.info("Redis record cache closed")

    async def health_check(self) -> bool:
        """Check Redis health."""
        try:
            await self.redis.ping()
            return True
        except RedisError:
            return False

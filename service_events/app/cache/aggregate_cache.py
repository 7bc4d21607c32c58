"""
Redis aggregate cache for Events Service.
"""

from typing import Optional, Tuple

from redis.exceptions import RedisError
import redis.asyncio as redis

from shared.logging import get_logger
from shared.errors import CacheError


class RedisAggregateCache:
    """A single TTL-bound blob holding the serialized full-list snapshot."""

    AGGREGATE_KEY = "records:agg"

    def __init__(self, client: redis.Redis):
        self.redis = client
        self.logger = get_logger("events.cache.aggregate")

    async def set(self, data: str, ttl_seconds: int) -> None:
        """Store the blob, replacing any previous one."""
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")

        try:
            await self.redis.set(self.AGGREGATE_KEY, data, ex=ttl_seconds)
        except RedisError as e:
            self.logger.error("Error caching aggregate", error=str(e))
            raise CacheError(f"aggregate set failed: {e}") from e

        self.logger.debug("Cached aggregate", ttl=ttl_seconds, size=len(data))

    async def get(self) -> Tuple[Optional[str], bool]:
        """Return ``(data, hit)``; absence or expiry is a miss, not an error."""
        try:
            cached_data = await self.redis.get(self.AGGREGATE_KEY)
        except RedisError as e:
            self.logger.error("Error reading aggregate", error=str(e))
            raise CacheError(f"aggregate get failed: {e}") from e

        if cached_data is None:
            return None, False
        return cached_data, True

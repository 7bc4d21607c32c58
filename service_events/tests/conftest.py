"""
Shared fixtures for Events Service tests.
"""

import fnmatch
from typing import Any, Dict, List, Optional, Set, Tuple

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from shared.errors import NotFoundError, StorageError
from service_events.app.models import Record, RecordActor, RecordRepo
from service_events.app.cache.record_cache import RedisRecordCache
from service_events.app.cache.aggregate_cache import RedisAggregateCache
from service_events.app.repository import EventRepository


def make_record(
    record_id: str,
    created_at: str = "2024-01-01T00:00:00Z",
    type: str = "PushEvent",
    repo: str = "octo/repo",
    actor: str = "octocat",
) -> Record:
    """Build a record with sensible defaults."""
    return Record(
        id=record_id,
        type=type,
        created_at=created_at,
        repo=RecordRepo(name=repo),
        actor=RecordActor(login=actor),
    )


class InMemoryRedis:
    """Minimal asyncio Redis double covering the commands the caches use.

    SCAN pages are deliberately small so callers must follow the cursor.
    """

    def __init__(self, scan_page_size: int = 3):
        self.strings: Dict[str, str] = {}
        self.lists: Dict[str, List[str]] = {}
        self.expiry: Dict[str, float] = {}
        self.scan_page_size = scan_page_size
        self.now = 0.0
        self.fail = False
        self.fail_commands: Set[str] = set()
        self.closed = False
        self.scan_calls = 0

    def advance(self, seconds: float):
        self.now += seconds

    def _check(self, command: str):
        if self.fail or command in self.fail_commands:
            raise RedisConnectionError("connection refused")

    def _expire(self, key: str):
        deadline = self.expiry.get(key)
        if deadline is not None and self.now >= deadline:
            self.strings.pop(key, None)
            self.expiry.pop(key, None)

    async def ping(self):
        self._check("ping")
        return True

    async def aclose(self):
        self.closed = True

    async def get(self, key: str) -> Optional[str]:
        self._check("get")
        self._expire(key)
        return self.strings.get(key)

    async def set(self, key: str, value: str, ex: Optional[int] = None):
        self._check("set")
        self.strings[key] = value
        if ex is not None:
            self.expiry[key] = self.now + ex
        else:
            self.expiry.pop(key, None)
        return True

    async def mget(self, keys: List[str]) -> List[Optional[str]]:
        self._check("mget")
        result = []
        for key in keys:
            self._expire(key)
            result.append(self.strings.get(key))
        return result

    async def delete(self, *keys: str) -> int:
        self._check("delete")
        removed = 0
        for key in keys:
            if self.strings.pop(key, None) is not None or self.lists.pop(key, None) is not None:
                removed += 1
            self.expiry.pop(key, None)
        return removed

    async def scan(self, cursor: int = 0, match: Optional[str] = None, count: Optional[int] = None) -> Tuple[int, List[str]]:
        self._check("scan")
        self.scan_calls += 1
        for key in list(self.strings):
            self._expire(key)
        keys = sorted(list(self.strings) + list(self.lists))
        page = keys[cursor:cursor + self.scan_page_size]
        next_cursor = cursor + self.scan_page_size
        if next_cursor >= len(keys):
            next_cursor = 0
        if match:
            page = [k for k in page if fnmatch.fnmatchcase(k, match)]
        return next_cursor, page

    def _lrange(self, key: str, start: int, end: int) -> List[str]:
        items = self.lists.get(key, [])
        n = len(items)
        s = start if start >= 0 else max(n + start, 0)
        e = end if end >= 0 else n + end
        return list(items[s:e + 1])

    async def lrange(self, key: str, start: int, end: int) -> List[str]:
        self._check("lrange")
        return self._lrange(key, start, end)

    def register_script(self, script: str) -> "InMemoryScript":
        return InMemoryScript(self, script)


class InMemoryScript:
    """Runs the recency script body against the double in one step.

    Like EVALSHA, a failure happens before any key is touched.
    """

    def __init__(self, parent: InMemoryRedis, script: str):
        self.parent = parent
        self.script = script

    async def __call__(self, keys: List[str], args: List[Any], client: Any = None) -> List[str]:
        self.parent._check("evalsha")
        recency_key = keys[0]
        record_id, limit, prefix = str(args[0]), int(args[1]), str(args[2])

        items = [i for i in self.parent.lists.get(recency_key, []) if i != record_id]
        items.insert(0, record_id)
        evicted = items[limit:]
        self.parent.lists[recency_key] = items[:limit]
        for evicted_id in evicted:
            self.parent.strings.pop(f"{prefix}{evicted_id}", None)
            self.parent.expiry.pop(f"{prefix}{evicted_id}", None)
        return evicted


class InMemoryEventStore:
    """Durable store double with the same retention rule as the SQL store."""

    def __init__(self, retention_limit: int = 30):
        self.retention_limit = retention_limit
        self.rows: Dict[str, Tuple[Record, int]] = {}
        self.write_seq = 0
        self.fail = False
        self.get_calls = 0
        self.started = False

    async def start(self):
        self.started = True

    async def stop(self):
        self.started = False

    async def save(self, record: Record) -> None:
        if self.fail:
            raise StorageError("database is locked")
        self.write_seq += 1
        self.rows[record.id] = (record, self.write_seq)
        ranked = sorted(
            self.rows.items(),
            key=lambda item: (item[1][0].created_at, item[1][1]),
            reverse=True,
        )
        self.rows = dict(ranked[:self.retention_limit])

    async def get_by_id(self, record_id: str) -> Record:
        self.get_calls += 1
        if self.fail:
            raise StorageError("database is locked")
        if record_id not in self.rows:
            raise NotFoundError("event not found", details={"id": record_id})
        return self.rows[record_id][0]

    async def count(self) -> int:
        return len(self.rows)

    async def health_check(self) -> bool:
        return not self.fail


@pytest.fixture
def fake_redis():
    """In-memory Redis double."""
    return InMemoryRedis()


@pytest.fixture
def record_cache(fake_redis):
    """Per-record cache over the Redis double."""
    return RedisRecordCache(fake_redis, recency_limit=10)


@pytest.fixture
def aggregate_cache(fake_redis):
    """Aggregate cache over the Redis double."""
    return RedisAggregateCache(fake_redis)


@pytest.fixture
def event_store():
    """In-memory durable store double."""
    return InMemoryEventStore(retention_limit=30)


@pytest.fixture
def repository(event_store, record_cache, aggregate_cache):
    """Repository wired to in-memory backends."""
    return EventRepository(event_store, record_cache, aggregate_cache)


@pytest.fixture
def record_factory():
    """Factory for building records."""
    return make_record

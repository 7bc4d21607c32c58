"""
PostgreSQL persistence layer for Events Service.
"""

import asyncio
from typing import Optional

import asyncpg

from shared.logging import get_logger
from shared.errors import NotFoundError, StorageError
from ..models import Record

# Driver-level failures that surface as StorageError.
BACKEND_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)

UPSERT_SQL = """
    INSERT INTO events (id, type, repo, actor, created_at)
    VALUES ($1, $2, $3, $4, $5)
    ON CONFLICT (id) DO UPDATE SET
        type = EXCLUDED.type,
        repo = EXCLUDED.repo,
        actor = EXCLUDED.actor,
        created_at = EXCLUDED.created_at,
        write_seq = nextval('events_write_seq')
"""

# Timestamps are compared bytewise, independent of the database collation.
RETENTION_ORDER = 'created_at COLLATE "C" DESC, write_seq DESC'

PRUNE_SQL = f"""
    DELETE FROM events
    WHERE id NOT IN (
        SELECT id FROM events
        ORDER BY {RETENTION_ORDER}
        LIMIT $1
    )
"""

SELECT_BY_ID_SQL = """
    SELECT id, type, repo, actor, created_at
    FROM events WHERE id = $1
"""


class PostgresEventStore:
    """Durable store for records with bounded retention.

    Every save upserts by ID and then prunes everything outside the most
    recent ``retention_limit`` rows, ordered by ``created_at`` descending with
    ``write_seq`` (refreshed on every write) as the tiebreak. Both statements
    run in one transaction, so a failed upsert never leaves a prune applied.
    """

    def __init__(
        self,
        dsn: str,
        retention_limit: int = 30,
        command_timeout: float = 5.0,
        pool: Optional[asyncpg.Pool] = None,
    ):
        self.dsn = dsn
        self.retention_limit = retention_limit
        self.command_timeout = command_timeout
        self.logger = get_logger("events.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = pool

    async def start(self):
        """Start the persistence layer."""
        try:
            if self.pool is None:
                self.pool = await asyncpg.create_pool(
                    self.dsn,
                    min_size=1,
                    max_size=10,
                    command_timeout=self.command_timeout
                )

            await self._create_tables()

            self.logger.info("PostgreSQL persistence started", retention_limit=self.retention_limit)

        except BACKEND_ERRORS as e:
            self.logger.error("Failed to start PostgreSQL persistence", error=str(e))
            raise StorageError(f"postgres start failed: {e}") from e

    async def stop(self):
        """Stop the persistence layer."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL persistence stopped")

    async def _create_tables(self):
        """Create database tables."""
        async with self._acquire() as conn:
            await conn.execute("""
                CREATE SEQUENCE IF NOT EXISTS events_write_seq;
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS events (
                    id TEXT PRIMARY KEY,
                    type TEXT NOT NULL DEFAULT '',
                    repo TEXT NOT NULL DEFAULT '',
                    actor TEXT NOT NULL DEFAULT '',
                    created_at TEXT NOT NULL DEFAULT '',
                    write_seq BIGINT NOT NULL DEFAULT nextval('events_write_seq')
                );
            """)
            await conn.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_events_retention
                ON events ({RETENTION_ORDER});
            """)

    def _acquire(self):
        if self.pool is None:
            raise StorageError("postgres pool is not started")
        return self.pool.acquire()

    async def save(self, record: Record) -> None:
        """Upsert a record and prune rows outside the retention window."""
        try:
            async with self._acquire() as conn:
                async with conn.transaction():
                    await conn.execute(
                        UPSERT_SQL,
                        record.id,
                        record.type,
                        record.repo.name,
                        record.actor.login,
                        record.created_at,
                    )
                    await conn.execute(PRUNE_SQL, self.retention_limit)

        except BACKEND_ERRORS as e:
            self.logger.error("Error saving record", record_id=record.id, error=str(e))
            raise StorageError(f"save failed: {e}", details={"id": record.id}) from e

        self.logger.debug("Record saved", record_id=record.id)

    async def get_by_id(self, record_id: str) -> Record:
        """Load a record by ID, raising NotFoundError when absent."""
        try:
            async with self._acquire() as conn:
                row = await conn.fetchrow(SELECT_BY_ID_SQL, record_id)

        except BACKEND_ERRORS as e:
            self.logger.error("Error loading record", record_id=record_id, error=str(e))
            raise StorageError(f"load failed: {e}", details={"id": record_id}) from e

        if row is None:
            raise NotFoundError("event not found", details={"id": record_id})

        return Record.from_row(row)

    async def count(self) -> int:
        """Count rows currently retained."""
        try:
            async with self._acquire() as conn:
                return await conn.fetchval("SELECT COUNT(*) FROM events")
        except BACKEND_ERRORS as e:
            raise StorageError(f"count failed: {e}") from e

    async def health_check(self) -> bool:
        """Check PostgreSQL health."""
        try:
            async with self._acquire() as conn:
                await conn.fetchval("SELECT 1")
            return True
        except (StorageError, *BACKEND_ERRORS):
            return False

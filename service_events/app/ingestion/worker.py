"""
Periodic single-flight ingestion worker for Events Service.
"""

import asyncio
import time
from typing import Dict, Optional

from shared.logging import bind_cycle_id, get_logger, reset_cycle_id
from shared.errors import AggregatorException
from shared.metrics import MetricsCollector
from ..repository import EventRepository
from .fetcher import UpstreamFetcher

# Records saved per poll; the rest of the upstream page is dropped.
BATCH_LIMIT = 5


class IngestionLocks:
    """Mutual-exclusion locks keyed by the upstream resource they guard."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}

    def get(self, resource: str) -> asyncio.Lock:
        """Get or create the lock for a resource."""
        if resource not in self._locks:
            self._locks[resource] = asyncio.Lock()
        return self._locks[resource]


class IngestionWorker:
    """Fetches upstream records on a timer and saves them through the repository.

    One cycle runs immediately on start, then one per ``interval`` seconds.
    Every cycle holds the lock for the upstream resource from fetch to last
    save, so cycles never overlap no matter how many callers share the lock.

    A failed cycle is logged and counted; the worker always moves on to the
    next tick. The stop signal is only observed between ticks, so shutdown
    waits for an in-flight cycle to finish.
    """

    def __init__(
        self,
        repository: EventRepository,
        fetcher: UpstreamFetcher,
        interval: float = 180.0,
        lock: Optional[asyncio.Lock] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.repository = repository
        self.fetcher = fetcher
        self.interval = interval
        self.lock = lock or asyncio.Lock()
        self.metrics = metrics
        self.logger = get_logger("events.ingestion.worker")

        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self.stats = {
            "cycles": 0,
            "failed_cycles": 0,
            "records_saved": 0,
            "last_error": None,
        }

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        """Start the worker in a background task."""
        if self.running:
            return self._task

        self._stop_event.clear()
        self._task = asyncio.create_task(self._run(), name="ingestion-worker")
        self.logger.info("Ingestion worker started", interval=self.interval, url=self.fetcher.url)
        return self._task

    async def stop(self):
        """Signal the worker to stop and wait for it to finish."""
        self._stop_event.set()
        if self._task:
            await self._task
            self._task = None
        self.logger.info("Ingestion worker stopped")

    async def _run(self):
        await self._run_guarded(initial=True)

        while True:
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
                self.logger.info("Ticker stopping")
                return
            except asyncio.TimeoutError:
                pass

            await self._run_guarded(initial=False)

    async def _run_guarded(self, initial: bool):
        token = bind_cycle_id()
        try:
            await self.run_cycle()
        except AggregatorException as e:
            self.stats["failed_cycles"] += 1
            self.stats["last_error"] = e.message
            self._record_cycle("error", error_type=e.code)
            self.logger.error(
                "Ingestion cycle failed",
                initial=initial,
                code=e.code,
                error=e.message,
                details=e.details
            )
        except Exception as e:
            self.stats["failed_cycles"] += 1
            self.stats["last_error"] = str(e)
            self._record_cycle("error", error_type="UNEXPECTED")
            self.logger.error("Unexpected ingestion error", initial=initial, error=str(e), exc_info=True)
        finally:
            reset_cycle_id(token)

    async def run_cycle(self) -> int:
        """Run one fetch-and-save sequence under the ingestion lock.

        Saves at most ``BATCH_LIMIT`` records in upstream order and aborts the
        rest of the batch on the first save error. Returns the number saved.
        """
        async with self.lock:
            return await self._cycle()

    async def _cycle(self) -> int:
        start_time = time.time()
        self.stats["cycles"] += 1

        records = await self.fetcher.fetch()
        saved = 0
        try:
            for record in records[:BATCH_LIMIT]:
                await self.repository.save(record)
                saved += 1
        finally:
            self.stats["records_saved"] += saved
            if self.metrics and saved:
                self.metrics.increment_counter("records_saved_total", amount=saved)

        duration = time.time() - start_time
        self._record_cycle("ok")
        if self.metrics:
            self.metrics.observe_histogram("ingestion_cycle_duration_seconds", duration)

        self.logger.info(
            "Ingestion cycle complete",
            fetched=len(records),
            saved=saved,
            duration_ms=round(duration * 1000, 2)
        )
        return saved

    def _record_cycle(self, status: str, error_type: Optional[str] = None):
        if not self.metrics:
            return
        self.metrics.increment_counter("ingestion_cycles_total", status=status)
        if error_type:
            self.metrics.record_error(error_type)

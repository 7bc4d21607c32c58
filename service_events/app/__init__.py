"""
Events Service package for the Events Aggregator.

This package ingests records from an upstream events feed and serves them
from a bounded cache backed by a bounded durable window. It provides:

- app.main: API surface for event lookup, listing and health.
- app.repository: Facade over the durable store and both caches.
- app.persistence: PostgreSQL store with bounded retention.
- app.cache: Redis per-record cache and aggregate list cache.
- app.ingestion: Upstream fetcher and the single-flight polling worker.

Guidelines:
- Only the repository holds backend handles.
- A cache is never written before the durable store accepts a record.
"""

"""
Cache package for Events Service.

Provides a Redis per-record snapshot cache bounded by a write-order
recency list, and a single TTL-bound aggregate blob for the full list.
"""

"""Idempotent, retrying delivery of Matomo tracking requests.

This module provides:
- A serial retry queue that collapses submissions per idempotency key
- Exponential backoff that yields to server-requested waits
- Pluggable idempotency storage with TTL retention
- Pageview, event, and goal tracking calls
"""

from matomo_access.tracking.models import (
    BackoffOptions,
    IdempotencyRecord,
    LastError,
    QueueStats,
    TrackEventInput,
    TrackGoalInput,
    TrackingOptions,
    TrackPageviewInput,
    TrackPageviewResult,
    TrackPayloadBase,
    TrackResult,
)
from matomo_access.tracking.queue import TrackingQueue, is_transient
from matomo_access.tracking.service import (
    TrackingService,
    generate_idempotency_key,
    generate_pv_id,
    normalize_tracking_url,
)
from matomo_access.tracking.store import IdempotencyStore, InMemoryIdempotencyStore


__all__ = [
    # Service
    "TrackingService",
    "generate_idempotency_key",
    "generate_pv_id",
    "normalize_tracking_url",
    # Queue
    "TrackingQueue",
    "is_transient",
    # Store
    "IdempotencyStore",
    "InMemoryIdempotencyStore",
    # Models
    "BackoffOptions",
    "IdempotencyRecord",
    "LastError",
    "QueueStats",
    "TrackEventInput",
    "TrackGoalInput",
    "TrackingOptions",
    "TrackPageviewInput",
    "TrackPageviewResult",
    "TrackPayloadBase",
    "TrackResult",
]

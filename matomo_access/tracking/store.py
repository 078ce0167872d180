"""Idempotency record storage."""

import time
from collections.abc import Callable
from typing import Protocol

from matomo_access.tracking.models import DEFAULT_IDEMPOTENCY_TTL_MS, IdempotencyRecord


# Upper bound between expiry sweeps triggered by writes
SWEEP_INTERVAL_MS = 60_000


class IdempotencyStore(Protocol):
    """Storage backend for settled tracking outcomes."""

    async def get(self, key: str) -> IdempotencyRecord | None:
        """Return the record for key, or None if absent or expired."""
        ...

    async def set(self, record: IdempotencyRecord) -> None:
        """Store a record under its key."""
        ...


class InMemoryIdempotencyStore:
    """Process-local store that forgets records after a TTL.

    Writes sweep expired records at most once per sweep interval, so keys
    that are never looked up again do not accumulate.
    """

    def __init__(
        self,
        ttl_ms: int = DEFAULT_IDEMPOTENCY_TTL_MS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the store.

        Args:
            ttl_ms: Retention, measured from the record's first submission.
            clock: Source of epoch seconds.
        """
        self._ttl_s = ttl_ms / 1000
        self._sweep_interval_s = min(ttl_ms, SWEEP_INTERVAL_MS) / 1000
        self._next_sweep_at = 0.0
        self._clock = clock
        self._records: dict[str, IdempotencyRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def _expired(self, record: IdempotencyRecord, now: float) -> bool:
        return record.created_at + self._ttl_s <= now

    async def get(self, key: str) -> IdempotencyRecord | None:
        record = self._records.get(key)
        if record is None:
            return None
        if self._expired(record, self._clock()):
            del self._records[key]
            return None
        return record

    async def set(self, record: IdempotencyRecord) -> None:
        if self._clock() >= self._next_sweep_at:
            self.sweep_expired()
        self._records[record.key] = record

    def sweep_expired(self) -> int:
        """Drop expired records and return how many were removed."""
        now = self._clock()
        self._next_sweep_at = now + self._sweep_interval_s
        expired = [key for key, record in self._records.items() if self._expired(record, now)]
        for key in expired:
            del self._records[key]
        return len(expired)

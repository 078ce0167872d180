"""TTL cache for report results with hit/miss/eviction telemetry."""

import json
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Annotated, Any, Literal, Protocol

import structlog
from pydantic import BaseModel, ConfigDict, Field

from matomo_access.reports.metrics import CacheMetrics, CacheStats


logger = structlog.get_logger()

DEFAULT_CACHE_TTL_MS = 60_000
DEFAULT_MAX_ENTRIES = 1_000

CacheEventType = Literal["hit", "miss", "set", "stale-eviction"]


class CacheOptions(BaseModel):
    """Report cache settings."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    ttl_ms: Annotated[int, Field(ge=0, le=86_400_000)] = DEFAULT_CACHE_TTL_MS
    max_entries: Annotated[int, Field(ge=1, le=1_000_000)] = DEFAULT_MAX_ENTRIES


class CacheEntry(BaseModel):
    """A cached report value."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    feature: str
    value: Any
    expires_at: float = Field(description="Epoch seconds")


class CacheEvent(BaseModel):
    """Emitted for every cache lookup outcome and write."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: CacheEventType
    feature: str
    key: str
    expires_at: float | None = None
    ttl_ms: int | None = None


CacheEventHandler = Callable[[CacheEvent], None]


class CacheStore(Protocol):
    """Storage backend for cache entries.

    Backends only store; expiry decisions belong to ReportCache.
    """

    async def get(self, key: str) -> CacheEntry | None:
        """Return the entry for key, expired or not."""
        ...

    async def set(self, key: str, entry: CacheEntry) -> None:
        """Store an entry, replacing any previous one."""
        ...

    async def delete(self, key: str) -> None:
        """Remove an entry if present."""
        ...

    async def feature_counts(self) -> dict[str, int]:
        """Count stored entries per feature."""
        ...


class InMemoryCacheStore:
    """Bounded in-process store with least-recently-used eviction."""

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        """Initialize the store.

        Args:
            max_entries: Capacity; the least recently used key is dropped
                when it is exceeded.
        """
        self._max_entries = max_entries
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is not None:
            self._entries.move_to_end(key)
        return entry

    async def set(self, key: str, entry: CacheEntry) -> None:
        self._entries[key] = entry
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def feature_counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for entry in self._entries.values():
            counts[entry.feature] = counts.get(entry.feature, 0) + 1
        return counts

    def sweep_expired(self, now: float | None = None) -> int:
        """Drop every expired entry.

        Args:
            now: Current epoch seconds (default: time.time()).

        Returns:
            Number of entries removed.
        """
        current = now if now is not None else time.time()
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= current]
        for key in expired:
            del self._entries[key]
        return len(expired)


def _prune(value: Any) -> Any:
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json", exclude_none=True)
    if isinstance(value, dict):
        return {str(k): _prune(v) for k, v in value.items() if v is not None}
    if isinstance(value, list | tuple):
        return [_prune(item) for item in value]
    return value


def make_cache_key(feature: str, query: Any) -> str:
    """Build a stable cache key for a report request.

    Keys are sorted and None-valued fields dropped, so an omitted
    optional parameter and an explicit None share one entry.

    Args:
        feature: Report feature.
        query: Request parameters (model or mapping).

    Returns:
        Canonical JSON string.
    """
    return json.dumps(
        {"feature": feature, "input": _prune(query)},
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )


class ReportCache:
    """Lazy-expiry TTL cache in front of report fetches.

    Entries are only evicted when a lookup finds them past expiry (or by
    capacity in the backing store).
    """

    def __init__(
        self,
        store: CacheStore | None = None,
        options: CacheOptions | None = None,
        on_event: CacheEventHandler | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the cache.

        Args:
            store: Backing store (default: InMemoryCacheStore).
            options: TTL and capacity.
            on_event: Observer called for every cache event.
            clock: Source of epoch seconds.
        """
        self._options = options or CacheOptions()
        self._store = (
            store if store is not None else InMemoryCacheStore(self._options.max_entries)
        )
        self._on_event = on_event
        self._clock = clock
        self._metrics = CacheMetrics()
        self._log = logger.bind(component="reports")

    @property
    def ttl_ms(self) -> int:
        """Get the entry time-to-live."""
        return self._options.ttl_ms

    @property
    def store(self) -> CacheStore:
        """Get the backing store."""
        return self._store

    @property
    def metrics(self) -> CacheMetrics:
        """Get the cache counters."""
        return self._metrics

    def _emit(self, event: CacheEvent) -> None:
        self._metrics.record(event.feature, event.type)
        self._log.debug(
            "cache_event",
            event_type=event.type,
            feature=event.feature,
            ttl_ms=event.ttl_ms,
        )
        if self._on_event is not None:
            self._on_event(event)

    async def lookup(self, feature: str, key: str) -> CacheEntry | None:
        """Look up a fresh entry.

        Args:
            feature: Report feature.
            key: Cache key.

        Returns:
            The entry on a hit, None on a miss (stale entries are evicted).
        """
        entry = await self._store.get(key)
        if entry is None:
            self._emit(CacheEvent(type="miss", feature=feature, key=key))
            return None

        now = self._clock()
        if entry.expires_at <= now:
            await self._store.delete(key)
            self._emit(CacheEvent(type="stale-eviction", feature=feature, key=key))
            self._emit(CacheEvent(type="miss", feature=feature, key=key))
            return None

        self._emit(
            CacheEvent(
                type="hit",
                feature=feature,
                key=key,
                expires_at=entry.expires_at,
                ttl_ms=round((entry.expires_at - now) * 1000),
            )
        )
        return entry

    async def store_value(self, feature: str, key: str, value: Any) -> CacheEntry:
        """Cache a value for the configured TTL.

        Args:
            feature: Report feature.
            key: Cache key.
            value: Value to cache.

        Returns:
            The stored entry.
        """
        expires_at = self._clock() + self._options.ttl_ms / 1000
        entry = CacheEntry(feature=feature, value=value, expires_at=expires_at)
        await self._store.set(key, entry)
        self._emit(
            CacheEvent(
                type="set",
                feature=feature,
                key=key,
                expires_at=expires_at,
                ttl_ms=self._options.ttl_ms,
            )
        )
        return entry

    async def stats(self) -> CacheStats:
        """Snapshot counters and current entry counts."""
        return self._metrics.snapshot(await self._store.feature_counts())


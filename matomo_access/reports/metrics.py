"""Per-feature counters for the report cache."""

from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict


@dataclass
class FeatureCounters:
    """Monotonic counters for one feature."""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    stale_evictions: int = 0


_EVENT_FIELDS = {
    "hit": "hits",
    "miss": "misses",
    "set": "sets",
    "stale-eviction": "stale_evictions",
}


class CacheCounterSnapshot(BaseModel):
    """Counters at a point in time."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    hits: int = 0
    misses: int = 0
    sets: int = 0
    stale_evictions: int = 0
    entries: int = 0

    @property
    def lookups(self) -> int:
        """Total lookups (hits plus misses)."""
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float | None:
        """Hit percentage in [0, 100], or None before any lookup."""
        if self.lookups == 0:
            return None
        return self.hits / self.lookups * 100


class FeatureCacheStats(CacheCounterSnapshot):
    """Counters for one feature."""

    feature: str


class CacheStats(BaseModel):
    """Cache counters in total and per feature."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    total: CacheCounterSnapshot
    features: list[FeatureCacheStats]


@dataclass
class CacheMetrics:
    """Counters owned by one ReportCache instance."""

    features: dict[str, FeatureCounters] = field(default_factory=dict)

    def record(self, feature: str, event_type: str) -> None:
        """Increment the counter matching a cache event.

        Args:
            feature: Report feature.
            event_type: hit, miss, set, or stale-eviction.
        """
        counters = self.features.setdefault(feature, FeatureCounters())
        name = _EVENT_FIELDS[event_type]
        setattr(counters, name, getattr(counters, name) + 1)

    def snapshot(self, entry_counts: dict[str, int] | None = None) -> CacheStats:
        """Build a stats snapshot.

        Args:
            entry_counts: Stored entries per feature.

        Returns:
            CacheStats sorted by feature name.
        """
        counts = entry_counts or {}
        features = [
            FeatureCacheStats(
                feature=name,
                hits=counters.hits,
                misses=counters.misses,
                sets=counters.sets,
                stale_evictions=counters.stale_evictions,
                entries=counts.get(name, 0),
            )
            for name, counters in sorted(self.features.items())
        ]
        total = CacheCounterSnapshot(
            hits=sum(f.hits for f in features),
            misses=sum(f.misses for f in features),
            sets=sum(f.sets for f in features),
            stale_evictions=sum(f.stale_evictions for f in features),
            entries=sum(counts.values()),
        )
        return CacheStats(total=total, features=features)

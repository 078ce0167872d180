"""Health aggregation over the request client, report cache, and tracking queue."""

import time
from collections.abc import Awaitable, Callable, Iterable
from datetime import UTC, datetime
from typing import Any

import structlog

from matomo_access.errors import MatomoApiError
from matomo_access.fetch import MatomoHttpClient
from matomo_access.health.models import (
    CacheHealthThresholds,
    CheckStatus,
    ComponentType,
    HealthCheck,
    HealthState,
    HealthStatus,
    HealthThresholds,
    LatencyHealthThresholds,
    QueueHealthThresholds,
)
from matomo_access.health.probes import fetch_version
from matomo_access.reports.metrics import CacheCounterSnapshot, CacheStats
from matomo_access.tracking.models import QueueStats


logger = structlog.get_logger()

CacheStatsProvider = Callable[[], Awaitable[CacheStats]]
QueueStatsProvider = Callable[[], QueueStats]


def classify_latency(duration_ms: float, thresholds: LatencyHealthThresholds) -> CheckStatus:
    """Classify an API response time."""
    if duration_ms >= thresholds.fail_ms:
        return CheckStatus.FAIL
    if duration_ms >= thresholds.warn_ms:
        return CheckStatus.WARN
    return CheckStatus.PASS


def classify_cache(
    counters: CacheCounterSnapshot, thresholds: CacheHealthThresholds
) -> CheckStatus:
    """Classify the cache hit rate.

    Passes until ``sample_size`` lookups have been observed.
    """
    if counters.lookups < thresholds.sample_size:
        return CheckStatus.PASS
    hit_rate = counters.hit_rate or 0.0
    if hit_rate < thresholds.fail_hit_rate:
        return CheckStatus.FAIL
    if hit_rate < thresholds.warn_hit_rate:
        return CheckStatus.WARN
    return CheckStatus.PASS


def backlog_age_ms(stats: QueueStats, now: float) -> float:
    """Milliseconds since the oldest pending item was queued."""
    if stats.oldest_pending_at is None:
        return 0.0
    return max(0.0, (now - stats.oldest_pending_at) * 1000)


def cooldown_remaining_ms(stats: QueueStats, now: float) -> float:
    """Milliseconds left in the retry cooldown."""
    if stats.cooldown_until is None or stats.cooldown_until <= now:
        return 0.0
    return (stats.cooldown_until - now) * 1000


def classify_queue(
    stats: QueueStats, thresholds: QueueHealthThresholds, now: float
) -> CheckStatus:
    """Classify the tracking queue.

    Backlog size and backlog age are judged independently and the more
    severe outcome wins; an active cooldown is at least a warning.
    """
    backlog = stats.backlog
    age_ms = backlog_age_ms(stats, now)

    by_count = CheckStatus.PASS
    if backlog >= thresholds.pending_fail:
        by_count = CheckStatus.FAIL
    elif backlog >= thresholds.pending_warn:
        by_count = CheckStatus.WARN

    by_age = CheckStatus.PASS
    if age_ms >= thresholds.age_fail_ms:
        by_age = CheckStatus.FAIL
    elif age_ms >= thresholds.age_warn_ms:
        by_age = CheckStatus.WARN

    status = max(by_count, by_age, key=lambda s: s.severity)
    if status is CheckStatus.PASS and cooldown_remaining_ms(stats, now) > 0:
        return CheckStatus.WARN
    return status


def rollup(checks: Iterable[HealthCheck]) -> HealthState:
    """Any fail is unhealthy, otherwise any warn is degraded."""
    statuses = {check.status for check in checks}
    if CheckStatus.FAIL in statuses:
        return HealthState.UNHEALTHY
    if CheckStatus.WARN in statuses:
        return HealthState.DEGRADED
    return HealthState.HEALTHY


class HealthAggregator:
    """Produce a health status from live component state.

    Checks:
    - matomo-api: version probe latency
    - reports-cache: hit rate once enough lookups were seen
    - tracking-queue: backlog size, backlog age, and cooldown
    - site-access: optional site lookup
    """

    def __init__(
        self,
        http: MatomoHttpClient,
        cache_stats: CacheStatsProvider,
        queue_stats: QueueStatsProvider,
        thresholds: HealthThresholds | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the aggregator.

        Args:
            http: Request client to probe.
            cache_stats: Coroutine returning report cache counters.
            queue_stats: Callable returning tracking queue counters.
            thresholds: Warn/fail limits.
            clock: Source of epoch seconds.
        """
        self._http = http
        self._cache_stats = cache_stats
        self._queue_stats = queue_stats
        self._thresholds = thresholds or HealthThresholds()
        self._clock = clock
        self._log = logger.bind(component="health")

    @property
    def thresholds(self) -> HealthThresholds:
        """Get the configured thresholds."""
        return self._thresholds

    async def get_health_status(
        self,
        site_id: int | None = None,
        include_details: bool = False,
    ) -> HealthStatus:
        """Run every check and roll the results up.

        Args:
            site_id: Site to verify when details are requested.
            include_details: Also run the site-access check.

        Returns:
            HealthStatus with one entry per check.
        """
        now = self._clock()
        timestamp = datetime.fromtimestamp(now, UTC).isoformat()

        checks = [
            await self._check_api(timestamp),
            await self._check_cache(timestamp),
            self._check_queue(timestamp, now),
        ]
        if include_details and site_id is not None:
            checks.append(await self._check_site(timestamp, site_id))

        status = rollup(checks)
        self._log.info(
            "health_evaluated",
            status=status.value,
            degraded_checks=[c.name for c in checks if c.status is not CheckStatus.PASS],
        )
        return HealthStatus(status=status, timestamp=timestamp, checks=checks)

    async def _check_api(self, timestamp: str) -> HealthCheck:
        thresholds = self._thresholds.latency
        start_ns = time.perf_counter_ns()
        try:
            probe = await fetch_version(self._http)
        except MatomoApiError as e:
            return HealthCheck(
                name="matomo-api",
                status=CheckStatus.FAIL,
                component_type=ComponentType.SERVICE,
                observed_value=0,
                observed_unit="ms",
                time=timestamp,
                output=e.message,
                details={"errorKind": e.kind.value if e.kind else None},
            )

        duration_ms = round((time.perf_counter_ns() - start_ns) / 1_000_000)
        details: dict[str, Any] = {
            "method": probe.method,
            "warnMs": thresholds.warn_ms,
            "failMs": thresholds.fail_ms,
            "avgLatencyMs": round(self._http.metrics.avg_duration_ms, 2),
        }
        if probe.version is not None:
            details["version"] = probe.version
        return HealthCheck(
            name="matomo-api",
            status=classify_latency(duration_ms, thresholds),
            component_type=ComponentType.SERVICE,
            observed_value=duration_ms,
            observed_unit="ms",
            time=timestamp,
            output=f"API responded in {duration_ms}ms",
            details=details,
        )

    async def _check_cache(self, timestamp: str) -> HealthCheck:
        thresholds = self._thresholds.cache
        total = (await self._cache_stats()).total
        hit_rate = round(total.hit_rate or 0.0, 2)
        return HealthCheck(
            name="reports-cache",
            status=classify_cache(total, thresholds),
            component_type=ComponentType.CACHE,
            observed_value=hit_rate,
            observed_unit="%",
            time=timestamp,
            output=f"Hit rate: {hit_rate:.1f}% ({total.hits}/{total.lookups} requests)",
            details={
                "hitRate": hit_rate,
                "hits": total.hits,
                "misses": total.misses,
                "sets": total.sets,
                "staleEvictions": total.stale_evictions,
                "entries": total.entries,
                "sampleSize": thresholds.sample_size,
                "warnHitRate": thresholds.warn_hit_rate,
                "failHitRate": thresholds.fail_hit_rate,
            },
        )

    def _check_queue(self, timestamp: str, now: float) -> HealthCheck:
        stats = self._queue_stats()
        age_ms = round(backlog_age_ms(stats, now))
        cooldown_ms = round(cooldown_remaining_ms(stats, now))

        parts = [
            f"pending={stats.pending}",
            f"inflight={stats.inflight}",
            f"backlogAgeMs={age_ms}",
        ]
        if stats.last_backoff_ms is not None:
            parts.append(f"lastBackoffMs={stats.last_backoff_ms}")
        if stats.last_retry_status is not None:
            parts.append(f"lastRetryStatus={stats.last_retry_status}")
        if cooldown_ms > 0:
            parts.append(f"cooldownMs={cooldown_ms}")

        return HealthCheck(
            name="tracking-queue",
            status=classify_queue(stats, self._thresholds.queue, now),
            component_type=ComponentType.QUEUE,
            observed_value=stats.backlog,
            observed_unit="pending",
            time=timestamp,
            output=", ".join(parts),
            details={
                "pending": stats.pending,
                "inflight": stats.inflight,
                "totalProcessed": stats.total_processed,
                "totalRetried": stats.total_retried,
                "lastError": stats.last_error.model_dump() if stats.last_error else None,
                "lastRetryAt": stats.last_retry_at,
                "lastBackoffMs": stats.last_backoff_ms,
                "cooldownUntil": stats.cooldown_until,
                "lastRetryStatus": stats.last_retry_status,
                "oldestPendingAt": stats.oldest_pending_at,
                "backlogAgeMs": age_ms,
            },
        )

    async def _check_site(self, timestamp: str, site_id: int) -> HealthCheck:
        try:
            await self._http.get_data("SitesManager.getSiteFromId", {"idSite": site_id})
        except MatomoApiError as e:
            status, output = CheckStatus.FAIL, e.message
        else:
            status, output = CheckStatus.PASS, f"Site ID {site_id} accessible"
        return HealthCheck(
            name="site-access",
            status=status,
            component_type=ComponentType.SERVICE,
            time=timestamp,
            output=output,
        )

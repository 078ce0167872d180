"""Client facade wiring the request, report, tracking, and health layers."""

import time
from collections.abc import Callable
from typing import Any

import httpx
import structlog

from matomo_access.config import ClientConfig
from matomo_access.fetch import MatomoHttpClient, RateLimitObserver, RateLimitState
from matomo_access.health import (
    DiagnosticsResult,
    HealthAggregator,
    HealthStatus,
    run_diagnostics,
)
from matomo_access.reports import (
    CacheEventHandler,
    CacheStats,
    CacheStore,
    ReportCache,
    ReportQuery,
    ReportsService,
)
from matomo_access.tracking import (
    IdempotencyRecord,
    IdempotencyStore,
    QueueStats,
    TrackEventInput,
    TrackGoalInput,
    TrackingService,
    TrackPageviewInput,
    TrackPageviewResult,
    TrackResult,
)


logger = structlog.get_logger()


class MatomoClient:
    """Single entry point for reports, tracking, and health.

    Calls that need a site fall back to ``default_site_id`` when none is
    passed.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        cache_store: CacheStore | None = None,
        idempotency_store: IdempotencyStore | None = None,
        on_rate_limit: RateLimitObserver | None = None,
        on_cache_event: CacheEventHandler | None = None,
        http_client: httpx.AsyncClient | None = None,
        tracking_http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the client.

        Args:
            config: Validated client configuration.
            cache_store: Report cache backend (default: in-memory).
            idempotency_store: Tracking idempotency backend (default: in-memory).
            on_rate_limit: Observer for reporting API cooldowns.
            on_cache_event: Observer for report cache events.
            http_client: httpx client for the reporting API (owned by the caller).
            tracking_http_client: httpx client for tracking (owned by the caller).
            clock: Source of epoch seconds.
        """
        self._config = config
        self._http = MatomoHttpClient(
            config.endpoint,
            config.http,
            on_rate_limit=on_rate_limit,
            http_client=http_client,
            clock=clock,
        )
        cache = ReportCache(cache_store, config.cache, on_event=on_cache_event, clock=clock)
        self._reports = ReportsService(self._http, cache, clock=clock)
        self._tracking = TrackingService(
            config.tracking_url_base,
            token=config.token,
            options=config.tracking,
            store=idempotency_store,
            http_client=tracking_http_client,
            clock=clock,
        )
        self._health = HealthAggregator(
            self._http,
            self._reports.cache_stats,
            self._tracking.queue_stats,
            config.health,
            clock=clock,
        )
        self._log = logger.bind(component="client")

    @property
    def config(self) -> ClientConfig:
        """Get the configuration."""
        return self._config

    @property
    def http(self) -> MatomoHttpClient:
        """Get the reporting API client."""
        return self._http

    @property
    def reports(self) -> ReportsService:
        """Get the report service."""
        return self._reports

    @property
    def tracking(self) -> TrackingService:
        """Get the tracking service."""
        return self._tracking

    async def aclose(self) -> None:
        """Drain tracking and close owned HTTP clients."""
        await self._tracking.aclose()
        await self._http.aclose()

    async def __aenter__(self) -> "MatomoClient":
        """Async context manager entry."""
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Async context manager exit."""
        await self.aclose()

    def resolve_site_id(self, site_id: int | None = None) -> int:
        """Pick the explicit site id or the configured default.

        Raises:
            ValueError: If neither is available.
        """
        value = site_id if site_id is not None else self._config.default_site_id
        if value is None:
            raise ValueError("siteId is required")
        return value

    # ===== Reports =====

    async def get_report(
        self,
        feature: str,
        site_id: int | None = None,
        *,
        period: str = "day",
        date: str = "today",
        segment: str | None = None,
        limit: int | None = None,
    ) -> Any:
        """Fetch any catalogued report feature.

        Args:
            feature: Report feature, e.g. "keyNumbers".
            site_id: Site to query (default: configured site).
            period: Matomo period.
            date: Matomo date expression.
            segment: Optional segment definition.
            limit: Row limit for row reports.

        Returns:
            Annotated record or rows.
        """
        query = ReportQuery(
            site_id=self.resolve_site_id(site_id),
            period=period,
            date=date,
            segment=segment,
            limit=limit,
        )
        return await self._reports.fetch(feature, query)

    async def get_key_numbers(self, site_id: int | None = None, **options: Any) -> dict[str, Any]:
        """Visits summary with page view totals."""
        return await self.get_report("keyNumbers", site_id, **options)

    async def get_most_popular_urls(
        self, site_id: int | None = None, **options: Any
    ) -> list[dict[str, Any]]:
        """Most viewed page URLs."""
        return await self.get_report("popularUrls", site_id, **options)

    async def get_top_referrers(
        self, site_id: int | None = None, **options: Any
    ) -> list[dict[str, Any]]:
        """Visits by referrer type."""
        return await self.get_report("topReferrers", site_id, **options)

    async def get_events(self, site_id: int | None = None, **options: Any) -> list[dict[str, Any]]:
        """Event actions."""
        return await self.get_report("events", site_id, **options)

    async def get_entry_pages(
        self, site_id: int | None = None, **options: Any
    ) -> list[dict[str, Any]]:
        """Landing pages."""
        return await self.get_report("entryPages", site_id, **options)

    async def get_campaigns(self, site_id: int | None = None, **options: Any) -> list[dict[str, Any]]:
        """Campaign referrers."""
        return await self.get_report("campaigns", site_id, **options)

    async def get_ecommerce_overview(
        self, site_id: int | None = None, **options: Any
    ) -> dict[str, Any]:
        """Ecommerce order totals."""
        return await self.get_report("ecommerceOverview", site_id, **options)

    async def get_event_categories(
        self, site_id: int | None = None, **options: Any
    ) -> list[dict[str, Any]]:
        """Event categories."""
        return await self.get_report("eventCategories", site_id, **options)

    async def get_device_types(
        self, site_id: int | None = None, **options: Any
    ) -> list[dict[str, Any]]:
        """Visits by device type."""
        return await self.get_report("deviceTypes", site_id, **options)

    async def get_traffic_channels(
        self, site_id: int | None = None, **options: Any
    ) -> list[dict[str, Any]]:
        """Visits by traffic channel."""
        return await self.get_report("trafficChannels", site_id, **options)

    async def cache_stats(self) -> CacheStats:
        """Snapshot report cache counters."""
        return await self._reports.cache_stats()

    @property
    def rate_limit_state(self) -> RateLimitState:
        """Get the reporting API rate-limit snapshot."""
        return self._http.rate_limit_state

    # ===== Tracking =====

    async def track_pageview(
        self, url: str, site_id: int | None = None, **fields: Any
    ) -> TrackPageviewResult:
        """Record a page view.

        Args:
            url: Page URL.
            site_id: Site to track (default: configured site).
            **fields: Further TrackPageviewInput fields.
        """
        data = TrackPageviewInput(site_id=self.resolve_site_id(site_id), url=url, **fields)
        return await self._tracking.track_pageview(data)

    async def track_event(
        self, category: str, action: str, site_id: int | None = None, **fields: Any
    ) -> TrackResult:
        """Record a custom event.

        Args:
            category: Event category.
            action: Event action.
            site_id: Site to track (default: configured site).
            **fields: Further TrackEventInput fields.
        """
        data = TrackEventInput(
            site_id=self.resolve_site_id(site_id), category=category, action=action, **fields
        )
        return await self._tracking.track_event(data)

    async def track_goal(
        self, goal_id: int, site_id: int | None = None, **fields: Any
    ) -> TrackResult:
        """Record a goal conversion.

        Args:
            goal_id: Matomo goal id.
            site_id: Site to track (default: configured site).
            **fields: Further TrackGoalInput fields.
        """
        data = TrackGoalInput(site_id=self.resolve_site_id(site_id), goal_id=goal_id, **fields)
        return await self._tracking.track_goal(data)

    def queue_stats(self) -> QueueStats:
        """Snapshot the tracking queue."""
        return self._tracking.queue_stats()

    async def get_idempotency_record(self, key: str) -> IdempotencyRecord | None:
        """Look up the stored outcome of a tracking request."""
        return await self._tracking.get_idempotency_record(key)

    # ===== Health =====

    async def get_health_status(
        self, site_id: int | None = None, include_details: bool = False
    ) -> HealthStatus:
        """Aggregate API, cache, and queue health.

        Args:
            site_id: Site for the optional access check (default: configured site).
            include_details: Also verify site access.
        """
        target = site_id if site_id is not None else self._config.default_site_id
        return await self._health.get_health_status(target, include_details)

    async def run_diagnostics(self, site_id: int | None = None) -> DiagnosticsResult:
        """Check reachability, token, and site access in order."""
        self._log.info("diagnostics_started")
        return await run_diagnostics(self._http, lambda: self.resolve_site_id(site_id))

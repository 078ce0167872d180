"""Cached report fetching with current-vs-previous period comparisons."""

import asyncio
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Annotated, Any

import structlog
from pydantic import BaseModel, ConfigDict, Field

from matomo_access.errors import MatomoApiError
from matomo_access.fetch import MatomoHttpClient, ParamValue
from matomo_access.reports.cache import ReportCache, make_cache_key
from matomo_access.reports.catalogue import (
    ReportDefinition,
    Supplement,
    get_report_definition,
)
from matomo_access.reports.comparisons import annotate_record, annotate_rows
from matomo_access.reports.metrics import CacheStats
from matomo_access.reports.parsers import (
    RecordPayload,
    RowsPayload,
    parse_record,
    parse_report,
)
from matomo_access.reports.periods import resolve_previous_period_date


logger = structlog.get_logger()


class ReportQuery(BaseModel):
    """Parameters shared by every report feature."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    site_id: Annotated[int, Field(ge=1)]
    period: str = "day"
    date: str = "today"
    segment: str | None = None
    limit: Annotated[int, Field(ge=1, le=10_000)] | None = None


class ReportsService:
    """Report operations backed by a TTL cache.

    On a cache miss the current and previous periods are fetched
    concurrently, parsed, and diffed; only the annotated current value is
    cached.
    """

    def __init__(
        self,
        http: MatomoHttpClient,
        cache: ReportCache | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the service.

        Args:
            http: Request client used for every upstream call.
            cache: Report cache (default: in-memory with default TTL).
            clock: Source of epoch seconds for relative dates.
        """
        self._http = http
        self._cache = cache or ReportCache(clock=clock)
        self._clock = clock
        self._log = logger.bind(component="reports")

    @property
    def cache(self) -> ReportCache:
        """Get the report cache."""
        return self._cache

    async def fetch(self, feature: str, query: ReportQuery) -> Any:
        """Fetch a report, serving it from cache when fresh.

        Args:
            feature: Report feature, e.g. "popularUrls".
            query: Site, period, date, and optional segment and limit.

        Returns:
            A record dict or a list of row dicts, each with a
            ``comparisons`` map.

        Raises:
            KeyError: If the feature is unknown.
            MatomoApiError: If the current or previous period fetch fails.
        """
        definition = get_report_definition(feature)
        key = make_cache_key(feature, query)

        entry = await self._cache.lookup(feature, key)
        if entry is not None:
            return entry.value

        now = datetime.fromtimestamp(self._clock(), UTC)
        previous_date = resolve_previous_period_date(query.period, query.date, now)

        if previous_date is None:
            current = await self._load(definition, query, query.date)
            previous = None
        else:
            current, previous = await asyncio.gather(
                self._load(definition, query, query.date),
                self._load(definition, query, previous_date),
            )

        if isinstance(current, RowsPayload):
            value: Any = annotate_rows(
                current.rows,
                previous.rows if isinstance(previous, RowsPayload) else None,
            )
        else:
            value = annotate_record(
                current.values,
                previous.values if isinstance(previous, RecordPayload) else None,
            )

        self._log.info(
            "report_fetched",
            feature=feature,
            site_id=query.site_id,
            period=query.period,
            previous_date=previous_date,
        )
        await self._cache.store_value(feature, key, value)
        return value

    def _build_params(
        self, definition: ReportDefinition, query: ReportQuery, date_value: str
    ) -> dict[str, ParamValue]:
        params: dict[str, ParamValue] = {
            "idSite": query.site_id,
            "period": query.period,
            "date": date_value,
            "segment": query.segment,
        }
        if definition.shape == "rows":
            params["filter_limit"] = (
                query.limit if query.limit is not None else definition.default_limit
            )
        params.update(definition.fixed_params)
        return params

    async def _load(
        self, definition: ReportDefinition, query: ReportQuery, date_value: str
    ) -> RecordPayload | RowsPayload:
        params = self._build_params(definition, query, date_value)
        raw = await self._http.get_data(definition.method, params)
        payload = parse_report(definition.shape, raw, definition.scalar_field)

        if isinstance(payload, RecordPayload) and definition.supplements:
            values = dict(payload.values)
            base_params = {
                "idSite": query.site_id,
                "period": query.period,
                "date": date_value,
                "segment": query.segment,
            }
            for supplement in definition.supplements:
                values.update(await self._load_supplement(supplement, base_params))
            payload = RecordPayload(values=values)

        return payload

    async def _load_supplement(
        self, supplement: Supplement, params: dict[str, ParamValue]
    ) -> dict[str, Any]:
        """Fetch supplementary fields; failures only cost those fields."""
        try:
            raw = await self._http.get_data(supplement.method, params)
        except MatomoApiError as e:
            self._log.warning(
                "report_supplement_failed",
                api_method=supplement.method,
                error_kind=e.kind.value if e.kind else None,
                error=e.message,
            )
            return {}
        record = parse_record(raw).values
        return {name: record[name] for name in supplement.fields if name in record}

    async def get_key_numbers(self, query: ReportQuery) -> dict[str, Any]:
        """Visits summary with page view totals."""
        return await self.fetch("keyNumbers", query)

    async def get_most_popular_urls(self, query: ReportQuery) -> list[dict[str, Any]]:
        """Most viewed page URLs."""
        return await self.fetch("popularUrls", query)

    async def get_top_referrers(self, query: ReportQuery) -> list[dict[str, Any]]:
        """Visits by referrer type."""
        return await self.fetch("topReferrers", query)

    async def get_events(self, query: ReportQuery) -> list[dict[str, Any]]:
        """Event actions."""
        return await self.fetch("events", query)

    async def get_entry_pages(self, query: ReportQuery) -> list[dict[str, Any]]:
        """Landing pages."""
        return await self.fetch("entryPages", query)

    async def get_campaigns(self, query: ReportQuery) -> list[dict[str, Any]]:
        """Campaign referrers."""
        return await self.fetch("campaigns", query)

    async def get_ecommerce_overview(self, query: ReportQuery) -> dict[str, Any]:
        """Ecommerce order totals."""
        return await self.fetch("ecommerceOverview", query)

    async def get_event_categories(self, query: ReportQuery) -> list[dict[str, Any]]:
        """Event categories."""
        return await self.fetch("eventCategories", query)

    async def get_device_types(self, query: ReportQuery) -> list[dict[str, Any]]:
        """Visits by device type."""
        return await self.fetch("deviceTypes", query)

    async def get_traffic_channels(self, query: ReportQuery) -> list[dict[str, Any]]:
        """Visits by traffic channel."""
        return await self.fetch("trafficChannels", query)

    async def cache_stats(self) -> CacheStats:
        """Snapshot the cache counters."""
        return await self._cache.stats()

"""Report fetching, caching, and period comparisons.

This module provides:
- A catalogue of report features and the Matomo methods behind them
- A lazy-expiry TTL cache with per-feature counters and events
- Previous-period resolution and field-by-field comparison deltas
- Parsers that collapse Matomo payload variants into records or rows
"""

from matomo_access.reports.cache import (
    CacheEntry,
    CacheEvent,
    CacheEventHandler,
    CacheOptions,
    CacheStore,
    InMemoryCacheStore,
    ReportCache,
    make_cache_key,
)
from matomo_access.reports.catalogue import (
    REPORTS,
    ReportDefinition,
    Supplement,
    get_report_definition,
)
from matomo_access.reports.comparisons import (
    ComparisonDelta,
    DeltaDirection,
    annotate_record,
    annotate_rows,
    build_comparison_map,
    compute_comparison_delta,
)
from matomo_access.reports.metrics import (
    CacheCounterSnapshot,
    CacheMetrics,
    CacheStats,
    FeatureCacheStats,
)
from matomo_access.reports.parsers import (
    RecordPayload,
    ReportPayload,
    RowsPayload,
    parse_record,
    parse_report,
    parse_rows,
    to_finite_number,
)
from matomo_access.reports.periods import (
    parse_matomo_date,
    resolve_previous_period_date,
    shift_months,
)
from matomo_access.reports.service import ReportQuery, ReportsService


__all__ = [
    # Service
    "ReportQuery",
    "ReportsService",
    # Cache
    "CacheEntry",
    "CacheEvent",
    "CacheEventHandler",
    "CacheOptions",
    "CacheStore",
    "InMemoryCacheStore",
    "ReportCache",
    "make_cache_key",
    # Metrics
    "CacheCounterSnapshot",
    "CacheMetrics",
    "CacheStats",
    "FeatureCacheStats",
    # Catalogue
    "REPORTS",
    "ReportDefinition",
    "Supplement",
    "get_report_definition",
    # Comparisons
    "ComparisonDelta",
    "DeltaDirection",
    "annotate_record",
    "annotate_rows",
    "build_comparison_map",
    "compute_comparison_delta",
    # Parsers
    "RecordPayload",
    "ReportPayload",
    "RowsPayload",
    "parse_record",
    "parse_report",
    "parse_rows",
    "to_finite_number",
    # Periods
    "parse_matomo_date",
    "resolve_previous_period_date",
    "shift_months",
]

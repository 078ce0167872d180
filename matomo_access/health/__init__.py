"""Health status and diagnostics for the Matomo access layer.

This module provides:
- Threshold models with normalization
- Pure classification rules for latency, cache hit rate, and queue backlog
- A three-state rollup over the individual checks
- Ordered connectivity diagnostics (base URL, token, site access)
"""

from matomo_access.health.aggregator import (
    HealthAggregator,
    backlog_age_ms,
    classify_cache,
    classify_latency,
    classify_queue,
    cooldown_remaining_ms,
    rollup,
)
from matomo_access.health.diagnostics import (
    DiagnosticCheck,
    DiagnosticError,
    DiagnosticsResult,
    run_diagnostics,
    to_diagnostic_error,
)
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
    clamp_percentage,
)
from matomo_access.health.probes import (
    UserProbe,
    VersionProbe,
    extract_login,
    extract_version,
    fetch_token_user,
    fetch_version,
    is_method_unavailable,
)


__all__ = [
    # Aggregator
    "HealthAggregator",
    "backlog_age_ms",
    "classify_cache",
    "classify_latency",
    "classify_queue",
    "cooldown_remaining_ms",
    "rollup",
    # Diagnostics
    "DiagnosticCheck",
    "DiagnosticError",
    "DiagnosticsResult",
    "run_diagnostics",
    "to_diagnostic_error",
    # Models
    "CacheHealthThresholds",
    "CheckStatus",
    "ComponentType",
    "HealthCheck",
    "HealthState",
    "HealthStatus",
    "HealthThresholds",
    "LatencyHealthThresholds",
    "QueueHealthThresholds",
    "clamp_percentage",
    # Probes
    "UserProbe",
    "VersionProbe",
    "extract_login",
    "extract_version",
    "fetch_token_user",
    "fetch_version",
    "is_method_unavailable",
]

"""Resilient request layer for the Matomo reporting API.

This module provides:
- Authenticated async GET requests with per-attempt timeouts
- Configurable retry policy with exponential backoff and jitter
- Rate-limit header parsing and shared cooldown
- Metrics collection for observability
"""

from matomo_access.fetch.client import MatomoHttpClient, RateLimitObserver
from matomo_access.fetch.constants import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MIN_THROTTLE_MS,
    DEFAULT_TIMEOUT_MS,
    HTTP_STATUS_OK_MAX,
    HTTP_STATUS_OK_MIN,
    HTTP_STATUS_TOO_MANY_REQUESTS,
)
from matomo_access.fetch.metrics import RequestMetrics
from matomo_access.fetch.models import (
    EndpointConfig,
    HttpOptions,
    MatomoResponse,
    ParamValue,
    RateLimitEvent,
    RateLimitOptions,
    RateLimitState,
    RetryPolicy,
    is_retryable,
    normalize_api_url,
)
from matomo_access.fetch.rate_limit import (
    RateLimitTracker,
    parse_reset,
    parse_retry_after,
    read_rate_limit_headers,
    retry_delay_from_headers,
)


__all__ = [
    # Client
    "MatomoHttpClient",
    "RateLimitObserver",
    # Models
    "EndpointConfig",
    "HttpOptions",
    "MatomoResponse",
    "ParamValue",
    "RateLimitEvent",
    "RateLimitOptions",
    "RateLimitState",
    "RetryPolicy",
    "is_retryable",
    "normalize_api_url",
    # Rate limits
    "RateLimitTracker",
    "parse_reset",
    "parse_retry_after",
    "read_rate_limit_headers",
    "retry_delay_from_headers",
    # Constants
    "DEFAULT_MAX_ATTEMPTS",
    "DEFAULT_MIN_THROTTLE_MS",
    "DEFAULT_TIMEOUT_MS",
    "HTTP_STATUS_OK_MIN",
    "HTTP_STATUS_OK_MAX",
    "HTTP_STATUS_TOO_MANY_REQUESTS",
    # Metrics
    "RequestMetrics",
]

"""Resilient access layer for the Matomo reporting and tracking APIs."""

from matomo_access.client import MatomoClient
from matomo_access.config import ClientConfig, ConfigValidationError, load_client_config
from matomo_access.errors import (
    MatomoApiError,
    MatomoAuthError,
    MatomoClientError,
    MatomoNetworkError,
    MatomoParseError,
    MatomoPermissionError,
    MatomoRateLimitError,
    MatomoServerError,
)


__all__ = [
    "MatomoClient",
    "ClientConfig",
    "ConfigValidationError",
    "load_client_config",
    "MatomoApiError",
    "MatomoAuthError",
    "MatomoClientError",
    "MatomoNetworkError",
    "MatomoParseError",
    "MatomoPermissionError",
    "MatomoRateLimitError",
    "MatomoServerError",
]

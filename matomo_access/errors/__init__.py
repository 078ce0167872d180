"""Matomo error taxonomy.

Every failure surfaced by the library is a MatomoApiError subclass carrying
its kind, HTTP status, Matomo error code, remediation guidance, and any
rate-limit signals. Credentials never survive into an error instance.
"""

from matomo_access.errors.classifier import (
    classify_http_error,
    classify_result_error,
    extract_result_error,
)
from matomo_access.errors.exceptions import (
    ERROR_CLASSES,
    MatomoApiError,
    MatomoAuthError,
    MatomoClientError,
    MatomoNetworkError,
    MatomoParseError,
    MatomoPermissionError,
    MatomoRateLimitError,
    MatomoServerError,
    error_from_snapshot,
)
from matomo_access.errors.guidance import resolve_guidance
from matomo_access.errors.models import ErrorKind, ErrorSnapshot, RateLimitInfo
from matomo_access.errors.redact import (
    REDACTED_VALUE,
    redact_payload,
    redact_token,
    redact_url,
)


__all__ = [
    # Exceptions
    "MatomoApiError",
    "MatomoNetworkError",
    "MatomoParseError",
    "MatomoAuthError",
    "MatomoPermissionError",
    "MatomoRateLimitError",
    "MatomoClientError",
    "MatomoServerError",
    "ERROR_CLASSES",
    "error_from_snapshot",
    # Models
    "ErrorKind",
    "ErrorSnapshot",
    "RateLimitInfo",
    # Classification
    "classify_http_error",
    "classify_result_error",
    "extract_result_error",
    "resolve_guidance",
    # Redaction
    "REDACTED_VALUE",
    "redact_payload",
    "redact_token",
    "redact_url",
]

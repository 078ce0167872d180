"""Map HTTP responses and Matomo error payloads onto the error taxonomy."""

from typing import Any

from matomo_access.errors.exceptions import (
    MatomoApiError,
    MatomoAuthError,
    MatomoClientError,
    MatomoPermissionError,
    MatomoRateLimitError,
    MatomoServerError,
)
from matomo_access.errors.models import RateLimitInfo


HTTP_STATUS_UNAUTHORIZED = 401
HTTP_STATUS_FORBIDDEN = 403
HTTP_STATUS_TOO_MANY_REQUESTS = 429
HTTP_STATUS_SERVER_ERROR_MIN = 500


def extract_result_error(payload: Any) -> tuple[str | None, str | None] | None:
    """Extract an application-level error from a Matomo payload.

    Matomo reports failures either as ``{"error": "..."}`` or as
    ``{"result": "error", "message": "...", "code": ...}``, often with a
    200 status.

    Args:
        payload: Decoded response body.

    Returns:
        (message, code) tuple, or None if the payload is not an error.
    """
    if not isinstance(payload, dict):
        return None

    error = payload.get("error")
    if isinstance(error, str):
        return error, None

    result = payload.get("result")
    if isinstance(result, str) and result.lower() == "error":
        message = payload.get("message")
        code = payload.get("code")
        return (
            message if isinstance(message, str) else None,
            str(code) if isinstance(code, str | int) and not isinstance(code, bool) else None,
        )

    return None


def classify_http_error(
    status: int,
    endpoint: str,
    *,
    status_text: str | None = None,
    body_text: str | None = None,
    payload: Any = None,
    rate_limit: RateLimitInfo | None = None,
) -> MatomoApiError:
    """Classify a non-2xx response.

    Args:
        status: HTTP status code.
        endpoint: Request URL.
        status_text: HTTP reason phrase.
        body_text: Raw response body.
        payload: Decoded body, if it was JSON.
        rate_limit: Rate-limit signals seen on the response.

    Returns:
        The typed error for the response.
    """
    extracted = extract_result_error(payload)
    payload_message, code = extracted if extracted else (None, None)
    message = payload_message or body_text or status_text or "Matomo API error"

    details: dict[str, Any] = {
        "status": status,
        "code": code,
        "body": body_text,
        "endpoint": endpoint,
        "payload": payload,
        "rate_limit": rate_limit,
    }

    if status == HTTP_STATUS_UNAUTHORIZED:
        return MatomoAuthError(f"Matomo authentication failed: {message}", **details)

    if status == HTTP_STATUS_FORBIDDEN:
        return MatomoPermissionError(f"Matomo permission error: {message}", **details)

    if status == HTTP_STATUS_TOO_MANY_REQUESTS or (
        payload_message and "rate" in payload_message.lower()
    ):
        return MatomoRateLimitError(f"Matomo rate limit exceeded: {message}", **details)

    if status >= HTTP_STATUS_SERVER_ERROR_MIN:
        return MatomoServerError(
            f"Matomo server error ({status}): {message}", **details
        )

    return MatomoClientError(f"Matomo request failed ({status}): {message}", **details)


def classify_result_error(
    endpoint: str,
    payload: Any,
    rate_limit: RateLimitInfo | None = None,
) -> MatomoApiError:
    """Classify an error payload delivered with a 2xx status.

    Args:
        endpoint: Request URL.
        payload: Decoded response body.
        rate_limit: Rate-limit signals seen on the response.

    Returns:
        The typed error for the payload.
    """
    extracted = extract_result_error(payload)
    payload_message, code = extracted if extracted else (None, None)
    message = payload_message or "Matomo reported an error result."

    details: dict[str, Any] = {
        "code": code,
        "endpoint": endpoint,
        "payload": payload,
        "rate_limit": rate_limit,
    }

    normalized = message.lower()
    # Method names such as getUserByTokenAuth must not read as auth failures
    if "method" in normalized and "does not exist" in normalized:
        return MatomoClientError(f"Matomo request failed: {message}", **details)

    if "token" in normalized or "authentication" in normalized:
        return MatomoAuthError(f"Matomo authentication failed: {message}", **details)

    if "access denied" in normalized or "no view access" in normalized:
        return MatomoPermissionError(f"Matomo permission error: {message}", **details)

    if "rate" in normalized:
        return MatomoRateLimitError(f"Matomo rate limit exceeded: {message}", **details)

    return MatomoClientError(f"Matomo request failed: {message}", **details)

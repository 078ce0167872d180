"""Exception hierarchy for Matomo API and tracking failures."""

from typing import Any, ClassVar

from matomo_access.errors.guidance import resolve_guidance
from matomo_access.errors.models import ErrorKind, ErrorSnapshot, RateLimitInfo
from matomo_access.errors.redact import redact_payload, redact_token, redact_url


class MatomoApiError(Exception):
    """Base class for every failure raised while talking to Matomo.

    Credentials are stripped from the message, endpoint, body, and payload
    at construction time, so instances are safe to log or serialize.
    """

    kind: ClassVar[ErrorKind | None] = None

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        code: str | int | None = None,
        body: str | None = None,
        endpoint: str | None = None,
        payload: Any = None,
        rate_limit: RateLimitInfo | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            message: Human-readable description.
            status: HTTP status code, when a response was received.
            code: Matomo application error code.
            body: Raw response body.
            endpoint: Request URL.
            payload: Decoded response payload.
            rate_limit: Rate-limit signals seen on the response.
        """
        self.message = redact_token(message)
        super().__init__(self.message)
        self.status = status
        self.code = str(code) if code is not None else None
        self.body = redact_token(body) if body is not None else None
        self.endpoint = redact_url(endpoint) if endpoint is not None else None
        self.payload = redact_payload(payload)
        self.rate_limit = rate_limit
        self.guidance = resolve_guidance(self.kind, self.message, self.code)

    @property
    def retry_after_ms(self) -> int | None:
        """Server-requested wait before retrying, if any."""
        if self.rate_limit is None:
            return None
        return self.rate_limit.retry_after_ms

    def to_dict(self) -> dict[str, Any]:
        """Convert the error to a serializable dictionary.

        Returns:
            Dictionary without body or payload.
        """
        return {
            "name": type(self).__name__,
            "kind": self.kind.value if self.kind else None,
            "message": self.message,
            "status": self.status,
            "code": self.code,
            "guidance": self.guidance,
            "endpoint": self.endpoint,
            "rate_limit": self.rate_limit.model_dump(exclude_none=True)
            if self.rate_limit
            else None,
        }

    def to_snapshot(self) -> ErrorSnapshot:
        """Summarize the error for persistence."""
        return ErrorSnapshot(
            kind=self.kind,
            message=self.message,
            status=self.status,
            code=self.code,
        )


class MatomoNetworkError(MatomoApiError):
    """Matomo could not be reached or did not answer in time."""

    kind = ErrorKind.NETWORK


class MatomoParseError(MatomoApiError):
    """Matomo answered successfully with a body that is not valid JSON."""

    kind = ErrorKind.PARSE


class MatomoAuthError(MatomoApiError):
    """Matomo rejected the API token."""

    kind = ErrorKind.AUTH


class MatomoPermissionError(MatomoApiError):
    """The token lacks access to the requested resource."""

    kind = ErrorKind.PERMISSION


class MatomoRateLimitError(MatomoApiError):
    """Matomo throttled the request."""

    kind = ErrorKind.RATE_LIMIT


class MatomoClientError(MatomoApiError):
    """Matomo refused the request parameters."""

    kind = ErrorKind.CLIENT


class MatomoServerError(MatomoApiError):
    """Matomo failed with a 5xx response."""

    kind = ErrorKind.SERVER


ERROR_CLASSES: dict[ErrorKind, type[MatomoApiError]] = {
    ErrorKind.NETWORK: MatomoNetworkError,
    ErrorKind.PARSE: MatomoParseError,
    ErrorKind.AUTH: MatomoAuthError,
    ErrorKind.PERMISSION: MatomoPermissionError,
    ErrorKind.RATE_LIMIT: MatomoRateLimitError,
    ErrorKind.CLIENT: MatomoClientError,
    ErrorKind.SERVER: MatomoServerError,
}


def error_from_snapshot(snapshot: ErrorSnapshot) -> MatomoApiError:
    """Rebuild a typed error from a persisted snapshot.

    Args:
        snapshot: Stored error summary.

    Returns:
        An error of the class matching the snapshot's kind.
    """
    error_cls = ERROR_CLASSES[snapshot.kind] if snapshot.kind else MatomoApiError
    return error_cls(snapshot.message, status=snapshot.status, code=snapshot.code)

"""Matomo tracking API client (pageviews, events, goals)."""

import json
import secrets
import time
from collections.abc import Callable

import httpx
import structlog
from pydantic import SecretStr

from matomo_access.errors import (
    MatomoNetworkError,
    classify_http_error,
    redact_token,
)
from matomo_access.fetch.constants import (
    HTTP_STATUS_OK_MAX,
    HTTP_STATUS_OK_MIN,
    LEGACY_TRACKING_PATH,
    TRACKING_PATH,
    USER_AGENT,
)
from matomo_access.fetch.rate_limit import read_rate_limit_headers, retry_delay_from_headers
from matomo_access.tracking.models import (
    IdempotencyRecord,
    QueueStats,
    TrackEventInput,
    TrackGoalInput,
    TrackingOptions,
    TrackPageviewInput,
    TrackPageviewResult,
    TrackPayloadBase,
    TrackResult,
)
from matomo_access.tracking.queue import TrackingParams, TrackingQueue
from matomo_access.tracking.store import IdempotencyStore


logger = structlog.get_logger()


def normalize_tracking_url(base_url: str) -> str:
    """Normalize a Matomo base URL to its tracking endpoint.

    URLs already ending in matomo.php or piwik.php are kept.

    Raises:
        ValueError: If the URL is empty.
    """
    trimmed = base_url.strip() if base_url else ""
    if not trimmed:
        raise ValueError("Matomo base URL is required for tracking")
    if trimmed.endswith((TRACKING_PATH, LEGACY_TRACKING_PATH)):
        return trimmed
    return f"{trimmed.rstrip('/')}/{TRACKING_PATH}"


def generate_pv_id() -> str:
    """Generate a 16 hex character page view id."""
    return secrets.token_hex(8)


def generate_idempotency_key() -> str:
    """Generate a random idempotency key."""
    return secrets.token_hex(16)


class TrackingService:
    """Send tracking requests through an idempotent retry queue."""

    def __init__(
        self,
        base_url: str,
        token: SecretStr | str | None = None,
        options: TrackingOptions | None = None,
        *,
        store: IdempotencyStore | None = None,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the service.

        Args:
            base_url: Matomo base URL or full tracking endpoint.
            token: Optional token_auth sent with every request.
            options: Retry, backoff, timeout, and idempotency settings.
            store: Idempotency store.
            http_client: Pre-built httpx client (owned by the caller).
            clock: Source of epoch seconds.
        """
        self._url = normalize_tracking_url(base_url)
        self._token = SecretStr(token) if isinstance(token, str) else token
        self._options = options or TrackingOptions()
        self._clock = clock
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(headers={"User-Agent": USER_AGENT})
        self._queue = TrackingQueue(self._post, self._options, store, clock=clock)
        self._log = logger.bind(component="tracking", tracking_url=self._url)

    @property
    def tracking_url(self) -> str:
        """Get the normalized tracking endpoint."""
        return self._url

    @property
    def queue(self) -> TrackingQueue:
        """Get the retry queue."""
        return self._queue

    async def aclose(self) -> None:
        """Wait for queued requests, then close the HTTP client if owned."""
        await self._queue.drain()
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "TrackingService":
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

    async def track_pageview(self, data: TrackPageviewInput) -> TrackPageviewResult:
        """Record a page view.

        The page view id doubles as the idempotency key unless one is given.

        Args:
            data: Page view fields.

        Returns:
            Delivery result with the page view id.
        """
        pv_id = data.pv_id or generate_pv_id()
        params = self._build_base_params(data)
        params["action_name"] = data.action_name or data.url
        params["pv_id"] = pv_id

        result = await self._queue.submit(params, data.idempotency_key or pv_id)
        return TrackPageviewResult(**result.model_dump(), pv_id=pv_id)

    async def track_event(self, data: TrackEventInput) -> TrackResult:
        """Record a custom event.

        Args:
            data: Event category, action, optional name and value.

        Returns:
            Delivery result.
        """
        params = self._build_base_params(data)
        params["e_c"] = data.category
        params["e_a"] = data.action
        if data.name:
            params["e_n"] = data.name
        if data.value is not None:
            params["e_v"] = _format_number(data.value)
        return await self._queue.submit(
            params, data.idempotency_key or generate_idempotency_key()
        )

    async def track_goal(self, data: TrackGoalInput) -> TrackResult:
        """Record a goal conversion.

        Args:
            data: Goal id and optional revenue.

        Returns:
            Delivery result.
        """
        params = self._build_base_params(data)
        params["idgoal"] = str(data.goal_id)
        if data.revenue is not None:
            params["revenue"] = _format_number(data.revenue)
        return await self._queue.submit(
            params, data.idempotency_key or generate_idempotency_key()
        )

    def queue_stats(self) -> QueueStats:
        """Snapshot the retry queue."""
        return self._queue.stats()

    async def get_idempotency_record(self, key: str) -> IdempotencyRecord | None:
        """Look up the stored outcome for an idempotency key."""
        return await self._queue.get_idempotency_record(key)

    def _build_base_params(self, data: TrackPayloadBase) -> TrackingParams:
        params: TrackingParams = {
            "idsite": str(data.site_id),
            "rec": "1",
            "apiv": "1",
            "send_image": "0",
        }
        optional = {
            "url": data.url,
            "_id": data.visitor_id,
            "uid": data.uid,
            "urlref": data.referrer,
            "ua": data.user_agent,
            "lang": data.language,
        }
        params.update({name: value for name, value in optional.items() if value})
        if data.ts is not None:
            params["cdt"] = data.ts.isoformat()
        if data.custom_vars:
            params["cvar"] = json.dumps(data.custom_vars, separators=(",", ":"))
        if self._token is not None:
            params["token_auth"] = self._token.get_secret_value()
        return params

    async def _post(self, params: TrackingParams) -> TrackResult:
        """Perform one delivery attempt.

        Raises:
            MatomoApiError: Classified failure with any Retry-After hint.
        """
        timeout_s = self._options.timeout_ms / 1000
        try:
            response = await self._http.post(self._url, data=params, timeout=timeout_s)
        except httpx.TimeoutException:
            raise MatomoNetworkError(
                f"Matomo tracking request timed out after {self._options.timeout_ms}ms.",
                endpoint=self._url,
            ) from None
        except httpx.TransportError as e:
            raise MatomoNetworkError(
                f"Failed to reach Matomo tracking endpoint: {redact_token(str(e))}",
                endpoint=self._url,
            ) from None

        body = response.text
        if HTTP_STATUS_OK_MIN <= response.status_code < HTTP_STATUS_OK_MAX:
            return TrackResult(ok=True, status=response.status_code, body=body)

        now = self._clock()
        rate_limit = read_rate_limit_headers(response.headers, now).model_copy(
            update={"retry_after_ms": retry_delay_from_headers(response.headers, now)}
        )
        self._log.debug(
            "tracking_attempt_failed",
            status_code=response.status_code,
            retry_after_ms=rate_limit.retry_after_ms,
        )
        raise classify_http_error(
            response.status_code,
            self._url,
            status_text=response.reason_phrase,
            body_text=body or None,
            rate_limit=rate_limit,
        )


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)

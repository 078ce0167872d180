"""Async HTTP client for the Matomo reporting API."""

import asyncio
import json
import time
from collections.abc import Callable, Mapping
from typing import Any

import httpx
import structlog

from matomo_access.errors import (
    MatomoApiError,
    MatomoNetworkError,
    MatomoParseError,
    classify_http_error,
    classify_result_error,
    extract_result_error,
    redact_token,
    redact_url,
)
from matomo_access.fetch.constants import (
    HTTP_STATUS_OK_MAX,
    HTTP_STATUS_OK_MIN,
    USER_AGENT,
)
from matomo_access.fetch.metrics import RequestMetrics
from matomo_access.fetch.models import (
    EndpointConfig,
    HttpOptions,
    MatomoResponse,
    ParamValue,
    RateLimitEvent,
    RateLimitState,
)
from matomo_access.fetch.rate_limit import RateLimitTracker


logger = structlog.get_logger()

RateLimitObserver = Callable[[RateLimitEvent], None]


def _format_param(value: ParamValue) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


class MatomoHttpClient:
    """Resilient client for authenticated Matomo API GET requests.

    Provides:
    - Per-attempt timeouts
    - Retries with exponential backoff and jitter for transient failures
    - Rate-limit cooldown shared by every request of this instance
    - Typed, credential-free errors
    - Metrics collection
    """

    def __init__(
        self,
        endpoint: EndpointConfig,
        options: HttpOptions | None = None,
        *,
        on_rate_limit: RateLimitObserver | None = None,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the client.

        Args:
            endpoint: Matomo base URL and token.
            options: Timeout, retry, and rate-limit options.
            on_rate_limit: Observer called for every cooldown event.
            http_client: Pre-built httpx client (owned by the caller).
            clock: Source of epoch seconds.
        """
        self._endpoint = endpoint
        self._api_url = endpoint.api_url
        self._options = options or HttpOptions()
        self._on_rate_limit = on_rate_limit
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(
            headers={"User-Agent": USER_AGENT},
        )
        self._rate_limits = RateLimitTracker(self._options.rate_limit, clock)
        self._metrics = RequestMetrics()
        self._log = logger.bind(
            component="fetch",
            api_url=redact_url(self._api_url),
        )

    @property
    def api_url(self) -> str:
        """Get the normalized API endpoint."""
        return self._api_url

    @property
    def metrics(self) -> RequestMetrics:
        """Get this client's request metrics."""
        return self._metrics

    @property
    def rate_limit_state(self) -> RateLimitState:
        """Get a snapshot of the rate-limit state."""
        return self._rate_limits.state

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "MatomoHttpClient":
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

    async def get(
        self,
        method: str,
        params: Mapping[str, ParamValue] | None = None,
    ) -> MatomoResponse:
        """Call a Matomo API method.

        Args:
            method: API method, e.g. "VisitsSummary.get".
            params: Extra query parameters; None values are omitted.

        Returns:
            MatomoResponse with the decoded payload.

        Raises:
            ValueError: If no method is given.
            MatomoApiError: Once retries are exhausted or on a
                non-retryable failure.
        """
        if not method:
            raise ValueError("Matomo API method is required")

        url = self._build_url(method, params or {})
        log = self._log.bind(api_method=method)

        start_time_ns = time.perf_counter_ns()
        try:
            response = await self._execute_with_retry(url, log)
        finally:
            duration_ms = (time.perf_counter_ns() - start_time_ns) / 1_000_000
            self._metrics.record_duration(duration_ms)

        log.info(
            "request_complete",
            status_code=response.status,
            duration_ms=round(duration_ms, 2),
        )
        return response

    async def get_data(
        self,
        method: str,
        params: Mapping[str, ParamValue] | None = None,
    ) -> Any:
        """Call a Matomo API method and return only the decoded payload."""
        response = await self.get(method, params)
        return response.data

    def _build_url(self, method: str, params: Mapping[str, ParamValue]) -> str:
        """Build the request URL with the fixed API parameters.

        Args:
            method: API method.
            params: Caller parameters.

        Returns:
            Absolute request URL including the token.
        """
        query: dict[str, str] = {
            "module": "API",
            "method": method,
            "token_auth": self._endpoint.token.get_secret_value(),
            "format": "JSON",
        }
        for key, value in params.items():
            if value is None:
                continue
            query[key] = _format_param(value)
        return str(httpx.URL(self._api_url, params=query))

    async def _execute_with_retry(
        self,
        url: str,
        log: structlog.stdlib.BoundLogger,
    ) -> MatomoResponse:
        """Execute request with retry logic.

        Args:
            url: Request URL.
            log: Bound logger.

        Returns:
            MatomoResponse from the first successful attempt.
        """
        policy = self._options.retry
        last_error: MatomoApiError | None = None
        previous_delay_ms: float | None = None

        for attempt in range(policy.max_attempts):
            if attempt > 0:
                previous_delay_ms = policy.next_delay_ms(previous_delay_ms)
                delay_ms = previous_delay_ms + policy.sample_jitter_ms()
                self._metrics.record_retry()
                log.debug(
                    "retry_attempt",
                    attempt=attempt,
                    delay_ms=round(delay_ms, 1),
                    max_attempts=policy.max_attempts,
                )
                await asyncio.sleep(delay_ms / 1000.0)

            await self._wait_for_cooldown(log)

            try:
                return await self._execute_single(url, log, attempt)
            except MatomoApiError as e:
                last_error = e
                if not policy.should_retry(e, attempt):
                    break

        if last_error is None:
            raise RuntimeError("retry loop ended without an attempt")

        self._metrics.record_failure(last_error.kind)
        log.warning(
            "request_failed",
            error_kind=last_error.kind.value if last_error.kind else None,
            status_code=last_error.status,
            message=last_error.message,
        )
        raise last_error

    async def _wait_for_cooldown(self, log: structlog.stdlib.BoundLogger) -> None:
        """Suspend until any active rate-limit cooldown has passed."""
        while True:
            until = self._rate_limits.cooldown_until
            wait_s = self._rate_limits.wait_seconds()
            if wait_s <= 0:
                return
            log.info("rate_limit_wait", wait_ms=round(wait_s * 1000))
            await asyncio.sleep(wait_s)
            # Re-check only if another response extended the cooldown meanwhile
            if self._rate_limits.cooldown_until == until:
                return

    async def _execute_single(
        self,
        url: str,
        log: structlog.stdlib.BoundLogger,
        attempt: int,
    ) -> MatomoResponse:
        """Execute a single HTTP request.

        Args:
            url: Request URL.
            log: Bound logger.
            attempt: Current attempt number.

        Returns:
            MatomoResponse for a successful response.

        Raises:
            MatomoApiError: For any failed attempt.
        """
        timeout_s = self._options.timeout_ms / 1000.0
        endpoint = redact_url(url)

        try:
            response = await self._http.get(url, timeout=timeout_s)
        except httpx.TimeoutException:
            log.debug("request_timeout", attempt=attempt)
            raise MatomoNetworkError(
                f"Matomo request timed out after {self._options.timeout_ms}ms.",
                endpoint=url,
            ) from None
        except httpx.TransportError as e:
            log.debug("request_transport_error", attempt=attempt, error=type(e).__name__)
            raise MatomoNetworkError(
                f"Failed to reach Matomo instance: {redact_token(str(e))}",
                endpoint=url,
            ) from None

        status = response.status_code
        self._metrics.record_response(status)

        event = self._rate_limits.observe(status, response.headers, endpoint)
        if event is not None:
            self._metrics.record_rate_limit()
            log.warning(
                "rate_limit_cooldown",
                source=event.source,
                status_code=status,
                delay_ms=event.delay_ms,
                remaining=event.remaining,
            )
            if self._on_rate_limit is not None:
                self._on_rate_limit(event)

        body_text = response.text
        ok = HTTP_STATUS_OK_MIN <= status < HTTP_STATUS_OK_MAX
        payload: Any = None
        trimmed = body_text.strip()

        if trimmed:
            try:
                payload = json.loads(trimmed)
            except ValueError:
                # Non-JSON error bodies become error context instead
                if ok:
                    raise MatomoParseError(
                        "Failed to parse Matomo JSON response.",
                        endpoint=url,
                        status=status,
                        body=body_text,
                    ) from None

        if not ok:
            raise classify_http_error(
                status,
                url,
                status_text=response.reason_phrase,
                body_text=body_text,
                payload=payload,
                rate_limit=self._rate_limits.info(),
            )

        if extract_result_error(payload) is not None:
            raise classify_result_error(url, payload, self._rate_limits.info())

        log.debug("request_attempt_ok", attempt=attempt, status_code=status)
        return MatomoResponse(data=payload, status=status, ok=ok)

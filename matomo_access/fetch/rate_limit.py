"""Rate-limit header parsing and cooldown bookkeeping."""

import math
import time
from collections.abc import Callable, Mapping
from datetime import UTC
from email.utils import parsedate_to_datetime

from matomo_access.errors import RateLimitInfo
from matomo_access.fetch.constants import (
    EPOCH_MS_THRESHOLD,
    EPOCH_SECONDS_THRESHOLD,
    HTTP_STATUS_TOO_MANY_REQUESTS,
    RATE_LIMIT_HEADER_FAMILIES,
    RETRY_AFTER_HEADER,
)
from matomo_access.fetch.models import (
    RateLimitEvent,
    RateLimitOptions,
    RateLimitSource,
    RateLimitState,
)


def _parse_number(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        number = float(value.strip())
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return number


def parse_retry_after(value: str | None, now: float | None = None) -> int | None:
    """Parse a Retry-After header value.

    Args:
        value: Header value (delta seconds or HTTP date).
        now: Current epoch seconds (default: time.time()).

    Returns:
        Milliseconds to wait, or None if not parseable.
    """
    if not value:
        return None

    seconds = _parse_number(value)
    if seconds is not None:
        return max(0, round(seconds * 1000))

    try:
        dt = parsedate_to_datetime(value)
    except (ValueError, TypeError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    current = now if now is not None else time.time()
    return max(0, round((dt.timestamp() - current) * 1000))


def parse_reset(value: str | None, now: float | None = None) -> float | None:
    """Parse a rate-limit reset header into an absolute epoch timestamp.

    Accepts epoch milliseconds, epoch seconds, or seconds until reset.

    Args:
        value: Header value.
        now: Current epoch seconds (default: time.time()).

    Returns:
        Epoch seconds when the window resets, or None if not parseable.
    """
    number = _parse_number(value)
    if number is None or number < 0:
        return None
    if number > EPOCH_MS_THRESHOLD:
        return number / 1000
    if number >= EPOCH_SECONDS_THRESHOLD:
        return number
    current = now if now is not None else time.time()
    return current + number


def _parse_int(value: str | None) -> int | None:
    number = _parse_number(value)
    return int(number) if number is not None else None


def read_rate_limit_headers(
    headers: Mapping[str, str], now: float | None = None
) -> RateLimitInfo:
    """Read rate-limit signals from response headers.

    The vendor header family wins over the generic families; within a
    family each field is read independently.

    Args:
        headers: Response headers (case-insensitive mapping).
        now: Current epoch seconds.

    Returns:
        RateLimitInfo with whatever signals were present.
    """
    limit: int | None = None
    remaining: int | None = None
    reset_at: float | None = None

    for limit_name, remaining_name, reset_name in RATE_LIMIT_HEADER_FAMILIES:
        if limit is None:
            limit = _parse_int(headers.get(limit_name))
        if remaining is None:
            remaining = _parse_int(headers.get(remaining_name))
        if reset_at is None:
            reset_at = parse_reset(headers.get(reset_name), now)

    return RateLimitInfo(
        limit=limit,
        remaining=remaining,
        reset_at=reset_at,
        retry_after_ms=parse_retry_after(headers.get(RETRY_AFTER_HEADER), now),
    )


def retry_delay_from_headers(
    headers: Mapping[str, str], now: float | None = None
) -> int | None:
    """Get the wait requested by the server, if any.

    Retry-After wins; otherwise the delay until the reset timestamp.

    Args:
        headers: Response headers.
        now: Current epoch seconds.

    Returns:
        Milliseconds to wait, or None without a signal.
    """
    current = now if now is not None else time.time()
    info = read_rate_limit_headers(headers, current)
    if info.retry_after_ms is not None:
        return info.retry_after_ms
    if info.reset_at is not None:
        return max(0, round((info.reset_at - current) * 1000))
    return None


class RateLimitTracker:
    """Owns the rate-limit state of one request client.

    Only the owning client calls ``observe``; any number of in-flight
    requests read ``wait_seconds`` before they are issued.
    """

    def __init__(
        self,
        options: RateLimitOptions,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the tracker.

        Args:
            options: Cooldown options.
            clock: Source of epoch seconds.
        """
        self._options = options
        self._clock = clock
        self._state = RateLimitState()

    @property
    def state(self) -> RateLimitState:
        """Get the current rate-limit snapshot."""
        return self._state

    @property
    def cooldown_until(self) -> float | None:
        """Get the epoch timestamp before which no request may start."""
        return self._state.cooldown_until

    def wait_seconds(self) -> float:
        """Get how long a new request must wait, 0 if it may start now."""
        until = self._state.cooldown_until
        if until is None:
            return 0.0
        return max(0.0, until - self._clock())

    def info(self) -> RateLimitInfo | None:
        """Get the latest signals for attaching to an error."""
        info = RateLimitInfo(
            limit=self._state.limit,
            remaining=self._state.remaining,
            reset_at=self._state.reset_at,
            retry_after_ms=self._state.retry_after_ms,
        )
        return None if info.is_empty else info

    def observe(
        self, status: int, headers: Mapping[str, str], endpoint: str
    ) -> RateLimitEvent | None:
        """Record the rate-limit signals of a response.

        Establishes or extends the cooldown when the budget is exhausted
        or the response is a 429, choosing the wait from Retry-After, then
        the reset timestamp, then the minimum throttle.

        Args:
            status: HTTP status code.
            headers: Response headers.
            endpoint: Redacted request URL, for the event.

        Returns:
            The cooldown event, or None if no cooldown was established.
        """
        now = self._clock()
        info = read_rate_limit_headers(headers, now)

        exhausted = info.remaining is not None and info.remaining <= 0
        if status != HTTP_STATUS_TOO_MANY_REQUESTS and not exhausted:
            self._state = self._state.model_copy(
                update={
                    "limit": info.limit,
                    "remaining": info.remaining,
                    "reset_at": info.reset_at,
                    "retry_after_ms": info.retry_after_ms,
                }
            )
            return None

        source: RateLimitSource
        if info.retry_after_ms is not None:
            source = "retry-after"
            delay_ms = info.retry_after_ms
        elif info.reset_at is not None and info.reset_at > now:
            source = "reset"
            delay_ms = round((info.reset_at - now) * 1000)
        else:
            source = "throttle"
            delay_ms = self._options.min_throttle_ms
        delay_ms = min(delay_ms, self._options.max_cooldown_ms)

        cooldown_until = now + delay_ms / 1000
        if self._state.cooldown_until is not None:
            cooldown_until = max(cooldown_until, self._state.cooldown_until)

        self._state = RateLimitState(
            limit=info.limit,
            remaining=info.remaining,
            reset_at=info.reset_at,
            retry_after_ms=info.retry_after_ms,
            cooldown_until=cooldown_until,
        )

        return RateLimitEvent(
            source=source,
            status=status,
            endpoint=endpoint,
            delay_ms=delay_ms,
            limit=info.limit,
            remaining=info.remaining,
            reset_at=info.reset_at,
            retry_after_ms=info.retry_after_ms,
            cooldown_until=cooldown_until,
        )

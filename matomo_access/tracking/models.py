"""Data models for tracking submissions and the retry queue."""

import random
from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from matomo_access.errors import ErrorSnapshot, error_from_snapshot


DEFAULT_TRACKING_BASE_DELAY_MS = 150
DEFAULT_TRACKING_MAX_DELAY_MS = 10_000
DEFAULT_TRACKING_JITTER_MS = 250
DEFAULT_TRACKING_MAX_RETRY_AFTER_MS = 60_000
DEFAULT_MAX_RETRIES = 4
DEFAULT_TRACKING_TIMEOUT_MS = 10_000
DEFAULT_IDEMPOTENCY_TTL_MS = 24 * 60 * 60 * 1000


class BackoffOptions(BaseModel):
    """Exponential backoff between tracking attempts."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    base_delay_ms: Annotated[int, Field(ge=1, le=60_000)] = DEFAULT_TRACKING_BASE_DELAY_MS
    max_delay_ms: Annotated[int, Field(ge=1, le=600_000)] = DEFAULT_TRACKING_MAX_DELAY_MS
    jitter_ms: Annotated[int, Field(ge=0, le=60_000)] = DEFAULT_TRACKING_JITTER_MS
    max_retry_after_ms: Annotated[int, Field(ge=0, le=3_600_000)] = (
        DEFAULT_TRACKING_MAX_RETRY_AFTER_MS
    )

    @model_validator(mode="after")
    def check_delay_bounds(self) -> "BackoffOptions":
        """Ensure the cap is not below the base delay."""
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError("max_delay_ms must be >= base_delay_ms")
        return self

    def delay_ms(self, attempt: int) -> int:
        """Compute the wait before a retry.

        Args:
            attempt: Number of attempts made so far (1 before the first retry).

        Returns:
            base * 2^(attempt-1), capped at max_delay_ms, plus jitter.
        """
        exponent = max(0, attempt - 1)
        capped = min(self.max_delay_ms, self.base_delay_ms * 2**exponent)
        jitter = random.uniform(0, self.jitter_ms) if self.jitter_ms > 0 else 0.0  # noqa: S311
        return max(0, round(capped + jitter))

    def server_wait_ms(self, retry_after_ms: int) -> int:
        """Clamp a server-requested wait to [0, max_retry_after_ms]."""
        return min(max(0, retry_after_ms), self.max_retry_after_ms)


class TrackingOptions(BaseModel):
    """Tracking queue configuration."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_retries: Annotated[int, Field(ge=1, le=20)] = DEFAULT_MAX_RETRIES
    timeout_ms: Annotated[int, Field(ge=100, le=120_000)] = DEFAULT_TRACKING_TIMEOUT_MS
    idempotency_ttl_ms: Annotated[int, Field(ge=1)] = DEFAULT_IDEMPOTENCY_TTL_MS
    backoff: BackoffOptions = Field(default_factory=BackoffOptions)


class TrackResult(BaseModel):
    """Outcome of a delivered tracking request."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    ok: bool
    status: int
    body: str = ""


class TrackPageviewResult(TrackResult):
    """Pageview outcome with the page view id that was sent."""

    pv_id: str


IdempotencyStatus = Literal["completed", "failed"]


class IdempotencyRecord(BaseModel):
    """Settled outcome of a tracking submission under one key.

    Exactly one of ``result`` and ``error`` is set, matching ``status``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    key: str
    status: IdempotencyStatus
    attempts: int = Field(ge=1)
    created_at: float = Field(description="Epoch seconds of the first submission")
    completed_at: float = Field(description="Epoch seconds when the outcome was stored")
    result: TrackResult | None = None
    error: ErrorSnapshot | None = None

    @model_validator(mode="after")
    def check_outcome(self) -> "IdempotencyRecord":
        """Ensure the stored outcome matches the status."""
        if self.status == "completed" and self.result is None:
            raise ValueError("completed records need a result")
        if self.status == "failed" and self.error is None:
            raise ValueError("failed records need an error")
        return self

    def replay(self) -> TrackResult:
        """Return the stored result, or raise the stored failure.

        Raises:
            MatomoApiError: Rebuilt from the stored error snapshot.
        """
        if self.status == "completed" and self.result is not None:
            return self.result
        raise error_from_snapshot(self.error or ErrorSnapshot(message="Tracking failed"))


class LastError(BaseModel):
    """Most recent tracking failure."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    message: str
    status: int | None = None
    timestamp: float


class QueueStats(BaseModel):
    """Point-in-time view of the tracking queue.

    Timestamps are epoch seconds.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    pending: int = 0
    inflight: int = 0
    total_processed: int = 0
    total_retried: int = 0
    last_error: LastError | None = None
    last_retry_at: float | None = None
    last_backoff_ms: int | None = None
    last_retry_status: int | None = None
    cooldown_until: float | None = None
    oldest_pending_at: float | None = None

    @property
    def backlog(self) -> int:
        """Items waiting or being sent."""
        return self.pending + self.inflight


CustomVars = dict[str, str | int | float]


class TrackPayloadBase(BaseModel):
    """Fields shared by every tracking call."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    site_id: Annotated[int, Field(ge=1)]
    url: str | None = None
    visitor_id: str | None = None
    uid: str | None = None
    ts: datetime | None = None
    referrer: str | None = None
    user_agent: str | None = None
    language: str | None = None
    custom_vars: CustomVars | None = None
    idempotency_key: str | None = None


class TrackPageviewInput(TrackPayloadBase):
    """A page view."""

    url: str
    action_name: str | None = None
    pv_id: str | None = None


class TrackEventInput(TrackPayloadBase):
    """A custom event."""

    category: str = Field(min_length=1)
    action: str = Field(min_length=1)
    name: str | None = None
    value: float | None = None


class TrackGoalInput(TrackPayloadBase):
    """A goal conversion."""

    goal_id: Annotated[int, Field(ge=0)]
    revenue: float | None = None

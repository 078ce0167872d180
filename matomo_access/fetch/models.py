"""Data models for the Matomo request layer."""

import random
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator

from matomo_access.errors import ErrorKind, MatomoApiError
from matomo_access.fetch.constants import (
    API_PATH,
    DEFAULT_BASE_DELAY_MS,
    DEFAULT_JITTER_MS,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_DELAY_MS,
    DEFAULT_MIN_THROTTLE_MS,
    DEFAULT_TIMEOUT_MS,
    HTTP_STATUS_REQUEST_TIMEOUT,
    MAX_COOLDOWN_MS,
)


ParamValue = str | int | float | bool | None

RateLimitSource = Literal["retry-after", "reset", "throttle"]


def normalize_api_url(base_url: str) -> str:
    """Normalize a Matomo base URL to its API endpoint.

    Args:
        base_url: Matomo installation URL, with or without index.php.

    Returns:
        URL ending in /index.php.

    Raises:
        ValueError: If the URL is empty.
    """
    trimmed = base_url.strip()
    if not trimmed:
        raise ValueError("Matomo base URL is required")
    if trimmed.endswith(API_PATH):
        return trimmed
    return f"{trimmed.rstrip('/')}/{API_PATH}"


class EndpointConfig(BaseModel):
    """Where and as whom the client talks to Matomo."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    base_url: Annotated[str, Field(min_length=1)]
    token: SecretStr

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, value: str) -> str:
        """Validate the base URL scheme."""
        if not value.strip().startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return value.strip()

    @field_validator("token")
    @classmethod
    def validate_token(cls, value: SecretStr) -> SecretStr:
        """Reject empty tokens."""
        if not value.get_secret_value().strip():
            raise ValueError("Matomo token_auth is required")
        return value

    @property
    def api_url(self) -> str:
        """Get the normalized reporting API endpoint."""
        return normalize_api_url(self.base_url)


class RetryPolicy(BaseModel):
    """Configuration for retry behavior.

    The first retry waits ``base_delay_ms``; each further retry doubles the
    previous un-jittered delay up to ``max_delay_ms``. Uniform jitter in
    ``[0, jitter_ms]`` is added to every wait.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_attempts: Annotated[int, Field(ge=1, le=10)] = DEFAULT_MAX_ATTEMPTS
    base_delay_ms: Annotated[int, Field(ge=0, le=60000)] = DEFAULT_BASE_DELAY_MS
    max_delay_ms: Annotated[int, Field(ge=0, le=300000)] = DEFAULT_MAX_DELAY_MS
    jitter_ms: Annotated[int, Field(ge=0, le=60000)] = DEFAULT_JITTER_MS

    @model_validator(mode="after")
    def check_delay_bounds(self) -> "RetryPolicy":
        """Ensure the cap is not below the base delay."""
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError("max_delay_ms must be >= base_delay_ms")
        return self

    def should_retry(self, error: MatomoApiError, attempt: int) -> bool:
        """Determine if a request should be retried.

        Args:
            error: The error that occurred.
            attempt: Attempt that just failed (0-indexed).

        Returns:
            True if another attempt is allowed and the error is transient.
        """
        if attempt + 1 >= self.max_attempts:
            return False
        return is_retryable(error)

    def next_delay_ms(self, previous_delay_ms: float | None) -> float:
        """Calculate the un-jittered delay before the next attempt.

        Args:
            previous_delay_ms: Un-jittered delay used before the previous
                retry, or None before the first retry.

        Returns:
            Delay in milliseconds.
        """
        if previous_delay_ms is None:
            return float(min(self.base_delay_ms, self.max_delay_ms))
        return float(min(previous_delay_ms * 2, self.max_delay_ms))

    def sample_jitter_ms(self) -> float:
        """Draw a jitter value in [0, jitter_ms]."""
        return random.uniform(0, self.jitter_ms)  # noqa: S311


def is_retryable(error: MatomoApiError) -> bool:
    """Check whether the request client may transparently retry an error.

    Network failures, 5xx, and 408 are transient. Rate limits are not
    retried here; they establish a cooldown instead.
    """
    if error.kind in (ErrorKind.NETWORK, ErrorKind.SERVER):
        return True
    return error.status == HTTP_STATUS_REQUEST_TIMEOUT


class RateLimitOptions(BaseModel):
    """Cooldown behavior when Matomo signals rate-limit exhaustion."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    min_throttle_ms: Annotated[int, Field(ge=0, le=MAX_COOLDOWN_MS)] = (
        DEFAULT_MIN_THROTTLE_MS
    )
    max_cooldown_ms: Annotated[int, Field(ge=0, le=3_600_000)] = MAX_COOLDOWN_MS


class HttpOptions(BaseModel):
    """Transport settings for the request client."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    timeout_ms: Annotated[int, Field(ge=1, le=300000)] = DEFAULT_TIMEOUT_MS
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    rate_limit: RateLimitOptions = Field(default_factory=RateLimitOptions)


class RateLimitState(BaseModel):
    """Snapshot of the client's rate-limit knowledge."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    limit: int | None = None
    remaining: int | None = None
    reset_at: float | None = Field(
        default=None, description="Epoch seconds when the window resets"
    )
    retry_after_ms: int | None = None
    cooldown_until: float | None = Field(
        default=None, description="Epoch seconds before which no request starts"
    )


class RateLimitEvent(BaseModel):
    """Emitted to observers whenever a cooldown is established or extended."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    source: RateLimitSource
    status: int
    endpoint: str
    delay_ms: int
    limit: int | None = None
    remaining: int | None = None
    reset_at: float | None = None
    retry_after_ms: int | None = None
    cooldown_until: float


class MatomoResponse(BaseModel):
    """Successful reporting API response."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    data: Any = None
    status: int = Field(ge=100, le=599)
    ok: bool = True

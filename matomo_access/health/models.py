"""Models for health checks and their thresholds."""

import math
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


DEFAULT_PENDING_WARN = 10
DEFAULT_PENDING_FAIL = 25
DEFAULT_AGE_WARN_MS = 60_000
DEFAULT_AGE_FAIL_MS = 120_000

DEFAULT_WARN_HIT_RATE = 20.0
DEFAULT_FAIL_HIT_RATE = 5.0
DEFAULT_SAMPLE_SIZE = 20

DEFAULT_LATENCY_WARN_MS = 1_000
DEFAULT_LATENCY_FAIL_MS = 5_000


class HealthState(str, Enum):
    """Overall rollup state."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class CheckStatus(str, Enum):
    """Outcome of a single check, ordered by severity."""

    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"

    @property
    def severity(self) -> int:
        """Rank used to pick the more severe of two outcomes."""
        return _SEVERITY[self]


_SEVERITY = {CheckStatus.PASS: 0, CheckStatus.WARN: 1, CheckStatus.FAIL: 2}


class ComponentType(str, Enum):
    """Kind of component a check observes."""

    SERVICE = "service"
    DATABASE = "database"
    CACHE = "cache"
    QUEUE = "queue"


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _non_negative(value: Any, default: float) -> float:
    if value is None:
        return default
    return max(0, value)


def clamp_percentage(value: float | None, default: float) -> float:
    """Clamp a percentage into [0, 100]; non-finite values become 0."""
    if value is None:
        return default
    if not math.isfinite(value):
        return 0.0
    return min(100.0, max(0.0, float(value)))


class HealthCheck(BaseModel):
    """Result of one health check."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: Annotated[str, Field(min_length=1)]
    status: CheckStatus
    component_type: ComponentType
    observed_value: float | None = None
    observed_unit: str | None = None
    time: str
    output: str = ""
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Render with camelCase keys, omitting unset optional fields."""
        data = self.model_dump(mode="json", exclude_none=True)
        return {_camel(key): value for key, value in data.items()}


class HealthStatus(BaseModel):
    """Aggregated health of the access layer."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    status: HealthState
    timestamp: str
    checks: list[HealthCheck]

    def get_check(self, name: str) -> HealthCheck | None:
        """Find a check by name."""
        return next((check for check in self.checks if check.name == name), None)

    def to_dict(self) -> dict[str, Any]:
        """Render for liveness/readiness probes."""
        return {
            "status": self.status.value,
            "timestamp": self.timestamp,
            "checks": [check.to_dict() for check in self.checks],
        }


class QueueHealthThresholds(BaseModel):
    """Backlog size and age limits for the tracking queue.

    Negative values are clamped to 0 and a fail limit below its warn limit
    is raised to the warn limit.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    pending_warn: int = DEFAULT_PENDING_WARN
    pending_fail: int = DEFAULT_PENDING_FAIL
    age_warn_ms: int = DEFAULT_AGE_WARN_MS
    age_fail_ms: int = DEFAULT_AGE_FAIL_MS

    @model_validator(mode="before")
    @classmethod
    def normalize(cls, data: Any) -> Any:
        """Clamp and order the thresholds."""
        if not isinstance(data, dict):
            return data
        pending_warn = _non_negative(data.get("pending_warn"), DEFAULT_PENDING_WARN)
        pending_fail = _non_negative(data.get("pending_fail"), DEFAULT_PENDING_FAIL)
        age_warn = _non_negative(data.get("age_warn_ms"), DEFAULT_AGE_WARN_MS)
        age_fail = _non_negative(data.get("age_fail_ms"), DEFAULT_AGE_FAIL_MS)
        return {
            **data,
            "pending_warn": pending_warn,
            "pending_fail": max(pending_fail, pending_warn),
            "age_warn_ms": age_warn,
            "age_fail_ms": max(age_fail, age_warn),
        }


class CacheHealthThresholds(BaseModel):
    """Hit-rate limits for the report cache.

    Rates are percentages clamped to [0, 100]; the fail rate never exceeds
    the warn rate. Nothing is judged before ``sample_size`` lookups.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    warn_hit_rate: float = DEFAULT_WARN_HIT_RATE
    fail_hit_rate: float = DEFAULT_FAIL_HIT_RATE
    sample_size: int = DEFAULT_SAMPLE_SIZE

    @model_validator(mode="before")
    @classmethod
    def normalize(cls, data: Any) -> Any:
        """Clamp and order the thresholds."""
        if not isinstance(data, dict):
            return data
        warn = clamp_percentage(data.get("warn_hit_rate"), DEFAULT_WARN_HIT_RATE)
        fail = clamp_percentage(data.get("fail_hit_rate"), DEFAULT_FAIL_HIT_RATE)
        sample_size = data.get("sample_size")
        return {
            **data,
            "warn_hit_rate": warn,
            "fail_hit_rate": min(fail, warn),
            "sample_size": max(1, DEFAULT_SAMPLE_SIZE if sample_size is None else sample_size),
        }


class LatencyHealthThresholds(BaseModel):
    """Response-time limits for the API probe."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    warn_ms: int = DEFAULT_LATENCY_WARN_MS
    fail_ms: int = DEFAULT_LATENCY_FAIL_MS

    @model_validator(mode="before")
    @classmethod
    def normalize(cls, data: Any) -> Any:
        """Clamp and order the thresholds."""
        if not isinstance(data, dict):
            return data
        warn = _non_negative(data.get("warn_ms"), DEFAULT_LATENCY_WARN_MS)
        fail = _non_negative(data.get("fail_ms"), DEFAULT_LATENCY_FAIL_MS)
        return {**data, "warn_ms": warn, "fail_ms": max(fail, warn)}


class HealthThresholds(BaseModel):
    """All health thresholds."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    queue: QueueHealthThresholds = Field(default_factory=QueueHealthThresholds)
    cache: CacheHealthThresholds = Field(default_factory=CacheHealthThresholds)
    latency: LatencyHealthThresholds = Field(default_factory=LatencyHealthThresholds)

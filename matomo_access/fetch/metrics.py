"""Metrics collection for the Matomo request layer."""

from dataclasses import dataclass, field

from matomo_access.errors import ErrorKind


@dataclass
class RequestMetrics:
    """Counters for one request client.

    Tracks attempts by status code, retries, cooldowns, terminal failures
    by error kind, and logical request latency.
    """

    requests_total: dict[int, int] = field(default_factory=dict)
    retries_total: int = 0
    rate_limited_total: int = 0
    failures_total: dict[str, int] = field(default_factory=dict)
    duration_ms_total: float = 0.0
    request_count: int = 0
    last_duration_ms: float | None = None

    def record_response(self, status_code: int) -> None:
        """Record an HTTP response for one attempt.

        Args:
            status_code: HTTP status code.
        """
        self.requests_total[status_code] = self.requests_total.get(status_code, 0) + 1

    def record_retry(self) -> None:
        """Record a retry attempt."""
        self.retries_total += 1

    def record_rate_limit(self) -> None:
        """Record an established cooldown."""
        self.rate_limited_total += 1

    def record_failure(self, kind: ErrorKind | None) -> None:
        """Record a request that failed after all attempts.

        Args:
            kind: Error kind of the final failure.
        """
        key = kind.value if kind else "unknown"
        self.failures_total[key] = self.failures_total.get(key, 0) + 1

    def record_duration(self, duration_ms: float) -> None:
        """Record the duration of a logical request, retries included.

        Args:
            duration_ms: Duration in milliseconds.
        """
        self.duration_ms_total += duration_ms
        self.request_count += 1
        self.last_duration_ms = duration_ms

    @property
    def avg_duration_ms(self) -> float:
        """Calculate average request duration.

        Returns:
            Average duration in milliseconds.
        """
        if self.request_count == 0:
            return 0.0
        return self.duration_ms_total / self.request_count

    def to_dict(self) -> dict[str, int | float | None | dict[str, int] | dict[int, int]]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        return {
            "requests_total": dict(self.requests_total),
            "retries_total": self.retries_total,
            "rate_limited_total": self.rate_limited_total,
            "failures_total": dict(self.failures_total),
            "duration_ms_total": self.duration_ms_total,
            "request_count": self.request_count,
            "avg_duration_ms": self.avg_duration_ms,
            "last_duration_ms": self.last_duration_ms,
        }

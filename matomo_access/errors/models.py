"""Data models shared by the Matomo error taxonomy."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ErrorKind(str, Enum):
    """Closed classification of Matomo failures.

    - NETWORK: transport failure or timeout, no HTTP response
    - PARSE: a successful response whose body is not valid JSON
    - AUTH: the token was rejected
    - PERMISSION: the token lacks access to the requested site
    - RATE_LIMIT: Matomo throttled the caller
    - CLIENT: any other 4xx or application-level error
    - SERVER: 5xx responses
    """

    NETWORK = "network"
    PARSE = "parse"
    AUTH = "auth"
    PERMISSION = "permission"
    RATE_LIMIT = "rate-limit"
    CLIENT = "client"
    SERVER = "server"


class RateLimitInfo(BaseModel):
    """Rate-limit signals observed on the response that produced an error."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    limit: int | None = Field(default=None, description="Request budget per window")
    remaining: int | None = Field(
        default=None, description="Requests left in the current window"
    )
    reset_at: float | None = Field(
        default=None, description="Epoch seconds when the window resets"
    )
    retry_after_ms: int | None = Field(
        default=None, description="Server-requested wait before retrying"
    )

    @property
    def is_empty(self) -> bool:
        """Check whether no rate-limit signal was present."""
        return (
            self.limit is None
            and self.remaining is None
            and self.reset_at is None
            and self.retry_after_ms is None
        )


class ErrorSnapshot(BaseModel):
    """Serializable summary of a failure, used where errors are persisted."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: ErrorKind | None = None
    message: str
    status: int | None = None
    code: str | None = None

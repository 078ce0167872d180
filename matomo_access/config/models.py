"""Top-level client configuration."""

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from matomo_access.fetch import EndpointConfig, HttpOptions
from matomo_access.health import HealthThresholds
from matomo_access.reports import CacheOptions
from matomo_access.tracking import TrackingOptions


class ClientConfig(BaseModel):
    """Everything needed to build a MatomoClient.

    Nested option groups fall back to their defaults when omitted.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    base_url: Annotated[str, Field(min_length=1)]
    token: SecretStr
    default_site_id: Annotated[int, Field(ge=1)] | None = None
    tracking_base_url: str | None = None
    http: HttpOptions = Field(default_factory=HttpOptions)
    cache: CacheOptions = Field(default_factory=CacheOptions)
    tracking: TrackingOptions = Field(default_factory=TrackingOptions)
    health: HealthThresholds = Field(default_factory=HealthThresholds)

    @field_validator("base_url", "tracking_base_url")
    @classmethod
    def validate_url(cls, value: str | None) -> str | None:
        """Validate URL schemes."""
        if value is None:
            return value
        if not value.strip().startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return value.strip()

    @field_validator("token")
    @classmethod
    def validate_token(cls, value: SecretStr) -> SecretStr:
        """Reject empty tokens."""
        if not value.get_secret_value().strip():
            raise ValueError("Matomo token_auth is required")
        return value

    @property
    def endpoint(self) -> EndpointConfig:
        """Get the reporting API endpoint."""
        return EndpointConfig(base_url=self.base_url, token=self.token)

    @property
    def tracking_url_base(self) -> str:
        """Get the base URL used for tracking requests."""
        return self.tracking_base_url or self.base_url

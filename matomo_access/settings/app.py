"""Application settings powered by Pydantic BaseSettings."""

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_prefix="", case_sensitive=False, env_file=".env", env_file_encoding="utf-8"
    )

    base_url: str | None = Field(default=None, validation_alias="MATOMO_BASE_URL")
    token: SecretStr | None = Field(default=None, validation_alias="MATOMO_TOKEN")
    default_site_id: int | None = Field(
        default=None, validation_alias="MATOMO_DEFAULT_SITE_ID"
    )
    tracking_base_url: str | None = Field(
        default=None, validation_alias="MATOMO_TRACKING_BASE_URL"
    )
    cache_ttl_ms: int | None = Field(default=None, validation_alias="MATOMO_CACHE_TTL_MS")
    http_timeout_ms: int | None = Field(
        default=None, validation_alias="MATOMO_HTTP_TIMEOUT_MS"
    )
    log_level: str = Field(default="INFO", validation_alias="MATOMO_LOG_LEVEL")

    def overrides(self) -> dict[str, object]:
        """Return only the settings present in the environment, keyed like ClientConfig."""
        values: dict[str, object] = {
            "base_url": self.base_url,
            "token": self.token.get_secret_value() if self.token else None,
            "default_site_id": self.default_site_id,
            "tracking_base_url": self.tracking_base_url,
        }
        return {key: value for key, value in values.items() if value is not None}


def get_settings() -> AppSettings:
    """Get a settings instance."""
    return AppSettings()

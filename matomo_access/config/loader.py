"""Client configuration loading from YAML and the environment."""

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import ValidationError

from matomo_access.config.error_hints import format_validation_error
from matomo_access.config.models import ClientConfig
from matomo_access.settings import AppSettings


logger = structlog.get_logger()


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    def __init__(self, errors: list[dict[str, str]], file_path: str) -> None:
        """Initialize the error.

        Args:
            errors: Validation error details (loc, msg, type).
            file_path: Path or label of the configuration that failed.
        """
        self.errors = errors
        self.file_path = file_path
        lines = [
            format_validation_error(err["loc"], err["msg"], err["type"]) for err in errors
        ]
        super().__init__(
            f"Validation failed for {file_path}: {len(errors)} errors\n" + "\n".join(lines)
        )


def _fill_gaps(data: dict[str, Any], settings: AppSettings) -> dict[str, Any]:
    """Apply environment settings wherever the file is silent."""
    merged = {**settings.overrides(), **data}

    if settings.cache_ttl_ms is not None:
        cache = dict(merged.get("cache") or {})
        cache.setdefault("ttl_ms", settings.cache_ttl_ms)
        merged["cache"] = cache

    if settings.http_timeout_ms is not None:
        http = dict(merged.get("http") or {})
        http.setdefault("timeout_ms", settings.http_timeout_ms)
        merged["http"] = http

    return merged


def config_from_mapping(
    data: Mapping[str, Any],
    settings: AppSettings | None = None,
    source: str = "<mapping>",
) -> ClientConfig:
    """Validate a configuration mapping.

    Args:
        data: Raw configuration values.
        settings: Environment settings filling gaps (default: read now).
        source: Label used in error messages.

    Returns:
        Validated ClientConfig.

    Raises:
        ConfigValidationError: If validation fails.
    """
    log = logger.bind(component="config", source=source)
    merged = _fill_gaps(dict(data), settings or AppSettings())

    try:
        config = ClientConfig.model_validate(merged)
    except ValidationError as e:
        errors = [
            {
                "loc": ".".join(str(loc) for loc in err["loc"]) or "config",
                "msg": err["msg"],
                "type": err["type"],
            }
            for err in e.errors()
        ]
        log.error(
            "config_validation_failed",
            validation_error_count=len(errors),
            errors=errors,
        )
        raise ConfigValidationError(errors, source) from None

    log.info(
        "config_ready",
        default_site_id=config.default_site_id,
        has_tracking_url=config.tracking_base_url is not None,
    )
    return config


def load_client_config(
    path: Path | str | None = None,
    settings: AppSettings | None = None,
) -> ClientConfig:
    """Load client configuration from a YAML file and the environment.

    Without a path the configuration comes from the environment alone.

    Args:
        path: Optional YAML file.
        settings: Environment settings (default: read now).

    Returns:
        Validated ClientConfig.

    Raises:
        ConfigValidationError: If the file is missing, malformed, or invalid.
    """
    if path is None:
        return config_from_mapping({}, settings, source="<environment>")

    file_path = Path(path)
    log = logger.bind(component="config", file_path=str(file_path))
    log.info("loading_config_file")

    try:
        parsed = yaml.safe_load(file_path.read_text(encoding="utf-8")) or {}
    except FileNotFoundError as e:
        log.error("config_file_not_found", error=str(e))
        raise ConfigValidationError(
            [{"loc": "file", "msg": str(e), "type": "file_not_found"}], str(file_path)
        ) from None
    except yaml.YAMLError as e:
        log.error("config_yaml_parse_error", error=str(e))
        raise ConfigValidationError(
            [{"loc": "yaml", "msg": str(e), "type": "yaml_parse_error"}], str(file_path)
        ) from None

    if not isinstance(parsed, dict):
        raise ConfigValidationError(
            [{"loc": "config", "msg": "Top level must be a mapping", "type": "dict_type"}],
            str(file_path),
        )

    return config_from_mapping(parsed, settings, source=str(file_path))

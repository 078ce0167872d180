"""Client configuration.

This module provides:
- The ClientConfig model grouping every option object
- YAML loading with environment settings filling gaps
- Validation errors annotated with remediation hints
"""

from matomo_access.config.error_hints import (
    ERROR_HINTS,
    FIELD_HINTS,
    format_validation_error,
    get_error_hint,
)
from matomo_access.config.loader import (
    ConfigValidationError,
    config_from_mapping,
    load_client_config,
)
from matomo_access.config.models import ClientConfig


__all__ = [
    # Models
    "ClientConfig",
    # Loading
    "ConfigValidationError",
    "config_from_mapping",
    "load_client_config",
    # Hints
    "ERROR_HINTS",
    "FIELD_HINTS",
    "format_validation_error",
    "get_error_hint",
]

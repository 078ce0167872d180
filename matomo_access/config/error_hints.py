"""Remediation hints shown next to configuration validation errors."""

from typing import Final


# Keyed by pydantic error type
ERROR_HINTS: Final[dict[str, str]] = {
    "missing": "This field is required. Add it to the configuration file or the environment.",
    "extra_forbidden": "Unknown field. Check the spelling against the documented options.",
    "int_type": "This field must be an integer (whole number).",
    "int_parsing": "This field must be an integer (whole number).",
    "float_type": "This field must be a number.",
    "string_type": "This field must be a text string.",
    "bool_type": "This field must be true or false.",
    "dict_type": "This field must be an object/mapping.",
    "model_type": "This field must be an object/mapping.",
    "greater_than_equal": "The value is too small. Check the minimum allowed.",
    "less_than_equal": "The value is too large. Check the maximum allowed.",
    "string_too_short": "The text is too short. Check minimum length requirement.",
    "value_error": "Check the value format. URLs must start with http:// or https://.",
    "file_not_found": "The file does not exist. Check the file path.",
    "yaml_parse_error": "Invalid YAML syntax. Check for proper indentation and formatting.",
}

# Keyed by the last segment of the error location
FIELD_HINTS: Final[dict[str, str]] = {
    "base_url": "Must be the Matomo installation URL (e.g., 'https://matomo.example.com').",
    "tracking_base_url": "Must be an HTTP/HTTPS URL; defaults to base_url when omitted.",
    "token": "Set token_auth in the file or MATOMO_TOKEN in the environment.",
    "default_site_id": "Must be a positive Matomo site id (idSite).",
    "ttl_ms": "Cache lifetime in milliseconds, between 0 and 86400000.",
    "max_entries": "Must be between 1 and 1000000.",
    "timeout_ms": "Per-attempt timeout in milliseconds.",
    "max_attempts": "Must be between 1 and 10.",
    "max_retries": "Must be between 1 and 20.",
    "max_delay_ms": "Must be greater than or equal to base_delay_ms.",
}


def get_error_hint(error_type: str, field_name: str | None = None) -> str:
    """Pick the most specific hint for an error.

    Field hints win over type hints; ``http.retry.max_attempts`` looks up
    ``max_attempts``.
    """
    leaf = field_name.rsplit(".", 1)[-1] if field_name else None
    if leaf in FIELD_HINTS:
        return FIELD_HINTS[leaf]

    return ERROR_HINTS.get(
        error_type, "See the ClientConfig field descriptions for valid values."
    )


def format_validation_error(
    location: str,
    message: str,
    error_type: str,
    *,
    include_hint: bool = True,
) -> str:
    """Render ``location: message`` with the hint on an indented line.

    Args:
        location: Dotted error location, e.g. ``cache.ttl_ms``.
        message: Validation message.
        error_type: Pydantic error type.
        include_hint: Append the remediation hint.
    """
    line = f"{location}: {message}"
    if not include_hint:
        return line
    return f"{line}\n    Hint: {get_error_hint(error_type, location)}"

"""Credential redaction for URLs, bodies, and payloads."""

import re
from typing import Any
from urllib.parse import urlparse, urlunparse


REDACTED_VALUE = "REDACTED"

TOKEN_PARAM = "token_auth"

# Matches token_auth=<value> in query strings and form bodies
_TOKEN_PATTERN = re.compile(r"(token_auth=)[^&#\s\"']*", re.IGNORECASE)


def redact_token(value: str) -> str:
    """Replace every token_auth value in a string with the redaction marker.

    Args:
        value: URL, query string, or free text.

    Returns:
        The string with credentials replaced.
    """
    return _TOKEN_PATTERN.sub(rf"\g<1>{REDACTED_VALUE}", value)


def redact_url(url: str) -> str:
    """Redact the API token and any userinfo credentials from a URL.

    Args:
        url: URL to redact.

    Returns:
        URL safe for logs and error messages.
    """
    redacted = redact_token(url)
    try:
        parsed = urlparse(redacted)
    except ValueError:
        return redacted

    if parsed.username or parsed.password:
        host = parsed.hostname or ""
        if parsed.port:
            host = f"{host}:{parsed.port}"
        redacted = urlunparse(parsed._replace(netloc=f"{REDACTED_VALUE}@{host}"))

    return redacted


def redact_payload(payload: Any) -> Any:
    """Recursively redact credentials from a decoded JSON payload.

    Mapping keys named ``token_auth`` are replaced wholesale; string values
    are scrubbed for embedded ``token_auth=`` fragments.

    Args:
        payload: Decoded payload (dict, list, scalar).

    Returns:
        A redacted copy of the payload.
    """
    if isinstance(payload, dict):
        return {
            key: REDACTED_VALUE
            if str(key).lower() == TOKEN_PARAM
            else redact_payload(value)
            for key, value in payload.items()
        }
    if isinstance(payload, list):
        return [redact_payload(item) for item in payload]
    if isinstance(payload, str):
        return redact_token(payload)
    return payload

"""Remediation guidance attached to Matomo errors.

Guidance is resolved once, when an error is constructed, from the error
kind, the (already redacted) message, and the Matomo error code if any.
"""

import re
from typing import Final

from matomo_access.errors.models import ErrorKind


UNKNOWN_GUIDANCE: Final[str] = (
    "An unexpected error occurred while calling Matomo. "
    "Inspect the details and Matomo logs."
)

DEFAULT_GUIDANCE: Final[dict[ErrorKind, str]] = {
    ErrorKind.AUTH: "Verify MATOMO_TOKEN and ensure the account still has API access.",
    ErrorKind.PERMISSION: "Confirm the token has view access to the requested Matomo site.",
    ErrorKind.RATE_LIMIT: (
        "Reduce request frequency or adjust Matomo archiving limits before retrying."
    ),
    ErrorKind.CLIENT: (
        "Double-check the request parameters (siteId, period, date) and try again."
    ),
    ErrorKind.SERVER: (
        "Matomo returned a server error. "
        "Retry later or review the Matomo logs for more detail."
    ),
    ErrorKind.PARSE: (
        "Matomo returned an unexpected payload. "
        "Validate the Matomo version and response format."
    ),
    ErrorKind.NETWORK: (
        "Could not reach Matomo. Check connectivity, base URL, and DNS configuration."
    ),
}

TOKEN_REJECTED_GUIDANCE: Final[str] = (
    "Matomo rejected the API token. Generate a new token or update MATOMO_TOKEN."
)
GRANT_ACCESS_GUIDANCE: Final[str] = (
    "Grant view access for the token user to this site in Matomo's administration UI."
)
RATE_LIMITED_GUIDANCE: Final[str] = (
    "Matomo rate limits were hit. Pause briefly or stagger requests before retrying."
)

SITE_GUIDANCE: Final[str] = (
    "Check the siteId value: ensure the site exists and the token can access it."
)

# Matomo error codes with a known remediation
CODE_GUIDANCE: Final[dict[str, str]] = {
    "101": SITE_GUIDANCE,
    "103": (
        "Ensure the date parameter uses a Matomo-supported format "
        "(e.g. YYYY-MM-DD or date ranges)."
    ),
    "110": (
        "Review the Matomo segment expression for syntax errors "
        "and unsupported operators."
    ),
}

# Checked in order, first match wins
KEYWORD_GUIDANCE: Final[list[tuple[re.Pattern[str], str]]] = [
    (
        re.compile(
            r"id\s*site|siteid|site id|no website found|unknown website|website id"
            r"|idsite|site does not exist|no view access to idsite"
        ),
        SITE_GUIDANCE,
    ),
    (
        re.compile(r"\bdate\b|date parameter|invalid date|date format"),
        "Ensure the date parameter matches Matomo formats "
        "(YYYY-MM-DD or a date range) for the chosen period.",
    ),
    (
        re.compile(r"\bperiod\b|unknown period|invalid period|unsupported period"),
        "Use Matomo-supported periods (day, week, month, year, range) "
        "and align with the requested date.",
    ),
    (
        re.compile(r"\bsegment\b|invalid segment|segment .* does not exist"),
        "Review the Matomo segment expression for syntax errors "
        "and test it in Matomo's segment builder.",
    ),
    (
        re.compile(
            r"unknown method|invalid method|method .* does not exist"
            r"|report .* not found|requested report"
        ),
        "Verify the Matomo API method/module name "
        "and enable the required plugin if necessary.",
    ),
    (
        re.compile(r"\bgoal\b|goal id|unknown goal"),
        "Confirm the Matomo goal ID exists for the site "
        "and matches the request parameters.",
    ),
    (
        re.compile(r"\bformat\b|invalid format|unsupported format"),
        "Request the report in JSON format "
        "and confirm the Matomo plugin supports the chosen format.",
    ),
]


def default_guidance(kind: ErrorKind | None) -> str:
    """Get the generic guidance for an error kind.

    Args:
        kind: Error kind, or None for unclassified errors.

    Returns:
        Guidance text.
    """
    if kind is None:
        return UNKNOWN_GUIDANCE
    return DEFAULT_GUIDANCE[kind]


def resolve_guidance(
    kind: ErrorKind | None,
    message: str | None = None,
    code: str | int | None = None,
) -> str:
    """Pick the most specific guidance for an error.

    Resolution order: auth/permission refinements, the fixed rate-limit
    text, Matomo error code, keyword match on the message, then the
    kind's default.

    Args:
        kind: Error kind.
        message: Error message.
        code: Matomo error code, if the payload carried one.

    Returns:
        Guidance text.
    """
    if not message and code is None:
        return default_guidance(kind)

    normalized = (message or "").lower()

    if kind in (ErrorKind.AUTH, ErrorKind.PERMISSION):
        if "token" in normalized:
            return TOKEN_REJECTED_GUIDANCE
        if "access denied" in normalized or "no view access" in normalized:
            return GRANT_ACCESS_GUIDANCE

    if kind == ErrorKind.RATE_LIMIT:
        return RATE_LIMITED_GUIDANCE

    if code is not None and str(code) in CODE_GUIDANCE:
        return CODE_GUIDANCE[str(code)]

    for pattern, guidance in KEYWORD_GUIDANCE:
        if pattern.search(normalized):
            return guidance

    return default_guidance(kind)

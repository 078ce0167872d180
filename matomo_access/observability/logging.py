"""structlog setup shared by the library and the CLI.

Every rendered event passes through ``scrub_credentials`` so a token_auth
value that ends up in an event field (a request URL, a form body, an error
payload) is written as ``REDACTED``.
"""

import logging
import sys
from collections.abc import MutableMapping
from typing import Any, TextIO

import structlog

from matomo_access.errors.redact import redact_payload


REQUEST_ID_KEY = "request_id"


def scrub_credentials(
    _logger: Any, _method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Processor that redacts Matomo credentials from every event field."""
    return {key: redact_payload(value) for key, value in event_dict.items()}


def _level_number(level: int | str) -> int:
    if isinstance(level, int):
        return level
    return logging.getLevelNamesMapping().get(level.upper(), logging.INFO)


def _processors(json_format: bool, colors: bool) -> list[structlog.types.Processor]:
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer(sort_keys=True)
        if json_format
        else structlog.dev.ConsoleRenderer(colors=colors)
    )
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        scrub_credentials,
        renderer,
    ]


def configure_logging(
    level: int | str = logging.INFO,
    output: TextIO = sys.stderr,
    json_format: bool = True,
) -> None:
    """Route structlog and stdlib logging to one stream.

    Args:
        level: Minimum level, as a number or a case-insensitive name.
            Unknown names fall back to INFO.
        output: Destination stream (default: stderr).
        json_format: JSON lines when True, console rendering otherwise.
            Console colors are only used on a terminal.
    """
    threshold = _level_number(level)

    structlog.configure(
        processors=_processors(json_format, colors=output.isatty()),
        wrapper_class=structlog.make_filtering_bound_logger(threshold),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=output),
        cache_logger_on_first_use=True,
    )

    # httpx logs through the stdlib
    logging.basicConfig(format="%(message)s", stream=output, level=threshold)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger, optionally named."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger


def bind_request_context(request_id: str, **context: Any) -> None:
    """Attach a correlation id, plus any extra fields, to later events.

    Args:
        request_id: Caller-chosen correlation id.
        **context: Further fields, e.g. the CLI command name.
    """
    structlog.contextvars.bind_contextvars(**{REQUEST_ID_KEY: request_id}, **context)


def clear_request_context() -> None:
    """Drop every field bound by bind_request_context."""
    structlog.contextvars.clear_contextvars()

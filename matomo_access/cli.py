"""CLI commands for the Matomo access layer."""

import asyncio
import json
import logging
import sys
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

import click
import structlog

from matomo_access.client import MatomoClient
from matomo_access.config import ClientConfig, ConfigValidationError, load_client_config
from matomo_access.errors import MatomoApiError
from matomo_access.observability import (
    bind_request_context,
    clear_request_context,
    configure_logging,
)
from matomo_access.reports import REPORTS
from matomo_access.settings import get_settings
from matomo_access.storage import SqliteCacheStore, SqliteDatabase, SqliteIdempotencyStore
from matomo_access.tracking import TrackResult


logger = structlog.get_logger()

T = TypeVar("T")

EXIT_FAILURE = 1


@dataclass
class CliOptions:
    """Options shared by every command."""

    config_path: Path | None
    state_path: Path | None
    json_logs: bool
    verbose: bool


def build_client(config: ClientConfig, db: SqliteDatabase | None = None) -> MatomoClient:
    """Create the client, backed by SQLite when a state database is open.

    Args:
        config: Validated configuration.
        db: Optional connected state database.

    Returns:
        Client ready for use.
    """
    if db is None:
        return MatomoClient(config)
    return MatomoClient(
        config,
        cache_store=SqliteCacheStore(db),
        idempotency_store=SqliteIdempotencyStore(db, config.tracking.idempotency_ttl_ms),
    )


def _setup_logging(options: CliOptions, command: str) -> structlog.typing.FilteringBoundLogger:
    """Configure logging and return a logger bound to the command."""
    settings = get_settings()
    level: int | str = logging.DEBUG if options.verbose else settings.log_level
    configure_logging(level=level, json_format=options.json_logs)
    bind_request_context(uuid.uuid4().hex, command=command)
    return logger.bind(component="cli", command=command)  # type: ignore[no-any-return]


def _load_configuration(
    options: CliOptions, log: structlog.typing.FilteringBoundLogger
) -> ClientConfig:
    """Load configuration, exit on failure."""
    try:
        return load_client_config(options.config_path)
    except ConfigValidationError as e:
        log.error("config_load_failed", error_count=len(e.errors))
        click.echo("Configuration validation failed:", err=True)
        for line in str(e).splitlines()[1:]:
            click.echo(f"  {line.strip()}", err=True)
        sys.exit(EXIT_FAILURE)


def _emit(data: Any) -> None:
    """Print a JSON document on stdout."""
    click.echo(json.dumps(data, indent=2, sort_keys=True, default=str))


def _run_with_client(
    options: CliOptions,
    command: str,
    action: Callable[[MatomoClient], Awaitable[T]],
) -> T:
    """Run an async action against a freshly built client.

    API failures are printed with their guidance and end the process.
    """
    log = _setup_logging(options, command)
    config = _load_configuration(options, log)
    db = SqliteDatabase(options.state_path) if options.state_path else None

    async def execute() -> T:
        async with build_client(config, db) as client:
            return await action(client)

    try:
        if db is not None:
            db.connect()
        return asyncio.run(execute())
    except MatomoApiError as e:
        log.error("command_failed", error=e.message, kind=e.kind.value if e.kind else None)
        click.echo(f"Error: {e.message}", err=True)
        click.echo(f"Hint: {e.guidance}", err=True)
        sys.exit(EXIT_FAILURE)
    except ValueError as e:
        log.error("command_failed", error=str(e))
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_FAILURE)
    finally:
        if db is not None:
            db.close()
        clear_request_context()


pass_options = click.make_pass_decorator(CliOptions)

site_id_option = click.option(
    "--site-id",
    type=click.IntRange(min=1),
    default=None,
    help="Matomo site id (default: configured site)",
)


@click.group()
@click.version_option(version="0.1.0")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    envvar="MATOMO_CONFIG",
    default=None,
    help="YAML configuration file (default: environment only)",
)
@click.option(
    "--state",
    "state_path",
    type=click.Path(path_type=Path),
    default=None,
    help="SQLite file for durable cache and idempotency records",
)
@click.option(
    "--json-logs/--console-logs",
    default=True,
    help="Log format on stderr",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: Path | None,
    state_path: Path | None,
    json_logs: bool,
    verbose: bool,
) -> None:
    """Query reports, send tracking calls, and check Matomo health."""
    ctx.obj = CliOptions(
        config_path=config_path,
        state_path=state_path,
        json_logs=json_logs,
        verbose=verbose,
    )


@cli.command()
@site_id_option
@click.option("--details", is_flag=True, help="Also verify access to the site")
@pass_options
def health(options: CliOptions, site_id: int | None, details: bool) -> None:
    """Print the aggregated health status.

    Exits non-zero when the status is unhealthy.
    """
    status = _run_with_client(
        options,
        "health",
        lambda client: client.get_health_status(site_id, include_details=details),
    )
    _emit(status.to_dict())
    if status.status.value == "unhealthy":
        sys.exit(EXIT_FAILURE)


@cli.command()
@site_id_option
@pass_options
def diagnostics(options: CliOptions, site_id: int | None) -> None:
    """Check base URL, token, and site access in order."""
    result = _run_with_client(
        options, "diagnostics", lambda client: client.run_diagnostics(site_id)
    )
    _emit(result.to_dict())
    if not result.ok:
        sys.exit(EXIT_FAILURE)


@cli.command()
@click.argument("feature", type=click.Choice(sorted(REPORTS)))
@site_id_option
@click.option("--period", default="day", show_default=True, help="Matomo period")
@click.option("--date", "date_", default="today", show_default=True, help="Matomo date")
@click.option("--segment", default=None, help="Segment definition")
@click.option("--limit", type=click.IntRange(min=1), default=None, help="Row limit")
@pass_options
def report(  # noqa: PLR0913
    options: CliOptions,
    feature: str,
    site_id: int | None,
    period: str,
    date_: str,
    segment: str | None,
    limit: int | None,
) -> None:
    """Fetch a report with previous-period comparisons."""
    data = _run_with_client(
        options,
        "report",
        lambda client: client.get_report(
            feature,
            site_id,
            period=period,
            date=date_,
            segment=segment,
            limit=limit,
        ),
    )
    _emit(data)


@cli.group()
def track() -> None:
    """Send tracking requests."""


def _emit_track_result(result: TrackResult) -> None:
    _emit(result.model_dump(mode="json"))


@track.command()
@click.argument("url")
@site_id_option
@click.option("--action-name", default=None, help="Page title")
@click.option("--idempotency-key", default=None, help="Deduplication key")
@pass_options
def pageview(
    options: CliOptions,
    url: str,
    site_id: int | None,
    action_name: str | None,
    idempotency_key: str | None,
) -> None:
    """Record a page view for URL."""
    result = _run_with_client(
        options,
        "track_pageview",
        lambda client: client.track_pageview(
            url, site_id, action_name=action_name, idempotency_key=idempotency_key
        ),
    )
    _emit_track_result(result)


@track.command()
@click.argument("category")
@click.argument("action")
@site_id_option
@click.option("--name", default=None, help="Event name")
@click.option("--value", type=float, default=None, help="Event value")
@click.option("--url", default=None, help="Page URL the event happened on")
@click.option("--idempotency-key", default=None, help="Deduplication key")
@pass_options
def event(  # noqa: PLR0913
    options: CliOptions,
    category: str,
    action: str,
    site_id: int | None,
    name: str | None,
    value: float | None,
    url: str | None,
    idempotency_key: str | None,
) -> None:
    """Record a custom event."""
    result = _run_with_client(
        options,
        "track_event",
        lambda client: client.track_event(
            category,
            action,
            site_id,
            name=name,
            value=value,
            url=url,
            idempotency_key=idempotency_key,
        ),
    )
    _emit_track_result(result)


@track.command()
@click.argument("goal_id", type=click.IntRange(min=0))
@site_id_option
@click.option("--revenue", type=float, default=None, help="Conversion revenue")
@click.option("--url", default=None, help="Page URL of the conversion")
@click.option("--idempotency-key", default=None, help="Deduplication key")
@pass_options
def goal(  # noqa: PLR0913
    options: CliOptions,
    goal_id: int,
    site_id: int | None,
    revenue: float | None,
    url: str | None,
    idempotency_key: str | None,
) -> None:
    """Record a conversion for GOAL_ID."""
    result = _run_with_client(
        options,
        "track_goal",
        lambda client: client.track_goal(
            goal_id, site_id, revenue=revenue, url=url, idempotency_key=idempotency_key
        ),
    )
    _emit_track_result(result)


def main() -> None:
    """Console script entry point."""
    cli()


if __name__ == "__main__":
    main()

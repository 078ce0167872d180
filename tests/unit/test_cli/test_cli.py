"""Unit tests for the matomo-access CLI."""

import json
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import httpx
import pytest
from click.testing import CliRunner, Result
from structlog.testing import capture_logs

from matomo_access import cli as cli_module
from matomo_access.client import MatomoClient
from matomo_access.config import ClientConfig
from matomo_access.storage import SqliteCacheStore, SqliteDatabase, SqliteIdempotencyStore
from tests.helpers.matomo import HEALTHY_ROUTES, FakeMatomoServer


CONFIG_YAML = """
base_url: https://matomo.example.com
token: cli-token
default_site_id: 4
http:
  retry:
    max_attempts: 1
"""


@pytest.fixture
def server() -> FakeMatomoServer:
    """Provide a healthy fake Matomo server."""
    return FakeMatomoServer(dict(HEALTHY_ROUTES))


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    """Write a valid config file."""
    path = tmp_path / "matomo.yaml"
    path.write_text(CONFIG_YAML, encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def isolated_cli(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, server: FakeMatomoServer
) -> Iterator[None]:
    """Route client traffic to the fake server and keep logging untouched."""
    for name in ("MATOMO_BASE_URL", "MATOMO_TOKEN", "MATOMO_DEFAULT_SITE_ID", "MATOMO_CONFIG"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)

    def build_client(config: ClientConfig, db: SqliteDatabase | None = None) -> MatomoClient:
        return MatomoClient(
            config,
            cache_store=SqliteCacheStore(db) if db else None,
            idempotency_store=SqliteIdempotencyStore(db) if db else None,
            http_client=server.client(),
            tracking_http_client=server.client(),
        )

    monkeypatch.setattr(cli_module, "build_client", build_client)
    monkeypatch.setattr(cli_module, "configure_logging", lambda **kwargs: None)
    with capture_logs():
        yield


def invoke(*args: str) -> Result:
    """Run the CLI in-process."""
    return CliRunner().invoke(cli_module.cli, list(args))


def stdout_json(result: Result) -> Any:
    """Parse the JSON document printed on stdout."""
    return json.loads(result.stdout)


class TestHealthCommand:
    """Tests for the health command."""

    def test_healthy(self, config_path: Path) -> None:
        """Test a healthy server exits zero with every check."""
        result = invoke("--config", str(config_path), "health", "--details")

        assert result.exit_code == 0, result.output
        data = stdout_json(result)
        assert data["status"] == "healthy"
        assert [check["name"] for check in data["checks"]] == [
            "matomo-api",
            "reports-cache",
            "tracking-queue",
            "site-access",
        ]

    def test_unhealthy_exits_nonzero(
        self, config_path: Path, server: FakeMatomoServer
    ) -> None:
        """Test a failing API makes the command fail."""
        server.routes["API.getMatomoVersion"] = httpx.Response(500, text="boom")

        result = invoke("--config", str(config_path), "health")

        assert result.exit_code == 1
        data = stdout_json(result)
        assert data["status"] == "unhealthy"
        assert data["checks"][0]["status"] == "fail"


class TestDiagnosticsCommand:
    """Tests for the diagnostics command."""

    def test_all_steps_ok(self, config_path: Path) -> None:
        """Test three ok steps and a zero exit."""
        result = invoke("--config", str(config_path), "diagnostics")

        assert result.exit_code == 0, result.output
        statuses = [check["status"] for check in stdout_json(result)["checks"]]
        assert statuses == ["ok", "ok", "ok"]

    def test_auth_failure_skips_site(self, config_path: Path, server: FakeMatomoServer) -> None:
        """Test a rejected token skips the site step."""
        server.routes["UsersManager.getUserByTokenAuth"] = httpx.Response(401, text="denied")

        result = invoke("--config", str(config_path), "diagnostics")

        assert result.exit_code == 1
        checks = stdout_json(result)["checks"]
        assert checks[1]["status"] == "error"
        assert checks[2]["status"] == "skipped"
        assert "skippedReason" in checks[2]


class TestReportCommand:
    """Tests for the report command."""

    def test_key_numbers(self, config_path: Path, server: FakeMatomoServer) -> None:
        """Test a record report is printed with comparisons."""
        server.routes["VisitsSummary.get"] = {"nb_visits": 8}

        result = invoke(
            "--config", str(config_path), "report", "keyNumbers", "--date", "2024-03-15"
        )

        assert result.exit_code == 0, result.output
        data = stdout_json(result)
        assert data["nb_visits"] == 8
        assert "comparisons" in data

    def test_rows_with_limit(self, config_path: Path, server: FakeMatomoServer) -> None:
        """Test options are forwarded to the API."""
        server.routes["Events.getAction"] = [{"label": "play", "nb_events": 2}]

        result = invoke(
            "--config",
            str(config_path),
            "report",
            "events",
            "--site-id",
            "6",
            "--limit",
            "3",
            "--date",
            "2024-03-15",
        )

        assert result.exit_code == 0, result.output
        assert stdout_json(result)[0]["label"] == "play"
        params = next(
            request.url.params
            for request in server.api_requests
            if request.url.params["date"] == "2024-03-15"
        )
        assert params["idSite"] == "6"
        assert params["filter_limit"] == "3"

    def test_unknown_feature_is_usage_error(self, config_path: Path) -> None:
        """Test features outside the catalogue are rejected by click."""
        result = invoke("--config", str(config_path), "report", "bounceRate")

        assert result.exit_code == 2

    def test_api_error_prints_guidance(self, config_path: Path, server: FakeMatomoServer) -> None:
        """Test API failures print the message and a hint."""
        server.routes["VisitsSummary.get"] = httpx.Response(401, text="bad token")

        result = invoke(
            "--config", str(config_path), "report", "keyNumbers", "--date", "2024-03-15"
        )

        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "Hint:" in result.output
        assert "cli-token" not in result.output


class TestTrackCommands:
    """Tests for the track subcommands."""

    def test_event(self, config_path: Path, server: FakeMatomoServer) -> None:
        """Test an event is posted for the default site."""
        result = invoke(
            "--config", str(config_path), "track", "event", "video", "play", "--value", "2"
        )

        assert result.exit_code == 0, result.output
        assert stdout_json(result)["ok"] is True
        form = server.tracking_form()
        assert form["idsite"] == "4"
        assert form["e_c"] == "video"
        assert form["e_v"] == "2"

    def test_goal(self, config_path: Path, server: FakeMatomoServer) -> None:
        """Test a goal conversion carries its id and revenue."""
        result = invoke(
            "--config", str(config_path), "track", "goal", "5", "--revenue", "12.5"
        )

        assert result.exit_code == 0, result.output
        form = server.tracking_form()
        assert form["idgoal"] == "5"
        assert form["revenue"] == "12.5"

    def test_pageview_deduplicated_with_state(
        self, config_path: Path, server: FakeMatomoServer, tmp_path: Path
    ) -> None:
        """Test a state database replays a repeated idempotency key."""
        state = tmp_path / "state.db"
        args = (
            "--config",
            str(config_path),
            "--state",
            str(state),
            "track",
            "pageview",
            "https://shop.example.com/",
            "--idempotency-key",
            "pv-home",
        )

        first = invoke(*args)
        second = invoke(*args)

        assert first.exit_code == 0, first.output
        assert second.exit_code == 0, second.output
        assert len(server.tracking_requests) == 1
        assert state.exists()


class TestConfigErrors:
    """Tests for configuration failures."""

    def test_missing_token(self, tmp_path: Path) -> None:
        """Test an invalid config exits with hints."""
        path = tmp_path / "bad.yaml"
        path.write_text("base_url: https://matomo.example.com\n", encoding="utf-8")

        result = invoke("--config", str(path), "health")

        assert result.exit_code == 1
        assert "Configuration validation failed" in result.output
        assert "MATOMO_TOKEN" in result.output

    def test_environment_only(
        self, monkeypatch: pytest.MonkeyPatch, server: FakeMatomoServer
    ) -> None:
        """Test the CLI runs from environment settings alone."""
        monkeypatch.setenv("MATOMO_BASE_URL", "https://matomo.example.com")
        monkeypatch.setenv("MATOMO_TOKEN", "env-token")
        monkeypatch.setenv("MATOMO_DEFAULT_SITE_ID", "2")

        result = invoke("track", "event", "cta", "click")

        assert result.exit_code == 0, result.output
        assert server.tracking_form()["idsite"] == "2"

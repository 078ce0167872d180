"""Unit tests for structured logging setup."""

import io
import json

import structlog

from matomo_access.observability import (
    bind_request_context,
    clear_request_context,
    configure_logging,
    get_logger,
)


class TestConfigureLogging:
    """Tests for configure_logging."""

    def teardown_method(self) -> None:
        """Restore structlog defaults for other tests."""
        clear_request_context()
        structlog.reset_defaults()

    def test_json_output_with_request_context(self) -> None:
        """Test JSON lines carry level, timestamp, and the request id."""
        stream = io.StringIO()
        configure_logging(level="debug", output=stream, json_format=True)
        bind_request_context("req-42")

        get_logger().info("report_fetched", feature="keyNumbers")

        record = json.loads(stream.getvalue().strip())
        assert record["event"] == "report_fetched"
        assert record["feature"] == "keyNumbers"
        assert record["level"] == "info"
        assert record["request_id"] == "req-42"
        assert "timestamp" in record

    def test_level_filters(self) -> None:
        """Test messages below the level are dropped."""
        stream = io.StringIO()
        configure_logging(level="WARNING", output=stream)

        get_logger().info("ignored")

        assert stream.getvalue() == ""

    def test_token_scrubbed_from_events(self) -> None:
        """Test token_auth values never reach the rendered line."""
        stream = io.StringIO()
        configure_logging(output=stream)

        get_logger().warning(
            "request_failed",
            url="https://matomo.example.com/index.php?module=API&token_auth=s3cret",
            params={"token_auth": "s3cret", "idSite": 4},
        )

        line = stream.getvalue()
        assert "s3cret" not in line
        record = json.loads(line.strip())
        assert record["url"].endswith("token_auth=REDACTED")
        assert record["params"] == {"token_auth": "REDACTED", "idSite": 4}

    def test_extra_context_cleared(self) -> None:
        """Test extra bound fields appear and are dropped on clear."""
        stream = io.StringIO()
        configure_logging(output=stream)
        bind_request_context("req-7", command="health")

        get_logger().info("first")
        clear_request_context()
        get_logger().info("second")

        first, second = (json.loads(line) for line in stream.getvalue().splitlines())
        assert first["command"] == "health"
        assert first["request_id"] == "req-7"
        assert "command" not in second
        assert "request_id" not in second

    def test_unknown_level_name_defaults_to_info(self) -> None:
        """Test an unrecognised level name behaves like INFO."""
        stream = io.StringIO()
        configure_logging(level="chatty", output=stream)

        get_logger().debug("hidden")
        get_logger().info("shown")

        assert [json.loads(line)["event"] for line in stream.getvalue().splitlines()] == [
            "shown"
        ]

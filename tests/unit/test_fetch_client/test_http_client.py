"""Unit tests for the Matomo request client."""

from unittest.mock import patch

import httpx
import pytest
from structlog.testing import capture_logs

from matomo_access.errors import (
    MatomoAuthError,
    MatomoClientError,
    MatomoNetworkError,
    MatomoParseError,
    MatomoRateLimitError,
    MatomoServerError,
)
from matomo_access.fetch import (
    EndpointConfig,
    HttpOptions,
    MatomoHttpClient,
    RateLimitEvent,
    RateLimitOptions,
    RetryPolicy,
)
from tests.helpers.sleep import RecordingSleep
from tests.helpers.time import FIXED_EPOCH, fixed_clock
from tests.helpers.transport import ScriptedTransport


TOKEN = "secret-token-123"
SLEEP_TARGET = "matomo_access.fetch.client.asyncio.sleep"


def make_client(
    transport: ScriptedTransport,
    options: HttpOptions | None = None,
    on_rate_limit=None,
) -> MatomoHttpClient:
    """Build a client bound to a scripted transport and a fixed clock."""
    return MatomoHttpClient(
        EndpointConfig(base_url="https://matomo.example.com", token=TOKEN),
        options,
        on_rate_limit=on_rate_limit,
        http_client=transport.client(),
        clock=fixed_clock,
    )


class TestRequestBuilding:
    """Tests for request URL construction."""

    @pytest.mark.asyncio
    async def test_fixed_params_and_omitted_none(self) -> None:
        """Test module, method, token, format, and caller params."""
        transport = ScriptedTransport([httpx.Response(200, json={"nb_visits": 5})])
        client = make_client(transport)

        response = await client.get(
            "VisitsSummary.get",
            {"idSite": 3, "period": "day", "segment": None, "flat": True},
        )

        params = transport.requests[0].url.params
        assert transport.requests[0].url.path == "/index.php"
        assert params["module"] == "API"
        assert params["method"] == "VisitsSummary.get"
        assert params["token_auth"] == TOKEN
        assert params["format"] == "JSON"
        assert params["idSite"] == "3"
        assert params["flat"] == "1"
        assert "segment" not in params
        assert response.data == {"nb_visits": 5}
        assert response.ok is True

    @pytest.mark.asyncio
    async def test_method_required(self) -> None:
        """Test an empty method is rejected before any request."""
        transport = ScriptedTransport([httpx.Response(200, json={})])
        client = make_client(transport)

        with pytest.raises(ValueError, match="method is required"):
            await client.get("")

        assert transport.call_count == 0

    @pytest.mark.asyncio
    async def test_empty_body_is_none(self) -> None:
        """Test an empty success body decodes to None."""
        transport = ScriptedTransport([httpx.Response(200, content=b"  ")])
        client = make_client(transport)

        assert await client.get_data("API.getMatomoVersion") is None


class TestRetries:
    """Tests for retry and backoff behavior."""

    @pytest.mark.asyncio
    async def test_retries_server_error_then_succeeds(self) -> None:
        """Test a 5xx is retried transparently."""
        transport = ScriptedTransport(
            [
                httpx.Response(500, text="boom"),
                httpx.Response(200, json={"value": 1}),
            ]
        )
        client = make_client(transport)
        fake_sleep = RecordingSleep()

        with patch(SLEEP_TARGET, fake_sleep):
            data = await client.get_data("VisitsSummary.get")

        assert data == {"value": 1}
        assert transport.call_count == 2
        assert client.metrics.retries_total == 1

    @pytest.mark.asyncio
    async def test_backoff_bounds(self) -> None:
        """Test each retry waits base*2^(n-1) capped, plus bounded jitter."""
        transport = ScriptedTransport([httpx.Response(503, text="down")])
        options = HttpOptions(
            retry=RetryPolicy(
                max_attempts=4, base_delay_ms=250, max_delay_ms=600, jitter_ms=100
            )
        )
        client = make_client(transport, options)
        fake_sleep = RecordingSleep()

        with patch(SLEEP_TARGET, fake_sleep), pytest.raises(MatomoServerError):
            await client.get("VisitsSummary.get")

        assert transport.call_count == 4
        assert len(fake_sleep.delays) == 3
        for delay, expected in zip(fake_sleep.delays, [0.25, 0.5, 0.6], strict=True):
            assert expected <= delay <= expected + 0.1
        assert client.metrics.failures_total == {"server": 1}

    @pytest.mark.asyncio
    async def test_request_timeout_status_retried(self) -> None:
        """Test HTTP 408 is retried."""
        transport = ScriptedTransport(
            [httpx.Response(408), httpx.Response(200, json=[])]
        )
        client = make_client(transport)

        with patch(SLEEP_TARGET, RecordingSleep()):
            assert await client.get_data("Actions.getPageUrls") == []

        assert transport.call_count == 2

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self) -> None:
        """Test other 4xx responses fail immediately."""
        transport = ScriptedTransport([httpx.Response(400, text="bad request")])
        client = make_client(transport)

        with pytest.raises(MatomoClientError) as exc_info:
            await client.get("VisitsSummary.get")

        assert transport.call_count == 1
        assert exc_info.value.status == 400
        assert exc_info.value.body == "bad request"

    @pytest.mark.asyncio
    async def test_connection_error_retried_then_surfaced(self) -> None:
        """Test transport failures become network errors after retries."""
        transport = ScriptedTransport([httpx.ConnectError("connection refused")])
        client = make_client(transport)

        with patch(SLEEP_TARGET, RecordingSleep()), pytest.raises(
            MatomoNetworkError
        ) as exc_info:
            await client.get("VisitsSummary.get")

        assert transport.call_count == 3
        assert exc_info.value.endpoint is not None
        assert TOKEN not in exc_info.value.endpoint

    @pytest.mark.asyncio
    async def test_timeout_is_network_error(self) -> None:
        """Test timeouts surface as network errors."""
        transport = ScriptedTransport([httpx.ReadTimeout("slow")])
        options = HttpOptions(timeout_ms=1500, retry=RetryPolicy(max_attempts=1))
        client = make_client(transport, options)

        with pytest.raises(MatomoNetworkError, match="timed out after 1500ms"):
            await client.get("VisitsSummary.get")


class TestResponseHandling:
    """Tests for body parsing and payload errors."""

    @pytest.mark.asyncio
    async def test_invalid_json_on_success_is_parse_error(self) -> None:
        """Test malformed success bodies raise a parse error without retry."""
        transport = ScriptedTransport([httpx.Response(200, text="<html>")])
        client = make_client(transport)

        with pytest.raises(MatomoParseError):
            await client.get("VisitsSummary.get")

        assert transport.call_count == 1

    @pytest.mark.asyncio
    async def test_invalid_json_on_failure_is_context(self) -> None:
        """Test malformed error bodies are kept as error context."""
        transport = ScriptedTransport([httpx.Response(404, text="<html>nope</html>")])
        client = make_client(transport)

        with pytest.raises(MatomoClientError) as exc_info:
            await client.get("VisitsSummary.get")

        assert exc_info.value.body == "<html>nope</html>"
        assert exc_info.value.payload is None

    @pytest.mark.asyncio
    async def test_error_payload_on_200(self) -> None:
        """Test application errors in a 200 body are raised and not retried."""
        transport = ScriptedTransport(
            [
                httpx.Response(
                    200,
                    json={
                        "result": "error",
                        "message": "You must be logged in: token_auth invalid",
                    },
                )
            ]
        )
        client = make_client(transport)

        with pytest.raises(MatomoAuthError):
            await client.get("VisitsSummary.get")

        assert transport.call_count == 1

    @pytest.mark.asyncio
    async def test_token_not_logged(self) -> None:
        """Test the token never appears in log events."""
        transport = ScriptedTransport([httpx.Response(500, text="oops")])

        with capture_logs() as logs, pytest.raises(MatomoServerError):
            client = make_client(
                transport, HttpOptions(retry=RetryPolicy(max_attempts=1))
            )
            await client.get("VisitsSummary.get")

        assert logs
        assert TOKEN not in str(logs)


class TestRateLimits:
    """Tests for rate-limit cooldown."""

    @pytest.mark.asyncio
    async def test_429_not_retried_and_cooldown_applied(self) -> None:
        """Test a 429 fails fast and holds the next request."""
        transport = ScriptedTransport(
            [
                httpx.Response(429, headers={"Retry-After": "2"}, text="slow down"),
                httpx.Response(200, json={"ok": True}),
            ]
        )
        events: list[RateLimitEvent] = []
        client = make_client(transport, on_rate_limit=events.append)
        fake_sleep = RecordingSleep()

        with patch(SLEEP_TARGET, fake_sleep):
            with pytest.raises(MatomoRateLimitError) as exc_info:
                await client.get("VisitsSummary.get")
            assert transport.call_count == 1
            assert fake_sleep.delays == []

            await client.get("VisitsSummary.get")

        assert exc_info.value.retry_after_ms == 2000
        assert fake_sleep.delays == [pytest.approx(2.0)]
        assert len(events) == 1
        assert events[0].source == "retry-after"
        assert events[0].status == 429
        assert client.rate_limit_state.cooldown_until == pytest.approx(FIXED_EPOCH + 2)

    @pytest.mark.asyncio
    async def test_retry_after_beats_reset(self) -> None:
        """Test Retry-After wins over a later reset timestamp."""
        transport = ScriptedTransport(
            [
                httpx.Response(
                    429,
                    headers={
                        "Retry-After": "3",
                        "X-Matomo-Rate-Limit-Reset": str(int(FIXED_EPOCH) + 10),
                    },
                ),
                httpx.Response(200, json={}),
            ]
        )
        client = make_client(transport)
        fake_sleep = RecordingSleep()

        with patch(SLEEP_TARGET, fake_sleep):
            with pytest.raises(MatomoRateLimitError):
                await client.get("VisitsSummary.get")
            await client.get("VisitsSummary.get")

        assert fake_sleep.delays == [pytest.approx(3.0)]

    @pytest.mark.asyncio
    async def test_exhausted_budget_uses_reset(self) -> None:
        """Test remaining=0 on a success still establishes a cooldown."""
        transport = ScriptedTransport(
            [
                httpx.Response(
                    200,
                    headers={
                        "X-RateLimit-Limit": "100",
                        "X-RateLimit-Remaining": "0",
                        "X-RateLimit-Reset": "5",
                    },
                    json={"nb_visits": 1},
                )
            ]
        )
        events: list[RateLimitEvent] = []
        client = make_client(transport, on_rate_limit=events.append)

        assert await client.get_data("VisitsSummary.get") == {"nb_visits": 1}

        assert events[0].source == "reset"
        assert events[0].limit == 100
        assert events[0].delay_ms == 5000

    @pytest.mark.asyncio
    async def test_throttle_floor_without_signals(self) -> None:
        """Test a bare 429 falls back to the minimum throttle."""
        transport = ScriptedTransport([httpx.Response(429)])
        events: list[RateLimitEvent] = []
        options = HttpOptions(rate_limit=RateLimitOptions(min_throttle_ms=750))
        client = make_client(transport, options, on_rate_limit=events.append)

        with pytest.raises(MatomoRateLimitError):
            await client.get("VisitsSummary.get")

        assert events[0].source == "throttle"
        assert events[0].delay_ms == 750

    @pytest.mark.asyncio
    async def test_remaining_budget_no_cooldown(self) -> None:
        """Test headers with budget left only update the snapshot."""
        transport = ScriptedTransport(
            [
                httpx.Response(
                    200,
                    headers={"X-Matomo-Rate-Limit-Remaining": "7"},
                    json={},
                )
            ]
        )
        client = make_client(transport)

        await client.get("VisitsSummary.get")

        assert client.rate_limit_state.remaining == 7
        assert client.rate_limit_state.cooldown_until is None

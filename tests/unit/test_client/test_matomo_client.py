"""Unit tests for the MatomoClient facade."""

from pathlib import Path

import httpx
import pytest

from matomo_access import ClientConfig, MatomoAuthError, MatomoClient
from matomo_access.health import CheckStatus, HealthState
from matomo_access.reports import InMemoryCacheStore
from matomo_access.storage import SqliteDatabase, SqliteIdempotencyStore
from matomo_access.tracking import InMemoryIdempotencyStore
from tests.helpers.matomo import HEALTHY_ROUTES, FakeMatomoServer
from tests.helpers.time import fixed_clock


def make_config(default_site_id: int | None = 4) -> ClientConfig:
    """Build a config with single-attempt requests."""
    data: dict[str, object] = {
        "base_url": "https://matomo.example.com",
        "token": "secret-token",
        "http": {"retry": {"max_attempts": 1}},
    }
    if default_site_id is not None:
        data["default_site_id"] = default_site_id
    return ClientConfig.model_validate(data)


def make_client(
    server: FakeMatomoServer, config: ClientConfig | None = None, **kwargs: object
) -> MatomoClient:
    """Build a client whose HTTP traffic goes to the fake server."""
    return MatomoClient(
        config or make_config(),
        http_client=server.client(),
        tracking_http_client=server.client(),
        clock=fixed_clock,
        **kwargs,  # type: ignore[arg-type]
    )


class TestResolveSiteId:
    """Tests for default site resolution."""

    def test_explicit_site_wins(self) -> None:
        """Test an explicit id overrides the default."""
        client = make_client(FakeMatomoServer())

        assert client.resolve_site_id(9) == 9
        assert client.resolve_site_id() == 4

    def test_missing_site_raises(self) -> None:
        """Test a call without any site id fails fast."""
        client = make_client(FakeMatomoServer(), make_config(default_site_id=None))

        with pytest.raises(ValueError, match="siteId is required"):
            client.resolve_site_id()


class TestClientReports:
    """Tests for report calls through the facade."""

    @pytest.mark.asyncio
    async def test_key_numbers_use_default_site(self) -> None:
        """Test the configured site and token reach the reporting API."""
        server = FakeMatomoServer({"VisitsSummary.get": {"nb_visits": 12}})

        async with make_client(server) as client:
            result = await client.get_key_numbers(date="2024-03-15")

        assert result["nb_visits"] == 12
        first = server.api_requests[0].url.params
        assert first["idSite"] == "4"
        assert first["token_auth"] == "secret-token"
        assert first["format"] == "JSON"

    @pytest.mark.asyncio
    async def test_rows_honor_overrides(self) -> None:
        """Test explicit site, period, and limit are forwarded."""
        server = FakeMatomoServer(
            {"Referrers.getReferrerType": [{"label": "Search Engines", "nb_visits": 3}]}
        )
        client = make_client(server)

        rows = await client.get_top_referrers(7, period="month", date="2024-03-01", limit=2)

        assert rows[0]["label"] == "Search Engines"
        params = next(
            request.url.params
            for request in server.api_requests
            if request.url.params["date"] == "2024-03-01"
        )
        assert params["idSite"] == "7"
        assert params["period"] == "month"
        assert params["filter_limit"] == "2"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_report_without_site_makes_no_request(self) -> None:
        """Test a missing site id fails before any HTTP call."""
        server = FakeMatomoServer()
        client = make_client(server, make_config(default_site_id=None))

        with pytest.raises(ValueError, match="siteId is required"):
            await client.get_events()

        assert server.api_requests == []

    @pytest.mark.asyncio
    async def test_api_errors_surface(self) -> None:
        """Test classified errors propagate to the caller."""
        server = FakeMatomoServer({"VisitsSummary.get": httpx.Response(401, text="nope")})
        client = make_client(server)

        with pytest.raises(MatomoAuthError):
            await client.get_key_numbers(date="2024-03-15")

        stats = await client.cache_stats()
        assert stats.total.sets == 0

    @pytest.mark.asyncio
    async def test_cache_stats_reflect_hits(self) -> None:
        """Test repeated calls are answered from the cache."""
        server = FakeMatomoServer({"Actions.getEntryPageUrls": [{"label": "/", "nb_visits": 1}]})
        client = make_client(server)

        await client.get_entry_pages(date="2024-03-15")
        calls = len(server.api_requests)
        await client.get_entry_pages(date="2024-03-15")

        stats = await client.cache_stats()
        assert len(server.api_requests) == calls
        assert stats.total.hits == 1
        assert stats.total.misses == 1


class TestInjectedStores:
    """Tests for caller-owned stores passed to the client."""

    @pytest.mark.asyncio
    async def test_empty_stores_are_used(self) -> None:
        """Test fresh in-memory stores receive cache entries and records."""
        server = FakeMatomoServer({"VisitsSummary.get": {"nb_visits": 2}})
        cache_store = InMemoryCacheStore()
        idempotency_store = InMemoryIdempotencyStore(clock=fixed_clock)

        async with make_client(
            server, cache_store=cache_store, idempotency_store=idempotency_store
        ) as client:
            await client.get_key_numbers(date="2024-03-15")
            await client.track_event("video", "play", idempotency_key="k1")

        assert client.reports.cache.store is cache_store
        assert client.tracking.queue.store is idempotency_store
        assert len(cache_store) == 1
        assert await idempotency_store.get("k1") is not None


class TestClientTracking:
    """Tests for tracking calls through the facade."""

    @pytest.mark.asyncio
    async def test_event_fills_default_site(self) -> None:
        """Test the default site id is sent with the event."""
        server = FakeMatomoServer()

        async with make_client(server) as client:
            result = await client.track_event("video", "play", name="intro", value=1.5)

        assert result.ok
        form = server.tracking_form()
        assert form["idsite"] == "4"
        assert form["e_c"] == "video"
        assert form["e_a"] == "play"
        assert form["e_n"] == "intro"
        assert client.queue_stats().total_processed == 1

    @pytest.mark.asyncio
    async def test_idempotent_goal_sent_once(self) -> None:
        """Test a repeated key replays the stored result."""
        server = FakeMatomoServer()
        client = make_client(server)

        first = await client.track_goal(3, revenue=9.99, idempotency_key="order-1")
        second = await client.track_goal(3, revenue=9.99, idempotency_key="order-1")

        assert first == second
        assert len(server.tracking_requests) == 1
        record = await client.get_idempotency_record("order-1")
        assert record is not None
        assert record.status == "completed"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_pageview_with_durable_store(self, tmp_path: Path) -> None:
        """Test an injected SQLite store keeps records across clients."""
        server = FakeMatomoServer()
        with SqliteDatabase(tmp_path / "state.db") as db:
            for _ in range(2):
                async with make_client(
                    server, idempotency_store=SqliteIdempotencyStore(db, clock=fixed_clock)
                ) as client:
                    await client.track_pageview(
                        "https://shop.example.com/", idempotency_key="pv-home"
                    )

        assert len(server.tracking_requests) == 1

    @pytest.mark.asyncio
    async def test_invalid_input_rejected(self) -> None:
        """Test payload validation runs before delivery."""
        server = FakeMatomoServer()
        client = make_client(server)

        with pytest.raises(ValueError):
            await client.track_event("", "play")

        assert server.tracking_requests == []


class TestClientHealth:
    """Tests for health and diagnostics through the facade."""

    @pytest.mark.asyncio
    async def test_healthy_status(self) -> None:
        """Test a responsive server with idle cache and queue is healthy."""
        server = FakeMatomoServer(HEALTHY_ROUTES)
        client = make_client(server)

        status = await client.get_health_status(include_details=True)

        assert status.status == HealthState.HEALTHY
        assert [check.name for check in status.checks] == [
            "matomo-api",
            "reports-cache",
            "tracking-queue",
            "site-access",
        ]
        site = status.get_check("site-access")
        assert site is not None
        assert site.status == CheckStatus.PASS
        assert server.api_requests[-1].url.params["idSite"] == "4"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_details_skipped_without_site(self) -> None:
        """Test the site check needs a site id."""
        server = FakeMatomoServer(HEALTHY_ROUTES)
        client = make_client(server, make_config(default_site_id=None))

        status = await client.get_health_status(include_details=True)

        assert status.get_check("site-access") is None
        await client.aclose()

    @pytest.mark.asyncio
    async def test_diagnostics_all_ok(self) -> None:
        """Test every diagnostic step passes against a healthy server."""
        server = FakeMatomoServer(HEALTHY_ROUTES)
        client = make_client(server)

        result = await client.run_diagnostics()

        assert result.ok
        assert [check.id for check in result.checks] == [
            "base-url",
            "token-auth",
            "site-access",
        ]
        assert result.checks[2].details == {"idsite": "4", "name": "Shop"}
        await client.aclose()

    @pytest.mark.asyncio
    async def test_diagnostics_without_site(self) -> None:
        """Test a missing site id fails only the last step."""
        server = FakeMatomoServer(HEALTHY_ROUTES)
        client = make_client(server, make_config(default_site_id=None))

        result = await client.run_diagnostics()

        assert not result.ok
        site = result.checks[2]
        assert site.status == "error"
        assert site.error is not None
        assert site.error.message == "siteId is required"
        await client.aclose()

"""Integration tests for the calendar API routes.

Requests go through a real aiohttp test server; feed downloads are served by
an httpx MockTransport so no network access is needed.
"""

from datetime import UTC, datetime

import httpx
import pytest
from aiohttp.test_utils import TestClient, TestServer

from dashcal.api.server import HOLDER_KEY, make_app
from dashcal.core.config_manager import EngineSettings
from dashcal.core.timezone_utils import TEST_TIME_ENV
from dashcal.domain.pipeline import refresh_into

pytestmark = pytest.mark.integration

WEEKLY_URL = "https://example.com/weekly.ics"
HOLIDAY_URL = "https://example.com/holiday.ics"
BROKEN_URL = "https://example.com/broken.ics"
DOWN_URL = "https://example.com/down.ics"
TIMEOUT_URL = "https://example.com/slow.ics"


@pytest.fixture
def feed_routes(ics_fixture) -> dict:
    return {
        WEEKLY_URL: ics_fixture("weekly_recurring.ics"),
        HOLIDAY_URL: ics_fixture("all_day_holiday.ics"),
        BROKEN_URL: ics_fixture("malformed.ics"),
        DOWN_URL: 503,
        TIMEOUT_URL: httpx.ConnectTimeout("timed out"),
    }


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings(feed_url=WEEKLY_URL, request_timeout=5, default_timezone="UTC")


@pytest.fixture
async def app_and_client(feed_routes, settings, feed_client_factory, monkeypatch):
    """App wired to the mock feed client, plus a test client for it."""
    monkeypatch.setenv(TEST_TIME_ENV, "2024-01-10T12:00:00Z")
    feed_client = feed_client_factory(feed_routes)
    app = make_app(
        settings,
        client=feed_client,
        time_provider=lambda: datetime(2024, 1, 15, 8, 0, tzinfo=UTC),
    )
    async with TestClient(TestServer(app)) as client:
        yield app, client, feed_client


class TestCalendarEventsRoute:
    """GET /api/calendar/events fetches the requested feed per request."""

    async def test_events_when_webcal_url_then_expanded_occurrences(self, app_and_client):
        _app, client, _feed = app_and_client

        response = await client.get(
            "/api/calendar/events", params={"url": "webcal://example.com/weekly.ics"}
        )

        assert response.status == 200
        data = await response.json()
        assert data["status"] == "ok"
        assert len(data["events"]) == 10
        assert all(event["isRecurring"] for event in data["events"])
        assert all("recurrence" not in event for event in data["events"])
        starts = [event["start"] for event in data["events"]]
        assert starts == sorted(starts)
        assert starts[0] == "2024-01-01T10:00:00Z"

    async def test_events_when_date_given_then_only_that_day(self, app_and_client):
        _app, client, _feed = app_and_client

        response = await client.get(
            "/api/calendar/events", params={"url": WEEKLY_URL, "date": "2024-01-15"}
        )

        assert response.status == 200
        data = await response.json()
        assert [event["start"] for event in data["events"]] == ["2024-01-15T10:00:00Z"]

    async def test_events_when_all_day_feed_then_utc_day_bounds(self, app_and_client):
        _app, client, _feed = app_and_client

        response = await client.get("/api/calendar/events", params={"url": HOLIDAY_URL})

        data = await response.json()
        assert response.status == 200
        (event,) = data["events"]
        assert event["isAllDay"] is True
        assert event["start"] == "2024-07-04T00:00:00Z"
        assert event["end"] == "2024-07-05T00:00:00Z"

    async def test_events_when_url_missing_then_400(self, app_and_client):
        _app, client, _feed = app_and_client

        response = await client.get("/api/calendar/events")

        assert response.status == 400
        data = await response.json()
        assert data["status"] == "error"
        assert data["error"] == "InvalidFeedUrl"

    async def test_events_when_url_scheme_unsupported_then_400(self, app_and_client):
        _app, client, _feed = app_and_client

        response = await client.get(
            "/api/calendar/events", params={"url": "ftp://example.com/cal.ics"}
        )

        assert response.status == 400
        assert (await response.json())["error"] == "InvalidFeedUrl"

    async def test_events_when_server_errors_then_502_fetch_error(self, app_and_client):
        _app, client, _feed = app_and_client

        response = await client.get("/api/calendar/events", params={"url": DOWN_URL})

        assert response.status == 502
        data = await response.json()
        assert data["error"] == "FeedFetchError"
        assert "503" in data["message"]
        assert "events" not in data

    async def test_events_when_transport_times_out_then_502_fetch_error(self, app_and_client):
        _app, client, _feed = app_and_client

        response = await client.get("/api/calendar/events", params={"url": TIMEOUT_URL})

        assert response.status == 502
        assert (await response.json())["error"] == "FeedFetchError"

    async def test_events_when_document_malformed_then_502_parse_error(self, app_and_client):
        _app, client, _feed = app_and_client

        response = await client.get("/api/calendar/events", params={"url": BROKEN_URL})

        assert response.status == 502
        assert (await response.json())["error"] == "FeedParseError"

    async def test_events_when_date_invalid_then_400_without_fetch(
        self, feed_routes, settings, feed_client_factory
    ):
        calls: list[httpx.Request] = []
        app = make_app(settings, client=feed_client_factory(feed_routes, calls))

        async with TestClient(TestServer(app)) as client:
            response = await client.get(
                "/api/calendar/events", params={"url": WEEKLY_URL, "date": "2024-13-45"}
            )
            data = await response.json()

        assert response.status == 400
        assert data["error"] == "InvalidRequest"
        assert calls == []

    async def test_events_when_tz_unknown_then_400_without_fetch(
        self, feed_routes, settings, feed_client_factory
    ):
        calls: list[httpx.Request] = []
        app = make_app(settings, client=feed_client_factory(feed_routes, calls))

        async with TestClient(TestServer(app)) as client:
            response = await client.get(
                "/api/calendar/events",
                params={"url": WEEKLY_URL, "date": "2024-01-15", "tz": "Mars/Olympus"},
            )
            data = await response.json()

        assert response.status == 400
        assert data["error"] == "InvalidRequest"
        assert calls == []

    async def test_events_when_tz_alias_then_accepted(self, app_and_client):
        _app, client, _feed = app_and_client

        response = await client.get(
            "/api/calendar/events",
            params={"url": WEEKLY_URL, "date": "2024-01-15", "tz": "W. Europe Standard Time"},
        )

        assert response.status == 200
        data = await response.json()
        assert [event["start"] for event in data["events"]] == ["2024-01-15T10:00:00Z"]


class TestCalendarDayRoute:
    """GET /api/calendar/day reads the held result for the configured feed."""

    async def test_day_when_nothing_refreshed_then_not_configured(self, app_and_client):
        _app, client, _feed = app_and_client

        response = await client.get("/api/calendar/day", params={"date": "2024-01-15"})

        assert response.status == 200
        assert await response.json() == {
            "status": "not_configured",
            "events": [],
            "date": "2024-01-15",
        }

    async def test_day_after_refresh_then_events_for_requested_day(
        self, app_and_client, settings
    ):
        app, client, feed = app_and_client
        await refresh_into(app[HOLDER_KEY], settings.feed_url, settings, feed)

        response = await client.get("/api/calendar/day", params={"date": "2024-01-22"})

        assert response.status == 200
        data = await response.json()
        assert data["status"] == "ok"
        assert data["date"] == "2024-01-22"
        assert [event["start"] for event in data["events"]] == ["2024-01-22T10:00:00Z"]

    async def test_day_when_date_omitted_then_uses_current_day(self, app_and_client, settings):
        app, client, feed = app_and_client
        await refresh_into(app[HOLDER_KEY], settings.feed_url, settings, feed)

        response = await client.get("/api/calendar/day")

        data = await response.json()
        assert data["date"] == "2024-01-15"
        assert len(data["events"]) == 1

    async def test_day_when_refresh_failed_then_error_reported_with_200(self, app_and_client):
        app, client, feed = app_and_client
        await refresh_into(app[HOLDER_KEY], DOWN_URL, None, feed)

        response = await client.get("/api/calendar/day", params={"date": "2024-01-15"})

        assert response.status == 200
        data = await response.json()
        assert data["status"] == "error"
        assert data["error"] == "FeedFetchError"

    async def test_day_when_date_invalid_then_400(self, app_and_client):
        _app, client, _feed = app_and_client

        response = await client.get("/api/calendar/day", params={"date": "yesterday"})

        assert response.status == 400
        assert (await response.json())["error"] == "InvalidRequest"

    async def test_day_when_tz_unknown_then_400(self, app_and_client):
        _app, client, _feed = app_and_client

        response = await client.get(
            "/api/calendar/day", params={"date": "2024-01-15", "tz": "Nowhere/Special"}
        )

        assert response.status == 400
        assert (await response.json())["error"] == "InvalidRequest"


class TestHealthRoute:
    async def test_health_reports_feed_state(self, app_and_client, settings):
        app, client, feed = app_and_client

        before = await (await client.get("/api/health")).json()
        await refresh_into(app[HOLDER_KEY], settings.feed_url, settings, feed)
        after = await (await client.get("/api/health")).json()

        assert before["status"] == "ok"
        assert before["server_time_iso"] == "2024-01-15T08:00:00Z"
        assert before["feed"] == {
            "status": "not_configured",
            "event_count": 0,
            "last_refresh_iso": None,
            "generation": 0,
        }
        assert after["feed"]["status"] == "ok"
        assert after["feed"]["event_count"] == 10
        assert after["feed"]["generation"] == 1
        assert after["feed"]["last_refresh_iso"] is not None


class TestCorrelationId:
    async def test_request_id_header_is_echoed(self, app_and_client):
        _app, client, _feed = app_and_client

        response = await client.get("/api/health", headers={"X-Request-ID": "dash-42"})

        assert response.headers["X-Request-ID"] == "dash-42"

    async def test_request_id_generated_when_absent(self, app_and_client):
        _app, client, _feed = app_and_client

        response = await client.get("/api/health")

        assert len(response.headers["X-Request-ID"]) == 36

    async def test_request_id_forwarded_to_feed_server(
        self, feed_routes, settings, feed_client_factory
    ):
        calls: list[httpx.Request] = []
        app = make_app(settings, client=feed_client_factory(feed_routes, calls))

        async with TestClient(TestServer(app)) as client:
            await client.get(
                "/api/calendar/events",
                params={"url": WEEKLY_URL},
                headers={"X-Request-ID": "dash-7"},
            )

        assert calls[0].headers["X-Request-ID"] == "dash-7"

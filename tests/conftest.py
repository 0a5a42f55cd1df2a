"""Shared fixtures for dashcal tests."""

from collections.abc import AsyncIterator, Callable, Generator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import httpx
import pytest

from dashcal.core.config_manager import EngineSettings

FIXTURES_DIR = Path(__file__).parent / "fixtures" / "ics"


def pytest_configure(config: Any) -> None:
    """Register dashcal test markers."""
    config.addinivalue_line("markers", "unit: Fast isolated unit tests")
    config.addinivalue_line("markers", "fast: Tests that finish in well under a second")
    config.addinivalue_line("markers", "integration: aiohttp route tests through a test server")


def load_fixture(name: str) -> str:
    """Return the text of an ICS fixture from tests/fixtures/ics."""
    return (FIXTURES_DIR / name).read_text(encoding="utf-8")


@pytest.fixture
def ics_fixture() -> Callable[[str], str]:
    """Loader for ICS fixture documents by file name."""
    return load_fixture


@pytest.fixture
def engine_settings() -> EngineSettings:
    """Deterministic settings: UTC default zone, default window and cap."""
    return EngineSettings(feed_url=None, request_timeout=5, default_timezone="UTC")


@pytest.fixture
def fixed_now() -> datetime:
    """Reference time used for window computations in tests."""
    return datetime(2024, 1, 10, 12, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: pytest.MonkeyPatch) -> Generator[None, Any, None]:
    """Keep DASHCAL_* variables from the host out of every test."""
    for key in (
        "DASHCAL_TEST_TIME",
        "DASHCAL_FEED_URL",
        "DASHCAL_DEFAULT_TIMEZONE",
        "DASHCAL_LOG_LEVEL",
        "DASHCAL_DEBUG",
    ):
        monkeypatch.delenv(key, raising=False)
    yield


def make_feed_transport(
    routes: dict[str, Any],
    calls: list[httpx.Request] | None = None,
) -> httpx.MockTransport:
    """MockTransport serving canned responses keyed by URL.

    Values may be ICS text (served as 200 text/calendar), an int status code,
    an ``httpx.Response`` or an exception instance to raise.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        entry = routes.get(str(request.url))
        if entry is None:
            return httpx.Response(404, text="not found")
        if isinstance(entry, Exception):
            raise entry
        if isinstance(entry, int):
            return httpx.Response(entry, text="")
        if isinstance(entry, httpx.Response):
            return entry
        return httpx.Response(200, text=entry, headers={"content-type": "text/calendar"})

    return httpx.MockTransport(handler)


@pytest.fixture
def feed_client_factory() -> Callable[..., httpx.AsyncClient]:
    """Build an httpx.AsyncClient backed by :func:`make_feed_transport`."""
    created: list[httpx.AsyncClient] = []

    def factory(routes: dict[str, Any], calls: list[httpx.Request] | None = None) -> httpx.AsyncClient:
        client = httpx.AsyncClient(transport=make_feed_transport(routes, calls))
        created.append(client)
        return client

    factory.created = created  # type: ignore[attr-defined]
    return factory


@pytest.fixture(autouse=True)
async def close_feed_clients(
    feed_client_factory: Callable[..., httpx.AsyncClient],
) -> AsyncIterator[None]:
    """Close clients created through the factory after each test."""
    yield
    for client in feed_client_factory.created:  # type: ignore[attr-defined]
        if not client.is_closed:
            await client.aclose()

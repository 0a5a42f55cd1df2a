"""Tests for dashcal.core.http_client."""

import httpx
import pytest

from dashcal.api.middleware.correlation_id import request_id_var
from dashcal.core.http_client import (
    DEFAULT_FEED_HEADERS,
    build_timeout,
    create_client,
    get_request_headers,
)

pytestmark = [pytest.mark.unit, pytest.mark.fast]


def test_build_timeout_uses_request_timeout_for_reads() -> None:
    timeout = build_timeout(12)
    assert timeout.read == 12.0
    assert timeout.connect == 10.0


def test_get_request_headers_when_outside_request_then_no_request_id() -> None:
    headers = get_request_headers()
    assert "X-Request-ID" not in headers
    assert headers["User-Agent"] == DEFAULT_FEED_HEADERS["User-Agent"]


def test_get_request_headers_when_inside_request_then_request_id() -> None:
    token = request_id_var.set("req-9")
    try:
        headers = get_request_headers()
    finally:
        request_id_var.reset(token)
    assert headers["X-Request-ID"] == "req-9"
    assert "X-Request-ID" not in DEFAULT_FEED_HEADERS


async def test_create_client_follows_redirects_and_sends_default_headers() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text="BEGIN:VCALENDAR")

    client = create_client(5, transport=httpx.MockTransport(handler))
    try:
        response = await client.get("https://example.com/a.ics")
    finally:
        await client.aclose()

    assert response.status_code == 200
    assert client.follow_redirects is True
    assert seen[0].headers["Accept"].startswith("text/calendar")

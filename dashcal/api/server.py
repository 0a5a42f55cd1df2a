"""aiohttp server for the dashboard calendar API.

Holds the expanded event set of the configured feed in memory and refreshes
it in the background. Ad-hoc feeds requested through ``/api/calendar/events``
are fetched per request and never stored.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import time
from typing import Any, Callable, Optional

import httpx
from aiohttp import web

from dashcal.api.middleware.correlation_id import correlation_id_middleware
from dashcal.api.routes import register_calendar_routes
from dashcal.core.config_manager import get_config_value
from dashcal.core.http_client import create_client
from dashcal.core.logging_setup import configure_logging
from dashcal.core.timezone_utils import now_utc
from dashcal.domain.pipeline import LatestResultHolder, refresh_into

logger = logging.getLogger(__name__)

HOLDER_KEY: web.AppKey[LatestResultHolder] = web.AppKey("holder", LatestResultHolder)
HTTP_CLIENT_REF_KEY: web.AppKey[list[Any]] = web.AppKey("http_client_ref", list)


async def _refresh_once(
    settings: Any,
    holder: LatestResultHolder,
    http_client_ref: list[Optional[httpx.AsyncClient]],
) -> None:
    """Refresh the held result for the configured feed."""
    feed_url = get_config_value(settings, "feed_url")
    result = await refresh_into(holder, feed_url, settings, http_client_ref[0])
    if result.error is not None:
        logger.warning(
            "Configured feed refresh failed: %s: %s", result.error.error, result.error.message
        )


async def _refresh_loop(
    settings: Any,
    holder: LatestResultHolder,
    http_client_ref: list[Optional[httpx.AsyncClient]],
    stop_event: asyncio.Event,
) -> None:
    """Background refresher: immediate refresh then periodic refreshes."""
    interval = max(1, int(get_config_value(settings, "refresh_interval_seconds", 300)))
    logger.debug("_refresh_loop starting with interval %d seconds", interval)

    logger.info("Starting initial refresh of the configured feed")
    try:
        await _refresh_once(settings, holder, http_client_ref)
        logger.info(
            "Initial refresh completed - %s with %d events",
            holder.current.status.value,
            len(holder.current.events),
        )
    except Exception:
        logger.exception("Initial refresh failed")

    while not stop_event.is_set():
        try:
            # Sleep until the next refresh or until shutdown, whichever comes first
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            if stop_event.is_set():
                break
            logger.debug("Starting periodic refresh")
            await _refresh_once(settings, holder, http_client_ref)
        except Exception:
            logger.exception("Refresh loop unexpected error")


def make_app(
    settings: Any,
    client: Optional[httpx.AsyncClient] = None,
    holder: Optional[LatestResultHolder] = None,
    time_provider: Callable[[], Any] = now_utc,
) -> web.Application:
    """Create the aiohttp application with calendar routes.

    Args:
        settings: EngineSettings (or compatible object)
        client: Optional caller-owned httpx client; otherwise one is created
            on startup and closed on cleanup
        holder: Result holder shared with the refresh loop
        time_provider: Callable returning the current aware UTC datetime
    """
    app = web.Application(middlewares=[correlation_id_middleware])
    holder = holder or LatestResultHolder()
    http_client_ref: list[Optional[httpx.AsyncClient]] = [client]
    owns_client = client is None

    app[HOLDER_KEY] = holder
    app[HTTP_CLIENT_REF_KEY] = http_client_ref

    async def _open_client(_app: web.Application) -> None:
        if http_client_ref[0] is None:
            http_client_ref[0] = create_client(get_config_value(settings, "request_timeout", 30))
            logger.debug("Shared HTTP client created")

    async def _close_client(_app: web.Application) -> None:
        shared = http_client_ref[0]
        if owns_client and shared is not None and not shared.is_closed:
            await shared.aclose()
            logger.debug("Shared HTTP client closed")

    app.on_startup.append(_open_client)
    app.on_cleanup.append(_close_client)

    register_calendar_routes(
        app=app,
        settings=settings,
        holder=holder,
        http_client_ref=http_client_ref,
        time_provider=time_provider,
        started_at=time.monotonic(),
    )
    return app


async def _serve(settings: Any, external_stop_event: Optional[asyncio.Event] = None) -> None:
    """Run the server and the refresh loop until signalled to stop.

    Args:
        settings: EngineSettings (or compatible object)
        external_stop_event: Optional event to signal shutdown. If provided,
            signal handlers are not registered (caller owns signal handling).
    """
    stop_event = external_stop_event or asyncio.Event()
    app = make_app(settings)

    runner = web.AppRunner(app)
    await runner.setup()

    host = get_config_value(settings, "server_bind", "127.0.0.1")
    port = int(get_config_value(settings, "server_port", 8080))
    site = web.TCPSite(runner, host=host, port=port)
    try:
        await site.start()
    except OSError:
        logger.exception("Failed to start server on %s:%d", host, port)
        await runner.cleanup()
        raise

    logger.info("Server started on %s:%d", host, port)
    if not get_config_value(settings, "feed_url"):
        logger.info("No DASHCAL_FEED_URL configured; /api/calendar/day reports not_configured")

    refresher = asyncio.create_task(
        _refresh_loop(settings, app[HOLDER_KEY], app[HTTP_CLIENT_REF_KEY], stop_event)
    )

    if external_stop_event is None:
        loop = asyncio.get_running_loop()

        def _on_signal() -> None:
            logger.info("Shutdown signal received")
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, _on_signal)

    await stop_event.wait()
    logger.info("Stop event received, shutting down")

    refresher.cancel()
    try:
        await refresher
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.warning("Refresher task error during shutdown: %s", e)

    await runner.cleanup()
    logger.info("Server shutdown complete")


def start_server(settings: Any, debug_mode: bool = False) -> None:
    """Configure logging and run the server until SIGINT/SIGTERM."""
    configure_logging(debug_mode=debug_mode)

    try:
        asyncio.run(_serve(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception:
        logger.exception("Server terminated unexpectedly")
        raise

"""Command-line entry for dashcal.

``python -m dashcal`` runs the HTTP server; ``python -m dashcal events <url>``
runs one pipeline pass and prints the JSON payload.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import date
from typing import Optional

from . import run_server


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the dashcal CLI."""
    parser = argparse.ArgumentParser(
        prog="dashcal",
        description="dashcal - calendar feed server for the home dashboard",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m dashcal                                   # Start server on default port (8080)
  python -m dashcal --port 3000                       # Start server on port 3000
  python -m dashcal events webcal://example.com/a.ics --date 2024-07-04 --tz Europe/Berlin
        """,
    )
    parser.add_argument(
        "--host",
        metavar="HOST",
        help="Bind address for the web server (default: 127.0.0.1, or DASHCAL_WEB_HOST)",
    )
    parser.add_argument(
        "--port",
        type=int,
        metavar="PORT",
        help="Port number for the web server (default: 8080, or DASHCAL_WEB_PORT)",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command")
    events = subparsers.add_parser("events", help="Fetch one feed and print its events as JSON")
    events.add_argument("url", help="webcal:// or https:// feed URL")
    events.add_argument("--date", metavar="YYYY-MM-DD", help="Only events visible on this day")
    events.add_argument("--tz", metavar="ZONE", help="Display timezone for --date")

    return parser


def _run_events(args: argparse.Namespace) -> int:
    from dashcal.calendar.day_query import events_for_day
    from dashcal.core.config_manager import ConfigManager
    from dashcal.core.logging_setup import configure_logging
    from dashcal.domain.pipeline import load_feed_events

    configure_logging(debug_mode=args.debug)
    settings = ConfigManager().load_settings()

    day: Optional[date] = None
    if args.date:
        try:
            day = date.fromisoformat(args.date)
        except ValueError:
            print(f"Invalid --date {args.date!r}; expected YYYY-MM-DD", file=sys.stderr)
            return 2

    result = asyncio.run(load_feed_events(args.url, settings))

    selected = None
    if result.ok and day is not None:
        selected = events_for_day(
            result.events, day, args.tz or settings.default_timezone, settings.default_timezone
        )

    print(json.dumps(result.to_api_dict(selected), indent=2))
    return 0 if result.ok else 1


def main(argv: Optional[list[str]] = None) -> int:
    """Run the dashcal CLI and return the process exit code."""
    parser = _create_parser()
    args = parser.parse_args(argv)

    if args.command == "events":
        return _run_events(args)

    run_server(args)
    return 0


if __name__ == "__main__":
    sys.exit(main())

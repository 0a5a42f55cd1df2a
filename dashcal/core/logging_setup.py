"""
Central logging configuration for dashcal.

Installs a colorized console handler, stamps every record with the current
request correlation ID and keeps chatty third-party loggers at WARNING.
"""

import logging
import os
import sys
from typing import Optional

from colorlog import ColoredFormatter

from dashcal.api.middleware.correlation_id import get_request_id

LOG_FORMAT = (
    "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s [%(request_id)s] %(name)s: %(message)s"
)

LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}

# Third-party libraries that generate excessive debug logs
NOISY_LOGGERS: dict[str, int] = {
    "aiohttp.access": logging.WARNING,
    "aiohttp.server": logging.WARNING,
    "aiohttp.web_log": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
    "icalendar": logging.INFO,
}


class CorrelationIdFilter(logging.Filter):
    """Add correlation ID to all log records for request tracing."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        return True


def _resolve_level(level_name: Optional[str], debug_mode: bool) -> int:
    env_debug = os.getenv("DASHCAL_DEBUG", "").strip().lower() in ("1", "true", "yes", "on")
    if debug_mode or env_debug:
        return logging.DEBUG

    name = (level_name or os.getenv("DASHCAL_LOG_LEVEL", "")).strip().upper()
    if name in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        return getattr(logging, name)
    return logging.INFO


def configure_logging(level_name: Optional[str] = None, debug_mode: bool = False) -> int:
    """
    Configure root logging for dashcal.

    A handler is only added when the root logger has none, so calling this
    more than once (or under a test runner) does not duplicate output.

    Args:
        level_name: Explicit level name; otherwise DASHCAL_LOG_LEVEL is used
        debug_mode: Force DEBUG (also forced by DASHCAL_DEBUG=1)

    Returns:
        The effective root log level
    """
    level = _resolve_level(level_name, debug_mode)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    correlation_filter = CorrelationIdFilter()

    if not root_logger.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        handler.setFormatter(ColoredFormatter(LOG_FORMAT, datefmt="%H:%M:%S", log_colors=LOG_COLORS))
        handler.addFilter(correlation_filter)
        root_logger.addHandler(handler)
    else:
        for existing_handler in root_logger.handlers:
            if not any(isinstance(f, CorrelationIdFilter) for f in existing_handler.filters):
                existing_handler.addFilter(correlation_filter)

    for logger_name, noisy_level in NOISY_LOGGERS.items():
        logging.getLogger(logger_name).setLevel(noisy_level)

    logging.getLogger("dashcal").setLevel(level)
    logging.getLogger(__name__).debug(
        "Logging initialized at level %s", logging.getLevelName(level)
    )
    return level

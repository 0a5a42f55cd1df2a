"""Configuration management for the dashcal engine and server."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from dashcal.core.timezone_utils import DEFAULT_TIMEZONE, normalize_timezone_name

logger = logging.getLogger(__name__)

_TRUTHY = ("1", "true", "yes", "on")


def parse_env_file(path: Path) -> dict[str, str]:
    """Parse a .env file and return key-value pairs.

    Skips blank lines and ``#`` comments and strips single or double quotes
    around values. A missing or unreadable file yields an empty dict.
    """
    if not path.exists():
        return {}

    result: dict[str, str] = {}

    try:
        content = path.read_text(encoding="utf-8")
    except OSError:
        logger.debug("Failed to read .env file (continuing): %s", str(path), exc_info=True)
        return {}

    for raw_line in content.splitlines():
        line = raw_line.strip()

        if not line or line.startswith("#") or "=" not in line:
            continue

        key, val = line.split("=", 1)
        key = key.strip()
        val = val.strip().strip('"').strip("'")

        if key:
            result[key] = val

    return result


@dataclass(frozen=True)
class EngineSettings:
    """Resolved settings shared by the engine, the server and the CLI."""

    feed_url: str | None = None
    refresh_interval_seconds: int = 300
    request_timeout: int = 30
    window_months_before: int = 1
    window_months_after: int = 3
    max_occurrences_per_rule: int = 1000
    preserve_multiday_all_day: bool = False
    default_timezone: str = DEFAULT_TIMEZONE
    server_bind: str = "127.0.0.1"
    server_port: int = 8080

    def with_overrides(self, **overrides: Any) -> EngineSettings:
        """Return a copy with the non-None overrides applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self


# (env var, settings field)
_INT_KEYS: tuple[tuple[str, str], ...] = (
    ("DASHCAL_REFRESH_INTERVAL", "refresh_interval_seconds"),
    ("DASHCAL_REQUEST_TIMEOUT", "request_timeout"),
    ("DASHCAL_WINDOW_MONTHS_BEFORE", "window_months_before"),
    ("DASHCAL_WINDOW_MONTHS_AFTER", "window_months_after"),
    ("DASHCAL_MAX_OCCURRENCES", "max_occurrences_per_rule"),
    ("DASHCAL_WEB_PORT", "server_port"),
)


class ConfigManager:
    """Builds EngineSettings from environment variables and an optional .env file."""

    def __init__(self, env_file_path: Path | None = None, environ: dict[str, str] | None = None):
        """Initialize configuration manager.

        Args:
            env_file_path: Path to a .env file (defaults to .env in the working directory)
            environ: Mapping to read and populate (defaults to ``os.environ``)
        """
        self.env_file_path = env_file_path or Path.cwd() / ".env"
        self.environ = os.environ if environ is None else environ

    def load_env_file(self) -> list[str]:
        """Load .env defaults for keys that are not already set.

        Returns:
            Keys that were taken from the .env file
        """
        if not self.env_file_path.exists():
            logger.debug("No .env file found at %s", self.env_file_path)
            return []

        set_keys = []
        for key, val in parse_env_file(self.env_file_path).items():
            if key not in self.environ:
                self.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))

        return set_keys

    def build_settings_from_env(self) -> EngineSettings:
        """Build EngineSettings from the environment, ignoring invalid values."""
        values: dict[str, Any] = {}

        feed_url = self.environ.get("DASHCAL_FEED_URL", "").strip()
        if feed_url:
            values["feed_url"] = feed_url

        for env_key, field_name in _INT_KEYS:
            raw = self.environ.get(env_key)
            if raw is None or raw == "":
                continue
            try:
                parsed = int(raw)
            except ValueError:
                logger.warning("Invalid %s=%r; ignoring", env_key, raw)
                continue
            if parsed < 0:
                logger.warning("Negative %s=%r; ignoring", env_key, raw)
                continue
            values[field_name] = parsed

        multiday = self.environ.get("DASHCAL_PRESERVE_MULTIDAY")
        if multiday is not None:
            values["preserve_multiday_all_day"] = multiday.strip().lower() in _TRUTHY

        tz = self.environ.get("DASHCAL_DEFAULT_TIMEZONE")
        if tz:
            canonical = normalize_timezone_name(tz)
            if canonical is None:
                logger.warning("Invalid DASHCAL_DEFAULT_TIMEZONE=%r; using %s", tz, DEFAULT_TIMEZONE)
            else:
                values["default_timezone"] = canonical

        host = self.environ.get("DASHCAL_WEB_HOST")
        if host:
            values["server_bind"] = host

        return EngineSettings(**values)

    def load_settings(self) -> EngineSettings:
        """Load the .env file, then build settings from the environment."""
        self.load_env_file()
        return self.build_settings_from_env()


def get_config_value(config: Any, key: str, default: Any = None) -> Any:
    """Get a configuration value from either a dict or an attribute-style object."""
    if isinstance(config, dict):
        return config.get(key, default)
    return getattr(config, key, default)

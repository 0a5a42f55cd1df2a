"""Tests for dashcal.core.config_manager."""

import logging
from pathlib import Path

import pytest

from dashcal.core.config_manager import (
    ConfigManager,
    EngineSettings,
    get_config_value,
    parse_env_file,
)

pytestmark = [pytest.mark.unit, pytest.mark.fast]


class TestParseEnvFile:
    def test_parse_env_file_when_missing_then_empty(self, tmp_path: Path) -> None:
        assert parse_env_file(tmp_path / "absent.env") == {}

    def test_parse_env_file_skips_comments_and_strips_quotes(self, tmp_path: Path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text(
            "# comment\n\nDASHCAL_FEED_URL='webcal://example.com/a.ics'\n"
            'DASHCAL_WEB_PORT="9090"\nnot a pair\n',
            encoding="utf-8",
        )

        assert parse_env_file(env_file) == {
            "DASHCAL_FEED_URL": "webcal://example.com/a.ics",
            "DASHCAL_WEB_PORT": "9090",
        }


class TestConfigManager:
    def test_build_settings_when_empty_env_then_defaults(self, tmp_path: Path) -> None:
        settings = ConfigManager(tmp_path / ".env", environ={}).load_settings()

        assert settings == EngineSettings()
        assert settings.feed_url is None
        assert settings.refresh_interval_seconds == 300
        assert settings.window_months_before == 1
        assert settings.window_months_after == 3
        assert settings.max_occurrences_per_rule == 1000
        assert settings.default_timezone == "UTC"

    def test_build_settings_reads_environment(self, tmp_path: Path) -> None:
        environ = {
            "DASHCAL_FEED_URL": " webcal://example.com/a.ics ",
            "DASHCAL_REFRESH_INTERVAL": "60",
            "DASHCAL_MAX_OCCURRENCES": "50",
            "DASHCAL_PRESERVE_MULTIDAY": "yes",
            "DASHCAL_DEFAULT_TIMEZONE": "US/Eastern",
            "DASHCAL_WEB_HOST": "0.0.0.0",
            "DASHCAL_WEB_PORT": "9000",
        }

        settings = ConfigManager(tmp_path / ".env", environ=environ).load_settings()

        assert settings.feed_url == "webcal://example.com/a.ics"
        assert settings.refresh_interval_seconds == 60
        assert settings.max_occurrences_per_rule == 50
        assert settings.preserve_multiday_all_day is True
        assert settings.default_timezone == "America/New_York"
        assert settings.server_bind == "0.0.0.0"
        assert settings.server_port == 9000

    @pytest.mark.parametrize("raw", ["abc", "-5", "1.5"])
    def test_build_settings_when_invalid_number_then_default_and_warning(
        self, tmp_path: Path, raw: str, caplog: pytest.LogCaptureFixture
    ) -> None:
        environ = {"DASHCAL_REQUEST_TIMEOUT": raw}

        with caplog.at_level(logging.WARNING, logger="dashcal.core.config_manager"):
            settings = ConfigManager(tmp_path / ".env", environ=environ).load_settings()

        assert settings.request_timeout == 30
        assert "DASHCAL_REQUEST_TIMEOUT" in caplog.text

    def test_build_settings_when_unknown_timezone_then_utc(self, tmp_path: Path) -> None:
        environ = {"DASHCAL_DEFAULT_TIMEZONE": "Nowhere/Special"}
        settings = ConfigManager(tmp_path / ".env", environ=environ).load_settings()
        assert settings.default_timezone == "UTC"

    def test_load_env_file_when_key_already_set_then_environment_wins(
        self, tmp_path: Path
    ) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text(
            "DASHCAL_WEB_PORT=7000\nDASHCAL_FEED_URL=https://example.com/a.ics\n",
            encoding="utf-8",
        )
        environ = {"DASHCAL_WEB_PORT": "8123"}

        manager = ConfigManager(env_file, environ=environ)
        loaded = manager.load_env_file()
        settings = manager.build_settings_from_env()

        assert loaded == ["DASHCAL_FEED_URL"]
        assert settings.server_port == 8123
        assert settings.feed_url == "https://example.com/a.ics"


class TestEngineSettings:
    def test_with_overrides_ignores_none(self) -> None:
        settings = EngineSettings(server_port=8080)

        updated = settings.with_overrides(server_port=None, server_bind="0.0.0.0")

        assert updated.server_port == 8080
        assert updated.server_bind == "0.0.0.0"
        assert settings.server_bind == "127.0.0.1"

    def test_with_overrides_when_nothing_then_same_object(self) -> None:
        settings = EngineSettings()
        assert settings.with_overrides(server_port=None) is settings

    def test_settings_are_frozen(self) -> None:
        settings = EngineSettings()
        with pytest.raises(AttributeError):
            settings.server_port = 1  # type: ignore[misc]


class TestGetConfigValue:
    def test_get_config_value_supports_dicts_and_objects(self) -> None:
        assert get_config_value({"a": 1}, "a") == 1
        assert get_config_value(EngineSettings(), "server_port") == 8080
        assert get_config_value(EngineSettings(), "missing", "fallback") == "fallback"

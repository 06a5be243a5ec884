"""Tests for settings.conf handling and the config facade."""

import pytest

from macup.config import ConfigManager
from macup.config.settings import GlobalConfigManager
from macup.constants import (
    DEFAULT_KEEPALIVE_SECONDS,
    DEFAULT_MAX_CONCURRENT_CHECKS,
    DEFAULT_TIMEOUT_SECONDS,
)


@pytest.fixture
def manager(tmp_path):
    return GlobalConfigManager(tmp_path / "macup")


class TestGlobalConfigManager:
    def test_first_load_writes_defaults(self, manager):
        config = manager.load_global_config()

        assert manager.settings_file.exists()
        text = manager.settings_file.read_text()
        assert "[network]" in text
        assert "# Administrator prompts" in text
        assert config["max_concurrent_checks"] == DEFAULT_MAX_CONCURRENT_CHECKS
        assert config["network"]["timeout_seconds"] == DEFAULT_TIMEOUT_SECONDS
        assert config["elevation"]["keepalive_seconds"] == (
            DEFAULT_KEEPALIVE_SECONDS
        )
        assert config["elevation"]["askpass_path"] == ""

    def test_directories_default_under_config_dir(self, manager):
        config = manager.load_global_config()

        for key in ("logs", "cache", "state"):
            assert config["directory"][key] == manager.config_dir / key

    def test_user_values_override_defaults(self, manager):
        manager.config_dir.mkdir(parents=True)
        manager.settings_file.write_text(
            "[DEFAULT]\n"
            "log_level = debug\n"
            "max_concurrent_updates = 2\n"
            "[network]\n"
            "timeout_seconds = 30  # slow link\n"
            "[directory]\n"
            "state = ~/macup-state\n"
        )

        config = manager.load_global_config()

        assert config["log_level"] == "DEBUG"
        assert config["max_concurrent_updates"] == 2
        assert config["network"]["timeout_seconds"] == 30
        assert config["directory"]["state"].name == "macup-state"
        assert "~" not in str(config["directory"]["state"])

    def test_invalid_integer_falls_back(self, manager, caplog):
        manager.config_dir.mkdir(parents=True)
        manager.settings_file.write_text(
            "[cache]\ncask_index_ttl_hours = often\n"
        )

        config = manager.load_global_config()

        assert config["cache"]["cask_index_ttl_hours"] == 6
        assert "Invalid integer for cache.cask_index_ttl_hours" in caplog.text

    def test_concurrency_is_at_least_one(self, manager):
        manager.config_dir.mkdir(parents=True)
        manager.settings_file.write_text(
            "[DEFAULT]\nmax_concurrent_checks = 0\n"
        )

        assert manager.load_global_config()["max_concurrent_checks"] == 1

    def test_unreadable_file_uses_defaults(self, manager, caplog):
        manager.config_dir.mkdir(parents=True)
        manager.settings_file.write_text("no section header\n")

        config = manager.load_global_config()

        assert config["max_concurrent_checks"] == DEFAULT_MAX_CONCURRENT_CHECKS
        assert "Ignoring unreadable settings file" in caplog.text

    def test_save_round_trip(self, manager):
        config = manager.load_global_config()
        config["network"]["timeout_seconds"] = 45
        manager.save_global_config(config)

        assert manager.load_global_config()["network"]["timeout_seconds"] == 45


class TestConfigManager:
    def test_config_is_memoised(self, tmp_path):
        facade = ConfigManager(tmp_path)
        first = facade.load_global_config()

        facade.global_config_manager.settings_file.write_text(
            "[DEFAULT]\nmax_concurrent_checks = 3\n"
        )

        assert facade.load_global_config() is first
        refreshed = facade.load_global_config(refresh=True)
        assert refreshed["max_concurrent_checks"] == 3

    def test_config_dir(self, tmp_path):
        assert ConfigManager(tmp_path).config_dir == tmp_path

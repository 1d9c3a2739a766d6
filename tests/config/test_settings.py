"""Tests for settings configuration utilities."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from src.config.settings import (
    LogLevel,
    WatchlistBridgeConfig,
    find_yaml_config_file,
    get_config,
)


@pytest.fixture(autouse=True)
def isolate_working_directory(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Set the working directory to a temporary path for each test."""
    monkeypatch.chdir(tmp_path)


def test_find_yaml_config_file_prefers_data_path(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Test that find_yaml_config_file prefers WB_DATA_PATH environment variable."""
    monkeypatch.setenv("WB_DATA_PATH", str(tmp_path))
    config_file = tmp_path / "config.yml"
    config_file.write_text("log_level: INFO", encoding="utf-8")

    result = find_yaml_config_file()

    assert result == config_file.resolve()


def test_find_yaml_config_file_defaults_to_yaml(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Test that a missing config file resolves to the default location."""
    monkeypatch.setenv("WB_DATA_PATH", str(tmp_path))

    assert find_yaml_config_file() == tmp_path.resolve() / "config.yaml"


def test_yaml_values_are_loaded() -> None:
    """Test that the YAML file written by the test harness is read."""
    config = WatchlistBridgeConfig()

    assert config.plex_token is not None
    assert config.plex_token.get_secret_value() == "plex-token"
    assert config.log_level == LogLevel.DEBUG
    assert config.web.enabled is False


def test_init_values_override_yaml() -> None:
    """Test that keyword arguments take precedence over the YAML file."""
    config = WatchlistBridgeConfig(log_level="warning", failsafe_interval=5)

    assert config.log_level == LogLevel.WARNING
    assert config.failsafe_interval == 5


def test_defaults() -> None:
    """Test the documented defaults of the scheduling settings."""
    config = WatchlistBridgeConfig()

    assert config.feed_poll_interval == 10
    assert config.queue_check_interval == 10
    assert config.queue_quiescence_delay == 60
    assert config.failsafe_interval == 20
    assert config.fallback_poll_interval == 300
    assert config.default_can_sync is True
    assert config.content_router.endswith(":DryRunContentRouter")


def test_queue_check_interval_must_not_exceed_quiescence() -> None:
    """Test that a queue checked slower than it settles is rejected."""
    with pytest.raises(ValidationError):
        WatchlistBridgeConfig(queue_check_interval=120, queue_quiescence_delay=60)


@pytest.mark.parametrize(
    "overrides",
    [
        {"feed_poll_interval": 0},
        {"failsafe_interval": 0},
        {"fallback_poll_interval": 10},
        {"max_concurrent_requests": 0},
    ],
)
def test_interval_bounds(overrides: dict) -> None:
    """Test that out of range intervals are rejected."""
    with pytest.raises(ValidationError):
        WatchlistBridgeConfig(**overrides)


def test_options_for_returns_copy() -> None:
    """Test that collaborator options are looked up by dotted path."""
    path = "tests.routers:ArrRouter"
    config = WatchlistBridgeConfig(
        collaborator_options={path: {"base_url": "http://radarr:7878"}}
    )

    options = config.options_for(path)
    options["base_url"] = "changed"

    assert config.options_for(path) == {"base_url": "http://radarr:7878"}
    assert config.options_for("other:Thing") == {}


def test_str_hides_token() -> None:
    """Test that the summary never contains the Plex token."""
    config = WatchlistBridgeConfig()

    assert "plex-token" not in str(config)
    assert "FAILSAFE: 20m" in str(config)


def test_get_config_is_cached() -> None:
    """Test that get_config returns a singleton."""
    get_config.cache_clear()

    assert get_config() is get_config()
    get_config.cache_clear()


def test_log_level_is_case_insensitive() -> None:
    """Test that log levels parse regardless of case."""
    assert LogLevel("success") == LogLevel.SUCCESS

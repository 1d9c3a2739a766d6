"""WatchlistBridge Configuration Settings."""

from __future__ import annotations

import os
from enum import StrEnum
from functools import cached_property, lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, SecretStr, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from src.utils.logging import _get_logger

__all__ = [
    "BaseStrEnum",
    "LogLevel",
    "WatchlistBridgeConfig",
    "WebConfig",
    "get_config",
]

_log = _get_logger(__name__)

DATA_PATH_ENV = "WB_DATA_PATH"


def _data_path() -> Path:
    return Path(os.getenv(DATA_PATH_ENV, "./data")).resolve()


def find_yaml_config_file() -> Path:
    """Find the YAML configuration file in the data path.

    Returns:
        Path: The path to an existing YAML configuration file or the default location.
    """
    data_path = _data_path()
    for ext in ("yaml", "yml"):
        yaml_file = data_path / f"config.{ext}"
        if yaml_file.exists():
            _log.debug(f"Using YAML config file: {yaml_file}")
            return yaml_file
    return data_path / "config.yaml"


class BaseStrEnum(StrEnum):
    """String enumeration with case-insensitive lookup."""

    @classmethod
    def _missing_(cls, value: object) -> BaseStrEnum | None:
        """Handle case-insensitive lookup for enum values.

        Args:
            value: The value to look up in the enumeration

        Returns:
            BaseStrEnum | None: The matching enum member if found, None otherwise
        """
        if not isinstance(value, str):
            return None
        lowered = value.lower()
        for member in cls:
            if member.value.lower() == lowered:
                return member
        return None

    def __repr__(self) -> str:
        """Return the string value of the enum member."""
        return self.value

    def __str__(self) -> str:
        """Return the string representation of the enum member."""
        return self.value


class LogLevel(BaseStrEnum):
    """Logging levels, including the application's custom SUCCESS level."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class WebConfig(BaseModel):
    """Configuration for the embedded status web server."""

    enabled: bool = Field(default=True, description="Enable the web server")
    host: str = Field(default="0.0.0.0", description="Host for the web server")
    port: int = Field(default=4949, description="Port for the web server")


class WatchlistBridgeConfig(BaseSettings):
    """Application configuration.

    Values come from keyword arguments (highest priority) and the YAML file in
    the data directory.
    """

    plex_token: SecretStr | None = Field(
        default=None, description="Plex token of the primary account"
    )
    skip_friend_sync: bool = Field(
        default=False, description="Ignore friends' watchlists entirely"
    )
    default_can_sync: bool = Field(
        default=True, description="Sync setting applied to newly discovered friends"
    )

    feed_poll_interval: int = Field(
        default=10, ge=1, description="Seconds between diff feed polls"
    )
    queue_check_interval: int = Field(
        default=10, ge=1, description="Seconds between change queue flush checks"
    )
    queue_quiescence_delay: int = Field(
        default=60,
        ge=0,
        description="Seconds the change queue must be idle before it is drained",
    )
    failsafe_interval: int = Field(
        default=20,
        ge=1,
        description="Minutes after the last sync before a failsafe reconciliation",
    )
    fallback_poll_interval: int = Field(
        default=300,
        ge=30,
        description="Seconds between full syncs when no diff feed is available",
    )

    request_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Timeout in seconds for quick API calls and each router, "
        "notifier or label cleaner call",
    )
    bulk_request_timeout: float = Field(
        default=30.0, gt=0, description="Timeout in seconds for watchlist fetches"
    )
    max_concurrent_requests: int = Field(
        default=4, ge=1, description="Upper bound on parallel upstream requests"
    )

    content_router: str = Field(
        default="src.core.collaborators:DryRunContentRouter",
        description="Dotted path of the ContentRouter implementation",
    )
    notifier: str = Field(
        default="src.core.collaborators:LogNotifier",
        description="Dotted path of the Notifier implementation",
    )
    label_cleaner: str | None = Field(
        default=None, description="Dotted path of an optional LabelCleaner"
    )
    collaborator_options: dict[str, dict[str, Any]] = Field(
        default_factory=dict,
        repr=False,
        description="Constructor keyword arguments keyed by dotted path",
    )

    log_level: LogLevel = Field(
        default=LogLevel.INFO, description="Logging level for the application"
    )
    web: WebConfig = Field(
        default_factory=WebConfig, description="Embedded web server configuration"
    )

    @cached_property
    def data_path(self) -> Path:
        """Get the data path resolved from ``WB_DATA_PATH``."""
        return _data_path()

    @model_validator(mode="after")
    def validate_intervals(self) -> WatchlistBridgeConfig:
        """Validate cross-field constraints.

        Returns:
            WatchlistBridgeConfig: Self with validated settings.

        Raises:
            ValueError: If the queue is checked less often than it can settle.
        """
        if self.queue_quiescence_delay and (
            self.queue_check_interval > self.queue_quiescence_delay
        ):
            raise ValueError(
                "queue_check_interval must not exceed queue_quiescence_delay"
            )
        if self.plex_token is None:
            _log.warning("No plex_token configured; the workflow cannot start")
        return self

    def options_for(self, dotted_path: str) -> dict[str, Any]:
        """Return the constructor options configured for a collaborator path."""
        return dict(self.collaborator_options.get(dotted_path, {}))

    def __str__(self) -> str:
        """Creates a human-readable summary of the configuration."""
        return (
            f"WatchlistBridge Config: DATA_PATH: {self.data_path}, "
            f"LOG_LEVEL: {self.log_level}, "
            f"FRIENDS: {'disabled' if self.skip_friend_sync else 'enabled'}, "
            f"FAILSAFE: {self.failsafe_interval}m, "
            f"ROUTER: {self.content_router}, NOTIFIER: {self.notifier}"
        )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize the order of configuration sources."""
        return (
            init_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=find_yaml_config_file()),
        )

    model_config = SettingsConfigDict(extra="ignore")


@lru_cache(maxsize=1)
def get_config() -> WatchlistBridgeConfig:
    """Get the singleton instance of WatchlistBridgeConfig."""
    return WatchlistBridgeConfig()

"""Configuration models using Pydantic."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from cronkeeper.config.paths import get_channels_path, get_system_timezone
from cronkeeper.scheduling.natural_time import is_valid_timezone
from cronkeeper.scheduling.runner import DEFAULT_MISFIRE_GRACE_SECONDS
from cronkeeper.scheduling.store import DEFAULT_LOCK_TIMEOUT
from cronkeeper.scheduling.types import ChannelMapping
from cronkeeper.scheduling.watcher import DEFAULT_DEBOUNCE_SECONDS


DEFAULT_SCHEDULE_FILE = "schedule.yaml"


class SchedulerConfig(BaseModel):
    """Configuration for the schedule runner."""

    debounce_seconds: float = Field(default=DEFAULT_DEBOUNCE_SECONDS, ge=0)
    lock_timeout: float = Field(default=DEFAULT_LOCK_TIMEOUT, gt=0)
    misfire_grace_seconds: float = Field(default=DEFAULT_MISFIRE_GRACE_SECONDS, ge=0)
    # Used by the CLI when --timezone is not given
    default_timezone: str = Field(default_factory=get_system_timezone)

    @field_validator("default_timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        if not is_valid_timezone(value):
            raise ValueError(f"Invalid timezone: {value!r}")
        return value


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_to_file: bool = False


class ChannelConfig(BaseModel):
    """A channel whose schedule file the runner watches.

    Without an explicit folder the channel lives under
    ~/.cronkeeper/channels/{id}/.
    """

    id: str
    name: str | None = None
    folder: Path | None = None
    schedule_file: str = DEFAULT_SCHEDULE_FILE

    @field_validator("id")
    @classmethod
    def _check_id(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("channel id must not be empty")
        return value

    @property
    def display_name(self) -> str:
        return self.name or self.id

    @property
    def folder_path(self) -> Path:
        if self.folder is not None:
            return self.folder.expanduser()
        return get_channels_path() / self.id

    def to_mapping(self) -> ChannelMapping:
        """Build the runner's view of this channel."""
        folder = self.folder_path
        return ChannelMapping(
            channel_id=self.id,
            channel_name=self.display_name,
            folder_path=folder,
            config_path=folder / self.schedule_file,
        )


class ConfigError(Exception):
    """Configuration error."""

    pass


class CronkeeperConfig(BaseModel):
    """Root configuration model."""

    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    channels: list[ChannelConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_unique_channels(self) -> "CronkeeperConfig":
        seen: set[str] = set()
        for channel in self.channels:
            if channel.id in seen:
                raise ValueError(f"Duplicate channel id '{channel.id}'")
            seen.add(channel.id)
        return self

    def get_channel(self, channel_id: str) -> ChannelConfig:
        """Get a channel by id.

        Raises:
            ConfigError: If the channel is not configured.
        """
        for channel in self.channels:
            if channel.id == channel_id:
                return channel
        available = ", ".join(c.id for c in self.channels) or "none"
        raise ConfigError(f"Unknown channel '{channel_id}'. Available: {available}")

    def channel_mappings(self) -> list[ChannelMapping]:
        return [channel.to_mapping() for channel in self.channels]

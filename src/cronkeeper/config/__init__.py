"""Configuration module."""

from cronkeeper.config.loader import find_config_path, load_config
from cronkeeper.config.models import (
    ChannelConfig,
    ConfigError,
    CronkeeperConfig,
    LoggingConfig,
    SchedulerConfig,
)
from cronkeeper.config.paths import (
    get_channels_path,
    get_config_path,
    get_cronkeeper_home,
    get_logs_path,
    get_system_timezone,
)

__all__ = [
    "ChannelConfig",
    "ConfigError",
    "CronkeeperConfig",
    "LoggingConfig",
    "SchedulerConfig",
    "find_config_path",
    "get_channels_path",
    "get_config_path",
    "get_cronkeeper_home",
    "get_logs_path",
    "get_system_timezone",
    "load_config",
]

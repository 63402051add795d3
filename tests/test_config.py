"""Tests for configuration loading, models and paths."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from cronkeeper.config.loader import load_config
from cronkeeper.config.models import (
    ChannelConfig,
    ConfigError,
    CronkeeperConfig,
    LoggingConfig,
    SchedulerConfig,
)
from cronkeeper.config.paths import (
    ENV_VAR,
    get_all_paths,
    get_channels_path,
    get_config_path,
    get_cronkeeper_home,
    get_logs_path,
    get_system_timezone,
)


class TestPaths:
    """Tests for path management."""

    def test_default_is_home_dot_cronkeeper(self, monkeypatch):
        monkeypatch.delenv(ENV_VAR, raising=False)
        get_cronkeeper_home.cache_clear()
        assert get_cronkeeper_home() == Path.home() / ".cronkeeper"

    def test_respects_env_var(self, monkeypatch, tmp_path):
        custom = tmp_path / "custom"
        monkeypatch.setenv(ENV_VAR, str(custom))
        get_cronkeeper_home.cache_clear()
        assert get_cronkeeper_home() == custom.resolve()

    def test_derived_paths(self, cronkeeper_home):
        home = get_cronkeeper_home()
        assert get_config_path() == home / "config.toml"
        assert get_logs_path() == home / "logs"
        assert get_channels_path() == home / "channels"
        assert set(get_all_paths()) == {"home", "config", "logs", "channels"}

    def test_system_timezone_from_env(self, monkeypatch):
        monkeypatch.setenv("TZ", "Europe/Paris")
        assert get_system_timezone() == "Europe/Paris"


class TestSchedulerConfig:
    """Tests for SchedulerConfig model."""

    def test_defaults(self):
        config = SchedulerConfig(default_timezone="UTC")
        assert config.debounce_seconds == 0.5
        assert config.lock_timeout == 10.0
        assert config.misfire_grace_seconds == 60.0

    def test_rejects_unknown_timezone(self):
        with pytest.raises(ValidationError):
            SchedulerConfig(default_timezone="Mars/Olympus")

    def test_rejects_negative_debounce(self):
        with pytest.raises(ValidationError):
            SchedulerConfig(debounce_seconds=-1, default_timezone="UTC")


class TestLoggingConfig:
    def test_defaults(self):
        config = LoggingConfig()
        assert config.level == "INFO"
        assert config.log_to_file is False

    def test_rejects_unknown_level(self):
        with pytest.raises(ValidationError):
            LoggingConfig(level="LOUD")


class TestChannelConfig:
    """Tests for ChannelConfig model."""

    def test_explicit_folder(self, tmp_path):
        channel = ChannelConfig(id="general", name="General", folder=tmp_path / "gen")
        mapping = channel.to_mapping()
        assert mapping.channel_id == "general"
        assert mapping.channel_name == "General"
        assert mapping.folder_path == tmp_path / "gen"
        assert mapping.config_path == tmp_path / "gen" / "schedule.yaml"

    def test_default_folder_under_home(self, cronkeeper_home):
        mapping = ChannelConfig(id="general").to_mapping()
        assert mapping.folder_path == get_channels_path() / "general"
        assert mapping.channel_name == "general"

    def test_custom_schedule_file(self, tmp_path):
        channel = ChannelConfig(id="ops", folder=tmp_path, schedule_file="cron.yaml")
        assert channel.to_mapping().config_path == tmp_path / "cron.yaml"

    def test_blank_id_rejected(self):
        with pytest.raises(ValidationError):
            ChannelConfig(id=" ")


class TestCronkeeperConfig:
    """Tests for the root config model."""

    def test_defaults(self):
        config = CronkeeperConfig()
        assert config.channels == []
        assert config.channel_mappings() == []

    def test_duplicate_channel_ids_rejected(self, tmp_path):
        with pytest.raises(ValidationError, match="Duplicate channel id"):
            CronkeeperConfig(
                channels=[
                    ChannelConfig(id="general", folder=tmp_path / "a"),
                    ChannelConfig(id="general", folder=tmp_path / "b"),
                ]
            )

    def test_get_channel(self, tmp_path):
        config = CronkeeperConfig(channels=[ChannelConfig(id="general", folder=tmp_path)])
        assert config.get_channel("general").id == "general"

    def test_get_unknown_channel(self):
        config = CronkeeperConfig()
        with pytest.raises(ConfigError, match="Unknown channel 'nope'"):
            config.get_channel("nope")


class TestLoadConfig:
    """Tests for load_config."""

    def test_loads_file(self, config_file, channel_dir):
        config = load_config(config_file)
        assert config.scheduler.default_timezone == "UTC"
        assert config.scheduler.lock_timeout == 2.0
        [channel] = config.channels
        assert channel.id == "general"
        assert channel.to_mapping().config_path == channel_dir / "schedule.yaml"

    def test_explicit_missing_path(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.toml")

    def test_no_file_gives_defaults(self):
        config = load_config()
        assert config.channels == []

    def test_finds_file_in_current_directory(self, config_file):
        """config_file lives in the test's working directory."""
        config = load_config()
        assert [c.id for c in config.channels] == ["general"]

    def test_finds_file_in_home(self, cronkeeper_home):
        cronkeeper_home.mkdir(parents=True)
        (cronkeeper_home / "config.toml").write_text("[logging]\nlevel = \"DEBUG\"\n")
        assert load_config().logging.level == "DEBUG"

    def test_invalid_toml(self, tmp_path):
        path = tmp_path / "bad.toml"
        path.write_text("not valid toml [[[")
        with pytest.raises(ValueError, match="Invalid TOML"):
            load_config(path)

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "bad.toml"
        path.write_text('[scheduler]\ndefault_timezone = "Nowhere/Land"\n')
        with pytest.raises(ValueError, match="Invalid config"):
            load_config(path)

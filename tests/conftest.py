"""Shared test fixtures and factories."""

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from cronkeeper.config.paths import ENV_VAR, get_cronkeeper_home
from cronkeeper.scheduling.types import ChannelMapping, OneTimeJob, RecurringJob

# =============================================================================
# Environment
# =============================================================================


@pytest.fixture(autouse=True)
def cronkeeper_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point CRONKEEPER_HOME at a temp dir so tests never touch ~/.cronkeeper."""
    home = tmp_path / "home"
    monkeypatch.setenv(ENV_VAR, str(home))
    monkeypatch.delenv("CRONKEEPER_LOG_LEVEL", raising=False)
    # Don't pick up a cronkeeper.toml from the repo checkout
    monkeypatch.chdir(tmp_path)
    get_cronkeeper_home.cache_clear()
    yield home
    get_cronkeeper_home.cache_clear()


# =============================================================================
# Schedule Fixtures
# =============================================================================


@pytest.fixture
def channel_dir(tmp_path: Path) -> Path:
    folder = tmp_path / "channels" / "general"
    folder.mkdir(parents=True)
    return folder


@pytest.fixture
def schedule_file(channel_dir: Path) -> Path:
    """Path of the general channel's schedule file (not created)."""
    return channel_dir / "schedule.yaml"


@pytest.fixture
def mapping(channel_dir: Path, schedule_file: Path) -> ChannelMapping:
    return ChannelMapping(
        channel_id="general",
        channel_name="General",
        folder_path=channel_dir,
        config_path=schedule_file,
    )


def make_recurring(
    name: str = "standup",
    cron_expression: str = "0 9 * * 1",
    timezone: str = "America/New_York",
    task: str = "Post the standup prompt",
    channel_id: str = "general",
    **kwargs,
) -> RecurringJob:
    """Factory for recurring jobs."""
    return RecurringJob(
        name=name,
        cron_expression=cron_expression,
        timezone=timezone,
        task=task,
        channel_id=channel_id,
        **kwargs,
    )


def make_one_time(
    id: str = "job_1700000000000",
    target_time: datetime | None = None,
    natural_time: str = "in 1 hour",
    timezone: str = "UTC",
    task: str = "Remind the team",
    channel_id: str = "general",
    **kwargs,
) -> OneTimeJob:
    """Factory for one-time jobs (default: one hour from now)."""
    return OneTimeJob(
        id=id,
        natural_time=natural_time,
        target_time=target_time or datetime.now(UTC) + timedelta(hours=1),
        timezone=timezone,
        task=task,
        channel_id=channel_id,
        **kwargs,
    )


# =============================================================================
# Config Fixtures
# =============================================================================


@pytest.fixture
def config_file(tmp_path: Path, channel_dir: Path) -> Path:
    """Config with a single 'general' channel in a temp folder."""
    path = tmp_path / "cronkeeper.toml"
    path.write_text(
        f"""
[scheduler]
default_timezone = "UTC"
lock_timeout = 2.0

[[channels]]
id = "general"
name = "General"
folder = "{channel_dir.as_posix()}"
"""
    )
    return path


# =============================================================================
# CLI Test Helpers
# =============================================================================


@pytest.fixture
def cli_runner():
    """Create a Typer CLI test runner with colors disabled."""
    from typer.testing import CliRunner

    return CliRunner(env={"NO_COLOR": "1"})

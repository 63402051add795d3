"""Schedule store backed by a per-channel YAML file.

The file is the source of truth. It is edited by people, by agent tool calls
and by the runner itself (when a one-time job completes), so every write is
a whole-file read-modify-write under an advisory lock, and lands via an
atomic rename.
"""

from __future__ import annotations

import copy
import logging
import os
import re
import tempfile
import time
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, TypeVar

import yaml
from filelock import FileLock

from cronkeeper.scheduling.errors import (
    ConfigParseError,
    DuplicateNameError,
    ValidationError,
)
from cronkeeper.scheduling.natural_time import is_valid_timezone
from cronkeeper.scheduling.types import (
    OneTimeJob,
    RecurringJob,
    ScheduleConfig,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

ONE_TIME_SECTION = "oneTimeJobs"
RECURRING_SECTION = "recurringJobs"

# minute hour day month weekday; each: *, n, a-b, lists of n / a-b, optional /step
_CRON_FIELD = re.compile(r"^(\*|\d+(-\d+)?(,\d+(-\d+)?)*)(/\d+)?$")

DEFAULT_LOCK_TIMEOUT = 10.0


def validate_cron_expression(expr: Any) -> bool:
    """Check a cron expression against the 5-field grammar."""
    if not isinstance(expr, str):
        return False
    parts = expr.split()
    if len(parts) != 5:
        return False
    return all(_CRON_FIELD.match(part) for part in parts)


# ----------------------------------------------------------------------
# Validation
# ----------------------------------------------------------------------


def _require_str(data: dict[str, Any], key: str, index: int, section: str) -> str:
    value = data.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(key, index, section=section)
    if isinstance(value, bool) or not isinstance(value, str | int):
        raise ValidationError(key, index, section=section, reason="must be a string")
    # YAML turns bare numeric ids (e.g. Discord snowflakes) into ints
    return str(value)


def _optional_str(
    data: dict[str, Any], key: str, index: int, section: str
) -> str | None:
    if data.get(key) in (None, ""):
        return None
    return _require_str(data, key, index, section)


def _timezone(data: dict[str, Any], index: int, section: str) -> str:
    timezone = _require_str(data, "timezone", index, section)
    if not is_valid_timezone(timezone):
        raise ValidationError(
            "timezone", index, section=section, reason=f"unknown timezone {timezone!r}"
        )
    return timezone


def _timestamp(
    data: dict[str, Any], key: str, index: int, section: str, *, required: bool
) -> datetime | None:
    value = data.get(key)
    if value in (None, ""):
        if required:
            raise ValidationError(key, index, section=section)
        return None
    try:
        return parse_timestamp(value)
    except ValueError as e:
        raise ValidationError(key, index, section=section, reason=str(e)) from e


def _require_mapping(data: Any, index: int, section: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ValidationError(
            "entry", index, section=section, reason="each job must be a mapping"
        )
    return data


def validate_recurring_job(data: Any, index: int) -> RecurringJob:
    """Validate one `recurringJobs` entry.

    Raises:
        ValidationError: Naming the first missing or malformed field.
    """
    section = RECURRING_SECTION
    data = _require_mapping(data, index, section)
    name = _require_str(data, "name", index, section)
    cron_expression = _require_str(data, "cronExpression", index, section)
    if not validate_cron_expression(cron_expression):
        raise ValidationError(
            "cronExpression",
            index,
            section=section,
            reason=f"{cron_expression!r} is not a 5-field cron expression "
            "(minute hour day month weekday)",
        )
    return RecurringJob(
        name=name,
        cron_expression=cron_expression,
        timezone=_timezone(data, index, section),
        task=_require_str(data, "task", index, section),
        channel_id=_require_str(data, "channelId", index, section),
        thread_id=_optional_str(data, "threadId", index, section),
        created_at=_timestamp(data, "createdAt", index, section, required=False),
    )


def validate_one_time_job(data: Any, index: int) -> OneTimeJob:
    """Validate one `oneTimeJobs` entry.

    Raises:
        ValidationError: Naming the first missing or malformed field.
    """
    section = ONE_TIME_SECTION
    data = _require_mapping(data, index, section)
    job_id = _require_str(data, "id", index, section)
    natural_time = _require_str(data, "naturalTime", index, section)
    target_time = _timestamp(data, "targetTime", index, section, required=True)
    assert target_time is not None
    return OneTimeJob(
        id=job_id,
        natural_time=natural_time,
        target_time=target_time,
        timezone=_timezone(data, index, section),
        task=_require_str(data, "task", index, section),
        channel_id=_require_str(data, "channelId", index, section),
        thread_id=_optional_str(data, "threadId", index, section),
        created_at=_timestamp(data, "createdAt", index, section, required=False),
    )


def _section(raw: dict[str, Any], key: str) -> list[Any]:
    value = raw.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigParseError(f"{key} must be a list, got {type(value).__name__}")
    return value


def _check_unique(config: ScheduleConfig) -> None:
    seen_ids: set[str] = set()
    for index, job in enumerate(config.one_time_jobs):
        if job.id in seen_ids:
            raise ValidationError(
                "id", index, section=ONE_TIME_SECTION, reason=f"duplicate id {job.id!r}"
            )
        seen_ids.add(job.id)

    seen_names: set[tuple[str, str]] = set()
    for index, job in enumerate(config.recurring_jobs):
        key = (job.channel_id, job.name)
        if key in seen_names:
            raise ValidationError(
                "name",
                index,
                section=RECURRING_SECTION,
                reason=f"duplicate name {job.name!r} in channel {job.channel_id}",
            )
        seen_names.add(key)


# ----------------------------------------------------------------------
# Parse / write
# ----------------------------------------------------------------------


def load_schedule_text(text: str, *, source: str = "<string>") -> ScheduleConfig:
    """Parse schedule YAML content.

    Raises:
        ConfigParseError: Malformed YAML or wrong top-level structure.
        ValidationError: A job entry is missing or has a malformed field.
    """
    if not text.strip():
        return ScheduleConfig()

    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigParseError(f"Failed to parse schedule file {source}: {e}") from e

    if raw is None:
        return ScheduleConfig()
    if not isinstance(raw, dict):
        raise ConfigParseError(
            f"Failed to parse schedule file {source}: top level must be a mapping "
            f"with {ONE_TIME_SECTION} and {RECURRING_SECTION}"
        )

    config = ScheduleConfig(
        one_time_jobs=[
            validate_one_time_job(item, i)
            for i, item in enumerate(_section(raw, ONE_TIME_SECTION))
        ],
        recurring_jobs=[
            validate_recurring_job(item, i)
            for i, item in enumerate(_section(raw, RECURRING_SECTION))
        ],
    )
    _check_unique(config)
    return config


def parse_schedule_file(path: Path) -> ScheduleConfig:
    """Read a schedule file.

    A missing or empty file is an empty config, not an error.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return ScheduleConfig()
    except UnicodeDecodeError as e:
        raise ConfigParseError(f"Failed to parse schedule file {path}: {e}") from e
    return load_schedule_text(text, source=str(path))


class _ScheduleDumper(yaml.SafeDumper):
    """Safe dumper that never emits anchors or aliases."""

    def ignore_aliases(self, data: Any) -> bool:
        return True


def dump_schedule(config: ScheduleConfig) -> str:
    """Serialize a config deterministically (fixed key order, no aliases)."""
    return yaml.dump(
        config.to_dict(),
        Dumper=_ScheduleDumper,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
        width=1000,
    )


def write_schedule_file(path: Path, config: ScheduleConfig) -> None:
    """Write a config atomically via tempfile + fsync + replace."""
    content = dump_schedule(config)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        Path(tmp).replace(path)
    except BaseException:
        try:
            Path(tmp).unlink()
        except OSError:
            pass
        raise


# ----------------------------------------------------------------------
# Store
# ----------------------------------------------------------------------


def next_job_id(config: ScheduleConfig, now: datetime | None = None) -> str:
    """Generate a `job_<epoch-ms>` id that is unique within `config`."""
    stamp = int((now or datetime.now(UTC)).timestamp() * 1000)
    taken = {job.id for job in config.one_time_jobs}
    while f"job_{stamp}" in taken:
        stamp += 1
    return f"job_{stamp}"


class ScheduleStore:
    """Locked read-modify-write access to one schedule file."""

    def __init__(self, path: Path, *, lock_timeout: float = DEFAULT_LOCK_TIMEOUT):
        self._path = path
        self._lock = FileLock(str(path) + ".lock", timeout=lock_timeout)

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def load(self) -> ScheduleConfig:
        # Writes are atomic renames, so readers never see a partial file.
        return parse_schedule_file(self._path)

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    def mutate(self, fn: Callable[[ScheduleConfig], _T]) -> _T:
        """Apply `fn` to a fresh parse of the file and persist any change.

        The file is only rewritten when `fn` actually changed the config, and
        is left untouched when `fn` raises.
        """
        started = time.monotonic()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            config = parse_schedule_file(self._path)
            before = copy.deepcopy(config)
            result = fn(config)
            if config != before:
                write_schedule_file(self._path, config)
                logger.debug(
                    "schedule_file_written",
                    extra={
                        "file.path": str(self._path),
                        "schedule.one_time_count": len(config.one_time_jobs),
                        "schedule.recurring_count": len(config.recurring_jobs),
                        "duration_ms": round((time.monotonic() - started) * 1000, 1),
                    },
                )
        return result

    def add_recurring_job(self, job: RecurringJob) -> RecurringJob:
        def mutate(config: ScheduleConfig) -> RecurringJob:
            if config.find_recurring(job.channel_id, job.name):
                raise DuplicateNameError(job.name, job.channel_id)
            config.recurring_jobs.append(job)
            return job

        return self.mutate(mutate)

    def add_one_time_job(self, job: OneTimeJob) -> OneTimeJob:
        """Append a one-time job, reassigning its id if it collides."""

        def mutate(config: ScheduleConfig) -> OneTimeJob:
            if config.find_one_time(job.id) is not None:
                job.id = next_job_id(config)
            config.one_time_jobs.append(job)
            return job

        return self.mutate(mutate)

    def remove_one_time_job(
        self, job_id: str, channel_id: str | None = None
    ) -> OneTimeJob | None:
        def mutate(config: ScheduleConfig) -> OneTimeJob | None:
            job = config.find_one_time(job_id, channel_id)
            if job is not None:
                config.one_time_jobs.remove(job)
            return job

        return self.mutate(mutate)

    def remove_recurring_job(self, channel_id: str, name: str) -> RecurringJob | None:
        def mutate(config: ScheduleConfig) -> RecurringJob | None:
            job = config.find_recurring(channel_id, name)
            if job is not None:
                config.recurring_jobs.remove(job)
            return job

        return self.mutate(mutate)

"""Schedule types.

Public types:
- RecurringJob: A cron-driven job that fires until removed
- OneTimeJob: A job that fires once at a resolved instant
- ScheduleConfig: The whole-file unit of parse/write
- ChannelMapping: Where a channel's schedule file lives
- TaskRunner: Async execution adapter invoked when a job fires
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal
from zoneinfo import ZoneInfo

from croniter import croniter

logger = logging.getLogger(__name__)

JobKind = Literal["recurring", "onetime"]


def format_timestamp(value: datetime) -> str:
    """Format a datetime as ISO 8601 UTC with a trailing Z."""
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO 8601 string or YAML timestamp into an aware UTC datetime.

    Naive values are interpreted as UTC.

    Raises:
        ValueError: If the value is not a recognizable timestamp.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    else:
        raise ValueError(f"not a timestamp: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


@dataclass
class RecurringJob:
    """A job that fires on a cron schedule until explicitly removed."""

    name: str
    cron_expression: str
    timezone: str
    task: str
    channel_id: str
    thread_id: str | None = None
    created_at: datetime | None = None

    kind: JobKind = field(default="recurring", init=False, repr=False)

    @property
    def key(self) -> str:
        return f"recurring:{self.name}"

    @property
    def label(self) -> str:
        return self.name

    def next_fire_time(self, after: datetime | None = None) -> datetime:
        """Get the next occurrence after `after` (default: now), in UTC.

        The cron expression is evaluated in the job's own timezone so that
        "0 9 * * *" means 9 AM local time across DST changes.

        Raises:
            ValueError: If croniter rejects the expression.
        """
        tz = ZoneInfo(self.timezone)
        base = (after or datetime.now(UTC)).astimezone(tz)
        next_local = croniter(self.cron_expression, base).get_next(datetime)
        return next_local.astimezone(UTC)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "cronExpression": self.cron_expression,
            "timezone": self.timezone,
            "task": self.task,
            "channelId": self.channel_id,
        }
        if self.thread_id:
            data["threadId"] = self.thread_id
        if self.created_at:
            data["createdAt"] = format_timestamp(self.created_at)
        return data


@dataclass
class OneTimeJob:
    """A job that fires once at `target_time` and is then deleted."""

    id: str
    natural_time: str
    target_time: datetime
    timezone: str
    task: str
    channel_id: str
    thread_id: str | None = None
    created_at: datetime | None = None

    kind: JobKind = field(default="onetime", init=False, repr=False)

    @property
    def key(self) -> str:
        return f"onetime:{self.id}"

    @property
    def label(self) -> str:
        return self.id

    def seconds_until(self, now: datetime | None = None) -> float:
        """Seconds until the target time (negative when overdue)."""
        now = now or datetime.now(UTC)
        return (self.target_time - now).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "naturalTime": self.natural_time,
            "targetTime": format_timestamp(self.target_time),
            "timezone": self.timezone,
            "task": self.task,
            "channelId": self.channel_id,
        }
        if self.thread_id:
            data["threadId"] = self.thread_id
        if self.created_at:
            data["createdAt"] = format_timestamp(self.created_at)
        return data


ScheduledJob = RecurringJob | OneTimeJob


@dataclass
class ScheduleConfig:
    """Contents of one schedule file."""

    one_time_jobs: list[OneTimeJob] = field(default_factory=list)
    recurring_jobs: list[RecurringJob] = field(default_factory=list)

    def jobs_for_channel(self, channel_id: str) -> list[ScheduledJob]:
        jobs: list[ScheduledJob] = [
            j for j in self.recurring_jobs if j.channel_id == channel_id
        ]
        jobs.extend(j for j in self.one_time_jobs if j.channel_id == channel_id)
        return jobs

    def find_one_time(
        self, job_id: str, channel_id: str | None = None
    ) -> OneTimeJob | None:
        for job in self.one_time_jobs:
            if job.id != job_id:
                continue
            if channel_id is None or job.channel_id == channel_id:
                return job
        return None

    def find_recurring(self, channel_id: str, name: str) -> RecurringJob | None:
        for job in self.recurring_jobs:
            if job.name == name and job.channel_id == channel_id:
                return job
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "oneTimeJobs": [job.to_dict() for job in self.one_time_jobs],
            "recurringJobs": [job.to_dict() for job in self.recurring_jobs],
        }


@dataclass(frozen=True)
class ChannelMapping:
    """Where a channel's schedule file lives.

    Produced by channel sync/bootstrap; the runner only reads it.
    """

    channel_id: str
    channel_name: str
    folder_path: Path
    config_path: Path


# Execution adapter: (task text, channel id, optional thread id)
TaskRunner = Callable[[str, str, str | None], Awaitable[Any]]

"""Agent-facing schedule operations.

These operate directly on a channel's schedule file through ScheduleStore.
They never touch the runner: the file change they cause is picked up by the
runner's watcher like any other edit. Every operation returns a ToolResult
and never raises across the tool boundary.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, Literal
from zoneinfo import ZoneInfo

from croniter import croniter
from filelock import Timeout

from cronkeeper.scheduling.errors import (
    DuplicateNameError,
    InvalidTimezoneError,
    NotFoundError,
    SchedulingError,
    ValidationError,
)
from cronkeeper.scheduling.natural_time import (
    is_valid_timezone,
    list_example_expressions,
    resolve_natural_time,
)
from cronkeeper.scheduling.store import (
    ScheduleStore,
    next_job_id,
    validate_cron_expression,
)
from cronkeeper.scheduling.types import (
    OneTimeJob,
    RecurringJob,
    ScheduleConfig,
    format_timestamp,
)
from cronkeeper.tools.base import ToolResult

logger = logging.getLogger(__name__)

ListFilter = Literal["onetime", "recurring", "all"]

TIMEZONE_EXAMPLES = [
    "America/New_York",
    "America/Los_Angeles",
    "America/Chicago",
    "Europe/London",
    "Europe/Paris",
    "Asia/Tokyo",
    "Australia/Sydney",
    "UTC",
]

CRON_EXAMPLES = [
    "0 9 * * * - Every day at 9:00 AM",
    "0 9 * * 1 - Every Monday at 9:00 AM",
    "*/30 * * * * - Every 30 minutes",
    "0 0 1 * * - First day of every month at midnight",
    "0 17 * * 5 - Every Friday at 5:00 PM",
]


def format_time_until(target: datetime, now: datetime | None = None) -> str:
    """Human-readable time remaining, e.g. "2 hours 30 minutes" or "overdue"."""
    now = now or datetime.now(UTC)
    total_ms = (target - now).total_seconds() * 1000
    if total_ms < 0:
        return "overdue"

    seconds = int(total_ms // 1000)
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    def plural(n: int, unit: str) -> str:
        return f"{n} {unit}" if n == 1 else f"{n} {unit}s"

    parts: list[str] = []
    if days:
        parts.append(plural(days, "day"))
    if hours % 24:
        parts.append(plural(hours % 24, "hour"))
    # Minutes only below a day, seconds only below an hour
    if minutes % 60 and not days:
        parts.append(plural(minutes % 60, "minute"))
    if seconds % 60 and not hours:
        parts.append(plural(seconds % 60, "second"))

    return " ".join(parts) if parts else "less than 1 second"


def _local_time(value: datetime, timezone: str) -> str:
    return value.astimezone(ZoneInfo(timezone)).strftime("%Y-%m-%d %H:%M:%S %Z")


def _error(e: Exception, **metadata: Any) -> ToolResult:
    return ToolResult.error(str(e), error_type=type(e).__name__, **metadata)


class ScheduleTools:
    """Schedule mutations exposed to the agent.

    Args:
        store_for_channel: Returns the ScheduleStore that holds a channel's
            schedule file.
    """

    def __init__(self, store_for_channel: Callable[[str], ScheduleStore]) -> None:
        self._store_for_channel = store_for_channel

    def add_recurring(
        self,
        channel_id: str,
        name: str,
        cron_expression: str,
        timezone: str,
        task: str,
    ) -> ToolResult:
        """Schedule a task that repeats on a cron expression until removed."""
        for field_name, value in (("name", name), ("task", task)):
            if not value or not value.strip():
                return _error(ValidationError(field_name, 0, section="recurringJobs"))

        if not validate_cron_expression(cron_expression) or not croniter.is_valid(
            cron_expression
        ):
            return ToolResult.error(
                f'Invalid cron expression: "{cron_expression}". '
                "Must be 5 fields: minute hour day month weekday.",
                error_type="ValidationError",
                valid_format="minute hour day month weekday",
                examples=CRON_EXAMPLES,
            )

        if not is_valid_timezone(timezone):
            return _error(InvalidTimezoneError(timezone), examples=TIMEZONE_EXAMPLES)

        job = RecurringJob(
            name=name.strip(),
            cron_expression=cron_expression.strip(),
            timezone=timezone,
            task=task,
            channel_id=channel_id,
            created_at=datetime.now(UTC),
        )
        try:
            self._store_for_channel(channel_id).add_recurring_job(job)
        except DuplicateNameError as e:
            existing = self._existing_recurring(channel_id, job.name)
            return _error(e, existing_job=existing)
        except (SchedulingError, OSError, Timeout) as e:
            return self._failed("add_recurring", channel_id, e)

        logger.info(
            "recurring_job_added",
            extra={"schedule.channel_id": channel_id, "schedule.job_key": job.key},
        )
        return ToolResult.success(
            f'Recurring task "{job.name}" scheduled successfully! It will run '
            f"on '{job.cron_expression}' ({job.timezone}) until removed.",
            job=job.to_dict(),
            next_run=format_timestamp(job.next_fire_time()),
        )

    def add_one_time(
        self,
        channel_id: str,
        natural_time: str,
        timezone: str,
        task: str,
        reply_in_thread: bool = False,
        thread_id: str | None = None,
    ) -> ToolResult:
        """Schedule a task to run once at a natural-language time."""
        if not task or not task.strip():
            return _error(ValidationError("task", 0, section="oneTimeJobs"))

        now = datetime.now(UTC)
        try:
            target_time = resolve_natural_time(natural_time, timezone, now=now)
        except InvalidTimezoneError as e:
            return _error(e, examples=TIMEZONE_EXAMPLES)
        except SchedulingError as e:
            return _error(
                e,
                input=natural_time,
                timezone=timezone,
                examples=list_example_expressions(),
            )

        def mutate(config: ScheduleConfig) -> OneTimeJob:
            job = OneTimeJob(
                id=next_job_id(config, now),
                natural_time=natural_time,
                target_time=target_time,
                timezone=timezone,
                task=task,
                channel_id=channel_id,
                thread_id=thread_id if reply_in_thread and thread_id else None,
                created_at=now,
            )
            config.one_time_jobs.append(job)
            return job

        try:
            job = self._store_for_channel(channel_id).mutate(mutate)
        except (SchedulingError, OSError, Timeout) as e:
            return self._failed("add_one_time", channel_id, e)

        logger.info(
            "one_time_job_added",
            extra={
                "schedule.channel_id": channel_id,
                "schedule.job_key": job.key,
                "schedule.target_time": format_timestamp(job.target_time),
            },
        )
        destination = "this thread" if job.thread_id else "this channel"
        return ToolResult.success(
            "One-time task scheduled successfully! It will run at "
            f"{_local_time(job.target_time, timezone)} "
            f"({format_time_until(job.target_time, now)} from now), post results "
            f"to {destination}, and then be removed automatically.",
            job=job.to_dict(),
            minutes_until=int(job.seconds_until(now) // 60),
        )

    def remove(self, channel_id: str, identifier: str) -> ToolResult:
        """Remove a one-time job by id, or else a recurring job by name."""

        def mutate(config: ScheduleConfig) -> OneTimeJob | RecurringJob:
            one_time = config.find_one_time(identifier, channel_id)
            if one_time is not None:
                config.one_time_jobs.remove(one_time)
                return one_time
            recurring = config.find_recurring(channel_id, identifier)
            if recurring is not None:
                config.recurring_jobs.remove(recurring)
                return recurring
            raise NotFoundError(f'Schedule not found: "{identifier}"')

        try:
            removed = self._store_for_channel(channel_id).mutate(mutate)
        except NotFoundError as e:
            return _error(
                e,
                tip="List the channel's schedules to find the job id (one-time) "
                "or name (recurring).",
            )
        except (SchedulingError, OSError, Timeout) as e:
            return self._failed("remove", channel_id, e)

        logger.info(
            "schedule_job_removed",
            extra={"schedule.channel_id": channel_id, "schedule.job_key": removed.key},
        )
        kind = "One-time" if removed.kind == "onetime" else "Recurring"
        return ToolResult.success(
            f"{kind} schedule removed successfully!",
            removed={"type": removed.kind, **removed.to_dict()},
        )

    def list(self, channel_id: str, filter: ListFilter = "all") -> ToolResult:
        """List a channel's schedules (read-only)."""
        if filter not in ("onetime", "recurring", "all"):
            return ToolResult.error(
                f'Invalid filter "{filter}". Use "onetime", "recurring" or "all".',
                error_type="ValidationError",
            )
        try:
            config = self._store_for_channel(channel_id).load()
        except (SchedulingError, OSError) as e:
            return self._failed("list", channel_id, e)

        now = datetime.now(UTC)
        metadata: dict[str, Any] = {"channel_id": channel_id}
        lines: list[str] = []
        total = 0

        if filter in ("all", "onetime"):
            jobs = [j for j in config.one_time_jobs if j.channel_id == channel_id]
            entries = []
            for job in jobs:
                time_until = format_time_until(job.target_time, now)
                entries.append(
                    {
                        **job.to_dict(),
                        "local_time": _local_time(job.target_time, job.timezone),
                        "time_until": time_until,
                    }
                )
                when = time_until if time_until == "overdue" else f"in {time_until}"
                lines.append(f"- [one-time] {job.id}: {job.task} ({when})")
            metadata["one_time_jobs"] = entries
            total += len(jobs)

        if filter in ("all", "recurring"):
            jobs = [j for j in config.recurring_jobs if j.channel_id == channel_id]
            entries = []
            for job in jobs:
                try:
                    next_run: str | None = format_timestamp(job.next_fire_time(now))
                except (ValueError, KeyError):
                    next_run = None
                entries.append({**job.to_dict(), "next_run": next_run})
                lines.append(
                    f"- [recurring] {job.name}: {job.task} "
                    f"('{job.cron_expression}' {job.timezone})"
                )
            metadata["recurring_jobs"] = entries
            total += len(jobs)

        if total == 0:
            return ToolResult.success(
                "No scheduled tasks found for this channel.", count=0, **metadata
            )
        noun = "task" if total == 1 else "tasks"
        header = f"Found {total} scheduled {noun} for this channel."
        return ToolResult.success(
            "\n".join([header, *lines]), count=total, **metadata
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _existing_recurring(self, channel_id: str, name: str) -> dict[str, Any] | None:
        try:
            job = self._store_for_channel(channel_id).load().find_recurring(
                channel_id, name
            )
        except (SchedulingError, OSError):
            return None
        return job.to_dict() if job else None

    def _failed(self, operation: str, channel_id: str, e: Exception) -> ToolResult:
        logger.warning(
            "schedule_tool_failed",
            extra={
                "tool.operation": operation,
                "schedule.channel_id": channel_id,
                "error.type": type(e).__name__,
                "error.message": str(e),
            },
        )
        if isinstance(e, Timeout):
            return ToolResult.error(
                "The schedule file is busy; try again in a moment.",
                error_type="Timeout",
            )
        return _error(e)

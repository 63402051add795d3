"""Schedule runner: reconciles live timers with each channel's schedule file.

The runner owns one timer registry per channel. Every reload discards the
channel's timers and rebuilds them from a fresh parse of the file, so the
file is always the single source of truth. Reloads are synchronous on the
event loop thread: a reload can never interleave with a timer firing, and
channels never block one another.
"""

import asyncio
import logging
from collections.abc import Collection
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

from croniter import croniter
from filelock import Timeout

from cronkeeper.scheduling.errors import SchedulingError
from cronkeeper.scheduling.store import DEFAULT_LOCK_TIMEOUT, ScheduleStore
from cronkeeper.scheduling.types import (
    ChannelMapping,
    OneTimeJob,
    RecurringJob,
    ScheduledJob,
    TaskRunner,
)
from cronkeeper.scheduling.watcher import DEFAULT_DEBOUNCE_SECONDS, FileWatcher

logger = logging.getLogger(__name__)

# Recurring occurrences missed by more than this (host asleep, loop stalled)
# are skipped instead of fired in a burst.
DEFAULT_MISFIRE_GRACE_SECONDS = 60.0

# A fresh recurring timer also considers an occurrence this recent, so a
# reload landing on the fire instant does not drop it.
_RELOAD_LOOKBACK = timedelta(seconds=1)


@dataclass
class RunningTimer:
    job: ScheduledJob
    task: asyncio.Task


@dataclass
class _ChannelState:
    mapping: ChannelMapping
    store: ScheduleStore
    timers: dict[str, RunningTimer] = field(default_factory=dict)


class ScheduleRunner:
    """Keeps per-channel timers in sync with schedule files and runs due jobs.

    Example:
        async def run_task(task: str, channel_id: str, thread_id: str | None):
            await deliver(task, channel_id, thread_id)

        runner = ScheduleRunner(run_task)
        await runner.start(mappings)
        ...
        await runner.stop()
    """

    def __init__(
        self,
        task_runner: TaskRunner,
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
        misfire_grace_seconds: float = DEFAULT_MISFIRE_GRACE_SECONDS,
        watch: bool = True,
    ) -> None:
        self._task_runner = task_runner
        self._debounce_seconds = debounce_seconds
        self._lock_timeout = lock_timeout
        self._misfire_grace = timedelta(seconds=misfire_grace_seconds)
        self._watch = watch
        self._watcher: FileWatcher | None = None
        self._channels: dict[str, _ChannelState] = {}
        # One-time jobs currently executing, keyed by (channel_id, job_id)
        self._firing: set[tuple[str, str]] = set()
        # Executed one-time jobs whose removal from the file failed
        self._spent: set[tuple[str, str]] = set()
        # Last occurrence handled per (channel_id, job key), kept across reloads
        self._last_fired: dict[tuple[str, str], datetime] = {}
        self._executions: set[asyncio.Task] = set()
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def channels(self) -> list[str]:
        return list(self._channels)

    def scheduled_jobs(self, channel_id: str) -> list[ScheduledJob]:
        """Jobs with a live timer in the given channel."""
        state = self._channels.get(channel_id)
        if state is None:
            return []
        return [timer.job for timer in state.timers.values()]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, mappings: list[ChannelMapping]) -> None:
        """Watch and load every channel in `mappings`."""
        if not self._running:
            self._running = True
            if self._watch:
                self._watcher = FileWatcher(debounce_seconds=self._debounce_seconds)
                self._watcher.start()
            logger.info(
                "schedule_runner_started", extra={"channel.count": len(mappings)}
            )
        for mapping in mappings:
            await self.add_channel(mapping)

    async def stop(self) -> None:
        """Cancel every timer and execution and stop watching. Idempotent."""
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None

        tasks: list[asyncio.Task] = []
        for state in self._channels.values():
            tasks.extend(self._cancel_timers(state))
        for execution in list(self._executions):
            execution.cancel()
            tasks.append(execution)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._channels.clear()
        self._executions.clear()
        self._firing.clear()
        self._spent.clear()
        self._last_fired.clear()
        if self._running:
            self._running = False
            logger.info("schedule_runner_stopped")

    async def add_channel(self, mapping: ChannelMapping) -> None:
        """Start watching one channel without disturbing the others."""
        if not self._running:
            raise RuntimeError("ScheduleRunner is not running; call start() first")

        channel_id = mapping.channel_id
        existing = self._channels.get(channel_id)
        if existing is not None:
            self._cancel_timers(existing)

        self._channels[channel_id] = _ChannelState(
            mapping=mapping,
            store=ScheduleStore(mapping.config_path, lock_timeout=self._lock_timeout),
        )
        if self._watcher is not None:
            self._watcher.watch(
                channel_id,
                mapping.config_path,
                lambda: self._on_file_changed(channel_id),
            )
        logger.info(
            "schedule_channel_added",
            extra={
                "schedule.channel_id": channel_id,
                "schedule.channel_name": mapping.channel_name,
                "file.path": str(mapping.config_path),
            },
        )
        self.reload(channel_id)

    async def remove_channel(self, channel_id: str) -> None:
        """Stop watching a channel and cancel all of its timers."""
        if self._watcher is not None:
            self._watcher.unwatch(channel_id)
        state = self._channels.pop(channel_id, None)
        if state is None:
            return
        self._forget(channel_id)
        tasks = self._cancel_timers(state)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(
            "schedule_channel_removed", extra={"schedule.channel_id": channel_id}
        )

    async def drain(self) -> None:
        """Wait for in-flight executions (and one-time cleanup) to finish."""
        while self._executions:
            await asyncio.gather(*list(self._executions), return_exceptions=True)

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def reload(self, channel_id: str) -> int:
        """Rebuild a channel's timers from its schedule file.

        Returns:
            Number of jobs scheduled. A file that fails to parse leaves the
            channel with zero timers; the error is logged, never raised.
        """
        state = self._channels.get(channel_id)
        if state is None:
            logger.warning(
                "schedule_reload_unknown_channel",
                extra={"schedule.channel_id": channel_id},
            )
            return 0

        self._cancel_timers(state)

        try:
            config = state.store.load()
        except (SchedulingError, OSError) as e:
            logger.error(
                "schedule_reload_failed",
                extra={
                    "schedule.channel_id": channel_id,
                    "file.path": str(state.mapping.config_path),
                    "error.type": type(e).__name__,
                    "error.message": str(e),
                },
            )
            return 0

        self._forget(
            channel_id,
            keep_ids={job.id for job in config.one_time_jobs},
            keep_keys={job.key for job in config.recurring_jobs},
        )

        for job in config.recurring_jobs + config.one_time_jobs:
            if job.channel_id != channel_id:
                logger.warning(
                    "schedule_job_wrong_channel",
                    extra={
                        "schedule.channel_id": channel_id,
                        "schedule.job_key": job.key,
                        "schedule.job_channel_id": job.channel_id,
                    },
                )
                continue
            self._arm(state, job)

        logger.info(
            "schedule_reloaded",
            extra={
                "schedule.channel_id": channel_id,
                "schedule.job_count": len(state.timers),
            },
        )
        return len(state.timers)

    def _on_file_changed(self, channel_id: str) -> None:
        logger.info("schedule_file_changed", extra={"schedule.channel_id": channel_id})
        self.reload(channel_id)

    def _arm(self, state: _ChannelState, job: ScheduledJob) -> None:
        channel_id = state.mapping.channel_id
        if isinstance(job, OneTimeJob):
            if (channel_id, job.id) in self._firing | self._spent:
                # Executing or already executed; never fire a one-time job twice.
                return
            coro = self._one_time_timer(state, job)
        else:
            try:
                job.next_fire_time()
            except (ValueError, KeyError) as e:
                logger.error(
                    "schedule_cron_rejected",
                    extra={
                        "schedule.channel_id": channel_id,
                        "schedule.job_key": job.key,
                        "schedule.cron": job.cron_expression,
                        "error.message": str(e),
                    },
                )
                return
            coro = self._recurring_timer(state, job)

        task = asyncio.create_task(coro, name=f"schedule:{channel_id}:{job.key}")
        state.timers[job.key] = RunningTimer(job=job, task=task)
        logger.debug(
            "schedule_job_armed",
            extra={
                "schedule.channel_id": channel_id,
                "schedule.job_key": job.key,
            },
        )

    def _forget(
        self,
        channel_id: str,
        keep_ids: Collection[str] = (),
        keep_keys: Collection[str] = (),
    ) -> None:
        """Drop bookkeeping for jobs no longer in the channel's file."""
        self._spent = {
            (cid, job_id)
            for cid, job_id in self._spent
            if cid != channel_id or job_id in keep_ids
        }
        self._last_fired = {
            (cid, key): fired
            for (cid, key), fired in self._last_fired.items()
            if cid != channel_id or key in keep_keys
        }

    def _cancel_timers(self, state: _ChannelState) -> list[asyncio.Task]:
        tasks = [timer.task for timer in state.timers.values()]
        for task in tasks:
            task.cancel()
        state.timers.clear()
        return tasks

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    async def _recurring_timer(self, state: _ChannelState, job: RecurringJob) -> None:
        tz = ZoneInfo(job.timezone)
        channel_id = state.mapping.channel_id
        last_key = (channel_id, job.key)
        start = (_utcnow() - _RELOAD_LOOKBACK).astimezone(tz)
        schedule = croniter(job.cron_expression, start)
        fire_at = schedule.get_next(datetime)
        last = self._last_fired.get(last_key)
        while last is not None and fire_at <= last:
            fire_at = schedule.get_next(datetime)
        while True:
            await _sleep_until(fire_at)
            now = _utcnow()
            self._last_fired[last_key] = fire_at
            if now - fire_at > self._misfire_grace:
                logger.warning(
                    "schedule_recurring_misfire_skipped",
                    extra={
                        "schedule.channel_id": state.mapping.channel_id,
                        "schedule.job_key": job.key,
                        "schedule.delay_seconds": round(
                            (now - fire_at).total_seconds()
                        ),
                    },
                )
            else:
                self._spawn(self._execute_recurring(state, job))
            fire_at = schedule.get_next(datetime)
            while fire_at < now - self._misfire_grace:
                fire_at = schedule.get_next(datetime)

    async def _one_time_timer(self, state: _ChannelState, job: OneTimeJob) -> None:
        await _sleep_until(job.target_time)
        channel_id = state.mapping.channel_id
        # Leave the registry before executing so reloads don't re-arm it.
        timer = state.timers.get(job.key)
        if timer is not None and timer.task is asyncio.current_task():
            del state.timers[job.key]
        self._firing.add((channel_id, job.id))
        self._spawn(self._execute_one_time(state, job))

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._executions.add(task)
        task.add_done_callback(self._executions.discard)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _execute_recurring(self, state: _ChannelState, job: RecurringJob) -> None:
        channel_id = state.mapping.channel_id
        logger.info(
            "scheduled_task_triggered",
            extra={
                "schedule.channel_id": channel_id,
                "schedule.job_key": job.key,
                "schedule.task_preview": job.task[:50],
            },
        )
        try:
            await self._task_runner(job.task, job.channel_id, job.thread_id)
        except Exception as e:
            logger.error(
                "scheduled_task_failed",
                extra={
                    "schedule.channel_id": channel_id,
                    "schedule.job_key": job.key,
                    "error.message": str(e),
                },
                exc_info=True,
            )

    async def _execute_one_time(self, state: _ChannelState, job: OneTimeJob) -> None:
        channel_id = state.mapping.channel_id
        firing_key = (channel_id, job.id)
        logger.info(
            "scheduled_task_triggered",
            extra={
                "schedule.channel_id": channel_id,
                "schedule.job_key": job.key,
                "schedule.task_preview": job.task[:50],
            },
        )
        try:
            try:
                await self._task_runner(job.task, job.channel_id, job.thread_id)
            except asyncio.CancelledError:
                # Runner stopping: keep the job on disk so it fires next start.
                logger.warning(
                    "scheduled_task_interrupted",
                    extra={
                        "schedule.channel_id": channel_id,
                        "schedule.job_key": job.key,
                    },
                )
                raise
            except Exception as e:
                logger.error(
                    "scheduled_task_failed",
                    extra={
                        "schedule.channel_id": channel_id,
                        "schedule.job_key": job.key,
                        "error.message": str(e),
                    },
                    exc_info=True,
                )

            # Removed regardless of outcome: one-time jobs never retry.
            try:
                removed = await asyncio.to_thread(
                    state.store.remove_one_time_job, job.id
                )
            except (SchedulingError, OSError, Timeout) as e:
                self._spent.add(firing_key)
                logger.error(
                    "one_time_job_removal_failed",
                    extra={
                        "schedule.channel_id": channel_id,
                        "schedule.job_key": job.key,
                        "error.message": str(e),
                    },
                )
            else:
                logger.info(
                    "one_time_job_removed",
                    extra={
                        "schedule.channel_id": channel_id,
                        "schedule.job_key": job.key,
                        "schedule.already_gone": removed is None,
                    },
                )
        finally:
            self._firing.discard(firing_key)


def _utcnow() -> datetime:
    return datetime.now(UTC)


async def _sleep_until(when: datetime) -> None:
    """Sleep until the wall-clock instant `when` (returns at once if past)."""
    while True:
        delay = (when - datetime.now(UTC)).total_seconds()
        if delay <= 0:
            return
        # asyncio sleeps on the monotonic clock; re-check the wall clock.
        await asyncio.sleep(delay)

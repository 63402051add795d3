"""Scheduling subsystem: file-driven per-channel task scheduling.

Public API:
- ScheduleStore: Locked read-modify-write access to a schedule file
- ScheduleRunner: Reconciles live timers with each channel's file
- FileWatcher: Debounced change notifications for schedule files
- resolve_natural_time: Natural-language time to absolute instant

Types:
- RecurringJob / OneTimeJob: The two job variants
- ScheduleConfig: Contents of one schedule file
- ChannelMapping: Where a channel's schedule file lives
- TaskRunner: Async execution adapter signature
"""

from cronkeeper.scheduling.errors import (
    ConfigParseError,
    DuplicateNameError,
    InvalidTimezoneError,
    NotFoundError,
    PastTimeError,
    SchedulingError,
    UnparseableTimeError,
    ValidationError,
)
from cronkeeper.scheduling.natural_time import (
    is_valid_timezone,
    list_example_expressions,
    resolve_natural_time,
)
from cronkeeper.scheduling.runner import ScheduleRunner
from cronkeeper.scheduling.store import (
    ScheduleStore,
    parse_schedule_file,
    validate_cron_expression,
    write_schedule_file,
)
from cronkeeper.scheduling.types import (
    ChannelMapping,
    OneTimeJob,
    RecurringJob,
    ScheduleConfig,
    ScheduledJob,
    TaskRunner,
)
from cronkeeper.scheduling.watcher import FileWatcher

__all__ = [
    "ChannelMapping",
    "ConfigParseError",
    "DuplicateNameError",
    "FileWatcher",
    "InvalidTimezoneError",
    "NotFoundError",
    "OneTimeJob",
    "PastTimeError",
    "RecurringJob",
    "ScheduleConfig",
    "ScheduleRunner",
    "ScheduleStore",
    "ScheduledJob",
    "SchedulingError",
    "TaskRunner",
    "UnparseableTimeError",
    "ValidationError",
    "is_valid_timezone",
    "list_example_expressions",
    "parse_schedule_file",
    "resolve_natural_time",
    "validate_cron_expression",
    "write_schedule_file",
]

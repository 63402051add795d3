"""Scheduling error taxonomy.

Every error raised by the scheduling subsystem derives from SchedulingError,
so boundaries (runner reload, tools, CLI) can catch the whole family at once.
"""


class SchedulingError(Exception):
    """Base class for scheduling errors."""


class ValidationError(SchedulingError):
    """A job entry is missing a required field or has a malformed one."""

    def __init__(
        self,
        field: str,
        index: int,
        *,
        section: str = "jobs",
        reason: str = "missing required field",
    ) -> None:
        self.field = field
        self.index = index
        self.section = section
        self.reason = reason
        super().__init__(f"{section}[{index}] {_describe(reason, field)}")


def _describe(reason: str, field: str) -> str:
    if reason == "missing required field":
        return f"is missing required field: {field}"
    return f"has invalid field {field}: {reason}"


class ConfigParseError(SchedulingError):
    """The schedule file is not structurally valid YAML."""


class InvalidTimezoneError(SchedulingError):
    """A timezone string does not resolve to a known IANA zone."""

    def __init__(self, timezone: str) -> None:
        self.timezone = timezone
        super().__init__(
            f'Invalid timezone: "{timezone}". Must be a valid IANA timezone '
            '(e.g. "America/New_York", "Europe/London", "UTC").'
        )


class PastTimeError(SchedulingError):
    """A resolved time is at or before the current instant."""


class UnparseableTimeError(SchedulingError):
    """No interpretation could be produced for a time expression."""


class DuplicateNameError(SchedulingError):
    """A recurring job with the same name already exists in the channel."""

    def __init__(self, name: str, channel_id: str) -> None:
        self.name = name
        self.channel_id = channel_id
        super().__init__(
            f'A recurring task named "{name}" already exists in this channel. '
            "Use a different name or remove the existing task first."
        )


class NotFoundError(SchedulingError):
    """A lookup or removal did not match any job."""

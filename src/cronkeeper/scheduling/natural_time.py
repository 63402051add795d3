"""Natural-language time resolution.

Turns free text such as "in 10 minutes" or "tomorrow at 9pm" into an
absolute UTC instant, interpreted in the caller's IANA timezone.
"""

import logging
import re
from datetime import UTC, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import dateparser

from cronkeeper.scheduling.errors import (
    InvalidTimezoneError,
    PastTimeError,
    UnparseableTimeError,
)

logger = logging.getLogger(__name__)

EXAMPLE_EXPRESSIONS = (
    "tomorrow at 9pm",
    "in 10 minutes",
    "in 2 hours",
    "next Monday at 3pm",
    "December 25th at noon",
    "Friday at 5:30pm",
    "in 30 seconds",
    "next week",
)

# dateparser has no "next <weekday>"; the bare weekday already prefers the future
_NEXT_WEEKDAY = re.compile(
    r"^next\s+(?=(monday|tuesday|wednesday|thursday|friday|saturday|sunday)\b)",
    re.IGNORECASE,
)


def list_example_expressions() -> list[str]:
    """Example inputs for help and error text."""
    return list(EXAMPLE_EXPRESSIONS)


def is_valid_timezone(name: str) -> bool:
    """Check that `name` resolves to a real IANA zone (no silent UTC fallback)."""
    if not isinstance(name, str) or not name.strip():
        return False
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def resolve_natural_time(
    text: str,
    timezone: str,
    *,
    now: datetime | None = None,
) -> datetime:
    """Resolve a time expression to an absolute instant.

    Args:
        text: Free-form time ("in 10 minutes", "tomorrow at 9pm", ISO 8601).
        timezone: IANA timezone used to interpret local times.
        now: Reference instant (defaults to the current time).

    Returns:
        Timezone-aware UTC datetime strictly after `now`.

    Raises:
        InvalidTimezoneError: If `timezone` is not a known zone.
        UnparseableTimeError: If no interpretation can be produced.
        PastTimeError: If the resolved instant is not in the future.
    """
    if not is_valid_timezone(timezone):
        raise InvalidTimezoneError(timezone)

    text = (text or "").strip()
    if not text:
        raise UnparseableTimeError(_unparseable_message(text))

    tz = ZoneInfo(timezone)
    reference = (now or datetime.now(UTC)).astimezone(tz)

    resolved = _parse_iso(text, tz)
    if resolved is None:
        settings = {
            "TIMEZONE": timezone,
            "TO_TIMEZONE": "UTC",
            "RETURN_AS_TIMEZONE_AWARE": True,
            "PREFER_DATES_FROM": "future",
            # dateparser expects a naive base expressed in TIMEZONE
            "RELATIVE_BASE": reference.replace(tzinfo=None),
        }
        resolved = dateparser.parse(text, settings=settings)
        if resolved is None and _NEXT_WEEKDAY.match(text):
            resolved = dateparser.parse(
                _NEXT_WEEKDAY.sub("", text, count=1), settings=settings
            )

    if resolved is None:
        raise UnparseableTimeError(_unparseable_message(text))

    if resolved.tzinfo is None:
        resolved = resolved.replace(tzinfo=tz)
    resolved = resolved.astimezone(UTC)

    if resolved <= reference:
        raise PastTimeError(
            f'Parsed time "{resolved.isoformat()}" is in the past. '
            f"Current time: {reference.astimezone(UTC).isoformat()}"
        )

    logger.debug(
        "natural_time_resolved",
        extra={
            "schedule.natural_time": text,
            "schedule.timezone": timezone,
            "schedule.target_time": resolved.isoformat(),
        },
    )
    return resolved


def _parse_iso(text: str, tz: ZoneInfo) -> datetime | None:
    """Fast path for ISO 8601 input; naive values are local to `tz`."""
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed


def _unparseable_message(text: str) -> str:
    examples = "\n".join(f'  - "{ex}"' for ex in EXAMPLE_EXPRESSIONS)
    return f'Could not parse "{text}". Examples of valid inputs:\n{examples}'

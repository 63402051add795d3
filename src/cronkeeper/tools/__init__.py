"""Agent-facing tools."""

from cronkeeper.tools.base import ToolResult
from cronkeeper.tools.scheduling import ScheduleTools, format_time_until

__all__ = [
    "ScheduleTools",
    "ToolResult",
    "format_time_until",
]

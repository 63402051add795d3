"""Tool result type shared by agent-facing operations."""

import json
from dataclasses import dataclass, field
from typing import Any


@dataclass
class ToolResult:
    """Result from a tool call.

    `content` is the human-readable message shown to the agent; structured
    details travel in `metadata`.
    """

    content: str
    is_error: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, content: str, **metadata: Any) -> "ToolResult":
        """Create a successful result."""
        return cls(content=content, is_error=False, metadata=metadata)

    @classmethod
    def error(cls, message: str, **metadata: Any) -> "ToolResult":
        """Create an error result."""
        return cls(content=message, is_error=True, metadata=metadata)

    def to_json(self) -> str:
        """Render as a JSON payload for tool transports."""
        payload: dict[str, Any] = dict(self.metadata)
        payload["success"] = not self.is_error
        payload["error" if self.is_error else "message"] = self.content
        return json.dumps(payload, indent=2, default=str)

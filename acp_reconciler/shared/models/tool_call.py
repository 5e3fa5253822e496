"""Tool call records and the partial-update record merged into them."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any


class ToolCallStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    INTERRUPTED = "interrupted"


TERMINAL_STATUSES: frozenset[ToolCallStatus] = frozenset({
    ToolCallStatus.COMPLETED,
    ToolCallStatus.ERROR,
    ToolCallStatus.INTERRUPTED,
})


class ToolKind(Enum):
    READ = "read"
    EDIT = "edit"
    DELETE = "delete"
    MOVE = "move"
    SEARCH = "search"
    EXECUTE = "execute"
    THINK = "think"
    FETCH = "fetch"
    SWITCH_MODE = "switch_mode"
    OTHER = "other"


# ── Structured tool-call content items ──


@dataclass
class TextContent:
    text: str = ""
    type: str = field(default="text", init=False)


@dataclass
class ImageContent:
    data: str = ""
    mime_type: str = ""
    uri: str | None = None
    type: str = field(default="image", init=False)


@dataclass
class ResourceLinkContent:
    uri: str = ""
    name: str = ""
    mime_type: str | None = None
    type: str = field(default="resource_link", init=False)


@dataclass
class DiffContent:
    path: str = ""
    old_text: str | None = None
    new_text: str = ""
    type: str = field(default="diff", init=False)


@dataclass
class TerminalContent:
    terminal_id: str = ""
    type: str = field(default="terminal", init=False)


ToolCallContent = (
    TextContent | ImageContent | ResourceLinkContent | DiffContent | TerminalContent
)


@dataclass
class ToolCallLocation:
    path: str
    line: int | None = None


@dataclass
class ToolCallInfo:
    tool_call_id: str
    status: ToolCallStatus = ToolCallStatus.PENDING
    title: str | None = None
    tool_name: str | None = None
    kind: ToolKind | None = None
    raw_input: Any = None
    content: list[ToolCallContent] = field(default_factory=list)
    locations: list[ToolCallLocation] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def display_title(self) -> str:
        return self.title or self.tool_name or "Tool Call"

    @property
    def text_output(self) -> str:
        """Plain-text projection of the text content items."""
        return "\n".join(
            item.text for item in self.content if isinstance(item, TextContent)
        )


class _Unset(Enum):
    UNSET = "UNSET"

    def __repr__(self) -> str:
        return "UNSET"


# Marks an update field as absent. ``None`` in an update means "clear".
UNSET = _Unset.UNSET


@dataclass
class ToolCallUpdate:
    """Partial update for one tool call, keyed by ``tool_call_id``.

    Every field except the id defaults to ``UNSET``; only fields that are
    set are applied when merging into an existing ToolCallInfo.
    """
    tool_call_id: str
    status: ToolCallStatus | _Unset = UNSET
    title: str | None | _Unset = UNSET
    tool_name: str | None | _Unset = UNSET
    kind: ToolKind | None | _Unset = UNSET
    raw_input: Any = UNSET
    content: list[ToolCallContent] | _Unset = UNSET
    locations: list[ToolCallLocation] | _Unset = UNSET

    def present_fields(self) -> dict[str, Any]:
        """Return the fields carried by this update (id excluded)."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "tool_call_id" and getattr(self, f.name) is not UNSET
        }

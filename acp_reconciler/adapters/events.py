"""Event types pushed by the host process.

Each raw host payload (a dict carrying an ``event`` key) is parsed into a
typed dataclass for safe consumption by the reconciler. Parsing is
lenient: unknown enum values fall back to defaults and are logged rather
than rejected.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from acp_reconciler.shared.models.interaction import PermissionOption, PromptType
from acp_reconciler.shared.models.message import ImagePart
from acp_reconciler.shared.models.plan import PlanEntry, PlanEntryPriority, PlanEntryStatus
from acp_reconciler.shared.models.session import (
    AvailableCommand,
    ModeInfo,
    ModelInfo,
    Session,
    SessionStatus,
)
from acp_reconciler.shared.models.tool_call import (
    UNSET,
    DiffContent,
    ImageContent,
    ResourceLinkContent,
    TerminalContent,
    TextContent,
    ToolCallContent,
    ToolCallLocation,
    ToolCallStatus,
    ToolCallUpdate,
    ToolKind,
)

logger = logging.getLogger(__name__)


class ChunkType(Enum):
    TEXT = "text"
    THINKING = "thinking"
    TOOL_CALL = "tool_call"
    IMAGE = "image"


@dataclass
class HostEvent:
    """Base event from the host process."""
    event_type: str = ""
    session_id: str = ""


@dataclass
class StreamChunk(HostEvent):
    event_type: str = "stream-chunk"
    message_id: str = ""
    content: str = ""
    is_complete: bool = False
    # None means plain text; unrecognised values are kept as strings and
    # degrade to text in the reconciler.
    chunk_type: ChunkType | str | None = None
    tool_call: ToolCallUpdate | None = None
    image: ImagePart | None = None

    def __post_init__(self) -> None:
        if isinstance(self.chunk_type, str):
            try:
                self.chunk_type = ChunkType(self.chunk_type)
            except ValueError:
                pass


@dataclass
class InteractionPromptRequest(HostEvent):
    event_type: str = "interaction-prompt"
    prompt_type: PromptType = PromptType.INPUT
    message: str = ""
    request_id: str | None = None
    tool_name: str | None = None
    options: list[PermissionOption] = field(default_factory=list)


@dataclass
class SessionStatusChanged(HostEvent):
    event_type: str = "session-status-changed"
    # None when the host sent a status this client does not know
    status: SessionStatus | None = None
    session: Session | None = None
    error: str | None = None


@dataclass
class AvailableCommandsUpdate(HostEvent):
    event_type: str = "available-commands-update"
    commands: list[AvailableCommand] = field(default_factory=list)


@dataclass
class PlanUpdate(HostEvent):
    event_type: str = "plan-update"
    message_id: str = ""
    entries: list[PlanEntry] = field(default_factory=list)


EVENT_KINDS: tuple[str, ...] = (
    "stream-chunk",
    "interaction-prompt",
    "session-status-changed",
    "available-commands-update",
    "plan-update",
)


# ── Payload helpers ──

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def _snake(key: str) -> str:
    return _CAMEL_RE.sub("_", key).lower()


def _normalize_keys(data: dict[str, Any]) -> dict[str, Any]:
    """Shallow camelCase → snake_case key conversion."""
    return {_snake(k): v for k, v in data.items()}


def _parse_enum(enum_cls: type[Enum], value: Any, default: Any, what: str) -> Any:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        logger.warning("Unknown %s %r, using %s", what, value, default)
        return default


_TRUE_STRINGS = frozenset({"true", "1", "yes"})
_FALSE_STRINGS = frozenset({"false", "0", "no", ""})


def _parse_flag(value: Any, what: str) -> bool:
    """Read a boolean wire field. Strings must spell true or false."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered not in _FALSE_STRINGS:
            logger.warning("Unreadable %s %r, treating as false", what, value)
        return False
    if value is not None:
        logger.warning("Unreadable %s %r, treating as false", what, value)
    return False


# Wire spellings used by ACP agents and older host builds
_TOOL_STATUS_ALIASES: dict[str, ToolCallStatus] = {
    "pending": ToolCallStatus.PENDING,
    "in_progress": ToolCallStatus.RUNNING,
    "running": ToolCallStatus.RUNNING,
    "completed": ToolCallStatus.COMPLETED,
    "failed": ToolCallStatus.ERROR,
    "error": ToolCallStatus.ERROR,
    "interrupted": ToolCallStatus.INTERRUPTED,
    "cancelled": ToolCallStatus.INTERRUPTED,
}


def parse_tool_status(value: Any) -> ToolCallStatus:
    """Map a wire status string to ToolCallStatus (unknown → running)."""
    if isinstance(value, ToolCallStatus):
        return value
    status = _TOOL_STATUS_ALIASES.get(str(value).lower())
    if status is None:
        logger.warning("Unknown tool call status %r, treating as running", value)
        return ToolCallStatus.RUNNING
    return status


def parse_content_item(item: Any) -> ToolCallContent:
    if isinstance(item, str):
        return TextContent(text=item)
    if not isinstance(item, dict):
        return TextContent(text=str(item))
    data = _normalize_keys(item)
    kind = data.get("type")
    # ACP wraps plain content blocks: {"type": "content", "content": {...}}
    if kind == "content" and isinstance(data.get("content"), dict):
        return parse_content_item(data["content"])
    if kind == "text":
        return TextContent(text=str(data.get("text", "")))
    if kind == "image":
        return ImageContent(
            data=data.get("data", ""),
            mime_type=data.get("mime_type", ""),
            uri=data.get("uri"),
        )
    if kind == "resource_link":
        return ResourceLinkContent(
            uri=data.get("uri", ""),
            name=data.get("name", ""),
            mime_type=data.get("mime_type"),
        )
    if kind == "diff":
        return DiffContent(
            path=data.get("path", ""),
            old_text=data.get("old_text"),
            new_text=data.get("new_text", ""),
        )
    if kind == "terminal":
        return TerminalContent(terminal_id=data.get("terminal_id", ""))
    logger.warning("Unknown tool call content type %r, keeping as text", kind)
    return TextContent(text=json.dumps(item, default=str))


def parse_tool_call(data: dict[str, Any]) -> ToolCallUpdate:
    """Parse a tool-call payload into an update.

    Keys missing from the payload stay UNSET. An empty ``title`` or
    ``tool_name`` is how hosts say "not carried by this update".
    """
    d = _normalize_keys(data)
    update = ToolCallUpdate(tool_call_id=str(d.get("tool_call_id") or d.get("id") or ""))
    if d.get("status") is not None:
        update.status = parse_tool_status(d["status"])
    for key in ("title", "tool_name"):
        if key in d and d[key] != "":
            setattr(update, key, d[key])
    if "kind" in d:
        update.kind = (
            None if d["kind"] is None
            else _parse_enum(ToolKind, d["kind"], ToolKind.OTHER, "tool kind")
        )
    if "raw_input" in d:
        update.raw_input = d["raw_input"]
    if "content" in d:
        raw = d["content"]
        if raw is None:
            update.content = []
        elif isinstance(raw, list):
            update.content = [parse_content_item(item) for item in raw]
        else:
            update.content = [parse_content_item(raw)]
    if "locations" in d:
        update.locations = [
            ToolCallLocation(path=loc.get("path", ""), line=loc.get("line"))
            for loc in (d["locations"] or [])
            if isinstance(loc, dict)
        ]
    return update


def parse_session(data: dict[str, Any]) -> Session:
    d = _normalize_keys(data)
    session = Session(id=str(d.get("id", "")))
    for key in (
        "name", "provider", "acp_session_id", "worktree_path",
        "branch_name", "project_path", "model", "mode",
    ):
        if d.get(key) is not None:
            setattr(session, key, d[key])
    session.is_local = _parse_flag(d.get("is_local"), "is_local")
    session.status = _parse_enum(
        SessionStatus, d.get("status", "active"), SessionStatus.ACTIVE, "session status"
    )
    session.available_models = [
        ModelInfo(
            model_id=m.get("model_id") or m.get("modelId", ""),
            display_name=m.get("display_name") or m.get("name", ""),
            description=m.get("description"),
        )
        for m in d.get("available_models") or []
    ]
    session.available_modes = [
        ModeInfo(
            mode_id=m.get("mode_id") or m.get("id", ""),
            name=m.get("name", ""),
            description=m.get("description"),
        )
        for m in d.get("available_modes") or []
    ]
    session.available_commands = parse_commands(d.get("available_commands") or [])
    return session


def parse_commands(raw: list[Any]) -> list[AvailableCommand]:
    commands: list[AvailableCommand] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        hint = None
        if isinstance(item.get("input"), dict):
            hint = item["input"].get("hint")
        commands.append(AvailableCommand(
            name=item.get("name", ""),
            description=item.get("description", ""),
            input_hint=hint,
        ))
    return commands


def _parse_plan_entry(item: dict[str, Any]) -> PlanEntry:
    return PlanEntry(
        content=str(item.get("content", "")),
        status=_parse_enum(
            PlanEntryStatus, item.get("status", "pending"),
            PlanEntryStatus.PENDING, "plan entry status",
        ),
        priority=_parse_enum(
            PlanEntryPriority, item.get("priority", "medium"),
            PlanEntryPriority.MEDIUM, "plan entry priority",
        ),
    )


# ── Per-kind constructors ──


def _stream_chunk(d: dict[str, Any]) -> StreamChunk:
    tool_call = d.get("tool_call")
    image = d.get("image_content")
    if isinstance(image, dict):
        img = _normalize_keys(image)
        image = ImagePart(
            data=img.get("data", ""),
            mime_type=img.get("mime_type", ""),
            uri=img.get("uri"),
        )
    else:
        image = None
    return StreamChunk(
        session_id=d.get("session_id", ""),
        message_id=d.get("message_id", ""),
        content=d.get("content") or "",
        is_complete=_parse_flag(d.get("is_complete"), "is_complete"),
        chunk_type=d.get("chunk_type"),
        tool_call=parse_tool_call(tool_call) if isinstance(tool_call, dict) else None,
        image=image,
    )


def _interaction_prompt(d: dict[str, Any]) -> InteractionPromptRequest:
    options = []
    for o in d.get("options") or []:
        o = _normalize_keys(o)
        options.append(PermissionOption(
            kind=o.get("kind", ""),
            name=o.get("name", ""),
            option_id=o.get("option_id", ""),
        ))
    return InteractionPromptRequest(
        session_id=d.get("session_id", ""),
        prompt_type=_parse_enum(
            PromptType, d.get("prompt_type"), PromptType.INPUT, "prompt type"
        ),
        message=d.get("message", ""),
        request_id=d.get("request_id"),
        tool_name=d.get("tool_name"),
        options=options,
    )


def _session_status(d: dict[str, Any]) -> SessionStatusChanged:
    status = None
    try:
        status = SessionStatus(d.get("status"))
    except ValueError:
        logger.warning("Unknown session status %r", d.get("status"))
    session = d.get("session")
    return SessionStatusChanged(
        session_id=d.get("session_id", ""),
        status=status,
        session=parse_session(session) if isinstance(session, dict) else None,
        error=d.get("error"),
    )


def _available_commands(d: dict[str, Any]) -> AvailableCommandsUpdate:
    raw = d.get("available_commands")
    if raw is None:
        raw = d.get("commands") or []
    return AvailableCommandsUpdate(
        session_id=d.get("session_id", ""),
        commands=parse_commands(raw),
    )


def _plan_update(d: dict[str, Any]) -> PlanUpdate:
    return PlanUpdate(
        session_id=d.get("session_id", ""),
        message_id=d.get("message_id", ""),
        entries=[_parse_plan_entry(e) for e in d.get("entries") or [] if isinstance(e, dict)],
    )


_EVENT_MAP = {
    "stream-chunk": _stream_chunk,
    "interaction-prompt": _interaction_prompt,
    "session-status-changed": _session_status,
    "available-commands-update": _available_commands,
    "plan-update": _plan_update,
}


def normalize_event_name(name: str) -> str:
    return name.strip().lower().replace("_", "-")


def dict_to_event(data: dict[str, Any]) -> HostEvent:
    """Convert a host payload dict to a typed event dataclass.

    The kind is read from ``event`` (or ``event_type``). Payloads of an
    unknown kind come back as a bare HostEvent.
    """
    d = _normalize_keys(data)
    kind = normalize_event_name(str(d.get("event") or d.get("event_type") or ""))
    builder = _EVENT_MAP.get(kind)
    if builder is None:
        return HostEvent(event_type=kind, session_id=str(d.get("session_id", "")))
    return builder(d)

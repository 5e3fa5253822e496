"""Message persistence: one JSON file per session.

Storage layout:
    {store_dir}/{session_id}.json

Each file holds the session's finalized messages in first-seen order.
Saving a message whose id is already stored replaces it in place.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from acp_reconciler.adapters.events import parse_content_item, parse_tool_status
from acp_reconciler.shared.models.message import (
    ChatMessage,
    ImagePart,
    MessagePart,
    MessageRole,
    TextPart,
    ToolCallPart,
)
from acp_reconciler.shared.models.plan import PlanEntry, PlanEntryPriority, PlanEntryStatus
from acp_reconciler.shared.models.tool_call import (
    DiffContent,
    ImageContent,
    ResourceLinkContent,
    TerminalContent,
    TextContent,
    ToolCallContent,
    ToolCallInfo,
    ToolCallLocation,
    ToolKind,
)
from acp_reconciler.shared.services.durable_write import read_message_file, write_message_file

logger = logging.getLogger(__name__)


class MessageStore:
    """Save and load chat messages as JSON files keyed by session id."""

    def __init__(self, base_dir: Path) -> None:
        self._dir = Path(base_dir).expanduser()
        # Writes are read-modify-write on the session file
        self._lock = threading.Lock()

    @property
    def directory(self) -> Path:
        return self._dir

    def path_for(self, session_id: str) -> Path:
        return self._dir / f"{session_id}.json"

    def save_message_sync(self, message: ChatMessage) -> Path:
        path = self.path_for(message.session_id)
        with self._lock:
            stored = read_message_file(path)
            entry = message_to_dict(message)
            for i, existing in enumerate(stored):
                if existing.get("id") == message.id:
                    stored[i] = entry
                    break
            else:
                stored.append(entry)
            write_message_file(path, message.session_id, stored)
        logger.debug("Message %s saved to %s", message.id, path)
        return path

    async def save_message(self, message: ChatMessage) -> None:
        await asyncio.to_thread(self.save_message_sync, message)

    def load_messages(self, session_id: str) -> list[ChatMessage]:
        path = self.path_for(session_id)
        with self._lock:
            stored = read_message_file(path)
        messages = []
        for data in stored:
            try:
                messages.append(dict_to_message(data))
            except (KeyError, ValueError, TypeError) as exc:
                logger.warning("Skipping unreadable message in %s: %s", path, exc)
        return messages

    async def get_session_messages(self, session_id: str) -> list[ChatMessage]:
        return await asyncio.to_thread(self.load_messages, session_id)

    def list_sessions(self) -> list[str]:
        if not self._dir.exists():
            return []
        return sorted(p.stem for p in self._dir.glob("*.json"))

    def delete_session(self, session_id: str) -> bool:
        path = self.path_for(session_id)
        with self._lock:
            if not path.exists():
                return False
            path.unlink()
        logger.info("Deleted stored messages for session %s", session_id)
        return True


# ── Serialization ──


def _ensure_aware(dt: datetime) -> datetime:
    """Ensure a datetime is timezone-aware (assume UTC if naive)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def _content_to_dict(item: ToolCallContent) -> dict[str, Any]:
    if isinstance(item, TextContent):
        return {"type": item.type, "text": item.text}
    if isinstance(item, ImageContent):
        return {"type": item.type, "data": item.data, "mime_type": item.mime_type, "uri": item.uri}
    if isinstance(item, ResourceLinkContent):
        return {"type": item.type, "uri": item.uri, "name": item.name, "mime_type": item.mime_type}
    if isinstance(item, DiffContent):
        return {"type": item.type, "path": item.path, "old_text": item.old_text, "new_text": item.new_text}
    if isinstance(item, TerminalContent):
        return {"type": item.type, "terminal_id": item.terminal_id}
    raise TypeError(f"Unknown tool call content: {item!r}")


def tool_call_to_dict(tc: ToolCallInfo) -> dict[str, Any]:
    return {
        "tool_call_id": tc.tool_call_id,
        "status": tc.status.value,
        "title": tc.title,
        "tool_name": tc.tool_name,
        "kind": tc.kind.value if tc.kind else None,
        "raw_input": tc.raw_input,
        "content": [_content_to_dict(c) for c in tc.content],
        "locations": [{"path": loc.path, "line": loc.line} for loc in tc.locations],
    }


def dict_to_tool_call(data: dict[str, Any]) -> ToolCallInfo:
    kind = data.get("kind")
    return ToolCallInfo(
        tool_call_id=data["tool_call_id"],
        status=parse_tool_status(data.get("status", "running")),
        title=data.get("title"),
        tool_name=data.get("tool_name"),
        kind=ToolKind(kind) if kind else None,
        raw_input=data.get("raw_input"),
        content=[parse_content_item(c) for c in data.get("content", [])],
        locations=[
            ToolCallLocation(path=loc["path"], line=loc.get("line"))
            for loc in data.get("locations", [])
        ],
    )


def _part_to_dict(part: MessagePart) -> dict[str, Any]:
    if isinstance(part, TextPart):
        return {"type": part.type, "content": part.content}
    if isinstance(part, ImagePart):
        return {"type": part.type, "data": part.data, "mime_type": part.mime_type, "uri": part.uri}
    if isinstance(part, ToolCallPart):
        return {"type": part.type, "tool_call_id": part.tool_call_id}
    raise TypeError(f"Unknown message part: {part!r}")


def _dict_to_part(data: dict[str, Any]) -> MessagePart:
    kind = data.get("type")
    if kind == "text":
        return TextPart(content=data.get("content", ""))
    if kind == "image":
        return ImagePart(data=data.get("data", ""), mime_type=data.get("mime_type", ""), uri=data.get("uri"))
    if kind == "tool_call":
        return ToolCallPart(tool_call_id=data["tool_call_id"])
    raise ValueError(f"Unknown message part type {kind!r}")


def message_to_dict(msg: ChatMessage) -> dict[str, Any]:
    return {
        "id": msg.id,
        "session_id": msg.session_id,
        "role": msg.role.value,
        "content": msg.content,
        "parts": [_part_to_dict(p) for p in msg.parts],
        "tool_calls": [tool_call_to_dict(tc) for tc in msg.tool_calls],
        "plan_entries": [
            {"content": e.content, "status": e.status.value, "priority": e.priority.value}
            for e in msg.plan_entries
        ],
        "thinking": msg.thinking,
        "timestamp": msg.timestamp.isoformat(),
        "is_streaming": msg.is_streaming,
    }


def dict_to_message(data: dict[str, Any]) -> ChatMessage:
    return ChatMessage(
        id=data["id"],
        session_id=data["session_id"],
        role=MessageRole(data["role"]),
        content=data.get("content", ""),
        parts=[_dict_to_part(p) for p in data.get("parts", [])],
        tool_calls=[dict_to_tool_call(tc) for tc in data.get("tool_calls", [])],
        plan_entries=[
            PlanEntry(
                content=e["content"],
                status=PlanEntryStatus(e.get("status", "pending")),
                priority=PlanEntryPriority(e.get("priority", "medium")),
            )
            for e in data.get("plan_entries", [])
        ],
        thinking=data.get("thinking", ""),
        timestamp=_ensure_aware(datetime.fromisoformat(data["timestamp"])),
        is_streaming=data.get("is_streaming", False),
    )

"""Message and message-part models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import uuid

from acp_reconciler.shared.models.plan import PlanEntry
from acp_reconciler.shared.models.tool_call import ToolCallInfo


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _gen_id() -> str:
    return str(uuid.uuid4())


class MessageRole(Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass
class TextPart:
    content: str = ""
    type: str = field(default="text", init=False)


@dataclass
class ImagePart:
    data: str = ""
    mime_type: str = ""
    uri: str | None = None
    type: str = field(default="image", init=False)


@dataclass
class ToolCallPart:
    """Reference to a ToolCallInfo owned by the same message."""
    tool_call_id: str = ""
    type: str = field(default="tool_call", init=False)


MessagePart = TextPart | ImagePart | ToolCallPart


@dataclass
class ChatMessage:
    session_id: str
    role: MessageRole
    content: str = ""
    id: str = field(default_factory=_gen_id)
    parts: list[MessagePart] = field(default_factory=list)
    tool_calls: list[ToolCallInfo] = field(default_factory=list)
    plan_entries: list[PlanEntry] = field(default_factory=list)
    # Agent thought chunks; shown apart from the rendered parts
    thinking: str = ""
    timestamp: datetime = field(default_factory=_utcnow)
    is_streaming: bool = False

    def find_tool_call(self, tool_call_id: str) -> ToolCallInfo | None:
        for tc in self.tool_calls:
            if tc.tool_call_id == tool_call_id:
                return tc
        return None

    def append_text(self, text: str) -> None:
        """Append to the flat content and the trailing text part.

        Consecutive text fragments share one part so the render sequence
        stays unfragmented.
        """
        self.content += text
        if self.parts and isinstance(self.parts[-1], TextPart):
            self.parts[-1].content += text
        else:
            self.parts.append(TextPart(content=text))

    @classmethod
    def user(cls, session_id: str, content: str) -> ChatMessage:
        msg = cls(session_id=session_id, role=MessageRole.USER, content=content)
        if content:
            msg.parts.append(TextPart(content=content))
        return msg

    @classmethod
    def assistant_streaming(cls, session_id: str, message_id: str) -> ChatMessage:
        return cls(
            session_id=session_id,
            role=MessageRole.ASSISTANT,
            id=message_id,
            is_streaming=True,
        )

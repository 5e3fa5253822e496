from __future__ import annotations

import json
import tempfile
from pathlib import Path

import pytest

from acp_reconciler.shared.models.message import (
    ChatMessage,
    ImagePart,
    MessageRole,
    TextPart,
    ToolCallPart,
)
from acp_reconciler.shared.models.plan import PlanEntry, PlanEntryPriority
from acp_reconciler.shared.models.tool_call import (
    DiffContent,
    TextContent,
    ToolCallInfo,
    ToolCallLocation,
    ToolCallStatus,
    ToolKind,
)
from acp_reconciler.shared.services.durable_write import FORMAT_VERSION, atomic_write_text
from acp_reconciler.shared.services.persistence import MessageStore


def _assistant_message() -> ChatMessage:
    return ChatMessage(
        session_id="s1",
        role=MessageRole.ASSISTANT,
        id="m1",
        content="Before. After.",
        parts=[
            TextPart(content="Before. "),
            ToolCallPart(tool_call_id="tc1"),
            ImagePart(data="aGk=", mime_type="image/png"),
            TextPart(content="After."),
        ],
        tool_calls=[ToolCallInfo(
            tool_call_id="tc1",
            status=ToolCallStatus.COMPLETED,
            title="Edit app.py",
            kind=ToolKind.EDIT,
            raw_input={"path": "app.py"},
            content=[TextContent(text="ok"), DiffContent(path="app.py", old_text="a", new_text="b")],
            locations=[ToolCallLocation(path="app.py", line=10)],
        )],
        plan_entries=[PlanEntry(content="Edit", priority=PlanEntryPriority.HIGH)],
        thinking="consider options",
    )


def test_message_with_parts_survives_store_reload() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        store = MessageStore(Path(tmp))
        original = _assistant_message()

        store.save_message_sync(original)
        loaded = MessageStore(Path(tmp)).load_messages("s1")

    assert loaded == [original]


def test_saving_same_id_replaces_in_place(tmp_path: Path) -> None:
    store = MessageStore(tmp_path)
    first = ChatMessage(session_id="s1", role=MessageRole.USER, id="u1", content="q")
    reply = ChatMessage(session_id="s1", role=MessageRole.ASSISTANT, id="m1", content="draft")
    store.save_message_sync(first)
    store.save_message_sync(reply)

    reply.content = "final"
    store.save_message_sync(reply)

    loaded = store.load_messages("s1")
    assert [(m.id, m.content) for m in loaded] == [("u1", "q"), ("m1", "final")]


@pytest.mark.asyncio
async def test_async_save_and_load(tmp_path: Path) -> None:
    store = MessageStore(tmp_path)

    await store.save_message(_assistant_message())
    loaded = await store.get_session_messages("s1")

    assert loaded[0].tool_calls[0].title == "Edit app.py"
    assert store.list_sessions() == ["s1"]


@pytest.mark.parametrize("raw", [b"{not json", b"\xff\xfe{garbage", b"[1, 2]"])
def test_corrupt_file_reads_as_empty(tmp_path: Path, raw: bytes) -> None:
    (tmp_path / "s1.json").write_bytes(raw)

    assert MessageStore(tmp_path).load_messages("s1") == []


def test_save_replaces_undecodable_file(tmp_path: Path) -> None:
    (tmp_path / "s1.json").write_bytes(b"\xff\xfe{garbage")
    store = MessageStore(tmp_path)

    store.save_message_sync(ChatMessage(session_id="s1", role=MessageRole.USER, id="u1", content="hi"))

    assert [m.id for m in store.load_messages("s1")] == ["u1"]


def test_file_envelope(tmp_path: Path) -> None:
    store = MessageStore(tmp_path)

    path = store.save_message_sync(_assistant_message())

    data = json.loads(path.read_text())
    assert data["version"] == FORMAT_VERSION
    assert data["session_id"] == "s1"
    assert "saved_at" in data
    assert [m["id"] for m in data["messages"]] == ["m1"]


def test_delete_session(tmp_path: Path) -> None:
    store = MessageStore(tmp_path)
    store.save_message_sync(_assistant_message())

    assert store.delete_session("s1") is True
    assert store.delete_session("s1") is False
    assert store.list_sessions() == []


def test_atomic_write_leaves_no_temp_files(tmp_path: Path) -> None:
    target = tmp_path / "nested" / "out.json"

    atomic_write_text(target, json.dumps({"a": 1}))

    assert json.loads(target.read_text()) == {"a": 1}
    assert [p.name for p in target.parent.iterdir()] == ["out.json"]

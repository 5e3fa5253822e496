"""Tests for the message timeline reconciler.

Covers:
- Text accumulation and the single-persist completion path
- Interleaving of text and tool call parts
- Out-of-window completions and late chunks
- Chunk type degradation (unknown type, missing tool call payload)
- Plans, thinking, images and loaded history
"""
from __future__ import annotations

import logging

from acp_reconciler.adapters.events import StreamChunk
from acp_reconciler.engine.persist import MessagePersister
from acp_reconciler.engine.state import Membership, SessionStore
from acp_reconciler.engine.timeline import TimelineReconciler
from acp_reconciler.shared.models.message import (
    ChatMessage,
    ImagePart,
    MessageRole,
    TextPart,
    ToolCallPart,
)
from acp_reconciler.shared.models.plan import PlanEntry, PlanEntryStatus
from acp_reconciler.shared.models.tool_call import ToolCallStatus, ToolCallUpdate


class _SaveRecorder:
    def __init__(self) -> None:
        self.saved: list[ChatMessage] = []

    async def __call__(self, message: ChatMessage) -> None:
        self.saved.append(message)


def _setup() -> tuple[SessionStore, TimelineReconciler, _SaveRecorder]:
    store = SessionStore()
    recorder = _SaveRecorder()
    timeline = TimelineReconciler(store, MessagePersister(recorder))
    store.enter("s1", Membership.STREAMING)
    return store, timeline, recorder


def _text(content: str, message_id: str = "m1", complete: bool = False) -> StreamChunk:
    return StreamChunk(session_id="s1", message_id=message_id, content=content, is_complete=complete)


def _tool(update: ToolCallUpdate, message_id: str = "m1") -> StreamChunk:
    return StreamChunk(
        session_id="s1", message_id=message_id, chunk_type="tool_call", tool_call=update,
    )


# ── Text streaming ──


def test_two_chunks_then_complete_builds_one_final_message() -> None:
    store, timeline, recorder = _setup()

    timeline.apply_chunk(_text("Hel"))
    timeline.apply_chunk(_text("lo", complete=True))

    messages = store.get_messages("s1")
    assert len(messages) == 1
    msg = messages[0]
    assert msg.id == "m1"
    assert msg.role is MessageRole.ASSISTANT
    assert msg.content == "Hello"
    assert msg.parts == [TextPart(content="Hello")]
    assert msg.is_streaming is False
    assert "s1" not in store.streaming
    assert [m.content for m in recorder.saved] == ["Hello"]


def test_duplicate_completion_is_a_noop() -> None:
    store, timeline, recorder = _setup()
    timeline.apply_chunk(_text("Hi"))
    timeline.apply_chunk(_text("", complete=True))

    result = timeline.apply_chunk(_text("", complete=True))

    assert result is None
    assert len(recorder.saved) == 1
    assert store.get_messages("s1")[0].content == "Hi"


def test_completion_for_unknown_message_creates_nothing() -> None:
    store, timeline, recorder = _setup()

    result = timeline.apply_chunk(_text("", message_id="ghost", complete=True))

    assert result is None
    assert store.get_messages("s1") == []
    assert recorder.saved == []
    # The turn is still over for input purposes
    assert "s1" not in store.streaming


def test_persisted_snapshot_is_detached_from_live_message() -> None:
    store, timeline, recorder = _setup()
    timeline.apply_chunk(_text("done"))
    timeline.apply_chunk(_text("", complete=True))

    live = store.get_messages("s1")[0]
    live.content = "changed"
    assert recorder.saved[0].content == "done"


# ── Interleaving ──


def test_text_and_tool_calls_keep_arrival_order() -> None:
    store, timeline, _ = _setup()

    timeline.apply_chunk(_text("Let me look. "))
    timeline.apply_chunk(_tool(ToolCallUpdate(
        tool_call_id="tc1", title="Read main.py", status=ToolCallStatus.RUNNING,
    )))
    timeline.apply_chunk(_tool(ToolCallUpdate(tool_call_id="tc1", status=ToolCallStatus.COMPLETED)))
    timeline.apply_chunk(_text("Found "))
    timeline.apply_chunk(_text("it."))

    msg = store.get_messages("s1")[0]
    assert msg.parts == [
        TextPart(content="Let me look. "),
        ToolCallPart(tool_call_id="tc1"),
        TextPart(content="Found it."),
    ]
    assert msg.content == "Let me look. Found it."
    assert len(msg.tool_calls) == 1
    assert msg.tool_calls[0].status is ToolCallStatus.COMPLETED
    assert msg.tool_calls[0].title == "Read main.py"


def test_first_chunk_can_be_a_tool_call() -> None:
    store, timeline, _ = _setup()

    timeline.apply_chunk(_tool(ToolCallUpdate(tool_call_id="tc1", tool_name="bash")))

    msg = store.get_messages("s1")[0]
    assert msg.is_streaming is True
    assert msg.parts == [ToolCallPart(tool_call_id="tc1")]
    assert msg.tool_calls[0].status is ToolCallStatus.RUNNING


def test_new_message_id_finalizes_previous_streaming_message() -> None:
    store, timeline, recorder = _setup()
    timeline.apply_chunk(_text("first", message_id="m1"))

    timeline.apply_chunk(_text("second", message_id="m2"))

    first, second = store.get_messages("s1")
    assert first.is_streaming is False
    assert second.is_streaming is True
    assert [m.id for m in recorder.saved] == ["m1"]
    assert "s1" in store.streaming
    assert len(store.streaming_messages("s1")) == 1


def test_late_chunk_for_final_message_is_not_repersisted(caplog) -> None:
    store, timeline, recorder = _setup()
    timeline.apply_chunk(_text("Hi"))
    timeline.apply_chunk(_text("", complete=True))

    with caplog.at_level(logging.WARNING):
        timeline.apply_chunk(_text(" there"))

    msg = store.get_messages("s1")[0]
    assert msg.content == "Hi there"
    assert msg.is_streaming is False
    assert len(recorder.saved) == 1
    assert "already-final" in caplog.text


# ── Degradation ──


def test_unknown_chunk_type_degrades_to_text(caplog) -> None:
    store, timeline, _ = _setup()

    with caplog.at_level(logging.WARNING):
        timeline.apply_chunk(StreamChunk(
            session_id="s1", message_id="m1", content="odd", chunk_type="sparkles",
        ))

    msg = store.get_messages("s1")[0]
    assert msg.content == "odd"
    assert msg.parts == [TextPart(content="odd")]
    assert "sparkles" in caplog.text


def test_tool_call_chunk_without_payload_degrades_to_text(caplog) -> None:
    store, timeline, _ = _setup()

    with caplog.at_level(logging.WARNING):
        timeline.apply_chunk(StreamChunk(
            session_id="s1", message_id="m1", content="raw", chunk_type="tool_call",
        ))

    msg = store.get_messages("s1")[0]
    assert msg.tool_calls == []
    assert msg.content == "raw"
    assert "treating as text" in caplog.text


# ── Thinking, images, plans ──


def test_thinking_chunks_do_not_create_parts() -> None:
    store, timeline, _ = _setup()

    timeline.apply_chunk(StreamChunk(session_id="s1", message_id="m1", content="hmm ", chunk_type="thinking"))
    timeline.apply_chunk(StreamChunk(session_id="s1", message_id="m1", content="ok", chunk_type="thinking"))

    msg = store.get_messages("s1")[0]
    assert msg.thinking == "hmm ok"
    assert msg.parts == []
    assert msg.content == ""


def test_image_chunk_appends_image_part() -> None:
    store, timeline, _ = _setup()
    image = ImagePart(data="aGk=", mime_type="image/png")

    timeline.apply_chunk(_text("Here: "))
    timeline.apply_chunk(StreamChunk(session_id="s1", message_id="m1", chunk_type="image", image=image))

    msg = store.get_messages("s1")[0]
    assert msg.parts == [TextPart(content="Here: "), image]


def test_plan_arriving_before_message_is_attached_on_creation() -> None:
    store, timeline, _ = _setup()
    timeline.set_plan("s1", "m1", [PlanEntry(content="Read the code")])

    timeline.apply_chunk(_text("Working"))

    msg = store.get_messages("s1")[0]
    assert [e.content for e in msg.plan_entries] == ["Read the code"]


def test_plan_update_replaces_previous_plan() -> None:
    store, timeline, _ = _setup()
    timeline.apply_chunk(_text("Working"))
    timeline.set_plan("s1", "m1", [PlanEntry(content="a"), PlanEntry(content="b")])

    timeline.set_plan("s1", "m1", [PlanEntry(content="b", status=PlanEntryStatus.COMPLETED)])

    msg = store.get_messages("s1")[0]
    assert msg.plan_entries == [PlanEntry(content="b", status=PlanEntryStatus.COMPLETED)]
    assert store.plans["s1"]["m1"] == msg.plan_entries


# ── History ──


def test_loaded_messages_are_never_streaming() -> None:
    store, timeline, _ = _setup()
    stale = ChatMessage(session_id="s1", role=MessageRole.ASSISTANT, id="old", content="x", is_streaming=True)

    timeline.load_messages("s1", [stale])

    assert store.get_messages("s1")[0].is_streaming is False
    assert "s1" in store.messages_loaded


def test_loaded_messages_go_before_live_ones_without_duplicates() -> None:
    store, timeline, _ = _setup()
    timeline.apply_chunk(_text("live", message_id="m2"))
    stored = [
        ChatMessage(session_id="s1", role=MessageRole.USER, id="m0", content="q"),
        ChatMessage(session_id="s1", role=MessageRole.ASSISTANT, id="m2", content="stale copy"),
    ]

    timeline.load_messages("s1", stored)

    messages = store.get_messages("s1")
    assert [m.id for m in messages] == ["m0", "m2"]
    assert messages[1].content == "live"
    assert messages[1].is_streaming is True


def test_user_message_is_appended_final() -> None:
    store, timeline, _ = _setup()

    msg = timeline.add_user_message("s1", "hello")

    assert store.get_messages("s1") == [msg]
    assert msg.role is MessageRole.USER
    assert msg.is_streaming is False
    assert msg.parts == [TextPart(content="hello")]


def test_user_message_finalizes_message_still_streaming() -> None:
    store, timeline, recorder = _setup()
    timeline.apply_chunk(_text("partial", message_id="m1"))

    msg = timeline.add_user_message("s1", "next question")

    reply, last = store.get_messages("s1")
    assert last is msg
    assert reply.is_streaming is False
    assert store.streaming_messages("s1") == []
    assert [m.id for m in recorder.saved] == ["m1"]

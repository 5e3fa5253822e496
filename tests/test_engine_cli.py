"""End-to-end tests: queued events through the engine, and the replay CLI."""
from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from acp_reconciler.engine.cli import main
from acp_reconciler.engine.errors import DuplicateSubscriptionError
from acp_reconciler.shared.models.session import Session, SessionStatus
from acp_reconciler.shared.models.tool_call import ToolCallStatus
from acp_reconciler.shared.services.persistence import MessageStore

EVENTS = [
    {"event": "session-status-changed", "session_id": "s1", "status": "active",
     "session": {"id": "s1", "name": "Demo", "status": "active", "acp_session_id": "acp-1"}},
    {"event": "plan-update", "session_id": "s1", "message_id": "m1",
     "entries": [{"content": "Inspect the repo", "status": "in_progress"}]},
    {"event": "stream-chunk", "session_id": "s1", "message_id": "m1", "content": "Looking ", "is_complete": False},
    {"event": "stream-chunk", "session_id": "s1", "message_id": "m1", "content": "", "is_complete": False,
     "chunk_type": "tool_call",
     "tool_call": {"tool_call_id": "tc1", "title": "List files", "status": "in_progress", "kind": "search"}},
    {"event": "stream-chunk", "session_id": "s1", "message_id": "m1", "content": "", "is_complete": False,
     "chunk_type": "tool_call", "tool_call": {"tool_call_id": "tc1", "status": "completed"}},
    {"event": "stream-chunk", "session_id": "s1", "message_id": "m1", "content": "done.", "is_complete": True},
    {"event": "stream-chunk", "session_id": "s2", "message_id": "m9", "content": "half a thought", "is_complete": False},
]


def _write_log(path: Path, events: list[dict]) -> Path:
    path.write_text("\n".join(json.dumps(e) for e in events) + "\n\nnot json\n")
    return path


@pytest.mark.asyncio
async def test_queued_events_reach_every_component(engine, host) -> None:
    runner = asyncio.create_task(engine.run())
    for payload in EVENTS[:6]:
        await engine.publish(payload)
    await engine.publish({"event": "interaction-prompt", "session_id": "s1", "prompt_type": "confirm",
                          "message": "Apply?", "request_id": "r1"})
    for _ in range(200):
        if engine.interactions.has_pending("s1"):
            break
        await asyncio.sleep(0.01)

    await engine.shutdown()
    await runner

    msg = engine.store.get_messages("s1")[0]
    assert msg.content == "Looking done."
    assert msg.is_streaming is False
    assert msg.tool_calls[0].status is ToolCallStatus.COMPLETED
    assert [e.content for e in msg.plan_entries] == ["Inspect the repo"]
    assert engine.store.sessions["s1"].name == "Demo"
    assert engine.interactions.pending("s1").request_id == "r1"
    assert [m.id for m in host.saved] == ["m1"]


@pytest.mark.asyncio
async def test_shutdown_flushes_streaming_messages(engine, host) -> None:
    engine.registry.register(Session(id="s1", status=SessionStatus.ACTIVE, name="x"))
    await engine.registry.send_message("s1", "go")
    for payload in EVENTS[2:4]:
        await engine.publish(payload)
    runner = asyncio.create_task(engine.run())
    for _ in range(200):
        if engine.store.get_messages("s1")[-1].tool_calls:
            break
        await asyncio.sleep(0.01)

    await engine.shutdown()
    await runner

    reply = engine.store.get_messages("s1")[-1]
    assert reply.is_streaming is False
    assert reply.tool_calls[0].status is ToolCallStatus.INTERRUPTED
    assert "s1" not in engine.store.streaming
    assert [m.id for m in host.saved][-1] == reply.id


def test_engine_subscribes_once(engine) -> None:
    assert engine.started
    with pytest.raises(DuplicateSubscriptionError):
        engine.start(install_flush=False)


def test_replay_prints_timeline(tmp_path: Path, capsys) -> None:
    log = _write_log(tmp_path / "events.jsonl", EVENTS)

    code = main(["--store-dir", str(tmp_path / "store"), "replay", str(log)])

    out = capsys.readouterr().out
    assert code == 0
    assert "session s1" in out
    assert "Looking" in out
    assert "done." in out
    assert "List files" in out
    assert "half a thought" in out
    assert "1 message(s) were still streaming" in out


def test_replay_persist_then_show(tmp_path: Path, capsys) -> None:
    log = _write_log(tmp_path / "events.jsonl", EVENTS)
    store_dir = tmp_path / "store"

    assert main(["--store-dir", str(store_dir), "replay", str(log), "--persist"]) == 0
    capsys.readouterr()

    stored = MessageStore(store_dir).load_messages("s2")
    assert stored[0].content == "half a thought"
    assert stored[0].is_streaming is False

    assert main(["--store-dir", str(store_dir), "show", "s1"]) == 0
    assert "Looking" in capsys.readouterr().out


def test_show_unknown_session(tmp_path: Path, capsys) -> None:
    assert main(["--store-dir", str(tmp_path), "show", "nope"]) == 1
    assert "no stored messages" in capsys.readouterr().out


def test_replay_missing_log(tmp_path: Path, capsys) -> None:
    assert main(["replay", str(tmp_path / "absent.jsonl")]) == 1

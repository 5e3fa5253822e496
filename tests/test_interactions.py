from __future__ import annotations

import pytest

from acp_reconciler.adapters.events import InteractionPromptRequest
from acp_reconciler.engine.interactions import InteractionCorrelator
from acp_reconciler.engine.state import SessionStore
from acp_reconciler.shared.models.interaction import (
    InteractionPrompt,
    PermissionOption,
    PromptType,
)


def _permission_prompt(request_id: str = "r1") -> InteractionPrompt:
    return InteractionPrompt(
        session_id="s1",
        type=PromptType.PERMISSION,
        message="Allow write to setup.cfg?",
        request_id=request_id,
        tool_name="edit",
        options=[
            PermissionOption(kind="allow_once", name="Allow", option_id="allow-1"),
            PermissionOption(kind="reject_once", name="Reject", option_id="reject-1"),
        ],
    )


def test_new_prompt_overwrites_unanswered_one() -> None:
    store = SessionStore()
    correlator = InteractionCorrelator(store, host=None)

    correlator.set_prompt("s1", _permission_prompt("r1"))
    correlator.set_prompt("s1", _permission_prompt("r2"))

    assert correlator.pending("s1").request_id == "r2"


def test_handle_request_builds_prompt_from_event() -> None:
    store = SessionStore()
    correlator = InteractionCorrelator(store, host=None)

    prompt = correlator.handle_request(InteractionPromptRequest(
        session_id="s1", prompt_type=PromptType.CONFIRM, message="Continue?", request_id="r9",
    ))

    assert correlator.has_pending("s1")
    assert prompt.type is PromptType.CONFIRM
    assert store.prompts["s1"] is prompt


def test_set_prompt_none_clears() -> None:
    store = SessionStore()
    correlator = InteractionCorrelator(store, host=None)
    correlator.set_prompt("s1", _permission_prompt())

    correlator.set_prompt("s1", None)

    assert correlator.pending("s1") is None


@pytest.mark.asyncio
async def test_resolve_sends_request_and_matched_option(host) -> None:
    store = SessionStore()
    correlator = InteractionCorrelator(store, host)
    correlator.set_prompt("s1", _permission_prompt())

    task = correlator.resolve("s1", "allow")
    assert correlator.pending("s1") is None
    await task

    assert host.called("send_interaction_response") == [("s1", "allow", "r1", "allow-1")]


@pytest.mark.asyncio
async def test_free_text_answer_has_no_option_id(host) -> None:
    store = SessionStore()
    correlator = InteractionCorrelator(store, host)
    correlator.set_prompt("s1", _permission_prompt())

    await correlator.resolve("s1", "only if tests pass")

    assert host.called("send_interaction_response") == [("s1", "only if tests pass", "r1", None)]


@pytest.mark.asyncio
async def test_failed_send_still_clears_prompt_and_records_error(host) -> None:
    host.fail_on.add("send_interaction_response")
    store = SessionStore()
    correlator = InteractionCorrelator(store, host)
    correlator.set_prompt("s1", _permission_prompt())

    await correlator.resolve("s1", "Reject")

    assert correlator.pending("s1") is None
    assert "send_interaction_response failed" in store.errors["s1"]


def test_option_matching_by_id_or_name() -> None:
    prompt = _permission_prompt()

    assert prompt.match_option("reject-1").name == "Reject"
    assert prompt.match_option("  allow ").option_id == "allow-1"
    assert prompt.match_option("maybe") is None

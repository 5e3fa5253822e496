"""Tool call lifecycle.

    pending ──▶ running ──▶ completed | error | interrupted
       └───────────────────▶ (any)

Terminal states are final. Updates are merged field by field into the
existing record; fields absent from an update are left untouched.
"""
from __future__ import annotations

import logging

from acp_reconciler.engine.errors import ToolCallTransitionError
from acp_reconciler.shared.models.message import ChatMessage, ToolCallPart
from acp_reconciler.shared.models.tool_call import (
    ToolCallInfo,
    ToolCallStatus,
    ToolCallUpdate,
)

logger = logging.getLogger(__name__)

_ALL = frozenset(ToolCallStatus)

ALLOWED_TRANSITIONS: dict[ToolCallStatus, frozenset[ToolCallStatus]] = {
    ToolCallStatus.PENDING: _ALL,
    ToolCallStatus.RUNNING: _ALL - {ToolCallStatus.PENDING},
    ToolCallStatus.COMPLETED: frozenset({ToolCallStatus.COMPLETED}),
    ToolCallStatus.ERROR: frozenset({ToolCallStatus.ERROR}),
    ToolCallStatus.INTERRUPTED: frozenset({ToolCallStatus.INTERRUPTED}),
}


def check_transition(tool_call: ToolCallInfo, requested: ToolCallStatus) -> None:
    if requested not in ALLOWED_TRANSITIONS[tool_call.status]:
        raise ToolCallTransitionError(
            tool_call.tool_call_id, tool_call.status.value, requested.value
        )


def create_tool_call(update: ToolCallUpdate) -> ToolCallInfo:
    """Build a new record from the first update seen for an id."""
    tool_call = ToolCallInfo(tool_call_id=update.tool_call_id, status=ToolCallStatus.RUNNING)
    for name, value in update.present_fields().items():
        setattr(tool_call, name, value)
    return tool_call


def merge_tool_call(tool_call: ToolCallInfo, update: ToolCallUpdate) -> list[str]:
    """Merge *update* into *tool_call*; return the names of changed fields.

    A disallowed status change is logged and skipped while the other
    fields of the update still apply.
    """
    changed: list[str] = []
    for name, value in update.present_fields().items():
        if name == "status":
            try:
                check_transition(tool_call, value)
            except ToolCallTransitionError as exc:
                logger.warning("%s; keeping %s", exc, tool_call.status.value)
                continue
        if getattr(tool_call, name) != value:
            setattr(tool_call, name, value)
            changed.append(name)
    return changed


def apply_tool_call_update(message: ChatMessage, update: ToolCallUpdate) -> ToolCallInfo:
    """Apply *update* to the tool call it names inside *message*.

    The first update for an id creates the record and appends a
    ``tool_call`` part, so parts keep arrival order.
    """
    existing = message.find_tool_call(update.tool_call_id)
    if existing is None:
        tool_call = create_tool_call(update)
        message.tool_calls.append(tool_call)
        message.parts.append(ToolCallPart(tool_call_id=tool_call.tool_call_id))
        logger.debug(
            "Tool call %s created in message %s (%s)",
            tool_call.tool_call_id, message.id, tool_call.status.value,
        )
        return tool_call
    changed = merge_tool_call(existing, update)
    if changed:
        logger.debug("Tool call %s updated: %s", existing.tool_call_id, ", ".join(changed))
    return existing


def interrupt_open_tool_calls(message: ChatMessage) -> list[ToolCallInfo]:
    """Force every non-terminal tool call in *message* to interrupted."""
    interrupted = []
    for tool_call in message.tool_calls:
        if not tool_call.is_terminal:
            tool_call.status = ToolCallStatus.INTERRUPTED
            interrupted.append(tool_call)
    return interrupted


def status_update(tool_call_id: str, status: ToolCallStatus) -> ToolCallUpdate:
    """Convenience constructor for a status-only update."""
    return ToolCallUpdate(tool_call_id=tool_call_id, status=status)

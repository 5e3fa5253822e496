"""Exception hierarchy for the reconciliation engine.

Inbound events never raise out of the engine; these are for callers
that violate an action's preconditions, and for internal rejections
that the reconciler catches and logs.
"""
from __future__ import annotations


class ReconcilerError(Exception):
    """Base exception for all reconciler errors."""


class SessionNotFoundError(ReconcilerError):
    """No session with this id is registered."""
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class SessionBusyError(ReconcilerError):
    """Input is disabled for the session (streaming, resuming or creating)."""
    def __init__(self, session_id: str, reason: str):
        self.session_id = session_id
        self.reason = reason
        super().__init__(f"Session {session_id} is busy: {reason}")


class PromptPendingError(ReconcilerError):
    """A normal send was attempted while an interaction prompt is pending."""
    def __init__(self, session_id: str, request_id: str | None = None):
        self.session_id = session_id
        self.request_id = request_id
        super().__init__(
            f"Session {session_id} has a pending interaction prompt; "
            f"answer it instead of sending a message"
        )


class SessionNotResumableError(ReconcilerError):
    """Resume requested for a session that cannot be resumed."""
    def __init__(self, session_id: str, reason: str):
        self.session_id = session_id
        self.reason = reason
        super().__init__(f"Cannot resume session {session_id}: {reason}")


class DuplicateSubscriptionError(ReconcilerError):
    """A second handler was registered for an event kind."""
    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"Event kind '{kind}' already has a subscription")


class UnknownEventKindError(ReconcilerError):
    """Subscription requested for an event kind the host never emits."""
    def __init__(self, kind: str, known: tuple[str, ...]):
        self.kind = kind
        self.known = known
        super().__init__(
            f"Unknown event kind '{kind}'. Known kinds: {', '.join(known)}"
        )


class ToolCallTransitionError(ReconcilerError):
    """Tool call status change not allowed by the lifecycle."""
    def __init__(self, tool_call_id: str, current: str, requested: str):
        self.tool_call_id = tool_call_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Tool call {tool_call_id} cannot move from {current} to {requested}"
        )

"""In-memory state shared by the reconciler, correlator and registry.

Everything is keyed by session id. All mutation happens synchronously on
the event loop thread, so no locking is needed.
"""
from __future__ import annotations

import logging
from enum import Enum

from acp_reconciler.shared.models.interaction import InteractionPrompt
from acp_reconciler.shared.models.message import ChatMessage
from acp_reconciler.shared.models.plan import PlanEntry
from acp_reconciler.shared.models.session import AvailableCommand, Session

logger = logging.getLogger(__name__)


class Membership(Enum):
    STREAMING = "streaming"
    RESUMING = "resuming"
    CREATING = "creating"


class SessionStore:
    """All per-session collections the engine maintains."""

    def __init__(self) -> None:
        self.sessions: dict[str, Session] = {}
        self.messages: dict[str, list[ChatMessage]] = {}
        self.messages_loaded: set[str] = set()
        # session_id → message_id → latest plan snapshot
        self.plans: dict[str, dict[str, list[PlanEntry]]] = {}
        self.prompts: dict[str, InteractionPrompt] = {}
        self.commands: dict[str, list[AvailableCommand]] = {}
        self.errors: dict[str, str] = {}
        self.active_session_id: str | None = None
        self._members: dict[Membership, set[str]] = {m: set() for m in Membership}

    # ── membership sets ──

    @property
    def streaming(self) -> set[str]:
        return self._members[Membership.STREAMING]

    @property
    def resuming(self) -> set[str]:
        return self._members[Membership.RESUMING]

    @property
    def creating(self) -> set[str]:
        return self._members[Membership.CREATING]

    def enter(self, session_id: str, membership: Membership) -> None:
        """Put the session in *membership*, leaving the other two sets."""
        for m, members in self._members.items():
            if m is membership:
                members.add(session_id)
            else:
                members.discard(session_id)

    def leave(self, session_id: str, membership: Membership) -> None:
        self._members[membership].discard(session_id)

    def membership(self, session_id: str) -> Membership | None:
        for m, members in self._members.items():
            if session_id in members:
                return m
        return None

    # ── messages ──

    def get_messages(self, session_id: str) -> list[ChatMessage]:
        return self.messages.get(session_id, [])

    def find_message(self, session_id: str, message_id: str) -> ChatMessage | None:
        for msg in self.messages.get(session_id, []):
            if msg.id == message_id:
                return msg
        return None

    def streaming_messages(self, session_id: str) -> list[ChatMessage]:
        return [m for m in self.messages.get(session_id, []) if m.is_streaming]

    def append_message(self, message: ChatMessage) -> None:
        self.messages.setdefault(message.session_id, []).append(message)

    # ── errors ──

    def set_error(self, session_id: str, error: str) -> None:
        self.errors[session_id] = error

    def clear_error(self, session_id: str) -> None:
        self.errors.pop(session_id, None)

    # ── removal ──

    def drop_session(self, session_id: str) -> None:
        """Remove every trace of a session from every collection."""
        self.sessions.pop(session_id, None)
        self.messages.pop(session_id, None)
        self.messages_loaded.discard(session_id)
        self.plans.pop(session_id, None)
        self.prompts.pop(session_id, None)
        self.commands.pop(session_id, None)
        self.errors.pop(session_id, None)
        for members in self._members.values():
            members.discard(session_id)
        if self.active_session_id == session_id:
            self.active_session_id = None
        logger.info("Dropped all state for session %s", session_id)

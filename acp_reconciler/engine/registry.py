"""Session registry: metadata, lifecycle actions and UI indicators.

Session records come from the host; the registry keeps the latest copy,
applies status events, and tracks which sessions are streaming, resuming
or being created. Those three sets alone decide whether input is
disabled and which banner is shown.
"""
from __future__ import annotations

import asyncio
import logging
from enum import Enum

from acp_reconciler.adapters.events import AvailableCommandsUpdate, SessionStatusChanged
from acp_reconciler.adapters.host import HostClient
from acp_reconciler.engine.config import EngineConfig
from acp_reconciler.engine.errors import (
    PromptPendingError,
    SessionBusyError,
    SessionNotFoundError,
    SessionNotResumableError,
)
from acp_reconciler.engine.persist import MessagePersister
from acp_reconciler.engine.state import Membership, SessionStore
from acp_reconciler.engine.timeline import TimelineReconciler
from acp_reconciler.shared.models.message import ChatMessage
from acp_reconciler.shared.models.session import (
    RESUMABLE_STATUSES,
    AvailableCommand,
    CreateSessionRequest,
    Session,
    SessionStatus,
    derive_session_name,
    is_default_session_name,
)

logger = logging.getLogger(__name__)


class Banner(Enum):
    NONE = "none"
    RESUME = "resume"
    RESUMING = "resuming"
    ERROR = "error"


class SessionIndicator(Enum):
    CREATING = "creating"
    RESUMING = "resuming"
    PENDING_PERMISSION = "pending_permission"
    STREAMING = "streaming"
    ACTIVE = "active"
    PAUSED = "paused"
    TERMINATED = "terminated"
    ERROR = "error"


class SessionRegistry:
    """Owns session records and the outbound session actions."""

    def __init__(
        self,
        store: SessionStore,
        timeline: TimelineReconciler,
        persister: MessagePersister,
        host: HostClient,
        config: EngineConfig | None = None,
    ) -> None:
        self._store = store
        self._timeline = timeline
        self._persister = persister
        self._host = host
        self._config = config or EngineConfig()
        self._tasks: set[asyncio.Task[None]] = set()

    # ── lookup ──

    def get(self, session_id: str) -> Session:
        session = self._store.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def sessions(self) -> list[Session]:
        return list(self._store.sessions.values())

    def register(self, session: Session) -> Session:
        """Insert or replace the record for ``session.id``."""
        self._store.sessions[session.id] = session
        if session.status is SessionStatus.CREATING:
            self._store.enter(session.id, Membership.CREATING)
        else:
            self._store.leave(session.id, Membership.CREATING)
        return session

    def set_active(self, session_id: str | None) -> None:
        self._store.active_session_id = session_id

    # ── actions ──

    async def create_session(self, request: CreateSessionRequest) -> Session:
        """Ask the host for a new session and make it the active one.

        A failed create has no session to attach the error to, so the
        exception propagates after logging.
        """
        try:
            session = await self._host.create_session(request)
        except Exception as exc:
            logger.warning("Failed to create session %r: %s", request.name, exc)
            raise
        self.register(session)
        # A brand new session has nothing to load
        self._store.messages.setdefault(session.id, [])
        self._store.messages_loaded.add(session.id)
        self.set_active(session.id)
        logger.info("Session %s created (%s, %s)", session.id, session.provider, session.status.value)
        return session

    async def list_sessions(self) -> list[Session]:
        """Refresh every record from the host. On failure keep what we have."""
        try:
            sessions = await self._host.list_sessions()
        except Exception as exc:
            logger.warning("Failed to list sessions: %s", exc)
            return self.sessions()
        for session in sessions:
            self.register(session)
        logger.info("Listed %d session(s)", len(sessions))
        return self.sessions()

    async def load_messages(self, session_id: str) -> list[ChatMessage]:
        """Fetch stored messages once per session."""
        if session_id in self._store.messages_loaded:
            return self._store.get_messages(session_id)
        try:
            messages = await self._host.get_session_messages(session_id)
        except Exception as exc:
            logger.warning("Failed to load messages for session %s: %s", session_id, exc)
            return self._store.get_messages(session_id)
        self._timeline.load_messages(session_id, messages)
        return self._store.get_messages(session_id)

    def check_can_send(self, session_id: str) -> Session:
        session = self.get(session_id)
        prompt = self._store.prompts.get(session_id)
        if prompt is not None:
            raise PromptPendingError(session_id, prompt.request_id)
        membership = self._store.membership(session_id)
        if membership is not None:
            raise SessionBusyError(session_id, membership.value)
        return session

    async def send_message(self, session_id: str, content: str) -> ChatMessage:
        """Append the user turn, mark the session streaming and send it.

        A failed send releases the streaming flag and records the error;
        the user message stays in the timeline.
        """
        session = self.check_can_send(session_id)
        first_message = not self._store.get_messages(session_id)

        self._store.clear_error(session_id)
        self._store.enter(session_id, Membership.STREAMING)
        message = self._timeline.add_user_message(session_id, content)
        self._persister.persist(message)

        if first_message and is_default_session_name(session.name, self._config.default_session_name):
            new_name = derive_session_name(content, self._config.session_name_max_length)
            if new_name:
                self._spawn(self._rename_quietly(session_id, new_name))

        try:
            await self._host.send_message(session_id, content)
        except Exception as exc:
            logger.warning("Failed to send message to session %s: %s", session_id, exc)
            self._store.leave(session_id, Membership.STREAMING)
            self._store.set_error(session_id, f"Failed to send message: {exc}")
        return message

    async def stop(self, session_id: str) -> None:
        """Request cancellation of the current turn.

        The timeline is left alone; the agent's own completion chunk ends
        the turn.
        """
        self.get(session_id)
        try:
            await self._host.cancel_generation(session_id)
            logger.info("Cancellation requested for session %s", session_id)
        except Exception as exc:
            logger.warning("Failed to cancel generation for session %s: %s", session_id, exc)
            self._store.set_error(session_id, f"Failed to stop: {exc}")

    async def resume_session(self, session_id: str) -> Session:
        session = self.get(session_id)
        if not session.acp_session_id:
            raise SessionNotResumableError(session_id, "no agent session id")
        if session.status not in RESUMABLE_STATUSES:
            raise SessionNotResumableError(session_id, f"status is {session.status.value}")
        if session_id in self._store.resuming:
            raise SessionBusyError(session_id, Membership.RESUMING.value)

        self._store.clear_error(session_id)
        self._store.enter(session_id, Membership.RESUMING)
        try:
            resumed = await self._host.resume_session(session_id)
            self.register(resumed)
            logger.info("Session %s resumed (%s)", session_id, resumed.status.value)
            return resumed
        except Exception as exc:
            logger.warning("Failed to resume session %s: %s", session_id, exc)
            self._store.set_error(session_id, f"Failed to resume: {exc}")
            return session
        finally:
            self._store.leave(session_id, Membership.RESUMING)

    async def terminate_session(self, session_id: str, cleanup_worktree: bool = False) -> None:
        """Terminate on the host, then update local state.

        With *cleanup_worktree* every trace of the session is removed;
        otherwise the record stays with status ``terminated``.
        """
        session = self.get(session_id)
        try:
            await self._host.terminate_session(session_id, cleanup_worktree)
        except Exception as exc:
            logger.warning("Failed to terminate session %s: %s", session_id, exc)
            self._store.set_error(session_id, f"Failed to terminate: {exc}")
            return
        if cleanup_worktree:
            self._store.drop_session(session_id)
        else:
            session.status = SessionStatus.TERMINATED
            if self._store.active_session_id == session_id:
                self._store.active_session_id = None
        logger.info("Session %s terminated (cleanup=%s)", session_id, cleanup_worktree)

    async def rename_session(self, session_id: str, new_name: str) -> Session:
        session = self.get(session_id)
        try:
            renamed = await self._host.rename_session(session_id, new_name)
        except Exception as exc:
            logger.warning("Failed to rename session %s: %s", session_id, exc)
            self._store.set_error(session_id, f"Failed to rename: {exc}")
            return session
        return self._replace_record(session_id, renamed)

    async def _rename_quietly(self, session_id: str, new_name: str) -> None:
        try:
            renamed = await self._host.rename_session(session_id, new_name)
        except Exception as exc:
            logger.debug("Auto-rename of session %s failed: %s", session_id, exc)
            return
        if session_id in self._store.sessions:
            self._replace_record(session_id, renamed)

    async def set_session_model(self, session_id: str, model_id: str) -> Session:
        session = self.get(session_id)
        try:
            updated = await self._host.set_session_model(session_id, model_id)
        except Exception as exc:
            logger.warning("Failed to set model %s on session %s: %s", model_id, session_id, exc)
            self._store.set_error(session_id, f"Failed to set model: {exc}")
            return session
        return self._replace_record(session_id, updated)

    async def set_session_mode(self, session_id: str, mode_id: str) -> Session:
        session = self.get(session_id)
        try:
            updated = await self._host.set_session_mode(session_id, mode_id)
        except Exception as exc:
            logger.warning("Failed to set mode %s on session %s: %s", mode_id, session_id, exc)
            self._store.set_error(session_id, f"Failed to set mode: {exc}")
            return session
        return self._replace_record(session_id, updated)

    def _replace_record(self, session_id: str, session: Session) -> Session:
        if session.id != session_id:
            logger.warning("Host returned session %s for %s; keeping local id", session.id, session_id)
            session.id = session_id
        self._store.sessions[session_id] = session
        return session

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ── inbound events ──

    def handle_status_changed(self, event: SessionStatusChanged) -> None:
        """Apply a session-status-changed event.

        A full ``session`` payload replaces the record. Streaming
        membership is untouched: only the completion chunk ends a turn.
        """
        session_id = event.session_id or (event.session.id if event.session else "")
        if event.session is not None:
            record = event.session
            if event.status is not None:
                record.status = event.status
            record.id = session_id
            self.register(record)
        else:
            session = self._store.sessions.get(session_id)
            if session is None:
                logger.debug("Status change for unknown session %s ignored", session_id)
                return
            if event.status is not None:
                previous = session.status
                session.status = event.status
                if event.status is not SessionStatus.CREATING:
                    self._store.leave(session_id, Membership.CREATING)
                logger.info(
                    "Session %s: %s → %s", session_id, previous.value, event.status.value,
                )
        if event.error:
            self._store.set_error(session_id, event.error)

    def set_commands(self, session_id: str, commands: list[AvailableCommand]) -> None:
        self._store.commands[session_id] = list(commands)
        session = self._store.sessions.get(session_id)
        if session is not None:
            session.available_commands = list(commands)
        logger.debug("Session %s: %d available command(s)", session_id, len(commands))

    def handle_commands_update(self, event: AvailableCommandsUpdate) -> None:
        self.set_commands(event.session_id, event.commands)

    # ── indicators ──

    def input_disabled(self, session_id: str) -> bool:
        return self._store.membership(session_id) is not None

    def banner(self, session_id: str) -> Banner:
        if session_id in self._store.resuming:
            return Banner.RESUMING
        session = self._store.sessions.get(session_id)
        if session is not None and session.can_resume:
            return Banner.RESUME
        if session_id in self._store.errors:
            return Banner.ERROR
        return Banner.NONE

    def status_indicator(self, session_id: str) -> SessionIndicator:
        if session_id in self._store.creating:
            return SessionIndicator.CREATING
        if session_id in self._store.resuming:
            return SessionIndicator.RESUMING
        if session_id in self._store.prompts:
            return SessionIndicator.PENDING_PERMISSION
        if session_id in self._store.streaming:
            return SessionIndicator.STREAMING
        session = self.get(session_id)
        return SessionIndicator(session.status.value)

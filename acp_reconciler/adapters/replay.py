"""In-process host used to replay recorded event logs.

There is no agent behind it: outbound calls are recorded and answered
from local state so an event log can be re-applied offline.
"""
from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from acp_reconciler.adapters.host import HostClient
from acp_reconciler.shared.models.message import ChatMessage
from acp_reconciler.shared.models.session import CreateSessionRequest, Session, SessionStatus
from acp_reconciler.shared.services.persistence import MessageStore

logger = logging.getLogger(__name__)


def read_event_log(path: Path) -> Iterator[dict[str, Any]]:
    """Yield one payload per non-blank JSON line; bad lines are skipped."""
    with open(path, encoding="utf-8") as f:
        for lineno, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError as exc:
                logger.warning("%s:%d: not JSON, skipped (%s)", path, lineno, exc)
                continue
            if not isinstance(data, dict):
                logger.warning("%s:%d: not an object, skipped", path, lineno)
                continue
            yield data


class ReplayHost(HostClient):
    """HostClient backed by memory and an optional MessageStore."""

    def __init__(self, message_store: MessageStore | None = None) -> None:
        self.message_store = message_store
        self.sessions: dict[str, Session] = {}
        self.saved: list[ChatMessage] = []
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        logger.debug("replay host: %s%r", name, args)

    def _session(self, session_id: str) -> Session:
        session = self.sessions.get(session_id)
        if session is None:
            session = Session(id=session_id, status=SessionStatus.ACTIVE)
            self.sessions[session_id] = session
        return session

    async def send_message(self, session_id: str, content: str) -> None:
        self._record("send_message", session_id, content)

    async def send_interaction_response(
        self,
        session_id: str,
        response: str,
        request_id: str | None = None,
        option_id: str | None = None,
    ) -> None:
        self._record("send_interaction_response", session_id, response, request_id, option_id)

    async def save_message(self, message: ChatMessage) -> None:
        self.saved.append(message)
        if self.message_store is not None:
            await self.message_store.save_message(message)

    async def terminate_session(self, session_id: str, cleanup_worktree: bool) -> None:
        self._record("terminate_session", session_id, cleanup_worktree)
        if cleanup_worktree:
            self.sessions.pop(session_id, None)
        else:
            self._session(session_id).status = SessionStatus.TERMINATED

    async def resume_session(self, session_id: str) -> Session:
        self._record("resume_session", session_id)
        session = self._session(session_id)
        session.status = SessionStatus.ACTIVE
        return session

    async def set_session_model(self, session_id: str, model_id: str) -> Session:
        self._record("set_session_model", session_id, model_id)
        session = self._session(session_id)
        session.model = model_id
        return session

    async def set_session_mode(self, session_id: str, mode_id: str) -> Session:
        self._record("set_session_mode", session_id, mode_id)
        session = self._session(session_id)
        session.mode = mode_id
        return session

    async def create_session(self, request: CreateSessionRequest) -> Session:
        self._record("create_session", request.name)
        session = Session(
            name=request.name,
            provider=request.provider,
            project_path=request.project_path,
            is_local=request.use_local,
            status=SessionStatus.ACTIVE,
        )
        self.sessions[session.id] = session
        return session

    async def list_sessions(self) -> list[Session]:
        return list(self.sessions.values())

    async def rename_session(self, session_id: str, new_name: str) -> Session:
        self._record("rename_session", session_id, new_name)
        session = self._session(session_id)
        session.name = new_name
        return session

    async def cancel_generation(self, session_id: str) -> None:
        self._record("cancel_generation", session_id)

    async def get_session_messages(self, session_id: str) -> list[ChatMessage]:
        if self.message_store is None:
            return []
        return await self.message_store.get_session_messages(session_id)

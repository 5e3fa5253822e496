"""Outbound interface to the host process.

The host owns the agent subprocesses, their workspaces and the durable
message store. The engine only ever calls these methods; it never reads
a return value to decide timeline state.
"""
from __future__ import annotations

from abc import ABC, abstractmethod

from acp_reconciler.shared.models.message import ChatMessage
from acp_reconciler.shared.models.session import CreateSessionRequest, Session


class HostClient(ABC):
    """Async RPC surface of the host process."""

    @abstractmethod
    async def send_message(self, session_id: str, content: str) -> None: ...

    @abstractmethod
    async def send_interaction_response(
        self,
        session_id: str,
        response: str,
        request_id: str | None = None,
        option_id: str | None = None,
    ) -> None: ...

    @abstractmethod
    async def save_message(self, message: ChatMessage) -> None: ...

    @abstractmethod
    async def terminate_session(self, session_id: str, cleanup_worktree: bool) -> None: ...

    @abstractmethod
    async def resume_session(self, session_id: str) -> Session: ...

    @abstractmethod
    async def set_session_model(self, session_id: str, model_id: str) -> Session: ...

    @abstractmethod
    async def set_session_mode(self, session_id: str, mode_id: str) -> Session: ...

    @abstractmethod
    async def create_session(self, request: CreateSessionRequest) -> Session: ...

    @abstractmethod
    async def list_sessions(self) -> list[Session]: ...

    @abstractmethod
    async def rename_session(self, session_id: str, new_name: str) -> Session: ...

    @abstractmethod
    async def cancel_generation(self, session_id: str) -> None: ...

    @abstractmethod
    async def get_session_messages(self, session_id: str) -> list[ChatMessage]: ...

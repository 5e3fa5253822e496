"""Fire-and-forget persistence of finalized messages.

The in-memory timeline is the source of truth; the persisted copy is a
best-effort shadow. Failed writes are logged and reported through the
error hook, never retried, and never touch in-memory state.
"""
from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Awaitable, Callable

from acp_reconciler.shared.models.message import ChatMessage

logger = logging.getLogger(__name__)

SaveMessage = Callable[[ChatMessage], Awaitable[None]]
ErrorHook = Callable[[str, str], None]


class MessagePersister:
    """Schedules ``save`` calls without making the caller wait."""

    def __init__(
        self,
        save: SaveMessage,
        on_error: ErrorHook | None = None,
        sync_timeout: float = 2.0,
    ) -> None:
        self._save = save
        self._on_error = on_error
        self._sync_timeout = sync_timeout
        self._tasks: set[asyncio.Task[None]] = set()

    async def _save_logged(self, message: ChatMessage) -> None:
        try:
            await self._save(message)
            logger.debug("Persisted message %s (session %s)", message.id, message.session_id)
        except Exception as exc:
            logger.warning(
                "Failed to persist message %s (session %s): %s",
                message.id, message.session_id, exc,
            )
            if self._on_error is not None:
                self._on_error(message.session_id, f"Failed to save message: {exc}")

    def persist(self, message: ChatMessage) -> asyncio.Task[None] | None:
        """Hand a snapshot of *message* to the persistence collaborator.

        Inside a running event loop the write becomes a background task.
        Without one (process exit, synchronous callers) it runs inline,
        bounded by the sync timeout.
        """
        snapshot = copy.deepcopy(message)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is None:
            self._run_blocking([snapshot])
            return None
        task = loop.create_task(self._save_logged(snapshot))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def persist_many(self, messages: list[ChatMessage]) -> list[asyncio.Task[None]]:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            self._run_blocking([copy.deepcopy(m) for m in messages])
            return []
        tasks = []
        for message in messages:
            task = self.persist(message)
            if task is not None:
                tasks.append(task)
        return tasks

    def _run_blocking(self, messages: list[ChatMessage]) -> None:
        if not messages:
            return

        async def _all() -> None:
            await asyncio.gather(*(self._save_logged(m) for m in messages))

        try:
            asyncio.run(asyncio.wait_for(_all(), timeout=self._sync_timeout))
        except asyncio.TimeoutError:
            logger.warning(
                "Gave up persisting %d message(s) after %.1fs",
                len(messages), self._sync_timeout,
            )

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every scheduled write to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

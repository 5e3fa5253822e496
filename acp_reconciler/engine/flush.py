"""Best-effort save of in-flight messages when the process exits."""
from __future__ import annotations

import atexit
import logging

from acp_reconciler.engine.persist import MessagePersister
from acp_reconciler.engine.state import Membership, SessionStore
from acp_reconciler.engine.tool_calls import interrupt_open_tool_calls
from acp_reconciler.shared.models.message import ChatMessage

logger = logging.getLogger(__name__)


class TeardownFlushGuard:
    """Finalizes every still-streaming message exactly once.

    Open tool calls in those messages are forced to ``interrupted`` so a
    later reload never shows a spinner that can no longer finish.
    """

    def __init__(self, store: SessionStore, persister: MessagePersister) -> None:
        self._store = store
        self._persister = persister
        self._flushed = False
        self._installed = False

    @property
    def flushed(self) -> bool:
        return self._flushed

    def flush(self) -> list[ChatMessage]:
        """Run the flush. Returns the messages handed to persistence.

        Never raises; a second call does nothing.
        """
        if self._flushed:
            return []
        self._flushed = True

        session_ids = set(self._store.streaming)
        for session_id, messages in self._store.messages.items():
            if any(m.is_streaming for m in messages):
                session_ids.add(session_id)

        flushed: list[ChatMessage] = []
        for session_id in sorted(session_ids):
            for message in self._store.streaming_messages(session_id):
                interrupted = interrupt_open_tool_calls(message)
                message.is_streaming = False
                flushed.append(message)
                if interrupted:
                    logger.info(
                        "Interrupted %d open tool call(s) in message %s",
                        len(interrupted), message.id,
                    )
            self._store.leave(session_id, Membership.STREAMING)

        if not flushed:
            logger.debug("Teardown flush: nothing streaming")
            return flushed
        logger.info(
            "Teardown flush: saving %d streaming message(s) across %d session(s)",
            len(flushed), len(session_ids),
        )
        try:
            self._persister.persist_many(flushed)
        except Exception:
            logger.exception("Teardown flush failed to schedule writes")
        return flushed

    def install(self) -> None:
        """Register the flush to run at interpreter exit."""
        if self._installed:
            return
        atexit.register(self.flush)
        self._installed = True

    def uninstall(self) -> None:
        if not self._installed:
            return
        atexit.unregister(self.flush)
        self._installed = False

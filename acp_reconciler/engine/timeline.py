"""Per-session message timeline builder.

Turns stream chunks into an ordered list of ChatMessages whose ``parts``
preserve the interleaving of text, images and tool calls. Each session
has at most one streaming message, and it is always the last one.
"""
from __future__ import annotations

import logging

from acp_reconciler.adapters.events import ChunkType, StreamChunk
from acp_reconciler.engine.persist import MessagePersister
from acp_reconciler.engine.state import Membership, SessionStore
from acp_reconciler.engine.tool_calls import apply_tool_call_update
from acp_reconciler.shared.models.message import ChatMessage
from acp_reconciler.shared.models.plan import PlanEntry

logger = logging.getLogger(__name__)


class TimelineReconciler:
    """Applies stream chunks, plan updates and user turns to the store."""

    def __init__(self, store: SessionStore, persister: MessagePersister) -> None:
        self._store = store
        self._persister = persister

    # ── stream chunks ───────────────────────────────────────────────

    def apply_chunk(self, chunk: StreamChunk) -> ChatMessage | None:
        """Apply one chunk, in arrival order for its session.

        Returns the message the chunk landed in, or None when it was a
        no-op (completion of an unknown or already-final message).
        """
        message = self._store.find_message(chunk.session_id, chunk.message_id)

        if chunk.is_complete:
            if message is None:
                # Nothing to finalize, but the turn is over
                logger.debug(
                    "Completion for unknown message %s (session %s) ignored",
                    chunk.message_id, chunk.session_id,
                )
                self._store.leave(chunk.session_id, Membership.STREAMING)
                return None
            if not message.is_streaming:
                logger.debug("Duplicate completion for message %s ignored", message.id)
                return None
            self._apply_part(message, chunk)
            self.finalize(message)
            return message

        if message is None:
            return self._start_message(chunk)

        if not message.is_streaming:
            logger.warning(
                "Chunk for already-final message %s (session %s); applied in memory only",
                message.id, message.session_id,
            )
        self._apply_part(message, chunk)
        return message

    def _supersede(self, session_id: str, successor: str) -> None:
        """Finalize whatever is still streaming before *successor* is appended."""
        for previous in self._store.streaming_messages(session_id):
            logger.info(
                "Message %s superseded by %s while streaming; finalizing it",
                previous.id, successor,
            )
            self.finalize(previous, release_session=False)

    def _start_message(self, chunk: StreamChunk) -> ChatMessage:
        self._supersede(chunk.session_id, chunk.message_id)
        message = ChatMessage.assistant_streaming(chunk.session_id, chunk.message_id)
        plan = self._store.plans.get(chunk.session_id, {}).get(chunk.message_id)
        if plan is not None:
            message.plan_entries = list(plan)
        self._apply_part(message, chunk)
        self._store.append_message(message)
        logger.debug("Started streaming message %s (session %s)", message.id, message.session_id)
        return message

    def _chunk_kind(self, chunk: StreamChunk) -> ChunkType:
        kind = chunk.chunk_type
        if kind is None:
            return ChunkType.TEXT
        if not isinstance(kind, ChunkType):
            logger.warning("Unknown chunk type %r in message %s, treating as text", kind, chunk.message_id)
            return ChunkType.TEXT
        if kind is ChunkType.TOOL_CALL and (chunk.tool_call is None or not chunk.tool_call.tool_call_id):
            logger.warning("Tool call chunk without a tool call id in message %s, treating as text", chunk.message_id)
            return ChunkType.TEXT
        if kind is ChunkType.IMAGE and chunk.image is None:
            logger.warning("Image chunk without image data in message %s, treating as text", chunk.message_id)
            return ChunkType.TEXT
        return kind

    def _apply_part(self, message: ChatMessage, chunk: StreamChunk) -> None:
        kind = self._chunk_kind(chunk)
        if kind is ChunkType.TEXT:
            if chunk.content:
                message.append_text(chunk.content)
        elif kind is ChunkType.THINKING:
            message.thinking += chunk.content
        elif kind is ChunkType.TOOL_CALL:
            apply_tool_call_update(message, chunk.tool_call)
        elif kind is ChunkType.IMAGE:
            message.parts.append(chunk.image)

    # ── completion ──────────────────────────────────────────────────

    def finalize(self, message: ChatMessage, release_session: bool = True) -> bool:
        """Mark *message* final and persist it. Idempotent.

        Returns False when the message was already final.
        """
        if not message.is_streaming:
            return False
        message.is_streaming = False
        self._persister.persist(message)
        if release_session:
            self._store.leave(message.session_id, Membership.STREAMING)
        logger.debug("Message %s complete (session %s)", message.id, message.session_id)
        return True

    # ── other timeline inputs ───────────────────────────────────────

    def add_user_message(self, session_id: str, content: str) -> ChatMessage:
        message = ChatMessage.user(session_id, content)
        self._supersede(session_id, message.id)
        self._store.append_message(message)
        return message

    def set_plan(self, session_id: str, message_id: str, entries: list[PlanEntry]) -> None:
        """Replace the plan for a message with the latest snapshot."""
        self._store.plans.setdefault(session_id, {})[message_id] = list(entries)
        message = self._store.find_message(session_id, message_id)
        if message is not None:
            message.plan_entries = list(entries)
        logger.debug(
            "Plan for message %s (session %s) replaced: %d entries",
            message_id, session_id, len(entries),
        )

    def load_messages(self, session_id: str, messages: list[ChatMessage]) -> None:
        """Seed a session's timeline from storage.

        Stored messages are never live, so any leftover streaming flag is
        cleared. Messages already in memory win over stored copies.
        """
        existing = {m.id for m in self._store.get_messages(session_id)}
        loaded = []
        for message in messages:
            if message.id in existing:
                continue
            message.is_streaming = False
            loaded.append(message)
        self._store.messages[session_id] = loaded + self._store.get_messages(session_id)
        self._store.messages_loaded.add(session_id)
        logger.info("Loaded %d stored message(s) for session %s", len(loaded), session_id)

"""ReconciliationEngine: wires the channel, reconciler, correlator and registry.

One engine per process. It owns the single subscription for each host
event kind and routes every event to the component that handles it:

    stream-chunk              → TimelineReconciler.apply_chunk
    interaction-prompt        → InteractionCorrelator.handle_request
    session-status-changed    → SessionRegistry.handle_status_changed
    available-commands-update → SessionRegistry.handle_commands_update
    plan-update               → TimelineReconciler.set_plan
"""
from __future__ import annotations

import logging
from typing import Any

from acp_reconciler.adapters.channel import EventChannel, Subscription
from acp_reconciler.adapters.event_bus import EventBus
from acp_reconciler.adapters.events import (
    AvailableCommandsUpdate,
    HostEvent,
    InteractionPromptRequest,
    PlanUpdate,
    SessionStatusChanged,
    StreamChunk,
)
from acp_reconciler.adapters.host import HostClient
from acp_reconciler.engine.config import EngineConfig
from acp_reconciler.engine.flush import TeardownFlushGuard
from acp_reconciler.engine.interactions import InteractionCorrelator
from acp_reconciler.engine.persist import MessagePersister
from acp_reconciler.engine.registry import SessionRegistry
from acp_reconciler.engine.state import SessionStore
from acp_reconciler.engine.timeline import TimelineReconciler
from acp_reconciler.shared.models.message import ChatMessage
from acp_reconciler.shared.services.persistence import MessageStore

logger = logging.getLogger(__name__)


class ReconciliationEngine:
    """Client-side state for every session the host reports.

    Usage:
        engine = ReconciliationEngine(host)
        engine.start()
        host.on_event(engine.publish)
        await engine.run()
    """

    def __init__(
        self,
        host: HostClient,
        config: EngineConfig | None = None,
        message_store: MessageStore | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.host = host
        self.store = SessionStore()
        self.bus = EventBus(
            maxsize=self.config.event_queue_size,
            put_timeout=self.config.put_timeout_seconds,
            poll_interval=self.config.poll_interval_seconds,
        )
        self.channel = EventChannel(self.bus)
        save = message_store.save_message if message_store else host.save_message
        self.persister = MessagePersister(
            save,
            on_error=self.store.set_error,
            sync_timeout=self.config.flush_timeout_seconds,
        )
        self.timeline = TimelineReconciler(self.store, self.persister)
        self.interactions = InteractionCorrelator(self.store, host)
        self.registry = SessionRegistry(
            self.store, self.timeline, self.persister, host, self.config,
        )
        self.guard = TeardownFlushGuard(self.store, self.persister)
        self._subscriptions: list[Subscription] = []

    @property
    def started(self) -> bool:
        return bool(self._subscriptions)

    def start(self, install_flush: bool = True) -> None:
        """Subscribe to every host event kind. Call once."""
        handlers = {
            "stream-chunk": self._on_stream_chunk,
            "interaction-prompt": self._on_interaction_prompt,
            "session-status-changed": self._on_status_changed,
            "available-commands-update": self._on_commands_update,
            "plan-update": self._on_plan_update,
        }
        for kind, handler in handlers.items():
            self._subscriptions.append(self.channel.subscribe(kind, handler))
        if install_flush:
            self.guard.install()
        logger.info("Engine started: %s", ", ".join(self.channel.subscribed_kinds()))

    # ── event handlers ──

    def _on_stream_chunk(self, event: HostEvent) -> None:
        if isinstance(event, StreamChunk):
            self.timeline.apply_chunk(event)

    def _on_interaction_prompt(self, event: HostEvent) -> None:
        if isinstance(event, InteractionPromptRequest):
            self.interactions.handle_request(event)

    def _on_status_changed(self, event: HostEvent) -> None:
        if isinstance(event, SessionStatusChanged):
            self.registry.handle_status_changed(event)

    def _on_commands_update(self, event: HostEvent) -> None:
        if isinstance(event, AvailableCommandsUpdate):
            self.registry.handle_commands_update(event)

    def _on_plan_update(self, event: HostEvent) -> None:
        if isinstance(event, PlanUpdate):
            self.timeline.set_plan(event.session_id, event.message_id, event.entries)

    # ── inbound ──

    def handle_event(self, event: HostEvent) -> bool:
        """Apply one typed event immediately, bypassing the queue."""
        return self.channel.dispatch(event)

    async def publish(self, data: dict[str, Any]) -> None:
        """Host callback: queue a raw event payload."""
        await self.channel.publish(data)

    async def run(self) -> None:
        """Consume queued events until shutdown."""
        await self.channel.run()

    # ── outbound ──

    async def submit(self, session_id: str, text: str) -> ChatMessage | None:
        """Send user input, answering a pending prompt instead when one exists.

        Returns the appended user message, or None when the input went to
        the pending prompt.
        """
        if self.interactions.has_pending(session_id):
            await self.interactions.resolve(session_id, text)
            return None
        return await self.registry.send_message(session_id, text)

    async def shutdown(self) -> None:
        """Unsubscribe, flush streaming messages and wait for writes."""
        for sub in self._subscriptions:
            sub.close()
        self._subscriptions.clear()
        self.channel.close()
        self.guard.flush()
        await self.persister.drain()
        await self.interactions.drain()
        await self.registry.drain()
        self.guard.uninstall()
        logger.info("Engine shut down")

"""Process-wide event channel with one owned subscription per event kind."""
from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from acp_reconciler.adapters.event_bus import EventBus
from acp_reconciler.adapters.events import EVENT_KINDS, HostEvent, normalize_event_name
from acp_reconciler.engine.errors import DuplicateSubscriptionError, UnknownEventKindError

logger = logging.getLogger(__name__)

EventHandler = Callable[[HostEvent], None]


class Subscription:
    """Handle for a registered handler. ``close()`` unregisters it."""

    def __init__(self, channel: EventChannel, kind: str, handler: EventHandler) -> None:
        self._channel = channel
        self.kind = kind
        self.handler = handler
        self.active = True

    def close(self) -> None:
        if not self.active:
            return
        self.active = False
        self._channel._remove(self)

    def __repr__(self) -> str:
        state = "active" if self.active else "closed"
        return f"<Subscription {self.kind} {state}>"


class EventChannel:
    """Routes typed host events to exactly one handler per kind.

    Handlers are synchronous: every state mutation for one event finishes
    before the next event is taken off the bus.
    """

    def __init__(self, bus: EventBus | None = None) -> None:
        self._bus = bus or EventBus()
        self._subscriptions: dict[str, Subscription] = {}

    @property
    def bus(self) -> EventBus:
        return self._bus

    def subscribe(self, kind: str, handler: EventHandler) -> Subscription:
        kind = normalize_event_name(kind)
        if kind not in EVENT_KINDS:
            raise UnknownEventKindError(kind, EVENT_KINDS)
        if kind in self._subscriptions:
            raise DuplicateSubscriptionError(kind)
        sub = Subscription(self, kind, handler)
        self._subscriptions[kind] = sub
        logger.debug("Subscribed handler for %s", kind)
        return sub

    def _remove(self, sub: Subscription) -> None:
        if self._subscriptions.get(sub.kind) is sub:
            del self._subscriptions[sub.kind]
            logger.debug("Unsubscribed handler for %s", sub.kind)

    def subscribed_kinds(self) -> list[str]:
        return sorted(self._subscriptions)

    def dispatch(self, event: HostEvent) -> bool:
        """Hand *event* to its handler. Returns False when nothing handled it."""
        sub = self._subscriptions.get(event.event_type)
        if sub is None:
            logger.debug("No handler for event %r (session %s)", event.event_type, event.session_id)
            return False
        sub.handler(event)
        return True

    async def publish(self, data: dict[str, Any]) -> None:
        """Queue a raw host payload."""
        await self._bus.make_callback()(data)

    async def run(self) -> None:
        """Consume the bus until it is closed, dispatching each event.

        A failing handler is logged and the loop continues with the next
        event.
        """
        async for event in self._bus.consume():
            try:
                self.dispatch(event)
            except Exception:
                logger.exception(
                    "Error processing event: %s (session %s)",
                    event.event_type, event.session_id,
                )

    def close(self) -> None:
        """Drop every subscription and stop the consume loop."""
        for sub in list(self._subscriptions.values()):
            sub.close()
        self._bus.close()

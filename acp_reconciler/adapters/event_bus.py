"""Async event bus bridging host callbacks to the reconciler.

The host process pushes raw event dicts via callback. The EventBus parses
them into typed events and queues them for the engine's consume loop.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

from acp_reconciler.adapters.events import HostEvent, dict_to_event

logger = logging.getLogger(__name__)


class EventBus:
    """Async queue bridging host callbacks to event consumers."""

    def __init__(
        self,
        maxsize: int = 5000,
        put_timeout: float = 30.0,
        poll_interval: float = 0.5,
    ) -> None:
        self._queue: asyncio.Queue[HostEvent] = asyncio.Queue(maxsize=maxsize)
        self._put_timeout = put_timeout
        self._poll_interval = poll_interval
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def _callback(self, data: dict[str, Any]) -> None:
        """Callback handed to the host for raw event dicts."""
        if self._closed:
            return
        await self.emit(dict_to_event(data))

    def make_callback(self):
        """Return the async callback the host pushes raw events into."""
        return self._callback

    async def emit(self, event: HostEvent) -> None:
        """Queue an already-typed event."""
        if self._closed:
            return
        try:
            # Backpressure instead of dropping: wait for room
            await asyncio.wait_for(self._queue.put(event), timeout=self._put_timeout)
        except asyncio.TimeoutError:
            logger.error(
                "EventBus queue blocked for %.0fs, dropping: %s (queue size: %d)",
                self._put_timeout,
                event.event_type,
                self._queue.qsize(),
            )

    async def consume(self) -> AsyncIterator[HostEvent]:
        """Yield events as they arrive. Stops on close()."""
        while not self._closed:
            try:
                event = await asyncio.wait_for(
                    self._queue.get(), timeout=self._poll_interval
                )
                yield event
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        """Stop the consumer loop permanently."""
        self._closed = True

    def reset(self) -> None:
        """Drain leftover events and re-open the bus."""
        while not self._queue.empty():
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
        self._closed = False

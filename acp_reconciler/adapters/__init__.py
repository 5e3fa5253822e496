"""Adapters package - Bridge between the host process and the engine.

This package contains the typed host events, the event bus and channel
that deliver them, and the outbound host client interface.
"""
from __future__ import annotations

__all__ = [
    "EventBus",
    "EventChannel",
    "HostClient",
    "Subscription",
    "dict_to_event",
]

from acp_reconciler.adapters.event_bus import EventBus
from acp_reconciler.adapters.channel import EventChannel, Subscription
from acp_reconciler.adapters.events import dict_to_event
from acp_reconciler.adapters.host import HostClient

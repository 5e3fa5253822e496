"""Shared fixtures: an in-memory host with failure injection and a wired engine."""
from __future__ import annotations

from typing import Any

import pytest

from acp_reconciler.adapters.replay import ReplayHost
from acp_reconciler.engine.config import EngineConfig
from acp_reconciler.engine.engine import ReconciliationEngine
from acp_reconciler.shared.models.message import ChatMessage


class FakeHost(ReplayHost):
    """ReplayHost whose calls can be made to fail by name."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_on: set[str] = set()

    def _record(self, name: str, *args: Any) -> None:
        super()._record(name, *args)
        if name in self.fail_on:
            raise RuntimeError(f"{name} failed")

    async def save_message(self, message: ChatMessage) -> None:
        self._record("save_message", message.id)
        await super().save_message(message)

    def called(self, name: str) -> list[tuple[Any, ...]]:
        return [args for n, args in self.calls if n == name]


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig(poll_interval_seconds=0.01, flush_timeout_seconds=1.0)


@pytest.fixture
def engine(host: FakeHost, config: EngineConfig) -> ReconciliationEngine:
    eng = ReconciliationEngine(host, config=config)
    eng.start(install_flush=False)
    return eng

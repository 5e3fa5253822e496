"""ACP reconciler engine: client-side session and timeline state."""
from .config import EngineConfig, load_yaml_config
from .errors import (
    DuplicateSubscriptionError,
    PromptPendingError,
    ReconcilerError,
    SessionBusyError,
    SessionNotFoundError,
    SessionNotResumableError,
    ToolCallTransitionError,
    UnknownEventKindError,
)

__all__ = [
    # Core engine (lazy import to avoid circular deps)
    "ReconciliationEngine",
    "SessionStore",
    "TimelineReconciler",
    "InteractionCorrelator",
    "SessionRegistry",
    "TeardownFlushGuard",
    "MessagePersister",
    # Config
    "EngineConfig",
    "load_yaml_config",
    # Errors
    "DuplicateSubscriptionError",
    "PromptPendingError",
    "ReconcilerError",
    "SessionBusyError",
    "SessionNotFoundError",
    "SessionNotResumableError",
    "ToolCallTransitionError",
    "UnknownEventKindError",
]


def __getattr__(name: str):
    if name == "ReconciliationEngine":
        from .engine import ReconciliationEngine
        return ReconciliationEngine
    if name == "SessionStore":
        from .state import SessionStore
        return SessionStore
    if name == "TimelineReconciler":
        from .timeline import TimelineReconciler
        return TimelineReconciler
    if name == "InteractionCorrelator":
        from .interactions import InteractionCorrelator
        return InteractionCorrelator
    if name == "SessionRegistry":
        from .registry import SessionRegistry
        return SessionRegistry
    if name == "TeardownFlushGuard":
        from .flush import TeardownFlushGuard
        return TeardownFlushGuard
    if name == "MessagePersister":
        from .persist import MessagePersister
        return MessagePersister
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

"""Session metadata models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import uuid


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


DEFAULT_SESSION_NAME = "New Session"
SESSION_NAME_MAX_LENGTH = 50


class SessionStatus(Enum):
    CREATING = "creating"
    ACTIVE = "active"
    PAUSED = "paused"
    TERMINATED = "terminated"
    ERROR = "error"


# Statuses from which a session can be resumed (given an acp_session_id)
RESUMABLE_STATUSES: frozenset[SessionStatus] = frozenset({
    SessionStatus.PAUSED,
    SessionStatus.TERMINATED,
    SessionStatus.ERROR,
})


@dataclass
class ModelInfo:
    model_id: str
    display_name: str = ""
    description: str | None = None


@dataclass
class ModeInfo:
    mode_id: str
    name: str = ""
    description: str | None = None


@dataclass
class AvailableCommand:
    name: str
    description: str = ""
    input_hint: str | None = None


@dataclass
class CreateSessionRequest:
    name: str
    provider: str
    project_path: str
    base_branch: str | None = None
    use_local: bool = False


@dataclass
class Session:
    """Metadata for one agent conversation."""

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = DEFAULT_SESSION_NAME
    provider: str = "claude"
    status: SessionStatus = SessionStatus.CREATING
    # Set once the agent subprocess acknowledged session creation
    acp_session_id: str | None = None
    worktree_path: str = ""
    branch_name: str = ""
    project_path: str = ""
    is_local: bool = False
    created_at: datetime = field(default_factory=_utcnow)
    model: str | None = None
    mode: str | None = None
    available_models: list[ModelInfo] = field(default_factory=list)
    available_modes: list[ModeInfo] = field(default_factory=list)
    available_commands: list[AvailableCommand] = field(default_factory=list)

    @property
    def can_resume(self) -> bool:
        return self.status in RESUMABLE_STATUSES and bool(self.acp_session_id)


def is_default_session_name(name: str | None, default: str = DEFAULT_SESSION_NAME) -> bool:
    if not name:
        return True
    return name.strip() == default


def derive_session_name(first_message: str, max_length: int = SESSION_NAME_MAX_LENGTH) -> str:
    """Name a session after its first user message."""
    return first_message.strip()[:max_length].strip()

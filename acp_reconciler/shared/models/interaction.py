"""Pending questions from an agent to the user."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class PromptType(Enum):
    CONFIRM = "confirm"
    INPUT = "input"
    PERMISSION = "permission"


@dataclass
class PermissionOption:
    kind: str
    name: str
    option_id: str


@dataclass
class InteractionPrompt:
    session_id: str
    type: PromptType
    message: str
    request_id: str | None = None
    tool_name: str | None = None
    options: list[PermissionOption] = field(default_factory=list)

    def match_option(self, response: str) -> PermissionOption | None:
        """Return the option selected by *response*, if any.

        Matches an option id exactly, or an option name ignoring case.
        """
        text = response.strip()
        for option in self.options:
            if option.option_id == text:
                return option
        lowered = text.lower()
        for option in self.options:
            if option.name.lower() == lowered:
                return option
        return None

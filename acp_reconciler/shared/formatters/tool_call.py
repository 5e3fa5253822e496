"""Terminal rendering of messages and their tool calls.

A message renders as an ordered sequence of steps. When the message has
``parts`` they give the order; legacy messages without parts fall back to
every tool call followed by the text content, which yields the same
sequence a parts-based message would for the same turn.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass

from rich.console import Group, RenderableType
from rich.markup import escape as _esc
from rich.panel import Panel
from rich.text import Text

from acp_reconciler.shared.models.message import (
    ChatMessage,
    ImagePart,
    MessageRole,
    TextPart,
    ToolCallPart,
)
from acp_reconciler.shared.models.plan import PlanEntryStatus
from acp_reconciler.shared.models.tool_call import (
    DiffContent,
    ImageContent,
    ResourceLinkContent,
    TerminalContent,
    TextContent,
    ToolCallInfo,
    ToolCallStatus,
    ToolKind,
)

logger = logging.getLogger(__name__)

# (glyph, style) per status. Status decides the icon except while pending.
STATUS_ICONS: dict[ToolCallStatus, tuple[str, str]] = {
    ToolCallStatus.RUNNING: ("▶", "blue"),
    ToolCallStatus.COMPLETED: ("✓", "green"),
    ToolCallStatus.ERROR: ("✗", "red"),
    ToolCallStatus.INTERRUPTED: ("■", "yellow"),
}

KIND_ICONS: dict[ToolKind, tuple[str, str]] = {
    ToolKind.READ: ("\U0001f4c4", "dim"),
    ToolKind.EDIT: ("✏", "dim"),
    ToolKind.DELETE: ("\U0001f5d1", "dim"),
    ToolKind.MOVE: ("⇄", "dim"),
    ToolKind.SEARCH: ("\U0001f50d", "dim"),
    ToolKind.EXECUTE: ("$", "dim"),
    ToolKind.THINK: ("…", "dim"),
    ToolKind.FETCH: ("⬇", "dim"),
    ToolKind.SWITCH_MODE: ("↻", "dim"),
}

PENDING_ICON: tuple[str, str] = ("○", "dim")

PLAN_ICONS: dict[PlanEntryStatus, tuple[str, str]] = {
    PlanEntryStatus.PENDING: ("○", "dim"),
    PlanEntryStatus.IN_PROGRESS: ("▶", "yellow"),
    PlanEntryStatus.COMPLETED: ("✓", "dim green"),
}


def tool_call_icon(tc: ToolCallInfo) -> tuple[str, str]:
    """Two-stage lookup: status table first, kind table only while pending."""
    icon = STATUS_ICONS.get(tc.status)
    if icon is not None:
        return icon
    if tc.kind is not None:
        return KIND_ICONS.get(tc.kind, PENDING_ICON)
    return PENDING_ICON


# ── Step projection ──


@dataclass
class TextStep:
    content: str


@dataclass
class ImageStep:
    mime_type: str
    uri: str | None = None


@dataclass
class ToolStep:
    tool_call: ToolCallInfo


Step = TextStep | ImageStep | ToolStep


def message_steps(msg: ChatMessage) -> list[Step]:
    """Resolve a message into its ordered render steps."""
    if not msg.parts:
        steps: list[Step] = [ToolStep(tc) for tc in msg.tool_calls]
        if msg.content.strip():
            steps.append(TextStep(msg.content))
        return steps

    steps = []
    for part in msg.parts:
        if isinstance(part, TextPart):
            steps.append(TextStep(part.content))
        elif isinstance(part, ImagePart):
            steps.append(ImageStep(part.mime_type, part.uri))
        elif isinstance(part, ToolCallPart):
            tc = msg.find_tool_call(part.tool_call_id)
            if tc is None:
                logger.debug("Part references unknown tool call %s in message %s", part.tool_call_id, msg.id)
                continue
            steps.append(ToolStep(tc))
    return steps


# ── Rich rendering ──


def _content_lines(tc: ToolCallInfo) -> list[str]:
    lines: list[str] = []
    for item in tc.content:
        if isinstance(item, TextContent):
            lines.extend(f"  {_esc(line)}" for line in item.text.splitlines())
        elif isinstance(item, DiffContent):
            lines.append(f"  [underline]{_esc(item.path)}[/underline]")
            for line in (item.old_text or "").splitlines():
                lines.append(f"  [red]- {_esc(line)}[/red]")
            for line in item.new_text.splitlines():
                lines.append(f"  [green]+ {_esc(line)}[/green]")
        elif isinstance(item, TerminalContent):
            lines.append(f"  [dim]terminal {_esc(item.terminal_id)}[/dim]")
        elif isinstance(item, ImageContent):
            lines.append(f"  [dim]\\[image {_esc(item.mime_type)}][/dim]")
        elif isinstance(item, ResourceLinkContent):
            lines.append(f"  [underline]{_esc(item.name or item.uri)}[/underline]")
    return lines


def render_tool_call(tc: ToolCallInfo, expanded: bool = False) -> Text:
    glyph, style = tool_call_icon(tc)
    header = f"[{style}]{glyph}[/{style}]  [cyan]{_esc(tc.display_title)}[/cyan]  [dim]{tc.status.value}[/dim]"
    lines = [header]
    # Errors always show their output
    if expanded or tc.status is ToolCallStatus.ERROR:
        if tc.raw_input is not None:
            lines.append("  [bold dim]Input[/bold dim]")
            dumped = json.dumps(tc.raw_input, indent=2, default=str)
            lines.extend(f"  {_esc(line)}" for line in dumped.splitlines())
        output = _content_lines(tc)
        if output:
            lines.append("  [bold dim]Output[/bold dim]")
            lines.extend(output)
    return Text.from_markup("\n".join(lines))


def render_message(msg: ChatMessage, expanded: bool = False) -> RenderableType:
    """Render one message as a rich Panel."""
    body: list[RenderableType] = []
    if msg.thinking:
        body.append(Text(msg.thinking.strip(), style="dim italic"))
    if msg.plan_entries:
        plan = []
        for entry in msg.plan_entries:
            glyph, style = PLAN_ICONS[entry.status]
            plan.append(f"[{style}]{glyph}[/{style}] {_esc(entry.content)}")
        body.append(Text.from_markup("\n".join(plan)))
    for step in message_steps(msg):
        if isinstance(step, TextStep):
            body.append(Text(step.content))
        elif isinstance(step, ImageStep):
            body.append(Text(f"[image {step.mime_type}]", style="dim"))
        elif isinstance(step, ToolStep):
            body.append(render_tool_call(step.tool_call, expanded))
    if msg.is_streaming and not any(
        tc.status is ToolCallStatus.RUNNING for tc in msg.tool_calls
    ):
        body.append(Text("…", style="dim"))

    is_user = msg.role is MessageRole.USER
    return Panel(
        Group(*body),
        title=msg.role.value,
        title_align="left",
        subtitle=msg.timestamp.strftime("%H:%M:%S"),
        border_style="green" if is_user else "cyan",
    )

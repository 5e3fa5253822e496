"""CLI entry point for the reconciler.

Usage:
    acp-reconciler replay events.jsonl
    acp-reconciler replay events.jsonl --session abc123 --expanded
    acp-reconciler replay events.jsonl --store-dir ./messages
    acp-reconciler show abc123 --store-dir ./messages
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.rule import Rule
from rich.text import Text

from acp_reconciler.adapters.events import dict_to_event
from acp_reconciler.adapters.replay import ReplayHost, read_event_log
from acp_reconciler.shared.formatters.tool_call import render_message
from acp_reconciler.shared.models.message import ChatMessage
from acp_reconciler.shared.services.persistence import MessageStore

from .config import EngineConfig, load_yaml_config
from .engine import ReconciliationEngine

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="acp-reconciler",
        description="Rebuild ACP agent session timelines from host events",
    )
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="YAML file with an 'engine:' section",
    )
    parser.add_argument(
        "--store-dir",
        default=None,
        help="Directory for persisted messages (default: from config)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    replay = sub.add_parser("replay", help="Apply a JSONL event log and print the result")
    replay.add_argument("events", help="Event log, one host payload per line")
    replay.add_argument("--session", default=None, help="Only print this session")
    replay.add_argument(
        "--expanded", action="store_true", help="Show tool call input and output",
    )
    replay.add_argument(
        "--persist", action="store_true",
        help="Write finalized messages to the store directory",
    )

    show = sub.add_parser("show", help="Print the stored messages of a session")
    show.add_argument("session_id")
    show.add_argument(
        "--expanded", action="store_true", help="Show tool call input and output",
    )
    return parser


def _load_config(args: argparse.Namespace) -> EngineConfig:
    config = EngineConfig.from_env()
    if args.config:
        config = load_yaml_config(args.config, base=config)
    if args.store_dir:
        config.store_dir = args.store_dir
    return config


def _print_timeline(
    console: Console,
    session_id: str,
    messages: list[ChatMessage],
    expanded: bool,
    status: str | None = None,
) -> None:
    title = f"session {session_id}"
    if status:
        title += f" ({status})"
    console.print(Rule(title))
    if not messages:
        console.print("[dim](no messages)[/dim]")
    for message in messages:
        console.print(render_message(message, expanded=expanded))


async def _replay(args: argparse.Namespace, config: EngineConfig, console: Console) -> int:
    path = Path(args.events)
    if not path.is_file():
        console.print(f"[red]Error:[/red] event log not found: {path}")
        return 1

    store = MessageStore(config.store_path) if args.persist else None
    host = ReplayHost(message_store=store)
    engine = ReconciliationEngine(host, config=config)
    engine.start(install_flush=False)

    applied = skipped = 0
    for data in read_event_log(path):
        event = dict_to_event(data)
        try:
            handled = engine.handle_event(event)
        except Exception:
            logger.exception("Error applying %s (session %s)", event.event_type, event.session_id)
            handled = False
        if handled:
            applied += 1
        else:
            skipped += 1

    interrupted = [
        m.id for msgs in engine.store.messages.values() for m in msgs if m.is_streaming
    ]
    await engine.shutdown()
    logger.info("Replayed %d event(s), skipped %d", applied, skipped)

    session_ids = [args.session] if args.session else sorted(engine.store.messages)
    for session_id in session_ids:
        indicator = None
        if session_id in engine.store.sessions:
            indicator = engine.registry.status_indicator(session_id).value
        _print_timeline(
            console, session_id, engine.store.get_messages(session_id),
            args.expanded, indicator,
        )
        error = engine.store.errors.get(session_id)
        if error:
            console.print(Text(error, style="red"))
    if interrupted:
        console.print(f"[yellow]{len(interrupted)} message(s) were still streaming and were interrupted[/yellow]")
    return 0


def _show(args: argparse.Namespace, config: EngineConfig, console: Console) -> int:
    store = MessageStore(config.store_path)
    if args.session_id not in store.list_sessions():
        console.print(f"[red]Error:[/red] no stored messages for session {args.session_id}")
        return 1
    _print_timeline(console, args.session_id, store.load_messages(args.session_id), args.expanded)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    config = _load_config(args)
    level = logging.DEBUG if args.verbose else getattr(logging, config.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )

    console = Console()
    if args.command == "replay":
        return asyncio.run(_replay(args, config, console))
    return _show(args, config, console)


if __name__ == "__main__":
    sys.exit(main())

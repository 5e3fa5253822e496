"""Session message files on disk.

A file is a JSON envelope ``{version, session_id, saved_at, messages}``.
Writes go through a temp file in the same directory that is fsynced and
renamed over the target, so a reader sees the old file or the new one.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

FORMAT_VERSION = "1.0"


def _sync_directory(directory: Path) -> None:
    if not hasattr(os, "O_DIRECTORY"):
        return
    try:
        fd = os.open(str(directory), os.O_RDONLY | os.O_DIRECTORY)
    except OSError as exc:
        logger.debug("Cannot open %s to sync the rename: %s", directory, exc)
        return
    try:
        os.fsync(fd)
    except OSError as exc:
        logger.debug("Rename of a message file in %s not synced: %s", directory, exc)
    finally:
        os.close(fd)


def atomic_write_text(path: Path, content: str) -> None:
    """Replace *path* with *content* in one rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        dir=str(path.parent),
        prefix=f".{path.stem}.",
        suffix=".partial",
        delete=False,
    ) as tmp:
        partial = Path(tmp.name)
        try:
            tmp.write(content)
            tmp.flush()
            os.fsync(tmp.fileno())
        except BaseException:
            tmp.close()
            partial.unlink(missing_ok=True)
            raise
    try:
        os.replace(partial, path)
    except OSError:
        partial.unlink(missing_ok=True)
        raise
    _sync_directory(path.parent)


def write_message_file(path: Path, session_id: str, messages: list[dict[str, Any]]) -> None:
    envelope = {
        "version": FORMAT_VERSION,
        "session_id": session_id,
        "saved_at": datetime.now(timezone.utc).isoformat(),
        "messages": messages,
    }
    atomic_write_text(path, json.dumps(envelope, indent=2, ensure_ascii=False))


def read_message_file(path: Path) -> list[dict[str, Any]]:
    """Return the stored message dicts, or [] for a missing or unreadable file.

    Undecodable bytes and malformed JSON both count as unreadable; the next
    write replaces the file.
    """
    if not path.exists():
        return []
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except ValueError as exc:
        logger.warning("Corrupt message file %s, starting over: %s", path, exc)
        return []
    if not isinstance(data, dict):
        logger.warning("Message file %s has no envelope, starting over", path)
        return []
    if data.get("version") != FORMAT_VERSION:
        logger.info("Message file %s has version %r", path, data.get("version"))
    messages = data.get("messages", [])
    if not isinstance(messages, list):
        return []
    return [m for m in messages if isinstance(m, dict)]

"""Configuration loaded from environment variables or a YAML file.

All settings have sensible defaults. Override via ACPR_* env vars, or an
``engine:`` section in a YAML file:

    engine:
      event_queue_size: 5000
      flush_timeout_seconds: 2.0
      store_dir: ~/.acp-reconciler/messages
      log_level: DEBUG
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_STORE_DIR = "~/.acp-reconciler/messages"


@dataclass
class EngineConfig:
    """Reconciliation engine configuration."""

    # Event bus
    event_queue_size: int = 5000
    put_timeout_seconds: float = 30.0
    poll_interval_seconds: float = 0.5

    # Upper bound on blocking writes when no event loop is running
    # (teardown flush at interpreter exit).
    flush_timeout_seconds: float = 2.0

    # Local message store used by the CLI and by engines built without a
    # host-side store.
    store_dir: str = DEFAULT_STORE_DIR

    # Sessions still carrying this name are renamed after their first
    # user message, truncated to session_name_max_length.
    default_session_name: str = "New Session"
    session_name_max_length: int = 50

    log_level: str = "INFO"

    @property
    def store_path(self) -> Path:
        return Path(self.store_dir).expanduser()

    @classmethod
    def from_env(cls) -> EngineConfig:
        """Load configuration from ACPR_* environment variables."""
        acpr_vars = {k: v for k, v in os.environ.items() if k.startswith("ACPR_")}
        if acpr_vars:
            logger.info(
                "EngineConfig.from_env: ACPR_* env overrides: %s",
                ", ".join(f"{k}={v}" for k, v in sorted(acpr_vars.items())),
            )
        else:
            logger.debug("EngineConfig.from_env: no ACPR_* env vars set, using defaults")

        config = cls(
            event_queue_size=int(os.getenv(
                "ACPR_QUEUE_SIZE", str(cls.event_queue_size)
            )),
            put_timeout_seconds=float(os.getenv(
                "ACPR_PUT_TIMEOUT", str(cls.put_timeout_seconds)
            )),
            poll_interval_seconds=float(os.getenv(
                "ACPR_POLL_INTERVAL", str(cls.poll_interval_seconds)
            )),
            flush_timeout_seconds=float(os.getenv(
                "ACPR_FLUSH_TIMEOUT", str(cls.flush_timeout_seconds)
            )),
            store_dir=os.getenv("ACPR_STORE_DIR", cls.store_dir),
            default_session_name=os.getenv(
                "ACPR_DEFAULT_SESSION_NAME", cls.default_session_name
            ),
            session_name_max_length=int(os.getenv(
                "ACPR_SESSION_NAME_MAX_LENGTH", str(cls.session_name_max_length)
            )),
            log_level=os.getenv("ACPR_LOG_LEVEL", cls.log_level),
        )
        logger.debug(
            "EngineConfig.from_env: store_dir=%s log_level=%s",
            config.store_dir, config.log_level,
        )
        return config


def _coerce(default: Any, value: Any) -> Any:
    if isinstance(default, bool):
        return str(value).lower() in {"1", "true", "yes"}
    if isinstance(default, int):
        return int(value)
    if isinstance(default, float):
        return float(value)
    return str(value)


def load_yaml_config(path: str | Path, base: EngineConfig | None = None) -> EngineConfig:
    """Load the ``engine:`` section of a YAML file on top of *base*.

    Unknown keys are logged and ignored.
    """
    path = Path(path)
    try:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.error("load_yaml_config: config file not found at %s", path.absolute())
        raise
    except yaml.YAMLError as exc:
        logger.error("load_yaml_config: YAML parse error in %s: %s", path, exc)
        raise

    config = base or EngineConfig()
    section = raw.get("engine") or {}
    if not isinstance(section, dict):
        logger.warning("load_yaml_config: 'engine' section in %s is not a mapping", path)
        return config

    known = {f.name for f in fields(EngineConfig)}
    for key, value in section.items():
        if key not in known:
            logger.warning("load_yaml_config: unknown engine key %r in %s", key, path)
            continue
        setattr(config, key, _coerce(getattr(config, key), value))
    logger.info("Loaded engine config from %s (%d key(s))", path, len(section))
    return config

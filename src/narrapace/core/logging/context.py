"""
Session Context and Configuration State for Logging.

The session id is held in a context variable so that every log line
emitted while a playback session handles a control or a narrator
callback can be correlated with that session.

Environment Variables:
    - NARRAPACE_LOG_LEVEL: Override log level (1-4 or name)
    - NARRAPACE_LOG_DIR: Directory for the JSONL log file
    - NARRAPACE_JSONL_FILE: JSONL log filename
    - NARRAPACE_SETTINGS: Path to settings.yaml
"""
from __future__ import annotations

import os
from contextvars import ContextVar
from typing import Any, Dict

import yaml

from .levels import LEVEL_NAMES, LogLevel

# "-" for log lines outside any session
_session_id: ContextVar[str] = ContextVar("session_id", default="-")

_configured: bool = False
_log_config: Dict[str, Any] = {}
_current_level: LogLevel = LogLevel.NORMAL


def get_session_id() -> str:
    """Session id for the current context, or "-"."""
    return _session_id.get()


def set_session_id(sid: str) -> None:
    """Bind a session id to the current context."""
    _session_id.set(sid)


def get_level() -> LogLevel:
    return _current_level


def set_level(level: LogLevel) -> None:
    global _current_level
    _current_level = level


def get_level_name() -> str:
    return LEVEL_NAMES.get(int(_current_level), "NORMAL")


def is_configured() -> bool:
    return _configured


def set_configured(value: bool) -> None:
    global _configured
    _configured = value


def get_log_config() -> Dict[str, Any]:
    return _log_config


def set_log_config(config: Dict[str, Any]) -> None:
    global _log_config
    _log_config = config


def read_logging_config() -> Dict[str, Any]:
    """
    Resolve logging configuration.

    Priority (highest first): environment variables, the ``logging``
    section of settings.yaml, defaults.
    """
    cfg: Dict[str, Any] = {}

    settings_path = os.getenv("NARRAPACE_SETTINGS", "config/settings.yaml")
    try:
        from narrapace.core.config import load_settings
        settings = load_settings(settings_path)
        cfg.update(settings.raw.get("logging", {}) or {})
    except (OSError, yaml.YAMLError):
        # No usable settings file; environment and defaults still apply
        pass

    if os.getenv("NARRAPACE_LOG_LEVEL"):
        cfg["level"] = os.environ["NARRAPACE_LOG_LEVEL"]
    if os.getenv("NARRAPACE_LOG_DIR"):
        cfg["log_dir"] = os.environ["NARRAPACE_LOG_DIR"]
    if os.getenv("NARRAPACE_JSONL_FILE"):
        cfg["jsonl_file"] = os.environ["NARRAPACE_JSONL_FILE"]

    return cfg

"""
Log Formatters for JSON and Console Output.

    JsonlFormatter: one JSON object per line, for the rotating log file
    ColoredConsoleFormatter: human-readable colored lines for the terminal

Output Examples:
    JSONL:
        {"ts":"2026-01-15T14:30:05+03:00","level":3,"tag":"INFO","message":"rate_sample","session_id":"a1b2c3","extra":{"rate":24.0}}

    Console:
        14:30:05 [ INFO  ] (a1b2c3) rate_sample path=segment rate=24.0

Console coloring of pacing fields:
    rate / instant_rate:  inside [5, 35] cyan, outside yellow
    progress:             green once a page is finished (>= 1.0)
    accepted=False:       yellow (rejected rate sample)
"""
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict

from .colors import Colors, get_tag_color


def _colorize(text: str, color: str) -> str:
    # Read the flag from the package each time so tests can toggle it
    import narrapace.core.logging as log_module
    if not getattr(log_module, "_USE_COLORS", False):
        return text
    return f"{color}{text}{Colors.RESET}"


class JsonlFormatter(logging.Formatter):
    """Format records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created).astimezone().isoformat(),
            "level": getattr(record, "numeric_level", 2),
            "tag": getattr(record, "tag", record.levelname),
            "message": record.getMessage(),
            "session_id": getattr(record, "session_id", "-"),
        }

        seconds = getattr(record, "seconds", None)
        if seconds is not None:
            payload["seconds"] = seconds

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            payload["extra"] = extra_data

        return json.dumps(payload, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """
    Format records for the terminal.

    Format:
        HH:MM:SS [ TAG   ] (session) message key=value 0.123s
    """

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        tag = getattr(record, "tag", record.levelname)
        sid = getattr(record, "session_id", "-")

        parts = [
            _colorize(ts, Colors.DIM),
            _colorize(f"[{tag:^7}]", get_tag_color(tag)),
        ]
        if sid != "-":
            parts.append(_colorize(f"({sid})", Colors.DIM + Colors.CYAN))
        parts.append(record.getMessage())

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            for k, v in extra_data.items():
                parts.append(_colorize(f"{k}={v}", self._field_color(k, v)))

        seconds = getattr(record, "seconds", None)
        if seconds is not None:
            parts.append(_colorize(f"{seconds:.3f}s", Colors.MAGENTA))

        return " ".join(parts)

    @staticmethod
    def _field_color(key: str, value: Any) -> str:
        if key in ("rate", "instant_rate", "old_rate") and isinstance(value, (int, float)):
            return Colors.CYAN if 5.0 <= value <= 35.0 else Colors.YELLOW
        if key == "progress" and isinstance(value, (int, float)):
            return Colors.GREEN if value >= 1.0 else Colors.DIM
        if key == "accepted" and value is False:
            return Colors.YELLOW
        if key == "error":
            return Colors.RED
        return Colors.DIM

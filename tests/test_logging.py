"""Tests for the logging level system, formatters and session correlation."""
from __future__ import annotations

import json
import logging

import pytest


def _record(msg="rate_sample", **extra):
    record = logging.LogRecord("narrapace.test", logging.INFO, __file__, 1, msg, None, None)
    record.tag = "INFO"
    record.session_id = "abc123"
    record.seconds = None
    record.numeric_level = 3
    record.extra_data = extra or None
    return record


class TestLogLevels:
    """Test LogLevel enum and coercion."""

    def test_level_enum_values(self):
        from narrapace.core.logging import LogLevel

        assert LogLevel.MINIMAL == 1
        assert LogLevel.NORMAL == 2
        assert LogLevel.VERBOSE == 3
        assert LogLevel.DEBUG == 4

    @pytest.mark.parametrize("value,expected", [
        (1, 1), (4, 4), ("3", 3), ("verbose", 3), ("INFO", 2), ("warning", 1),
        (logging.WARNING, 1), (logging.INFO, 2), (logging.DEBUG, 4), ("nonsense", 2), (None, 2),
    ])
    def test_coerce_level(self, value, expected):
        from narrapace.core.logging import coerce_level

        assert coerce_level(value) == expected

    def test_level_filtering(self, caplog):
        from narrapace.core.logging import LogLevel, get_level, get_logger, set_level, verbose

        previous = get_level()
        log = get_logger("narrapace.test")
        try:
            set_level(LogLevel.NORMAL)
            with caplog.at_level(logging.DEBUG - 5):
                verbose(log, "hidden_at_normal")
            assert "hidden_at_normal" not in caplog.text

            set_level(LogLevel.VERBOSE)
            with caplog.at_level(logging.DEBUG - 5):
                verbose(log, "shown_at_verbose")
            assert "shown_at_verbose" in caplog.text
        finally:
            set_level(previous)


class TestSessionContext:
    """Test session id correlation."""

    def test_session_id_attached(self, caplog):
        from narrapace.core.logging import LogLevel, get_level, get_logger, info, set_level, set_session_id

        previous = get_level()
        set_level(LogLevel.NORMAL)
        set_session_id("sess-42")
        try:
            with caplog.at_level(logging.INFO):
                info(get_logger("narrapace.test"), "session_opened", book_id="b1")
            record = next(r for r in caplog.records if r.getMessage() == "session_opened")
            assert record.session_id == "sess-42"
            assert record.extra_data == {"book_id": "b1"}
        finally:
            set_session_id("-")
            set_level(previous)


class TestFormatters:
    """Test JSONL and console formatters."""

    def test_jsonl_formatter(self):
        from narrapace.core.logging import JsonlFormatter

        line = JsonlFormatter().format(_record(rate=24.0))
        payload = json.loads(line)
        assert payload["message"] == "rate_sample"
        assert payload["session_id"] == "abc123"
        assert payload["level"] == 3
        assert payload["extra"] == {"rate": 24.0}

    def test_console_formatter_without_colors(self, monkeypatch):
        import narrapace.core.logging as log_module
        from narrapace.core.logging import ColoredConsoleFormatter

        monkeypatch.setattr(log_module, "_USE_COLORS", False)
        line = ColoredConsoleFormatter().format(_record(path="segment", rate=24.0))
        assert "(abc123)" in line
        assert "rate_sample path=segment rate=24.0" in line
        assert "\033[" not in line

    def test_console_formatter_colors_out_of_range_rate(self, monkeypatch):
        import narrapace.core.logging as log_module
        from narrapace.core.logging import ColoredConsoleFormatter, Colors

        monkeypatch.setattr(log_module, "_USE_COLORS", True)
        line = ColoredConsoleFormatter().format(_record(rate=40.0))
        assert f"{Colors.YELLOW}rate=40.0{Colors.RESET}" in line

    def test_no_color_env(self, monkeypatch):
        from narrapace.core.logging import supports_color

        monkeypatch.setenv("NARRAPACE_NO_COLOR", "1")
        assert supports_color() is False

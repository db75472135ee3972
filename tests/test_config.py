"""
Tests for configuration validation and defaults.

Tests cover:
- Defaults class values
- PacerConfig.from_settings() - all sections
- ConfigValidationError on invalid values
- String log level coercion ("DEBUG" -> 4)
- Settings properties and environment overrides
- load_settings() / load_settings_or_default()
"""
from pathlib import Path

import pytest

from narrapace.core.config import (
    ConfigValidationError,
    Defaults,
    PacerConfig,
    Settings,
    load_settings,
    load_settings_or_default,
)


class TestDefaults:
    """Tests for Defaults class values."""

    def test_pacing_defaults(self):
        assert Defaults.PACING_DEFAULT_RATE == 15.0
        assert Defaults.PACING_MIN_RATE == 5.0
        assert Defaults.PACING_MAX_RATE == 35.0
        assert Defaults.PACING_EMA_WEIGHT == 0.4

    def test_gates(self):
        assert (Defaults.PACING_LIVE_GATE_LOW, Defaults.PACING_LIVE_GATE_HIGH) == (2.0, 50.0)
        assert (Defaults.PACING_HISTORY_GATE_LOW, Defaults.PACING_HISTORY_GATE_HIGH) == (5.0, 30.0)

    def test_playback_defaults(self):
        assert 1.0 in Defaults.SPEEDS
        assert Defaults.SEEK_STEP_SECONDS == 10.0
        assert Defaults.SEEK_SETTLE_DELAY_S == 0.1

    def test_logging_defaults(self):
        assert Defaults.LOGGING_LEVEL == 2


class TestPacerConfigFromSettings:
    """Tests for PacerConfig.from_settings()."""

    def test_empty_settings_use_defaults(self):
        config = PacerConfig.from_settings(Settings(raw={}))
        assert config.pacing.default_rate == Defaults.PACING_DEFAULT_RATE
        assert config.playback.speeds == Defaults.SPEEDS
        assert config.narrator.engine == "simulated"
        assert config.logging.level == 2

    def test_values_read(self):
        config = PacerConfig.from_settings(Settings(raw={
            "pacing": {"default_rate": 12, "ema_weight": 0.5},
            "playback": {"speeds": [1, 2], "settle_delay_s": 0},
            "narrator": {"allowed_locales": ["en-GB"]},
        }))
        assert config.pacing.default_rate == 12.0
        assert config.pacing.ema_weight == 0.5
        assert config.playback.speeds == (1.0, 2.0)
        assert config.playback.settle_delay_s == 0.0
        assert config.narrator.allowed_locales == ("en-GB",)

    @pytest.mark.parametrize("raw", [
        {"pacing": {"default_rate": 0}},
        {"pacing": {"min_rate": 40, "max_rate": 35}},
        {"pacing": {"ema_weight": 1.5}},
        {"pacing": {"live_gate_low": 50, "live_gate_high": 2}},
        {"pacing": {"min_pause_sample_s": -1}},
        {"playback": {"speeds": []}},
        {"playback": {"speeds": [1.25, 1.5]}},
        {"playback": {"seek_step_seconds": 0}},
        {"narrator": {"simulated_rate": -2}},
        {"logging": {"level": 9}},
    ])
    def test_invalid_values_rejected(self, raw):
        with pytest.raises(ConfigValidationError):
            PacerConfig.from_settings(Settings(raw=raw))

    @pytest.mark.parametrize("name,expected", [("DEBUG", 4), ("verbose", 3), ("INFO", 2), ("minimal", 1)])
    def test_string_log_level(self, name, expected):
        config = PacerConfig.from_settings(Settings(raw={"logging": {"level": name}}))
        assert config.logging.level == expected


class TestSettings:
    """Tests for Settings properties and loading."""

    def test_narrator_env_override(self, monkeypatch):
        monkeypatch.setenv("NARRAPACE_NARRATOR", "pyttsx3")
        settings = Settings(raw={"narrator": {"engine": "simulated"}})
        assert settings.narrator_engine == "pyttsx3"
        assert settings.get_config().narrator.engine == "pyttsx3"

    def test_store_dir_env_override(self, monkeypatch, tmp_path):
        monkeypatch.setenv("NARRAPACE_STORE_DIR", str(tmp_path))
        assert Settings(raw={}).store_dir == str(tmp_path)

    def test_store_dir_from_raw(self, monkeypatch):
        monkeypatch.delenv("NARRAPACE_STORE_DIR", raising=False)
        assert Settings(raw={"store": {"base_dir": "/data/books"}}).store_dir == "/data/books"

    def test_load_settings_missing_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(str(tmp_path / "nope.yaml"))

    def test_load_settings_or_default(self, tmp_path):
        assert load_settings_or_default(str(tmp_path / "nope.yaml")).raw == {}

    def test_load_settings_yaml(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("pacing:\n  default_rate: 18\n", encoding="utf-8")
        settings = load_settings(str(path))
        assert settings.get_config().pacing.default_rate == 18.0

    def test_repository_settings_file_valid(self):
        settings = load_settings(str(Path(__file__).resolve().parent.parent / "config" / "settings.yaml"))
        config = settings.get_config()
        assert config.pacing.max_rate == 35.0

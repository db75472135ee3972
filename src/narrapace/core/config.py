"""
Configuration Management for narrapace.

This module provides centralized configuration handling with:
    - Default values (Defaults class)
    - Dataclass-based configuration objects
    - YAML file loading with environment variable overrides
    - Validation with meaningful error messages

Configuration Hierarchy (highest priority first):
    1. Environment variables (NARRAPACE_NARRATOR, NARRAPACE_STORE_DIR, etc.)
    2. YAML config file (config/settings.yaml)
    3. Defaults class values

Example settings.yaml:
    pacing:
      default_rate: 15.0
      ema_weight: 0.4

    seek:
      step_seconds: 10

    narrator:
      engine: simulated

    store:
      base_dir: ./library

    logging:
      level: 2  # NORMAL
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Tuple
import os
import yaml


class ConfigValidationError(Exception):
    """
    Raised when configuration validation fails.

    This exception is thrown when a configuration value is outside
    acceptable bounds or of the wrong type.
    """
    pass


class Defaults:
    """
    Centralized default configuration values.

    Sections:
        - Pacing: Rate estimator constants
        - Playback: Speed ladder, seek step and settle delay
        - Store: JSON library location
        - Narrator: Speech engine selection
        - Logging: Log level and formatting
    """

    # ─────────────────────────────────────────────────────────────────────────
    # Pacing (rate estimator)
    # ─────────────────────────────────────────────────────────────────────────
    PACING_DEFAULT_RATE = 15.0          # chars/sec at 1.0x
    PACING_MIN_RATE = 5.0               # Estimate clamp floor
    PACING_MAX_RATE = 35.0              # Estimate clamp ceiling
    PACING_EMA_WEIGHT = 0.4             # Weight kept from the previous estimate
    PACING_LIVE_GATE_LOW = 2.0          # Live sample admission (exclusive)
    PACING_LIVE_GATE_HIGH = 50.0
    PACING_HISTORY_GATE_LOW = 5.0       # History recalculation acceptance (exclusive)
    PACING_HISTORY_GATE_HIGH = 30.0
    PACING_LIVE_INTERVAL_S = 1.0        # Min seconds between live samples
    PACING_MIN_PAUSE_SAMPLE_S = 2.0     # Pauses shorter than this are not sampled

    # ─────────────────────────────────────────────────────────────────────────
    # Playback
    # ─────────────────────────────────────────────────────────────────────────
    SPEEDS: Tuple[float, ...] = (0.5, 0.75, 1.0, 1.25, 1.5, 1.75, 2.0)
    SEEK_STEP_SECONDS = 10.0            # ±10s buttons
    SEEK_SETTLE_DELAY_S = 0.1           # Wait before resuming after a seek

    # ─────────────────────────────────────────────────────────────────────────
    # Store
    # ─────────────────────────────────────────────────────────────────────────
    STORE_BASE_DIR = "./library"

    # ─────────────────────────────────────────────────────────────────────────
    # Narrator
    # ─────────────────────────────────────────────────────────────────────────
    NARRATOR_ENGINE = "simulated"
    NARRATOR_SIMULATED_RATE = 15.0      # chars/sec the simulated voice speaks at 1.0x
    NARRATOR_ALLOWED_LOCALES: Tuple[str, ...] = ("en-US", "en-GB", "en-IN", "hi-IN")

    # ─────────────────────────────────────────────────────────────────────────
    # Logging
    # ─────────────────────────────────────────────────────────────────────────
    LOGGING_TEXT_PREVIEW_CHARS = 60
    LOGGING_LEVEL = 2                   # 1=MINIMAL, 2=NORMAL, 3=VERBOSE, 4=DEBUG


@dataclass
class PacingConfig:
    """
    Rate estimator configuration.

    The live gate and history gate are different intervals;
    the live and segment paths clamp their result to [min_rate, max_rate].
    """
    default_rate: float = Defaults.PACING_DEFAULT_RATE
    min_rate: float = Defaults.PACING_MIN_RATE
    max_rate: float = Defaults.PACING_MAX_RATE
    ema_weight: float = Defaults.PACING_EMA_WEIGHT
    live_gate_low: float = Defaults.PACING_LIVE_GATE_LOW
    live_gate_high: float = Defaults.PACING_LIVE_GATE_HIGH
    history_gate_low: float = Defaults.PACING_HISTORY_GATE_LOW
    history_gate_high: float = Defaults.PACING_HISTORY_GATE_HIGH
    live_interval_s: float = Defaults.PACING_LIVE_INTERVAL_S
    min_pause_sample_s: float = Defaults.PACING_MIN_PAUSE_SAMPLE_S


@dataclass
class PlaybackConfig:
    """Speed ladder and seek behaviour."""
    speeds: Tuple[float, ...] = Defaults.SPEEDS
    seek_step_seconds: float = Defaults.SEEK_STEP_SECONDS
    settle_delay_s: float = Defaults.SEEK_SETTLE_DELAY_S


@dataclass
class StoreConfig:
    """
    JSON library configuration.

    Books live under {base_dir}/books/, user settings in
    {base_dir}/user_settings.json.
    """
    base_dir: str = Defaults.STORE_BASE_DIR


@dataclass
class NarratorConfig:
    """Speech engine selection and voice filtering."""
    engine: str = Defaults.NARRATOR_ENGINE
    simulated_rate: float = Defaults.NARRATOR_SIMULATED_RATE
    allowed_locales: Tuple[str, ...] = Defaults.NARRATOR_ALLOWED_LOCALES


@dataclass
class LoggingConfig:
    """
    Logging configuration.

    Log levels:
        1 = MINIMAL: Startup, shutdown, errors only
        2 = NORMAL: Session lifecycle, persistence (default)
        3 = VERBOSE: Rate samples, seeks
        4 = DEBUG: Boundary callbacks, internal state
    """
    text_preview_chars: int = Defaults.LOGGING_TEXT_PREVIEW_CHARS
    level: int = Defaults.LOGGING_LEVEL


@dataclass
class PacerConfig:
    """
    Validated configuration for the player service.

    Usage:
        settings = load_settings("config/settings.yaml")
        config = PacerConfig.from_settings(settings)
        print(config.pacing.default_rate)
    """
    pacing: PacingConfig = field(default_factory=PacingConfig)
    playback: PlaybackConfig = field(default_factory=PlaybackConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    narrator: NarratorConfig = field(default_factory=NarratorConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "PacerConfig":
        """
        Create PacerConfig from Settings with validation.

        Args:
            settings: Raw Settings object loaded from YAML.

        Returns:
            Validated PacerConfig instance.

        Raises:
            ConfigValidationError: If any value fails validation.
        """
        raw = settings.raw

        # ─────────────────────────────────────────────────────────────────────
        # Pacing configuration
        # ─────────────────────────────────────────────────────────────────────
        pacing_raw = raw.get("pacing", {})
        pacing = PacingConfig(
            default_rate=float(pacing_raw.get("default_rate", Defaults.PACING_DEFAULT_RATE)),
            min_rate=float(pacing_raw.get("min_rate", Defaults.PACING_MIN_RATE)),
            max_rate=float(pacing_raw.get("max_rate", Defaults.PACING_MAX_RATE)),
            ema_weight=float(pacing_raw.get("ema_weight", Defaults.PACING_EMA_WEIGHT)),
            live_gate_low=float(pacing_raw.get("live_gate_low", Defaults.PACING_LIVE_GATE_LOW)),
            live_gate_high=float(pacing_raw.get("live_gate_high", Defaults.PACING_LIVE_GATE_HIGH)),
            history_gate_low=float(pacing_raw.get("history_gate_low", Defaults.PACING_HISTORY_GATE_LOW)),
            history_gate_high=float(pacing_raw.get("history_gate_high", Defaults.PACING_HISTORY_GATE_HIGH)),
            live_interval_s=float(pacing_raw.get("live_interval_s", Defaults.PACING_LIVE_INTERVAL_S)),
            min_pause_sample_s=float(pacing_raw.get("min_pause_sample_s", Defaults.PACING_MIN_PAUSE_SAMPLE_S)),
        )
        cls._validate_positive("pacing.default_rate", pacing.default_rate)
        cls._validate_positive("pacing.min_rate", pacing.min_rate)
        cls._validate_ordered("pacing.min_rate", pacing.min_rate, "pacing.max_rate", pacing.max_rate)
        cls._validate_range("pacing.ema_weight", pacing.ema_weight, 0.0, 1.0)
        cls._validate_ordered("pacing.live_gate_low", pacing.live_gate_low,
                              "pacing.live_gate_high", pacing.live_gate_high)
        cls._validate_ordered("pacing.history_gate_low", pacing.history_gate_low,
                              "pacing.history_gate_high", pacing.history_gate_high)
        cls._validate_positive("pacing.live_interval_s", pacing.live_interval_s)
        cls._validate_non_negative("pacing.min_pause_sample_s", pacing.min_pause_sample_s)

        # ─────────────────────────────────────────────────────────────────────
        # Playback configuration
        # ─────────────────────────────────────────────────────────────────────
        playback_raw = raw.get("playback", {})
        speeds = tuple(float(s) for s in playback_raw.get("speeds", Defaults.SPEEDS))
        playback = PlaybackConfig(
            speeds=speeds,
            seek_step_seconds=float(playback_raw.get("seek_step_seconds", Defaults.SEEK_STEP_SECONDS)),
            settle_delay_s=float(playback_raw.get("settle_delay_s", Defaults.SEEK_SETTLE_DELAY_S)),
        )
        if not playback.speeds:
            raise ConfigValidationError("playback.speeds must not be empty")
        if 1.0 not in playback.speeds:
            raise ConfigValidationError(f"playback.speeds must contain 1.0, got {list(playback.speeds)}")
        for s in playback.speeds:
            cls._validate_positive("playback.speeds", s)
        cls._validate_positive("playback.seek_step_seconds", playback.seek_step_seconds)
        cls._validate_non_negative("playback.settle_delay_s", playback.settle_delay_s)

        # ─────────────────────────────────────────────────────────────────────
        # Store configuration (with environment variable override)
        # ─────────────────────────────────────────────────────────────────────
        store = StoreConfig(base_dir=settings.store_dir)

        # ─────────────────────────────────────────────────────────────────────
        # Narrator configuration
        # ─────────────────────────────────────────────────────────────────────
        narrator_raw = raw.get("narrator", {})
        narrator = NarratorConfig(
            engine=settings.narrator_engine,
            simulated_rate=float(narrator_raw.get("simulated_rate", Defaults.NARRATOR_SIMULATED_RATE)),
            allowed_locales=tuple(narrator_raw.get("allowed_locales", Defaults.NARRATOR_ALLOWED_LOCALES)),
        )
        cls._validate_positive("narrator.simulated_rate", narrator.simulated_rate)

        # ─────────────────────────────────────────────────────────────────────
        # Logging configuration
        # ─────────────────────────────────────────────────────────────────────
        logging_raw = raw.get("logging", {})
        log_level_raw = logging_raw.get("level", Defaults.LOGGING_LEVEL)

        # Handle string log levels (e.g., "INFO", "DEBUG")
        if isinstance(log_level_raw, str):
            level_map = {
                "MINIMAL": 1, "1": 1,
                "NORMAL": 2, "INFO": 2, "2": 2,
                "VERBOSE": 3, "3": 3,
                "DEBUG": 4, "TRACE": 4, "4": 4,
            }
            log_level = level_map.get(log_level_raw.upper(), Defaults.LOGGING_LEVEL)
        else:
            log_level = int(log_level_raw)

        logging_cfg = LoggingConfig(
            text_preview_chars=int(logging_raw.get("text_preview_chars", Defaults.LOGGING_TEXT_PREVIEW_CHARS)),
            level=log_level,
        )
        cls._validate_non_negative("logging.text_preview_chars", logging_cfg.text_preview_chars)
        cls._validate_range("logging.level", logging_cfg.level, 1, 4)

        return cls(
            pacing=pacing,
            playback=playback,
            store=store,
            narrator=narrator,
            logging=logging_cfg,
        )

    @staticmethod
    def _validate_positive(name: str, value: int | float) -> None:
        """Validate that a value is positive (> 0)."""
        if value <= 0:
            raise ConfigValidationError(f"{name} must be positive, got {value}")

    @staticmethod
    def _validate_non_negative(name: str, value: int | float) -> None:
        """Validate that a value is non-negative (>= 0)."""
        if value < 0:
            raise ConfigValidationError(f"{name} must be non-negative, got {value}")

    @staticmethod
    def _validate_range(name: str, value: int | float, min_val: int | float, max_val: int | float) -> None:
        """Validate that a value is within a range [min_val, max_val]."""
        if not (min_val <= value <= max_val):
            raise ConfigValidationError(f"{name} must be between {min_val} and {max_val}, got {value}")

    @staticmethod
    def _validate_ordered(low_name: str, low: float, high_name: str, high: float) -> None:
        """Validate that low < high."""
        if not low < high:
            raise ConfigValidationError(f"{low_name} must be less than {high_name}, got {low} >= {high}")


@dataclass(frozen=True)
class Settings:
    """
    Immutable settings container loaded from YAML.

    This is the raw settings object before validation. Use
    get_config() to get a validated PacerConfig.

    Attributes:
        raw: Dictionary of raw configuration values.
    """
    raw: Dict[str, Any]

    @property
    def narrator_engine(self) -> str:
        """Get the narrator engine name (simulated, pyttsx3)."""
        env = os.getenv("NARRAPACE_NARRATOR")
        if env:
            return env
        return str(self.raw.get("narrator", {}).get("engine", Defaults.NARRATOR_ENGINE))

    @property
    def store_dir(self) -> str:
        """Get the library base directory."""
        return os.getenv("NARRAPACE_STORE_DIR") or str(
            self.raw.get("store", {}).get("base_dir", Defaults.STORE_BASE_DIR)
        )

    def get_config(self) -> PacerConfig:
        """
        Get validated PacerConfig from these settings.

        Raises:
            ConfigValidationError: If validation fails.
        """
        return PacerConfig.from_settings(self)


def load_settings(path: str = "config/settings.yaml") -> Settings:
    """
    Load settings from a YAML configuration file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Settings object with loaded configuration.

    Raises:
        FileNotFoundError: If the settings file doesn't exist.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"settings file not found: {p.resolve()}")

    with p.open("r", encoding="utf-8") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    return Settings(raw=raw)


def load_settings_or_default(path: str = "config/settings.yaml") -> Settings:
    """Load settings, falling back to empty settings when the file is absent."""
    try:
        return load_settings(path)
    except FileNotFoundError:
        return Settings(raw={})

"""
Pacing Layer.

    - rate.py: RateEstimator (self-correcting chars/sec estimate)
    - timeline.py: offset/time conversions, seek arithmetic, time formatting
    - narrator.py: BaseNarrator contract, voice catalogue, get_narrator()
    - driver.py: PlaybackDriver state machine for one open book
"""
from .driver import PlaybackDriver, PlaybackSession, PlaybackState, PlayerSnapshot
from .narrator import BaseNarrator, NarrationError, Voice, default_voice, filter_voices, get_narrator
from .rate import RateEstimator, RateSample, initial_rate
from .timeline import (
    SeekTarget,
    TimeDisplay,
    compute_seek,
    compute_time_display,
    format_time,
    js_round,
)

__all__ = [
    "PlaybackDriver",
    "PlaybackSession",
    "PlaybackState",
    "PlayerSnapshot",
    "BaseNarrator",
    "NarrationError",
    "Voice",
    "default_voice",
    "filter_voices",
    "get_narrator",
    "RateEstimator",
    "RateSample",
    "initial_rate",
    "SeekTarget",
    "TimeDisplay",
    "compute_seek",
    "compute_time_display",
    "format_time",
    "js_round",
]

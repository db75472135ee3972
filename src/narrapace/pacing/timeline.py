"""
Offset/Time Conversions and Seek Arithmetic.

Character offsets are the ground truth for position. Every displayed time
is derived from (characters, rate estimate, speed) on demand, so a rate
correction mid-playback rescales all displayed times consistently. There
is no separately accumulated "elapsed seconds" counter.

Formulas (eff = rate * speed):
    page duration    = page_chars / eff
    page elapsed     = page duration * progress
    book duration    = total_chars / eff
    book elapsed     = (chars_in_prior_pages + page_chars * progress) / eff
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence

from narrapace.core.config import Defaults

# Displayed as "--:--" above this (about 1000 hours)
MAX_DISPLAY_SECONDS = 3_600_000


def js_round(value: float) -> int:
    """Round half up (toward +inf), e.g. -2.5 -> -2, 2.5 -> 3."""
    return int(math.floor(value + 0.5))


def safe_effective_rate(rate: float, speed: float) -> float:
    """rate * speed, or the default rate when that product is not positive."""
    eff = rate * speed
    return eff if eff > 0 else Defaults.PACING_DEFAULT_RATE


def progress_for(char_offset: int, page_length: int) -> float:
    """Fraction of the page covered by an offset, clamped to [0, 1]."""
    length = max(1, page_length)
    return min(1.0, max(0.0, char_offset / length))


def offset_for(progress: float, page_length: int) -> int:
    """floor(progress * page_length)."""
    return int(math.floor(progress * page_length))


def format_time(seconds: float) -> str:
    """
    Format seconds as M:SS.

    Example:
        >>> format_time(75.9)
        '1:15'
        >>> format_time(float("nan"))
        '--:--'
    """
    if not math.isfinite(seconds) or seconds < 0 or seconds > MAX_DISPLAY_SECONDS:
        return "--:--"
    mins = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{mins}:{secs:02d}"


@dataclass(frozen=True)
class TimeDisplay:
    """Derived times for the current position, all in seconds."""
    page_duration: float
    page_elapsed: float
    book_duration: float
    book_elapsed: float

    def formatted(self) -> dict:
        return {
            "page_elapsed": format_time(self.page_elapsed),
            "page_duration": format_time(self.page_duration),
            "book_elapsed": format_time(self.book_elapsed),
            "book_duration": format_time(self.book_duration),
        }


def compute_time_display(
    page_lengths: Sequence[int],
    page_index: int,
    progress: float,
    rate: float,
    speed: float,
) -> TimeDisplay:
    """Derive page and book times from character counts and the current rate."""
    eff = safe_effective_rate(rate, speed)
    page_chars = page_lengths[page_index] if 0 <= page_index < len(page_lengths) else 0
    prior_chars = sum(page_lengths[:max(0, page_index)])
    page_duration = page_chars / eff
    return TimeDisplay(
        page_duration=page_duration,
        page_elapsed=page_duration * progress,
        book_duration=sum(page_lengths) / eff,
        book_elapsed=(prior_chars + page_chars * progress) / eff,
    )


@dataclass(frozen=True)
class SeekTarget:
    """Where a relative seek lands."""
    page_index: int
    char_offset: int
    crossed_page: bool = False


def compute_seek(
    seconds: float,
    rate: float,
    speed: float,
    page_index: int,
    char_offset: int,
    page_length: int,
    previous_page_length: Optional[int] = None,
) -> SeekTarget:
    """
    Resolve a relative seek of ``seconds`` (negative rewinds).

    Backward overflow past the page start lands on the previous page at
    ``previous_page_length + overflow`` (floored at 0); on the first page it
    clamps to 0. Forward seeks never cross pages and clamp to the last
    character of the current page.

    Example:
        >>> compute_seek(-10, 20.0, 1.0, page_index=1, char_offset=50,
        ...              page_length=1000, previous_page_length=800)
        SeekTarget(page_index=0, char_offset=650, crossed_page=True)
    """
    chars_to_skip = js_round(seconds * rate * speed)
    new_index = char_offset + chars_to_skip

    if new_index < 0:
        if page_index > 0 and previous_page_length is not None:
            target = max(0, previous_page_length + new_index)
            return SeekTarget(page_index=page_index - 1, char_offset=target, crossed_page=True)
        new_index = 0

    last_char = max(0, page_length - 1)
    if new_index > last_char:
        new_index = last_char

    return SeekTarget(page_index=page_index, char_offset=new_index)

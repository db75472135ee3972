"""
Narration Rate Estimator.

Keeps a self-correcting estimate of how many characters of narration the
listener gets through per second at 1.0x speed. Wall-clock time is
normalised to 1.0x-equivalent time before a sample is taken, since audio
played at 2x covers the same characters in half the real time.

Update paths:
    record_live_sample(): ~1/sec while narrating. The instant rate must lie
        in the open live gate (2, 50); the result is clamped to [5, 35].
    record_segment(): once per segment end (pause, page completion). No
        admission gate; the result is clamped to [5, 35].
    recalculate_from_history(): once at load, from measured page durations.
        Accepted only inside the open history gate (5, 30).

All three blend with the same EMA:
    new = ema_weight * old + (1 - ema_weight) * instant
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from narrapace.core.config import Defaults, PacingConfig
from narrapace.core.logging import get_logger, verbose
from narrapace.core.metrics import metrics
from narrapace.store.models import NarrationPage

_LOG = get_logger("narrapace.rate")


def initial_rate(persisted_rate: Optional[float], default: float = Defaults.PACING_DEFAULT_RATE) -> float:
    """Persisted rate when present and positive, else the default."""
    if persisted_rate is not None and persisted_rate > 0:
        return float(persisted_rate)
    return float(default)


@dataclass
class RateSample:
    """Outcome of offering one measurement to the estimator."""
    path: str
    accepted: bool
    instant_rate: Optional[float]
    rate: float


class RateEstimator:
    """
    Characters-per-second estimate at 1.0x speed.

    Not thread-safe on its own; the playback driver serialises access.
    """

    def __init__(self, rate: Optional[float] = None, config: Optional[PacingConfig] = None):
        self._config = config or PacingConfig()
        self._rate = float(rate) if rate is not None and rate > 0 else self._config.default_rate

    @classmethod
    def initialize(
        cls,
        persisted_rate: Optional[float] = None,
        config: Optional[PacingConfig] = None,
    ) -> "RateEstimator":
        config = config or PacingConfig()
        return cls(initial_rate(persisted_rate, config.default_rate), config)

    @property
    def rate(self) -> float:
        return self._rate

    @property
    def config(self) -> PacingConfig:
        return self._config

    def effective_rate(self, speed: float) -> float:
        """Real-world chars/sec at the given speed multiplier."""
        return self._rate * speed

    def _clamp(self, value: float) -> float:
        return min(self._config.max_rate, max(self._config.min_rate, value))

    def _blend(self, instant: float) -> float:
        w = self._config.ema_weight
        return w * self._rate + (1.0 - w) * instant

    @staticmethod
    def _instant_rate(chars_played: int, wall_clock_seconds: float, speed: float) -> Optional[float]:
        if wall_clock_seconds <= 0 or chars_played <= 0 or speed <= 0:
            return None
        return chars_played / (wall_clock_seconds * speed)

    def _reject(self, path: str, instant: Optional[float]) -> RateSample:
        metrics.record_rate_sample(path, accepted=False)
        verbose(_LOG, "rate_sample", path=path, accepted=False,
                instant_rate=round(instant, 2) if instant is not None else None)
        return RateSample(path=path, accepted=False, instant_rate=instant, rate=self._rate)

    def _accept(self, path: str, instant: float, new_rate: float) -> RateSample:
        old = self._rate
        self._rate = new_rate
        metrics.record_rate_sample(path, accepted=True, rate=new_rate)
        verbose(_LOG, "rate_sample", path=path, instant_rate=round(instant, 2),
                old_rate=round(old, 2), rate=round(new_rate, 2))
        return RateSample(path=path, accepted=True, instant_rate=instant, rate=new_rate)

    def record_segment(self, chars_played: int, wall_clock_seconds: float, speed: float) -> RateSample:
        """
        Blend in a finished segment.

        A no-op when no characters were played or no time elapsed.

        Example:
            >>> est = RateEstimator(15.0)
            >>> est.record_segment(300, 10, 1.0).rate
            24.0
        """
        instant = self._instant_rate(chars_played, wall_clock_seconds, speed)
        if instant is None:
            return self._reject("segment", None)
        return self._accept("segment", instant, self._clamp(self._blend(instant)))

    def record_live_sample(self, chars_played: int, wall_clock_seconds: float, speed: float) -> RateSample:
        """Blend in an in-flight sample if it passes the live gate."""
        instant = self._instant_rate(chars_played, wall_clock_seconds, speed)
        if instant is None:
            return self._reject("live", None)
        if not (self._config.live_gate_low < instant < self._config.live_gate_high):
            return self._reject("live", instant)
        return self._accept("live", instant, self._clamp(self._blend(instant)))

    def recalculate_from_history(self, pages: Iterable[NarrationPage]) -> RateSample:
        """
        Replace the estimate with Σchars / Σduration over timed pages.

        Only pages with a positive measured duration count. The result is
        kept only inside the history gate; otherwise the estimate is unchanged.
        Calling this twice on the same history yields the same rate.
        """
        total_chars = 0
        total_seconds = 0.0
        for page in pages:
            if page.measured_duration_seconds and page.measured_duration_seconds > 0:
                total_chars += len(page.text)
                total_seconds += page.measured_duration_seconds

        if total_seconds <= 0:
            return RateSample(path="history", accepted=False, instant_rate=None, rate=self._rate)

        candidate = total_chars / total_seconds
        if not (self._config.history_gate_low < candidate < self._config.history_gate_high):
            return self._reject("history", candidate)

        self._rate = candidate
        metrics.record_rate_sample("history", accepted=True, rate=candidate)
        verbose(_LOG, "rate_recalculated", rate=round(candidate, 2), chars=total_chars,
                seconds=round(total_seconds, 3))
        return RateSample(path="history", accepted=True, instant_rate=candidate, rate=candidate)

"""
Simulated Narrator.

Advances through the text at a fixed characters-per-second pace on a
background thread and reports word boundaries, without producing audio.
Used by the CLI and the HTTP service when no speech device is available,
and for manual end-to-end checks of the pacing logic.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import List, Optional

from narrapace.core.config import Defaults
from narrapace.core.logging import debug
from narrapace.pacing.narrator import (
    BaseNarrator,
    BoundaryCallback,
    Callback,
    NarrationError,
    Voice,
)

_VOICES = [
    Voice(identifier="sim-en-gb", name="Simulated (UK)", language="en-GB"),
    Voice(identifier="sim-en-in", name="Simulated (India)", language="en-IN"),
    Voice(identifier="sim-en-us", name="Simulated (US)", language="en-US"),
    Voice(identifier="sim-hi-in", name="Simulated (Hindi)", language="hi-IN"),
    Voice(identifier="sim-de-de", name="Simulated (German)", language="de-DE"),
]


@dataclass
class _Utterance:
    text: str
    rate: float
    on_boundary: Optional[BoundaryCallback]
    on_done: Optional[Callback]
    on_stopped: Optional[Callback]
    cancelled: threading.Event = field(default_factory=threading.Event)


class SimulatedNarrator(BaseNarrator):
    """
    Timer-driven narrator.

    Args:
        chars_per_second: Pace at rate 1.0.
        tick_s: Interval between boundary reports.
    """
    name = "simulated"

    def __init__(self, chars_per_second: float = Defaults.NARRATOR_SIMULATED_RATE, tick_s: float = 0.25):
        super().__init__()
        self._cps = chars_per_second
        self._tick = tick_s
        self._lock = threading.Lock()
        self._current: Optional[_Utterance] = None

    def speak(
        self,
        text: str,
        *,
        rate: float = 1.0,
        voice: Optional[str] = None,
        on_boundary: Optional[BoundaryCallback] = None,
        on_done: Optional[Callback] = None,
        on_stopped: Optional[Callback] = None,
    ) -> None:
        if rate <= 0:
            raise NarrationError(f"rate must be positive, got {rate}")
        self.stop()

        utt = _Utterance(text, rate, on_boundary, on_done, on_stopped)
        with self._lock:
            self._current = utt
        threading.Thread(target=self._run, args=(utt,), daemon=True, name="simulated-narrator").start()
        debug(self.logger, "speak", chars=len(text), rate=rate, voice=voice)

    def _run(self, utt: _Utterance) -> None:
        position = 0.0
        last_reported = -1
        length = len(utt.text)

        while not utt.cancelled.wait(self._tick):
            position += self._cps * utt.rate * self._tick
            if position >= length:
                with self._lock:
                    if utt.cancelled.is_set():
                        return
                    self._current = None
                if utt.on_done:
                    utt.on_done()
                return

            # Report the start of the word being spoken
            index = utt.text.rfind(" ", 0, int(position)) + 1
            if index > last_reported:
                last_reported = index
                if utt.on_boundary:
                    utt.on_boundary(index)

    def stop(self) -> None:
        with self._lock:
            utt = self._current
            self._current = None
            if utt is None:
                return
            utt.cancelled.set()
        if utt.on_stopped:
            utt.on_stopped()

    def is_speaking(self) -> bool:
        with self._lock:
            return self._current is not None

    def list_voices(self) -> List[Voice]:
        return list(_VOICES)

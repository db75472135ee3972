"""
Narrator Base Class and Factory.

A narrator speaks text and reports progress through three callbacks:
    on_boundary(char_index)  - monotonically increasing, relative to the text passed to speak()
    on_done()                - the whole text was spoken
    on_stopped()             - speech was cut short by stop()

Exactly one of on_done / on_stopped fires per speak() call. Callbacks may
arrive on the narrator's own thread; the playback driver serialises them.

Narrator Selection:
    NARRAPACE_NARRATOR environment variable or settings narrator.engine:
        - simulated: timer-driven, no audio device (default)
        - pyttsx3: system speech via pyttsx3 (pip install narrapace[pyttsx3])
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence

from narrapace.core.config import Defaults, NarratorConfig
from narrapace.core.logging import get_logger, info

BoundaryCallback = Callable[[int], None]
Callback = Callable[[], None]


class NarrationError(Exception):
    """Raised by a narrator that cannot start speaking."""
    pass


@dataclass(frozen=True)
class Voice:
    """A selectable voice."""
    identifier: str
    name: str
    language: str


class BaseNarrator:
    """
    Abstract narrator.

    Subclasses implement speak(), stop() and is_speaking(); list_voices()
    defaults to an empty catalogue.
    """
    name: str = "base"

    def __init__(self) -> None:
        self.logger = get_logger(f"narrapace.narrator.{self.name}")

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
        """
        Start speaking ``text`` at ``rate`` (speed multiplier, 1.0 = normal).

        Interrupts any utterance in progress.

        Raises:
            NarrationError: If speech could not be started.
        """
        raise NotImplementedError

    def stop(self) -> None:
        raise NotImplementedError

    def is_speaking(self) -> bool:
        raise NotImplementedError

    def list_voices(self) -> List[Voice]:
        return []


def _normalize_locale(language: str) -> str:
    return language.replace("_", "-")


def filter_voices(
    voices: Iterable[Voice],
    allowed_locales: Sequence[str] = Defaults.NARRATOR_ALLOWED_LOCALES,
) -> List[Voice]:
    """Keep voices whose language contains an allowed locale, sorted by language then name."""
    kept = [
        v for v in voices
        if any(loc in _normalize_locale(v.language) for loc in allowed_locales)
    ]
    return sorted(kept, key=lambda v: (v.language, v.name))


def default_voice(voices: Sequence[Voice]) -> Optional[Voice]:
    """Prefer an en-IN or en-US voice, else the first one."""
    for v in voices:
        lang = _normalize_locale(v.language)
        if "en-IN" in lang or "en-US" in lang:
            return v
    return voices[0] if voices else None


def get_narrator(config: Optional[NarratorConfig] = None) -> BaseNarrator:
    """
    Create a narrator for the configured engine.

    Raises:
        ValueError: If the engine name is unknown.
    """
    config = config or NarratorConfig()
    engine = config.engine.lower().strip()

    if engine == "simulated":
        from narrapace.pacing.narrators.simulated import SimulatedNarrator
        narrator: BaseNarrator = SimulatedNarrator(chars_per_second=config.simulated_rate)
    elif engine == "pyttsx3":
        from narrapace.pacing.narrators.pyttsx3_narrator import Pyttsx3Narrator
        narrator = Pyttsx3Narrator()
    else:
        raise ValueError(f"unknown narrator engine: {config.engine!r} (expected simulated or pyttsx3)")

    info(get_logger("narrapace.narrator"), "narrator_created", engine=engine)
    return narrator

"""
Narrator Implementations.

    - SimulatedNarrator: timer-driven, no audio device
    - Pyttsx3Narrator: system speech through pyttsx3

Classes are imported lazily so pyttsx3 is only touched when selected.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

__all__ = ["SimulatedNarrator", "Pyttsx3Narrator"]


def __getattr__(name: str):
    if name == "SimulatedNarrator":
        from narrapace.pacing.narrators.simulated import SimulatedNarrator
        return SimulatedNarrator
    if name == "Pyttsx3Narrator":
        from narrapace.pacing.narrators.pyttsx3_narrator import Pyttsx3Narrator
        return Pyttsx3Narrator
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


if TYPE_CHECKING:
    from narrapace.pacing.narrators.pyttsx3_narrator import Pyttsx3Narrator
    from narrapace.pacing.narrators.simulated import SimulatedNarrator

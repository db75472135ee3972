"""
pyttsx3 Narrator.

System speech (SAPI5, NSSpeechSynthesizer, eSpeak) through pyttsx3.
pyttsx3 is imported lazily on first use so the package imports without it.

pyttsx3 measures rate in words per minute; the speed multiplier scales
the engine's own default rate. Each utterance runs its own runAndWait()
loop on a worker thread, started only after the previous loop has exited.
"""
from __future__ import annotations

import threading
from typing import Any, List, Optional

from narrapace.core.logging import debug, warn
from narrapace.pacing.narrator import (
    BaseNarrator,
    BoundaryCallback,
    Callback,
    NarrationError,
    Voice,
)

# Seconds to wait for a stopped run loop before starting the next one
_LOOP_EXIT_TIMEOUT = 2.0


class _Utterance:
    def __init__(self, on_boundary, on_done, on_stopped):
        self.on_boundary: Optional[BoundaryCallback] = on_boundary
        self.on_done: Optional[Callback] = on_done
        self.on_stopped: Optional[Callback] = on_stopped
        self.finished = False
        self.tokens: List[Any] = []


class Pyttsx3Narrator(BaseNarrator):
    """Narrator backed by a single pyttsx3 engine and a worker thread."""
    name = "pyttsx3"

    def __init__(self) -> None:
        super().__init__()
        self._engine = None
        self._base_wpm = 200
        self._lock = threading.Lock()
        self._current: Optional[_Utterance] = None
        self._worker: Optional[threading.Thread] = None

    def _get_engine(self):
        if self._engine is None:
            try:
                import pyttsx3
                self._engine = pyttsx3.init()
            except (ImportError, RuntimeError, OSError) as e:
                raise NarrationError(f"pyttsx3 unavailable: {e}") from e
            self._base_wpm = int(self._engine.getProperty("rate") or 200)
        return self._engine

    def _finish(self, utt: _Utterance, completed: bool) -> None:
        # First caller wins; later done/stop notifications are dropped
        with self._lock:
            if utt.finished:
                return
            utt.finished = True
            if self._current is utt:
                self._current = None
        callback = utt.on_done if completed else utt.on_stopped
        if callback:
            callback()

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
        engine = self._get_engine()
        self.stop()

        utt = _Utterance(on_boundary, on_done, on_stopped)

        def _word(name, location, length):
            if utt.on_boundary and not utt.finished:
                utt.on_boundary(int(location))

        def _finished(name, completed):
            self._finish(utt, bool(completed))

        with self._lock:
            self._current = utt
            previous = self._worker

        def _run():
            # One run loop at a time; the previous loop must exit first.
            # speak() may be called from the previous loop's own callback.
            if previous is not None:
                previous.join(timeout=_LOOP_EXIT_TIMEOUT)
                if previous.is_alive():
                    warn(self.logger, "pyttsx3_loop_busy", timeout=_LOOP_EXIT_TIMEOUT)
                    self._finish(utt, False)
                    return
            if utt.finished:
                return
            try:
                engine.setProperty("rate", int(self._base_wpm * rate))
                if voice:
                    engine.setProperty("voice", voice)
                utt.tokens = [
                    engine.connect("started-word", _word),
                    engine.connect("finished-utterance", _finished),
                ]
                engine.say(text)
                engine.runAndWait()
            except (RuntimeError, OSError, ValueError) as e:
                warn(self.logger, "pyttsx3_run_error", error=str(e))
                self._finish(utt, False)
                return
            finally:
                for token in utt.tokens:
                    engine.disconnect(token)
            # Some drivers never emit finished-utterance
            self._finish(utt, True)

        worker = threading.Thread(target=_run, daemon=True, name="pyttsx3-narrator")
        with self._lock:
            self._worker = worker
        worker.start()
        debug(self.logger, "speak", chars=len(text), rate=rate, voice=voice)

    def stop(self) -> None:
        with self._lock:
            utt = self._current
        if utt is None:
            return
        if self._engine is not None:
            self._engine.stop()
        self._finish(utt, False)

    def is_speaking(self) -> bool:
        with self._lock:
            return self._current is not None

    def list_voices(self) -> List[Voice]:
        try:
            engine = self._get_engine()
        except NarrationError as e:
            warn(self.logger, "voices_unavailable", error=str(e))
            return []
        voices = []
        for v in engine.getProperty("voices") or []:
            languages = getattr(v, "languages", None) or []
            language = languages[0] if languages else ""
            if isinstance(language, bytes):
                language = language.decode("utf-8", errors="ignore").strip("\x00\x05")
            voices.append(Voice(identifier=str(v.id), name=str(v.name), language=str(language)))
        return voices

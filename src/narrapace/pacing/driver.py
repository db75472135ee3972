"""
Playback Driver.

Drives page-by-page narration of a book, converts between (page, offset)
positions and the single progress fraction a UI slider manipulates, and
feeds rate samples into the RateEstimator.

States:
    IDLE              - nothing speaking; play() resumes at floor(progress * page_length)
    PLAYING           - an utterance is in flight
    PAUSED_MANUAL     - the user paused, or the narrator stopped outside a seek
    SEEKING_INTERNAL  - transient; narration was stopped programmatically
    PAGE_BOUNDARY     - transient; a page finished and the next step is chosen

Transitions:
    IDLE/PAUSED -> PLAYING            play()
    PLAYING -> PAUSED_MANUAL          pause(), or on_stopped() outside a seek.
                                      Samples the partial segment if it ran > 2s.
    PLAYING -> PAGE_BOUNDARY          on_done(). Samples the full segment, records
                                      the page duration, then:
                                        autoplay + next page -> next page, PLAYING
                                        next page            -> next page, IDLE
                                        last page            -> progress 1.0, IDLE
    * -> SEEKING_INTERNAL -> PLAYING  seek_by(), seek_to(), page navigation

Starting playback at or past the page end speaks nothing: with autoplay
and a next page it moves on and plays; otherwise it stays on the page at
progress 1.0, IDLE.

The seeking flag is the only guard against stop callbacks caused by the
driver itself: a programmatic stop produces the same on_stopped() as a
user pause, and the flag tells the handler to drop it. Callbacks belonging
to a superseded utterance are dropped by generation number.

Every public method and callback runs under one re-entrant lock, so the
driver behaves as a single logical thread even when the narrator calls
back from its own thread.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from narrapace.core.config import PacerConfig
from narrapace.core.logging import debug, get_logger, info, verbose, warn
from narrapace.core.metrics import metrics
from narrapace.pacing.narrator import BaseNarrator, NarrationError
from narrapace.pacing.rate import RateEstimator
from narrapace.pacing.timeline import (
    TimeDisplay,
    compute_seek,
    compute_time_display,
    offset_for,
    progress_for,
)
from narrapace.store.base import BaseStore
from narrapace.store.models import NarrationPage, PlaybackPosition

_LOG = get_logger("narrapace.driver")

Clock = Callable[[], float]
Scheduler = Callable[[float, Callable[[], None]], None]


def thread_scheduler(delay: float, fn: Callable[[], None]) -> None:
    """Run ``fn`` after ``delay`` seconds on a daemon timer thread."""
    timer = threading.Timer(delay, fn)
    timer.daemon = True
    timer.start()


class PlaybackState(str, Enum):
    IDLE = "idle"
    PLAYING = "playing"
    PAUSED_MANUAL = "paused"
    SEEKING_INTERNAL = "seeking"
    PAGE_BOUNDARY = "page_boundary"


@dataclass
class PlaybackSession:
    """
    In-memory session state, owned by the driver.

    ``char_offset`` is the position ground truth; progress is always
    derived from it.
    """
    book_id: str
    page_index: int = 0
    char_offset: int = 0
    speed: float = 1.0
    playing: bool = False
    autoplay: bool = False
    voice_id: Optional[str] = None
    segment_start_wall_clock: Optional[float] = None
    segment_start_char_offset: int = 0
    segment_speed: float = 1.0
    last_live_update: float = 0.0


@dataclass
class PlayerSnapshot:
    """Read-only view of the player for a UI."""
    book_id: str
    state: str
    page_index: int
    page_count: int
    char_offset: int
    page_length: int
    progress: float
    speed: float
    autoplay: bool
    voice_id: Optional[str]
    rate: float
    effective_rate: float
    times: TimeDisplay
    formatted_times: Dict[str, str] = field(default_factory=dict)


class PlaybackDriver:
    """
    Sequencer for one open book.

    Args:
        book_id: Id used for persistence calls.
        pages: Ordered narration pages (loaned for the session).
        narrator: Speech backend.
        store: Persistence backend; every call is guarded.
        estimator: Rate estimator; created from defaults when omitted.
        config: Validated configuration.
        initial_position: Position to resume from, applied once.
        clock: Monotonic wall clock in seconds.
        scheduler: Runs a callable after a delay (settle delay after seeks).
    """

    def __init__(
        self,
        book_id: str,
        pages: List[NarrationPage],
        narrator: BaseNarrator,
        store: Optional[BaseStore] = None,
        estimator: Optional[RateEstimator] = None,
        config: Optional[PacerConfig] = None,
        initial_position: Optional[PlaybackPosition] = None,
        clock: Clock = time.monotonic,
        scheduler: Scheduler = thread_scheduler,
    ):
        self._config = config or PacerConfig()
        self._pages = pages
        self._narrator = narrator
        self._store = store
        self._estimator = estimator or RateEstimator(config=self._config.pacing)
        self._clock = clock
        self._scheduler = scheduler
        self._lock = threading.RLock()

        self._session = PlaybackSession(book_id=book_id)
        self._state = PlaybackState.IDLE
        self._seeking = False
        self._generation = 0
        self._pending_offset: Optional[int] = None
        self._resume_position = initial_position
        self._resume_done = False
        self._closed = False

        start_page = 0
        if initial_position is not None and pages:
            start_page = min(initial_position.page_index, len(pages) - 1)
        self._change_page(start_page)

    # ─────────────────────────────────────────────────────────────────────────
    # Read-only properties
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def session(self) -> PlaybackSession:
        return self._session

    @property
    def estimator(self) -> RateEstimator:
        return self._estimator

    @property
    def pages(self) -> List[NarrationPage]:
        return self._pages

    @property
    def page_length(self) -> int:
        """Current page length in characters, floored at 1."""
        page = self._current_page()
        return page.length if page else 1

    @property
    def progress(self) -> float:
        return progress_for(self._session.char_offset, self.page_length)

    @property
    def is_seeking(self) -> bool:
        return self._seeking

    def position(self) -> PlaybackPosition:
        return PlaybackPosition.from_offset(
            self._session.page_index, self._session.char_offset, self.page_length
        )

    def time_display(self) -> TimeDisplay:
        return compute_time_display(
            [len(p.text) for p in self._pages],
            self._session.page_index,
            self.progress,
            self._estimator.rate,
            self._session.speed,
        )

    def snapshot(self) -> PlayerSnapshot:
        with self._lock:
            times = self.time_display()
            return PlayerSnapshot(
                book_id=self._session.book_id,
                state=self._state.value,
                page_index=self._session.page_index,
                page_count=len(self._pages),
                char_offset=self._session.char_offset,
                page_length=self.page_length,
                progress=self.progress,
                speed=self._session.speed,
                autoplay=self._session.autoplay,
                voice_id=self._session.voice_id,
                rate=self._estimator.rate,
                effective_rate=self._estimator.effective_rate(self._session.speed),
                times=times,
                formatted_times=times.formatted(),
            )

    # ─────────────────────────────────────────────────────────────────────────
    # Internal helpers
    # ─────────────────────────────────────────────────────────────────────────

    def _current_page(self) -> Optional[NarrationPage]:
        idx = self._session.page_index
        if 0 <= idx < len(self._pages):
            return self._pages[idx]
        return None

    def _has_next_page(self) -> bool:
        return self._session.page_index < len(self._pages) - 1

    def _persist(self, op: str, *args) -> None:
        """Call ``store.<op>(*args)``; failures are logged, never raised."""
        if self._store is None:
            return
        try:
            getattr(self._store, op)(*args)
        except Exception as e:
            # The in-memory session stays authoritative
            warn(_LOG, "persist_failed", op=op, error=str(e))
            metrics.record_store_failure(op)

    def _stop_narration(self) -> None:
        try:
            self._narrator.stop()
        except NarrationError as e:
            warn(_LOG, "narrator_stop_failed", error=str(e))

    def _clear_segment(self) -> None:
        self._session.segment_start_wall_clock = None

    def _sample_partial_segment(self) -> None:
        """Rate sample for a segment cut short, if it lasted long enough."""
        s = self._session
        if s.segment_start_wall_clock is None:
            return
        elapsed = self._clock() - s.segment_start_wall_clock
        if elapsed > self._config.pacing.min_pause_sample_s:
            self._estimator.record_segment(s.char_offset - s.segment_start_char_offset, elapsed, s.segment_speed)
        self._clear_segment()

    def _change_page(self, page_index: int) -> None:
        """
        Move to a page and pick its start offset.

        Precedence: one-shot resume position, then a pending seek target,
        then the start of the page. Restarts narration when playing.
        """
        s = self._session
        s.page_index = page_index
        page = self._current_page()
        if page is None:
            s.char_offset = 0
            return

        start = 0
        if not self._resume_done and self._resume_position is not None:
            if self._resume_position.fractional_progress > 0:
                start = self._resume_position.offset_in(len(page.text))
                info(_LOG, "resume_position", page=page_index,
                     progress=round(self._resume_position.fractional_progress, 3), offset=start)
        elif self._pending_offset is not None:
            start = self._pending_offset
            self._pending_offset = None
        self._resume_done = True

        s.char_offset = start
        self._clear_segment()
        verbose(_LOG, "page_changed", page=page_index, offset=start)
        if s.playing:
            self._play_from(start)

    def _play_from(self, start: int, speed: Optional[float] = None) -> bool:
        s = self._session
        page = self._current_page()
        if page is None:
            return False

        text = page.text
        if start >= len(text):
            # Nothing left to speak; only autoplay moves on to the next page
            s.char_offset = len(text)
            if s.autoplay and self._has_next_page():
                self._handle_page_end()
            else:
                s.playing = False
                self._clear_segment()
                self._state = PlaybackState.IDLE
            return self._state == PlaybackState.PLAYING
        start = max(0, start)

        speed = speed if speed is not None else s.speed
        self._generation += 1
        gen = self._generation

        s.char_offset = start
        now = self._clock()
        s.segment_start_wall_clock = now
        s.segment_start_char_offset = start
        s.segment_speed = speed
        s.last_live_update = now

        try:
            self._narrator.speak(
                text[start:],
                rate=speed,
                voice=s.voice_id,
                on_boundary=lambda char_index: self.on_boundary(char_index, gen),
                on_done=lambda: self.on_done(gen),
                on_stopped=lambda: self.on_stopped(gen),
            )
        except NarrationError as e:
            warn(_LOG, "narration_start_failed", page=s.page_index, offset=start, error=str(e))
            metrics.inc_narration_failures()
            s.playing = False
            self._clear_segment()
            self._state = PlaybackState.IDLE
            return False

        s.playing = True
        self._state = PlaybackState.PLAYING
        debug(_LOG, "speak", page=s.page_index, offset=start, speed=speed, generation=gen)
        return True

    def _handle_page_end(self) -> None:
        """Choose what follows a finished page."""
        s = self._session
        self._state = PlaybackState.PAGE_BOUNDARY
        if self._has_next_page():
            if s.autoplay:
                s.playing = True
                self._change_page(s.page_index + 1)
                if self._state == PlaybackState.PAGE_BOUNDARY:
                    self._state = PlaybackState.PLAYING if s.playing else PlaybackState.IDLE
            else:
                s.playing = False
                self._change_page(s.page_index + 1)
                self._state = PlaybackState.IDLE
        else:
            s.playing = False
            s.char_offset = len(self._pages[s.page_index].text) if self._pages else 0
            self._state = PlaybackState.IDLE
            info(_LOG, "book_finished", book_id=s.book_id)

    def _begin_internal_seek(self) -> bool:
        """Stop narration with the seeking flag raised; return whether it was playing."""
        was_playing = self._session.playing
        self._seeking = True
        self._state = PlaybackState.SEEKING_INTERNAL
        self._generation += 1
        self._stop_narration()
        self._clear_segment()
        return was_playing

    def _schedule_resume(self) -> None:
        gen = self._generation

        def _resume() -> None:
            with self._lock:
                if self._closed or gen != self._generation:
                    return
                self._seeking = False
                self._play_from(self._session.char_offset)

        self._scheduler(self._config.playback.settle_delay_s, _resume)

    # ─────────────────────────────────────────────────────────────────────────
    # Controls
    # ─────────────────────────────────────────────────────────────────────────

    def play(self) -> bool:
        """
        Start or resume narration at the current position.

        The stored offset equals floor(progress * page_length); it is used
        directly to avoid a float round trip.
        """
        with self._lock:
            if self._closed or self._state == PlaybackState.PLAYING:
                return False
            self._seeking = False
            return self._play_from(self._session.char_offset)

    def pause(self) -> None:
        """Stop narration and stay at the current offset."""
        with self._lock:
            if self._state == PlaybackState.SEEKING_INTERNAL:
                # Cancel the scheduled resume
                self._generation += 1
                self._seeking = False
                self._state = PlaybackState.PAUSED_MANUAL
                return
            if self._state != PlaybackState.PLAYING:
                return
            self._sample_partial_segment()
            self._session.playing = False
            self._state = PlaybackState.PAUSED_MANUAL
            self._stop_narration()
            info(_LOG, "paused", page=self._session.page_index, progress=round(self.progress, 3))

    def toggle_play(self) -> bool:
        """Pause when the narrator is speaking, otherwise play. Returns True when now playing."""
        with self._lock:
            if self._narrator.is_speaking():
                self.pause()
                return False
            return self.play()

    def seek_by(self, seconds: float) -> None:
        """
        Relative seek, e.g. -10 / +10.

        Rewinding past the page start continues on the previous page.
        Playback resumes from the new position after the settle delay.
        """
        with self._lock:
            if self._closed:
                return
            s = self._session
            self._begin_internal_seek()
            prev_len = len(self._pages[s.page_index - 1].text) if s.page_index > 0 else None
            target = compute_seek(
                seconds,
                self._estimator.rate,
                s.speed,
                s.page_index,
                s.char_offset,
                self.page_length,
                prev_len,
            )
            metrics.record_seek("relative")
            verbose(_LOG, "seek", seconds=seconds, page=target.page_index,
                    offset=target.char_offset, crossed_page=target.crossed_page)

            s.playing = False
            if target.crossed_page:
                self._pending_offset = target.char_offset
                self._change_page(target.page_index)
            else:
                s.char_offset = target.char_offset
            self._schedule_resume()

    def seek_to(self, fraction: float) -> None:
        """Absolute seek within the current page (slider release)."""
        with self._lock:
            if self._closed:
                return
            fraction = min(1.0, max(0.0, fraction))
            self._begin_internal_seek()
            self._session.playing = False
            self._session.char_offset = offset_for(fraction, self.page_length)
            metrics.record_seek("slider")
            verbose(_LOG, "seek", fraction=round(fraction, 3), offset=self._session.char_offset)
            self._schedule_resume()

    def go_to_page(self, page_index: int) -> None:
        """Jump to the start of a page; keeps playing if it was playing."""
        with self._lock:
            if self._closed or not (0 <= page_index < len(self._pages)):
                return
            was_playing = self._begin_internal_seek()
            self._session.playing = False
            metrics.record_seek("page")
            self._change_page(page_index)
            self._seeking = False
            if was_playing:
                self._play_from(self._session.char_offset)
            else:
                self._state = PlaybackState.IDLE

    def next_page(self) -> None:
        self.go_to_page(self._session.page_index + 1)

    def previous_page(self) -> None:
        self.go_to_page(self._session.page_index - 1)

    def set_speed(self, speed: float) -> None:
        """
        Change the speed multiplier.

        While speaking, narration restarts at once from the same offset,
        since speech engines cannot change rate mid-utterance.
        """
        with self._lock:
            if speed not in self._config.playback.speeds:
                raise ValueError(f"unsupported speed {speed}; expected one of {list(self._config.playback.speeds)}")
            self._session.speed = speed
            verbose(_LOG, "speed_changed", speed=speed)
            if self._narrator.is_speaking():
                offset = self._session.char_offset
                self._begin_internal_seek()
                self._seeking = False
                self._play_from(offset, speed)

    def change_speed(self) -> float:
        """Advance to the next speed on the ladder, wrapping around."""
        with self._lock:
            speeds = self._config.playback.speeds
            try:
                idx = speeds.index(self._session.speed)
            except ValueError:
                idx = -1
            new_speed = speeds[(idx + 1) % len(speeds)]
            self.set_speed(new_speed)
            return new_speed

    def set_autoplay(self, enabled: bool) -> None:
        with self._lock:
            self._session.autoplay = bool(enabled)

    def select_voice(self, voice_id: Optional[str]) -> None:
        """Voice for the next utterance; the current one is not interrupted."""
        with self._lock:
            self._session.voice_id = voice_id

    # ─────────────────────────────────────────────────────────────────────────
    # Narrator callbacks
    # ─────────────────────────────────────────────────────────────────────────

    def on_boundary(self, char_index: int, generation: Optional[int] = None) -> None:
        with self._lock:
            if self._seeking or self._closed:
                return
            if generation is not None and generation != self._generation:
                return
            s = self._session
            if s.segment_start_wall_clock is None:
                return
            s.char_offset = min(s.segment_start_char_offset + char_index, len(self._current_page().text))

            now = self._clock()
            if now - s.last_live_update >= self._config.pacing.live_interval_s:
                elapsed = now - s.segment_start_wall_clock
                self._estimator.record_live_sample(
                    s.char_offset - s.segment_start_char_offset, elapsed, s.segment_speed
                )
                s.last_live_update = now

    def on_done(self, generation: Optional[int] = None) -> None:
        with self._lock:
            if self._seeking or self._closed:
                return
            if generation is not None and generation != self._generation:
                return
            s = self._session
            if s.segment_start_wall_clock is None:
                return

            page = self._current_page()
            elapsed = self._clock() - s.segment_start_wall_clock
            chars = len(page.text) - s.segment_start_char_offset
            self._estimator.record_segment(chars, elapsed, s.segment_speed)
            self._clear_segment()
            s.char_offset = len(page.text)

            # Page duration in 1.0x-equivalent seconds
            duration = elapsed * s.segment_speed
            page.measured_duration_seconds = duration
            metrics.inc_pages_completed()
            info(_LOG, "page_completed", page=s.page_index, rate=round(self._estimator.rate, 2))
            self._persist("save_page_duration", s.book_id, s.page_index, duration)
            self._persist("save_rate", self._estimator.rate)

            self._handle_page_end()

    def on_stopped(self, generation: Optional[int] = None) -> None:
        with self._lock:
            if self._seeking or self._closed:
                return
            if generation is not None and generation != self._generation:
                return
            if self._state != PlaybackState.PLAYING:
                return
            # Stopped by something other than pause() or a seek
            self._sample_partial_segment()
            self._session.playing = False
            self._state = PlaybackState.PAUSED_MANUAL
            info(_LOG, "narration_stopped", page=self._session.page_index)

    # ─────────────────────────────────────────────────────────────────────────
    # Teardown
    # ─────────────────────────────────────────────────────────────────────────

    def close(self) -> PlaybackPosition:
        """
        End the session: stop narration, persist the rate and position.

        Returns the final position.
        """
        with self._lock:
            if self._state == PlaybackState.PLAYING:
                self._sample_partial_segment()
            self._session.playing = False
            self._generation += 1
            self._stop_narration()
            self._closed = True
            self._state = PlaybackState.IDLE

            position = self.position()
            if self._estimator.rate > 0:
                self._persist("save_rate", self._estimator.rate)
            self._persist("save_position", self._session.book_id, position)
            info(_LOG, "session_closed", book_id=self._session.book_id, page=position.page_index,
                 progress=round(position.fractional_progress, 3), rate=round(self._estimator.rate, 2))
            return position

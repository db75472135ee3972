"""Shared fakes and fixtures for narrapace tests."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

import pytest

from narrapace.core.config import PacerConfig, PacingConfig, Settings
from narrapace.pacing.driver import PlaybackDriver
from narrapace.pacing.narrator import BaseNarrator, NarrationError, Voice
from narrapace.pacing.rate import RateEstimator
from narrapace.services import PlayerService
from narrapace.store.base import BaseStore
from narrapace.store.json_store import JsonFileStore
from narrapace.store.models import NarrationPage, PlaybackPosition


@dataclass
class Utterance:
    text: str
    rate: float
    voice: Optional[str]
    on_boundary: Optional[Callable[[int], None]]
    on_done: Optional[Callable[[], None]]
    on_stopped: Optional[Callable[[], None]]


class FakeNarrator(BaseNarrator):
    """
    Narrator driven by the test.

    stop() reports on_stopped synchronously, as the simulated narrator does.
    """
    name = "fake"

    def __init__(self, voices: Optional[List[Voice]] = None, fail: bool = False):
        super().__init__()
        self.utterances: List[Utterance] = []
        self.current: Optional[Utterance] = None
        self.stop_calls = 0
        self.fail = fail
        self._voices = voices or []

    def speak(self, text, *, rate=1.0, voice=None, on_boundary=None, on_done=None, on_stopped=None):
        if self.fail:
            raise NarrationError("no speech device")
        self.stop()
        utt = Utterance(text, rate, voice, on_boundary, on_done, on_stopped)
        self.utterances.append(utt)
        self.current = utt

    def stop(self):
        self.stop_calls += 1
        utt, self.current = self.current, None
        if utt is not None and utt.on_stopped:
            utt.on_stopped()

    def is_speaking(self):
        return self.current is not None

    def list_voices(self):
        return list(self._voices)

    # Test controls
    def boundary(self, char_index: int) -> None:
        self.current.on_boundary(char_index)

    def finish(self) -> None:
        utt, self.current = self.current, None
        utt.on_done()


class MemoryStore(BaseStore):
    """In-memory store recording every call."""

    def __init__(self, rate: Optional[float] = None, fail: bool = False):
        self.rate = rate
        self.fail = fail
        self.saved_rates: List[float] = []
        self.positions: Dict[str, PlaybackPosition] = {}
        self.durations: List[Tuple[str, int, float]] = []
        self.pages: Dict[str, List[NarrationPage]] = {}

    def _check(self):
        if self.fail:
            raise OSError("disk full")

    def load_rate(self):
        return self.rate

    def save_rate(self, rate):
        self._check()
        self.rate = rate
        self.saved_rates.append(rate)

    def load_position(self, book_id):
        return self.positions.get(book_id)

    def save_position(self, book_id, position):
        self._check()
        self.positions[book_id] = position

    def load_pages(self, book_id):
        return list(self.pages.get(book_id, []))

    def save_page_duration(self, book_id, page_index, seconds):
        self._check()
        self.durations.append((book_id, page_index, seconds))


class ManualScheduler:
    """Collects delayed calls; run_all() fires them."""

    def __init__(self):
        self.pending: List[Tuple[float, Callable[[], None]]] = []

    def __call__(self, delay, fn):
        self.pending.append((delay, fn))

    def run_all(self):
        pending, self.pending = self.pending, []
        for _, fn in pending:
            fn()


class FakeClock:
    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class DriverRig:
    driver: PlaybackDriver
    narrator: FakeNarrator
    store: MemoryStore
    scheduler: ManualScheduler
    clock: FakeClock
    pages: List[NarrationPage] = field(default_factory=list)


def make_pages(*lengths: int) -> List[NarrationPage]:
    letters = "abcdefghij"
    return [NarrationPage(text=letters[i % len(letters)] * n) for i, n in enumerate(lengths)]


@pytest.fixture
def quiet_config() -> PacerConfig:
    """Config whose live samples never fire, isolating segment samples."""
    return PacerConfig(pacing=PacingConfig(live_interval_s=1e9))


@pytest.fixture
def make_rig():
    def _make(
        lengths=(1000, 800),
        rate: float = 15.0,
        config: Optional[PacerConfig] = None,
        position: Optional[PlaybackPosition] = None,
        narrator: Optional[FakeNarrator] = None,
        store: Optional[MemoryStore] = None,
    ) -> DriverRig:
        config = config or PacerConfig()
        pages = make_pages(*lengths)
        narrator = narrator or FakeNarrator()
        store = store or MemoryStore()
        scheduler = ManualScheduler()
        clock = FakeClock()
        driver = PlaybackDriver(
            "book_1",
            pages,
            narrator,
            store=store,
            estimator=RateEstimator(rate, config.pacing),
            config=config,
            initial_position=position,
            clock=clock,
            scheduler=scheduler,
        )
        return DriverRig(driver, narrator, store, scheduler, clock, pages)
    return _make


# ─────────────────────────────────────────────────────────────────────────────
# Service fixtures (JSON store in tmp_path, fake narrators, manual scheduler)
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def store(tmp_path):
    return JsonFileStore(str(tmp_path))


@pytest.fixture
def narrators() -> List[FakeNarrator]:
    """Every narrator the service created, in order."""
    return []


@pytest.fixture
def service(tmp_path, store, narrators) -> PlayerService:
    def factory():
        narrator = FakeNarrator(voices=[
            Voice("us", "Us", "en-US"),
            Voice("de", "De", "de-DE"),
            Voice("in", "In", "en-IN"),
        ])
        narrators.append(narrator)
        return narrator

    return PlayerService(
        Settings(raw={"store": {"base_dir": str(tmp_path)}}),
        store=store,
        narrator_factory=factory,
        scheduler=ManualScheduler(),
        clock=FakeClock(),
    )


@pytest.fixture
def book_id(store) -> str:
    return store.save_book("Physics", [NarrationPage(text="a" * 1000), NarrationPage(text="b" * 800)],
                           book_id="physics_1")

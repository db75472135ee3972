"""
PlayerService - Session Registry.

The single entry point the HTTP API and the CLI use to open books and
drive playback. Each open book gets its own PlaybackDriver and narrator;
sessions are keyed by an opaque session id.

Opening a session:
    PlayerOpenRequest(book_id) → load book → seed rate (persisted or 15.0)
    → recalculate from measured page durations → driver at last position

Error Handling:
    - PlayerError: Base exception with standardized error codes
    - BookNotFoundError: Unknown book id, or a book with no pages
    - SessionNotFoundError: Unknown or already closed session id
    - InvalidInputError: Bad control values (speed, fraction, page)

Example:
    >>> from narrapace.core.config import Settings
    >>> from narrapace.services import PlayerService, PlayerOpenRequest
    >>>
    >>> service = PlayerService(Settings(raw={"store": {"base_dir": "./library"}}))
    >>> sid = service.open_session(PlayerOpenRequest(book_id="physics_1700000000000"))
    >>> service.get_session(sid).play()
    >>> service.close_session(sid)
"""
from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from narrapace.core.config import Settings
from narrapace.core.logging import get_logger, info, set_session_id, success, warn
from narrapace.core.metrics import metrics
from narrapace.pacing.driver import PlaybackDriver, PlayerSnapshot, thread_scheduler
from narrapace.pacing.narrator import BaseNarrator, Voice, default_voice, filter_voices, get_narrator
from narrapace.pacing.rate import RateEstimator
from narrapace.store.json_store import JsonFileStore
from narrapace.store.models import PlaybackPosition

_LOG = get_logger("narrapace.service")


# =============================================================================
# Error Codes and Exceptions
# =============================================================================

class ErrorCode:
    """Standardized error codes for API responses."""
    BOOK_NOT_FOUND = "BOOK_NOT_FOUND"       # Unknown book or empty book
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND" # Unknown or closed session
    INVALID_INPUT = "INVALID_INPUT"         # Bad control value
    INTERNAL_ERROR = "INTERNAL_ERROR"       # Unexpected error


class PlayerError(Exception):
    """
    Base exception for player errors.

    Attributes:
        message: Human-readable error message.
        code: Error code from ErrorCode class.
        details: Optional dictionary with additional context.
    """
    def __init__(self, message: str, code: str = ErrorCode.INTERNAL_ERROR, details: Optional[Dict] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to standardized error response dict for API."""
        result = {
            "ok": False,
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class BookNotFoundError(PlayerError):
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.BOOK_NOT_FOUND, details)


class SessionNotFoundError(PlayerError):
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.SESSION_NOT_FOUND, details)


class InvalidInputError(PlayerError):
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.INVALID_INPUT, details)


# =============================================================================
# Request Dataclasses
# =============================================================================

@dataclass
class PlayerOpenRequest:
    """
    Explicit descriptor for opening the player on a book.

    Attributes:
        book_id: Id of a saved book.
        autoplay: Continue to the next page automatically.
        voice_id: Voice identifier; the narrator's default when omitted.
        speed: Initial speed multiplier (must be on the speed ladder).
    """
    book_id: str
    autoplay: bool = False
    voice_id: Optional[str] = None
    speed: float = 1.0


# =============================================================================
# Main Service Class
# =============================================================================

class PlayerService:
    """
    Registry of open playback sessions.

    Args:
        settings: Application settings.
        store: Book store; a JsonFileStore under settings.store_dir by default.
        narrator_factory: Creates one narrator per session.
        scheduler: Passed to every driver (settle delay after seeks).
        clock: Passed to every driver.
    """

    def __init__(
        self,
        settings: Settings,
        store: Optional[JsonFileStore] = None,
        narrator_factory: Optional[Callable[[], BaseNarrator]] = None,
        scheduler: Callable = thread_scheduler,
        clock: Optional[Callable[[], float]] = None,
    ):
        self._settings = settings
        self._config = settings.get_config()
        self._store = store or JsonFileStore(self._config.store.base_dir)
        self._narrator_factory = narrator_factory or (lambda: get_narrator(self._config.narrator))
        self._scheduler = scheduler
        self._clock = clock
        self._sessions: Dict[str, PlaybackDriver] = {}
        self._lock = threading.Lock()
        self._catalogue_narrator: Optional[BaseNarrator] = None

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def store(self) -> JsonFileStore:
        return self._store

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def session_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    # =========================================================================
    # Sessions
    # =========================================================================

    def open_session(self, request: PlayerOpenRequest) -> str:
        """
        Open a book and return a new session id.

        Raises:
            BookNotFoundError: If the book does not exist or has no pages.
            InvalidInputError: If the requested speed is not on the ladder.
        """
        if request.speed not in self._config.playback.speeds:
            raise InvalidInputError(
                f"speed must be one of {list(self._config.playback.speeds)}",
                details={"speed": request.speed},
            )

        book = self._store.load_book(request.book_id)
        if book is None:
            raise BookNotFoundError(f"book not found: {request.book_id}", details={"book_id": request.book_id})
        if not book.pages:
            raise BookNotFoundError(f"book has no pages: {request.book_id}", details={"book_id": request.book_id})

        estimator = RateEstimator.initialize(self._store.load_rate(), self._config.pacing)
        estimator.recalculate_from_history(book.pages)

        narrator = self._narrator_factory()
        kwargs: Dict[str, Any] = {"scheduler": self._scheduler}
        if self._clock is not None:
            kwargs["clock"] = self._clock
        driver = PlaybackDriver(
            book.id,
            list(book.pages),
            narrator,
            store=self._store,
            estimator=estimator,
            config=self._config,
            initial_position=book.last_position,
            **kwargs,
        )
        driver.set_autoplay(request.autoplay)
        voice_id = request.voice_id
        if voice_id is None:
            fallback = default_voice(filter_voices(narrator.list_voices(), self._config.narrator.allowed_locales))
            voice_id = fallback.identifier if fallback else None
        driver.select_voice(voice_id)
        if request.speed != 1.0:
            driver.set_speed(request.speed)

        session_id = uuid.uuid4().hex[:12]
        with self._lock:
            self._sessions[session_id] = driver
            count = len(self._sessions)
        metrics.set_active_sessions(count)

        set_session_id(session_id)
        success(_LOG, "session_opened", book_id=book.id, pages=len(book.pages),
                rate=round(estimator.rate, 2), page=driver.session.page_index)
        return session_id

    def get_session(self, session_id: str) -> PlaybackDriver:
        """
        Raises:
            SessionNotFoundError: If no open session has this id.
        """
        with self._lock:
            driver = self._sessions.get(session_id)
        if driver is None:
            raise SessionNotFoundError(f"session not found: {session_id}", details={"session_id": session_id})
        return driver

    def snapshot(self, session_id: str) -> PlayerSnapshot:
        return self.get_session(session_id).snapshot()

    def close_session(self, session_id: str) -> PlaybackPosition:
        """Close a session, persisting rate and position. Returns the final position."""
        with self._lock:
            driver = self._sessions.pop(session_id, None)
            count = len(self._sessions)
        if driver is None:
            raise SessionNotFoundError(f"session not found: {session_id}", details={"session_id": session_id})
        metrics.set_active_sessions(count)
        return driver.close()

    def close_all(self) -> None:
        """Close every open session (shutdown)."""
        with self._lock:
            ids = list(self._sessions)
        for session_id in ids:
            try:
                self.close_session(session_id)
            except SessionNotFoundError:
                continue
        if ids:
            info(_LOG, "sessions_closed", count=len(ids))

    # =========================================================================
    # Controls (validated wrappers over the driver)
    # =========================================================================

    def set_speed(self, session_id: str, speed: float) -> None:
        driver = self.get_session(session_id)
        try:
            driver.set_speed(speed)
        except ValueError as e:
            raise InvalidInputError(str(e), details={"speed": speed}) from e

    def seek_to(self, session_id: str, fraction: float) -> None:
        if not (0.0 <= fraction <= 1.0):
            raise InvalidInputError("fraction must be within [0, 1]", details={"fraction": fraction})
        self.get_session(session_id).seek_to(fraction)

    def go_to_page(self, session_id: str, page_index: int) -> None:
        driver = self.get_session(session_id)
        if not (0 <= page_index < len(driver.pages)):
            raise InvalidInputError(
                f"page_index must be within [0, {len(driver.pages) - 1}]",
                details={"page_index": page_index},
            )
        driver.go_to_page(page_index)

    # =========================================================================
    # Voices
    # =========================================================================

    def list_voices(self) -> List[Voice]:
        """Voices in the allowed locales, sorted by language then name."""
        if self._catalogue_narrator is None:
            self._catalogue_narrator = self._narrator_factory()
        return filter_voices(self._catalogue_narrator.list_voices(), self._config.narrator.allowed_locales)

    def default_voice(self) -> Optional[Voice]:
        return default_voice(self.list_voices())

    def get_health_info(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "narrator": self._config.narrator.engine,
            "sessions": self.session_count,
            "store_dir": str(self._store.base_dir),
        }


# =============================================================================
# Global Service Singleton
# =============================================================================

_service: Optional[PlayerService] = None
_service_lock = threading.Lock()


def get_service(settings: Settings) -> PlayerService:
    """
    Get or create the global PlayerService instance.

    Thread-safe lazy singleton.
    """
    global _service
    if _service is None:
        with _service_lock:
            if _service is None:
                _service = PlayerService(settings)
    return _service


def reset_service() -> None:
    """
    Reset the global service instance.

    Used primarily for testing to ensure clean state between tests.
    """
    global _service
    with _service_lock:
        if _service is not None:
            try:
                _service.close_all()
            except Exception as e:
                warn(_LOG, "service_reset_failed", error=str(e))
        _service = None

"""
narrapace: Adaptive pacing for narrated books.

Plays a book of narration pages through a speech engine, learns how fast
the listener actually gets through the text, and uses that estimate to
show page and book times and to turn "skip 10 seconds" into a character
offset.

Key Features:
    - Self-correcting chars/sec estimate (live, per-segment and history samples)
    - Page-aware seeking, speed ladder, autoplay and resume-on-reopen
    - JSON book library with atomic writes
    - HTTP API (FastAPI) and CLI
    - Prometheus metrics

Example Usage:
    >>> from narrapace.core.config import Settings
    >>> from narrapace.services import PlayerService, PlayerOpenRequest
    >>>
    >>> service = PlayerService(Settings(raw={}))
    >>> sid = service.open_session(PlayerOpenRequest(book_id="physics_1700000000000"))
    >>> service.get_session(sid).play()
"""

__version__ = "0.1.0"
__all__ = ["__version__"]

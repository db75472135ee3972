"""
Persistence contract consumed by the playback driver.

Each call is an independent best-effort operation; there is no
transaction spanning several calls. Implementations should not raise,
but the driver still guards every call so a misbehaving store cannot
interrupt playback.
"""
from __future__ import annotations

from typing import List, Optional

from narrapace.store.models import NarrationPage, PlaybackPosition


class BaseStore:
    """Key-value style persistence for rate, positions and pages."""

    def load_rate(self) -> Optional[float]:
        raise NotImplementedError

    def save_rate(self, rate: float) -> None:
        raise NotImplementedError

    def load_position(self, book_id: str) -> Optional[PlaybackPosition]:
        raise NotImplementedError

    def save_position(self, book_id: str, position: PlaybackPosition) -> None:
        raise NotImplementedError

    def load_pages(self, book_id: str) -> List[NarrationPage]:
        raise NotImplementedError

    def save_page_duration(self, book_id: str, page_index: int, seconds: float) -> None:
        raise NotImplementedError

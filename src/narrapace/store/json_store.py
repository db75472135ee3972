"""
JSON File Store for Books and Listener Settings.

File Organization:
    {base_dir}/
        user_settings.json        # {"last_estimated_char_rate": 17.3, ...}
        books/
            physics_notes_1700000000000.json
            ...

Every write is atomic (temp file then rename). Every method is
best-effort: failures are logged with ``warn`` and counted in metrics,
never raised, so playback always continues on in-memory state.

Usage:
    from narrapace.store import JsonFileStore

    store = JsonFileStore("./library")
    book_id = store.save_book("Physics Notes", pages)
    store.save_position(book_id, PlaybackPosition(page_index=2, fractional_progress=0.4))
"""
from __future__ import annotations

import json
import re
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from narrapace.core.config import Defaults
from narrapace.core.logging import get_logger, info, verbose, warn
from narrapace.core.metrics import metrics
from narrapace.store.base import BaseStore
from narrapace.store.models import NarrationPage, PlaybackPosition, SavedBook, UserSettings

_LOG = get_logger("narrapace.store")

_UNSAFE_ID_CHARS = re.compile(r"[^a-z0-9]", re.IGNORECASE)


def make_book_id(title: str, now_ms: Optional[int] = None) -> str:
    """
    Derive a file-safe book id from a title.

    Example:
        >>> make_book_id("Physics: Ch 1", now_ms=1700000000000)
        'physics__ch_1_1700000000000'
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    safe_title = _UNSAFE_ID_CHARS.sub("_", title).lower()
    return f"{safe_title}_{now_ms}"


class JsonFileStore(BaseStore):
    """Book and settings persistence backed by one JSON file per record."""

    def __init__(self, base_dir: str = Defaults.STORE_BASE_DIR):
        self._base_dir = Path(base_dir)
        self._books_dir = self._base_dir / "books"
        self._settings_path = self._base_dir / "user_settings.json"

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _book_path(self, book_id: str) -> Path:
        return self._books_dir / f"{book_id}.json"

    # ─────────────────────────────────────────────────────────────────────────
    # Raw file access
    # ─────────────────────────────────────────────────────────────────────────

    def _read_json(self, path: Path, op: str) -> Optional[Dict[str, Any]]:
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            warn(_LOG, "store_read_error", op=op, file=path.name, error=str(e))
            metrics.record_store_failure(op)
            return None
        if not isinstance(data, dict):
            warn(_LOG, "store_read_error", op=op, file=path.name, error="not a JSON object")
            metrics.record_store_failure(op)
            return None
        return data

    def _write_json(self, path: Path, data: Dict[str, Any], op: str) -> bool:
        # Unique temp name per write; concurrent writers must not share one
        tmp: Optional[Path] = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp",
                delete=False, encoding="utf-8",
            ) as fh:
                tmp = Path(fh.name)
                json.dump(data, fh, ensure_ascii=False)
            tmp.replace(path)
        except (OSError, TypeError, ValueError) as e:
            warn(_LOG, "store_write_error", op=op, file=path.name, error=str(e))
            metrics.record_store_failure(op)
            try:
                if tmp is not None and tmp.exists():
                    tmp.unlink()
            except OSError:
                pass
            return False
        verbose(_LOG, "store_write", op=op, file=path.name)
        return True

    # ─────────────────────────────────────────────────────────────────────────
    # Listener settings
    # ─────────────────────────────────────────────────────────────────────────

    def load_settings(self) -> Optional[UserSettings]:
        data = self._read_json(self._settings_path, "load_settings")
        if data is None:
            return None
        try:
            return UserSettings.model_validate(data)
        except ValidationError as e:
            warn(_LOG, "store_invalid_settings", error=str(e))
            metrics.record_store_failure("load_settings")
            return None

    def update_settings(self, **updates: Any) -> bool:
        """Merge updates into user_settings.json, creating it with defaults if absent."""
        current = self.load_settings() or UserSettings()
        merged = current.model_copy(update=updates)
        return self._write_json(self._settings_path, merged.model_dump(exclude_none=True), "update_settings")

    def load_rate(self) -> Optional[float]:
        settings = self.load_settings()
        return settings.last_estimated_char_rate if settings else None

    def save_rate(self, rate: float) -> None:
        if self.update_settings(last_estimated_char_rate=float(rate)):
            verbose(_LOG, "rate_saved", rate=round(rate, 2))

    # ─────────────────────────────────────────────────────────────────────────
    # Books
    # ─────────────────────────────────────────────────────────────────────────

    def load_book(self, book_id: str) -> Optional[SavedBook]:
        data = self._read_json(self._book_path(book_id), "load_book")
        if data is None:
            return None
        try:
            return SavedBook.model_validate(data)
        except ValidationError as e:
            warn(_LOG, "store_invalid_book", book_id=book_id, error=str(e))
            metrics.record_store_failure("load_book")
            return None

    def _write_book(self, book: SavedBook, op: str) -> bool:
        return self._write_json(self._book_path(book.id), book.model_dump(exclude_none=True), op)

    def save_book(
        self,
        title: str,
        pages: List[NarrationPage],
        book_id: Optional[str] = None,
    ) -> str:
        """
        Write a book and return its id.

        A new id is derived from the title when ``book_id`` is not given.
        An existing book keeps its last position.
        """
        book_id = book_id or make_book_id(title)
        existing = self.load_book(book_id)
        book = SavedBook(
            id=book_id,
            title=title,
            date=datetime.now(timezone.utc).isoformat(),
            pages=list(pages),
            last_position=existing.last_position if existing else None,
        )
        if self._write_book(book, "save_book"):
            info(_LOG, "book_saved", book_id=book_id, pages=len(book.pages))
        return book_id

    def list_books(self) -> List[SavedBook]:
        """All readable books, newest first."""
        if not self._books_dir.exists():
            return []
        books: List[SavedBook] = []
        for path in self._books_dir.glob("*.json"):
            book = self.load_book(path.stem)
            if book is not None:
                books.append(book)
        books.sort(key=lambda b: b.date, reverse=True)
        return books

    def load_pages(self, book_id: str) -> List[NarrationPage]:
        book = self.load_book(book_id)
        return list(book.pages) if book else []

    def load_position(self, book_id: str) -> Optional[PlaybackPosition]:
        book = self.load_book(book_id)
        return book.last_position if book else None

    def save_position(self, book_id: str, position: PlaybackPosition) -> None:
        book = self.load_book(book_id)
        if book is None:
            return
        book.last_position = position
        if self._write_book(book, "save_position"):
            verbose(_LOG, "position_saved", book_id=book_id,
                    page=position.page_index, progress=round(position.fractional_progress, 3))

    def save_page_duration(self, book_id: str, page_index: int, seconds: float) -> None:
        book = self.load_book(book_id)
        if book is None or not (0 <= page_index < len(book.pages)):
            return
        book.pages[page_index].measured_duration_seconds = float(seconds)
        self._write_book(book, "save_page_duration")

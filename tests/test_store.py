"""
Tests for the JSON file store and persisted models.

Tests cover:
- make_book_id() sanitisation
- Book save/load/list round trips and last-position preservation
- Legacy field names written by the older client
- Position, page-duration and rate persistence
- Corrupt or missing files never raising
"""
import json
import threading

import pytest
from pydantic import ValidationError

from narrapace.store import (
    JsonFileStore,
    NarrationPage,
    PlaybackPosition,
    SavedBook,
    make_book_id,
)


@pytest.fixture
def store(tmp_path):
    return JsonFileStore(str(tmp_path))


def _pages(*texts):
    return [NarrationPage(text=t) for t in texts]


class TestBookIds:
    """Tests for make_book_id()."""

    def test_sanitised_title(self):
        assert make_book_id("Physics: Ch 1", now_ms=1700000000000) == "physics__ch_1_1700000000000"

    def test_timestamp_default(self):
        book_id = make_book_id("Notes")
        assert book_id.startswith("notes_")
        assert book_id.split("_")[-1].isdigit()


class TestModels:
    """Tests for the pydantic models."""

    def test_legacy_book_aliases(self):
        book = SavedBook.model_validate({
            "id": "old_1",
            "title": "Old",
            "date": "2024-01-01T00:00:00Z",
            "scripts": [{"script": "Hello there.", "visual_prompt": "a cat", "duration": 3.5}],
            "lastPosition": {"pageIndex": 0, "progress": 0.25},
        })
        assert book.pages[0].text == "Hello there."
        assert book.pages[0].visual_prompt_hint == "a cat"
        assert book.pages[0].measured_duration_seconds == 3.5
        assert book.last_position.fractional_progress == 0.25

    def test_page_length_floored(self):
        assert NarrationPage(text="").length == 1
        assert NarrationPage(text="abc").length == 3

    def test_position_from_offset(self):
        position = PlaybackPosition.from_offset(2, 250, 1000)
        assert position.page_index == 2
        assert position.fractional_progress == 0.25
        assert position.offset_in(1000) == 250

    def test_position_from_offset_clamped(self):
        assert PlaybackPosition.from_offset(0, 2000, 1000).fractional_progress == 1.0

    def test_progress_out_of_range_rejected(self):
        with pytest.raises(ValidationError):
            PlaybackPosition(page_index=0, fractional_progress=1.5)


class TestJsonFileStoreBooks:
    """Tests for book persistence."""

    def test_save_and_load(self, store):
        book_id = store.save_book("Physics", _pages("one", "two"))
        book = store.load_book(book_id)
        assert book.title == "Physics"
        assert [p.text for p in book.pages] == ["one", "two"]
        assert store.load_pages(book_id)[1].text == "two"

    def test_no_temp_file_left(self, store, tmp_path):
        store.save_book("Physics", _pages("one"), book_id="phys")
        assert (tmp_path / "books" / "phys.json").exists()
        assert not list((tmp_path / "books").glob("*.tmp"))

    def test_concurrent_writers_leave_valid_file(self, store, tmp_path):
        store.save_book("Physics", _pages("one", "two"), book_id="phys")
        fractions = [i / 10 for i in range(10)]

        def _save(fraction):
            store.save_position("phys", PlaybackPosition(page_index=1, fractional_progress=fraction))

        threads = [threading.Thread(target=_save, args=(f,)) for f in fractions]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5.0)

        position = store.load_position("phys")
        assert position.page_index == 1
        assert position.fractional_progress in fractions
        assert [p.name for p in (tmp_path / "books").iterdir()] == ["phys.json"]

    def test_snake_case_on_disk(self, store, tmp_path):
        store.save_book("Physics", _pages("one"), book_id="phys")
        store.save_position("phys", PlaybackPosition(page_index=0, fractional_progress=0.5))
        data = json.loads((tmp_path / "books" / "phys.json").read_text(encoding="utf-8"))
        assert data["last_position"] == {"page_index": 0, "fractional_progress": 0.5}
        assert data["pages"][0]["text"] == "one"

    def test_resave_keeps_position(self, store):
        store.save_book("Physics", _pages("one"), book_id="phys")
        store.save_position("phys", PlaybackPosition(page_index=0, fractional_progress=0.4))
        store.save_book("Physics", _pages("one, revised"), book_id="phys")
        assert store.load_position("phys").fractional_progress == 0.4

    def test_list_books_newest_first(self, store, tmp_path):
        books_dir = tmp_path / "books"
        books_dir.mkdir(parents=True)
        for book_id, date in [("a", "2024-01-01T00:00:00+00:00"), ("b", "2025-01-01T00:00:00+00:00")]:
            (books_dir / f"{book_id}.json").write_text(
                json.dumps({"id": book_id, "title": book_id, "date": date, "pages": []}),
                encoding="utf-8",
            )
        assert [b.id for b in store.list_books()] == ["b", "a"]

    def test_list_books_empty(self, store):
        assert store.list_books() == []

    def test_missing_book(self, store):
        assert store.load_book("nope") is None
        assert store.load_pages("nope") == []
        assert store.load_position("nope") is None

    def test_corrupt_book_skipped(self, store, tmp_path):
        books_dir = tmp_path / "books"
        books_dir.mkdir(parents=True)
        (books_dir / "broken.json").write_text("{not json", encoding="utf-8")
        assert store.load_book("broken") is None
        assert store.list_books() == []


class TestJsonFileStorePlayback:
    """Tests for position, duration and rate persistence."""

    def test_save_position_missing_book_is_noop(self, store, tmp_path):
        store.save_position("nope", PlaybackPosition(page_index=1, fractional_progress=0.1))
        assert not (tmp_path / "books" / "nope.json").exists()

    def test_save_page_duration(self, store):
        store.save_book("Physics", _pages("one", "two"), book_id="phys")
        store.save_page_duration("phys", 1, 42.5)
        pages = store.load_pages("phys")
        assert pages[0].measured_duration_seconds is None
        assert pages[1].measured_duration_seconds == 42.5

    def test_save_page_duration_out_of_range_ignored(self, store):
        store.save_book("Physics", _pages("one"), book_id="phys")
        store.save_page_duration("phys", 5, 10.0)
        assert store.load_pages("phys")[0].measured_duration_seconds is None

    def test_rate_round_trip(self, store):
        assert store.load_rate() is None
        store.save_rate(17.25)
        assert store.load_rate() == 17.25

    def test_update_settings_merges(self, store, tmp_path):
        store.save_rate(20.0)
        store.update_settings(has_launched=True)
        data = json.loads((tmp_path / "user_settings.json").read_text(encoding="utf-8"))
        assert data == {"last_estimated_char_rate": 20.0, "has_launched": True}

    def test_legacy_settings_file(self, store, tmp_path):
        (tmp_path / "user_settings.json").write_text(
            json.dumps({"lastEstimatedCharRate": 13.0}), encoding="utf-8"
        )
        assert store.load_rate() == 13.0

    def test_corrupt_settings_file(self, store, tmp_path):
        (tmp_path / "user_settings.json").write_text("[1, 2]", encoding="utf-8")
        assert store.load_rate() is None

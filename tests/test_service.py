"""
Tests for PlayerService session registry.

Tests cover:
- Opening a book: rate seeding, history recalculation, resume position
- Error codes for unknown books, sessions and bad control values
- Persistence on close
- Voice catalogue filtering
- Global singleton lifecycle
"""
import pytest

from narrapace.core.config import Settings
from narrapace.pacing.driver import PlaybackState
from narrapace.services import (
    BookNotFoundError,
    ErrorCode,
    InvalidInputError,
    PlayerError,
    PlayerOpenRequest,
    SessionNotFoundError,
    get_service,
    reset_service,
)
from narrapace.store import PlaybackPosition


class TestOpenSession:
    """Tests for PlayerService.open_session()."""

    def test_opens_at_start(self, service, book_id):
        sid = service.open_session(PlayerOpenRequest(book_id=book_id))
        snap = service.snapshot(sid)
        assert snap.book_id == book_id
        assert snap.page_index == 0
        assert snap.char_offset == 0
        assert snap.state == PlaybackState.IDLE.value
        assert snap.rate == 15.0
        assert service.session_count == 1

    def test_persisted_rate_used(self, service, store, book_id):
        store.save_rate(22.0)
        sid = service.open_session(PlayerOpenRequest(book_id=book_id))
        assert service.get_session(sid).estimator.rate == 22.0

    def test_history_recalculation(self, service, store, book_id):
        store.save_rate(22.0)
        store.save_page_duration(book_id, 0, 50.0)
        sid = service.open_session(PlayerOpenRequest(book_id=book_id))
        assert service.get_session(sid).estimator.rate == pytest.approx(20.0)

    def test_resumes_last_position(self, service, store, book_id):
        store.save_position(book_id, PlaybackPosition(page_index=1, fractional_progress=0.5))
        sid = service.open_session(PlayerOpenRequest(book_id=book_id))
        snap = service.snapshot(sid)
        assert snap.page_index == 1
        assert snap.char_offset == 400

    def test_options_applied(self, service, book_id):
        sid = service.open_session(PlayerOpenRequest(book_id=book_id, autoplay=True, voice_id="us", speed=1.5))
        snap = service.snapshot(sid)
        assert snap.autoplay is True
        assert snap.voice_id == "us"
        assert snap.speed == 1.5

    def test_default_voice_when_none_given(self, service, narrators, book_id):
        sid = service.open_session(PlayerOpenRequest(book_id=book_id))
        assert service.snapshot(sid).voice_id == "in"
        service.get_session(sid).play()
        assert narrators[-1].utterances[-1].voice == "in"

    def test_unknown_book(self, service):
        with pytest.raises(BookNotFoundError) as exc_info:
            service.open_session(PlayerOpenRequest(book_id="missing"))
        assert exc_info.value.code == ErrorCode.BOOK_NOT_FOUND

    def test_empty_book(self, service, store):
        store.save_book("Empty", [], book_id="empty")
        with pytest.raises(BookNotFoundError):
            service.open_session(PlayerOpenRequest(book_id="empty"))

    def test_speed_off_ladder(self, service, book_id):
        with pytest.raises(InvalidInputError):
            service.open_session(PlayerOpenRequest(book_id=book_id, speed=1.1))


class TestControls:
    """Tests for validated control wrappers."""

    def test_unknown_session(self, service):
        with pytest.raises(SessionNotFoundError):
            service.get_session("nope")

    def test_set_speed_invalid(self, service, book_id):
        sid = service.open_session(PlayerOpenRequest(book_id=book_id))
        with pytest.raises(InvalidInputError) as exc_info:
            service.set_speed(sid, 3.0)
        assert exc_info.value.details == {"speed": 3.0}

    def test_seek_to_out_of_range(self, service, book_id):
        sid = service.open_session(PlayerOpenRequest(book_id=book_id))
        with pytest.raises(InvalidInputError):
            service.seek_to(sid, 1.5)

    def test_go_to_page(self, service, book_id):
        sid = service.open_session(PlayerOpenRequest(book_id=book_id))
        service.go_to_page(sid, 1)
        assert service.snapshot(sid).page_index == 1
        with pytest.raises(InvalidInputError):
            service.go_to_page(sid, 2)

    def test_play_uses_session_narrator(self, service, narrators, book_id):
        sid = service.open_session(PlayerOpenRequest(book_id=book_id))
        assert service.get_session(sid).play() is True
        assert narrators[-1].current.text == "a" * 1000


class TestCloseSession:
    """Tests for close_session() / close_all()."""

    def test_close_persists_position_and_rate(self, service, store, book_id):
        store.save_position(book_id, PlaybackPosition(page_index=1, fractional_progress=0.5))
        sid = service.open_session(PlayerOpenRequest(book_id=book_id))
        position = service.close_session(sid)

        assert position.page_index == 1
        assert position.fractional_progress == 0.5
        assert store.load_position(book_id).page_index == 1
        assert store.load_rate() == 15.0
        assert service.session_count == 0

    def test_close_twice(self, service, book_id):
        sid = service.open_session(PlayerOpenRequest(book_id=book_id))
        service.close_session(sid)
        with pytest.raises(SessionNotFoundError):
            service.close_session(sid)

    def test_close_all(self, service, book_id):
        service.open_session(PlayerOpenRequest(book_id=book_id))
        service.open_session(PlayerOpenRequest(book_id=book_id))
        service.close_all()
        assert service.session_count == 0


class TestVoicesAndHealth:
    """Tests for the voice catalogue and health info."""

    def test_list_voices_filtered(self, service):
        assert [v.identifier for v in service.list_voices()] == ["in", "us"]

    def test_default_voice(self, service):
        assert service.default_voice().identifier == "in"

    def test_health_info(self, service, tmp_path):
        health = service.get_health_info()
        assert health["ok"] is True
        assert health["sessions"] == 0
        assert health["store_dir"] == str(tmp_path)


class TestErrors:
    """Tests for PlayerError serialisation."""

    def test_to_dict(self):
        err = InvalidInputError("bad speed", details={"speed": 9})
        assert err.to_dict() == {
            "ok": False,
            "error": "INVALID_INPUT",
            "message": "bad speed",
            "details": {"speed": 9},
        }

    def test_to_dict_without_details(self):
        assert "details" not in PlayerError("boom").to_dict()


class TestGlobalService:
    """Tests for get_service() / reset_service()."""

    def test_singleton(self, tmp_path):
        reset_service()
        settings = Settings(raw={"store": {"base_dir": str(tmp_path)}})
        try:
            first = get_service(settings)
            assert get_service(settings) is first
            reset_service()
            assert get_service(settings) is not first
        finally:
            reset_service()

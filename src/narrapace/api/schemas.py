"""
API Request/Response Schemas.

Models:
    OpenSessionRequest: body of POST /v1/sessions
    SeekRequest / SliderRequest / SpeedRequest / AutoplayRequest /
    VoiceRequest / PageRequest: control bodies
    SessionState: player snapshot returned by every session endpoint
    VoiceInfo: entry of GET /v1/voices

Example Request:
    POST /v1/sessions
    {"book_id": "physics_1700000000000", "autoplay": true}
"""
from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from narrapace.pacing.driver import PlayerSnapshot
from narrapace.pacing.narrator import Voice


class OpenSessionRequest(BaseModel):
    book_id: str = Field(..., min_length=1, description="Id of a saved book")
    autoplay: bool = Field(default=False, description="Continue to the next page automatically")
    voice_id: Optional[str] = Field(default=None, description="Voice identifier (narrator default if omitted)")
    speed: float = Field(default=1.0, gt=0, description="Initial speed multiplier")


class SeekRequest(BaseModel):
    """Relative seek; negative values rewind."""
    seconds: float = Field(default=-10.0, description="Seconds to skip (e.g. -10 or +10)")


class SliderRequest(BaseModel):
    fraction: float = Field(..., description="Position within the current page, 0.0 to 1.0")


class SpeedRequest(BaseModel):
    """Set an explicit speed, or cycle to the next one when omitted."""
    speed: Optional[float] = Field(default=None, gt=0)


class AutoplayRequest(BaseModel):
    enabled: bool


class VoiceRequest(BaseModel):
    voice_id: Optional[str] = None


class PageRequest(BaseModel):
    """Absolute page index, or a relative step when ``page_index`` is omitted."""
    page_index: Optional[int] = Field(default=None, ge=0)
    step: int = Field(default=1, description="+1 for next page, -1 for previous")


class TimesInfo(BaseModel):
    page_elapsed: float
    page_duration: float
    book_elapsed: float
    book_duration: float
    formatted: Dict[str, str]


class SessionState(BaseModel):
    session_id: str
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
    times: TimesInfo

    @classmethod
    def from_snapshot(cls, session_id: str, snap: PlayerSnapshot) -> "SessionState":
        return cls(
            session_id=session_id,
            book_id=snap.book_id,
            state=snap.state,
            page_index=snap.page_index,
            page_count=snap.page_count,
            char_offset=snap.char_offset,
            page_length=snap.page_length,
            progress=snap.progress,
            speed=snap.speed,
            autoplay=snap.autoplay,
            voice_id=snap.voice_id,
            rate=snap.rate,
            effective_rate=snap.effective_rate,
            times=TimesInfo(
                page_elapsed=snap.times.page_elapsed,
                page_duration=snap.times.page_duration,
                book_elapsed=snap.times.book_elapsed,
                book_duration=snap.times.book_duration,
                formatted=snap.formatted_times,
            ),
        )


class ClosedSession(BaseModel):
    ok: bool = True
    session_id: str
    page_index: int
    fractional_progress: float


class VoiceInfo(BaseModel):
    identifier: str
    name: str
    language: str

    @classmethod
    def from_voice(cls, voice: Voice) -> "VoiceInfo":
        return cls(identifier=voice.identifier, name=voice.name, language=voice.language)


class VoiceList(BaseModel):
    voices: List[VoiceInfo]
    default: Optional[str] = None

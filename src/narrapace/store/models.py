"""
Persisted data shapes, validated at the storage boundary.

Field names are snake_case on disk. Books written by the older mobile
client (``script``, ``visual_prompt``, ``duration``, ``lastPosition``,
``lastEstimatedCharRate``) are accepted on read.
"""
from __future__ import annotations

import math
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, Field


class NarrationPage(BaseModel):
    """
    One page of a narration script.

    ``text`` is immutable once generated; ``measured_duration_seconds``
    is rewritten after every full playback of the page and is expressed
    in 1.0x-equivalent seconds.
    """
    text: str = Field(validation_alias=AliasChoices("text", "script"))
    visual_prompt_hint: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("visual_prompt_hint", "visual_prompt"),
    )
    measured_duration_seconds: Optional[float] = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("measured_duration_seconds", "duration"),
    )

    @property
    def length(self) -> int:
        """Character length, floored at 1 so it can be used as a divisor."""
        return max(1, len(self.text))


class PlaybackPosition(BaseModel):
    """Where a listener stopped: page index plus fraction of that page's characters."""
    page_index: int = Field(default=0, ge=0, validation_alias=AliasChoices("page_index", "pageIndex"))
    fractional_progress: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        validation_alias=AliasChoices("fractional_progress", "progress"),
    )

    @classmethod
    def from_offset(cls, page_index: int, char_offset: int, page_length: int) -> "PlaybackPosition":
        """Build a position from a character offset; the fraction is never stored independently."""
        length = max(1, page_length)
        fraction = min(1.0, max(0.0, char_offset / length))
        return cls(page_index=max(0, page_index), fractional_progress=fraction)

    def offset_in(self, page_length: int) -> int:
        """Character offset this position maps to on a page of the given length."""
        return int(math.floor(self.fractional_progress * page_length))


class SavedBook(BaseModel):
    """A book file: metadata, ordered pages and the last listening position."""
    id: str
    title: str
    date: str
    pages: List[NarrationPage] = Field(default_factory=list, validation_alias=AliasChoices("pages", "scripts"))
    last_position: Optional[PlaybackPosition] = Field(
        default=None,
        validation_alias=AliasChoices("last_position", "lastPosition"),
    )


class UserSettings(BaseModel):
    """Global listener settings shared across books."""
    last_estimated_char_rate: float = Field(
        default=15.0,
        validation_alias=AliasChoices("last_estimated_char_rate", "lastEstimatedCharRate"),
    )
    has_launched: Optional[bool] = Field(
        default=None,
        validation_alias=AliasChoices("has_launched", "hasLaunched"),
    )

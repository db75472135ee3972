"""
Book and listener-settings persistence.

    - models.py: pydantic models validated at the storage boundary
    - base.py: BaseStore contract used by the playback driver
    - json_store.py: JsonFileStore, one JSON file per book
"""
from .base import BaseStore
from .json_store import JsonFileStore, make_book_id
from .models import NarrationPage, PlaybackPosition, SavedBook, UserSettings

__all__ = [
    "BaseStore",
    "JsonFileStore",
    "make_book_id",
    "NarrationPage",
    "PlaybackPosition",
    "SavedBook",
    "UserSettings",
]

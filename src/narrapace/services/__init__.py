"""
narrapace Services Layer.

Sits between the API/CLI and the pacing layer.

Components:
    - player_service.py: PlayerService (session registry and validated controls)
"""
from .player_service import (
    BookNotFoundError,
    ErrorCode,
    InvalidInputError,
    PlayerError,
    PlayerOpenRequest,
    PlayerService,
    SessionNotFoundError,
    get_service,
    reset_service,
)

__all__ = [
    "PlayerService",
    "PlayerOpenRequest",
    "PlayerError",
    "BookNotFoundError",
    "SessionNotFoundError",
    "InvalidInputError",
    "ErrorCode",
    "get_service",
    "reset_service",
]

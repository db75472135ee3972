"""
FastAPI Dependency Injection Providers.

    1. get_settings() - Loads and caches application configuration
    2. get_player_service() - Creates/returns the singleton PlayerService

The settings path defaults to config/settings.yaml and can be changed
with NARRAPACE_SETTINGS. A missing file means built-in defaults.

Usage in Route Handlers:
    from fastapi import Depends
    from narrapace.api.dependencies import get_player_service

    @router.get("/v1/sessions/{session_id}")
    def get_state(session_id: str, service: PlayerService = Depends(get_player_service)):
        ...
"""
from __future__ import annotations

import os
from functools import lru_cache

from narrapace.core.config import Settings, load_settings_or_default
from narrapace.services.player_service import PlayerService, get_service


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load and cache application settings.

    Settings are immutable once loaded; restart to pick up changes.
    """
    return load_settings_or_default(os.getenv("NARRAPACE_SETTINGS", "config/settings.yaml"))


def get_player_service() -> PlayerService:
    """Get the singleton PlayerService instance."""
    return get_service(get_settings())

"""
FastAPI Application Entry Point.

Usage:
    uvicorn narrapace.main:app --host 0.0.0.0 --port 8000
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from narrapace import __version__
from narrapace.api.routes import router
from narrapace.core.logging import configure_logging
from narrapace.services.player_service import reset_service


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Close every open session on shutdown so rates and positions are persisted."""
    yield
    reset_service()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    # Reads NARRAPACE_LOG_LEVEL and settings.yaml logging section
    configure_logging()

    app = FastAPI(title="narrapace", version=__version__, lifespan=lifespan)
    app.include_router(router)
    return app


# Global application instance for ASGI servers (uvicorn, gunicorn, etc.)
app = create_app()

"""
Player API Routes.

Endpoints:
    POST   /v1/sessions                    - Open a book, returns the session state
    GET    /v1/sessions/{id}               - Current state and derived times
    POST   /v1/sessions/{id}/play          - Play / resume
    POST   /v1/sessions/{id}/pause         - Pause
    POST   /v1/sessions/{id}/toggle        - Play if silent, else pause
    POST   /v1/sessions/{id}/seek          - Relative seek in seconds
    POST   /v1/sessions/{id}/slider        - Absolute seek within the page
    POST   /v1/sessions/{id}/speed         - Set or cycle the speed
    POST   /v1/sessions/{id}/autoplay      - Toggle page autoplay
    POST   /v1/sessions/{id}/voice         - Select the voice for the next utterance
    POST   /v1/sessions/{id}/page          - Go to a page (absolute or relative)
    DELETE /v1/sessions/{id}               - Close, persisting rate and position
    GET    /v1/voices                      - Voices in the allowed locales
    GET    /health                         - Health check
    GET    /metrics                        - Prometheus metrics

Error Handling:
    All errors are returned as JSON with standardized format:
    {
        "ok": false,
        "error": "<ERROR_CODE>",
        "message": "<human readable message>"
    }

    HTTP status codes are mapped from PlayerError codes:
        - BOOK_NOT_FOUND -> 404
        - SESSION_NOT_FOUND -> 404
        - INVALID_INPUT -> 400
        - anything else -> 500
"""
from __future__ import annotations

from typing import Callable

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse

from narrapace.api.dependencies import get_player_service
from narrapace.api.schemas import (
    AutoplayRequest,
    ClosedSession,
    OpenSessionRequest,
    PageRequest,
    SeekRequest,
    SessionState,
    SliderRequest,
    SpeedRequest,
    VoiceInfo,
    VoiceList,
    VoiceRequest,
)
from narrapace.core.logging import error, get_logger, set_session_id
from narrapace.core.metrics import metrics
from narrapace.pacing.driver import PlaybackDriver
from narrapace.services.player_service import (
    ErrorCode,
    PlayerError,
    PlayerOpenRequest,
    PlayerService,
)

router = APIRouter()

_LOG = get_logger("narrapace.api")

_STATUS_MAP = {
    ErrorCode.BOOK_NOT_FOUND: 404,
    ErrorCode.SESSION_NOT_FOUND: 404,
    ErrorCode.INVALID_INPUT: 400,
}


def _error_response(err: PlayerError) -> JSONResponse:
    """Create a standardized JSON error response from a PlayerError."""
    return JSONResponse(status_code=_STATUS_MAP.get(err.code, 500), content=err.to_dict())


def _internal_error(session_id: str, exc: Exception) -> JSONResponse:
    # Log internally but don't expose details
    error(_LOG, "internal_error", session=session_id, error=str(exc))
    return JSONResponse(
        status_code=500,
        content={
            "ok": False,
            "error": ErrorCode.INTERNAL_ERROR,
            "message": "Internal server error",
        },
    )


def _control(
    service: PlayerService,
    session_id: str,
    action: Callable[[PlaybackDriver], None],
):
    """Run an action against a session and return its new state."""
    set_session_id(session_id)
    try:
        action(service.get_session(session_id))
        return SessionState.from_snapshot(session_id, service.snapshot(session_id))
    except PlayerError as e:
        return _error_response(e)
    except Exception as e:
        return _internal_error(session_id, e)


@router.post("/v1/sessions", response_model=SessionState, status_code=201)
def open_session(req: OpenSessionRequest, service: PlayerService = Depends(get_player_service)):
    """
    Open the player on a saved book.

    Example:
        curl -X POST http://localhost:8000/v1/sessions \\
            -H "Content-Type: application/json" \\
            -d '{"book_id": "physics_1700000000000"}'
    """
    try:
        sid = service.open_session(PlayerOpenRequest(
            book_id=req.book_id,
            autoplay=req.autoplay,
            voice_id=req.voice_id,
            speed=req.speed,
        ))
        return SessionState.from_snapshot(sid, service.snapshot(sid))
    except PlayerError as e:
        return _error_response(e)
    except Exception as e:
        return _internal_error("-", e)


@router.get("/v1/sessions/{session_id}", response_model=SessionState)
def get_state(session_id: str, service: PlayerService = Depends(get_player_service)):
    return _control(service, session_id, lambda d: None)


@router.post("/v1/sessions/{session_id}/play", response_model=SessionState)
def play(session_id: str, service: PlayerService = Depends(get_player_service)):
    return _control(service, session_id, lambda d: d.play())


@router.post("/v1/sessions/{session_id}/pause", response_model=SessionState)
def pause(session_id: str, service: PlayerService = Depends(get_player_service)):
    return _control(service, session_id, lambda d: d.pause())


@router.post("/v1/sessions/{session_id}/toggle", response_model=SessionState)
def toggle(session_id: str, service: PlayerService = Depends(get_player_service)):
    return _control(service, session_id, lambda d: d.toggle_play())


@router.post("/v1/sessions/{session_id}/seek", response_model=SessionState)
def seek(session_id: str, req: SeekRequest, service: PlayerService = Depends(get_player_service)):
    """Relative seek; ``{"seconds": -10}`` rewinds ten seconds at the current rate."""
    return _control(service, session_id, lambda d: d.seek_by(req.seconds))


@router.post("/v1/sessions/{session_id}/slider", response_model=SessionState)
def slider(session_id: str, req: SliderRequest, service: PlayerService = Depends(get_player_service)):
    return _control(service, session_id, lambda d: service.seek_to(session_id, req.fraction))


@router.post("/v1/sessions/{session_id}/speed", response_model=SessionState)
def speed(session_id: str, req: SpeedRequest, service: PlayerService = Depends(get_player_service)):
    """Set ``speed``, or step to the next speed on the configured ladder when omitted."""
    def _apply(driver: PlaybackDriver) -> None:
        if req.speed is None:
            driver.change_speed()
        else:
            service.set_speed(session_id, req.speed)
    return _control(service, session_id, _apply)


@router.post("/v1/sessions/{session_id}/autoplay", response_model=SessionState)
def autoplay(session_id: str, req: AutoplayRequest, service: PlayerService = Depends(get_player_service)):
    return _control(service, session_id, lambda d: d.set_autoplay(req.enabled))


@router.post("/v1/sessions/{session_id}/voice", response_model=SessionState)
def voice(session_id: str, req: VoiceRequest, service: PlayerService = Depends(get_player_service)):
    return _control(service, session_id, lambda d: d.select_voice(req.voice_id))


@router.post("/v1/sessions/{session_id}/page", response_model=SessionState)
def page(session_id: str, req: PageRequest, service: PlayerService = Depends(get_player_service)):
    def _apply(driver: PlaybackDriver) -> None:
        target = req.page_index if req.page_index is not None else driver.session.page_index + req.step
        service.go_to_page(session_id, target)
    return _control(service, session_id, _apply)


@router.delete("/v1/sessions/{session_id}", response_model=ClosedSession)
def close_session(session_id: str, service: PlayerService = Depends(get_player_service)):
    set_session_id(session_id)
    try:
        position = service.close_session(session_id)
        return ClosedSession(
            session_id=session_id,
            page_index=position.page_index,
            fractional_progress=position.fractional_progress,
        )
    except PlayerError as e:
        return _error_response(e)
    except Exception as e:
        return _internal_error(session_id, e)


@router.get("/v1/voices", response_model=VoiceList)
def voices(service: PlayerService = Depends(get_player_service)):
    found = service.list_voices()
    default = service.default_voice()
    return VoiceList(
        voices=[VoiceInfo.from_voice(v) for v in found],
        default=default.identifier if default else None,
    )


@router.get("/health")
def health(service: PlayerService = Depends(get_player_service)):
    """Health check for load balancers and uptime monitors."""
    return service.get_health_info()


@router.get("/metrics")
def prometheus_metrics():
    """Prometheus metrics in text exposition format."""
    content, content_type = metrics.get_metrics_response()
    return Response(content=content, media_type=content_type)

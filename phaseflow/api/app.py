"""
FastAPI Application - REST API for running judged games.

Endpoints:
    POST   /api/v1/sessions                Create game session from artifacts
    GET    /api/v1/sessions                List sessions
    GET    /api/v1/sessions/{id}           Get session status and state
    POST   /api/v1/sessions/{id}/start     Run the setup transition
    POST   /api/v1/sessions/{id}/actions   Submit a player action
    GET    /api/v1/sessions/{id}/export    Export the full session document
    DELETE /api/v1/sessions/{id}           End session
    GET    /api/v1/health                  Health check

Turn Flow:
    1. POST /sessions with both artifacts and the player ids
       (auto_start runs setup and returns the first turn)
    2. POST /actions for each player the turn is waiting on
    3. Every response carries the canonical state, the decisions taken and
       the players expected to act next

All responses are JSON with explicit Pydantic schemas.
"""

from typing import Annotated, Optional, Union
import logging

from .. import __version__
from ..config import Settings
from ..errors import ArtifactValidationError, PhaseflowError, SessionNotFoundError
from ..logging_config import setup_logging

logger = logging.getLogger(__name__)


def create_app(service=None, settings: Optional[Settings] = None):
    """
    Create the FastAPI application.

    Args:
        service: Optional APIService instance (creates new if not provided)
        settings: Optional Settings (read from the environment if not provided)

    Returns:
        FastAPI application instance
    """
    try:
        from fastapi import FastAPI, Request, Query
        from fastapi.exceptions import RequestValidationError
        from fastapi.middleware.cors import CORSMiddleware
        from fastapi.responses import JSONResponse
    except ImportError:
        raise ImportError(
            "FastAPI not installed. Install with: pip install fastapi uvicorn"
        )

    from .service import APIService
    from .schemas import (
        # Request models
        CreateSessionRequest,
        SubmitActionRequest,
        # Response models
        CreateSessionResponse,
        SessionResponse,
        TurnResponse,
        ErrorResponse,
        SessionListResponse,
        EndSessionResponse,
        HealthResponse,
        # Enums
        ErrorCode,
    )

    settings = settings or Settings.from_env()
    setup_logging(settings.log_level, json_format=settings.log_json)

    app = FastAPI(
        title="Phaseflow API",
        description="""
Deterministic runtime for judge-assisted turn-based games.

## Turn Flow

1. `POST /sessions` with a transitions artifact, an instructions artifact
   and the player ids. With `auto_start` the setup transition runs at once.
2. `POST /sessions/{id}/actions` for each player listed in
   `awaiting_players`. The engine advances until it needs input again.

## Error Codes

| Code | Description |
|------|-------------|
| `SESSION_NOT_FOUND` | Session does not exist |
| `INVALID_ARTIFACT` | Transitions or instructions failed validation |
| `VALIDATION_ERROR` | Request body is malformed |
| `INTERNAL_ERROR` | Unexpected engine failure |
        """,
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    api_service = service or APIService.from_settings(settings)

    # =========================================================================
    # Error helpers
    # =========================================================================

    def make_error_response(
        error_code: ErrorCode,
        message: str,
        status_code: int = 400,
        details: Optional[dict] = None,
    ) -> JSONResponse:
        """Create a standardized error response."""
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(
                error=message,
                error_code=error_code,
                details=details,
            ).model_dump(mode="json"),
        )

    def session_not_found(e: SessionNotFoundError) -> JSONResponse:
        return make_error_response(
            ErrorCode.SESSION_NOT_FOUND,
            str(e),
            status_code=404,
            details={"session_id": e.session_id},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return make_error_response(
            ErrorCode.VALIDATION_ERROR,
            "Request validation failed",
            status_code=422,
            details={"errors": [
                {"loc": [str(p) for p in err.get("loc", ())], "msg": err.get("msg", "")}
                for err in exc.errors()
            ]},
        )

    @app.exception_handler(PhaseflowError)
    async def engine_error_handler(request: Request, exc: PhaseflowError):
        logger.error("Engine failure on %s", request.url.path, exc_info=exc)
        return make_error_response(ErrorCode.INTERNAL_ERROR, str(exc), status_code=500)

    # =========================================================================
    # Session Endpoints
    # =========================================================================

    @app.post(
        "/api/v1/sessions",
        response_model=CreateSessionResponse,
        status_code=201,
        responses={
            422: {"model": ErrorResponse, "description": "Invalid artifacts or request"},
            500: {"model": ErrorResponse, "description": "Setup failed inside the engine"},
        },
        tags=["Sessions"],
        summary="Create a new game session",
    )
    async def create_session(
        request: CreateSessionRequest,
    ) -> Union[CreateSessionResponse, JSONResponse]:
        """
        Create a new game session.

        Both artifacts are validated before the session exists. With
        `auto_start` the response includes the setup turn.
        """
        try:
            return api_service.create_session(request)
        except ArtifactValidationError as e:
            return make_error_response(
                ErrorCode.INVALID_ARTIFACT,
                str(e),
                status_code=422,
                details={"errors": e.errors},
            )

    @app.get(
        "/api/v1/sessions",
        response_model=SessionListResponse,
        tags=["Sessions"],
        summary="List sessions",
    )
    async def list_sessions(
        active_only: Annotated[bool, Query(description="Only sessions still in play")] = False,
    ) -> SessionListResponse:
        """List session IDs."""
        sessions = api_service.list_sessions(active_only=active_only)
        return SessionListResponse(sessions=sessions, count=len(sessions))

    @app.get(
        "/api/v1/sessions/{session_id}",
        response_model=SessionResponse,
        responses={404: {"model": ErrorResponse}},
        tags=["Sessions"],
        summary="Get session status",
    )
    async def get_session(session_id: str) -> Union[SessionResponse, JSONResponse]:
        """Get the current status and canonical state of a game session."""
        try:
            return api_service.get_session(session_id)
        except SessionNotFoundError as e:
            return session_not_found(e)

    @app.post(
        "/api/v1/sessions/{session_id}/start",
        response_model=TurnResponse,
        responses={404: {"model": ErrorResponse}},
        tags=["Sessions"],
        summary="Run the setup transition",
    )
    async def start_session(session_id: str) -> Union[TurnResponse, JSONResponse]:
        """Advance a session created with `auto_start=false`."""
        try:
            return api_service.start_session(session_id)
        except SessionNotFoundError as e:
            return session_not_found(e)

    @app.post(
        "/api/v1/sessions/{session_id}/actions",
        response_model=TurnResponse,
        responses={
            404: {"model": ErrorResponse, "description": "Session not found"},
            422: {"model": ErrorResponse, "description": "Malformed action"},
        },
        tags=["Gameplay"],
        summary="Submit a player action",
    )
    async def submit_action(
        session_id: str,
        request: SubmitActionRequest,
    ) -> Union[TurnResponse, JSONResponse]:
        """
        Submit an action and advance the game.

        The engine runs every step it can before it needs input again.
        Actions from players who are not expected to act are ignored and
        reported in `warnings`.
        """
        try:
            return api_service.submit_action(session_id, request)
        except SessionNotFoundError as e:
            return session_not_found(e)

    @app.get(
        "/api/v1/sessions/{session_id}/export",
        responses={404: {"model": ErrorResponse}},
        tags=["Sessions"],
        summary="Export the full session document",
    )
    async def export_session(session_id: str):
        """Everything needed to resume the session elsewhere."""
        try:
            return api_service.export_session(session_id)
        except SessionNotFoundError as e:
            return session_not_found(e)

    @app.delete(
        "/api/v1/sessions/{session_id}",
        response_model=EndSessionResponse,
        tags=["Sessions"],
        summary="End a game session",
    )
    async def end_session(session_id: str) -> EndSessionResponse:
        """End a game session and release resources."""
        success = api_service.end_session(session_id)
        return EndSessionResponse(success=success, session_id=session_id)

    # =========================================================================
    # Health Check
    # =========================================================================

    @app.get(
        "/api/v1/health",
        response_model=HealthResponse,
        tags=["System"],
        summary="Health check",
    )
    async def health_check() -> HealthResponse:
        """Health check endpoint for load balancers."""
        return HealthResponse(
            status="healthy",
            service="phaseflow",
            version=__version__,
        )

    @app.get("/", tags=["System"])
    async def root():
        """Root endpoint with API info."""
        return {
            "name": "Phaseflow API",
            "version": __version__,
            "docs": "/api/docs",
            "health": "/api/v1/health",
        }

    return app

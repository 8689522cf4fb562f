"""
API Module - HTTP interface to the engine.

Exposes sessions via REST API. A client:
1. Creates a session from a transitions artifact, an instructions
   artifact and a list of player ids
2. Submits player actions
3. Reads back the canonical state, decisions and who acts next
4. Exports the session for persistence

Sessions are held in memory by the service's SessionManager.
"""

from .schemas import (
    # Requests
    CreateSessionRequest,
    SubmitActionRequest,
    # Responses
    CreateSessionResponse,
    SessionResponse,
    TurnResponse,
    SessionListResponse,
    EndSessionResponse,
    HealthResponse,
    ErrorResponse,
    # Enums
    ErrorCode,
    SessionStatus,
    LoopStatus,
)
from .service import APIService
from .app import create_app

__all__ = [
    # Requests
    "CreateSessionRequest",
    "SubmitActionRequest",
    # Responses
    "CreateSessionResponse",
    "SessionResponse",
    "TurnResponse",
    "SessionListResponse",
    "EndSessionResponse",
    "HealthResponse",
    "ErrorResponse",
    # Enums
    "ErrorCode",
    "SessionStatus",
    "LoopStatus",
    # Service
    "APIService",
    "create_app",
]

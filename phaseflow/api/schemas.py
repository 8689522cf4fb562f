"""
Pydantic Schemas for API - Request/response models for OpenAPI.

These models define the contract between HTTP clients and the engine.
Artifacts travel as raw JSON documents; the service parses them.

Error Codes:
- SESSION_NOT_FOUND: Session does not exist or has ended
- INVALID_ARTIFACT: Transitions or instructions failed validation
- VALIDATION_ERROR: Request body is malformed
- INTERNAL_ERROR: Unexpected failure inside the engine
"""

from enum import Enum
from typing import Optional, Any
from pydantic import BaseModel, Field


# =============================================================================
# Enums
# =============================================================================

class SessionStatus(str, Enum):
    """Session status values."""
    CREATED = "created"
    ACTIVE = "active"
    GAME_OVER = "game_over"
    ERROR = "error"


class LoopStatus(str, Enum):
    """Where a turn stopped."""
    WAITING_FOR_INPUT = "waiting_for_input"
    GAME_OVER = "game_over"
    ERROR = "error"
    STEP_LIMIT = "step_limit"


class ErrorCode(str, Enum):
    """Machine-readable error codes."""
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    INVALID_ARTIFACT = "INVALID_ARTIFACT"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# =============================================================================
# Request Models
# =============================================================================

class CreateSessionRequest(BaseModel):
    """Request to create a new game session."""
    transitions: dict[str, Any] = Field(..., description="Transitions artifact (phases and rules)")
    instructions: dict[str, Any] = Field(..., description="Instructions artifact (operations and messages)")
    players: list[str] = Field(..., min_length=1, description="Opaque player ids")
    random_seed: Optional[int] = Field(None, description="Seed for rng operations")
    auto_start: bool = Field(True, description="Run the setup transition immediately")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "transitions": {"phases": ["init", "choose", "finished"], "transitions": []},
                    "instructions": {"transitions": {}},
                    "players": ["u-7f3a", "u-19bc"],
                    "auto_start": True,
                }
            ]
        }
    }


class SubmitActionRequest(BaseModel):
    """A player's action for the current input phase."""
    player_id: str = Field(..., min_length=1, description="Canonical id of the acting player")
    action: Any = Field(..., description="Free-form action payload")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"player_id": "u-7f3a", "action": "rock"},
            ]
        }
    }


# =============================================================================
# Response Models
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str = Field(..., description="Human-readable error message")
    error_code: ErrorCode = Field(..., description="Machine-readable error code")
    details: Optional[dict[str, Any]] = Field(None, description="Additional error context")
    api_version: str = Field("v1", description="API version")


class SessionResponse(BaseModel):
    """Response containing session information."""
    session_id: str
    status: SessionStatus
    current_phase: Optional[str] = None
    players: list[str] = Field(default_factory=list)
    awaiting_players: list[str] = Field(default_factory=list)
    is_initialized: bool = False
    public_message: Optional[str] = None
    game_error: Optional[dict[str, Any]] = None
    state: dict[str, Any] = Field(default_factory=dict)
    created_at: float = 0.0
    updated_at: float = 0.0
    api_version: str = "v1"


class TurnResponse(BaseModel):
    """Result of advancing a session."""
    session_id: str
    success: bool
    loop_state: LoopStatus
    status: SessionStatus
    current_phase: Optional[str] = None
    steps_executed: int = 0
    public_message: Optional[str] = None
    awaiting_players: list[str] = Field(default_factory=list)
    decisions: list[dict[str, Any]] = Field(default_factory=list)
    state: dict[str, Any] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    api_version: str = "v1"


class CreateSessionResponse(BaseModel):
    """Response after creating a session."""
    session: SessionResponse
    turn: Optional[TurnResponse] = Field(None, description="Setup result when auto_start is set")
    warnings: list[str] = Field(default_factory=list, description="Artifact validation warnings")


class SessionListResponse(BaseModel):
    """Response listing sessions."""
    sessions: list[str]
    count: int


class EndSessionResponse(BaseModel):
    """Response after ending a session."""
    success: bool
    session_id: str


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    service: str
    version: str

"""
API Service - Business logic layer between API and engine.

The service:
1. Parses and validates artifacts from request bodies
2. Manages sessions through the SessionManager
3. Formats session and turn results for HTTP clients

This layer is framework-agnostic (can be used with FastAPI, Flask, etc.)
Failures surface as phaseflow exceptions (SessionNotFoundError,
ArtifactValidationError); the web layer maps them to error responses.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any
import json
import logging

from .schemas import (
    CreateSessionRequest,
    CreateSessionResponse,
    SessionResponse,
    SubmitActionRequest,
    TurnResponse,
    SessionStatus,
    LoopStatus,
)
from ..config import Settings
from ..engine_core.state import current_phase, get_game, get_game_error, get_players
from ..judge import Judge
from ..session import Session, SessionManager, TurnResult
from ..spec_schema import load_artifacts, validate_artifacts

logger = logging.getLogger(__name__)


def _awaiting(state: dict[str, Any]) -> list[str]:
    return [
        player_id for player_id, player in get_players(state).items()
        if isinstance(player, dict) and player.get("actionRequired")
    ]


@dataclass
class APIService:
    """
    Main API service.

    Usage:
        service = APIService(session_manager=SessionManager(judge=my_judge))

        created = service.create_session(request)
        turn = service.submit_action(created.session.session_id, action_request)
    """
    session_manager: SessionManager = field(default_factory=SessionManager)

    @classmethod
    def from_settings(cls, settings: Settings, judge: Judge | None = None) -> APIService:
        return cls(session_manager=SessionManager(
            judge=judge,
            max_steps=settings.max_steps,
            random_seed=settings.random_seed,
        ))

    def create_session(self, request: CreateSessionRequest) -> CreateSessionResponse:
        """
        Create a new game session from raw artifacts.

        Raises ArtifactValidationError if either artifact is invalid.
        """
        transitions, instructions = load_artifacts(request.transitions, request.instructions)
        warnings = validate_artifacts(transitions, instructions).warnings

        session = self.session_manager.create_session(
            transitions=transitions,
            instructions=instructions,
            player_ids=request.players,
            random_seed=request.random_seed,
        )

        turn = None
        if request.auto_start:
            result = self.session_manager.start(session.session_id)
            turn = self._turn_to_response(session, result)

        return CreateSessionResponse(
            session=self._session_to_response(session),
            turn=turn,
            warnings=warnings,
        )

    def get_session(self, session_id: str) -> SessionResponse:
        return self._session_to_response(self.session_manager.require_session(session_id))

    def start_session(self, session_id: str) -> TurnResponse:
        session = self.session_manager.require_session(session_id)
        result = self.session_manager.start(session_id)
        return self._turn_to_response(session, result)

    def submit_action(self, session_id: str, request: SubmitActionRequest) -> TurnResponse:
        """Submit a player's action and advance the game."""
        session = self.session_manager.require_session(session_id)
        result = self.session_manager.submit_action(session_id, request.player_id, request.action)
        logger.info(
            "Session %s: action from %s -> %s after %d step(s)",
            session_id, request.player_id, result.loop_state.value, result.steps_executed,
        )
        return self._turn_to_response(session, result)

    def export_session(self, session_id: str) -> dict[str, Any]:
        """Full session document, suitable for Session.from_dict()."""
        return json.loads(self.session_manager.export_session(session_id))

    def end_session(self, session_id: str) -> bool:
        return self.session_manager.end_session(session_id)

    def list_sessions(self, active_only: bool = False) -> list[str]:
        return self.session_manager.list_sessions(active_only=active_only)

    # =========================================================================
    # Conversion Helpers
    # =========================================================================

    def _session_to_response(self, session: Session) -> SessionResponse:
        error = get_game_error(session.state)
        return SessionResponse(
            session_id=session.session_id,
            status=SessionStatus(session.status.value),
            current_phase=current_phase(session.state),
            players=list(session.players),
            awaiting_players=_awaiting(session.state),
            is_initialized=session.is_initialized,
            public_message=get_game(session.state).get("publicMessage"),
            game_error=error.to_dict() if error else None,
            state=session.state,
            created_at=session.created_at,
            updated_at=session.updated_at,
        )

    def _turn_to_response(self, session: Session, result: TurnResult) -> TurnResponse:
        return TurnResponse(
            session_id=session.session_id,
            success=result.success,
            loop_state=LoopStatus(result.loop_state.value),
            status=SessionStatus(session.status.value),
            current_phase=current_phase(result.state),
            steps_executed=result.steps_executed,
            public_message=result.public_message,
            awaiting_players=result.awaiting_players,
            decisions=result.decisions,
            state=result.state,
            errors=result.errors,
            warnings=result.warnings,
        )

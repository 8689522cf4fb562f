"""
Session Manager - Creates and manages game sessions.

A session is one play-through of one game:
- the two artifacts (transitions, instructions)
- the canonical state
- the alias mapping and the initialized flag
- the random seed and any pending player action

Sessions live in memory. Persistence is the caller's job: Session.to_json()
and Session.from_json() round-trip everything needed to resume a game.

Within one session steps are strictly sequential. submit_action() and
start() hold a per-session lock for the whole advance; different sessions
never share mutable state.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
import json
import logging
import secrets
import threading
import time
import uuid

from ..engine_core.aliasing import PlayerMapping
from ..engine_core.router import PlayerAction
from ..engine_core.state import (
    GAME_KEY,
    PLAYERS_KEY,
    get_game_error,
    is_game_ended,
)
from ..errors import SessionNotFoundError
from ..judge import Judge
from ..spec_schema.instructions import InstructionsArtifact
from ..spec_schema.transitions import TransitionsArtifact
from .game_loop import DEFAULT_MAX_STEPS, GameLoop, TurnResult

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """State of a game session."""
    CREATED = "created"  # Setup transition not run yet
    ACTIVE = "active"  # Game in progress
    GAME_OVER = "game_over"  # Terminal phase reached
    ERROR = "error"  # game.gameError is set


def initial_state(transitions: TransitionsArtifact, player_ids: list[str]) -> dict[str, Any]:
    """Canonical state before the setup transition runs."""
    return {
        GAME_KEY: {"currentPhase": transitions.entry_phase, "gameEnded": False},
        PLAYERS_KEY: {
            player_id: {"actionRequired": False, "actionsAllowed": None}
            for player_id in player_ids
        },
    }


@dataclass
class Session:
    """
    A game session.

    Contains:
    - The artifacts the game runs on
    - Current canonical game state
    - Alias mapping and initialized flag
    - Seed and pending action
    - Decision history (for auditing)
    """
    session_id: str
    transitions: TransitionsArtifact
    instructions: InstructionsArtifact
    state: dict[str, Any]
    players: list[str]
    created_at: float

    mapping: PlayerMapping = field(default_factory=dict)
    is_initialized: bool = False
    random_seed: int | None = None
    pending_action: PlayerAction | None = None

    history: list[dict[str, Any]] = field(default_factory=list)
    updated_at: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def status(self) -> SessionState:
        if get_game_error(self.state) is not None:
            return SessionState.ERROR
        if is_game_ended(self.state):
            return SessionState.GAME_OVER
        if not self.is_initialized:
            return SessionState.CREATED
        return SessionState.ACTIVE

    def is_active(self) -> bool:
        return self.status in {SessionState.CREATED, SessionState.ACTIVE}

    def touch(self) -> None:
        self.updated_at = time.time()

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "transitions": self.transitions.to_dict(),
            "instructions": self.instructions.to_dict(),
            "state": self.state,
            "players": list(self.players),
            "playerMapping": dict(self.mapping),
            "isInitialized": self.is_initialized,
            "randomSeed": self.random_seed,
            "pendingAction": self.pending_action.to_dict() if self.pending_action else None,
            "history": self.history,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Session:
        return cls(
            session_id=data["sessionId"],
            transitions=TransitionsArtifact.model_validate(data["transitions"]),
            instructions=InstructionsArtifact.model_validate(data["instructions"]),
            state=data["state"],
            players=list(data.get("players", [])),
            created_at=data.get("createdAt", 0.0),
            mapping=dict(data.get("playerMapping") or {}),
            is_initialized=bool(data.get("isInitialized", False)),
            random_seed=data.get("randomSeed"),
            pending_action=PlayerAction.from_dict(data.get("pendingAction")),
            history=list(data.get("history", [])),
            updated_at=data.get("updatedAt", 0.0),
            metadata=dict(data.get("metadata") or {}),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, text: str) -> Session:
        return cls.from_dict(json.loads(text))


class SessionManager:
    """
    Manages game sessions.

    Responsibilities:
    - Create sessions from parsed artifacts
    - Run the game loop for actions, one advance per session at a time
    - Track and end sessions
    """

    def __init__(
        self,
        judge: Judge | None = None,
        max_steps: int = DEFAULT_MAX_STEPS,
        random_seed: int | None = None,
    ):
        self.judge = judge
        self.max_steps = max_steps
        self.random_seed = random_seed
        self._sessions: dict[str, Session] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def create_session(
        self,
        transitions: TransitionsArtifact,
        instructions: InstructionsArtifact,
        player_ids: list[str],
        random_seed: int | None = None,
        session_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Session:
        """
        Create a new game session.

        The setup transition has not run yet; call start() (or submit the
        first action) to initialize.
        """
        seed = random_seed
        if seed is None:
            seed = self.random_seed if self.random_seed is not None else secrets.randbits(32)

        now = time.time()
        session = Session(
            session_id=session_id or str(uuid.uuid4()),
            transitions=transitions,
            instructions=instructions,
            state=initial_state(transitions, player_ids),
            players=list(player_ids),
            created_at=now,
            updated_at=now,
            random_seed=seed,
            metadata=metadata or {},
        )
        self._register(session)
        logger.info("Created session %s with %d player(s)", session.session_id, len(player_ids))
        return session

    def import_session(self, text: str) -> Session:
        """Register a session from Session.to_json() output."""
        session = Session.from_json(text)
        self._register(session)
        return session

    def export_session(self, session_id: str) -> str:
        with self._lock_for(session_id):
            return self.require_session(session_id).to_json()

    def get_session(self, session_id: str) -> Session | None:
        """Get a session by ID."""
        return self._sessions.get(session_id)

    def require_session(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def start(self, session_id: str) -> TurnResult:
        """Run the setup transition and any automatic steps after it."""
        return self._advance(session_id, None)

    def submit_action(self, session_id: str, player_id: str, action: Any) -> TurnResult:
        """Submit a player's action and advance until the game waits again."""
        return self._advance(session_id, PlayerAction(player_id=player_id, action=action))

    def end_session(self, session_id: str) -> bool:
        """Forget a session. Returns False if it did not exist."""
        with self._registry_lock:
            session = self._sessions.pop(session_id, None)
            self._locks.pop(session_id, None)
        if session is None:
            return False
        logger.info("Ended session %s", session_id)
        return True

    def list_sessions(self, active_only: bool = False) -> list[str]:
        """List session IDs."""
        return [
            sid for sid, session in list(self._sessions.items())
            if not active_only or session.is_active()
        ]

    def _register(self, session: Session) -> None:
        with self._registry_lock:
            self._sessions[session.session_id] = session
            self._locks[session.session_id] = threading.Lock()

    def _lock_for(self, session_id: str) -> threading.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            raise SessionNotFoundError(session_id)
        return lock

    def _advance(self, session_id: str, action: PlayerAction | None) -> TurnResult:
        with self._lock_for(session_id):
            session = self.require_session(session_id)
            loop = GameLoop(session, judge=self.judge, max_steps=self.max_steps)
            return loop.advance(action)

"""
Game Loop - Drives router and executor until the game needs a player.

The loop:
1. Take the submitted action (if any)
2. Ask the router for a decision
3. Execute ready decisions and feed the new state back in
4. Stop when the router waits for input, the game is over, a fatal
   error is recorded, or the step cap is reached

The submitted action is offered to the first routing call only; an
action the router ignores is dropped, not queued.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, TYPE_CHECKING
import logging

from ..engine_core.router import DecisionKind, PlayerAction, Router, utc_now_iso
from ..engine_core.state import get_game, get_game_error, get_players
from ..judge import Judge
from .executor import StepExecutor

if TYPE_CHECKING:
    from .manager import Session

logger = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 25


class LoopState(Enum):
    """Where the loop stopped."""
    WAITING_FOR_INPUT = "waiting_for_input"
    GAME_OVER = "game_over"
    ERROR = "error"
    STEP_LIMIT = "step_limit"


@dataclass
class TurnResult:
    """
    Result of one advance() call.

    Contains the decisions taken, the final canonical state and who is
    expected to act next.
    """
    success: bool
    loop_state: LoopState
    state: dict[str, Any]

    # Decision records, in order
    decisions: list[dict[str, Any]] = field(default_factory=list)
    steps_executed: int = 0

    public_message: str | None = None
    # Canonical ids of players with actionRequired
    awaiting_players: list[str] = field(default_factory=list)

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "loopState": self.loop_state.value,
            "state": self.state,
            "decisions": self.decisions,
            "stepsExecuted": self.steps_executed,
            "publicMessage": self.public_message,
            "awaitingPlayers": self.awaiting_players,
            "errors": self.errors,
            "warnings": self.warnings,
        }


class GameLoop:
    """
    The main game loop driver.

    Usage:
        loop = GameLoop(session, judge=judge)
        result = loop.advance()                      # run setup
        result = loop.advance(PlayerAction(p1, "rock"))

    The loop mutates the session in place (state, mapping, initialized
    flag, history). Callers serialise advance() calls per session.
    """

    def __init__(
        self,
        session: Session,
        judge: Judge | None = None,
        max_steps: int = DEFAULT_MAX_STEPS,
        clock: Callable[[], str] = utc_now_iso,
    ):
        self.session = session
        self.max_steps = max_steps
        self.router = Router(
            transitions=session.transitions,
            instructions=session.instructions,
            seed=session.random_seed,
            clock=clock,
        )
        self.executor = StepExecutor(judge=judge, clock=clock)

    def advance(self, action: PlayerAction | None = None) -> TurnResult:
        session = self.session
        if action is not None:
            session.pending_action = action

        decisions: list[dict[str, Any]] = []
        errors: list[str] = []
        warnings: list[str] = []
        steps = 0
        loop_state = LoopState.STEP_LIMIT

        while steps < self.max_steps:
            pending, session.pending_action = session.pending_action, None
            decision = self.router.route(
                session.state,
                initialized=session.is_initialized,
                mapping=session.mapping,
                players=session.players,
                action=pending,
            )
            record = decision.to_dict()
            decisions.append(record)
            session.history.append(record)
            session.state = decision.state
            session.mapping = decision.mapping
            if pending is not None and decision.player_action is None:
                warnings.append(f"Action from {pending.player_id} was not accepted")

            if decision.kind == DecisionKind.WAITING_FOR_INPUT:
                loop_state = LoopState.WAITING_FOR_INPUT
                break
            if decision.kind == DecisionKind.GAME_OVER:
                loop_state = LoopState.GAME_OVER
                break
            if decision.kind == DecisionKind.FATAL:
                errors.append(decision.error.message if decision.error else "Fatal error")
                loop_state = LoopState.ERROR
                break

            outcome = self.executor.execute(decision, session.transitions)
            session.state = outcome.state
            steps += 1

            if not outcome.success:
                errors.extend(outcome.errors)
                loop_state = LoopState.ERROR
                break
            if outcome.action_rejected:
                warnings.extend(outcome.errors)
            if decision.is_initialization:
                session.is_initialized = True
        else:
            logger.warning(
                "Session %s stopped after %d steps without waiting for input",
                session.session_id, steps,
            )
            warnings.append(f"Stopped after {steps} steps")

        session.touch()
        return TurnResult(
            success=loop_state in (LoopState.WAITING_FOR_INPUT, LoopState.GAME_OVER),
            loop_state=loop_state,
            state=session.state,
            decisions=decisions,
            steps_executed=steps,
            public_message=get_game(session.state).get("publicMessage"),
            awaiting_players=[
                player_id for player_id, player in get_players(session.state).items()
                if isinstance(player, dict) and player.get("actionRequired")
            ],
            errors=errors or self._stored_error(),
            warnings=warnings,
        )

    def _stored_error(self) -> list[str]:
        error = get_game_error(self.session.state)
        return [error.message] if error else []

"""
Router - The phase-transition state machine.

One call makes at most one decision. In priority order:

1. Fatal short-circuit: an existing game.gameError, or gameEnded
2. Initialization: the session has not run its setup transition yet
3. Player input: the phase accepts input and a valid action was submitted
4. Waiting: some player still has actionRequired
5. Automatic search: first outgoing transition (declared order) whose
   deterministic preconditions all hold
6. Deadlock: nothing can happen; recorded as a sticky game error

The router never applies operations. A ready decision carries the selected
instructions with every rng operation already rolled into a set, so rules
on later steps read stored values instead of rolling themselves.

Given the same state, artifacts, input, mapping, seed and clock the
decision is always identical.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable
import logging

from ..errors import PhaseflowError
from ..spec_schema.instructions import (
    InstructionsArtifact,
    PlayerPhaseInstructions,
    StepInstructions,
    TransitionInstructions,
)
from ..spec_schema.transitions import Transition, TransitionsArtifact
from .aliasing import PlayerMapping, create_mapping
from .expression import RuleEvaluator, build_router_context
from .randomness import resolve_rng_operations, seeded_rng, step_digest
from .state import (
    ErrorType,
    GAME_KEY,
    GameError,
    actions_allowed,
    any_action_required,
    current_phase,
    get_game_error,
    get_players,
    is_game_ended,
    normalize_state,
    record_game_error,
)

logger = logging.getLogger(__name__)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class DecisionKind(str, Enum):
    WAITING_FOR_INPUT = "waiting_for_input"
    READY_TO_EXECUTE = "ready_to_execute"
    FATAL = "fatal"
    GAME_OVER = "game_over"


@dataclass
class PlayerAction:
    """An action submitted by a player, addressed by canonical id."""
    player_id: str
    action: Any

    def is_well_formed(self) -> bool:
        """Non-empty actor id and non-empty payload."""
        if not isinstance(self.player_id, str) or not self.player_id.strip():
            return False
        if self.action is None:
            return False
        if isinstance(self.action, str):
            return bool(self.action.strip())
        if isinstance(self.action, (dict, list)):
            return bool(self.action)
        return True

    def to_dict(self) -> dict[str, Any]:
        return {"playerId": self.player_id, "playerAction": self.action}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> PlayerAction | None:
        if not data:
            return None
        return cls(player_id=data.get("playerId", ""), action=data.get("playerAction"))


@dataclass
class RouterDecision:
    """
    The outcome of one router call.

    `state` is the state the caller should carry forward: unchanged for
    waiting and ready decisions, with game.gameError written for new fatal
    decisions.
    """
    kind: DecisionKind
    state: dict[str, Any]
    current_phase: str | None = None
    transition_id: str | None = None
    next_phase: str | None = None
    instructions: StepInstructions | None = None
    is_initialization: bool = False
    player_action: PlayerAction | None = None
    mapping: PlayerMapping = field(default_factory=dict)
    error: GameError | None = None

    @property
    def is_ready(self) -> bool:
        return self.kind == DecisionKind.READY_TO_EXECUTE

    @property
    def step_id(self) -> str:
        """Transition id, or the phase name for player-input steps."""
        return self.transition_id or self.current_phase or ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "currentPhase": self.current_phase,
            "transitionId": self.transition_id,
            "nextPhase": self.next_phase,
            "instructions": self.instructions.to_dict() if self.instructions else None,
            "isInitialization": self.is_initialization,
            "playerAction": self.player_action.to_dict() if self.player_action else None,
            "error": self.error.to_dict() if self.error else None,
        }


@dataclass
class Router:
    """
    Decides the next step of a game.

    Usage:
        router = Router(transitions, instructions, seed=42)
        decision = router.route(state, initialized=True, mapping=mapping)
        if decision.is_ready:
            ...execute decision.instructions...
    """
    transitions: TransitionsArtifact
    instructions: InstructionsArtifact
    seed: int | str | None = None
    clock: Callable[[], str] = utc_now_iso
    evaluator: RuleEvaluator = field(default_factory=RuleEvaluator)

    def route(
        self,
        state: dict[str, Any],
        *,
        initialized: bool,
        mapping: PlayerMapping | None = None,
        players: list[str] | None = None,
        action: PlayerAction | None = None,
    ) -> RouterDecision:
        state = normalize_state(state)
        mapping = dict(mapping or {})
        phase = current_phase(state)

        # 1. Sticky error / game over
        existing = get_game_error(state)
        if existing is not None:
            return RouterDecision(
                kind=DecisionKind.FATAL, state=state, current_phase=phase,
                mapping=mapping, error=existing,
            )
        if is_game_ended(state):
            return RouterDecision(
                kind=DecisionKind.GAME_OVER, state=state, current_phase=phase, mapping=mapping,
            )

        # 2. Initialization
        if not initialized:
            return self._initialize(state, mapping, players)

        if phase is None:
            return self._fatal(
                state, mapping, ErrorType.INVALID_STATE,
                "State has no current phase", {"phases": list(self.transitions.phases)},
            )

        # 3. Player input
        if self.transitions.requires_player_input(phase) and action is not None:
            decision = self._player_input(state, mapping, phase, action)
            if decision is not None:
                return decision

        # 4. Waiting
        if any_action_required(state):
            return RouterDecision(
                kind=DecisionKind.WAITING_FOR_INPUT, state=state,
                current_phase=phase, mapping=mapping,
            )

        # 5. Automatic transitions, 6. deadlock
        return self._search(state, mapping, phase)

    def _initialize(
        self,
        state: dict[str, Any],
        mapping: PlayerMapping,
        players: list[str] | None,
    ) -> RouterDecision:
        transition = self.transitions.initialization_transition()
        if transition is None:
            return self._fatal(
                state, mapping, ErrorType.INVALID_STATE,
                f"No initialization transition from entry phase '{self.transitions.entry_phase}'",
                {"entryPhase": self.transitions.entry_phase},
            )

        instructions = self.instructions.for_transition(transition.id)
        if instructions is None:
            return self._missing_instructions(state, mapping, transition.id, transition.from_phase)

        if not mapping:
            mapping = create_mapping(players if players is not None else list(get_players(state)))
            logger.info("Created player mapping for %d player(s)", len(mapping))

        state[GAME_KEY].setdefault("currentPhase", self.transitions.entry_phase)
        return RouterDecision(
            kind=DecisionKind.READY_TO_EXECUTE,
            state=state,
            current_phase=self.transitions.entry_phase,
            transition_id=transition.id,
            next_phase=transition.to_phase,
            instructions=self._resolve_randomness(instructions, state, transition.id),
            is_initialization=True,
            mapping=mapping,
        )

    def _player_input(
        self,
        state: dict[str, Any],
        mapping: PlayerMapping,
        phase: str,
        action: PlayerAction,
    ) -> RouterDecision | None:
        if not action.is_well_formed():
            logger.info("Ignoring malformed action in phase %s", phase)
            return None
        player = get_players(state).get(action.player_id)
        if not isinstance(player, dict):
            logger.warning("Ignoring action from unknown player %s", action.player_id)
            return None
        if not actions_allowed(player):
            logger.info("Ignoring action from %s: actions not allowed", action.player_id)
            return None

        instructions = self.instructions.for_phase(phase)
        if instructions is None:
            return self._fatal(
                state, mapping, ErrorType.INVALID_STATE,
                f"No player action instructions for phase '{phase}'",
                {"currentPhase": phase},
            )

        return RouterDecision(
            kind=DecisionKind.READY_TO_EXECUTE,
            state=state,
            current_phase=phase,
            next_phase=phase,
            instructions=self._resolve_randomness(instructions, state, phase, action),
            player_action=action,
            mapping=mapping,
        )

    def _search(self, state: dict[str, Any], mapping: PlayerMapping, phase: str) -> RouterDecision:
        context = build_router_context(state)
        candidates: list[dict[str, Any]] = []

        for transition in self.transitions.transitions_from(phase):
            failure = self._first_failing_precondition(transition, context)
            if failure is not None:
                candidates.append(failure)
                continue

            instructions = self.instructions.for_transition(transition.id)
            if instructions is None:
                return self._missing_instructions(state, mapping, transition.id, phase)

            logger.debug("Transition %s fires from %s", transition.id, phase)
            return RouterDecision(
                kind=DecisionKind.READY_TO_EXECUTE,
                state=state,
                current_phase=phase,
                transition_id=transition.id,
                next_phase=transition.to_phase,
                instructions=self._resolve_randomness(instructions, state, transition.id),
                mapping=mapping,
            )

        return self._fatal(
            state, mapping, ErrorType.DEADLOCK,
            f"Deadlock in phase '{phase}': no player input required and no transition can fire",
            {"currentPhase": phase, "candidates": candidates},
        )

    def _first_failing_precondition(
        self,
        transition: Transition,
        context: dict[str, Any],
    ) -> dict[str, Any] | None:
        """None when every deterministic precondition holds, else a diagnostic record."""
        for precondition in transition.deterministic_preconditions():
            record = {
                "transitionId": transition.id,
                "toPhase": transition.to_phase,
                "failedPrecondition": precondition.id,
                "explain": precondition.explain,
            }
            try:
                passed = self.evaluator.evaluate_condition(precondition.logic, context)
            except PhaseflowError as e:
                record["error"] = str(e)
                return record
            if not passed:
                return record
        return None

    def _resolve_randomness(
        self,
        instructions: StepInstructions,
        state: dict[str, Any],
        step_key: str,
        action: PlayerAction | None = None,
    ) -> StepInstructions:
        rng = seeded_rng(
            self.seed,
            step_digest(state, step_key, action.to_dict() if action else None),
        )
        resolved = instructions.model_copy(deep=True)
        if isinstance(resolved, TransitionInstructions):
            resolved.state_delta = resolve_rng_operations(resolved.state_delta, rng)
        elif isinstance(resolved, PlayerPhaseInstructions):
            for player_action in resolved.player_actions:
                player_action.state_delta = resolve_rng_operations(player_action.state_delta, rng)
        return resolved

    def _missing_instructions(
        self,
        state: dict[str, Any],
        mapping: PlayerMapping,
        transition_id: str,
        phase: str | None,
    ) -> RouterDecision:
        return self._fatal(
            state, mapping, ErrorType.INVALID_STATE,
            f"No instructions for transition '{transition_id}'",
            {"transitionId": transition_id, "currentPhase": phase},
        )

    def _fatal(
        self,
        state: dict[str, Any],
        mapping: PlayerMapping,
        error_type: ErrorType,
        message: str,
        context: dict[str, Any],
    ) -> RouterDecision:
        logger.error("%s: %s", error_type.value, message)
        new_state, error = record_game_error(state, error_type, message, context, self.clock())
        return RouterDecision(
            kind=DecisionKind.FATAL,
            state=new_state,
            current_phase=current_phase(state),
            mapping=mapping,
            error=error,
        )


# Convenience function
def route(
    state: dict[str, Any],
    transitions: TransitionsArtifact,
    instructions: InstructionsArtifact,
    *,
    initialized: bool = True,
    mapping: PlayerMapping | None = None,
    players: list[str] | None = None,
    action: PlayerAction | None = None,
    seed: int | str | None = None,
    clock: Callable[[], str] = utc_now_iso,
) -> RouterDecision:
    """Route one step with a throwaway Router."""
    router = Router(transitions=transitions, instructions=instructions, seed=seed, clock=clock)
    return router.route(
        state, initialized=initialized, mapping=mapping, players=players, action=action,
    )

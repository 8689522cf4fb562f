"""
Step Executor - Carries out a ready router decision.

For one step:
1. Collect the step's operations and substitute the known placeholders
   ({{playerId}} is the actor's alias, {{playerAction}} the payload)
2. Split them into deterministic operations and operations the judge
   must resolve
3. Apply the deterministic batch; ask the judge only when something is
   left for it (templated operations, mechanics guidance, templated
   messages, or a choice between several player actions)
4. Apply the judge's batch to the same starting state and merge
5. Deliver messages, advance currentPhase, flag gameEnded on the
   terminal phase

Judge errors and operation failures become a sticky transition_failed
game error; the state is otherwise left as it was before the step.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable
import logging

from pydantic import ValidationError

from ..engine_core.aliasing import (
    PlayerMapping,
    canonical_ids,
    expand_all_to_canonical,
    reverse_mapping,
    to_aliased_view,
)
from ..engine_core.expression import RuleEvaluator, build_router_context
from ..engine_core.merge import merge_states
from ..engine_core.operations import BaseOperation, operations_to_dicts
from ..engine_core.reducer import apply_operations
from ..engine_core.router import RouterDecision, utc_now_iso
from ..engine_core.state import (
    GAME_KEY,
    PLAYERS_KEY,
    ErrorType,
    clone_state,
    get_players,
    is_number,
    record_game_error,
)
from ..engine_core.templates import (
    has_template_variables,
    resolve_operation_templates,
    resolve_templates,
    split_operations,
)
from ..errors import JudgeError, PhaseflowError
from ..judge import Judge, JudgeRequest, JudgeResult, NullJudge
from ..spec_schema.instructions import (
    MechanicsGuidance,
    Messages,
    PlayerActionInstruction,
    PlayerPhaseInstructions,
    TransitionInstructions,
)
from ..spec_schema.transitions import TransitionsArtifact

logger = logging.getLogger(__name__)


@dataclass
class StepOutcome:
    """
    Result of executing one step.

    `state` is always the state to persist: the advanced state on success,
    the state carrying a transition_failed error on failure, or the state
    with the rejection recorded when action validation failed.
    """
    success: bool
    state: dict[str, Any]
    judge_called: bool = False
    action_rejected: bool = False
    deterministic_touched: frozenset[str] = frozenset()
    judge_touched: frozenset[str] = frozenset()
    errors: list[str] = field(default_factory=list)

    @property
    def public_message(self) -> str | None:
        return self.state.get(GAME_KEY, {}).get("publicMessage")


@dataclass
class _StepPlan:
    """Operations and judge inputs collected from the instructions."""
    deterministic: list[BaseOperation] = field(default_factory=list)
    external: list[BaseOperation] = field(default_factory=list)
    guidance: list[MechanicsGuidance] = field(default_factory=list)
    messages: Messages | None = None
    choose_action: bool = False

    @property
    def needs_judge(self) -> bool:
        return bool(
            self.external
            or self.guidance
            or self.choose_action
            or (self.messages is not None and self.messages.has_templates)
        )


class StepExecutor:
    """
    Executes ready decisions.

    Usage:
        executor = StepExecutor(judge=my_judge)
        outcome = executor.execute(decision, transitions)
        session.state = outcome.state
    """

    def __init__(self, judge: Judge | None = None, clock: Callable[[], str] = utc_now_iso):
        self.judge = judge or NullJudge()
        self.clock = clock
        self.evaluator = RuleEvaluator()

    def execute(self, decision: RouterDecision, transitions: TransitionsArtifact) -> StepOutcome:
        if not decision.is_ready or decision.instructions is None:
            raise ValueError(f"Cannot execute a {decision.kind.value} decision")

        state = decision.state
        mapping = decision.mapping
        variables = self._builtin_variables(decision, mapping)

        # Player phase with a single action: validate before anything else
        action_instruction = self._single_action(decision)
        if action_instruction is not None and action_instruction.validation:
            rejection = self._check_action(state, decision, action_instruction)
            if rejection is not None:
                return rejection

        try:
            plan = self._plan(decision, variables)
        except ValidationError as e:
            return self._fail(state, decision, f"Instructions could not be resolved: {e}")

        deterministic = apply_operations(state, expand_all_to_canonical(plan.deterministic, mapping))
        if not deterministic.success:
            return self._fail(
                state, decision, "Deterministic operations failed",
                {"operationErrors": deterministic.errors},
            )

        next_state = deterministic.new_state
        judge_result: JudgeResult | None = None
        judge_touched: frozenset[str] = frozenset()

        if plan.needs_judge:
            request = self._judge_request(decision, plan, variables)
            try:
                judge_result = self.judge.resolve(request)
            except JudgeError as e:
                return self._fail(state, decision, f"Judge failed: {e}")

            judge_ops = expand_all_to_canonical(judge_result.state_delta, mapping)
            external = apply_operations(state, judge_ops)
            if not external.success:
                return self._fail(
                    state, decision, "Judge operations failed",
                    {"operationErrors": external.errors},
                )
            judge_touched = external.touched_paths
            next_state = merge_states(
                external.new_state,
                deterministic.new_state,
                deterministic.touched_paths,
                judge_touched,
            )

        self._deliver_messages(next_state, plan.messages, judge_result, mapping, variables)
        self._advance_phase(next_state, decision, transitions)

        return StepOutcome(
            success=True,
            state=next_state,
            judge_called=judge_result is not None,
            deterministic_touched=deterministic.touched_paths,
            judge_touched=judge_touched,
        )

    def _builtin_variables(self, decision: RouterDecision, mapping: PlayerMapping) -> dict[str, Any]:
        if decision.player_action is None:
            return {}
        actor = decision.player_action.player_id
        return {
            "playerId": reverse_mapping(mapping).get(actor, actor),
            "playerAction": decision.player_action.action,
        }

    def _single_action(self, decision: RouterDecision) -> PlayerActionInstruction | None:
        instructions = decision.instructions
        if isinstance(instructions, PlayerPhaseInstructions) and len(instructions.player_actions) == 1:
            return instructions.player_actions[0]
        return None

    def _plan(self, decision: RouterDecision, variables: dict[str, Any]) -> _StepPlan:
        instructions = decision.instructions
        plan = _StepPlan()

        if isinstance(instructions, TransitionInstructions):
            ops = [resolve_operation_templates(op, variables) for op in instructions.state_delta]
            plan.deterministic, plan.external = split_operations(ops)
            plan.messages = self._resolve_messages(instructions.messages, variables)
            if instructions.mechanics_guidance:
                plan.guidance.append(instructions.mechanics_guidance)
            return plan

        action = self._single_action(decision)
        if action is not None:
            ops = [resolve_operation_templates(op, variables) for op in action.state_delta]
            plan.deterministic, plan.external = split_operations(ops)
            plan.messages = self._resolve_messages(action.messages, variables)
            if action.mechanics_guidance:
                plan.guidance.append(action.mechanics_guidance)
            return plan

        # Several candidate actions: the judge decides which one was taken
        for candidate in instructions.player_actions:
            plan.external.extend(
                resolve_operation_templates(op, variables) for op in candidate.state_delta
            )
            if candidate.mechanics_guidance:
                plan.guidance.append(candidate.mechanics_guidance)
        plan.choose_action = bool(instructions.player_actions)
        return plan

    def _resolve_messages(self, messages: Messages | None, variables: dict[str, Any]) -> Messages | None:
        if messages is None:
            return None
        return Messages.model_validate(resolve_templates(messages.to_dict(), variables))

    def _check_action(
        self,
        state: dict[str, Any],
        decision: RouterDecision,
        action: PlayerActionInstruction,
    ) -> StepOutcome | None:
        """Run the action's validation checks; the first failing check rejects the action."""
        actor = decision.player_action.player_id
        context = build_router_context(state)
        context["input"] = {"playerId": actor, "playerAction": decision.player_action.action}
        variables = {"playerId": actor, "playerAction": decision.player_action.action}

        for check in action.validation.checks:
            logic = resolve_templates(check.logic, variables)
            try:
                passed = self.evaluator.evaluate_condition(logic, context)
            except PhaseflowError as e:
                logger.warning("Validation check %s could not be evaluated: %s", check.id, e)
                passed = False
            if passed:
                continue

            logger.info("Action from %s rejected by check %s", actor, check.id)
            rejected = clone_state(state)
            player = rejected[PLAYERS_KEY][actor]
            count = player.get("illegalActionCount")
            player["illegalActionCount"] = (count if is_number(count) else 0) + 1
            player["privateMessage"] = check.error_message
            return StepOutcome(
                success=True,
                state=rejected,
                action_rejected=True,
                errors=[check.error_message],
            )
        return None

    def _judge_request(
        self,
        decision: RouterDecision,
        plan: _StepPlan,
        variables: dict[str, Any],
    ) -> JudgeRequest:
        mapping = decision.mapping
        action = None
        if decision.player_action is not None:
            action = {
                "playerId": variables.get("playerId"),
                "playerAction": decision.player_action.action,
            }
        aliases = reverse_mapping(mapping)
        players = [aliases[player_id] for player_id in canonical_ids(mapping)]
        return JudgeRequest(
            step_id=decision.step_id,
            next_phase=decision.next_phase,
            instructions=decision.instructions.to_dict(),
            state=to_aliased_view(clone_state(decision.state), mapping),
            players=players,
            action=action,
            pending_operations=operations_to_dicts(plan.external),
            template_variables=dict(variables),
        )

    def _deliver_messages(
        self,
        state: dict[str, Any],
        messages: Messages | None,
        judge_result: JudgeResult | None,
        mapping: PlayerMapping,
        variables: dict[str, Any],
    ) -> None:
        game = state.setdefault(GAME_KEY, {})
        players = get_players(state)

        public = judge_result.public_message if judge_result else None
        if public is None and messages and messages.public:
            if not has_template_variables(messages.public.template):
                public = messages.public.template
        if public is not None:
            game["publicMessage"] = public

        private: dict[str, str] = {}
        if messages:
            for message in messages.private:
                if message.to and not has_template_variables([message.to, message.template]):
                    private[message.to] = message.template
        if judge_result:
            private.update(judge_result.private_messages)

        for alias, text in private.items():
            player_id = mapping.get(alias, alias)
            if player_id not in players:
                logger.warning("Private message for unknown player %s dropped", alias)
                continue
            players[player_id]["privateMessage"] = text

    def _advance_phase(
        self,
        state: dict[str, Any],
        decision: RouterDecision,
        transitions: TransitionsArtifact,
    ) -> None:
        game = state.setdefault(GAME_KEY, {})
        if decision.next_phase is not None:
            game["currentPhase"] = decision.next_phase
        if transitions.is_terminal(game.get("currentPhase")):
            game["gameEnded"] = True

    def _fail(
        self,
        state: dict[str, Any],
        decision: RouterDecision,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> StepOutcome:
        logger.error("Step %s failed: %s", decision.step_id, message)
        error_context = {
            "stepId": decision.step_id,
            "currentPhase": decision.current_phase,
            "nextPhase": decision.next_phase,
            **(context or {}),
        }
        failed_state, _ = record_game_error(
            state, ErrorType.TRANSITION_FAILED, message, error_context, self.clock()
        )
        return StepOutcome(success=False, state=failed_state, errors=[message])

"""
Tests for the step executor.

Tests:
- Deterministic steps never call the judge
- Judge requests carry aliases only
- Judge failures become sticky transition_failed errors
- Action validation rejects without advancing
"""

import pytest

from ..engine_core.router import DecisionKind, PlayerAction, Router
from ..engine_core.state import ErrorType, get_game_error
from ..judge import JudgeResult, NullJudge, ScriptedJudge
from ..session import StepExecutor

MAPPING = {"player1": "u-alpha", "player2": "u-zed"}


@pytest.fixture
def router(transitions, instructions, fixed_clock):
    return Router(transitions=transitions, instructions=instructions, seed=1, clock=fixed_clock)


@pytest.fixture
def chosen_state():
    """Both players have chosen; all_chosen is next."""
    return {
        "game": {"currentPhase": "choose", "gameEnded": False, "round": 1},
        "players": {
            "u-alpha": {"actionRequired": False, "actionsAllowed": None, "choice": "paper"},
            "u-zed": {"actionRequired": False, "actionsAllowed": None, "choice": "rock"},
        },
    }


class TestDeterministicSteps:
    """Steps without templates run without a judge."""

    def test_setup_runs_with_null_judge(self, router, transitions, player_ids, fixed_clock):
        state = {
            "game": {"currentPhase": "setup", "gameEnded": False},
            "players": {pid: {"actionRequired": False} for pid in player_ids},
        }
        decision = router.route(state, initialized=False)

        outcome = StepExecutor(judge=NullJudge(), clock=fixed_clock).execute(decision, transitions)

        assert outcome.success
        assert not outcome.judge_called
        assert outcome.state["game"]["currentPhase"] == "choose"
        assert outcome.state["game"]["round"] == 1
        assert outcome.public_message == "Choose rock, paper or scissors"
        assert all(p["actionRequired"] for p in outcome.state["players"].values())

    def test_player_action_substitutes_builtins(self, router, transitions, two_player_state):
        decision = router.route(
            two_player_state, initialized=True, mapping=MAPPING,
            action=PlayerAction(player_id="u-alpha", action="scissors"),
        )

        outcome = StepExecutor().execute(decision, transitions)

        alpha = outcome.state["players"]["u-alpha"]
        assert outcome.success
        assert not outcome.judge_called
        assert alpha["choice"] == "scissors"
        assert alpha["actionRequired"] is False
        assert alpha["privateMessage"] == "You chose scissors"
        assert outcome.state["game"]["currentPhase"] == "choose"

    def test_cannot_execute_waiting_decision(self, router, transitions, two_player_state):
        decision = router.route(two_player_state, initialized=True, mapping=MAPPING)
        assert decision.kind == DecisionKind.WAITING_FOR_INPUT

        with pytest.raises(ValueError):
            StepExecutor().execute(decision, transitions)


class TestJudgeSteps:
    """Steps with templated operations go through the judge."""

    def test_judge_sees_aliases_only(self, router, transitions, chosen_state, referee):
        decision = router.route(chosen_state, initialized=True, mapping=MAPPING)
        assert decision.transition_id == "all_chosen"

        outcome = StepExecutor(judge=referee).execute(decision, transitions)

        [request] = referee.requests
        assert request.step_id == "all_chosen"
        assert request.players == ["player1", "player2"]
        assert set(request.state["players"]) == {"player1", "player2"}
        assert "u-alpha" not in str(request.to_dict())
        assert [op["path"] for op in request.pending_operations] == [
            "game.winner",
            "players.{{winner}}.score",
        ]
        assert outcome.judge_called

    def test_judge_result_merged_and_mapped_back(self, router, transitions, chosen_state, referee):
        decision = router.route(chosen_state, initialized=True, mapping=MAPPING)

        outcome = StepExecutor(judge=referee).execute(decision, transitions)

        players = outcome.state["players"]
        assert outcome.state["game"]["winner"] == "player1"
        assert outcome.state["game"]["currentPhase"] == "reveal"
        assert outcome.public_message == "player1 wins: paper beats rock"
        assert players["u-alpha"]["score"] == 1
        assert players["u-alpha"]["privateMessage"] == "You won!"
        assert players["u-zed"]["privateMessage"] == "You lost."
        # Deterministic part of the same step
        assert players["u-alpha"]["actionsAllowed"] is False
        assert players["u-zed"]["actionsAllowed"] is False
        assert outcome.judge_touched == frozenset({"game.winner", "players.u-alpha.score"})

    def test_missing_judge_fails_step(self, router, transitions, chosen_state, fixed_clock):
        decision = router.route(chosen_state, initialized=True, mapping=MAPPING)

        outcome = StepExecutor(judge=NullJudge(), clock=fixed_clock).execute(decision, transitions)

        error = get_game_error(outcome.state)
        assert not outcome.success
        assert error.error_type == ErrorType.TRANSITION_FAILED
        assert error.context["stepId"] == "all_chosen"
        assert error.timestamp == fixed_clock()
        # Nothing from the failed step was applied
        assert outcome.state["game"]["currentPhase"] == "choose"
        assert "actionsAllowed" in outcome.state["players"]["u-alpha"]
        assert outcome.state["players"]["u-alpha"]["actionsAllowed"] is None

    def test_bad_judge_operations_fail_step(self, router, transitions, chosen_state):
        judge = ScriptedJudge(default=JudgeResult(state_delta=[
            {"op": "increment", "path": "players.player1.choice", "value": 1},
        ]))
        decision = router.route(chosen_state, initialized=True, mapping=MAPPING)

        outcome = StepExecutor(judge=judge).execute(decision, transitions)

        assert not outcome.success
        assert get_game_error(outcome.state).context["operationErrors"][0]["index"] == 0

    def test_malformed_judge_answer_fails_step(self, router, transitions, chosen_state):
        judge = ScriptedJudge(default={"stateDelta": [{"op": "explode"}]})
        decision = router.route(chosen_state, initialized=True, mapping=MAPPING)

        outcome = StepExecutor(judge=judge).execute(decision, transitions)

        assert not outcome.success
        assert "Malformed judge answer" in outcome.errors[0]

    def test_failure_is_sticky(self, router, transitions, chosen_state):
        decision = router.route(chosen_state, initialized=True, mapping=MAPPING)
        outcome = StepExecutor(judge=NullJudge()).execute(decision, transitions)

        again = router.route(outcome.state, initialized=True, mapping=MAPPING)

        assert again.kind == DecisionKind.FATAL
        assert again.error.error_type == ErrorType.TRANSITION_FAILED


class TestActionValidation:
    """Validation checks reject actions before anything is applied."""

    def test_rejected_action(self, router, transitions, two_player_state):
        decision = router.route(
            two_player_state, initialized=True, mapping=MAPPING,
            action=PlayerAction(player_id="u-alpha", action="lizard"),
        )

        outcome = StepExecutor().execute(decision, transitions)

        alpha = outcome.state["players"]["u-alpha"]
        assert outcome.success
        assert outcome.action_rejected
        assert outcome.errors == ["Choose rock, paper or scissors"]
        assert alpha["illegalActionCount"] == 1
        assert alpha["privateMessage"] == "Choose rock, paper or scissors"
        assert alpha["actionRequired"] is True
        assert "choice" not in alpha

    def test_rejections_accumulate(self, router, transitions, two_player_state):
        two_player_state["players"]["u-alpha"]["illegalActionCount"] = 2
        decision = router.route(
            two_player_state, initialized=True, mapping=MAPPING,
            action=PlayerAction(player_id="u-alpha", action="lizard"),
        )

        outcome = StepExecutor().execute(decision, transitions)

        assert outcome.state["players"]["u-alpha"]["illegalActionCount"] == 3

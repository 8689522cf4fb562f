"""
Pytest fixtures for phaseflow tests.

Most tests run a two-player rock-paper-scissors game:

    setup --initialize_game--> choose --all_chosen--> reveal --declare_winner--> finished

`choose` waits for both players; `all_chosen` needs the judge to name the
winner; `declare_winner` fires on its own once a winner is stored.
"""

import pytest
from typing import Any, Callable

from ..judge import JudgeRequest, ScriptedJudge
from ..session import SessionManager
from ..spec_schema import InstructionsArtifact, TransitionsArtifact, load_artifacts

FIXED_TIME = "2026-01-01T00:00:00+00:00"

BEATS = {"rock": "scissors", "paper": "rock", "scissors": "paper"}


def rps_transitions() -> dict[str, Any]:
    return {
        "phases": ["setup", "choose", "reveal", "finished"],
        "phaseMetadata": [
            {"phase": "setup", "requiresPlayerInput": False},
            {"phase": "choose", "requiresPlayerInput": True},
            {"phase": "reveal", "requiresPlayerInput": False},
            {"phase": "finished", "requiresPlayerInput": False},
        ],
        "transitions": [
            {
                "id": "initialize_game",
                "fromPhase": "setup",
                "toPhase": "choose",
                "preconditions": [],
            },
            {
                "id": "all_chosen",
                "fromPhase": "choose",
                "toPhase": "reveal",
                "checkedFields": ["players.*.choice", "players.*.actionRequired"],
                "preconditions": [
                    {
                        "id": "everyone_chose",
                        "logic": {"allPlayers": ["choice", "!=", None]},
                        "explain": "Every player stored a choice",
                    },
                    {
                        "id": "nobody_pending",
                        "logic": {"==": [{"var": "allPlayersCompletedActions"}, True]},
                        "explain": "No player is still required to act",
                    },
                ],
            },
            {
                "id": "declare_winner",
                "fromPhase": "reveal",
                "toPhase": "finished",
                "preconditions": [
                    {
                        "id": "winner_known",
                        "logic": {"!!": [{"var": "game.winner"}]},
                    },
                ],
            },
        ],
    }


def rps_instructions() -> dict[str, Any]:
    return {
        "version": "1.0.0",
        "playerPhases": {
            "choose": {
                "phase": "choose",
                "playerActions": [
                    {
                        "id": "submit_choice",
                        "actionName": "Submit choice",
                        "validation": {
                            "checks": [
                                {
                                    "id": "known_choice",
                                    "logic": {"in": [
                                        {"var": "input.playerAction"},
                                        ["rock", "paper", "scissors"],
                                    ]},
                                    "errorMessage": "Choose rock, paper or scissors",
                                },
                            ],
                        },
                        "stateDelta": [
                            {"op": "set", "path": "players.{{playerId}}.choice", "value": "{{playerAction}}"},
                            {"op": "set", "path": "players.{{playerId}}.actionRequired", "value": False},
                        ],
                        "messages": {
                            "private": [{"to": "{{playerId}}", "template": "You chose {{playerAction}}"}],
                        },
                    },
                ],
            },
        },
        "transitions": {
            "initialize_game": {
                "id": "initialize_game",
                "transitionName": "Start",
                "stateDelta": [
                    {"op": "setForAllPlayers", "field": "actionRequired", "value": True},
                    {"op": "set", "path": "game.round", "value": 1},
                ],
                "messages": {"public": {"template": "Choose rock, paper or scissors"}},
            },
            "all_chosen": {
                "id": "all_chosen",
                "transitionName": "Reveal",
                "mechanicsGuidance": {
                    "rules": ["Rock beats scissors", "Scissors beats paper", "Paper beats rock"],
                    "computation": "Compare the two choices",
                },
                "stateDelta": [
                    {"op": "setForAllPlayers", "field": "actionsAllowed", "value": False},
                    {"op": "set", "path": "game.winner", "value": "{{winner}}"},
                    {"op": "increment", "path": "players.{{winner}}.score", "value": 1},
                ],
            },
            "declare_winner": {
                "id": "declare_winner",
                "transitionName": "Finish",
                "stateDelta": [{"op": "set", "path": "game.status", "value": "complete"}],
            },
        },
    }


def rps_referee(request: JudgeRequest) -> dict[str, Any]:
    """Judge answer computed from the aliased choices in the request."""
    choices = {alias: record.get("choice") for alias, record in request.state["players"].items()}
    first, second = request.players
    if choices[first] == choices[second]:
        return {
            "stateDelta": [{"op": "set", "path": "game.winner", "value": "tie"}],
            "publicMessage": f"Tie: both chose {choices[first]}",
        }
    winner, loser = (first, second) if BEATS[choices[first]] == choices[second] else (second, first)
    return {
        "stateDelta": [
            {"op": "set", "path": "game.winner", "value": winner},
            {"op": "increment", "path": f"players.{winner}.score", "value": 1},
        ],
        "publicMessage": f"{winner} wins: {choices[winner]} beats {choices[loser]}",
        "privateMessages": {winner: "You won!", loser: "You lost."},
    }


@pytest.fixture
def fixed_clock() -> Callable[[], str]:
    return lambda: FIXED_TIME


@pytest.fixture
def player_ids() -> list[str]:
    """Opaque ids; sorted, 'u-alpha' becomes player1 and 'u-zed' player2."""
    return ["u-zed", "u-alpha"]


@pytest.fixture
def transitions_data() -> dict[str, Any]:
    return rps_transitions()


@pytest.fixture
def instructions_data() -> dict[str, Any]:
    return rps_instructions()


@pytest.fixture
def artifacts(transitions_data, instructions_data) -> tuple[TransitionsArtifact, InstructionsArtifact]:
    return load_artifacts(transitions_data, instructions_data)


@pytest.fixture
def transitions(artifacts) -> TransitionsArtifact:
    return artifacts[0]


@pytest.fixture
def instructions(artifacts) -> InstructionsArtifact:
    return artifacts[1]


@pytest.fixture
def referee() -> ScriptedJudge:
    return ScriptedJudge(responses={"all_chosen": rps_referee})


@pytest.fixture
def manager(referee) -> SessionManager:
    return SessionManager(judge=referee, random_seed=7)


@pytest.fixture
def build_artifacts() -> Callable[..., tuple[TransitionsArtifact, InstructionsArtifact]]:
    """Factory parsing small inline artifacts without cross-document validation."""
    def build(transitions: dict[str, Any], instructions: dict[str, Any]):
        return (
            TransitionsArtifact.model_validate(transitions),
            InstructionsArtifact.model_validate(instructions),
        )
    return build


@pytest.fixture
def two_player_state() -> dict[str, Any]:
    """Canonical state in the middle of a game."""
    return {
        "game": {"currentPhase": "choose", "gameEnded": False, "pot": 10},
        "players": {
            "u-alpha": {"actionRequired": True, "actionsAllowed": None, "coins": 5, "hand": ["a"]},
            "u-zed": {"actionRequired": False, "actionsAllowed": None, "coins": 3, "hand": []},
        },
    }

"""
Judge interface - The untrusted collaborator that fills in {{templates}}.

Some steps cannot be computed by rules alone: free text, narrative
messages, "who won this round" under fuzzy rules. The step executor hands
those to a judge (in production an LLM call) and treats its answer as
just another batch of operations.

The judge only ever sees aliases (player1, player2, ...) and answers in
aliases; the executor maps them back to canonical ids.

No LLM-backed judge ships with the package. Prompting, retries and
model selection belong to the integration that implements Judge.resolve().

Implementations:
- NullJudge: for games that never need one; raises when asked
- ScriptedJudge: canned answers for tests and offline replays
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..engine_core.operations import Operation, operations_to_dicts
from ..errors import JudgeError, JudgeUnavailableError


@dataclass
class JudgeRequest:
    """
    Everything the judge gets for one step.

    - step_id: the transition id, or the phase name for player-input steps
    - instructions: the selected instruction block (wire format)
    - state: aliased view of the starting state
    - players: aliases in order
    - action: the submitted action with an aliased actor, if any
    - pending_operations: templated operations the judge must resolve
    """
    step_id: str
    next_phase: str | None
    instructions: dict[str, Any]
    state: dict[str, Any]
    players: list[str]
    action: dict[str, Any] | None = None
    pending_operations: list[dict[str, Any]] = field(default_factory=list)
    template_variables: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "stepId": self.step_id,
            "nextPhase": self.next_phase,
            "instructions": self.instructions,
            "state": self.state,
            "players": self.players,
            "action": self.action,
            "pendingOperations": self.pending_operations,
            "templateVariables": self.template_variables,
        }


class JudgeResult(BaseModel):
    """
    The judge's answer: {stateDelta, publicMessage?, privateMessages?}.

    Operations and private message keys use aliases.
    """
    model_config = ConfigDict(populate_by_name=True)

    state_delta: list[Operation] = Field(default_factory=list, alias="stateDelta")
    public_message: Optional[str] = Field(default=None, alias="publicMessage")
    private_messages: dict[str, str] = Field(default_factory=dict, alias="privateMessages")

    def to_dict(self) -> dict[str, Any]:
        return {
            "stateDelta": operations_to_dicts(self.state_delta),
            "publicMessage": self.public_message,
            "privateMessages": dict(self.private_messages),
        }


class Judge(ABC):
    """
    Abstract base class for judges.

    resolve() is synchronous request/response; a judge that fails raises
    JudgeError and the step is recorded as transition_failed.
    """

    @abstractmethod
    def resolve(self, request: JudgeRequest) -> JudgeResult:
        """Resolve the non-deterministic part of one step."""
        pass


class NullJudge(Judge):
    """Judge for fully deterministic games."""

    def resolve(self, request: JudgeRequest) -> JudgeResult:
        raise JudgeUnavailableError(
            f"Step '{request.step_id}' needs a judge but none is configured"
        )


ScriptedResponse = Union[JudgeResult, dict[str, Any], Callable[[JudgeRequest], Any]]


class ScriptedJudge(Judge):
    """
    Judge with canned answers keyed by step id (transition id, or phase name
    for player-input steps).

    An answer can be a JudgeResult, its wire dict, or a callable taking the
    request. Every request is recorded in `requests`.
    """

    def __init__(
        self,
        responses: dict[str, ScriptedResponse] | None = None,
        default: ScriptedResponse | None = None,
    ):
        self.responses = responses or {}
        self.default = default
        self.requests: list[JudgeRequest] = []

    def resolve(self, request: JudgeRequest) -> JudgeResult:
        self.requests.append(request)
        response = self.responses.get(request.step_id, self.default)
        if response is None:
            raise JudgeError(f"No scripted answer for '{request.step_id}'")
        if callable(response):
            response = response(request)
        if isinstance(response, JudgeResult):
            return response
        try:
            return JudgeResult.model_validate(response)
        except ValidationError as e:
            raise JudgeError(f"Malformed judge answer for '{request.step_id}': {e}") from e

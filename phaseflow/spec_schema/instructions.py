"""
Instructions artifact - What happens when a transition fires or a player acts.

Keyed two ways:
- transitions: transition id -> TransitionInstructions
- playerPhases: phase name -> PlayerPhaseInstructions (one entry per
  phase that waits for player input)

stateDelta operations and message templates may contain {{variables}};
those parts are resolved by the judge at runtime.
"""

from __future__ import annotations
from typing import Any, Optional

from pydantic import Field

from ..engine_core.operations import BaseOperation, Operation
from ..engine_core.templates import has_template_variables
from .transitions import ArtifactModel


class MessageTemplate(ArtifactModel):
    """A message; `to` is a player alias or {{variable}} for private messages."""
    to: Optional[str] = None
    template: str


class Messages(ArtifactModel):
    public: Optional[MessageTemplate] = None
    private: list[MessageTemplate] = Field(default_factory=list)

    @property
    def has_templates(self) -> bool:
        templates = [m.template for m in self.private] + [m.to or "" for m in self.private]
        if self.public:
            templates.append(self.public.template)
        return any(has_template_variables(t) for t in templates)


class MechanicsGuidance(ArtifactModel):
    """Game rules the judge applies (e.g. 'Rock beats scissors')."""
    rules: list[str] = Field(default_factory=list)
    computation: Optional[str] = None


class PreconditionCheck(ArtifactModel):
    """Validation of a submitted action. Passes when `logic` is truthy."""
    id: str
    logic: Any
    error_message: str


class ValidationConfig(ArtifactModel):
    checks: list[PreconditionCheck] = Field(default_factory=list)


class PlayerActionInstruction(ArtifactModel):
    id: str
    action_name: str = ""
    description: str = ""
    validation: Optional[ValidationConfig] = None
    mechanics_guidance: Optional[MechanicsGuidance] = None
    state_delta: list[Operation] = Field(default_factory=list)
    messages: Optional[Messages] = None


class PlayerPhaseInstructions(ArtifactModel):
    phase: str
    player_actions: list[PlayerActionInstruction] = Field(default_factory=list)


class TransitionInstructions(ArtifactModel):
    id: str
    transition_name: str = ""
    description: str = ""
    priority: int = 0
    mechanics_guidance: Optional[MechanicsGuidance] = None
    state_delta: list[Operation] = Field(default_factory=list)
    messages: Optional[Messages] = None


class InstructionsArtifact(ArtifactModel):
    version: str = "1.0.0"
    generated_at: Optional[str] = None
    player_phases: dict[str, PlayerPhaseInstructions] = Field(default_factory=dict)
    transitions: dict[str, TransitionInstructions] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def for_transition(self, transition_id: str) -> TransitionInstructions | None:
        return self.transitions.get(transition_id)

    def for_phase(self, phase: str | None) -> PlayerPhaseInstructions | None:
        if phase is None:
            return None
        return self.player_phases.get(phase)


StepInstructions = TransitionInstructions | PlayerPhaseInstructions


def instruction_operations(instructions: StepInstructions) -> list[BaseOperation]:
    """All operations an instruction block declares, in order."""
    if isinstance(instructions, TransitionInstructions):
        return list(instructions.state_delta)
    ops: list[BaseOperation] = []
    for action in instructions.player_actions:
        ops.extend(action.state_delta)
    return ops

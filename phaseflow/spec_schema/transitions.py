"""
Transitions artifact - Phases and the rules for moving between them.

The artifact is produced offline from a game description and loaded as a
JSON document (camelCase keys). Precondition rules are compiled while the
document is parsed, so a rule that addresses a specific player or uses an
unsupported operator never reaches the router.

Structure:
- phases: ordered; the first is the entry phase, the last is terminal
- phaseMetadata: whether a phase waits for player input
- transitions: ordered; the first one whose deterministic preconditions
  all hold is selected
"""

from __future__ import annotations
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ..engine_core.expression import check_rule

INITIALIZATION_TRANSITION_ID = "initialize_game"


class ArtifactModel(BaseModel):
    """Base for artifact documents: camelCase on the wire, snake_case in code."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class Precondition(ArtifactModel):
    """A JsonLogic predicate guarding a transition."""
    id: str
    logic: Optional[Any] = Field(default=None, description="JsonLogic rule, or null for judge-only checks")
    deterministic: bool = True
    explain: str = ""

    @model_validator(mode="after")
    def _compile_logic(self) -> Precondition:
        if self.logic is None:
            if self.deterministic:
                raise ValueError(f"Precondition '{self.id}' is deterministic but has no logic")
            return self
        problems = check_rule(self.logic)
        if problems:
            raise ValueError(f"Precondition '{self.id}': " + "; ".join(problems))
        return self


class Transition(ArtifactModel):
    id: str
    from_phase: str
    to_phase: str
    condition: Optional[str] = None
    checked_fields: list[str] = Field(default_factory=list)
    preconditions: list[Precondition] = Field(default_factory=list)
    human_summary: Optional[str] = None

    def deterministic_preconditions(self) -> list[Precondition]:
        """Only these gate automatic firing."""
        return [p for p in self.preconditions if p.deterministic and p.logic is not None]


class PhaseMetadata(ArtifactModel):
    phase: str
    requires_player_input: bool = False


class TransitionsArtifact(ArtifactModel):
    """The phase graph of one game."""
    phases: list[str]
    phase_metadata: list[PhaseMetadata] = Field(default_factory=list)
    transitions: list[Transition] = Field(default_factory=list)

    @field_validator("phases")
    @classmethod
    def _phases_not_empty(cls, phases: list[str]) -> list[str]:
        if not phases:
            raise ValueError("At least one phase is required")
        if len(set(phases)) != len(phases):
            raise ValueError("Phase names must be unique")
        return phases

    @property
    def entry_phase(self) -> str:
        return self.phases[0]

    @property
    def terminal_phase(self) -> str:
        return self.phases[-1]

    def is_terminal(self, phase: str | None) -> bool:
        return phase == self.terminal_phase

    def get_phase_metadata(self, phase: str | None) -> PhaseMetadata | None:
        for metadata in self.phase_metadata:
            if metadata.phase == phase:
                return metadata
        return None

    def requires_player_input(self, phase: str | None) -> bool:
        metadata = self.get_phase_metadata(phase)
        return metadata.requires_player_input if metadata else False

    def transitions_from(self, phase: str | None) -> list[Transition]:
        """Outgoing transitions in declared order."""
        return [t for t in self.transitions if t.from_phase == phase]

    def get_transition(self, transition_id: str) -> Transition | None:
        for transition in self.transitions:
            if transition.id == transition_id:
                return transition
        return None

    def initialization_transition(self) -> Transition | None:
        """'initialize_game' if declared, else the first transition out of the entry phase."""
        transition = self.get_transition(INITIALIZATION_TRANSITION_ID)
        if transition is not None:
            return transition
        outgoing = self.transitions_from(self.entry_phase)
        return outgoing[0] if outgoing else None

"""
Artifact Validation - Consistency checks across the two artifacts.

Parsing (pydantic) already guarantees shapes and compiles every
precondition rule. This module checks what a single document cannot:

1. Phase coverage: every phase but the terminal one can be left, every
   phase but the entry one can be reached
2. References: transitions name declared phases, metadata covers phases
3. Instructions exist for every transition and every input phase
4. Operations never address players by position (players[0])
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any
import re

from pydantic import ValidationError

from ..errors import ArtifactValidationError
from .instructions import InstructionsArtifact
from .transitions import TransitionsArtifact

POSITIONAL_PATH = re.compile(r"players\[(\d+)\]")


@dataclass
class ValidationResult:
    """Result of validation, with errors and warnings."""
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def raise_for_errors(self) -> ValidationResult:
        if not self.valid:
            raise ArtifactValidationError(self.errors)
        return self


def validate_transitions(transitions: TransitionsArtifact) -> ValidationResult:
    """
    Validate the phase graph.

    Returns ValidationResult with errors and warnings.
    """
    errors: list[str] = []
    warnings: list[str] = []
    phases = transitions.phases
    declared = set(phases)

    seen_ids: set[str] = set()
    for transition in transitions.transitions:
        if transition.id in seen_ids:
            errors.append(f"Duplicate transition id '{transition.id}'")
        seen_ids.add(transition.id)
        if transition.from_phase not in declared:
            errors.append(f"Transition '{transition.id}' starts in undeclared phase '{transition.from_phase}'")
        if transition.to_phase not in declared:
            errors.append(f"Transition '{transition.id}' leads to undeclared phase '{transition.to_phase}'")
        if not transition.deterministic_preconditions() and transition.from_phase != transitions.entry_phase:
            warnings.append(
                f"Transition '{transition.id}' has no deterministic preconditions and always fires"
            )

    # Phase coverage
    for phase in phases[:-1]:
        if not transitions.transitions_from(phase):
            errors.append(f"Phase '{phase}' has no outgoing transition")
    for phase in phases[1:]:
        if not any(t.to_phase == phase for t in transitions.transitions):
            errors.append(f"Phase '{phase}' is unreachable: no transition leads to it")

    # Metadata
    metadata_phases = [m.phase for m in transitions.phase_metadata]
    for phase in metadata_phases:
        if phase not in declared:
            errors.append(f"phaseMetadata names undeclared phase '{phase}'")
    for phase in phases:
        if phase not in metadata_phases:
            warnings.append(f"Phase '{phase}' has no metadata; assuming no player input")

    if transitions.initialization_transition() is None:
        errors.append(f"No initialization transition from entry phase '{transitions.entry_phase}'")

    return ValidationResult(valid=not errors, errors=errors, warnings=warnings)


def _positional_paths(ops: list[Any]) -> list[str]:
    found = []
    for op in ops:
        for value in op.to_dict().values():
            if isinstance(value, str) and POSITIONAL_PATH.search(value):
                found.append(value)
    return found


def validate_instructions(
    instructions: InstructionsArtifact,
    transitions: TransitionsArtifact,
) -> ValidationResult:
    """Validate instructions against the phase graph they belong to."""
    errors: list[str] = []
    warnings: list[str] = []

    for transition in transitions.transitions:
        if instructions.for_transition(transition.id) is None:
            errors.append(f"No instructions for transition '{transition.id}'")

    transition_ids = {t.id for t in transitions.transitions}
    for transition_id in instructions.transitions:
        if transition_id not in transition_ids:
            warnings.append(f"Instructions for unknown transition '{transition_id}'")

    for metadata in transitions.phase_metadata:
        if metadata.requires_player_input and instructions.for_phase(metadata.phase) is None:
            errors.append(f"Input phase '{metadata.phase}' has no player action instructions")

    for phase, phase_instructions in instructions.player_phases.items():
        if not transitions.requires_player_input(phase):
            warnings.append(f"Player actions for phase '{phase}', which takes no input")
        for action in phase_instructions.player_actions:
            for path in _positional_paths(action.state_delta):
                errors.append(
                    f"Action '{action.id}' in phase '{phase}' uses positional player access '{path}'"
                )

    for transition_id, transition_instructions in instructions.transitions.items():
        for path in _positional_paths(transition_instructions.state_delta):
            errors.append(f"Transition '{transition_id}' uses positional player access '{path}'")

    return ValidationResult(valid=not errors, errors=errors, warnings=warnings)


def validate_artifacts(
    transitions: TransitionsArtifact,
    instructions: InstructionsArtifact,
    raise_on_error: bool = False,
) -> ValidationResult:
    """
    Validate both artifacts together.

    Raises ArtifactValidationError if raise_on_error=True and errors exist.
    """
    graph = validate_transitions(transitions)
    payload = validate_instructions(instructions, transitions)
    result = ValidationResult(
        valid=graph.valid and payload.valid,
        errors=graph.errors + payload.errors,
        warnings=graph.warnings + payload.warnings,
    )
    if raise_on_error:
        result.raise_for_errors()
    return result


def load_artifacts(
    transitions_data: dict[str, Any],
    instructions_data: dict[str, Any],
) -> tuple[TransitionsArtifact, InstructionsArtifact]:
    """
    Parse and validate both artifacts from their JSON documents.

    Raises ArtifactValidationError listing every problem found.
    """
    try:
        transitions = TransitionsArtifact.model_validate(transitions_data)
        instructions = InstructionsArtifact.model_validate(instructions_data)
    except ValidationError as e:
        raise ArtifactValidationError([
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]) from e
    validate_artifacts(transitions, instructions, raise_on_error=True)
    return transitions, instructions

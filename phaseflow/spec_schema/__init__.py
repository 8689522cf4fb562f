"""Game artifacts - the transitions and instructions documents a game runs on."""

from .transitions import (
    INITIALIZATION_TRANSITION_ID,
    PhaseMetadata,
    Precondition,
    Transition,
    TransitionsArtifact,
)
from .instructions import (
    InstructionsArtifact,
    MechanicsGuidance,
    MessageTemplate,
    Messages,
    PlayerActionInstruction,
    PlayerPhaseInstructions,
    PreconditionCheck,
    TransitionInstructions,
    ValidationConfig,
)
from .validation import (
    ValidationResult,
    load_artifacts,
    validate_artifacts,
    validate_instructions,
    validate_transitions,
)

__all__ = [
    "INITIALIZATION_TRANSITION_ID",
    "PhaseMetadata",
    "Precondition",
    "Transition",
    "TransitionsArtifact",
    "InstructionsArtifact",
    "MechanicsGuidance",
    "MessageTemplate",
    "Messages",
    "PlayerActionInstruction",
    "PlayerPhaseInstructions",
    "PreconditionCheck",
    "TransitionInstructions",
    "ValidationConfig",
    "ValidationResult",
    "load_artifacts",
    "validate_artifacts",
    "validate_instructions",
    "validate_transitions",
]

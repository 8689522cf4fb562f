"""
Tests for artifact parsing and validation.

Tests:
- Well-formed artifacts load
- Phase graph coverage and references
- Instructions coverage
- Rules are compiled while parsing
"""

import pytest

from ..errors import ArtifactValidationError
from ..spec_schema import (
    INITIALIZATION_TRANSITION_ID,
    TransitionsArtifact,
    load_artifacts,
    validate_artifacts,
    validate_transitions,
)


class TestLoadArtifacts:
    """Tests for load_artifacts."""

    def test_valid_artifacts(self, transitions_data, instructions_data):
        transitions, instructions = load_artifacts(transitions_data, instructions_data)

        assert transitions.entry_phase == "setup"
        assert transitions.terminal_phase == "finished"
        assert transitions.requires_player_input("choose")
        assert not transitions.requires_player_input("reveal")
        assert transitions.initialization_transition().id == INITIALIZATION_TRANSITION_ID
        assert instructions.for_phase("choose").player_actions[0].id == "submit_choice"

    def test_no_errors_or_warnings(self, artifacts):
        result = validate_artifacts(*artifacts)

        assert result.valid
        assert result.errors == []
        assert result.warnings == []

    def test_round_trip_through_wire_format(self, artifacts):
        transitions, instructions = artifacts

        again = load_artifacts(transitions.to_dict(), instructions.to_dict())

        assert again == (transitions, instructions)

    def test_shape_errors_reported(self, instructions_data):
        with pytest.raises(ArtifactValidationError) as exc_info:
            load_artifacts({"phases": "setup"}, instructions_data)

        assert any(e.startswith("phases") for e in exc_info.value.errors)

    def test_empty_phases_rejected(self, instructions_data):
        with pytest.raises(ArtifactValidationError):
            load_artifacts({"phases": []}, instructions_data)


class TestRuleCompilation:
    """Preconditions are checked while the document is parsed."""

    @pytest.mark.parametrize("logic", [
        {"==": [{"var": "players.player1.choice"}, "rock"]},
        {"==": [{"var": "players.u-alpha.choice"}, "rock"]},
        {"==": [{"var": "players.3f1c2a9e-8b7d-4e21-9a0f-5c6d7e8f9a0b.choice"}, "rock"]},
        {"!!": [{"lookup": [{"var": "players"}, "u-alpha"]}]},
    ])
    def test_player_specific_rule_rejected(self, transitions_data, instructions_data, logic):
        transitions_data["transitions"][1]["preconditions"][0]["logic"] = logic

        with pytest.raises(ArtifactValidationError) as exc_info:
            load_artifacts(transitions_data, instructions_data)

        assert "everyone_chose" in " ".join(exc_info.value.errors)

    def test_rng_in_rule_rejected(self, transitions_data, instructions_data):
        transitions_data["transitions"][2]["preconditions"][0]["logic"] = {
            "==": [{"rng": [["a", "b"], [0.5, 0.5]]}, "a"],
        }

        with pytest.raises(ArtifactValidationError):
            load_artifacts(transitions_data, instructions_data)

    def test_deterministic_precondition_needs_logic(self, transitions_data, instructions_data):
        transitions_data["transitions"][2]["preconditions"][0]["logic"] = None

        with pytest.raises(ArtifactValidationError):
            load_artifacts(transitions_data, instructions_data)


class TestPhaseGraph:
    """Tests for validate_transitions."""

    def test_unknown_phase_reference(self, transitions_data):
        transitions_data["transitions"][2]["toPhase"] = "nowhere"

        result = validate_transitions(TransitionsArtifact.model_validate(transitions_data))

        assert not result.valid
        assert any("nowhere" in e for e in result.errors)

    def test_dead_end_phase(self, transitions_data):
        transitions_data["transitions"].pop(2)

        result = validate_transitions(TransitionsArtifact.model_validate(transitions_data))

        assert "Phase 'reveal' has no outgoing transition" in result.errors
        assert "Phase 'finished' is unreachable: no transition leads to it" in result.errors

    def test_duplicate_transition_ids(self, transitions_data):
        transitions_data["transitions"][2]["id"] = "all_chosen"

        result = validate_transitions(TransitionsArtifact.model_validate(transitions_data))

        assert "Duplicate transition id 'all_chosen'" in result.errors

    def test_unconditional_transition_warns(self, transitions_data):
        transitions_data["transitions"][2]["preconditions"] = []

        result = validate_transitions(TransitionsArtifact.model_validate(transitions_data))

        assert result.valid
        assert any("declare_winner" in w for w in result.warnings)

    def test_missing_metadata_warns(self, transitions_data):
        transitions_data["phaseMetadata"] = transitions_data["phaseMetadata"][:2]

        result = validate_transitions(TransitionsArtifact.model_validate(transitions_data))

        assert result.valid
        assert len(result.warnings) == 2


class TestInstructionsCoverage:
    """Tests for validate_instructions via load_artifacts."""

    def test_missing_transition_instructions(self, transitions_data, instructions_data):
        del instructions_data["transitions"]["declare_winner"]

        with pytest.raises(ArtifactValidationError) as exc_info:
            load_artifacts(transitions_data, instructions_data)

        assert "No instructions for transition 'declare_winner'" in exc_info.value.errors

    def test_input_phase_without_actions(self, transitions_data, instructions_data):
        del instructions_data["playerPhases"]["choose"]

        with pytest.raises(ArtifactValidationError) as exc_info:
            load_artifacts(transitions_data, instructions_data)

        assert "Input phase 'choose' has no player action instructions" in exc_info.value.errors

    def test_positional_player_path_rejected(self, transitions_data, instructions_data):
        instructions_data["transitions"]["declare_winner"]["stateDelta"].append(
            {"op": "set", "path": "players[0].score", "value": 1},
        )

        with pytest.raises(ArtifactValidationError) as exc_info:
            load_artifacts(transitions_data, instructions_data)

        assert any("positional" in e for e in exc_info.value.errors)

    def test_unknown_operation_rejected(self, transitions_data, instructions_data):
        instructions_data["transitions"]["declare_winner"]["stateDelta"] = [{"op": "teleport"}]

        with pytest.raises(ArtifactValidationError):
            load_artifacts(transitions_data, instructions_data)

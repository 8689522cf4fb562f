"""
Errors - Exception hierarchy for the phaseflow engine.

Two kinds of failure exist in the engine:
- In-state game errors (deadlock, invalid_state, ...) are VALUES written
  into game.gameError by the router or step executor. See engine_core.router.
- Python exceptions, defined here, are raised for contract violations by
  callers: malformed artifacts, bad rules, judge failures, unknown sessions.

The operation engine and the rule evaluator never raise for path or type
problems; they return error values instead.
"""

from __future__ import annotations
from typing import Any


class PhaseflowError(Exception):
    """Base exception for all phaseflow errors."""


class ArtifactValidationError(PhaseflowError):
    """Raised when a transitions or instructions artifact fails validation."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(f"Artifact validation failed with {len(errors)} error(s)")


class RuleCompilationError(PhaseflowError):
    """Raised when a precondition rule uses forbidden constructs."""

    def __init__(self, problems: list[str], rule: Any = None):
        self.problems = problems
        self.rule = rule
        super().__init__("; ".join(problems))


class RuleEvaluationError(PhaseflowError):
    """Raised when a rule reaches the evaluator with an unknown operator."""


class OperationError(PhaseflowError):
    """Raised by callers that treat an operation batch failure as fatal."""

    def __init__(self, errors: list[dict[str, Any]]):
        self.errors = errors
        super().__init__(f"{len(errors)} operation(s) failed to apply")


class JudgeError(PhaseflowError):
    """Raised when the external judge fails or returns an unusable result."""


class JudgeUnavailableError(JudgeError):
    """Raised when a step needs the judge but none is configured."""


class SessionNotFoundError(PhaseflowError):
    """Raised when a session id is unknown to the manager."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} not found")

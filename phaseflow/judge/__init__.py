"""Judge - External resolution of the non-deterministic parts of a step."""

from .interface import (
    Judge,
    JudgeRequest,
    JudgeResult,
    NullJudge,
    ScriptedJudge,
)

__all__ = [
    "Judge",
    "JudgeRequest",
    "JudgeResult",
    "NullJudge",
    "ScriptedJudge",
]

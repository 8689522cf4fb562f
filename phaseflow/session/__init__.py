"""
Session Module - Runs games on top of the engine core.

A session represents one play-through of a game:
- Created from a transitions artifact, an instructions artifact and a
  player list
- Holds the canonical state, alias mapping and initialized flag
- Advances through the game loop (router + step executor)
- Round-trips through JSON so an external store can persist it
"""

from .executor import StepExecutor, StepOutcome
from .game_loop import GameLoop, LoopState, TurnResult
from .manager import Session, SessionManager, SessionState, initial_state

__all__ = [
    "StepExecutor",
    "StepOutcome",
    "GameLoop",
    "LoopState",
    "TurnResult",
    "Session",
    "SessionManager",
    "SessionState",
    "initial_state",
]

"""
Game State - Schema-free canonical state tree and typed accessors.

The canonical state is a JSON-shaped tree:

    {
        "game": {"currentPhase": "...", "gameEnded": false, ...},
        "players": {"<opaque-id>": {"actionRequired": true, ...}, ...}
    }

Design principles:
- Immutable-friendly: engine code clones before writing, never mutates input
- Serializable: the tree is plain JSON (dicts, lists, str, numbers, bools, None)
- Explicit failures: path helpers return lookup results / error strings,
  they do not raise for missing or mistyped paths
- Game-agnostic: domain fields live next to the control fields
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from copy import deepcopy
import json

PLAYERS_KEY = "players"
GAME_KEY = "game"


class ErrorType(Enum):
    """Kinds of fatal game errors."""
    DEADLOCK = "deadlock"
    INVALID_STATE = "invalid_state"
    RULE_VIOLATION = "rule_violation"
    TRANSITION_FAILED = "transition_failed"


@dataclass
class GameError:
    """
    A fatal error stored in game.gameError.

    Once present the router only short-circuits; clearing it is an
    external recovery action.
    """
    error_type: ErrorType
    message: str
    context: dict[str, Any] = field(default_factory=dict)
    timestamp: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "errorType": self.error_type.value,
            "errorMessage": self.message,
            "errorContext": self.context,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GameError:
        try:
            error_type = ErrorType(data.get("errorType"))
        except ValueError:
            error_type = ErrorType.INVALID_STATE
        return cls(
            error_type=error_type,
            message=str(data.get("errorMessage", "")),
            context=data.get("errorContext") or {},
            timestamp=str(data.get("timestamp", "")),
        )


@dataclass(frozen=True)
class PathLookup:
    """Result of resolving a dot-path. `found` distinguishes absent from None."""
    found: bool
    value: Any = None


MISSING = PathLookup(found=False)


def split_path(path: str) -> list[str]:
    """Split a dot-path into segments. Empty segments are kept so callers can reject them."""
    if path == "":
        return []
    return path.split(".")


def is_number(value: Any) -> bool:
    """Numeric in the JSON sense: int or float, but not bool."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _child(node: Any, segment: str) -> PathLookup:
    if isinstance(node, dict):
        if segment in node:
            return PathLookup(found=True, value=node[segment])
        return MISSING
    if isinstance(node, list) and segment.lstrip("-").isdigit():
        index = int(segment)
        if -len(node) <= index < len(node):
            return PathLookup(found=True, value=node[index])
    return MISSING


def get_path(tree: Any, path: str) -> PathLookup:
    """
    Resolve a dot-path like 'players.abc.score'.

    List elements can be addressed by integer segments ('game.rounds.0').
    """
    node = tree
    for segment in split_path(path):
        lookup = _child(node, segment)
        if not lookup.found:
            return MISSING
        node = lookup.value
    return PathLookup(found=True, value=node)


def get_value(tree: Any, path: str, default: Any = None) -> Any:
    """Convenience wrapper around get_path."""
    lookup = get_path(tree, path)
    return lookup.value if lookup.found else default


def set_path(tree: dict[str, Any], path: str, value: Any) -> str | None:
    """
    Write `value` at `path`, creating intermediate objects as needed.

    Mutates `tree` in place; callers clone first. Returns an error message
    instead of raising when the path cannot be written.
    """
    segments = split_path(path)
    if not segments or any(s == "" for s in segments):
        return f"Invalid path: '{path}'"

    node: Any = tree
    for depth, segment in enumerate(segments[:-1]):
        if isinstance(node, dict):
            if segment not in node or node[segment] is None:
                node[segment] = {}
            node = node[segment]
        elif isinstance(node, list) and segment.lstrip("-").isdigit():
            lookup = _child(node, segment)
            if not lookup.found:
                return f"Index {segment} out of range at '{'.'.join(segments[:depth + 1])}'"
            node = lookup.value
        else:
            return (
                f"Cannot write '{path}': "
                f"'{'.'.join(segments[:depth])}' is {type(node).__name__}, not an object"
            )

    last = segments[-1]
    if isinstance(node, dict):
        node[last] = value
        return None
    if isinstance(node, list) and last.lstrip("-").isdigit():
        index = int(last)
        if -len(node) <= index < len(node):
            node[index] = value
            return None
        return f"Index {last} out of range for '{path}'"
    return f"Cannot write '{path}': parent is {type(node).__name__}, not an object"


def delete_path(tree: dict[str, Any], path: str) -> str | None:
    """Remove the key at `path` if present. Absent paths are not an error."""
    segments = split_path(path)
    if not segments or any(s == "" for s in segments):
        return f"Invalid path: '{path}'"
    parent = get_path(tree, ".".join(segments[:-1])) if len(segments) > 1 else PathLookup(True, tree)
    if not parent.found:
        return None
    if isinstance(parent.value, dict):
        parent.value.pop(segments[-1], None)
        return None
    if isinstance(parent.value, list) and segments[-1].lstrip("-").isdigit():
        index = int(segments[-1])
        if -len(parent.value) <= index < len(parent.value):
            del parent.value[index]
        return None
    return f"Cannot delete '{path}': parent is {type(parent.value).__name__}"


def clone_state(state: Any) -> Any:
    """Deep copy the state."""
    return deepcopy(state)


def empty_state() -> dict[str, Any]:
    """State used before initialization."""
    return {GAME_KEY: {"gameEnded": False}, PLAYERS_KEY: {}}


def normalize_state(state: dict[str, Any] | None) -> dict[str, Any]:
    """Return a copy guaranteed to have `game` and `players` objects."""
    if not state:
        return empty_state()
    normalized = clone_state(state)
    if not isinstance(normalized.get(GAME_KEY), dict):
        normalized[GAME_KEY] = {"gameEnded": False}
    if not isinstance(normalized.get(PLAYERS_KEY), dict):
        normalized[PLAYERS_KEY] = {}
    return normalized


def get_players(state: dict[str, Any]) -> dict[str, Any]:
    """The player map (empty dict if missing)."""
    players = state.get(PLAYERS_KEY)
    return players if isinstance(players, dict) else {}


def get_game(state: dict[str, Any]) -> dict[str, Any]:
    game = state.get(GAME_KEY)
    return game if isinstance(game, dict) else {}


def current_phase(state: dict[str, Any]) -> str | None:
    return get_game(state).get("currentPhase")


def is_game_ended(state: dict[str, Any]) -> bool:
    return bool(get_game(state).get("gameEnded"))


def get_game_error(state: dict[str, Any]) -> GameError | None:
    raw = get_game(state).get("gameError")
    if not raw:
        return None
    if isinstance(raw, dict):
        return GameError.from_dict(raw)
    return GameError(error_type=ErrorType.INVALID_STATE, message=str(raw))


def actions_allowed(player: dict[str, Any]) -> bool:
    """
    Effective actionsAllowed flag.

    When actionsAllowed is absent or null it follows actionRequired.
    """
    allowed = player.get("actionsAllowed")
    if allowed is None:
        return bool(player.get("actionRequired", False))
    return bool(allowed)


def any_action_required(state: dict[str, Any]) -> bool:
    return any(
        isinstance(p, dict) and p.get("actionRequired")
        for p in get_players(state).values()
    )


def record_game_error(
    state: dict[str, Any],
    error_type: ErrorType,
    message: str,
    context: dict[str, Any] | None = None,
    timestamp: str | None = None,
) -> tuple[dict[str, Any], GameError]:
    """
    Return a new state carrying a sticky game error and public message.
    """
    error = GameError(
        error_type=error_type,
        message=message,
        context=context or {},
        timestamp=timestamp or datetime.now(timezone.utc).isoformat(),
    )
    new_state = normalize_state(state)
    new_state[GAME_KEY]["gameError"] = error.to_dict()
    new_state[GAME_KEY]["publicMessage"] = f"Game Error: {message}"
    return new_state, error


def clear_game_error(state: dict[str, Any]) -> dict[str, Any]:
    """External recovery: return a copy without game.gameError."""
    new_state = normalize_state(state)
    new_state[GAME_KEY].pop("gameError", None)
    return new_state


def canonical_json(value: Any) -> str:
    """Stable JSON encoding used for digests and persistence."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"))

"""
Player Aliasing - Short stable aliases for opaque player identifiers.

Canonical state keys players by opaque ids (UUIDs). The judge and
instruction authors see `player1`, `player2`, ... instead.

The mapping (alias -> canonical id) is created once at initialization from
the sorted identifier set and never changes afterwards. Aliased views are
transient: only the canonical tree is persisted.
"""

from __future__ import annotations
from typing import Any
import json
import logging
import re

from .operations import BaseOperation, SetForAllPlayersOp, TransferOp, parse_operation
from .state import PLAYERS_KEY, get_players

logger = logging.getLogger(__name__)

PlayerMapping = dict[str, str]

ALIAS_PREFIX = "player"
WILDCARD = "[*]"

_ALIAS_PATH = re.compile(r"^players\.(player\d+)(\.(.+))?$")


def create_mapping(player_ids: list[str]) -> PlayerMapping:
    """
    Map player1..playerN to the sorted, de-duplicated identifiers.

    The same identifier set always yields the same mapping regardless of
    the order the ids were supplied in.
    """
    return {
        f"{ALIAS_PREFIX}{index}": player_id
        for index, player_id in enumerate(sorted(set(player_ids)), start=1)
    }


def reverse_mapping(mapping: PlayerMapping) -> dict[str, str]:
    """canonical id -> alias"""
    return {player_id: alias for alias, player_id in mapping.items()}


def _alias_order(alias: str) -> int:
    suffix = alias[len(ALIAS_PREFIX):]
    return int(suffix) if suffix.isdigit() else 0


def canonical_ids(mapping: PlayerMapping) -> list[str]:
    """Canonical ids in alias order (player1 first)."""
    return [mapping[alias] for alias in sorted(mapping, key=_alias_order)]


def _rekey_players(state: dict[str, Any], table: dict[str, str], direction: str) -> dict[str, Any]:
    view = dict(state)
    players = {}
    for key, record in get_players(state).items():
        new_key = table.get(key)
        if new_key is None:
            logger.warning("No %s found for player key %s", direction, key)
            new_key = key
        players[new_key] = record
    view[PLAYERS_KEY] = players
    return view


def to_aliased_view(state: dict[str, Any], mapping: PlayerMapping) -> dict[str, Any]:
    """
    State with `players` re-keyed by alias, for presentation to the judge.

    Shares nested records with the input; callers must not mutate it.
    """
    return _rekey_players(state, reverse_mapping(mapping), "alias")


def from_aliased_view(state: dict[str, Any], mapping: PlayerMapping) -> dict[str, Any]:
    """Inverse of to_aliased_view."""
    return _rekey_players(state, mapping, "canonical id")


def alias_to_canonical_path(path: str, mapping: PlayerMapping) -> str:
    """
    Rewrite 'players.player1.score' to 'players.<id>.score'.

    Paths that do not start with a known alias are returned unchanged.
    """
    match = _ALIAS_PATH.match(path)
    if not match:
        return path
    player_id = mapping.get(match.group(1))
    if player_id is None:
        logger.warning("No canonical id for alias %s in path %s", match.group(1), path)
        return path
    rest = match.group(3)
    return f"{PLAYERS_KEY}.{player_id}.{rest}" if rest else f"{PLAYERS_KEY}.{player_id}"


def expand_to_canonical(
    op: BaseOperation | dict[str, Any],
    mapping: PlayerMapping,
) -> list[BaseOperation]:
    """
    Rewrite an aliased operation into canonical operations.

    Handles:
    1. Wildcards: players.[*].field -> one op per mapped player
    2. Aliases: players.player1.field -> players.<id>.field
    3. transfer: both ends are rewritten

    setForAllPlayers names no player and is returned unchanged; the
    operation engine fans it out over the canonical player map.
    """
    op = parse_operation(op)

    if isinstance(op, SetForAllPlayersOp):
        return [op]

    if isinstance(op, TransferOp):
        return [op.model_copy(update={
            "from_path": alias_to_canonical_path(op.from_path, mapping),
            "to_path": alias_to_canonical_path(op.to_path, mapping),
        })]

    path = getattr(op, "path", None)
    if path is None:
        return [op]

    if WILDCARD in path:
        player_ids = canonical_ids(mapping)
        if not player_ids:
            logger.warning("Wildcard path %s expanded with no players in mapping", path)
        return [op.model_copy(update={"path": path.replace(WILDCARD, pid, 1)}) for pid in player_ids]

    return [op.model_copy(update={"path": alias_to_canonical_path(path, mapping)})]


def expand_all_to_canonical(
    ops: list[BaseOperation | dict[str, Any]],
    mapping: PlayerMapping,
) -> list[BaseOperation]:
    expanded: list[BaseOperation] = []
    for op in ops:
        expanded.extend(expand_to_canonical(op, mapping))
    return expanded


def serialize_mapping(mapping: PlayerMapping) -> str:
    return json.dumps(mapping)


def deserialize_mapping(data: str | None) -> PlayerMapping:
    """Parse a stored mapping. Empty input yields an empty mapping."""
    if not data:
        return {}
    mapping = json.loads(data)
    if not isinstance(mapping, dict):
        raise ValueError("Player mapping must be a JSON object")
    return {str(alias): str(player_id) for alias, player_id in mapping.items()}

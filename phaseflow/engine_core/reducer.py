"""
Reducer - Applies operation batches to the canonical state.

The reducer is the single point of state mutation.
All state changes must go through apply_operations().

Design principles:
- Pure function: (state, ops) -> ApplyResult(new_state, touched_paths)
- The input state is never mutated; a deep copy is written instead
- All-or-nothing: one failing operation fails the whole batch
- Failures are reported as values, never written into game state
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable
import logging

from ..errors import OperationError
from .operations import (
    AppendOp,
    BaseOperation,
    DeleteOp,
    IncrementOp,
    MergeOp,
    OperationKind,
    RngOp,
    SetForAllPlayersOp,
    SetOp,
    TransferOp,
    parse_operation,
)
from .state import (
    PLAYERS_KEY,
    clone_state,
    delete_path,
    get_path,
    get_players,
    is_number,
    set_path,
)

logger = logging.getLogger(__name__)

# (error or None, paths written)
HandlerResult = tuple["str | None", list[str]]


@dataclass
class ApplyResult:
    """
    Result of applying a batch of operations.

    Contains:
    - Whether every operation succeeded
    - New state (only on success)
    - Errors (one entry per failing operation)
    - The exact leaf paths written (for the deterministic/external merge)
    """
    success: bool
    new_state: dict[str, Any] | None = None
    errors: list[dict[str, Any]] = field(default_factory=list)
    touched_paths: frozenset[str] = frozenset()

    @classmethod
    def failure(cls, errors: list[dict[str, Any]]) -> ApplyResult:
        return cls(success=False, errors=errors)

    @classmethod
    def success_with_state(cls, state: dict[str, Any], touched: set[str]) -> ApplyResult:
        return cls(success=True, new_state=state, touched_paths=frozenset(touched))

    def raise_for_errors(self) -> ApplyResult:
        """Raise OperationError for callers that treat failures as fatal."""
        if not self.success:
            raise OperationError(self.errors)
        return self


@dataclass
class OperationEngine:
    """
    Applies operations to state.

    Stateless - all state is in the tree passed to apply().
    """

    def apply(self, state: dict[str, Any], ops: list[BaseOperation | dict[str, Any]]) -> ApplyResult:
        """
        Apply operations in order to a copy of `state`.

        Every operation is attempted so the error list is complete, but a
        batch with any error returns no state.
        """
        working = clone_state(state) if state is not None else {}
        touched: set[str] = set()
        errors: list[dict[str, Any]] = []

        for index, raw in enumerate(ops):
            try:
                op = parse_operation(raw)
            except ValueError as e:
                # pydantic.ValidationError subclasses ValueError
                errors.append({"index": index, "op": raw, "error": f"Invalid operation: {e}"})
                continue

            handler = self._get_handler(op.kind)
            error, paths = handler(working, op)
            if error:
                errors.append({"index": index, "op": op.to_dict(), "error": error})
                continue
            touched.update(paths)

        if errors:
            logger.debug("Operation batch failed with %d error(s)", len(errors))
            return ApplyResult.failure(errors)

        return ApplyResult.success_with_state(working, touched)

    def _get_handler(self, kind: OperationKind) -> Callable[[dict[str, Any], Any], HandlerResult]:
        handlers = {
            OperationKind.SET: self._handle_set,
            OperationKind.INCREMENT: self._handle_increment,
            OperationKind.TRANSFER: self._handle_transfer,
            OperationKind.SET_FOR_ALL_PLAYERS: self._handle_set_for_all_players,
            OperationKind.APPEND: self._handle_append,
            OperationKind.DELETE: self._handle_delete,
            OperationKind.MERGE: self._handle_merge,
            OperationKind.RNG: self._handle_rng,
        }
        return handlers[kind]

    def _handle_set(self, state: dict[str, Any], op: SetOp) -> HandlerResult:
        error = set_path(state, op.path, clone_state(op.value))
        return error, [op.path]

    def _add(self, state: dict[str, Any], path: str, delta: Any) -> str | None:
        if not is_number(delta):
            return (
                f"Amount for {path} must be a resolved number, got {type(delta).__name__}. "
                "Template variables like {{amount}} must be resolved before applying operations."
            )
        current = get_path(state, path)
        if current.found and current.value is not None and not is_number(current.value):
            return f"Path {path} is not a number (current: {type(current.value).__name__})"
        base = current.value if current.found and current.value is not None else 0
        return set_path(state, path, base + delta)

    def _handle_increment(self, state: dict[str, Any], op: IncrementOp) -> HandlerResult:
        return self._add(state, op.path, op.value), [op.path]

    def _handle_transfer(self, state: dict[str, Any], op: TransferOp) -> HandlerResult:
        paths = [op.from_path, op.to_path]
        amount = op.value
        if amount is None:
            source = get_path(state, op.from_path)
            if not source.found or not is_number(source.value):
                return f"Source path {op.from_path} is not a number; transfer amount required", paths
            amount = source.value

        # Check the destination before touching the source so a failure leaves no half-transfer
        destination = get_path(state, op.to_path)
        if destination.found and destination.value is not None and not is_number(destination.value):
            return (
                f"Destination path {op.to_path} exists but is not a number "
                f"(current: {type(destination.value).__name__})"
            ), paths

        error = self._add(state, op.from_path, -amount if is_number(amount) else amount)
        if error:
            return error, paths
        return self._add(state, op.to_path, amount), paths

    def _handle_set_for_all_players(self, state: dict[str, Any], op: SetForAllPlayersOp) -> HandlerResult:
        if not op.field:
            return "setForAllPlayers requires a field name", []
        paths = []
        for player_id in get_players(state):
            path = f"{PLAYERS_KEY}.{player_id}.{op.field}"
            error = set_path(state, path, clone_state(op.value))
            if error:
                return error, paths
            paths.append(path)
        return None, paths

    def _handle_append(self, state: dict[str, Any], op: AppendOp) -> HandlerResult:
        current = get_path(state, op.path)
        if not current.found or current.value is None:
            return set_path(state, op.path, [clone_state(op.value)]), [op.path]
        if not isinstance(current.value, list):
            return f"Path {op.path} is not an array (current: {type(current.value).__name__})", [op.path]
        current.value.append(clone_state(op.value))
        return None, [op.path]

    def _handle_delete(self, state: dict[str, Any], op: DeleteOp) -> HandlerResult:
        return delete_path(state, op.path), [op.path]

    def _handle_merge(self, state: dict[str, Any], op: MergeOp) -> HandlerResult:
        current = get_path(state, op.path)
        if current.found and current.value is not None and not isinstance(current.value, dict):
            return f"Path {op.path} is not an object (current: {type(current.value).__name__})", [op.path]
        merged = dict(current.value) if current.found and current.value else {}
        merged.update(clone_state(op.value))
        error = set_path(state, op.path, merged)
        return error, [f"{op.path}.{key}" for key in op.value]

    def _handle_rng(self, state: dict[str, Any], op: RngOp) -> HandlerResult:
        return (
            f"rng operation for {op.path} must be resolved into a set before application",
            [],
        )


def apply_operations(
    state: dict[str, Any],
    ops: list[BaseOperation | dict[str, Any]],
) -> ApplyResult:
    """
    Convenience function to apply operations.

    Creates an OperationEngine and applies the batch.
    """
    engine = OperationEngine()
    return engine.apply(state, ops)

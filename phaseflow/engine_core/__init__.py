"""
Engine Core - Deterministic state progression for judge-assisted games.

The engine is the runtime that:
1. Holds the canonical state tree (state)
2. Applies operation batches all-or-nothing (operations, reducer)
3. Maps opaque player ids to aliases and back (aliasing)
4. Evaluates precondition rules (expression)
5. Rolls randomness before rules can read it (randomness)
6. Merges deterministic and judge results (merge)

The router lives in engine_core.router; it depends on the artifact
schemas, which themselves compile rules with this package, so it is not
re-exported here.
"""

from .state import ErrorType, GameError, PathLookup, get_path, set_path, delete_path
from .operations import (
    BaseOperation,
    OperationKind,
    SetOp,
    IncrementOp,
    TransferOp,
    SetForAllPlayersOp,
    AppendOp,
    DeleteOp,
    MergeOp,
    RngOp,
    parse_operation,
    parse_operations,
)
from .reducer import ApplyResult, OperationEngine, apply_operations
from .aliasing import create_mapping, reverse_mapping, to_aliased_view, from_aliased_view, expand_to_canonical
from .expression import RuleEvaluator, build_router_context, check_rule, compile_rule, evaluate_rule
from .merge import merge_states

__all__ = [
    "ErrorType",
    "GameError",
    "PathLookup",
    "get_path",
    "set_path",
    "delete_path",
    "BaseOperation",
    "OperationKind",
    "SetOp",
    "IncrementOp",
    "TransferOp",
    "SetForAllPlayersOp",
    "AppendOp",
    "DeleteOp",
    "MergeOp",
    "RngOp",
    "parse_operation",
    "parse_operations",
    "ApplyResult",
    "OperationEngine",
    "apply_operations",
    "create_mapping",
    "reverse_mapping",
    "to_aliased_view",
    "from_aliased_view",
    "expand_to_canonical",
    "RuleEvaluator",
    "build_router_context",
    "check_rule",
    "compile_rule",
    "evaluate_rule",
    "merge_states",
]

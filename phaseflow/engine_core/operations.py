"""
Operation System - Typed state mutation operations.

Operations are the only way state changes:
1. Deterministic instructions compiled ahead of time (stateDelta)
2. Operations returned by the external judge
3. Operations produced by randomness resolution (rng -> set)

Operations are serialized documents exchanged with collaborators, so they
are pydantic models keyed by an "op" discriminator and use the camelCase
field names of the wire format (fromPath, toPath).
"""

from __future__ import annotations
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator


class OperationKind(str, Enum):
    """Types of state operations."""
    SET = "set"
    INCREMENT = "increment"
    TRANSFER = "transfer"
    SET_FOR_ALL_PLAYERS = "setForAllPlayers"
    APPEND = "append"
    DELETE = "delete"
    MERGE = "merge"
    # Resolved into SET by the router before anything is applied
    RNG = "rng"


class BaseOperation(BaseModel):
    """Common behaviour for all operations."""
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    @property
    def kind(self) -> OperationKind:
        return OperationKind(self.op)  # type: ignore[attr-defined]

    def to_dict(self) -> dict[str, Any]:
        """Wire format (camelCase keys)."""
        return self.model_dump(by_alias=True, mode="json")


class SetOp(BaseOperation):
    op: Literal["set"] = "set"
    path: str
    value: Any


class IncrementOp(BaseOperation):
    """Add `value` to the number at `path`. A string value is an unresolved template."""
    op: Literal["increment"] = "increment"
    path: str
    value: Union[int, float, str]


class TransferOp(BaseOperation):
    """Move `value` from one numeric field to another (defaults to the whole source)."""
    op: Literal["transfer"] = "transfer"
    from_path: str = Field(alias="fromPath")
    to_path: str = Field(alias="toPath")
    value: Union[int, float, str, None] = None

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if data.get("value") is None:
            data.pop("value", None)
        return data


class SetForAllPlayersOp(BaseOperation):
    """Set `field` on every player currently in the canonical player map."""
    op: Literal["setForAllPlayers"] = "setForAllPlayers"
    field: str
    value: Any


class AppendOp(BaseOperation):
    op: Literal["append"] = "append"
    path: str
    value: Any


class DeleteOp(BaseOperation):
    op: Literal["delete"] = "delete"
    path: str


class MergeOp(BaseOperation):
    """Shallow merge an object into the object at `path`."""
    op: Literal["merge"] = "merge"
    path: str
    value: dict[str, Any]


class RngOp(BaseOperation):
    """
    Weighted random choice stored at `path`.

    Never applied directly: the router resolves it into a SetOp so the
    rolled value is stored before any rule can read it.
    """
    op: Literal["rng"] = "rng"
    path: str
    choices: list[Any]
    probabilities: list[float]

    @model_validator(mode="after")
    def _check_weights(self) -> RngOp:
        if not self.choices:
            raise ValueError("rng operation needs at least one choice")
        if len(self.choices) != len(self.probabilities):
            raise ValueError(
                f"rng operation has {len(self.choices)} choices but "
                f"{len(self.probabilities)} probabilities"
            )
        if any(p < 0 for p in self.probabilities):
            raise ValueError("rng probabilities must be non-negative")
        return self


Operation = Annotated[
    Union[SetOp, IncrementOp, TransferOp, SetForAllPlayersOp, AppendOp, DeleteOp, MergeOp, RngOp],
    Field(discriminator="op"),
]

_OPERATION_ADAPTER: TypeAdapter = TypeAdapter(Operation)
_OPERATION_LIST_ADAPTER: TypeAdapter = TypeAdapter(list[Operation])


def parse_operation(raw: dict[str, Any] | BaseOperation) -> BaseOperation:
    """Parse one operation from its wire format. Raises pydantic.ValidationError."""
    if isinstance(raw, BaseOperation):
        return raw
    return _OPERATION_ADAPTER.validate_python(raw)


def parse_operations(raw: list[Any]) -> list[BaseOperation]:
    """Parse a stateDelta array."""
    return [parse_operation(item) for item in raw]


def validate_operations(raw: Any) -> tuple[bool, list[str], list[BaseOperation]]:
    """
    Validate a stateDelta array without raising.

    Returns (valid, errors, parsed).
    """
    try:
        parsed = _OPERATION_LIST_ADAPTER.validate_python(raw)
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]
        return False, errors, []
    return True, [], parsed


def operations_to_dicts(ops: list[BaseOperation]) -> list[dict[str, Any]]:
    return [op.to_dict() for op in ops]


def operation_paths(op: BaseOperation) -> list[str]:
    """Paths an operation names explicitly (fan-out ops name none)."""
    if isinstance(op, TransferOp):
        return [op.from_path, op.to_path]
    path = getattr(op, "path", None)
    return [path] if path is not None else []

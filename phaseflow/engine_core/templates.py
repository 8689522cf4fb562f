"""
Template variables - {{name}} placeholders inside instructions.

An operation still containing a placeholder cannot be applied by the
engine; its value has to come from the judge. Placeholders with known
values (the acting player, the submitted action) are substituted first.
"""

from __future__ import annotations
from typing import Any
import json
import re

from .operations import (
    BaseOperation,
    DeleteOp,
    IncrementOp,
    TransferOp,
    parse_operation,
)
from .state import is_number

TEMPLATE_PATTERN = re.compile(r"\{\{([^}]+)\}\}")
_WHOLE_TEMPLATE = re.compile(r"^\{\{([^}]+)\}\}$")


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


def has_template_variables(value: Any) -> bool:
    """True if `value` (or anything nested in it) contains a {{placeholder}}."""
    if value is None:
        return False
    return TEMPLATE_PATTERN.search(_as_text(value)) is not None


def extract_template_variables(value: Any) -> list[str]:
    """Unique placeholder names in order of first appearance."""
    if value is None:
        return []
    names: list[str] = []
    for match in TEMPLATE_PATTERN.finditer(_as_text(value)):
        name = match.group(1).strip()
        if name not in names:
            names.append(name)
    return names


def resolve_templates(template: Any, variables: dict[str, Any]) -> Any:
    """
    Replace placeholders with values from `variables`.

    A string that is exactly one placeholder takes the variable's value
    with its type (numbers stay numbers). Unknown placeholders are left in
    place. Dicts and lists are resolved recursively into new objects.
    """
    if isinstance(template, str):
        whole = _WHOLE_TEMPLATE.match(template)
        if whole:
            name = whole.group(1).strip()
            return variables[name] if name in variables else template

        def substitute(match: re.Match) -> str:
            name = match.group(1).strip()
            if name not in variables:
                return match.group(0)
            value = variables[name]
            return value if isinstance(value, str) else _as_text(value)

        return TEMPLATE_PATTERN.sub(substitute, template)

    if isinstance(template, list):
        return [resolve_templates(item, variables) for item in template]

    if isinstance(template, dict):
        return {key: resolve_templates(value, variables) for key, value in template.items()}

    return template


def resolve_operation_templates(
    op: BaseOperation | dict[str, Any],
    variables: dict[str, Any],
) -> BaseOperation:
    """Resolve placeholders in an operation and re-validate it."""
    op = parse_operation(op)
    return parse_operation(resolve_templates(op.to_dict(), variables))


def is_deterministic_operation(op: BaseOperation | dict[str, Any]) -> bool:
    """
    Whether the engine can apply `op` without the judge.

    Deterministic operations carry no placeholders anywhere, and numeric
    amounts (increment, transfer) are actual numbers.
    """
    op = parse_operation(op)
    if isinstance(op, DeleteOp):
        return not has_template_variables(op.path)
    if isinstance(op, IncrementOp) and not is_number(op.value):
        return False
    if isinstance(op, TransferOp) and op.value is not None and not is_number(op.value):
        return False
    return not has_template_variables(op.to_dict())


def split_operations(
    ops: list[BaseOperation],
) -> tuple[list[BaseOperation], list[BaseOperation]]:
    """Partition into (deterministic, needs-judge), preserving order."""
    deterministic: list[BaseOperation] = []
    external: list[BaseOperation] = []
    for op in ops:
        (deterministic if is_deterministic_operation(op) else external).append(op)
    return deterministic, external

"""
Rule Evaluator - JsonLogic-compatible precondition language.

Evaluates transition preconditions against the router context: the
canonical state plus a few precomputed convenience fields.

Supports:
- Data access: var, missing, missing_some
- Comparisons: ==, ===, !=, !==, <, <=, >, >= (3-arg "between" for < and <=)
- Logic: !, !!, and, or, if / ?:
- Arithmetic: +, -, *, /, %, max, min
- Strings and arrays: in, cat, substr, merge, map, filter, reduce, all, none, some
- Quantifiers over the player map: anyPlayer, allPlayers
- Dynamic indexed read: lookup

Rules are JSON documents: {"operator": [args...]}. A dict with exactly one
key is an operation, anything else is data.

Comparisons between incomparable values are false, never an exception.
Player fields may only be read through the quantifiers; compile_rule()
rejects rules that address a specific player before they reach evaluate().
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any
import logging
import math
import re

from ..errors import RuleCompilationError, RuleEvaluationError
from .state import PLAYERS_KEY, get_path, get_players, is_number

logger = logging.getLogger(__name__)

COMPARISON_OPERATIONS = frozenset({"==", "===", "!=", "!==", ">", ">=", "<", "<="})

QUANTIFIER_OPERATIONS = frozenset({"anyPlayer", "allPlayers"})

SUPPORTED_OPERATIONS = frozenset({
    # Data access
    "var", "missing", "missing_some",
    # Logic
    "!", "!!", "and", "or", "if", "?:",
    # Arithmetic
    "+", "-", "*", "/", "%", "max", "min",
    # Strings and arrays
    "in", "cat", "substr", "merge", "map", "filter", "reduce", "all", "none", "some",
    # Misc
    "log",
    # Custom
    "anyPlayer", "allPlayers", "lookup",
}) | COMPARISON_OPERATIONS

# players[0] or players.0
POSITIONAL_PLAYER_REF = re.compile(r"^players(\[(\d+)\]|\.(\d+)(\.|$))")


def build_router_context(state: dict[str, Any]) -> dict[str, Any]:
    """
    Context used for precondition evaluation.

    The canonical state plus:
    - playersCount
    - playersRequiringActionCount
    - allPlayersCompletedActions (true when nobody is required to act,
      including when there are no players)
    """
    players = get_players(state)
    requiring = sum(
        1 for p in players.values()
        if isinstance(p, dict) and p.get("actionRequired") is True
    )
    context = dict(state)
    context["playersCount"] = len(players)
    context["playersRequiringActionCount"] = requiring
    context["allPlayersCompletedActions"] = requiring == 0
    return context


def is_logic(value: Any) -> bool:
    return isinstance(value, dict) and len(value) == 1


def truthy(value: Any) -> bool:
    """JsonLogic truthiness: empty arrays are false, everything else as in JS."""
    if isinstance(value, float) and math.isnan(value):
        return False
    return bool(value)


def _to_number(value: Any) -> float | int | None:
    if is_number(value):
        return value
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
        return int(number) if number.is_integer() and "." not in value else number
    if value is None:
        return 0
    return None


def _to_str(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _loose_equals(left: Any, right: Any) -> bool:
    if left is None or right is None:
        return left is None and right is None
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    if isinstance(left, (int, float, bool, str)) and isinstance(right, (int, float, bool, str)):
        a, b = _to_number(left), _to_number(right)
        if a is None or b is None:
            return False
        return a == b
    return left == right


def _strict_equals(left: Any, right: Any) -> bool:
    if is_number(left) and is_number(right):
        return left == right
    if type(left) is not type(right):
        return False
    return left == right


def _ordered(left: Any, right: Any, op: str) -> bool:
    if not (isinstance(left, str) and isinstance(right, str)):
        left, right = _to_number(left), _to_number(right)
        if left is None or right is None:
            return False
    try:
        if op == "<":
            return left < right
        elif op == "<=":
            return left <= right
        elif op == ">":
            return left > right
        elif op == ">=":
            return left >= right
    except TypeError:
        return False
    return False


def compare(left: Any, right: Any, op: str) -> bool:
    """Perform comparison operation."""
    if op == "==":
        return _loose_equals(left, right)
    elif op == "!=":
        return not _loose_equals(left, right)
    elif op == "===":
        return _strict_equals(left, right)
    elif op == "!==":
        return not _strict_equals(left, right)
    return _ordered(left, right, op)


class RuleEvaluator:
    """
    Evaluates JsonLogic rules.

    Stateless; the data (router context, or an array element inside
    map/filter/...) is passed to every call.
    """

    def evaluate(self, rule: Any, data: Any = None) -> Any:
        """
        Evaluate a rule against data.

        Raises RuleEvaluationError for unknown operators. Missing paths and
        type mismatches produce null/false results instead.
        """
        if isinstance(rule, list):
            return [self.evaluate(item, data) for item in rule]
        if not is_logic(rule):
            return rule

        op, raw_args = next(iter(rule.items()))
        if not isinstance(raw_args, list):
            raw_args = [raw_args]

        # Operators that control evaluation of their own arguments
        if op in self._lazy_operations:
            return self._lazy_operations[op](self, raw_args, data)

        args = [self.evaluate(arg, data) for arg in raw_args]

        if op in COMPARISON_OPERATIONS:
            return self._comparison(op, args)

        handler = self._operations.get(op)
        if handler is None:
            raise RuleEvaluationError(f"Unsupported operator '{op}'")
        return handler(self, args, data)

    def evaluate_condition(self, rule: Any, data: Any = None) -> bool:
        """Evaluate a rule as a boolean condition."""
        return truthy(self.evaluate(rule, data))

    def _comparison(self, op: str, args: list[Any]) -> bool:
        if len(args) == 3 and op in ("<", "<="):
            return compare(args[0], args[1], op) and compare(args[1], args[2], op)
        if len(args) < 2:
            return False
        return compare(args[0], args[1], op)

    # Data access

    def _var(self, args: list[Any], data: Any) -> Any:
        path = args[0] if args else ""
        default = args[1] if len(args) > 1 else None
        if path is None or path == "" or path == []:
            return data
        lookup = get_path(data, _to_str(path))
        if not lookup.found or lookup.value is None:
            return default
        return lookup.value

    def _missing(self, args: list[Any], data: Any) -> list[Any]:
        keys = args[0] if args and isinstance(args[0], list) else args
        missing = []
        for key in keys:
            value = self._var([key], data)
            if value is None or value == "":
                missing.append(key)
        return missing

    def _missing_some(self, args: list[Any], data: Any) -> list[Any]:
        if len(args) < 2 or not isinstance(args[1], list):
            return []
        need = _to_number(args[0]) or 0
        missing = self._missing([args[1]], data)
        if len(args[1]) - len(missing) >= need:
            return []
        return missing

    # Logic (lazy)

    def _and(self, raw_args: list[Any], data: Any) -> Any:
        value: Any = True
        for arg in raw_args:
            value = self.evaluate(arg, data)
            if not truthy(value):
                return value
        return value

    def _or(self, raw_args: list[Any], data: Any) -> Any:
        value: Any = False
        for arg in raw_args:
            value = self.evaluate(arg, data)
            if truthy(value):
                return value
        return value

    def _if(self, raw_args: list[Any], data: Any) -> Any:
        index = 0
        while index + 1 < len(raw_args):
            if truthy(self.evaluate(raw_args[index], data)):
                return self.evaluate(raw_args[index + 1], data)
            index += 2
        if index < len(raw_args):
            return self.evaluate(raw_args[index], data)
        return None

    def _not(self, args: list[Any], data: Any) -> bool:
        return not truthy(args[0] if args else None)

    def _not_not(self, args: list[Any], data: Any) -> bool:
        return truthy(args[0] if args else None)

    # Arithmetic

    def _numbers(self, args: list[Any]) -> list[Any] | None:
        numbers = [_to_number(a) for a in args]
        if any(n is None for n in numbers):
            return None
        return numbers

    def _add(self, args: list[Any], data: Any) -> Any:
        numbers = self._numbers(args)
        return sum(numbers) if numbers is not None else None

    def _subtract(self, args: list[Any], data: Any) -> Any:
        numbers = self._numbers(args)
        if not numbers:
            return None
        if len(numbers) == 1:
            return -numbers[0]
        return numbers[0] - numbers[1]

    def _multiply(self, args: list[Any], data: Any) -> Any:
        numbers = self._numbers(args)
        if not numbers:
            return None
        result = 1
        for n in numbers:
            result *= n
        return result

    def _divide(self, args: list[Any], data: Any) -> Any:
        numbers = self._numbers(args)
        if not numbers or len(numbers) < 2 or numbers[1] == 0:
            return None
        return numbers[0] / numbers[1]

    def _modulo(self, args: list[Any], data: Any) -> Any:
        numbers = self._numbers(args)
        if not numbers or len(numbers) < 2 or numbers[1] == 0:
            return None
        # JS remainder keeps the sign of the dividend
        result = math.fmod(numbers[0], numbers[1])
        if isinstance(numbers[0], int) and isinstance(numbers[1], int):
            return int(result)
        return result

    def _max(self, args: list[Any], data: Any) -> Any:
        numbers = self._numbers(args)
        return max(numbers) if numbers else None

    def _min(self, args: list[Any], data: Any) -> Any:
        numbers = self._numbers(args)
        return min(numbers) if numbers else None

    # Strings and arrays

    def _in(self, args: list[Any], data: Any) -> bool:
        if len(args) < 2:
            return False
        needle, haystack = args[0], args[1]
        if isinstance(haystack, str):
            return isinstance(needle, str) and needle in haystack
        if isinstance(haystack, list):
            return any(_strict_equals(needle, item) for item in haystack)
        return False

    def _cat(self, args: list[Any], data: Any) -> str:
        return "".join(_to_str(a) for a in args)

    def _substr(self, args: list[Any], data: Any) -> str:
        source = _to_str(args[0]) if args else ""
        start = int(_to_number(args[1]) or 0) if len(args) > 1 else 0
        if start < 0:
            start = max(len(source) + start, 0)
        if len(args) > 2 and args[2] is not None:
            length = int(_to_number(args[2]) or 0)
            end = len(source) + length if length < 0 else start + length
            return source[start:end]
        return source[start:]

    def _merge(self, args: list[Any], data: Any) -> list[Any]:
        merged: list[Any] = []
        for arg in args:
            if isinstance(arg, list):
                merged.extend(arg)
            else:
                merged.append(arg)
        return merged

    def _log(self, args: list[Any], data: Any) -> Any:
        value = args[0] if args else None
        logger.debug("rule log: %r", value)
        return value

    # Array iteration (lazy: the second argument runs once per element)

    def _items(self, raw_args: list[Any], data: Any) -> list[Any]:
        items = self.evaluate(raw_args[0], data) if raw_args else []
        return items if isinstance(items, list) else []

    def _map(self, raw_args: list[Any], data: Any) -> list[Any]:
        items = self._items(raw_args, data)
        logic = raw_args[1] if len(raw_args) > 1 else None
        return [self.evaluate(logic, item) for item in items]

    def _filter(self, raw_args: list[Any], data: Any) -> list[Any]:
        items = self._items(raw_args, data)
        logic = raw_args[1] if len(raw_args) > 1 else None
        return [item for item in items if truthy(self.evaluate(logic, item))]

    def _reduce(self, raw_args: list[Any], data: Any) -> Any:
        items = self._items(raw_args, data)
        logic = raw_args[1] if len(raw_args) > 1 else None
        accumulator = self.evaluate(raw_args[2], data) if len(raw_args) > 2 else None
        for item in items:
            accumulator = self.evaluate(logic, {"current": item, "accumulator": accumulator})
        return accumulator

    def _all(self, raw_args: list[Any], data: Any) -> bool:
        items = self._items(raw_args, data)
        if not items:
            return False
        logic = raw_args[1] if len(raw_args) > 1 else None
        return all(truthy(self.evaluate(logic, item)) for item in items)

    def _none(self, raw_args: list[Any], data: Any) -> bool:
        return not self._some(raw_args, data)

    def _some(self, raw_args: list[Any], data: Any) -> bool:
        items = self._items(raw_args, data)
        logic = raw_args[1] if len(raw_args) > 1 else None
        return any(truthy(self.evaluate(logic, item)) for item in items)

    # Custom operators

    def _player_matches(self, player: Any, field_name: str, op: str, expected: Any) -> bool:
        if not isinstance(player, dict):
            return False
        lookup = get_path(player, field_name)
        actual = lookup.value if lookup.found else None
        return compare(actual, expected, op)

    def _quantifier_args(self, args: list[Any]) -> tuple[str, str, Any] | None:
        if len(args) != 3:
            return None
        field_name, op, expected = args
        if not isinstance(field_name, str) or op not in COMPARISON_OPERATIONS:
            return None
        return field_name, op, expected

    def _any_player(self, args: list[Any], data: Any) -> bool:
        parsed = self._quantifier_args(args)
        if parsed is None:
            return False
        players = get_players(data) if isinstance(data, dict) else {}
        return any(self._player_matches(p, *parsed) for p in players.values())

    def _all_players(self, args: list[Any], data: Any) -> bool:
        parsed = self._quantifier_args(args)
        if parsed is None:
            return False
        players = get_players(data) if isinstance(data, dict) else {}
        # Vacuously true on an empty roster
        return all(self._player_matches(p, *parsed) for p in players.values())

    def _lookup(self, args: list[Any], data: Any) -> Any:
        if len(args) < 2:
            return None
        collection, index = args[0], args[1]
        if isinstance(collection, list):
            position = _to_number(index)
            if position is None or not float(position).is_integer():
                return None
            position = int(position)
            return collection[position] if 0 <= position < len(collection) else None
        if isinstance(collection, dict):
            return collection.get(_to_str(index))
        return None

    _lazy_operations = {
        "and": _and,
        "or": _or,
        "if": _if,
        "?:": _if,
        "map": _map,
        "filter": _filter,
        "reduce": _reduce,
        "all": _all,
        "none": _none,
        "some": _some,
    }

    _operations = {
        "var": _var,
        "missing": _missing,
        "missing_some": _missing_some,
        "!": _not,
        "!!": _not_not,
        "+": _add,
        "-": _subtract,
        "*": _multiply,
        "/": _divide,
        "%": _modulo,
        "max": _max,
        "min": _min,
        "in": _in,
        "cat": _cat,
        "substr": _substr,
        "merge": _merge,
        "log": _log,
        "anyPlayer": _any_player,
        "allPlayers": _all_players,
        "lookup": _lookup,
    }


# Rule compilation

def _var_name(args: Any) -> Any:
    if isinstance(args, list):
        return args[0] if args else ""
    return args


def _check_var_path(path: Any, problems: list[str]) -> None:
    path = _var_name(path)
    if not isinstance(path, str):
        return
    positional = POSITIONAL_PLAYER_REF.match(path)
    if positional:
        problems.append(
            f"Rule uses positional player access '{positional.group(0)}'. "
            "Players are keyed by opaque ids and cannot be indexed"
        )
        return
    head, _, rest = path.partition(".")
    if head != PLAYERS_KEY or not rest:
        return
    player, _, field_name = rest.partition(".")
    problems.append(
        f"Rule reads '{path}', which addresses player '{player}' directly. "
        f"Use anyPlayer/allPlayers instead, e.g. "
        f'{{"anyPlayer": ["{field_name or "<field>"}", "==", <value>]}}'
    )


def _reads_player_map(node: Any) -> bool:
    return is_logic(node) and "var" in node and _var_name(node["var"]) == PLAYERS_KEY


def _walk(node: Any, problems: list[str], inside_quantifier: bool) -> None:
    if isinstance(node, list):
        for item in node:
            _walk(item, problems, inside_quantifier)
        return
    if not is_logic(node):
        return

    op, args = next(iter(node.items()))
    if op == "rng":
        problems.append(
            "Randomness is not allowed inside a rule; roll with an rng operation "
            "in a previous step and compare the stored value"
        )
        return
    if op not in SUPPORTED_OPERATIONS:
        problems.append(f"Unsupported operator '{op}'")
        return

    if op in QUANTIFIER_OPERATIONS:
        if not isinstance(args, list) or len(args) != 3:
            problems.append(f"{op} takes [field, operator, value], got {args!r}")
            return
        field_name, comparison, value = args
        if not isinstance(field_name, str) or not field_name:
            problems.append(f"{op} field must be a non-empty string, got {field_name!r}")
        if comparison not in COMPARISON_OPERATIONS:
            problems.append(f"{op} operator must be a comparison, got {comparison!r}")
        _walk(value, problems, True)
        return

    if op == "lookup":
        if not isinstance(args, list) or len(args) != 2:
            problems.append(f"lookup takes [collection, index], got {args!r}")
            return
        if _reads_player_map(args[0]):
            problems.append(
                "Rule uses lookup on the player map, which addresses a player directly. "
                "Use anyPlayer/allPlayers instead"
            )
            return

    if op == "var" and not inside_quantifier:
        _check_var_path(args, problems)

    _walk(args, problems, inside_quantifier)


def check_rule(rule: Any) -> list[str]:
    """
    Static checks for a precondition rule.

    Returns a list of problems (empty when the rule is acceptable).
    """
    problems: list[str] = []
    _walk(rule, problems, inside_quantifier=False)
    return problems


@dataclass(frozen=True)
class CompiledRule:
    """A rule that passed check_rule()."""
    logic: Any
    evaluator: RuleEvaluator = field(default_factory=RuleEvaluator, compare=False, repr=False)

    def evaluate(self, context: dict[str, Any]) -> bool:
        return self.evaluator.evaluate_condition(self.logic, context)


def compile_rule(rule: Any) -> CompiledRule:
    """Check a rule and wrap it for evaluation. Raises RuleCompilationError."""
    problems = check_rule(rule)
    if problems:
        raise RuleCompilationError(problems, rule)
    return CompiledRule(logic=rule)


# Convenience function
def evaluate_rule(rule: Any, state: dict[str, Any]) -> bool:
    """
    Evaluate a precondition against a canonical state.

    Builds the router context and returns the rule's truthiness.
    """
    evaluator = RuleEvaluator()
    return evaluator.evaluate_condition(rule, build_router_context(state))

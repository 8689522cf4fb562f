"""
Randomness resolution - Turns rng operations into concrete set operations.

Randomness is rolled when a step is selected, stored by a plain set, and
only read by rules on later steps. The generator is seeded from the session
seed and a digest of the step so replaying a step rolls the same values.
"""

from __future__ import annotations
from typing import Any
import hashlib
import logging
import random

from .operations import BaseOperation, RngOp, SetOp, parse_operation
from .state import canonical_json

logger = logging.getLogger(__name__)


def step_digest(state: dict[str, Any], step_key: str, action: Any = None) -> str:
    """sha256 over the state, the step being taken and the submitted action."""
    payload = canonical_json({"state": state, "step": step_key, "action": action})
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def seeded_rng(seed: int | str | None, digest: str) -> random.Random:
    return random.Random(f"{seed}:{digest}")


def select_choice(choices: list[Any], probabilities: list[float], rng: random.Random) -> Any:
    """Weighted choice by cumulative probability. Weights need not sum to 1."""
    total = sum(probabilities)
    if abs(total - 1.0) > 0.01:
        logger.warning("rng probabilities sum to %s, not 1.0", total)
    if total <= 0:
        return choices[-1]

    roll = rng.random() * total
    cumulative = 0.0
    for choice, weight in zip(choices, probabilities):
        cumulative += weight
        if roll < cumulative:
            return choice
    # Rounding
    return choices[-1]


def resolve_rng_operations(
    ops: list[BaseOperation | dict[str, Any]],
    rng: random.Random,
) -> list[BaseOperation]:
    """Replace every rng operation with a set of the rolled value, in order."""
    resolved: list[BaseOperation] = []
    for raw in ops:
        op = parse_operation(raw)
        if isinstance(op, RngOp):
            value = select_choice(op.choices, op.probabilities, rng)
            logger.debug("rng for %s selected %r", op.path, value)
            resolved.append(SetOp(path=op.path, value=value))
        else:
            resolved.append(op)
    return resolved

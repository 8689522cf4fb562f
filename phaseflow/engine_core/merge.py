"""
Deterministic/External merge.

A step's deterministic operations and the judge's operations are applied
independently to the same starting state. The merge starts from the judge's
result and copies every leaf the deterministic batch wrote, except the
leaves the judge wrote itself.

Deterministic writes are authoritative everywhere except where the judge
wrote the exact same path. A blanket deterministic write ("clear everyone's
actionRequired") therefore coexists with a narrower judge override ("but
player2 must act again").
"""

from __future__ import annotations
from typing import Any, Iterable
import logging

from .state import clone_state, delete_path, get_path, set_path

logger = logging.getLogger(__name__)


def merge_states(
    external_state: dict[str, Any],
    deterministic_state: dict[str, Any],
    deterministic_touched: Iterable[str],
    external_touched: Iterable[str] = (),
) -> dict[str, Any]:
    """
    Combine the two candidate next states of one step.

    Paths are compared exactly, leaf by leaf. A deterministic path missing
    from the deterministic state (a delete) is removed from the result.
    Neither input is mutated.
    """
    merged = clone_state(external_state)
    judge_paths = set(external_touched)
    skipped = 0

    # Parents before children so nested writes land on fresh containers
    for path in sorted(set(deterministic_touched), key=lambda p: (p.count("."), p)):
        if path in judge_paths:
            skipped += 1
            continue

        lookup = get_path(deterministic_state, path)
        if lookup.found:
            error = set_path(merged, path, clone_state(lookup.value))
        else:
            error = delete_path(merged, path)
        if error:
            logger.warning("Deterministic value for %s not merged: %s", path, error)

    if skipped:
        logger.debug("Kept %d judge-written value(s) over deterministic writes", skipped)
    return merged

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import replace

from .models import Line
from .numeric_input import sanitize_number
from .tree_index import TreeIndex, build_tree_index

logger = logging.getLogger(__name__)

_Derived = tuple[float, float, float, float]


def recalculate(lines: Sequence[Line]) -> list[Line]:
    """
    Recompute every line's sanitized quantities, unit cost and total.

    Args:
        lines: Flat line list in presentation order; never mutated.
    Returns:
        New list in the same order where leaves have `total = q * f * unit_cost`
        and parents have `unit_cost = sum(child totals)` and the same total rule.
    Assumptions:
        Pure and deterministic; malformed numbers become 0 and malformed
        hierarchies are resolved by the tree index, so this never raises.
    """
    index = build_tree_index(lines)
    derived: dict[str, _Derived] = {}
    for root_id in index.roots:
        _walk_post_order(index, root_id, derived)
    return _rebuild(lines, index, derived)


def recalculate_from(lines: Sequence[Line], line_id: str) -> list[Line]:
    """
    Recalculate only the subtree of `line_id` and its ancestor chain.

    The rest of `lines` must already be the output of `recalculate`; under that
    assumption the result is identical to a full recalculation. Unknown ids
    fall back to the full pass.
    """
    index = build_tree_index(lines)
    if line_id not in index.by_id:
        return recalculate(lines)

    derived: dict[str, _Derived] = {}
    _walk_post_order(index, line_id, derived)
    for ancestor_id in index.ancestors_of(line_id):
        child_totals = (_current_total(index, derived, child) for child in index.children_of(ancestor_id))
        derived[ancestor_id] = _derive(index.by_id[ancestor_id], child_totals)

    logger.debug(
        {
            "event": "partial_recalculation",
            "line_id": line_id,
            "recomputed": len(derived),
            "line_count": len(lines),
        }
    )
    return _rebuild(lines, index, derived, keep_untouched=True)


def _walk_post_order(index: TreeIndex, start_id: str, derived: dict[str, _Derived]) -> None:
    # Explicit stack keeps arbitrarily deep chains clear of the recursion limit.
    stack: list[tuple[str, bool]] = [(start_id, False)]
    while stack:
        node_id, children_done = stack.pop()
        children = index.children_of(node_id)
        if children_done or not children:
            child_totals = (derived[child][3] for child in children)
            derived[node_id] = _derive(index.by_id[node_id], child_totals)
            continue
        stack.append((node_id, True))
        for child_id in reversed(children):
            stack.append((child_id, False))


def _derive(line: Line, child_totals: Iterable[float] | None) -> _Derived:
    quantity = sanitize_number(line.quantity)
    frequency = sanitize_number(line.frequency)
    totals = list(child_totals) if child_totals is not None else []
    if totals:
        unit_cost = sum(totals, 0.0)
    else:
        unit_cost = sanitize_number(line.unit_cost)
    return quantity, frequency, unit_cost, quantity * frequency * unit_cost


def _current_total(index: TreeIndex, derived: dict[str, _Derived], line_id: str) -> float:
    if line_id in derived:
        return derived[line_id][3]
    return sanitize_number(index.by_id[line_id].total)


def _rebuild(
    lines: Sequence[Line],
    index: TreeIndex,
    derived: dict[str, _Derived],
    *,
    keep_untouched: bool = False,
) -> list[Line]:
    result: list[Line] = []
    for position, line in enumerate(lines):
        if index.position.get(line.id) != position:
            # Duplicate id: detached leaf, computed on its own.
            values = _derive(line, None)
        elif line.id in derived:
            values = derived[line.id]
        elif keep_untouched:
            result.append(line)
            continue
        else:
            values = _derive(line, None)
        result.append(_apply(line, values))
    return result


def _apply(line: Line, values: _Derived) -> Line:
    quantity, frequency, unit_cost, total = values
    return replace(line, quantity=quantity, frequency=frequency, unit_cost=unit_cost, total=total)

from __future__ import annotations

from collections.abc import Sequence

from .models import Line
from .tree_index import build_tree_index


def visible_line_ids(lines: Sequence[Line], filter_text: str | None) -> set[str]:
    """
    Resolve which lines stay visible under a case-insensitive text filter.

    A line is shown when its description or category contains the filter, when
    any descendant matches (so the ancestor chain stays legible), or when any
    ancestor matches (so a matching parent keeps its sub-lines as context).
    An empty or whitespace-only filter shows everything; otherwise the text is
    matched as typed, spaces included.
    """
    if not filter_text or not filter_text.strip():
        return {line.id for line in lines}

    needle = filter_text.lower()
    index = build_tree_index(lines)
    self_match = {
        line_id: needle in (line.description or "").lower() or needle in (line.category or "").lower()
        for line_id, line in index.by_id.items()
    }

    # Pre-order from every root; reversing it gives children before parents.
    pre_order: list[str] = []
    for root_id in index.roots:
        pre_order.append(root_id)
        pre_order.extend(index.iter_descendants(root_id))

    subtree_match: dict[str, bool] = {}
    for line_id in reversed(pre_order):
        subtree_match[line_id] = self_match[line_id] or any(
            subtree_match[child] for child in index.children_of(line_id)
        )

    ancestor_match: dict[str, bool] = {}
    for line_id in pre_order:
        parent = index.parent_of[line_id]
        ancestor_match[line_id] = parent is not None and (self_match[parent] or ancestor_match[parent])

    return {line_id for line_id in pre_order if subtree_match[line_id] or ancestor_match[line_id]}


def filter_lines(lines: Sequence[Line], filter_text: str | None) -> list[Line]:
    """Return the visible lines in flat-list order."""
    visible = visible_line_ids(lines, filter_text)
    return [line for line in lines if line.id in visible]

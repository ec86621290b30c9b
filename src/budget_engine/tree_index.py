from __future__ import annotations

"""
Adjacency index over the flat line list.

Every consumer (recalculation, visibility, deletion, aggregation) resolves the
hierarchy through `build_tree_index` so the orphan policy is applied the same
way everywhere:

- a `parent_id` that does not resolve to an indexed line is ignored;
- a parent living in another section is ignored;
- a line naming itself as parent is a root;
- a parent cycle is broken by promoting the cycle member that appears first in
  the flat list.

Lines reusing an id already seen earlier in the list are left out of the
adjacency; their positions are listed in `detached` and callers treat them as
top-level leaves.
"""

from collections.abc import Iterator, Sequence
from dataclasses import dataclass

from .models import Line

_VISITING = 1
_DONE = 2


@dataclass(frozen=True, slots=True)
class TreeIndex:
    by_id: dict[str, Line]
    parent_of: dict[str, str | None]
    children: dict[str, tuple[str, ...]]
    roots: tuple[str, ...]
    position: dict[str, int]
    detached: tuple[int, ...] = ()

    def children_of(self, line_id: str) -> tuple[str, ...]:
        return self.children.get(line_id, ())

    def has_children(self, line_id: str) -> bool:
        return bool(self.children.get(line_id))

    def top_level_positions(self) -> list[int]:
        """Flat-list positions of roots and detached duplicates, in list order."""
        return sorted([*(self.position[root_id] for root_id in self.roots), *self.detached])

    def ancestors_of(self, line_id: str) -> list[str]:
        """Return ancestor ids nearest first."""
        ancestors: list[str] = []
        parent = self.parent_of.get(line_id)
        while parent is not None:
            ancestors.append(parent)
            parent = self.parent_of.get(parent)
        return ancestors

    def depth_of(self, line_id: str) -> int:
        """Top-level lines have depth 1."""
        return len(self.ancestors_of(line_id)) + 1

    def iter_descendants(self, line_id: str) -> Iterator[str]:
        """Yield descendant ids in pre-order, siblings in flat-list order."""
        stack = list(reversed(self.children_of(line_id)))
        while stack:
            current = stack.pop()
            yield current
            stack.extend(reversed(self.children_of(current)))

    def descendants_of(self, line_id: str) -> list[str]:
        return list(self.iter_descendants(line_id))

    def subtree_ids(self, line_id: str) -> set[str]:
        if line_id not in self.by_id:
            return set()
        return {line_id, *self.iter_descendants(line_id)}

    def subtree_height(self, line_id: str) -> int:
        """Number of levels in the subtree rooted at `line_id` (a leaf is 1)."""
        if line_id not in self.by_id:
            return 0
        height = 1
        stack = [(line_id, 1)]
        while stack:
            current, level = stack.pop()
            height = max(height, level)
            stack.extend((child, level + 1) for child in self.children_of(current))
        return height


def build_tree_index(lines: Sequence[Line]) -> TreeIndex:
    """
    Build the id lookup and parent→children adjacency for a flat line list.

    Args:
        lines: Flat list in presentation order; it is not modified.
    Returns:
        TreeIndex whose children tuples and roots keep flat-list order.
    Assumptions:
        Runs in O(n); never raises for malformed hierarchies.
    """
    by_id: dict[str, Line] = {}
    position: dict[str, int] = {}
    order: list[str] = []
    detached: list[int] = []
    for index, line in enumerate(lines):
        if line.id in by_id:
            detached.append(index)
            continue
        by_id[line.id] = line
        position[line.id] = index
        order.append(line.id)

    parent_of: dict[str, str | None] = {}
    for line_id in order:
        line = by_id[line_id]
        parent_of[line_id] = _resolve_parent(line, by_id)

    _break_cycles(order, parent_of, position)

    children: dict[str, list[str]] = {}
    roots: list[str] = []
    for line_id in order:
        parent = parent_of[line_id]
        if parent is None:
            roots.append(line_id)
        else:
            children.setdefault(parent, []).append(line_id)

    return TreeIndex(
        by_id=by_id,
        parent_of=parent_of,
        children={key: tuple(value) for key, value in children.items()},
        roots=tuple(roots),
        position=position,
        detached=tuple(detached),
    )


def _resolve_parent(line: Line, by_id: dict[str, Line]) -> str | None:
    parent_id = line.parent_id
    if not parent_id or parent_id == line.id:
        return None
    parent = by_id.get(parent_id)
    if parent is None or parent.section_id != line.section_id:
        return None
    return parent_id


def _break_cycles(order: list[str], parent_of: dict[str, str | None], position: dict[str, int]) -> None:
    state: dict[str, int] = {}
    for start in order:
        path: list[str] = []
        node: str | None = start
        while node is not None and node not in state:
            state[node] = _VISITING
            path.append(node)
            node = parent_of[node]
        if node is not None and state[node] == _VISITING:
            cycle = path[path.index(node):]
            head = min(cycle, key=position.__getitem__)
            parent_of[head] = None
        for visited in path:
            state[visited] = _DONE

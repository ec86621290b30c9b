from __future__ import annotations

"""
Structural and field-level edits over the flat line list.

Every function returns a new list and leaves its input untouched. None of them
recalculate: the result must go through `recalculation.recalculate` before it
is treated as authoritative (the editor session does this after every call).
Operations addressing an unknown line id return an unchanged copy; caller
contract violations (locked unit cost, cycles, nesting too deep) raise.
"""

import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import replace
from typing import Any
from uuid import uuid4

from .errors import CycleError, FieldNotEditableError, LockedFieldError, StructureError
from .models import (
    DEFAULT_UNIT,
    IMPORT_DEFAULT_CATEGORY,
    IMPORT_DEFAULT_UNIT,
    CostRecord,
    ImportCandidate,
    Line,
    Section,
)
from .numeric_input import parse_numeric_input, sanitize_number
from .settings import DEFAULT_MAX_DEPTH
from .tree_index import build_tree_index

__all__ = [
    "EDITABLE_FIELDS",
    "NUMERIC_FIELDS",
    "PASTABLE_FIELDS",
    "generate_id",
    "add_line",
    "edit_field",
    "delete_line",
    "duplicate_line",
    "move_to_section",
    "set_parent",
    "paste_column",
    "apply_cost_record",
    "import_candidates",
]

IdFactory = Callable[[], str]

NUMERIC_FIELDS = frozenset({"quantity", "frequency", "unit_cost"})
TEXT_FIELDS = frozenset({"category", "description", "unit"})
OPTIONAL_TEXT_FIELDS = frozenset({"notes"})
FLAG_FIELDS = frozenset({"selected", "show_notes"})
EDITABLE_FIELDS = NUMERIC_FIELDS | TEXT_FIELDS | OPTIONAL_TEXT_FIELDS | FLAG_FIELDS
PASTABLE_FIELDS = NUMERIC_FIELDS | TEXT_FIELDS | OPTIONAL_TEXT_FIELDS

_ROW_SPLIT = re.compile(r"\r\n|\n|\r")
_REJECTED = object()
_TRUE_STRINGS = frozenset({"true", "1", "yes", "y", "si", "sí", "on", "x"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "n", "off", ""})


def generate_id() -> str:
    return uuid4().hex[:12]


def add_line(
    lines: Sequence[Line],
    section_id: str,
    parent_id: str | None = None,
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
    unit: str = DEFAULT_UNIT,
    id_factory: IdFactory = generate_id,
) -> tuple[list[Line], Line]:
    """
    Append a fresh line (quantity 1, frequency 1, unit cost 0).

    Raises StructureError when the parent is unknown, lives in another section,
    or already sits at the deepest allowed level.
    """
    if parent_id is not None:
        index = build_tree_index(lines)
        parent = index.by_id.get(parent_id)
        if parent is None:
            raise StructureError(f"Parent line '{parent_id}' does not exist")
        if parent.section_id != section_id:
            raise StructureError(f"Parent line '{parent_id}' belongs to section '{parent.section_id}'")
        if index.depth_of(parent_id) + 1 > max_depth:
            raise StructureError(f"Nesting below '{parent_id}' would exceed {max_depth} levels")

    taken = {line.id for line in lines}
    new_line = Line(
        id=_fresh_id(taken, id_factory),
        section_id=section_id,
        parent_id=parent_id,
        unit=unit,
    )
    return [*lines, new_line], new_line


def edit_field(lines: Sequence[Line], line_id: str, field: str, value: Any) -> list[Line]:
    """
    Replace one field on one line.

    Numeric text goes through `parse_numeric_input`; an unparseable value keeps
    the previous one. Editing `unit_cost` on a line with children raises
    LockedFieldError since that value is derived.
    """
    if field not in EDITABLE_FIELDS:
        raise FieldNotEditableError(f"Field '{field}' cannot be edited")

    index = build_tree_index(lines)
    if line_id not in index.by_id:
        return list(lines)
    if field == "unit_cost" and index.has_children(line_id):
        raise LockedFieldError(f"Unit cost of '{line_id}' is derived from its sub-lines")

    coerced = _coerce(field, value)
    if coerced is _REJECTED:
        return list(lines)

    position = index.position[line_id]
    result = list(lines)
    result[position] = replace(result[position], **{field: coerced})
    return result


def delete_line(lines: Sequence[Line], line_id: str) -> list[Line]:
    """Remove a line together with every descendant."""
    index = build_tree_index(lines)
    doomed = index.subtree_ids(line_id)
    if not doomed:
        return list(lines)

    result: list[Line] = []
    for line in lines:
        if line.id in doomed:
            continue
        if line.parent_id in doomed:
            # Only reachable for lines the index already treated as roots.
            line = replace(line, parent_id=None)
        result.append(line)
    return result


def duplicate_line(
    lines: Sequence[Line],
    line_id: str,
    *,
    id_factory: IdFactory = generate_id,
) -> tuple[list[Line], str | None]:
    """
    Clone a line and its whole subtree with fresh ids.

    Clones keep every field except ids and internal parent links, and are
    inserted right after the last original of the subtree in flat-list order.
    Returns the new list and the id of the cloned subtree root (None when the
    line does not exist).
    """
    index = build_tree_index(lines)
    if line_id not in index.by_id:
        return list(lines), None

    subtree = [line_id, *index.iter_descendants(line_id)]
    taken = {line.id for line in lines}
    id_map: dict[str, str] = {}
    for original_id in subtree:
        new_id = _fresh_id(taken, id_factory)
        taken.add(new_id)
        id_map[original_id] = new_id

    ordered = sorted(subtree, key=index.position.__getitem__)
    clones: list[Line] = []
    for original_id in ordered:
        original = index.by_id[original_id]
        if original_id == line_id:
            parent_id = original.parent_id
        else:
            parent_id = id_map[index.parent_of[original_id]]
        clones.append(replace(original, id=id_map[original_id], parent_id=parent_id))

    insert_at = index.position[ordered[-1]] + 1
    result = list(lines)
    result[insert_at:insert_at] = clones
    return result, id_map[line_id]


def move_to_section(lines: Sequence[Line], line_id: str, section_id: str) -> list[Line]:
    """
    Drop a line onto a section: it becomes top-level there, and its descendants
    follow it into the section with their parent links untouched. Lines outside
    the subtree that still name one of its members as parent are promoted to
    top level, so the move never pulls unrelated lines under the moved one.
    """
    index = build_tree_index(lines)
    if line_id not in index.by_id:
        return list(lines)

    moved_position = index.position[line_id]
    descendants = set(index.iter_descendants(line_id))
    subtree = {line_id, *descendants}
    result: list[Line] = []
    for position, line in enumerate(lines):
        in_subtree = line.id in subtree and index.position[line.id] == position
        if position == moved_position:
            line = replace(line, section_id=section_id, parent_id=None)
        elif in_subtree:
            line = replace(line, section_id=section_id)
        elif line.parent_id in subtree:
            # Outside lines the index treated as roots must not attach to the subtree.
            line = replace(line, parent_id=None)
        result.append(line)
    return result


def set_parent(
    lines: Sequence[Line],
    line_id: str,
    parent_id: str | None,
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> list[Line]:
    """
    Nest a line under another line of the same section, or promote it to the
    top level when `parent_id` is None.

    Raises CycleError when the new parent is the line itself or one of its
    descendants, and StructureError for unknown parents, cross-section parents
    or a move that would push the subtree past `max_depth` levels.
    """
    index = build_tree_index(lines)
    if line_id not in index.by_id:
        return list(lines)

    position = index.position[line_id]
    result = list(lines)
    if parent_id is None:
        result[position] = replace(result[position], parent_id=None)
        return result

    parent = index.by_id.get(parent_id)
    if parent is None:
        raise StructureError(f"Parent line '{parent_id}' does not exist")
    if parent_id in index.subtree_ids(line_id):
        raise CycleError(f"Line '{parent_id}' is inside the subtree of '{line_id}'")
    if parent.section_id != index.by_id[line_id].section_id:
        raise StructureError(f"Parent line '{parent_id}' belongs to section '{parent.section_id}'")
    if index.depth_of(parent_id) + index.subtree_height(line_id) > max_depth:
        raise StructureError(f"Moving '{line_id}' under '{parent_id}' would exceed {max_depth} levels")

    result[position] = replace(result[position], parent_id=parent_id)
    return result


def paste_column(lines: Sequence[Line], start_line_id: str, field: str, text: str) -> list[Line]:
    """
    Spread a pasted block over consecutive lines, one text row per line.

    Rows are split on any newline convention, empty rows are dropped, and only
    the first tab-delimited column is used. Writing stops at the end of the
    list. Numeric rows that do not parse keep the previous value, and unit
    costs are not written onto lines that have children.
    """
    if field not in PASTABLE_FIELDS:
        raise FieldNotEditableError(f"Field '{field}' cannot receive pasted values")

    start = next((position for position, line in enumerate(lines) if line.id == start_line_id), None)
    if start is None:
        return list(lines)

    rows = [row for row in _ROW_SPLIT.split(text or "") if row]
    index = build_tree_index(lines)
    result = list(lines)
    for offset, row in enumerate(rows):
        position = start + offset
        if position >= len(result):
            break
        target = result[position]
        if field == "unit_cost" and index.has_children(target.id):
            continue
        coerced = _coerce(field, row.split("\t")[0])
        if coerced is _REJECTED:
            continue
        result[position] = replace(target, **{field: coerced})
    return result


def apply_cost_record(lines: Sequence[Line], line_id: str, record: CostRecord) -> list[Line]:
    """Copy a looked-up cost record onto a line (unit cost only onto leaves)."""
    index = build_tree_index(lines)
    if line_id not in index.by_id:
        return list(lines)

    updates: dict[str, Any] = {
        "description": record.description or "",
        "unit": record.unit or "",
        "category": record.category or "",
    }
    if not index.has_children(line_id):
        updates["unit_cost"] = sanitize_number(record.unit_cost)

    position = index.position[line_id]
    result = list(lines)
    result[position] = replace(result[position], **updates)
    return result


def import_candidates(
    sections: Sequence[Section],
    lines: Sequence[Line],
    candidates: Iterable[ImportCandidate],
    *,
    id_factory: IdFactory = generate_id,
) -> tuple[list[Section], list[Line]]:
    """
    Turn bulk-import candidates into top-level lines.

    Each candidate lands in the section named after its category; missing
    sections are created on demand and appended after the existing ones.
    """
    result_sections = list(sections)
    result_lines = list(lines)
    by_name: dict[str, Section] = {}
    for section in result_sections:
        by_name.setdefault(section.name, section)

    taken = {section.id for section in result_sections} | {line.id for line in result_lines}
    for candidate in candidates:
        category = (candidate.category or "").strip() or IMPORT_DEFAULT_CATEGORY
        section = by_name.get(category)
        if section is None:
            section = Section(id=_fresh_id(taken, id_factory), name=category)
            taken.add(section.id)
            by_name[category] = section
            result_sections.append(section)

        quantity = parse_numeric_input(candidate.quantity)
        line = Line(
            id=_fresh_id(taken, id_factory),
            section_id=section.id,
            parent_id=None,
            category=category,
            description=(candidate.description or "").strip(),
            notes=candidate.notes,
            quantity=quantity if quantity is not None and quantity > 0 else 1.0,
            frequency=1.0,
            unit=(candidate.unit or "").strip() or IMPORT_DEFAULT_UNIT,
            unit_cost=sanitize_number(candidate.unit_cost),
        )
        taken.add(line.id)
        result_lines.append(line)

    return result_sections, result_lines


def _coerce(field: str, value: Any) -> Any:
    if field in NUMERIC_FIELDS:
        parsed = parse_numeric_input(value)
        if parsed is None:
            return _REJECTED
        return sanitize_number(parsed)
    if field in TEXT_FIELDS:
        return "" if value is None else str(value)
    if field in OPTIONAL_TEXT_FIELDS:
        return None if value is None else str(value)
    return _coerce_flag(value)


def _coerce_flag(value: Any) -> Any:
    if value is None or isinstance(value, bool):
        return bool(value)
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in _TRUE_STRINGS:
            return True
        if normalized in _FALSE_STRINGS:
            return False
    return _REJECTED


def _fresh_id(taken: set[str], id_factory: IdFactory) -> str:
    candidate = id_factory()
    while candidate in taken:
        candidate = id_factory()
    return candidate

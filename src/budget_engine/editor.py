from __future__ import annotations

"""
Interactive editing session over one project document.

`BudgetEditor` is the glue between a UI and the pure engine: it applies a
mutation, immediately recalculates, and only then swaps in the new document, so
a mutation that raises leaves the session untouched. It also tracks the active
row and keeps a short, newest-first history of snapshots that can be restored.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from . import mutations
from .aggregation import BudgetSummary, summarize_budget
from .collaborators import CostLookup
from .errors import StructureError
from .models import CAP_TYPES, CapType, CostRecord, ImportCandidate, Line, ProjectDocument, ProjectMetadata, Section
from .numeric_input import sanitize_number
from .recalculation import recalculate, recalculate_from
from .settings import EngineSettings
from .tree_index import build_tree_index
from .visibility import filter_lines

logger = logging.getLogger(__name__)

DEFAULT_SECTION_NAME = "Nueva Sección"


@dataclass(frozen=True, slots=True)
class Snapshot:
    taken_at: datetime
    sections: tuple[Section, ...]
    lines: tuple[Line, ...]


class BudgetEditor:
    """Mutable session holding an always-recalculated project document."""

    def __init__(
        self,
        document: ProjectDocument | None = None,
        *,
        settings: EngineSettings | None = None,
        cost_lookup: CostLookup | None = None,
        id_factory: mutations.IdFactory = mutations.generate_id,
    ) -> None:
        self._settings = settings or EngineSettings()
        document = document or ProjectDocument(meta=ProjectMetadata(currency=self._settings.default_currency))
        self._cost_lookup = cost_lookup
        self._id_factory = id_factory
        self._meta = document.meta
        self._sections: tuple[Section, ...] = tuple(document.sections)
        self._lines: tuple[Line, ...] = tuple(recalculate(document.lines))
        self._snapshots: list[Snapshot] = []
        self.active_row_id: str | None = None

    # ------------------------------------------------------------------ state

    @property
    def meta(self) -> ProjectMetadata:
        return self._meta

    @property
    def sections(self) -> tuple[Section, ...]:
        return self._sections

    @property
    def lines(self) -> tuple[Line, ...]:
        return self._lines

    @property
    def snapshots(self) -> tuple[Snapshot, ...]:
        return tuple(self._snapshots)

    def to_document(self) -> ProjectDocument:
        return ProjectDocument(meta=self._meta, sections=self._sections, lines=self._lines)

    def line(self, line_id: str) -> Line | None:
        return next((line for line in self._lines if line.id == line_id), None)

    def is_unit_cost_locked(self, line_id: str) -> bool:
        """True when the line has sub-lines, so its unit cost input must be disabled."""
        return build_tree_index(self._lines).has_children(line_id)

    def summary(self) -> BudgetSummary:
        return summarize_budget(self._lines, self._sections)

    def visible_lines(self, filter_text: str | None) -> list[Line]:
        return filter_lines(self._lines, filter_text)

    def update_meta(self, **changes) -> ProjectMetadata:
        self._meta = replace(self._meta, **changes)
        return self._meta

    # --------------------------------------------------------------- sections

    def add_section(self, name: str = DEFAULT_SECTION_NAME, *, with_line: bool = True) -> Section:
        """Append a section; by default it starts with one empty line."""
        taken = {section.id for section in self._sections} | {line.id for line in self._lines}
        section_id = self._id_factory()
        while section_id in taken:
            section_id = self._id_factory()
        section = Section(id=section_id, name=name)
        self._sections = (*self._sections, section)
        if with_line:
            self.add_line(section.id)
        return section

    def remove_section(self, section_id: str) -> None:
        """Drop a section and every line that belongs to it."""
        removed = {line.id for line in self._lines if line.section_id == section_id}
        remaining = [line for line in self._lines if line.section_id != section_id]
        self._sections = tuple(section for section in self._sections if section.id != section_id)
        self._commit(remaining)
        if self.active_row_id in removed:
            self.active_row_id = None

    def rename_section(self, section_id: str, name: str) -> None:
        self._sections = tuple(
            replace(section, name=name) if section.id == section_id else section for section in self._sections
        )

    def toggle_section(self, section_id: str) -> None:
        self._sections = tuple(
            replace(section, collapsed=not section.collapsed) if section.id == section_id else section
            for section in self._sections
        )

    def set_section_cap(self, section_id: str, cap_type: CapType, cap_value: float = 0.0) -> None:
        if cap_type not in CAP_TYPES:
            raise StructureError(f"Unsupported cap type '{cap_type}'")
        self._sections = tuple(
            replace(section, cap_type=cap_type, cap_value=sanitize_number(cap_value))
            if section.id == section_id
            else section
            for section in self._sections
        )

    # ------------------------------------------------------------------ lines

    def add_line(self, section_id: str, parent_id: str | None = None) -> Line:
        lines, new_line = mutations.add_line(
            self._lines,
            section_id,
            parent_id,
            max_depth=self._settings.max_depth,
            unit=self._settings.default_unit,
            id_factory=self._id_factory,
        )
        self._commit(lines)
        self.active_row_id = new_line.id
        return self.line(new_line.id) or new_line

    def edit(self, line_id: str, field: str, value) -> None:
        lines = mutations.edit_field(self._lines, line_id, field, value)
        if field in mutations.NUMERIC_FIELDS:
            # Only the edited line and its ancestors can change.
            self._lines = tuple(recalculate_from(lines, line_id))
        else:
            self._lines = tuple(lines)

    def delete(self, line_id: str) -> None:
        doomed = build_tree_index(self._lines).subtree_ids(line_id)
        self._commit(mutations.delete_line(self._lines, line_id))
        if self.active_row_id in doomed:
            self.active_row_id = None
        logger.info({"event": "line_deleted", "line_id": line_id, "removed": len(doomed)})

    def duplicate(self, line_id: str) -> str | None:
        lines, clone_id = mutations.duplicate_line(self._lines, line_id, id_factory=self._id_factory)
        self._commit(lines)
        return clone_id

    def move_to_section(self, line_id: str, section_id: str) -> None:
        if not any(section.id == section_id for section in self._sections):
            raise StructureError(f"Section '{section_id}' does not exist")
        self._commit(mutations.move_to_section(self._lines, line_id, section_id))

    def set_parent(self, line_id: str, parent_id: str | None) -> None:
        self._commit(mutations.set_parent(self._lines, line_id, parent_id, max_depth=self._settings.max_depth))

    def paste(self, line_id: str, field: str, text: str) -> None:
        self._commit(mutations.paste_column(self._lines, line_id, field, text))

    def import_candidates(self, candidates: Iterable[ImportCandidate]) -> int:
        """Append imported rows as top-level lines; returns how many were added."""
        before = len(self._lines)
        sections, lines = mutations.import_candidates(
            self._sections, self._lines, candidates, id_factory=self._id_factory
        )
        self._sections = tuple(sections)
        self._commit(lines)
        added = len(self._lines) - before
        logger.info({"event": "candidates_imported", "added": added, "section_count": len(self._sections)})
        return added

    # ------------------------------------------------------------ cost lookup

    def suggest_costs(self, text: str | None) -> list[CostRecord]:
        """Ask the cost-lookup collaborator for records matching `text`."""
        if self._cost_lookup is None or not text or not text.strip():
            return []
        return list(self._cost_lookup.search(text.strip()))

    def apply_cost_record(self, record: CostRecord, line_id: str | None = None) -> None:
        target = line_id or self.active_row_id
        if target is None:
            return
        self._commit(mutations.apply_cost_record(self._lines, target, record))

    # -------------------------------------------------------------- snapshots

    def take_snapshot(self) -> Snapshot:
        snapshot = Snapshot(taken_at=datetime.now(timezone.utc), sections=self._sections, lines=self._lines)
        self._snapshots = [snapshot, *self._snapshots][: self._settings.snapshot_limit]
        return snapshot

    def restore_snapshot(self, position: int = 0) -> None:
        """Restore the snapshot at `position` (0 is the newest)."""
        snapshot = self._snapshots[position]
        self._sections = snapshot.sections
        self._commit(snapshot.lines)
        if self.active_row_id is not None and self.line(self.active_row_id) is None:
            self.active_row_id = None
        logger.info({"event": "snapshot_restored", "taken_at": snapshot.taken_at.isoformat()})

    def _commit(self, lines: Iterable[Line]) -> None:
        self._lines = tuple(recalculate(list(lines)))

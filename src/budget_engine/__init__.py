"""
Hierarchical budget-line calculation engine.

The core (tree index, recalculation, mutations, aggregation and filtering) is
pure and I/O free; persistence, Excel export and the FastAPI
service live in their own modules and are imported explicitly.
"""

from .aggregation import BudgetSummary, SectionSummary, grand_total, section_subtotal, summarize_budget
from .editor import BudgetEditor, Snapshot
from .errors import (
    BudgetEngineError,
    CycleError,
    FieldNotEditableError,
    LockedFieldError,
    StructureError,
)
from .models import CostRecord, ImportCandidate, Line, ProjectDocument, ProjectMetadata, Section
from .numeric_input import parse_numeric_input, sanitize_number
from .recalculation import recalculate, recalculate_from
from .settings import EngineSettings, SettingsError, load_engine_settings
from .tree_index import TreeIndex, build_tree_index
from .visibility import filter_lines, visible_line_ids

__all__ = [
    "BudgetEditor",
    "BudgetEngineError",
    "BudgetSummary",
    "CostRecord",
    "CycleError",
    "EngineSettings",
    "FieldNotEditableError",
    "ImportCandidate",
    "Line",
    "LockedFieldError",
    "ProjectDocument",
    "ProjectMetadata",
    "Section",
    "SectionSummary",
    "SettingsError",
    "Snapshot",
    "StructureError",
    "TreeIndex",
    "build_tree_index",
    "filter_lines",
    "grand_total",
    "load_engine_settings",
    "parse_numeric_input",
    "recalculate",
    "recalculate_from",
    "sanitize_number",
    "section_subtotal",
    "summarize_budget",
    "visible_line_ids",
]

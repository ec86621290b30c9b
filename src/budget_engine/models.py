from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

# Section spending cap options
CapType = Literal["none", "fixed-amount", "percent-of-grand-total"]

CAP_TYPES: frozenset[str] = frozenset({"none", "fixed-amount", "percent-of-grand-total"})

DEFAULT_UNIT = "Unid"
IMPORT_DEFAULT_UNIT = "Und"
IMPORT_DEFAULT_CATEGORY = "General"


@dataclass(frozen=True, slots=True)
class Line:
    """
    A single budget entry.

    Leaf lines carry a directly entered unit cost; lines with children have
    their unit cost derived from the children's totals during recalculation.
    Instances are immutable: every operation builds replacements with
    `dataclasses.replace` so readers never observe a half-updated tree.
    """

    id: str
    section_id: str
    parent_id: str | None = None
    category: str = ""
    description: str = ""
    notes: str | None = None
    quantity: float = 1.0
    frequency: float = 1.0
    unit: str = DEFAULT_UNIT
    unit_cost: float = 0.0
    total: float = 0.0
    selected: bool = False
    show_notes: bool = False


@dataclass(frozen=True, slots=True)
class Section:
    """Named grouping of top-level lines with an optional spending cap."""

    id: str
    name: str
    collapsed: bool = False
    cap_type: CapType = "none"
    cap_value: float = 0.0


@dataclass(frozen=True, slots=True)
class ProjectMetadata:
    """Currency and donor context; passed through untouched by the engine."""

    donor: str = ""
    country: str = ""
    currency: str = "PEN"
    sector: str = ""
    duration: int = 12
    usd_rate: float = 3.75
    eur_rate: float = 4.05


@dataclass(frozen=True, slots=True)
class ProjectDocument:
    """Unit of persistence: metadata plus the sections and flat line list."""

    meta: ProjectMetadata = field(default_factory=ProjectMetadata)
    sections: tuple[Section, ...] = ()
    lines: tuple[Line, ...] = ()


@dataclass(frozen=True, slots=True)
class CostRecord:
    """Historical cost entry returned by the cost-lookup collaborator."""

    description: str
    category: str
    unit: str
    unit_cost: float
    currency: str = ""
    year: int | None = None
    donor: str = ""
    sector: str = ""


@dataclass(frozen=True, slots=True)
class ImportCandidate:
    """Flat candidate row produced by the bulk-import collaborator."""

    description: str
    category: str | None = None
    unit: str | None = None
    quantity: float | None = None
    unit_cost: float | None = None
    notes: str | None = None

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from .models import CapType, Line, Section
from .numeric_input import sanitize_number
from .tree_index import TreeIndex, build_tree_index


@dataclass(frozen=True, slots=True)
class SectionSummary:
    section_id: str
    name: str
    subtotal: float
    share: float
    share_label: str
    cap_type: CapType = "none"
    cap_limit: float | None = None
    over_cap: bool = False


@dataclass(frozen=True, slots=True)
class BudgetSummary:
    grand_total: float
    sections: list[SectionSummary] = field(default_factory=list)

    def for_section(self, section_id: str) -> SectionSummary | None:
        return next((item for item in self.sections if item.section_id == section_id), None)


def grand_total(lines: Sequence[Line], index: TreeIndex | None = None) -> float:
    """
    Sum the totals of top-level lines only (detached duplicates included).

    Args:
        lines: Recalculated line list.
        index: Optional prebuilt tree index for the same list.
    Returns:
        Grand total; children are excluded since their totals are already
        folded into their parents.
    """
    index = index or build_tree_index(lines)
    return float(sum((lines[position].total for position in index.top_level_positions()), 0.0))


def section_subtotal(lines: Sequence[Line], section_id: str, index: TreeIndex | None = None) -> float:
    """Sum the totals of the top-level lines belonging to one section."""
    index = index or build_tree_index(lines)
    return float(
        sum(
            (
                lines[position].total
                for position in index.top_level_positions()
                if lines[position].section_id == section_id
            ),
            0.0,
        )
    )


def cap_limit(section: Section, total: float) -> float | None:
    """Return the section's spending ceiling, or None when it has no cap."""
    if section.cap_type == "fixed-amount":
        return sanitize_number(section.cap_value)
    if section.cap_type == "percent-of-grand-total":
        return total * sanitize_number(section.cap_value) / 100.0
    return None


def format_share(part: float, total: float) -> str:
    if not total:
        return "0.0%"
    return f"{part / total * 100:.1f}%"


def format_amount(value: float) -> str:
    return f"{value:,.2f}"


def summarize_budget(lines: Sequence[Line], sections: Sequence[Section]) -> BudgetSummary:
    """
    Derive the grand total plus per-section subtotal, share and cap status.

    Args:
        lines: Output of `recalculate`; totals are read, never recomputed.
        sections: Sections in display order.
    Returns:
        BudgetSummary whose section entries follow the order of `sections`.
    Assumptions:
        Over-cap is a warning flag only; nothing here blocks an edit.
    """
    index = build_tree_index(lines)
    total = grand_total(lines, index)

    summaries: list[SectionSummary] = []
    for section in sections:
        subtotal = section_subtotal(lines, section.id, index)
        limit = cap_limit(section, total)
        summaries.append(
            SectionSummary(
                section_id=section.id,
                name=section.name,
                subtotal=subtotal,
                share=subtotal / total if total else 0.0,
                share_label=format_share(subtotal, total),
                cap_type=section.cap_type,
                cap_limit=limit,
                over_cap=limit is not None and subtotal > limit,
            )
        )

    return BudgetSummary(grand_total=total, sections=summaries)

"""
Excel export of a project document.

The sheet mirrors the editor: a title block with donor and exchange rates, one
banner row per section, every line depth-first with its sub-lines indented, a
subtotal per section and a grand total. Totals are written as formulas so the
workbook stays live when a donor edits it; parent unit costs are formulas over
their children's totals.
"""

from __future__ import annotations

import logging
from datetime import date
from io import BytesIO
from typing import Dict, List, Sequence, Tuple

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.worksheet.worksheet import Worksheet

from .models import Line, ProjectDocument, ProjectMetadata, Section
from .recalculation import recalculate
from .tree_index import TreeIndex, build_tree_index

logger = logging.getLogger(__name__)

SHEET_TITLE = "Presupuesto Detallado"
HEADERS = ("Categoría", "Descripción", "Justificación", "Cant.", "Unidad", "Frec.", "Costo Unit.", "Total")
COLUMN_WIDTHS = (20, 50, 35, 10, 15, 10, 15, 18)
HEADER_ROW = 5
FIRST_BODY_ROW = 6
AMOUNT_FORMAT = "#,##0.00"

_BRAND = "006673"
_SECTION_FILL = PatternFill("solid", fgColor="E0F2F1")
_HEADER_FILL = PatternFill("solid", fgColor=_BRAND)
_SUBTOTAL_FILL = PatternFill("solid", fgColor="F0F0F0")


def build_workbook(document: ProjectDocument) -> Workbook:
    """Lay out the document on a single worksheet and return the workbook."""
    lines = recalculate(document.lines)
    index = build_tree_index(lines)

    workbook = Workbook()
    sheet = workbook.active
    sheet.title = SHEET_TITLE
    for offset, width in enumerate(COLUMN_WIDTHS):
        sheet.column_dimensions[chr(ord("A") + offset)].width = width

    _write_title_block(sheet, document.meta)
    _write_header(sheet)

    row = FIRST_BODY_ROW
    subtotal_cells: List[str] = []
    for section in document.sections:
        row, subtotal_cell = _write_section(sheet, section, lines, index, row, document.meta.currency)
        subtotal_cells.append(subtotal_cell)

    sheet.cell(row=row, column=7, value="TOTAL GENERAL").font = Font(bold=True)
    total_cell = sheet.cell(row=row, column=8, value="=" + "+".join(subtotal_cells) if subtotal_cells else 0)
    total_cell.font = Font(size=14, bold=True, color="FFFFFF")
    total_cell.fill = _HEADER_FILL
    total_cell.number_format = _currency_format(document.meta.currency)
    return workbook


def export_workbook(document: ProjectDocument) -> bytes:
    """Serialize the document as XLSX bytes."""
    buffer = BytesIO()
    build_workbook(document).save(buffer)
    payload = buffer.getvalue()
    logger.info(
        {
            "event": "workbook_exported",
            "section_count": len(document.sections),
            "line_count": len(document.lines),
            "size_bytes": len(payload),
        }
    )
    return payload


def export_filename(meta: ProjectMetadata, today: date | None = None) -> str:
    stamp = (today or date.today()).isoformat()
    donor = (meta.donor or "").strip().replace(" ", "_") or "Proyecto"
    return f"Presupuesto_{donor}_{stamp}.xlsx"


def _write_title_block(sheet: Worksheet, meta: ProjectMetadata) -> None:
    sheet.cell(row=1, column=1, value=meta.donor or "Sin Donante").font = Font(size=14, bold=True, color=_BRAND)
    sheet.cell(row=2, column=1, value=f"Proyecto: {meta.donor or 'Presupuesto'}").font = Font(size=12, bold=True)
    sheet.cell(
        row=3,
        column=1,
        value=f"Moneda: {meta.currency} | Tasa USD: {meta.usd_rate} | Tasa EUR: {meta.eur_rate}",
    )


def _write_header(sheet: Worksheet) -> None:
    for column, label in enumerate(HEADERS, start=1):
        cell = sheet.cell(row=HEADER_ROW, column=column, value=label)
        cell.fill = _HEADER_FILL
        cell.font = Font(name="Arial", color="FFFFFF", bold=True, size=10)
        cell.alignment = Alignment(horizontal="center", vertical="center")
    sheet.row_dimensions[HEADER_ROW].height = 25


def _write_section(
    sheet: Worksheet,
    section: Section,
    lines: Sequence[Line],
    index: TreeIndex,
    row: int,
    currency: str,
) -> Tuple[int, str]:
    """Write one section starting at `row`; returns the next free row and the subtotal cell."""
    banner = sheet.cell(row=row, column=1, value=section.name.upper())
    banner.fill = _SECTION_FILL
    banner.font = Font(name="Arial", color="004D40", bold=True)
    sheet.merge_cells(start_row=row, start_column=1, end_row=row, end_column=len(HEADERS))
    row += 1

    # Rows are assigned before writing so parents can reference their children.
    layout = _section_layout(section, lines, index)
    row_of: Dict[str, int] = {
        line.id: row + offset for offset, (line, _depth, detached) in enumerate(layout) if not detached
    }
    for offset, (line, depth, detached) in enumerate(layout):
        children = () if detached else index.children_of(line.id)
        _write_line(sheet, line, depth, row + offset, [row_of[child] for child in children])

    root_cells = [f"H{row + offset}" for offset, (_line, depth, _detached) in enumerate(layout) if depth == 1]
    row += len(layout)
    sheet.cell(row=row, column=7, value=f"Subtotal {section.name}").font = Font(bold=True)
    subtotal = sheet.cell(row=row, column=8, value="=" + "+".join(root_cells) if root_cells else 0)
    subtotal.font = Font(bold=True)
    subtotal.fill = _SUBTOTAL_FILL
    subtotal.number_format = _currency_format(currency)
    return row + 2, f"H{row}"


def _section_layout(section: Section, lines: Sequence[Line], index: TreeIndex) -> List[Tuple[Line, int, bool]]:
    """Depth-first rows for one section; lines reusing an earlier id are written as plain top-level rows."""
    detached = set(index.detached)
    layout: List[Tuple[Line, int, bool]] = []
    for position in index.top_level_positions():
        line = lines[position]
        if line.section_id != section.id:
            continue
        if position in detached:
            layout.append((line, 1, True))
            continue
        stack = [(line.id, 1)]
        while stack:
            line_id, depth = stack.pop()
            layout.append((index.by_id[line_id], depth, False))
            stack.extend((child, depth + 1) for child in reversed(index.children_of(line_id)))
    return layout


def _write_line(sheet: Worksheet, line: Line, depth: int, row: int, child_rows: List[int]) -> None:
    description = line.description if depth == 1 else f"{'   ' * (depth - 1)}↳ {line.description}"
    unit_cost: float | str = line.unit_cost
    if child_rows:
        unit_cost = "=" + "+".join(f"H{child_row}" for child_row in child_rows)

    values: Sequence[object] = (
        line.category,
        description,
        line.notes or "",
        line.quantity,
        line.unit,
        line.frequency,
        unit_cost,
        f"=D{row}*F{row}*G{row}",
    )
    for column, value in enumerate(values, start=1):
        sheet.cell(row=row, column=column, value=value)

    sheet.cell(row=row, column=7).number_format = AMOUNT_FORMAT
    total = sheet.cell(row=row, column=8)
    total.number_format = AMOUNT_FORMAT
    total.font = Font(bold=True)
    if depth > 1:
        sheet.cell(row=row, column=2).font = Font(italic=True, color="555555")


def _currency_format(currency: str) -> str:
    return f'"{currency}" {AMOUNT_FORMAT}'

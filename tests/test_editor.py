from itertools import count

import pytest

from budget_engine.editor import BudgetEditor
from budget_engine.errors import CycleError, LockedFieldError, StructureError
from budget_engine.models import CostRecord, ImportCandidate, Line, ProjectDocument, Section
from budget_engine.recalculation import recalculate
from budget_engine.settings import EngineSettings


def sequential_ids():
    counter = count(1)
    return lambda: f"id-{next(counter)}"


class StubCostLookup:
    def __init__(self, records):
        self.records = records
        self.queries: list[str] = []

    def search(self, text: str):
        self.queries.append(text)
        return [record for record in self.records if text.lower() in record.description.lower()]


def make_editor(**kwargs) -> BudgetEditor:
    document = ProjectDocument(
        sections=(Section(id="s1", name="Personal"), Section(id="s2", name="Viajes")),
        lines=(
            Line(id="L1", section_id="s1", frequency=12.0),
            Line(id="C1", section_id="s1", parent_id="L1", unit_cost=1000.0),
            Line(id="C2", section_id="s1", parent_id="L1", unit_cost=500.0),
        ),
    )
    return BudgetEditor(document, id_factory=sequential_ids(), **kwargs)


def test_editor_recalculates_on_load():
    editor = make_editor()

    assert editor.line("L1").total == pytest.approx(18000.0)
    assert editor.summary().grand_total == pytest.approx(18000.0)
    assert editor.is_unit_cost_locked("L1")
    assert not editor.is_unit_cost_locked("C1")


def test_numeric_edit_updates_ancestors_like_full_pass():
    editor = make_editor()

    editor.edit("C2", "unit_cost", "=250*2+100")

    assert editor.line("C2").unit_cost == pytest.approx(600.0)
    assert editor.line("L1").total == pytest.approx(19200.0)
    assert list(editor.lines) == recalculate(editor.lines)


def test_locked_edit_raises_and_leaves_state_alone():
    editor = make_editor()
    before = editor.lines

    with pytest.raises(LockedFieldError):
        editor.edit("L1", "unit_cost", 5)
    assert editor.lines == before


def test_add_line_sets_active_row_and_delete_clears_it():
    editor = make_editor()

    child = editor.add_line("s1", "C1")
    assert editor.active_row_id == child.id
    assert editor.line("C1").unit_cost == 0.0

    editor.delete("C1")
    assert editor.active_row_id is None
    assert editor.line(child.id) is None
    assert editor.line("L1").total == pytest.approx(6000.0)


def test_add_section_with_initial_line_and_remove_cascade():
    editor = make_editor()

    section = editor.add_section("Equipos")
    assert [item.name for item in editor.sections][-1] == "Equipos"
    assert any(line.section_id == section.id for line in editor.lines)

    editor.remove_section("s1")
    assert all(line.section_id != "s1" for line in editor.lines)
    assert editor.summary().grand_total == 0.0


def test_structural_errors_propagate():
    editor = make_editor()

    with pytest.raises(CycleError):
        editor.set_parent("L1", "C1")
    with pytest.raises(StructureError):
        editor.move_to_section("C1", "nowhere")
    with pytest.raises(StructureError):
        editor.set_section_cap("s1", "bogus")


def test_move_and_set_parent_recalculate():
    editor = make_editor()

    editor.move_to_section("C1", "s2")
    assert editor.line("L1").unit_cost == pytest.approx(500.0)

    editor.set_parent("C1", None)
    editor.set_parent("C2", None)
    # A former parent keeps its last derived unit cost as a plain leaf value.
    assert editor.line("L1").unit_cost == pytest.approx(500.0)
    assert editor.line("L1").total == pytest.approx(6000.0)


def test_duplicate_and_paste():
    editor = make_editor()

    clone_id = editor.duplicate("L1")
    assert editor.summary().grand_total == pytest.approx(36000.0)

    editor.paste("C1", "unit_cost", "1\n2")
    assert editor.line("C1").unit_cost == 1.0
    assert editor.line("C2").unit_cost == 2.0
    assert editor.line(clone_id).total == pytest.approx(18000.0)


def test_cost_lookup_suggestions_apply_to_active_row():
    lookup = StubCostLookup([CostRecord(description="Hotel Cusco", category="Viajes", unit="Noche", unit_cost=200.0)])
    editor = make_editor(cost_lookup=lookup)

    assert editor.suggest_costs("  ") == []
    suggestions = editor.suggest_costs(" hotel ")
    assert lookup.queries == ["hotel"]

    row = editor.add_line("s2")
    editor.apply_cost_record(suggestions[0])
    assert editor.line(row.id).unit_cost == 200.0
    assert editor.line(row.id).total == 200.0


def test_snapshots_are_capped_and_restorable():
    editor = make_editor(settings=EngineSettings(snapshot_limit=2))

    editor.take_snapshot()
    editor.edit("C1", "unit_cost", 0)
    editor.take_snapshot()
    editor.delete("L1")
    editor.take_snapshot()

    assert len(editor.snapshots) == 2
    editor.restore_snapshot(1)
    assert editor.line("L1").total == pytest.approx(6000.0)


def test_import_candidates_reports_added_count():
    editor = make_editor()

    added = editor.import_candidates(
        [ImportCandidate(description="Pasaje", category="Viajes", unit_cost=300.0), ImportCandidate(description="Taxi")]
    )

    assert added == 2
    assert [section.name for section in editor.sections] == ["Personal", "Viajes", "General"]
    assert editor.summary().for_section("s2").subtotal == pytest.approx(300.0)


def test_section_cap_and_toggle():
    editor = make_editor()

    editor.set_section_cap("s1", "fixed-amount", "15,000")
    editor.toggle_section("s1")
    editor.rename_section("s1", "Equipo")

    section = editor.sections[0]
    assert (section.name, section.collapsed, section.cap_value) == ("Equipo", True, 15000.0)
    assert editor.summary().for_section("s1").over_cap is True


def test_blank_editor_uses_configured_currency_and_unit():
    editor = BudgetEditor(settings=EngineSettings(default_currency="USD", default_unit="Mes"), id_factory=sequential_ids())

    section = editor.add_section()

    assert editor.meta.currency == "USD"
    assert section.name == "Nueva Sección"
    assert editor.line(editor.active_row_id).unit == "Mes"
    assert editor.update_meta(donor="BID").donor == "BID"


def test_visible_lines_follow_filter():
    editor = make_editor()
    editor.edit("C1", "description", "Consultor")

    assert [line.id for line in editor.visible_lines("consul")] == ["L1", "C1"]
    assert len(editor.visible_lines("")) == 3

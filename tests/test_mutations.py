from itertools import count

import pytest

from budget_engine.errors import CycleError, FieldNotEditableError, LockedFieldError, StructureError
from budget_engine.models import CostRecord, ImportCandidate, Line, Section
from budget_engine.mutations import (
    add_line,
    apply_cost_record,
    delete_line,
    duplicate_line,
    edit_field,
    import_candidates,
    move_to_section,
    paste_column,
    set_parent,
)
from budget_engine.recalculation import recalculate
from budget_engine.tree_index import build_tree_index


def sequential_ids(prefix: str = "new"):
    counter = count(1)
    return lambda: f"{prefix}-{next(counter)}"


def make_line(line_id: str, parent_id: str | None = None, section_id: str = "s1", **fields) -> Line:
    return Line(id=line_id, section_id=section_id, parent_id=parent_id, **fields)


def scenario_a() -> list[Line]:
    return [
        make_line("L1", frequency=12.0),
        make_line("C1", parent_id="L1", unit_cost=1000.0, description="Consultant"),
        make_line("C2", parent_id="L1", unit_cost=500.0, description="Assistant"),
    ]


def by_id(lines):
    return {line.id: line for line in lines}


def test_add_line_defaults_and_nesting_limit():
    lines = [make_line("a"), make_line("b", parent_id="a"), make_line("c", parent_id="b")]

    result, created = add_line(lines, "s1", "b", id_factory=sequential_ids())

    assert created.id == "new-1"
    assert (created.quantity, created.frequency, created.unit_cost, created.unit) == (1.0, 1.0, 0.0, "Unid")
    assert result[-1] == created
    with pytest.raises(StructureError):
        add_line(lines, "s1", "c")
    with pytest.raises(StructureError):
        add_line(lines, "s2", "a")
    with pytest.raises(StructureError):
        add_line(lines, "s1", "ghost")


def test_add_line_skips_taken_ids():
    ids = iter(["a", "a", "fresh"])

    _, created = add_line([make_line("a")], "s1", id_factory=lambda: next(ids))

    assert created.id == "fresh"


def test_edit_field_parses_numeric_text_and_keeps_previous_on_garbage():
    lines = [make_line("x", quantity=2.0)]

    assert edit_field(lines, "x", "quantity", "1.234,5")[0].quantity == pytest.approx(1234.5)
    assert edit_field(lines, "x", "quantity", "abc")[0].quantity == 2.0
    assert edit_field(lines, "x", "description", "Laptop")[0].description == "Laptop"
    assert edit_field(lines, "missing", "quantity", 5) == lines


def test_edit_field_rejects_locked_and_unknown_fields():
    with pytest.raises(LockedFieldError):
        edit_field(scenario_a(), "L1", "unit_cost", 10)
    with pytest.raises(FieldNotEditableError):
        edit_field(scenario_a(), "C1", "total", 10)


@pytest.mark.parametrize(
    ("value", "expected"),
    [("false", False), ("0", False), ("No", False), (0, False), ("true", True), ("sí", True), (1, True), (True, True)],
)
def test_edit_field_parses_flag_spellings(value, expected):
    lines = [make_line("a", selected=not expected)]

    assert edit_field(lines, "a", "selected", value)[0].selected is expected


def test_edit_field_ignores_unrecognized_flag_values():
    lines = [make_line("a", show_notes=True)]

    assert edit_field(lines, "a", "show_notes", "maybe")[0].show_notes is True
    assert edit_field(lines, "a", "show_notes", 7)[0].show_notes is True


def test_delete_cascades_and_leaves_no_dangling_children():
    lines = scenario_a() + [make_line("G1", parent_id="C1"), make_line("other")]

    result = delete_line(lines, "C1")

    assert len(result) == len(lines) - 2
    remaining = {line.id for line in result}
    assert all(line.parent_id is None or line.parent_id in remaining for line in result)


def test_delete_then_recalculate_updates_parent():
    result = by_id(recalculate(delete_line(scenario_a(), "C1")))

    assert result["L1"].unit_cost == pytest.approx(500.0)
    assert result["L1"].total == pytest.approx(6000.0)


def test_delete_clears_stale_parent_links_into_removed_subtree():
    lines = [make_line("p"), make_line("stray", parent_id="p", section_id="s2")]

    result = delete_line(lines, "p")

    assert result == [make_line("stray", section_id="s2")]


def test_duplicate_preserves_subtree_shape_with_fresh_ids():
    lines = scenario_a() + [make_line("G1", parent_id="C1", unit_cost=3.0), make_line("after")]

    result, clone_root = duplicate_line(lines, "L1", id_factory=sequential_ids("copy"))

    assert len(result) == len(lines) + 4
    assert clone_root == "copy-1"
    clones = result[4:8]
    assert [line.id for line in result[:4]] == ["L1", "C1", "C2", "G1"]
    assert result[-1].id == "after"
    original_ids = {line.id for line in lines}
    assert not original_ids & {clone.id for clone in clones}

    index = build_tree_index(result)
    assert index.children_of(clone_root) == tuple(clone.id for clone in clones if clone.parent_id == clone_root)
    clone_by_description = {clone.description: clone for clone in clones}
    consultant = clone_by_description["Consultant"]
    assert [index.by_id[child].unit_cost for child in index.children_of(consultant.id)] == [3.0]
    for original, clone in zip(lines[:4], clones):
        assert original.description == clone.description
        assert original.unit_cost == clone.unit_cost


def test_duplicate_unknown_line_is_noop():
    lines = scenario_a()

    assert duplicate_line(lines, "ghost") == (lines, None)


def test_move_to_section_carries_descendants():
    lines = scenario_a() + [make_line("G1", parent_id="C1")]

    result = by_id(move_to_section(lines, "C1", "s9"))

    assert result["C1"].section_id == "s9"
    assert result["C1"].parent_id is None
    assert result["G1"].section_id == "s9"
    assert result["G1"].parent_id == "C1"
    assert result["C2"].section_id == "s1"


def test_move_to_section_does_not_adopt_lines_already_in_target():
    lines = [
        make_line("p", unit_cost=10.0),
        make_line("stray", parent_id="p", section_id="s2", unit_cost=99.0),
    ]
    assert build_tree_index(lines).roots == ("p", "stray")

    result = recalculate(move_to_section(lines, "p", "s2"))
    index = build_tree_index(result)

    assert index.children_of("p") == ()
    assert index.roots == ("p", "stray")
    assert by_id(result)["p"].unit_cost == pytest.approx(10.0)
    assert by_id(result)["stray"].parent_id is None


def test_set_parent_rejects_cycles_and_excess_depth():
    lines = scenario_a() + [make_line("G1", parent_id="C1"), make_line("loose")]

    with pytest.raises(CycleError):
        set_parent(lines, "L1", "G1")
    with pytest.raises(CycleError):
        set_parent(lines, "L1", "L1")
    with pytest.raises(StructureError):
        set_parent(lines, "C2", "G1")
    with pytest.raises(StructureError):
        set_parent(lines + [make_line("elsewhere", section_id="s2")], "loose", "elsewhere")

    moved = by_id(set_parent(lines, "loose", "C2"))
    assert moved["loose"].parent_id == "C2"
    promoted = by_id(set_parent(lines, "G1", None))
    assert promoted["G1"].parent_id is None


def test_paste_column_fills_consecutive_rows():
    lines = [make_line(f"r{i}", unit_cost=1.0) for i in range(4)]
    text = "10\r\n\r\n1.234,5\tignored\nabc\n99\n77"

    result = paste_column(lines, "r1", "unit_cost", text)

    assert [line.unit_cost for line in result] == [1.0, 10.0, 1234.5, 1.0]


def test_paste_unit_cost_skips_parent_rows():
    result = by_id(paste_column(scenario_a(), "L1", "unit_cost", "5\n6\n7"))

    assert result["L1"].unit_cost == 0.0
    assert result["C1"].unit_cost == 6.0
    assert result["C2"].unit_cost == 7.0


def test_paste_text_field():
    result = paste_column(scenario_a(), "C1", "description", "Driver\nCook")

    assert [line.description for line in result] == ["", "Driver", "Cook"]


def test_apply_cost_record_copies_fields_and_respects_lock():
    record = CostRecord(description="Hotel night", category="Viajes", unit="Noche", unit_cost=180.0)

    leaf = by_id(apply_cost_record(scenario_a(), "C1", record))["C1"]
    parent = by_id(apply_cost_record(scenario_a(), "L1", record))["L1"]

    assert (leaf.description, leaf.category, leaf.unit, leaf.unit_cost) == ("Hotel night", "Viajes", "Noche", 180.0)
    assert parent.description == "Hotel night"
    assert parent.unit_cost == 0.0


def test_import_candidates_groups_by_category_with_defaults():
    sections = [Section(id="s1", name="Viajes")]
    candidates = [
        ImportCandidate(description="Pasaje Lima-Cusco", category="Viajes", unit_cost=450.0, quantity=2),
        ImportCandidate(description="Laptop", unit_cost=3200.0),
        ImportCandidate(description="Impresora", category="General", unit="Pieza"),
    ]

    new_sections, new_lines = import_candidates(sections, [], candidates, id_factory=sequential_ids("imp"))

    assert [section.name for section in new_sections] == ["Viajes", "General"]
    general_id = new_sections[1].id
    assert [line.section_id for line in new_lines] == ["s1", general_id, general_id]
    assert all(line.parent_id is None for line in new_lines)
    assert new_lines[0].quantity == 2.0
    assert new_lines[1].quantity == 1.0
    assert new_lines[1].unit == "Und"
    assert new_lines[1].category == "General"
    assert new_lines[2].unit == "Pieza"
    assert all(line.frequency == 1.0 for line in new_lines)
    assert len({line.id for line in new_lines} | {section.id for section in new_sections}) == 5

import pytest
from pydantic import ValidationError

from budget_engine.models import Line, ProjectDocument, ProjectMetadata, Section
from budget_engine.schemas import document_from_dict, document_to_dict


def test_document_from_dict_is_lenient_with_stored_values():
    document = document_from_dict(
        {
            "meta": {"donor": "BID", "duration": "18", "eurRate": None},
            "sections": [{"id": "s1", "name": "Personal", "capType": "fixed-amount", "capValue": "2.500,00"}],
            "lines": [
                {"id": "a", "sectionId": "s1", "parentId": "", "quantity": "abc", "unit_cost": -40, "showNotes": True},
            ],
        }
    )

    assert document.meta.duration == 18
    assert document.meta.eur_rate == 0.0
    assert document.sections[0].cap_value == pytest.approx(2500.0)
    line = document.lines[0]
    assert (line.parent_id, line.quantity, line.unit_cost, line.show_notes) == (None, 0.0, 0.0, True)


def test_document_to_dict_uses_persisted_camel_case_keys():
    document = ProjectDocument(
        meta=ProjectMetadata(donor="BID"),
        sections=(Section(id="s1", name="Personal"),),
        lines=(Line(id="a", section_id="s1"), Line(id="b", section_id="s1", parent_id="a", notes="ver anexo")),
    )

    payload = document_to_dict(document)

    assert payload["meta"]["usdRate"] == 3.75
    assert payload["sections"][0]["capType"] == "none"
    assert "parentId" not in payload["lines"][0]
    assert payload["lines"][1]["parentId"] == "a"
    assert payload["lines"][1]["notes"] == "ver anexo"
    assert document_from_dict(payload) == document


def test_unknown_cap_type_is_rejected():
    with pytest.raises(ValidationError):
        document_from_dict({"sections": [{"id": "s1", "name": "S", "capType": "monthly"}]})

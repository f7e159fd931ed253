from __future__ import annotations

from structure_table.model import FieldKey
from structure_table.projection import HeaderCell, column_statistics, project
from structure_table.rows import Row
from structure_table.structure.ordering import move
from structure_table.structure.visibility import set_all, toggle

NAME = FieldKey("companies", "company_name")
EMAIL = FieldKey("companies", "email")


def test_single_visible_leaf(scenario_structure) -> None:
    plan = project(scenario_structure)

    assert plan.keys == [NAME]
    assert plan.subsections == (HeaderCell("Basic", 1),)
    assert plan.sections == (HeaderCell("Company Info", 1),)


def test_hidden_subsection_drops_section_header(scenario_structure) -> None:
    hidden = toggle(scenario_structure, "subsection", "Company Info", "Basic")

    plan = project(hidden)

    assert plan.columns == ()
    assert plan.sections == ()
    assert plan.subsections == ()


def test_full_plan(structure) -> None:
    plan = project(structure)

    assert [(h.label, h.colspan) for h in plan.sections] == [("Company Info", 3), ("Directors", 2)]
    assert [(h.label, h.colspan) for h in plan.subsections] == [("Basic", 2), ("Contact", 1), ("People", 2)]
    assert [c.reference for c in plan.columns] == ["1.1.1", "1.1.2", "1.2.1", "2.1.1", "2.1.2"]
    assert [c.label for c in plan.columns] == ["Company Name", "Status", "Email", "Director", "Appointed"]
    rows = plan.header_rows()
    assert len(rows) == 3
    assert len(rows[2]) == 5


def test_colspans_sum_and_are_never_zero(structure) -> None:
    variants = [
        structure,
        toggle(structure, "subsection", "Company Info", "Contact"),
        toggle(structure, "field", "People", FieldKey("directors", "director_name")),
        toggle(toggle(structure, "field", "Contact", EMAIL), "section", None, "Directors"),
        set_all(structure, False),
    ]
    for s in variants:
        plan = project(s)
        assert all(h.colspan > 0 for h in plan.sections + plan.subsections)
        assert sum(h.colspan for h in plan.sections) == len(plan.columns)
        assert sum(h.colspan for h in plan.subsections) == len(plan.columns)


def test_projection_follows_order(structure) -> None:
    moved = move(structure, "section", None, "Directors", "up")
    plan = project(moved)
    assert [h.label for h in plan.sections] == ["Directors", "Company Info"]
    assert plan.columns[0].reference == "1.1.1"
    assert plan.columns[0].key == FieldKey("directors", "director_name")


def test_references_skip_hidden_siblings(structure) -> None:
    plan = project(toggle(structure, "subsection", "Company Info", "Basic"))
    assert [(str(c.key), c.reference) for c in plan.columns[:1]] == [("companies.email", "1.1.1")]


def test_column_statistics(scenario_structure) -> None:
    plan = project(scenario_structure)
    rows = [
        Row(entity_id=1, values={NAME: "Acme"}),
        Row(entity_id=2, values={NAME: ""}),
        Row(entity_id=3, values={NAME: None}),
    ]

    stats = column_statistics(plan, rows)

    assert stats[NAME].to_dict() == {"total": 3, "completed": 1, "pending": 2}


def test_plan_to_dict(scenario_structure) -> None:
    assert project(scenario_structure).to_dict() == {
        "sections": [{"section": "Company Info", "colspan": 1}],
        "subsections": [{"subsection": "Basic", "colspan": 1}],
        "columns": [{"field": "companies.company_name", "label": "Company Name", "reference": "1.1.1"}],
    }

from __future__ import annotations

import json
from pathlib import Path

import pandas as pd

from structure_table.export import rows_to_frame, write_export
from structure_table.model import Field, FieldKey, Section, Structure, StructureDocument, Subsection
from structure_table.projection import project
from structure_table.rows import Row, assemble, fetch_records


def _table(structure, memory_backend):
    records = fetch_records(memory_backend, structure.document.tables)
    rows = assemble(memory_backend.fetch("companies"), records, structure)
    return project(structure), rows


def test_rows_to_frame_has_three_header_levels(structure, memory_backend) -> None:
    plan, rows = _table(structure, memory_backend)

    df = rows_to_frame(plan, rows)

    assert df.columns.nlevels == 3
    assert df.columns[0] == ("Company Info", "Basic", "Company Name")
    assert list(df.index) == [1, 2, 3]
    assert df.loc[1, ("Company Info", "Basic", "Status")] == "active"


def test_formatted_values_and_completion(structure, memory_backend) -> None:
    plan, rows = _table(structure, memory_backend)

    df = rows_to_frame(plan, rows, formatted=True, completion=True)

    assert df.loc[2, ("Company Info", "Basic", "Status")] == "Dormant"
    assert df.loc[2, ("Company Info", "Contact", "Email")] == ""
    assert df.loc[1, ("", "", "Completion %")] == 100


def test_empty_plan(scenario_structure) -> None:
    plan = project(scenario_structure)
    df = rows_to_frame(plan, [])
    assert len(df) == 0


def test_write_csv_and_json(tmp_path: Path, structure, memory_backend) -> None:
    plan, rows = _table(structure, memory_backend)

    write_export(plan, rows, tmp_path / "out.csv")
    write_export(plan, rows, tmp_path / "out.json", completion=True)

    csv = pd.read_csv(tmp_path / "out.csv", header=[0, 1, 2], index_col=0)
    assert len(csv) == 3
    records = json.loads((tmp_path / "out.json").read_text(encoding="utf-8"))
    assert records[0]["entity_id"] == 1
    assert records[0][str(FieldKey("companies", "company_name"))] == "Acme Trading LLC"
    assert records[0]["Completion %"] == 100


def test_shared_labels_keep_separate_columns(tmp_path: Path) -> None:
    company = Field(name="name", table="companies", display="Name", order=1)
    director = Field(name="name", table="directors", display="Name", order=2)
    basic = Subsection(name="Basic", order=1, tables=("companies", "directors"), fields=(company, director))
    doc = StructureDocument(sections=(Section(name="S", order=1, subsections=(basic,)),))
    plan = project(Structure(id=9, main_tab="company", sub_tab="Names", document=doc))
    rows = [Row(entity_id=1, values={company.key: "Acme", director.key: "Sara"}, fields=(company, director))]

    df = rows_to_frame(plan, rows)

    assert list(df.columns) == [("S", "Basic", "Name"), ("S", "Basic", "Name")]
    assert df.iloc[0].tolist() == ["Acme", "Sara"]

    write_export(plan, rows, tmp_path / "names.json")
    (record,) = json.loads((tmp_path / "names.json").read_text(encoding="utf-8"))
    assert record == {"entity_id": 1, "companies.name": "Acme", "directors.name": "Sara"}

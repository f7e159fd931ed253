from __future__ import annotations

import json

import pytest

from structure_table.errors import StructureConfigError, ValidationError
from structure_table.model import (
    FieldKey,
    document_from_dict,
    structure_from_dict,
    structure_to_dict,
)
from structure_table.structure.ordering import renumber


def test_wire_round_trip_is_exact(raw_rows) -> None:
    for raw in raw_rows:
        assert structure_to_dict(structure_from_dict(raw)) == raw


def test_unknown_keys_survive_round_trip(raw_rows) -> None:
    raw = raw_rows[0]
    raw["owner"] = "ops"
    raw["structure"]["verification"] = {"field_verified": False}
    raw["structure"]["sections"][0]["subsections"][0]["fields"][0]["hint"] = "legal name"
    raw["structure"]["sections"][0]["icon"] = "building"

    out = structure_to_dict(structure_from_dict(raw))

    assert out == raw


BARE = {
    "id": 7,
    "main_tab": "company",
    "Tabs": "Bare",
    "structure": {
        "sections": [
            {
                "name": "Only",
                "subsections": [
                    {"name": "Sub", "tables": ["companies"], "fields": [{"name": "email", "table": "companies"}]}
                ],
            }
        ]
    },
}


def test_sparse_document_round_trip_adds_nothing() -> None:
    raw = json.loads(json.dumps(BARE))
    s = structure_from_dict(raw)

    assert s.document.order.tab == 1
    assert s.document.sections[0].subsections[0].fields[0].display == "email"
    assert structure_to_dict(s) == BARE


def test_sparse_document_writes_changed_values() -> None:
    out = structure_to_dict(renumber(structure_from_dict(BARE)))

    doc = out["structure"]
    assert doc["order"] == {"sections": {"Only": 1}}
    assert "visibility" not in doc
    section = doc["sections"][0]
    assert section["order"] == 1
    assert "visible" not in section
    assert section["subsections"][0]["fields"] == [{"name": "email", "table": "companies", "order": 1}]


def test_tab_order_zero_is_kept(raw_rows) -> None:
    raw = raw_rows[0]
    raw["structure"]["order"]["tab"] = 0

    s = structure_from_dict(raw)

    assert s.document.order.tab == 0
    assert structure_to_dict(s) == raw


def test_non_integer_order_is_rejected(raw_rows) -> None:
    raw = raw_rows[0]
    raw["structure"]["order"]["tab"] = "first"
    with pytest.raises(StructureConfigError, match="structure.order.tab"):
        structure_from_dict(raw)


def test_structure_column_may_hold_json_text(raw_rows) -> None:
    raw = raw_rows[1]
    raw["structure"] = json.dumps(raw["structure"])

    s = structure_from_dict(raw)

    assert s.sub_tab == "Compliance"
    assert s.document.sections[0].name == "Licences"


def test_field_key_parse_splits_on_first_dot() -> None:
    assert FieldKey.parse("companies.company_name") == FieldKey("companies", "company_name")
    assert FieldKey.parse("legacy.address.line1") == FieldKey("legacy", "address.line1")
    assert str(FieldKey("companies", "email")) == "companies.email"


@pytest.mark.parametrize("text", ["companies", ".email", "companies."])
def test_field_key_parse_rejects_malformed(text: str) -> None:
    with pytest.raises(ValidationError):
        FieldKey.parse(text)


def test_field_keys_with_dots_do_not_collide() -> None:
    a = FieldKey("a.b", "c")
    b = FieldKey("a", "b.c")
    assert str(a) == str(b)
    assert a != b
    assert len({a: 1, b: 2}) == 2


def test_field_without_table_is_rejected() -> None:
    raw = {"sections": [{"name": "S", "subsections": [{"name": "Sub", "fields": [{"name": "x"}]}]}]}
    with pytest.raises(StructureConfigError, match="table"):
        document_from_dict(raw)


def test_row_requires_tabs(raw_rows) -> None:
    raw = raw_rows[0]
    del raw["Tabs"]
    with pytest.raises(StructureConfigError, match="Tabs"):
        structure_from_dict(raw)


def test_document_helpers(structure) -> None:
    doc = structure.document
    assert [f.name for _, _, f in doc.iter_fields()] == [
        "company_name",
        "status",
        "email",
        "director_name",
        "appointed_on",
    ]
    assert doc.find_field(FieldKey("directors", "appointed_on")).type == "date"
    assert doc.find_field(FieldKey("companies", "missing")) is None
    assert doc.tables == ["companies", "directors"]
    assert structure.key == ("company", "Profile")


def test_field_config_flags(structure) -> None:
    name = structure.document.find_field(FieldKey("companies", "company_name"))
    status = structure.document.find_field(FieldKey("companies", "status"))
    email = structure.document.find_field(FieldKey("companies", "email"))
    assert name.editable and not name.update_on_change
    assert status.editable and status.update_on_change
    assert not email.editable

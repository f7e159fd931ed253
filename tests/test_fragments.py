from __future__ import annotations

import json
from pathlib import Path

import pytest

from structure_table.errors import ValidationError
from structure_table.model import FieldKey
from structure_table.structure.fragments import (
    build_fragment,
    default_label,
    fragment_from_dict,
    merge_fragment,
)

FIXTURES = Path(__file__).parent / "fixtures"


def test_default_label() -> None:
    assert default_label("company_name") == "Company Name"
    assert default_label("trade-licence_no") == "Trade Licence No"


def test_build_fragment_wire_shape() -> None:
    fragment = build_fragment(
        [("companies", "licence_no"), ("directors", "director_name"), ("companies", "licence_no")],
        labels={FieldKey("directors", "director_name"): "Director"},
    )
    assert fragment.to_dict() == {
        "table_names": ["companies", "directors"],
        "column_mappings": {
            "companies.licence_no": "Licence No",
            "directors.director_name": "Director",
        },
    }


@pytest.mark.parametrize(
    "pairs,message",
    [
        ([("", "x")], "table"),
        ([("companies", "")], "name"),
        ([], "empty"),
    ],
)
def test_build_fragment_rejects_bad_selection(pairs, message) -> None:
    with pytest.raises(ValidationError, match=message):
        build_fragment(pairs)


def test_fragment_from_dict() -> None:
    raw = json.loads((FIXTURES / "fragment.json").read_text(encoding="utf-8"))
    fragment = fragment_from_dict(raw)
    assert fragment.table_names == ("companies",)
    assert fragment.column_mappings == {
        FieldKey("companies", "licence_no"): "Licence Number",
        FieldKey("companies", "email"): "Email",
    }


def test_fragment_from_dict_rejects_missing_table() -> None:
    with pytest.raises(ValidationError):
        fragment_from_dict({"column_mappings": {"licence_no": "Licence"}})


def test_merge_into_new_section_and_subsection(structure) -> None:
    fragment = build_fragment([("licences", "licence_no"), ("licences", "expiry")])

    out = merge_fragment(structure, fragment, section="Compliance", subsection="Licensing")

    section = out.document.get_section("Compliance")
    assert section.order == 3
    sub = section.get_subsection("Licensing")
    assert sub.order == 1
    assert [(f.name, f.order, f.display) for f in sub.fields] == [
        ("licence_no", 1, "Licence No"),
        ("expiry", 2, "Expiry"),
    ]
    assert sub.tables == ("licences",)
    assert out.document.order.sections["Compliance"] == 3
    assert out.document.visibility.sections["Compliance"] is True


def test_merge_into_existing_subsection_skips_present_fields(structure) -> None:
    fragment = build_fragment([("companies", "email"), ("companies", "phone"), ("registry", "reg_no")])

    out = merge_fragment(structure, fragment, section="Company Info", subsection="Contact")

    sub = out.document.get_section("Company Info").get_subsection("Contact")
    assert [(str(f.key), f.order) for f in sub.fields] == [
        ("companies.email", 1),
        ("companies.phone", 2),
        ("registry.reg_no", 3),
    ]
    assert set(sub.tables) >= {f.table for f in sub.fields}
    assert len(out.document.sections) == len(structure.document.sections)


def test_merge_requires_names(structure) -> None:
    fragment = build_fragment([("companies", "phone")])
    with pytest.raises(ValidationError):
        merge_fragment(structure, fragment, section="", subsection="X")

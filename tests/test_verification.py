from __future__ import annotations

import pytest

from structure_table.errors import NotFoundError
from structure_table.model import FieldKey
from structure_table.structure.verification import (
    all_fields_verified,
    set_verification,
    toggle_verification,
)

EMAIL = FieldKey("companies", "email")
NOW = "2024-06-01T12:00:00+00:00"


def test_verify_stamps_field_and_document(structure) -> None:
    out = set_verification(structure, EMAIL, True, verified_by="auditor", now=NOW)

    ver = out.document.find_field(EMAIL).verification
    assert (ver.is_verified, ver.verified_at, ver.verified_by) == (True, NOW, "auditor")
    summary = out.document.extra["verification"]
    assert summary["field_verified"] is False
    assert summary["verified_by"] == "auditor"
    # other fields untouched
    assert not out.document.find_field(FieldKey("companies", "company_name")).verification.is_verified


def test_unverify_clears_stamp(structure) -> None:
    verified = set_verification(structure, "companies.email", True, verified_by="auditor", now=NOW)
    cleared = set_verification(verified, EMAIL, False, verified_by="auditor", now=NOW)

    ver = cleared.document.find_field(EMAIL).verification
    assert (ver.is_verified, ver.verified_at, ver.verified_by) == (False, None, None)


def test_toggle_verification_flips(structure) -> None:
    once = toggle_verification(structure, EMAIL, verified_by="a", now=NOW)
    twice = toggle_verification(once, EMAIL, verified_by="a", now=NOW)
    assert once.document.find_field(EMAIL).verification.is_verified is True
    assert twice.document.find_field(EMAIL).verification.is_verified is False


def test_all_fields_verified(structure) -> None:
    out = structure
    for _, _, f in structure.document.iter_fields():
        out = set_verification(out, f.key, True, verified_by="a", now=NOW)
    assert all_fields_verified(out)
    assert out.document.extra["verification"]["field_verified"] is True
    assert not all_fields_verified(structure)


def test_unknown_field(structure) -> None:
    missing = FieldKey("companies", "nope")
    assert set_verification(structure, missing, True, verified_by="a") is structure
    with pytest.raises(NotFoundError):
        toggle_verification(structure, missing, verified_by="a", strict=True)

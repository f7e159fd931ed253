from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

import pandas as pd
import pytest

from structure_table import cli
from structure_table.backend import FileBackend
from structure_table.cli import main
from structure_table.model import FieldKey, structure_to_dict
from structure_table.store import StructureStore

ROOT = Path(__file__).resolve().parents[1]
FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    for name in ("STRUCTURE_TABLE_CONFIG", "STRUCTURE_TABLE_DATA_DIR", "STRUCTURE_TABLE_VERIFIED_BY"):
        monkeypatch.delenv(name, raising=False)


def _run(data_dir: Path, *args: str) -> int:
    return main(["--data-dir", str(data_dir), *args])


def _stored(data_dir: Path, sub_tab: str = "Profile"):
    return StructureStore(FileBackend(data_dir)).get("company", sub_tab)


def test_no_command_prints_help(capsys) -> None:
    assert main([]) == 0
    assert "usage: structure-table" in capsys.readouterr().out


def test_show_text(data_dir: Path, capsys) -> None:
    assert _run(data_dir, "show", "company", "Profile") == 0
    out = capsys.readouterr().out
    assert out.startswith("company / Profile (tab order 1)")
    assert "[x] 1. Company Info" in out
    assert "companies.company_name  'Company Name'" in out


def test_show_json_and_plan(data_dir: Path, capsys) -> None:
    assert _run(data_dir, "show", "company", "Profile", "--format", "json") == 0
    doc = json.loads(capsys.readouterr().out)
    assert doc["Tabs"] == "Profile"

    assert _run(data_dir, "show", "company", "Profile", "--format", "plan") == 0
    plan = json.loads(capsys.readouterr().out)
    assert plan["sections"] == [
        {"section": "Company Info", "colspan": 3},
        {"section": "Directors", "colspan": 2},
    ]
    assert plan["columns"][0]["reference"] == "1.1.1"


def test_missing_structure_returns_1(data_dir: Path) -> None:
    assert _run(data_dir, "show", "company", "Nope") == 1


def test_missing_data_dir_returns_1() -> None:
    assert main(["show", "company", "Profile"]) == 1


def test_toggle_field_persists(data_dir: Path) -> None:
    code = _run(
        data_dir,
        "toggle", "company", "Profile",
        "--level", "field", "--parent", "Company Info/Contact", "--item", "companies.email",
    )
    assert code == 0
    email = _stored(data_dir).document.find_field(FieldKey("companies", "email"))
    assert email.visible is False


def test_toggle_unknown_item(data_dir: Path) -> None:
    before = (data_dir / "structure_mapping.json").read_text(encoding="utf-8")
    args = ["toggle", "company", "Profile", "--level", "section", "--item", "Ghost"]

    assert _run(data_dir, *args) == 0
    assert (data_dir / "structure_mapping.json").read_text(encoding="utf-8") == before
    assert _run(data_dir, *args, "--strict") == 1


def test_hide_all_then_show_all(data_dir: Path) -> None:
    assert _run(data_dir, "hide-all", "company", "Profile") == 0
    assert not any(s.visible for s in _stored(data_dir).document.sections)

    assert _run(data_dir, "show-all", "company", "Profile") == 0
    doc = _stored(data_dir).document
    assert all(f.visible for _, _, f in doc.iter_fields())


def test_move_section(data_dir: Path) -> None:
    args = ["move", "company", "Profile", "--level", "section", "--item", "Directors", "--direction", "up"]
    assert _run(data_dir, *args) == 0
    sections = _stored(data_dir).document.sections
    assert {s.name: s.order for s in sections} == {"Directors": 1, "Company Info": 2}


def test_move_field_to_position(data_dir: Path) -> None:
    args = [
        "move", "company", "Profile", "--level", "field",
        "--parent", "Company Info/Basic", "--item", "companies.status", "--position", "1",
    ]
    assert _run(data_dir, *args) == 0
    basic = _stored(data_dir).document.get_section("Company Info").get_subsection("Basic")
    assert [(f.name, f.order) for f in sorted(basic.fields, key=lambda f: f.order)] == [
        ("status", 1),
        ("company_name", 2),
    ]


def test_move_needs_direction_or_position(data_dir: Path) -> None:
    with pytest.raises(SystemExit):
        _run(data_dir, "move", "company", "Profile", "--level", "section", "--item", "Directors")


def test_rename_section_and_tab(data_dir: Path) -> None:
    args = ["rename", "company", "Profile", "--level", "section", "--item", "Directors", "--to", "Officers"]
    assert _run(data_dir, *args) == 0
    doc = _stored(data_dir).document
    assert [s.name for s in doc.sections] == ["Company Info", "Officers"]
    assert doc.order.sections == {"Company Info": 1, "Officers": 2}

    assert _run(data_dir, "rename", "company", "Profile", "--level", "tab", "--to", "Overview") == 0
    assert _stored(data_dir, "Overview").id == 1
    assert _run(data_dir, "show", "company", "Profile") == 1


def test_rename_rejects_taken_names(data_dir: Path) -> None:
    assert _run(data_dir, "rename", "company", "Profile", "--level", "tab", "--to", "Compliance") == 1
    args = ["rename", "company", "Profile", "--level", "subsection", "--parent", "Company Info",
            "--item", "Basic", "--to", "Contact"]
    assert _run(data_dir, *args) == 1
    assert _run(data_dir, "rename", "company", "Profile", "--level", "section", "--to", "X") == 1


def test_remove_field(data_dir: Path) -> None:
    args = ["remove-field", "company", "Profile", "companies.company_name", "--parent", "Basic"]
    assert _run(data_dir, *args) == 0
    basic = _stored(data_dir).document.get_section("Company Info").get_subsection("Basic")
    assert [(f.name, f.order) for f in basic.fields] == [("status", 1)]

    assert _run(data_dir, *args) == 1


def test_edit_field_label_and_options(data_dir: Path) -> None:
    args = [
        "edit-field", "company", "Profile", "companies.email", "--parent", "Company Info/Contact",
        "--label", "E-mail", "--options", "info@, sales@,",
    ]
    assert _run(data_dir, *args) == 0
    email = _stored(data_dir).document.find_field(FieldKey("companies", "email"))
    assert email.display == "E-mail"
    assert list(email.dropdown_options) == ["info@", "sales@"]

    assert _run(data_dir, "edit-field", "company", "Profile", "companies.email", "--parent", "Contact") == 1
    blank = ["edit-field", "company", "Profile", "companies.email", "--parent", "Contact", "--label", " "]
    assert _run(data_dir, *blank) == 1


def test_rows_print_and_export(data_dir: Path, tmp_path: Path, capsys) -> None:
    assert _run(data_dir, "rows", "company", "Profile", "--entity-table", "companies") == 0
    out = capsys.readouterr().out
    assert "Acme Trading LLC" in out
    assert "Dormant" in out

    target = tmp_path / "exports" / "profile.csv"
    args = ["rows", "company", "Profile", "--entity-table", "companies", "--output", str(target), "--raw"]
    assert _run(data_dir, *args) == 0
    df = pd.read_csv(target, header=[0, 1, 2], index_col=0)
    assert len(df) == 3
    assert df[("Company Info", "Basic", "Status")].tolist() == ["active", "dormant", "active"]


def test_add_fields_from_fragment(data_dir: Path) -> None:
    code = _run(data_dir, "add-fields", "company", "Profile", "--fragment", str(FIXTURES / "fragment.json"))
    assert code == 0
    section = _stored(data_dir).document.get_section("Compliance")
    licensing = section.get_subsection("Licensing")
    assert [f.display for f in licensing.fields] == ["Licence Number", "Email"]
    assert section.order == 3


def test_add_fields_fragment_needs_target(data_dir: Path, tmp_path: Path) -> None:
    fragment = tmp_path / "fragment.yaml"
    fragment.write_text("column_mappings:\n  companies.licence_no: Licence\n", encoding="utf-8")
    assert _run(data_dir, "add-fields", "company", "Profile", "--fragment", str(fragment)) == 1


def test_add_fields_interactive(data_dir: Path, monkeypatch) -> None:
    # companies; its only unbound columns are id and licence_no; no custom labels
    answers = iter(["1", "2", "n"])
    monkeypatch.setattr(cli, "_prompt", lambda text: next(answers))

    code = _run(
        data_dir,
        "add-fields", "company", "Profile", "--section", "Company Info", "--subsection", "Contact",
    )

    assert code == 0
    contact = _stored(data_dir).document.get_section("Company Info").get_subsection("Contact")
    assert [str(f.key) for f in contact.fields] == ["companies.email", "companies.licence_no"]


def test_verify_and_unverify(data_dir: Path, monkeypatch) -> None:
    assert _run(data_dir, "verify", "company", "Profile", "companies.email") == 1

    monkeypatch.setenv("STRUCTURE_TABLE_VERIFIED_BY", "compliance-team")
    assert _run(data_dir, "verify", "company", "Profile", "companies.email") == 0
    email = _stored(data_dir).document.find_field(FieldKey("companies", "email"))
    assert email.verification.is_verified
    assert email.verification.verified_by == "compliance-team"

    assert _run(data_dir, "verify", "company", "Profile", "companies.email", "--unverify") == 0
    email = _stored(data_dir).document.find_field(FieldKey("companies", "email"))
    assert not email.verification.is_verified
    assert email.verification.verified_by is None

    assert _run(data_dir, "verify", "company", "Profile", "companies.fax", "--by", "x") == 1


def test_validate_main_tab(data_dir: Path, capsys) -> None:
    assert _run(data_dir, "validate", "company") == 0
    report = json.loads(capsys.readouterr().out)
    assert report["structures"] == ["company/Profile", "company/Compliance"]


def test_validate_file_with_errors(tmp_path: Path, structure) -> None:
    row = structure_to_dict(structure)
    row["structure"]["sections"][0]["subsections"][0]["tables"] = []
    bad = tmp_path / "structures.json"
    bad.write_text(json.dumps([row]), encoding="utf-8")
    out = tmp_path / "report.json"

    assert main(["validate", "--file", str(bad), "--out", str(out)]) == 2
    report = json.loads(out.read_text(encoding="utf-8"))
    assert report["summary"]["errors"] == 2


def test_validate_needs_target() -> None:
    assert main(["validate"]) == 1


def test_cli_module_subprocess(data_dir: Path) -> None:
    env = os.environ.copy()
    env["PYTHONPATH"] = str(ROOT / "src") + (
        os.pathsep + env["PYTHONPATH"] if env.get("PYTHONPATH") else ""
    )
    cmd = [
        sys.executable, "-m", "structure_table",
        "--data-dir", str(data_dir),
        "show", "company", "Compliance", "--format", "plan",
    ]
    p = subprocess.run(cmd, check=False, capture_output=True, text=True, env=env)
    assert p.returncode == 0, p.stderr
    assert json.loads(p.stdout)["columns"][0]["field"] == "companies.licence_no"

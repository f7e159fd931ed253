from __future__ import annotations

import json
import shutil
from pathlib import Path

import pytest

from structure_table.backend import MemoryBackend
from structure_table.model import (
    Field,
    Section,
    Structure,
    StructureDocument,
    Subsection,
    structure_from_dict,
)

FIXTURES = Path(__file__).parent / "fixtures"
DATA = FIXTURES / "data"


def load_rows() -> list[dict]:
    return json.loads((DATA / "structure_mapping.json").read_text(encoding="utf-8"))


@pytest.fixture
def raw_rows() -> list[dict]:
    return load_rows()


@pytest.fixture
def structure() -> Structure:
    """company/Profile: Company Info (Basic, Contact) and Directors (People)."""
    return structure_from_dict(load_rows()[0])


@pytest.fixture
def scenario_structure() -> Structure:
    """One section "Company Info" > "Basic" with company_name shown and email hidden."""
    basic = Subsection(
        name="Basic",
        order=1,
        tables=("companies",),
        fields=(
            Field(name="company_name", table="companies", display="Company Name", order=1),
            Field(name="email", table="companies", display="Email", order=2, visible=False),
        ),
    )
    doc = StructureDocument(sections=(Section(name="Company Info", order=1, subsections=(basic,)),))
    return Structure(id=7, main_tab="company", sub_tab="Basic", document=doc)


@pytest.fixture
def memory_backend() -> MemoryBackend:
    directors = [
        {"id": 10, "company_id": 1, "director_name": "Sara Haddad", "appointed_on": "2021-03-15"},
        {"id": 11, "company_id": 1, "director_name": "Omar Nasser", "appointed_on": "2022-07-01"},
        {"id": 12, "company_id": 2, "director_name": "Lina Farouk", "appointed_on": None},
    ]
    return MemoryBackend(
        {
            "structure_mapping": load_rows(),
            "companies": json.loads((DATA / "companies.json").read_text(encoding="utf-8")),
            "directors": directors,
        }
    )


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """A writable copy of the fixture data directory."""
    target = tmp_path / "data"
    shutil.copytree(DATA, target)
    return target

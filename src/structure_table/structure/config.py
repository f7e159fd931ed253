from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from ..errors import StructureConfigError
from ..model import Structure, structure_from_dict, structure_to_dict


def _read_raw(path: Path) -> Any:
    suffix = path.suffix.lower()
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise StructureConfigError(f"Failed to read structure file: {path}") from e

    try:
        if suffix == ".json":
            return json.loads(text)
        if suffix in {".yaml", ".yml"}:
            return yaml.safe_load(text)
    except (ValueError, yaml.YAMLError) as e:
        raise StructureConfigError(f"Failed to parse structure file: {path}") from e
    raise StructureConfigError(f"Unsupported structure file format: {path}")


def load_structure_file(path: Path) -> list[Structure]:
    """
    Loads structure mapping rows from a JSON or YAML file.

    The file may hold a single row mapping or a list of rows; each row has the
    shape ``{id, main_tab, Tabs, structure, updated_at}``.
    """
    raw = _read_raw(path)
    if isinstance(raw, dict):
        raw = [raw]
    if not isinstance(raw, list) or not raw:
        raise StructureConfigError(
            "Structure file must contain a mapping or a non-empty list of mappings"
        )
    out: list[Structure] = []
    for i, item in enumerate(raw):
        try:
            out.append(structure_from_dict(item))
        except StructureConfigError as e:
            raise StructureConfigError(f"{path} [{i}]: {e}") from e
    return out


def write_structure_file(structures: list[Structure], path: Path) -> None:
    """Writes structures as JSON (``.json``) or YAML (``.yaml``/``.yml``)."""
    rows = [structure_to_dict(s) for s in structures]
    suffix = path.suffix.lower()
    if suffix == ".json":
        path.write_text(json.dumps(rows, indent=2, ensure_ascii=False), encoding="utf-8")
        return
    if suffix in {".yaml", ".yml"}:
        path.write_text(
            yaml.safe_dump(rows, sort_keys=False, allow_unicode=True), encoding="utf-8"
        )
        return
    raise StructureConfigError(f"Unsupported structure file format: {path}")

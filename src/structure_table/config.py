from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import yaml

from .errors import StructureConfigError

CONFIG_ENV = "STRUCTURE_TABLE_CONFIG"
DATA_DIR_ENV = "STRUCTURE_TABLE_DATA_DIR"
VERIFIED_BY_ENV = "STRUCTURE_TABLE_VERIFIED_BY"

_KNOWN_KEYS = {
    "data_dir",
    "structure_table",
    "entity_table",
    "entity_key",
    "max_workers",
    "verified_by",
}


@dataclass(frozen=True)
class EngineSettings:
    data_dir: Path | None = None
    structure_table: str = "structure_mapping"
    entity_table: str | None = None  # table whose records are the entity rows
    entity_key: str = "id"
    max_workers: int = 4
    verified_by: str | None = None


def _resolve_config_path(path: str | Path | None) -> Path | None:
    """
    Settings file in priority order:
    1. Explicit path argument
    2. STRUCTURE_TABLE_CONFIG environment variable
    """
    if path is not None:
        return Path(path)
    env_path = os.environ.get(CONFIG_ENV)
    if env_path:
        return Path(env_path)
    return None


def _require_str(raw: dict[str, Any], key: str) -> str | None:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or not value:
        raise StructureConfigError(f"settings.{key} must be a non-empty string if provided")
    return value


def settings_from_dict(raw: Any, *, base_dir: Path | None = None) -> EngineSettings:
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise StructureConfigError("Settings YAML must be a mapping at top level")
    unknown = sorted(set(raw) - _KNOWN_KEYS)
    if unknown:
        raise StructureConfigError(f"Unknown settings key(s): {', '.join(unknown)}")

    max_workers = raw.get("max_workers", 4)
    if not isinstance(max_workers, int) or isinstance(max_workers, bool) or max_workers < 1:
        raise StructureConfigError("settings.max_workers must be a positive integer")

    data_dir = _require_str(raw, "data_dir")
    data_path = None
    if data_dir is not None:
        data_path = Path(data_dir)
        # relative data dirs are relative to the settings file
        if base_dir is not None and not data_path.is_absolute():
            data_path = base_dir / data_path

    return EngineSettings(
        data_dir=data_path,
        structure_table=_require_str(raw, "structure_table") or "structure_mapping",
        entity_table=_require_str(raw, "entity_table"),
        entity_key=_require_str(raw, "entity_key") or "id",
        max_workers=max_workers,
        verified_by=_require_str(raw, "verified_by"),
    )


def load_settings(path: str | Path | None = None) -> EngineSettings:
    """
    Loads engine settings from YAML, then applies environment overrides
    (STRUCTURE_TABLE_DATA_DIR, STRUCTURE_TABLE_VERIFIED_BY). With no file the
    defaults are used.
    """
    config_path = _resolve_config_path(path)
    settings = EngineSettings()
    if config_path is not None:
        try:
            raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
        except Exception as e:
            raise StructureConfigError(f"Failed to read settings YAML: {config_path}") from e
        settings = settings_from_dict(raw, base_dir=config_path.parent)

    env_data_dir = os.environ.get(DATA_DIR_ENV)
    if env_data_dir:
        settings = replace(settings, data_dir=Path(env_data_dir))
    env_verified_by = os.environ.get(VERIFIED_BY_ENV)
    if env_verified_by:
        settings = replace(settings, verified_by=env_verified_by)
    return settings

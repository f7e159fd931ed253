"""
Library API entrypoints for structure-table.

These functions wire the store, row assembler and projector together for the
common read and edit paths so callers do not have to.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .backend import Backend, FileBackend, Record
from .config import EngineSettings
from .errors import StructureConfigError
from .model import Structure
from .projection import ColumnStats, RenderPlan, column_statistics, project, visible_fields
from .rows import Row, assemble, fetch_records
from .store import StructureStore, filter_by_active_tab
from .structure.fragments import StructureFragment, merge_fragment
from .structure.ordering import renumber
from .validate import ValidationReport, validate_structures

logger = logging.getLogger(__name__)


@dataclass
class TableResult:
    """Everything needed to render one sub-tab."""

    structure: Structure
    """The structure the table was built from (after the active-tab filter)."""

    plan: RenderPlan
    """Header rows and leaf columns."""

    rows: list[Row]
    """One assembled row per entity."""

    stats: dict
    """Per-column ``ColumnStats`` keyed by ``FieldKey``."""


def open_backend(settings: EngineSettings) -> FileBackend:
    if settings.data_dir is None:
        raise StructureConfigError(
            "No data directory configured (use --data-dir, settings.data_dir or STRUCTURE_TABLE_DATA_DIR)"
        )
    return FileBackend(settings.data_dir)


def open_store(backend: Backend, settings: EngineSettings | None = None) -> StructureStore:
    settings = settings or EngineSettings()
    return StructureStore(backend, table=settings.structure_table)


def _entities(
    backend: Backend,
    structure: Structure,
    settings: EngineSettings,
    per_table: dict[str, list[Record]],
) -> list[Record]:
    if settings.entity_table:
        return backend.fetch(settings.entity_table)
    # without an entity table the first bound table defines the entities
    fields = visible_fields(structure)
    if not fields:
        return []
    return per_table.get(fields[0][2].table, [])


def render_table(
    backend: Backend,
    main_tab: str,
    sub_tab: str,
    *,
    settings: EngineSettings | None = None,
    entities: list[Record] | None = None,
    active_main_tab: str | None = None,
) -> TableResult:
    """
    Loads a structure, fetches its tables and assembles the rows.

    Example:
        >>> backend = FileBackend(Path("data"))
        >>> result = render_table(backend, "company", "Profile")
        >>> [c.label for c in result.plan.columns]
        ['Company Name', 'Email']
    """
    settings = settings or EngineSettings()
    structure = open_store(backend, settings).get(main_tab, sub_tab)
    if active_main_tab is not None:
        structure = filter_by_active_tab(structure, active_main_tab)

    plan = project(structure)
    tables = [c.field.table for c in plan.columns]
    per_table = fetch_records(backend, tables, max_workers=settings.max_workers)
    if entities is None:
        entities = _entities(backend, structure, settings, per_table)

    rows = assemble(entities, per_table, structure, entity_key=settings.entity_key)
    stats: dict = column_statistics(plan, rows)
    logger.info("Rendered %s/%s: %d row(s), %d column(s)", main_tab, sub_tab, len(rows), len(plan.columns))
    return TableResult(structure=structure, plan=plan, rows=rows, stats=stats)


def add_fields(
    store: StructureStore,
    main_tab: str,
    sub_tab: str,
    fragment: StructureFragment,
    *,
    section: str,
    subsection: str,
) -> Structure:
    """Merges a fragment into the stored structure and saves it."""
    structure = store.get(main_tab, sub_tab)
    merged = renumber(merge_fragment(structure, fragment, section=section, subsection=subsection))
    return store.save(merged)


def validate(store: StructureStore, main_tab: str) -> ValidationReport:
    return validate_structures(store.load(main_tab))


__all__ = [
    "TableResult",
    "ColumnStats",
    "open_backend",
    "open_store",
    "render_table",
    "add_fields",
    "validate",
]

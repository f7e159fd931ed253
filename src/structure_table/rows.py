"""
RowAssembler: joins per-table records into one logical row per entity.

Each table's records are indexed once by their join column, so every field
bound to that table resolves through the same lookup. Missing data never
raises: a table without a record for the entity leaves its fields as None,
and a failure while assembling one entity only marks that entity's row as
failed.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Iterable, NamedTuple

import pandas as pd

from .backend import Backend, Record
from .io import frame_to_records
from .model import Field, FieldKey, Structure
from .projection import visible_fields

logger = logging.getLogger(__name__)


class Join(NamedTuple):
    """How a table's records attach to an entity."""

    local_key: str
    entity_key: str
    many: bool = False


def join_for(structure: Structure, table: str, *, entity_key: str = "id") -> Join:
    """
    Reads ``relationships[table]`` (``{local_key, entity_key, many}``).

    Tables without an entry join their ``id`` column to the entity's key.
    """
    raw = structure.document.relationships.get(table)
    if raw is None:
        return Join(local_key="id", entity_key=entity_key)
    if not isinstance(raw, dict):
        logger.warning("Ignoring malformed relationship for table %s: %r", table, raw)
        return Join(local_key="id", entity_key=entity_key)
    return Join(
        local_key=str(raw.get("local_key") or "id"),
        entity_key=str(raw.get("entity_key") or entity_key),
        many=bool(raw.get("many", False)),
    )


@dataclass(frozen=True)
class MissingField:
    field: Field
    value: Any


def completion_percentage(total: int, missing: int) -> int:
    """Share of filled fields, rounded to a whole percent. An empty row is complete."""
    if total <= 0:
        return 100
    return round(100 * (total - missing) / total)


def _is_missing(value: Any) -> bool:
    return value is None or value == ""


@dataclass(frozen=True)
class Row:
    entity_id: Any
    values: dict[FieldKey, Any]
    fields: tuple[Field, ...] = ()
    children: tuple["Row", ...] = ()
    failed: bool = False

    def __getitem__(self, key: FieldKey | str) -> Any:
        if isinstance(key, str):
            key = FieldKey.parse(key)
        return self.values[key]

    def get(self, key: FieldKey | str, default: Any = None) -> Any:
        try:
            return self[key]
        except KeyError:
            return default

    def missing_fields(self) -> list[MissingField]:
        return [
            MissingField(field=f, value=self.values.get(f.key))
            for f in self.fields
            if _is_missing(self.values.get(f.key))
        ]

    def completion(self) -> int:
        return completion_percentage(len(self.fields), len(self.missing_fields()))

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {str(k): v for k, v in self.values.items()}
        if self.children:
            out["_children"] = [c.to_dict() for c in self.children]
        return out


def _normalise(value: Any) -> Any:
    # lists and dicts are values, never nulls
    if pd.api.types.is_scalar(value) and pd.isna(value):
        return None
    return value


def _index(records: list[Record], key: str) -> dict[Any, list[Record]]:
    if not records:
        return {}
    # object dtype keeps ints as ints when a column also holds nulls
    df = pd.DataFrame(records, dtype=object)
    if key not in df.columns:
        logger.warning("Join column %r missing from records; fields resolve to None", key)
        return {}
    index: dict[Any, list[Record]] = {}
    for record in frame_to_records(df):
        value = record.get(key)
        if value is None:
            continue
        index.setdefault(value, []).append(record)
    return index


def assemble(
    entities: Iterable[Record],
    per_table_records: dict[str, list[Record]],
    structure: Structure,
    *,
    entity_key: str = "id",
) -> list[Row]:
    """
    Builds one ``Row`` per entity, in entity order.

    Only effectively visible fields are resolved. For a ``many`` relationship
    the row takes its values from the first matched record and every matched
    record becomes a child row holding that table's fields.
    """
    fields = tuple(f for _, _, f in visible_fields(structure))
    by_table: dict[str, list[Field]] = {}
    for f in fields:
        by_table.setdefault(f.table, []).append(f)

    joins = {t: join_for(structure, t, entity_key=entity_key) for t in by_table}
    indexes = {
        t: _index(per_table_records.get(t) or [], joins[t].local_key) for t in by_table
    }

    rows: list[Row] = []
    for entity in entities:
        entity_id = None
        try:
            entity_id = entity.get(entity_key)
            rows.append(_assemble_one(entity, entity_id, fields, by_table, joins, indexes))
        except Exception:
            logger.exception("Failed to assemble row for entity %r", entity_id)
            rows.append(
                Row(
                    entity_id=entity_id,
                    values={f.key: None for f in fields},
                    fields=fields,
                    failed=True,
                )
            )
    return rows


def _assemble_one(
    entity: Record,
    entity_id: Any,
    fields: tuple[Field, ...],
    by_table: dict[str, list[Field]],
    joins: dict[str, Join],
    indexes: dict[str, dict[Any, list[Record]]],
) -> Row:
    values: dict[FieldKey, Any] = {f.key: None for f in fields}
    children: list[Row] = []
    for table, table_fields in by_table.items():
        join = joins[table]
        join_value = _normalise(entity.get(join.entity_key))
        matched = indexes[table].get(join_value, []) if join_value is not None else []
        if not matched:
            continue
        for f in table_fields:
            values[f.key] = _normalise(matched[0].get(f.name))
        if join.many:
            children.extend(
                Row(
                    entity_id=record.get("id"),
                    values={f.key: _normalise(record.get(f.name)) for f in table_fields},
                    fields=tuple(table_fields),
                )
                for record in matched
            )
    return Row(entity_id=entity_id, values=values, fields=fields, children=tuple(children))


def fetch_records(
    backend: Backend, tables: Iterable[str], *, max_workers: int = 4
) -> dict[str, list[Record]]:
    """
    Reads every table concurrently and waits for all of them.

    A table that fails to load is logged and contributes no records.
    """
    tables = list(dict.fromkeys(tables))
    if not tables:
        return {}
    results: dict[str, list[Record]] = {}
    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(tables)))) as executor:
        futures = {table: executor.submit(backend.fetch, table) for table in tables}
        for table, future in futures.items():
            try:
                results[table] = future.result()
            except Exception as e:
                logger.warning("Could not read table %s: %s", table, e)
                results[table] = []
    return results

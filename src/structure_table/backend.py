"""
Row-store backends.

The engine only needs five calls from its persistence layer: ``fetch``,
``update``, ``insert``, ``list_tables`` and ``list_columns``. ``MemoryBackend``
keeps tables in process (tests, embedding); ``FileBackend`` keeps one file per
table in a data directory.
"""

from __future__ import annotations

import copy
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import pandas as pd

from .errors import PersistenceError
from .io import (
    TABLE_SUFFIXES,
    frame_to_records,
    read_records,
    read_table,
    write_records,
    write_table,
)

logger = logging.getLogger(__name__)

Record = dict[str, Any]


def _matches(record: Record, filters: dict[str, Any] | None) -> bool:
    if not filters:
        return True
    return all(record.get(k) == v for k, v in filters.items())


class Backend(ABC):
    """Interface every backend implements. Failures raise PersistenceError."""

    @abstractmethod
    def fetch(self, table: str, filters: dict[str, Any] | None = None) -> list[Record]:
        pass

    @abstractmethod
    def update(self, table: str, record_id: Any, patch: Record, *, key: str = "id") -> int:
        """Applies ``patch`` to records whose ``key`` equals ``record_id``; returns the count."""
        pass

    @abstractmethod
    def insert(self, table: str, record: Record) -> Record:
        pass

    @abstractmethod
    def list_tables(self) -> list[str]:
        pass

    @abstractmethod
    def list_columns(self, table: str) -> list[str]:
        pass


def _next_id(records: list[Record]) -> int:
    ids = [r.get("id") for r in records if isinstance(r.get("id"), int)]
    return max(ids, default=0) + 1


class MemoryBackend(Backend):
    def __init__(self, tables: dict[str, list[Record]] | None = None) -> None:
        self._tables: dict[str, list[Record]] = {
            name: [dict(r) for r in rows] for name, rows in (tables or {}).items()
        }
        self._lock = threading.Lock()

    def _rows(self, table: str) -> list[Record]:
        try:
            return self._tables[table]
        except KeyError:
            raise PersistenceError(f"Unknown table: {table}") from None

    def fetch(self, table: str, filters: dict[str, Any] | None = None) -> list[Record]:
        with self._lock:
            return [copy.deepcopy(r) for r in self._rows(table) if _matches(r, filters)]

    def update(self, table: str, record_id: Any, patch: Record, *, key: str = "id") -> int:
        with self._lock:
            count = 0
            for r in self._rows(table):
                if r.get(key) == record_id:
                    r.update(copy.deepcopy(patch))
                    count += 1
            return count

    def insert(self, table: str, record: Record) -> Record:
        with self._lock:
            rows = self._tables.setdefault(table, [])
            new = copy.deepcopy(record)
            new.setdefault("id", _next_id(rows))
            rows.append(new)
            return copy.deepcopy(new)

    def list_tables(self) -> list[str]:
        return sorted(self._tables)

    def list_columns(self, table: str) -> list[str]:
        with self._lock:
            seen: dict[str, None] = {}
            for r in self._rows(table):
                for k in r:
                    seen.setdefault(k, None)
            return list(seen)


class FileBackend(Backend):
    """
    One file per table under ``data_dir``: ``<table>.json`` (list of records),
    ``<table>.csv`` or ``<table>.parquet``. Writes keep the table's existing
    format; new tables are created as JSON.
    """

    def __init__(self, data_dir: Path) -> None:
        self.data_dir = Path(data_dir)
        self._lock = threading.Lock()

    def _path(self, table: str) -> Path | None:
        for suffix in TABLE_SUFFIXES:
            candidate = self.data_dir / f"{table}.{suffix}"
            if candidate.exists():
                return candidate
        return None

    def _read(self, table: str) -> tuple[Path, list[Record]]:
        path = self._path(table)
        if path is None:
            raise PersistenceError(f"Unknown table: {table} (no file in {self.data_dir})")
        try:
            if path.suffix.lower() == ".json":
                return path, read_records(path)
            return path, frame_to_records(read_table(path))
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Failed to read table {table} from {path}") from e

    def _write(self, path: Path, records: list[Record]) -> None:
        try:
            if path.suffix.lower() == ".json":
                write_records(records, path)
                return
            write_table(pd.DataFrame.from_records(records), path)
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Failed to write table file {path}") from e

    def fetch(self, table: str, filters: dict[str, Any] | None = None) -> list[Record]:
        _, records = self._read(table)
        return [r for r in records if _matches(r, filters)]

    def update(self, table: str, record_id: Any, patch: Record, *, key: str = "id") -> int:
        with self._lock:
            path, records = self._read(table)
            count = 0
            for r in records:
                if r.get(key) == record_id:
                    r.update(patch)
                    count += 1
            if count:
                self._write(path, records)
            logger.debug("Updated %d record(s) in %s where %s=%r", count, table, key, record_id)
            return count

    def insert(self, table: str, record: Record) -> Record:
        with self._lock:
            path = self._path(table)
            if path is None:
                self.data_dir.mkdir(parents=True, exist_ok=True)
                path, records = self.data_dir / f"{table}.json", []
            else:
                path, records = self._read(table)
            new = dict(record)
            new.setdefault("id", _next_id(records))
            records.append(new)
            self._write(path, records)
            logger.debug("Inserted record id=%r into %s", new.get("id"), table)
            return new

    def list_tables(self) -> list[str]:
        if not self.data_dir.exists():
            return []
        return sorted(
            p.stem for p in self.data_dir.iterdir()
            if p.is_file() and p.suffix.lower().lstrip(".") in TABLE_SUFFIXES
        )

    def list_columns(self, table: str) -> list[str]:
        path = self._path(table)
        if path is not None and path.suffix.lower() == ".csv":
            try:
                return list(read_table(path, nrows=0).columns)
            except (OSError, ValueError) as e:
                raise PersistenceError(f"Failed to read columns of {table}") from e
        _, records = self._read(table)
        seen: dict[str, None] = {}
        for r in records:
            for k in r:
                seen.setdefault(k, None)
        return list(seen)

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pandas as pd

from .errors import ParquetUnavailableError

TABLE_SUFFIXES = ("json", "csv", "parquet")


def _suffix(path: Path) -> str:
    return path.suffix.lower().lstrip(".")


def read_table(path: Path, *, nrows: int | None = None) -> pd.DataFrame:
    suffix = _suffix(path)
    if suffix == "csv":
        return pd.read_csv(path, nrows=nrows)
    if suffix == "parquet":
        # read_parquet has no nrows; trim after loading
        df = pd.read_parquet(path)
        if nrows is not None:
            return df.head(nrows)
        return df
    if suffix == "json":
        records = read_records(path)
        df = pd.DataFrame.from_records(records)
        if nrows is not None:
            return df.head(nrows)
        return df
    raise ValueError(f"Unsupported input format: {path}")


def write_table(df: pd.DataFrame, path: Path, *, index: bool = False) -> None:
    suffix = _suffix(path)
    if suffix == "csv":
        df.to_csv(path, index=index, date_format="%Y-%m-%dT%H:%M:%SZ")
        return
    if suffix == "json":
        df.to_json(path, orient="records", indent=2, date_format="iso", force_ascii=False)
        return
    if suffix != "parquet":
        raise ValueError(f"Unsupported output format: {path}")

    try:
        import pyarrow  # noqa: F401
    except Exception as e:  # pragma: no cover
        raise ParquetUnavailableError(
            "Parquet output requires pyarrow. Install with: pip install -e \".[parquet]\""
        ) from e
    df.to_parquet(path, index=index)


def read_records(path: Path) -> list[dict[str, Any]]:
    """Reads a JSON file holding a list of record objects, keeping nested values intact."""
    raw = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, list) or not all(isinstance(r, dict) for r in raw):
        raise ValueError(f"JSON table must be a list of objects: {path}")
    return raw


def write_records(records: list[dict[str, Any]], path: Path) -> None:
    path.write_text(
        json.dumps(records, indent=2, ensure_ascii=False, default=str), encoding="utf-8"
    )


def frame_to_records(df: pd.DataFrame) -> list[dict[str, Any]]:
    """Converts a DataFrame to plain-Python records with nulls as None."""
    if df.empty:
        return []
    boxed = df.astype(object).where(pd.notna(df), None)
    return boxed.to_dict(orient="records")

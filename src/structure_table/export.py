from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

import pandas as pd

from .cells import format_value
from .io import write_table
from .projection import RenderPlan
from .rows import Row

logger = logging.getLogger(__name__)

COMPLETION_COLUMN = ("", "", "Completion %")


def rows_to_frame(
    plan: RenderPlan,
    rows: Iterable[Row],
    *,
    formatted: bool = False,
    completion: bool = False,
) -> pd.DataFrame:
    """
    One DataFrame row per entity, columns as a (section, subsection, label)
    MultiIndex in render order. ``formatted`` applies each field's display
    formatting instead of keeping raw values.

    Columns are positional, so two fields sharing a display label stay apart.
    """
    rows = list(rows)
    headers: list[tuple[str, str, str]] = []
    columns: list[list] = []
    for column in plan.columns:
        values = [r.values.get(column.key) for r in rows]
        if formatted:
            values = [format_value(column.field, v) for v in values]
        headers.append((column.section, column.subsection, column.label))
        columns.append(values)
    if completion:
        headers.append(COMPLETION_COLUMN)
        columns.append([r.completion() for r in rows])

    index = pd.Index([r.entity_id for r in rows], name="entity_id")
    df = pd.DataFrame(dict(enumerate(columns)), index=index)
    if headers:
        df.columns = pd.MultiIndex.from_tuples(headers, names=["section", "subsection", "field"])
    return df


def _flatten(df: pd.DataFrame, plan: RenderPlan) -> pd.DataFrame:
    """Single-level column names (``table.field``) for formats without multi-row headers."""
    names = [str(c.key) for c in plan.columns]
    if len(df.columns) > len(names):
        names.append(COMPLETION_COLUMN[2])
    flat = df.copy()
    flat.columns = names
    return flat.reset_index()


def write_export(
    plan: RenderPlan,
    rows: Iterable[Row],
    path: Path,
    *,
    formatted: bool = False,
    completion: bool = False,
) -> None:
    df = rows_to_frame(plan, rows, formatted=formatted, completion=completion)
    if path.suffix.lower() == ".csv":
        df.to_csv(path)
    else:
        write_table(_flatten(df, plan), path)
    logger.info("Exported %d row(s) x %d column(s) to %s", len(df), len(df.columns), path)

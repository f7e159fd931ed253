"""
ColumnProjector: turns a structure into the header rows and leaf columns of a table.

Only effectively visible items take part: a field shows when it, its
subsection and its section are all visible. Headers with no visible leaves
are dropped rather than emitted with a zero colspan.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterable

from .model import Field, FieldKey, Section, Structure, Subsection

if TYPE_CHECKING:
    from .rows import Row


def _by_order(items: Iterable[Any]) -> list[Any]:
    # sorted() is stable, so equal orders keep document position
    return sorted(items, key=lambda item: item.order)


def visible_fields(structure: Structure) -> list[tuple[Section, Subsection, Field]]:
    """Effectively visible fields in column order."""
    out: list[tuple[Section, Subsection, Field]] = []
    for section in _by_order(structure.document.sections):
        if not section.visible:
            continue
        for subsection in _by_order(section.subsections):
            if not subsection.visible:
                continue
            out.extend(
                (section, subsection, f) for f in _by_order(subsection.fields) if f.visible
            )
    return out


@dataclass(frozen=True)
class HeaderCell:
    label: str
    colspan: int


@dataclass(frozen=True)
class Column:
    section: str
    subsection: str
    field: Field
    reference: str  # "section.subsection.field" position, 1-based

    @property
    def key(self) -> FieldKey:
        return self.field.key

    @property
    def label(self) -> str:
        return self.field.display


@dataclass(frozen=True)
class RenderPlan:
    sections: tuple[HeaderCell, ...] = ()
    subsections: tuple[HeaderCell, ...] = ()
    columns: tuple[Column, ...] = ()

    @property
    def keys(self) -> list[FieldKey]:
        return [c.key for c in self.columns]

    def header_rows(self) -> list[list[HeaderCell]]:
        leaves = [HeaderCell(c.label, 1) for c in self.columns]
        return [list(self.sections), list(self.subsections), leaves]

    def to_dict(self) -> dict[str, Any]:
        return {
            "sections": [{"section": h.label, "colspan": h.colspan} for h in self.sections],
            "subsections": [{"subsection": h.label, "colspan": h.colspan} for h in self.subsections],
            "columns": [
                {"field": str(c.key), "label": c.label, "reference": c.reference}
                for c in self.columns
            ],
        }


def project(structure: Structure) -> RenderPlan:
    sections: list[HeaderCell] = []
    subsections: list[HeaderCell] = []
    columns: list[Column] = []

    section_no = 0
    for section in _by_order(structure.document.sections):
        if not section.visible:
            continue
        section_cols: list[Column] = []
        section_subs: list[HeaderCell] = []
        sub_no = 0
        for subsection in _by_order(section.subsections):
            if not subsection.visible:
                continue
            fields = [f for f in _by_order(subsection.fields) if f.visible]
            if not fields:
                continue
            sub_no += 1
            section_subs.append(HeaderCell(subsection.name, len(fields)))
            section_cols.extend(
                Column(
                    section=section.name,
                    subsection=subsection.name,
                    field=f,
                    reference=f"{section_no + 1}.{sub_no}.{i}",
                )
                for i, f in enumerate(fields, start=1)
            )
        if not section_cols:
            continue
        section_no += 1
        sections.append(HeaderCell(section.name, sum(h.colspan for h in section_subs)))
        subsections.extend(section_subs)
        columns.extend(section_cols)

    return RenderPlan(sections=tuple(sections), subsections=tuple(subsections), columns=tuple(columns))


@dataclass(frozen=True)
class ColumnStats:
    total: int
    completed: int

    @property
    def pending(self) -> int:
        return self.total - self.completed

    def to_dict(self) -> dict[str, int]:
        return {"total": self.total, "completed": self.completed, "pending": self.pending}


def column_statistics(plan: RenderPlan, rows: Iterable["Row"]) -> dict[FieldKey, ColumnStats]:
    """Per column: how many rows carry a value and how many are still empty."""
    rows = list(rows)
    stats: dict[FieldKey, ColumnStats] = {}
    for column in plan.columns:
        completed = sum(1 for r in rows if r.values.get(column.key) not in (None, ""))
        stats[column.key] = ColumnStats(total=len(rows), completed=completed)
    return stats
